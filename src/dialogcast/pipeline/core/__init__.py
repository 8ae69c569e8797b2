"""
Pipeline core: 跨阶段共用的基础设施（原子写入、稳定 JSON）
"""
from .atomic import atomic_write, dumps_json

__all__ = ["atomic_write", "dumps_json"]
