"""
Mix Processor 模块（唯一公共入口）

公共 API：
- assemble(): segment 列表 -> MixedAudio（单一 PCM 时间线）

内部模块（不直接导入）：
- timeline.py: 时间线组装与静音生成
- download.py: 远程 segment 下载
"""
from .timeline import MixedAudio, Placement, assemble, make_silence, seconds_to_frame, validate_segments

__all__ = ["MixedAudio", "Placement", "assemble", "make_silence", "seconds_to_frame", "validate_segments"]
