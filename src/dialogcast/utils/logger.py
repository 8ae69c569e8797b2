"""
统一的日志工具模块

所有阶段（parse / timing / synthesis / mix / captions）都通过这里输出日志，
不直接使用 print。级别由环境变量 DIALOGCAST_LOG_LEVEL 控制（默认 INFO）。
"""
import os
import sys
from typing import Optional

_LEVELS = {"DEBUG": 10, "INFO": 20, "SUCCESS": 20, "WARN": 30, "ERROR": 40}


def _threshold() -> int:
    name = os.getenv("DIALOGCAST_LOG_LEVEL", "INFO").upper()
    if name == "WARNING":
        name = "WARN"
    return _LEVELS.get(name, 20)


class Logger:
    """简单的日志记录器，不依赖 logging 模块"""

    def __init__(self, prefix: str = ""):
        self.prefix = prefix

    def _format(self, level: str, message: str) -> str:
        if self.prefix:
            return f"[{level}] {self.prefix}: {message}"
        return f"[{level}] {message}"

    def _emit(self, level: str, message: str, stream=None):
        if _LEVELS[level] < _threshold():
            return
        print(self._format(level, message), file=stream or sys.stdout)

    def info(self, message: str):
        self._emit("INFO", message)

    def success(self, message: str):
        self._emit("SUCCESS", message)

    def warning(self, message: str):
        """警告级别日志（stderr）"""
        self._emit("WARN", message, sys.stderr)

    def error(self, message: str):
        """错误级别日志（stderr）"""
        self._emit("ERROR", message, sys.stderr)

    def debug(self, message: str):
        self._emit("DEBUG", message)


# 全局默认日志记录器
_default_logger = Logger()


def info(message: str):
    _default_logger.info(message)


def success(message: str):
    _default_logger.success(message)


def warning(message: str):
    _default_logger.warning(message)


def error(message: str):
    _default_logger.error(message)


def debug(message: str):
    _default_logger.debug(message)


def get_logger(prefix: Optional[str] = None) -> Logger:
    """获取带前缀的日志记录器"""
    return Logger(prefix=prefix or "")
