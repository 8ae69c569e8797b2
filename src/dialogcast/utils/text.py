"""
文本处理工具函数

职责：
- 空白规范化（parser / formatter / captions 共用）
- 单词切分（字幕按词对齐时使用）
"""
import re

_WS_RE = re.compile(r"\s+")


def normalize_text(t: str) -> str:
    """
    文本规范化：合并连续空白并去掉首尾空白。

    保留标点；全角空格视为普通空格。
    """
    t = t.replace("　", " ")
    return _WS_RE.sub(" ", t).strip()


def split_words(t: str) -> list[str]:
    """按空白切分单词（不去标点，字幕里保留原样）"""
    return [w for w in _WS_RE.split(t) if w]


def word_count(t: str) -> int:
    return len(split_words(t))


def normalized_offset(t: str, offset: int) -> int:
    """原文中的字符位置 -> normalize_text(t) 中的对应位置"""
    t = t.replace("　", " ")
    offset = min(max(offset, 0), len(t))
    prefix = _WS_RE.sub(" ", t[:offset]).lstrip()
    return min(len(prefix), len(normalize_text(t)))
