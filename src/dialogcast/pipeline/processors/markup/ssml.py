"""
SSML-like markup helpers: break / prosody 标记的生成、清理和剥离

只处理本项目自己生成的两种标记：
- <break time="0.5s"/>
- <prosody volume="+2dB" pitch="high" rate="110%">...</prosody>
"""
import html
import re
from typing import List, Tuple

TAG_RE = re.compile(r"<[^<>]+>")
ENTITY_RE = re.compile(r"&(?:#\d+|#[xX][0-9a-fA-F]+|[A-Za-z][A-Za-z0-9]*);")
_WS_RE = re.compile(r"\s+")
_EMPTY_PROSODY_RE = re.compile(r"<prosody\b[^>]*>\s*</prosody>")
_BREAK = r"<break\b[^>]*/>"
_ADJACENT_BREAKS_RE = re.compile(rf"({_BREAK})(?:\s*{_BREAK})+")


def format_seconds(seconds: float) -> str:
    text = f"{seconds:.2f}".rstrip("0").rstrip(".")
    return f"{text or '0'}s"


def break_tag(seconds: float) -> str:
    return f'<break time="{format_seconds(seconds)}"/>'


def prosody_open(volume: str, pitch: str, rate: str) -> str:
    return f'<prosody volume="{volume}" pitch="{pitch}" rate="{rate}">'


def escape(text: str) -> str:
    return html.escape(text, quote=False)


def _first_break(m: re.Match) -> str:
    # 被吞掉的 break 之间若有空白，保留一个空格，避免两侧单词粘连
    return m.group(1) + (" " if any(c.isspace() for c in m.group(0)) else "")


def cleanup(markup: str) -> str:
    """
    清理：删除空 prosody -> 相邻 break 只保留第一个 -> 合并空白 -> trim
    """
    markup = _EMPTY_PROSODY_RE.sub("", markup)
    markup = _ADJACENT_BREAKS_RE.sub(_first_break, markup)
    markup = _WS_RE.sub(" ", markup)
    return markup.strip()


def strip_tags(markup: str) -> str:
    """去掉所有标记，反转义实体，合并空白。"""
    text = TAG_RE.sub("", markup)
    text = html.unescape(text)
    return _WS_RE.sub(" ", text).strip()


def narration_char_spans(markup: str) -> List[Tuple[str, int, int]]:
    """
    逐字符映射：narration 的第 i 个字符来自 markup 的 [start, end) 区间。

    返回的字符序列与 strip_tags(markup) 完全一致（同样的空白合并与 trim）。
    """
    raw: List[Tuple[str, int, int]] = []
    i = 0
    n = len(markup)
    while i < n:
        c = markup[i]
        if c == "<":
            m = TAG_RE.match(markup, i)
            if m:
                i = m.end()
                continue
        if c == "&":
            m = ENTITY_RE.match(markup, i)
            if m:
                for ch in html.unescape(m.group(0)):
                    raw.append((ch, i, m.end()))
                i = m.end()
                continue
        raw.append((c, i, i + 1))
        i += 1

    spans: List[Tuple[str, int, int]] = []
    for ch, start, end in raw:
        if ch.isspace():
            if not spans or spans[-1][0] == " ":
                continue
            spans.append((" ", start, end))
        else:
            spans.append((ch, start, end))
    if spans and spans[-1][0] == " ":
        spans.pop()
    return spans
