"""
Markup Processor: narration 文本 <-> 可合成标记（唯一对外入口）

职责：
- to_synthesizable(): 根据 TimingDecision 生成 prosody 包裹 + break 标记
- to_narration(): 去掉所有标记，恢复纯文本（字幕 / 转写使用）

break 插入顺序（共用上限 MAX_BREAKS，超出的直接丢弃，不合并）：
1. 前置停顿（pre_pause >= 0.3）
2. 脚本显式 break（按解析时记录的位置插回；位置失效时追加到行尾）
3. 标点停顿（逗号 0.2 / 句号 0.5 / 感叹号 0.5 / 问号 0.5 / 省略号 1.0）
4. 句内自然停顿（破折号、分号、冒号）
5. 后置停顿（post_pause >= 0.3）
"""
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from dialogcast.schema.types import DEFAULT_TIMING, DialogueTurn, IntentType, TimingDecision
from dialogcast.utils.text import normalize_text, normalized_offset

from ..timing.flow import NATURAL_BREAK_RE
from .ssml import break_tag, cleanup, escape, prosody_open, strip_tags

MAX_BREAKS = 5
BREAK_THRESHOLD = 0.3

COMMA_BREAK = 0.2
PERIOD_BREAK = 0.5
EXCLAMATION_BREAK = 0.5
QUESTION_BREAK = 0.5
ELLIPSIS_BREAK = 1.0

PUNCTUATION_RE = re.compile(r"([,.!?…]+)(?=\s|$)")

VOLUME = {"normal": "+0dB", "emphasis": "+2dB", "deemphasis": "-2dB"}
PITCH = {"normal": "medium", "high": "high", "low": "low", "question": "high", "exclamation": "x-high"}

RAISED_TONES = ("excited", "angry")
LOWERED_TONES = ("sad", "contemplative")

# 同一位置的 break 按优先级排序
_PRE, _EXPLICIT, _PUNCT, _NATURAL, _POST = range(5)


@dataclass(frozen=True)
class Prosody:
    volume: str
    pitch: str
    rate: str


def punctuation_break(punctuation: str) -> float:
    if "…" in punctuation or "..." in punctuation:
        return ELLIPSIS_BREAK
    if "?" in punctuation:
        return QUESTION_BREAK
    if "!" in punctuation:
        return EXCLAMATION_BREAK
    if "." in punctuation:
        return PERIOD_BREAK
    return COMMA_BREAK


def prosody_for(decision: TimingDecision) -> Prosody:
    tone = decision.emotional_tone
    if tone in RAISED_TONES:
        volume, pitch = VOLUME["emphasis"], PITCH["high"]
    elif tone in LOWERED_TONES:
        volume, pitch = VOLUME["deemphasis"], PITCH["low"]
    else:
        volume, pitch = VOLUME["normal"], PITCH["normal"]

    # 意图覆盖音高
    if decision.intent_type == IntentType.QUESTION:
        pitch = PITCH["question"]
    elif decision.intent_type == IntentType.EXCLAMATION:
        pitch = PITCH["exclamation"]

    return Prosody(volume=volume, pitch=pitch, rate=f"{round(decision.pace * 100)}%")


def _escaped_positions(text: str) -> List[int]:
    """clean 文本下标 -> 转义后文本下标（长度 len(text) + 1）"""
    positions = [0]
    for ch in text:
        positions.append(positions[-1] + len(escape(ch)))
    return positions


def _explicit_position(text: str, offset: int) -> int:
    # 记录的位置必须落在词边界上，否则视为失效，追加到行尾
    if offset == 0 or offset == len(text):
        return offset
    if 0 < offset < len(text) and (text[offset].isspace() or text[offset - 1].isspace()):
        return offset
    return len(text)


def to_synthesizable(
    text: str,
    decision: Optional[TimingDecision] = None,
    explicit_breaks: Optional[Iterable[Tuple[int, float]]] = None,
    *,
    max_breaks: int = MAX_BREAKS,
) -> str:
    """
    生成可合成标记。

    Args:
        text: narration 文本（不含标记）
        decision: TimingDecision（None = DEFAULT_TIMING）
        explicit_breaks: [(offset, seconds)]，offset 为原始 text 中的字符位置（随空白规范化一起换算）
        max_breaks: 每行最多插入的 break 数

    Returns:
        cleanup 之后的标记字符串
    """
    decision = decision or DEFAULT_TIMING
    explicit = [(normalized_offset(text, offset), seconds) for offset, seconds in explicit_breaks or ()]
    text = normalize_text(text)
    escaped = escape(text)
    positions = _escaped_positions(text)

    # (priority, sort_key, position, seconds)
    candidates: List[Tuple[int, int, int, float]] = []
    if decision.pre_pause >= BREAK_THRESHOLD:
        candidates.append((_PRE, 0, -1, decision.pre_pause))
    for seq, (offset, seconds) in enumerate(explicit):
        pos = positions[_explicit_position(text, offset)]
        candidates.append((_EXPLICIT, seq, pos, seconds))
    for seq, m in enumerate(PUNCTUATION_RE.finditer(text)):
        candidates.append((_PUNCT, seq, positions[m.end()], punctuation_break(m.group(1))))
    natural = list(NATURAL_BREAK_RE.finditer(text))
    for seq, (m, seconds) in enumerate(zip(natural, decision.natural_breaks)):
        # 分号/冒号之后；破折号之前
        pos = m.end() if m.group(0)[0] in ";:" else m.start()
        candidates.append((_NATURAL, seq, positions[pos], seconds))
    if decision.post_pause >= BREAK_THRESHOLD:
        candidates.append((_POST, 0, len(escaped) + 1, decision.post_pause))

    kept = sorted(candidates, key=lambda c: (c[0], c[1]))[:max(0, max_breaks)]
    kept.sort(key=lambda c: (c[2], c[0], c[1]))

    prosody = prosody_for(decision)
    before: List[str] = []
    after: List[str] = []
    inner: List[str] = []
    cursor = 0
    for _priority, _seq, pos, seconds in kept:
        if pos < 0:
            before.append(break_tag(seconds))
        elif pos > len(escaped):
            after.append(break_tag(seconds))
        else:
            inner.append(escaped[cursor:pos])
            inner.append(break_tag(seconds))
            cursor = pos
    inner.append(escaped[cursor:])

    markup = (
        "".join(before)
        + prosody_open(prosody.volume, prosody.pitch, prosody.rate)
        + "".join(inner)
        + "</prosody>"
        + "".join(after)
    )
    return cleanup(markup)


def to_narration(markup: str) -> str:
    """去掉所有 break / prosody 标记，得到纯文本。"""
    return strip_tags(markup)


def format_turn(turn: DialogueTurn, decision: Optional[TimingDecision] = None, *, max_breaks: int = MAX_BREAKS) -> str:
    """DialogueTurn + TimingDecision -> 标记（显式 break 按解析时的位置插回）"""
    explicit: Sequence[Tuple[int, float]] = list(zip(turn.modifiers.break_offsets, turn.modifiers.breaks))
    return to_synthesizable(turn.text, decision, explicit, max_breaks=max_breaks)
