"""
Parse Processor: 对话脚本解析（唯一对外入口）

职责：
- 把 `[speaker|mod,mod] text` 脚本解析为有序的 DialogueTurn 列表
- 提取 emotion / pace 修饰和显式 <break time="Xs"/> 标记
- 把 turns 序列化回脚本文本（parse -> serialize -> parse 结果不变）

纯函数：只依赖输入文本和 speaker registry，没有副作用。
"""
import re
from typing import Iterable, List, Optional, Tuple, Union

from dialogcast.errors import EmptyDialogue, MalformedTag, UnknownSpeaker
from dialogcast.schema.types import (
    DialogueTurn,
    Emotion,
    Pace,
    Speaker,
    SpeakerRegistry,
    TurnModifiers,
)
from dialogcast.utils.text import normalize_text

# [name] 或 [name|modifiers]；name 不能包含 ] | [
TAG_RE = re.compile(r"\[([^\[\]|]*)(?:\|([^\[\]]*))?\]")
BREAK_RE = re.compile(r"<break\s+time\s*=\s*\"([^\"]*)\"\s*/?>", re.IGNORECASE)
_TIME_RE = re.compile(r"^\s*(\d+(?:\.\d+)?|\.\d+)\s*(ms|s)?\s*$", re.IGNORECASE)

_EMOTIONS = {e.value: e for e in Emotion}
_PACES = {p.value: p for p in Pace}


def parse_break_time(raw: str, *, position: Optional[int] = None) -> float:
    """'0.3s' / '300ms' / '0.3' -> 秒"""
    m = _TIME_RE.match(raw)
    if not m:
        raise MalformedTag(f'Invalid break time "{raw}"', position=position)
    value = float(m.group(1))
    if (m.group(2) or "s").lower() == "ms":
        value /= 1000.0
    return value


def format_break_tag(seconds: float) -> str:
    return f'<break time="{seconds!r}s"/>'


def _parse_modifiers(raw: str, position: int) -> Tuple[Emotion, Pace, List[float]]:
    breaks = [parse_break_time(m.group(1), position=position) for m in BREAK_RE.finditer(raw)]
    remainder = BREAK_RE.sub(",", raw)

    emotion: Optional[Emotion] = None
    pace: Optional[Pace] = None
    for token in remainder.split(","):
        token = token.strip().lower()
        if not token:
            continue
        # 第一个可识别的 token 生效，其余忽略
        if emotion is None and token in _EMOTIONS:
            emotion = _EMOTIONS[token]
        elif pace is None and token in _PACES:
            pace = _PACES[token]
    return emotion or Emotion.NEUTRAL, pace or Pace.NORMAL, breaks


def _parse_body(raw: str, position: int) -> Tuple[str, List[float], List[int]]:
    """
    去掉 body 中的 break 标记，返回 (clean_text, breaks, offsets)。

    offset 是 break 在 clean_text 中的位置：标记之前文本规范化后的长度。
    标记本身按一个空格处理（相当于词边界）。
    """
    breaks: List[float] = []
    offsets: List[int] = []
    pieces: List[str] = []
    cursor = 0
    for m in BREAK_RE.finditer(raw):
        pieces.append(raw[cursor:m.start()])
        breaks.append(parse_break_time(m.group(1), position=position + m.start()))
        offsets.append(len(normalize_text(" ".join(pieces))))
        cursor = m.end()
    pieces.append(raw[cursor:])
    return normalize_text(" ".join(pieces)), breaks, offsets


def parse_dialogue(
    raw_text: str,
    speakers: Union[SpeakerRegistry, Iterable[Speaker]],
) -> List[DialogueTurn]:
    """
    解析脚本文本。

    Args:
        raw_text: `[speaker|modifiers] text` 格式的脚本
        speakers: speaker registry（名字大小写不敏感）

    Returns:
        DialogueTurn 列表（order_index 从 0 连续递增，reply_to = 上一个 index）

    Raises:
        EmptyDialogue: 没有任何 speaker 标记
        UnknownSpeaker: 标记中的 speaker 未注册
        MalformedTag: 标记格式错误、break 时长非法或某个 turn 没有文本
    """
    registry = speakers if isinstance(speakers, SpeakerRegistry) else SpeakerRegistry(speakers)
    text = raw_text.replace("\r\n", "\n").replace("\r", "\n")

    matches = list(TAG_RE.finditer(text))
    if not matches:
        if "[" in text:
            raise MalformedTag("Unterminated speaker tag", position=text.index("["))
        raise EmptyDialogue()

    preamble = text[:matches[0].start()]
    if preamble.strip():
        raise MalformedTag("Text before the first speaker tag", position=0)

    turns: List[DialogueTurn] = []
    for i, m in enumerate(matches):
        name = m.group(1).strip()
        if not name:
            raise MalformedTag("Empty speaker name", position=m.start(), index=i)
        speaker = registry.get(name)
        if speaker is None:
            raise UnknownSpeaker(name, index=i)

        body_end = matches[i + 1].start() if i + 1 < len(matches) else len(text)
        body = text[m.end():body_end]
        if "[" in body:
            raise MalformedTag("Unexpected '[' inside line", position=m.end() + body.index("["), index=i)

        emotion, pace, breaks = (Emotion.NEUTRAL, Pace.NORMAL, [])
        if m.group(2) is not None:
            emotion, pace, breaks = _parse_modifiers(m.group(2), m.start())
        # 修饰段里的 break 没有文本位置，放在行首
        offsets = [0] * len(breaks)

        clean, body_breaks, body_offsets = _parse_body(body, m.end())
        if not clean:
            raise MalformedTag(f"Speaker tag [{name}] has no text", position=m.start(), index=i)
        breaks.extend(body_breaks)
        offsets.extend(body_offsets)

        turns.append(
            DialogueTurn(
                speaker_name=speaker.name,
                text=clean,
                order_index=i,
                reply_to=i - 1 if i > 0 else None,
                modifiers=TurnModifiers(
                    emotion=emotion,
                    pace=pace,
                    breaks=tuple(breaks),
                    break_offsets=tuple(offsets),
                ),
            )
        )
    return turns


def serialize_turn(turn: DialogueTurn) -> str:
    """一个 turn -> `[speaker|mods] text`，显式 break 放回原来的位置"""
    mods = []
    if turn.modifiers.emotion != Emotion.NEUTRAL:
        mods.append(turn.modifiers.emotion.value)
    if turn.modifiers.pace != Pace.NORMAL:
        mods.append(turn.modifiers.pace.value)
    tag = f"[{turn.speaker_name}|{','.join(mods)}]" if mods else f"[{turn.speaker_name}]"

    # 从后往前插入，保持前面的 offset 有效；同一 offset 的 break 保持原顺序
    text = turn.text
    placed = list(zip(turn.modifiers.break_offsets, turn.modifiers.breaks))
    for offset, seconds in reversed(placed):
        offset = min(offset, len(text))
        text = f"{text[:offset]} {format_break_tag(seconds)} {text[offset:]}"
    return f"{tag} {normalize_text(text)}"


def serialize_turns(turns: Iterable[DialogueTurn]) -> str:
    return "\n".join(serialize_turn(t) for t in turns)
