"""
Speech synthesis boundary: SpeechSynthesizer 接口 + 对齐投影

职责：
- SpeechSynthesizer: synthesize(markup, speaker, start_offset) -> AudioSegment
- project_alignment(): 把供应商返回的逐字符时间戳投影到 narration 文本上

供应商的对齐可能基于发送的标记文本（含标签/实体），也可能直接基于纯文本；
两种情况都通过 narration_char_spans() 统一处理。
"""
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from dialogcast.errors import SynthesisTimingMissing
from dialogcast.schema.types import AudioSegment, CharacterTimestamps, Speaker

from ..markup.processor import to_narration
from ..markup.ssml import narration_char_spans


class SpeechSynthesizer(ABC):
    """TTS 供应商适配器接口。"""

    sample_rate: int = 44100
    channels: int = 2

    @abstractmethod
    def synthesize(self, markup: str, speaker: Speaker, start_offset: float = 0.0) -> AudioSegment:
        """
        合成一行。

        Returns:
            AudioSegment：character_timestamps 与 to_narration(markup) 一一对应，
            已整体偏移 start_offset；end_time = start_offset + 最大字符结束时间

        Raises:
            SynthesisFailure: 供应商错误（带 reason）
            SynthesisTimingMissing: 没有返回时间戳
        """


def project_alignment(
    characters: Sequence[str],
    start_times: Sequence[float],
    end_times: Sequence[float],
    narration: str,
) -> CharacterTimestamps:
    """
    供应商对齐 -> narration 字符时间戳（相对于本段开头）。

    供应商时间戳偶尔会有微小回退，这里按累计最大值保证单调。

    Raises:
        SynthesisTimingMissing: 对齐为空，或去掉标记后与 narration 不一致
    """
    if not characters or not start_times or not end_times:
        raise SynthesisTimingMissing()
    if not (len(characters) == len(start_times) == len(end_times)):
        raise SynthesisTimingMissing(
            f"Alignment sequences differ in length: {len(characters)}/{len(start_times)}/{len(end_times)}"
        )

    # 条目可能是多字符字符串：展开为逐字符索引
    flat: List[str] = []
    owner: List[int] = []
    for idx, chunk in enumerate(characters):
        for ch in chunk:
            flat.append(ch)
            owner.append(idx)

    spans = narration_char_spans("".join(flat))
    projected = "".join(ch for ch, _, _ in spans)
    if projected != narration:
        raise SynthesisTimingMissing(
            f"Alignment text does not match narration: {projected[:60]!r} != {narration[:60]!r}"
        )

    starts: List[float] = []
    ends: List[float] = []
    last_start = 0.0
    for ch, s, e in spans:
        start = max(float(start_times[owner[s]]), last_start)
        end = max(float(end_times[owner[e - 1]]), start)
        starts.append(start)
        ends.append(end)
        last_start = start

    return CharacterTimestamps(
        characters=tuple(ch for ch, _, _ in spans),
        start_times=tuple(starts),
        end_times=tuple(ends),
    )


def build_segment(
    *,
    speaker: Speaker,
    markup: str,
    audio_bytes: bytes,
    timestamps: CharacterTimestamps,
    start_offset: float,
    sample_rate: int,
    channels: int,
    turn_index: int = 0,
    audio_url: Optional[str] = None,
) -> AudioSegment:
    if len(timestamps) == 0:
        raise SynthesisTimingMissing()
    return AudioSegment(
        speaker=speaker.name,
        audio_bytes=audio_bytes,
        start_time=start_offset,
        end_time=start_offset + timestamps.max_end,
        character_timestamps=timestamps.shifted(start_offset),
        turn_index=turn_index,
        text=to_narration(markup),
        sample_rate=sample_rate,
        channels=channels,
        audio_url=audio_url,
    )
