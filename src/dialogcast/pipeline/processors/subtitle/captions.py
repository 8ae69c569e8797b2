"""
Captions: 字符级时间戳 -> 词级 SRT / VTT / JSON

职责：
- word_cues(): 每个 segment 按词展开为 cue
- to_srt() / to_vtt(): 每个词一个 cue，文本为 "Speaker: word"
- generate(): 三种产物一次生成

纯函数：同样的 segment 列表总是生成逐字节相同的输出。
"""
from dataclasses import dataclass
from typing import List, Sequence

from dialogcast.pipeline.core.atomic import dumps_json
from dialogcast.schema.transcript import Transcript, transcript_to_dict
from dialogcast.schema.types import AudioSegment
from dialogcast.utils.timecode import srt_timestamp, vtt_timestamp

from .transcript import build_transcript
from .words import word_spans


@dataclass(frozen=True)
class Cue:
    start: float
    end: float
    text: str


@dataclass(frozen=True)
class Captions:
    srt: str
    vtt: str
    json: str
    transcript: Transcript


def word_cues(segments: Sequence[AudioSegment]) -> List[Cue]:
    cues: List[Cue] = []
    for seg in segments:
        for span in word_spans(seg.character_timestamps):
            cues.append(Cue(start=span.start, end=span.end, text=f"{seg.speaker}: {span.word}"))
    return cues


def to_srt(cues: Sequence[Cue]) -> str:
    """SRT：编号跨 segment 连续递增"""
    blocks = []
    for n, cue in enumerate(cues, start=1):
        blocks.append(f"{n}\n{srt_timestamp(cue.start)} --> {srt_timestamp(cue.end)}\n{cue.text}\n")
    return "\n".join(blocks)


def to_vtt(cues: Sequence[Cue]) -> str:
    blocks = [f"{vtt_timestamp(c.start)} --> {vtt_timestamp(c.end)}\n{c.text}\n" for c in cues]
    return "WEBVTT\n\n" + "\n".join(blocks)


def generate(segments: Sequence[AudioSegment]) -> Captions:
    cues = word_cues(segments)
    transcript = build_transcript(segments)
    return Captions(
        srt=to_srt(cues),
        vtt=to_vtt(cues),
        json=dumps_json(transcript_to_dict(transcript)),
        transcript=transcript,
    )
