"""
Schema: Transcript - 字幕 / 转写产物

两层结构：
- Transcript: 词级 JSON 转写（{duration, speakers, segments}），由 segment 列表直接派生
- DialogueTranscript: turn 级转写，附带说话人统计和停顿统计

两者都是只读的派生结果，可以从同一 segment 列表重复生成。
"""
from dataclasses import dataclass
from typing import Dict, List, Optional


@dataclass(frozen=True)
class TranscriptWord:
    word: str
    start: float
    end: float


@dataclass(frozen=True)
class TranscriptSegment:
    speaker: str
    text: str
    words: List[TranscriptWord]
    start: float
    end: float


@dataclass(frozen=True)
class Transcript:
    """
    字段：
    - duration: 全局时长（= 所有 segment 的最大 end）
    - speakers: 去重后的说话人（按首次出现顺序）
    - segments: 每个 segment 的词级记录
    """
    duration: float
    speakers: List[str]
    segments: List[TranscriptSegment]


@dataclass(frozen=True)
class TurnEntry:
    """
    Turn 级记录。

    字段：
    - pause_from_previous: 与上一 turn 结束之间的间隔（秒，首个 turn 为 start）
    - speaker_change: 与上一 turn 说话人不同
    - pace: 词/分钟
    """
    index: int
    speaker: str
    text: str
    start: float
    end: float
    duration: float
    pause_from_previous: float
    speaker_change: bool
    word_count: int
    pace: float
    reply_to: Optional[int] = None


@dataclass(frozen=True)
class SpeakerStats:
    speaker: str
    turn_count: int
    total_duration: float
    word_count: int
    average_pause_before: float
    average_words_per_minute: float


@dataclass(frozen=True)
class TranscriptMetadata:
    turn_count: int
    total_duration: float
    average_turn_duration: float
    speaker_change_pauses: List[float]


@dataclass(frozen=True)
class DialogueTranscript:
    turns: List[TurnEntry]
    speakers: Dict[str, SpeakerStats]
    metadata: TranscriptMetadata


def _r(value: float) -> float:
    # 毫秒精度，保证 JSON 输出稳定
    return round(value, 3)


def transcript_to_dict(transcript: Transcript) -> dict:
    """Serialize Transcript to dict for JSON output."""
    return {
        "duration": _r(transcript.duration),
        "speakers": list(transcript.speakers),
        "segments": [
            {
                "speaker": s.speaker,
                "text": s.text,
                "words": [
                    {"word": w.word, "start": _r(w.start), "end": _r(w.end)}
                    for w in s.words
                ],
                "start": _r(s.start),
                "end": _r(s.end),
            }
            for s in transcript.segments
        ],
    }


def transcript_from_dict(data: dict) -> Transcript:
    """Deserialize Transcript from dict (JSON input)."""
    segments = []
    for s in data["segments"]:
        segments.append(
            TranscriptSegment(
                speaker=s["speaker"],
                text=s["text"],
                words=[TranscriptWord(w["word"], w["start"], w["end"]) for w in s["words"]],
                start=s["start"],
                end=s["end"],
            )
        )
    return Transcript(
        duration=data["duration"],
        speakers=list(data["speakers"]),
        segments=segments,
    )


def dialogue_transcript_to_dict(transcript: DialogueTranscript) -> dict:
    """Serialize DialogueTranscript to dict for JSON output."""
    meta = transcript.metadata
    return {
        "turns": [
            {
                "index": t.index,
                "speaker": t.speaker,
                "text": t.text,
                "start": _r(t.start),
                "end": _r(t.end),
                "duration": _r(t.duration),
                "pause_from_previous": _r(t.pause_from_previous),
                "speaker_change": t.speaker_change,
                "word_count": t.word_count,
                "pace": round(t.pace, 1),
                "reply_to": t.reply_to,
            }
            for t in transcript.turns
        ],
        "speakers": {
            name: {
                "turn_count": s.turn_count,
                "total_duration": _r(s.total_duration),
                "word_count": s.word_count,
                "average_pause_before": _r(s.average_pause_before),
                "average_words_per_minute": round(s.average_words_per_minute, 1),
            }
            for name, s in transcript.speakers.items()
        },
        "metadata": {
            "turn_count": meta.turn_count,
            "total_duration": _r(meta.total_duration),
            "average_turn_duration": _r(meta.average_turn_duration),
            "speaker_change_pauses": [_r(p) for p in meta.speaker_change_pauses],
        },
    }
