"""
Transcript builders: 词级 JSON 转写 + turn 级转写（说话人统计、停顿统计、时间线报告）
"""
from typing import Dict, List, Optional, Sequence

from dialogcast.schema.transcript import (
    DialogueTranscript,
    SpeakerStats,
    Transcript,
    TranscriptMetadata,
    TranscriptSegment,
    TranscriptWord,
    TurnEntry,
)
from dialogcast.schema.types import AudioSegment, DialogueTurn
from dialogcast.utils.text import normalize_text, word_count
from dialogcast.utils.timecode import clock

from .words import word_spans


def _speakers_in_order(segments: Sequence[AudioSegment]) -> List[str]:
    seen: List[str] = []
    for seg in segments:
        if seg.speaker not in seen:
            seen.append(seg.speaker)
    return seen


def build_transcript(segments: Sequence[AudioSegment]) -> Transcript:
    records = []
    for seg in segments:
        words = [TranscriptWord(w.word, w.start, w.end) for w in word_spans(seg.character_timestamps)]
        records.append(
            TranscriptSegment(
                speaker=seg.speaker,
                text=normalize_text(seg.character_timestamps.text),
                words=words,
                start=seg.start_time,
                end=seg.end_time,
            )
        )
    return Transcript(
        duration=max((s.end_time for s in segments), default=0.0),
        speakers=_speakers_in_order(segments),
        segments=records,
    )


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _wpm(words: int, seconds: float) -> float:
    return words / seconds * 60.0 if seconds > 0 else 0.0


def build_dialogue_transcript(
    segments: Sequence[AudioSegment],
    turns: Optional[Sequence[DialogueTurn]] = None,
) -> DialogueTranscript:
    """
    turn 级转写。

    Args:
        segments: 按顺序排列的 segment
        turns: 对应的 DialogueTurn（提供 reply_to）；None 时 reply_to = 上一个下标
    """
    entries: List[TurnEntry] = []
    for i, seg in enumerate(segments):
        prev = segments[i - 1] if i > 0 else None
        text = normalize_text(seg.character_timestamps.text) or seg.text
        words = word_count(text)
        if turns is not None and i < len(turns):
            reply_to = turns[i].reply_to
        else:
            reply_to = i - 1 if i > 0 else None
        entries.append(
            TurnEntry(
                index=i,
                speaker=seg.speaker,
                text=text,
                start=seg.start_time,
                end=seg.end_time,
                duration=seg.duration,
                pause_from_previous=seg.start_time - prev.end_time if prev else seg.start_time,
                speaker_change=prev is not None and prev.speaker != seg.speaker,
                word_count=words,
                pace=_wpm(words, seg.duration),
                reply_to=reply_to,
            )
        )

    speakers: Dict[str, SpeakerStats] = {}
    for name in _speakers_in_order(segments):
        own = [e for e in entries if e.speaker == name]
        total_duration = sum(e.duration for e in own)
        total_words = sum(e.word_count for e in own)
        speakers[name] = SpeakerStats(
            speaker=name,
            turn_count=len(own),
            total_duration=total_duration,
            word_count=total_words,
            average_pause_before=_mean([e.pause_from_previous for e in own]),
            average_words_per_minute=_wpm(total_words, total_duration),
        )

    metadata = TranscriptMetadata(
        turn_count=len(entries),
        total_duration=max((e.end for e in entries), default=0.0),
        average_turn_duration=_mean([e.duration for e in entries]),
        speaker_change_pauses=[e.pause_from_previous for e in entries if e.speaker_change],
    )
    return DialogueTranscript(turns=entries, speakers=speakers, metadata=metadata)


def speaker_timeline(transcript: DialogueTranscript, speaker: str) -> str:
    """单个说话人的可读时间线报告。"""
    stats = transcript.speakers.get(speaker)
    if stats is None:
        raise KeyError(f"Speaker not in transcript: {speaker}")

    lines = [f"Timeline for {speaker}", ""]
    for e in transcript.turns:
        if e.speaker != speaker:
            continue
        lines.append(f"[{clock(e.start)} - {clock(e.end)}] ({e.duration:.2f}s) {e.text}")
        lines.append(f"    pause before: {e.pause_from_previous:.2f}s, pace: {e.pace:.1f} wpm")
    lines.append("")
    lines.append(
        f"Total: {stats.turn_count} turns, {stats.total_duration:.2f}s, "
        f"{stats.word_count} words, {stats.average_words_per_minute:.1f} wpm, "
        f"average pause before {stats.average_pause_before:.2f}s"
    )
    return "\n".join(lines) + "\n"
