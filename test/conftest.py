import sys
from pathlib import Path

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

import numpy as np
import pytest

from dialogcast.pipeline.processors.markup import to_narration
from dialogcast.pipeline.processors.tts import SpeechSynthesizer, build_segment
from dialogcast.schema.types import AudioSegment, CharacterTimestamps, Speaker, SpeakerRegistry

SAMPLE_RATE = 44100
CHANNELS = 2


def pcm(seconds: float, value: int = 1000, *, sample_rate: int = SAMPLE_RATE, channels: int = CHANNELS) -> bytes:
    frames = int(round(seconds * sample_rate))
    return np.full((frames, channels), value, dtype="<i2").tobytes()


def char_timestamps(text: str, start: float = 0.0, per_char: float = 0.1) -> CharacterTimestamps:
    return CharacterTimestamps(
        characters=tuple(text),
        start_times=tuple(start + i * per_char for i in range(len(text))),
        end_times=tuple(start + (i + 1) * per_char for i in range(len(text))),
    )


class FakeSynthesizer(SpeechSynthesizer):
    """0.1s per narration character, constant-level PCM; records every call."""

    def __init__(self, per_char: float = 0.1, fail_on=None):
        self.per_char = per_char
        self.fail_on = fail_on or {}
        self.calls = []

    def synthesize(self, markup, speaker, start_offset=0.0):
        narration = to_narration(markup)
        self.calls.append((markup, speaker.name, start_offset))
        error = self.fail_on.get(narration)
        if error is not None:
            raise error
        timestamps = char_timestamps(narration, per_char=self.per_char)
        return build_segment(
            speaker=speaker,
            markup=markup,
            audio_bytes=pcm(timestamps.max_end),
            timestamps=timestamps,
            start_offset=start_offset,
            sample_rate=SAMPLE_RATE,
            channels=CHANNELS,
        )


@pytest.fixture
def speakers():
    return [Speaker("adam", "voice-adam"), Speaker("sarah", "voice-sarah")]


@pytest.fixture
def registry(speakers):
    return SpeakerRegistry(speakers)


@pytest.fixture
def make_segment():
    def _make(
        speaker: str,
        text: str,
        start: float,
        *,
        per_char: float = 0.1,
        end: float = None,
        audio_seconds: float = None,
        sample_rate: int = SAMPLE_RATE,
        channels: int = CHANNELS,
        turn_index: int = 0,
    ) -> AudioSegment:
        timestamps = char_timestamps(text, start=start, per_char=per_char)
        end = end if end is not None else start + len(text) * per_char
        seconds = audio_seconds if audio_seconds is not None else end - start
        return AudioSegment(
            speaker=speaker,
            audio_bytes=pcm(seconds, sample_rate=sample_rate, channels=channels),
            start_time=start,
            end_time=end,
            character_timestamps=timestamps,
            turn_index=turn_index,
            text=text,
            sample_rate=sample_rate,
            channels=channels,
        )

    return _make


@pytest.fixture
def fake_synthesizer_cls():
    return FakeSynthesizer
