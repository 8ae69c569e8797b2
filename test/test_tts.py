import base64
import io

import numpy as np
import pytest
import requests
import soundfile as sf

from dialogcast.errors import SynthesisFailure, SynthesisFailureReason, SynthesisTimingMissing
from dialogcast.pipeline.processors.markup import to_synthesizable
from dialogcast.pipeline.processors.tts import ElevenLabsSynthesizer, project_alignment
from dialogcast.pipeline.processors.tts.audio import convert_channels, decode_audio, pcm_duration
from dialogcast.schema.types import DEFAULT_TIMING, Speaker, VoiceSettings
from dialogcast.utils.retry import RetryPolicy

NO_WAIT = RetryPolicy(max_attempts=3, base_delay=0.0, jitter=0.0)


class FakeResponse:
    def __init__(self, status_code=200, body=None, reason="OK"):
        self.status_code = status_code
        self._body = body
        self.reason = reason

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeSession:
    """按顺序返回预设响应（异常实例会被直接抛出）。"""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.posts = []
        self.gets = []

    def _next(self):
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def post(self, url, **kwargs):
        self.posts.append((url, kwargs))
        return self._next()

    def get(self, url, **kwargs):
        self.gets.append((url, kwargs))
        return self._next()


def mono_pcm(seconds, sample_rate=16000, value=500):
    return np.full(int(seconds * sample_rate), value, dtype="<i2").tobytes()


def ok_payload(characters, per_char=0.1, audio=None):
    n = len(characters)
    return {
        "audio_base64": base64.b64encode(audio if audio is not None else mono_pcm(n * per_char)).decode("ascii"),
        "alignment": {
            "characters": list(characters),
            "character_start_times_seconds": [i * per_char for i in range(n)],
            "character_end_times_seconds": [(i + 1) * per_char for i in range(n)],
        },
    }


def make_synth(session, **kwargs):
    return ElevenLabsSynthesizer(
        "test-key",
        base_url="https://tts.example/v1",
        sample_rate=16000,
        channels=2,
        retry_policy=NO_WAIT,
        session=session,
        **kwargs,
    )


@pytest.fixture
def adam():
    return Speaker("adam", "voice-adam", VoiceSettings(stability=0.4, similarity_boost=0.8))


def test_synthesize_builds_shifted_segment(adam):
    markup = to_synthesizable("Hi there", DEFAULT_TIMING)
    session = FakeSession(FakeResponse(body=ok_payload("Hi there")))
    segment = make_synth(session).synthesize(markup, adam, start_offset=2.0)

    assert segment.speaker == "adam"
    assert segment.text == "Hi there"
    assert segment.start_time == pytest.approx(2.0)
    assert segment.end_time == pytest.approx(2.8)
    assert segment.character_timestamps.text == "Hi there"
    assert segment.character_timestamps.start_times[0] == pytest.approx(2.0)
    assert segment.sample_rate == 16000
    assert segment.channels == 2
    # 单声道 0.8s 上混为立体声
    assert len(segment.audio_bytes) == 12800 * 2 * 2

    url, kwargs = session.posts[0]
    assert url == "https://tts.example/v1/text-to-speech/voice-adam/with-timestamps"
    assert kwargs["params"] == {"output_format": "pcm_16000"}
    assert kwargs["json"]["text"] == markup
    assert kwargs["json"]["voice_settings"]["stability"] == 0.4
    assert kwargs["headers"]["xi-api-key"] == "test-key"


def test_alignment_over_markup_text_is_projected(adam):
    markup = to_synthesizable("Fish & chips.", DEFAULT_TIMING)
    session = FakeSession(FakeResponse(body=ok_payload(markup, per_char=0.01)))
    segment = make_synth(session).synthesize(markup, adam)

    timestamps = segment.character_timestamps
    assert timestamps.text == "Fish & chips."
    assert list(timestamps.start_times) == sorted(timestamps.start_times)
    assert segment.end_time == pytest.approx(timestamps.max_end)


def test_normalized_alignment_fallback(adam):
    payload = ok_payload("Yes")
    payload["normalized_alignment"] = payload.pop("alignment")
    segment = make_synth(FakeSession(FakeResponse(body=payload))).synthesize("Yes", adam)
    assert segment.character_timestamps.text == "Yes"


def test_transient_errors_are_retried(adam):
    session = FakeSession(
        FakeResponse(503, {"detail": {"status": "busy"}}, "Service Unavailable"),
        requests.ConnectionError("reset"),
        FakeResponse(body=ok_payload("ok")),
    )
    segment = make_synth(session).synthesize("ok", adam)
    assert segment.text == "ok"
    assert len(session.posts) == 3


def test_network_failure_after_retries(adam):
    session = FakeSession(*[FakeResponse(429, {}, "Too Many Requests") for _ in range(3)])
    with pytest.raises(SynthesisFailure) as exc:
        make_synth(session).synthesize("ok", adam)
    assert exc.value.reason == SynthesisFailureReason.NETWORK
    assert len(session.posts) == 3


@pytest.mark.parametrize(
    "status, body, reason",
    [
        (401, {"detail": {"status": "invalid_api_key"}}, SynthesisFailureReason.AUTHORIZATION),
        (403, None, SynthesisFailureReason.AUTHORIZATION),
        (401, {"detail": {"status": "quota_exceeded"}}, SynthesisFailureReason.QUOTA),
        (429, {"detail": {"status": "quota_exceeded"}}, SynthesisFailureReason.QUOTA),
        (404, None, SynthesisFailureReason.VOICE_NOT_FOUND),
        (400, {"detail": {"status": "voice_not_found"}}, SynthesisFailureReason.VOICE_NOT_FOUND),
        (422, {"detail": "bad"}, SynthesisFailureReason.INVALID_RESPONSE),
    ],
)
def test_http_errors_map_to_reasons_without_retry(adam, status, body, reason):
    session = FakeSession(FakeResponse(status, body, "error"))
    with pytest.raises(SynthesisFailure) as exc:
        make_synth(session).synthesize("ok", adam)
    assert exc.value.reason == reason
    assert exc.value.stage == "synthesis"
    assert len(session.posts) == 1


def test_missing_alignment_raises_timing_missing(adam):
    payload = ok_payload("ok")
    del payload["alignment"]
    with pytest.raises(SynthesisTimingMissing):
        make_synth(FakeSession(FakeResponse(body=payload))).synthesize("ok", adam)


def test_invalid_audio_is_invalid_response(adam):
    payload = ok_payload("ok")
    payload["audio_base64"] = "not base64!!"
    with pytest.raises(SynthesisFailure) as exc:
        make_synth(FakeSession(FakeResponse(body=payload))).synthesize("ok", adam)
    assert exc.value.reason == SynthesisFailureReason.INVALID_RESPONSE


def test_non_json_body_is_invalid_response(adam):
    with pytest.raises(SynthesisFailure) as exc:
        make_synth(FakeSession(FakeResponse(200, None))).synthesize("ok", adam)
    assert exc.value.reason == SynthesisFailureReason.INVALID_RESPONSE


def test_missing_api_key(monkeypatch):
    monkeypatch.delenv("ELEVENLABS_API_KEY", raising=False)
    with pytest.raises(ValueError):
        ElevenLabsSynthesizer(session=FakeSession())


def test_unsupported_sample_rate():
    with pytest.raises(ValueError):
        ElevenLabsSynthesizer("k", sample_rate=48000, session=FakeSession())


def test_list_voices():
    session = FakeSession(
        FakeResponse(body={"voices": [{"voice_id": "v1", "name": "Adam", "category": "premade", "extra": 1}]})
    )
    voices = make_synth(session).list_voices()
    assert voices == [{"voice_id": "v1", "name": "Adam", "category": "premade"}]
    assert session.gets[0][0] == "https://tts.example/v1/voices"


class TestProjectAlignment:
    def test_monotonic_starts(self):
        ts = project_alignment(["a", "b", "c"], [0.0, 0.2, 0.1], [0.1, 0.3, 0.4], "abc")
        assert ts.start_times == (0.0, 0.2, 0.2)
        assert ts.end_times == (0.1, 0.3, 0.4)

    def test_entities_collapse_to_one_character(self):
        chars = list("a &amp; b")
        ts = project_alignment(chars, [i * 0.1 for i in range(len(chars))], [(i + 1) * 0.1 for i in range(len(chars))], "a & b")
        assert ts.text == "a & b"
        # '&' 取实体首字符的开始与末字符的结束
        assert ts.start_times[2] == pytest.approx(0.2)
        assert ts.end_times[2] == pytest.approx(0.7)

    def test_multi_character_chunks(self):
        ts = project_alignment(["ab", "c"], [0.0, 0.5], [0.5, 1.0], "abc")
        assert ts.text == "abc"
        assert ts.start_times == (0.0, 0.0, 0.5)

    def test_mismatch_and_empty(self):
        with pytest.raises(SynthesisTimingMissing):
            project_alignment(["x"], [0.0], [0.1], "y")
        with pytest.raises(SynthesisTimingMissing):
            project_alignment([], [], [], "")
        with pytest.raises(SynthesisTimingMissing):
            project_alignment(["a", "b"], [0.0], [0.1, 0.2], "ab")


class TestAudioHelpers:
    def test_decode_raw_pcm_drops_partial_frame(self):
        data = np.arange(5, dtype="<i2").tobytes()
        frames, sr = decode_audio(data, channels=2)
        assert sr is None
        assert frames.shape == (2, 2)

    def test_decode_wav(self):
        buffer = io.BytesIO()
        sf.write(buffer, np.zeros((100, 1), dtype=np.int16), 22050, format="WAV", subtype="PCM_16")
        frames, sr = decode_audio(buffer.getvalue(), channels=2)
        assert sr == 22050
        assert frames.shape == (100, 1)

    def test_convert_channels(self):
        mono = np.array([[1], [2]], dtype=np.int16)
        stereo = convert_channels(mono, 2)
        assert stereo.tolist() == [[1, 1], [2, 2]]
        assert convert_channels(np.array([[2, 4]], dtype=np.int16), 1).tolist() == [[3]]
        with pytest.raises(ValueError):
            convert_channels(np.zeros((1, 3), dtype=np.int16), 2)

    def test_pcm_duration(self):
        assert pcm_duration(b"\x00" * 176400, 44100, 2) == pytest.approx(1.0)
