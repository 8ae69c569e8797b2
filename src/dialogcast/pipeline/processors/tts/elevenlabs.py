"""
TTS Synthesis: ElevenLabs text-to-speech with character timestamps.

Uses the `/text-to-speech/{voice_id}/with-timestamps` endpoint, which returns
base64 audio plus a per-character alignment. Audio is requested as raw
16-bit mono PCM at the timeline sample rate and up-mixed to the timeline
channel count, so segments can be written into the mix buffer as-is.

Error mapping (SynthesisFailureReason):
- 401 / 403 -> authorization (quota_exceeded detail -> quota)
- 404 or voice_not_found detail -> voice_not_found
- 429 quota_exceeded -> quota; other 429 / 5xx / connection errors -> network (retried)
- anything unparseable -> invalid_response
"""
import base64
import binascii
from typing import Any, Dict, List, Optional

import requests

from dialogcast.config.settings import get_elevenlabs_key
from dialogcast.errors import SynthesisFailure, SynthesisFailureReason, SynthesisTimingMissing
from dialogcast.schema.types import AudioSegment, Speaker, VoiceSettings
from dialogcast.utils.logger import get_logger
from dialogcast.utils.retry import RetryPolicy, call_with_retry

from ..markup.processor import to_narration
from .audio import convert_channels, decode_audio, pcm_duration, to_pcm_bytes
from .base import SpeechSynthesizer, build_segment, project_alignment

logger = get_logger("tts.elevenlabs")

DEFAULT_BASE_URL = "https://api.elevenlabs.io/v1"
DEFAULT_MODEL_ID = "eleven_turbo_v2"
DEFAULT_VOICE_SETTINGS = VoiceSettings(stability=0.5, similarity_boost=0.75)
SUPPORTED_SAMPLE_RATES = (16000, 22050, 24000, 44100)


def _detail_status(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return ""
    detail = body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, dict):
        return str(detail.get("status") or "")
    return ""


def classify_http_error(response: requests.Response) -> SynthesisFailure:
    """HTTP 错误响应 -> SynthesisFailure"""
    status = response.status_code
    detail = _detail_status(response)
    message = f"HTTP {status} {detail or response.reason}".strip()

    if detail == "quota_exceeded":
        reason = SynthesisFailureReason.QUOTA
    elif status == 404 or detail == "voice_not_found":
        reason = SynthesisFailureReason.VOICE_NOT_FOUND
    elif status in (401, 403):
        reason = SynthesisFailureReason.AUTHORIZATION
    elif status == 429 or status >= 500:
        reason = SynthesisFailureReason.NETWORK
    else:
        reason = SynthesisFailureReason.INVALID_RESPONSE
    return SynthesisFailure(reason, message)


class ElevenLabsSynthesizer(SpeechSynthesizer):
    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        base_url: str = DEFAULT_BASE_URL,
        model_id: str = DEFAULT_MODEL_ID,
        sample_rate: int = 44100,
        channels: int = 2,
        timeout: float = 60.0,
        retry_policy: Optional[RetryPolicy] = None,
        session: Optional[requests.Session] = None,
    ):
        api_key = api_key or get_elevenlabs_key()
        if not api_key:
            raise ValueError("ElevenLabs API key is not set (ELEVENLABS_API_KEY)")
        if sample_rate not in SUPPORTED_SAMPLE_RATES:
            raise ValueError(f"ElevenLabs PCM output does not support {sample_rate} Hz")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model_id = model_id
        self.sample_rate = sample_rate
        self.channels = channels
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self.session = session or requests.Session()

    @property
    def _headers(self) -> Dict[str, str]:
        return {
            "xi-api-key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _post_with_timestamps(self, markup: str, speaker: Speaker) -> Dict[str, Any]:
        settings = speaker.voice_settings or DEFAULT_VOICE_SETTINGS
        url = f"{self.base_url}/text-to-speech/{speaker.voice_id}/with-timestamps"
        body = {
            "text": markup,
            "model_id": self.model_id,
            "voice_settings": settings.to_dict(),
        }
        try:
            response = self.session.post(
                url,
                headers=self._headers,
                params={"output_format": f"pcm_{self.sample_rate}"},
                json=body,
                timeout=self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise SynthesisFailure(SynthesisFailureReason.NETWORK, str(e)) from e

        if response.status_code != 200:
            raise classify_http_error(response)
        try:
            payload = response.json()
        except ValueError as e:
            raise SynthesisFailure(SynthesisFailureReason.INVALID_RESPONSE, "response is not JSON") from e
        if not isinstance(payload, dict):
            raise SynthesisFailure(SynthesisFailureReason.INVALID_RESPONSE, "response is not a JSON object")
        return payload

    def synthesize(self, markup: str, speaker: Speaker, start_offset: float = 0.0) -> AudioSegment:
        payload = call_with_retry(
            lambda: self._post_with_timestamps(markup, speaker),
            self.retry_policy,
            retry_on=lambda e: isinstance(e, SynthesisFailure) and e.retryable,
            description=f"ElevenLabs synthesis ({speaker.name})",
        )

        try:
            raw = base64.b64decode(payload.get("audio_base64") or "", validate=True)
        except (binascii.Error, ValueError) as e:
            raise SynthesisFailure(SynthesisFailureReason.INVALID_RESPONSE, "audio_base64 is not valid base64") from e
        if not raw:
            raise SynthesisFailure(SynthesisFailureReason.INVALID_RESPONSE, "response contains no audio")

        alignment = payload.get("alignment") or payload.get("normalized_alignment")
        if not alignment:
            raise SynthesisTimingMissing(f"ElevenLabs returned no alignment for speaker {speaker.name}")
        timestamps = project_alignment(
            alignment.get("characters") or [],
            alignment.get("character_start_times_seconds") or [],
            alignment.get("character_end_times_seconds") or [],
            to_narration(markup),
        )

        frames, sr = decode_audio(raw, channels=1)
        if sr is not None and sr != self.sample_rate:
            raise SynthesisFailure(
                SynthesisFailureReason.INVALID_RESPONSE,
                f"expected {self.sample_rate} Hz audio, got {sr} Hz",
            )
        audio_bytes = to_pcm_bytes(convert_channels(frames, self.channels))
        logger.debug(
            f"{speaker.name}: {pcm_duration(audio_bytes, self.sample_rate, self.channels):.2f}s audio, "
            f"{len(timestamps)} chars aligned to {timestamps.max_end:.2f}s"
        )

        return build_segment(
            speaker=speaker,
            markup=markup,
            audio_bytes=audio_bytes,
            timestamps=timestamps,
            start_offset=start_offset,
            sample_rate=self.sample_rate,
            channels=self.channels,
        )

    def list_voices(self) -> List[Dict[str, Any]]:
        """返回账号可用的 voices（voice_id / name / category）。"""
        try:
            response = self.session.get(f"{self.base_url}/voices", headers=self._headers, timeout=self.timeout)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise SynthesisFailure(SynthesisFailureReason.NETWORK, str(e)) from e
        if response.status_code != 200:
            raise classify_http_error(response)
        return [
            {
                "voice_id": v.get("voice_id"),
                "name": v.get("name"),
                "category": v.get("category"),
            }
            for v in response.json().get("voices", [])
        ]
