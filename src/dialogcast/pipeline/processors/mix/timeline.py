"""
Timeline assembly: 把所有 segment 按绝对时间写入同一个 PCM 缓冲区

规则：
- 输出格式固定（默认 44100 Hz / 立体声 / 16-bit），segment 格式不一致直接报错，不做重采样
- 帧位置 frame(t) = floor(t * sample_rate)，字节偏移 = frame * bytes_per_frame
- segment 写入 [frame(start), frame(end))：音频不足补零，超出截断
- 相邻 segment 之间（以及第一个 segment 之前）的正间隔用淡入淡出的低电平静音填充
- 顺序 / 重叠 / 格式问题都是上游 bug：报错，不重排、不裁剪
"""
import io
import math
import tempfile
import threading
from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np
import requests
import soundfile as sf

from dialogcast.config.settings import PipelineConfig
from dialogcast.errors import (
    FormatMismatch,
    GenerationCancelled,
    OverlappingSegments,
    TimelineError,
    UnorderedSegments,
)
from dialogcast.pipeline.core.atomic import atomic_write
from dialogcast.schema.types import AudioSegment
from dialogcast.utils.logger import get_logger

from ..tts.audio import decode_audio
from .download import download_segment

logger = get_logger("mix")

# 浮点误差容忍（远小于一帧）
_FRAME_EPSILON = 1e-6


@dataclass(frozen=True)
class Placement:
    """输出缓冲区中的一段写入（字节区间 [start_byte, end_byte)）"""
    kind: str  # "segment" | "silence"
    index: int  # segment 下标；静音为其后 segment 的下标
    start_byte: int
    end_byte: int
    turn_index: int = 0  # 对应的脚本 turn


@dataclass
class MixedAudio:
    pcm: bytes
    sample_rate: int
    channels: int
    sample_width: int = 2
    placements: List[Placement] = field(default_factory=list)
    clipped_frames: Dict[int, int] = field(default_factory=dict)  # segment 下标 -> 被截断的帧数

    @property
    def frame_count(self) -> int:
        return len(self.pcm) // (self.channels * self.sample_width)

    @property
    def duration(self) -> float:
        return self.frame_count / float(self.sample_rate)

    def frames(self) -> np.ndarray:
        return np.frombuffer(self.pcm, dtype="<i2").reshape(-1, self.channels)

    def to_wav_bytes(self) -> bytes:
        buf = io.BytesIO()
        sf.write(buf, self.frames(), self.sample_rate, format="WAV", subtype="PCM_16")
        return buf.getvalue()

    def write_wav(self, path: str | Path) -> Path:
        path = Path(path)
        atomic_write(self.to_wav_bytes(), path)
        return path


def seconds_to_frame(t: float, sample_rate: int) -> int:
    return int(math.floor(t * sample_rate + _FRAME_EPSILON))


def make_silence(
    frame_count: int,
    sample_rate: int,
    channels: int,
    *,
    fade_duration: float = 0.05,
    level: float = 0.1,
) -> np.ndarray:
    """
    低电平静音：0 -> level 线性淡入，保持 level，再线性淡出到 0。

    间隔太短时淡入淡出各占一半。
    """
    if frame_count <= 0:
        return np.zeros((0, channels), dtype=np.int16)
    fade = min(int(fade_duration * sample_rate), frame_count // 2)
    envelope = np.full(frame_count, level, dtype=np.float64)
    if fade > 0:
        ramp = np.arange(fade, dtype=np.float64) / fade * level
        envelope[:fade] = ramp
        envelope[frame_count - fade:] = ramp[::-1]
    samples = np.floor(envelope * 32767).astype(np.int16)
    return np.repeat(samples[:, None], channels, axis=1)


def validate_segments(segments: Sequence[AudioSegment], config: PipelineConfig) -> None:
    """
    检查前置条件（按顺序）：start 升序 -> 不重叠 -> end > start -> 格式一致。

    Raises:
        UnorderedSegments / OverlappingSegments / TimelineError / FormatMismatch
    """
    for i, seg in enumerate(segments):
        if i > 0:
            prev = segments[i - 1]
            if seg.start_time < prev.start_time:
                raise UnorderedSegments(seg.turn_index, seg.start_time, prev.start_time, position=i)
            if seg.start_time < prev.end_time:
                raise OverlappingSegments(seg.turn_index, seg.start_time, prev.end_time, position=i)
        if seg.end_time <= seg.start_time:
            raise TimelineError(
                f"Segment end {seg.end_time:.3f}s is not after its start {seg.start_time:.3f}s",
                index=seg.turn_index,
                position=i,
            )
        if seg.start_time < 0:
            raise TimelineError(
                f"Segment starts before 0 ({seg.start_time:.3f}s)", index=seg.turn_index, position=i
            )
        if seg.sample_rate != config.sample_rate or seg.channels != config.channels:
            raise FormatMismatch(
                seg.turn_index,
                f"Segment is {seg.sample_rate} Hz / {seg.channels} ch, "
                f"timeline is {config.sample_rate} Hz / {config.channels} ch",
                position=i,
            )


def _segment_frames(
    seg: AudioSegment,
    index: int,
    config: PipelineConfig,
    workdir: Path,
    session: Optional[requests.Session],
) -> np.ndarray:
    data = seg.audio_bytes
    if not data and seg.audio_url:
        data = download_segment(
            seg.audio_url,
            workdir / f"seg_{index:04d}.bin",
            index=seg.turn_index,
            session=session,
            timeout=config.download_timeout,
            retry_policy=config.retry_policy(),
        )
    frames, sr = decode_audio(data, seg.channels)
    if sr is not None and sr != config.sample_rate:
        raise FormatMismatch(
            seg.turn_index, f"Segment audio is {sr} Hz, timeline is {config.sample_rate} Hz", position=index
        )
    if frames.shape[1] != config.channels:
        raise FormatMismatch(
            seg.turn_index,
            f"Segment audio has {frames.shape[1]} channels, timeline has {config.channels}",
            position=index,
        )
    return frames


def assemble(
    segments: Sequence[AudioSegment],
    config: Optional[PipelineConfig] = None,
    *,
    session: Optional[requests.Session] = None,
    cancel_event: Optional[threading.Event] = None,
) -> MixedAudio:
    """
    组装时间线。

    Args:
        segments: 按 start_time 升序、互不重叠的 segment 列表
        config: 输出格式与静音参数
        session: 下载远程 segment 使用的 requests.Session（可选）
        cancel_event: 设置后在下一个 segment 之前中止

    Returns:
        MixedAudio（时长 = max(end_time)，placements 覆盖 [0, duration]）
    """
    config = config or PipelineConfig()
    validate_segments(segments, config)

    sr = config.sample_rate
    ch = config.channels
    bpf = config.bytes_per_frame
    mixed = MixedAudio(pcm=b"", sample_rate=sr, channels=ch, sample_width=config.sample_width)
    if not segments:
        return mixed

    total_frames = seconds_to_frame(max(s.end_time for s in segments), sr)
    buffer = np.zeros((total_frames, ch), dtype=np.int16)

    # 需要下载且调用方没给 session 时，整次组装共用一个，结束后关闭
    with ExitStack() as stack:
        if session is None and any(s.audio_url and not s.audio_bytes for s in segments):
            session = stack.enter_context(requests.Session())
        tmp = stack.enter_context(tempfile.TemporaryDirectory(prefix="dialogcast_mix_"))
        workdir = Path(tmp)
        cursor = 0  # 上一个 segment 的结束帧
        for i, seg in enumerate(segments):
            if cancel_event is not None and cancel_event.is_set():
                raise GenerationCancelled(stage="assemble")

            start_f = seconds_to_frame(seg.start_time, sr)
            end_f = seconds_to_frame(seg.end_time, sr)

            gap = start_f - cursor
            if gap > 0:
                buffer[cursor:start_f] = make_silence(
                    gap, sr, ch, fade_duration=config.fade_duration, level=config.silence_level
                )
                mixed.placements.append(Placement("silence", i, cursor * bpf, start_f * bpf, seg.turn_index))

            frames = _segment_frames(seg, i, config, workdir, session)
            span = end_f - start_f
            written = min(len(frames), span)
            buffer[start_f:start_f + written] = frames[:written]
            if len(frames) > span:
                mixed.clipped_frames[i] = len(frames) - span
                logger.debug(f"segment {i}: {len(frames) - span} frames past end_time dropped")
            elif len(frames) < span:
                logger.debug(f"segment {i}: padded {span - len(frames)} frames of zeros")
            mixed.placements.append(Placement("segment", i, start_f * bpf, end_f * bpf, seg.turn_index))
            cursor = end_f

    mixed.pcm = buffer.astype("<i2", copy=False).tobytes()
    silence = sum(p.end_byte - p.start_byte for p in mixed.placements if p.kind == "silence")
    logger.info(
        f"assembled {len(segments)} segments: {mixed.duration:.2f}s "
        f"({silence / bpf / sr:.2f}s inserted silence)"
    )
    return mixed
