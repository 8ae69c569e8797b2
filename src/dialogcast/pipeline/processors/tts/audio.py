"""
PCM helpers: 16-bit PCM / WAV 解码与声道转换（numpy + soundfile）
"""
import io

import numpy as np
import soundfile as sf


def is_wav(data: bytes) -> bool:
    return len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WAVE"


def decode_audio(data: bytes, channels: int) -> tuple[np.ndarray, int | None]:
    """
    字节 -> int16 帧数组 (frames, channels)。

    WAV 由 soundfile 解码，返回文件自带采样率；裸 PCM 返回 None（调用方声明格式）。
    裸 PCM 尾部不完整的帧会被丢弃。
    """
    if is_wav(data):
        frames, sr = sf.read(io.BytesIO(data), dtype="int16", always_2d=True)
        return frames, sr
    samples = np.frombuffer(data, dtype="<i2")
    usable = len(samples) - len(samples) % channels
    return samples[:usable].reshape(-1, channels), None


def convert_channels(frames: np.ndarray, channels: int) -> np.ndarray:
    """单声道 <-> 立体声；其他声道数不支持。"""
    current = frames.shape[1]
    if current == channels:
        return frames
    if current == 1:
        return np.repeat(frames, channels, axis=1)
    if channels == 1:
        return frames.astype(np.int32).mean(axis=1, keepdims=True).astype(np.int16)
    raise ValueError(f"cannot convert {current}-channel audio to {channels} channels")


def to_pcm_bytes(frames: np.ndarray) -> bytes:
    return np.ascontiguousarray(frames, dtype="<i2").tobytes()


def pcm_duration(data: bytes, sample_rate: int, channels: int, sample_width: int = 2) -> float:
    return len(data) / float(sample_rate * channels * sample_width)
