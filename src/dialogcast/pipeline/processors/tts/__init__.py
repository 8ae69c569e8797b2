"""
TTS Processor 模块（唯一公共入口）

公共 API：
- SpeechSynthesizer: 供应商适配器接口
- ElevenLabsSynthesizer: ElevenLabs 实现（带字符级时间戳）
- project_alignment(): 供应商对齐 -> narration 字符时间戳

内部模块：
- audio.py: PCM / WAV 解码与声道转换
"""
from .base import SpeechSynthesizer, build_segment, project_alignment
from .elevenlabs import ElevenLabsSynthesizer, classify_http_error

__all__ = [
    "ElevenLabsSynthesizer",
    "SpeechSynthesizer",
    "build_segment",
    "classify_http_error",
    "project_alignment",
]
