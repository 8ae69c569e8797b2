"""
Subtitle Processor 模块（唯一公共入口）

公共 API：
- generate(): segment 列表 -> Captions(srt, vtt, json)
- word_spans(): 字符时间戳 -> 词时间戳
- build_dialogue_transcript() / speaker_timeline(): turn 级转写与报告
"""
from .captions import Captions, Cue, generate, to_srt, to_vtt, word_cues
from .words import word_spans
from .transcript import build_dialogue_transcript, build_transcript, speaker_timeline

__all__ = [
    "Captions",
    "Cue",
    "build_dialogue_transcript",
    "build_transcript",
    "generate",
    "speaker_timeline",
    "to_srt",
    "to_vtt",
    "word_cues",
    "word_spans",
]
