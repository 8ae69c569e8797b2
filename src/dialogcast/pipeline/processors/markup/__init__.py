"""
Markup Processor 模块（唯一公共入口）

公共 API：
- to_synthesizable(): narration + TimingDecision -> 标记
- to_narration(): 标记 -> narration
- format_turn(): DialogueTurn 的便捷入口
- narration_char_spans(): narration 字符 -> 标记区间（tts 对齐使用）
"""
from .processor import MAX_BREAKS, format_turn, prosody_for, to_narration, to_synthesizable
from .ssml import narration_char_spans

__all__ = ["MAX_BREAKS", "format_turn", "narration_char_spans", "prosody_for", "to_narration", "to_synthesizable"]
