"""
Parse Processor 模块（唯一公共入口）

公共 API：
- parse_dialogue(): 脚本 -> DialogueTurn 列表
- serialize_turns(): DialogueTurn 列表 -> 脚本
"""
from .processor import format_break_tag, parse_break_time, parse_dialogue, serialize_turn, serialize_turns

__all__ = ["format_break_tag", "parse_break_time", "parse_dialogue", "serialize_turn", "serialize_turns"]
