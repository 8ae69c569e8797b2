"""
Schema: 跨阶段共享的数据契约

职责：
- 定义 turn / timing / segment / transcript 数据结构
- 不包含调度、编排、策略

依赖规则：
- schema 只能被依赖，不能依赖 processors
"""
from .types import (
    AudioSegment,
    CharacterTimestamps,
    ConversationState,
    DEFAULT_TIMING,
    DialogueTurn,
    Emotion,
    IntentType,
    Pace,
    Speaker,
    SpeakerRegistry,
    TimingDecision,
    TurnModifiers,
    VoiceSettings,
    WordTiming,
)
from .transcript import (
    DialogueTranscript,
    SpeakerStats,
    Transcript,
    TranscriptMetadata,
    TranscriptSegment,
    TranscriptWord,
    TurnEntry,
    dialogue_transcript_to_dict,
    transcript_from_dict,
    transcript_to_dict,
)

__all__ = [
    "AudioSegment",
    "CharacterTimestamps",
    "ConversationState",
    "DEFAULT_TIMING",
    "DialogueTurn",
    "Emotion",
    "IntentType",
    "Pace",
    "Speaker",
    "SpeakerRegistry",
    "TimingDecision",
    "TurnModifiers",
    "VoiceSettings",
    "WordTiming",
    "DialogueTranscript",
    "SpeakerStats",
    "Transcript",
    "TranscriptMetadata",
    "TranscriptSegment",
    "TranscriptWord",
    "TurnEntry",
    "dialogue_transcript_to_dict",
    "transcript_from_dict",
    "transcript_to_dict",
]
