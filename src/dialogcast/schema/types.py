"""
Dialogue data model: 对话生成流水线的数据契约

各阶段职责（ownership）：
- parse：创建 DialogueTurn（之后只读）
- timing：独占 ConversationState，按 turn 产出 TimingDecision
- tts：每个 turn 产出一个 AudioSegment（按 turn 顺序）
- mix / subtitle：只读 AudioSegment 列表，各自产出派生产物
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple


class Emotion(str, Enum):
    """Script-level emotion modifier (closed set)."""
    EXCITED = "excited"
    ANGRY = "angry"
    SAD = "sad"
    CONTEMPLATIVE = "contemplative"
    NEUTRAL = "neutral"


class Pace(str, Enum):
    """Script-level pace modifier (closed set)."""
    SLOW = "slow"
    NORMAL = "normal"
    FAST = "fast"


class IntentType(str, Enum):
    STATEMENT = "statement"
    QUESTION = "question"
    EXCLAMATION = "exclamation"
    RESPONSE = "response"


@dataclass(frozen=True)
class VoiceSettings:
    """
    Provider voice knobs.

    字段：
    - stability / similarity_boost / style: 0.0-1.0
    - speed: 语速倍率（0.7-1.2）
    - use_speaker_boost: 是否开启 speaker boost
    """
    stability: float = 0.5
    similarity_boost: float = 0.75
    style: float = 0.0
    speed: float = 1.0
    use_speaker_boost: bool = True

    def __post_init__(self):
        for name in ("stability", "similarity_boost", "style"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")
        if not 0.7 <= self.speed <= 1.2:
            raise ValueError(f"speed must be within [0.7, 1.2], got {self.speed}")

    def to_dict(self) -> Dict[str, object]:
        return {
            "stability": self.stability,
            "similarity_boost": self.similarity_boost,
            "style": self.style,
            "speed": self.speed,
            "use_speaker_boost": self.use_speaker_boost,
        }


@dataclass(frozen=True)
class Speaker:
    name: str
    voice_id: str
    voice_settings: Optional[VoiceSettings] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Speaker":
        settings = data.get("voice_settings") or data.get("voiceSettings")
        return cls(
            name=data["name"],
            voice_id=data.get("voice_id") or data["voiceId"],
            voice_settings=VoiceSettings(**settings) if settings else None,
        )


class SpeakerRegistry:
    """Case-insensitive name -> Speaker lookup."""

    def __init__(self, speakers: Iterable[Speaker]):
        self._by_key: Dict[str, Speaker] = {}
        for speaker in speakers:
            key = speaker.name.casefold()
            if key in self._by_key:
                raise ValueError(f"Duplicate speaker name: {speaker.name}")
            self._by_key[key] = speaker

    def get(self, name: str) -> Optional[Speaker]:
        return self._by_key.get(name.strip().casefold())

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def __iter__(self):
        return iter(self._by_key.values())

    def __len__(self) -> int:
        return len(self._by_key)


@dataclass(frozen=True)
class TurnModifiers:
    """
    Per-turn script modifiers.

    字段：
    - emotion / pace: 脚本标注（未标注时为 neutral / normal）
    - breaks: 显式 break 时长（秒），按出现顺序
    - break_offsets: 每个 break 在 turn.text 中的字符位置（与 breaks 一一对应）
    """
    emotion: Emotion = Emotion.NEUTRAL
    pace: Pace = Pace.NORMAL
    breaks: Tuple[float, ...] = ()
    break_offsets: Tuple[int, ...] = ()

    def __post_init__(self):
        if len(self.breaks) != len(self.break_offsets):
            raise ValueError("breaks and break_offsets must have the same length")


@dataclass(frozen=True)
class DialogueTurn:
    speaker_name: str
    text: str
    order_index: int
    reply_to: Optional[int] = None
    modifiers: TurnModifiers = field(default_factory=TurnModifiers)


@dataclass
class ConversationState:
    """Rolling state owned by one timing fold; never shared between runs."""
    turn_count: int = 0
    emotional_momentum: float = 0.0  # [-1, 1]
    speaker_history: List[str] = field(default_factory=list)

    def reset(self) -> None:
        self.turn_count = 0
        self.emotional_momentum = 0.0
        self.speaker_history = []


@dataclass(frozen=True)
class TimingDecision:
    """
    Heuristic output for one turn.

    字段：
    - pre_pause / post_pause: 秒，非负且不超过配置上限
    - pace: 语速倍率 [0.8, 1.3]
    - natural_breaks: 句内自然停顿（秒），与显式 break 无关
    - emotional_tone / intent_type: 已解析的情绪与意图（formatter 用）
    - degraded: 分析服务失败、使用默认分析时为 True
    """
    pre_pause: float
    post_pause: float
    pace: float = 1.0
    natural_breaks: Tuple[float, ...] = ()
    emotional_tone: str = Emotion.NEUTRAL.value
    intent_type: IntentType = IntentType.STATEMENT
    degraded: bool = False


# 同一说话人连续发言时的基础停顿；也是 formatter 的默认决策
DEFAULT_TIMING = TimingDecision(pre_pause=0.2, post_pause=0.2, pace=1.0)


@dataclass(frozen=True)
class CharacterTimestamps:
    """Three aligned sequences: one entry per narration character."""
    characters: Tuple[str, ...]
    start_times: Tuple[float, ...]
    end_times: Tuple[float, ...]

    def __post_init__(self):
        n = len(self.characters)
        if len(self.start_times) != n or len(self.end_times) != n:
            raise ValueError(
                f"character timestamp sequences differ in length: "
                f"{n}/{len(self.start_times)}/{len(self.end_times)}"
            )
        for i in range(1, n):
            if self.start_times[i] < self.start_times[i - 1]:
                raise ValueError(f"character start times decrease at index {i}")

    def __len__(self) -> int:
        return len(self.characters)

    @property
    def text(self) -> str:
        return "".join(self.characters)

    @property
    def max_end(self) -> float:
        return max(self.end_times) if self.end_times else 0.0

    def shifted(self, offset: float) -> "CharacterTimestamps":
        if offset == 0:
            return self
        return CharacterTimestamps(
            characters=self.characters,
            start_times=tuple(t + offset for t in self.start_times),
            end_times=tuple(t + offset for t in self.end_times),
        )


@dataclass(frozen=True)
class AudioSegment:
    """
    One synthesized line on the shared timeline.

    audio_bytes 是 16-bit little-endian PCM（sample_rate / channels 描述格式），
    或者完整的 WAV 文件字节；audio_url 不为空时由 mix 阶段下载。
    """
    speaker: str
    audio_bytes: bytes
    start_time: float
    end_time: float
    character_timestamps: CharacterTimestamps
    turn_index: int = 0
    text: str = ""
    sample_rate: int = 44100
    channels: int = 2
    audio_url: Optional[str] = None

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    def shifted(self, offset: float) -> "AudioSegment":
        """Move the segment (and its character timestamps) by offset seconds."""
        return replace(
            self,
            start_time=self.start_time + offset,
            end_time=self.end_time + offset,
            character_timestamps=self.character_timestamps.shifted(offset),
        )


@dataclass(frozen=True)
class WordTiming:
    """A word span recovered from character timestamps (end_index exclusive)."""
    word: str
    start: float
    end: float
    start_index: int
    end_index: int
