"""
Conversational analysis: 为 timing 启发式提供情绪 / 意图 / 话轮信号

职责：
- ConversationAnalysis：封闭的分析结果记录（所有字段都有默认值）
- AnalysisProvider：分析服务接口
- OpenAIDialogueAnalyzer：基于 OpenAI chat 模型的实现（JSON 输出 + retry/backoff）
- AnalysisCache：调用方持有的缓存（key = 上下文哈希，带 TTL）

分析只依赖文本上下文，不依赖 ConversationState，因此可以并发预取。
"""
import hashlib
import json
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from openai import OpenAI

from dialogcast.config.settings import get_openai_key
from dialogcast.schema.types import IntentType
from dialogcast.utils.logger import get_logger
from dialogcast.utils.retry import RetryPolicy, call_with_retry

logger = get_logger("analysis")

TONES = (
    "excited", "angry", "sad", "contemplative", "neutral",
    "surprised", "uncertain", "emphatic", "decisive",
)
INTONATIONS = ("rising", "falling", "neutral")
TEMPOS = ("slow", "normal", "fast")


def _clamp01(value, default: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return default
    return min(1.0, max(0.0, value))


def _choice(value, allowed, default: str) -> str:
    value = str(value or "").strip().lower()
    return value if value in allowed else default


@dataclass(frozen=True)
class ConversationAnalysis:
    """
    One turn's analysis.

    字段（缺失时使用默认值）：
    - emotional_tone: TONES 之一（默认 neutral）
    - intent_type: statement / question / exclamation / response
    - topic_continuity: 0-1，与上一句的话题连续性（默认 0.5，< 0.5 视为话题跳转）
    - emphasis: 0-1，强调程度（默认 0.5）
    - intonation: rising / falling / neutral
    - tempo: slow / normal / fast
    - is_interruption / is_delayed_response / is_direct_response: 话轮信号
    """
    emotional_tone: str = "neutral"
    intent_type: IntentType = IntentType.STATEMENT
    topic_continuity: float = 0.5
    emphasis: float = 0.5
    intonation: str = "neutral"
    tempo: str = "normal"
    is_interruption: bool = False
    is_delayed_response: bool = False
    is_direct_response: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> "ConversationAnalysis":
        """容错解析：未知值回退到默认值，数值裁剪到 [0, 1]。"""
        d = DEFAULT_ANALYSIS
        try:
            intent = IntentType(str(data.get("intent_type", "")).strip().lower())
        except ValueError:
            intent = d.intent_type
        return cls(
            emotional_tone=_choice(data.get("emotional_tone"), TONES, d.emotional_tone),
            intent_type=intent,
            topic_continuity=_clamp01(data.get("topic_continuity"), d.topic_continuity),
            emphasis=_clamp01(data.get("emphasis"), d.emphasis),
            intonation=_choice(data.get("intonation"), INTONATIONS, d.intonation),
            tempo=_choice(data.get("tempo"), TEMPOS, d.tempo),
            is_interruption=bool(data.get("is_interruption", d.is_interruption)),
            is_delayed_response=bool(data.get("is_delayed_response", d.is_delayed_response)),
            is_direct_response=bool(data.get("is_direct_response", d.is_direct_response)),
        )


DEFAULT_ANALYSIS = ConversationAnalysis()


@dataclass(frozen=True)
class AnalysisRequest:
    text: str
    previous_text: Optional[str] = None
    next_text: Optional[str] = None
    speaker_changed: bool = False
    history_text: str = ""

    def cache_key(self) -> str:
        key_str = "\x1f".join(
            [
                self.text,
                self.previous_text or "",
                self.next_text or "",
                "1" if self.speaker_changed else "0",
            ]
        )
        return hashlib.sha256(key_str.encode("utf-8")).hexdigest()


class AnalysisCache:
    """
    调用方持有的分析缓存。

    同一个 cache 可以在多次生成之间共享；线程安全（预取阶段并发写入）。
    """

    def __init__(self, ttl: float = 3600.0, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[float, ConversationAnalysis]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[ConversationAnalysis]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            stored_at, value = entry
            if self._clock() - stored_at > self.ttl:
                del self._entries[key]
                return None
            return value

    def put(self, key: str, value: ConversationAnalysis) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), value)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class AnalysisProvider(ABC):
    @abstractmethod
    def analyze(self, request: AnalysisRequest) -> ConversationAnalysis:
        """Return the analysis for one turn; raise on provider failure."""


SYSTEM_PROMPT = (
    "You analyze one line of a spoken two-or-more person podcast dialogue. "
    "Reply with a single JSON object with these keys: "
    "emotional_tone (one of: " + ", ".join(TONES) + "), "
    "intent_type (statement, question, exclamation, response), "
    "topic_continuity (0-1, how closely the line follows the previous one), "
    "emphasis (0-1), intonation (rising, falling, neutral), tempo (slow, normal, fast), "
    "is_interruption, is_delayed_response, is_direct_response (booleans)."
)


def build_messages(request: AnalysisRequest) -> list[dict]:
    lines = []
    if request.history_text:
        lines.append(f"Conversation so far:\n{request.history_text}")
    lines.append(f"Previous line: {request.previous_text or '(none)'}")
    lines.append(f"Current line: {request.text}")
    lines.append(f"Next line: {request.next_text or '(none)'}")
    lines.append(f"Speaker changed: {'yes' if request.speaker_changed else 'no'}")
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": "\n".join(lines)},
    ]


class OpenAIDialogueAnalyzer(AnalysisProvider):
    """OpenAI chat 模型做对话分析，结果写入（可选的）AnalysisCache。"""

    def __init__(
        self,
        *,
        client: Optional[OpenAI] = None,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        temperature: float = 0.2,
        retry_policy: Optional[RetryPolicy] = None,
        cache: Optional[AnalysisCache] = None,
    ):
        if client is None:
            api_key = api_key or get_openai_key()
            if not api_key:
                raise ValueError("OpenAI API key is not set (OPENAI_KEY / OPENAI_API_KEY)")
            client = OpenAI(api_key=api_key)
        self.client = client
        self.model = model
        self.temperature = temperature
        self.retry_policy = retry_policy or RetryPolicy()
        self.cache = cache

    def _complete(self, request: AnalysisRequest) -> str:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=build_messages(request),
            temperature=self.temperature,
            response_format={"type": "json_object"},
        )
        return response.choices[0].message.content.strip()

    def analyze(self, request: AnalysisRequest) -> ConversationAnalysis:
        key = request.cache_key()
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug(f"cache hit {key[:12]}")
                return cached

        content = call_with_retry(
            lambda: self._complete(request),
            self.retry_policy,
            description="OpenAI analysis call",
        )
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise ValueError(f"Analysis response is not valid JSON: {content[:200]}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Analysis response is not a JSON object: {content[:200]}")

        analysis = ConversationAnalysis.from_dict(data)
        if self.cache is not None:
            self.cache.put(key, analysis)
        return analysis
