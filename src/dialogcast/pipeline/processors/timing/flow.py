"""
Conversation flow heuristics: 停顿 / 语速 / 情绪动量

职责：
- analyze_turn(): 单个 turn 的启发式计算，按固定顺序修改 ConversationState
- ConversationFlow: 一次生成的完整折叠（分析并发预取 + 状态顺序折叠）

所有乘法调整按固定顺序执行，唯一的随机输入是 jitter（rng 可注入，测试可复现）。
"""
import random
import re
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, Optional, Sequence

from dialogcast.config.settings import PipelineConfig
from dialogcast.errors import GenerationCancelled
from dialogcast.schema.types import (
    ConversationState,
    DialogueTurn,
    Emotion,
    IntentType,
    Pace,
    TimingDecision,
)
from dialogcast.utils.logger import get_logger

from .analysis import DEFAULT_ANALYSIS, AnalysisProvider, AnalysisRequest, ConversationAnalysis

logger = get_logger("timing")

EMOTION_INTENSITY = {
    "excited": 0.8,
    "angry": 0.7,
    "sad": -0.3,
    "contemplative": -0.2,
    "neutral": 0.0,
}
MOMENTUM_DECAY = 0.7

# (pre_pause, post_pause)
SPEAKER_CHANGE_PAUSES = (0.5, 0.3)
SAME_SPEAKER_PAUSES = (0.2, 0.2)

JITTER_LOW = 0.9
JITTER_HIGH = 1.1
PACE_MIN = 0.8
PACE_MAX = 1.3
LONG_LINE_CHARS = 100

PACE_FACTOR = {Pace.SLOW: 0.9, Pace.NORMAL: 1.0, Pace.FAST: 1.1}
TEMPO_FACTOR = {"slow": 0.9, "normal": 1.0, "fast": 1.1}

# 句内自然停顿：破折号、分号、冒号（后面跟空白）
NATURAL_BREAK_RE = re.compile(r"\s(?:--|[-–—])\s|[;:](?=\s)")
NATURAL_BREAK_SECONDS = 0.3

HISTORY_TURNS = 6


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def infer_intent(text: str) -> IntentType:
    stripped = text.rstrip().rstrip("\"'”’)")
    if stripped.endswith("?"):
        return IntentType.QUESTION
    if stripped.endswith("!"):
        return IntentType.EXCLAMATION
    return IntentType.STATEMENT


def resolve_tone(turn: DialogueTurn, analysis: ConversationAnalysis) -> str:
    """脚本里显式标注的情绪优先；否则用分析结果。"""
    if turn.modifiers.emotion != Emotion.NEUTRAL:
        return turn.modifiers.emotion.value
    return analysis.emotional_tone


def update_state(state: ConversationState, speaker: str, tone: str) -> None:
    state.turn_count += 1
    state.speaker_history.append(speaker)
    momentum = state.emotional_momentum * MOMENTUM_DECAY + EMOTION_INTENSITY.get(tone, 0.0)
    state.emotional_momentum = _clamp(momentum, -1.0, 1.0)


def find_natural_breaks(text: str) -> tuple:
    return tuple(NATURAL_BREAK_SECONDS for _ in NATURAL_BREAK_RE.finditer(text))


def analyze_turn(
    turn: DialogueTurn,
    previous_text: Optional[str],
    next_text: Optional[str],
    speaker_changed: bool,
    state: ConversationState,
    analysis: Optional[ConversationAnalysis] = None,
    rng: Optional[random.Random] = None,
    *,
    max_pre_pause: float = 1.5,
    max_post_pause: float = 1.0,
) -> TimingDecision:
    """
    计算单个 turn 的 TimingDecision，并更新 state（每次调用恰好一次）。

    Args:
        turn: 当前 turn
        previous_text / next_text: 相邻 turn 的文本（首尾为 None）
        speaker_changed: 与上一 turn 说话人不同
        state: 本次生成的 ConversationState（会被修改）
        analysis: 分析结果；None 表示分析不可用，使用 DEFAULT_ANALYSIS
        rng: jitter 随机源（None = 新建未设种子的 Random）

    Returns:
        TimingDecision（analysis 为 None 时 degraded=True）
    """
    rng = rng or random.Random()
    degraded = analysis is None
    if analysis is None:
        analysis = DEFAULT_ANALYSIS
        intent = infer_intent(turn.text)
    else:
        intent = analysis.intent_type

    tone = resolve_tone(turn, analysis)
    update_state(state, turn.speaker_name, tone)
    momentum = state.emotional_momentum

    pre_pause, post_pause = SPEAKER_CHANGE_PAUSES if speaker_changed else SAME_SPEAKER_PAUSES

    # pre-pause: 动量抑制 -> 开场拉长 -> 话题跳转拉长 -> jitter
    pre_pause *= 1 - abs(momentum) * 0.3
    if state.turn_count < 3:
        pre_pause *= 1.2
    if analysis.topic_continuity < 0.5:
        pre_pause *= 1.3
    pre_pause *= rng.uniform(JITTER_LOW, JITTER_HIGH)

    # post-pause: 高动量缩短 -> 强调拉长 -> 延迟回应拉长 -> jitter
    if abs(momentum) > 0.7:
        post_pause *= 0.8
    if analysis.emphasis > 0.8:
        post_pause *= 1.2
    if analysis.is_delayed_response:
        post_pause *= 1.3
    post_pause *= rng.uniform(JITTER_LOW, JITTER_HIGH)

    pace = 1.0 * (1 + momentum * 0.2)
    if state.turn_count <= 2:
        pace *= 0.9
    if len(turn.text) > LONG_LINE_CHARS:
        pace *= 1.1
    if turn.modifiers.pace != Pace.NORMAL:
        pace *= PACE_FACTOR[turn.modifiers.pace]
    else:
        pace *= TEMPO_FACTOR.get(analysis.tempo, 1.0)

    return TimingDecision(
        pre_pause=_clamp(pre_pause, 0.0, max_pre_pause),
        post_pause=_clamp(post_pause, 0.0, max_post_pause),
        pace=_clamp(pace, PACE_MIN, PACE_MAX),
        natural_breaks=find_natural_breaks(turn.text),
        emotional_tone=tone,
        intent_type=intent,
        degraded=degraded,
    )


def is_speaker_change(turns: Sequence[DialogueTurn], index: int) -> bool:
    """首个 turn 视为说话人切换（开场使用较长的前置停顿）。"""
    if index == 0:
        return True
    return turns[index - 1].speaker_name.casefold() != turns[index].speaker_name.casefold()


class ConversationFlow:
    """
    一次生成的 timing 折叠。

    - 分析请求只依赖文本上下文：用有界线程池并发预取
    - ConversationState 只在 fold() 中按 turn 顺序修改，每次 fold() 先清空
    - 分析失败降级为默认分析并记录 warning，不中断流程
    """

    def __init__(
        self,
        provider: Optional[AnalysisProvider] = None,
        *,
        config: Optional[PipelineConfig] = None,
        rng: Optional[random.Random] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.config = config or PipelineConfig()
        self.provider = provider
        self.rng = rng or random.Random(self.config.timing_seed)
        self.state = ConversationState()
        self.cancel_event = cancel_event

    def _check_cancelled(self):
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise GenerationCancelled(stage="timing")

    def request_for(self, turns: Sequence[DialogueTurn], index: int) -> AnalysisRequest:
        turn = turns[index]
        history = turns[max(0, index - HISTORY_TURNS):index]
        return AnalysisRequest(
            text=turn.text,
            previous_text=turns[index - 1].text if index > 0 else None,
            next_text=turns[index + 1].text if index + 1 < len(turns) else None,
            speaker_changed=is_speaker_change(turns, index),
            history_text="\n".join(f"{t.speaker_name}: {t.text}" for t in history),
        )

    def _analyze_safely(self, request: AnalysisRequest, index: int) -> Optional[ConversationAnalysis]:
        try:
            return self.provider.analyze(request)
        except Exception as e:
            logger.warning(f"analysis unavailable for turn {index}, using default timing: {e}")
            return None

    def fetch_analyses(self, turns: Sequence[DialogueTurn]) -> List[Optional[ConversationAnalysis]]:
        """并发获取每个 turn 的分析（失败的 turn 为 None）。"""
        if self.provider is None:
            return [None] * len(turns)

        results: List[Optional[ConversationAnalysis]] = [None] * len(turns)
        with ThreadPoolExecutor(max_workers=self.config.analysis_max_workers) as executor:
            futures = {
                executor.submit(self._analyze_safely, self.request_for(turns, i), i): i
                for i in range(len(turns))
            }
            for future in as_completed(futures):
                if self.cancel_event is not None and self.cancel_event.is_set():
                    executor.shutdown(wait=False, cancel_futures=True)
                    raise GenerationCancelled(stage="timing")
                results[futures[future]] = future.result()
        return results

    def step(
        self,
        turns: Sequence[DialogueTurn],
        index: int,
        analysis: Optional[ConversationAnalysis],
    ) -> TimingDecision:
        turn = turns[index]
        return analyze_turn(
            turn,
            turns[index - 1].text if index > 0 else None,
            turns[index + 1].text if index + 1 < len(turns) else None,
            is_speaker_change(turns, index),
            self.state,
            analysis,
            self.rng,
            max_pre_pause=self.config.max_pre_pause,
            max_post_pause=self.config.max_post_pause,
        )

    def fold(self, turns: Sequence[DialogueTurn]) -> List[TimingDecision]:
        """
        分析预取 + 从左到右折叠，返回每个 turn 的 TimingDecision。

        每次调用从空的 ConversationState 开始；rng 继续沿用。
        """
        self.state.reset()
        analyses = self.fetch_analyses(turns)
        decisions = []
        for i in range(len(turns)):
            self._check_cancelled()
            decisions.append(self.step(turns, i, analyses[i]))
        degraded = sum(1 for d in decisions if d.degraded)
        if self.provider is not None and degraded:
            logger.warning(f"{degraded}/{len(decisions)} turns used default analysis")
        logger.info(
            f"timing folded for {len(decisions)} turns "
            f"(final momentum {self.state.emotional_momentum:+.2f})"
        )
        return decisions
