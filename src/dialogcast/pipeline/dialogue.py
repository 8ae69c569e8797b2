"""
Dialogue generation: 串联各 processor 的编排层

流程：
    script text
      ↓ parse（纯函数）
    DialogueTurn[]
      ↓ timing（分析并发预取 + ConversationState 顺序折叠）
    TimingDecision[]
      ↓ markup
    markup[]
      ↓ synthesis（有界并发，offset = 0）
    AudioSegment[]（相对时间）
      ↓ place（累计 pre_pause + duration + post_pause）
    AudioSegment[]（绝对时间）
      ↓ barrier
    assemble ∥ captions

任何致命错误都带上 stage 和 turn/segment 下标后抛出。
"""
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Sequence

import requests

from dialogcast.config.settings import PipelineConfig
from dialogcast.errors import DialogcastError, GenerationCancelled
from dialogcast.infra.storage.base import ObjectStorage
from dialogcast.pipeline.core.atomic import dumps_json
from dialogcast.pipeline.processors.markup import format_turn
from dialogcast.pipeline.processors.mix import MixedAudio, assemble
from dialogcast.pipeline.processors.parse import parse_dialogue
from dialogcast.pipeline.processors.subtitle import Captions, build_dialogue_transcript, generate
from dialogcast.pipeline.processors.timing import AnalysisProvider, ConversationFlow
from dialogcast.pipeline.processors.tts import SpeechSynthesizer
from dialogcast.schema.transcript import DialogueTranscript, dialogue_transcript_to_dict
from dialogcast.schema.types import AudioSegment, DialogueTurn, Speaker, SpeakerRegistry, TimingDecision
from dialogcast.utils.logger import get_logger

logger = get_logger("dialogue")

SYNTHESIS_POLL_SECONDS = 0.2


@dataclass
class DialogueResult:
    turns: List[DialogueTurn]
    decisions: List[TimingDecision]
    markups: List[str]
    segments: List[AudioSegment]
    mixed: MixedAudio
    captions: Captions
    dialogue_transcript: DialogueTranscript
    skipped_turns: List[int]


def _stamp(e: Exception, stage: str, index: Optional[int] = None) -> DialogcastError:
    """给异常补上 stage / index；非领域异常包装成 DialogcastError。"""
    if isinstance(e, DialogcastError):
        return e.with_context(stage=stage, index=index)
    wrapped = DialogcastError(f"{type(e).__name__}: {e}", stage=stage, index=index)
    wrapped.__cause__ = e
    return wrapped


def place_segments(
    segments: Sequence[Optional[AudioSegment]],
    decisions: Sequence[TimingDecision],
) -> List[AudioSegment]:
    """
    把相对时间的 segment 排到时间线上：start = 累计时间 + pre_pause，
    下一段从 end + post_pause 开始累计。缺失（None）的 turn 直接跳过。
    """
    placed: List[AudioSegment] = []
    t = 0.0
    for seg, decision in zip(segments, decisions):
        if seg is None:
            continue
        start = t + decision.pre_pause
        shifted = seg.shifted(start - seg.start_time)
        placed.append(shifted)
        t = shifted.end_time + decision.post_pause
    return placed


class DialogueGenerator:
    """
    一次或多次对话生成。

    每次 run() 使用新的 ConversationState；analysis cache（如果 analyzer 持有）跨次共享。
    """

    def __init__(
        self,
        speakers: Iterable[Speaker] | SpeakerRegistry,
        synthesizer: SpeechSynthesizer,
        *,
        analyzer: Optional[AnalysisProvider] = None,
        config: Optional[PipelineConfig] = None,
        cancel_event: Optional[threading.Event] = None,
        session: Optional[requests.Session] = None,
    ):
        self.registry = speakers if isinstance(speakers, SpeakerRegistry) else SpeakerRegistry(speakers)
        self.synthesizer = synthesizer
        self.analyzer = analyzer
        self.config = config or PipelineConfig()
        self.cancel_event = cancel_event or threading.Event()
        self.session = session

    def cancel(self) -> None:
        """请求中止：未开始的合成任务被取消，进行中的请求完成后丢弃。"""
        self.cancel_event.set()

    def _check_cancelled(self, stage: str) -> None:
        if self.cancel_event.is_set():
            raise GenerationCancelled(stage=stage)

    # ---- stages -------------------------------------------------------

    def parse(self, raw_text: str) -> List[DialogueTurn]:
        turns = parse_dialogue(raw_text, self.registry)
        logger.info(f"parsed {len(turns)} turns from {len(self.registry)} registered speakers")
        return turns

    def plan(self, turns: Sequence[DialogueTurn]) -> List[TimingDecision]:
        flow = ConversationFlow(
            self.analyzer if self.config.analysis_enabled else None,
            config=self.config,
            cancel_event=self.cancel_event,
        )
        return flow.fold(turns)

    def format(self, turns: Sequence[DialogueTurn], decisions: Sequence[TimingDecision]) -> List[str]:
        markups = []
        for i, (turn, decision) in enumerate(zip(turns, decisions)):
            try:
                markups.append(format_turn(turn, decision, max_breaks=self.config.max_breaks))
            except Exception as e:
                raise _stamp(e, "markup", i)
        return markups

    def _synthesize_one(self, index: int, turn: DialogueTurn, markup: str) -> AudioSegment:
        self._check_cancelled("synthesis")
        speaker = self.registry.get(turn.speaker_name)
        logger.debug(f"synthesizing turn {index} ({speaker.name}): {turn.text[:50]}")
        seg = self.synthesizer.synthesize(markup, speaker, 0.0)
        return replace(seg, turn_index=index, text=seg.text or turn.text)

    def synthesize(
        self,
        turns: Sequence[DialogueTurn],
        markups: Sequence[str],
    ) -> List[Optional[AudioSegment]]:
        """
        有界并发合成（synthesis_max_workers），结果按 turn 顺序返回。

        failure policy:
        - abort（默认）：任一 turn 失败即取消剩余任务并抛出
        - skip：记录错误，该 turn 返回 None
        """
        results: List[Optional[AudioSegment]] = [None] * len(turns)
        skip = self.config.synthesis_failure_policy == "skip"

        executor = ThreadPoolExecutor(max_workers=self.config.synthesis_max_workers)
        try:
            futures: Dict[Future, int] = {
                executor.submit(self._synthesize_one, i, turn, markup): i
                for i, (turn, markup) in enumerate(zip(turns, markups))
            }
            pending = set(futures)
            while pending:
                self._check_cancelled("synthesis")
                done, pending = wait(pending, timeout=SYNTHESIS_POLL_SECONDS, return_when=FIRST_COMPLETED)
                for future in done:
                    i = futures[future]
                    try:
                        results[i] = future.result()
                    except GenerationCancelled:
                        raise
                    except Exception as e:
                        stamped = _stamp(e, "synthesis", i)
                        if not skip:
                            raise stamped
                        logger.error(f"skipping turn {i}: {stamped}")
        except BaseException:
            executor.shutdown(wait=False, cancel_futures=True)
            raise
        executor.shutdown(wait=True)

        ok = sum(1 for r in results if r is not None)
        logger.info(f"synthesized {ok}/{len(turns)} turns")
        return results

    # ---- full run -----------------------------------------------------

    def run(self, raw_text: str) -> DialogueResult:
        try:
            turns = self.parse(raw_text)
        except Exception as e:
            raise _stamp(e, "parse")

        self._check_cancelled("timing")
        try:
            decisions = self.plan(turns)
        except Exception as e:
            raise _stamp(e, "timing")

        markups = self.format(turns, decisions)

        raw_segments = self.synthesize(turns, markups)
        skipped = [i for i, s in enumerate(raw_segments) if s is None]
        segments = place_segments(raw_segments, decisions)

        # barrier：以下两个阶段都需要完整的 segment 列表
        self._check_cancelled("assemble")
        try:
            mixed = assemble(segments, self.config, session=self.session, cancel_event=self.cancel_event)
        except Exception as e:
            raise _stamp(e, "assemble")

        try:
            captions = generate(segments)
            kept_turns = [t for i, t in enumerate(turns) if i not in skipped]
            dialogue_transcript = build_dialogue_transcript(segments, kept_turns)
        except Exception as e:
            raise _stamp(e, "captions")

        logger.success(
            f"dialogue ready: {len(segments)} segments, {mixed.duration:.2f}s, "
            f"{len(captions.transcript.speakers)} speakers"
        )
        return DialogueResult(
            turns=turns,
            decisions=decisions,
            markups=markups,
            segments=segments,
            mixed=mixed,
            captions=captions,
            dialogue_transcript=dialogue_transcript,
            skipped_turns=skipped,
        )


def publish(result: DialogueResult, storage: ObjectStorage, *, prefix: str = "") -> Dict[str, str]:
    """
    上传生成结果，返回 {artifact: url}。

    artifacts: dialogue.wav / dialogue.srt / dialogue.vtt / transcript.json / dialogue_transcript.json
    """
    base = f"{prefix.strip('/')}/" if prefix.strip("/") else ""
    artifacts = [
        ("dialogue.wav", result.mixed.to_wav_bytes(), "audio/wav"),
        ("dialogue.srt", result.captions.srt.encode("utf-8"), "application/x-subrip"),
        ("dialogue.vtt", result.captions.vtt.encode("utf-8"), "text/vtt"),
        ("transcript.json", result.captions.json.encode("utf-8"), "application/json"),
        (
            "dialogue_transcript.json",
            dumps_json(dialogue_transcript_to_dict(result.dialogue_transcript)).encode("utf-8"),
            "application/json",
        ),
    ]
    urls = {}
    for name, data, content_type in artifacts:
        key = storage.upload(data, f"{base}{name}", content_type)
        urls[name] = storage.get_signed_url(key)
    return urls
