"""
Error taxonomy for the dialogue pipeline.

Every fatal error carries the pipeline ``stage`` it came from and, where it
applies, the turn / segment ``index``. The orchestrator stamps both before
re-raising so callers can report "synthesis failed at turn 3" without parsing
messages. Analysis failures are not in this list: they degrade to default
timing and are only logged.
"""
from enum import Enum
from typing import Optional


class DialogcastError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, message: str, *, stage: Optional[str] = None, index: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.index = index

    def with_context(self, *, stage: Optional[str] = None, index: Optional[int] = None) -> "DialogcastError":
        """Fill in stage/index if not already set; returns self for ``raise e.with_context(...)``."""
        if self.stage is None:
            self.stage = stage
        if self.index is None:
            self.index = index
        return self

    def __str__(self) -> str:
        where = []
        if self.stage:
            where.append(self.stage)
        if self.index is not None:
            where.append(f"#{self.index}")
        if where:
            return f"[{' '.join(where)}] {self.message}"
        return self.message


# ---- parse -------------------------------------------------------------

class ParseError(DialogcastError):
    pass


class UnknownSpeaker(ParseError):
    def __init__(self, name: str, *, index: Optional[int] = None):
        super().__init__(f"Speaker not found: {name}", stage="parse", index=index)
        self.name = name


class EmptyDialogue(ParseError):
    def __init__(self, message: str = "No speaker-tagged turns found in input"):
        super().__init__(message, stage="parse")


class MalformedTag(ParseError):
    def __init__(self, message: str, *, position: Optional[int] = None, index: Optional[int] = None):
        if position is not None:
            message = f"{message} (at offset {position})"
        super().__init__(message, stage="parse", index=index)
        self.position = position


# ---- synthesis ---------------------------------------------------------

class SynthesisFailureReason(str, Enum):
    """Why the speech provider refused or failed a request."""
    QUOTA = "quota"
    AUTHORIZATION = "authorization"
    VOICE_NOT_FOUND = "voice_not_found"
    NETWORK = "network"  # transient; the only retryable reason
    INVALID_RESPONSE = "invalid_response"


class SynthesisFailure(DialogcastError):
    def __init__(self, reason: SynthesisFailureReason, message: str, *, index: Optional[int] = None):
        super().__init__(f"{reason.value}: {message}", stage="synthesis", index=index)
        self.reason = reason

    @property
    def retryable(self) -> bool:
        return self.reason == SynthesisFailureReason.NETWORK


class SynthesisTimingMissing(DialogcastError):
    def __init__(self, message: str = "Provider returned no character timestamps", *, index: Optional[int] = None):
        super().__init__(message, stage="synthesis", index=index)


# ---- timeline ----------------------------------------------------------

class TimelineError(DialogcastError):
    """
    ``index`` is the script turn of the offending segment; ``position`` is its
    place in the assembled list (they differ once failed turns are skipped).
    """

    def __init__(
        self,
        message: str,
        *,
        stage: Optional[str] = "assemble",
        index: Optional[int] = None,
        position: Optional[int] = None,
    ):
        if position is not None:
            message = f"{message} (segment #{position})"
        super().__init__(message, stage=stage, index=index)
        self.position = position


class UnorderedSegments(TimelineError):
    def __init__(self, index: int, start: float, previous_start: float, *, position: Optional[int] = None):
        super().__init__(
            f"Segment starts at {start:.3f}s, before previous segment start {previous_start:.3f}s",
            index=index,
            position=position,
        )


class OverlappingSegments(TimelineError):
    def __init__(self, index: int, start: float, previous_end: float, *, position: Optional[int] = None):
        super().__init__(
            f"Segment starts at {start:.3f}s, before previous segment end {previous_end:.3f}s",
            index=index,
            position=position,
        )


class FormatMismatch(TimelineError):
    def __init__(self, index: int, message: str, *, position: Optional[int] = None):
        super().__init__(message, index=index, position=position)


class SegmentDownloadError(DialogcastError):
    def __init__(self, url: str, cause: BaseException, *, index: Optional[int] = None):
        super().__init__(f"Failed to download segment audio from {url}: {cause}", stage="assemble", index=index)
        self.url = url


class GenerationCancelled(DialogcastError):
    def __init__(self, stage: Optional[str] = None):
        super().__init__("Generation cancelled", stage=stage)
