"""Timestamp formatting shared by the caption writers and the timeline report."""


def _split_ms(seconds: float) -> tuple[int, int, int, int]:
    total_ms = int(round(max(0.0, seconds) * 1000))
    hh = total_ms // 3_600_000
    mm = (total_ms % 3_600_000) // 60_000
    ss = (total_ms % 60_000) // 1_000
    ms = total_ms % 1_000
    return hh, mm, ss, ms


def srt_timestamp(seconds: float) -> str:
    """Convert seconds to SRT timestamp (HH:MM:SS,mmm)."""
    hh, mm, ss, ms = _split_ms(seconds)
    return f"{hh:02d}:{mm:02d}:{ss:02d},{ms:03d}"


def vtt_timestamp(seconds: float) -> str:
    """Convert seconds to WebVTT timestamp (HH:MM:SS.mmm)."""
    hh, mm, ss, ms = _split_ms(seconds)
    return f"{hh:02d}:{mm:02d}:{ss:02d}.{ms:03d}"


def clock(seconds: float) -> str:
    """Short clock used in human-readable reports (M:SS.ss)."""
    seconds = max(0.0, seconds)
    minutes = int(seconds // 60)
    rest = seconds - minutes * 60
    return f"{minutes}:{rest:05.2f}"
