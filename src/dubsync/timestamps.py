"""
Timestamp parsing and formatting.

Providers return timestamps in several shapes (``H:MM:SS.mmm``, ``MM:SS.mmm``)
and at least one known quirk, ``MM:SS:mmm``, where milliseconds are separated
by a colon. ``parse_timestamp`` resolves all of them to seconds and never raises.
"""

import logging
import math

logger = logging.getLogger("dubsync")

# A third field at or above this value cannot be seconds, so it is milliseconds.
_MS_FIELD_THRESHOLD = 60


def _to_float(field: str) -> float:
    return float(field.strip() or 0)


def parse_timestamp(raw) -> float:
    """Parse a provider timestamp into seconds, 0.0 on anything unrecognized."""
    seconds = _parse(raw)
    if not math.isfinite(seconds):
        logger.debug("Non-finite timestamp %r, defaulting to 0", raw)
        return 0.0
    return seconds


def _parse(raw) -> float:
    if raw is None or isinstance(raw, bool):
        return 0.0
    if isinstance(raw, (int, float)):
        try:
            return max(0.0, float(raw))
        except OverflowError:
            return 0.0

    text = str(raw).strip().replace(",", ".")
    if not text:
        return 0.0

    parts = text.split(":")
    try:
        if len(parts) == 3:
            first, second, last = parts
            if "." not in last or _to_float(last) >= _MS_FIELD_THRESHOLD:
                # MM:SS:mmm
                return int(_to_float(first)) * 60 + int(_to_float(second)) + _to_float(last) / 1000.0
            return int(_to_float(first)) * 3600 + int(_to_float(second)) * 60 + _to_float(last)
        if len(parts) == 2:
            minutes, seconds = parts
            return int(_to_float(minutes)) * 60 + _to_float(seconds)
        if len(parts) == 1:
            return max(0.0, _to_float(parts[0]))
    except (ValueError, OverflowError):
        pass

    logger.debug("Unrecognized timestamp %r, defaulting to 0", raw)
    return 0.0


def _split(seconds: float) -> tuple[int, int, int, int]:
    total_ms = max(0, int(round(seconds * 1000)))
    h, rem = divmod(total_ms, 3_600_000)
    m, rem = divmod(rem, 60_000)
    s, ms = divmod(rem, 1000)
    return h, m, s, ms


def format_timestamp(seconds: float) -> str:
    """Format seconds as HH:MM:SS.mmm."""
    h, m, s, ms = _split(seconds)
    return f"{h:02}:{m:02}:{s:02}.{ms:03}"


def format_srt_timestamp(seconds: float) -> str:
    """Format seconds as an SRT timestamp (HH:MM:SS,mmm)."""
    h, m, s, ms = _split(seconds)
    return f"{h:02}:{m:02}:{s:02},{ms:03}"
