"""
Review checkpoint files and SRT export.
"""

import json
import logging

from .models import Segment
from .timestamps import format_srt_timestamp, format_timestamp

logger = logging.getLogger("dubsync")


def write_srt(segments: list[Segment], path: str) -> None:
    """Write segments to SRT file."""
    with open(path, "w", encoding="utf-8") as f:
        for i, s in enumerate(segments, 1):
            f.write(
                f"{i}\n{format_srt_timestamp(s.start_time)} --> {format_srt_timestamp(s.end_time)}\n{s.text}\n\n"
            )


def write_review_json(segments: list[Segment], path: str) -> None:
    """Dump segments for manual review; only ``text`` is read back."""
    rows = [
        {
            "id": s.id,
            "start": format_timestamp(s.start_time),
            "end": format_timestamp(s.end_time),
            "original": s.text_original,
            "text": s.text,
        }
        for s in segments
    ]
    with open(path, "w", encoding="utf-8") as f:
        json.dump(rows, f, ensure_ascii=False, indent=2)


def read_review_edits(path: str) -> dict[int, str]:
    """Read back ``{id: text}`` from a reviewed file; entries without an id are skipped."""
    try:
        with open(path, encoding="utf-8") as f:
            rows = json.load(f)
    except (OSError, ValueError) as e:
        raise RuntimeError(f"Could not read {path}: {e}") from e
    if not isinstance(rows, list):
        raise RuntimeError(f"{path} must contain a JSON list of segments")
    edits: dict[int, str] = {}
    for row in rows:
        if not isinstance(row, dict) or "id" not in row:
            logger.warning("Skipping review entry without id: %r", row)
            continue
        try:
            seg_id = int(row["id"])
        except (TypeError, ValueError, OverflowError) as e:
            raise RuntimeError(f"{path}: segment id {row['id']!r} is not an integer") from e
        edits[seg_id] = str(row.get("text", ""))
    return edits
