"""
Ordered, mutable collection of dub segments.
"""

from dataclasses import replace

from .models import Segment


class SegmentStore:
    """Segments in temporal order; only ``text`` changes after creation."""

    def __init__(self, segments: list[Segment] | None = None) -> None:
        self._segments: list[Segment] = []
        if segments:
            self.replace_all(segments)

    def __len__(self) -> int:
        return len(self._segments)

    def replace_all(self, segments: list[Segment]) -> None:
        ids = [s.id for s in segments]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Duplicate segment ids: {sorted(i for i in set(ids) if ids.count(i) > 1)}")
        self._segments = [replace(s) for s in segments]

    def update_text(self, segment_id: int, new_text: str) -> None:
        for idx, seg in enumerate(self._segments):
            if seg.id == segment_id:
                self._segments[idx] = seg.with_text(new_text)
                return
        raise KeyError(f"No segment with id {segment_id}")

    def snapshot(self) -> list[Segment]:
        """Independent copies of the current segments, in order."""
        return [replace(s) for s in self._segments]

    def clear(self) -> None:
        self._segments = []
