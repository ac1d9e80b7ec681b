"""
Data models for the dubbing pipeline.
"""

from dataclasses import dataclass, field, replace
from enum import Enum


@dataclass
class Segment:
    """A single timed unit of speech with original and current text."""

    id: int
    text: str
    start_time: float  # seconds
    end_time: float  # seconds
    text_original: str = ""
    start: str = ""  # raw provider timestamp
    end: str = ""

    @property
    def slot_duration(self) -> float:
        return self.end_time - self.start_time

    def with_text(self, text: str) -> "Segment":
        """Return a copy carrying new text; times and id are untouched."""
        return replace(self, text=text)


class Stage(str, Enum):
    IDLE = "idle"
    EXTRACTING = "extracting"
    TRANSCRIBING = "transcribing"
    TRANSLATING = "translating"
    WAITING_FOR_APPROVAL = "waiting_for_approval"
    DUBBING = "dubbing"
    ASSEMBLING = "assembling"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (Stage.COMPLETED, Stage.ERROR)


class RunMode(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"


@dataclass(frozen=True)
class PipelineState:
    """Snapshot of the pipeline published to observers."""

    stage: Stage = Stage.IDLE
    progress: int = 0  # 0..100
    log: str = "Waiting to start..."


@dataclass(frozen=True)
class AlignmentPlan:
    """Speed correction and placement for one synthesized clip."""

    speed_factor: float
    placement_offset_ms: int
    tempo_stages: tuple[float, ...] = field(default=())
