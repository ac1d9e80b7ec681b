"""
Time alignment of synthesized clips against their original time slots.
"""

import math

from .models import AlignmentPlan, Segment

# Range accepted by a single ffmpeg atempo filter.
MIN_ATEMPO = 0.5
MAX_ATEMPO = 2.0


def tempo_stages(
    factor: float, lo: float = MIN_ATEMPO, hi: float = MAX_ATEMPO
) -> tuple[float, ...]:
    """
    Split a speed factor into atempo stages that each stay within lo..hi.
    NOTE: the product of the stages equals the factor,
    e.g. 3.2 => (2.0, 1.6), 0.2 => (0.5, 0.5, 0.8).
    """
    if factor <= 0:
        factor = 1.0
    steps: list[float] = []
    r = factor
    while r < lo or r > hi:
        step = lo if r < 1.0 else hi
        steps.append(step)
        r /= step
    steps.append(r)
    return tuple(steps)


def plan_alignment(
    true_duration: float,
    slot_duration: float,
    start_time: float = 0.0,
    *,
    min_slot: float = 0.5,
    max_speed: float = 2.5,
) -> AlignmentPlan:
    """Compute speed correction and placement for one clip.

    Speech is only ever sped up, never slowed down: a clip shorter than its
    slot keeps its natural pace. Speed-up is capped at ``max_speed``; past
    that the clip overruns its slot.
    """
    slot = max(slot_duration, min_slot)
    factor = max(true_duration, 0.0) / slot
    factor = min(max(factor, 1.0), max_speed)
    offset_ms = max(0, math.floor(start_time * 1000))
    return AlignmentPlan(
        speed_factor=factor,
        placement_offset_ms=offset_ms,
        tempo_stages=tempo_stages(factor),
    )


def plan_for_segment(
    segment: Segment, true_duration: float, *, min_slot: float = 0.5, max_speed: float = 2.5
) -> AlignmentPlan:
    return plan_alignment(
        true_duration,
        segment.slot_duration,
        segment.start_time,
        min_slot=min_slot,
        max_speed=max_speed,
    )
