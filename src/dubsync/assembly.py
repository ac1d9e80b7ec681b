"""
Assembly of synthesized clips into one time-aligned track.
"""

import asyncio
import logging

from pydub import AudioSegment

from .alignment import plan_for_segment
from .config import DubbingConfig
from .io_ffmpeg import MediaEngine, MediaEngineError, clip_to_wav_bytes, decode_clip, trim_silence
from .models import AlignmentPlan, Segment

logger = logging.getLogger("dubsync")


class AssemblyError(RuntimeError):
    """No usable clip, or the media engine failed during assembly."""


def speed_filter(plan: AlignmentPlan) -> str:
    stages = plan.tempo_stages or (plan.speed_factor,)
    return ",".join(f"atempo={s:.6f}" for s in stages)


def build_filter_graph(plans: list[AlignmentPlan]) -> str:
    """
    One chain per input (speed stages + fixed delay), then a mix of all chains.
    The mix never normalizes loudness: overlapping lines keep their volume.
    """
    if not plans:
        raise AssemblyError("Nothing to assemble")
    chains = []
    for k, plan in enumerate(plans):
        delay = plan.placement_offset_ms
        chains.append(f"[{k}:a]{speed_filter(plan)},adelay={delay}:all=1[a{k}]")
    mix_inputs = "".join(f"[a{k}]" for k in range(len(plans)))
    chains.append(f"{mix_inputs}amix=inputs={len(plans)}:dropout_transition=0:normalize=0[out]")
    return ";".join(chains)


def _prepare_clip(data: bytes, config: DubbingConfig) -> AudioSegment:
    clip = decode_clip(data)
    if config.trim_silence:
        clip = trim_silence(clip, config.silence_threshold_db)
    return clip


async def assemble(
    segments: list[Segment],
    clips: list[bytes],
    engine: MediaEngine,
    *,
    config: DubbingConfig | None = None,
) -> bytes:
    """Speed-correct, place and mix every usable clip into one track."""
    config = config or DubbingConfig()
    if len(clips) != len(segments):
        raise ValueError(f"Got {len(clips)} clips for {len(segments)} segments")

    inputs: dict[str, bytes] = {}
    plans: list[AlignmentPlan] = []
    skipped: list[int] = []

    for seg, data in zip(segments, clips):
        if not data:
            logger.warning(f"Segment {seg.id} has no audio, leaving it silent")
            skipped.append(seg.id)
            continue
        try:
            clip = await asyncio.to_thread(_prepare_clip, data, config)
        except Exception as e:
            logger.warning(f"Could not decode clip for segment {seg.id}: {e}")
            skipped.append(seg.id)
            continue
        if len(clip) == 0:
            logger.warning(f"Segment {seg.id} decoded to an empty clip, leaving it silent")
            skipped.append(seg.id)
            continue

        true_duration = len(clip) / 1000.0
        plan = plan_for_segment(
            seg, true_duration, min_slot=config.min_slot_seconds, max_speed=config.max_speed_factor
        )
        logger.debug(
            "segment %d: clip %.3fs, slot %.3fs -> speed %.3f at %dms",
            seg.id,
            true_duration,
            seg.slot_duration,
            plan.speed_factor,
            plan.placement_offset_ms,
        )
        inputs[f"seg_{len(plans)}.wav"] = await asyncio.to_thread(clip_to_wav_bytes, clip)
        plans.append(plan)

    if not plans:
        raise AssemblyError("No segment produced usable audio; nothing to assemble")
    if skipped:
        logger.warning(f"Assembling with {len(skipped)} silent segments: {skipped}")

    args: list[str] = []
    for name in inputs:
        args += ["-i", name]
    args += ["-filter_complex", build_filter_graph(plans), "-map", "[out]"]

    try:
        return await engine.run(inputs, args, f"output.{config.output_format}")
    except (MediaEngineError, OSError) as e:
        raise AssemblyError(f"Audio assembly failed: {e}") from e
