"""
Pipeline orchestration: extraction -> transcription -> translation ->
(optional review) -> synthesis -> assembly.

The orchestrator owns one ``PipelineState`` and one ``SegmentStore``. Every
state change is published to subscribers. In manual mode the run stops at
``waiting_for_approval`` and only continues when ``resume_run`` is called
with the segments to dub.
"""

import asyncio
import logging
import math
from collections.abc import Callable

from .assembly import assemble
from .config import DubbingConfig
from .io_ffmpeg import MediaEngine, extract_audio
from .models import PipelineState, RunMode, Segment, Stage
from .store import SegmentStore
from .stt import Transcriber, segments_from_transcript
from .tts import SynthesisChain, synthesize_segments

logger = logging.getLogger("dubsync")


class PipelineError(RuntimeError):
    """A pipeline call that cannot be honored in the current state."""


class PipelineBusyError(PipelineError):
    """A run is already active on this pipeline."""


class RunCancelled(PipelineError):
    """The active run was abandoned through its cancel token."""


class CancelToken:
    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise RunCancelled("Run cancelled")


# Progress band (start, end) per working stage; bands never overlap.
PROGRESS_BANDS: dict[Stage, tuple[int, int]] = {
    Stage.EXTRACTING: (0, 10),
    Stage.TRANSCRIBING: (10, 30),
    Stage.TRANSLATING: (30, 40),
    Stage.WAITING_FOR_APPROVAL: (40, 40),
    Stage.DUBBING: (40, 90),
    Stage.ASSEMBLING: (90, 100),
    Stage.COMPLETED: (100, 100),
}

TRANSITIONS: dict[Stage, set[Stage]] = {
    Stage.IDLE: {Stage.EXTRACTING},
    Stage.EXTRACTING: {Stage.TRANSCRIBING},
    Stage.TRANSCRIBING: {Stage.TRANSLATING},
    Stage.TRANSLATING: {Stage.DUBBING, Stage.WAITING_FOR_APPROVAL},
    Stage.WAITING_FOR_APPROVAL: {Stage.DUBBING},
    Stage.DUBBING: {Stage.ASSEMBLING},
    Stage.ASSEMBLING: {Stage.COMPLETED},
    Stage.COMPLETED: set(),
    Stage.ERROR: set(),
}


class DubbingPipeline:
    """Drives one dubbing run at a time and exposes its state to a UI."""

    def __init__(
        self,
        transcriber: Transcriber,
        translator,
        synthesis: SynthesisChain,
        engine: MediaEngine,
        config: DubbingConfig | None = None,
        store: SegmentStore | None = None,
    ) -> None:
        self.transcriber = transcriber
        self.translator = translator
        self.synthesis = synthesis
        self.engine = engine
        self.config = config or DubbingConfig()
        self.store = store if store is not None else SegmentStore()
        self.state = PipelineState()
        self.final_audio: bytes | None = None
        self._listeners: list[Callable[[PipelineState], None]] = []
        self._token: CancelToken | None = None
        self._running = False

    def subscribe(self, callback: Callable[[PipelineState], None]) -> Callable[[], None]:
        """Register a state observer; returns a function that unregisters it."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _publish(self, state: PipelineState) -> None:
        self.state = state
        logger.info("[%s %d%%] %s", state.stage.value, state.progress, state.log)
        for callback in list(self._listeners):
            callback(state)

    def _transition(self, stage: Stage, log: str, progress: int | None = None) -> None:
        current = self.state.stage
        if stage not in TRANSITIONS[current]:
            raise PipelineError(f"Illegal transition {current.value} -> {stage.value}")
        if progress is None:
            progress = PROGRESS_BANDS[stage][0]
        self._publish(PipelineState(stage, max(self.state.progress, progress), log))

    def _report(self, progress: int, log: str) -> None:
        """Progress inside the current stage, clamped to its band."""
        lo, hi = PROGRESS_BANDS[self.state.stage]
        progress = min(max(progress, lo), hi)
        self._publish(PipelineState(self.state.stage, max(self.state.progress, progress), log))

    def _fail(self, error: BaseException) -> None:
        message = str(error) or error.__class__.__name__
        self._publish(PipelineState(Stage.ERROR, self.state.progress, f"Error: {message}"))

    def _to_idle(self, log: str) -> None:
        self.store.clear()
        self.final_audio = None
        self._publish(PipelineState(Stage.IDLE, 0, log))

    def segments(self) -> list[Segment]:
        return self.store.snapshot()

    def edit_segment_text(self, segment_id: int, text: str) -> None:
        self.store.update_text(segment_id, text)

    async def start_run(
        self, source: bytes, mode: RunMode | str = RunMode.AUTO, source_name: str = "input.mp4"
    ) -> PipelineState:
        """Run until completion, failure, or (manual mode) the review checkpoint."""
        mode = RunMode(mode)
        stage = self.state.stage
        if self._running or not (stage.is_terminal or stage in (Stage.IDLE, Stage.WAITING_FOR_APPROVAL)):
            raise PipelineBusyError(f"A run is already in progress ({self.state.stage.value})")

        self._running = True
        self._token = token = CancelToken()
        self.store.clear()
        self.final_audio = None
        self._publish(PipelineState(Stage.IDLE, 0, "Starting..."))
        try:
            self._transition(Stage.EXTRACTING, "Extracting audio...")
            audio = await extract_audio(self.engine, source, source_name)
            token.raise_if_cancelled()

            self._transition(Stage.TRANSCRIBING, "Transcribing...")
            raw = await self.transcriber.transcribe(audio)
            segments = segments_from_transcript(raw, min_slot=self.config.min_slot_seconds)
            if not segments:
                raise PipelineError("Transcription returned no speech")
            self.store.replace_all(segments)
            self._report(PROGRESS_BANDS[Stage.TRANSCRIBING][1], f"Transcribed {len(segments)} segments")
            token.raise_if_cancelled()

            self._transition(Stage.TRANSLATING, "Translating and fitting timing...")
            if self.translator is not None:
                translated = await self.translator.translate(self.store.snapshot())
                self.store.replace_all(translated)
            token.raise_if_cancelled()

            if mode is RunMode.MANUAL:
                self._transition(
                    Stage.WAITING_FOR_APPROVAL, "Waiting for review: edit the lines, then confirm"
                )
                return self.state

            await self._dub_and_assemble(self.store.snapshot(), token)
        except RunCancelled:
            logger.info("Run cancelled, back to idle")
            self._to_idle("Cancelled")
        except asyncio.CancelledError:
            self._to_idle("Cancelled")
            raise
        except Exception as e:
            logger.exception("Pipeline failed during %s", self.state.stage.value)
            self._fail(e)
        finally:
            self._running = False
        return self.state

    async def resume_run(self, segments: list[Segment]) -> PipelineState:
        """Continue a manual run with exactly the segments given."""
        if self.state.stage is not Stage.WAITING_FOR_APPROVAL or self._running:
            raise PipelineError("No run is waiting for approval")
        if not segments:
            raise PipelineError("There are no segments to dub; run the transcription first")
        self.store.replace_all(segments)

        self._running = True
        self._token = token = CancelToken()
        try:
            await self._dub_and_assemble(self.store.snapshot(), token)
        except RunCancelled:
            logger.info("Run cancelled, back to idle")
            self._to_idle("Cancelled")
        except asyncio.CancelledError:
            self._to_idle("Cancelled")
            raise
        except Exception as e:
            logger.exception("Pipeline failed during %s", self.state.stage.value)
            self._fail(e)
        finally:
            self._running = False
        return self.state

    async def _dub_and_assemble(self, segments: list[Segment], token: CancelToken) -> None:
        total = len(segments)
        lo, hi = PROGRESS_BANDS[Stage.DUBBING]
        self._transition(Stage.DUBBING, f"Dubbing {total} segments...")

        def on_progress(i: int, n: int, seg: Segment) -> None:
            self._report(lo + math.floor(i / n * (hi - lo)), f'Dubbing {i + 1}/{n}: "{seg.text[:20]}..."')

        clips = await synthesize_segments(
            self.synthesis,
            segments,
            delay_seconds=self.config.synthesis_delay_seconds,
            on_progress=on_progress,
            check_cancel=token.raise_if_cancelled,
        )
        token.raise_if_cancelled()

        self._transition(Stage.ASSEMBLING, "Assembling final audio...")
        audio = await assemble(segments, clips, self.engine, config=self.config)
        token.raise_if_cancelled()
        self.final_audio = audio
        self._transition(Stage.COMPLETED, "Done!")

    def reset(self) -> None:
        """Abandon any run and return to idle."""
        if self._token is not None:
            self._token.cancel()
        if not self._running:
            self._to_idle("Waiting to start...")
