"""
Command-line interface for the dubbing pipeline.
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from openai import AsyncOpenAI
from tqdm import tqdm

from .config import DubbingConfig
from .io_ffmpeg import FFmpegEngine, ensure_dir, mux_audio
from .models import PipelineState, RunMode, Stage
from .pipeline import DubbingPipeline
from .stt import ChatTranscriber, LocalWhisperTranscriber, OpenAITranscriber
from .subtitles import read_review_edits, write_review_json, write_srt
from .translation import IsochronyTranslator
from .tts import build_synthesis_chain

logger = logging.getLogger("dubsync")

def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    ap = argparse.ArgumentParser(description="Isochronous dubbing pipeline")

    # IO
    ap.add_argument("--input", required=True, help="Source video or audio file")
    ap.add_argument("--output", default="dubbed.wav", help="Dubbed audio track")
    ap.add_argument("--workdir", default=".work")
    ap.add_argument("--mux-video", default=None, help="Also write the input video with the dubbed track")
    ap.add_argument("--subs", default=None, help="Also write the final lines as SRT")

    # Run mode
    ap.add_argument(
        "--mode",
        choices=[m.value for m in RunMode],
        default=RunMode.AUTO.value,
        help="auto: run through; manual: stop for review before synthesis",
    )

    # Providers
    ap.add_argument("--transcriber", choices=["openai", "chat", "local"], default="openai")
    ap.add_argument("--local-model", default="base", help="faster-whisper model for --transcriber=local")
    ap.add_argument("--source-language", default=None)
    ap.add_argument("--target-language", default=None)
    ap.add_argument("--gpt-model", default=None, help="Chat model used for translation")
    ap.add_argument(
        "--tts-providers",
        default=None,
        help="Comma-separated fallback order, e.g. openai,gemini,elevenlabs",
    )
    ap.add_argument("--voice", default=None, help="OpenAI TTS voice")

    # Alignment / pacing
    ap.add_argument("--synthesis-delay", type=float, default=None, help="Seconds between TTS requests")
    ap.add_argument("--max-speed", type=float, default=None, help="Ceiling for the speed-up factor")
    ap.add_argument("--min-slot", type=float, default=None, help="Floor for a segment's time slot (s)")
    ap.add_argument("--no-trim-silence", action="store_true")

    # Logging
    ap.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    return ap.parse_args(argv)


def build_config(args: argparse.Namespace) -> DubbingConfig:
    """Environment defaults, overridden by explicit flags."""
    cfg = DubbingConfig.from_env()
    if args.target_language:
        cfg.target_language = args.target_language
    if args.gpt_model:
        cfg.logic_model = args.gpt_model
    if args.tts_providers:
        cfg.tts_providers = [p.strip() for p in args.tts_providers.split(",") if p.strip()]
    if args.voice:
        cfg.openai_voice = args.voice
    if args.synthesis_delay is not None:
        cfg.synthesis_delay_seconds = args.synthesis_delay
    if args.max_speed is not None:
        cfg.max_speed_factor = args.max_speed
    if args.min_slot is not None:
        cfg.min_slot_seconds = args.min_slot
    if args.no_trim_silence:
        cfg.trim_silence = False
    return cfg


def build_pipeline(args: argparse.Namespace, cfg: DubbingConfig) -> DubbingPipeline:
    client = None
    if cfg.openai_api_key:
        client = AsyncOpenAI(api_key=cfg.openai_api_key)
    elif args.transcriber != "local" or "openai" in cfg.tts_providers:
        logger.warning("OPENAI_API_KEY is not set; OpenAI-backed stages will fail or be skipped")

    if args.transcriber == "local":
        transcriber = LocalWhisperTranscriber(args.local_model, language=args.source_language)
    elif args.transcriber == "chat":
        transcriber = ChatTranscriber(client, model=cfg.chat_transcribe_model)
    else:
        transcriber = OpenAITranscriber(client, model=cfg.transcribe_model, language=args.source_language)

    return DubbingPipeline(
        transcriber=transcriber,
        translator=IsochronyTranslator(client, cfg.target_language, model=cfg.logic_model),
        synthesis=build_synthesis_chain(cfg, openai_client=client),
        engine=FFmpegEngine(),
        config=cfg,
    )


class ProgressBar:
    """Render published pipeline states on a tqdm bar."""

    def __init__(self) -> None:
        self.bar = tqdm(total=100, desc="dubbing", unit="%")

    def __call__(self, state: PipelineState) -> None:
        delta = state.progress - self.bar.n
        if delta > 0:
            self.bar.update(delta)
        self.bar.set_postfix_str(f"{state.stage.value}: {state.log[:40]}")

    def close(self) -> None:
        self.bar.close()


async def review(pipeline: DubbingPipeline, workdir: str) -> None:
    """Write the lines for editing, wait for the user, apply their edits."""
    review_path = os.path.join(workdir, "segments_review.json")
    write_review_json(pipeline.segments(), review_path)
    logger.info(f"Saved segments for review -> {review_path}")
    await asyncio.to_thread(input, f"Edit the 'text' fields in {review_path}, then press Enter to dub... ")

    edits = read_review_edits(review_path)
    known = {s.id: s.text for s in pipeline.segments()}
    for seg_id, text in edits.items():
        if seg_id not in known:
            logger.warning(f"Ignoring edit for unknown segment {seg_id}")
        elif text != known[seg_id]:
            pipeline.edit_segment_text(seg_id, text)


async def main_async(argv: list[str] | None = None) -> int:
    """Main async CLI entry point."""
    load_dotenv()
    args = parse_args(argv)
    setup_logging(args.verbose)

    ensure_dir(args.workdir)
    cfg = build_config(args)
    pipeline = build_pipeline(args, cfg)

    source = Path(args.input).read_bytes()
    progress = ProgressBar()
    pipeline.subscribe(progress)
    try:
        state = await pipeline.start_run(source, args.mode, source_name=Path(args.input).name)
        if state.stage is Stage.WAITING_FOR_APPROVAL:
            try:
                await review(pipeline, args.workdir)
            except RuntimeError as e:
                logger.error(f"Could not apply review edits: {e}")
                pipeline.reset()
                return 1
            state = await pipeline.resume_run(pipeline.segments())
    finally:
        progress.close()

    if state.stage is not Stage.COMPLETED:
        logger.error(state.log)
        return 1

    Path(args.output).write_bytes(pipeline.final_audio)
    logger.info(f"Exported dubbed audio -> {args.output}")

    if args.subs:
        write_srt(pipeline.segments(), args.subs)
        logger.info(f"Saved SRT -> {args.subs}")

    if args.mux_video:
        video = await mux_audio(
            pipeline.engine,
            source,
            pipeline.final_audio,
            video_name=Path(args.input).name,
            audio_format=cfg.output_format,
        )
        Path(args.mux_video).write_bytes(video)
        logger.info(f"Done (dubbed) -> {args.mux_video}")
    return 0


def main() -> None:
    """Main CLI entry point."""
    sys.exit(asyncio.run(main_async()))


if __name__ == "__main__":
    main()
