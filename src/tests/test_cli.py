"""
Tests for CLI argument handling and the review step.
"""

import asyncio
import json
import os
import tempfile

import openai

from dubsync import cli
from dubsync.cli import build_config, main_async, parse_args, review
from dubsync.models import PipelineState, Segment, Stage
from dubsync.store import SegmentStore


def test_flags_override_environment(monkeypatch):
    monkeypatch.setenv("DUBSYNC_MAX_SPEED", "3.0")
    monkeypatch.setenv("DUBSYNC_SYNTHESIS_DELAY", "0.5")
    monkeypatch.delenv("DUBSYNC_TTS_PROVIDERS", raising=False)

    args = parse_args(
        ["--input", "in.mp4", "--synthesis-delay", "1.0", "--tts-providers", "gemini, openai", "--no-trim-silence"]
    )
    cfg = build_config(args)

    assert cfg.max_speed_factor == 3.0
    assert cfg.synthesis_delay_seconds == 1.0
    assert cfg.tts_providers == ["gemini", "openai"]
    assert cfg.trim_silence is False
    assert args.mode == "auto"


class _ReviewTarget:
    """Stands in for the pipeline's segment access during review."""

    def __init__(self):
        self.store = SegmentStore(
            [
                Segment(id=1, text="Oi", text_original="Hi", start_time=0.0, end_time=1.0),
                Segment(id=2, text="Tchau", text_original="Bye", start_time=1.0, end_time=2.0),
            ]
        )

    def segments(self):
        return self.store.snapshot()

    def edit_segment_text(self, segment_id, text):
        self.store.update_text(segment_id, text)


def test_review_applies_edits(monkeypatch):
    target = _ReviewTarget()

    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "segments_review.json")

        def fake_input(prompt):
            with open(path, encoding="utf-8") as f:
                rows = json.load(f)
            rows[1]["text"] = "Até logo"
            rows.append({"id": 9, "text": "ghost"})
            with open(path, "w", encoding="utf-8") as f:
                json.dump(rows, f)
            return ""

        monkeypatch.setattr("builtins.input", fake_input)
        asyncio.run(review(target, tmp))

    assert [s.text for s in target.segments()] == ["Oi", "Até logo"]


def test_cli_uses_the_openai_sdk_client():
    assert cli.AsyncOpenAI is openai.AsyncOpenAI


class _WaitingPipeline(_ReviewTarget):
    """Stops at the review checkpoint and records what happens next."""

    engine = None

    def __init__(self):
        super().__init__()
        self.resumed = False
        self.was_reset = False

    def subscribe(self, callback):
        return lambda: None

    async def start_run(self, source, mode, source_name="input.mp4"):
        return PipelineState(stage=Stage.WAITING_FOR_APPROVAL, progress=40, log="Waiting for review")

    async def resume_run(self, segments):
        self.resumed = True
        return PipelineState(stage=Stage.COMPLETED, progress=100, log="Done!")

    def reset(self):
        self.was_reset = True


def test_malformed_review_file_exits_with_error(monkeypatch):
    pipeline = _WaitingPipeline()
    monkeypatch.setattr("dubsync.cli.build_pipeline", lambda args, cfg: pipeline)

    with tempfile.TemporaryDirectory() as tmp:
        source = os.path.join(tmp, "in.mp4")
        with open(source, "wb") as f:
            f.write(b"video")
        review_path = os.path.join(tmp, "segments_review.json")

        def fake_input(prompt):
            with open(review_path, "w", encoding="utf-8") as f:
                f.write('[{"id": "first", "text": "Oi"}]')
            return ""

        monkeypatch.setattr("builtins.input", fake_input)
        argv = ["--input", source, "--workdir", tmp, "--output", os.path.join(tmp, "out.wav"), "--mode", "manual"]
        code = asyncio.run(main_async(argv))

        assert code == 1
        assert not os.path.exists(os.path.join(tmp, "out.wav"))

    assert pipeline.was_reset
    assert not pipeline.resumed
