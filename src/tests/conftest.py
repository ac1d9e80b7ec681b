"""
Shared fixtures: synthetic clips and fake collaborators.
"""

import pytest
from pydub.generators import Sine

from dubsync.io_ffmpeg import clip_to_wav_bytes


def _make_wav(duration_ms: int, freq: int = 440) -> bytes:
    """A mono sine tone encoded as WAV."""
    return clip_to_wav_bytes(Sine(freq).to_audio_segment(duration=duration_ms))


class FakeEngine:
    """Records every call and answers with canned bytes."""

    def __init__(self, fail_on: str | None = None) -> None:
        self.calls: list[tuple[dict, list, str]] = []
        self.fail_on = fail_on

    async def run(self, inputs, args, output_name):
        self.calls.append((dict(inputs), list(args), output_name))
        if self.fail_on and output_name.startswith(self.fail_on):
            from dubsync.io_ffmpeg import MediaEngineError

            raise MediaEngineError("boom")
        return f"<{output_name}>".encode()

    def filter_graph(self, call: int = -1) -> str:
        args = self.calls[call][1]
        return args[args.index("-filter_complex") + 1]


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def make_wav():
    return _make_wav


@pytest.fixture
def failing_engine():
    """Extraction works, assembly fails."""
    return FakeEngine(fail_on="output")
