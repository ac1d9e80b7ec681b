"""
Media engine and audio utilities using ffmpeg/pydub.

The engine takes named input buffers plus ffmpeg arguments and returns one
named output buffer. Calls are serialized: the engine is single-writer.
"""

import asyncio
import io
import logging
import tempfile
from pathlib import Path
from typing import Protocol

from pydub import AudioSegment
from pydub.silence import detect_leading_silence

logger = logging.getLogger("dubsync")


class MediaEngineError(RuntimeError):
    """ffmpeg exited with a failure or produced no output."""


class MediaEngine(Protocol):
    async def run(self, inputs: dict[str, bytes], args: list[str], output_name: str) -> bytes:
        ...


class FFmpegEngine:
    """Runs ffmpeg in a private scratch directory, one call at a time."""

    def __init__(self, binary: str = "ffmpeg") -> None:
        self.binary = binary
        self._lock = asyncio.Lock()

    async def run(self, inputs: dict[str, bytes], args: list[str], output_name: str) -> bytes:
        async with self._lock:
            with tempfile.TemporaryDirectory(prefix="dubsync_") as tmp:
                for name, data in inputs.items():
                    (Path(tmp) / name).write_bytes(data)
                cmd = [self.binary, "-hide_banner", "-y", *args, output_name]
                logger.debug("Running: %s", " ".join(map(str, cmd)))
                proc = await asyncio.create_subprocess_exec(
                    *cmd,
                    cwd=tmp,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.STDOUT,
                )
                out, _ = await proc.communicate()
                if proc.returncode != 0:
                    tail = out.decode("utf-8", errors="replace")[-2000:]
                    logger.error("Command failed with code %d: %s", proc.returncode, tail)
                    raise MediaEngineError(f"ffmpeg failed with code {proc.returncode}: {tail[-300:]}")
                out_path = Path(tmp) / output_name
                if not out_path.exists():
                    raise MediaEngineError(f"ffmpeg produced no {output_name}")
                return out_path.read_bytes()


def ensure_dir(path: str) -> None:
    """Ensure directory exists."""
    if path:
        Path(path).mkdir(parents=True, exist_ok=True)


async def extract_audio(
    engine: MediaEngine, source: bytes, source_name: str = "input.mp4", sample_rate: int = 16000
) -> bytes:
    """Extract a mono mp3 speech track from any audio/video container."""
    suffix = Path(source_name).suffix or ".bin"
    in_name = f"input_file{suffix}"
    args = [
        "-i",
        in_name,
        "-vn",
        "-map",
        "0:a:0",
        "-ac",
        "1",
        "-ar",
        str(sample_rate),
        "-b:a",
        "64k",
    ]
    return await engine.run({in_name: source}, args, "audio.mp3")


async def mux_audio(
    engine: MediaEngine, video: bytes, audio: bytes, video_name: str = "input.mp4", audio_format: str = "wav"
) -> bytes:
    """Mux audio track into video (copy video stream)."""
    suffix = Path(video_name).suffix or ".mp4"
    v_name, a_name = f"video{suffix}", f"dub.{audio_format}"
    args = ["-i", v_name, "-i", a_name, "-c:v", "copy", "-map", "0:v:0", "-map", "1:a:0"]
    return await engine.run({v_name: video, a_name: audio}, args, f"output{suffix}")


def _looks_like_wav(data: bytes) -> bool:
    return len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WAVE"


def decode_clip(data: bytes) -> AudioSegment:
    """Decode an encoded clip; wav is read natively, anything else through ffmpeg."""
    fmt = "wav" if _looks_like_wav(data) else None
    return AudioSegment.from_file(io.BytesIO(data), format=fmt)


def trim_silence(clip: AudioSegment, threshold_db: float = -50.0, chunk_ms: int = 10) -> AudioSegment:
    """Strip leading/trailing silence; a clip that is silence throughout is returned as is."""
    lead = detect_leading_silence(clip, silence_threshold=threshold_db, chunk_size=chunk_ms)
    if lead >= len(clip):
        return clip
    tail = detect_leading_silence(clip.reverse(), silence_threshold=threshold_db, chunk_size=chunk_ms)
    return clip[lead : len(clip) - tail]


def clip_to_wav_bytes(clip: AudioSegment) -> bytes:
    buf = io.BytesIO()
    clip.export(buf, format="wav")
    return buf.getvalue()
