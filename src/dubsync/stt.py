"""
Speech-to-text transcription and transcript ingestion.
"""

import asyncio
import base64
import json
import logging
import os
import tempfile
from typing import Protocol

from .models import Segment
from .timestamps import format_timestamp, parse_timestamp

logger = logging.getLogger("dubsync")


class TranscriptParseError(RuntimeError):
    """The transcription provider returned something that is not a transcript."""


class Transcriber(Protocol):
    async def transcribe(self, audio: bytes) -> list[dict]:
        ...


def parse_json_payload(text: str):
    """Parse model output as JSON, tolerating ```json fences around it."""
    clean = (text or "").replace("```json", "").replace("```", "").strip()
    return json.loads(clean)


def _field(item, name: str, default=None):
    if isinstance(item, dict):
        return item.get(name, default)
    return getattr(item, name, default)


def segments_from_transcript(raw, min_slot: float = 0.5) -> list[Segment]:
    """Build segments from provider entries ``{id, start, end, text}``.

    Timestamps go through ``parse_timestamp``. A slot whose end does not come
    after its start is clamped to ``min_slot`` seconds. Missing ids default to
    the 1-based position; duplicated ids are rejected.
    """
    if isinstance(raw, dict):
        raw = [raw]
    if not isinstance(raw, list):
        raise TranscriptParseError(f"Expected a list of segments, got {type(raw).__name__}")

    out: list[Segment] = []
    seen: set[int] = set()
    for pos, item in enumerate(raw, 1):
        if not isinstance(item, dict):
            raise TranscriptParseError(f"Segment #{pos} is not an object: {item!r}")
        raw_id = item.get("id", pos)
        try:
            seg_id = int(raw_id)
        except (TypeError, ValueError) as e:
            raise TranscriptParseError(f"Segment #{pos} has a non-integer id {raw_id!r}") from e
        if seg_id in seen:
            raise TranscriptParseError(f"Duplicate segment id {seg_id}")
        seen.add(seg_id)

        start_raw, end_raw = item.get("start"), item.get("end")
        start_time = parse_timestamp(start_raw)
        end_time = parse_timestamp(end_raw)
        if end_time <= start_time:
            logger.debug(
                "Segment %d ends at %.3f before it starts at %.3f; clamping", seg_id, end_time, start_time
            )
            end_time = start_time + min_slot

        text = str(item.get("text") or "").strip()
        out.append(
            Segment(
                id=seg_id,
                text=text,
                text_original=text,
                start_time=start_time,
                end_time=end_time,
                start=start_raw if isinstance(start_raw, str) else format_timestamp(start_time),
                end=end_raw if isinstance(end_raw, str) else format_timestamp(end_time),
            )
        )
    return out


class OpenAITranscriber:
    """Transcribe audio using the OpenAI Whisper API (verbose_json segments)."""

    def __init__(self, client, model: str = "whisper-1", language: str | None = None) -> None:
        self.client = client
        self.model = model
        self.language = language

    async def transcribe(self, audio: bytes) -> list[dict]:
        if self.client is None:
            raise RuntimeError("OpenAI client is not initialized (missing OPENAI_API_KEY)")
        logger.info(f"Transcribing with {self.model} (language: {self.language or 'auto'}) …")
        kwargs = {
            "model": self.model,
            "file": ("audio.mp3", audio),
            "response_format": "verbose_json",
        }
        if self.language:
            kwargs["language"] = self.language
        resp = await self.client.audio.transcriptions.create(**kwargs)

        segs = _field(resp, "segments") or []
        out = [
            {
                "id": i,
                "start": float(_field(seg, "start", 0.0)),
                "end": float(_field(seg, "end", 0.0)),
                "text": str(_field(seg, "text", "")).strip(),
            }
            for i, seg in enumerate(segs, 1)
        ]
        if out:
            return out
        full_text = str(_field(resp, "text", "") or "").strip()
        if full_text:
            duration = float(_field(resp, "duration", 0.0) or 0.0)
            return [{"id": 1, "start": 0.0, "end": duration, "text": full_text}]
        return []


TRANSCRIBE_PROMPT = """Analyze the audio. Return STRICTLY VALID JSON with the transcription and timestamps.
Format: [{ "id": number, "start": "HH:MM:SS.mmm", "end": "HH:MM:SS.mmm", "text": "transcription" }]
RULES:
1. Output ONLY the raw JSON. No markdown.
2. Break the text into short sentences whenever possible."""


class ChatTranscriber:
    """Transcribe with an audio-capable chat model that answers in JSON."""

    def __init__(self, client, model: str = "gpt-4o-audio-preview", audio_format: str = "mp3") -> None:
        self.client = client
        self.model = model
        self.audio_format = audio_format

    async def transcribe(self, audio: bytes) -> list[dict]:
        if self.client is None:
            raise RuntimeError("OpenAI client is not initialized (missing OPENAI_API_KEY)")
        logger.info(f"Transcribing with {self.model} …")
        resp = await self.client.chat.completions.create(
            model=self.model,
            modalities=["text"],
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": TRANSCRIBE_PROMPT},
                        {
                            "type": "input_audio",
                            "input_audio": {
                                "data": base64.b64encode(audio).decode("ascii"),
                                "format": self.audio_format,
                            },
                        },
                    ],
                }
            ],
            temperature=0.0,
        )
        content = resp.choices[0].message.content or ""
        try:
            raw = parse_json_payload(content)
        except ValueError as e:
            logger.error("Malformed transcript JSON: %s", content[:500])
            raise TranscriptParseError("The transcription model returned invalid JSON") from e
        return raw if isinstance(raw, list) else [raw]


class LocalWhisperTranscriber:
    """Transcribe audio using local faster-whisper."""

    def __init__(self, local_model: str = "base", beam_size: int = 1, language: str | None = None) -> None:
        self.local_model = local_model
        self.beam_size = beam_size
        self.language = language

    def _transcribe_file(self, path: str) -> list[dict]:
        try:
            from faster_whisper import WhisperModel
        except ImportError as e:
            raise RuntimeError(
                "faster-whisper is not installed. Install with: pip install 'dubsync[local]'"
            ) from e

        logger.info(f"Transcribing locally with faster-whisper ({self.local_model}) …")
        model = WhisperModel(self.local_model, device="cpu", compute_type="int8")
        segments_iter, _info = model.transcribe(
            path,
            language=self.language,
            vad_filter=True,
            beam_size=self.beam_size,
            word_timestamps=False,
        )
        return [
            {"id": i, "start": float(s.start), "end": float(s.end), "text": str(s.text).strip()}
            for i, s in enumerate(segments_iter, 1)
        ]

    async def transcribe(self, audio: bytes) -> list[dict]:
        fd, path = tempfile.mkstemp(suffix=".mp3", prefix="dubsync_stt_")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(audio)
            return await asyncio.to_thread(self._transcribe_file, path)
        finally:
            os.unlink(path)
