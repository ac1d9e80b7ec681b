"""
Text-to-speech synthesis with OpenAI, Gemini and ElevenLabs behind one fallback chain.
"""

import asyncio
import base64
import logging
import re
from collections.abc import Callable
from typing import Protocol

import httpx
from pydub import AudioSegment

from .config import DubbingConfig
from .io_ffmpeg import clip_to_wav_bytes
from .models import Segment

logger = logging.getLogger("dubsync")

USER_AGENT = "dubsync/0.1"


class SpeechProvider(Protocol):
    name: str

    async def synthesize(self, text: str) -> bytes:
        ...


class OpenAISpeechProvider:
    """OpenAI TTS; one instance per model so each model is its own chain candidate."""

    def __init__(self, client, model: str, voice: str, instructions: str | None = None) -> None:
        self.client = client
        self.model = model
        self.voice = voice
        self.instructions = instructions
        self.name = f"openai:{model}"

    async def synthesize(self, text: str) -> bytes:
        if self.client is None:
            raise RuntimeError("OpenAI client is not initialized (missing OPENAI_API_KEY)")
        kwargs = {
            "model": self.model,
            "voice": self.voice,
            "input": text,
            "response_format": "wav",
        }
        if self.instructions:
            kwargs["instructions"] = self.instructions
        response = await self.client.audio.speech.create(**kwargs)
        return response.content


class ElevenLabsSpeechProvider:
    """ElevenLabs TTS over REST; returns mp3 bytes."""

    def __init__(
        self,
        api_key: str,
        voice_id: str,
        model_id: str = "eleven_multilingual_v2",
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.voice_id = voice_id
        self.model_id = model_id
        self.http_client = http_client
        self.name = f"elevenlabs:{model_id}"

    async def synthesize(self, text: str) -> bytes:
        if not self.api_key:
            raise RuntimeError("ELEVENLABS_API_KEY is not set.")
        if not self.voice_id:
            raise RuntimeError("ElevenLabs voice_id is required (ELEVENLABS_VOICE_ID).")

        url = f"https://api.elevenlabs.io/v1/text-to-speech/{self.voice_id}"
        headers = {
            "xi-api-key": self.api_key,
            "accept": "audio/mpeg",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }
        payload = {
            "text": text,
            "model_id": self.model_id,
            "voice_settings": {"stability": 0.5, "similarity_boost": 0.75},
        }
        client = self.http_client or httpx.AsyncClient(follow_redirects=True, timeout=60.0)
        try:
            r = await client.post(url, json=payload, headers=headers)
        finally:
            if self.http_client is None:
                await client.aclose()
        ctype = r.headers.get("content-type", "")
        if r.status_code != 200 or not ctype.startswith(("audio/", "application/octet-stream")):
            raise RuntimeError(f"ElevenLabs TTS failed: {r.status_code} {r.text[:300]}")
        return r.content


_RATE_RE = re.compile(r"rate=(\d+)")


def pcm_to_wav(pcm: bytes, mime_type: str = "", default_rate: int = 24000) -> bytes:
    """Wrap raw 16-bit mono PCM (as returned by Gemini TTS) into a WAV container."""
    m = _RATE_RE.search(mime_type or "")
    rate = int(m.group(1)) if m else default_rate
    if len(pcm) % 2:
        pcm = pcm[:-1]
    clip = AudioSegment(data=pcm, sample_width=2, frame_rate=rate, channels=1)
    return clip_to_wav_bytes(clip)


class GeminiSpeechProvider:
    """Gemini TTS via the generateContent REST endpoint with AUDIO modality."""

    BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash-preview-tts",
        voice: str = "Aoede",
        language: str = "Brazilian Portuguese",
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.voice = voice
        self.language = language
        self.http_client = http_client
        self.name = f"gemini:{model}"

    async def synthesize(self, text: str) -> bytes:
        if not self.api_key:
            raise RuntimeError("GEMINI_API_KEY is not set.")
        url = f"{self.BASE_URL}/{self.model}:generateContent"
        payload = {
            "contents": [
                {"parts": [{"text": f'Read the following text in {self.language} with natural intonation: "{text}"'}]}
            ],
            "generationConfig": {
                "responseModalities": ["AUDIO"],
                "speechConfig": {
                    "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": self.voice}}
                },
            },
        }
        headers = {"x-goog-api-key": self.api_key, "User-Agent": USER_AGENT}
        client = self.http_client or httpx.AsyncClient(timeout=120.0)
        try:
            r = await client.post(url, json=payload, headers=headers)
        finally:
            if self.http_client is None:
                await client.aclose()
        if r.status_code != 200:
            raise RuntimeError(
                f"Gemini TTS failed ({r.status_code}): check that '{self.model}' is enabled for this key"
            )
        data = r.json()
        candidates = data.get("candidates") or []
        parts = ((candidates[0].get("content") or {}).get("parts") or []) if candidates else []
        for part in parts:
            inline = part.get("inlineData") or {}
            if inline.get("data"):
                pcm = base64.b64decode(inline["data"])
                return await asyncio.to_thread(pcm_to_wav, pcm, inline.get("mimeType", ""))
        raise RuntimeError("Gemini TTS responded without audio data")


class SynthesisChain:
    """Try providers in priority order; a failing provider never aborts the run."""

    def __init__(self, providers: list[SpeechProvider]) -> None:
        self.providers = list(providers)

    async def synthesize(self, text: str) -> bytes:
        if not text or not text.strip():
            return b""
        for provider in self.providers:
            try:
                audio = await provider.synthesize(text)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"TTS provider {provider.name} failed for '{text[:50]}': {e}")
                continue
            if audio:
                return audio
            logger.warning(f"TTS provider {provider.name} returned no audio for '{text[:50]}'")
        logger.error(f"All TTS providers failed for '{text[:50]}', rendering silence")
        return b""


async def synthesize_segments(
    chain: SynthesisChain,
    segments: list[Segment],
    delay_seconds: float = 0.1,
    on_progress: Callable[[int, int, Segment], None] | None = None,
    check_cancel: Callable[[], None] | None = None,
) -> list[bytes]:
    """
    Synthesize every segment serially, in index order.
    Consecutive segment requests are spaced by delay_seconds to stay under
    provider quotas. The result has one clip per segment; failures are b"".
    """
    clips: list[bytes] = []
    total = len(segments)
    for i, seg in enumerate(segments):
        if i > 0 and delay_seconds > 0:
            await asyncio.sleep(delay_seconds)
        if check_cancel:
            check_cancel()
        if on_progress:
            on_progress(i, total, seg)
        clips.append(await chain.synthesize(seg.text))
    failures = [s.id for s, c in zip(segments, clips) if not c and s.text.strip()]
    if failures:
        logger.warning(
            f"TTS completed with {len(failures)} failed segments (rendered as silence): {failures}"
        )
    return clips


def build_synthesis_chain(
    config: DubbingConfig,
    openai_client=None,
    http_client: httpx.AsyncClient | None = None,
) -> SynthesisChain:
    """Build the provider chain in config.tts_providers order, skipping unconfigured ones."""
    providers: list[SpeechProvider] = []
    for name in config.tts_providers:
        if name == "openai":
            if openai_client is None:
                logger.info("Skipping OpenAI TTS (no client)")
                continue
            for model in config.openai_tts_models:
                providers.append(
                    OpenAISpeechProvider(
                        openai_client, model, config.openai_voice, config.voice_instructions
                    )
                )
        elif name == "gemini":
            if not config.gemini_api_key:
                logger.info("Skipping Gemini TTS (GEMINI_API_KEY not set)")
                continue
            providers.append(
                GeminiSpeechProvider(
                    config.gemini_api_key,
                    config.gemini_tts_model,
                    config.gemini_voice,
                    config.target_language,
                    http_client=http_client,
                )
            )
        elif name == "elevenlabs":
            if not (config.elevenlabs_api_key and config.elevenlabs_voice_id):
                logger.info("Skipping ElevenLabs TTS (ELEVENLABS_API_KEY/ELEVENLABS_VOICE_ID not set)")
                continue
            providers.append(
                ElevenLabsSpeechProvider(
                    config.elevenlabs_api_key,
                    config.elevenlabs_voice_id,
                    config.elevenlabs_model,
                    http_client=http_client,
                )
            )
        else:
            raise RuntimeError(f"Unknown TTS provider: {name}")
    if not providers:
        raise RuntimeError("No TTS provider is configured (set OPENAI_API_KEY, GEMINI_API_KEY or ELEVENLABS_API_KEY)")
    logger.info("TTS chain: %s", " -> ".join(p.name for p in providers))
    return SynthesisChain(providers)
