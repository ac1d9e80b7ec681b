"""
Runtime configuration for the dubbing pipeline.
"""

import os
from dataclasses import dataclass, field
from typing import Optional


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from e


@dataclass
class DubbingConfig:
    """Tunables for alignment, synthesis pacing and provider selection.

    ``max_speed_factor`` and ``synthesis_delay_seconds`` have no principled
    derivation; the defaults are the values the pipeline was tuned with.
    """

    # Alignment
    min_slot_seconds: float = 0.5
    max_speed_factor: float = 2.5
    trim_silence: bool = True
    silence_threshold_db: float = -50.0
    output_format: str = "wav"

    # Synthesis pacing
    synthesis_delay_seconds: float = 0.1

    # Providers
    target_language: str = "Brazilian Portuguese"
    logic_model: str = "gpt-4o-mini"
    transcribe_model: str = "whisper-1"
    chat_transcribe_model: str = "gpt-4o-audio-preview"
    tts_providers: list[str] = field(default_factory=lambda: ["openai", "gemini", "elevenlabs"])
    openai_tts_models: list[str] = field(default_factory=lambda: ["gpt-4o-mini-tts", "tts-1"])
    openai_voice: str = "alloy"
    voice_instructions: Optional[str] = None
    gemini_tts_model: str = "gemini-2.5-flash-preview-tts"
    gemini_voice: str = "Aoede"
    elevenlabs_model: str = "eleven_multilingual_v2"

    # Keys
    openai_api_key: Optional[str] = None
    gemini_api_key: Optional[str] = None
    elevenlabs_api_key: Optional[str] = None
    elevenlabs_voice_id: Optional[str] = None

    @classmethod
    def from_env(cls) -> "DubbingConfig":
        """Build a config from DUBSYNC_* variables and provider keys."""
        cfg = cls(
            min_slot_seconds=_env_float("DUBSYNC_MIN_SLOT", cls.min_slot_seconds),
            max_speed_factor=_env_float("DUBSYNC_MAX_SPEED", cls.max_speed_factor),
            synthesis_delay_seconds=_env_float(
                "DUBSYNC_SYNTHESIS_DELAY", cls.synthesis_delay_seconds
            ),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            gemini_api_key=os.getenv("GEMINI_API_KEY"),
            elevenlabs_api_key=os.getenv("ELEVENLABS_API_KEY"),
            elevenlabs_voice_id=os.getenv("ELEVENLABS_VOICE_ID"),
            voice_instructions=os.getenv("OPENAI_TTS_INSTRUCTIONS"),
        )
        if os.getenv("DUBSYNC_TARGET_LANGUAGE"):
            cfg.target_language = os.environ["DUBSYNC_TARGET_LANGUAGE"]
        if os.getenv("DUBSYNC_TTS_PROVIDERS"):
            cfg.tts_providers = [
                p.strip() for p in os.environ["DUBSYNC_TTS_PROVIDERS"].split(",") if p.strip()
            ]
        return cfg
