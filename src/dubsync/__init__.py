"""
dubsync - isochronous dubbing pipeline.

A pipeline for:
- Extracting audio from videos
- Transcribing speech with timestamps (OpenAI Whisper, chat-model JSON, or local faster-whisper)
- Translating segments while preserving their time slots
- Synthesizing speech through a fallback chain of TTS providers
- Speed-correcting and placing every clip, then mixing one dubbed track
"""

__version__ = "0.1.0"
