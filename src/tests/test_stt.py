"""
Tests for transcript ingestion and transcribers.
"""

import asyncio
from types import SimpleNamespace

import pytest

from dubsync.stt import (
    ChatTranscriber,
    OpenAITranscriber,
    TranscriptParseError,
    parse_json_payload,
    segments_from_transcript,
)


def _chat_client(content: str):
    async def create(**kwargs):
        message = SimpleNamespace(content=content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


def test_parse_json_payload_strips_fences():
    assert parse_json_payload('```json\n[{"id": 1}]\n```') == [{"id": 1}]


def test_segments_from_transcript_parses_times():
    raw = [
        {"id": 1, "start": "00:00.0", "end": "00:02.0", "text": " Hi "},
        {"id": 2, "start": "01:45:558", "end": "01:47:000", "text": "there"},
    ]
    segs = segments_from_transcript(raw)

    assert [s.id for s in segs] == [1, 2]
    assert segs[0].text == "Hi"
    assert segs[0].text_original == "Hi"
    assert segs[0].start_time == 0.0
    assert segs[0].end_time == pytest.approx(2.0)
    assert segs[1].start_time == pytest.approx(105.558)
    assert segs[1].start == "01:45:558"


def test_end_before_start_is_clamped():
    raw = [
        {"id": 1, "start": "00:05.0", "end": "00:04.0", "text": "a"},
        {"id": 2, "start": "00:06.0", "end": "00:06.0", "text": "b"},
        {"id": 3, "start": "garbage", "end": None, "text": "c"},
    ]
    segs = segments_from_transcript(raw, min_slot=0.5)
    for seg in segs:
        assert seg.end_time >= seg.start_time
        assert seg.slot_duration > 0
    assert segs[0].end_time == pytest.approx(5.5)


def test_missing_ids_use_position_and_single_object_is_wrapped():
    segs = segments_from_transcript({"start": 0, "end": 1, "text": "solo"})
    assert len(segs) == 1
    assert segs[0].id == 1
    assert segs[0].start == "00:00:00.000"


@pytest.mark.parametrize(
    "raw",
    [
        "not a list",
        [1, 2, 3],
        [{"id": "x", "start": 0, "end": 1, "text": "a"}],
        [{"id": 1, "text": "a"}, {"id": 1, "text": "b"}],
    ],
)
def test_malformed_transcripts_are_rejected(raw):
    with pytest.raises(TranscriptParseError):
        segments_from_transcript(raw)


def test_chat_transcriber_returns_entries():
    client = _chat_client('```json\n[{"id": 1, "start": "00:00:00.000", "end": "00:00:01.500", "text": "Hi"}]\n```')
    entries = asyncio.run(ChatTranscriber(client).transcribe(b"mp3"))
    assert entries == [{"id": 1, "start": "00:00:00.000", "end": "00:00:01.500", "text": "Hi"}]


def test_chat_transcriber_invalid_json_is_fatal():
    client = _chat_client("Sorry, I cannot help with that.")
    with pytest.raises(TranscriptParseError):
        asyncio.run(ChatTranscriber(client).transcribe(b"mp3"))


def test_whisper_transcriber_maps_segments():
    async def create(**kwargs):
        assert kwargs["response_format"] == "verbose_json"
        return SimpleNamespace(
            segments=[
                SimpleNamespace(start=0.0, end=1.2, text=" one "),
                {"start": 1.5, "end": 2.0, "text": "two"},
            ],
            text="one two",
        )

    client = SimpleNamespace(audio=SimpleNamespace(transcriptions=SimpleNamespace(create=create)))
    entries = asyncio.run(OpenAITranscriber(client).transcribe(b"mp3"))
    assert entries == [
        {"id": 1, "start": 0.0, "end": 1.2, "text": "one"},
        {"id": 2, "start": 1.5, "end": 2.0, "text": "two"},
    ]


def test_whisper_transcriber_falls_back_to_full_text():
    async def create(**kwargs):
        return {"segments": [], "text": "whole thing", "duration": 4.0}

    client = SimpleNamespace(audio=SimpleNamespace(transcriptions=SimpleNamespace(create=create)))
    entries = asyncio.run(OpenAITranscriber(client).transcribe(b"mp3"))
    assert entries == [{"id": 1, "start": 0.0, "end": 4.0, "text": "whole thing"}]
