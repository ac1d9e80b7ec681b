"""
Tests for review files and SRT export.
"""

import json
import os
import tempfile

import pytest

from dubsync.models import Segment
from dubsync.subtitles import read_review_edits, write_review_json, write_srt


def _segments():
    return [
        Segment(id=1, text="Olá.", text_original="Hello.", start_time=0.0, end_time=2.5),
        Segment(id=2, text="Tchau!", text_original="Bye!", start_time=105.558, end_time=107.0),
    ]


def test_write_srt():
    """Test SRT output format."""
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "subs.srt")
        write_srt(_segments(), path)
        with open(path, encoding="utf-8") as f:
            content = f.read()

    assert content == (
        "1\n00:00:00,000 --> 00:00:02,500\nOlá.\n\n"
        "2\n00:01:45,558 --> 00:01:47,000\nTchau!\n\n"
    )


def test_review_file_round_trip_reads_only_text():
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "review.json")
        write_review_json(_segments(), path)

        with open(path, encoding="utf-8") as f:
            rows = json.load(f)
        assert rows[1] == {
            "id": 2,
            "start": "00:01:45.558",
            "end": "00:01:47.000",
            "original": "Bye!",
            "text": "Tchau!",
        }

        rows[1]["text"] = "Até mais!"
        rows[1]["start"] = "00:00:00.000"
        rows.append({"text": "no id"})
        with open(path, "w", encoding="utf-8") as f:
            json.dump(rows, f)

        assert read_review_edits(path) == {1: "Olá.", 2: "Até mais!"}


@pytest.mark.parametrize(
    "content",
    [
        '[{"id": 1, "text": "Oi",}]',
        '{"id": 1, "text": "Oi"}',
        '[{"id": "one", "text": "Oi"}]',
        '[{"id": null, "text": "Oi"}]',
        '[{"id": Infinity, "text": "Oi"}]',
    ],
)
def test_malformed_review_file_raises_runtime_error(content):
    with tempfile.TemporaryDirectory() as tmp:
        path = os.path.join(tmp, "review.json")
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)

        with pytest.raises(RuntimeError):
            read_review_edits(path)


def test_missing_review_file_raises_runtime_error():
    with tempfile.TemporaryDirectory() as tmp:
        with pytest.raises(RuntimeError, match="Could not read"):
            read_review_edits(os.path.join(tmp, "gone.json"))
