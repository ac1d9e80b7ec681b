"""
Tests for the segment store.
"""

import pytest

from dubsync.models import Segment
from dubsync.store import SegmentStore


def _segments():
    return [
        Segment(id=1, text="Hello", text_original="Hello", start_time=0.0, end_time=1.0),
        Segment(id=2, text="World", text_original="World", start_time=1.0, end_time=2.5),
    ]


def test_update_text_only_touches_matching_segment():
    store = SegmentStore(_segments())
    store.update_text(2, "Mundo")

    snap = store.snapshot()
    assert [s.id for s in snap] == [1, 2]
    assert snap[0].text == "Hello"
    assert snap[1].text == "Mundo"
    assert snap[1].text_original == "World"
    assert (snap[1].start_time, snap[1].end_time) == (1.0, 2.5)


def test_snapshot_is_insulated_from_later_edits():
    store = SegmentStore(_segments())
    snap = store.snapshot()
    store.update_text(1, "Oi")
    snap[1].text = "changed by caller"

    assert snap[0].text == "Hello"
    assert store.snapshot()[1].text == "World"


def test_replace_all_copies_input():
    segs = _segments()
    store = SegmentStore()
    store.replace_all(segs)
    segs[0].text = "mutated"
    assert store.snapshot()[0].text == "Hello"
    assert len(store) == 2


def test_duplicate_ids_rejected():
    segs = _segments()
    segs[1].id = 1
    with pytest.raises(ValueError):
        SegmentStore(segs)


def test_update_unknown_id():
    store = SegmentStore(_segments())
    with pytest.raises(KeyError):
        store.update_text(99, "x")


def test_clear():
    store = SegmentStore(_segments())
    store.clear()
    assert store.snapshot() == []
