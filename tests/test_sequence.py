import pytest
from conftest import record

from booth.services.sequence import PhotoSequenceTracker


def test_record_fills_in_order_until_complete():
    t = PhotoSequenceTracker(2)
    progress = record(t.progressChanged)
    assert t.record("/a.jpg") == 0
    assert t.record("/b.jpg") == 1
    assert t.is_complete
    assert t.paths() == ["/a.jpg", "/b.jpg"]
    assert progress.calls == [(1, 2), (2, 2)]
    with pytest.raises(IndexError):
        t.record("/c.jpg")


def test_retake_overwrites_without_advancing():
    t = PhotoSequenceTracker(3)
    for p in ("/a", "/b", "/c"):
        t.record(p)
    updated = record(t.slotUpdated)
    t.begin_retake(1)
    assert t.target_index == 1
    t.replace(1, "/b2")
    t.end_retake()
    assert t.paths() == ["/a", "/b2", "/c"]
    assert t.next_index == 3
    assert updated.calls == [1]
    assert not t.in_retake


def test_retake_needs_a_filled_slot():
    t = PhotoSequenceTracker(2)
    t.record("/a")
    with pytest.raises(IndexError):
        t.begin_retake(1)
    with pytest.raises(IndexError):
        t.begin_retake(5)


def test_reset_clears_and_resizes():
    t = PhotoSequenceTracker(2)
    t.record("/a")
    t.reset(4)
    assert t.required_count == 4
    assert t.next_index == 0
    assert t.filled_count == 0
    assert len(t.slots) == 4
    assert PhotoSequenceTracker(0).required_count == 1


def test_set_paths_only_touches_filled_slots():
    t = PhotoSequenceTracker(3)
    t.record("/a")
    t.set_paths(["/a_f", "/x", None])
    assert t.paths() == ["/a_f", None, None]
