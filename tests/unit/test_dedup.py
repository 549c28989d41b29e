"""Tests for the duplicate suppression window."""

import pytest

from dealbus.transport import DEFAULT_DEDUP_WINDOW, DedupWindow

pytestmark = pytest.mark.unit


def test_duplicates_are_rejected():
    window = DedupWindow()

    assert window.add(("t", 1))
    assert not window.add(("t", 1))
    assert ("t", 1) in window
    assert len(window) == 1


def test_oldest_key_is_evicted():
    window = DedupWindow(maxsize=2)
    window.add(1)
    window.add(2)
    window.add(3)

    assert 1 not in window
    assert len(window) == 2
    # An evicted key is treated as new again
    assert window.add(1)


def test_default_size():
    window = DedupWindow()
    for key in range(DEFAULT_DEDUP_WINDOW + 1):
        window.add(key)

    assert len(window) == 100
    assert 0 not in window


def test_rejects_empty_window():
    with pytest.raises(ValueError):
        DedupWindow(maxsize=0)
