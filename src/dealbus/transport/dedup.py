"""
Bounded duplicate suppression for at-least-once delivery.
"""

from collections import OrderedDict
from typing import Hashable

DEFAULT_DEDUP_WINDOW = 100


class DedupWindow:
    """
    Most-recently-seen set with a fixed capacity.

    Keys are remembered in insertion order and the oldest key is evicted once
    more than `maxsize` keys are held. A duplicate that arrives after its key
    has been evicted is NOT recognised; the window trades unbounded memory for
    that gap.

    Example:
        window = DedupWindow(maxsize=100)
        window.add(("2024-01-01T00:00:00+00:00", 7))   # True, first sighting
        window.add(("2024-01-01T00:00:00+00:00", 7))   # False, duplicate
    """

    def __init__(self, maxsize: int = DEFAULT_DEDUP_WINDOW):
        if maxsize < 1:
            raise ValueError(f"Dedup window must hold at least one key, got {maxsize}")
        self.maxsize = maxsize
        self._seen: "OrderedDict[Hashable, None]" = OrderedDict()

    def add(self, key: Hashable) -> bool:
        """Remember `key`. Returns False if it was already in the window."""
        if key in self._seen:
            return False
        self._seen[key] = None
        if len(self._seen) > self.maxsize:
            self._seen.popitem(last=False)
        return True

    def __contains__(self, key: Hashable) -> bool:
        return key in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def clear(self) -> None:
        self._seen.clear()
