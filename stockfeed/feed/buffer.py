from __future__ import annotations

from collections import deque
from typing import Deque, Iterator, Optional

from stockfeed.types.types import Bar


class RollingBuffer:
    """
    Fixed-capacity ordered sequence of bars; appending past capacity evicts the oldest.

    Append and eviction happen in one deque operation, so the length can never exceed
    the capacity between two callbacks.
    """

    def __init__(self, capacity: int = 100) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._bars: Deque[Bar] = deque(maxlen=capacity)
        self._evicted = 0

    @property
    def capacity(self) -> int:
        return self._bars.maxlen or 0

    @property
    def evicted(self) -> int:
        """Total number of bars dropped from the front."""
        return self._evicted

    def append(self, bar: Bar) -> Optional[Bar]:
        """Append a bar; return the evicted bar, if any."""
        dropped = self._bars[0] if len(self._bars) == self.capacity else None
        self._bars.append(bar)
        if dropped is not None:
            self._evicted += 1
        return dropped

    def clear(self) -> None:
        self._bars.clear()

    def snapshot(self) -> list[Bar]:
        return list(self._bars)

    @property
    def latest(self) -> Optional[Bar]:
        return self._bars[-1] if self._bars else None

    def __len__(self) -> int:
        return len(self._bars)

    def __iter__(self) -> Iterator[Bar]:
        return iter(self._bars)

    def __getitem__(self, index: int) -> Bar:
        return self._bars[index]
