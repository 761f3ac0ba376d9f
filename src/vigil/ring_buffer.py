"""Fixed-capacity history of check results."""

from collections import deque
from typing import Generic, Iterator, List, TypeVar

T = TypeVar("T")


class RingBuffer(Generic[T]):
    """Circular buffer that evicts its oldest element once full."""

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self._items: deque = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._items.maxlen

    def push(self, value: T) -> None:
        self._items.append(value)

    def last_n(self, n: int) -> List[T]:
        """Return the most recent *n* values, oldest first."""
        if n < 0 or n > self.capacity:
            raise ValueError(f"cannot read {n} items from a buffer of capacity {self.capacity}")
        if n == 0:
            return []
        return list(self._items)[-n:]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)
