"""Double-ended queue on a power-of-two ring buffer."""

from __future__ import annotations

import operator

__all__ = ["RingQueue"]

_INITIAL_CAPACITY = 8


class RingQueue:
    """Double-ended queue backed by a growable ring buffer.

    The buffer starts with 8 slots and doubles when full; one slot is always
    kept free. If ``max_capacity`` is given, growing past it raises
    OverflowError and leaves the queue unchanged.
    """

    __slots__ = ("_max_capacity", "_cap", "_elems", "_first", "_last")

    def __init__(self, iterable=(), max_capacity=None):
        self._max_capacity = max_capacity
        self._cap = _INITIAL_CAPACITY
        self._elems = [None] * _INITIAL_CAPACITY
        self._first = 0
        self._last = 0
        for elem in iterable:
            self.add_last(elem)

    def _grow_if_full(self):
        mask = self._cap - 1
        if ((self._last + 1) & mask) != self._first:
            return
        if self._max_capacity is not None and self._cap > self._max_capacity // 2:
            raise OverflowError(
                f"queue cannot grow beyond capacity limit {self._max_capacity}"
            )
        elems = self._elems
        self._elems = elems[self._first:] + elems[: self._first] + [None] * self._cap
        self._last = self._cap - 1
        self._first = 0
        self._cap *= 2

    def capacity(self):
        """Return the number of slots in the underlying buffer."""
        return self._cap

    def add_last(self, elem):
        """Append ``elem`` at the tail."""
        self._grow_if_full()
        self._elems[self._last] = elem
        self._last = (self._last + 1) & (self._cap - 1)

    def add_first(self, elem):
        """Insert ``elem`` at the head."""
        self._grow_if_full()
        self._first = (self._first - 1) & (self._cap - 1)
        self._elems[self._first] = elem

    def del_last(self):
        """Remove and return the tail element."""
        if self._first == self._last:
            raise IndexError("del_last from empty queue")
        self._last = (self._last - 1) & (self._cap - 1)
        elem = self._elems[self._last]
        self._elems[self._last] = None
        return elem

    def del_first(self):
        """Remove and return the head element."""
        if self._first == self._last:
            raise IndexError("del_first from empty queue")
        elem = self._elems[self._first]
        self._elems[self._first] = None
        self._first = (self._first + 1) & (self._cap - 1)
        return elem

    def peek_first(self):
        """Return the head element without removing it."""
        if self._first == self._last:
            raise IndexError("peek_first on empty queue")
        return self._elems[self._first]

    def peek_last(self):
        """Return the tail element without removing it."""
        if self._first == self._last:
            raise IndexError("peek_last on empty queue")
        return self._elems[(self._last - 1) & (self._cap - 1)]

    def clear(self):
        """Remove all elements, keeping the current capacity."""
        self._elems = [None] * self._cap
        self._first = 0
        self._last = 0

    def __len__(self):
        return (self._last - self._first) & (self._cap - 1)

    def __iter__(self):
        mask = self._cap - 1
        pos = self._first
        while pos != self._last:
            yield self._elems[pos]
            pos = (pos + 1) & mask

    def __getitem__(self, index):
        index = operator.index(index)
        size = len(self)
        if index < 0:
            index += size
        if not 0 <= index < size:
            raise IndexError("queue index out of range")
        return self._elems[(self._first + index) & (self._cap - 1)]

    def __repr__(self):
        return f"{type(self).__name__}({list(self)!r})"