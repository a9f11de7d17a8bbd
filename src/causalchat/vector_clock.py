"""
Vector Clock implementation for tracking causality between chat participants.
"""
from typing import Sequence, Tuple

import numpy as np

from .errors import ShapeMismatchError, InvalidProcessIdError

Entries = Tuple[int, ...]


def _as_vector(entries: Sequence[int], size: int) -> np.ndarray:
    """Copy entries into a fresh int64 vector, checking the length."""
    vector = np.array(entries, dtype=np.int64).reshape(-1)
    if vector.shape[0] != size:
        raise ShapeMismatchError(size, vector.shape[0])
    return vector


def happens_before(a: Sequence[int], b: Sequence[int]) -> bool:
    """True iff a <= b component-wise and a < b in at least one component."""
    left = _as_vector(a, len(a))
    right = _as_vector(b, left.shape[0])
    return bool(np.all(left <= right) and np.any(left < right))


def is_concurrent(a: Sequence[int], b: Sequence[int]) -> bool:
    """True iff the clocks are incomparable; equal clocks are not concurrent."""
    left = _as_vector(a, len(a))
    right = _as_vector(b, left.shape[0])
    return bool(np.any(left < right) and np.any(left > right))


class VectorClock:
    """
    Represents the vector clock owned by one process.

    entries[i] is the number of events of process i known to the owner.
    """

    def __init__(self, owner_id: int, num_processes: int):
        if not 0 <= owner_id < num_processes:
            raise InvalidProcessIdError(owner_id, num_processes)
        self.owner_id = owner_id
        self.num_processes = num_processes
        self._entries = np.zeros(num_processes, dtype=np.int64)

    @property
    def entries(self) -> Entries:
        return self.snapshot()

    def __getitem__(self, index: int) -> int:
        return int(self._entries[index])

    def __len__(self) -> int:
        return self.num_processes

    def tick(self) -> 'VectorClock':
        """Increment the owner's own counter."""
        self._entries[self.owner_id] += 1
        return self

    def merge(self, other_entries: Sequence[int]) -> 'VectorClock':
        """Take the component-wise max with another clock, then tick."""
        other = _as_vector(other_entries, self.num_processes)
        merged = np.maximum(self._entries, other)
        merged[self.owner_id] += 1
        self._entries = merged
        return self

    def observe(self, other_entries: Sequence[int]) -> 'VectorClock':
        """Take the component-wise max with another clock without ticking."""
        other = _as_vector(other_entries, self.num_processes)
        self._entries = np.maximum(self._entries, other)
        return self

    def snapshot(self) -> Entries:
        """Return an independent copy of the entries."""
        return tuple(int(v) for v in self._entries)

    def happens_before(self, other_entries: Sequence[int]) -> bool:
        other = _as_vector(other_entries, self.num_processes)
        return bool(np.all(self._entries <= other) and np.any(self._entries < other))

    def is_concurrent_with(self, other_entries: Sequence[int]) -> bool:
        other = _as_vector(other_entries, self.num_processes)
        return bool(np.any(self._entries < other) and np.any(self._entries > other))

    def copy(self) -> 'VectorClock':
        """Return a copy of this vector clock."""
        clone = VectorClock(self.owner_id, self.num_processes)
        clone._entries = self._entries.copy()
        return clone

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VectorClock):
            return NotImplemented
        return (self.owner_id == other.owner_id
                and bool(np.array_equal(self._entries, other._entries)))

    def __str__(self) -> str:
        return f"[{', '.join(str(v) for v in self.snapshot())}]"

    def __repr__(self) -> str:
        return f"VectorClock(owner_id={self.owner_id}, entries={self.snapshot()})"
