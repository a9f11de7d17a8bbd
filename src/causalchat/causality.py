"""
Record of causal dependencies between sent messages.

Dependencies are kept in a lower triangular sparse matrix:
matrix[i][j] = True means message i causally depends on message j (i > j),
which holds whenever the sender of i had seen j when it sent i. Messages are
recorded in send order, so a dependency always points to a lower index.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Set, Tuple

import numpy as np
from scipy.sparse import lil_matrix

from .message import Message


@dataclass
class MessageIndex:
    """Maps message ids to matrix indices."""
    id_to_index: Dict[int, int] = field(default_factory=dict)
    index_to_id: Dict[int, int] = field(default_factory=dict)

    def add(self, message_id: int) -> int:
        if message_id not in self.id_to_index:
            index = len(self.id_to_index)
            self.id_to_index[message_id] = index
            self.index_to_id[index] = message_id
        return self.id_to_index[message_id]

    def size(self) -> int:
        return len(self.id_to_index)


class CausalHistory:
    """Happens-before relation between every message sent in a session."""

    def __init__(self, num_processes: int, initial_size: int = 64):
        self.num_processes = num_processes
        self.index = MessageIndex()
        self.dependency_matrix = lil_matrix((initial_size, initial_size), dtype=bool)
        self._stamps = np.zeros((0, num_processes), dtype=np.int64)
        self._senders = np.zeros(0, dtype=np.int64)

    def _ensure_size(self, min_size: int):
        current_size = self.dependency_matrix.shape[0]
        if min_size > current_size:
            new_size = max(min_size, current_size * 2)
            new_matrix = lil_matrix((new_size, new_size), dtype=bool)
            new_matrix[:current_size, :current_size] = self.dependency_matrix
            self.dependency_matrix = new_matrix

    def record(self, msg: Message) -> int:
        """Add a freshly sent message and link it to everything its sender had seen."""
        if msg.id in self.index.id_to_index:
            return self.index.id_to_index[msg.id]

        stamp = np.array(msg.stamped_clock, dtype=np.int64)
        previous = self.index.size()
        new_idx = self.index.add(msg.id)
        self._ensure_size(new_idx + 1)

        if previous:
            # Earlier message j is known to the new sender iff
            # stamp_j[sender_j] <= stamp_new[sender_j]
            own_counts = self._stamps[np.arange(previous), self._senders]
            known = own_counts <= stamp[self._senders]
            for dep_idx in np.flatnonzero(known):
                self.dependency_matrix[new_idx, int(dep_idx)] = True

        self._stamps = np.vstack([self._stamps, stamp])
        self._senders = np.append(self._senders, msg.sender_id)
        return new_idx

    def depends_on(self, message_id: int, other_id: int) -> bool:
        """True iff message_id causally depends on other_id."""
        ids = self.index.id_to_index
        if message_id not in ids or other_id not in ids:
            return False
        a_idx, b_idx = ids[message_id], ids[other_id]
        if a_idx <= b_idx:
            return False
        return bool(self.dependency_matrix[a_idx, b_idx])

    def dependencies(self, message_id: int) -> Set[int]:
        """Ids of all messages the given message causally depends on."""
        if message_id not in self.index.id_to_index:
            return set()
        row = self.dependency_matrix.getrow(self.index.id_to_index[message_id])
        return {self.index.index_to_id[int(j)] for j in row.nonzero()[1]}

    def violations(self, delivered: Iterable[Message]) -> List[Tuple[int, int]]:
        """
        Check a delivered sequence for causal order.

        Returns (message_id, missing_dependency_id) pairs for every message
        handed over before one of its recorded dependencies.
        """
        seen: Set[int] = set()
        found: List[Tuple[int, int]] = []
        for msg in delivered:
            for dep_id in sorted(self.dependencies(msg.id)):
                if dep_id not in seen:
                    found.append((msg.id, dep_id))
            seen.add(msg.id)
        return found

    def __len__(self) -> int:
        return self.index.size()

    def get_statistics(self) -> Dict[str, float]:
        total = self.index.size()
        max_elements = total * (total - 1) // 2
        used = int(self.dependency_matrix[:total, :total].count_nonzero())
        return {
            'messages': total,
            'dependencies': used,
            'density': used / max(max_elements, 1)
        }
