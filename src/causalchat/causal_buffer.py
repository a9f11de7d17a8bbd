"""
Pending-message buffer implementing the causal delivery condition.

A message m from sender j is deliverable at a receiver with clock VC when

    m.stamped_clock[j] == VC[j] + 1
    m.stamped_clock[k] <= VC[k]    for every k != j

i.e. it is the next message from j, and the receiver already knows everything
j knew about third parties when it sent m.
"""
from typing import List, Sequence, Tuple

import numpy as np

from .errors import ShapeMismatchError, InvalidProcessIdError
from .message import Message


class CausalBuffer:
    """Holds messages that are not yet deliverable at one receiver."""

    def __init__(self, num_processes: int):
        self.num_processes = num_processes
        self._pending: List[Message] = []

    def enqueue(self, msg: Message) -> None:
        """Add a message in arrival order."""
        self._pending.append(msg)

    def can_deliver(self, msg: Message, receiver_clock: Sequence[int]) -> bool:
        stamp = msg.stamped_clock
        if len(stamp) != self.num_processes:
            raise ShapeMismatchError(self.num_processes, len(stamp))
        if len(receiver_clock) != self.num_processes:
            raise ShapeMismatchError(self.num_processes, len(receiver_clock))
        sender = msg.sender_id
        if not 0 <= sender < self.num_processes:
            raise InvalidProcessIdError(sender, self.num_processes)

        # Rule 1: exactly the next message from the sender
        if stamp[sender] != receiver_clock[sender] + 1:
            return False

        # Rule 2: nothing the sender had seen from third parties is missing here
        for k in range(self.num_processes):
            if k != sender and stamp[k] > receiver_clock[k]:
                return False
        return True

    def drain_deliverable(self, receiver_clock: Sequence[int]) -> List[Message]:
        """
        Remove and return every message deliverable against receiver_clock.

        The result is ordered by ascending stamp sum, ties kept in buffer
        order. The receiver clock is left for the caller to advance.
        """
        clock = tuple(receiver_clock)
        deliverable: List[Message] = []
        still_pending: List[Message] = []
        for msg in self._pending:
            if self.can_deliver(msg, clock):
                deliverable.append(msg)
            else:
                still_pending.append(msg)
        self._pending = still_pending

        if len(deliverable) < 2:
            return deliverable
        sums = np.array([msg.clock_sum for msg in deliverable], dtype=np.int64)
        order = np.argsort(sums, kind='stable')
        return [deliverable[i] for i in order]

    def pending(self) -> Tuple[Message, ...]:
        """Snapshot of the buffered messages in arrival order."""
        return tuple(self._pending)

    def pending_count(self) -> int:
        return len(self._pending)

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, msg: object) -> bool:
        return msg in self._pending

    def clear(self) -> None:
        """Drop all buffered messages."""
        self._pending = []
