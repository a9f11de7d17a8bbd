"""
A single chat participant: one vector clock, one pending buffer and the
sequence of messages already handed to the application.
"""
import logging
import time
from typing import Callable, List, Tuple

from .causal_buffer import CausalBuffer
from .message import Message
from .vector_clock import VectorClock


class Participant:
    """
    Owns the delivery state of one process.

    Only the participant's own methods mutate its clock and buffer; anything
    read from outside is a snapshot.
    """

    def __init__(self, process_id: int, num_processes: int,
                 clock_fn: Callable[[], float] = time.time):
        self.process_id = process_id
        self.num_processes = num_processes
        self.clock = VectorClock(process_id, num_processes)
        self.buffer = CausalBuffer(num_processes)
        self._delivered: List[Message] = []
        self._clock_fn = clock_fn

        self.logger = logging.getLogger(f"CausalChat-P{process_id}")

    def stamp(self, message_id: int, payload: str, epoch: int = 0) -> Message:
        """Tick for a local send and build the outgoing message."""
        self.clock.tick()
        msg = Message(
            id=message_id,
            sender_id=self.process_id,
            payload=payload,
            stamped_clock=self.clock.snapshot(),
            send_timestamp=self._clock_fn(),
            epoch=epoch
        )
        self.logger.info(f"Sent {msg}")
        return msg

    def record_local(self, msg: Message) -> Message:
        """Deliver one of our own messages to ourselves; the send already ticked."""
        delivered = msg.delivered(at=msg.send_timestamp)
        self._delivered.append(delivered)
        return delivered

    def receive(self, msg: Message) -> None:
        """Put an incoming message into the pending buffer."""
        self.buffer.enqueue(msg)
        self.logger.info(f"Buffered {msg} (clock={self.clock}, pending={len(self.buffer)})")

    def poll_delivery(self) -> List[Message]:
        """
        Deliver everything that has become deliverable.

        Passes are repeated until one yields nothing, since delivering a
        message can unblock others from the same or a different sender.
        """
        newly_delivered: List[Message] = []
        while True:
            batch = self.buffer.drain_deliverable(self.clock.snapshot())
            if not batch:
                break
            now = self._clock_fn()
            for msg in batch:
                self.clock.observe(msg.stamped_clock)
                delivered = msg.delivered(at=now)
                self._delivered.append(delivered)
                newly_delivered.append(delivered)
                self.logger.info(f"Delivered {msg} -> clock={self.clock}")

        if newly_delivered and len(self.buffer):
            self.logger.info(f"{len(self.buffer)} message(s) still waiting on causal predecessors")
        return newly_delivered

    def current_clock(self) -> Tuple[int, ...]:
        return self.clock.snapshot()

    def pending_count(self) -> int:
        return self.buffer.pending_count()

    def delivered(self) -> Tuple[Message, ...]:
        return tuple(self._delivered)

    def delivered_ids(self) -> List[int]:
        return [msg.id for msg in self._delivered]
