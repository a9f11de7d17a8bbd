"""
Chat message stamped with the sender's vector clock.
"""
import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class Message:
    """An immutable message; stamped_clock is a value copy taken at send time."""

    id: int
    sender_id: int
    payload: str
    stamped_clock: Tuple[int, ...]
    send_timestamp: float = field(default_factory=time.time)
    deliver_timestamp: Optional[float] = None
    epoch: int = 0  # Session epoch the message was sent in

    def __post_init__(self):
        # Lists or numpy vectors passed in are frozen into a tuple.
        object.__setattr__(self, 'stamped_clock', tuple(int(v) for v in self.stamped_clock))

    @property
    def is_delivered(self) -> bool:
        return self.deliver_timestamp is not None

    @property
    def clock_sum(self) -> int:
        return sum(self.stamped_clock)

    def delivered(self, at: Optional[float] = None) -> 'Message':
        """Return a copy of this message marked as delivered."""
        return replace(self, deliver_timestamp=time.time() if at is None else at)

    @property
    def latency(self) -> Optional[float]:
        """Seconds between send and delivery, None while pending."""
        if self.deliver_timestamp is None:
            return None
        return self.deliver_timestamp - self.send_timestamp

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'id': self.id,
            'sender_id': self.sender_id,
            'payload': self.payload,
            'stamped_clock': list(self.stamped_clock),
            'send_timestamp': self.send_timestamp,
            'deliver_timestamp': self.deliver_timestamp,
            'epoch': self.epoch
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Message':
        """Create from dictionary."""
        return cls(
            id=data['id'],
            sender_id=data['sender_id'],
            payload=data['payload'],
            stamped_clock=tuple(data['stamped_clock']),
            send_timestamp=data['send_timestamp'],
            deliver_timestamp=data.get('deliver_timestamp'),
            epoch=data.get('epoch', 0)
        )

    def __str__(self) -> str:
        clock = ', '.join(str(v) for v in self.stamped_clock)
        return f"Msg#{self.id} P{self.sender_id} [{clock}] {self.payload!r}"
