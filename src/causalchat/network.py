"""
Simulated network with injectable, variable per-message latency.

Delays are the only source of reordering: two messages from the same sender
can overtake each other, and it is the delivery condition that restores
causal order.
"""
import asyncio
import itertools
import logging
import random
from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterable, List, Optional

from .errors import ConfigurationError
from .message import Message

ArrivalCallback = Callable[[int, Message], None]


class DelayGenerator(ABC):
    """Source of per-message network delays, in seconds."""

    @abstractmethod
    def next_delay(self) -> float:
        """Return the delay for the next message put on the wire."""
        pass


class UniformDelay(DelayGenerator):
    """Delay drawn uniformly from [0, max_delay]."""

    def __init__(self, max_delay: float, rng: Optional[random.Random] = None,
                 seed: Optional[int] = None):
        if max_delay < 0:
            raise ConfigurationError(f"max_delay must be >= 0, got {max_delay}")
        self.max_delay = max_delay
        self.rng = rng if rng is not None else random.Random(seed)

    def next_delay(self) -> float:
        return self.rng.uniform(0.0, self.max_delay)


class ScriptedDelay(DelayGenerator):
    """
    Replays a fixed sequence of delays, cycling when exhausted.

    Used to force a particular (possibly adversarial) arrival order.
    """

    def __init__(self, delays: Iterable[float]):
        self.delays: List[float] = list(delays)
        if not self.delays:
            raise ConfigurationError("ScriptedDelay needs at least one delay")
        if any(d < 0 for d in self.delays):
            raise ConfigurationError(f"Delays must be >= 0, got {self.delays}")
        self._cycle = itertools.cycle(self.delays)

    def next_delay(self) -> float:
        return next(self._cycle)


class SimulatedNetwork:
    """
    Schedules message arrivals on the running asyncio loop.

    Every scheduled arrival carries the epoch it was sent in; reset() cancels
    what is still in flight and bumps the epoch so a late arrival from an
    earlier session is dropped instead of applied.
    """

    def __init__(self, delay: DelayGenerator):
        self.delay = delay
        self.epoch = 0
        self._in_flight: Dict[int, asyncio.TimerHandle] = {}
        self._tokens = itertools.count()
        self.dropped = 0

        self.logger = logging.getLogger("CausalChat-Network")

    def send(self, receiver_id: int, msg: Message, on_arrival: ArrivalCallback) -> float:
        """Schedule msg to arrive at receiver_id; returns the chosen delay."""
        loop = asyncio.get_running_loop()
        delay = self.delay.next_delay()
        token = next(self._tokens)
        self._in_flight[token] = loop.call_later(
            delay, self._arrive, token, self.epoch, receiver_id, msg, on_arrival
        )
        self.logger.debug(f"Msg#{msg.id} -> P{receiver_id} in {delay:.3f}s (epoch {self.epoch})")
        return delay

    def _arrive(self, token: int, epoch: int, receiver_id: int, msg: Message,
                on_arrival: ArrivalCallback) -> None:
        self._in_flight.pop(token, None)
        if epoch != self.epoch:
            self.dropped += 1
            self.logger.warning(
                f"Dropping stale Msg#{msg.id} for P{receiver_id} from epoch {epoch} "
                f"(current epoch {self.epoch})"
            )
            return
        try:
            on_arrival(receiver_id, msg)
        except Exception as e:
            self.logger.error(f"Failed to hand Msg#{msg.id} to P{receiver_id}: {e}")

    def in_flight(self) -> int:
        return len(self._in_flight)

    def reset(self) -> None:
        """Cancel every pending arrival and start a new epoch."""
        cancelled = len(self._in_flight)
        for handle in self._in_flight.values():
            handle.cancel()
        self._in_flight.clear()
        self.epoch += 1
        self.logger.info(f"Network reset: cancelled {cancelled} in-flight message(s), epoch {self.epoch}")
