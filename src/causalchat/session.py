"""
CausalSession: N participants exchanging causally ordered messages over a
simulated network.

This is the surface a presentation layer drives: it originates sends,
controls the delay and consumes delivered messages through subscribe().
"""
import asyncio
import itertools
import logging
import operator
import time
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Tuple

from .causal_buffer import CausalBuffer
from .causality import CausalHistory
from .config import SessionConfig
from .errors import InvalidProcessIdError, ShapeMismatchError
from .message import Message
from .network import DelayGenerator, SimulatedNetwork, UniformDelay
from .participant import Participant

DeliveryCallback = Callable[[int, Message], None]


class CausalSession:
    """
    Owns every participant of one chat session.

    Participants never share mutable state; the session only routes
    messages between them and reads snapshots for display.
    """

    def __init__(self, config: Optional[SessionConfig] = None,
                 delay: Optional[DelayGenerator] = None,
                 clock_fn: Callable[[], float] = time.time):
        self.config = (config or SessionConfig()).validate()
        if delay is None:
            delay = UniformDelay(self.config.max_delay, seed=self.config.seed)
        self.network = SimulatedNetwork(delay)
        self._clock_fn = clock_fn

        self._subscribers: List[DeliveryCallback] = []
        self._tasks: Dict[int, asyncio.Task] = {}
        self.running = False

        self.logger = logging.getLogger("CausalChat-Session")
        self._build()

    def _build(self) -> None:
        n = self.config.num_processes
        self.participants = [Participant(pid, n, self._clock_fn) for pid in range(n)]
        self.history = CausalHistory(n)
        self._message_ids = itertools.count()
        self.logger.info(f"Session ready with {n} participants (epoch {self.network.epoch})")

    @property
    def num_processes(self) -> int:
        return self.config.num_processes

    @property
    def epoch(self) -> int:
        return self.network.epoch

    def _participant(self, process_id: int) -> Participant:
        if isinstance(process_id, bool):
            raise InvalidProcessIdError(process_id, self.num_processes)
        try:
            index = operator.index(process_id)
        except TypeError:
            raise InvalidProcessIdError(process_id, self.num_processes) from None
        if not 0 <= index < self.num_processes:
            raise InvalidProcessIdError(process_id, self.num_processes)
        return self.participants[index]

    # --- Core interface ---

    def send(self, sender_id: int, payload: str) -> Message:
        """
        Tick the sender's clock and return the stamped message.

        The sender sees its own message at once; getting it to anyone else
        (enqueue() or broadcast()) is up to the caller.
        """
        sender = self._participant(sender_id)
        msg = sender.stamp(next(self._message_ids), payload, epoch=self.epoch)
        self.history.record(msg)
        self._publish(sender_id, [sender.record_local(msg)])
        return msg

    def enqueue(self, receiver_id: int, msg: Message) -> List[Message]:
        """
        Hand an arrived message to a receiver and run a delivery pass.

        A message sent before the last reset belongs to an old epoch and is
        dropped without touching any state.
        """
        receiver = self._participant(receiver_id)
        if msg.epoch != self.epoch:
            self.logger.warning(
                f"Dropping stale Msg#{msg.id} for P{receiver.process_id} from epoch {msg.epoch} "
                f"(current epoch {self.epoch})"
            )
            return []
        self._participant(msg.sender_id)
        if len(msg.stamped_clock) != self.num_processes:
            raise ShapeMismatchError(self.num_processes, len(msg.stamped_clock))
        if msg.sender_id == receiver.process_id:
            # Already delivered locally at send time
            self.logger.debug(f"Ignoring echo of Msg#{msg.id} to its sender P{receiver_id}")
            return []

        receiver.receive(msg)
        delivered = receiver.poll_delivery()
        self._publish(receiver_id, delivered)
        return delivered

    def poll_delivery(self, receiver_id: int) -> List[Message]:
        """Run a fixpoint delivery pass; returns the newly delivered messages."""
        delivered = self._participant(receiver_id).poll_delivery()
        self._publish(receiver_id, delivered)
        return delivered

    def current_clock(self, process_id: int) -> Tuple[int, ...]:
        return self._participant(process_id).current_clock()

    def pending_count(self, process_id: int) -> int:
        return self._participant(process_id).pending_count()

    def delivered(self, process_id: int) -> Tuple[Message, ...]:
        return self._participant(process_id).delivered()

    def buffer(self, process_id: int) -> CausalBuffer:
        return self._participant(process_id).buffer

    # --- Simulation ---

    def broadcast(self, sender_id: int, payload: str) -> Message:
        """
        Send and put one copy on the wire to every other participant.

        Arrivals are scheduled on the running asyncio loop, so this must be
        called from inside one; without a running loop it raises RuntimeError.
        """
        msg = self.send(sender_id, payload)
        for receiver_id in range(self.num_processes):
            if receiver_id != sender_id:
                self.network.send(receiver_id, msg, self._on_arrival)
        return msg

    def _on_arrival(self, receiver_id: int, msg: Message) -> None:
        self.enqueue(receiver_id, msg)

    def subscribe(self, callback: DeliveryCallback) -> Callable[[], None]:
        """Register callback(receiver_id, message); returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)
        return unsubscribe

    def _publish(self, receiver_id: int, messages: List[Message]) -> None:
        """Hand every message to every subscriber, then re-raise the first failure."""
        first_error: Optional[Exception] = None
        for msg in messages:
            for callback in list(self._subscribers):
                try:
                    callback(receiver_id, msg)
                except Exception as e:
                    self.logger.error(f"Subscriber failed on Msg#{msg.id} at P{receiver_id}: {e}")
                    if first_error is None:
                        first_error = e
        if first_error is not None:
            raise first_error

    def causal_violations(self, process_id: int) -> List[Tuple[int, int]]:
        """Audit one participant's delivered sequence against the send history."""
        return self.history.violations(self.delivered(process_id))

    def reset(self, num_processes: Optional[int] = None) -> None:
        """
        Discard every clock, buffer and in-flight message.

        Arrivals scheduled before the reset are cancelled, and any that
        still fire belong to an old epoch and are dropped by the network.
        """
        if num_processes is not None:
            self.config = replace(self.config, num_processes=num_processes).validate()
        self.network.reset()
        self._build()
        if self.running:
            self._cancel_loops()
            self._start_loops()

    # --- Delivery loops ---

    async def start(self) -> None:
        """Start one periodic delivery loop per participant."""
        if self.running:
            return
        self.running = True
        self._start_loops()
        self.logger.info(f"Started {len(self._tasks)} delivery loop(s)")

    async def stop(self) -> None:
        """Stop the delivery loops and cancel in-flight messages."""
        self.running = False
        tasks = self._cancel_loops()
        await asyncio.gather(*tasks, return_exceptions=True)
        self.network.reset()
        self.logger.info("Session stopped")

    def _start_loops(self) -> None:
        for pid in range(self.num_processes):
            self._tasks[pid] = asyncio.create_task(self._delivery_loop(pid, self.epoch))

    def _cancel_loops(self) -> List[asyncio.Task]:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        self._tasks = {}
        return tasks

    async def _delivery_loop(self, process_id: int, epoch: int) -> None:
        """Fallback poll so delivery happens even if an enqueue-triggered pass was missed."""
        while self.running and epoch == self.epoch:
            try:
                delivered = self.poll_delivery(process_id)
            except Exception as e:
                self.logger.error(f"Delivery pass for P{process_id} failed: {e}")
                delivered = []
            interval = self.config.retry_interval if delivered else self.config.poll_interval
            await asyncio.sleep(interval)

    async def wait_until_quiet(self, timeout: float, step: float = 0.01) -> bool:
        """
        Wait until nothing is in flight and every buffer is empty.

        Returns False if that did not happen within timeout seconds.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            if self.network.in_flight() == 0 and self.total_pending() == 0:
                return True
            if loop.time() >= deadline:
                return False
            await asyncio.sleep(step)

    def total_pending(self) -> int:
        return sum(p.pending_count() for p in self.participants)

    def get_stats(self) -> Dict[str, object]:
        """Session statistics for display."""
        return {
            'epoch': self.epoch,
            'num_processes': self.num_processes,
            'messages_sent': len(self.history),
            'in_flight': self.network.in_flight(),
            'dropped_stale': self.network.dropped,
            'pending': {p.process_id: p.pending_count() for p in self.participants},
            'delivered': {p.process_id: len(p.delivered()) for p in self.participants},
            'clocks': {p.process_id: p.current_clock() for p in self.participants},
        }
