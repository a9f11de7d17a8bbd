"""Tests for CausalSession and Participant delivery passes."""

import itertools

import numpy as np
import pytest

from causalchat.config import SessionConfig
from causalchat.errors import (
    ConfigurationError,
    InvalidProcessIdError,
    ShapeMismatchError,
)
from causalchat.message import Message
from causalchat.participant import Participant
from causalchat.session import CausalSession


def payloads(messages):
    return [m.payload for m in messages]


@pytest.fixture
def two():
    return CausalSession(SessionConfig(num_processes=2))


@pytest.fixture
def three():
    return CausalSession(SessionConfig(num_processes=3))


class TestSend:
    def test_send_ticks_and_stamps(self, three):
        msg = three.send(1, "hi")
        assert msg.sender_id == 1
        assert msg.stamped_clock == (0, 1, 0)
        assert three.current_clock(1) == (0, 1, 0)
        assert msg.deliver_timestamp is None

    def test_ids_are_unique_within_session(self, three):
        ids = [three.send(pid % 3, "x").id for pid in range(6)]
        assert ids == sorted(set(ids))

    def test_stamp_not_affected_by_later_sends(self, two):
        first = two.send(0, "A")
        two.send(0, "B")
        assert first.stamped_clock == (1, 0)

    def test_sender_sees_own_message(self, two):
        two.send(0, "A")
        assert payloads(two.delivered(0)) == ["A"]
        assert two.pending_count(0) == 0

    def test_invalid_process_id(self, two):
        with pytest.raises(InvalidProcessIdError):
            two.send(2, "x")
        with pytest.raises(IndexError):
            two.current_clock(-1)
        with pytest.raises(InvalidProcessIdError):
            two.pending_count(5)

    def test_numpy_process_id_accepted(self, three):
        msg = three.send(np.int64(2), "x")
        assert msg.sender_id == 2
        assert three.current_clock(np.int64(2)) == (0, 0, 1)

    def test_non_integer_process_id_rejected(self, two):
        with pytest.raises(InvalidProcessIdError):
            two.send(True, "x")
        with pytest.raises(InvalidProcessIdError):
            two.current_clock("0")

    def test_broadcast_needs_running_loop(self, two):
        with pytest.raises(RuntimeError):
            two.broadcast(0, "x")


class TestEnqueue:
    def test_same_sender_reordered(self, two):
        a = two.send(0, "A")
        b = two.send(0, "B")

        assert two.enqueue(1, b) == []
        assert two.pending_count(1) == 1
        assert two.current_clock(1) == (0, 0)

        delivered = two.enqueue(1, a)
        assert payloads(delivered) == ["A", "B"]
        assert two.current_clock(1) == (2, 0)
        assert two.pending_count(1) == 0

    def test_third_party_dependency(self, three):
        question = three.send(0, "question")
        three.enqueue(1, question)
        reply = three.send(1, "answer")
        assert reply.stamped_clock == (1, 1, 0)

        assert three.enqueue(2, reply) == []
        assert three.pending_count(2) == 1

        delivered = three.enqueue(2, question)
        assert payloads(delivered) == ["question", "answer"]
        assert three.current_clock(2) == (1, 1, 0)

    def test_delivered_messages_are_timestamped(self, two):
        a = two.send(0, "A")
        [delivered] = two.enqueue(1, a)
        assert delivered.id == a.id
        assert delivered.deliver_timestamp is not None
        assert a.deliver_timestamp is None

    def test_echo_to_sender_is_ignored(self, two):
        a = two.send(0, "A")
        assert two.enqueue(0, a) == []
        assert two.pending_count(0) == 0
        assert len(two.delivered(0)) == 1

    def test_wrong_clock_length(self, two):
        bogus = Message(id=99, sender_id=0, payload="x", stamped_clock=(1, 0, 0))
        with pytest.raises(ShapeMismatchError):
            two.enqueue(1, bogus)
        assert two.pending_count(1) == 0

    def test_receiver_own_entry_unchanged_by_delivery(self, three):
        three.send(2, "mine")
        three.enqueue(2, three.send(0, "theirs"))
        assert three.current_clock(2) == (1, 0, 1)


class TestPollDelivery:
    def test_empty_poll_is_noop(self, two):
        two.send(1, "x")
        before = two.current_clock(1)
        assert two.poll_delivery(1) == []
        assert two.current_clock(1) == before

    def test_cascading_delivery_in_one_poll(self, three):
        m0 = three.send(0, "a")
        m1 = three.send(0, "b")
        three.enqueue(1, m0)
        three.enqueue(1, m1)
        m2 = three.send(1, "c")

        receiver = three.participants[2]
        for msg in (m2, m1, m0):
            receiver.receive(msg)
        delivered = three.poll_delivery(2)
        assert payloads(delivered) == ["a", "b", "c"]
        assert three.current_clock(2) == (2, 1, 0)


class TestCausalSafety:
    def test_every_arrival_order(self):
        session = CausalSession(SessionConfig(num_processes=3))
        m0 = session.send(0, "p0-1")
        session.enqueue(1, m0)
        m1 = session.send(1, "p1-1")
        m2 = session.send(0, "p0-2")
        session.enqueue(1, m2)
        m3 = session.send(1, "p1-2")
        sent = [m0, m1, m2, m3]

        for order in itertools.permutations(sent):
            receiver = Participant(2, 3)
            for msg in order:
                receiver.receive(msg)
                receiver.poll_delivery()
            assert sorted(receiver.delivered_ids()) == [m.id for m in sent]
            assert session.history.violations(receiver.delivered()) == []

    def test_session_audit(self, three):
        a = three.send(0, "a")
        three.enqueue(1, a)
        b = three.send(1, "b")
        three.enqueue(2, b)
        three.enqueue(2, a)
        assert three.causal_violations(2) == []
        assert three.causal_violations(1) == []


class TestSubscribe:
    def test_subscriber_sees_local_and_remote_deliveries(self, two):
        seen = []
        two.subscribe(lambda receiver_id, msg: seen.append((receiver_id, msg.payload)))
        a = two.send(0, "A")
        two.enqueue(1, a)
        assert seen == [(0, "A"), (1, "A")]

    def test_unsubscribe(self, two):
        seen = []
        unsubscribe = two.subscribe(lambda r, m: seen.append(m.id))
        unsubscribe()
        two.send(0, "A")
        assert seen == []

    def test_subscriber_error_propagates(self, two):
        def broken(receiver_id, msg):
            raise RuntimeError("display failed")
        a = two.send(0, "A")
        two.subscribe(broken)
        with pytest.raises(RuntimeError):
            two.enqueue(1, a)

    def test_failing_subscriber_does_not_hide_later_messages(self, two):
        seen = []

        def flaky(receiver_id, msg):
            if receiver_id == 1 and msg.payload == "A":
                raise RuntimeError("display failed")
            seen.append((receiver_id, msg.payload))

        a = two.send(0, "A")
        b = two.send(0, "B")
        two.enqueue(1, b)
        two.subscribe(flaky)
        with pytest.raises(RuntimeError):
            two.enqueue(1, a)
        assert seen == [(1, "B")]
        assert payloads(two.delivered(1)) == ["A", "B"]


class TestReset:
    def test_reset_discards_state(self, three):
        three.send(0, "a")
        three.enqueue(1, three.send(0, "b"))
        three.reset()
        assert three.epoch == 1
        assert all(three.current_clock(pid) == (0, 0, 0) for pid in range(3))
        assert three.pending_count(1) == 0
        assert three.delivered(0) == ()
        assert len(three.history) == 0
        assert three.send(2, "fresh").id == 0

    def test_message_from_before_reset_is_dropped(self, two):
        old = two.send(0, "old")
        two.reset()
        assert two.enqueue(1, old) == []
        assert two.current_clock(1) == (0, 0)
        assert two.pending_count(1) == 0

        new = two.send(0, "new")
        assert new.epoch == 1
        assert payloads(two.enqueue(1, new)) == ["new"]
        assert two.current_clock(1) == (1, 0)

    def test_reset_changes_participant_count(self, three):
        three.reset(num_processes=4)
        assert three.num_processes == 4
        assert three.current_clock(3) == (0, 0, 0, 0)

    def test_reset_rejects_bad_count(self, three):
        three.send(0, "kept")
        with pytest.raises(ConfigurationError):
            three.reset(num_processes=9)
        assert three.num_processes == 3
        assert three.current_clock(0) == (1, 0, 0)

    def test_stats(self, two):
        two.enqueue(1, two.send(0, "A"))
        stats = two.get_stats()
        assert stats['messages_sent'] == 1
        assert stats['delivered'] == {0: 1, 1: 1}
        assert stats['clocks'][1] == (1, 0)
