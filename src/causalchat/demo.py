"""
Command-line simulation of a causally ordered group chat.

Every participant broadcasts a few messages, some of them replies sent right
after receiving someone else's message, over a network with random delays.
Each participant's delivered sequence is then printed and audited.
"""
import argparse
import asyncio
import json
import logging
import random
import sys
from typing import List, Optional

from .config import DELAY_OPTIONS, SessionConfig
from .errors import CausalDeliveryError
from .message import Message
from .session import CausalSession


def format_clock(clock) -> str:
    return f"[{', '.join(str(v) for v in clock)}]"


async def run_simulation(config: SessionConfig, rounds: int, timeout: float) -> CausalSession:
    session = CausalSession(config)
    rng = random.Random(config.seed)
    replies: List[tuple] = []

    def on_delivery(receiver_id: int, msg: Message) -> None:
        # Reply to a few remote messages so that causal chains form
        if msg.sender_id != receiver_id and msg.payload.startswith("hello") and rng.random() < 0.3:
            replies.append((receiver_id, msg.id))

    session.subscribe(on_delivery)
    await session.start()
    try:
        for round_no in range(rounds):
            for sender_id in range(config.num_processes):
                session.broadcast(sender_id, f"hello #{round_no} from P{sender_id}")
                await asyncio.sleep(rng.uniform(0, config.max_delay / 4))
            while replies:
                receiver_id, msg_id = replies.pop(0)
                session.broadcast(receiver_id, f"re: Msg#{msg_id}")

        if not await session.wait_until_quiet(timeout):
            print(f"Warning: messages still pending after {timeout:.1f}s")
    finally:
        await session.stop()
    return session


def print_report(session: CausalSession) -> int:
    """Print every participant's view; returns the number of causal violations."""
    total_violations = 0
    for pid in range(session.num_processes):
        print(f"\nP{pid} clock={format_clock(session.current_clock(pid))} "
              f"pending={session.pending_count(pid)}")
        for msg in session.delivered(pid):
            latency = msg.latency or 0.0
            print(f"   {format_clock(msg.stamped_clock):<18} P{msg.sender_id}: "
                  f"{msg.payload} ({latency * 1000:.0f}ms)")
        violations = session.causal_violations(pid)
        total_violations += len(violations)
        if violations:
            print(f"   Causal violations: {violations}")

    stats = session.get_stats()
    print("\nSummary:")
    print(f"   Messages sent: {stats['messages_sent']}")
    print(f"   Dependencies recorded: {session.history.get_statistics()['dependencies']}")
    print(f"   Causal violations: {total_violations}")
    return total_violations


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument('-n', '--num-processes', type=int, default=None)
    parser.add_argument('-d', '--delay', choices=sorted(DELAY_OPTIONS), default='NORMAL',
                        help='upper bound of the simulated network delay')
    parser.add_argument('-r', '--rounds', type=int, default=3)
    parser.add_argument('--seed', type=int, default=None)
    parser.add_argument('--timeout', type=float, default=10.0)
    parser.add_argument('--config', help='JSON file with SessionConfig fields')
    parser.add_argument('-v', '--verbose', action='store_true')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)

    try:
        if args.config:
            with open(args.config, 'r') as f:
                config = SessionConfig.from_dict(json.load(f))
        else:
            config = SessionConfig.with_delay(args.delay, seed=args.seed)
        if args.num_processes is not None:
            config.num_processes = args.num_processes
            config.validate()
    except (OSError, ValueError, CausalDeliveryError) as e:
        print(f"Invalid configuration: {e}")
        return 2

    print("=" * 60)
    print("  Causal chat simulation")
    print(f"  {config.num_processes} participants, max delay {config.max_delay:.1f}s")
    print("=" * 60)

    session = asyncio.run(run_simulation(config, args.rounds, args.timeout))
    return 1 if print_report(session) else 0


if __name__ == "__main__":
    sys.exit(main())
