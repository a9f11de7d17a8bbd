"""
causalchat - causal message delivery for a simulated group chat.

This package implements:
- Vector clocks with happens-before and concurrency checks
- A pending buffer enforcing the causal delivery condition
- Per-participant fixpoint delivery over a simulated, reordering network
- An audit of delivered sequences against the recorded causal history
"""

from .causal_buffer import CausalBuffer
from .causality import CausalHistory
from .config import (
    DELAY_OPTIONS,
    DEFAULT_NUM_PROCESSES,
    MAX_PROCESSES,
    MIN_PROCESSES,
    SessionConfig,
)
from .errors import (
    CausalDeliveryError,
    ConfigurationError,
    InvalidProcessIdError,
    ShapeMismatchError,
)
from .message import Message
from .network import DelayGenerator, ScriptedDelay, SimulatedNetwork, UniformDelay
from .participant import Participant
from .session import CausalSession
from .vector_clock import VectorClock, happens_before, is_concurrent

__version__ = "0.1.0"
__all__ = [
    "VectorClock",
    "happens_before",
    "is_concurrent",
    "Message",
    "CausalBuffer",
    "Participant",
    "CausalSession",
    "CausalHistory",
    "DelayGenerator",
    "UniformDelay",
    "ScriptedDelay",
    "SimulatedNetwork",
    "SessionConfig",
    "DELAY_OPTIONS",
    "DEFAULT_NUM_PROCESSES",
    "MIN_PROCESSES",
    "MAX_PROCESSES",
    "CausalDeliveryError",
    "ShapeMismatchError",
    "InvalidProcessIdError",
    "ConfigurationError"
]
