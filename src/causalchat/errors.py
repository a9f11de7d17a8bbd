"""
Exception hierarchy for the causal delivery engine.

Out-of-order or concurrent messages are never errors; they are buffered.
"""


class CausalDeliveryError(Exception):
    """Base class for all causalchat errors."""


class ShapeMismatchError(CausalDeliveryError, ValueError):
    """A vector clock of the wrong length was supplied."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Expected a clock of length {expected}, got {actual}")


class InvalidProcessIdError(CausalDeliveryError, IndexError):
    """A process id outside 0..N-1 was supplied."""

    def __init__(self, process_id: int, num_processes: int):
        self.process_id = process_id
        self.num_processes = num_processes
        super().__init__(
            f"Process id {process_id} is outside 0..{num_processes - 1}"
        )


class ConfigurationError(CausalDeliveryError, ValueError):
    """Session configuration is invalid."""
