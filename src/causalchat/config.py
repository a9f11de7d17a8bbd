"""
Session configuration and simulation constants.
"""
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from .errors import ConfigurationError

# Upper bounds for the simulated network delay, in seconds
DELAY_OPTIONS = {
    'FAST': 0.5,
    'NORMAL': 1.0,
    'SLOW': 2.0,
}

DEFAULT_NUM_PROCESSES = 3
MIN_PROCESSES = 2
MAX_PROCESSES = 5


@dataclass
class SessionConfig:
    """Settings for one simulated chat session."""

    num_processes: int = DEFAULT_NUM_PROCESSES
    max_delay: float = DELAY_OPTIONS['NORMAL']
    poll_interval: float = 0.5  # Fallback delivery pass period
    retry_interval: float = 0.1  # Re-check after a pass that delivered something
    seed: Optional[int] = None  # Seed for the default random delay generator

    def validate(self) -> 'SessionConfig':
        if not MIN_PROCESSES <= self.num_processes <= MAX_PROCESSES:
            raise ConfigurationError(
                f"num_processes must be within {MIN_PROCESSES}..{MAX_PROCESSES}, "
                f"got {self.num_processes}"
            )
        if self.max_delay < 0:
            raise ConfigurationError(f"max_delay must be >= 0, got {self.max_delay}")
        if self.poll_interval <= 0:
            raise ConfigurationError(f"poll_interval must be > 0, got {self.poll_interval}")
        if self.retry_interval <= 0:
            raise ConfigurationError(f"retry_interval must be > 0, got {self.retry_interval}")
        return self

    @classmethod
    def with_delay(cls, option: str, **kwargs) -> 'SessionConfig':
        """Build a config using one of the named DELAY_OPTIONS."""
        try:
            max_delay = DELAY_OPTIONS[option.upper()]
        except KeyError:
            raise ConfigurationError(
                f"Unknown delay option {option!r}, expected one of {sorted(DELAY_OPTIONS)}"
            ) from None
        return cls(max_delay=max_delay, **kwargs).validate()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SessionConfig':
        return cls(
            num_processes=data.get('num_processes', DEFAULT_NUM_PROCESSES),
            max_delay=data.get('max_delay', DELAY_OPTIONS['NORMAL']),
            poll_interval=data.get('poll_interval', 0.5),
            retry_interval=data.get('retry_interval', 0.1),
            seed=data.get('seed')
        ).validate()
