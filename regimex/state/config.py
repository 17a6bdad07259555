"""
State Machine Configuration
"""

from dataclasses import dataclass, asdict
from typing import Dict

from regimex.errors import ConfigurationError


@dataclass
class StateConfig:
    """Transition validation and locking configuration"""

    # Lock expiry, in clock units (5 minutes of wall time)
    lock_timeout: float = 300.0

    # Transition log ring
    transition_log_size: int = 20

    # Anti-flapping guard
    flap_window: int = 10
    max_changes_in_window: int = 3

    # Direct BULL <-> BEAR confirmation
    min_reversal_strength: int = 80

    # Key namespace in the store
    key_prefix: str = "state"

    def validate(self) -> bool:
        if self.lock_timeout <= 0:
            raise ConfigurationError("lock_timeout must be positive")
        if self.transition_log_size < self.flap_window:
            raise ConfigurationError("transition_log_size must cover flap_window")
        if self.flap_window < 2:
            raise ConfigurationError("flap_window must be at least 2")
        if not 0 <= self.min_reversal_strength <= 100:
            raise ConfigurationError("min_reversal_strength must be in [0, 100]")
        return True

    def to_dict(self) -> Dict:
        return asdict(self)
