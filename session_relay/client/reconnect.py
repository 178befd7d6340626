"""
Reconnection policy for the live session connection.

Exponential backoff with a capped delay and a bounded number of attempts.
The counter is incremented before the delay is computed, so with the
defaults the delays run 2, 4, 8, 16, 30 seconds and then stop.
"""


class ReconnectPolicy:
    """Retry state for one persistent connection."""

    def __init__(self, max_attempts: int = 5, base_delay: float = 1.0, max_delay: float = 30.0) -> None:
        if max_attempts < 0:
            raise ValueError("max_attempts must be non-negative")
        if base_delay <= 0 or max_delay <= 0:
            raise ValueError("Delays must be positive")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.attempts = 0

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def next_delay(self) -> float | None:
        """
        Consume one attempt and return the seconds to wait before it.

        Returns:
            The delay, or None when no attempts remain
        """
        if self.exhausted:
            return None
        self.attempts += 1
        return min(self.base_delay * 2**self.attempts, self.max_delay)

    def reset(self) -> None:
        """Call after a successful connect."""
        self.attempts = 0

    def __repr__(self) -> str:
        return f"ReconnectPolicy(attempts={self.attempts}, max_attempts={self.max_attempts})"
