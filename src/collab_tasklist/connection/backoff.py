# src/collab_tasklist/connection/backoff.py

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ReconnectPolicy:
    """
    Delay schedule for automatic reconnects.

    delay(n) = min(max_delay, base_delay + step * n) for the n-th (0-based) attempt.
    The sequence is non-decreasing and never exceeds max_delay. After max_attempts
    automatic attempts the connection manager gives up.
    """

    base_delay: float = 1.0
    step: float = 1.0
    max_delay: float = 30.0
    max_attempts: int = 10

    def __post_init__(self) -> None:
        if self.base_delay < 0 or self.step < 0 or self.max_delay < 0:
            raise ValueError("reconnect delays must be non-negative")
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be non-negative")

    @classmethod
    def from_settings(cls, settings) -> ReconnectPolicy:
        return cls(
            base_delay=float(getattr(settings, "reconnect_base_delay", 1.0)),
            step=float(getattr(settings, "reconnect_step", 1.0)),
            max_delay=float(getattr(settings, "reconnect_max_delay", 30.0)),
            max_attempts=int(getattr(settings, "max_reconnect_attempts", 10)),
        )

    def delay_for(self, attempt: int) -> float:
        return min(self.max_delay, self.base_delay + self.step * max(0, attempt))

    def exhausted(self, attempts: int) -> bool:
        return attempts >= self.max_attempts

    def schedule(self) -> list[float]:
        """Every delay this policy will ever wait, in order."""
        return [self.delay_for(n) for n in range(self.max_attempts)]
