"""
Exponential Backoff Policy.

Maps a 1-indexed attempt number to a wait duration:

    delay(n) = min(base_delay * exponential_base ** (n - 1), ceiling)

The result is deterministic, non-decreasing in n, and never above the
ceiling. It paces queue redeliveries (visibility extension) and, when
configured, the gaps between budget escalations in the correction engine.
"""

import asyncio
from dataclasses import dataclass

# Exponent past which base * 2**n overflows float precision for any sane base.
_MAX_EXPONENT = 64


@dataclass(frozen=True)
class BackoffPolicy:
    """Configuration for backoff delays (seconds)."""

    base_delay: float = 5.0
    ceiling: float = 300.0
    exponential_base: float = 2.0

    def __post_init__(self) -> None:
        if self.base_delay <= 0:
            raise ValueError("base_delay must be positive")
        if self.ceiling < self.base_delay:
            raise ValueError("ceiling must be >= base_delay")
        if self.exponential_base < 1:
            raise ValueError("exponential_base must be >= 1")

    def delay(self, attempt_number: int) -> float:
        """Calculate delay for a given 1-indexed attempt number."""
        if attempt_number < 1:
            raise ValueError(f"attempt_number must be >= 1, got {attempt_number}")

        exponent = min(attempt_number - 1, _MAX_EXPONENT)
        return min(self.base_delay * (self.exponential_base ** exponent), self.ceiling)

    async def sleep(self, attempt_number: int) -> float:
        """Wait for the delay of the given attempt and return it."""
        delay = self.delay(attempt_number)
        await asyncio.sleep(delay)
        return delay

    @classmethod
    def from_settings(cls, settings) -> "BackoffPolicy":
        """Build from QueueSettings."""
        return cls(
            base_delay=settings.base_delay_seconds,
            ceiling=settings.backoff_ceiling_seconds,
        )
