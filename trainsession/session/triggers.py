from __future__ import annotations

from dataclasses import dataclass


@dataclass
class SessionProgress:
    """Mutable progress of a session; the only state the loop carries."""

    samples_seen: int = 0
    checkpoint_index: int = 0
    cross_validation_index: int = 0
    distributed: bool = False
    minibatches: int = 0


@dataclass(frozen=True)
class PeriodicTrigger:
    """Decide whether a period boundary was crossed since the last firing.

    Works for any monotonically increasing counter, whatever the increment:
    the boundary index is seen // period, and it fires only when that index
    moves past the last one recorded. A period of 0 never fires.
    """

    period: int

    def __post_init__(self) -> None:
        if self.period < 0:
            raise ValueError(f"period must be >= 0, got {self.period}")

    @property
    def enabled(self) -> bool:
        return self.period > 0

    def poll(self, seen: int, last_index: int) -> int | None:
        """Return the new index if a boundary was crossed, else None."""
        if self.period == 0:
            return None
        candidate = seen // self.period
        if candidate <= last_index:
            return None
        return candidate
