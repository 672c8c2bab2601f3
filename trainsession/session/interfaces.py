from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence

from trainsession.session.minibatch import Minibatch, StreamMinibatch


@dataclass(frozen=True)
class DistributedFacet:
    """Distributed capability advertised by a learner.

    warmup_samples is the number of samples the learner wants processed
    redundantly by every worker before work is partitioned.
    """

    rank: int
    worker_count: int
    warmup_samples: int = 0


class Learner(Protocol):
    """A parameter learner owned by the trainer."""

    def distributed_facet(self) -> DistributedFacet | None:
        """Return the distributed facet, or None for a local learner."""
        ...


class MinibatchSource(Protocol):
    """Produce minibatches and snapshot/restore the read position."""

    def next_batch(
        self,
        target_size: int,
        worker_count: int,
        worker_rank: int,
    ) -> Mapping[str, StreamMinibatch]:
        """Return stream name -> data; an empty mapping means exhausted."""
        ...

    def position_snapshot(self) -> dict[str, Any]:
        ...

    def restore_position(self, state: Mapping[str, Any]) -> None:
        ...


class Trainer(Protocol):
    """The computation step driven by the session."""

    def step(self, batch: Minibatch) -> bool:
        """Train on one batch; return False when there is no more work."""
        ...

    def evaluate(self, batch: Minibatch) -> float:
        """Return an error measurement for one batch without training."""
        ...

    def total_samples_seen(self) -> int:
        ...

    def save_state(self, path: Path, external_state: dict[str, Any]) -> None:
        """Persist computation state together with the session's external state."""
        ...

    def restore_state(self, path: Path) -> dict[str, Any]:
        """Load computation state; return the external state saved with it."""
        ...

    def learners(self) -> Sequence[Learner]:
        ...
