from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from trainsession.common.errors import InvalidConfigurationError
from trainsession.session.interfaces import Learner
from trainsession.session.triggers import SessionProgress


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkerPartition:
    """Effective worker split used for a single fetch."""

    rank: int
    worker_count: int


SINGLE_WORKER = WorkerPartition(rank=0, worker_count=1)


@dataclass(frozen=True)
class WorkerIdentity:
    """This process's place in the distributed group.

    Until warmup_samples samples have been seen every worker processes the
    full, unpartitioned minibatch. Afterwards the real rank/count are used.
    """

    rank: int = 0
    worker_count: int = 1
    warmup_samples: int = 0

    def __post_init__(self) -> None:
        if self.worker_count < 1:
            raise InvalidConfigurationError("worker_count", f"must be >= 1, got {self.worker_count}")
        if not 0 <= self.rank < self.worker_count:
            raise InvalidConfigurationError(
                "rank",
                f"must be in [0, {self.worker_count}), got {self.rank}",
            )
        if self.warmup_samples < 0:
            raise InvalidConfigurationError("warmup_samples", f"must be >= 0, got {self.warmup_samples}")

    @property
    def is_distributed(self) -> bool:
        return self.worker_count > 1

    @property
    def is_writer(self) -> bool:
        return self.rank == 0

    def partition(self, progress: SessionProgress) -> WorkerPartition:
        """Return the partition for the next fetch.

        The switch to the real partition is latched on progress and never
        reverted, even if samples_seen later moves backwards.
        """
        if not progress.distributed and progress.samples_seen >= self.warmup_samples:
            progress.distributed = True
            if self.is_distributed:
                logger.info(
                    "Warm-up finished after %d samples; partitioning across %d workers (rank %d)",
                    progress.samples_seen,
                    self.worker_count,
                    self.rank,
                )
        if progress.distributed:
            return WorkerPartition(rank=self.rank, worker_count=self.worker_count)
        return SINGLE_WORKER


def resolve_worker_identity(learners: Iterable[Learner]) -> WorkerIdentity:
    """Derive the worker identity from the learners' distributed facets.

    The warm-up is the maximum any learner requires. All distributed learners
    must agree on rank and worker count.
    """
    identity: WorkerIdentity | None = None
    warmup = 0
    for learner in learners:
        facet = learner.distributed_facet()
        if facet is None:
            continue
        warmup = max(warmup, facet.warmup_samples)
        if identity is None:
            identity = WorkerIdentity(rank=facet.rank, worker_count=facet.worker_count)
        elif (identity.rank, identity.worker_count) != (facet.rank, facet.worker_count):
            raise InvalidConfigurationError(
                "learners",
                "distributed learners disagree on rank/worker count: "
                f"({identity.rank}, {identity.worker_count}) vs ({facet.rank}, {facet.worker_count})",
            )

    if identity is None:
        return WorkerIdentity()
    return WorkerIdentity(rank=identity.rank, worker_count=identity.worker_count, warmup_samples=warmup)
