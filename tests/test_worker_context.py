from __future__ import annotations

from dataclasses import dataclass

import pytest

from trainsession.common.errors import InvalidConfigurationError
from trainsession.session.interfaces import DistributedFacet
from trainsession.session.triggers import SessionProgress
from trainsession.session.worker import SINGLE_WORKER, WorkerIdentity, WorkerPartition, resolve_worker_identity


@dataclass
class _Learner:
    facet: DistributedFacet | None = None

    def distributed_facet(self) -> DistributedFacet | None:
        return self.facet


def test_no_distributed_learner_means_single_worker() -> None:
    identity = resolve_worker_identity([_Learner(), _Learner()])
    assert identity == WorkerIdentity(rank=0, worker_count=1, warmup_samples=0)
    assert not identity.is_distributed


def test_warmup_is_maximum_over_distributed_learners() -> None:
    identity = resolve_worker_identity(
        [
            _Learner(DistributedFacet(rank=1, worker_count=4, warmup_samples=10)),
            _Learner(),
            _Learner(DistributedFacet(rank=1, worker_count=4, warmup_samples=50)),
            _Learner(DistributedFacet(rank=1, worker_count=4, warmup_samples=20)),
        ]
    )
    assert identity == WorkerIdentity(rank=1, worker_count=4, warmup_samples=50)


def test_conflicting_learners_rejected() -> None:
    with pytest.raises(InvalidConfigurationError) as exc:
        resolve_worker_identity(
            [
                _Learner(DistributedFacet(rank=0, worker_count=2)),
                _Learner(DistributedFacet(rank=0, worker_count=3)),
            ]
        )
    assert exc.value.parameter == "learners"


@pytest.mark.parametrize(
    "rank,worker_count,parameter",
    [(2, 2, "rank"), (-1, 2, "rank"), (0, 0, "worker_count")],
)
def test_invalid_identity_rejected(rank: int, worker_count: int, parameter: str) -> None:
    with pytest.raises(InvalidConfigurationError) as exc:
        WorkerIdentity(rank=rank, worker_count=worker_count)
    assert exc.value.parameter == parameter


def test_warmup_boundary_switches_partition() -> None:
    identity = WorkerIdentity(rank=2, worker_count=3, warmup_samples=100)
    progress = SessionProgress()

    for seen in (0, 50, 99):
        progress.samples_seen = seen
        assert identity.partition(progress) == SINGLE_WORKER

    progress.samples_seen = 100
    assert identity.partition(progress) == WorkerPartition(rank=2, worker_count=3)
    progress.samples_seen = 150
    assert identity.partition(progress) == WorkerPartition(rank=2, worker_count=3)


def test_partition_switch_is_never_reverted() -> None:
    identity = WorkerIdentity(rank=1, worker_count=2, warmup_samples=30)
    progress = SessionProgress(samples_seen=40)
    assert identity.partition(progress).worker_count == 2

    # A restore could move the counter back below the threshold.
    progress.samples_seen = 10
    assert identity.partition(progress) == WorkerPartition(rank=1, worker_count=2)


def test_zero_warmup_partitions_immediately() -> None:
    identity = WorkerIdentity(rank=1, worker_count=2, warmup_samples=0)
    assert identity.partition(SessionProgress()) == WorkerPartition(rank=1, worker_count=2)
