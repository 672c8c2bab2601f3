"""Training-session orchestration.

This package provides:
- Session configuration (pydantic, TOML)
- Worker partitioning with a distributed warm-up phase
- Periodic checkpoint and cross-validation scheduling
- Checkpoint save/restore with on-disk discovery of the newest snapshot
- The resumable control loop tying these together

A session is designed to be robust to interruption: after restart, it
restores from the newest complete checkpoint and continues.
"""
from __future__ import annotations

from trainsession.session.checkpointing import CheckpointStore
from trainsession.session.config import MinibatchSizeSchedule, SessionConfig
from trainsession.session.cross_validation import CrossValidationResult, CrossValidationRunner
from trainsession.session.fetcher import MinibatchFetcher
from trainsession.session.minibatch import Minibatch, StreamMinibatch
from trainsession.session.orchestrator import (
    SessionOrchestrator,
    SessionSummary,
    create_basic_training_session,
)
from trainsession.session.triggers import PeriodicTrigger, SessionProgress
from trainsession.session.worker import WorkerIdentity, WorkerPartition, resolve_worker_identity

__all__ = [
    "CheckpointStore",
    "CrossValidationResult",
    "CrossValidationRunner",
    "Minibatch",
    "MinibatchFetcher",
    "MinibatchSizeSchedule",
    "PeriodicTrigger",
    "SessionConfig",
    "SessionOrchestrator",
    "SessionProgress",
    "SessionSummary",
    "StreamMinibatch",
    "WorkerIdentity",
    "WorkerPartition",
    "create_basic_training_session",
    "resolve_worker_identity",
]
