from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class DomainEvent:
    """Base type for all session events."""

    occurred_at: datetime


# --- Minibatch events --------------------------------------------------------


@dataclass(frozen=True)
class MinibatchStarted(DomainEvent):
    samples_seen: int


@dataclass(frozen=True)
class MinibatchEnded(DomainEvent):
    samples_seen: int
    should_continue: bool


# --- Checkpoint events -------------------------------------------------------


@dataclass(frozen=True)
class CheckpointStarted(DomainEvent):
    index: int


@dataclass(frozen=True)
class CheckpointEnded(DomainEvent):
    index: int


# --- Cross-validation events -------------------------------------------------


@dataclass(frozen=True)
class CrossValidationEnded(DomainEvent):
    round_index: int
    mean_error: float
