from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping

from trainsession.common.errors import InvalidConfigurationError
from trainsession.integration.event_bus import EventBus
from trainsession.integration.events import (
    CheckpointEnded,
    CheckpointStarted,
    CrossValidationEnded,
    MinibatchEnded,
    MinibatchStarted,
)
from trainsession.session.checkpointing import CheckpointStore
from trainsession.session.config import MinibatchSizeSchedule, SessionConfig
from trainsession.session.cross_validation import CrossValidationRunner
from trainsession.session.fetcher import MinibatchFetcher
from trainsession.session.interfaces import MinibatchSource, Trainer
from trainsession.session.minibatch import Minibatch
from trainsession.session.triggers import PeriodicTrigger, SessionProgress
from trainsession.session.worker import WorkerIdentity, resolve_worker_identity

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SessionSummary:
    samples_seen: int
    minibatches: int
    checkpoint_index: int
    cross_validation_rounds: int
    restored_from_index: int | None
    last_checkpoint: Path | None


class SessionOrchestrator:
    """Drive a trainer over a minibatch source until it reports completion.

    Each iteration fetches a minibatch (or an empty one once max_samples is
    reached), trains on it, then checks the checkpoint trigger and the
    cross-validation trigger, in that order. A final checkpoint is always
    written when checkpointing is enabled.

    The on_* hooks may be overridden; by default they publish session events
    to `bus` when one is given.
    """

    def __init__(
        self,
        config: SessionConfig,
        training_source: MinibatchSource,
        trainer: Trainer,
        input_map: Mapping[str, str],
        cross_validation_source: MinibatchSource | None = None,
        bus: EventBus | None = None,
    ) -> None:
        if training_source is None:
            raise InvalidConfigurationError("training_source", "Training minibatch source is not allowed to be None")
        if trainer is None:
            raise InvalidConfigurationError("trainer", "Trainer is not allowed to be None")
        if not input_map:
            raise InvalidConfigurationError("input_map", "Input mapping is not allowed to be empty")
        if config.checkpoint_frequency > 0 and not config.checkpoint_path:
            raise InvalidConfigurationError(
                "checkpoint_path",
                "Checkpoint path is required when checkpoint_frequency > 0",
            )
        if config.cross_validation_frequency > 0 and cross_validation_source is None:
            raise InvalidConfigurationError(
                "cross_validation_source",
                "Cross-validation source is required when cross_validation_frequency > 0",
            )

        self.config = config
        self.trainer = trainer
        self.training_source = training_source
        self.cross_validation_source = cross_validation_source
        self.bus = bus

        self.worker: WorkerIdentity = resolve_worker_identity(trainer.learners())
        self.progress = SessionProgress()

        self.checkpoint_trigger = PeriodicTrigger(config.checkpoint_frequency)
        self.cross_validation_trigger = PeriodicTrigger(config.cross_validation_frequency)

        self.fetcher = MinibatchFetcher(
            training_source=training_source,
            input_map=input_map,
            minibatch_size=config.minibatch_size,
            validation_source=cross_validation_source,
        )

        checkpoint_path = config.resolved_checkpoint_path()
        self.checkpoints: CheckpointStore | None = None
        if checkpoint_path is not None:
            self.checkpoints = CheckpointStore(
                checkpoint_path,
                trainer,
                training_source,
                save_all=config.save_all_checkpoints,
                is_writer=self.worker.is_writer,
                on_start=self.on_checkpoint_start,
                on_end=self.on_checkpoint_end,
            )

        self.cross_validation: CrossValidationRunner | None = None
        if cross_validation_source is not None:
            self.cross_validation = CrossValidationRunner(
                self.fetcher,
                trainer,
                on_end=self.on_cross_validation_end,
            )

        self._cross_validation_rounds = 0
        self._last_checkpoint: Path | None = None

    # --- Control loop ---------------------------------------------------------

    def train(self) -> SessionSummary:
        restored_from: int | None = None
        if self.config.restore_from_checkpoint_if_exists and self.checkpoints is not None:
            restored_from = self.restore_latest()

        logger.info(
            "Starting training session: max_samples=%d rank=%d/%d warmup=%d",
            self.config.max_samples,
            self.worker.rank,
            self.worker.worker_count,
            self.worker.warmup_samples,
        )

        should_train = self.config.max_samples > 0
        while should_train:
            partition = self.worker.partition(self.progress)
            if self.progress.samples_seen < self.config.max_samples:
                batch = self.fetcher.fetch_training(partition, self.progress.samples_seen)
            else:
                batch = Minibatch.empty()

            self.on_minibatch_start()
            should_train = self.trainer.step(batch)
            self.progress.samples_seen = self.trainer.total_samples_seen()
            if not batch.is_empty:
                self.progress.minibatches += 1
            self.on_minibatch_end(should_train)

            self._checkpoint_if_needed()
            self._cross_validate_if_needed()

        if self.checkpoint_trigger.enabled:
            self.save_checkpoint(is_last=True)

        logger.info(
            "Training session finished: %d samples, %d minibatches",
            self.progress.samples_seen,
            self.progress.minibatches,
        )
        return SessionSummary(
            samples_seen=self.progress.samples_seen,
            minibatches=self.progress.minibatches,
            checkpoint_index=self.progress.checkpoint_index,
            cross_validation_rounds=self._cross_validation_rounds,
            restored_from_index=restored_from,
            last_checkpoint=self._last_checkpoint,
        )

    def _checkpoint_if_needed(self) -> None:
        index = self.checkpoint_trigger.poll(self.progress.samples_seen, self.progress.checkpoint_index)
        if index is None:
            return
        self.progress.checkpoint_index = index
        self.save_checkpoint(is_last=False)

    def _cross_validate_if_needed(self) -> None:
        index = self.cross_validation_trigger.poll(
            self.progress.samples_seen,
            self.progress.cross_validation_index,
        )
        if index is None:
            return
        self.progress.cross_validation_index = index
        self.cross_validate()

    # --- Checkpointing and validation ----------------------------------------

    def save_checkpoint(self, is_last: bool = False) -> Path | None:
        if self.checkpoints is None:
            raise RuntimeError("Checkpointing is not configured for this session")
        path = self.checkpoints.save(self.progress.checkpoint_index, is_last=is_last)
        if path is not None:
            self._last_checkpoint = path
        return path

    def restore_from_checkpoint(self, path: Path) -> int:
        """Restore from an explicit checkpoint path."""
        if self.checkpoints is None:
            raise RuntimeError("Checkpointing is not configured for this session")
        index = self.checkpoints.restore(Path(path))
        self._sync_after_restore(index)
        return index

    def restore_latest(self) -> int | None:
        if self.checkpoints is None:
            return None
        index = self.checkpoints.restore_latest()
        if index is not None:
            self._sync_after_restore(index)
        return index

    def _sync_after_restore(self, index: int) -> None:
        self.progress.checkpoint_index = index
        self.progress.samples_seen = self.trainer.total_samples_seen()
        if self.cross_validation_trigger.enabled:
            self.progress.cross_validation_index = (
                self.progress.samples_seen // self.cross_validation_trigger.period
            )

    def cross_validate(self) -> None:
        if self.cross_validation is None:
            raise RuntimeError("Cross-validation is not configured for this session")
        self.cross_validation.run(self.progress.cross_validation_index, self.progress.samples_seen)
        self._cross_validation_rounds += 1

    # --- Hooks ----------------------------------------------------------------

    def on_minibatch_start(self) -> None:
        if self.bus is not None:
            self.bus.publish(MinibatchStarted(occurred_at=_now(), samples_seen=self.progress.samples_seen))

    def on_minibatch_end(self, should_continue: bool = True) -> None:
        if self.bus is not None:
            self.bus.publish(
                MinibatchEnded(
                    occurred_at=_now(),
                    samples_seen=self.progress.samples_seen,
                    should_continue=should_continue,
                )
            )

    def on_checkpoint_start(self, index: int) -> None:
        if self.bus is not None:
            self.bus.publish(CheckpointStarted(occurred_at=_now(), index=index))

    def on_checkpoint_end(self, index: int) -> None:
        if self.bus is not None:
            self.bus.publish(CheckpointEnded(occurred_at=_now(), index=index))

    def on_cross_validation_end(self, round_index: int, mean_error: float) -> None:
        if self.bus is not None:
            self.bus.publish(
                CrossValidationEnded(occurred_at=_now(), round_index=round_index, mean_error=mean_error)
            )


def create_basic_training_session(
    training_source: MinibatchSource,
    trainer: Trainer,
    input_map: Mapping[str, str],
    minibatch_size: int | MinibatchSizeSchedule,
    checkpoint_frequency: int = 0,
    checkpoint_path: str = "",
) -> SessionOrchestrator:
    """Build a session with defaults for everything but checkpointing."""
    config = SessionConfig(
        minibatch_size=minibatch_size,
        checkpoint_frequency=checkpoint_frequency,
        checkpoint_path=checkpoint_path,
    )
    return SessionOrchestrator(
        config=config,
        training_source=training_source,
        trainer=trainer,
        input_map=input_map,
    )
