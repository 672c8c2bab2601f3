from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable

from trainsession.session.fetcher import MinibatchFetcher
from trainsession.session.interfaces import Trainer


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CrossValidationResult:
    round_index: int
    mean_error: float
    minibatches: int


class CrossValidationRunner:
    """Drain the validation source once and report the mean error."""

    def __init__(
        self,
        fetcher: MinibatchFetcher,
        trainer: Trainer,
        on_end: Callable[[int, float], None] | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.trainer = trainer
        self.on_end = on_end

    def run(self, round_index: int, samples_seen: int = 0) -> CrossValidationResult:
        accumulated = 0.0
        n = 0
        while True:
            batch = self.fetcher.fetch_validation(samples_seen)
            if batch.is_empty:
                break
            accumulated += float(self.trainer.evaluate(batch))
            n += 1

        if n == 0:
            logger.warning("Cross-validation round %d saw no minibatches", round_index)
            mean_error = math.nan
        else:
            mean_error = accumulated / n

        logger.info(
            "Cross-validation round %d: mean error %.6f over %d minibatches",
            round_index,
            mean_error,
            n,
        )
        if self.on_end is not None:
            self.on_end(round_index, mean_error)
        return CrossValidationResult(round_index=round_index, mean_error=mean_error, minibatches=n)
