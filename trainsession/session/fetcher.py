from __future__ import annotations

import logging
from typing import Mapping

from trainsession.common.errors import MissingStreamError
from trainsession.session.config import MinibatchSizeSchedule
from trainsession.session.interfaces import MinibatchSource
from trainsession.session.minibatch import Minibatch, StreamMinibatch
from trainsession.session.worker import SINGLE_WORKER, WorkerPartition


logger = logging.getLogger(__name__)


class MinibatchFetcher:
    """Pull minibatches from the sources and bind streams to model inputs."""

    def __init__(
        self,
        training_source: MinibatchSource,
        input_map: Mapping[str, str],
        minibatch_size: MinibatchSizeSchedule,
        validation_source: MinibatchSource | None = None,
    ) -> None:
        self.training_source = training_source
        self.validation_source = validation_source
        self.input_map = dict(input_map)
        self.minibatch_size = minibatch_size

    def fetch_training(self, partition: WorkerPartition, samples_seen: int) -> Minibatch:
        return self._fetch(self.training_source, partition, samples_seen)

    def fetch_validation(self, samples_seen: int) -> Minibatch:
        # Validation is never partitioned across workers.
        if self.validation_source is None:
            raise RuntimeError("No cross-validation source configured")
        return self._fetch(self.validation_source, SINGLE_WORKER, samples_seen)

    def _fetch(self, source: MinibatchSource, partition: WorkerPartition, samples_seen: int) -> Minibatch:
        size = self.minibatch_size.size_at(samples_seen)
        streams = source.next_batch(size, partition.worker_count, partition.rank)
        if not streams:
            logger.debug("Minibatch source exhausted at %d samples seen", samples_seen)
            return Minibatch.empty()
        return Minibatch(inputs=self._bind(streams), worker_count=partition.worker_count)

    def _bind(self, streams: Mapping[str, StreamMinibatch]) -> dict[str, StreamMinibatch]:
        bound: dict[str, StreamMinibatch] = {}
        for input_name, stream_name in self.input_map.items():
            try:
                bound[input_name] = streams[stream_name]
            except KeyError:
                raise MissingStreamError(input_name, stream_name) from None
        return bound
