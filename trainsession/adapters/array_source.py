from __future__ import annotations

import logging
from typing import Any, Mapping

import numpy as np

from trainsession.session.minibatch import StreamMinibatch


logger = logging.getLogger(__name__)


class ArrayMinibatchSource:
    """Serve minibatches sequentially from in-memory numpy arrays.

    All streams share the sample axis 0. A request for `target_size`
    samples takes the next global slice (never crossing the end of a sweep)
    and gives each worker a contiguous share of it.

    With max_sweeps=None the data repeats forever. With rewind=True the
    source returns one empty batch after its last sweep and then starts
    over, so the same instance can serve repeated validation passes.
    """

    def __init__(
        self,
        streams: Mapping[str, np.ndarray],
        max_sweeps: int | None = None,
        rewind: bool = False,
    ) -> None:
        if not streams:
            raise ValueError("At least one stream is required")
        lengths = {name: len(arr) for name, arr in streams.items()}
        if len(set(lengths.values())) != 1:
            raise ValueError(f"Streams must have equal length, got {lengths}")
        n = next(iter(lengths.values()))
        if n == 0:
            raise ValueError("Streams must not be empty")
        if max_sweeps is not None and max_sweeps < 1:
            raise ValueError(f"max_sweeps must be >= 1, got {max_sweeps}")

        self.streams = {name: np.asarray(arr) for name, arr in streams.items()}
        self.n_samples = n
        self.max_sweeps = max_sweeps
        self.rewind = rewind
        self._position = 0
        self._sweep = 0

    def _exhausted(self) -> bool:
        return self.max_sweeps is not None and self._sweep >= self.max_sweeps

    def next_batch(
        self,
        target_size: int,
        worker_count: int = 1,
        worker_rank: int = 0,
    ) -> dict[str, StreamMinibatch]:
        if self._exhausted():
            if self.rewind:
                self._position = 0
                self._sweep = 0
            return {}

        start = self._position
        end = min(start + target_size, self.n_samples)
        count = end - start
        lo = start + (count * worker_rank) // worker_count
        hi = start + (count * (worker_rank + 1)) // worker_count

        self._position = end
        if self._position >= self.n_samples:
            self._position = 0
            self._sweep += 1

        return {
            name: StreamMinibatch(data=arr[lo:hi], number_of_samples=hi - lo)
            for name, arr in self.streams.items()
        }

    def position_snapshot(self) -> dict[str, Any]:
        return {"position": self._position, "sweep": self._sweep}

    def restore_position(self, state: Mapping[str, Any]) -> None:
        position = int(state.get("position", 0))
        if not 0 <= position < self.n_samples:
            raise ValueError(f"Position {position} is outside [0, {self.n_samples})")
        self._position = position
        self._sweep = int(state.get("sweep", 0))
        logger.debug("Source restored to sweep %d position %d", self._sweep, self._position)
