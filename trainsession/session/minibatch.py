from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass(frozen=True)
class StreamMinibatch:
    """One stream's slice of a minibatch as produced by a source."""

    data: Any
    number_of_samples: int


@dataclass(frozen=True)
class Minibatch:
    """Model-facing minibatch: input name -> stream payload.

    An empty minibatch (no inputs) tells the trainer the sample budget or the
    source is exhausted. worker_count is how many workers share the global
    minibatch this one was cut from.
    """

    inputs: Mapping[str, StreamMinibatch] = field(default_factory=dict)
    worker_count: int = 1

    @classmethod
    def empty(cls) -> "Minibatch":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.inputs

    @property
    def num_samples(self) -> int:
        if not self.inputs:
            return 0
        return max(s.number_of_samples for s in self.inputs.values())

    def __getitem__(self, name: str) -> Any:
        return self.inputs[name].data

    def __len__(self) -> int:
        return len(self.inputs)
