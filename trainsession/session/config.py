from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _expand(path: str) -> Path:
    return Path(os.path.expanduser(path)).absolute()


def _read_toml(path: Path) -> dict[str, Any]:
    """Read TOML into a dict, supporting Python 3.10+.

    Uses tomllib when available, falls back to tomli.
    """
    data = path.read_bytes()
    try:
        import tomllib  # type: ignore[attr-defined]

        return tomllib.loads(data.decode("utf-8"))
    except ModuleNotFoundError:
        import tomli  # type: ignore[import-not-found]

        return tomli.loads(data.decode("utf-8"))


class MinibatchSizeStep(BaseModel):
    size: int = Field(gt=0, description="Minibatch size in samples.")
    samples: int = Field(
        default=0,
        ge=0,
        description="How many samples this size applies to; 0 on the last step means forever.",
    )


class MinibatchSizeSchedule(BaseModel):
    """Minibatch size as a function of samples seen.

    Steps apply in order, each for its `samples` count; the last step
    applies to everything after.
    """

    model_config = ConfigDict(frozen=True)

    steps: tuple[MinibatchSizeStep, ...] = Field(min_length=1)

    @classmethod
    def constant(cls, size: int) -> "MinibatchSizeSchedule":
        return cls(steps=(MinibatchSizeStep(size=size),))

    def size_at(self, samples_seen: int) -> int:
        boundary = 0
        for step in self.steps[:-1]:
            boundary += step.samples
            if samples_seen < boundary:
                return step.size
        return self.steps[-1].size


class SessionConfig(BaseModel):
    """Immutable parameters of one training session.

    Pairings with collaborators (checkpoint path vs frequency, validation
    source vs frequency) are checked when the orchestrator is built.
    """

    model_config = ConfigDict(frozen=True)

    max_samples: int = Field(default=sys.maxsize, ge=0, description="Stop fetching after this many samples.")
    minibatch_size: MinibatchSizeSchedule = Field(default_factory=lambda: MinibatchSizeSchedule.constant(64))
    checkpoint_frequency: int = Field(default=0, ge=0, description="Checkpoint every N samples; 0 disables.")
    checkpoint_path: str = Field(default="", description="Canonical checkpoint path.")
    save_all_checkpoints: bool = Field(default=False, description="Keep every numbered checkpoint.")
    restore_from_checkpoint_if_exists: bool = Field(default=True)
    cross_validation_frequency: int = Field(
        default=0,
        ge=0,
        description="Cross-validate every N samples; 0 disables.",
    )

    @field_validator("minibatch_size", mode="before")
    @classmethod
    def _coerce_minibatch_size(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return {"steps": [{"size": value}]}
        if isinstance(value, (list, tuple)):
            return {"steps": value}
        return value

    def resolved_checkpoint_path(self) -> Path | None:
        if not self.checkpoint_path:
            return None
        return _expand(self.checkpoint_path)


class SyntheticDataConfig(BaseModel):
    n_samples: int = Field(default=2048, gt=0)
    n_validation_samples: int = Field(default=256, ge=0)
    n_features: int = Field(default=8, gt=0)
    noise: float = Field(default=0.1, ge=0.0)
    max_sweeps: int | None = Field(default=None, description="Sweeps over the training data; None is unbounded.")
    rng_seed: int = Field(default=123)


class ModelConfig(BaseModel):
    hidden_size: int = Field(default=32, gt=0)
    lr: float = Field(default=1e-2, gt=0.0)
    device: str | None = Field(default=None, description="mps recommended on Apple Silicon.")
    warmup_samples: int = Field(
        default=0,
        ge=0,
        description="Samples processed by every worker before partitioning (distributed runs only).",
    )


class RunConfig(BaseModel):
    """Everything the `train` command needs."""

    session: SessionConfig = Field(default_factory=SessionConfig)
    data: SyntheticDataConfig = Field(default_factory=SyntheticDataConfig)
    model: ModelConfig = Field(default_factory=ModelConfig)
    logs_dir: str | None = Field(default=None)

    @classmethod
    def load(cls, path: Path) -> "RunConfig":
        raw = _read_toml(path)
        return cls.model_validate(raw)

    def resolved_logs_dir(self) -> Path | None:
        if self.logs_dir is None:
            return None
        return _expand(self.logs_dir)
