from __future__ import annotations

import sys
from importlib import resources
from pathlib import Path

import pytest
from pydantic import ValidationError

from trainsession.session.config import MinibatchSizeSchedule, RunConfig, SessionConfig


def test_session_config_defaults() -> None:
    cfg = SessionConfig()
    assert cfg.max_samples == sys.maxsize
    assert cfg.checkpoint_frequency == 0
    assert cfg.cross_validation_frequency == 0
    assert cfg.restore_from_checkpoint_if_exists
    assert not cfg.save_all_checkpoints
    assert cfg.minibatch_size.size_at(0) == 64
    assert cfg.resolved_checkpoint_path() is None


def test_minibatch_size_coerced_from_int() -> None:
    cfg = SessionConfig(minibatch_size=10)
    assert cfg.minibatch_size == MinibatchSizeSchedule.constant(10)


def test_minibatch_size_schedule_steps() -> None:
    cfg = SessionConfig(minibatch_size=[{"size": 16, "samples": 100}, {"size": 32, "samples": 50}, {"size": 64}])
    schedule = cfg.minibatch_size
    assert schedule.size_at(0) == 16
    assert schedule.size_at(99) == 16
    assert schedule.size_at(100) == 32
    assert schedule.size_at(149) == 32
    assert schedule.size_at(150) == 64
    assert schedule.size_at(10**9) == 64


@pytest.mark.parametrize(
    "kwargs",
    [
        {"checkpoint_frequency": -1},
        {"cross_validation_frequency": -5},
        {"max_samples": -1},
        {"minibatch_size": 0},
        {"minibatch_size": []},
    ],
)
def test_invalid_values_rejected(kwargs: dict[str, object]) -> None:
    with pytest.raises(ValidationError):
        SessionConfig(**kwargs)


def test_config_is_frozen() -> None:
    cfg = SessionConfig()
    with pytest.raises(ValidationError):
        cfg.max_samples = 10  # type: ignore[misc]


def test_run_config_loads_toml(tmp_path: Path) -> None:
    path = tmp_path / "session.toml"
    path.write_text(
        "\n".join(
            [
                'logs_dir = "logs"',
                "[session]",
                "max_samples = 500",
                "minibatch_size = [{ size = 8, samples = 80 }, { size = 32 }]",
                "checkpoint_frequency = 100",
                f'checkpoint_path = "{(tmp_path / "ckpt" / "model").as_posix()}"',
                "save_all_checkpoints = true",
                "[data]",
                "n_features = 3",
                "[model]",
                "lr = 0.5",
            ]
        )
    )

    cfg = RunConfig.load(path)
    assert cfg.session.max_samples == 500
    assert cfg.session.minibatch_size.size_at(79) == 8
    assert cfg.session.minibatch_size.size_at(80) == 32
    assert cfg.session.save_all_checkpoints
    assert cfg.session.resolved_checkpoint_path() == tmp_path / "ckpt" / "model"
    assert cfg.data.n_features == 3
    assert cfg.model.lr == 0.5
    assert cfg.resolved_logs_dir() is not None


def test_example_config_is_valid() -> None:
    example = resources.files("trainsession") / "session_config.example.toml"
    with resources.as_file(example) as path:
        cfg = RunConfig.load(path)
    assert cfg.session.checkpoint_frequency > 0
    assert cfg.session.checkpoint_path
