from __future__ import annotations

import json
import logging
from dataclasses import asdict
from importlib import resources
from pathlib import Path

import numpy as np
import torch
import typer
from torch import nn

from trainsession.adapters.array_source import ArrayMinibatchSource
from trainsession.adapters.torch_trainer import TorchLearner, TorchTrainer, process_group_facet
from trainsession.common.logging_config import configure_logging
from trainsession.integration.event_bus import InMemoryEventBus
from trainsession.session.checkpointing import latest_checkpoint, numbered_candidates
from trainsession.session.config import ModelConfig, RunConfig, SyntheticDataConfig
from trainsession.session.orchestrator import SessionOrchestrator
from trainsession.session.progress_ui import progress_ui


app = typer.Typer(add_completion=False)


def _synthetic_regression(cfg: SyntheticDataConfig) -> tuple[dict[str, np.ndarray], dict[str, np.ndarray]]:
    rng = np.random.default_rng(cfg.rng_seed)
    weights = rng.normal(size=(cfg.n_features, 1)).astype(np.float32)

    def make(n: int) -> dict[str, np.ndarray]:
        x = rng.normal(size=(n, cfg.n_features)).astype(np.float32)
        y = x @ weights + cfg.noise * rng.normal(size=(n, 1)).astype(np.float32)
        return {"x": x, "y": y.astype(np.float32)}

    return make(cfg.n_samples), make(cfg.n_validation_samples)


def _build_trainer(model_cfg: ModelConfig, n_features: int, rng_seed: int) -> TorchTrainer:
    torch.manual_seed(rng_seed)
    model = nn.Sequential(
        nn.Linear(n_features, model_cfg.hidden_size),
        nn.ReLU(),
        nn.Linear(model_cfg.hidden_size, 1),
    )
    optimizer = torch.optim.SGD(model.parameters(), lr=model_cfg.lr)
    learner = TorchLearner(optimizer, distributed=process_group_facet(model_cfg.warmup_samples))
    return TorchTrainer(
        model,
        nn.functional.mse_loss,
        optimizer,
        learners=[learner],
        device=model_cfg.device,
    )


@app.command()
def init_config(
    path: str = typer.Argument(
        "session_config.toml",
        help="Where to write the session configuration TOML",
    ),
) -> None:
    """Write an example session_config.toml."""
    template = resources.files("trainsession") / "session_config.example.toml"
    if not template.is_file():
        raise RuntimeError(f"Missing template file: {template}")

    out = Path(path).expanduser()
    if out.exists():
        raise typer.BadParameter(f"Refusing to overwrite existing file: {out}")

    out.write_text(template.read_text())
    typer.echo(f"Wrote {out} (edit it, then run: trainsession train --config {out})")


@app.command()
def train(
    config: str = typer.Option("session_config.toml", help="Path to session_config.toml"),
    verbose: bool = typer.Option(False, help="Log per-minibatch details"),
) -> None:
    """Run a resumable training session on synthetic regression data."""
    cfg = RunConfig.load(Path(config).expanduser())
    logs_dir = cfg.resolved_logs_dir()
    configure_logging(logging.DEBUG if verbose else logging.INFO, log_dir=str(logs_dir) if logs_dir else None)

    train_arrays, val_arrays = _synthetic_regression(cfg.data)
    training_source = ArrayMinibatchSource(train_arrays, max_sweeps=cfg.data.max_sweeps)
    validation_source = None
    if cfg.data.n_validation_samples > 0 and cfg.session.cross_validation_frequency > 0:
        validation_source = ArrayMinibatchSource(val_arrays, max_sweeps=1, rewind=True)

    trainer = _build_trainer(cfg.model, cfg.data.n_features, cfg.data.rng_seed)
    bus = InMemoryEventBus()
    session = SessionOrchestrator(
        config=cfg.session,
        training_source=training_source,
        trainer=trainer,
        input_map={"features": "x", "labels": "y"},
        cross_validation_source=validation_source,
        bus=bus,
    )

    with progress_ui() as ui:
        ui.attach(bus, cfg.session.max_samples)
        summary = session.train()

    typer.echo(json.dumps(asdict(summary), indent=2, default=str))


@app.command()
def checkpoints(
    path: str = typer.Option(..., help="Canonical checkpoint path"),
) -> None:
    """List numbered checkpoints and show which one a session would restore."""
    canonical = Path(path).expanduser().absolute()
    if canonical.exists():
        typer.echo(f"canonical: {canonical}")
    for number, candidate in numbered_candidates(canonical):
        typer.echo(f"{number}: {candidate}")

    chosen = latest_checkpoint(canonical)
    typer.echo(f"restore: {chosen if chosen is not None else 'none (cold start)'}")
