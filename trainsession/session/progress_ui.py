from __future__ import annotations

import math
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)

from trainsession.integration.event_bus import EventBus
from trainsession.integration.events import CheckpointEnded, CrossValidationEnded, MinibatchEnded


@dataclass(frozen=True)
class Ui:
    console: Console
    progress: Progress

    def log(self, message: str) -> None:
        self.console.print(message)

    def attach(self, bus: EventBus, max_samples: int) -> TaskID:
        """Follow a session through its events; returns the samples task."""
        total = None if max_samples >= sys.maxsize else max_samples
        task = self.progress.add_task("samples", total=total)

        def on_minibatch(event: MinibatchEnded) -> None:
            self.progress.update(task, completed=event.samples_seen)

        def on_checkpoint(event: CheckpointEnded) -> None:
            self.log(f"[green]checkpoint[/green] {event.index}")

        def on_cross_validation(event: CrossValidationEnded) -> None:
            error = "n/a" if math.isnan(event.mean_error) else f"{event.mean_error:.6f}"
            self.log(f"[cyan]cross-validation[/cyan] round {event.round_index}: mean error {error}")

        bus.subscribe(MinibatchEnded, on_minibatch)
        bus.subscribe(CheckpointEnded, on_checkpoint)
        bus.subscribe(CrossValidationEnded, on_cross_validation)
        return task


@contextmanager
def progress_ui() -> Iterator[Ui]:
    console = Console()
    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        TimeRemainingColumn(),
        console=console,
        transient=False,
    )
    with progress:
        yield Ui(console=console, progress=progress)
