from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

from trainsession.common.errors import CheckpointError
from trainsession.session.interfaces import MinibatchSource, Trainer


logger = logging.getLogger(__name__)

CHECKPOINT_INDEX_KEY = "CheckpointIndex"
TRAINING_SOURCE_KEY = "TrainingMinibatchSource"
SIDECAR_SUFFIX = ".ckp"

CheckpointHook = Callable[[int], None]


def sidecar_path(path: Path) -> Path:
    return path.with_name(path.name + SIDECAR_SUFFIX)


def numbered_path(path: Path, index: int) -> Path:
    return path.with_name(f"{path.name}{index}")


def numbered_candidates(path: Path) -> list[tuple[int, Path]]:
    """Numbered checkpoints P<N> that have a sidecar, sorted by N."""
    path = Path(path)
    parent = path.parent
    if not parent.is_dir():
        return []

    prefix = str(path)
    found: list[tuple[int, Path]] = []
    for entry in parent.iterdir():
        full = str(entry)
        if not full.startswith(prefix) or not entry.is_file():
            continue
        suffix = full[len(prefix):]
        if not (suffix.isascii() and suffix.isdigit()):
            continue
        try:
            number = int(suffix)
        except ValueError:
            logger.debug("Ignoring checkpoint candidate with malformed number: %s", entry)
            continue
        if not sidecar_path(entry).exists():
            logger.debug("Ignoring checkpoint candidate without sidecar: %s", entry)
            continue
        found.append((number, entry))
    found.sort(key=lambda item: item[0])
    return found


def latest_checkpoint(path: Path) -> Path | None:
    """The canonical checkpoint if present, else the highest numbered candidate."""
    path = Path(path)
    if path.exists():
        return path
    found = numbered_candidates(path)
    if not found:
        return None
    return found[-1][1]


class CheckpointStore:
    """Save, restore and discover resumable session checkpoints.

    Layout relative to the canonical path P:
    - P: the final ("last") checkpoint.
    - P<N>: numbered checkpoint, kept only when save_all is set.
    - P<N>.ckp: sidecar; P<N> is restorable only if this exists.

    The trainer owns the bytes of both files; the store decides which path
    is written and what session state travels with it.
    """

    def __init__(
        self,
        path: Path,
        trainer: Trainer,
        source: MinibatchSource,
        *,
        save_all: bool = False,
        is_writer: bool = True,
        on_start: CheckpointHook | None = None,
        on_end: CheckpointHook | None = None,
    ) -> None:
        self.path = Path(path)
        self.trainer = trainer
        self.source = source
        self.save_all = save_all
        self.is_writer = is_writer
        self.on_start = on_start
        self.on_end = on_end

    def target_path(self, index: int, is_last: bool) -> Path:
        if self.save_all and not is_last:
            return numbered_path(self.path, index)
        return self.path

    def save(self, index: int, is_last: bool = False) -> Path | None:
        """Save a checkpoint for `index`; return the path written.

        Non-writer ranks fire the hooks but write nothing and return None.
        """
        if self.on_start is not None:
            self.on_start(index)

        target: Path | None = None
        if self.is_writer:
            external_state: dict[str, Any] = {
                CHECKPOINT_INDEX_KEY: index,
                TRAINING_SOURCE_KEY: self.source.position_snapshot(),
            }
            target = self.target_path(index, is_last)
            target.parent.mkdir(parents=True, exist_ok=True)
            self.trainer.save_state(target, external_state)
            logger.info("Saved checkpoint %d to %s%s", index, target, " (last)" if is_last else "")
        else:
            logger.debug("Skipping checkpoint %d write on non-writer rank", index)

        if self.on_end is not None:
            self.on_end(index)
        return target

    def restore(self, path: Path) -> int:
        """Restore trainer and source state from `path`; return the checkpoint index."""
        external_state = self.trainer.restore_state(Path(path))
        try:
            index = int(external_state[CHECKPOINT_INDEX_KEY])
        except (KeyError, TypeError, ValueError) as e:
            raise CheckpointError(f"Checkpoint {path} has no valid {CHECKPOINT_INDEX_KEY}") from e

        if external_state.get(TRAINING_SOURCE_KEY) is None:
            raise CheckpointError(f"Checkpoint {path} has no {TRAINING_SOURCE_KEY} state")
        self.source.restore_position(external_state[TRAINING_SOURCE_KEY])
        logger.info("Restored checkpoint %d from %s", index, path)
        return index

    def candidates(self) -> list[tuple[int, Path]]:
        return numbered_candidates(self.path)

    def discover(self) -> Path | None:
        """Return the path to restore from, or None for a cold start."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        return latest_checkpoint(self.path)

    def restore_latest(self) -> int | None:
        """Restore from the newest checkpoint if any; return its index."""
        path = self.discover()
        if path is None:
            logger.info("No checkpoint found at %s; starting from scratch", self.path)
            return None
        return self.restore(path)
