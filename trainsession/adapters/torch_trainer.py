from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Callable, Sequence

import torch
import torch.distributed as dist
from torch import nn

from trainsession.session.checkpointing import sidecar_path
from trainsession.session.interfaces import DistributedFacet, Learner
from trainsession.session.minibatch import Minibatch


logger = logging.getLogger(__name__)

LossFn = Callable[[torch.Tensor, torch.Tensor], torch.Tensor]


def _select_device(device: str | None) -> torch.device:
    """Prefer Apple Silicon MPS when available, else CUDA, else CPU."""
    if device is not None:
        return torch.device(device)
    if hasattr(torch.backends, "mps") and torch.backends.mps.is_available():
        return torch.device("mps")
    if torch.cuda.is_available():
        return torch.device("cuda")
    return torch.device("cpu")


def _atomic_torch_save(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    torch.save(payload, tmp)
    os.replace(tmp, path)


def _process_group_size() -> int:
    if dist.is_available() and dist.is_initialized():
        return dist.get_world_size()
    return 1


def process_group_facet(warmup_samples: int = 0) -> DistributedFacet | None:
    """Distributed facet for the default torch process group, if one is up."""
    if not (dist.is_available() and dist.is_initialized()):
        return None
    return DistributedFacet(
        rank=dist.get_rank(),
        worker_count=dist.get_world_size(),
        warmup_samples=warmup_samples,
    )


class TorchLearner:
    """An optimizer, optionally advertising distributed behaviour."""

    def __init__(self, optimizer: torch.optim.Optimizer, distributed: DistributedFacet | None = None) -> None:
        self.optimizer = optimizer
        self._distributed = distributed

    def distributed_facet(self) -> DistributedFacet | None:
        return self._distributed


class TorchTrainer:
    """Supervised torch trainer usable as a session trainer.

    Files written by save_state(path, ...):
    - path: model state_dict
    - path.ckp: optimizer state, samples seen and the session's external
      state. It is written last, so its presence marks a complete checkpoint.
    """

    def __init__(
        self,
        model: nn.Module,
        loss_fn: LossFn,
        optimizer: torch.optim.Optimizer,
        *,
        features_input: str = "features",
        labels_input: str = "labels",
        learners: Sequence[Learner] | None = None,
        device: str | None = None,
    ) -> None:
        self.device = _select_device(device)
        self.model = model.to(self.device)
        self.loss_fn = loss_fn
        self.optimizer = optimizer
        self.features_input = features_input
        self.labels_input = labels_input
        self._learners: list[Learner] = list(learners) if learners is not None else [TorchLearner(optimizer)]
        self._samples_seen = 0

    def learners(self) -> Sequence[Learner]:
        return list(self._learners)

    def total_samples_seen(self) -> int:
        return self._samples_seen

    def _tensors(self, batch: Minibatch) -> tuple[torch.Tensor, torch.Tensor]:
        x = torch.as_tensor(batch[self.features_input], dtype=torch.float32, device=self.device)
        y = torch.as_tensor(batch[self.labels_input], dtype=torch.float32, device=self.device)
        return x, y

    def step(self, batch: Minibatch) -> bool:
        if batch.is_empty:
            return False

        self.model.train()
        self.optimizer.zero_grad()
        local = batch.num_samples
        if local > 0:
            x, y = self._tensors(batch)
            loss = self.loss_fn(self.model(x), y)
            loss.backward()
            logger.debug("Trained on %d samples, loss %.6f", local, float(loss.detach().cpu().item()))

        if _process_group_size() > 1:
            self._all_reduce_gradients()
        self.optimizer.step()

        self._samples_seen += self._global_samples(local, batch.worker_count)
        return True

    def evaluate(self, batch: Minibatch) -> float:
        self.model.eval()
        with torch.no_grad():
            x, y = self._tensors(batch)
            loss = self.loss_fn(self.model(x), y)
        return float(loss.cpu().item())

    def _all_reduce_gradients(self) -> None:
        world = _process_group_size()
        for p in self.model.parameters():
            if not p.requires_grad:
                continue
            if p.grad is None:
                p.grad = torch.zeros_like(p)
            dist.all_reduce(p.grad, op=dist.ReduceOp.SUM)
            p.grad.div_(world)

    def _global_samples(self, local: int, worker_count: int) -> int:
        # During warm-up every worker sees the same batch; count it once.
        if worker_count <= 1 or _process_group_size() <= 1:
            return local
        t = torch.tensor([local], dtype=torch.long, device=self.device)
        dist.all_reduce(t, op=dist.ReduceOp.SUM)
        return int(t.item())

    def save_state(self, path: Path, external_state: dict[str, Any]) -> None:
        path = Path(path)
        _atomic_torch_save(path, self.model.state_dict())
        _atomic_torch_save(
            sidecar_path(path),
            {
                "optimizer": self.optimizer.state_dict(),
                "samples_seen": self._samples_seen,
                "external_state": external_state,
            },
        )

    def restore_state(self, path: Path) -> dict[str, Any]:
        path = Path(path)
        self.model.load_state_dict(torch.load(path, map_location=self.device, weights_only=True))
        side = torch.load(sidecar_path(path), map_location=self.device, weights_only=True)
        self.optimizer.load_state_dict(side["optimizer"])
        self._samples_seen = int(side.get("samples_seen", 0))
        return dict(side.get("external_state", {}))
