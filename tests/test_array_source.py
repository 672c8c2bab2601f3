from __future__ import annotations

import numpy as np
import pytest

from trainsession.adapters.array_source import ArrayMinibatchSource


def _source(n: int = 10, **kwargs: object) -> ArrayMinibatchSource:
    x = np.arange(n * 2, dtype=np.float32).reshape(n, 2)
    y = np.arange(n, dtype=np.float32).reshape(n, 1)
    return ArrayMinibatchSource({"x": x, "y": y}, **kwargs)  # type: ignore[arg-type]


def test_sequential_batches_stop_at_sweep_end() -> None:
    source = _source(10, max_sweeps=1)

    first = source.next_batch(4)
    second = source.next_batch(4)
    third = source.next_batch(4)

    assert first["y"].data.ravel().tolist() == [0, 1, 2, 3]
    assert second["y"].data.ravel().tolist() == [4, 5, 6, 7]
    # The last batch is truncated at the end of the sweep.
    assert third["y"].number_of_samples == 2
    assert source.next_batch(4) == {}
    assert source.next_batch(4) == {}


def test_workers_get_contiguous_shares() -> None:
    shares = []
    for rank in range(3):
        source = _source(10)
        batch = source.next_batch(8, worker_count=3, worker_rank=rank)
        shares.append(batch["y"].data.ravel().tolist())

    assert shares == [[0, 1], [2, 3, 4], [5, 6, 7]]


def test_unbounded_source_wraps_around() -> None:
    source = _source(4)
    batches = [source.next_batch(3)["y"].data.ravel().tolist() for _ in range(4)]
    assert batches == [[0, 1, 2], [3], [0, 1, 2], [3]]


def test_rewind_serves_repeated_passes() -> None:
    source = _source(4, max_sweeps=1, rewind=True)

    for _ in range(2):
        assert source.next_batch(2)["y"].number_of_samples == 2
        assert source.next_batch(2)["y"].number_of_samples == 2
        assert source.next_batch(2) == {}


def test_snapshot_and_restore_position() -> None:
    source = _source(10)
    source.next_batch(6)
    snapshot = source.position_snapshot()
    assert snapshot == {"position": 6, "sweep": 0}

    source.next_batch(6)
    source.restore_position(snapshot)
    assert source.next_batch(2)["y"].data.ravel().tolist() == [6, 7]


def test_rejects_mismatched_streams() -> None:
    with pytest.raises(ValueError):
        ArrayMinibatchSource({"x": np.zeros((3, 1)), "y": np.zeros((4, 1))})


def test_rejects_out_of_range_position() -> None:
    with pytest.raises(ValueError):
        _source(5).restore_position({"position": 5, "sweep": 0})
