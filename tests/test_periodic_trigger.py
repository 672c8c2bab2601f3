from __future__ import annotations

import random

import pytest

from trainsession.session.triggers import PeriodicTrigger


def _run(trigger: PeriodicTrigger, counters: list[int]) -> tuple[list[int], int]:
    fired_at: list[int] = []
    index = 0
    for seen in counters:
        new_index = trigger.poll(seen, index)
        if new_index is not None:
            fired_at.append(seen)
            index = new_index
    return fired_at, index


def test_fires_once_per_period_with_uneven_increments() -> None:
    rng = random.Random(7)
    for period in (1, 3, 25, 64, 1000):
        seen = 0
        counters: list[int] = []
        for _ in range(500):
            seen += rng.randint(1, period)
            counters.append(seen)

        fired_at, index = _run(PeriodicTrigger(period), counters)

        # Increments never exceed the period, so each boundary fires exactly once.
        assert len(fired_at) == seen // period
        assert index == seen // period


def test_large_increment_jumps_index_in_a_single_fire() -> None:
    trigger = PeriodicTrigger(10)
    assert trigger.poll(35, 0) == 3
    assert trigger.poll(39, 3) is None
    assert trigger.poll(40, 3) == 4


def test_never_fires_twice_for_same_or_decreasing_counter() -> None:
    fired_at, index = _run(PeriodicTrigger(25), [30, 30, 30, 26, 49, 50, 50, 45])
    assert fired_at == [30, 50]
    assert index == 2


def test_does_not_fire_before_first_boundary() -> None:
    fired_at, _ = _run(PeriodicTrigger(25), [0, 10, 24])
    assert fired_at == []


def test_zero_period_is_disabled() -> None:
    trigger = PeriodicTrigger(0)
    assert not trigger.enabled
    assert trigger.poll(10**9, 0) is None


def test_negative_period_rejected() -> None:
    with pytest.raises(ValueError):
        PeriodicTrigger(-1)
