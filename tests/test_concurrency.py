from __future__ import annotations

import threading
import time

import pytest

from run_iamviz.util.concurrency import (
    OperationCancelled,
    check_cancelled,
    fan_out_first_error,
    parallel_map_ordered,
)


def test_fan_out_collects_every_result() -> None:
    results = fan_out_first_error(lambda x, cancel: x * 10, [1, 2, 3], max_workers=3)

    assert sorted(results) == [(1, 10), (2, 20), (3, 30)]


def test_fan_out_empty_input() -> None:
    assert fan_out_first_error(lambda x, cancel: x, [], max_workers=4) == []


def test_fan_out_first_error_cancels_siblings_and_discards_results() -> None:
    seen_cancel = threading.Event()
    collected = []

    def work(item: str, cancel: threading.Event) -> str:
        if item == "bad":
            raise RuntimeError("region down")
        # Wait for the failure to be observed, then stop at the boundary.
        cancel.wait(timeout=5)
        if cancel.is_set():
            seen_cancel.set()
        check_cancelled(cancel)
        return item

    with pytest.raises(RuntimeError, match="region down"):
        fan_out_first_error(
            work,
            ["slow-1", "bad", "slow-2"],
            max_workers=3,
            on_result=lambda item, value: collected.append(value),
        )

    assert seen_cancel.is_set()
    assert collected == []


def test_fan_out_reports_first_error_only() -> None:
    def work(item: int, cancel: threading.Event) -> int:
        if item == 0:
            raise ValueError("first")
        time.sleep(0.05)
        raise KeyError("second")

    with pytest.raises(ValueError, match="first"):
        fan_out_first_error(work, [0, 1], max_workers=2)


def test_check_cancelled_raises_only_when_set() -> None:
    cancel = threading.Event()
    check_cancelled(cancel)
    check_cancelled(None)
    cancel.set()
    with pytest.raises(OperationCancelled):
        check_cancelled(cancel)


def test_parallel_map_ordered_preserves_order() -> None:
    def slow_first(x: int) -> int:
        if x == 0:
            time.sleep(0.05)
        return x * 2

    assert parallel_map_ordered(slow_first, range(5), max_workers=3) == [0, 2, 4, 6, 8]


def test_parallel_map_ordered_propagates_errors() -> None:
    def boom(x: int) -> int:
        if x == 2:
            raise RuntimeError("boom")
        return x

    with pytest.raises(RuntimeError, match="boom"):
        parallel_map_ordered(boom, [1, 2, 3], max_workers=2)
