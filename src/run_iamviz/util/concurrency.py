from __future__ import annotations

import threading
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")
R = TypeVar("R")


class OperationCancelled(Exception):
    """Raised by a task that observed the shared cancel signal."""


def check_cancelled(cancel: Optional[threading.Event]) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelled()


def fan_out_first_error(
    func: Callable[[T, threading.Event], R],
    items: Sequence[T],
    max_workers: int,
    *,
    on_result: Optional[Callable[[T, R], None]] = None,
) -> List[Tuple[T, R]]:
    """
    Run func(item, cancel) for every item concurrently and collect (item, result)
    pairs in completion order.

    Each task hands its result back through its future; only this collector
    touches the result list. The first failure wins: it sets the shared cancel
    event, cancels futures that have not started yet and is re-raised once all
    running tasks have unwound. Results gathered so far are discarded.
    """
    items = list(items)
    if not items:
        return []
    workers = max(1, min(max_workers, len(items)))
    cancel = threading.Event()
    results: List[Tuple[T, R]] = []
    first_error: Optional[BaseException] = None

    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures: Dict[Future[R], T] = {executor.submit(func, item, cancel): item for item in items}
        for fut in as_completed(futures):
            try:
                value = fut.result()
            except CancelledError:
                continue
            except OperationCancelled:
                continue
            except BaseException as e:
                if first_error is None:
                    first_error = e
                    cancel.set()
                    for pending in futures:
                        pending.cancel()
                continue
            if first_error is None:
                item = futures[fut]
                results.append((item, value))
                if on_result is not None:
                    on_result(item, value)

    if first_error is not None:
        raise first_error
    return results


def parallel_map_ordered(
    func: Callable[[T], R],
    items: Sequence[T],
    max_workers: int,
    *,
    on_result: Optional[Callable[[T, R], None]] = None,
) -> List[R]:
    """
    Execute func over items in a thread pool and return results in input order.
    The first worker exception cancels queued work and is propagated.
    """
    items = list(items)
    if not items:
        return []
    results: List[Optional[R]] = [None] * len(items)
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(items)))) as executor:
        inflight: Dict[Future[R], int] = {executor.submit(func, item): idx for idx, item in enumerate(items)}
        for fut in as_completed(inflight):
            idx = inflight[fut]
            try:
                results[idx] = fut.result()
            except BaseException:
                for pending_fut in inflight:
                    pending_fut.cancel()
                raise
            if on_result is not None:
                on_result(items[idx], results[idx])  # type: ignore[arg-type]
    return results  # type: ignore[return-value]
