"""
Bounded worker pool over a list of items.

Workers pull the next index from a shared cursor until the list is
exhausted, so at most ``concurrency`` items are in flight and items are
started in list order (completion order is not guaranteed).
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def run_with_concurrency(
    items: Sequence[T],
    concurrency: int,
    worker: Callable[[int, T], R],
    thread_name_prefix: str = "worker",
) -> List[Optional[R]]:
    """
    Run ``worker(index, item)`` over items with a fixed number of threads.

    Args:
        items: Items to process
        concurrency: Maximum number of items processed at once
        worker: Callable receiving the item index and the item
        thread_name_prefix: Thread name prefix (shows up in logs)

    Returns:
        Worker results, indexed like ``items``

    Raises:
        Exception: The first exception raised by a worker, after all
            workers have stopped
    """
    n = len(items)
    if n == 0:
        return []

    results: List[Optional[R]] = [None] * n
    cursor = 0
    lock = threading.Lock()

    def claim() -> int:
        nonlocal cursor
        with lock:
            index = cursor
            cursor += 1
            return index

    def loop() -> None:
        while True:
            index = claim()
            if index >= n:
                return
            results[index] = worker(index, items[index])

    workers = max(1, min(concurrency, n))
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=thread_name_prefix) as executor:
        futures = [executor.submit(loop) for _ in range(workers)]
        for future in futures:
            future.result()

    return results
