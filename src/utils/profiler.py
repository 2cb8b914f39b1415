"""Lightweight wall-clock profiling.

Provides:
    - timer(): Context manager timing one block, with optional sink
    - TimerAccumulator: running total/mean over many blocks

Used to measure:
    - Each pairwise comparison in a calibration run
    - Image decoding
    - The whole calibration run (written to the manifest)

No heavy dependencies (no cProfile overhead inside comparison loops).
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

logger = logging.getLogger(__name__)


@contextmanager
def timer(name: str, sink: Optional[Callable[[str, float], None]] = None) -> Iterator[None]:
    """Context manager for wall-clock timing.

    Parameters
    ----------
    name : str
        Timer name
    sink : Optional[Callable[[str, float], None]]
        Callback(name, elapsed_seconds); if None the timing is logged
        at DEBUG

    Examples
    --------
    >>> with timer("decode"):
    ...     src = decode_image(path)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        if sink is not None:
            sink(name, elapsed)
        else:
            logger.debug("%s: %.3f s", name, elapsed)


class TimerAccumulator:
    """Accumulate timing measurements across threads.

    Examples
    --------
    >>> compare_timer = TimerAccumulator("compare")
    >>> with compare_timer.measure():
    ...     score = comparator.compare(a, b)
    >>> compare_timer.mean()
    """

    def __init__(self, name: str):
        self.name = name
        self.total_time = 0.0
        self.count = 0
        self._lock = threading.Lock()

    def add(self, elapsed: float) -> None:
        with self._lock:
            self.total_time += elapsed
            self.count += 1

    @contextmanager
    def measure(self) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self.add(time.perf_counter() - start)

    def mean(self) -> float:
        """Mean seconds per measurement (0.0 before the first one)."""
        with self._lock:
            return self.total_time / self.count if self.count else 0.0
