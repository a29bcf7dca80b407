"""
Per-stage wall-clock timing of unit processing.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator


@dataclass
class StageTimings:
    """
    Seconds spent in each stage of one unit (rasterize, extract, ...).

    Usage:
        timings = StageTimings()
        with timings.measure("rasterize"):
            pages = rasterizer.rasterize(...)
        logger.info(timings.summary())
    """
    stages: dict[str, float] = field(default_factory=dict)

    @contextmanager
    def measure(self, stage: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self.stages[stage] = self.stages.get(stage, 0.0) + time.perf_counter() - start

    @property
    def total_sec(self) -> float:
        return sum(self.stages.values())

    def summary(self) -> str:
        """e.g. ``rasterize=1.2s extract=14.0s``"""
        return " ".join(f"{stage}={format_duration(sec)}" for stage, sec in self.stages.items())


def format_duration(seconds: float) -> str:
    """Compact human-readable duration: ``850ms``, ``12.5s``, ``3m07s``, ``1h05m``."""
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    if minutes < 60:
        return f"{minutes}m{secs:02d}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h{minutes:02d}m"
