"""Elapsed-time checkpoints for result assembly."""

from __future__ import annotations

from collections.abc import Callable
import time


class TimeTracker:
    """Records named checkpoints, each measured from the previous one.

    The clock is never reset between checkpoints, so the step durations add up
    to the total.
    """

    def __init__(self, clock: Callable[[], float] = time.perf_counter) -> None:
        self._clock = clock
        self._start = clock()
        self._last = self._start
        self._steps: dict[str, float] = {}

    def next(self, step: str) -> float:
        now = self._clock()
        elapsed_ms = (now - self._last) * 1000.0
        self._steps[step] = self._steps.get(step, 0.0) + elapsed_ms
        self._last = now
        return elapsed_ms

    @property
    def total_ms(self) -> float:
        return (self._last - self._start) * 1000.0

    def to_dict(self) -> dict[str, float]:
        timings = {step: round(ms, 3) for step, ms in self._steps.items()}
        timings["total"] = round(self.total_ms, 3)
        return timings
