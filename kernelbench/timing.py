"""Elapsed-time measurement in pretend processor cycles and milliseconds."""

from __future__ import annotations

import time
from typing import Callable

_CYCLES_PER_MCYCLE = 1024.0 * 1024.0


class Timer:
    """Measures elapsed time since the last reset.

    Cycles are counted from a nanosecond counter, treating the machine as a
    1 GHz processor, so one nanosecond equals one cycle.
    """

    def __init__(
        self,
        cycle_counter: Callable[[], int] = time.perf_counter_ns,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self._cycle_counter = cycle_counter
        self._wall_clock = wall_clock
        self._start_cycles = 0
        self._start_seconds = 0.0
        self.reset()

    def reset(self) -> None:
        """Restart the timer."""
        self._start_cycles = self._cycle_counter()
        self._start_seconds = self._wall_clock()

    def elapsed_mcycles(self) -> float:
        """Millions (2**20) of cycles elapsed since the last reset."""
        return (self._cycle_counter() - self._start_cycles) / _CYCLES_PER_MCYCLE

    def elapsed_msec(self) -> float:
        """Milliseconds of wall-clock time elapsed since the last reset."""
        return (self._wall_clock() - self._start_seconds) * 1e3