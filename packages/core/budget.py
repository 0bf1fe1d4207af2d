"""Cooperative work budget for long scans over triangles.

Long loops are written as generators that ``yield`` whenever the budget
says the current slice is used up.  An interactive host resumes the
generator on its next frame; batch callers use :func:`run_to_completion`
and never notice the pauses.
"""

from __future__ import annotations

import time
from typing import Callable, Generator, Optional, TypeVar

T = TypeVar("T")

Steps = Generator[None, None, T]


class WorkBudget:
    """Elapsed-time budget per slice of work.

    ``frame_time=None`` disables slicing: :meth:`exhausted` is always False.
    """

    def __init__(
        self,
        frame_time: Optional[float] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        if frame_time is not None and frame_time <= 0:
            raise ValueError("frame_time must be positive")
        self.frame_time = frame_time
        self._clock = clock
        self._start = clock()
        self.slices = 0

    def start(self) -> None:
        """Begin a new slice."""
        self._start = self._clock()

    def exhausted(self) -> bool:
        if self.frame_time is None:
            return False
        return (self._clock() - self._start) > self.frame_time

    def pause(self) -> bool:
        """Return True (and count a slice) when the caller should yield now.

        The next slice starts when the caller resumes.
        """
        if not self.exhausted():
            return False
        self.slices += 1
        return True


def run_to_completion(steps: Steps[T]) -> T:
    """Drive a budgeted generator to the end and return its result."""
    while True:
        try:
            next(steps)
        except StopIteration as stop:
            return stop.value
