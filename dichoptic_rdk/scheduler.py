"""Cooperative, tick-driven scheduling of experiment steps.

Every suspension in the experiment (a fixed wait, a fixation wait, a held
response) is a generator: each ``yield`` hands control back to the driver and
the generator resumes on the next tick.  Nothing blocks and only one thread
ever touches the experiment state.  Clocks are injected so that waits can be
exercised without real time passing.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, Generator, List, Protocol

logger = logging.getLogger(__name__)

Task = Generator[None, None, None]


class Clock(Protocol):
    """Monotonic time source measured in seconds."""

    def now(self) -> float:
        ...


class MonotonicClock:
    """Wall-clock time relative to construction."""

    def __init__(self) -> None:
        self._start = time.monotonic()

    def now(self) -> float:
        return time.monotonic() - self._start


class ManualClock:
    """Clock advanced explicitly by the caller (used by tests and dry runs)."""

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("ManualClock cannot move backwards")
        self._now += seconds


def wait_seconds(clock: Clock, seconds: float) -> Task:
    """Suspend until ``seconds`` have elapsed on ``clock``."""

    start = clock.now()
    while clock.now() - start < seconds:
        yield


def wait_until(predicate: Callable[[], bool]) -> Task:
    """Suspend until ``predicate`` returns ``True`` (checked once per tick)."""

    while not predicate():
        yield


class Scheduler:
    """Round-robin driver for generator tasks.

    Tasks started during a tick first run on the following tick, so a trial
    that ends itself and queues its successor never runs both in the same
    step.
    """

    def __init__(self) -> None:
        self._tasks: List[Task] = []
        self._pending: List[Task] = []

    def start(self, task: Task) -> None:
        self._pending.append(task)

    def tick(self) -> None:
        if self._pending:
            self._tasks.extend(self._pending)
            self._pending.clear()
        for task in list(self._tasks):
            try:
                next(task)
            except StopIteration:
                self._tasks.remove(task)

    def cancel_all(self) -> None:
        """Close every running and pending task."""

        for task in self._tasks + self._pending:
            task.close()
        if self._tasks or self._pending:
            logger.debug("Cancelled %d scheduled task(s)", len(self._tasks) + len(self._pending))
        self._tasks.clear()
        self._pending.clear()

    @property
    def active_count(self) -> int:
        return len(self._tasks) + len(self._pending)


__all__ = [
    "Task",
    "Clock",
    "MonotonicClock",
    "ManualClock",
    "wait_seconds",
    "wait_until",
    "Scheduler",
]
