"""Simple named time measurements made of one or more steps."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from cdagent.clock import Clock, StandardClock


@dataclass
class Step:
    """A single measured step within a checkpoint."""

    name: str = ""
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def duration(self) -> timedelta:
        """Time the step took, or zero if it has not finished."""
        if self.end is None or self.start is None:
            return timedelta(0)
        return self.end - self.start


class Checkpoint:
    """Measures time for a sequence of steps."""

    def __init__(self, name: str, clock: Optional[Clock] = None) -> None:
        self.name = name
        self._steps: list[Step] = []
        self._clock: Clock = clock if clock is not None else StandardClock()
        self._lock = threading.RLock()

    def start(self, name: str) -> None:
        """Begin a new step, finishing the previous one if still open."""
        with self._lock:
            self._finish_last_step()
            self._steps.append(Step(name=name, start=self._clock.now()))

    def end(self) -> None:
        """Finish the currently open step, if any."""
        with self._lock:
            self._finish_last_step()

    def duration(self) -> timedelta:
        """Time from the start of the first step to the end of the last."""
        with self._lock:
            if not self._steps:
                return timedelta(0)
            self._finish_last_step()
            return self._steps[-1].end - self._steps[0].start

    def num_steps(self) -> int:
        with self._lock:
            return len(self._steps)

    def steps(self) -> list[Step]:
        """A copy of the measured steps."""
        with self._lock:
            return [Step(s.name, s.start, s.end) for s in self._steps]

    def __str__(self) -> str:
        with self._lock:
            parts = [
                f"{s.name}={s.duration().total_seconds():.3f}s"
                for s in self._steps
                if s.end is not None
            ]
            total = self.duration().total_seconds()
            return f"checkpoint {self.name} duration={total:.3f}s (steps: {', '.join(parts)})"

    def _finish_last_step(self) -> None:
        if self._steps and self._steps[-1].end is None:
            self._steps[-1].end = self._clock.now()