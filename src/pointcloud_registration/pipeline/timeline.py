"""
Per-stage timing of a registration run.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List, Tuple


@dataclass(frozen=True)
class TimelineEntry:
    stage: str
    duration: float  # seconds


class Timeline:
    """Append-only record of (stage, duration) pairs, in execution order."""

    def __init__(self):
        self._entries: List[TimelineEntry] = []

    def reset(self) -> None:
        self._entries = []

    def add(self, stage: str, duration: float) -> None:
        self._entries.append(TimelineEntry(stage, max(0.0, float(duration))))

    @contextmanager
    def measure(self, stage: str) -> Iterator[None]:
        """Time the enclosed block. The entry is recorded only if the block completes."""
        start = time.perf_counter()
        yield
        self.add(stage, time.perf_counter() - start)

    @property
    def entries(self) -> Tuple[TimelineEntry, ...]:
        return tuple(self._entries)

    @property
    def total(self) -> float:
        return sum(e.duration for e in self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def report(self) -> str:
        """Human-readable listing, one line per stage, in the order the stages ran."""
        if not self._entries:
            return "Timeline: no stages recorded."
        width = max(len(e.stage) for e in self._entries)
        lines = ["Timeline:"]
        for e in self._entries:
            lines.append(f"  {e.stage:<{width}} : {e.duration:.4f} s")
        return "\n".join(lines)
