"""
Probe history: one HistoryEntry per probe batch, kept newest-first in a
bounded HistoryBuffer.
"""
from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable, Iterator, NamedTuple, Optional, Tuple

from probe import ProbeResult

if TYPE_CHECKING:
    from canvas import Canvas
    from grid import Rect


class Rgb(NamedTuple):
    r: int
    g: int
    b: int

    @staticmethod
    def mix(a: "Rgb", b: "Rgb", t: float) -> "Rgb":
        """Linear interpolation from `a` (t=0) to `b` (t=1).

        t is clamped to [0, 1] and both ends return the input color exactly,
        so no rounding drift appears at the boundaries.
        """
        if t <= 0.0:
            return Rgb(*a)
        if t >= 1.0:
            return Rgb(*b)
        return Rgb(*(int(round(x + (y - x) * t)) for x, y in zip(a, b)))


GOOD = Rgb(0, 200, 30)
BAD = Rgb(200, 0, 30)


@dataclass(frozen=True)
class Tint:
    weight: float
    color: Rgb


@dataclass(frozen=True)
class HistoryEntry:
    attempts: Tuple[Optional[ProbeResult], ...]
    timeout_ms: float
    captured_at: float = field(default_factory=time.time)

    @classmethod
    def from_attempts(cls, attempts: Iterable[Optional[ProbeResult]], timeout_ms: float,
                      captured_at: Optional[float] = None) -> "HistoryEntry":
        if captured_at is None:
            return cls(tuple(attempts), float(timeout_ms))
        return cls(tuple(attempts), float(timeout_ms), captured_at)

    @property
    def sent(self) -> int:
        return len(self.attempts)

    @property
    def received(self) -> int:
        return sum(1 for a in self.attempts if a is not None and not a.dropped)

    def loss(self) -> float:
        if self.sent == 0:
            return 0.0
        return 1.0 - self.received / self.sent

    def latency(self) -> float:
        # Lost attempts cost the full timeout.
        total = 0.0
        for a in self.attempts:
            if a is None or a.dropped:
                total += self.timeout_ms
            else:
                total += a.latency_ms
        return total

    def color(self, min_latency: float, tint: Optional[Tint] = None) -> Rgb:
        latency = self.latency()
        if latency == 0:
            lat_ratio = 1.0
        else:
            lat_ratio = max(0.0, min(1.0, min_latency / latency))
        mix = (1.0 - self.loss()) * lat_ratio
        color = Rgb.mix(BAD, GOOD, mix)
        if tint is not None:
            color = Rgb.mix(color, tint.color, tint.weight)
        return color

    # --------------------
    # Labels
    # --------------------

    def loss_pct(self) -> int:
        return int(self.loss() * 100)

    def verbose_label(self) -> str:
        return (f" {self.sent} packets transmitted, {self.received} received, "
                f"{self.loss_pct()}% packet loss, time {self.latency():.1f}ms ")

    def compact_label(self) -> str:
        return f" {self.loss_pct()}% [{self.latency():.0f}ms] "

    def label_for(self, width: int) -> Optional[str]:
        verbose = self.verbose_label()
        if width >= len(verbose):
            return verbose
        compact = self.compact_label()
        if width >= len(compact):
            return compact
        return None

    def render(self, canvas: "Canvas", area: "Rect", min_latency: float, tint: Optional[Tint] = None) -> None:
        if area.width <= 0 or area.height <= 0:
            return
        color = self.color(min_latency, tint)
        canvas.fill(area, color)
        label = self.label_for(area.width)
        if label is None:
            return
        x = area.x + max(0, area.width // 2 - len(label) // 2)
        y = area.y + area.height // 2
        canvas.draw_string(x, y, label, area.right - x, bg=color)


class HistoryBuffer:
    """Newest-first, fixed-capacity history; the oldest entry is evicted."""

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"History capacity must be at least 1, got {capacity}")
        self._entries: deque = deque(maxlen=capacity)
        self._min_latency = float("inf")

    @property
    def capacity(self) -> int:
        return self._entries.maxlen

    @property
    def min_latency(self) -> float:
        """Smallest latency of any entry ever inserted, evicted ones included."""
        return self._min_latency

    def insert(self, entry: HistoryEntry) -> None:
        self._min_latency = min(self._min_latency, entry.latency())
        self._entries.appendleft(entry)

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index: int) -> HistoryEntry:
        return self._entries[index]

    def __iter__(self) -> Iterator[HistoryEntry]:
        return iter(self._entries)
