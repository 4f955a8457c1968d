"""
Grid partitioning for the history view.

Splits a rectangular region of character cells into N non-overlapping
rectangles, in display order (row-major), that tile the region as evenly as
integer cells allow. Rows are filled left-to-right before wrapping; when the
item count fits in the available height every item gets a full-width band.
"""
from __future__ import annotations

from typing import Iterator, List, NamedTuple, Optional


class Rect(NamedTuple):
    x: int
    y: int
    width: int
    height: int

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def inner(self, margin: int = 1) -> "Rect":
        """Shrink by `margin` cells on every side (never below zero size)."""
        width = max(0, self.width - 2 * margin)
        height = max(0, self.height - 2 * margin)
        return Rect(self.x + margin, self.y + margin, width, height)

    def intersection(self, other: "Rect") -> Optional["Rect"]:
        x0, y0 = max(self.x, other.x), max(self.y, other.y)
        x1, y1 = min(self.right, other.right), min(self.bottom, other.bottom)
        if x1 <= x0 or y1 <= y0:
            return None
        return Rect(x0, y0, x1 - x0, y1 - y0)

    def overlaps(self, other: "Rect") -> bool:
        return self.intersection(other) is not None


def ceil_div(a: int, b: int) -> int:
    # Nothing left to split (or nothing to split it into) yields 0.
    if a == 0 or b == 0:
        return 0
    return 1 + (a - 1) // b


class GridPartitioner:
    """Lazily yields one rectangle per item, consuming the remaining space.

    A partitioner is single use: build a fresh one for every redraw.
    """

    def __init__(self, area: Rect, count: int):
        self.origin_x = area.x
        self.origin_y = area.y
        self.max_width = max(0, area.width)
        self.width = self.max_width
        self.height = max(0, area.height) if self.max_width else 0
        self.count = max(0, count)
        self.x = 0
        self.y = 0

    def __iter__(self) -> Iterator[Rect]:
        return self

    def __next__(self) -> Rect:
        if self.height == 0 or self.count == 0:
            raise StopIteration

        x, y = self.x, self.y

        # Items that fit below this row if it holds a single full-width item.
        after = min(self.count, (self.height - 1) * self.max_width)
        divisor = (self.count - after) + 1
        if self.height == 1 and divisor > 0:
            divisor -= 1

        cell_width = ceil_div(self.width, divisor)
        cell_height = ceil_div(self.height, min(self.height, self.count))

        self.width -= cell_width
        self.height -= cell_height - 1

        # Row consumed: take one more line and start over at the left edge.
        # On the last line there is nothing to wrap to.
        if self.width == 0:
            if self.height > 1:
                self.width = self.max_width
                self.height -= 1
                self.y += 1
            else:
                self.height = 0

        self.x += cell_width
        if self.x == self.max_width:
            self.x = 0
        self.y += cell_height - 1
        self.count -= 1

        return Rect(self.origin_x + x, self.origin_y + y, cell_width, cell_height)


def partition(area: Rect, count: int) -> List[Rect]:
    """Return the tiling of `area` for `count` items.

    Yields min(count, area.width * area.height) rectangles; items beyond that
    have no place on screen.
    """
    return list(GridPartitioner(area, count))
