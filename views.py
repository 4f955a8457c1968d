"""
Views over the probe history.

Visualization tiles the whole history into an area. SelectionOverlay adds a
cursor: when an entry is selected the top of the screen becomes an inspect
panel for it and the rest of the history is drawn below.
"""
from __future__ import annotations

import enum
from typing import Optional

from canvas import Canvas
from grid import GridPartitioner, Rect
from history import HistoryBuffer, HistoryEntry, Rgb, Tint

SELECTION_TINT = Tint(weight=0.5, color=Rgb(90, 90, 255))
INSPECT_TITLE = " Inspect packet "
LIST_TITLE = " Packet list "


class Key(enum.Enum):
    NEXT = "next"
    PREVIOUS = "previous"
    FIRST = "first"
    LAST = "last"
    CLEAR = "clear"
    QUIT = "quit"


class Visualization:
    def __init__(self, history: HistoryBuffer, tint: Tint = SELECTION_TINT):
        self.history = history
        self.tint = tint

    def render(self, canvas: Canvas, area: Rect, highlight: Optional[int] = None) -> int:
        """Paint entries newest-first into the tiling of `area`.

        Entries that get no rectangle are skipped. Returns how many were painted.
        """
        if area.width <= 0 or area.height <= 0:
            return 0
        min_latency = self.history.min_latency
        painted = 0
        for index, (entry, rect) in enumerate(zip(self.history, GridPartitioner(area, len(self.history)))):
            tint = self.tint if index == highlight else None
            entry.render(canvas, rect, min_latency, tint)
            painted += 1
        return painted


class SelectionOverlay:
    def __init__(self, history: HistoryBuffer, min_inspect_height: int = 5, tint: Tint = SELECTION_TINT):
        self.history = history
        self.min_inspect_height = min_inspect_height
        self.visualization = Visualization(history, tint)
        self._selected: Optional[int] = None

    @property
    def selected(self) -> Optional[int]:
        # An index past the end (entries evicted) reads as no selection.
        if self._selected is not None and self._selected < len(self.history):
            return self._selected
        return None

    def has_selection(self) -> bool:
        return self.selected is not None

    def tint_weight(self, index: int) -> float:
        return self.visualization.tint.weight if index == self.selected else 0.0

    # --------------------
    # Transitions
    # --------------------

    def _select(self, index: int) -> None:
        if len(self.history) == 0:
            return
        self._selected = max(0, min(index, len(self.history) - 1))

    def select_next(self) -> None:
        current = self.selected
        self._select(0 if current is None else current + 1)

    def select_prev(self) -> None:
        current = self.selected
        self._select(0 if current is None else current - 1)

    def select_first(self) -> None:
        self._select(0)

    def select_last(self) -> None:
        self._select(len(self.history) - 1)

    def clear(self) -> None:
        self._selected = None

    def handle_key(self, key: Key) -> bool:
        """Apply a navigation key; True when the selection changed."""
        before = self.selected
        if key is Key.NEXT:
            self.select_next()
        elif key is Key.PREVIOUS:
            self.select_prev()
        elif key is Key.FIRST:
            self.select_first()
        elif key is Key.LAST:
            self.select_last()
        elif key is Key.CLEAR:
            self.clear()
        return self.selected != before

    def insert(self, entry: HistoryEntry) -> None:
        """Insert into the history, keeping the selection on the same entry."""
        current = self.selected
        self.history.insert(entry)
        if current is None:
            self._selected = None
        elif current + 1 < len(self.history):
            self._selected = current + 1
        else:
            # the selected entry was the one evicted
            self._selected = None

    # --------------------
    # Rendering
    # --------------------

    def inspect_height(self, area: Rect) -> int:
        first = next(GridPartitioner(area, len(self.history)), None)
        height = max(first.height if first else 0, self.min_inspect_height)
        if height % 2 == 0:
            height += 1
        return height

    def render(self, canvas: Canvas, area: Rect) -> None:
        index = self.selected
        if index is None or area.width <= 0 or area.height <= 0:
            self.visualization.render(canvas, area)
            return
        height = self.inspect_height(area)
        if height > area.height:
            self.visualization.render(canvas, area, highlight=index)
            return

        inspect = Rect(area.x, area.y, area.width, height)
        rest = Rect(area.x, area.y + height, area.width, area.height - height)

        inner = canvas.draw_frame(inspect, INSPECT_TITLE)
        self.history[index].render(canvas, inner, self.history.min_latency)
        if rest.height > 0:
            inner = canvas.draw_frame(rest, LIST_TITLE)
            self.visualization.render(canvas, inner, highlight=index)
