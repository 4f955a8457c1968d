"""
Character/color cell buffer the views paint into.

Every redraw paints a fresh Canvas sized to the terminal; `to_text()` turns it
into a rich Text that `rich.live.Live` puts on screen.
"""
from __future__ import annotations

from typing import List, Optional

from rich.color import Color
from rich.style import Style
from rich.text import Text

from grid import Rect
from history import Rgb

# box drawing: top-left, horizontal, top-right, vertical, bottom-left, bottom-right
FRAME_CHARS = ("┌", "─", "┐", "│", "└", "┘")


class Canvas:
    def __init__(self, width: int, height: int):
        self.width = max(0, width)
        self.height = max(0, height)
        self.chars: List[List[str]] = [[" "] * self.width for _ in range(self.height)]
        self.bgs: List[List[Optional[Rgb]]] = [[None] * self.width for _ in range(self.height)]

    @property
    def area(self) -> Rect:
        return Rect(0, 0, self.width, self.height)

    def fill(self, rect: Rect, color: Optional[Rgb]) -> None:
        """Set the background of every cell in `rect` and blank its text."""
        clip = self.area.intersection(rect)
        if clip is None:
            return
        for y in range(clip.y, clip.bottom):
            chars, bgs = self.chars[y], self.bgs[y]
            for x in range(clip.x, clip.right):
                chars[x] = " "
                bgs[x] = color

    def draw_string(self, x: int, y: int, text: str, max_width: int, bg: Optional[Rgb] = None) -> int:
        """Write at most `max_width` characters of `text`; returns how many landed."""
        if y < 0 or y >= self.height or max_width <= 0:
            return 0
        written = 0
        for i, ch in enumerate(text[:max_width]):
            cx = x + i
            if cx < 0:
                continue
            if cx >= self.width:
                break
            self.chars[y][cx] = ch
            if bg is not None:
                self.bgs[y][cx] = bg
            written += 1
        return written

    def draw_frame(self, rect: Rect, title: str = "") -> Rect:
        """Draw a single-line border with an optional title; returns the inner area."""
        if rect.width < 2 or rect.height < 2:
            return rect.inner()
        tl, h, tr, v, bl, br = FRAME_CHARS
        self.draw_string(rect.x, rect.y, tl + h * (rect.width - 2) + tr, rect.width)
        for y in range(rect.y + 1, rect.bottom - 1):
            self.draw_string(rect.x, y, v, 1)
            self.draw_string(rect.right - 1, y, v, 1)
        self.draw_string(rect.x, rect.bottom - 1, bl + h * (rect.width - 2) + br, rect.width)
        if title:
            self.draw_string(rect.x + 1, rect.y, title, rect.width - 2)
        return rect.inner()

    def row_text(self, y: int) -> str:
        return "".join(self.chars[y])

    def to_text(self) -> Text:
        text = Text(no_wrap=True, overflow="crop")
        for y in range(self.height):
            if y:
                text.append("\n")
            chars, bgs = self.chars[y], self.bgs[y]
            start = 0
            # one span per run of equal background
            for x in range(1, self.width + 1):
                if x == self.width or bgs[x] != bgs[start]:
                    bg = bgs[start]
                    style = Style(bgcolor=Color.from_rgb(*bg)) if bg is not None else None
                    text.append("".join(chars[start:x]), style=style)
                    start = x
        return text
