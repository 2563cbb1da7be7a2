"""Cursor position, scroll region and origin mode of a terminal screen."""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_ATTR = 7


@dataclass
class CursorState:
    """What the save-cursor operation remembers."""

    x: int = 0
    y: int = 0
    attr: int = DEFAULT_ATTR
    origin_mode: bool = False
    auto_wrap: bool = False


class Cursor:
    """Cursor for a screen of the given size.

    All positions are zero based.  With origin mode on, vertical positions are
    relative to the top of the scroll region and cannot leave it.  A cursor
    inside the scroll region stays inside it; one outside moves freely until it
    enters the region.
    """

    def __init__(self, lines: int = 25, cols: int = 80) -> None:
        if lines < 1 or cols < 1:
            raise ValueError("a screen needs at least one line and one column")
        self.lines = lines
        self.cols = cols
        self.reset()

    def reset(self) -> None:
        """Home the cursor, reset the attribute, scroll region and modes."""
        self.x = 0
        self.y = 0
        self.attr = DEFAULT_ATTR
        self.scroll_top = 0
        self.scroll_bottom = self.lines - 1
        self.origin_mode = False
        self.auto_wrap = False
        self.saved = CursorState()

    def set_horizontal(self, x: int) -> None:
        """Move to column x, clamped to the screen."""
        self.x = max(0, min(x, self.cols - 1))

    def set_vertical(self, y: int) -> None:
        """Move to row y, absolute or relative to the scroll region in origin mode."""
        y = max(0, y)
        if not self.origin_mode:
            self.y = min(y, self.lines - 1)
        else:
            self.y = min(self.scroll_top + y, self.scroll_bottom)

    def adjust_vertical(self, delta: int) -> None:
        """Move up or down by delta rows, honouring the scroll region."""
        new_y = self.y + delta
        in_region = self.scroll_top <= self.y <= self.scroll_bottom
        if ((not in_region and self.y < self.scroll_top and new_y >= self.scroll_top)
                or (self.y > self.scroll_bottom and new_y <= self.scroll_bottom)):
            in_region = True
        if in_region:
            self.y = max(self.scroll_top, min(new_y, self.scroll_bottom))
        else:
            self.y = max(0, min(new_y, self.lines - 1))

    def save(self) -> None:
        """Remember position, attribute and modes."""
        self.saved = CursorState(self.x, self.y, self.attr,
                                 self.origin_mode, self.auto_wrap)

    def restore(self) -> None:
        """Return to what save last remembered (or the initial state)."""
        state = self.saved
        self.x = state.x
        self.y = state.y
        self.attr = state.attr
        self.origin_mode = state.origin_mode
        self.auto_wrap = state.auto_wrap