"""Terminal screen: a virtual backscroll buffer kept in step with a console image."""

from __future__ import annotations

from typing import Optional, Tuple, Union

from mtcpkit.cursor import DEFAULT_ATTR, Cursor
from mtcpkit.termbuffer import BLANK, TerminalBuffer

CPRINTF_MAX = 99
SMALL_CLEAR_BYTES = 1024


class Screen:
    """A terminal screen with backscroll.

    Output goes to the virtual buffer and, while the two are in step, to the
    console image as well.  Slow operations such as scrolling stop updating
    the console and set ``virtual_updated``; ``paint`` brings them back in step.
    """

    def __init__(self, lines: int = 25, cols: int = 80, backscroll_pages: int = 4,
                 wrap_mode: bool = True) -> None:
        self.buffer = TerminalBuffer(lines, cols, backscroll_pages)
        self.cursor = Cursor(lines, cols)
        self.wrap_mode = wrap_mode
        self.console = bytearray(lines * cols * 2)
        self.reset_terminal_state()

    @property
    def lines(self) -> int:
        return self.buffer.lines

    @property
    def cols(self) -> int:
        return self.buffer.cols

    def reset_terminal_state(self) -> None:
        """Blank everything and reset cursor, scroll region and modes."""
        self.buffer.reset()
        self.cursor.reset()
        self.overhang = False
        self.back_scroll_offset = 0
        self.update_real_screen = True
        self.virtual_updated = False
        self.last_char: Optional[int] = None
        self.bells = 0
        self.console[:] = bytes((BLANK, DEFAULT_ATTR)) * (self.lines * self.cols)
        self.hardware_cursor: Tuple[int, int] = (0, 0)

    def _console_put(self, x: int, y: int, ch: int, attr: int) -> None:
        off = (y * self.cols + x) * 2
        if 0 <= off < len(self.console):
            self.console[off] = ch & 0xFF
            self.console[off + 1] = attr & 0xFF

    def _console_fill(self, x: int, y: int, count: int, attr: int) -> None:
        start = max(0, (y * self.cols + x) * 2)
        end = min(len(self.console), start + count * 2)
        for off in range(start, end, 2):
            self.console[off] = BLANK
            self.console[off + 1] = attr & 0xFF

    def _console_move(self, y: int, dst_x: int, src_x: int, count: int) -> None:
        base = y * self.cols * 2
        src = base + src_x * 2
        dst = base + dst_x * 2
        self.console[dst:dst + count * 2] = bytes(self.console[src:src + count * 2])

    def _stop_sync(self) -> None:
        self.update_real_screen = False
        self.virtual_updated = True

    def scroll(self) -> None:
        """Move the cursor down a line, scrolling if it sits on the region's bottom."""
        cur = self.cursor
        if cur.y == cur.scroll_bottom:
            self._scroll_internal()
        else:
            cur.y = min(cur.y + 1, self.lines - 1)

    def _scroll_internal(self) -> None:
        cur = self.cursor
        if cur.scroll_top == 0 and cur.scroll_bottom == self.lines - 1:
            self.buffer.scroll_top()
            self.buffer.fill(0, cur.y, self.cols - 1, cur.y, cur.attr)
        else:
            self.del_line(cur.scroll_top)
        self._stop_sync()

    def add(self, text: Union[str, bytes]) -> None:
        """Write text at the cursor, interpreting CR, LF, BEL, TAB, BS and DEL."""
        data = text.encode("latin-1", "replace") if isinstance(text, str) else bytes(text)
        cur = self.cursor
        for c in data:
            if c == 0:
                continue
            if c == 13:
                cur.x = 0
                self.overhang = False
            elif c == 10:
                self.scroll()
                self.overhang = False
            elif c == 7:
                self.bells += 1
            elif c == 9:
                self.overhang = False
                new_x = (cur.x + 8) & 0xF8
                if new_x < self.cols:
                    cur.x = new_x
            elif c in (8, 127):
                if self.overhang:
                    self.overhang = False
                elif cur.x > 0:
                    cur.x -= 1
                else:
                    cur.x = self.cols - 1
                    if cur.y > 0:
                        cur.y -= 1
            else:
                self.last_char = c
                if self.overhang:
                    if self.wrap_mode:
                        cur.x = 0
                        self.scroll()
                    else:
                        cur.x = self.cols - 1
                    self.overhang = False
                x, y = cur.x, cur.y
                self.buffer.put(x, y, c, cur.attr)
                if cur.x == self.cols - 1:
                    self.overhang = True
                else:
                    cur.x += 1
                if self.update_real_screen:
                    self._console_put(x, y, c, cur.attr)
                else:
                    self.virtual_updated = True
        if self.update_real_screen:
            self.hardware_cursor = (cur.x, cur.y)
        else:
            self.virtual_updated = True

    def paint(self, offset_lines: Optional[int] = None) -> None:
        """Copy the virtual screen to the console.

        With no offset the live screen is shown and the two are back in step.
        With an offset the view moves that many lines further into backscroll
        (negative moves back toward the live screen).
        """
        if offset_lines is None:
            self._copy_rows(0)
            self.back_scroll_offset = 0
            self.update_real_screen = True
            self.virtual_updated = False
            self.hardware_cursor = (self.cursor.x, self.cursor.y)
            return
        new_offset = self.back_scroll_offset + offset_lines
        limit = self.buffer.total_lines - self.lines
        if new_offset > limit:
            new_offset = limit
        elif new_offset <= 0:
            self.back_scroll_offset = 0
            self.paint()
            return
        self.back_scroll_offset = new_offset
        self._copy_rows(new_offset)
        self.update_real_screen = False

    def _copy_rows(self, back_lines: int) -> None:
        width = self.cols * 2
        for i, row in enumerate(self.buffer.visible_rows(back_lines)):
            self.console[i * width:(i + 1) * width] = row

    def clear(self, top_x: int, top_y: int, bot_x: int, bot_y: int) -> None:
        """Blank the cells from (top_x, top_y) to (bot_x, bot_y) inclusive."""
        attr = self.cursor.attr
        chars = self.buffer.fill(top_x, top_y, bot_x, bot_y, attr)
        nbytes = chars * 2
        if chars:
            start = self.buffer.offset(top_x, top_y)
            end = self.buffer.offset(bot_x, bot_y)
            if start > end:
                nbytes -= self.buffer.buffer_size - start
        if self.update_real_screen and nbytes < SMALL_CLEAR_BYTES:
            self._console_fill(top_x, top_y, chars, attr)
        else:
            self._stop_sync()

    def ins_line(self, y: int) -> None:
        """Insert a blank line at row y, pushing lines down within the scroll region."""
        bottom = self.cursor.scroll_bottom
        if y > bottom:
            return
        for i in range(bottom, y, -1):
            self.buffer.copy_line(i, i - 1)
        self.update_real_screen = False
        self.clear(0, y, self.cols - 1, y)
        self.virtual_updated = True

    def del_line(self, y: int) -> None:
        """Delete row y, pulling lines up within the scroll region."""
        bottom = self.cursor.scroll_bottom
        if y > bottom:
            return
        for i in range(y, bottom):
            self.buffer.copy_line(i, i + 1)
        self.update_real_screen = False
        self.clear(0, bottom, self.cols - 1, bottom)
        self.virtual_updated = True

    def del_chars(self, count: int) -> None:
        """Delete count characters at the cursor, sliding the rest of the line left."""
        cur = self.cursor
        affected = self.cols - cur.x
        count = max(0, min(count, affected))
        to_move = affected - count
        self.buffer.move_chars(cur.y, cur.x, cur.x + count, to_move)
        if self.update_real_screen:
            if to_move:
                self._console_move(cur.y, cur.x, cur.x + count, to_move)
        else:
            self.virtual_updated = True
        self.clear(cur.x + to_move, cur.y, self.cols - 1, cur.y)

    def ins_chars(self, count: int) -> None:
        """Insert count blanks at the cursor, sliding the rest of the line right."""
        cur = self.cursor
        affected = self.cols - cur.x
        count = max(0, min(count, affected))
        to_move = affected - count
        self.buffer.move_chars(cur.y, cur.x + count, cur.x, to_move)
        if self.update_real_screen:
            if to_move:
                self._console_move(cur.y, cur.x + count, cur.x, to_move)
        else:
            self.virtual_updated = True
        self.clear(cur.x, cur.y, cur.x + count - 1, cur.y)

    def erase_chars(self, count: int) -> None:
        """Blank count characters from the cursor without moving it."""
        cur = self.cursor
        count = max(0, min(count, self.cols - cur.x))
        for x in range(cur.x, cur.x + count):
            self.buffer.put(x, cur.y, BLANK, cur.attr)
        if self.update_real_screen:
            self._console_fill(cur.x, cur.y, count, cur.attr)
        else:
            self.virtual_updated = True

    def row_text(self, y: int) -> str:
        """Characters of visible row y of the virtual screen."""
        return "".join(self.buffer.cell(x, y)[0] for x in range(self.cols))

    def cprintf(self, x: int, y: int, attr: int, text: str) -> Tuple[int, int]:
        """Write text straight to the console; return where the cursor ends up.

        A newline returns to column 0 and a carriage return moves down a row.
        """
        data = text.encode("latin-1", "replace")[:CPRINTF_MAX]
        pos = y * self.cols + x
        for c in data:
            if c == 10:
                x = 0
                pos = y * self.cols + x
            elif c == 13:
                y += 1
                pos = y * self.cols + x
            else:
                x += 1
                if x == self.cols:
                    x = 0
                    y += 1
                off = pos * 2
                if 0 <= off < len(self.console):
                    self.console[off] = c
                    self.console[off + 1] = attr & 0xFF
                pos += 1
        self.hardware_cursor = (x, y)
        return x, y