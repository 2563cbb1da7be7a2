"""Ring buffer of character cells backing a terminal screen and its backscroll."""

from __future__ import annotations

from typing import List, Tuple, Union

BLANK = 32
DEFAULT_ATTR = 7
MAX_BUFFER_BYTES = 64000


class TerminalBuffer:
    """Character/attribute cells for the visible screen plus backscroll lines.

    Scrolling moves the top of the visible screen through the ring instead of
    moving memory, so lines pushed off the top stay available for backscroll.
    """

    def __init__(self, lines: int = 25, cols: int = 80, backscroll_pages: int = 1) -> None:
        if lines < 1 or cols < 1:
            raise ValueError("a screen needs at least one line and one column")
        if backscroll_pages < 1:
            raise ValueError("backscroll_pages must be at least 1")
        self.lines = lines
        self.cols = cols
        self.bytes_per_line = cols * 2
        if backscroll_pages * lines * self.bytes_per_line > MAX_BUFFER_BYTES + 1:
            backscroll_pages = MAX_BUFFER_BYTES // (lines * self.bytes_per_line)
            if backscroll_pages < 1:
                raise ValueError("screen is too large for the backscroll buffer")
        self.backscroll_pages = backscroll_pages
        self.total_lines = lines * backscroll_pages
        self.buffer_size = self.total_lines * self.bytes_per_line
        self.data = bytearray(self.buffer_size)
        self.top_offset = 0
        self.reset()

    def reset(self) -> None:
        """Blank every cell and put the visible screen at the start of the ring."""
        self.data[:] = bytes((BLANK, DEFAULT_ATTR)) * (self.buffer_size // 2)
        self.top_offset = 0

    def offset(self, x: int, y: int) -> int:
        """Byte offset in the ring of the cell at column x of visible row y."""
        return (self.top_offset + y * self.bytes_per_line + x * 2) % self.buffer_size

    def cell(self, x: int, y: int) -> Tuple[str, int]:
        """Return the character and attribute at (x, y)."""
        off = self.offset(x, y)
        return chr(self.data[off]), self.data[off + 1]

    def put(self, x: int, y: int, ch: Union[str, int], attr: int) -> None:
        """Store a character and attribute at (x, y)."""
        off = self.offset(x, y)
        self.data[off] = (ord(ch) if isinstance(ch, str) else ch) & 0xFF
        self.data[off + 1] = attr & 0xFF

    def fill(self, top_x: int, top_y: int, bot_x: int, bot_y: int,
             attr: int = DEFAULT_ATTR) -> int:
        """Blank the cells from (top_x, top_y) to (bot_x, bot_y) inclusive.

        Returns the number of cells cleared.
        """
        start = top_y * self.cols + top_x
        end = bot_y * self.cols + bot_x
        if end < start:
            return 0
        for pos in range(start, end + 1):
            y, x = divmod(pos, self.cols)
            off = self.offset(x, y)
            self.data[off] = BLANK
            self.data[off + 1] = attr & 0xFF
        return end - start + 1

    def copy_line(self, dst_y: int, src_y: int) -> None:
        """Copy visible row src_y over visible row dst_y."""
        src = self.offset(0, src_y)
        dst = self.offset(0, dst_y)
        self.data[dst:dst + self.bytes_per_line] = bytes(
            self.data[src:src + self.bytes_per_line])

    def move_chars(self, y: int, dst_x: int, src_x: int, count: int) -> None:
        """Move count cells within row y from src_x to dst_x; overlap is allowed."""
        if count <= 0:
            return
        if min(dst_x, src_x) < 0 or max(dst_x, src_x) + count > self.cols:
            raise ValueError("move goes past the edge of the row")
        base = self.offset(0, y)
        src = base + src_x * 2
        dst = base + dst_x * 2
        self.data[dst:dst + count * 2] = bytes(self.data[src:src + count * 2])

    def scroll_top(self) -> None:
        """Advance the visible screen by one line.

        The new bottom row holds the oldest backscroll line until it is filled.
        """
        self.top_offset = (self.top_offset + self.bytes_per_line) % self.buffer_size

    def visible_rows(self, back_lines: int = 0) -> List[bytes]:
        """Raw char/attribute bytes of each row seen when scrolled back back_lines."""
        back = max(0, min(back_lines, self.total_lines - self.lines))
        top_line = self.top_offset // self.bytes_per_line
        start = (top_line - back) % self.total_lines
        rows = []
        for i in range(self.lines):
            off = ((start + i) % self.total_lines) * self.bytes_per_line
            rows.append(bytes(self.data[off:off + self.bytes_per_line]))
        return rows