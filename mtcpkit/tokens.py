"""Small text helpers used when reading configuration and user files."""

from __future__ import annotations

from typing import Optional, Tuple

_WHITESPACE = " \t\r\n\v\f"
_BYTES_PER_LINE = 16


def next_token(text: str, max_len: int) -> Tuple[str, Optional[str]]:
    """Return the first whitespace-delimited word of text and the text after it.

    The word is cut to at most ``max_len - 1`` characters.  The second value
    is None when nothing but whitespace follows the word.
    """
    if max_len < 1:
        raise ValueError("max_len must be at least 1")
    stripped = text.lstrip(_WHITESPACE)
    end = 0
    while end < len(stripped) and stripped[end] not in _WHITESPACE:
        end += 1
    word = stripped[:end]
    rest = stripped[end:]
    token = word[:max_len - 1]
    return token, (rest if rest.strip(_WHITESPACE) else None)


def rtrim(text: str) -> Tuple[str, bool]:
    """Remove trailing whitespace; also report whether anything was removed."""
    trimmed = text.rstrip(_WHITESPACE)
    return trimmed, len(trimmed) != len(text)


def dump_bytes(data: bytes) -> str:
    """Render data as a hex dump: offset, hex bytes and printable characters."""
    lines = []
    for start in range(0, len(data), _BYTES_PER_LINE):
        chunk = bytes(data[start:start + _BYTES_PER_LINE])
        hex_part = " ".join(f"{b:02x}" for b in chunk)
        text_part = "".join(chr(b) if 32 <= b < 127 else "." for b in chunk)
        lines.append(f"{start:04x}  {hex_part:<{_BYTES_PER_LINE * 3 - 1}}  {text_part}\n")
    return "".join(lines)