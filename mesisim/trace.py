"""Reading memory-reference traces, one ``<op> <hex address>`` per line."""

from __future__ import annotations

import os
from types import TracebackType
from typing import Iterator, Optional, Type, Union

from .types import MemOperation, TraceEntry

_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")
_ADDRESS_MASK = 0xFFFFFFFF
_MAX_PARSED = 2**64 - 1


class TraceFormatError(ValueError):
    """A trace line could not be understood."""

    def __init__(self, message: str, line: str) -> None:
        super().__init__(message)
        self.line = line


def _parse_address(text: str, line: str) -> int:
    padded = text.rjust(8, "0")
    digits = padded
    if digits[:2] in ("0x", "0X") and digits[2:3] in _HEX_DIGITS:
        digits = digits[2:]
    end = 0
    while end < len(digits) and digits[end] in _HEX_DIGITS:
        end += 1
    if end == 0:
        raise TraceFormatError(f"Error parsing address '{padded}': no digits", line)
    value = int(digits[:end], 16)
    if value > _MAX_PARSED:
        raise TraceFormatError(f"Error parsing address '{padded}': out of range", line)
    return value & _ADDRESS_MASK


def parse_trace_line(line: str) -> TraceEntry:
    """Parse one trace line into a :class:`TraceEntry`.

    The operation is the first non-blank character; the address is the next
    whitespace-separated token, in hexadecimal with an optional ``0x`` prefix.
    Raises :class:`TraceFormatError` when the line cannot be parsed.
    """
    text = line.lstrip()
    tokens = text[1:].split() if text else []
    if not tokens:
        raise TraceFormatError(f"Error parsing trace line: {line}", line)
    op_char, addr_text = text[0], tokens[0]
    try:
        op = MemOperation.from_char(op_char)
    except ValueError:
        raise TraceFormatError(
            f"Unknown operation '{op_char}' in trace line: {line}", line
        ) from None
    if addr_text[:2] in ("0x", "0X"):
        addr_text = addr_text[2:]
    return TraceEntry(op, _parse_address(addr_text, line))


class TraceReader:
    """Iterate over the entries of a trace file.

    Opening a missing file raises :class:`OSError`. A malformed line makes
    ``next()`` raise :class:`TraceFormatError`; reading may continue after it.
    """

    def __init__(self, path: Union[str, "os.PathLike[str]"]) -> None:
        self.path = os.fspath(path)
        self._file = open(self.path, encoding="utf-8", errors="replace")
        self.eof = False

    def __iter__(self) -> Iterator[TraceEntry]:
        return self

    def __next__(self) -> TraceEntry:
        if self.eof or self._file.closed:
            raise StopIteration
        line = self._file.readline()
        if not line:
            self.eof = True
            raise StopIteration
        return parse_trace_line(line.rstrip("\r\n"))

    def close(self) -> None:
        """Close the underlying file."""
        self._file.close()

    def __enter__(self) -> "TraceReader":
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.close()