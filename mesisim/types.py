"""Enumerations and records shared by the cache, bus and core models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum


class CacheLineState(IntEnum):
    """MESI state of a cache line, with its two-bit encoding."""

    MODIFIED = 0b00
    EXCLUSIVE = 0b01
    SHARED = 0b10
    INVALID = 0b11

    @property
    def label(self) -> str:
        """Human-readable state name, e.g. ``Modified``."""
        return self.name.capitalize()


class BusRequestType(IntEnum):
    """Kind of bus transaction; a larger value wins arbitration."""

    NONE = 0
    WRITE_BACK = 1
    BUS_RD = 2
    BUS_RDX = 3
    INVALIDATE_SIG = 4

    @property
    def label(self) -> str:
        """Name of the request as it appears in diagnostics, e.g. ``BusRd``."""
        return _REQUEST_LABELS[self]


_REQUEST_LABELS = {
    BusRequestType.NONE: "None",
    BusRequestType.WRITE_BACK: "WriteBack",
    BusRequestType.BUS_RD: "BusRd",
    BusRequestType.BUS_RDX: "BusRdX",
    BusRequestType.INVALIDATE_SIG: "InvalidateSig",
}


class MemOperation(Enum):
    """A memory operation issued by a core."""

    READ = "R"
    WRITE = "W"

    @classmethod
    def from_char(cls, char: str) -> "MemOperation":
        """Map a trace operation letter (``R``/``r`` or ``W``/``w``) to an operation."""
        upper = char.upper() if len(char) == 1 else ""
        if upper == "R":
            return cls.READ
        if upper == "W":
            return cls.WRITE
        raise ValueError(f"unknown memory operation {char!r}")


@dataclass(frozen=True)
class TraceEntry:
    """One memory reference read from a trace."""

    op: MemOperation
    addr: int