"""Cache lines and associative sets with LRU replacement."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from .types import CacheLineState


@dataclass
class CacheLine:
    """A single cache line: tag, MESI state and last-use cycle."""

    tag: int = 0
    state: CacheLineState = CacheLineState.INVALID
    last_used_cycle: int = 0

    def is_valid(self) -> bool:
        return self.state is not CacheLineState.INVALID

    def is_dirty(self) -> bool:
        return self.state is CacheLineState.MODIFIED

    def touch(self, cycle: int) -> None:
        """Record a use of the line at ``cycle`` for LRU purposes."""
        self.last_used_cycle = cycle


class CacheSet:
    """The lines sharing one set index, with a tag lookup table."""

    def __init__(self, associativity: int) -> None:
        if associativity <= 0:
            raise ValueError("associativity must be positive")
        self.associativity = associativity
        self.lines: List[CacheLine] = [CacheLine() for _ in range(associativity)]
        self._lookup: Dict[int, int] = {}

    def __len__(self) -> int:
        return self.associativity

    def __getitem__(self, index: int) -> CacheLine:
        return self.lines[index]

    def find_line(self, tag: int) -> Optional[CacheLine]:
        """Return the valid line the lookup table maps ``tag`` to, or None."""
        index = self._lookup.get(tag)
        if index is not None and self.lines[index].is_valid():
            return self.lines[index]
        return None

    def find_lru_line(self) -> int:
        """Index of the replacement victim: first invalid line, else least recently used."""
        for index, line in enumerate(self.lines):
            if not line.is_valid():
                return index
        return min(
            range(self.associativity), key=lambda i: self.lines[i].last_used_cycle
        )

    def update_lookup(self, tag: int, index: int) -> None:
        self._lookup[tag] = index

    def remove_lookup(self, tag: int) -> None:
        self._lookup.pop(tag, None)