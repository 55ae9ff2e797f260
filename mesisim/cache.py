"""A private L1 cache that keeps MESI coherence by snooping a shared bus."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from .lines import CacheLine, CacheSet
from .types import BusRequestType, CacheLineState, MemOperation

logger = logging.getLogger(__name__)

_ADDRESS_MASK = 0xFFFFFFFF
_TRACKED_CACHE_ID = 2
_PROFILE_INTERVAL = 500
_PROFILE_TOP = 5


class BusPort(Protocol):
    """What a cache needs from the bus it is attached to."""

    def push_request(
        self, requester_id: int, request_type: BusRequestType, address: int, cycle: int
    ) -> None: ...


@dataclass
class CacheStats:
    """Counters gathered by a cache during simulation."""

    accesses: int = 0
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    writebacks: int = 0
    invalidations_received: int = 0
    track_invalidation_addresses: bool = False
    invalidations_by_address: Counter = field(default_factory=Counter)


class Cache:
    """A set-associative, write-back, write-allocate cache with LRU replacement."""

    def __init__(
        self,
        cache_id: int,
        index_bits: int,
        associativity: int,
        block_bits: int,
        bus: BusPort,
    ) -> None:
        self.id = cache_id
        self.index_bits = index_bits
        self.block_bits = block_bits
        self.num_sets = 1 << index_bits
        self.associativity = associativity
        self.block_size = 1 << block_bits
        self.bus = bus
        self.blocked = False
        self.ready_cycle = 0

        self._tag_shift = index_bits + block_bits
        self._tag_mask = ~((1 << self._tag_shift) - 1) & _ADDRESS_MASK
        self._index_shift = block_bits
        self._index_mask = (((1 << index_bits) - 1) << block_bits) & _ADDRESS_MASK
        self._offset_mask = ((1 << block_bits) - 1) & _ADDRESS_MASK

        self.sets: List[CacheSet] = [
            CacheSet(associativity) for _ in range(self.num_sets)
        ]
        self.stats = CacheStats(
            track_invalidation_addresses=(cache_id == _TRACKED_CACHE_ID)
        )

    # Address decomposition

    def extract_tag(self, addr: int) -> int:
        return ((addr & _ADDRESS_MASK) & self._tag_mask) >> self._tag_shift

    def extract_index(self, addr: int) -> int:
        return ((addr & _ADDRESS_MASK) & self._index_mask) >> self._index_shift

    def extract_offset(self, addr: int) -> int:
        return (addr & _ADDRESS_MASK) & self._offset_mask

    # Accesses from the core

    def access(self, cycle: int, op: MemOperation, addr: int) -> bool:
        """Perform a core access; True on a hit that needs no bus work."""
        self.stats.accesses += 1
        tag = self.extract_tag(addr)
        set_index = self.extract_index(addr)
        logger.debug(
            "Cycle %d: Cache %d access, op: %s, addr: 0x%x (tag: 0x%x, set: %d)",
            cycle, self.id, op.name, addr, tag, set_index,
        )
        line = self.sets[set_index].find_line(tag)

        if line is None:
            self.stats.misses += 1
            logger.debug("Cycle %d: Cache %d MISS, addr: 0x%x", cycle, self.id, addr)
            self._handle_miss(cycle, op, addr)
            return False

        self.stats.hits += 1
        old_state = line.state
        logger.debug(
            "Cycle %d: Cache %d HIT, line state: %s", cycle, self.id, old_state.label
        )
        line.touch(cycle)

        if op is MemOperation.READ or old_state is CacheLineState.MODIFIED:
            return True
        if old_state is CacheLineState.EXCLUSIVE:
            line.state = CacheLineState.MODIFIED
            return True
        if old_state is CacheLineState.SHARED:
            self.blocked = True
            self.bus.push_request(self.id, BusRequestType.INVALIDATE_SIG, addr, cycle)
            line.state = CacheLineState.MODIFIED
            return False
        logger.error("Cache %d hit on invalid line, addr: 0x%x", self.id, addr)
        return False

    def _handle_miss(self, cycle: int, op: MemOperation, addr: int) -> None:
        self.blocked = True
        request = (
            BusRequestType.BUS_RD if op is MemOperation.READ else BusRequestType.BUS_RDX
        )
        logger.debug(
            "Cycle %d: Cache %d handling miss, issuing %s for addr: 0x%x",
            cycle, self.id, request.label, addr,
        )
        self.bus.push_request(self.id, request, addr, cycle)

    # Block management

    def _allocate_block(self, cycle: int, addr: int, state: CacheLineState) -> None:
        tag = self.extract_tag(addr)
        set_index = self.extract_index(addr)
        cache_set = self.sets[set_index]
        victim_index = cache_set.find_lru_line()
        victim = cache_set[victim_index]

        if victim.is_valid() and victim.tag == tag:
            victim.state = state
            victim.touch(cycle)
            return

        if victim.is_valid():
            old_tag = victim.tag
            victim_state = victim.state
            cache_set.remove_lookup(old_tag)
            self.stats.evictions += 1
            logger.debug(
                "Cycle %d: Cache %d evicting line, tag: 0x%x, state: %s",
                cycle, self.id, old_tag, victim_state.label,
            )
            if victim_state is CacheLineState.MODIFIED:
                self.stats.writebacks += 1
                victim_addr = (
                    (old_tag << self._tag_shift) | (set_index << self._index_shift)
                ) & _ADDRESS_MASK
                self.bus.push_request(
                    self.id, BusRequestType.WRITE_BACK, victim_addr, cycle
                )

        victim.tag = tag
        victim.state = state
        victim.touch(cycle)
        cache_set.update_lookup(tag, victim_index)

    def find_block(self, addr: int) -> Optional[CacheLine]:
        """The valid line holding ``addr``, or None."""
        return self.sets[self.extract_index(addr)].find_line(self.extract_tag(addr))

    def update_state(self, addr: int, state: CacheLineState) -> None:
        """Set the state of the line holding ``addr``, if present."""
        line = self.find_block(addr)
        if line is not None:
            line.state = state

    # Coherence

    def snoop(self, cycle: int, request: BusRequestType, addr: int) -> bool:
        """React to another cache's bus request; True if this cache supplies data."""
        line = self.find_block(addr)
        logger.debug(
            "Cycle %d: Cache %d received snoop, req: %s, addr: 0x%x, have block: %s",
            cycle, self.id, request.label, addr, "yes" if line else "no",
        )
        if line is None:
            return False

        old_state = line.state
        if request is BusRequestType.BUS_RD:
            if old_state in (CacheLineState.MODIFIED, CacheLineState.EXCLUSIVE):
                line.state = CacheLineState.SHARED
                return True
            return False

        if request in (BusRequestType.BUS_RDX, BusRequestType.INVALIDATE_SIG):
            if old_state is not CacheLineState.INVALID:
                line.touch(cycle)
                self.stats.invalidations_received += 1
                if self.stats.track_invalidation_addresses:
                    self._record_invalidation(addr)
                line.state = CacheLineState.INVALID
        return False

    def _record_invalidation(self, addr: int) -> None:
        self.stats.invalidations_by_address[addr] += 1
        if self.stats.invalidations_received % _PROFILE_INTERVAL == 0:
            logger.debug(
                "Cache %d invalidation profile after %d invalidations:",
                self.id, self.stats.invalidations_received,
            )
            for address, count in self.stats.invalidations_by_address.most_common(
                _PROFILE_TOP
            ):
                logger.debug("  Address 0x%x: %d invalidations", address, count)

    def notify_transaction_complete(
        self, cycle: int, addr: int, state: CacheLineState
    ) -> None:
        """Finish a bus transaction; INVALID marks a completed write-back."""
        if state is not CacheLineState.INVALID:
            line = self.find_block(addr)
            if line is not None:
                line.state = state
                line.touch(cycle)
            else:
                self._allocate_block(cycle, addr, state)
        self.blocked = False
        self.ready_cycle = cycle + 1

    # Configuration and statistics

    def cache_size(self) -> int:
        return self.num_sets * self.associativity * self.block_size

    def miss_rate(self) -> float:
        if self.stats.accesses == 0:
            return 0.0
        return self.stats.misses / self.stats.accesses