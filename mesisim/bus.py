"""The shared snooping bus that serialises coherence traffic between caches."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol

from .types import BusRequestType, CacheLineState

logger = logging.getLogger(__name__)

MEMORY_LATENCY = 100
INVALIDATE_LATENCY = 10
WORD_BYTES = 4
CACHE_TO_CACHE_CYCLES_PER_WORD = 2

_DATA_TRANSFERS = frozenset(
    {BusRequestType.BUS_RD, BusRequestType.BUS_RDX, BusRequestType.WRITE_BACK}
)


class SnoopingCache(Protocol):
    """What the bus needs from a cache attached to it."""

    id: int

    def snoop(self, cycle: int, request: BusRequestType, addr: int) -> bool: ...

    def notify_transaction_complete(
        self, cycle: int, addr: int, state: CacheLineState
    ) -> None: ...


@dataclass
class BusTransaction:
    """A request waiting for, or occupying, the bus."""

    requester_id: int
    request_type: BusRequestType
    address: int
    start_cycle: int
    completion_cycle: int = 0
    data_ready: bool = False
    served_by_cache: bool = False


class Bus:
    """A single central bus with fixed-priority arbitration.

    Requests of the highest type value win (InvalidateSig > BusRdX > BusRd >
    WriteBack); among those, the lowest requester id wins.
    """

    def __init__(self, block_bits: int) -> None:
        self.block_size_bytes = 1 << block_bits
        self.caches: List[SnoopingCache] = []
        self.queue: List[BusTransaction] = []
        self.current: Optional[BusTransaction] = None
        self.busy = False
        self.busy_until_cycle = 0
        self.total_data_traffic_bytes = 0
        self.total_bus_transactions = 0
        logger.debug("Bus initialized with block size: %d bytes", self.block_size_bytes)

    def add_cache(self, cache: SnoopingCache) -> None:
        """Attach a cache; its position in attach order is its requester id."""
        self.caches.append(cache)
        logger.debug("Added cache %d to bus", cache.id)

    def push_request(
        self,
        requester_id: int,
        request_type: BusRequestType,
        address: int,
        cycle: int,
    ) -> None:
        """Queue a request; it is served once the bus is free and it wins arbitration."""
        self.queue.append(BusTransaction(requester_id, request_type, address, cycle))
        logger.debug(
            "Cycle %d: Core %d pushed %s request for address 0x%x (queue size: %d)",
            cycle, requester_id, request_type.label, address, len(self.queue),
        )

    def queue_size(self) -> int:
        return len(self.queue)

    def _select_request(self) -> int:
        if len(self.queue) == 1:
            return 0
        top = max(t.request_type for t in self.queue)
        return min(
            (t.requester_id, index)
            for index, t in enumerate(self.queue)
            if t.request_type == top
        )[1]

    def tick(self, cycle: int) -> None:
        """Advance the bus by one cycle: finish the current transaction, start the next."""
        if self.busy and cycle >= self.busy_until_cycle and self.current is not None:
            logger.debug(
                "Cycle %d: Bus transaction completed for Core %d, addr: 0x%x, type: %s",
                cycle, self.current.requester_id, self.current.address,
                self.current.request_type.label,
            )
            self._notify_requester(cycle, self.current)
            self.busy = False

        if self.busy or not self.queue:
            return

        transaction = self.queue.pop(self._select_request())
        supplied = self._broadcast_snoop(cycle, transaction)
        completion = self._completion_cycle(cycle, transaction, supplied)
        transaction.completion_cycle = completion
        transaction.served_by_cache = supplied
        self.current = transaction
        self.busy = True
        self.busy_until_cycle = completion

        if transaction.request_type is not BusRequestType.WRITE_BACK:
            self.total_bus_transactions += 1
        if transaction.request_type in _DATA_TRANSFERS:
            self.total_data_traffic_bytes += self.block_size_bytes

        logger.debug(
            "Cycle %d: Bus started %s for Core %d, addr: 0x%x, completes at %d",
            cycle, transaction.request_type.label, transaction.requester_id,
            transaction.address, completion,
        )

    def _broadcast_snoop(self, cycle: int, transaction: BusTransaction) -> bool:
        supplied = False
        for index, cache in enumerate(self.caches):
            if index == transaction.requester_id:
                continue
            responded = cache.snoop(cycle, transaction.request_type, transaction.address)
            if responded and transaction.request_type is BusRequestType.BUS_RD:
                supplied = True
        return supplied

    def _completion_cycle(
        self, cycle: int, transaction: BusTransaction, supplied: bool
    ) -> int:
        request = transaction.request_type
        if request is BusRequestType.BUS_RD:
            if supplied:
                words = self.block_size_bytes // WORD_BYTES
                latency = CACHE_TO_CACHE_CYCLES_PER_WORD * words
            else:
                latency = MEMORY_LATENCY
        elif request in (BusRequestType.BUS_RDX, BusRequestType.WRITE_BACK):
            latency = MEMORY_LATENCY
        elif request is BusRequestType.INVALIDATE_SIG:
            latency = INVALIDATE_LATENCY
        else:
            latency = 0
        return cycle + latency

    def _notify_requester(self, cycle: int, transaction: BusTransaction) -> None:
        request = transaction.request_type
        if request is BusRequestType.WRITE_BACK:
            state = CacheLineState.INVALID
        elif request in (BusRequestType.INVALIDATE_SIG, BusRequestType.BUS_RDX):
            state = CacheLineState.MODIFIED
        elif request is BusRequestType.BUS_RD:
            state = (
                CacheLineState.SHARED
                if transaction.served_by_cache
                else CacheLineState.EXCLUSIVE
            )
        else:
            logger.error(
                "Invalid transaction type in notify_requester: %d", int(request)
            )
            return
        self.caches[transaction.requester_id].notify_transaction_complete(
            cycle, transaction.address, state
        )