"""A processor core that replays a memory trace through its private cache."""

from __future__ import annotations

import logging
import os
import sys
from typing import Optional, Union

from .cache import Cache
from .trace import TraceFormatError, TraceReader
from .types import MemOperation

logger = logging.getLogger(__name__)


class Core:
    """Issues one trace reference per cycle and stalls while its cache is busy.

    A trace file that cannot be opened, or a line that cannot be parsed,
    ends the core's trace; the problem is reported on standard error.
    """

    def __init__(
        self,
        core_id: int,
        cache: Cache,
        trace_path: Union[str, "os.PathLike[str]"],
    ) -> None:
        self.id = core_id
        self.cache = cache
        self.trace_path = os.fspath(trace_path)
        self.finished = False
        self.blocked = False
        self.total_cycles = 0
        self.idle_cycles = 0
        self.instruction_count = 0
        self.read_count = 0
        self.write_count = 0
        self._reader: Optional[TraceReader]
        try:
            self._reader = TraceReader(self.trace_path)
        except OSError:
            print(f"Error opening trace file: {self.trace_path}", file=sys.stderr)
            self._reader = None
        logger.debug("Core %d initialized with trace file: %s", core_id, self.trace_path)

    def tick(self, cycle: int) -> None:
        """Run one cycle: wait on the cache, or issue the next trace reference."""
        if self.finished:
            return

        if self.blocked:
            if not self.cache.blocked and cycle >= self.cache.ready_cycle:
                self.blocked = False
                logger.debug("Cycle %d: Core %d unblocked", cycle, self.id)
            else:
                return

        entry = self._next_entry()
        if entry is None:
            self.finished = True
            logger.debug(
                "Cycle %d: Core %d finished execution after %d instructions",
                cycle, self.id, self.instruction_count,
            )
            return

        self.instruction_count += 1
        if entry.op is MemOperation.READ:
            self.read_count += 1
        else:
            self.write_count += 1

        if not self.cache.access(cycle, entry.op, entry.addr):
            self.blocked = True
            logger.debug(
                "Cycle %d: Core %d blocked due to cache miss, addr: 0x%x, op: %s",
                cycle, self.id, entry.addr, entry.op.name,
            )

    def _next_entry(self):
        if self._reader is None:
            return None
        try:
            return next(self._reader)
        except StopIteration:
            return None
        except TraceFormatError as error:
            print(error, file=sys.stderr)
            return None

    def increment_idle_cycle(self) -> None:
        """Count one stalled cycle, unless the trace is already done."""
        if not self.finished:
            self.idle_cycles += 1

    def close(self) -> None:
        """Release the trace file."""
        if self._reader is not None:
            self._reader.close()