"""Cycle-by-cycle simulation of four cores with private MESI caches."""

from __future__ import annotations

import logging
import sys
from typing import List, Optional, TextIO

from .bus import MEMORY_LATENCY, Bus
from .cache import Cache
from .core import Core

logger = logging.getLogger(__name__)

_PROGRESS_INTERVAL = 10000
_WATCHED_CORE = 2
_HIGH_INVALIDATIONS = 1000


class Simulator:
    """Drives the bus and cores in lock-step until every trace is consumed."""

    num_cores = 4
    max_cycles = 20_000_000

    def __init__(
        self,
        trace_prefix: str,
        index_bits: int,
        associativity: int,
        block_bits: int,
        debug: bool = False,
    ) -> None:
        self.trace_prefix = trace_prefix
        self.index_bits = index_bits
        self.associativity = associativity
        self.block_bits = block_bits
        self.debug = debug
        self.block_size = 1 << block_bits
        self.num_sets = 1 << index_bits
        self.cache_size = self.num_sets * associativity * self.block_size
        self.current_cycle = 0
        self.bus = Bus(block_bits)
        self.caches: List[Cache] = []
        self.cores: List[Core] = []

    def trace_path(self, core_id: int) -> str:
        """Trace file read by core ``core_id``."""
        return f"{self.trace_prefix}_proc{core_id}.trace"

    def _initialize(self) -> None:
        self.bus = Bus(self.block_bits)
        self.caches = []
        for core_id in range(self.num_cores):
            cache = Cache(
                core_id, self.index_bits, self.associativity, self.block_bits, self.bus
            )
            self.caches.append(cache)
            self.bus.add_cache(cache)
        self.cores = [
            Core(core_id, cache, self.trace_path(core_id))
            for core_id, cache in enumerate(self.caches)
        ]
        self.current_cycle = 0

    def _all_finished(self) -> bool:
        return all(core.finished for core in self.cores)

    def _tick(self) -> None:
        self.bus.tick(self.current_cycle)
        for core in self.cores:
            if not core.finished:
                core.tick(self.current_cycle)
        for core in self.cores:
            if not core.finished and core.blocked:
                core.increment_idle_cycle()
        self.current_cycle += 1

    def _report_progress(self) -> None:
        states = "".join(
            f"Core {core.id} "
            f"{'finished' if core.finished else 'blocked' if core.blocked else 'running'}, "
            for core in self.cores
        )
        print(
            f"DEBUG: Cycle {self.current_cycle}: {states}"
            f"Bus queue size: {self.bus.queue_size()}"
        )

    def run(self) -> None:
        """Simulate until all cores finish or the cycle limit is reached."""
        self._initialize()
        try:
            while not self._all_finished() and self.current_cycle < self.max_cycles:
                self._tick()
                if self.debug and self.current_cycle % _PROGRESS_INTERVAL == 0:
                    self._report_progress()
        finally:
            for core in self.cores:
                core.close()

        if self.current_cycle >= self.max_cycles:
            print(
                "WARNING: Simulation stopped after reaching maximum cycle count "
                f"({self.max_cycles}). This may indicate that some cores didn't "
                "finish their traces. Consider using fewer traces or increasing "
                "the maximum cycle count."
            )
        logger.debug("Simulation completed at cycle %d", self.current_cycle)

        for core in self.cores:
            core.total_cycles = self.current_cycle - core.idle_cycles

    def format_stats(self) -> str:
        """The statistics report as text."""
        if not self.cores:
            raise RuntimeError("simulation has not been run")
        out = [
            "Simulation Parameters:",
            f"Trace Prefix: {self.trace_prefix}",
            f"Set Index Bits: {self.index_bits}",
            f"Associativity: {self.associativity}",
            f"Block Bits: {self.block_bits}",
            f"Block Size (Bytes): {self.block_size}",
            f"Number of Sets: {self.num_sets}",
            f"Cache Size (KB per core): {self.cache_size / 1024.0:g}",
            "MESI Protocol: Enabled",
            "Write Policy: Write-back, Write-allocate",
            "Replacement Policy: LRU (invalid lines replaced first)",
            "Bus Arbitration: Fixed Priority (Core 0 highest, Core 3 lowest) "
            "with Transaction Priority (BusRdX > BusRd > WriteBack)",
            f"Memory Latency: {MEMORY_LATENCY} cycles",
            "",
        ]
        traffic = self.bus.total_data_traffic_bytes
        for core, cache in zip(self.cores, self.caches):
            out += [
                f"Core {core.id} Statistics:",
                f"Total Instructions: {core.instruction_count}",
                f"Total Reads: {core.read_count}",
                f"Total Writes: {core.write_count}",
                f"Total Execution Cycles: {core.total_cycles}",
                f"Idle Cycles: {core.idle_cycles}",
                f"Cache Misses: {cache.stats.misses}",
                f"Cache Miss Rate: {cache.miss_rate() * 100.0:.2f}%",
                f"Cache Evictions: {cache.stats.evictions}",
                f"Writebacks: {cache.stats.writebacks}",
                f"Bus Invalidations: {cache.stats.invalidations_received}",
                f"Data Traffic (Bytes): {traffic}",
                "",
            ]
        out += [
            "Overall Bus Summary:",
            f"Total Bus Transactions: {self.bus.total_bus_transactions}",
            f"Total Bus Traffic (Bytes): {traffic}",
        ]
        if self.debug:
            out += self._debug_section()
        return "\n".join(out) + "\n"

    def _debug_section(self) -> List[str]:
        watched = self.caches[_WATCHED_CORE].stats.invalidations_received
        lines = [
            "",
            "===== DEBUG INFORMATION =====",
            f"Core {_WATCHED_CORE} has {watched} invalidations.",
        ]
        if watched > _HIGH_INVALIDATIONS:
            lines += [
                f"High invalidation count detected for Core {_WATCHED_CORE}!",
                f"This is likely due to false sharing between Core {_WATCHED_CORE} "
                "and other cores.",
                "Consider padding data structures to avoid false sharing.",
            ]
        total = sum(cache.stats.invalidations_received for cache in self.caches)
        average = total / self.num_cores
        lines.append(f"Average invalidations per core: {average:.2f}")
        if watched > 3 * average:
            lines.append(
                f"Core {_WATCHED_CORE} invalidations are "
                f"{watched / average:.2f} times the average!"
            )
        lines.append("===== END DEBUG INFORMATION =====")
        return lines

    def write_stats(self, outfile: Optional[str] = None) -> None:
        """Write the report to ``outfile``, or to standard output when none is given.

        If the file cannot be opened, an error goes to standard error and the
        report to standard output.
        """
        report = self.format_stats()
        if outfile:
            try:
                with open(outfile, "w", encoding="utf-8") as handle:
                    handle.write(report)
                return
            except OSError:
                print(f"Error opening output file: {outfile}", file=sys.stderr)
        stream: TextIO = sys.stdout
        stream.write(report)