# mesisim

mesisim is a cycle-level simulator of a four-core system. Each core has a
private L1 cache. A central snooping bus keeps the caches coherent with the
MESI protocol. The caches are write-back and write-allocate. They replace
lines by LRU, but an invalid line in the set is always filled first. Each core
replays its own trace of memory references. When every trace has run out, the
simulator reports statistics for each core and for the bus.

## Installation

```
pip install .
```

The package uses only the standard library. To run the tests:

```
pip install ".[test]"
pytest
```

## Trace files

A run reads four trace files that share one prefix:

```
<prefix>_proc0.trace
<prefix>_proc1.trace
<prefix>_proc2.trace
<prefix>_proc3.trace
```

Each line holds an operation and a hexadecimal address. The operation is `R`
or `W`, in either case, and the `0x` prefix on the address is optional.
Addresses are taken as 32-bit values.

```
R 0x817b08
W 7e1afe78
```

A trace file that cannot be opened is reported on standard error, and that
core runs as if its trace were empty. A line that cannot be parsed is also
reported on standard error, and the core's trace ends at that line.

## Running

```
mesisim -t app1 -s 4 -E 4 -b 6
```

The same entry point is available as `python -m mesisim.cli`.

Options:

- `-t <tracefile>`: the trace prefix, without the `_proc{0,1,2,3}.trace`
  suffix. This option is required.
- `-s <s>`: the number of set index bits. The cache has 2^s sets. The default
  is 4.
- `-E <E>`: the associativity, that is, the number of lines per set. The
  default is 4.
- `-b <b>`: the number of block bits. A block is 2^b bytes. The default is 6.
- `-o <outfile>`: write the statistics to this file instead of to standard
  output. If the file cannot be opened, an error goes to standard error and
  the report goes to standard output.
- `-d`, `--debug`: print a step-by-step log of the simulation to standard
  output, with each line prefixed `DEBUG:`. Every 10000 cycles, a progress
  line shows each core's status and the length of the bus queue. A debug
  section about invalidations is also added to the end of the report.
- `-h`, `--help`: print the usage text and exit.

`s`, `E` and `b` must be positive integers. An unknown option, a missing
value, or a missing `-t` ends the program with exit status 1.

## The report

The report begins with the simulation parameters. Then, for each core, it
lists the instructions, reads, writes, execution cycles (total cycles minus
idle cycles), idle cycles, misses, miss rate, evictions, write-backs and
invalidations received. It ends with a bus summary. The "Data Traffic (Bytes)"
line in each core's section gives the bus total. Write-backs are not counted
as bus transactions, but their data does count as bus traffic.

## Timing model

- A read miss issues `BusRd`. If another cache holds the block in state M or
  E, that cache supplies the data in 2N cycles, where N is the number of
  4-byte words in a block. Otherwise, memory supplies it in 100 cycles.
- A write miss issues `BusRdX`. It always takes 100 cycles, and it
  invalidates every other copy of the block.
- A write hit on a Shared line issues an invalidation signal. This takes 10
  cycles.
- Evicting a Modified line writes it back to memory, which takes 100 cycles.
- The bus serves one request at a time. It picks by transaction type first
  (invalidation > BusRdX > BusRd > WriteBack). Among requests of the same
  type, the lowest core ID wins.
- The simulation stops after 20,000,000 cycles, with a warning, if the cores
  have not finished by then.

## Using it from Python

```python
from mesisim.simulator import Simulator

sim = Simulator("app1", 4, 4, 6, False)
sim.run()
print(sim.format_stats())
sim.write_stats("results.txt")
```

The lower-level parts can also be used on their own:

- `mesisim.trace.TraceReader` iterates over the entries of a trace file. It
  can be used as a context manager.
- `mesisim.trace.parse_trace_line` parses one line into a
  `mesisim.types.TraceEntry`. It raises `TraceFormatError` for a malformed
  line.
- `mesisim.cache.Cache` models one L1 cache. It keeps counters in
  `CacheStats`.
- `mesisim.lines.CacheLine` and `mesisim.lines.CacheSet` model the lines and
  the sets of a cache.
- `mesisim.bus.Bus` models the shared bus.
- `mesisim.core.Core` replays one trace through one cache.

The debug output goes through the `logging` module, under loggers named
`mesisim.*`.

## What it does not do

The simulator models timing and coherence state only. Cache lines hold tags
and MESI states, not data, so no memory contents are simulated. The number of
cores is fixed at four.