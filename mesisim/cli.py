"""Command-line entry point for the four-core MESI cache simulator."""

from __future__ import annotations

import logging
import os
import re
import sys
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence

from .simulator import Simulator

_DEFAULT_INDEX_BITS = 4
_DEFAULT_ASSOCIATIVITY = 4
_DEFAULT_BLOCK_BITS = 6

_INT_PREFIX = re.compile(r"\s*([+-]?\d+)")
_INT_MIN = -(2**31)
_INT_MAX = 2**31 - 1

# option -> (destination, description used in the missing-value message)
_VALUE_OPTIONS = {
    "-t": ("trace", "a trace name"),
    "-s": ("s", "a set index bits"),
    "-E": ("E", "an associativity"),
    "-b": ("b", "a block bits"),
    "-o": ("outfile", "an output file name"),
}
_INTEGER_OPTIONS = frozenset({"s", "E", "b"})


class _UsageError(Exception):
    """A command-line problem that ends the program with status 1."""

    def __init__(self, message: str, show_usage: bool = False) -> None:
        super().__init__(message)
        self.show_usage = show_usage


def usage(program: str) -> str:
    """The help text, naming the program as ``program``."""
    return "\n".join(
        [
            f"Usage: {program} -t <tracefile> -s <s> -E <E> -b <b> "
            "[-o <outfile>] [-d] [-h]",
            "-t <tracefile>: Name of the trace file "
            "(without the _proc{0,1,2,3}.trace suffix)",
            "-s <s>: Number of set index bits (number of sets = 2^s)",
            "-E <E>: Associativity (number of lines per set)",
            "-b <b>: Number of block bits (block size = 2^b bytes)",
            "-o <outfile>: Output file for statistics (default: stdout)",
            "-d, --debug: Enable debug output",
            "-h, --help: Print this help message",
        ]
    ) + "\n"


def _parse_int(text: str) -> int:
    """Read a leading decimal integer, ignoring anything after it."""
    match = _INT_PREFIX.match(text)
    if match is None:
        raise _UsageError(f"Error: invalid integer argument: {text}")
    value = int(match.group(1))
    if not _INT_MIN <= value <= _INT_MAX:
        raise _UsageError(f"Error: integer argument out of range: {text}")
    return value


@contextmanager
def _debug_logging(enabled: bool) -> Iterator[None]:
    if not enabled:
        yield
        return
    package_logger = logging.getLogger(__package__ or "mesisim")
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("DEBUG: %(message)s"))
    previous_level = package_logger.level
    package_logger.addHandler(handler)
    package_logger.setLevel(logging.DEBUG)
    try:
        yield
    finally:
        package_logger.removeHandler(handler)
        package_logger.setLevel(previous_level)


def _program_name() -> str:
    return os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else "mesisim"


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Parse arguments, run the simulation and report; returns the exit status."""
    args: List[str] = list(sys.argv[1:] if argv is None else argv)
    program = _program_name()

    options = {
        "trace": "",
        "s": _DEFAULT_INDEX_BITS,
        "E": _DEFAULT_ASSOCIATIVITY,
        "b": _DEFAULT_BLOCK_BITS,
        "outfile": "",
    }
    debug = False

    try:
        remaining = iter(args)
        for arg in remaining:
            if arg in _VALUE_OPTIONS:
                dest, description = _VALUE_OPTIONS[arg]
                value = next(remaining, None)
                if value is None:
                    raise _UsageError(f"Error: {arg} requires {description} argument")
                options[dest] = _parse_int(value) if dest in _INTEGER_OPTIONS else value
            elif arg in ("-d", "--debug"):
                debug = True
            elif arg in ("-h", "--help"):
                sys.stdout.write(usage(program))
                return 0
            else:
                raise _UsageError(f"Unknown argument: {arg}", show_usage=True)

        if not options["trace"]:
            raise _UsageError(
                "Error: Trace file name (-t) is required", show_usage=True
            )
        if options["s"] <= 0 or options["E"] <= 0 or options["b"] <= 0:
            raise _UsageError("Error: s, E, and b must be positive integers.")
    except _UsageError as error:
        print(error, file=sys.stderr)
        if error.show_usage:
            sys.stdout.write(usage(program))
        return 1

    try:
        with _debug_logging(debug):
            if debug:
                print("Debug mode enabled")
            simulator = Simulator(
                options["trace"], options["s"], options["E"], options["b"], debug
            )
            simulator.run()
            simulator.write_stats(options["outfile"] or None)
    except Exception as error:  # report any failure the way the tool always has
        print(f"Error: {error}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())