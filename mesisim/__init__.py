"""Cycle-level simulator of four MESI-coherent private L1 caches on a snooping bus."""

__version__ = "0.1.0"