"""Simulated teaching-kernel core: threads, locks, alarms, pipes and string formatting."""

__version__ = "0.1.0"
__all__ = ["kstring", "scnum", "sched", "sync", "timer", "uio"]