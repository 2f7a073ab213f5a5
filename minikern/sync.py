"""Recursive sleeping locks built on the scheduler's condition variables."""

from __future__ import annotations

from typing import Any, Optional

from minikern.sched import KThread, Scheduler


class Lock:
    """A recursive lock: the owner may acquire it again without blocking.

    A thread that cannot take the lock sleeps on the lock's release condition
    until the owner lets go of it completely. Locks still held by a thread
    when it exits are released on its behalf by the scheduler.
    """

    def __init__(self, scheduler: Scheduler) -> None:
        self._scheduler = scheduler
        self._release = scheduler.condition("lock_release")
        self._owner: Optional[KThread] = None
        self._count = 0

    @property
    def owner(self) -> Optional[KThread]:
        """The thread holding the lock, or None."""
        return self._owner

    @property
    def count(self) -> int:
        """How many times the owner has acquired the lock."""
        return self._count

    def acquire(self) -> None:
        """Take the lock, sleeping while another thread holds it."""
        cur = self._scheduler.current
        if self._owner is cur:
            self._count += 1
            return
        while self._owner is not None:
            self._release.wait()
        self._owner = cur
        self._count = 1
        cur.held_locks.insert(0, self)

    def release(self) -> None:
        """Undo one acquire; the last one hands the lock to waiting threads."""
        cur = self._scheduler.current
        if self._owner is not cur:
            raise RuntimeError("lock is not held by the running thread")
        if self._count == 0:
            raise RuntimeError("lock count is already zero")
        self._count -= 1
        if self._count == 0:
            self._release_completely(cur)

    def __enter__(self) -> "Lock":
        self.acquire()
        return self

    def __exit__(self, *args: Any) -> None:
        self.release()

    def _release_completely(self, holder: KThread) -> None:
        self._release.broadcast()
        try:
            holder.held_locks.remove(self)
        except ValueError:
            raise RuntimeError("lock missing from its owner's lock list") from None
        self._owner = None

    def _abandon(self) -> None:
        """Drop the lock because its owner exited."""
        self._owner = None
        self._count = 0
        self._release.broadcast()