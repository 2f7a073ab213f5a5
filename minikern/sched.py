"""Cooperative kernel threads, condition variables and the scheduler.

Exactly one kernel thread runs at a time. Each kernel thread is backed by a
Python thread that sleeps on a private semaphore whenever it is not the
running thread, so switching hands a baton from one thread to the next.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, List, NoReturn, Optional

DEFAULT_MAX_THREADS = 16
MAIN_TID = 0


class ThreadState(Enum):
    """Life-cycle state of a kernel thread."""

    UNINITIALIZED = 0
    WAITING = 1
    SELF = 2  # the running thread
    READY = 3
    EXITED = 4


class SystemHalt(Exception):
    """The system halted, either successfully or with a failure."""

    def __init__(self, success: bool, reason: str = "") -> None:
        super().__init__(reason or ("halted successfully" if success else "halted on failure"))
        self.success = success
        self.reason = reason


class TooManyThreadsError(RuntimeError):
    """No free slot is left in the thread table."""


class _Unwind(BaseException):
    """Ends the Python thread behind a kernel thread that exited or was halted."""


@dataclass(eq=False)
class KThread:
    """A kernel thread."""

    id: int
    name: Optional[str]
    state: ThreadState = ThreadState.UNINITIALIZED
    parent: Optional["KThread"] = None
    proc: Any = None
    child_exit: Optional["Condition"] = None
    wait_cond: Optional["Condition"] = None
    held_locks: List[Any] = field(default_factory=list)
    entry: Optional[Callable[..., Any]] = field(default=None, repr=False)
    args: tuple = field(default=(), repr=False)
    _baton: threading.Semaphore = field(default_factory=lambda: threading.Semaphore(0), repr=False)
    _started: bool = field(default=False, repr=False)


class Condition:
    """A condition variable whose waiters are woken in arrival order."""

    def __init__(self, scheduler: "Scheduler", name: Optional[str] = None) -> None:
        self._scheduler = scheduler
        self.name = name
        self._waiters: Deque[KThread] = deque()

    def wait(self) -> None:
        """Suspend the running thread until the condition is broadcast."""
        sched = self._scheduler
        cur = sched._current
        if cur.state is not ThreadState.SELF:
            raise RuntimeError(f"thread <{cur.name}:{cur.id}> is not running")
        cur.state = ThreadState.WAITING
        cur.wait_cond = self
        self._waiters.append(cur)
        sched._suspend()

    def broadcast(self) -> None:
        """Make every waiting thread ready, in the order they started waiting."""
        sched = self._scheduler
        for thr in self._waiters:
            thr.state = ThreadState.READY
        sched._ready.extend(self._waiters)
        self._waiters.clear()


class Scheduler:
    """Thread table, ready list and round-robin switching between kernel threads."""

    def __init__(self, max_threads: int = DEFAULT_MAX_THREADS) -> None:
        if max_threads < 2:
            raise ValueError("the thread table needs room for the main and idle threads")
        self._table: List[Optional[KThread]] = [None] * max_threads

        main = KThread(id=MAIN_TID, name="main", state=ThreadState.SELF, _started=True)
        main.child_exit = Condition(self, "main.child_exit")
        idle = KThread(
            id=max_threads - 1,
            name="idle",
            state=ThreadState.READY,
            parent=main,
            entry=self._idle_loop,
        )
        idle.child_exit = Condition(self, "idle.child_exit")

        self._table[main.id] = main
        self._table[idle.id] = idle
        self._main = main
        self._idle = idle
        self._current = main
        self._ready: Deque[KThread] = deque([idle])
        self._known: List[KThread] = [main, idle]
        self._halted = False
        self._halt_exc: Optional[SystemHalt] = None
        self._ran = False
        self.idle_hook: Optional[Callable[[], Any]] = None

    # Public interface

    @property
    def current(self) -> KThread:
        """The running kernel thread."""
        return self._current

    def run(self, main: Callable[..., Any], *args: Any) -> Any:
        """Run *main* as the main thread; return its result when it finishes.

        The system halts when the main thread exits. A failure halt raised by
        any thread propagates out of this call as SystemHalt.
        """
        if self._ran:
            raise RuntimeError("scheduler has already run")
        self._ran = True
        try:
            result = main(*args)
        except SystemHalt as halt:
            if halt.success:
                return None
            raise
        finally:
            self._halt(SystemHalt(True, "main thread exited"))
        return result

    def spawn(self, name: Optional[str], entry: Callable[..., Any], *args: Any) -> int:
        """Create a ready thread running ``entry(*args)`` and return its id."""
        tid = next((i for i in range(1, len(self._table)) if self._table[i] is None), None)
        if tid is None:
            raise TooManyThreadsError("no free thread slot")
        cur = self._current
        thr = KThread(
            id=tid,
            name=name,
            state=ThreadState.READY,
            parent=cur,
            proc=cur.proc,
            entry=entry,
            args=args,
        )
        thr.child_exit = Condition(self, f"{name}.child_exit")
        self._table[tid] = thr
        self._known.append(thr)
        self._ready.append(thr)
        return tid

    def exit(self) -> NoReturn:
        """Terminate the running thread; the main thread exiting halts the system."""
        cur = self._current
        if cur is self._main:
            halt = SystemHalt(True, "main thread exited")
            self._halt(halt)
            raise halt

        cur.state = ThreadState.EXITED
        for lock in list(cur.held_locks):
            lock._abandon()
        cur.held_locks.clear()
        if cur.parent is not None and cur.parent.child_exit is not None:
            cur.parent.child_exit.broadcast()
        self._suspend()
        raise SystemHalt(False, "exited thread was resumed")

    def yield_now(self) -> None:
        """Give the processor to the next ready thread."""
        self._suspend()

    def join(self, tid: int) -> int:
        """Wait for child *tid* (or any child if 0) to exit; return its id."""
        cur = self._current
        size = len(self._table)
        has_children = any(t is not None and t.parent is cur for t in self._table[1:])
        if tid == 0 and not has_children:
            raise ValueError("running thread has no children")
        if tid < 0 or tid >= size:
            raise ValueError(f"invalid thread id {tid}")

        if tid != 0:
            child = self._table[tid]
            if child is None or child.parent is not cur:
                raise ValueError(f"thread {tid} is not a child of the running thread")
            while child.state is not ThreadState.EXITED:
                cur.child_exit.wait()
            reclaim = tid
        else:
            while True:
                exited = [
                    t for t in self._table[1:]
                    if t is not None and t.parent is cur and t.state is ThreadState.EXITED
                ]
                if exited:
                    reclaim = exited[-1].id
                    break
                cur.child_exit.wait()

        self._reclaim(reclaim)
        return reclaim

    def condition(self, name: Optional[str] = None) -> Condition:
        """Return a new condition variable bound to this scheduler."""
        return Condition(self, name)

    def running(self) -> int:
        """Id of the running thread."""
        return self._current.id

    def running_name(self) -> Optional[str]:
        """Name of the running thread."""
        return self._current.name

    def thread_name(self, tid: int) -> Optional[str]:
        """Name of thread *tid*."""
        return self._lookup(tid).name

    def thread_process(self, tid: int) -> Any:
        """Process associated with thread *tid*, or None."""
        return self._lookup(tid).proc

    def set_process(self, tid: int, proc: Any) -> None:
        """Associate thread *tid* with *proc*."""
        self._lookup(tid).proc = proc

    def detach(self, tid: int) -> None:
        """Remove the parent of thread *tid*, so no thread can join it."""
        self._lookup(tid).parent = None

    def has_ready(self) -> bool:
        """Whether any thread is waiting on the ready list."""
        return bool(self._ready)

    # Internals

    def _lookup(self, tid: int) -> KThread:
        if not 0 <= tid < len(self._table) or self._table[tid] is None:
            raise ValueError(f"no thread with id {tid}")
        thr = self._table[tid]
        assert thr is not None
        return thr

    def _reclaim(self, tid: int) -> None:
        thr = self._table[tid]
        if not 0 < tid < len(self._table) or thr is None:
            raise ValueError(f"cannot reclaim thread {tid}")
        if thr.state is not ThreadState.EXITED:
            raise RuntimeError(f"thread {tid} has not exited")
        for other in self._table[1:]:
            if other is not None and other.parent is thr:
                other.parent = thr.parent
        self._table[tid] = None

    def _suspend(self) -> None:
        cur = self._current
        if not self._ready:
            if cur.state is ThreadState.SELF:
                return
            raise SystemHalt(False, "no runnable thread")
        nxt = self._ready.popleft()
        if cur.state is ThreadState.SELF:
            cur.state = ThreadState.READY
            self._ready.append(cur)
        nxt.state = ThreadState.SELF
        self._switch(nxt)

    def _switch(self, nxt: KThread) -> None:
        old = self._current
        if nxt is old:
            return
        self._current = nxt
        if not nxt._started:
            nxt._started = True
            threading.Thread(
                target=self._bootstrap,
                args=(nxt,),
                name=f"kthread-{nxt.name}-{nxt.id}",
                daemon=True,
            ).start()
        else:
            nxt._baton.release()

        if old.state is ThreadState.EXITED:
            raise _Unwind()
        old._baton.acquire()
        if self._halted:
            if old is self._main and self._halt_exc is not None:
                raise self._halt_exc
            raise _Unwind()

    def _bootstrap(self, thr: KThread) -> None:
        try:
            if self._halted:
                return
            assert thr.entry is not None
            thr.entry(*thr.args)
            self.exit()
        except _Unwind:
            pass
        except SystemHalt as halt:
            self._halt(halt)
        except BaseException as exc:  # a crashing thread brings the system down
            halt = SystemHalt(False, f"thread <{thr.name}:{thr.id}> raised {exc!r}")
            halt.__cause__ = exc
            self._halt(halt)

    def _halt(self, halt: SystemHalt) -> None:
        if self._halted:
            return
        self._halted = True
        self._halt_exc = halt
        for thr in self._known:
            if thr._started:
                thr._baton.release()

    def _idle_loop(self) -> None:
        while True:
            while self._ready:
                self.yield_now()
            hook = self.idle_hook
            progressed = hook() if hook is not None else False
            if not self._ready and not progressed:
                raise SystemHalt(False, "deadlock: no runnable threads")