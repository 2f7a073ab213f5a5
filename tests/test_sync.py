import pytest

from minikern.sched import Scheduler, ThreadState
from minikern.sync import Lock


def test_recursive_acquire_and_release():
    sched = Scheduler()
    lock = Lock(sched)
    seen = []

    def main():
        lock.acquire()
        lock.acquire()
        seen.append((lock.owner is sched.current, lock.count, list(sched.current.held_locks)))
        lock.release()
        seen.append((lock.owner is sched.current, lock.count))
        lock.release()
        seen.append((lock.owner, lock.count, list(sched.current.held_locks)))

    sched.run(main)
    assert seen[0] == (True, 2, [lock])
    assert seen[1] == (True, 1)
    assert seen[2] == (None, 0, [])


def test_release_unheld_lock_raises():
    sched = Scheduler()
    lock = Lock(sched)
    with pytest.raises(RuntimeError):
        sched.run(lock.release)


def test_context_manager_releases():
    sched = Scheduler()
    lock = Lock(sched)
    inside = []

    def main():
        with lock as held:
            inside.append((held is lock, lock.owner is sched.current))
        return lock.owner

    assert sched.run(main) is None
    assert inside == [(True, True)]


def test_contended_lock_blocks_until_release():
    sched = Scheduler()
    lock = Lock(sched)
    events = []

    def child():
        events.append("child wants lock")
        lock.acquire()
        events.append("child got lock")
        lock.release()

    def main():
        lock.acquire()
        tid = sched.spawn("child", child)
        sched.yield_now()
        events.append(("main", sched._table[tid].state, lock.owner is sched.current))
        lock.release()
        events.append("main released")
        return sched.join(tid), tid

    joined, tid = sched.run(main)
    assert joined == tid
    assert events == [
        "child wants lock",
        ("main", ThreadState.WAITING, True),
        "main released",
        "child got lock",
    ]
    assert lock.owner is None


def test_exiting_thread_abandons_held_locks():
    sched = Scheduler()
    lock = Lock(sched)

    def child():
        lock.acquire()
        lock.acquire()

    def main():
        result = []
        tid = sched.spawn("holder", child)
        sched.join(tid)
        result.append((lock.owner, lock.count))
        lock.acquire()
        result.append(lock.owner is sched.current)
        lock.release()
        return result

    assert sched.run(main) == [(None, 0), True]


def test_release_by_other_thread_raises():
    sched = Scheduler()
    lock = Lock(sched)
    errors = []

    def child():
        try:
            lock.release()
        except RuntimeError as exc:
            errors.append(str(exc))

    def main():
        lock.acquire()
        tid = sched.spawn("intruder", child)
        sched.join(tid)
        owner_ok = lock.owner is sched.current
        lock.release()
        return owner_ok

    assert sched.run(main) is True
    assert len(errors) == 1
    assert "not held" in errors[0]