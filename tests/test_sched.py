import pytest

from minikern.sched import (
    Scheduler,
    SystemHalt,
    ThreadState,
    TooManyThreadsError,
)


@pytest.fixture
def sched():
    return Scheduler()


def test_run_returns_main_result(sched):
    assert sched.run(lambda x: x * 2, 21) == 42


def test_main_thread_identity(sched):
    def main():
        return sched.running(), sched.running_name()

    assert sched.run(main) == (0, "main")


def test_spawn_uses_first_free_slots_and_join_returns_tid(sched):
    def main():
        tids = [sched.spawn("a", lambda: None), sched.spawn("b", lambda: None)]
        joined = [sched.join(t) for t in tids]
        return tids, joined

    tids, joined = sched.run(main)
    assert tids == [1, 2]
    assert joined == tids


def test_slot_is_reused_after_join(sched):
    def main():
        first = sched.spawn("a", lambda: None)
        sched.join(first)
        second = sched.spawn("b", lambda: None)
        sched.join(second)
        return first, second

    first, second = sched.run(main)
    assert first == second


def test_yield_interleaves_round_robin(sched):
    log = []

    def worker(tag):
        log.append(tag + "1")
        sched.yield_now()
        log.append(tag + "2")

    def main():
        a = sched.spawn("a", worker, "a")
        b = sched.spawn("b", worker, "b")
        sched.join(a)
        sched.join(b)
        return list(log)

    assert sched.run(main) == ["a1", "b1", "a2", "b2"]


def test_running_in_child_matches_spawned_tid(sched):
    seen = {}

    def worker():
        seen["tid"] = sched.running()
        seen["name"] = sched.running_name()

    def main():
        tid = sched.spawn("worker", worker)
        sched.join(tid)
        return tid

    tid = sched.run(main)
    assert seen == {"tid": tid, "name": "worker"}


def test_condition_broadcast_wakes_in_fifo_order(sched):
    log = []
    cond = sched.condition("go")

    def waiter(tag):
        log.append(tag + " waiting")
        cond.wait()
        log.append(tag + " woke")

    def main():
        sched.spawn("w1", waiter, "w1")
        sched.spawn("w2", waiter, "w2")
        while log.count("w1 waiting") + log.count("w2 waiting") < 2:
            sched.yield_now()
        cond.broadcast()
        sched.join(1)
        sched.join(2)
        return list(log)

    assert sched.run(main)[2:] == ["w1 woke", "w2 woke"]


def test_join_any_returns_exited_child(sched):
    def main():
        tid = sched.spawn("only", lambda: None)
        return tid, sched.join(0)

    tid, joined = sched.run(main)
    assert joined == tid


def test_join_rejects_invalid_ids():
    sched = Scheduler(max_threads=8)

    def main():
        with pytest.raises(ValueError):
            sched.join(-1)
        with pytest.raises(ValueError):
            sched.join(8)
        with pytest.raises(ValueError):
            sched.join(5)
        return "checked"

    assert sched.run(main) == "checked"


def test_join_any_without_children_fails_in_child(sched):
    errors = []

    def worker():
        try:
            sched.join(0)
        except ValueError as exc:
            errors.append(exc)

    def main():
        joined = sched.join(sched.spawn("lonely", worker))
        return joined, [type(e) for e in errors]

    assert sched.run(main) == (1, [ValueError])


def test_join_non_child_fails(sched):
    errors = []

    def sibling_joiner(target):
        try:
            sched.join(target)
        except ValueError as exc:
            errors.append(exc)

    def main():
        first = sched.spawn("first", lambda: None)
        second = sched.spawn("second", sibling_joiner, first)
        sched.join(second)
        sched.join(first)
        return [type(e) for e in errors]

    assert sched.run(main) == [ValueError]


def test_too_many_threads():
    sched = Scheduler(max_threads=4)

    def main():
        sched.spawn("a", lambda: None)
        sched.spawn("b", lambda: None)
        with pytest.raises(TooManyThreadsError):
            sched.spawn("c", lambda: None)
        return sorted(sched.join(0) for _ in range(2))

    assert sched.run(main) == [1, 2]


def test_detach_prevents_join(sched):
    def main():
        tid = sched.spawn("detached", lambda: None)
        sched.detach(tid)
        with pytest.raises(ValueError):
            sched.join(tid)
        return tid

    assert sched.run(main) == 1


def test_process_is_inherited_and_settable(sched):
    proc = object()
    other = object()

    def main():
        sched.set_process(0, proc)
        tid = sched.spawn("child", lambda: None)
        inherited = sched.thread_process(tid)
        sched.set_process(tid, other)
        changed = sched.thread_process(tid)
        sched.join(tid)
        return inherited, changed

    inherited, changed = sched.run(main)
    assert inherited is proc
    assert changed is other


def test_thread_names(sched):
    assert sched.thread_name(0) == "main"
    assert sched.thread_name(15) == "idle"
    with pytest.raises(ValueError):
        sched.thread_name(3)
    with pytest.raises(ValueError):
        sched.thread_process(99)


def test_orphans_are_reparented_to_grandparent(sched):
    done = []

    def grandchild():
        done.append("grandchild")

    def child(out):
        out.append(sched.spawn("grandchild", grandchild))

    def main():
        out = []
        tid = sched.spawn("child", child, out)
        sched.join(tid)
        return sched.join(out[0]), out[0]

    joined, expected = sched.run(main)
    assert joined == expected
    assert done == ["grandchild"]


def test_child_exception_halts_system(sched):
    def crasher():
        raise RuntimeError("boom")

    def main():
        sched.join(sched.spawn("crasher", crasher))

    with pytest.raises(SystemHalt) as excinfo:
        sched.run(main)
    assert excinfo.value.success is False
    assert isinstance(excinfo.value.__cause__, RuntimeError)


def test_deadlock_halts_with_failure(sched):
    def main():
        sched.condition("never").wait()

    with pytest.raises(SystemHalt) as excinfo:
        sched.run(main)
    assert excinfo.value.success is False


def test_exit_from_main_stops_run(sched):
    reached = []

    def main():
        sched.exit()
        reached.append("after exit")
        return "unreachable"

    assert sched.run(main) is None
    assert reached == []


def test_exit_from_child_wakes_parent(sched):
    log = []

    def worker():
        log.append("before")
        sched.exit()
        log.append("after")

    def main():
        return sched.join(sched.spawn("w", worker))

    assert sched.run(main) == 1
    assert log == ["before"]


def test_idle_hook_sees_empty_ready_list_and_can_wake(sched):
    cond = sched.condition("event")
    observed = []

    def hook():
        observed.append(sched.has_ready())
        cond.broadcast()
        return True

    sched.idle_hook = hook

    def main():
        cond.wait()
        return sched.current.state

    assert sched.run(main) is ThreadState.SELF
    assert observed == [False]


def test_run_twice_is_rejected(sched):
    sched.run(lambda: None)
    with pytest.raises(RuntimeError):
        sched.run(lambda: None)


def test_wait_state_is_recorded(sched):
    cond = sched.condition("c")

    def waiter():
        cond.wait()

    def main():
        states = []
        tid = sched.spawn("waiter", waiter)
        sched.yield_now()
        while not sched.has_ready() or sched._table[tid].state is not ThreadState.WAITING:
            sched.yield_now()
        states.append(sched._table[tid].state)
        cond.broadcast()
        states.append(sched._table[tid].state)
        sched.join(tid)
        return states

    assert sched.run(main) == [ThreadState.WAITING, ThreadState.READY]