# minikern

The core pieces of a small teaching kernel, as a Python library you can run
and inspect on an ordinary machine.

- `minikern.kstring` holds the kernel's string helpers and its small printf
  engine.
  - `strcmp` and `strncmp` compare strings. `strcmp` treats `None` as lower
    than any string.
  - `strtoul(text, base)` works for bases 2 to 10. It returns
    `(value, rest)`, reduces the value to 64 bits, and raises `ValueError`
    if the base is not supported.
  - `vgprintf(putc, fmt, args)` passes each output character to `putc`.
  - `kformat(fmt, *args)` returns the formatted string.
  - `snprintf(bufsz, fmt, *args)` returns `(text, count)`. The text is cut to
    fit a buffer of `bufsz`, which leaves room for the terminator.
  - The engine supports `%d %i %u %x %s %c %p`, a field width, the `0` flag,
    and the length modifiers `l`, `ll`, `z`, `j` and `h`. It echoes an unknown
    conversion as `%` followed by that character, or by `?` if the character
    cannot be printed.
- `minikern.scnum` has the `Syscall` enumeration of system call numbers.
- `minikern.sched` has the cooperative `Scheduler`.
  - It keeps a fixed-size thread table, with a main thread in slot 0 and an
    idle thread in the last slot, and a round-robin ready queue.
  - It provides `spawn`, `exit`, `yield_now` and parent/child `join`. A `tid`
    of 0 joins any child.
  - `Condition` variables wake their waiters in the order they began to wait.
  - Only one kernel thread runs at a time. Each kernel thread is backed by a
    Python thread, and the kernel threads hand control to each other.
- `minikern.sync` has `Lock`, a recursive sleeping lock that also works as a
  context manager. When a thread exits, the scheduler releases every lock
  that thread still holds.
- `minikern.timer` has `Timer` and `Alarm`.
  - A `Timer` is driven by a clock function you supply and a tick frequency.
  - It keeps the pending alarms sorted by wake time. `pending()` returns those
    wake times.
  - `Alarm.sleep` and its `_sec`/`_ms`/`_us` variants, and
    `Timer.sleep_sec`/`sleep_ms`/`sleep_us`, put the running thread to sleep.
  - `Timer.preempt()` arms a 20 ms preemption alarm.
  - `handle_interrupt(from_user)` wakes the threads whose alarms are due. If
    a preemption alarm fired while in user mode, it also yields the running
    thread.
- `minikern.uio` has the uniform I/O objects.
  - `Uio` is the reference-counted base, with `add_ref`, `close`, `read`,
    `write` and `cntl`.
  - `create_null_uio()` returns the single `NullUio`. Its `read` and `write`
    raise `UnsupportedOperation`.
  - `create_pipe(scheduler, size)` returns a `PipeWriter` and a `PipeReader`,
    which share a ring buffer. The default size is 4096 bytes.
  - A read blocks until at least one byte is available, then returns up to the
    requested amount. It returns `b""` once the pipe is empty and the writer
    is closed.
  - A write blocks while the pipe is full, then writes as much as fits. It
    raises `BrokenPipeError` when no reader is left.

## Installation

```
pip install .
```

## Example

```python
from minikern.kstring import kformat, snprintf
from minikern.sched import Scheduler
from minikern.uio import create_pipe

print(kformat("%05d|%5s|%x", 42, "hi", 255))   # 00042|hi   |ff
print(snprintf(4, "%s", "abcdef"))             # ('abc', 7)

sched = Scheduler(16)

def main():
    writer, reader = create_pipe(sched, 4096)

    def producer():
        writer.write(b"hello")
        writer.close()

    tid = sched.spawn("producer", producer)
    print(reader.read(16))           # b'hello'
    print(reader.read(16))           # b'' once the writer is closed
    sched.join(tid)

sched.run(main)
```

The library raises an exception where a kernel would return a negative
error code:

- `TooManyThreadsError` when the thread table is full.
- `ValueError` for a bad `join`, for example when the thread does not exist
  or is not a child of the caller.
- `UnsupportedOperation` when an endpoint lacks the operation asked of it.
- `BrokenPipeError` when writing to a pipe that has no readers.

`Scheduler.run` raises `SystemHalt` if the system halts with a failure. This
happens, for example, when the idle thread finds that nothing can run. You
can set `Scheduler.idle_hook` to a callable that the idle thread calls before
it decides that the system is deadlocked. The hook might fire a timer
interrupt, for instance.

## What this package does not do

This is a library of kernel building blocks, not a bootable system.

- `Syscall` only numbers the system calls. No dispatcher, processes, file
  system or devices stand behind them.
- Nothing generates timer interrupts on its own. Your code advances the clock
  and calls `Timer.handle_interrupt`.
- `Uio.cntl` and the `Fcntl` operations are defined, but no endpoint in the
  package implements them.

## Running the tests

```
pip install .[test]
pytest
```