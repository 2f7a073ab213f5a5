"""Alarms, timed sleeping and preemption driven by a tick counter."""

from __future__ import annotations

from typing import Callable, List, Optional, Tuple

from minikern.sched import Condition, Scheduler

UINT64_MAX = (1 << 64) - 1
PREEMPT_MS = 20
_PREEMPT_NAME = "pp"
_DEFAULT_NAME = "default_alarm"


class Alarm:
    """A wake-up time and the condition its sleeping thread waits on.

    Each sleep is measured from the most recent alarm event: creation, the
    previous wake-up, or a reset.
    """

    def __init__(self, timer: "Timer", name: Optional[str] = None) -> None:
        self._timer = timer
        self.name = _DEFAULT_NAME if name is None else name
        self.cond: Condition = timer._scheduler.condition(self.name)
        self.twake: int = timer._clock()

    @property
    def preemptive(self) -> bool:
        """Whether this alarm only asks for the running thread to yield."""
        return self.name[:2] == _PREEMPT_NAME

    def reset(self) -> None:
        """Measure the next sleep from the current time."""
        self.twake = self._timer._clock()

    def sleep(self, tcnt: int) -> None:
        """Sleep until *tcnt* ticks after the last alarm event.

        Returns at once if that moment has already passed.
        """
        timer = self._timer
        now = timer._clock()
        self._advance(tcnt)
        if self.twake < now:
            return
        timer._insert(self)
        self.cond.wait()

    def sleep_sec(self, sec: int) -> None:
        """Sleep for *sec* seconds."""
        self.sleep(sec * self._timer.timer_freq)

    def sleep_ms(self, ms: int) -> None:
        """Sleep for *ms* milliseconds."""
        self.sleep(ms * (self._timer.timer_freq // 1000))

    def sleep_us(self, us: int) -> None:
        """Sleep for *us* microseconds."""
        self.sleep(us * (self._timer.timer_freq // 1000 // 1000))

    def _advance(self, tcnt: int) -> None:
        if UINT64_MAX - self.twake < tcnt:
            self.twake = UINT64_MAX
        else:
            self.twake += tcnt

    def __repr__(self) -> str:
        return f"Alarm(name={self.name!r}, twake={self.twake})"


class Timer:
    """The sleep list, the timer compare value and the timer interrupt handler.

    *clock* returns the current tick count; *timer_freq* is ticks per second.
    """

    def __init__(self, scheduler: Scheduler, clock: Callable[[], int],
                 timer_freq: int) -> None:
        if timer_freq <= 0:
            raise ValueError("timer frequency must be positive")
        self._scheduler = scheduler
        self._clock = clock
        self.timer_freq = timer_freq
        self._sleep_list: List[Alarm] = []
        self.compare: int = UINT64_MAX
        self.interrupt_enabled = False

    @property
    def preempt_ticks(self) -> int:
        """Length of a preemption slice in ticks."""
        return PREEMPT_MS * (self.timer_freq // 1000)

    def alarm(self, name: Optional[str] = None) -> Alarm:
        """Return a new alarm whose first event is now."""
        return Alarm(self, name)

    def preempt(self) -> None:
        """Arm an alarm that makes the running thread yield when it fires."""
        pal = Alarm(self, _PREEMPT_NAME)
        now = self._clock()
        pal._advance(self.preempt_ticks)
        if pal.twake < now:
            return
        self._insert(pal)

    def handle_interrupt(self, from_user: bool = False) -> None:
        """Wake every thread whose alarm is due and re-arm the compare value.

        If a preemption alarm fired and the interrupt came from user mode,
        the running thread yields.
        """
        now = self._clock()
        yield_flag = False
        while self._sleep_list and self._sleep_list[0].twake <= now:
            alarm = self._sleep_list.pop(0)
            if alarm.preemptive:
                yield_flag = True
            else:
                alarm.cond.broadcast()

        if self._sleep_list:
            self.compare = self._sleep_list[0].twake
        else:
            self.interrupt_enabled = False

        if from_user and yield_flag:
            self._scheduler.yield_now()

    def sleep_sec(self, sec: int) -> None:
        """Sleep the running thread for *sec* seconds."""
        self.sleep_ms(1000 * sec)

    def sleep_ms(self, ms: int) -> None:
        """Sleep the running thread for *ms* milliseconds."""
        self.sleep_us(1000 * ms)

    def sleep_us(self, us: int) -> None:
        """Sleep the running thread for *us* microseconds."""
        Alarm(self, "sleep").sleep_us(us)

    def pending(self) -> Tuple[int, ...]:
        """Wake times of the pending alarms, earliest first."""
        return tuple(a.twake for a in self._sleep_list)

    def _insert(self, alarm: Alarm) -> None:
        idx = next(
            (i for i, other in enumerate(self._sleep_list) if other.twake >= alarm.twake),
            len(self._sleep_list),
        )
        self._sleep_list.insert(idx, alarm)
        self.compare = self._sleep_list[0].twake
        self.interrupt_enabled = True