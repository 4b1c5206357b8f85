"""Delay and sound timers, plus a wall-clock pacer for hosts.

Both timers are 8-bit counters that count down once per 60Hz tick while they
are above zero. The tick is driven by the host and is independent of how many
instructions run between ticks.
"""

import time
from typing import Callable, Optional


TICK_RATE_HZ = 60


class Timers:
    """The delay and sound countdown counters.

    Attributes:
        delay: Delay timer, readable by programs through Fx07
        sound: Sound timer, audible while above zero
    """

    def __init__(self):
        self.delay = 0
        self.sound = 0

    def reset(self) -> None:
        self.delay = 0
        self.sound = 0

    def set_delay(self, value: int) -> None:
        self.delay = value & 0xFF

    def set_sound(self, value: int) -> None:
        self.sound = value & 0xFF

    def tick(self) -> None:
        """Count both timers down by one, stopping at zero."""
        if self.delay > 0:
            self.delay -= 1
        if self.sound > 0:
            self.sound -= 1

    def sound_active(self) -> bool:
        return self.sound > 0

    def __str__(self) -> str:
        return f"D={self.delay:02X} S={self.sound:02X}"


class TickClock:
    """Reports how many timer ticks are due according to a real clock.

    Hosts call ``due()`` from their loop and issue that many timer ticks, so
    timers track wall-clock time no matter how fast instructions execute.

    Attributes:
        rate: Ticks per second
    """

    def __init__(self, rate: int = TICK_RATE_HZ,
                 clock: Callable[[], float] = time.perf_counter):
        if rate <= 0:
            raise ValueError("rate must be positive")
        self.rate = rate
        self._clock = clock
        self._period = 1.0 / rate
        self._next: Optional[float] = None

    def start(self) -> None:
        self._next = self._clock() + self._period

    def due(self) -> int:
        """Number of ticks that elapsed since the last call."""
        now = self._clock()
        if self._next is None:
            self._next = now + self._period
            return 0

        ticks = 0
        while now >= self._next:
            ticks += 1
            self._next += self._period
        return ticks

    def until_next(self) -> float:
        """Seconds until the next tick is due (0 if one is already due)."""
        if self._next is None:
            return self._period
        return max(0.0, self._next - self._clock())
