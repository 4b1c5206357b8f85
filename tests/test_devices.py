"""Tests for the keypad, timers, tick clock and call stack."""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chip8_vm.errors import StackOverflow, StackUnderflow
from chip8_vm.keypad import Keypad
from chip8_vm.stack import STACK_DEPTH, CallStack
from chip8_vm.timers import TickClock, Timers


class FakeClock:
    """Manually advanced replacement for time.perf_counter."""

    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


class TestKeypad:
    """Test key state and press edges."""

    def test_press_edge(self):
        """Only the released -> pressed transition is an edge."""
        keypad = Keypad()
        assert keypad.set_key(0xA, True) is True
        assert keypad.set_key(0xA, True) is False
        assert keypad.set_key(0xA, False) is False
        assert keypad.set_key(0xA, True) is True

    def test_is_pressed(self):
        keypad = Keypad()
        keypad.set_key(3, True)
        assert keypad.is_pressed(3) is True
        assert keypad.is_pressed(4) is False
        assert keypad.pressed_keys() == [3]

    def test_out_of_range_query_is_released(self):
        """Key values past 0xF read as not pressed."""
        keypad = Keypad()
        assert keypad.is_pressed(0x10) is False
        assert keypad.is_pressed(0xFF) is False

    @pytest.mark.parametrize("index", [-1, 16])
    def test_invalid_key_rejected(self, index):
        with pytest.raises(ValueError):
            Keypad().set_key(index, True)

    def test_release_all(self):
        keypad = Keypad()
        keypad.set_key(1, True)
        keypad.set_key(2, True)
        keypad.release_all()
        assert keypad.pressed_keys() == []


class TestTimers:
    """Test 60Hz countdown timers."""

    def test_tick_decrements_both(self):
        timers = Timers()
        timers.set_delay(3)
        timers.set_sound(2)
        timers.tick()
        assert (timers.delay, timers.sound) == (2, 1)

    def test_never_below_zero(self):
        timers = Timers()
        timers.set_delay(1)
        for _ in range(5):
            timers.tick()
        assert timers.delay == 0
        assert timers.sound == 0

    def test_sound_active_while_positive(self):
        timers = Timers()
        assert timers.sound_active() is False
        timers.set_sound(1)
        assert timers.sound_active() is True
        timers.tick()
        assert timers.sound_active() is False

    def test_values_masked(self):
        timers = Timers()
        timers.set_delay(0x1FF)
        assert timers.delay == 0xFF


class TestTickClock:
    """Test the wall-clock tick pacer."""

    def test_first_call_starts_clock(self):
        clock = FakeClock()
        ticker = TickClock(clock=clock)
        assert ticker.due() == 0

    def test_ticks_follow_elapsed_time(self):
        clock = FakeClock()
        ticker = TickClock(rate=60, clock=clock)
        ticker.start()
        clock.now += 0.5 / 60
        assert ticker.due() == 0
        clock.now += 2.6 / 60
        assert ticker.due() == 3
        assert ticker.due() == 0

    def test_until_next(self):
        clock = FakeClock()
        ticker = TickClock(rate=10, clock=clock)
        ticker.start()
        clock.now += 0.025
        assert ticker.until_next() == pytest.approx(0.075)
        clock.now += 1
        assert ticker.until_next() == 0.0

    def test_rate_must_be_positive(self):
        with pytest.raises(ValueError):
            TickClock(rate=0)


class TestCallStack:
    """Test the bounded return-address stack."""

    def test_lifo(self):
        stack = CallStack()
        stack.push(0x202)
        stack.push(0x30A)
        assert stack.peek() == 0x30A
        assert stack.pop() == 0x30A
        assert stack.pop() == 0x202
        assert stack.is_empty()

    def test_overflow_at_depth(self):
        """The push past the depth limit faults and leaves the stack intact."""
        stack = CallStack()
        for address in range(STACK_DEPTH):
            stack.push(0x200 + 2 * address)
        with pytest.raises(StackOverflow):
            stack.push(0x400)
        assert len(stack) == STACK_DEPTH

    def test_custom_depth(self):
        stack = CallStack(depth=2)
        stack.push(1)
        stack.push(2)
        with pytest.raises(StackOverflow):
            stack.push(3)

    def test_underflow(self):
        with pytest.raises(StackUnderflow):
            CallStack().pop()
        with pytest.raises(StackUnderflow):
            CallStack().peek()

    def test_invalid_depth(self):
        with pytest.raises(ValueError):
            CallStack(depth=0)

    def test_frames_copy(self):
        stack = CallStack()
        stack.push(0x202)
        frames = stack.frames()
        frames.append(0x999)
        assert stack.frames() == [0x202]
