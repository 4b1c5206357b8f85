"""Chip8: the fetch-decode-execute engine that owns every machine component.

Execution pipeline for one cycle:
    MEMORY -> FETCH -> DECODE -> KEY -> REGISTRY -> EXECUTE -> STATE

The host drives two independent call sequences: instruction cycles
(``step``/``run``) at whatever speed it likes, and ``tick_timers`` at 60Hz
wall-clock. ``run_frame`` bundles the canonical "K cycles then one tick".

Faults never escape ``step``: they halt the machine and are reported on the
returned trace entry.
"""

import hashlib
import logging
import random
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Deque, Dict, Iterable, List, Optional, Tuple, Union

from .decoder import DecodeResult, Decoder, disassemble
from .display import Display
from .errors import Chip8Error, HaltReason, MemoryOutOfBounds
from .keypad import Keypad
from .memory import MEMORY_SIZE, Memory, PROGRAM_START
from .quirks import Quirks
from .registry import InstructionRegistry, get_registry
from .stack import STACK_DEPTH, CallStack
from .state import ExecutionState, Halted, Registers, Running, WaitingForKey
from .timers import Timers


logger = logging.getLogger(__name__)

LAST_INSTRUCTION_ADDRESS = MEMORY_SIZE - 2


class StopReason(Enum):
    """Why ``run_until`` returned."""

    MAX_CYCLES = "MAX_CYCLES"
    MAX_FRAMES = "MAX_FRAMES"
    WAITING_FOR_KEY = "WAITING_FOR_KEY"
    HALTED = "HALTED"


@dataclass
class ExecutionTraceEntry:
    """Outcome of one ``step`` call.

    Captures what happened during one fetch-decode-execute cycle. Register
    snapshots are only taken while tracing is enabled.

    Attributes:
        cycle: Cycle number (0-indexed)
        pc: Address the instruction was fetched from
        opcode: Raw 16-bit opcode, None if nothing was fetched
        decode_result: Result from the decoder, None if nothing was fetched
        executed: Whether an instruction completed without faulting
        halt_reason: Fault kind if the machine is halted after this call
        error: Error message if execution failed
        pre_state: Register snapshot before execution
        post_state: Register snapshot after execution
    """
    cycle: int
    pc: int
    opcode: Optional[int] = None
    decode_result: Optional[DecodeResult] = None
    executed: bool = False
    halt_reason: Optional[HaltReason] = None
    error: Optional[str] = None
    pre_state: Optional[dict] = None
    post_state: Optional[dict] = None
    quirks: Optional[Quirks] = field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return self.halt_reason is None

    @property
    def mnemonic(self) -> str:
        if self.opcode is None:
            return "<none>"
        return disassemble(self.opcode, self.quirks)


class Chip8:
    """CHIP-8 virtual machine.

    Owns the registers, memory, display, keypad, timers and call stack, and
    dispatches decoded instructions through the frozen instruction registry.

    Usage:
        vm = Chip8(get_preset("modern"))
        vm.load(Path("pong.ch8").read_bytes())
        while vm.is_running or vm.is_waiting:
            vm.run_frame()          # 60 times per second
            render(vm.framebuffer)

    Attributes:
        quirks: Immutable quirk configuration
        registers: V0-VF, I and pc
        memory: 4KB memory with font table
        display: 64x32 framebuffer
        keypad: 16-key input state
        timers: Delay and sound timers
        stack: Call stack
        cycles_per_frame: Instructions per ``run_frame`` call
        trace: Recent execution trace entries (only while tracing)
    """

    DEFAULT_CYCLES_PER_FRAME = 10
    DEFAULT_MAX_TRACE = 1000

    def __init__(
        self,
        quirks: Optional[Quirks] = None,
        *,
        seed: Optional[int] = None,
        stack_depth: int = STACK_DEPTH,
        cycles_per_frame: int = DEFAULT_CYCLES_PER_FRAME,
        trace: bool = False,
        max_trace: int = DEFAULT_MAX_TRACE,
    ):
        """Initialize the machine with the font loaded and an empty program.

        Args:
            quirks: Quirk configuration (defaults to ``Quirks()``)
            seed: Seed for the Cxkk random number generator
            stack_depth: Maximum call depth
            cycles_per_frame: Instructions executed per ``run_frame``
            trace: Record an ExecutionTraceEntry for every cycle
            max_trace: Number of trace entries kept
        """
        if cycles_per_frame < 1:
            raise ValueError("cycles_per_frame must be at least 1")

        self.quirks = quirks if quirks is not None else Quirks()
        self.registers = Registers()
        self.memory = Memory()
        self.display = Display(self.quirks.sprite_wrap_vs_clip)
        self.keypad = Keypad()
        self.timers = Timers()
        self.stack = CallStack(stack_depth)
        self.decoder = Decoder()
        self.registry: InstructionRegistry = get_registry()
        self.cycles_per_frame = cycles_per_frame
        self.tracing = trace
        self.trace: Deque[ExecutionTraceEntry] = deque(maxlen=max_trace)

        self._rng = random.Random(seed)
        self._rom = b""
        self._state: ExecutionState = Running()
        self._cycles_since_tick = 0
        self.cycle_count = 0
        self.frame_count = 0

    # =========================================================================
    # Loading
    # =========================================================================

    def load(self, rom: bytes) -> None:
        """Reset all mutable state and install a ROM at 0x200.

        Args:
            rom: Raw ROM image

        Raises:
            RomTooLarge: If the ROM does not fit; the machine is left halted
        """
        rom = bytes(rom)
        self._reset_components()
        try:
            self.memory.load(rom)
        except Chip8Error as exc:
            self._rom = b""
            self._halt(exc)
            raise

        self._rom = rom
        logger.debug("Loaded %d byte ROM (sha1 %s)", len(rom), self.rom_sha1)

    def load_file(self, path: Union[str, Path]) -> None:
        """Load a ROM image from disk."""
        self.load(Path(path).read_bytes())

    def reset(self) -> None:
        """Reload the current ROM, clearing all state."""
        self.load(self._rom)

    def _reset_components(self) -> None:
        self.registers.reset()
        self.display.clear()
        self.keypad.reset()
        self.timers.reset()
        self.stack.clear()
        self.trace.clear()
        self._state = Running()
        self._cycles_since_tick = 0
        self.cycle_count = 0
        self.frame_count = 0

    # =========================================================================
    # Execution
    # =========================================================================

    def step(self) -> ExecutionTraceEntry:
        """Execute a single instruction cycle.

        Performs: FETCH -> DECODE -> EXECUTE. While waiting for a key or
        halted, nothing is fetched and the returned entry has
        ``executed=False``.

        Returns:
            ExecutionTraceEntry describing the cycle; ``halt_reason`` is set
            when the machine is halted
        """
        pc = self.registers.pc

        if isinstance(self._state, Halted):
            return ExecutionTraceEntry(
                cycle=self.cycle_count,
                pc=pc,
                halt_reason=self._state.reason,
                error="Machine is halted",
            )

        if isinstance(self._state, WaitingForKey):
            return ExecutionTraceEntry(cycle=self.cycle_count, pc=pc)

        pre_state = self.registers.snapshot() if self.tracing else None
        entry = ExecutionTraceEntry(cycle=self.cycle_count, pc=pc, pre_state=pre_state, quirks=self.quirks)

        try:
            # FETCH
            entry.opcode = self._fetch(pc)

            # DECODE
            entry.decode_result = self.decoder.decode(entry.opcode)

            # EXECUTE: default advance, then let the primitive redirect pc
            self.registers.pc = pc + 2
            self.registry.execute(self, entry.decode_result.key, entry.decode_result.params)
        except Chip8Error as exc:
            self.registers.pc = pc
            self._halt(exc)
            entry.halt_reason = exc.reason
            entry.error = str(exc)

        entry.executed = entry.opcode is not None and entry.halt_reason is None
        if entry.executed:
            self.cycle_count += 1
            self._cycles_since_tick += 1

        if self.tracing:
            entry.post_state = self.registers.snapshot()
            self.trace.append(entry)

        return entry

    def _fetch(self, pc: int) -> int:
        if not PROGRAM_START <= pc <= LAST_INSTRUCTION_ADDRESS:
            raise MemoryOutOfBounds(
                pc, f"Program counter 0x{pc:X} outside 0x{PROGRAM_START:03X}-0x{LAST_INSTRUCTION_ADDRESS:03X}"
            )
        return self.memory.read_word(pc)

    def run(self, cycles: int) -> int:
        """Execute up to ``cycles`` instructions.

        Stops early when the machine halts or starts waiting for a key.

        Returns:
            Number of instructions executed
        """
        executed = 0
        for _ in range(cycles):
            if not self.is_running:
                break
            if self.step().executed:
                executed += 1
        return executed

    def tick_timers(self) -> None:
        """Advance the 60Hz timers by one tick.

        Must be called by the host at 60Hz wall-clock, independent of the
        instruction rate. Also starts a new vertical blank for the display
        wait quirk.
        """
        self.timers.tick()
        self._cycles_since_tick = 0
        self.frame_count += 1

    def run_frame(self, cycles: Optional[int] = None) -> int:
        """Run one display frame: ``cycles`` instructions, then one timer tick.

        Args:
            cycles: Instructions for this frame (default ``cycles_per_frame``)

        Returns:
            Number of instructions executed
        """
        executed = self.run(self.cycles_per_frame if cycles is None else cycles)
        self.tick_timers()
        return executed

    def run_until(
        self,
        max_cycles: Optional[int] = None,
        max_frames: Optional[int] = None,
        stop_on_key_wait: bool = False,
    ) -> StopReason:
        """Run frames until a stop condition is met.

        Args:
            max_cycles: Stop once this many instructions have executed
            max_frames: Stop once this many frames have elapsed
            stop_on_key_wait: Stop as soon as the program blocks on Fx0A

        Returns:
            The StopReason that ended the run

        Raises:
            ValueError: If neither max_cycles nor max_frames is given
        """
        if max_cycles is None and max_frames is None:
            raise ValueError("run_until needs max_cycles or max_frames")

        start_cycles = self.cycle_count
        start_frames = self.frame_count

        while True:
            if self.is_halted:
                return StopReason.HALTED
            if stop_on_key_wait and self.is_waiting:
                return StopReason.WAITING_FOR_KEY
            if max_cycles is not None and self.cycle_count - start_cycles >= max_cycles:
                return StopReason.MAX_CYCLES
            if max_frames is not None and self.frame_count - start_frames >= max_frames:
                return StopReason.MAX_FRAMES

            if self.is_waiting and max_frames is None:
                # only a key press can make progress and none will arrive
                return StopReason.WAITING_FOR_KEY

            budget = self.cycles_per_frame
            if max_cycles is not None:
                budget = min(budget, max_cycles - (self.cycle_count - start_cycles))
            self.run(budget)

            if max_cycles is not None and self.cycle_count - start_cycles >= max_cycles:
                continue
            self.tick_timers()

    # =========================================================================
    # Hooks used by instruction primitives
    # =========================================================================

    def random_byte(self) -> int:
        return self._rng.randrange(256)

    def wait_for_key(self, register: int) -> None:
        """Block execution until a key press edge arrives (Fx0A)."""
        self._state = WaitingForKey(register)

    def in_vblank(self) -> bool:
        """Whether no instruction has completed since the last timer tick."""
        return self._cycles_since_tick == 0

    def _halt(self, exc: Chip8Error) -> None:
        self._state = Halted(exc.reason, str(exc))
        logger.warning("Machine halted at 0x%03X: %s", self.registers.pc, exc)

    # =========================================================================
    # Input
    # =========================================================================

    def set_key(self, index: int, pressed: bool) -> bool:
        """Update the state of one key.

        A press edge while waiting on Fx0A stores the key in the target
        register, moves pc past the Fx0A and resumes execution.

        Args:
            index: Key 0x0-0xF
            pressed: Whether the key is now held

        Returns:
            True if this press resumed a waiting machine

        Raises:
            ValueError: If the key index is invalid
        """
        edge = self.keypad.set_key(index, pressed)
        if not (edge and isinstance(self._state, WaitingForKey)):
            return False

        self.registers.set(self._state.register, index)
        self.registers.pc += 2
        self._state = Running()
        logger.debug("Key %X resumed execution at 0x%03X", index, self.registers.pc)
        return True

    def press_keys(self, keys: Iterable[int]) -> bool:
        """Release then press each key, so every one produces a press edge.

        Returns:
            True if one of the presses resumed a waiting machine
        """
        keys = list(keys)
        for key in keys:
            self.set_key(key, False)
        resumed = False
        for key in keys:
            resumed = self.set_key(key, True) or resumed
        return resumed

    def run_with_keys(
        self,
        keys: Iterable[int],
        max_cycles: Optional[int] = None,
        max_frames: Optional[int] = None,
    ) -> StopReason:
        """Run like ``run_until`` with ``keys`` held for the whole run.

        A key held before Fx0A is not a press edge, so whenever the program
        blocks on Fx0A the keys are released for one frame and pressed again.
        Without keys this is plain ``run_until``.

        Raises:
            ValueError: If a key index is invalid or no limit is given
        """
        keys = list(keys)
        if not keys:
            return self.run_until(max_cycles, max_frames)
        if max_cycles is None and max_frames is None:
            raise ValueError("run_with_keys needs max_cycles or max_frames")

        self.press_keys(keys)
        start_cycles = self.cycle_count
        start_frames = self.frame_count

        while True:
            cycles_left = None if max_cycles is None else max_cycles - (self.cycle_count - start_cycles)
            frames_left = None if max_frames is None else max_frames - (self.frame_count - start_frames)

            stop = self.run_until(cycles_left, frames_left, stop_on_key_wait=True)
            if stop is not StopReason.WAITING_FOR_KEY:
                return stop
            if (cycles_left is not None and self.cycle_count - start_cycles >= max_cycles) or (
                frames_left is not None and self.frame_count - start_frames >= max_frames
            ):
                return stop

            for key in keys:
                self.set_key(key, False)
            self.tick_timers()
            for key in keys:
                self.set_key(key, True)

    # =========================================================================
    # Read-only state
    # =========================================================================

    @property
    def state(self) -> ExecutionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return isinstance(self._state, Running)

    @property
    def is_waiting(self) -> bool:
        return isinstance(self._state, WaitingForKey)

    @property
    def is_halted(self) -> bool:
        return isinstance(self._state, Halted)

    @property
    def halt_reason(self) -> Optional[HaltReason]:
        if isinstance(self._state, Halted):
            return self._state.reason
        return None

    @property
    def framebuffer(self) -> Tuple[Tuple[bool, ...], ...]:
        """Snapshot of the 64x32 screen, one tuple per row."""
        return self.display.snapshot()

    def sound_active(self) -> bool:
        return self.timers.sound_active()

    @property
    def v(self) -> Tuple[int, ...]:
        return tuple(self.registers.v)

    @property
    def i(self) -> int:
        return self.registers.i

    @property
    def pc(self) -> int:
        return self.registers.pc

    @property
    def delay_timer(self) -> int:
        return self.timers.delay

    @property
    def sound_timer(self) -> int:
        return self.timers.sound

    @property
    def stack_frames(self) -> List[int]:
        return self.stack.frames()

    @property
    def rom(self) -> bytes:
        return self._rom

    @property
    def rom_sha1(self) -> str:
        return hashlib.sha1(self._rom).hexdigest()

    def get_register(self, index: int) -> int:
        return self.registers.get(index)

    def dump_registers(self) -> str:
        """One-line dump of the machine state.

        Format:
            ``0-F: <16 bytes> D: dd S: ss CS: depth I: iiii (4 bytes at I)
            PC: pppp (4 bytes at PC) - mnemonic``
        """
        regs = " ".join(f"{value:02X}" for value in self.registers.v)
        i = self.registers.i
        pc = self.registers.pc
        at_i = " ".join(f"{byte:02X}" for byte in self.memory.dump(i, 4))
        at_pc = " ".join(f"{byte:02X}" for byte in self.memory.dump(pc, 4))
        window = self.memory.dump(pc, 2)
        mnemonic = disassemble((window[0] << 8) | window[1], self.quirks) if len(window) == 2 else "<out of bounds>"
        return (
            f"0-F: {regs} D: {self.timers.delay:02X} S: {self.timers.sound:02X} "
            f"CS: {len(self.stack):02X} I: {i:04X} ({at_i}) PC: {pc:04X} ({at_pc}) - {mnemonic}"
        )

    def get_summary(self) -> Dict:
        """Get execution summary.

        Returns:
            Dictionary with execution statistics and final state
        """
        halted = self._state if isinstance(self._state, Halted) else None
        return {
            "state": str(self._state),
            "cycles": self.cycle_count,
            "frames": self.frame_count,
            "halted": halted is not None,
            "halt_reason": halted.reason.value if halted else None,
            "error": halted.detail if halted else None,
            "registers": self.registers.dump(),
            "delay_timer": self.timers.delay,
            "sound_timer": self.timers.sound,
            "stack": self.stack.frames(),
            "lit_pixels": self.display.lit_count(),
            "rom_size": len(self._rom),
            "rom_sha1": self.rom_sha1,
            "trace_length": len(self.trace),
        }

    def print_trace(self) -> None:
        """Print execution trace in human-readable format."""
        print("=" * 70)
        print("CHIP-8 EXECUTION TRACE")
        print("=" * 70)

        for entry in self.trace:
            status = "OK" if entry.ok else f"ERROR: {entry.error}"
            print(f"\n[Cycle {entry.cycle}] {status}")
            opcode = f"{entry.opcode:04X}" if entry.opcode is not None else "----"
            print(f"  {entry.pc:03X}: {opcode}  {entry.mnemonic}")
            if entry.decode_result is not None:
                print(f"  Decoded Key: {entry.decode_result.key} {entry.decode_result.params}")

            # Show register changes
            if entry.pre_state and entry.post_state:
                changes = []
                for index, (before, after) in enumerate(zip(entry.pre_state["v"], entry.post_state["v"])):
                    if before != after:
                        changes.append(f"V{index:X}: {before:02X} → {after:02X}")
                if entry.pre_state["i"] != entry.post_state["i"]:
                    changes.append(f"I: {entry.pre_state['i']:03X} → {entry.post_state['i']:03X}")
                if changes:
                    print(f"  Changes: {', '.join(changes)}")

        print("\n" + "=" * 70)
        print("FINAL STATE")
        print("=" * 70)
        print(f"  State: {self._state}")
        print(f"  {self.dump_registers()}")
        print(f"  Cycles: {self.cycle_count}  Frames: {self.frame_count}")
