"""Tests for the Chip8 fetch-decode-execute engine."""

import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chip8_vm import (
    Chip8,
    Halted,
    HaltReason,
    Quirks,
    RomTooLarge,
    Running,
    StopReason,
    WaitingForKey,
    assemble,
)
from chip8_vm.memory import MAX_ROM_SIZE


@pytest.fixture
def vm():
    return Chip8(seed=0)


def rom(*opcodes):
    return b"".join(opcode.to_bytes(2, "big") for opcode in opcodes)


class TestLoad:
    """Test loading and resetting."""

    def test_initial_state(self, vm):
        vm.load(b"")
        assert vm.pc == 0x200
        assert vm.v == (0,) * 16
        assert vm.i == 0
        assert vm.state == Running()
        assert vm.cycle_count == 0

    def test_single_load_immediate(self, vm):
        """[0x60, 0x05]: one step leaves V0 = 5 and pc = 0x202."""
        vm.load(bytes([0x60, 0x05]))
        entry = vm.step()
        assert entry.executed is True
        assert entry.ok is True
        assert vm.v[0] == 5
        assert vm.pc == 0x202

    def test_rom_too_large(self, vm):
        """An oversize ROM raises and leaves the machine halted."""
        with pytest.raises(RomTooLarge):
            vm.load(bytes(MAX_ROM_SIZE + 1))
        assert vm.is_halted
        assert vm.halt_reason is HaltReason.ROM_TOO_LARGE

    def test_load_recovers_from_halt(self, vm):
        vm.load(rom(0x00EE))
        vm.step()
        assert vm.is_halted
        vm.load(rom(0x6001))
        assert vm.is_running
        vm.step()
        assert vm.v[0] == 1

    def test_reset_reloads_rom(self, vm):
        vm.load(rom(0x6007, 0x1202))
        vm.run(5)
        vm.timers.set_delay(9)
        vm.reset()
        assert vm.v[0] == 0
        assert vm.pc == 0x200
        assert vm.delay_timer == 0
        assert vm.rom == rom(0x6007, 0x1202)

    def test_load_file(self, vm, tmp_path):
        path = tmp_path / "prog.ch8"
        path.write_bytes(rom(0x6A42))
        vm.load_file(path)
        vm.step()
        assert vm.v[0xA] == 0x42

    def test_rom_sha1(self, vm):
        vm.load(b"")
        assert vm.rom_sha1 == "da39a3ee5e6b4b0d3255bfef95601890afd80709"


class TestFaults:
    """Test fault handling inside step()."""

    def test_unknown_instruction(self, vm):
        vm.load(rom(0x6001, 0x0123))
        vm.step()
        entry = vm.step()
        assert entry.halt_reason is HaltReason.UNKNOWN_INSTRUCTION
        assert "0123" in entry.error
        assert vm.state == Halted(HaltReason.UNKNOWN_INSTRUCTION, entry.error)
        assert vm.pc == 0x202

    def test_stack_underflow(self, vm):
        vm.load(rom(0x00EE))
        entry = vm.step()
        assert entry.halt_reason is HaltReason.STACK_UNDERFLOW
        assert vm.pc == 0x200

    def test_stack_overflow_on_seventeenth_call(self, vm):
        """A self-call recurses until the seventeenth push faults."""
        vm.load(rom(0x2200))
        entries = [vm.step() for _ in range(17)]
        assert all(entry.ok for entry in entries[:16])
        assert entries[16].halt_reason is HaltReason.STACK_OVERFLOW
        assert len(vm.stack_frames) == 16

    def test_custom_stack_depth(self):
        vm = Chip8(stack_depth=2)
        vm.load(rom(0x2200))
        vm.run(5)
        assert vm.halt_reason is HaltReason.STACK_OVERFLOW
        assert vm.cycle_count == 2

    def test_running_off_memory(self, vm):
        """Falling through to the end of memory faults on fetch."""
        vm.load(rom(0x1FFE))
        vm.memory.write_block(0xFFE, [0x60, 0x01])
        vm.step()
        entry = vm.step()
        assert entry.ok is True
        entry = vm.step()
        assert entry.halt_reason is HaltReason.MEMORY_OUT_OF_BOUNDS
        assert entry.opcode is None

    def test_pc_below_program_start_faults(self, vm):
        vm.load(rom(0x1100))
        vm.step()
        entry = vm.step()
        assert entry.halt_reason is HaltReason.MEMORY_OUT_OF_BOUNDS

    def test_step_on_halted_machine(self, vm):
        """A halted machine stays put and reports why."""
        vm.load(rom(0x00EE))
        vm.step()
        entry = vm.step()
        assert entry.executed is False
        assert entry.halt_reason is HaltReason.STACK_UNDERFLOW
        assert vm.cycle_count == 0
        assert vm.run(10) == 0

    def test_halt_logged(self, vm, caplog):
        vm.load(rom(0x00EE))
        with caplog.at_level(logging.WARNING, logger="chip8_vm.interpreter"):
            vm.step()
        assert "underflow" in caplog.text


class TestCalls:
    """Test nested subroutine calls."""

    def test_nested_calls_restore_pc(self, vm):
        vm.load(assemble("""
            CALL outer      ; 200
            LD V0, 1        ; 202
        done:
            JP done         ; 204
        outer:
            CALL inner      ; 206
            LD V1, 1        ; 208
            RET             ; 20A
        inner:
            LD V2, 1        ; 20C
            RET             ; 20E
        """))
        pcs = []
        for _ in range(8):
            vm.step()
            pcs.append(vm.pc)
        assert pcs == [0x206, 0x20C, 0x20E, 0x208, 0x20A, 0x202, 0x204, 0x204]
        assert vm.v[:3] == (1, 1, 1)
        assert vm.stack_frames == []


class TestKeyWait:
    """Test Fx0A blocking."""

    def test_blocks_until_press_edge(self, vm):
        vm.load(rom(0xF30A, 0x6101))
        vm.step()
        assert vm.state == WaitingForKey(3)
        assert vm.pc == 0x200

        for _ in range(5):
            entry = vm.step()
            assert entry.executed is False
        assert vm.pc == 0x200
        assert vm.cycle_count == 1

        assert vm.set_key(0xB, True) is True
        assert vm.is_running
        assert vm.v[3] == 0xB
        assert vm.pc == 0x202
        vm.step()
        assert vm.v[1] == 1

    def test_held_key_is_not_an_edge(self, vm):
        """A key already down before the wait does not satisfy it."""
        vm.load(rom(0xF30A))
        vm.set_key(5, True)
        vm.step()
        assert vm.set_key(5, True) is False
        assert vm.is_waiting
        vm.set_key(5, False)
        assert vm.set_key(5, True) is True
        assert vm.v[3] == 5

    def test_timers_run_while_waiting(self, vm):
        vm.load(rom(0x6105, 0xF115, 0xF00A))
        vm.run(3)
        assert vm.is_waiting
        vm.tick_timers()
        vm.tick_timers()
        assert vm.delay_timer == 3

    def test_invalid_key(self, vm):
        with pytest.raises(ValueError):
            vm.set_key(0x10, True)

    def test_press_keys_makes_fresh_edges(self, vm):
        """Re-pressing a held key releases it first, so the wait resumes."""
        vm.load(rom(0xF30A))
        vm.set_key(5, True)
        vm.step()
        assert vm.press_keys([5]) is True
        assert vm.v[3] == 5
        assert vm.keypad.is_pressed(5)


class TestRunWithKeys:
    """Test running with keys held across Fx0A waits."""

    def test_each_wait_gets_a_press(self, vm):
        """One press per frame; the tenth lands on the frame limit."""
        vm.load(assemble("""
        loop:
            LD V0, K
            ADD V1, 1
            JP loop
        """))
        assert vm.run_with_keys([0xA], max_frames=10) is StopReason.MAX_FRAMES
        assert vm.v[0] == 0xA
        assert vm.v[1] == 9
        assert vm.frame_count == 10

    def test_cycle_limit(self, vm):
        vm.load(rom(0xF00A, 0x7101, 0x1200))
        assert vm.run_with_keys([3], max_cycles=30) is StopReason.MAX_CYCLES
        assert vm.cycle_count == 30
        assert vm.v[1] == 10

    def test_without_keys_stays_waiting(self, vm):
        vm.load(rom(0xF00A))
        assert vm.run_with_keys([], max_frames=5) is StopReason.MAX_FRAMES
        assert vm.is_waiting

    def test_held_key_visible_to_skp(self, vm):
        vm.load(rom(0x6004, 0xE09E, 0x6101, 0x1206))
        vm.run_with_keys([4], max_frames=2)
        assert vm.v[1] == 0

    def test_invalid_key(self, vm):
        vm.load(rom(0x1200))
        with pytest.raises(ValueError):
            vm.run_with_keys([0x10], max_frames=1)

    def test_needs_a_limit(self, vm):
        vm.load(rom(0x1200))
        with pytest.raises(ValueError):
            vm.run_with_keys([1])


class TestTimersAndFrames:
    """Test the host-driven 60Hz tick."""

    def test_tick_independent_of_cycles(self, vm):
        vm.load(rom(0x6A0A, 0xFA15, 0x1204))
        vm.run(100)
        assert vm.delay_timer == 10
        vm.tick_timers()
        assert vm.delay_timer == 9
        for _ in range(20):
            vm.tick_timers()
        assert vm.delay_timer == 0

    def test_run_frame(self):
        vm = Chip8(cycles_per_frame=4)
        vm.load(rom(0x1200))
        assert vm.run_frame() == 4
        assert vm.frame_count == 1
        assert vm.cycle_count == 4
        assert vm.run_frame(cycles=7) == 7

    def test_invalid_cycles_per_frame(self):
        with pytest.raises(ValueError):
            Chip8(cycles_per_frame=0)


class TestRunUntil:
    """Test stop conditions."""

    def test_max_cycles(self, vm):
        vm.load(rom(0x1200))
        assert vm.run_until(max_cycles=25) is StopReason.MAX_CYCLES
        assert vm.cycle_count == 25
        assert vm.frame_count == 2

    def test_max_frames(self, vm):
        vm.load(rom(0x1200))
        assert vm.run_until(max_frames=3) is StopReason.MAX_FRAMES
        assert vm.frame_count == 3
        assert vm.cycle_count == 30

    def test_halted(self, vm):
        vm.load(rom(0x00EE))
        assert vm.run_until(max_frames=10) is StopReason.HALTED

    def test_stop_on_key_wait(self, vm):
        vm.load(rom(0x6001, 0xF00A))
        assert vm.run_until(max_frames=10, stop_on_key_wait=True) is StopReason.WAITING_FOR_KEY
        assert vm.v[0] == 1
        assert vm.pc == 0x202

    def test_waiting_keeps_ticking_frames(self, vm):
        vm.load(rom(0xF00A))
        assert vm.run_until(max_frames=5) is StopReason.MAX_FRAMES
        assert vm.is_waiting

    def test_waiting_with_only_cycle_limit(self, vm):
        vm.load(rom(0xF00A))
        assert vm.run_until(max_cycles=100) is StopReason.WAITING_FOR_KEY

    def test_needs_a_limit(self, vm):
        with pytest.raises(ValueError):
            vm.run_until()


class TestTrace:
    """Test trace entries and reporting."""

    def test_trace_records_snapshots(self):
        vm = Chip8(trace=True)
        vm.load(rom(0x6005, 0x7003))
        vm.run(2)
        assert len(vm.trace) == 2
        entry = vm.trace[1]
        assert entry.pre_state["v"][0] == 5
        assert entry.post_state["v"][0] == 8
        assert entry.mnemonic == "ADD V0, 0x03"
        assert entry.decode_result.key == "OP_ADD_IMM"

    def test_trace_mnemonic_follows_jump_quirk(self):
        vm = Chip8(Quirks(jump_offset_uses_vx=True), trace=True)
        vm.load(rom(0x6302, 0xB300))
        vm.run(2)
        assert vm.trace[1].mnemonic == "JP V3, 0x300"
        assert vm.pc == 0x302

    def test_trace_bounded(self):
        vm = Chip8(trace=True, max_trace=5)
        vm.load(rom(0x1200))
        vm.run(20)
        assert len(vm.trace) == 5

    def test_no_trace_by_default(self, vm):
        vm.load(rom(0x6005))
        entry = vm.step()
        assert entry.pre_state is None
        assert len(vm.trace) == 0

    def test_print_trace(self, capsys):
        vm = Chip8(trace=True)
        vm.load(rom(0x6005))
        vm.step()
        vm.print_trace()
        out = capsys.readouterr().out
        assert "CHIP-8 EXECUTION TRACE" in out
        assert "V0: 00 → 05" in out


class TestInspection:
    """Test the read-only debugging surface."""

    def test_dump_registers(self, vm):
        vm.load(rom(0x6A12, 0xA300))
        vm.run(2)
        assert vm.dump_registers() == (
            "0-F: 00 00 00 00 00 00 00 00 00 00 12 00 00 00 00 00 "
            "D: 00 S: 00 CS: 00 I: 0300 (00 00 00 00) PC: 0204 (00 00 00 00) - DW 0x0000"
        )

    def test_summary(self, vm):
        vm.load(rom(0x00EE))
        vm.step()
        summary = vm.get_summary()
        assert summary["halted"] is True
        assert summary["halt_reason"] == "StackUnderflow"
        assert summary["cycles"] == 0
        assert summary["registers"]["PC"] == 0x200
        assert summary["rom_size"] == 2

    def test_framebuffer_is_snapshot(self, vm):
        vm.load(rom(0xA000, 0xD005))
        frame = vm.framebuffer
        vm.run(2)
        assert not any(any(row) for row in frame)
        assert any(any(row) for row in vm.framebuffer)
