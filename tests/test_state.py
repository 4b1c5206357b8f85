"""Tests for the register file and execution states."""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chip8_vm.errors import HaltReason
from chip8_vm.state import VF, Halted, Registers, Running, WaitingForKey


class TestRegistersCreation:
    """Test Registers initialization and defaults."""

    def test_default_registers(self):
        """Default registers are zero with pc at the program start."""
        regs = Registers()
        assert regs.v == [0] * 16
        assert regs.i == 0
        assert regs.pc == 0x200

    def test_reset(self):
        regs = Registers(v=[7] * 16, i=0x300, pc=0x456)
        regs.reset()
        assert regs == Registers()


class TestRegistersAccess:
    """Test register reads and writes."""

    def test_set_wraps_to_byte(self):
        regs = Registers()
        regs.set(3, 0x105)
        assert regs.get(3) == 0x05

    def test_set_negative_wraps(self):
        regs = Registers()
        regs.set(0, -1)
        assert regs.get(0) == 0xFF

    @pytest.mark.parametrize("index", [-1, 16])
    def test_invalid_register(self, index):
        regs = Registers()
        with pytest.raises(KeyError):
            regs.get(index)
        with pytest.raises(KeyError):
            regs.set(index, 0)

    def test_set_flag_normalizes(self):
        """VF only ever holds 0 or 1."""
        regs = Registers()
        regs.set_flag(0x80)
        assert regs.v[VF] == 1
        regs.set_flag(0)
        assert regs.v[VF] == 0

    def test_set_index_wraps_to_word(self):
        regs = Registers()
        regs.set_index(0x10005)
        assert regs.i == 0x0005


class TestRegistersSnapshot:
    """Test detached copies used by tracing."""

    def test_snapshot_is_detached(self):
        regs = Registers()
        snap = regs.snapshot()
        regs.set(0, 9)
        assert snap["v"][0] == 0
        assert snap["pc"] == 0x200

    def test_dump_names(self):
        regs = Registers()
        regs.set(0xA, 0x42)
        dump = regs.dump()
        assert dump["VA"] == 0x42
        assert dump["I"] == 0
        assert dump["PC"] == 0x200
        assert len(dump) == 18


class TestRegistersValidation:
    """Test state validation."""

    def test_valid_registers(self):
        assert Registers().validate() is True

    def test_invalid_register_value(self):
        regs = Registers()
        regs.v[0] = 0x100
        assert regs.validate() is False

    def test_wrong_register_count(self):
        assert Registers(v=[0] * 15).validate() is False

    def test_negative_pc(self):
        assert Registers(pc=-1).validate() is False


class TestExecutionStates:
    """Test the three execution states."""

    def test_state_equality(self):
        assert Running() == Running()
        assert WaitingForKey(3) == WaitingForKey(3)
        assert WaitingForKey(3) != WaitingForKey(4)

    def test_state_str(self):
        assert str(Running()) == "Running"
        assert str(WaitingForKey(0xA)) == "WaitingForKey(VA)"
        assert str(Halted(HaltReason.STACK_UNDERFLOW)) == "Halted(StackUnderflow)"

    def test_halted_carries_detail(self):
        state = Halted(HaltReason.UNKNOWN_INSTRUCTION, "Unknown instruction 0123 at 0x200")
        assert state.reason is HaltReason.UNKNOWN_INSTRUCTION
        assert "0123" in state.detail
