"""Tests for the two-pass assembler."""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chip8_vm.assembler import AssemblyError, assemble, parse_program
from chip8_vm.decoder import disassemble
from chip8_vm.quirks import get_preset


def words(rom):
    return [(rom[i] << 8) | rom[i + 1] for i in range(0, len(rom), 2)]


class TestParseProgram:
    """Test statement and label parsing."""

    def test_labels_and_comments(self):
        """Labels resolve to statement addresses; comments are dropped."""
        statements, labels = parse_program("""
            LD V0, 1    ; first
        loop:           # label alone
            ADD V0, 1
        end: JP end
        """)
        assert [s.mnemonic for s in statements] == ["LD", "ADD", "JP"]
        assert labels == {"loop": 0x202, "end": 0x204}

    def test_data_sizes_advance_addresses(self):
        statements, labels = parse_program("DB 1, 2, 3\nDW 0x1234\nafter: CLS")
        assert [s.address for s in statements] == [0x200, 0x203, 0x205]
        assert labels["after"] == 0x205

    def test_custom_start(self):
        _, labels = parse_program("CLS\nhere: RET", start=0x300)
        assert labels["here"] == 0x302

    def test_duplicate_label(self):
        with pytest.raises(AssemblyError) as excinfo:
            parse_program("a: CLS\na: RET")
        assert excinfo.value.line == 2

    @pytest.mark.parametrize("label", ["V0", "I", "DT", "1abc"])
    def test_reserved_or_malformed_label(self, label):
        with pytest.raises(AssemblyError):
            parse_program(f"{label}: CLS")


class TestEncoding:
    """Test mnemonic -> opcode encoding."""

    @pytest.mark.parametrize("source,opcode", [
        ("CLS", 0x00E0),
        ("RET", 0x00EE),
        ("JP 0x345", 0x1345),
        ("CALL 0x400", 0x2400),
        ("SE V1, 0x22", 0x3122),
        ("SNE V1, 34", 0x4122),
        ("SE V1, V2", 0x5120),
        ("SNE V1, V2", 0x9120),
        ("LD V3, 0xFF", 0x63FF),
        ("ADD V3, 1", 0x7301),
        ("LD V3, V4", 0x8340),
        ("OR V3, V4", 0x8341),
        ("AND V3, V4", 0x8342),
        ("XOR V3, V4", 0x8343),
        ("ADD V3, V4", 0x8344),
        ("SUB V3, V4", 0x8345),
        ("SHR V3, V4", 0x8346),
        ("SUBN V3, V4", 0x8347),
        ("SHL V3, V4", 0x834E),
        ("SHR V3", 0x8336),
        ("SHL V3", 0x833E),
        ("LD I, 0x123", 0xA123),
        ("JP V0, 0x300", 0xB300),
        ("JP V3, 0x345", 0xB345),
        ("RND VA, 0x0F", 0xCA0F),
        ("DRW V0, V1, 5", 0xD015),
        ("SKP V5", 0xE59E),
        ("SKNP V5", 0xE5A1),
        ("LD V5, DT", 0xF507),
        ("LD V5, K", 0xF50A),
        ("LD DT, V5", 0xF515),
        ("LD ST, V5", 0xF518),
        ("ADD I, V5", 0xF51E),
        ("LD F, V5", 0xF529),
        ("LD B, V5", 0xF533),
        ("LD [I], V5", 0xF555),
        ("LD V5, [I]", 0xF565),
        ("ld v5, 0b101", 0x6505),
    ])
    def test_opcode(self, source, opcode):
        assert words(assemble(source)) == [opcode]

    def test_labels_forward_and_backward(self):
        rom = assemble("""
        start:
            CALL sub
            JP start
        sub:
            RET
        """)
        assert words(rom) == [0x2204, 0x1200, 0x00EE]

    def test_data_directives(self):
        assert assemble("DB 0xF0, 0x90\nDW 0x1234") == bytes([0xF0, 0x90, 0x12, 0x34])

    def test_label_as_index(self):
        rom = assemble("LD I, sprite\nsprite: DB 0xFF")
        assert words(rom[:2]) == [0xA202]


class TestErrors:
    """Test error reporting."""

    @pytest.mark.parametrize("source", [
        "FOO V1",
        "LD V1",
        "LD V1, 256",
        "JP 0x1000",
        "DRW V0, V1, 16",
        "SE 3, V1",
        "JP V1, 0x300",
        "JP nowhere",
        "DB",
        "DB 0x100",
        "ADD V1,",
        "CLS V0",
    ])
    def test_invalid_source(self, source):
        with pytest.raises(AssemblyError):
            assemble(source)

    def test_error_line_number(self):
        with pytest.raises(AssemblyError) as excinfo:
            assemble("CLS\n\nLD V0, 999")
        assert excinfo.value.line == 3
        assert "line 3" in str(excinfo.value)

    def test_program_too_large(self):
        with pytest.raises(AssemblyError):
            assemble("CLS\n" * 0x701)


class TestDisassemblyRoundTrip:
    """Test that disassembled text assembles back to the same opcode."""

    @pytest.mark.parametrize("opcode", [
        0x00E0, 0x00EE, 0x1ABC, 0x2ABC, 0x3A12, 0x4A12, 0x5AB0, 0x6A12, 0x7A12,
        0x8AB0, 0x8AB1, 0x8AB2, 0x8AB3, 0x8AB4, 0x8AB5, 0x8AB6, 0x8AB7, 0x8ABE,
        0x9AB0, 0xAABC, 0xBABC, 0xCA12, 0xDAB5, 0xEA9E, 0xEAA1, 0xFA07, 0xFA0A,
        0xFA15, 0xFA18, 0xFA1E, 0xFA29, 0xFA33, 0xFA55, 0xFA65, 0x0123,
    ])
    def test_stable(self, opcode):
        assert words(assemble(disassemble(opcode))) == [opcode]

    def test_stable_with_jump_through_vx(self):
        quirks = get_preset("superchip")
        assert disassemble(0xB3A0, quirks) == "JP V3, 0x3A0"
        assert words(assemble(disassemble(0xB3A0, quirks))) == [0xB3A0]
