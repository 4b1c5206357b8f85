"""Opcode decoder for the CHIP-8 instruction set.

The decoder turns a 16-bit opcode into an operation key plus its operand
fields. The key is what the instruction registry dispatches on:

    opcode -> Decoder -> (operation_key, params) -> InstructionRegistry -> Execute

Operand fields, extracted from the nibbles of ``0xONNN``:
    x: second nibble, a register index
    y: third nibble, a register index
    n: fourth nibble
    kk: low byte
    nnn: low 12 bits, an address

The same table drives ``disassemble``, which prints Cowgod-style mnemonics
that the assembler accepts back.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from .quirks import Quirks


@dataclass
class DecodeResult:
    """Result of decoding one opcode.

    Attributes:
        key: Operation key (e.g., "OP_ADD_REG")
        params: Operand fields used by the operation
        valid: Whether the opcode matched a known instruction
        error: Error message if decode failed
        opcode: The raw 16-bit opcode
    """
    key: str
    params: Dict[str, int] = field(default_factory=dict)
    valid: bool = True
    error: Optional[str] = None
    opcode: int = 0


class Decoder:
    """Bit-pattern decoder over the closed CHIP-8 opcode set."""

    # Valid operation keys that can be emitted
    VALID_KEYS: Set[str] = {
        "OP_CLS",
        "OP_RET",
        "OP_JP",
        "OP_CALL",
        "OP_SE_IMM",
        "OP_SNE_IMM",
        "OP_SE_REG",
        "OP_SNE_REG",
        "OP_LD_IMM",
        "OP_ADD_IMM",
        "OP_LD_REG",
        "OP_OR",
        "OP_AND",
        "OP_XOR",
        "OP_ADD_REG",
        "OP_SUB",
        "OP_SHR",
        "OP_SUBN",
        "OP_SHL",
        "OP_LD_I",
        "OP_JP_OFFSET",
        "OP_RND",
        "OP_DRW",
        "OP_SKP",
        "OP_SKNP",
        "OP_LD_VX_DT",
        "OP_LD_VX_K",
        "OP_LD_DT_VX",
        "OP_LD_ST_VX",
        "OP_ADD_I",
        "OP_LD_F",
        "OP_LD_B",
        "OP_LD_I_VX",
        "OP_LD_VX_I",
        "OP_INVALID",
    }

    # 8xyN sub-operations
    ALU_KEYS: Dict[int, str] = {
        0x0: "OP_LD_REG",
        0x1: "OP_OR",
        0x2: "OP_AND",
        0x3: "OP_XOR",
        0x4: "OP_ADD_REG",
        0x5: "OP_SUB",
        0x6: "OP_SHR",
        0x7: "OP_SUBN",
        0xE: "OP_SHL",
    }

    # FxNN sub-operations
    MISC_KEYS: Dict[int, str] = {
        0x07: "OP_LD_VX_DT",
        0x0A: "OP_LD_VX_K",
        0x15: "OP_LD_DT_VX",
        0x18: "OP_LD_ST_VX",
        0x1E: "OP_ADD_I",
        0x29: "OP_LD_F",
        0x33: "OP_LD_B",
        0x55: "OP_LD_I_VX",
        0x65: "OP_LD_VX_I",
    }

    def decode(self, opcode: int) -> DecodeResult:
        """Decode an opcode to an operation key and parameters.

        Args:
            opcode: 16-bit instruction word

        Returns:
            DecodeResult; ``valid`` is False and ``key`` is "OP_INVALID" for
            opcodes outside the instruction set
        """
        opcode &= 0xFFFF
        family = opcode >> 12
        x = (opcode >> 8) & 0xF
        y = (opcode >> 4) & 0xF
        n = opcode & 0xF
        kk = opcode & 0xFF
        nnn = opcode & 0xFFF

        if family == 0x0:
            if opcode == 0x00E0:
                return self._ok("OP_CLS", {}, opcode)
            if opcode == 0x00EE:
                return self._ok("OP_RET", {}, opcode)
            return self._invalid(opcode, "Machine code routines (0nnn) are not supported")

        if family == 0x1:
            return self._ok("OP_JP", {"nnn": nnn}, opcode)
        if family == 0x2:
            return self._ok("OP_CALL", {"nnn": nnn}, opcode)
        if family == 0x3:
            return self._ok("OP_SE_IMM", {"x": x, "kk": kk}, opcode)
        if family == 0x4:
            return self._ok("OP_SNE_IMM", {"x": x, "kk": kk}, opcode)
        if family == 0x5 and n == 0x0:
            return self._ok("OP_SE_REG", {"x": x, "y": y}, opcode)
        if family == 0x6:
            return self._ok("OP_LD_IMM", {"x": x, "kk": kk}, opcode)
        if family == 0x7:
            return self._ok("OP_ADD_IMM", {"x": x, "kk": kk}, opcode)
        if family == 0x8 and n in self.ALU_KEYS:
            return self._ok(self.ALU_KEYS[n], {"x": x, "y": y}, opcode)
        if family == 0x9 and n == 0x0:
            return self._ok("OP_SNE_REG", {"x": x, "y": y}, opcode)
        if family == 0xA:
            return self._ok("OP_LD_I", {"nnn": nnn}, opcode)
        if family == 0xB:
            return self._ok("OP_JP_OFFSET", {"x": x, "nnn": nnn}, opcode)
        if family == 0xC:
            return self._ok("OP_RND", {"x": x, "kk": kk}, opcode)
        if family == 0xD:
            return self._ok("OP_DRW", {"x": x, "y": y, "n": n}, opcode)
        if family == 0xE and kk == 0x9E:
            return self._ok("OP_SKP", {"x": x}, opcode)
        if family == 0xE and kk == 0xA1:
            return self._ok("OP_SKNP", {"x": x}, opcode)
        if family == 0xF and kk in self.MISC_KEYS:
            return self._ok(self.MISC_KEYS[kk], {"x": x}, opcode)

        return self._invalid(opcode, f"Unknown instruction format: {opcode:04X}")

    def _ok(self, key: str, params: Dict[str, int], opcode: int) -> DecodeResult:
        return DecodeResult(key, params, True, opcode=opcode)

    def _invalid(self, opcode: int, error: str) -> DecodeResult:
        return DecodeResult("OP_INVALID", {"raw": opcode}, False, error=error, opcode=opcode)


# Mnemonic templates keyed by operation key; filled from DecodeResult.params
MNEMONICS: Dict[str, str] = {
    "OP_CLS": "CLS",
    "OP_RET": "RET",
    "OP_JP": "JP 0x{nnn:03X}",
    "OP_CALL": "CALL 0x{nnn:03X}",
    "OP_SE_IMM": "SE V{x:X}, 0x{kk:02X}",
    "OP_SNE_IMM": "SNE V{x:X}, 0x{kk:02X}",
    "OP_SE_REG": "SE V{x:X}, V{y:X}",
    "OP_SNE_REG": "SNE V{x:X}, V{y:X}",
    "OP_LD_IMM": "LD V{x:X}, 0x{kk:02X}",
    "OP_ADD_IMM": "ADD V{x:X}, 0x{kk:02X}",
    "OP_LD_REG": "LD V{x:X}, V{y:X}",
    "OP_OR": "OR V{x:X}, V{y:X}",
    "OP_AND": "AND V{x:X}, V{y:X}",
    "OP_XOR": "XOR V{x:X}, V{y:X}",
    "OP_ADD_REG": "ADD V{x:X}, V{y:X}",
    "OP_SUB": "SUB V{x:X}, V{y:X}",
    "OP_SHR": "SHR V{x:X}, V{y:X}",
    "OP_SUBN": "SUBN V{x:X}, V{y:X}",
    "OP_SHL": "SHL V{x:X}, V{y:X}",
    "OP_LD_I": "LD I, 0x{nnn:03X}",
    "OP_JP_OFFSET": "JP V0, 0x{nnn:03X}",
    "OP_RND": "RND V{x:X}, 0x{kk:02X}",
    "OP_DRW": "DRW V{x:X}, V{y:X}, {n}",
    "OP_SKP": "SKP V{x:X}",
    "OP_SKNP": "SKNP V{x:X}",
    "OP_LD_VX_DT": "LD V{x:X}, DT",
    "OP_LD_VX_K": "LD V{x:X}, K",
    "OP_LD_DT_VX": "LD DT, V{x:X}",
    "OP_LD_ST_VX": "LD ST, V{x:X}",
    "OP_ADD_I": "ADD I, V{x:X}",
    "OP_LD_F": "LD F, V{x:X}",
    "OP_LD_B": "LD B, V{x:X}",
    "OP_LD_I_VX": "LD [I], V{x:X}",
    "OP_LD_VX_I": "LD V{x:X}, [I]",
}

_decoder = Decoder()


def disassemble(opcode: int, quirks: Optional[Quirks] = None) -> str:
    """Render one opcode as a mnemonic; unknown opcodes become ``DW 0xNNNN``.

    With ``jump_offset_uses_vx`` set in ``quirks``, Bnnn names the register
    it really adds (``JP V3, 0x345``) instead of V0.
    """
    result = _decoder.decode(opcode)
    if not result.valid:
        return f"DW 0x{result.opcode:04X}"
    if result.key == "OP_JP_OFFSET" and quirks is not None and quirks.jump_offset_uses_vx:
        return "JP V{x:X}, 0x{nnn:03X}".format(**result.params)
    return MNEMONICS[result.key].format(**result.params)


def disassemble_rom(rom: bytes, start: int = 0x200, quirks: Optional[Quirks] = None) -> List[str]:
    """List a ROM as ``address: opcode  mnemonic`` lines.

    A trailing odd byte is shown as ``DB``.
    """
    lines = []
    for offset in range(0, len(rom) - 1, 2):
        opcode = (rom[offset] << 8) | rom[offset + 1]
        lines.append(f"{start + offset:03X}: {opcode:04X}  {disassemble(opcode, quirks)}")
    if len(rom) % 2:
        lines.append(f"{start + len(rom) - 1:03X}: {rom[-1]:02X}    DB 0x{rom[-1]:02X}")
    return lines
