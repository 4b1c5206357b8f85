"""Two-pass assembler for CHIP-8 mnemonics.

Accepts the same Cowgod-style mnemonics that ``decoder.disassemble`` emits,
so a disassembled listing can be assembled back into the identical ROM.

Source format:
    - One statement per line: ``[label:] MNEMONIC operand, operand ...``
    - Labels on their own line or in front of a statement
    - Comments start with ``;`` or ``#``
    - Numbers in decimal, ``0x`` hex or ``0b`` binary
    - ``DB`` emits bytes, ``DW`` emits big-endian words

Example:
        LD V0, 0        ; x
        LD V1, 0        ; y
        LD I, smile
    loop:
        DRW V0, V1, 3
        JP loop
    smile:
        DB 0b01000010, 0b00000000, 0b00111100
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .memory import MEMORY_SIZE, PROGRAM_START


logger = logging.getLogger(__name__)

REGISTER_RE = re.compile(r"^V([0-9A-F])$", re.IGNORECASE)
LABEL_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
RESERVED = {"I", "K", "DT", "ST", "F", "B", "[I]"}


class AssemblyError(ValueError):
    """Raised for malformed source, with the offending line number."""

    def __init__(self, line: int, message: str):
        self.line = line
        self.message = message
        super().__init__(f"line {line}: {message}")


@dataclass
class Statement:
    """One parsed source statement.

    Attributes:
        line: 1-based source line number
        mnemonic: Upper-cased mnemonic or directive
        operands: Raw operand strings
        address: Address the statement assembles to
    """
    line: int
    mnemonic: str
    operands: List[str] = field(default_factory=list)
    address: int = PROGRAM_START

    @property
    def size(self) -> int:
        if self.mnemonic == "DB":
            return len(self.operands)
        if self.mnemonic == "DW":
            return 2 * len(self.operands)
        return 2


def parse_program(source: str, start: int = PROGRAM_START) -> Tuple[List[Statement], Dict[str, int]]:
    """Parse assembly source into statements and labels.

    Handles:
        - Labels (``name:``), alone or before a statement
        - Comments (starting with ; or #)
        - Blank lines

    Args:
        source: Assembly source code
        start: Address of the first statement

    Returns:
        Tuple of (list of statements, label-to-address dict)

    Raises:
        AssemblyError: On invalid or duplicate labels
    """
    statements: List[Statement] = []
    labels: Dict[str, int] = {}
    address = start

    for line_num, line in enumerate(source.split("\n"), start=1):
        # Remove comments
        line = re.sub(r"[;#].*$", "", line).strip()

        while ":" in line:
            label, _, line = line.partition(":")
            label = label.strip()
            line = line.strip()
            if not LABEL_RE.match(label) or REGISTER_RE.match(label) or label.upper() in RESERVED:
                raise AssemblyError(line_num, f"Invalid label: {label!r}")
            if label in labels:
                raise AssemblyError(line_num, f"Duplicate label: {label}")
            labels[label] = address

        if not line:
            continue

        mnemonic, _, rest = line.partition(" ")
        operands = [operand.strip() for operand in rest.split(",")] if rest.strip() else []
        if any(not operand for operand in operands):
            raise AssemblyError(line_num, f"Empty operand in: {line}")

        statement = Statement(line_num, mnemonic.upper(), operands, address)
        statements.append(statement)
        address += statement.size

    return statements, labels


def assemble(source: str, start: int = PROGRAM_START) -> bytes:
    """Assemble source code into a ROM image.

    Args:
        source: Assembly source code
        start: Load address of the ROM (labels resolve relative to it)

    Returns:
        ROM bytes

    Raises:
        AssemblyError: If the source is malformed or does not fit in memory
    """
    statements, labels = parse_program(source, start)
    rom = bytearray()

    for statement in statements:
        rom += _Encoder(statement, labels).encode()

    if start + len(rom) > MEMORY_SIZE:
        last_line = statements[-1].line if statements else 0
        raise AssemblyError(last_line, f"Program is {len(rom)} bytes and overruns memory")

    logger.debug("Assembled %d statements into %d bytes", len(statements), len(rom))
    return bytes(rom)


class _Encoder:
    """Encodes a single statement against a resolved label table."""

    def __init__(self, statement: Statement, labels: Dict[str, int]):
        self.statement = statement
        self.labels = labels

    def error(self, message: str) -> AssemblyError:
        return AssemblyError(self.statement.line, message)

    # -------------------------------------------------------------------------
    # Operand parsing
    # -------------------------------------------------------------------------

    def register(self, operand: str) -> Optional[int]:
        match = REGISTER_RE.match(operand)
        return int(match.group(1), 16) if match else None

    def require_register(self, operand: str) -> int:
        index = self.register(operand)
        if index is None:
            raise self.error(f"Expected a register, got {operand!r}")
        return index

    def number(self, operand: str, limit: int, what: str) -> int:
        try:
            value = int(operand, 0)
        except ValueError:
            raise self.error(f"Invalid {what}: {operand!r}") from None
        if not 0 <= value <= limit:
            raise self.error(f"{what.capitalize()} out of range: {operand}")
        return value

    def address(self, operand: str) -> int:
        if operand in self.labels:
            return self.labels[operand]
        if LABEL_RE.match(operand) and self.register(operand) is None:
            raise self.error(f"Unknown label: {operand}")
        return self.number(operand, 0xFFF, "address")

    def expect(self, count: int) -> List[str]:
        operands = self.statement.operands
        if len(operands) != count:
            raise self.error(
                f"{self.statement.mnemonic} takes {count} operand(s), got {len(operands)}"
            )
        return operands

    # -------------------------------------------------------------------------
    # Encoding
    # -------------------------------------------------------------------------

    def encode(self) -> bytes:
        mnemonic = self.statement.mnemonic
        if mnemonic == "DB":
            if not self.statement.operands:
                raise self.error("DB needs at least one byte")
            return bytes(self.number(operand, 0xFF, "byte") for operand in self.statement.operands)
        if mnemonic == "DW":
            if not self.statement.operands:
                raise self.error("DW needs at least one word")
            words = [self.number(operand, 0xFFFF, "word") for operand in self.statement.operands]
            return b"".join(word.to_bytes(2, "big") for word in words)

        handler = getattr(self, f"_encode_{mnemonic.lower()}", None)
        if handler is None:
            raise self.error(f"Unknown mnemonic: {mnemonic}")
        return handler().to_bytes(2, "big")

    def _encode_cls(self) -> int:
        self.expect(0)
        return 0x00E0

    def _encode_ret(self) -> int:
        self.expect(0)
        return 0x00EE

    def _encode_jp(self) -> int:
        operands = self.statement.operands
        if len(operands) == 2:
            # Vx is only expressible when x is the high nibble of the address
            x = self.require_register(operands[0])
            target = self.address(operands[1])
            if x not in (0, target >> 8):
                raise self.error(f"Offset jump through V{x:X} needs an address in 0x{x:X}00-0x{x:X}FF")
            return 0xB000 | target
        (target,) = self.expect(1)
        return 0x1000 | self.address(target)

    def _encode_call(self) -> int:
        (target,) = self.expect(1)
        return 0x2000 | self.address(target)

    def _compare(self, with_byte: int, with_register: int) -> int:
        first, second = self.expect(2)
        x = self.require_register(first)
        y = self.register(second)
        if y is not None:
            return with_register | (x << 8) | (y << 4)
        return with_byte | (x << 8) | self.number(second, 0xFF, "byte")

    def _encode_se(self) -> int:
        return self._compare(0x3000, 0x5000)

    def _encode_sne(self) -> int:
        return self._compare(0x4000, 0x9000)

    def _encode_ld(self) -> int:
        first, second = self.expect(2)
        dest, src = first.upper(), second.upper()

        if dest == "I":
            return 0xA000 | self.address(second)
        if dest == "[I]":
            return 0xF055 | (self.require_register(second) << 8)

        specials = {"DT": 0xF015, "ST": 0xF018, "F": 0xF029, "B": 0xF033}
        if dest in specials:
            return specials[dest] | (self.require_register(second) << 8)

        x = self.require_register(first)
        if src == "DT":
            return 0xF007 | (x << 8)
        if src == "K":
            return 0xF00A | (x << 8)
        if src == "[I]":
            return 0xF065 | (x << 8)

        y = self.register(second)
        if y is not None:
            return 0x8000 | (x << 8) | (y << 4)
        return 0x6000 | (x << 8) | self.number(second, 0xFF, "byte")

    def _encode_add(self) -> int:
        first, second = self.expect(2)
        if first.upper() == "I":
            return 0xF01E | (self.require_register(second) << 8)
        x = self.require_register(first)
        y = self.register(second)
        if y is not None:
            return 0x8004 | (x << 8) | (y << 4)
        return 0x7000 | (x << 8) | self.number(second, 0xFF, "byte")

    def _alu(self, sub_op: int) -> int:
        first, second = self.expect(2)
        return 0x8000 | (self.require_register(first) << 8) | (self.require_register(second) << 4) | sub_op

    def _encode_or(self) -> int:
        return self._alu(0x1)

    def _encode_and(self) -> int:
        return self._alu(0x2)

    def _encode_xor(self) -> int:
        return self._alu(0x3)

    def _encode_sub(self) -> int:
        return self._alu(0x5)

    def _encode_subn(self) -> int:
        return self._alu(0x7)

    def _shift(self, sub_op: int) -> int:
        operands = self.statement.operands
        if len(operands) == 1:
            x = self.require_register(operands[0])
            return 0x8000 | (x << 8) | (x << 4) | sub_op
        return self._alu(sub_op)

    def _encode_shr(self) -> int:
        return self._shift(0x6)

    def _encode_shl(self) -> int:
        return self._shift(0xE)

    def _encode_rnd(self) -> int:
        first, second = self.expect(2)
        return 0xC000 | (self.require_register(first) << 8) | self.number(second, 0xFF, "byte")

    def _encode_drw(self) -> int:
        first, second, third = self.expect(3)
        x = self.require_register(first)
        y = self.require_register(second)
        return 0xD000 | (x << 8) | (y << 4) | self.number(third, 0xF, "nibble")

    def _encode_skp(self) -> int:
        (operand,) = self.expect(1)
        return 0xE09E | (self.require_register(operand) << 8)

    def _encode_sknp(self) -> int:
        (operand,) = self.expect(1)
        return 0xE0A1 | (self.require_register(operand) << 8)
