"""Flat 4KB memory with the built-in hexadecimal font.

Layout:
    0x000-0x04F: font table, 16 glyphs x 5 bytes
    0x050-0x1FF: reserved for the interpreter
    0x200-0xFFF: program space, ROM loaded at 0x200

Every access is bounds-checked; there is no wraparound.
"""

from typing import Iterable, List

from .errors import MemoryOutOfBounds, RomTooLarge


MEMORY_SIZE = 0x1000
PROGRAM_START = 0x200
MAX_ROM_SIZE = MEMORY_SIZE - PROGRAM_START

FONT_ADDRESS = 0x000
GLYPH_HEIGHT = 5

FONT = bytes([
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
])


def font_address(digit: int) -> int:
    """Address of the glyph for hex digit ``digit`` (only the low nibble counts)."""
    return FONT_ADDRESS + (digit & 0xF) * GLYPH_HEIGHT


class Memory:
    """Byte-addressable memory owned by a single machine."""

    def __init__(self):
        self._data = bytearray(MEMORY_SIZE)
        self._install_font()

    def _install_font(self) -> None:
        self._data[FONT_ADDRESS:FONT_ADDRESS + len(FONT)] = FONT

    def _check(self, address: int, length: int = 1) -> None:
        if address < 0 or address + length > MEMORY_SIZE:
            if length > 1:
                raise MemoryOutOfBounds(
                    address,
                    f"Access of {length} bytes at 0x{address:X} runs past 0x{MEMORY_SIZE - 1:X}",
                )
            raise MemoryOutOfBounds(address)

    def load(self, rom: bytes) -> None:
        """Reset memory and install a ROM at the program start.

        Args:
            rom: Raw ROM image

        Raises:
            RomTooLarge: If the ROM does not fit in program space
        """
        if len(rom) > MAX_ROM_SIZE:
            raise RomTooLarge(len(rom), MAX_ROM_SIZE)

        self._data = bytearray(MEMORY_SIZE)
        self._install_font()
        self._data[PROGRAM_START:PROGRAM_START + len(rom)] = rom

    def read(self, address: int) -> int:
        """Read one byte.

        Raises:
            MemoryOutOfBounds: If the address is outside 0x000-0xFFF
        """
        self._check(address)
        return self._data[address]

    def write(self, address: int, value: int) -> None:
        """Write one byte, keeping only the low 8 bits of ``value``.

        Raises:
            MemoryOutOfBounds: If the address is outside 0x000-0xFFF
        """
        self._check(address)
        self._data[address] = value & 0xFF

    def read_word(self, address: int) -> int:
        """Read a big-endian 16-bit word at ``address``."""
        self._check(address, 2)
        return (self._data[address] << 8) | self._data[address + 1]

    def read_block(self, address: int, length: int) -> bytes:
        """Read ``length`` bytes, checking the whole range first."""
        self._check(address, max(length, 1))
        return bytes(self._data[address:address + length])

    def write_block(self, address: int, values: Iterable[int]) -> None:
        """Write consecutive bytes, checking the whole range before writing."""
        data = bytes(value & 0xFF for value in values)
        self._check(address, max(len(data), 1))
        self._data[address:address + len(data)] = data

    def dump(self, start: int = 0, length: int = MEMORY_SIZE) -> bytes:
        """Copy a region of memory for debuggers, clamped to memory bounds."""
        start = max(0, min(start, MEMORY_SIZE))
        end = max(start, min(start + length, MEMORY_SIZE))
        return bytes(self._data[start:end])

    def hexdump(self, start: int = PROGRAM_START, length: int = 64, width: int = 16) -> str:
        """Format a region of memory as ``addr: bytes`` lines."""
        data = self.dump(start, length)
        lines: List[str] = []
        for offset in range(0, len(data), width):
            row = data[offset:offset + width]
            lines.append(f"{start + offset:03X}: " + " ".join(f"{byte:02X}" for byte in row))
        return "\n".join(lines)

    def __len__(self) -> int:
        return MEMORY_SIZE
