"""Fault types raised by the CHIP-8 components.

Every fault maps onto a ``HaltReason``; the interpreter catches
``Chip8Error`` during a cycle and moves the machine to ``Halted``.
"""

from enum import Enum


class HaltReason(Enum):
    """Why a machine stopped executing."""

    ROM_TOO_LARGE = "RomTooLarge"
    MEMORY_OUT_OF_BOUNDS = "MemoryOutOfBounds"
    UNKNOWN_INSTRUCTION = "UnknownInstruction"
    STACK_OVERFLOW = "StackOverflow"
    STACK_UNDERFLOW = "StackUnderflow"


class Chip8Error(Exception):
    """Base class for faults that halt the machine."""

    reason: HaltReason


class RomTooLarge(Chip8Error):
    """ROM does not fit between the program start and the end of memory."""

    reason = HaltReason.ROM_TOO_LARGE

    def __init__(self, size: int, capacity: int):
        self.size = size
        self.capacity = capacity
        super().__init__(f"ROM is {size} bytes, only {capacity} bytes fit")


class MemoryOutOfBounds(Chip8Error):
    """An address outside the addressable range was accessed."""

    reason = HaltReason.MEMORY_OUT_OF_BOUNDS

    def __init__(self, address: int, message: str = ""):
        self.address = address
        super().__init__(message or f"Address out of bounds: 0x{address:X}")


class UnknownInstruction(Chip8Error):
    """The fetched opcode matches no known instruction pattern."""

    reason = HaltReason.UNKNOWN_INSTRUCTION

    def __init__(self, opcode: int, address: int):
        self.opcode = opcode
        self.address = address
        super().__init__(f"Unknown instruction {opcode:04X} at 0x{address:03X}")


class StackOverflow(Chip8Error):
    """A subroutine call exceeded the stack depth."""

    reason = HaltReason.STACK_OVERFLOW

    def __init__(self, depth: int):
        self.depth = depth
        super().__init__(f"Stack overflow: depth limit of {depth} reached")


class StackUnderflow(Chip8Error):
    """A return was executed with an empty stack."""

    reason = HaltReason.STACK_UNDERFLOW

    def __init__(self):
        super().__init__("Stack underflow: return with empty stack")
