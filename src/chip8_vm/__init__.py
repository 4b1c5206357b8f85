"""chip8-vm: CHIP-8 virtual machine with a table-driven instruction registry.

This package implements the CHIP-8 interpreter: 4KB memory with a built-in
font, sixteen 8-bit registers, a bounded call stack, a 64x32 XOR framebuffer,
a hexadecimal keypad and two 60Hz timers.

Architecture:
    MEMORY -> FETCH -> DECODE -> KEY -> REGISTRY -> EXECUTE -> STATE
               |         |        |        |           |
           [pc-based] [Decoder] [OP_*]  [Frozen]   [Running/WaitingForKey/Halted]
                                        Primitives

Modules:
    state: Register file and execution states
    memory: 4KB memory and font table
    display: 64x32 framebuffer
    keypad, timers, stack: input, 60Hz countdowns, call stack
    quirks: Interpreter variant configuration and presets
    decoder: Opcode decoder and disassembler
    registry: Frozen table of instruction primitives
    interpreter: Chip8 machine orchestrator
    assembler: Two-pass assembler for the disassembler's mnemonics
"""

__version__ = "0.1.0"
__author__ = "chip8-vm contributors"

from .errors import (
    Chip8Error,
    HaltReason,
    MemoryOutOfBounds,
    RomTooLarge,
    StackOverflow,
    StackUnderflow,
    UnknownInstruction,
)
from .state import Halted, Registers, Running, WaitingForKey
from .quirks import PRESETS, Quirks, SpriteEdge, get_preset
from .display import Display, ScreenParseError
from .timers import TickClock
from .decoder import DecodeResult, Decoder, disassemble, disassemble_rom
from .registry import InstructionRegistry, get_registry
from .interpreter import Chip8, ExecutionTraceEntry, StopReason
from .assembler import AssemblyError, assemble

__all__ = [
    "Chip8",
    "ExecutionTraceEntry",
    "StopReason",
    "Quirks",
    "SpriteEdge",
    "PRESETS",
    "get_preset",
    "Registers",
    "Running",
    "WaitingForKey",
    "Halted",
    "HaltReason",
    "Chip8Error",
    "RomTooLarge",
    "MemoryOutOfBounds",
    "UnknownInstruction",
    "StackOverflow",
    "StackUnderflow",
    "Display",
    "ScreenParseError",
    "TickClock",
    "Decoder",
    "DecodeResult",
    "disassemble",
    "disassemble_rom",
    "InstructionRegistry",
    "get_registry",
    "assemble",
    "AssemblyError",
]
