"""Register file and execution states for the CHIP-8 machine.

State Components:
    - Registers: V0-VF (16 general-purpose 8-bit registers, VF doubles as flag)
    - I: Index register (16-bit)
    - PC: Program counter (16-bit)

Execution states:
    - Running: instructions are fetched on every cycle
    - WaitingForKey: an Fx0A is blocking until a key press edge arrives
    - Halted: a fault stopped the machine until the next load

Registers are mutated in place by the interpreter; ``snapshot()`` produces
deep copies for tracing.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Union

from .errors import HaltReason
from .memory import PROGRAM_START


REGISTER_COUNT = 16
VF = 0xF

BYTE_MASK = 0xFF
WORD_MASK = 0xFFFF


@dataclass(frozen=True)
class Running:
    """Instructions are fetched and executed on every cycle."""

    def __str__(self) -> str:
        return "Running"


@dataclass(frozen=True)
class WaitingForKey:
    """Execution is blocked on Fx0A until a key is pressed.

    Attributes:
        register: Index of the register that receives the pressed key
    """
    register: int

    def __str__(self) -> str:
        return f"WaitingForKey(V{self.register:X})"


@dataclass(frozen=True)
class Halted:
    """Terminal state after a fault; only ``load`` leaves it.

    Attributes:
        reason: The kind of fault
        detail: Human-readable description of the fault
    """
    reason: HaltReason
    detail: str = ""

    def __str__(self) -> str:
        return f"Halted({self.reason.value})"


ExecutionState = Union[Running, WaitingForKey, Halted]


@dataclass
class Registers:
    """CHIP-8 register file.

    Attributes:
        v: The sixteen 8-bit registers V0-VF
        i: Index register
        pc: Program counter
    """
    v: List[int] = field(default_factory=lambda: [0] * REGISTER_COUNT)
    i: int = 0
    pc: int = PROGRAM_START

    def reset(self) -> None:
        """Zero all registers and point pc at the program start."""
        self.v = [0] * REGISTER_COUNT
        self.i = 0
        self.pc = PROGRAM_START

    def get(self, index: int) -> int:
        """Get the value of register ``Vindex``.

        Raises:
            KeyError: If the register doesn't exist
        """
        if not 0 <= index < REGISTER_COUNT:
            raise KeyError(f"Invalid register: V{index}")
        return self.v[index]

    def set(self, index: int, value: int) -> None:
        """Store ``value`` in ``Vindex``, wrapping it to 8 bits.

        Raises:
            KeyError: If the register doesn't exist
        """
        if not 0 <= index < REGISTER_COUNT:
            raise KeyError(f"Invalid register: V{index}")
        self.v[index] = value & BYTE_MASK

    def set_flag(self, value: int) -> None:
        """Write VF, the implicit carry/borrow/collision output."""
        self.v[VF] = 1 if value else 0

    def set_index(self, value: int) -> None:
        self.i = value & WORD_MASK

    def snapshot(self) -> dict:
        """Create a detached copy of the register file for tracing.

        Returns:
            Dictionary containing copies of all register values
        """
        return {
            "v": list(self.v),
            "i": self.i,
            "pc": self.pc,
        }

    def validate(self) -> bool:
        """Validate register widths.

        Checks:
            - Exactly sixteen V registers, each within 0..255
            - I and pc within 16 bits

        Returns:
            True if state is valid, False otherwise
        """
        if len(self.v) != REGISTER_COUNT:
            return False

        for value in self.v:
            if not isinstance(value, int) or not 0 <= value <= BYTE_MASK:
                return False

        if not 0 <= self.i <= WORD_MASK:
            return False
        if not 0 <= self.pc <= WORD_MASK:
            return False

        return True

    def dump(self) -> Dict[str, int]:
        """Get a name-keyed copy of all register values."""
        regs = {f"V{index:X}": value for index, value in enumerate(self.v)}
        regs["I"] = self.i
        regs["PC"] = self.pc
        return regs

    def __str__(self) -> str:
        regs = " ".join(f"V{index:X}={value:02X}" for index, value in enumerate(self.v))
        return f"PC={self.pc:04X} I={self.i:04X} {regs}"
