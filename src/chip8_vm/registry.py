"""InstructionRegistry: the semantics of every CHIP-8 operation key.

Each primitive is a function ``(machine, params) -> None`` that mutates the
machine it is given. The interpreter has already advanced ``pc`` past the
instruction when a primitive runs; jumps, calls, returns and skips overwrite
``pc`` themselves.

The registry is frozen after construction: the opcode set is closed and there
are no extension points.

Registry Keys:
    OP_CLS, OP_RET, OP_JP, OP_CALL, OP_JP_OFFSET: flow control and screen clear
    OP_SE_IMM, OP_SNE_IMM, OP_SE_REG, OP_SNE_REG, OP_SKP, OP_SKNP: skips
    OP_LD_IMM, OP_ADD_IMM, OP_LD_REG: register loads
    OP_OR, OP_AND, OP_XOR, OP_ADD_REG, OP_SUB, OP_SUBN, OP_SHR, OP_SHL: ALU
    OP_LD_I, OP_ADD_I, OP_LD_F, OP_LD_B, OP_LD_I_VX, OP_LD_VX_I: index/memory
    OP_RND, OP_DRW: random numbers and sprites
    OP_LD_VX_DT, OP_LD_DT_VX, OP_LD_ST_VX, OP_LD_VX_K: timers and key wait
    OP_INVALID: unknown opcodes
"""

from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from .errors import UnknownInstruction
from .memory import font_address

if TYPE_CHECKING:
    from .interpreter import Chip8


Primitive = Callable[["Chip8", Dict[str, Any]], None]

ADDRESS_SPACE_MASK = 0xFFF


class InstructionRegistry:
    """Frozen mapping from operation keys to instruction semantics.

    Attributes:
        _primitives: Dictionary mapping operation keys to handler functions
        _frozen: Whether the registry is locked against modifications
    """

    def __init__(self):
        """Initialize registry with all instruction primitives."""
        self._primitives: Dict[str, Primitive] = {}
        self._frozen = False
        self._register_all_primitives()
        self.freeze()

    def _register_all_primitives(self) -> None:
        # Screen and flow control
        self.register("OP_CLS", self._op_cls)
        self.register("OP_RET", self._op_ret)
        self.register("OP_JP", self._op_jp)
        self.register("OP_CALL", self._op_call)
        self.register("OP_JP_OFFSET", self._op_jp_offset)

        # Conditional skips
        self.register("OP_SE_IMM", self._op_se_imm)
        self.register("OP_SNE_IMM", self._op_sne_imm)
        self.register("OP_SE_REG", self._op_se_reg)
        self.register("OP_SNE_REG", self._op_sne_reg)
        self.register("OP_SKP", self._op_skp)
        self.register("OP_SKNP", self._op_sknp)

        # Register loads
        self.register("OP_LD_IMM", self._op_ld_imm)
        self.register("OP_ADD_IMM", self._op_add_imm)
        self.register("OP_LD_REG", self._op_ld_reg)

        # ALU
        self.register("OP_OR", self._op_or)
        self.register("OP_AND", self._op_and)
        self.register("OP_XOR", self._op_xor)
        self.register("OP_ADD_REG", self._op_add_reg)
        self.register("OP_SUB", self._op_sub)
        self.register("OP_SUBN", self._op_subn)
        self.register("OP_SHR", self._op_shr)
        self.register("OP_SHL", self._op_shl)

        # Index register and memory
        self.register("OP_LD_I", self._op_ld_i)
        self.register("OP_ADD_I", self._op_add_i)
        self.register("OP_LD_F", self._op_ld_f)
        self.register("OP_LD_B", self._op_ld_b)
        self.register("OP_LD_I_VX", self._op_ld_i_vx)
        self.register("OP_LD_VX_I", self._op_ld_vx_i)

        # Random numbers and sprites
        self.register("OP_RND", self._op_rnd)
        self.register("OP_DRW", self._op_drw)

        # Timers and input
        self.register("OP_LD_VX_DT", self._op_ld_vx_dt)
        self.register("OP_LD_DT_VX", self._op_ld_dt_vx)
        self.register("OP_LD_ST_VX", self._op_ld_st_vx)
        self.register("OP_LD_VX_K", self._op_ld_vx_k)

        self.register("OP_INVALID", self._op_invalid)

    def register(self, key: str, handler: Primitive) -> None:
        """Register a primitive operation.

        Args:
            key: Operation key (e.g., "OP_ADD_REG")
            handler: Function that takes (machine, params) and mutates it

        Raises:
            RuntimeError: If registry is frozen
            ValueError: If key already registered
        """
        if self._frozen:
            raise RuntimeError("Cannot register primitives: registry is frozen")
        if key in self._primitives:
            raise ValueError(f"Primitive already registered: {key}")
        self._primitives[key] = handler

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        return self._frozen

    def get_valid_keys(self) -> set:
        """Get set of all valid operation keys."""
        return set(self._primitives.keys())

    def execute(self, machine: "Chip8", key: str, params: Dict[str, Any]) -> None:
        """Execute a registered primitive against a machine.

        Raises:
            KeyError: If key not in registry
            Chip8Error: Any fault raised by the primitive
        """
        if key not in self._primitives:
            raise KeyError(f"Unknown operation key: {key}")
        self._primitives[key](machine, params)

    # =========================================================================
    # Screen and Flow Control
    # =========================================================================

    def _op_cls(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """00E0 - Clear the display."""
        machine.display.clear()

    def _op_ret(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """00EE - Return from subroutine.

        Raises:
            StackUnderflow: If there is no subroutine to return from
        """
        machine.registers.pc = machine.stack.pop()

    def _op_jp(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """1nnn - Jump to nnn."""
        machine.registers.pc = params["nnn"]

    def _op_call(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """2nnn - Call subroutine at nnn.

        The pushed return address is the instruction after the call.

        Raises:
            StackOverflow: If the stack is full
        """
        machine.stack.push(machine.registers.pc)
        machine.registers.pc = params["nnn"]

    def _op_jp_offset(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """Bnnn - Jump to nnn plus V0, or plus Vx with the jump quirk.

        The target is not wrapped; a target past the end of memory faults on
        the next fetch.
        """
        register = params["x"] if machine.quirks.jump_offset_uses_vx else 0
        machine.registers.pc = params["nnn"] + machine.registers.get(register)

    # =========================================================================
    # Conditional Skips
    # =========================================================================

    def _skip_if(self, machine: "Chip8", condition: bool) -> None:
        if condition:
            machine.registers.pc += 2

    def _op_se_imm(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """3xkk - Skip next instruction if Vx == kk."""
        self._skip_if(machine, machine.registers.get(params["x"]) == params["kk"])

    def _op_sne_imm(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """4xkk - Skip next instruction if Vx != kk."""
        self._skip_if(machine, machine.registers.get(params["x"]) != params["kk"])

    def _op_se_reg(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """5xy0 - Skip next instruction if Vx == Vy."""
        regs = machine.registers
        self._skip_if(machine, regs.get(params["x"]) == regs.get(params["y"]))

    def _op_sne_reg(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """9xy0 - Skip next instruction if Vx != Vy."""
        regs = machine.registers
        self._skip_if(machine, regs.get(params["x"]) != regs.get(params["y"]))

    def _op_skp(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """Ex9E - Skip next instruction if the key in Vx is pressed."""
        key = machine.registers.get(params["x"])
        self._skip_if(machine, machine.keypad.is_pressed(key))

    def _op_sknp(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """ExA1 - Skip next instruction if the key in Vx is not pressed."""
        key = machine.registers.get(params["x"])
        self._skip_if(machine, not machine.keypad.is_pressed(key))

    # =========================================================================
    # Register Loads
    # =========================================================================

    def _op_ld_imm(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """6xkk - Vx = kk."""
        machine.registers.set(params["x"], params["kk"])

    def _op_add_imm(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """7xkk - Vx += kk, wrapping; VF is not affected."""
        x = params["x"]
        machine.registers.set(x, machine.registers.get(x) + params["kk"])

    def _op_ld_reg(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """8xy0 - Vx = Vy."""
        machine.registers.set(params["x"], machine.registers.get(params["y"]))

    # =========================================================================
    # ALU
    # =========================================================================
    # Flags are written after the result so that an operation on VF leaves
    # the flag, not the result, in VF.

    def _logic(self, machine: "Chip8", params: Dict[str, Any], result: int) -> None:
        machine.registers.set(params["x"], result)
        if machine.quirks.vf_reset_on_logic_ops:
            machine.registers.set_flag(0)

    def _op_or(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """8xy1 - Vx |= Vy."""
        regs = machine.registers
        self._logic(machine, params, regs.get(params["x"]) | regs.get(params["y"]))

    def _op_and(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """8xy2 - Vx &= Vy."""
        regs = machine.registers
        self._logic(machine, params, regs.get(params["x"]) & regs.get(params["y"]))

    def _op_xor(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """8xy3 - Vx ^= Vy."""
        regs = machine.registers
        self._logic(machine, params, regs.get(params["x"]) ^ regs.get(params["y"]))

    def _op_add_reg(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """8xy4 - Vx += Vy, VF = carry."""
        regs = machine.registers
        total = regs.get(params["x"]) + regs.get(params["y"])
        regs.set(params["x"], total)
        regs.set_flag(total > 0xFF)

    def _op_sub(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """8xy5 - Vx = Vx - Vy, VF = NOT borrow."""
        regs = machine.registers
        vx, vy = regs.get(params["x"]), regs.get(params["y"])
        regs.set(params["x"], vx - vy)
        regs.set_flag(vx >= vy)

    def _op_subn(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """8xy7 - Vx = Vy - Vx, VF = NOT borrow."""
        regs = machine.registers
        vx, vy = regs.get(params["x"]), regs.get(params["y"])
        regs.set(params["x"], vy - vx)
        regs.set_flag(vy >= vx)

    def _shift_source(self, machine: "Chip8", params: Dict[str, Any]) -> int:
        register = params["y"] if machine.quirks.shift_uses_vy else params["x"]
        return machine.registers.get(register)

    def _op_shr(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """8xy6 - Shift right by one, VF = bit shifted out."""
        value = self._shift_source(machine, params)
        machine.registers.set(params["x"], value >> 1)
        machine.registers.set_flag(value & 0x01)

    def _op_shl(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """8xyE - Shift left by one, VF = bit shifted out."""
        value = self._shift_source(machine, params)
        machine.registers.set(params["x"], value << 1)
        machine.registers.set_flag(value & 0x80)

    # =========================================================================
    # Index Register and Memory
    # =========================================================================

    def _op_ld_i(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """Annn - I = nnn."""
        machine.registers.set_index(params["nnn"])

    def _op_add_i(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """Fx1E - I += Vx, wrapping within the address space.

        With the overflow quirk, VF reports whether I ran past 0xFFF.
        """
        regs = machine.registers
        total = regs.i + regs.get(params["x"])
        regs.set_index(total & ADDRESS_SPACE_MASK)
        if machine.quirks.index_overflow_sets_vf:
            regs.set_flag(total > ADDRESS_SPACE_MASK)

    def _op_ld_f(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """Fx29 - I = address of the font glyph for the low nibble of Vx."""
        machine.registers.set_index(font_address(machine.registers.get(params["x"])))

    def _op_ld_b(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """Fx33 - Store the BCD digits of Vx at I, I+1, I+2."""
        value = machine.registers.get(params["x"])
        digits = [value // 100, (value // 10) % 10, value % 10]
        machine.memory.write_block(machine.registers.i, digits)

    def _op_ld_i_vx(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """Fx55 - Store V0..Vx in memory starting at I."""
        x = params["x"]
        regs = machine.registers
        machine.memory.write_block(regs.i, regs.v[:x + 1])
        if machine.quirks.index_increment_on_register_dump_load:
            regs.set_index(regs.i + x + 1)

    def _op_ld_vx_i(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """Fx65 - Load V0..Vx from memory starting at I."""
        x = params["x"]
        regs = machine.registers
        for index, value in enumerate(machine.memory.read_block(regs.i, x + 1)):
            regs.set(index, value)
        if machine.quirks.index_increment_on_register_dump_load:
            regs.set_index(regs.i + x + 1)

    # =========================================================================
    # Random Numbers and Sprites
    # =========================================================================

    def _op_rnd(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """Cxkk - Vx = random byte AND kk."""
        machine.registers.set(params["x"], machine.random_byte() & params["kk"])

    def _op_drw(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """Dxyn - Draw an n-row sprite from I at (Vx, Vy), VF = collision.

        With the display wait quirk the draw only happens on the first cycle
        after a timer tick; otherwise pc is rewound so the instruction is
        retried until the next tick.
        """
        if machine.quirks.display_wait and not machine.in_vblank():
            machine.registers.pc -= 2
            return

        regs = machine.registers
        sprite = machine.memory.read_block(regs.i, params["n"]) if params["n"] else b""
        collision = machine.display.draw(regs.get(params["x"]), regs.get(params["y"]), sprite)
        regs.set_flag(collision)

    # =========================================================================
    # Timers and Input
    # =========================================================================

    def _op_ld_vx_dt(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """Fx07 - Vx = delay timer."""
        machine.registers.set(params["x"], machine.timers.delay)

    def _op_ld_dt_vx(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """Fx15 - delay timer = Vx."""
        machine.timers.set_delay(machine.registers.get(params["x"]))

    def _op_ld_st_vx(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """Fx18 - sound timer = Vx."""
        machine.timers.set_sound(machine.registers.get(params["x"]))

    def _op_ld_vx_k(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """Fx0A - Block until a key press edge, then store the key in Vx.

        pc is rewound onto this instruction for the duration of the wait; the
        interpreter moves it past the instruction when the key arrives.
        """
        machine.registers.pc -= 2
        machine.wait_for_key(params["x"])

    # =========================================================================
    # Unknown Opcodes
    # =========================================================================

    def _op_invalid(self, machine: "Chip8", params: Dict[str, Any]) -> None:
        """Unknown opcode: always a fault."""
        raise UnknownInstruction(params.get("raw", 0), machine.registers.pc - 2)


# Singleton registry instance
_registry: Optional[InstructionRegistry] = None


def get_registry() -> InstructionRegistry:
    """Get the singleton instruction registry instance.

    Returns:
        The frozen InstructionRegistry instance
    """
    global _registry
    if _registry is None:
        _registry = InstructionRegistry()
    return _registry
