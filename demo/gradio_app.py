"""chip8-vm Interactive Debugger.

A Gradio web interface for running and inspecting CHIP-8 programs.

Usage:
    cd /path/to/chip8-vm
    python demo/gradio_app.py

Features:
    - Write assembly or upload a .ch8 ROM
    - Choose a quirk preset
    - Run for a number of frames with keys held down
    - Inspect screen, registers, stack, memory and execution trace
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import gradio as gr
from chip8_vm import PRESETS, AssemblyError, Chip8, Chip8Error, assemble, disassemble_rom, get_preset


# =============================================================================
# Example Programs
# =============================================================================

EXAMPLE_PROGRAMS = {
    "Hex Digits": """    LD V0, 0        ; digit
    LD V1, 1        ; x
    LD V2, 1        ; y
loop:
    LD F, V0
    DRW V1, V2, 5
    ADD V0, 1
    ADD V1, 8
    SNE V0, 8
    JP newline
    SE V0, 16
    JP loop
halt:
    JP halt
newline:
    LD V1, 1
    ADD V2, 8
    JP loop""",

    "BCD Counter": """    LD V0, 137      ; value to show
    LD I, 0x300
    LD B, V0
    LD V2, [I]      ; V0-V2 = hundreds, tens, ones
    LD V3, 10       ; x
    LD V4, 10       ; y
    LD F, V0
    DRW V3, V4, 5
    ADD V3, 6
    LD F, V1
    DRW V3, V4, 5
    ADD V3, 6
    LD F, V2
    DRW V3, V4, 5
halt:
    JP halt""",

    "Bouncing Block": """    LD V0, 0        ; x
    LD V1, 0        ; y
    LD V2, 1        ; dx
    LD I, block
loop:
    DRW V0, V1, 4
    LD V3, 2
    LD DT, V3
wait:
    LD V3, DT
    SE V3, 0
    JP wait
    DRW V0, V1, 4   ; erase
    ADD V0, V2
    ADD V1, 1
    LD V3, 0x1F
    AND V1, V3
    SNE V0, 56
    LD V2, 0xFF     ; -1
    SNE V0, 0
    LD V2, 1
    JP loop
block:
    DB 0xFF, 0xFF, 0xFF, 0xFF""",

    "Key Echo": """    LD V1, 28       ; x
    LD V2, 12       ; y
loop:
    LD V0, K        ; wait for a key
    CLS
    LD F, V0
    DRW V1, V2, 5
    JP loop""",

    "Custom": ""
}


# =============================================================================
# Execution Functions
# =============================================================================

def parse_keys(keys: str) -> list:
    """Parse a comma/space separated list of hex keys 0-F.

    Raises:
        ValueError: On anything that is not a single hex key
    """
    parsed = [int(key, 16) for key in keys.replace(",", " ").split()]
    for key in parsed:
        if not 0 <= key <= 0xF:
            raise ValueError(f"Key out of range 0-F: {key:X}")
    return parsed


def run_program(program: str, rom_file, preset: str, frames: int,
                cycles_per_frame: int, keys: str, seed: int) -> tuple:
    """Assemble or load a program, run it and format every debugger panel.

    Args:
        program: Assembly source code (ignored when a ROM is uploaded)
        rom_file: Uploaded .ch8 file path, or None
        preset: Quirk preset name
        frames: Number of 60Hz frames to run
        cycles_per_frame: Instructions per frame
        keys: Hex keys held down for the run, pressed again for each key wait
        seed: Random seed for Cxkk

    Returns:
        Tuple of (summary, screen, registers, stack, memory, trace, disassembly)
    """
    empty = ("",) * 6
    try:
        if rom_file:
            rom = Path(rom_file).read_bytes()
        elif program.strip():
            rom = assemble(program)
        else:
            return ("Error: No program provided",) + empty

        held = parse_keys(keys)
    except AssemblyError as e:
        return (f"Assembly error: {e}",) + empty
    except ValueError as e:
        return (f"Error: {e}",) + empty

    vm = Chip8(
        get_preset(preset),
        seed=int(seed),
        cycles_per_frame=int(cycles_per_frame),
        trace=True,
        max_trace=200,
    )

    try:
        vm.load(rom)
    except Chip8Error as e:
        return (f"Load error: {e}",) + empty

    stop = vm.run_with_keys(held, max_frames=int(frames))
    summary = vm.get_summary()

    # Format summary
    summary_lines = [
        "EXECUTION SUMMARY",
        "=" * 40,
        f"Stopped:  {stop.value}",
        f"State:    {summary['state']}",
        f"Cycles:   {summary['cycles']}",
        f"Frames:   {summary['frames']}",
        f"ROM:      {summary['rom_size']} bytes",
        f"SHA1:     {summary['rom_sha1']}",
        f"Sound:    {'on' if vm.sound_active() else 'off'}",
    ]
    if summary['error']:
        summary_lines.append(f"\nFault: {summary['error']}")
    summary_text = "\n".join(summary_lines)

    screen_text = str(vm.display)

    # Format registers
    reg_lines = [
        "REGISTERS",
        "=" * 30,
    ]
    for name, value in summary['registers'].items():
        width = 2 if name.startswith("V") else 4
        marker = " *" if value != 0 else ""
        reg_lines.append(f"  {name:>2}: {value:0{width}X}{marker}")
    reg_lines.append("")
    reg_lines.append(f"  DT: {summary['delay_timer']:02X}")
    reg_lines.append(f"  ST: {summary['sound_timer']:02X}")
    reg_lines.append("")
    reg_lines.append(vm.dump_registers())
    registers_text = "\n".join(reg_lines)

    # Format stack, innermost call first
    frames_list = summary['stack']
    stack_lines = ["CALL STACK", "=" * 30]
    if not frames_list:
        stack_lines.append("  (empty)")
    for depth, address in reversed(list(enumerate(frames_list))):
        stack_lines.append(f"  {depth:2}: {address:03X}")
    stack_text = "\n".join(stack_lines)

    memory_text = "\n".join([
        "FONT",
        vm.memory.hexdump(0x000, 0x50),
        "",
        "PROGRAM",
        vm.memory.hexdump(0x200, max(len(rom), 16)),
        "",
        f"I = {vm.i:03X}",
        vm.memory.hexdump(vm.i, 32),
    ])

    # Format trace
    trace_entries = list(vm.trace)
    trace_lines = [
        "EXECUTION TRACE (most recent)",
        "=" * 60,
    ]
    for entry in trace_entries[-100:]:
        opcode = f"{entry.opcode:04X}" if entry.opcode is not None else "----"
        line = f"[{entry.cycle:6}] {entry.pc:03X}: {opcode}  {entry.mnemonic}"
        if entry.pre_state and entry.post_state:
            changes = []
            for index, (before, after) in enumerate(zip(entry.pre_state["v"], entry.post_state["v"])):
                if before != after:
                    changes.append(f"V{index:X}: {before:02X} -> {after:02X}")
            if entry.pre_state["i"] != entry.post_state["i"]:
                changes.append(f"I: {entry.pre_state['i']:03X} -> {entry.post_state['i']:03X}")
            if changes:
                line += f"    {', '.join(changes)}"
        if entry.error:
            line += f"    ERROR: {entry.error}"
        trace_lines.append(line)
    trace_text = "\n".join(trace_lines)

    disassembly_text = "\n".join(disassemble_rom(rom, quirks=vm.quirks))

    return (summary_text, screen_text, registers_text, stack_text,
            memory_text, trace_text, disassembly_text)


def load_example(example_name: str) -> str:
    """Load an example program."""
    return EXAMPLE_PROGRAMS.get(example_name, "")


# =============================================================================
# Gradio Interface
# =============================================================================

def create_demo():
    """Create and return the Gradio demo interface."""

    with gr.Blocks(title="chip8-vm Debugger", theme=gr.themes.Soft()) as demo:
        gr.Markdown("""
        # chip8-vm: CHIP-8 Debugger

        Assemble or upload a CHIP-8 program, run it for a number of 60Hz frames
        and inspect the machine.

        **Pipeline**: `fetch -> decode -> key -> registry -> execute -> state`
        """)

        with gr.Row():
            with gr.Column(scale=2):
                # Program input
                gr.Markdown("### Program")

                example_dropdown = gr.Dropdown(
                    choices=list(EXAMPLE_PROGRAMS.keys()),
                    value="Hex Digits",
                    label="Load Example"
                )

                program_input = gr.Textbox(
                    value=EXAMPLE_PROGRAMS["Hex Digits"],
                    label="Assembly Source",
                    lines=15,
                    placeholder="Enter CHIP-8 assembly here..."
                )

                rom_input = gr.File(
                    label="Or upload a ROM (.ch8)",
                    type="filepath"
                )

                # Settings
                gr.Markdown("### Settings")

                with gr.Row():
                    preset_dropdown = gr.Dropdown(
                        choices=sorted(PRESETS),
                        value="modern",
                        label="Quirk Preset"
                    )
                    seed_input = gr.Number(
                        value=0,
                        precision=0,
                        label="Random Seed"
                    )

                with gr.Row():
                    frames_slider = gr.Slider(
                        minimum=1,
                        maximum=3600,
                        value=120,
                        step=1,
                        label="Frames"
                    )
                    cycles_slider = gr.Slider(
                        minimum=1,
                        maximum=100,
                        value=10,
                        step=1,
                        label="Cycles per Frame"
                    )

                keys_input = gr.Textbox(
                    value="",
                    label="Held Keys (hex, e.g. 5 A)"
                )

                run_button = gr.Button("Run Program", variant="primary")

            with gr.Column(scale=3):
                screen_output = gr.Textbox(
                    label="Screen",
                    lines=34,
                    interactive=False
                )

                with gr.Row():
                    summary_output = gr.Textbox(
                        label="Summary",
                        lines=10,
                        interactive=False
                    )
                    stack_output = gr.Textbox(
                        label="Stack",
                        lines=10,
                        interactive=False
                    )

        with gr.Row():
            registers_output = gr.Textbox(
                label="Registers",
                lines=22,
                interactive=False
            )
            memory_output = gr.Textbox(
                label="Memory",
                lines=22,
                interactive=False
            )

        with gr.Row():
            trace_output = gr.Textbox(
                label="Execution Trace",
                lines=20,
                interactive=False
            )
            disassembly_output = gr.Textbox(
                label="Disassembly",
                lines=20,
                interactive=False
            )

        # Instruction Reference
        with gr.Accordion("Instruction Reference", open=False):
            gr.Markdown("""
            | Mnemonic | Opcode | Description |
            |----------|--------|-------------|
            | `CLS` | 00E0 | Clear the screen |
            | `RET` | 00EE | Return from subroutine |
            | `JP addr` | 1nnn | Jump |
            | `CALL addr` | 2nnn | Call subroutine |
            | `SE Vx, byte` / `SE Vx, Vy` | 3xkk / 5xy0 | Skip if equal |
            | `SNE Vx, byte` / `SNE Vx, Vy` | 4xkk / 9xy0 | Skip if not equal |
            | `LD Vx, byte` / `LD Vx, Vy` | 6xkk / 8xy0 | Load register |
            | `ADD Vx, byte` | 7xkk | Add, no carry |
            | `OR` / `AND` / `XOR Vx, Vy` | 8xy1-8xy3 | Bitwise logic |
            | `ADD Vx, Vy` | 8xy4 | Add, VF = carry |
            | `SUB` / `SUBN Vx, Vy` | 8xy5 / 8xy7 | Subtract, VF = NOT borrow |
            | `SHR` / `SHL Vx[, Vy]` | 8xy6 / 8xyE | Shift, VF = bit out |
            | `LD I, addr` | Annn | Set index |
            | `JP V0, addr` | Bnnn | Jump with offset |
            | `RND Vx, byte` | Cxkk | Random AND mask |
            | `DRW Vx, Vy, n` | Dxyn | Draw sprite, VF = collision |
            | `SKP` / `SKNP Vx` | Ex9E / ExA1 | Skip on key state |
            | `LD Vx, DT` / `LD DT, Vx` / `LD ST, Vx` | Fx07 / Fx15 / Fx18 | Timers |
            | `LD Vx, K` | Fx0A | Wait for key |
            | `ADD I, Vx` | Fx1E | Add to index |
            | `LD F, Vx` | Fx29 | Font glyph address |
            | `LD B, Vx` | Fx33 | Store BCD |
            | `LD [I], Vx` / `LD Vx, [I]` | Fx55 / Fx65 | Store / load V0..Vx |

            **Directives**: `DB byte, ...` and `DW word, ...`
            **Labels**: Use `name:` to define, reference by name
            """)

        # Event handlers
        example_dropdown.change(
            fn=load_example,
            inputs=[example_dropdown],
            outputs=[program_input]
        )

        run_button.click(
            fn=run_program,
            inputs=[program_input, rom_input, preset_dropdown, frames_slider,
                    cycles_slider, keys_input, seed_input],
            outputs=[summary_output, screen_output, registers_output, stack_output,
                     memory_output, trace_output, disassembly_output]
        )

    return demo


# =============================================================================
# Main
# =============================================================================

if __name__ == "__main__":
    demo = create_demo()
    demo.launch(
        share=False,
        server_name="0.0.0.0",
        server_port=7861,
        show_error=True
    )
