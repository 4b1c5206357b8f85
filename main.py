#!/usr/bin/env python3
"""chip8-vm Command Line Interface.

Run CHIP-8 ROMs (or assembly source) headless and inspect the final machine.

Usage:
    python main.py --program roms/ibm_logo.ch8 --frames 120
    python main.py --program programs/countdown.asm --trace
"""

import argparse
import logging
import sys
import time
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from chip8_vm import (
    PRESETS,
    AssemblyError,
    Chip8,
    Chip8Error,
    Quirks,
    SpriteEdge,
    TickClock,
    assemble,
    disassemble_rom,
    get_preset,
)


# Quirk flag -> (CLI option, help)
QUIRK_OPTIONS = {
    "vf_reset_on_logic_ops": ("--vf-reset", "8xy1/8xy2/8xy3 clear VF"),
    "shift_uses_vy": ("--shift-vy", "8xy6/8xyE shift Vy into Vx"),
    "jump_offset_uses_vx": ("--jump-vx", "Bnnn adds Vx instead of V0"),
    "index_increment_on_register_dump_load": ("--index-increment", "Fx55/Fx65 advance I"),
    "index_overflow_sets_vf": ("--index-overflow", "Fx1E sets VF past 0xFFF"),
    "display_wait": ("--display-wait", "Dxyn waits for the next 60Hz tick"),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="chip8-vm: CHIP-8 virtual machine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run a ROM for two seconds of machine time
    python main.py --program roms/ibm_logo.ch8 --frames 120

    # Run assembly source with a full execution trace
    python main.py --program programs/countdown.asm --trace

    # Run inline assembly (separate statements with ;)
    python main.py --inline "LD V0, 5; ADD V0, 3; loop: JP loop"

    # Hold key 5 down, use the modern quirk set
    python main.py --program game.ch8 --quirks modern --press 5

    # List a ROM
    python main.py --program game.ch8 --disassemble

    # Assemble to a ROM file
    python main.py --program programs/countdown.asm --output countdown.ch8
        """
    )

    source = parser.add_argument_group("program")
    source.add_argument(
        "--program", "-p",
        type=str,
        help="Path to a ROM (.ch8) or assembly source (.asm)"
    )
    source.add_argument(
        "--inline", "-i",
        type=str,
        help="Inline assembly (separate statements with ;)"
    )
    source.add_argument(
        "--assemble", "-a",
        action="store_true",
        help="Treat --program as assembly source regardless of extension"
    )
    source.add_argument(
        "--output", "-o",
        type=str,
        help="Write the assembled ROM to this path and exit"
    )
    source.add_argument(
        "--disassemble", "-d",
        action="store_true",
        help="Print a disassembly of the ROM and exit"
    )

    machine = parser.add_argument_group("machine")
    machine.add_argument(
        "--quirks",
        choices=sorted(PRESETS),
        help="Quirk preset. Default: COSMAC VIP behavior without display wait"
    )
    for name, (option, help_text) in QUIRK_OPTIONS.items():
        machine.add_argument(
            option,
            dest=name,
            action=argparse.BooleanOptionalAction,
            default=None,
            help=help_text
        )
    machine.add_argument(
        "--sprite-edge",
        choices=[edge.value for edge in SpriteEdge],
        help="Sprite pixels past the screen edge are clipped or wrapped"
    )
    machine.add_argument(
        "--stack-depth",
        type=int,
        default=16,
        help="Maximum call depth. Default: 16"
    )
    machine.add_argument(
        "--seed",
        type=int,
        help="Seed for the random number generator (Cxkk)"
    )

    run = parser.add_argument_group("execution")
    run.add_argument(
        "--frames", "-f",
        type=int,
        default=600,
        help="Number of 60Hz frames to run. Default: 600"
    )
    run.add_argument(
        "--cycles-per-frame",
        type=int,
        default=Chip8.DEFAULT_CYCLES_PER_FRAME,
        help=f"Instructions per frame. Default: {Chip8.DEFAULT_CYCLES_PER_FRAME}"
    )
    run.add_argument(
        "--max-cycles",
        type=int,
        help="Stop after this many instructions"
    )
    run.add_argument(
        "--press",
        action="append",
        default=[],
        metavar="KEY",
        help="Hex key (0-F) held down for the run and pressed again for each key wait; may be repeated"
    )
    run.add_argument(
        "--realtime",
        action="store_true",
        help="Pace frames against the wall clock at 60Hz"
    )

    output = parser.add_argument_group("output")
    output.add_argument(
        "--trace", "-t",
        action="store_true",
        help="Print full execution trace"
    )
    output.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Minimal output (register dump only)"
    )
    output.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging"
    )

    return parser


def load_rom(args, parser: argparse.ArgumentParser) -> bytes:
    """Read or assemble the ROM named on the command line."""
    if args.inline:
        return assemble(args.inline.replace(";", "\n"))

    program_path = Path(args.program)
    if not program_path.exists():
        parser.exit(1, f"Error: Program file not found: {args.program}\n")

    if args.assemble or program_path.suffix.lower() in (".asm", ".s"):
        return assemble(program_path.read_text())
    return program_path.read_bytes()


def build_quirks(args):
    quirks = get_preset(args.quirks) if args.quirks else Quirks()
    overrides = {
        name: getattr(args, name)
        for name in QUIRK_OPTIONS
        if getattr(args, name) is not None
    }
    if args.sprite_edge:
        overrides["sprite_wrap_vs_clip"] = SpriteEdge(args.sprite_edge)
    return quirks.with_changes(**overrides) if overrides else quirks


def run_realtime(vm: Chip8, frames: int, keys) -> None:
    """Run frames paced by a 60Hz wall clock.

    Held keys are pressed again on every frame the program spends in Fx0A.
    """
    clock = TickClock()
    clock.start()
    vm.press_keys(keys)
    elapsed = 0
    while elapsed < frames and (vm.is_running or vm.is_waiting):
        vm.run(vm.cycles_per_frame)
        for _ in range(clock.due()):
            vm.tick_timers()
            elapsed += 1
            if vm.is_waiting:
                vm.press_keys(keys)
        time.sleep(clock.until_next())


def main():
    parser = build_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    # Validate arguments
    if not args.program and not args.inline:
        parser.error("Either --program or --inline is required")

    try:
        keys = [int(key, 16) for key in args.press]
    except ValueError:
        keys = None
    if keys is None or not all(0 <= key <= 0xF for key in keys):
        parser.error("--press takes hex keys 0-F")

    try:
        rom = load_rom(args, parser)
    except AssemblyError as e:
        print(f"Assembly error: {e}")
        return 1

    if args.output:
        Path(args.output).write_bytes(rom)
        if not args.quiet:
            print(f"Wrote {len(rom)} bytes to {args.output}")
        return 0

    if args.disassemble:
        print("\n".join(disassemble_rom(rom, quirks=build_quirks(args))))
        return 0

    # Initialize machine
    vm = Chip8(
        build_quirks(args),
        seed=args.seed,
        stack_depth=args.stack_depth,
        cycles_per_frame=args.cycles_per_frame,
        trace=args.trace,
    )

    try:
        vm.load(rom)
    except Chip8Error as e:
        print(f"Load error: {e}")
        return 1

    if not args.quiet:
        print(f"Loaded {len(rom)} bytes (sha1 {vm.rom_sha1})")
        print("-" * 60)
        print("Executing...")
        print("-" * 60)

    # Run
    if args.realtime:
        run_realtime(vm, args.frames, keys)
        stop = None
    else:
        stop = vm.run_with_keys(keys, max_cycles=args.max_cycles, max_frames=args.frames)

    # Output
    if args.trace:
        vm.print_trace()
    elif not args.quiet:
        print(vm.display)
        print()
        summary = vm.get_summary()
        if stop is not None:
            print(f"Stopped: {stop.value}")
        print(f"State: {summary['state']}")
        print(f"Cycles: {summary['cycles']}  Frames: {summary['frames']}")
        print(f"Stack: {summary['stack']}")
        if summary['error']:
            print(f"Error: {summary['error']}")

    print(vm.dump_registers())

    # Exit code reports faults
    return 1 if vm.is_halted else 0


if __name__ == "__main__":
    sys.exit(main())
