"""
Command-line front end.

Run:
    riscv-cpu-sim                                # runs built-in demo program
    riscv-cpu-sim --file program.mc              # loads a .mc machine-code file
    riscv-cpu-sim -f program.mc --no-forwarding --print-pipeline
"""

from __future__ import annotations
import argparse
import logging
import sys
from typing import List, Optional

from . import encoding as asm
from .cpu import DEFAULT_MAX_CYCLES, PipelinedCPU, SimConfig
from .loader import load_machine_code_file
from .trace import Tracer, dump_memory, dump_predictor, dump_registers, dump_stats
from .utils import to_unsigned_32

log = logging.getLogger(__name__)

DEMO_DATA_BASE = 0x10000000

# ─────────────────────────────────────────────────────────────────────────────
# Demo program
# ─────────────────────────────────────────────────────────────────────────────

def demo_program() -> List[int]:
    """
    A small RV32IM program that exercises most supported instructions:

        addi x5,  x0, 5          # x5  = 5
        addi x6,  x0, 10         # x6  = 10
        add  x7,  x5, x6         # x7  = 15
        sub  x28, x6, x5         # x28 = 5
        and  x29, x7, x28        # x29 = 5
        or   x30, x5, x6         # x30 = 15
        slt  x31, x5, x6         # x31 = 1  (5 < 10)
        lui  x10, 0x10000        # x10 = 0x10000000
        sw   x7,  0(x10)         # mem[0x10000000] = 15
        lw   x11, 0(x10)         # x11 = 15
        add  x12, x11, x11       # x12 = 30 (load-use stall)
        addi x13, x0, 3          # x13 = 3
    loop:
        addi x13, x13, -1
        bne  x13, x0, loop       # taken twice, then falls through
        mul  x14, x6, x6         # x14 = 100
        lui  x15, 0x12345        # x15 = 0x12345000
        ori  x15, x15, 0x678     # x15 = 0x12345678
        0xDEADBEEF               # end of program
    """
    return [
        asm.ADDI(5, 0, 5),
        asm.ADDI(6, 0, 10),
        asm.ADD(7, 5, 6),
        asm.SUB(28, 6, 5),
        asm.AND(29, 7, 28),
        asm.OR(30, 5, 6),
        asm.SLT(31, 5, 6),
        asm.LUI(10, DEMO_DATA_BASE >> 12),
        asm.SW(7, 10, 0),
        asm.LW(11, 10, 0),
        asm.ADD(12, 11, 11),
        asm.ADDI(13, 0, 3),
        asm.ADDI(13, 13, -1),
        asm.BNE(13, 0, -4),
        asm.MUL(14, 6, 6),
        asm.LUI(15, 0x12345),
        asm.ORI(15, 15, 0x678),
        asm.HALT(),
    ]


def check_demo(cpu: PipelinedCPU) -> bool:
    print("\n═══ Demo Assertions ═══")
    rf = cpu.rf
    checks = [
        (rf[7], 15,           "x7  = 15 (5 + 10)"),
        (rf[28], 5,           "x28 = 5  (10 - 5)"),
        (rf[29], 5,           "x29 = 5  (15 & 5)"),
        (rf[30], 15,          "x30 = 15 (5 | 10)"),
        (rf[31], 1,           "x31 = 1  (5 < 10)"),
        (rf[11], 15,          "x11 = 15 (loaded from memory)"),
        (rf[12], 30,          "x12 = 30 (load-use forwarded)"),
        (rf[13], 0,           "x13 = 0  (loop counter)"),
        (rf[14], 100,         "x14 = 100 (10 * 10)"),
        (rf[15], 0x12345678,  "x15 = 0x12345678 (LUI+ORI)"),
        (cpu.memory.read_word(DEMO_DATA_BASE), 15, "mem[0x10000000] = 15"),
    ]
    all_pass = True
    for actual, expected, desc in checks:
        ok = to_unsigned_32(actual) == to_unsigned_32(expected)
        all_pass = all_pass and ok
        print(f"  {'✓' if ok else '✗'}  {desc}  "
              f"(got {to_unsigned_32(actual):#010x}, "
              f"expected {to_unsigned_32(expected):#010x})")

    if all_pass:
        print("\n  All checks passed")
    else:
        print("\n  Some checks failed, rerun with --print-pipeline")
    return all_pass

# ─────────────────────────────────────────────────────────────────────────────
# Main
# ─────────────────────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="RV32IM 5-stage pipelined CPU simulator"
    )
    parser.add_argument("--file", "-f", type=str, default=None,
                        help="Path to a .mc machine-code file")
    parser.add_argument("--cycles", "-n", type=int, default=DEFAULT_MAX_CYCLES,
                        help=f"Maximum simulation cycles (default {DEFAULT_MAX_CYCLES})")
    parser.add_argument("--no-pipeline", action="store_true",
                        help="Run one instruction per cycle, no overlap")
    parser.add_argument("--no-forwarding", action="store_true",
                        help="Disable data forwarding (stall on every RAW hazard)")
    parser.add_argument("--print-registers", action="store_true",
                        help="Print the register file every cycle")
    parser.add_argument("--print-pipeline", action="store_true",
                        help="Print the pipeline registers every cycle")
    parser.add_argument("--trace-pc", type=lambda s: int(s, 0), default=None,
                        metavar="ADDR",
                        help="Only print pipeline registers holding the "
                             "instruction at ADDR")
    parser.add_argument("--print-bpu", action="store_true",
                        help="Print branch predictor tables every cycle")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Enable debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    config = SimConfig(pipelining=not args.no_pipeline,
                       forwarding=not args.no_forwarding,
                       max_cycles=args.cycles)
    cpu = PipelinedCPU(config)

    if args.file:
        try:
            image = load_machine_code_file(args.file)
        except OSError as e:
            log.error("Error reading machine code file %s: %s", args.file, e)
            return 1
        cpu.load_image(image)
        print(f"Loaded {len(image.instructions)} instructions from {args.file}")
    else:
        prog = demo_program()
        cpu.load_program(prog)
        print(f"Running built-in demo program ({len(prog)} instructions)")
    print(f"Knobs: {config!r}")

    tracer = None
    if args.print_pipeline or args.print_registers or args.print_bpu \
            or args.trace_pc is not None:
        tracer = Tracer(pipeline=args.print_pipeline or args.trace_pc is not None,
                        registers=args.print_registers,
                        predictor=args.print_bpu,
                        trace_pc=args.trace_pc)
    cpu.run(on_cycle=tracer)

    print("\n--- Simulation Complete ---")
    dump_registers(cpu.registers)
    dump_memory(cpu.memory.snapshot())
    dump_predictor(cpu.predictor.stats())
    dump_stats(cpu)

    if not args.file and not check_demo(cpu):
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
