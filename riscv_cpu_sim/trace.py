"""Human-readable dumps of the machine state and a per-cycle tracer."""

from __future__ import annotations
from typing import Dict, List, Optional

from .cpu import CycleSnapshot, PipelinedCPU
from .utils import to_signed_32


def dump_registers(registers: List[int]):
    print("\n═══ Register File ═══")
    for i in range(0, 32, 4):
        regs = "  ".join(
            f"x{i+j:<2d}={registers[i+j]:#010x}" for j in range(4)
        )
        print(f"  {regs}")


def dump_memory(memory: Dict[int, int], limit: int = 64):
    """Print non-zero bytes grouped into little-endian words."""
    print("\n═══ Data Memory (non-zero) ═══")
    words: Dict[int, List[Optional[int]]] = {}
    for addr in sorted(memory):
        if memory[addr] == 0:
            continue
        words.setdefault(addr & ~0x3, [None] * 4)[addr & 0x3] = memory[addr]

    if not words:
        print("  (empty)")
        return
    for count, base in enumerate(sorted(words)):
        if count >= limit:
            print("  ... (truncated)")
            break
        row = words[base]
        text = " ".join("--" if b is None else f"{b:02X}" for b in row)
        value = sum((b or 0) << (8 * i) for i, b in enumerate(row))
        print(f"  [{base:#010x}] {text}  = {value:#010x} ({to_signed_32(value)})")


def dump_predictor(stats: dict):
    print("\n═══ Branch Predictor ═══")
    print(f"  Predictions={stats['predictions']}  "
          f"Mispredictions={stats['mispredictions']} "
          f"(direction {stats['direction_mispredictions']}, "
          f"target {stats['target_mispredictions']})")
    print("  History Table (PC -> State[0=NT,1=T]):")
    if not stats["history"]:
        print("    <Empty>")
    for pc, taken in stats["history"].items():
        print(f"    {pc:#010x} -> {int(taken)}")
    print("  Branch Target Buffer (PC -> Target):")
    if not stats["targets"]:
        print("    <Empty>")
    for pc, target in stats["targets"].items():
        print(f"    {pc:#010x} -> {target:#010x}")


def dump_stats(cpu: PipelinedCPU):
    s = cpu.stats()
    print("\n═══ Simulation Statistics ═══")
    print(f"  Total cycles:         {s['cycles']}")
    print(f"  Instructions:         {s['instructions']}")
    if s["instructions"] > 0:
        print(f"  CPI:                  {s['cpi']:.2f}")
    print(f"  Pipeline stalls:      {s['stalls']} "
          f"(load-use {s['load_use_stalls']}, data {s['data_stalls']})")
    print(f"  Pipeline flushes:     {s['flushes']}")
    print(f"  Branch predictions:   {s['predictions']}")
    print(f"  Mispredictions:       {s['mispredictions']}")
    print(f"  Branch predictor acc: {s['accuracy']:.1%}")


class Tracer:
    """
    Per-cycle observer for PipelinedCPU.run(on_cycle=...). With trace_pc
    set, only the pipeline registers holding that instruction are shown.
    """

    def __init__(self, pipeline: bool = True, registers: bool = False,
                 predictor: bool = False, trace_pc: Optional[int] = None):
        self.pipeline = pipeline
        self.registers = registers
        self.predictor = predictor
        self.trace_pc = trace_pc

    def __call__(self, cpu: PipelinedCPU):
        snap = cpu.snapshot()
        print(f"\n--- Cycle: {snap.cycle} ---  PC={snap.pc:#010x}")
        if self.pipeline:
            self._print_latches(snap)
        if self.registers:
            dump_registers(snap.registers)
        if self.predictor:
            dump_predictor(snap.predictor)

    def _print_latches(self, snap: CycleSnapshot):
        if snap.hazards.stall:
            print(f">>> Stall: {snap.hazards!r} <<<")
        for latch in snap.latches:
            if self.trace_pc is None or (latch.valid and latch.pc == self.trace_pc):
                print(latch)
