"""Hazard detection (stall signals) and the forwarding unit."""

from __future__ import annotations

from .isa import ControlSignals
from .latches import EXMEM, IDEX, MEMWB


class HazardSignals:
    """Per-cycle stall signals; recomputed from scratch every cycle."""

    __slots__ = ("load_use", "data")

    def __init__(self, load_use: bool = False, data: bool = False):
        self.load_use = load_use
        self.data = data

    @property
    def stall(self) -> bool:
        return self.load_use or self.data

    def __repr__(self):
        return f"HazardSignals(load_use={self.load_use}, data={self.data})"


def reads_register(ctrl: ControlSignals, rs1: int, rs2: int, reg: int) -> bool:
    """Does an instruction with these controls read *reg* as a source?"""
    return (ctrl.uses_rs1 and rs1 == reg) or (ctrl.uses_rs2 and rs2 == reg)


class HazardUnit:
    """
    Combinational stall logic evaluated while an instruction sits in Decode.

    *executing* is the instruction in Execute this cycle (it will occupy
    EX/MEM next cycle) and *in_memory* the one in the Memory stage (next
    cycle's MEM/WB). The instruction in Writeback commits before Decode
    reads the register file, so it never causes a stall.
    """

    @staticmethod
    def detect(decoded: IDEX, executing: IDEX, in_memory: EXMEM,
               forwarding: bool) -> HazardSignals:
        signals = HazardSignals()
        if not decoded.valid:
            return signals
        ctrl, rs1, rs2 = decoded.ctrl, decoded.rs1, decoded.rs2

        # Load data only exists after MEM, forwarding or not.
        if executing.writes_reg and executing.ctrl.mem_read \
                and reads_register(ctrl, rs1, rs2, executing.rd):
            signals.load_use = True

        # Without bypass paths every RAW dependency waits for Writeback.
        if not forwarding:
            for producer in (executing, in_memory):
                if producer.writes_reg \
                        and reads_register(ctrl, rs1, rs2, producer.rd):
                    signals.data = True
        return signals


class ForwardingUnit:
    """
    Data-hazard forwarding logic.
    Returns the forwarded value for a source register.
    """

    @staticmethod
    def resolve(reg: int, reg_val: int, ex_mem: EXMEM, mem_wb: MEMWB) -> int:
        """
        Check EX/MEM and MEM/WB for forwarding opportunities.
        Priority: EX/MEM > MEM/WB > register file value.
        """
        if ex_mem.writes_reg and ex_mem.rd == reg:
            return ex_mem.forward_value
        if mem_wb.writes_reg and mem_wb.rd == reg:
            return mem_wb.writeback_value()
        return reg_val
