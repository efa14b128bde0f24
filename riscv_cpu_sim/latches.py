"""
Pipeline registers. A latch built with no arguments is a bubble
(valid=False). Stages create fresh latches every cycle and never modify a
latch after handing it downstream.
"""

from __future__ import annotations
import logging
from typing import Optional

from .isa import ControlSignals, NOP_WORD, Op, WritebackSource
from .utils import format_hex

log = logging.getLogger(__name__)


class IFID:
    """Fetch -> Decode."""

    __slots__ = ("valid", "pc", "instruction", "next_pc",
                 "predicted_taken", "predicted_target")

    def __init__(self, valid: bool = False, pc: int = 0,
                 instruction: int = NOP_WORD, next_pc: int = 0,
                 predicted_taken: bool = False, predicted_target: int = 0):
        self.valid = valid
        self.pc = pc
        self.instruction = instruction
        self.next_pc = next_pc
        self.predicted_taken = predicted_taken
        self.predicted_target = predicted_target

    def __repr__(self):
        return (f"IF/ID [Valid:{self.valid}]: PC={format_hex(self.pc)}, "
                f"IR={format_hex(self.instruction)}, "
                f"NextPC={format_hex(self.next_pc)}, "
                f"PredTaken:{self.predicted_taken}, "
                f"PredTarget={format_hex(self.predicted_target)}")


class IDEX:
    """Decode -> Execute."""

    __slots__ = ("valid", "pc", "instruction", "next_pc", "ctrl",
                 "read_data1", "read_data2", "rs1", "rs2", "rd",
                 "predicted_taken", "predicted_target")

    def __init__(self, valid: bool = False, pc: int = 0,
                 instruction: int = NOP_WORD, next_pc: int = 0,
                 ctrl: Optional[ControlSignals] = None,
                 read_data1: int = 0, read_data2: int = 0,
                 rs1: int = 0, rs2: int = 0, rd: int = 0,
                 predicted_taken: bool = False, predicted_target: int = 0):
        self.valid = valid
        self.pc = pc
        self.instruction = instruction
        self.next_pc = next_pc
        self.ctrl = ctrl if ctrl is not None else ControlSignals()
        self.read_data1 = read_data1
        self.read_data2 = read_data2
        self.rs1 = rs1
        self.rs2 = rs2
        self.rd = rd
        self.predicted_taken = predicted_taken
        self.predicted_target = predicted_target

    @property
    def writes_reg(self) -> bool:
        return self.valid and self.ctrl.reg_write and self.rd != 0

    def __repr__(self):
        return (f"ID/EX [Valid:{self.valid}]: PC={format_hex(self.pc)}, "
                f"{self.ctrl!r}, RVal1=0x{self.read_data1:X}, "
                f"RVal2=0x{self.read_data2:X}, "
                f"Imm=0x{self.ctrl.immediate:X}, rs1=x{self.rs1}, "
                f"rs2=x{self.rs2}, rd=x{self.rd}, "
                f"IR={format_hex(self.instruction)}")


class EXMEM:
    """Execute -> Memory."""

    __slots__ = ("valid", "pc", "instruction", "ctrl", "alu_result",
                 "write_data", "link_address", "branch_taken",
                 "branch_target", "rd")

    def __init__(self, valid: bool = False, pc: int = 0,
                 instruction: int = NOP_WORD,
                 ctrl: Optional[ControlSignals] = None,
                 alu_result: int = 0, write_data: int = 0,
                 link_address: int = 0, branch_taken: bool = False,
                 branch_target: int = 0, rd: int = 0):
        self.valid = valid
        self.pc = pc
        self.instruction = instruction
        self.ctrl = ctrl if ctrl is not None else ControlSignals()
        self.alu_result = alu_result
        self.write_data = write_data
        self.link_address = link_address
        self.branch_taken = branch_taken
        self.branch_target = branch_target
        self.rd = rd

    @property
    def writes_reg(self) -> bool:
        return self.valid and self.ctrl.reg_write and self.rd != 0

    @property
    def forward_value(self) -> int:
        """Value available for EX->EX forwarding (load data is not ready yet)."""
        if self.ctrl.wb_src is WritebackSource.LINK:
            return self.link_address
        return self.alu_result

    def __repr__(self):
        c = self.ctrl
        return (f"EX/MEM [Valid:{self.valid}]: Ctrl:[RW:{c.reg_write},"
                f"MR:{c.mem_read},MW:{c.mem_write},"
                f"BrTaken:{self.branch_taken},WBMux:{c.wb_src.name},"
                f"Sz:{c.mem_width.name}], ALURes=0x{self.alu_result:X}, "
                f"WriteData=0x{self.write_data:X}, "
                f"BrTarget=0x{self.branch_target:X}, rd=x{self.rd}")


class MEMWB:
    """Memory -> Writeback."""

    __slots__ = ("valid", "pc", "instruction", "ctrl", "alu_result",
                 "read_data", "link_address", "rd")

    def __init__(self, valid: bool = False, pc: int = 0,
                 instruction: int = NOP_WORD,
                 ctrl: Optional[ControlSignals] = None,
                 alu_result: int = 0, read_data: int = 0,
                 link_address: int = 0, rd: int = 0):
        self.valid = valid
        self.pc = pc
        self.instruction = instruction
        self.ctrl = ctrl if ctrl is not None else ControlSignals()
        self.alu_result = alu_result
        self.read_data = read_data
        self.link_address = link_address
        self.rd = rd

    @property
    def writes_reg(self) -> bool:
        return self.valid and self.ctrl.reg_write and self.rd != 0

    @property
    def is_sentinel(self) -> bool:
        return self.valid and self.ctrl.op is Op.HALT

    def writeback_value(self) -> int:
        """Writeback mux: ALU result, memory data or link address."""
        src = self.ctrl.wb_src
        if src is WritebackSource.ALU:
            return self.alu_result
        if src is WritebackSource.MEMORY:
            return self.read_data
        if src is WritebackSource.LINK:
            return self.link_address
        log.error("Invalid writeback mux value %r at PC %s",
                  src, format_hex(self.pc))
        return 0

    def __repr__(self):
        return (f"MEM/WB [Valid:{self.valid}]: Ctrl:[RW:{self.ctrl.reg_write},"
                f"WBMux:{self.ctrl.wb_src.name}], "
                f"ALURes=0x{self.alu_result:X}, "
                f"ReadData=0x{self.read_data:X}, rd=x{self.rd}")


class LatchSet:
    """The four pipeline registers as they stand at the end of one cycle."""

    __slots__ = ("if_id", "id_ex", "ex_mem", "mem_wb")

    def __init__(self):
        self.if_id = IFID()
        self.id_ex = IDEX()
        self.ex_mem = EXMEM()
        self.mem_wb = MEMWB()

    @property
    def empty(self) -> bool:
        """True when no instruction (not even the sentinel) is in flight."""
        return not (self.if_id.valid or self.id_ex.valid
                    or self.ex_mem.valid or self.mem_wb.valid)

    def __iter__(self):
        return iter((self.if_id, self.id_ex, self.ex_mem, self.mem_wb))
