"""
RV32IM instruction set tables: field extraction, immediates and the
control unit that turns an instruction word into control signals.
"""

from __future__ import annotations
from enum import Enum
from typing import Dict, Tuple

from .utils import sign_extend, to_unsigned_32

# ─────────────────────────────────────────────────────────────────────────────
# Opcodes and reserved words
# ─────────────────────────────────────────────────────────────────────────────

OPC_OP      = 0b0110011   # R-type
OPC_OP_IMM  = 0b0010011   # I-type arithmetic
OPC_LOAD    = 0b0000011
OPC_STORE   = 0b0100011
OPC_BRANCH  = 0b1100011
OPC_JAL     = 0b1101111
OPC_JALR    = 0b1100111
OPC_LUI     = 0b0110111
OPC_AUIPC   = 0b0010111

NOP_WORD = 0x00000000
SENTINEL = 0xDEADBEEF      # end-of-program marker

CONTROL_FLOW_OPCODES = (OPC_BRANCH, OPC_JAL, OPC_JALR)


class Op(Enum):
    """Operation tag carried from Decode to Execute."""

    NOP = "NOP"
    INVALID = "INVALID"
    HALT = "HALT"
    # Integer
    ADD = "ADD"
    SUB = "SUB"
    SLL = "SLL"
    SLT = "SLT"
    SLTU = "SLTU"
    XOR = "XOR"
    SRL = "SRL"
    SRA = "SRA"
    OR = "OR"
    AND = "AND"
    # M extension
    MUL = "MUL"
    MULH = "MULH"
    MULHSU = "MULHSU"
    MULHU = "MULHU"
    DIV = "DIV"
    DIVU = "DIVU"
    REM = "REM"
    REMU = "REMU"
    # Branches
    BEQ = "BEQ"
    BNE = "BNE"
    BLT = "BLT"
    BGE = "BGE"
    BLTU = "BLTU"
    BGEU = "BGEU"
    # Jumps and upper immediates
    JAL = "JAL"
    JALR = "JALR"
    LUI = "LUI"
    AUIPC = "AUIPC"


class WritebackSource(Enum):
    ALU = 0
    MEMORY = 1
    LINK = 2


class MemWidth(Enum):
    """Memory operand width; the value is the access size in bytes."""

    BYTE = 1
    HALF = 2
    WORD = 4


# (funct3, funct7) -> Op for register-register instructions
R_TYPE_OPS: Dict[Tuple[int, int], Op] = {
    (0b000, 0b0000000): Op.ADD,  (0b000, 0b0100000): Op.SUB,
    (0b001, 0b0000000): Op.SLL,  (0b010, 0b0000000): Op.SLT,
    (0b011, 0b0000000): Op.SLTU, (0b100, 0b0000000): Op.XOR,
    (0b101, 0b0000000): Op.SRL,  (0b101, 0b0100000): Op.SRA,
    (0b110, 0b0000000): Op.OR,   (0b111, 0b0000000): Op.AND,
    (0b000, 0b0000001): Op.MUL,  (0b001, 0b0000001): Op.MULH,
    (0b010, 0b0000001): Op.MULHSU, (0b011, 0b0000001): Op.MULHU,
    (0b100, 0b0000001): Op.DIV,  (0b101, 0b0000001): Op.DIVU,
    (0b110, 0b0000001): Op.REM,  (0b111, 0b0000001): Op.REMU,
}

# funct3 -> Op for register-immediate instructions (shifts handled apart)
I_TYPE_OPS: Dict[int, Op] = {
    0b000: Op.ADD, 0b010: Op.SLT, 0b011: Op.SLTU,
    0b100: Op.XOR, 0b110: Op.OR,  0b111: Op.AND,
}

# (funct3, funct7) -> Op for shift-immediates; funct7 sits in imm[11:5]
SHIFT_IMM_OPS: Dict[Tuple[int, int], Op] = {
    (0b001, 0b0000000): Op.SLL,
    (0b101, 0b0000000): Op.SRL, (0b101, 0b0100000): Op.SRA,
}

BRANCH_OPS: Dict[int, Op] = {
    0b000: Op.BEQ, 0b001: Op.BNE, 0b100: Op.BLT,
    0b101: Op.BGE, 0b110: Op.BLTU, 0b111: Op.BGEU,
}

MEM_WIDTHS: Dict[int, MemWidth] = {
    0b000: MemWidth.BYTE, 0b001: MemWidth.HALF, 0b010: MemWidth.WORD,
}

# ─────────────────────────────────────────────────────────────────────────────
# Instruction decoder
# ─────────────────────────────────────────────────────────────────────────────

class DecodedInstruction:
    """Decoded RV32 instruction fields."""

    __slots__ = ("raw", "opcode", "rd", "funct3", "rs1", "rs2", "funct7")

    def __init__(self, raw: int):
        self.raw    = to_unsigned_32(raw)
        self.opcode = self.raw & 0x7F
        self.rd     = (self.raw >>  7) & 0x1F
        self.funct3 = (self.raw >> 12) & 0x07
        self.rs1    = (self.raw >> 15) & 0x1F
        self.rs2    = (self.raw >> 20) & 0x1F
        self.funct7 = (self.raw >> 25) & 0x7F

    @property
    def imm_i(self) -> int:
        return sign_extend(self.raw >> 20, 12)

    @property
    def imm_s(self) -> int:
        return sign_extend((self.funct7 << 5) | self.rd, 12)

    @property
    def imm_b(self) -> int:
        r = self.raw
        value = (((r >> 31) & 0x1) << 12) | (((r >> 7) & 0x1) << 11) \
            | (((r >> 25) & 0x3F) << 5) | (((r >> 8) & 0xF) << 1)
        return sign_extend(value, 13)

    @property
    def imm_u(self) -> int:
        return sign_extend(self.raw & 0xFFFFF000, 32)

    @property
    def imm_j(self) -> int:
        r = self.raw
        value = (((r >> 31) & 0x1) << 20) | (((r >> 12) & 0xFF) << 12) \
            | (((r >> 20) & 0x1) << 11) | (((r >> 21) & 0x3FF) << 1)
        return sign_extend(value, 21)

    @property
    def is_nop(self) -> bool:
        return self.raw == NOP_WORD

    @property
    def is_sentinel(self) -> bool:
        return self.raw == SENTINEL

    def __repr__(self):
        return (f"Instr(op={self.opcode:#09b} rd=x{self.rd} rs1=x{self.rs1} "
                f"rs2=x{self.rs2} f3={self.funct3} f7={self.funct7:#04x})")


def looks_like_control_flow(word: int) -> bool:
    """Fetch-time classification: conditional branch, JAL or JALR."""
    return word != SENTINEL and (word & 0x7F) in CONTROL_FLOW_OPCODES

# ─────────────────────────────────────────────────────────────────────────────
# Control unit
# ─────────────────────────────────────────────────────────────────────────────

class ControlSignals:
    """
    Control signals produced by Decode. Never modified after decoding, so
    the same instance travels ID/EX -> EX/MEM -> MEM/WB.
    """

    __slots__ = ("op", "reg_write", "mem_read", "mem_write", "branch", "jump",
                 "use_imm", "wb_src", "mem_width", "immediate",
                 "uses_rs1", "uses_rs2")

    def __init__(self, op: Op = Op.NOP):
        self.op         = op
        self.reg_write  = False
        self.mem_read   = False
        self.mem_write  = False
        self.branch     = False
        self.jump       = False
        self.use_imm    = False
        self.wb_src     = WritebackSource.ALU
        self.mem_width  = MemWidth.WORD
        self.immediate  = 0      # sign-extended, stored as unsigned 32-bit
        self.uses_rs1   = False
        self.uses_rs2   = False

    @property
    def valid(self) -> bool:
        return self.op is not Op.INVALID

    @staticmethod
    def decode(inst: DecodedInstruction) -> "ControlSignals":
        if inst.is_nop:
            return ControlSignals(Op.NOP)
        if inst.is_sentinel:
            return ControlSignals(Op.HALT)

        c = ControlSignals(Op.INVALID)
        opc, f3, f7 = inst.opcode, inst.funct3, inst.funct7

        if opc == OPC_OP:
            c.op = R_TYPE_OPS.get((f3, f7), Op.INVALID)
            c.reg_write = True
            c.uses_rs1 = c.uses_rs2 = True
        elif opc == OPC_OP_IMM:
            if f3 in (0b001, 0b101):
                c.op = SHIFT_IMM_OPS.get((f3, f7), Op.INVALID)
            else:
                c.op = I_TYPE_OPS.get(f3, Op.INVALID)
            c.immediate = inst.imm_i
            c.reg_write = True; c.use_imm = True; c.uses_rs1 = True
        elif opc == OPC_LOAD:
            c.op = Op.ADD if f3 in MEM_WIDTHS else Op.INVALID
            c.mem_width = MEM_WIDTHS.get(f3, MemWidth.WORD)
            c.immediate = inst.imm_i
            c.reg_write = True; c.mem_read = True; c.use_imm = True
            c.wb_src = WritebackSource.MEMORY
            c.uses_rs1 = True
        elif opc == OPC_STORE:
            c.op = Op.ADD if f3 in MEM_WIDTHS else Op.INVALID
            c.mem_width = MEM_WIDTHS.get(f3, MemWidth.WORD)
            c.immediate = inst.imm_s
            c.mem_write = True; c.use_imm = True
            c.uses_rs1 = c.uses_rs2 = True
        elif opc == OPC_BRANCH:
            c.op = BRANCH_OPS.get(f3, Op.INVALID)
            c.immediate = inst.imm_b
            c.branch = True
            c.uses_rs1 = c.uses_rs2 = True
        elif opc == OPC_JAL:
            c.op = Op.JAL
            c.immediate = inst.imm_j
            c.reg_write = True; c.jump = True
            c.wb_src = WritebackSource.LINK
        elif opc == OPC_JALR:
            c.op = Op.JALR if f3 == 0 else Op.INVALID
            c.immediate = inst.imm_i
            c.reg_write = True; c.jump = True; c.use_imm = True
            c.wb_src = WritebackSource.LINK
            c.uses_rs1 = True
        elif opc == OPC_LUI:
            c.op = Op.LUI
            c.immediate = inst.imm_u
            c.reg_write = True; c.use_imm = True
        elif opc == OPC_AUIPC:
            c.op = Op.AUIPC
            c.immediate = inst.imm_u
            c.reg_write = True; c.use_imm = True

        c.immediate = to_unsigned_32(c.immediate)
        if c.op is Op.INVALID:
            # Nothing downstream may act on an unrecognised word.
            invalid = ControlSignals(Op.INVALID)
            invalid.immediate = c.immediate
            return invalid
        return c

    def __repr__(self):
        return (f"Ctrl({self.op.value} RW={int(self.reg_write)} "
                f"MR={int(self.mem_read)} MW={int(self.mem_write)} "
                f"Br={int(self.branch)} J={int(self.jump)} "
                f"Imm={int(self.use_imm)} WB={self.wb_src.name} "
                f"Sz={self.mem_width.name})")
