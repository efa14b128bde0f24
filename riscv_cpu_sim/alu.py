"""Integer ALU, branch comparator and the M-extension multiply/divide unit."""

from __future__ import annotations
import logging

from .isa import Op
from .utils import to_signed_32, to_unsigned_32

log = logging.getLogger(__name__)

INT32_MIN = -0x80000000


class ALU:
    """
    32-bit RV32IM ALU. Operands and results are unsigned 32-bit ints;
    signed operations reinterpret them with to_signed_32.

    Division by zero follows the RISC-V convention instead of trapping:
    DIV/DIVU return all ones, REM/REMU return the dividend. Signed
    overflow (INT32_MIN / -1) returns INT32_MIN with a remainder of 0.
    """

    @staticmethod
    def execute(op: Op, a: int, b: int) -> int:
        a, b = to_unsigned_32(a), to_unsigned_32(b)
        sa, sb = to_signed_32(a), to_signed_32(b)
        if op is Op.ADD:
            result = a + b
        elif op is Op.SUB:
            result = a - b
        elif op is Op.AND:
            result = a & b
        elif op is Op.OR:
            result = a | b
        elif op is Op.XOR:
            result = a ^ b
        elif op is Op.SLL:
            result = a << (b & 0x1F)
        elif op is Op.SRL:
            result = a >> (b & 0x1F)
        elif op is Op.SRA:
            result = sa >> (b & 0x1F)
        elif op is Op.SLT:
            result = 1 if sa < sb else 0
        elif op is Op.SLTU:
            result = 1 if a < b else 0
        elif op is Op.MUL:
            result = a * b
        elif op is Op.MULH:
            result = (sa * sb) >> 32
        elif op is Op.MULHSU:
            result = (sa * b) >> 32
        elif op is Op.MULHU:
            result = (a * b) >> 32
        elif op in (Op.DIV, Op.DIVU, Op.REM, Op.REMU):
            result = ALU._divide(op, a, b)
        else:
            result = 0
        return to_unsigned_32(result)

    @staticmethod
    def _divide(op: Op, a: int, b: int) -> int:
        sa, sb = to_signed_32(a), to_signed_32(b)
        if b == 0:
            log.debug("%s by zero: dividend=0x%08X", op.value, a)
            return 0xFFFFFFFF if op in (Op.DIV, Op.DIVU) else a
        if op is Op.DIVU:
            return a // b
        if op is Op.REMU:
            return a % b
        if sa == INT32_MIN and sb == -1:
            return sa if op is Op.DIV else 0
        # Signed division truncates toward zero.
        quotient = abs(sa) // abs(sb)
        if (sa < 0) != (sb < 0):
            quotient = -quotient
        if op is Op.DIV:
            return quotient
        return sa - sb * quotient

    @staticmethod
    def branch_taken(op: Op, a: int, b: int) -> bool:
        a, b = to_unsigned_32(a), to_unsigned_32(b)
        if op is Op.BEQ:
            return a == b
        if op is Op.BNE:
            return a != b
        if op is Op.BLT:
            return to_signed_32(a) < to_signed_32(b)
        if op is Op.BGE:
            return to_signed_32(a) >= to_signed_32(b)
        if op is Op.BLTU:
            return a < b
        if op is Op.BGEU:
            return a >= b
        return False
