"""Architectural state: register file and byte-addressable memory."""

from __future__ import annotations
from typing import Dict, List

from .isa import MemWidth
from .utils import sign_extend, to_unsigned_32

INITIAL_SP = 0x7FFFFFDC   # x2 (sp) at reset
SP_REG = 2

# ─────────────────────────────────────────────────────────────────────────────
# Register file
# ─────────────────────────────────────────────────────────────────────────────

class RegisterFile:
    """32 general-purpose registers; x0 is hardwired to zero."""

    NUM_REGS = 32

    def __init__(self):
        self.regs: List[int] = [0] * self.NUM_REGS
        self.regs[SP_REG] = INITIAL_SP

    def read(self, index: int) -> int:
        if index == 0:
            return 0
        return self.regs[index]

    def write(self, index: int, value: int):
        if index != 0:
            self.regs[index] = to_unsigned_32(value)

    def __getitem__(self, index: int) -> int:
        return self.read(index)

    def snapshot(self) -> List[int]:
        return list(self.regs)

# ─────────────────────────────────────────────────────────────────────────────
# Memory
# ─────────────────────────────────────────────────────────────────────────────

class Memory:
    """
    Sparse byte store. Unmapped addresses read as 0 and multi-byte
    accesses are little-endian.
    """

    def __init__(self):
        self.data: Dict[int, int] = {}

    def read_byte(self, addr: int) -> int:
        return self.data.get(to_unsigned_32(addr), 0)

    def write_byte(self, addr: int, value: int):
        self.data[to_unsigned_32(addr)] = value & 0xFF

    def read(self, addr: int, width: MemWidth) -> int:
        """Load *width* bytes; byte and half loads are sign-extended."""
        value = 0
        for i in range(width.value):
            value |= self.read_byte(addr + i) << (8 * i)
        if width is MemWidth.WORD:
            return value
        return to_unsigned_32(sign_extend(value, 8 * width.value))

    def write(self, addr: int, value: int, width: MemWidth):
        for i in range(width.value):
            self.write_byte(addr + i, value >> (8 * i))

    def read_word(self, addr: int) -> int:
        return self.read(addr, MemWidth.WORD)

    def write_word(self, addr: int, value: int):
        self.write(addr, value, MemWidth.WORD)

    def snapshot(self) -> Dict[int, int]:
        return dict(self.data)
