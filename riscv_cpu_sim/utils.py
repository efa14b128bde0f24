"""32-bit value helpers shared by every stage."""

from __future__ import annotations

MASK_32 = 0xFFFFFFFF


def sign_extend(value: int, bits: int) -> int:
    """Sign-extend a *bits*-wide integer to a full Python int."""
    value &= (1 << bits) - 1
    if value & (1 << (bits - 1)):
        return value - (1 << bits)
    return value

def to_unsigned_32(value: int) -> int:
    """Clamp to unsigned 32-bit."""
    return value & MASK_32

def to_signed_32(value: int) -> int:
    """Interpret an unsigned 32-bit value as signed."""
    v = value & MASK_32
    if v & 0x80000000:
        return v - 0x100000000
    return v

def format_hex(value: int) -> str:
    return f"0x{to_unsigned_32(value):08X}"
