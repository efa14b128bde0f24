"""
Loader for the ``.mc`` machine-code text format.

Each non-blank, non-comment line starts with an address and a value::

    0x00000000 0x00A00093 , addi x1 x0 10
    0x00000004 0xDEADBEEF , ends
    0x10000000 0x0A

Lines containing a comma are instruction words (the end-of-text marker
included); lines without one are single data bytes. Malformed lines are
reported and skipped.
"""

from __future__ import annotations
import logging
from typing import Dict, Iterable

log = logging.getLogger(__name__)


class ProgramImage:
    """Initial instruction words, data bytes and start PC of a program."""

    __slots__ = ("instructions", "data", "start_pc")

    def __init__(self, instructions: Dict[int, int], data: Dict[int, int],
                 start_pc: int = 0):
        self.instructions = instructions
        self.data = data
        self.start_pc = start_pc

    def __repr__(self):
        return (f"ProgramImage({len(self.instructions)} instructions, "
                f"{len(self.data)} data bytes, start=0x{self.start_pc:08X})")


def _parse_hex(text: str) -> int:
    if not text.lower().startswith("0x"):
        raise ValueError(f"missing 0x prefix: {text!r}")
    return int(text[2:], 16)


def parse_machine_code(lines: Iterable[str]) -> ProgramImage:
    instructions: Dict[int, int] = {}
    data: Dict[int, int] = {}

    for lineno, line in enumerate(lines, 1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        parts = line.split()
        if len(parts) < 2:
            log.warning("Skipping invalid line %d (not enough parts): %s",
                        lineno, line)
            continue
        try:
            address = _parse_hex(parts[0])
            value = _parse_hex(parts[1].rstrip(","))
        except ValueError:
            log.warning("Skipping invalid line %d (hex format error): %s",
                        lineno, line)
            continue

        if "," in line:
            instructions[address] = value & 0xFFFFFFFF
        else:
            if value > 0xFF:
                log.warning("Data value %s larger than a byte on line %d; "
                            "storing truncated byte", parts[1], lineno)
                value &= 0xFF
            data[address] = value

    start_pc = min(instructions) if instructions else 0
    log.info("Loaded %d instructions and %d data bytes, start PC 0x%08X",
             len(instructions), len(data), start_pc)
    return ProgramImage(instructions, data, start_pc)


def load_machine_code_file(path: str) -> ProgramImage:
    """Parse a ``.mc`` file. I/O errors propagate to the caller."""
    with open(path, "r") as f:
        return parse_machine_code(f)
