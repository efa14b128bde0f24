import pytest

from riscv_cpu_sim.isa import MemWidth
from riscv_cpu_sim.storage import INITIAL_SP, Memory, RegisterFile


def test_register_zero_is_hardwired():
    rf = RegisterFile()
    rf.write(0, 123)
    assert rf[0] == 0
    assert rf.snapshot()[0] == 0


def test_register_reset_state():
    rf = RegisterFile()
    assert rf[2] == INITIAL_SP == 0x7FFFFFDC
    assert all(rf[i] == 0 for i in range(32) if i != 2)


def test_register_write_wraps_to_32_bits():
    rf = RegisterFile()
    rf.write(5, -1)
    assert rf[5] == 0xFFFFFFFF
    rf.write(5, 1 << 32)
    assert rf[5] == 0


def test_unmapped_memory_reads_zero():
    mem = Memory()
    assert mem.read_word(0x1234) == 0
    assert mem.read(0x1234, MemWidth.BYTE) == 0


def test_word_is_little_endian():
    mem = Memory()
    mem.write_word(0x100, 0x12345678)
    assert [mem.read_byte(0x100 + i) for i in range(4)] == [0x78, 0x56, 0x34, 0x12]
    assert mem.read_word(0x100) == 0x12345678


@pytest.mark.parametrize("width,stored,loaded", [
    (MemWidth.BYTE, 0x80, 0xFFFFFF80),
    (MemWidth.BYTE, 0x7F, 0x7F),
    (MemWidth.HALF, 0x8001, 0xFFFF8001),
    (MemWidth.HALF, 0x1234, 0x1234),
    (MemWidth.WORD, 0x80000000, 0x80000000),
])
def test_narrow_loads_sign_extend(width, stored, loaded):
    mem = Memory()
    mem.write(0x40, stored, width)
    assert mem.read(0x40, width) == loaded


def test_narrow_store_only_touches_its_bytes():
    mem = Memory()
    mem.write_word(0x40, 0xAABBCCDD)
    mem.write(0x41, 0x1122, MemWidth.HALF)
    assert mem.read_word(0x40) == 0xAA1122DD
