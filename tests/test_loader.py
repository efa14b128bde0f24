import logging

import pytest

from riscv_cpu_sim.cpu import PipelinedCPU
from riscv_cpu_sim.loader import load_machine_code_file, parse_machine_code

PROGRAM = """\
# addi x1, x0, 5 ; end
0x8 0xDEADBEEF , end of text
0x4 0x00500093 , addi x1 x0 5

0x10000000 0x0A
0x10000001 0x1FF
"""


def test_parse_instructions_and_data(caplog):
    caplog.set_level(logging.WARNING)
    image = parse_machine_code(PROGRAM.splitlines())
    assert image.instructions == {4: 0x00500093, 8: 0xDEADBEEF}
    assert image.data == {0x10000000: 0x0A, 0x10000001: 0xFF}
    assert image.start_pc == 4
    assert "truncated" in caplog.text


@pytest.mark.parametrize("line,reason", [
    ("bogus", "not enough parts"),
    ("0xZZ 0x01", "hex format error"),
    ("10 0x01", "hex format error"),
])
def test_malformed_lines_are_skipped(caplog, line, reason):
    caplog.set_level(logging.WARNING)
    image = parse_machine_code([line, "0x0 0x00000013 , nop"])
    assert image.instructions == {0: 0x13}
    assert reason in caplog.text


def test_empty_input():
    image = parse_machine_code([])
    assert image.instructions == {}
    assert image.start_pc == 0


def test_load_file_and_run(tmp_path):
    path = tmp_path / "prog.mc"
    path.write_text(PROGRAM)
    image = load_machine_code_file(str(path))

    cpu = PipelinedCPU()
    cpu.load_image(image)
    assert cpu.pc == 4
    cpu.run()
    assert cpu.halted
    assert cpu.rf[1] == 5
    assert cpu.memory.read_byte(0x10000001) == 0xFF
    # Code bytes are mirrored into data memory.
    assert cpu.memory.read_word(4) == 0x00500093


def test_missing_file_raises(tmp_path):
    with pytest.raises(OSError):
        load_machine_code_file(str(tmp_path / "missing.mc"))
