import logging

import pytest

from riscv_cpu_sim import encoding as asm
from riscv_cpu_sim.cpu import PipelinedCPU, SimConfig
from riscv_cpu_sim.storage import INITIAL_SP
from riscv_cpu_sim.utils import to_unsigned_32

TOGGLES = [(True, True), (True, False), (False, True), (False, False)]

# ─────────────────────────────────────────────────────────────────────────────
# Programs
# ─────────────────────────────────────────────────────────────────────────────

DEPENDENT_ADDS = [
    asm.ADDI(1, 0, 5),
    asm.ADDI(2, 0, 10),
    asm.ADD(3, 1, 2),
    asm.HALT(),
]

LOOP_SUM = [
    asm.ADDI(1, 0, 10),       # 0x00
    asm.ADDI(2, 0, 0),        # 0x04
    asm.ADD(2, 2, 1),         # 0x08  loop:
    asm.ADDI(1, 1, -1),       # 0x0C
    asm.BNE(1, 0, -8),        # 0x10
    asm.SW(2, 0, 0x100),      # 0x14
    asm.LW(3, 0, 0x100),      # 0x18
    asm.HALT(),               # 0x1C
]


def snapshots(cpu_list):
    def _observe(cpu):
        cpu_list.append(cpu.snapshot())
    return _observe

# ─────────────────────────────────────────────────────────────────────────────
# Results are identical in every mode
# ─────────────────────────────────────────────────────────────────────────────

def test_dependent_adds(run_program, config):
    cpu = run_program(DEPENDENT_ADDS, config)
    assert cpu.halted
    assert cpu.rf[3] == 15


def test_load_then_use(run_program, config):
    cpu = run_program([asm.LW(1, 0, 0), asm.ADD(2, 1, 1), asm.HALT()],
                      config, data={0: 100}, base_addr=0x1000)
    assert cpu.rf[1] == 100
    assert cpu.rf[2] == 200


def test_taken_branch_skips_instruction(run_program, config):
    cpu = run_program([asm.BEQ(0, 0, 8), asm.ADDI(1, 0, 1),
                       asm.ADDI(1, 0, 2), asm.HALT()], config)
    assert cpu.rf[1] == 2
    assert cpu.predictor.direction_mispredictions == 1


def test_loop_sum(run_program, config):
    cpu = run_program(LOOP_SUM, config)
    assert cpu.rf[2] == 55
    assert cpu.rf[3] == 55
    assert cpu.memory.read_word(0x100) == 55
    assert cpu.predictor.mispredictions == 2


def test_all_modes_reach_same_state(run_program):
    results = []
    for pipelining, forwarding in TOGGLES:
        cpu = run_program(LOOP_SUM, SimConfig(pipelining, forwarding))
        results.append((cpu.registers, cpu.memory.snapshot()))
    assert all(r == results[0] for r in results[1:])


def test_function_call(run_program, config):
    cpu = run_program([
        asm.ADDI(10, 0, 7),       # 0x00
        asm.JAL(1, 12),           # 0x04 -> 0x10
        asm.ADDI(11, 10, 0),      # 0x08
        asm.JAL(0, 12),           # 0x0C -> 0x18
        asm.ADD(10, 10, 10),      # 0x10
        asm.JALR(0, 1, 0),        # 0x14 -> 0x08
        asm.HALT(),               # 0x18
    ], config)
    assert cpu.rf[1] == 8
    assert cpu.rf[10] == 14
    assert cpu.rf[11] == 14


def test_jalr_uses_fresh_register(run_program, config):
    cpu = run_program([
        asm.ADDI(5, 0, 12),       # 0x00
        asm.JALR(6, 5, 0),        # 0x04 -> 0x0C
        asm.ADDI(7, 0, 1),        # 0x08
        asm.ADDI(8, 0, 2),        # 0x0C
        asm.HALT(),
    ], config)
    assert (cpu.rf[6], cpu.rf[7], cpu.rf[8]) == (8, 0, 2)


def test_loads_and_stores(run_program, config):
    cpu = run_program([
        asm.LUI(1, 0x12345),
        asm.ADDI(1, 1, 0x678),
        asm.SW(1, 0, 0x200),
        asm.LW(2, 0, 0x200),
        asm.LH(3, 0, 0x200),
        asm.LB(4, 0, 0x203),
        asm.ADDI(5, 0, -128),
        asm.SB(5, 0, 0x210),
        asm.LB(6, 0, 0x210),
        asm.SH(5, 0, 0x220),
        asm.LH(7, 0, 0x220),
        asm.LW(8, 0, 0x220),
        asm.HALT(),
    ], config)
    assert cpu.rf[2] == 0x12345678
    assert cpu.rf[3] == 0x5678
    assert cpu.rf[4] == 0x12
    assert cpu.rf[6] == 0xFFFFFF80
    assert cpu.rf[7] == 0xFFFFFF80
    assert cpu.rf[8] == 0x0000FF80


def test_multiply_divide(run_program, config):
    cpu = run_program([
        asm.ADDI(1, 0, -7),
        asm.ADDI(2, 0, 2),
        asm.DIV(3, 1, 2),
        asm.REM(4, 1, 2),
        asm.DIV(5, 1, 0),
        asm.MUL(6, 1, 2),
        asm.HALT(),
    ], config)
    assert cpu.rf[3] == to_unsigned_32(-3)
    assert cpu.rf[4] == to_unsigned_32(-1)
    assert cpu.rf[5] == 0xFFFFFFFF
    assert cpu.rf[6] == to_unsigned_32(-14)


def test_auipc_and_start_address(run_program):
    cpu = run_program([asm.AUIPC(1, 1), asm.HALT()], base_addr=0x100)
    assert cpu.rf[1] == 0x1100


def test_loads_see_code_bytes(run_program):
    cpu = run_program([asm.LW(1, 0, 0), asm.HALT()])
    assert cpu.rf[1] == asm.LW(1, 0, 0)


def test_stack_pointer_initialised(run_program):
    cpu = run_program([asm.ADDI(1, 2, 4), asm.HALT()])
    assert cpu.rf[2] == INITIAL_SP
    assert cpu.rf[1] == INITIAL_SP + 4


def test_x0_stays_zero_every_cycle(run_program, config):
    seen = []
    cpu = run_program([asm.ADDI(0, 0, 5), asm.ADD(1, 0, 0),
                       asm.ADDI(0, 1, 7), asm.LW(0, 0, 0), asm.HALT()],
                      config, on_cycle=snapshots(seen))
    assert seen
    assert all(s.registers[0] == 0 for s in seen)
    assert cpu.rf[1] == 0

# ─────────────────────────────────────────────────────────────────────────────
# Pipeline timing
# ─────────────────────────────────────────────────────────────────────────────

def test_forwarding_cycle_count(run_program):
    cpu = run_program(DEPENDENT_ADDS, SimConfig(forwarding=True))
    assert cpu.cycle_count == 8
    assert cpu.stall_count == 0
    assert cpu.instr_count == 3


def test_no_forwarding_stalls_on_raw(run_program):
    cpu = run_program(DEPENDENT_ADDS, SimConfig(forwarding=False))
    assert cpu.data_stalls == 2
    assert cpu.load_use_stalls == 0
    assert cpu.cycle_count == 10


def test_load_use_costs_one_cycle(run_program):
    dependent = run_program([asm.LW(1, 0, 0), asm.ADD(2, 1, 1), asm.HALT()],
                            data={0: 100}, base_addr=0x1000)
    independent = run_program([asm.ADDI(1, 0, 100), asm.ADD(2, 3, 3), asm.HALT()])
    assert dependent.load_use_stalls == 1
    assert dependent.stall_count == 1
    assert independent.stall_count == 0
    assert dependent.cycle_count == independent.cycle_count + 1 == 8


def test_no_forwarding_is_slower(run_program):
    fast = run_program(LOOP_SUM, SimConfig(forwarding=True))
    slow = run_program(LOOP_SUM, SimConfig(forwarding=False))
    assert slow.cycle_count > fast.cycle_count
    assert slow.data_stalls > 0


@pytest.mark.parametrize("forwarding", [True, False])
def test_flush_voids_wrong_path(run_program, forwarding):
    seen = []
    cpu = run_program([
        asm.BEQ(0, 0, 12),        # 0x00 -> 0x0C
        asm.ADDI(1, 0, 1),        # 0x04
        asm.ADDI(4, 0, 2),        # 0x08
        asm.ADDI(5, 0, 3),        # 0x0C
        asm.HALT(),
    ], SimConfig(forwarding=forwarding), on_cycle=snapshots(seen))

    third = seen[2]
    assert [latch.valid for latch in third.latches] == [False, False, True, False]
    assert not third.if_id.valid
    assert not third.id_ex.valid
    assert third.ex_mem.valid and third.ex_mem.pc == 0
    assert third.ex_mem.branch_taken
    assert third.pc == 0x0C
    assert seen[3].if_id.valid and seen[3].if_id.pc == 0x0C

    assert (cpu.rf[1], cpu.rf[4], cpu.rf[5]) == (0, 0, 3)
    assert cpu.flush_count == 1


def test_warm_predictor_avoids_flush():
    cpu = PipelinedCPU()
    cpu.load_program([asm.BEQ(0, 0, 8), asm.ADDI(1, 0, 1),
                      asm.ADDI(1, 0, 2), asm.HALT()])
    cpu.predictor.update(0, True, 8)
    cpu.run()
    assert cpu.rf[1] == 2
    assert cpu.flush_count == 0
    assert cpu.predictor.mispredictions == 0


@pytest.mark.parametrize("forwarding", [True, False])
def test_wrong_path_sentinel_is_discarded(run_program, forwarding):
    cpu = run_program([
        asm.ADDI(1, 0, 3),        # 0x00
        asm.ADDI(1, 1, -1),       # 0x04  loop:
        asm.BNE(1, 0, -4),        # 0x08
        asm.HALT(),               # 0x0C
    ], SimConfig(forwarding=forwarding))
    assert cpu.halted
    assert cpu.rf[1] == 0


def test_sequential_mode_one_cycle_per_instruction(run_program):
    cpu = run_program(DEPENDENT_ADDS, SimConfig(pipelining=False))
    assert cpu.cycle_count == 4
    assert cpu.stall_count == 0
    assert cpu.flush_count == 0

# ─────────────────────────────────────────────────────────────────────────────
# Termination and diagnostics
# ─────────────────────────────────────────────────────────────────────────────

def test_drains_without_sentinel(run_program):
    cpu = run_program([asm.ADDI(1, 0, 1)])
    assert cpu.halted
    assert cpu.cycle_count == 5
    assert cpu.rf[1] == 1


def test_sequential_drains_without_sentinel(run_program):
    cpu = run_program([asm.ADDI(1, 0, 1)], SimConfig(pipelining=False))
    assert cpu.halted
    assert cpu.cycle_count == 1


def test_cycle_limit(run_program, caplog):
    caplog.set_level(logging.WARNING)
    cpu = run_program([asm.JAL(0, 0)], max_cycles=50)
    assert cpu.cycle_count == 50
    assert not cpu.halted
    assert "Maximum cycle limit reached" in caplog.text


def test_invalid_instruction_is_skipped(run_program, config, caplog):
    caplog.set_level(logging.WARNING)
    cpu = run_program([0xFFFFFFFF, asm.ADDI(1, 0, 3), asm.HALT()], config)
    assert cpu.halted
    assert cpu.rf[1] == 3
    assert "Unsupported instruction 0xFFFFFFFF (opcode 0b1111111) at PC 0x00000000" \
        in caplog.text


def test_zero_word_is_a_nop(run_program):
    cpu = run_program([0x00000000, asm.ADDI(1, 0, 3), asm.HALT()])
    assert cpu.rf[1] == 3
    assert cpu.instr_count == 1


def test_step_after_halt_is_noop(run_program):
    cpu = run_program(DEPENDENT_ADDS)
    cycles = cpu.cycle_count
    cpu.step()
    assert cpu.cycle_count == cycles


def test_stats_and_snapshot(run_program):
    cpu = run_program(LOOP_SUM)
    stats = cpu.stats()
    assert stats["cycles"] == cpu.cycle_count
    assert stats["instructions"] == cpu.instr_count
    assert stats["cpi"] == pytest.approx(cpu.cycle_count / cpu.instr_count)
    assert stats["flushes"] == cpu.flush_count == 2
    assert stats["mispredictions"] == 2
    assert 0.0 < stats["accuracy"] < 1.0

    snap = cpu.snapshot()
    assert snap.halted
    assert snap.registers[2] == 55
    assert snap.predictor["history"][0x10] is False
    assert snap.predictor["targets"][0x10] == 0x08
