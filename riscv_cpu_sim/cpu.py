"""
5-stage pipelined RV32IM CPU.

Each call to step() advances one clock cycle. Stages read only the latch
set left by the previous cycle and build a fresh one, which is swapped in
together with the new PC at the end of the cycle. The register file,
memory and branch predictor are each written by exactly one stage
(Writeback, Memory and Execute).
"""

from __future__ import annotations
import logging
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .alu import ALU
from .hazards import ForwardingUnit, HazardSignals, HazardUnit
from .isa import (ControlSignals, DecodedInstruction, Op, SENTINEL)
from .latches import EXMEM, IDEX, IFID, LatchSet, MEMWB
from .loader import ProgramImage
from .predictor import BranchPredictor, MispredictKind, classify_misprediction
from .storage import Memory, RegisterFile
from .utils import format_hex, to_unsigned_32

log = logging.getLogger(__name__)

DEFAULT_MAX_CYCLES = 100000

# ─────────────────────────────────────────────────────────────────────────────
# Configuration and observation
# ─────────────────────────────────────────────────────────────────────────────

class SimConfig:
    """Run-time knobs recognised by the engine."""

    __slots__ = ("pipelining", "forwarding", "max_cycles")

    def __init__(self, pipelining: bool = True, forwarding: bool = True,
                 max_cycles: int = DEFAULT_MAX_CYCLES):
        self.pipelining = pipelining
        self.forwarding = forwarding
        self.max_cycles = max_cycles

    def __repr__(self):
        return (f"SimConfig(pipelining={self.pipelining}, "
                f"forwarding={self.forwarding}, max_cycles={self.max_cycles})")


class CycleSnapshot:
    """Machine state at the end of one cycle, as handed to observers."""

    __slots__ = ("cycle", "pc", "latches", "if_id", "id_ex", "ex_mem", "mem_wb",
                 "hazards", "registers", "memory", "predictor", "halted")

    def __init__(self, cpu: "PipelinedCPU"):
        self.cycle = cpu.cycle_count
        self.pc = cpu.pc
        # Latches are never modified once built, so sharing them is safe.
        self.latches = cpu.latches
        self.if_id = cpu.latches.if_id
        self.id_ex = cpu.latches.id_ex
        self.ex_mem = cpu.latches.ex_mem
        self.mem_wb = cpu.latches.mem_wb
        self.hazards = cpu.hazards
        self.registers: List[int] = cpu.rf.snapshot()
        self.memory: Dict[int, int] = cpu.memory.snapshot()
        self.predictor = cpu.predictor.stats()
        self.halted = cpu.halted

# ─────────────────────────────────────────────────────────────────────────────
# Pipelined CPU
# ─────────────────────────────────────────────────────────────────────────────

class PipelinedCPU:
    """
    5-stage pipelined RV32IM CPU with:
      - Hazard detection (load-use stall, RAW stall without forwarding)
      - EX/MEM and MEM/WB data forwarding
      - 1-bit branch prediction with a BTB, flush on misprediction
      - A sequential (non-pipelined) mode running one instruction per cycle
    """

    def __init__(self, config: Optional[SimConfig] = None):
        self.config = config if config is not None else SimConfig()

        # Memories
        self.i_mem: Dict[int, int] = {}    # instruction memory (word per address)
        self.memory = Memory()             # data memory (byte-addressed)
        self.rf = RegisterFile()

        # Pipeline registers and PC
        self.latches = LatchSet()
        self.pc = 0
        self.fetch_halted = False          # sentinel fetched, stop fetching

        self.predictor = BranchPredictor()
        self.hazards = HazardSignals()

        # Stats
        self.cycle_count = 0
        self.instr_count = 0
        self.load_use_stalls = 0
        self.data_stalls = 0
        self.flush_count = 0
        self.halted = False

    # ── Program loading ─────────────────────────────────────────────────

    def load_image(self, image: ProgramImage):
        """Install a program image produced by the loader."""
        for addr, word in sorted(image.instructions.items()):
            word = to_unsigned_32(word)
            self.i_mem[addr] = word
            # Mirror code bytes so loads from the text segment see them.
            self.memory.write_word(addr, word)
        for addr, byte in image.data.items():
            self.memory.write_byte(addr, byte)
        self.pc = image.start_pc

    def load_program(self, instructions: Iterable[int], base_addr: int = 0,
                     data: Optional[Dict[int, int]] = None):
        """Load instruction words at base_addr and optional data bytes."""
        words = {base_addr + i * 4: instr for i, instr in enumerate(instructions)}
        start = min(words) if words else base_addr
        self.load_image(ProgramImage(words, dict(data or {}), start))

    # ── Pipeline stages ─────────────────────────────────────────────────

    def _stage_fetch(self) -> Tuple[IFID, int]:
        """IF: fetch the word at PC and predict the next PC."""
        pc = self.pc
        if self.fetch_halted or pc not in self.i_mem:
            return IFID(), pc

        word = self.i_mem[pc]
        fall_through = to_unsigned_32(pc + 4)
        if word == SENTINEL:
            self.fetch_halted = True
            return IFID(True, pc, word, fall_through, False, fall_through), fall_through

        taken, target = self.predictor.predict(pc, word)
        if taken:
            log.debug("BPU: predicting 0x%08X taken to 0x%08X", pc, target)
        latch = IFID(valid=True, pc=pc, instruction=word, next_pc=fall_through,
                     predicted_taken=taken, predicted_target=target)
        return latch, target if taken else fall_through

    def _stage_decode(self, if_id: IFID) -> IDEX:
        """ID: decode, generate control signals, read registers."""
        if not if_id.valid:
            return IDEX()

        inst = DecodedInstruction(if_id.instruction)
        ctrl = ControlSignals.decode(inst)
        if not ctrl.valid:
            log.warning("Unsupported instruction %s (opcode 0b%s) at PC %s",
                        format_hex(inst.raw), format(inst.opcode, "07b"),
                        format_hex(if_id.pc))
            return IDEX(valid=False, pc=if_id.pc, instruction=if_id.instruction,
                        next_pc=if_id.next_pc, ctrl=ctrl)

        return IDEX(
            valid=True, pc=if_id.pc, instruction=if_id.instruction,
            next_pc=if_id.next_pc, ctrl=ctrl,
            read_data1=self.rf.read(inst.rs1), read_data2=self.rf.read(inst.rs2),
            rs1=inst.rs1, rs2=inst.rs2, rd=inst.rd,
            predicted_taken=if_id.predicted_taken,
            predicted_target=if_id.predicted_target,
        )

    def _stage_execute(self, id_ex: IDEX, ex_mem: EXMEM, mem_wb: MEMWB
                       ) -> Tuple[EXMEM, Optional[int]]:
        """
        EX: ALU operation, branch resolution, forwarding.
        Returns the EX/MEM latch and the corrected PC on a misprediction.
        """
        if not id_ex.valid:
            return EXMEM(), None
        ctrl = id_ex.ctrl
        if ctrl.op in (Op.NOP, Op.HALT):
            return EXMEM(valid=True, pc=id_ex.pc, instruction=id_ex.instruction,
                         ctrl=ctrl), None

        rs1_val, rs2_val = id_ex.read_data1, id_ex.read_data2
        if self.config.pipelining and self.config.forwarding:
            rs1_val = ForwardingUnit.resolve(id_ex.rs1, rs1_val, ex_mem, mem_wb)
            rs2_val = ForwardingUnit.resolve(id_ex.rs2, rs2_val, ex_mem, mem_wb)

        # ALU input B selection
        operand1 = rs1_val
        operand2 = ctrl.immediate if ctrl.use_imm else rs2_val

        pc, imm, op = id_ex.pc, ctrl.immediate, ctrl.op
        link = id_ex.next_pc
        taken = False
        target = 0

        if ctrl.branch:
            taken = ALU.branch_taken(op, operand1, operand2)
            target = to_unsigned_32(pc + imm)
            alu_result = 0
        elif op is Op.JAL:
            taken, target = True, to_unsigned_32(pc + imm)
            alu_result = link
        elif op is Op.JALR:
            taken, target = True, to_unsigned_32(operand1 + imm) & ~1
            alu_result = link
        elif op is Op.LUI:
            alu_result = imm
        elif op is Op.AUIPC:
            alu_result = to_unsigned_32(pc + imm)
        else:
            alu_result = ALU.execute(op, operand1, operand2)

        redirect = None
        if ctrl.branch or ctrl.jump:
            redirect = self._resolve_control_flow(id_ex, taken, target)

        out = EXMEM(
            valid=True, pc=pc, instruction=id_ex.instruction, ctrl=ctrl,
            alu_result=alu_result,
            write_data=rs2_val if ctrl.mem_write else 0,
            link_address=link, branch_taken=taken, branch_target=target,
            rd=id_ex.rd,
        )
        return out, redirect

    def _resolve_control_flow(self, id_ex: IDEX, taken: bool, target: int
                              ) -> Optional[int]:
        """Train the predictor and check the prediction latched at fetch."""
        kind = classify_misprediction(id_ex.predicted_taken,
                                      id_ex.predicted_target, taken, target)
        self.predictor.update(id_ex.pc, taken, target, kind)
        if kind is None:
            return None

        corrected = target if taken else id_ex.next_pc
        if kind is MispredictKind.TARGET:
            log.debug("Target mispredict at 0x%08X: predicted 0x%08X, "
                      "actual 0x%08X", id_ex.pc, id_ex.predicted_target, target)
        else:
            log.debug("Direction mispredict at 0x%08X: predicted %s, actual %s. "
                      "Correcting PC to 0x%08X", id_ex.pc,
                      "TAKEN" if id_ex.predicted_taken else "NOT TAKEN",
                      "TAKEN" if taken else "NOT TAKEN", corrected)
        return corrected

    def _stage_memory(self, ex_mem: EXMEM) -> MEMWB:
        """MEM: data memory read/write."""
        if not ex_mem.valid:
            return MEMWB()
        ctrl = ex_mem.ctrl
        addr = ex_mem.alu_result

        read_data = 0
        if ctrl.mem_read:
            read_data = self.memory.read(addr, ctrl.mem_width)
            log.debug("MEM: read %s from 0x%X = 0x%X",
                      ctrl.mem_width.name, addr, read_data)
        elif ctrl.mem_write:
            self.memory.write(addr, ex_mem.write_data, ctrl.mem_width)
            log.debug("MEM: wrote %s to 0x%X = 0x%X",
                      ctrl.mem_width.name, addr, ex_mem.write_data)

        return MEMWB(valid=True, pc=ex_mem.pc, instruction=ex_mem.instruction,
                     ctrl=ctrl, alu_result=ex_mem.alu_result,
                     read_data=read_data, link_address=ex_mem.link_address,
                     rd=ex_mem.rd)

    def _stage_writeback(self, mem_wb: MEMWB) -> bool:
        """WB: write the result back. Returns True when the sentinel retires."""
        if not mem_wb.valid:
            return False
        if mem_wb.is_sentinel:
            return True
        if mem_wb.ctrl.op is not Op.NOP:
            self.instr_count += 1
        if mem_wb.writes_reg:
            self.rf.write(mem_wb.rd, mem_wb.writeback_value())
        return False

    # ── Flush controller ────────────────────────────────────────────────

    def _flush(self, latches: LatchSet):
        """Void the two instructions younger than a mispredicted branch."""
        latches.if_id = IFID()
        latches.id_ex = IDEX()
        # A sentinel fetched on the wrong path was just discarded.
        self.fetch_halted = False
        self.flush_count += 1

    # ── Main cycle ──────────────────────────────────────────────────────

    def step(self):
        """Execute one clock cycle."""
        if self.halted:
            return
        if self.config.pipelining:
            self._step_pipelined()
        else:
            self._step_sequential()

    def _step_pipelined(self):
        cur = self.latches
        if cur.empty and (self.fetch_halted or self.pc not in self.i_mem):
            self.halted = True
            return

        self.cycle_count += 1
        nxt = LatchSet()

        # Writeback commits before Decode reads the register file.
        retired_sentinel = self._stage_writeback(cur.mem_wb)
        nxt.mem_wb = self._stage_memory(cur.ex_mem)
        nxt.ex_mem, redirect = self._stage_execute(cur.id_ex, cur.ex_mem, cur.mem_wb)

        decoded = self._stage_decode(cur.if_id)
        hazards = HazardUnit.detect(decoded, cur.id_ex, cur.ex_mem,
                                    self.config.forwarding)
        next_pc = self.pc

        if hazards.stall and redirect is None:
            # Bubble into EX; IF/ID is not consumed and PC holds.
            nxt.if_id = cur.if_id
            if hazards.load_use:
                self.load_use_stalls += 1
            else:
                self.data_stalls += 1
            log.debug("Cycle %d: stall at PC 0x%08X (%r)",
                      self.cycle_count, cur.if_id.pc, hazards)
        else:
            nxt.id_ex = decoded
            nxt.if_id, next_pc = self._stage_fetch()

        if redirect is not None:
            # Flushing overrides stalling. This cycle's fetch came from the
            # wrong path and is voided too, so a mispredict costs two bubbles.
            self._flush(nxt)
            hazards = HazardSignals()
            next_pc = redirect

        self.latches = nxt
        self.pc = next_pc
        self.hazards = hazards

        if retired_sentinel or (nxt.empty and self.pc not in self.i_mem):
            self.halted = True

    def _step_sequential(self):
        """Pipelining disabled: one instruction through all five stages."""
        if self.fetch_halted or self.pc not in self.i_mem:
            self.halted = True
            return

        self.cycle_count += 1
        latches = LatchSet()
        latches.if_id, next_pc = self._stage_fetch()
        latches.id_ex = self._stage_decode(latches.if_id)
        latches.ex_mem, redirect = self._stage_execute(latches.id_ex,
                                                       EXMEM(), MEMWB())
        latches.mem_wb = self._stage_memory(latches.ex_mem)
        retired_sentinel = self._stage_writeback(latches.mem_wb)

        if redirect is not None:
            next_pc = redirect
        self.latches = latches
        self.pc = next_pc
        if retired_sentinel:
            self.halted = True

    def run(self, max_cycles: Optional[int] = None,
            on_cycle: Optional[Callable[["PipelinedCPU"], None]] = None) -> int:
        """
        Run until the sentinel retires or the pipeline drains with no
        instruction at PC. Returns the number of cycles executed.
        """
        limit = self.config.max_cycles if max_cycles is None else max_cycles
        start = self.cycle_count
        while not self.halted:
            if self.cycle_count - start >= limit:
                log.warning("Maximum cycle limit reached (%d). "
                            "Terminating simulation.", limit)
                break
            before = self.cycle_count
            self.step()
            if on_cycle is not None and self.cycle_count != before:
                on_cycle(self)
        return self.cycle_count - start

    # ── Introspection ───────────────────────────────────────────────────

    @property
    def registers(self) -> List[int]:
        return self.rf.snapshot()

    @property
    def stall_count(self) -> int:
        return self.load_use_stalls + self.data_stalls

    def snapshot(self) -> CycleSnapshot:
        return CycleSnapshot(self)

    def stats(self) -> dict:
        cpi = self.cycle_count / self.instr_count if self.instr_count else 0.0
        return {
            "cycles": self.cycle_count,
            "instructions": self.instr_count,
            "cpi": cpi,
            "stalls": self.stall_count,
            "load_use_stalls": self.load_use_stalls,
            "data_stalls": self.data_stalls,
            "flushes": self.flush_count,
            "predictions": self.predictor.predictions,
            "mispredictions": self.predictor.mispredictions,
            "accuracy": self.predictor.accuracy,
        }
