"""
RV32IM CPU Simulator
============================================================
A pure-Python, cycle-accurate simulation of a 32-bit in-order RISC-V
processor with a 5-stage pipeline:

  - Instruction decode + control unit (RV32I base + M extension)
  - Load-use and RAW hazard detection
  - EX/MEM and MEM/WB data forwarding
  - 1-bit branch prediction with a branch target buffer
  - Misprediction flush and recovery
"""

from .cpu import CycleSnapshot, PipelinedCPU, SimConfig
from .isa import SENTINEL, MemWidth, Op, WritebackSource
from .loader import ProgramImage, load_machine_code_file, parse_machine_code
from .predictor import BranchPredictor, MispredictKind

__all__ = [
    "BranchPredictor",
    "CycleSnapshot",
    "MemWidth",
    "MispredictKind",
    "Op",
    "PipelinedCPU",
    "ProgramImage",
    "SENTINEL",
    "SimConfig",
    "WritebackSource",
    "load_machine_code_file",
    "parse_machine_code",
]
