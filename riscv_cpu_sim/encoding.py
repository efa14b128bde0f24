"""
RV32IM instruction encoders, used to build programs without an assembler
(built-in demo program, tests).
"""

from __future__ import annotations

from .isa import (OPC_AUIPC, OPC_BRANCH, OPC_JAL, OPC_JALR, OPC_LOAD, OPC_LUI,
                  OPC_OP, OPC_OP_IMM, OPC_STORE, SENTINEL)

# ============================================================================
# Format encoders
# ============================================================================

def encode_r_type(opcode, rd, funct3, rs1, rs2, funct7):
    """Encode R-type instruction: add, sub, and, or, xor, sll, srl, sra, slt, sltu, mul..."""
    return (funct7 << 25) | (rs2 << 20) | (rs1 << 15) | (funct3 << 12) | (rd << 7) | opcode

def encode_i_type(opcode, rd, funct3, rs1, imm):
    """Encode I-type instruction: addi, andi, ori, xori, slti, sltiu, loads, jalr"""
    imm = imm & 0xFFF  # 12-bit immediate
    return (imm << 20) | (rs1 << 15) | (funct3 << 12) | (rd << 7) | opcode

def encode_s_type(opcode, funct3, rs1, rs2, imm):
    """Encode S-type instruction: sb, sh, sw"""
    imm = imm & 0xFFF
    imm_11_5 = (imm >> 5) & 0x7F
    imm_4_0 = imm & 0x1F
    return (imm_11_5 << 25) | (rs2 << 20) | (rs1 << 15) | (funct3 << 12) | (imm_4_0 << 7) | opcode

def encode_b_type(opcode, funct3, rs1, rs2, imm):
    """Encode B-type instruction: beq, bne, blt, bge, bltu, bgeu"""
    imm = imm & 0x1FFF  # 13-bit immediate
    imm_12 = (imm >> 12) & 0x1
    imm_10_5 = (imm >> 5) & 0x3F
    imm_4_1 = (imm >> 1) & 0xF
    imm_11 = (imm >> 11) & 0x1
    return (imm_12 << 31) | (imm_10_5 << 25) | (rs2 << 20) | (rs1 << 15) | \
           (funct3 << 12) | (imm_4_1 << 8) | (imm_11 << 7) | opcode

def encode_u_type(opcode, rd, imm):
    """Encode U-type instruction: lui, auipc (imm is the upper 20 bits)"""
    imm = imm & 0xFFFFF
    return (imm << 12) | (rd << 7) | opcode

def encode_j_type(opcode, rd, imm):
    """Encode J-type instruction: jal"""
    imm = imm & 0x1FFFFF  # 21-bit immediate
    imm_20 = (imm >> 20) & 0x1
    imm_10_1 = (imm >> 1) & 0x3FF
    imm_11 = (imm >> 11) & 0x1
    imm_19_12 = (imm >> 12) & 0xFF
    return (imm_20 << 31) | (imm_10_1 << 21) | (imm_11 << 20) | \
           (imm_19_12 << 12) | (rd << 7) | opcode

# ============================================================================
# Instruction generators
# ============================================================================

# R-type
def ADD(rd, rs1, rs2):  return encode_r_type(OPC_OP, rd, 0x0, rs1, rs2, 0x00)
def SUB(rd, rs1, rs2):  return encode_r_type(OPC_OP, rd, 0x0, rs1, rs2, 0x20)
def SLL(rd, rs1, rs2):  return encode_r_type(OPC_OP, rd, 0x1, rs1, rs2, 0x00)
def SLT(rd, rs1, rs2):  return encode_r_type(OPC_OP, rd, 0x2, rs1, rs2, 0x00)
def SLTU(rd, rs1, rs2): return encode_r_type(OPC_OP, rd, 0x3, rs1, rs2, 0x00)
def XOR(rd, rs1, rs2):  return encode_r_type(OPC_OP, rd, 0x4, rs1, rs2, 0x00)
def SRL(rd, rs1, rs2):  return encode_r_type(OPC_OP, rd, 0x5, rs1, rs2, 0x00)
def SRA(rd, rs1, rs2):  return encode_r_type(OPC_OP, rd, 0x5, rs1, rs2, 0x20)
def OR(rd, rs1, rs2):   return encode_r_type(OPC_OP, rd, 0x6, rs1, rs2, 0x00)
def AND(rd, rs1, rs2):  return encode_r_type(OPC_OP, rd, 0x7, rs1, rs2, 0x00)

# M extension
def MUL(rd, rs1, rs2):    return encode_r_type(OPC_OP, rd, 0x0, rs1, rs2, 0x01)
def MULH(rd, rs1, rs2):   return encode_r_type(OPC_OP, rd, 0x1, rs1, rs2, 0x01)
def MULHSU(rd, rs1, rs2): return encode_r_type(OPC_OP, rd, 0x2, rs1, rs2, 0x01)
def MULHU(rd, rs1, rs2):  return encode_r_type(OPC_OP, rd, 0x3, rs1, rs2, 0x01)
def DIV(rd, rs1, rs2):    return encode_r_type(OPC_OP, rd, 0x4, rs1, rs2, 0x01)
def DIVU(rd, rs1, rs2):   return encode_r_type(OPC_OP, rd, 0x5, rs1, rs2, 0x01)
def REM(rd, rs1, rs2):    return encode_r_type(OPC_OP, rd, 0x6, rs1, rs2, 0x01)
def REMU(rd, rs1, rs2):   return encode_r_type(OPC_OP, rd, 0x7, rs1, rs2, 0x01)

# I-type arithmetic
def ADDI(rd, rs1, imm):  return encode_i_type(OPC_OP_IMM, rd, 0x0, rs1, imm)
def SLTI(rd, rs1, imm):  return encode_i_type(OPC_OP_IMM, rd, 0x2, rs1, imm)
def SLTIU(rd, rs1, imm): return encode_i_type(OPC_OP_IMM, rd, 0x3, rs1, imm)
def XORI(rd, rs1, imm):  return encode_i_type(OPC_OP_IMM, rd, 0x4, rs1, imm)
def ORI(rd, rs1, imm):   return encode_i_type(OPC_OP_IMM, rd, 0x6, rs1, imm)
def ANDI(rd, rs1, imm):  return encode_i_type(OPC_OP_IMM, rd, 0x7, rs1, imm)

def SLLI(rd, rs1, shamt):
    return encode_i_type(OPC_OP_IMM, rd, 0x1, rs1, shamt & 0x1F)

def SRLI(rd, rs1, shamt):
    return encode_i_type(OPC_OP_IMM, rd, 0x5, rs1, shamt & 0x1F)

def SRAI(rd, rs1, shamt):
    return encode_i_type(OPC_OP_IMM, rd, 0x5, rs1, 0x400 | (shamt & 0x1F))

# Loads / stores
def LB(rd, rs1, imm): return encode_i_type(OPC_LOAD, rd, 0x0, rs1, imm)
def LH(rd, rs1, imm): return encode_i_type(OPC_LOAD, rd, 0x1, rs1, imm)
def LW(rd, rs1, imm): return encode_i_type(OPC_LOAD, rd, 0x2, rs1, imm)

def SB(rs2, rs1, imm): return encode_s_type(OPC_STORE, 0x0, rs1, rs2, imm)
def SH(rs2, rs1, imm): return encode_s_type(OPC_STORE, 0x1, rs1, rs2, imm)
def SW(rs2, rs1, imm): return encode_s_type(OPC_STORE, 0x2, rs1, rs2, imm)

# Branches (imm is the byte offset from the branch itself)
def BEQ(rs1, rs2, imm):  return encode_b_type(OPC_BRANCH, 0x0, rs1, rs2, imm)
def BNE(rs1, rs2, imm):  return encode_b_type(OPC_BRANCH, 0x1, rs1, rs2, imm)
def BLT(rs1, rs2, imm):  return encode_b_type(OPC_BRANCH, 0x4, rs1, rs2, imm)
def BGE(rs1, rs2, imm):  return encode_b_type(OPC_BRANCH, 0x5, rs1, rs2, imm)
def BLTU(rs1, rs2, imm): return encode_b_type(OPC_BRANCH, 0x6, rs1, rs2, imm)
def BGEU(rs1, rs2, imm): return encode_b_type(OPC_BRANCH, 0x7, rs1, rs2, imm)

# Jumps and upper immediates
def JAL(rd, imm):       return encode_j_type(OPC_JAL, rd, imm)
def JALR(rd, rs1, imm): return encode_i_type(OPC_JALR, rd, 0x0, rs1, imm)
def LUI(rd, imm):       return encode_u_type(OPC_LUI, rd, imm)
def AUIPC(rd, imm):     return encode_u_type(OPC_AUIPC, rd, imm)

def NOP():  return ADDI(0, 0, 0)
def HALT(): return SENTINEL
