"""CHIP-8 instruction decoding."""

from enum import IntEnum

import jax.numpy as jnp
from chex import dataclass


@dataclass(frozen=True)
class DecodedInstruction:
    """Decoded CHIP-8 instruction with extracted operands."""
    raw: int
    opcode: int  # First nibble
    x: int       # Second nibble (VX register)
    y: int       # Third nibble (VY register)
    n: int       # Fourth nibble (4-bit immediate)
    nn: int      # Last byte (8-bit immediate)
    nnn: int     # Last 12 bits (12-bit address)


class Instruction(IntEnum):
    """Closed set of CHIP-8 instructions, in dispatch table order."""
    CLS = 0
    RET = 1
    SYS = 2
    JP = 3
    CALL = 4
    SE_VX_BYTE = 5
    SNE_VX_BYTE = 6
    SE_VX_VY = 7
    LD_VX_BYTE = 8
    ADD_VX_BYTE = 9
    LD_VX_VY = 10
    OR = 11
    AND = 12
    XOR = 13
    ADD_VX_VY = 14
    SUB = 15
    SHR = 16
    SUBN = 17
    SHL = 18
    SNE_VX_VY = 19
    LD_I_ADDR = 20
    JP_V0 = 21
    RND = 22
    DRW = 23
    SKP = 24
    SKNP = 25
    LD_VX_DT = 26
    LD_VX_K = 27
    LD_DT_VX = 28
    LD_ST_VX = 29
    ADD_I_VX = 30
    LD_F_VX = 31
    LD_B_VX = 32
    LD_MEM_VX = 33
    LD_VX_MEM = 34
    ILLEGAL = 35


def decode(instruction: int) -> DecodedInstruction:
    """Decode 16-bit instruction into components."""
    return DecodedInstruction(
        raw=instruction,
        opcode=(instruction & 0xF000) >> 12,
        x=(instruction & 0x0F00) >> 8,
        y=(instruction & 0x00F0) >> 4,
        n=instruction & 0x000F,
        nn=instruction & 0x00FF,
        nnn=instruction & 0x0FFF
    )


def classify(instruction: DecodedInstruction) -> jnp.ndarray:
    """Map a decoded instruction to its ``Instruction`` index.

    Works under ``jax.jit``: every pattern is evaluated and the first match
    wins, with ``ILLEGAL`` as the catch-all.
    """
    raw = jnp.asarray(instruction.raw)
    op = jnp.asarray(instruction.opcode)
    n = jnp.asarray(instruction.n)
    nn = jnp.asarray(instruction.nn)

    alu = op == 0x8
    misc = op == 0xF
    matches = [
        raw == 0x00E0,
        raw == 0x00EE,
        op == 0x0,
        op == 0x1,
        op == 0x2,
        op == 0x3,
        op == 0x4,
        (op == 0x5) & (n == 0x0),
        op == 0x6,
        op == 0x7,
        alu & (n == 0x0),
        alu & (n == 0x1),
        alu & (n == 0x2),
        alu & (n == 0x3),
        alu & (n == 0x4),
        alu & (n == 0x5),
        alu & (n == 0x6),
        alu & (n == 0x7),
        alu & (n == 0xE),
        (op == 0x9) & (n == 0x0),
        op == 0xA,
        op == 0xB,
        op == 0xC,
        op == 0xD,
        (op == 0xE) & (nn == 0x9E),
        (op == 0xE) & (nn == 0xA1),
        misc & (nn == 0x07),
        misc & (nn == 0x0A),
        misc & (nn == 0x15),
        misc & (nn == 0x18),
        misc & (nn == 0x1E),
        misc & (nn == 0x29),
        misc & (nn == 0x33),
        misc & (nn == 0x55),
        misc & (nn == 0x65),
        jnp.asarray(True),
    ]
    return jnp.argmax(jnp.stack(matches))


def identify(instruction: int) -> Instruction:
    """Host-side lookup of the instruction a raw word encodes."""
    return Instruction(int(classify(decode(int(instruction)))))


_MNEMONICS = {
    Instruction.CLS: "CLS",
    Instruction.RET: "RET",
    Instruction.SYS: "SYS 0x{nnn:03X}",
    Instruction.JP: "JP 0x{nnn:03X}",
    Instruction.CALL: "CALL 0x{nnn:03X}",
    Instruction.SE_VX_BYTE: "SE V{x:X}, 0x{nn:02X}",
    Instruction.SNE_VX_BYTE: "SNE V{x:X}, 0x{nn:02X}",
    Instruction.SE_VX_VY: "SE V{x:X}, V{y:X}",
    Instruction.LD_VX_BYTE: "LD V{x:X}, 0x{nn:02X}",
    Instruction.ADD_VX_BYTE: "ADD V{x:X}, 0x{nn:02X}",
    Instruction.LD_VX_VY: "LD V{x:X}, V{y:X}",
    Instruction.OR: "OR V{x:X}, V{y:X}",
    Instruction.AND: "AND V{x:X}, V{y:X}",
    Instruction.XOR: "XOR V{x:X}, V{y:X}",
    Instruction.ADD_VX_VY: "ADD V{x:X}, V{y:X}",
    Instruction.SUB: "SUB V{x:X}, V{y:X}",
    Instruction.SHR: "SHR V{x:X}",
    Instruction.SUBN: "SUBN V{x:X}, V{y:X}",
    Instruction.SHL: "SHL V{x:X}",
    Instruction.SNE_VX_VY: "SNE V{x:X}, V{y:X}",
    Instruction.LD_I_ADDR: "LD I, 0x{nnn:03X}",
    Instruction.JP_V0: "JP V0, 0x{nnn:03X}",
    Instruction.RND: "RND V{x:X}, 0x{nn:02X}",
    Instruction.DRW: "DRW V{x:X}, V{y:X}, {n}",
    Instruction.SKP: "SKP V{x:X}",
    Instruction.SKNP: "SKNP V{x:X}",
    Instruction.LD_VX_DT: "LD V{x:X}, DT",
    Instruction.LD_VX_K: "LD V{x:X}, K",
    Instruction.LD_DT_VX: "LD DT, V{x:X}",
    Instruction.LD_ST_VX: "LD ST, V{x:X}",
    Instruction.ADD_I_VX: "ADD I, V{x:X}",
    Instruction.LD_F_VX: "LD F, V{x:X}",
    Instruction.LD_B_VX: "LD B, V{x:X}",
    Instruction.LD_MEM_VX: "LD [I], V{x:X}",
    Instruction.LD_VX_MEM: "LD V{x:X}, [I]",
    Instruction.ILLEGAL: "DW 0x{raw:04X}",
}


def disassemble(instruction: int) -> str:
    """Render a raw instruction word as its conventional mnemonic."""
    instruction = int(instruction) & 0xFFFF
    fields = decode(instruction)
    return _MNEMONICS[identify(instruction)].format(
        raw=fields.raw, x=fields.x, y=fields.y, n=fields.n, nn=fields.nn, nnn=fields.nnn
    )
