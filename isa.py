"""ISA: TD4 instruction encodings and helpers."""

from __future__ import annotations

from collections.abc import Iterable
from enum import IntEnum


class OpCode(IntEnum):
    """Keeps opcodes from all operations (upper nibble of a word)."""

    ADD_A = 0x0  # A += imm
    MOV_A_B = 0x1  # A = B
    IN_A = 0x2  # A = imm (input port stand-in)
    MOV_A = 0x3  # A = imm
    MOV_B_A = 0x4  # B = A
    ADD_B = 0x5  # B += imm
    IN_B = 0x6  # B = imm (input port stand-in)
    MOV_B = 0x7  # B = imm

    UNDEFINED_8 = 0x8

    OUT_B = 0x9  # OUT = B

    UNDEFINED_A = 0xA

    OUT = 0xB  # OUT = imm

    UNDEFINED_C = 0xC
    UNDEFINED_D = 0xD

    JNC = 0xE  # PC = imm if C == 0
    JMP = 0xF  # PC = imm


UNDEFINED_OPCODES = frozenset(
    {OpCode.UNDEFINED_8, OpCode.UNDEFINED_A, OpCode.UNDEFINED_C, OpCode.UNDEFINED_D},
)

# Instruction word: 8 bits, opcode in bits [7:4], immediate in bits [3:0].
WORD_MASK = 0xFF
NIBBLE_MASK = 0xF
MEMORY_WORDS = 16


def encode_instr(opcode: OpCode | int, imm: int = 0) -> int:
    """Encode opcode and immediate into one 8-bit word."""
    return ((int(opcode) & NIBBLE_MASK) << 4) | (int(imm) & NIBBLE_MASK)


def decode_instr(word: int) -> tuple[OpCode, int]:
    """Decode an 8-bit word.

    Returns (OpCode, imm). Every nibble maps to an OpCode member, so this
    never fails; unrecognized opcodes come back as UNDEFINED_* members.
    """
    w = int(word) & WORD_MASK
    return OpCode((w >> 4) & NIBBLE_MASK), w & NIBBLE_MASK


_TEMPLATES: dict[OpCode, str] = {
    OpCode.ADD_A: "ADD A, {imm}",
    OpCode.MOV_A_B: "MOV A, B",
    OpCode.IN_A: "IN A",
    OpCode.MOV_A: "MOV A, {imm}",
    OpCode.MOV_B_A: "MOV B, A",
    OpCode.ADD_B: "ADD B, {imm}",
    OpCode.IN_B: "IN B",
    OpCode.MOV_B: "MOV B, {imm}",
    OpCode.OUT_B: "OUT B",
    OpCode.OUT: "OUT {imm}",
    OpCode.JNC: "JNC {imm}",
    OpCode.JMP: "JMP {imm}",
}


def mnemonic(opcode: OpCode, imm: int) -> str:
    """Get operation mnemonic."""
    template = _TEMPLATES.get(opcode)
    if template is None:
        return "UNDEFINED"
    return template.format(imm=imm)


def to_bin4(value: int) -> str:
    """Render a 4-bit value as a zero-padded binary string, MSB first."""
    return format(int(value) & NIBBLE_MASK, "04b")


def to_bin8(value: int) -> str:
    """Render an 8-bit value as a zero-padded binary string, MSB first."""
    return format(int(value) & WORD_MASK, "08b")


def from_bin(text: str) -> int:
    """Convert a binary string (e.g. "1010") to an int."""
    return int(text, 2)


def disassemble(program: Iterable[int]) -> str:
    """Produce a listing: one `addr - bits - mnemonic` line per word."""
    lines: list[str] = []
    for addr, word in enumerate(program):
        opcode, imm = decode_instr(word)
        lines.append(f"{addr:X} - {to_bin8(word)} - {mnemonic(opcode, imm)}")
    return "\n".join(lines)
