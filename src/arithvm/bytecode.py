"""Opcode table, instruction ADT and bytecode (de)serialization.

Each instruction is one opcode byte optionally followed by a fixed-size
big-endian immediate:

    DCONST:                      [0x0F] [value: 8 bytes IEEE-754]   (9 bytes)
    JEQ, JNE, JLT, JLE, JGT, JGE: [op]  [address: 4 bytes unsigned] (5 bytes)
    everything else:             [op]                               (1 byte)

There is no header; a program is executed from offset 0.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, List, Optional, Tuple, Union

from .codec import (
    F64_SIZE, U32_SIZE,
    decode_f64, decode_u32, encode_f64, encode_u32,
)

# =============================================================================
# Opcodes
# =============================================================================


class Opcode(IntEnum):
    HALT      = 0x00
    DCONST_M1 = 0x0A
    DCONST_0  = 0x0B
    DCONST_1  = 0x0C
    DCONST_2  = 0x0D
    DCONST    = 0x0F
    JEQ       = 0x10
    JNE       = 0x11
    JLT       = 0x12
    JLE       = 0x13
    JGT       = 0x14
    JGE       = 0x15
    ADD       = 0x60
    SUB       = 0x61
    MUL       = 0x62
    DIV       = 0x64
    NEG       = 0x70
    NOP       = 0xF0
    PRINT     = 0xF2
    ST1       = 0xF4
    LD1       = 0xF5
    ST2       = 0xF6
    LD2       = 0xF7


JUMP_OPCODES = frozenset({
    Opcode.JEQ, Opcode.JNE, Opcode.JLT, Opcode.JLE, Opcode.JGT, Opcode.JGE,
})

# Shortcut constants pushed by the operand-less DCONST_* opcodes
SMALL_CONSTANTS: Dict[Opcode, float] = {
    Opcode.DCONST_M1: -1.0,
    Opcode.DCONST_0: 0.0,
    Opcode.DCONST_1: 1.0,
    Opcode.DCONST_2: 2.0,
}


def operand_size(opcode: Opcode) -> int:
    """Number of immediate bytes that follow the opcode byte."""
    if opcode == Opcode.DCONST:
        return F64_SIZE
    if opcode in JUMP_OPCODES:
        return U32_SIZE
    return 0


_OPCODE_BYTES = frozenset(op.value for op in Opcode)


def is_valid_opcode(byte: int) -> bool:
    return byte in _OPCODE_BYTES


# =============================================================================
# Instruction ADT
# =============================================================================

Operand = Union[int, float, None]


@dataclass(frozen=True)
class Instruction:
    """One decoded instruction: an opcode plus its immediate, if it has one.

    DCONST carries a float, jumps carry an absolute address, all other
    opcodes carry None.
    """
    opcode: Opcode
    operand: Operand = None

    def __post_init__(self):
        object.__setattr__(self, 'opcode', Opcode(self.opcode))
        if self.opcode == Opcode.DCONST:
            if isinstance(self.operand, bool) or not isinstance(self.operand, (int, float)):
                raise TypeError(f"DCONST operand must be a number, got {self.operand!r}")
            object.__setattr__(self, 'operand', float(self.operand))
        elif self.opcode in JUMP_OPCODES:
            if isinstance(self.operand, bool) or not isinstance(self.operand, int):
                raise TypeError(f"{self.opcode.name} operand must be an int address, got {self.operand!r}")
            if not (0 <= self.operand <= 0xFFFFFFFF):
                raise ValueError(f"{self.opcode.name} address must be 0-0xFFFFFFFF, got {self.operand}")
        elif self.operand is not None:
            raise ValueError(f"{self.opcode.name} takes no operand, got {self.operand!r}")

    @property
    def size(self) -> int:
        return 1 + operand_size(self.opcode)

    def __str__(self) -> str:
        if self.operand is None:
            return self.opcode.name
        if self.opcode == Opcode.DCONST:
            return f"{self.opcode.name} {self.operand!r}"
        return f"{self.opcode.name} {self.operand}"


class BytecodeError(Exception):
    """Raised when bytecode cannot be deserialized (unknown opcode or truncated operand)."""
    pass


# =============================================================================
# Serialization (Instructions -> Bytes)
# =============================================================================

def serialize_instruction(instr: Instruction) -> bytes:
    """Serialize a single instruction to bytes."""
    opcode_byte = bytes([instr.opcode])
    if instr.opcode == Opcode.DCONST:
        return opcode_byte + encode_f64(instr.operand)
    if instr.opcode in JUMP_OPCODES:
        return opcode_byte + encode_u32(instr.operand)
    return opcode_byte


def serialize_program(instructions: List[Instruction]) -> bytes:
    """Serialize a list of instructions to bytecode."""
    return b''.join(serialize_instruction(instr) for instr in instructions)


def assemble(*items: Union[Opcode, Tuple[Opcode, Operand], Instruction]) -> bytes:
    """
    Build bytecode from a compact list of opcodes.

    Bare opcodes stand for operand-less instructions, (opcode, operand)
    pairs for instructions with an immediate.

    Example:
        assemble(Opcode.DCONST_2, Opcode.DCONST_1, Opcode.SUB, Opcode.PRINT, Opcode.HALT)
        assemble((Opcode.DCONST, 12.54), Opcode.PRINT, Opcode.HALT)
    """
    instructions = []
    for item in items:
        if isinstance(item, Instruction):
            instructions.append(item)
        elif isinstance(item, tuple):
            instructions.append(Instruction(*item))
        else:
            instructions.append(Instruction(item))
    return serialize_program(instructions)


# =============================================================================
# Deserialization (Bytes -> Instructions)
# =============================================================================

def deserialize_instruction(data: bytes, offset: int = 0) -> Tuple[Instruction, int]:
    """
    Deserialize a single instruction from bytes.

    Args:
        data: Bytecode buffer
        offset: Starting position in buffer

    Returns:
        Tuple of (instruction, new_offset)

    Raises:
        BytecodeError: If the opcode is unknown or the operand is truncated
    """
    if offset >= len(data):
        raise BytecodeError(
            f"Cannot deserialize from empty or truncated bytecode (offset {offset}, length {len(data)})"
        )

    byte = data[offset]
    if not is_valid_opcode(byte):
        raise BytecodeError(f"Unknown opcode 0x{byte:02X} at offset {offset}")

    opcode = Opcode(byte)
    size = operand_size(opcode)
    end = offset + 1 + size
    if end > len(data):
        raise BytecodeError(
            f"Truncated {opcode.name} at offset {offset}: need {1 + size} bytes, have {len(data) - offset}"
        )

    operand_bytes = data[offset + 1:end]
    if opcode == Opcode.DCONST:
        return Instruction(opcode, decode_f64(operand_bytes)), end
    if opcode in JUMP_OPCODES:
        return Instruction(opcode, decode_u32(operand_bytes)), end
    return Instruction(opcode), end


def deserialize_program(data: bytes) -> List[Instruction]:
    """
    Deserialize bytecode into a list of instructions.

    Decoding is linear: bytes reachable only through a jump into the middle
    of an immediate are not recognised.

    Raises:
        BytecodeError: If bytecode is invalid
    """
    instructions = []
    offset = 0

    while offset < len(data):
        instr, offset = deserialize_instruction(data, offset)
        instructions.append(instr)

    return instructions


def disassemble(data: bytes) -> List[Tuple[int, Optional[Instruction]]]:
    """
    Produce an (offset, instruction) listing of a buffer.

    Unlike deserialize_program this never raises: an undecodable byte is
    listed as (offset, None) and decoding resumes at the next byte.
    """
    listing: List[Tuple[int, Optional[Instruction]]] = []
    offset = 0
    while offset < len(data):
        try:
            instr, next_offset = deserialize_instruction(data, offset)
        except BytecodeError:
            listing.append((offset, None))
            offset += 1
            continue
        listing.append((offset, instr))
        offset = next_offset
    return listing


def format_listing(data: bytes) -> str:
    """Human-readable disassembly, one instruction per line."""
    lines = []
    for offset, instr in disassemble(data):
        if instr is None:
            lines.append(f"{offset:04d}  .byte 0x{data[offset]:02X}")
        else:
            lines.append(f"{offset:04d}  {instr}")
    return "\n".join(lines)
