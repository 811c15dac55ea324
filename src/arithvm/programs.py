"""Hand-encoded sample programs.

These are raw byte fixtures, written out opcode by opcode with their
immediates spelled in wire order, rather than built with the serializer.
"""

from typing import Dict

from .bytecode import Opcode as Op

# Push 2, push 1, subtract, print (1.000000)
SIMPLE = bytes([
    Op.DCONST_2, Op.DCONST_1,
    Op.SUB,
    Op.PRINT,
    Op.HALT,
])

# Push the double 12.54 and print it (12.540000)
README = bytes([
    Op.DCONST,
    0x40, 0x29, 0x14, 0x7A, 0xE1, 0x47, 0xAE, 0x14,
    Op.PRINT,
    Op.HALT,
])

# Offset of the loop head in FIBONACCI
FIBONACCI_LOOP = 6

# Prints the Fibonacci sequence, stopping once the larger of the last two
# values exceeds 100.
FIBONACCI = bytes([
    # 0 and 1 start on the stack, each printed once
    Op.DCONST_0,
    Op.DCONST_0,
    Op.PRINT,
    Op.DCONST_1,
    Op.DCONST_1,
    Op.PRINT,
    # loop head (offset 6): r2 = newer value, r1 = older value
    Op.ST2,
    Op.ST1,
    Op.LD1,
    Op.LD2,
    # r1 = r1 + r2, print it (LD1 twice since PRINT consumes one)
    Op.ADD,
    Op.ST1,
    Op.LD1,
    Op.LD1,
    Op.PRINT,
    # r2 = r1 + r2, print it
    Op.LD2,
    Op.ADD,
    Op.ST2,
    Op.LD2,
    Op.PRINT,
    # leave both values on the stack for the next round
    Op.LD1,
    Op.LD2,
    # r1 = 100.0, loop while 100 > r2
    Op.DCONST,
    0x40, 0x59, 0, 0, 0, 0, 0, 0,
    Op.ST1,
    Op.JGT,
    0, 0, 0, FIBONACCI_LOOP,
    Op.HALT,
])

PROGRAMS: Dict[str, bytes] = {
    "simple": SIMPLE,
    "readme": README,
    "fibonacci": FIBONACCI,
}
