"""
Enumeration-based test generation for ArithVM.

This module provides exhaustive test generation by systematically enumerating
all possible programs within bounded model spaces. Unlike probabilistic fuzzing,
enumeration provides guaranteed coverage of the bounded model.
"""

import itertools
from typing import Iterator, List, Tuple

from arithvm.bytecode import JUMP_OPCODES, Instruction, Opcode, assemble, serialize_program
from arithvm.codec import encode_f64, encode_u32
from arithvm.vm import STACK_SIZE
from .expression import Expr, Const, Add, Sub, Mul, Div, Neg, compile_expr


# ============================================================
# Configuration
# ============================================================

# Interesting constants for boundary value analysis
BOUNDARY_CONSTANTS = [
    0.0,            # Zero divisor
    -0.0,           # Signed zero, still a zero divisor
    1.0,            # Identity
    -1.0,           # DCONST_M1 shortcut
    2.0,            # DCONST_2 shortcut
    12.54,          # Not exactly representable
    1e308,          # Overflows to inf when doubled
    5e-324,         # Smallest subnormal
    float('inf'),
    float('nan'),
]

# Minimal interesting constants for smaller test suites
MINIMAL_CONSTANTS = [0.0, 1.0, 2.0]

# Instructions that pop operands, with how many they need
CONSUMING_INSTRUCTIONS: List[Tuple[Opcode, int]] = [
    (Opcode.ADD, 2),
    (Opcode.SUB, 2),
    (Opcode.MUL, 2),
    (Opcode.DIV, 2),
    (Opcode.NEG, 1),
    (Opcode.PRINT, 1),
    (Opcode.ST1, 1),
    (Opcode.ST2, 1),
]

# Register values compared by the conditional jumps
BRANCH_VALUES = [-1.0, 0.0, 1.0, float('nan')]


# ============================================================
# Expression Enumeration
# ============================================================

def enumerate_expressions(depth: int, constants: List[float]) -> Iterator[Expr]:
    """
    Exhaustively enumerate all expressions up to given depth.

    Args:
        depth: Maximum expression tree depth (0 = constants only)
        constants: List of constant values to use

    Yields:
        All possible expressions within the depth bound

    Example:
        depth=0: [Const(0.0), Const(1.0), ...]
        depth=1: Add/Sub/Mul/Div of every pair of constants, Neg of each, then the constants
    """
    if depth == 0:
        for c in constants:
            yield Const(c)
    else:
        sub_exprs = list(enumerate_expressions(depth - 1, constants))

        # Binary operations: all ordered pairs of sub-expressions
        for left in sub_exprs:
            for right in sub_exprs:
                yield Add(left, right)
                yield Sub(left, right)
                yield Mul(left, right)
                yield Div(left, right)

        for operand in sub_exprs:
            yield Neg(operand)

        # Also include constants at this level
        for c in constants:
            yield Const(c)


def enumerate_expression_programs(max_depth: int,
                                  constants: List[float] = MINIMAL_CONSTANTS) -> Iterator[Tuple[Expr, bytes]]:
    """
    Enumerate all expression-based programs up to given depth.

    Yields:
        (expression, bytecode) pairs; the bytecode prints the expression's value
    """
    for depth in range(max_depth + 1):
        for expr in enumerate_expressions(depth, constants):
            yield expr, compile_expr(expr)


# ============================================================
# Boundary Value Tests
# ============================================================

def enumerate_division_tests() -> Iterator[bytes]:
    """
    Enumerate DIV over every pair of boundary constants.

    Covers zero and negative zero divisors (DivisionByZero) as well as
    inf and nan operands, which divide without error.
    """
    for a, b in itertools.product(BOUNDARY_CONSTANTS, repeat=2):
        yield assemble(
            (Opcode.DCONST, a),
            (Opcode.DCONST, b),
            Opcode.DIV,
            Opcode.PRINT,
            Opcode.HALT,
        )


def enumerate_stack_underflow_tests() -> Iterator[bytes]:
    """
    Enumerate test cases that should trigger stack underflow.

    Every consuming instruction is run with fewer values on the stack
    than it needs.

    Yields:
        Bytecode that should raise StackUnderflow
    """
    for opcode, needed in CONSUMING_INSTRUCTIONS:
        for available in range(needed):
            yield assemble(*([Opcode.DCONST_1] * available), opcode, Opcode.HALT)


def enumerate_stack_overflow_tests(capacity: int = STACK_SIZE) -> Iterator[bytes]:
    """Pushes one value more than capacity, once per push opcode."""
    for opcode in (Opcode.DCONST_0, Opcode.DCONST_1, Opcode.LD1, Opcode.LD2):
        yield assemble(*([opcode] * (capacity + 1)), Opcode.HALT)


def enumerate_branch_tests() -> Iterator[Tuple[Opcode, float, float, bytes]]:
    """
    Enumerate every conditional jump over pairs of register values.

    Each program loads r1 and r2, branches over a DCONST_0 PRINT pair to a
    DCONST_1 PRINT pair, so it prints 1.0 if the branch was taken and
    0.0 followed by 1.0 otherwise.

    Yields:
        (opcode, r1, r2, bytecode)
    """
    for opcode in sorted(JUMP_OPCODES):
        for r1, r2 in itertools.product(BRANCH_VALUES, repeat=2):
            prefix = [
                Instruction(Opcode.DCONST, r1), Instruction(Opcode.ST1),
                Instruction(Opcode.DCONST, r2), Instruction(Opcode.ST2),
            ]
            # DCONST is 9 bytes, ST1/ST2 1 byte, the jump 5, DCONST_0 and PRINT 1 each
            target = sum(i.size for i in prefix) + 5 + 2
            body = [
                Instruction(opcode, target),
                Instruction(Opcode.DCONST_0), Instruction(Opcode.PRINT),
                Instruction(Opcode.DCONST_1), Instruction(Opcode.PRINT),
                Instruction(Opcode.HALT),
            ]
            yield opcode, r1, r2, serialize_program(prefix + body)


def enumerate_truncation_tests() -> Iterator[bytes]:
    """
    Enumerate programs whose last immediate is cut short.

    Yields:
        Bytecode that should raise ProgramCounterOutOfRange
    """
    operand = encode_f64(12.54)
    for keep in range(len(operand)):
        yield bytes([Opcode.DCONST]) + operand[:keep]

    address = encode_u32(0)
    for opcode in sorted(JUMP_OPCODES):
        for keep in range(len(address)):
            yield bytes([opcode]) + address[:keep]

    # Running off the end without HALT
    yield b''
    yield assemble(Opcode.NOP)
    yield assemble(Opcode.DCONST_1, Opcode.PRINT)


# ============================================================
# Comprehensive Test Suites
# ============================================================

def generate_comprehensive_suite(max_expr_depth: int = 1) -> Iterator[bytes]:
    """
    Generate comprehensive exhaustive test suite with deduplication.

    Combines expression enumeration with targeted boundary tests, removing
    any duplicates to ensure each test is unique.

    Args:
        max_expr_depth: Maximum expression tree depth (1-2 recommended)

    Yields:
        Bytecode for comprehensive test suite (deduplicated)
    """
    seen = set()

    def unseen(programs: Iterator[bytes]) -> Iterator[bytes]:
        for bytecode in programs:
            hex_code = bytecode.hex()
            if hex_code not in seen:
                seen.add(hex_code)
                yield bytecode

    yield from unseen(bytecode for _, bytecode in enumerate_expression_programs(
        max_depth=max_expr_depth, constants=BOUNDARY_CONSTANTS))
    yield from unseen(enumerate_division_tests())
    yield from unseen(enumerate_stack_underflow_tests())
    yield from unseen(enumerate_stack_overflow_tests())
    yield from unseen(bytecode for *_, bytecode in enumerate_branch_tests())
    yield from unseen(enumerate_truncation_tests())
