"""Expression tree ADT: constants, sums, differences, products, quotients and negation."""
from __future__ import annotations

import math
from dataclasses import dataclass
from random import Random
from typing import Callable, List, Union

from arithvm.bytecode import Instruction, Opcode, SMALL_CONSTANTS, serialize_program

# Constants with a dedicated push opcode
_SHORTCUTS = {value: opcode for opcode, value in SMALL_CONSTANTS.items()}

DEFAULT_CONSTANTS = [-1.0, 0.0, 0.5, 1.0, 2.0, 3.0, 10.0, 12.54, 100.0, 1e308]


def _default_const_generator(rng: Random) -> float:
    """Default constant generator: one of a handful of interesting doubles."""
    return rng.choice(DEFAULT_CONSTANTS)


@dataclass(frozen=True)
class Const:
    """A double constant."""
    value: float

    def __post_init__(self):
        if isinstance(self.value, bool) or not isinstance(self.value, (int, float)):
            raise TypeError(f"Const value must be a number, got {type(self.value)}")
        object.__setattr__(self, 'value', float(self.value))


@dataclass(frozen=True)
class Add:
    left: Expr
    right: Expr


@dataclass(frozen=True)
class Sub:
    """left - right"""
    left: Expr
    right: Expr


@dataclass(frozen=True)
class Mul:
    left: Expr
    right: Expr


@dataclass(frozen=True)
class Div:
    """left / right; a zero divisor is an error."""
    left: Expr
    right: Expr


@dataclass(frozen=True)
class Neg:
    operand: Expr


Expr = Union[Const, Add, Sub, Mul, Div, Neg]


# =============================================================================
# Evaluation (the oracle)
# =============================================================================

def evaluate(expr: Expr) -> float:
    """
    Evaluate an expression with IEEE-754 double semantics.

    Raises:
        ZeroDivisionError: Wherever the VM would raise DivisionByZero
    """
    match expr:
        case Const(value=val):
            return val
        case Add(left=left, right=right):
            return evaluate(left) + evaluate(right)
        case Sub(left=left, right=right):
            return evaluate(left) - evaluate(right)
        case Mul(left=left, right=right):
            return evaluate(left) * evaluate(right)
        case Div(left=left, right=right):
            a = evaluate(left)
            b = evaluate(right)
            if b == 0:
                raise ZeroDivisionError("division by zero")
            return a / b
        case Neg(operand=operand):
            return -evaluate(operand)
        case _:
            raise ValueError(f"Unknown expression type: {expr}")


# =============================================================================
# Compilation (Expr -> ArithVM Bytecode)
# =============================================================================

def _compile_const(value: float) -> Instruction:
    opcode = _SHORTCUTS.get(value)
    # -0.0 == 0.0, so negative zero would otherwise lose its sign
    if opcode is not None and math.copysign(1.0, value) == math.copysign(1.0, float(SMALL_CONSTANTS[opcode])):
        return Instruction(opcode)
    return Instruction(Opcode.DCONST, value)


def compile_expr_to_instructions(expr: Expr) -> List[Instruction]:
    """
    Compile an expression tree to a list of ArithVM instructions.

    Uses post-order traversal: compile left operand, compile right operand,
    then emit the operation. Constants with a shortcut opcode use it.

    Examples:
        Const(12.54)                -> [DCONST 12.54]
        Sub(Const(2), Const(1))     -> [DCONST_2, DCONST_1, SUB]
        Neg(Add(Const(3), Const(1))) -> [DCONST 3.0, DCONST_1, ADD, NEG]
    """
    match expr:
        case Const(value=val):
            return [_compile_const(val)]
        case Add(left=left, right=right):
            return compile_expr_to_instructions(left) + compile_expr_to_instructions(right) + [Instruction(Opcode.ADD)]
        case Sub(left=left, right=right):
            return compile_expr_to_instructions(left) + compile_expr_to_instructions(right) + [Instruction(Opcode.SUB)]
        case Mul(left=left, right=right):
            return compile_expr_to_instructions(left) + compile_expr_to_instructions(right) + [Instruction(Opcode.MUL)]
        case Div(left=left, right=right):
            return compile_expr_to_instructions(left) + compile_expr_to_instructions(right) + [Instruction(Opcode.DIV)]
        case Neg(operand=operand):
            return compile_expr_to_instructions(operand) + [Instruction(Opcode.NEG)]
        case _:
            raise ValueError(f"Unknown expression type: {expr}")


def compile_expr(expr: Expr) -> bytes:
    """Compile an expression tree to a program that prints its value and halts."""
    instructions = compile_expr_to_instructions(expr)
    instructions += [Instruction(Opcode.PRINT), Instruction(Opcode.HALT)]
    return serialize_program(instructions)


def expr_depth(expr: Expr) -> int:
    match expr:
        case Const():
            return 0
        case Neg(operand=operand):
            return 1 + expr_depth(operand)
        case Add(left=left, right=right) | Sub(left=left, right=right) \
                | Mul(left=left, right=right) | Div(left=left, right=right):
            return 1 + max(expr_depth(left), expr_depth(right))
        case _:
            raise ValueError(f"Unknown expression type: {expr}")


# =============================================================================
# Random Expression Generation
# =============================================================================


def random_expr(rng: Random, max_depth: int = 3,
                const_generator: Callable[[Random], float] = _default_const_generator) -> Expr:
    """
    Generate a random expression tree.

    At each level, randomly chooses between:
    - Const (35% probability)
    - Add, Sub, Mul (15% each)
    - Div (12% probability)
    - Neg (8% probability)

    When max_depth reaches 0, only generates Const to ensure termination.

    Args:
        rng: Random number generator (use Random(seed) for reproducibility)
        max_depth: Maximum depth of the expression tree
        const_generator: Callable that generates constant values

    Returns:
        A randomly generated expression
    """
    if max_depth <= 0:
        return Const(const_generator(rng))

    choice = rng.random()

    if choice < 0.35:
        return Const(const_generator(rng))
    elif choice < 0.80:
        node = Add if choice < 0.50 else Sub if choice < 0.65 else Mul
        return node(
            random_expr(rng, max_depth - 1, const_generator),
            random_expr(rng, max_depth - 1, const_generator)
        )
    elif choice < 0.92:
        return Div(
            random_expr(rng, max_depth - 1, const_generator),
            random_expr(rng, max_depth - 1, const_generator)
        )
    else:
        return Neg(random_expr(rng, max_depth - 1, const_generator))
