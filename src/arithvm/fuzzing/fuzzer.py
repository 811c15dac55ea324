"""
Fuzzer for ArithVM - checks robustness, determinism and arithmetic.

Generates bytecode with one of several strategies and runs every case
through the VM, checking that:
- the VM only ever fails with an ArithVMException (anything else is a crash)
- running the same bytecode twice gives an identical outcome
- programs compiled from expression trees print exactly the value the
  expression evaluates to in Python, or both fail on division by zero
"""

from dataclasses import dataclass
from enum import Enum
from random import Random
from typing import Callable, List, Optional, Tuple

from arithvm.bytecode import JUMP_OPCODES, Opcode, format_listing, is_valid_opcode
from arithvm.codec import encode_f64, encode_u32
from arithvm.vm import (
    DivisionByZero, Failed, Halted,
    execute_bytecode,
)
from .expression import Expr, evaluate, compile_expr, random_expr


# =============================================================================
# Configuration Constants
# =============================================================================

# Structure-aware generation probabilities
PROB_CONST = 0.35
PROB_ARITHMETIC = 0.25
PROB_REGISTER = 0.15
PROB_JUMP = 0.08
PROB_PRINT = 0.10
PROB_NOP = 0.04
PROB_INVALID_OPCODE = 0.03

PROB_TRUNCATED_OPERAND = 0.05
PROB_SHORTCUT_CONST = 0.5
PROB_TRAILING_HALT = 0.9

# Mixed strategy probabilities (equal weight)
PROB_RANDOM_STRATEGY = 0.25
PROB_STRUCTURED_STRATEGY = 0.25
PROB_EXPRESSION_DEFAULT = 0.25
PROB_EXPRESSION_WIDE = 0.25

DEFAULT_MAX_STEPS = 10_000

INTERESTING_DOUBLES = [
    0.0, -0.0, 1.0, -1.0, 0.5, 2.0, 12.54, 100.0,
    1e308, -1e308, 5e-324, float('inf'), float('-inf'), float('nan'),
]

_ARITHMETIC = [Opcode.ADD, Opcode.SUB, Opcode.MUL, Opcode.DIV, Opcode.NEG]
_REGISTER = [Opcode.ST1, Opcode.LD1, Opcode.ST2, Opcode.LD2]
_SHORTCUTS = [Opcode.DCONST_M1, Opcode.DCONST_0, Opcode.DCONST_1, Opcode.DCONST_2]
_INVALID_BYTES = [b for b in range(0x100) if not is_valid_opcode(b)]


@dataclass
class GeneratorConfig:
    """Configuration for bytecode generators."""
    max_length: int = 20              # For random generator
    max_instructions: int = 16        # For structured generator
    max_depth: int = 3                # For expression generator


DEFAULT_CONFIG = GeneratorConfig()


@dataclass(frozen=True)
class FuzzCase:
    """A generated program, with the expression it was compiled from if any."""
    bytecode: bytes
    expr: Optional[Expr] = None


# =============================================================================
# Instruction Selection
# =============================================================================

class InstructionChoice(Enum):
    """Enum for instruction types in structure-aware generation."""
    CONST = "const"
    ARITHMETIC = "arithmetic"
    REGISTER = "register"
    JUMP = "jump"
    PRINT = "print"
    NOP = "nop"
    INVALID = "invalid"


def choose_instruction(rng: Random) -> InstructionChoice:
    """Choose instruction type based on configured probabilities."""
    weights = [
        (InstructionChoice.CONST, int(PROB_CONST * 100)),
        (InstructionChoice.ARITHMETIC, int(PROB_ARITHMETIC * 100)),
        (InstructionChoice.REGISTER, int(PROB_REGISTER * 100)),
        (InstructionChoice.JUMP, int(PROB_JUMP * 100)),
        (InstructionChoice.PRINT, int(PROB_PRINT * 100)),
        (InstructionChoice.NOP, int(PROB_NOP * 100)),
        (InstructionChoice.INVALID, int(PROB_INVALID_OPCODE * 100)),
    ]
    choices, probs = zip(*weights)
    return rng.choices(choices, weights=probs)[0]


def random_double(rng: Random) -> float:
    """Half the time an interesting value, otherwise a uniform value in a wide range."""
    if rng.random() < 0.5:
        return rng.choice(INTERESTING_DOUBLES)
    return rng.uniform(-1e6, 1e6)


# =============================================================================
# Bytecode Generators
# =============================================================================

def generate_random_bytes(rng: Random, max_length: int = DEFAULT_CONFIG.max_length) -> FuzzCase:
    """Generate completely random bytes - no structure consideration."""
    length = rng.randint(1, max_length)
    return FuzzCase(bytes(rng.randint(0, 255) for _ in range(length)))


def generate_structure_aware_bytecode(rng: Random,
                                      max_instructions: int = DEFAULT_CONFIG.max_instructions) -> FuzzCase:
    """
    Generate structure-aware bytecode with optional fuzzing.

    Creates instruction sequences that respect the wire format, but can
    still produce invalid opcodes, truncated immediates, out-of-range jump
    targets and stack underflows with some probability to exercise error
    handling. Jumps target arbitrary offsets, so programs may loop.

    Args:
        rng: Random number generator
        max_instructions: Maximum number of instructions to generate

    Returns:
        Bytecode that may or may not run to HALT
    """
    chunks: List[bytes] = []
    num_instructions = rng.randint(1, max_instructions)
    # Rough upper bound on program size, used to aim jumps mostly in range
    approx_length = num_instructions * 3 + 1

    for _ in range(num_instructions):
        instruction_type = choose_instruction(rng)

        if instruction_type == InstructionChoice.CONST:
            if rng.random() < PROB_SHORTCUT_CONST:
                chunks.append(bytes([rng.choice(_SHORTCUTS)]))
                continue
            operand = encode_f64(random_double(rng))
            if rng.random() < PROB_TRUNCATED_OPERAND:
                chunks.append(bytes([Opcode.DCONST]) + operand[:rng.randint(0, 7)])
                break  # Nothing can follow a truncated operand
            chunks.append(bytes([Opcode.DCONST]) + operand)

        elif instruction_type == InstructionChoice.ARITHMETIC:
            chunks.append(bytes([rng.choice(_ARITHMETIC)]))

        elif instruction_type == InstructionChoice.REGISTER:
            chunks.append(bytes([rng.choice(_REGISTER)]))

        elif instruction_type == InstructionChoice.JUMP:
            opcode = rng.choice(sorted(JUMP_OPCODES))
            operand = encode_u32(rng.randint(0, approx_length + 4))
            if rng.random() < PROB_TRUNCATED_OPERAND:
                chunks.append(bytes([opcode]) + operand[:rng.randint(0, 3)])
                break
            chunks.append(bytes([opcode]) + operand)

        elif instruction_type == InstructionChoice.PRINT:
            chunks.append(bytes([Opcode.PRINT]))

        elif instruction_type == InstructionChoice.NOP:
            chunks.append(bytes([Opcode.NOP]))

        elif instruction_type == InstructionChoice.INVALID:
            chunks.append(bytes([rng.choice(_INVALID_BYTES)]))
            break  # Stop after invalid opcode
    else:
        if rng.random() < PROB_TRAILING_HALT:
            chunks.append(bytes([Opcode.HALT]))

    return FuzzCase(b''.join(chunks))


def generate_expression_bytecode(
    rng: Random,
    max_depth: int = DEFAULT_CONFIG.max_depth,
    wide: bool = False
) -> FuzzCase:
    """
    Generate bytecode using expression trees.

    Creates random expression trees and compiles them to a program that
    prints the result. Such programs never underflow, never use invalid
    opcodes and can only fail with DivisionByZero.

    Args:
        rng: Random number generator
        max_depth: Maximum depth of the expression tree
        wide: Draw constants from random_double (including inf and nan)
              instead of the default small set

    Returns:
        FuzzCase carrying both the bytecode and its expression
    """
    if wide:
        expr = random_expr(rng, max_depth=max_depth, const_generator=random_double)
    else:
        expr = random_expr(rng, max_depth=max_depth)
    return FuzzCase(compile_expr(expr), expr)


def generate_mixed_strategy_bytecode(rng: Random,
                                     max_instructions: int = DEFAULT_CONFIG.max_instructions) -> FuzzCase:
    """
    Generate bytecode using a mixed strategy, randomly selecting between:
    1. Completely random bytes
    2. Structure-aware bytecode (with potential invalid bytecode)
    3. Expression bytecode with default constants
    4. Expression bytecode with wide-range constants
    """
    strategy_roll = rng.random()

    if strategy_roll < PROB_RANDOM_STRATEGY:
        return generate_random_bytes(rng)
    elif strategy_roll < PROB_RANDOM_STRATEGY + PROB_STRUCTURED_STRATEGY:
        return generate_structure_aware_bytecode(rng, max_instructions=max_instructions)
    elif strategy_roll < PROB_RANDOM_STRATEGY + PROB_STRUCTURED_STRATEGY + PROB_EXPRESSION_DEFAULT:
        return generate_expression_bytecode(rng)
    else:
        return generate_expression_bytecode(rng, wide=True)


# Generator registry for dispatch
GENERATORS: dict[str, Callable[[Random], FuzzCase]] = {
    "random": generate_random_bytes,
    "structured": generate_structure_aware_bytecode,
    "expression": generate_expression_bytecode,
    "mixed": generate_mixed_strategy_bytecode,
}


# =============================================================================
# Execution Results
# =============================================================================

@dataclass(frozen=True)
class Crash:
    """The VM raised something other than an ArithVMException."""
    reason: str


def execute_with_vm(bytecode: bytes, max_steps: Optional[int] = DEFAULT_MAX_STEPS):
    """Execute bytecode and return Halted, Failed or Crash."""
    try:
        return execute_bytecode(bytecode, max_steps=max_steps)
    except Exception as e:
        return Crash(f"VM raised non-VM exception: {e!r}")


def _same_doubles(a: Tuple[float, ...], b: Tuple[float, ...]) -> bool:
    return len(a) == len(b) and all(encode_f64(x) == encode_f64(y) for x, y in zip(a, b))


def compare_results(first, second) -> bool:
    """
    Compare two outcomes for equivalence.

    - Halted outcomes match on bit-identical output, stack and registers
    - Failed outcomes match on output and on exception type and message
    - Crashes match on their reason
    """
    if type(first) != type(second):
        return False
    if isinstance(first, Crash):
        return first == second
    if not _same_doubles(first.output, second.output):
        return False
    if isinstance(first, Halted):
        return (_same_doubles(first.stack, second.stack)
                and _same_doubles((first.r1, first.r2), (second.r1, second.r2)))
    return type(first.error) == type(second.error) and str(first.error) == str(second.error)


def check_expression(expr: Expr, result) -> bool:
    """Check a run of compile_expr(expr) against evaluate(expr)."""
    try:
        expected = evaluate(expr)
    except ZeroDivisionError:
        return isinstance(result, Failed) and isinstance(result.error, DivisionByZero)
    return isinstance(result, Halted) and _same_doubles(result.output, (expected,))


# =============================================================================
# Statistics Tracking
# =============================================================================

@dataclass
class FuzzingStatistics:
    """Tracks fuzzing run statistics."""
    total_tests: int = 0
    halted: int = 0
    failed: int = 0
    crashes: int = 0
    nondeterministic: int = 0
    wrong_results: int = 0
    bugs_found: int = 0

    @property
    def correct_tests(self) -> int:
        return self.total_tests - self.bugs_found

    @property
    def bug_rate(self) -> float:
        return (self.bugs_found / self.total_tests * 100) if self.total_tests > 0 else 0.0

    def record_test(self, result, deterministic: bool, correct: bool) -> None:
        """Record results of a single test."""
        self.total_tests += 1

        if isinstance(result, Halted):
            self.halted += 1
        elif isinstance(result, Failed):
            self.failed += 1
        else:
            self.crashes += 1

        if not deterministic:
            self.nondeterministic += 1
        if not correct:
            self.wrong_results += 1

        if isinstance(result, Crash) or not deterministic or not correct:
            self.bugs_found += 1

    def print_summary(self) -> None:
        """Print formatted summary of results."""
        print("\n" + "=" * 60)
        print("Fuzzer Summary")
        print("-" * 40)
        print(f"Total tests run:           {self.total_tests}")
        print(f"Halted:                    {self.halted}")
        print(f"Failed (VM error):         {self.failed}")
        print(f"Crashes:                   {self.crashes}")
        print(f"Nondeterministic:          {self.nondeterministic}")
        print(f"Wrong results:             {self.wrong_results}")
        print(f"Correct:                   {self.correct_tests}")

        if self.bugs_found > 0:
            print(f"Bug detection rate:     {self.bug_rate:.1f}%")
        else:
            print("\nNo bugs detected!")


# =============================================================================
# Bug Reporting
# =============================================================================

def report_bug(test_num: int, case: FuzzCase, first, second) -> None:
    """Print detailed bug report."""
    print(f"\nTest {test_num}: Bug found")
    print(f"  Bytecode: {case.bytecode.hex()}")
    for line in format_listing(case.bytecode).splitlines():
        print(f"    {line}")
    if case.expr is not None:
        print(f"  Expression: {case.expr}")
    print(f"  First run:  {first}")
    print(f"  Second run: {second}")


def print_header(num_tests: int, generator: str) -> None:
    """Print fuzzer run header."""
    print(f"ArithVM Fuzzer - Running {num_tests} tests")
    print(f"Generator: {generator}")
    print("=" * 60)


# =============================================================================
# Fuzzer Main Logic
# =============================================================================

def run_single_test(case: FuzzCase, max_steps: Optional[int] = DEFAULT_MAX_STEPS) -> Tuple[object, object, bool, bool]:
    """
    Run a single fuzzing test case.

    Returns:
        Tuple of (first_result, second_result, deterministic, correct)
    """
    first = execute_with_vm(case.bytecode, max_steps)
    second = execute_with_vm(case.bytecode, max_steps)
    deterministic = compare_results(first, second)
    correct = True if case.expr is None else check_expression(case.expr, first)
    return first, second, deterministic, correct


def run_fuzzer(
    num_tests: int = 1000,
    seed: Optional[int] = None,
    generator: str = "random",
    max_steps: Optional[int] = DEFAULT_MAX_STEPS,
) -> FuzzingStatistics:
    """
    Run the fuzzer for a specified number of tests.

    Args:
        num_tests: Number of random test cases to generate
        seed: Random seed for reproducibility
        generator: Generator type: "random", "structured", "expression", or "mixed"
        max_steps: Step limit per run, so looping programs terminate

    Returns:
        FuzzingStatistics object with results
    """
    rng = Random(seed)
    generator_func = GENERATORS.get(generator, generate_random_bytes)

    stats = FuzzingStatistics()

    print_header(num_tests, generator)

    for i in range(num_tests):
        case = generator_func(rng)
        first, second, deterministic, correct = run_single_test(case, max_steps)

        stats.record_test(first, deterministic, correct)

        if isinstance(first, Crash) or not deterministic or not correct:
            report_bug(i + 1, case, first, second)

    stats.print_summary()
    return stats


# =============================================================================
# CLI Entry Point
# =============================================================================

def main(argv: Optional[List[str]] = None) -> int:
    import argparse

    parser = argparse.ArgumentParser(description="Fuzzer for ArithVM")
    parser.add_argument(
        "-n", "--num-tests",
        type=int,
        default=1000,
        help="Number of random test cases to run (default: 1000)"
    )
    parser.add_argument(
        "-s", "--seed",
        type=int,
        default=None,
        help="Random seed for reproducibility"
    )
    parser.add_argument(
        "-g", "--generator",
        type=str,
        default="random",
        choices=list(GENERATORS),
        help="Generator type: 'random', 'structured', 'expression', or 'mixed' (default: random)"
    )
    parser.add_argument(
        "-m", "--max-steps",
        type=int,
        default=DEFAULT_MAX_STEPS,
        help="Instructions executed per run before giving up (default: %(default)s)"
    )

    args = parser.parse_args(argv)

    stats = run_fuzzer(
        num_tests=args.num_tests,
        seed=args.seed,
        generator=args.generator,
        max_steps=args.max_steps,
    )
    return 1 if stats.bugs_found else 0


if __name__ == "__main__":
    raise SystemExit(main())
