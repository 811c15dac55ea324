"""
Tests for enumeration-based test generation.

Verifies that enumeration produces complete, deterministic, and duplicate-free
test suites for ArithVM, and that every suite behaves as intended when run.

Run with: uv run pytest tests/test_enumeration.py
"""

import math

from arithvm.bytecode import BytecodeError, JUMP_OPCODES, deserialize_program
from arithvm.codec import encode_f64
from arithvm.vm import (
    DivisionByZero, Failed, Halted, ProgramCounterOutOfRange,
    StackOverflow, StackUnderflow, execute_bytecode,
)
from arithvm.fuzzing.enumeration import (
    enumerate_expressions,
    enumerate_expression_programs,
    enumerate_division_tests,
    enumerate_stack_underflow_tests,
    enumerate_stack_overflow_tests,
    enumerate_branch_tests,
    enumerate_truncation_tests,
    generate_comprehensive_suite,
    BOUNDARY_CONSTANTS,
    MINIMAL_CONSTANTS,
    CONSUMING_INSTRUCTIONS,
)
from arithvm.fuzzing.expression import Const, evaluate


def test_expression_enumeration():
    """Tests for expression enumeration."""
    print("Expression Enumeration Tests")
    print("=" * 50)

    # Test depth 0
    constants = [0.0, 1.0, 2.0]
    expressions = list(enumerate_expressions(0, constants))
    assert len(expressions) == 3
    assert all(isinstance(e, Const) for e in expressions)
    print("✓ Depth 0 enumeration")

    # Test depth 1: 4 binary ops over 2x2 pairs, 2 negations, 2 constants
    constants = [0.0, 1.0]
    expressions = list(enumerate_expressions(1, constants))
    assert len(expressions) == 4 * 4 + 2 + 2
    print("✓ Depth 1 enumeration")

    # Test no duplicates
    expressions = list(enumerate_expressions(2, constants))
    expr_strings = [str(e) for e in expressions]
    assert len(expr_strings) == len(set(expr_strings))
    print("✓ No duplicate expressions")

    # Test expression programs are valid and agree with evaluation
    for expr, bytecode in enumerate_expression_programs(max_depth=1, constants=MINIMAL_CONSTANTS):
        assert len(deserialize_program(bytecode)) > 0
        result = execute_bytecode(bytecode)
        try:
            expected = evaluate(expr)
        except ZeroDivisionError:
            assert isinstance(result, Failed) and isinstance(result.error, DivisionByZero)
            continue
        assert isinstance(result, Halted)
        assert encode_f64(result.output[0]) == encode_f64(expected)
    print("✓ Expression programs are valid")


def test_boundary_value_tests():
    """Tests for boundary value test generation."""
    print("\nBoundary Value Tests")
    print("=" * 50)

    # Division: every pair, zero divisors fail, the rest print one value
    tests = list(enumerate_division_tests())
    assert len(tests) == len(BOUNDARY_CONSTANTS) ** 2
    zero_divisors = 0
    for bytecode in tests:
        result = execute_bytecode(bytecode)
        if isinstance(result, Failed):
            assert isinstance(result.error, DivisionByZero)
            zero_divisors += 1
        else:
            assert len(result.output) == 1
    # 0.0 and -0.0 as divisor, for each dividend
    assert zero_divisors == 2 * len(BOUNDARY_CONSTANTS)
    print(f"✓ Division tests ({len(tests)} tests, {zero_divisors} divide by zero)")

    # Stack underflow tests
    tests = list(enumerate_stack_underflow_tests())
    assert len(tests) == sum(needed for _, needed in CONSUMING_INSTRUCTIONS)
    for bytecode in tests:
        result = execute_bytecode(bytecode)
        assert isinstance(result, Failed) and isinstance(result.error, StackUnderflow)
    print(f"✓ Stack underflow tests ({len(tests)} tests, all trigger underflow)")

    # Stack overflow tests
    tests = list(enumerate_stack_overflow_tests())
    for bytecode in tests:
        result = execute_bytecode(bytecode)
        assert isinstance(result, Failed) and isinstance(result.error, StackOverflow)
    print(f"✓ Stack overflow tests ({len(tests)} tests, all trigger overflow)")

    # Truncation tests
    tests = list(enumerate_truncation_tests())
    assert len(tests) == 8 + 4 * len(JUMP_OPCODES) + 3
    for bytecode in tests:
        result = execute_bytecode(bytecode)
        assert isinstance(result, Failed) and isinstance(result.error, ProgramCounterOutOfRange)
    print(f"✓ Truncation tests ({len(tests)} tests, all out of range)")


def test_branch_tests():
    """Every conditional jump either skips to the target or falls through."""
    print("\nBranch Tests")
    print("=" * 50)

    compare = {
        "JEQ": lambda a, b: a == b,
        "JNE": lambda a, b: a != b,
        "JLT": lambda a, b: a < b,
        "JLE": lambda a, b: a <= b,
        "JGT": lambda a, b: a > b,
        "JGE": lambda a, b: a >= b,
    }
    count = 0
    taken = 0
    for opcode, r1, r2, bytecode in enumerate_branch_tests():
        result = execute_bytecode(bytecode)
        assert isinstance(result, Halted)
        if compare[opcode.name](r1, r2):
            assert result.output == (1.0,)
            taken += 1
        else:
            assert result.output == (0.0, 1.0)
        count += 1
    assert taken > 0 and taken < count
    print(f"✓ Branch tests ({count} tests, {taken} taken)")

    # NaN makes every comparison except != false
    nan_cases = [(op, r1, r2) for op, r1, r2, _ in enumerate_branch_tests() if math.isnan(r1)]
    assert nan_cases
    print("✓ Includes NaN register values")


def test_comprehensive_suite():
    """Tests for comprehensive enumeration suite."""
    print("\nComprehensive Suite Tests")
    print("=" * 50)

    # Test no duplicates
    suite = list(generate_comprehensive_suite(max_expr_depth=1))
    hex_strings = [b.hex() for b in suite]
    assert len(hex_strings) == len(set(hex_strings))
    print(f"✓ No duplicates ({len(suite)} unique tests)")

    # Count the decodable programs; truncation tests are not
    valid_count = 0
    for bytecode in suite:
        try:
            deserialize_program(bytecode)
            valid_count += 1
        except BytecodeError:
            pass
    assert 0 < valid_count < len(suite)
    print(f"✓ Deserializable ({valid_count}/{len(suite)} valid)")

    # Test includes boundary tests
    suite_set = set(hex_strings)
    division_tests = list(enumerate_division_tests())
    included_count = sum(1 for test in division_tests if test.hex() in suite_set)
    assert included_count == len(division_tests)
    print(f"✓ Includes boundary tests ({included_count}/{len(division_tests)} included)")

    # Every program runs to a single outcome
    for bytecode in suite:
        assert isinstance(execute_bytecode(bytecode, max_steps=1000), (Halted, Failed))
    print("✓ Every program terminates")


def test_determinism():
    """Tests for deterministic enumeration behavior."""
    print("\nDeterminism Tests")
    print("=" * 50)

    suite1 = list(generate_comprehensive_suite(max_expr_depth=1))
    suite2 = list(generate_comprehensive_suite(max_expr_depth=1))
    assert suite1 == suite2
    print("✓ Enumeration is deterministic")

    exprs1 = list(enumerate_expressions(1, MINIMAL_CONSTANTS))
    exprs2 = list(enumerate_expressions(1, MINIMAL_CONSTANTS))
    assert [str(e) for e in exprs1] == [str(e) for e in exprs2]
    print("✓ Expression enumeration order stable")


def test_boundary_constants():
    """Tests for boundary constant definitions."""
    print("\nBoundary Constants Tests")
    print("=" * 50)

    signs = {math.copysign(1.0, c) for c in BOUNDARY_CONSTANTS if c == 0}
    assert signs == {1.0, -1.0}
    assert any(math.isnan(c) for c in BOUNDARY_CONSTANTS)
    assert any(math.isinf(c) for c in BOUNDARY_CONSTANTS)
    assert 5e-324 in BOUNDARY_CONSTANTS
    print(f"✓ BOUNDARY_CONSTANTS includes critical values ({len(BOUNDARY_CONSTANTS)} total)")

    assert len(MINIMAL_CONSTANTS) <= 10
    assert 0.0 in MINIMAL_CONSTANTS
    print(f"✓ MINIMAL_CONSTANTS is minimal ({len(MINIMAL_CONSTANTS)} constants)")


if __name__ == "__main__":
    print("ArithVM Enumeration Tests")
    print("=" * 60)
    print()

    test_expression_enumeration()
    test_boundary_value_tests()
    test_branch_tests()
    test_comprehensive_suite()
    test_determinism()
    test_boundary_constants()

    print("\n" + "=" * 60)
    print("All tests passed!")
