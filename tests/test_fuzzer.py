"""
Tests for the ArithVM fuzzer.

Run with: uv run pytest tests/test_fuzzer.py
"""

from random import Random

from arithvm.bytecode import Opcode, assemble
from arithvm.fuzzing.expression import Const, Div, Sub
from arithvm.fuzzing.fuzzer import (
    GENERATORS, FuzzCase, Crash, FuzzingStatistics,
    generate_random_bytes, generate_structure_aware_bytecode,
    generate_expression_bytecode, generate_mixed_strategy_bytecode,
    execute_with_vm, compare_results, check_expression,
    run_single_test, run_fuzzer, main,
)
from arithvm.vm import Failed, Halted, StepLimitExceeded


def test_generators():
    print("Generator Tests")
    print("=" * 50)

    rng = Random(7)
    for _ in range(200):
        case = generate_random_bytes(rng, max_length=20)
        assert 1 <= len(case.bytecode) <= 20
        assert case.expr is None
    print("✓ Random bytes within length bounds")

    rng = Random(7)
    cases = [generate_structure_aware_bytecode(rng) for _ in range(200)]
    assert any(c.bytecode.endswith(bytes([Opcode.HALT])) for c in cases)
    assert all(c.expr is None for c in cases)
    print("✓ Structure-aware bytecode")

    rng = Random(7)
    for _ in range(50):
        case = generate_expression_bytecode(rng)
        assert case.expr is not None
        assert case.bytecode.endswith(bytes([Opcode.PRINT, Opcode.HALT]))
    print("✓ Expression bytecode carries its expression")

    assert set(GENERATORS) == {"random", "structured", "expression", "mixed"}

    a = [generate_mixed_strategy_bytecode(Random(3)) for _ in range(5)]
    b = [generate_mixed_strategy_bytecode(Random(3)) for _ in range(5)]
    assert [c.bytecode for c in a] == [c.bytecode for c in b]
    print("✓ Generators are reproducible from a seed")


def test_compare_results():
    halt = assemble(Opcode.DCONST_1, Opcode.PRINT, Opcode.HALT)
    first = execute_with_vm(halt)
    second = execute_with_vm(halt)
    assert compare_results(first, second)

    nan = assemble((Opcode.DCONST, float('nan')), Opcode.PRINT, Opcode.HALT)
    assert compare_results(execute_with_vm(nan), execute_with_vm(nan))
    print("✓ NaN outputs compare bit-for-bit")

    fail = assemble(Opcode.ADD)
    assert compare_results(execute_with_vm(fail), execute_with_vm(fail))
    assert not compare_results(execute_with_vm(halt), execute_with_vm(fail))
    assert compare_results(Crash("x"), Crash("x"))
    assert not compare_results(Crash("x"), Crash("y"))
    print("✓ Outcome comparison")


def test_step_limit_in_fuzzer():
    loop = assemble((Opcode.JEQ, 0))
    result = execute_with_vm(loop, max_steps=100)
    assert isinstance(result, Failed)
    assert isinstance(result.error, StepLimitExceeded)
    print("✓ Looping programs are cut off")


def test_check_expression():
    expr = Sub(Const(5), Const(3))
    case = FuzzCase(assemble(Opcode.DCONST_2, Opcode.PRINT, Opcode.HALT), expr)
    first, second, deterministic, correct = run_single_test(case)
    assert isinstance(first, Halted)
    assert deterministic and correct

    # Wrong program for the expression
    case = FuzzCase(assemble(Opcode.DCONST_1, Opcode.PRINT, Opcode.HALT), expr)
    *_, correct = run_single_test(case)
    assert not correct

    zero = Div(Const(1), Const(0))
    failing = execute_with_vm(assemble(Opcode.DCONST_1, Opcode.DCONST_0, Opcode.DIV, Opcode.HALT))
    assert check_expression(zero, failing)
    assert not check_expression(expr, failing)
    print("✓ Expression oracle")


def test_statistics():
    stats = FuzzingStatistics()
    halted = execute_with_vm(assemble(Opcode.HALT))
    failed = execute_with_vm(assemble(Opcode.NEG))
    stats.record_test(halted, True, True)
    stats.record_test(failed, True, True)
    stats.record_test(Crash("boom"), True, True)
    stats.record_test(halted, False, True)
    stats.record_test(halted, True, False)
    assert stats.total_tests == 5
    assert stats.halted == 3 and stats.failed == 1 and stats.crashes == 1
    assert stats.nondeterministic == 1 and stats.wrong_results == 1
    assert stats.bugs_found == 3
    assert stats.correct_tests == 2
    assert round(stats.bug_rate, 6) == 60.0
    print("✓ Statistics bookkeeping")


def test_fuzzer_finds_no_bugs():
    print("\nFuzzer Run Tests")
    print("=" * 50)

    for generator in GENERATORS:
        stats = run_fuzzer(num_tests=150, seed=1, generator=generator, max_steps=500)
        assert stats.total_tests == 150
        assert stats.bugs_found == 0, generator
        assert stats.crashes == 0
    print("✓ No crashes, nondeterminism or wrong results")


def test_main(capsys):
    assert main(["-n", "20", "-s", "5", "-g", "expression"]) == 0
    out = capsys.readouterr().out
    assert "ArithVM Fuzzer - Running 20 tests" in out
    assert "No bugs detected!" in out
    print("✓ Command line entry point")


if __name__ == "__main__":
    test_generators()
    test_compare_results()
    test_step_limit_in_fuzzer()
    test_check_expression()
    test_statistics()
    test_fuzzer_finds_no_bugs()
    print("\nAll tests passed!")
