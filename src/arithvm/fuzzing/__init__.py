"""Fuzzing and enumeration framework for ArithVM."""

from .fuzzer import (
    FuzzCase, Crash,
    FuzzingStatistics,
    run_fuzzer,
)

from .expression import (
    Expr, Const, Add, Sub, Mul, Div, Neg,
    evaluate,
    compile_expr_to_instructions,
    compile_expr,
    random_expr,
)
