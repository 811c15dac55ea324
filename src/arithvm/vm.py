"""Execution engine: VM state, the fetch-decode-dispatch loop and run helpers.

A VM borrows an immutable bytecode buffer and owns a bounded stack of
doubles and two scalar registers. Every failure is raised as an
ArithVMException subclass at the point it is detected; run_bytecode and
execute_bytecode are the only places that turn one into a status.
"""

import sys
from dataclasses import dataclass
from typing import List, Optional, TextIO, Tuple

from .bytecode import JUMP_OPCODES, SMALL_CONSTANTS, Opcode
from .codec import F64_SIZE, U32_SIZE, decode_f64, decode_u32

# =============================================================================
# Constants
# =============================================================================

STACK_SIZE = 256

EXIT_SUCCESS = 0
EXIT_FAILURE = 1

# =============================================================================
# Exceptions
# =============================================================================


class ArithVMException(Exception):
    """Base exception for all ArithVM runtime errors."""

    def diagnostic(self) -> str:
        """One-line description written to the output stream on failure."""
        return f"{type(self).__name__}: {self}"


class DivisionByZero(ArithVMException):
    """Raised when DIV pops a zero divisor."""

    def __init__(self, pc: int):
        super().__init__(f"Division by zero @ PC = {pc}")
        self.pc = pc

    def diagnostic(self) -> str:
        return f"RuntimeException: {self}"


class InvalidOpcode(ArithVMException):
    """Raised when the fetched byte is not in the opcode table."""

    def __init__(self, opcode: int, pc: int):
        super().__init__(f"Unknown opcode 0x{opcode:02X} at offset {pc}")
        self.opcode = opcode
        self.pc = pc

    def diagnostic(self) -> str:
        return f"InvalidOpcodeError: {self.opcode:x}"


class StackOverflow(ArithVMException):
    """Raised when pushing onto a full stack."""

    def __init__(self, capacity: int):
        super().__init__(f"Stack overflow: capacity of {capacity} values exceeded")
        self.capacity = capacity


class StackUnderflow(ArithVMException):
    """Raised when popping from an empty stack."""
    pass


class ProgramCounterOutOfRange(ArithVMException):
    """Raised when an opcode or its operand lies beyond the end of the code buffer."""

    def __init__(self, pc: int, size: int, length: int):
        super().__init__(
            f"Program counter out of range: need {size} byte(s) at {pc}, code length is {length}"
        )
        self.pc = pc
        self.size = size


class StepLimitExceeded(ArithVMException):
    """Raised when a run executes more instructions than its step limit allows."""

    def __init__(self, limit: int):
        super().__init__(f"Step limit ({limit}) exceeded without HALT")
        self.limit = limit


class VMHalted(ArithVMException):
    """Raised when stepping a VM that has already executed HALT."""
    pass


# =============================================================================
# VM State
# =============================================================================


class VM:
    """
    A single execution of a bytecode program.

    Attributes are exposed read-only; the stack, registers and program
    counter change only through the operations below, driven by step().

    Args:
        code: Bytecode buffer, executed from offset 0
        out: Text stream receiving PRINT output (defaults to sys.stdout)
        stack_size: Maximum number of values on the stack
    """

    def __init__(self, code: bytes, out: Optional[TextIO] = None, stack_size: int = STACK_SIZE):
        if stack_size < 1:
            raise ValueError(f"stack_size must be positive, got {stack_size}")
        self._code = bytes(code)
        self._out = out
        self._capacity = stack_size
        self._stack: List[float] = []
        self._pc = 0
        self._r1 = 0.0
        self._r2 = 0.0
        self._steps = 0
        self._halted = False

    # -------------------------------------------------------------------------
    # Read-only views
    # -------------------------------------------------------------------------

    @property
    def code(self) -> bytes:
        return self._code

    @property
    def pc(self) -> int:
        return self._pc

    @property
    def sp(self) -> int:
        """Index of the top of the stack, -1 when empty."""
        return len(self._stack) - 1

    @property
    def stack(self) -> Tuple[float, ...]:
        """Stack contents, bottom first."""
        return tuple(self._stack)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def r1(self) -> float:
        return self._r1

    @property
    def r2(self) -> float:
        return self._r2

    @property
    def steps(self) -> int:
        return self._steps

    @property
    def halted(self) -> bool:
        return self._halted

    # -------------------------------------------------------------------------
    # Stack & registers
    # -------------------------------------------------------------------------

    def push(self, value: float) -> None:
        if len(self._stack) >= self._capacity:
            raise StackOverflow(self._capacity)
        self._stack.append(value)

    def pop(self) -> float:
        if not self._stack:
            raise StackUnderflow(f"Pop from empty stack at PC = {self._pc}")
        return self._stack.pop()

    def load(self, reg: int) -> float:
        """Read register 1 or 2."""
        if reg == 1:
            return self._r1
        if reg == 2:
            return self._r2
        raise ValueError(f"Invalid register: r{reg}")

    def store(self, reg: int, value: float) -> None:
        """Write register 1 or 2."""
        if reg == 1:
            self._r1 = value
        elif reg == 2:
            self._r2 = value
        else:
            raise ValueError(f"Invalid register: r{reg}")

    # -------------------------------------------------------------------------
    # Program counter
    # -------------------------------------------------------------------------

    def advance_pc(self, n: int) -> None:
        self._pc += n

    def jump(self, addr: int) -> None:
        # Unchecked here; a bad target fails on the next fetch.
        self._pc = addr

    def _check_range(self, size: int) -> None:
        if self._pc < 0 or self._pc + size > len(self._code):
            raise ProgramCounterOutOfRange(self._pc, size, len(self._code))

    def fetch(self) -> int:
        """Read the opcode byte at pc and advance past it."""
        self._check_range(1)
        byte = self._code[self._pc]
        self.advance_pc(1)
        return byte

    def fetch_operand(self, size: int) -> bytes:
        """Read the size-byte immediate at pc and advance past it."""
        self._check_range(size)
        data = self._code[self._pc:self._pc + size]
        self.advance_pc(size)
        return data

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def _compare(self, opcode: Opcode) -> bool:
        r1, r2 = self._r1, self._r2
        match opcode:
            case Opcode.JEQ:
                return r1 == r2
            case Opcode.JNE:
                return r1 != r2
            case Opcode.JLT:
                return r1 < r2
            case Opcode.JLE:
                return r1 <= r2
            case Opcode.JGT:
                return r1 > r2
            case Opcode.JGE:
                return r1 >= r2
        raise ValueError(f"Not a jump opcode: {opcode!r}")

    def _print(self, value: float) -> None:
        out = self._out if self._out is not None else sys.stdout
        print(f"{value:f}", file=out)

    def step(self) -> bool:
        """
        Fetch, decode and execute one instruction.

        Returns:
            False if the instruction was HALT, True otherwise

        Raises:
            VMHalted: If HALT was already executed
            ArithVMException: On any runtime failure
        """
        if self._halted:
            raise VMHalted("VM has already halted")

        start = self._pc
        byte = self.fetch()
        self._steps += 1

        match byte:
            case Opcode.HALT:
                self._halted = True
                return False

            case Opcode.NOP:
                pass

            case Opcode.DCONST_M1 | Opcode.DCONST_0 | Opcode.DCONST_1 | Opcode.DCONST_2:
                self.push(SMALL_CONSTANTS[Opcode(byte)])

            case Opcode.DCONST:
                self.push(decode_f64(self.fetch_operand(F64_SIZE)))

            case _ if byte in JUMP_OPCODES:
                # Operand is consumed before the branch decision.
                target = decode_u32(self.fetch_operand(U32_SIZE))
                if self._compare(Opcode(byte)):
                    self.jump(target)

            case Opcode.ADD:
                b = self.pop()
                a = self.pop()
                self.push(a + b)

            case Opcode.SUB:
                b = self.pop()
                a = self.pop()
                self.push(a - b)

            case Opcode.MUL:
                b = self.pop()
                a = self.pop()
                self.push(a * b)

            case Opcode.DIV:
                b = self.pop()
                a = self.pop()
                if b == 0:
                    raise DivisionByZero(self._pc)
                self.push(a / b)

            case Opcode.NEG:
                self.push(-self.pop())

            case Opcode.LD1:
                self.push(self.load(1))

            case Opcode.ST1:
                self.store(1, self.pop())

            case Opcode.LD2:
                self.push(self.load(2))

            case Opcode.ST2:
                self.store(2, self.pop())

            case Opcode.PRINT:
                self._print(self.pop())

            case _:
                raise InvalidOpcode(byte, start)

        return True

    def run(self, max_steps: Optional[int] = None) -> int:
        """
        Run until HALT.

        Args:
            max_steps: Optional limit on the number of instructions executed

        Returns:
            EXIT_SUCCESS once HALT is reached

        Raises:
            StepLimitExceeded: If max_steps instructions ran without HALT
            ArithVMException: On any runtime failure
        """
        while self.step():
            if max_steps is not None and self._steps >= max_steps:
                raise StepLimitExceeded(max_steps)
        return EXIT_SUCCESS

    def __repr__(self) -> str:
        state = "HALTED" if self._halted else "RUNNING"
        return f"VM(pc={self._pc}, sp={self.sp}, r1={self._r1!r}, r2={self._r2!r}, {state})"


# =============================================================================
# Running programs
# =============================================================================


def run_bytecode(code: bytes, out: Optional[TextIO] = None, max_steps: Optional[int] = None) -> int:
    """
    Run a program to a single terminal status.

    PRINT output and, on failure, one diagnostic line are written to out.

    Returns:
        EXIT_SUCCESS if HALT was reached, EXIT_FAILURE otherwise
    """
    out = out if out is not None else sys.stdout
    vm = VM(code, out=out)
    try:
        return vm.run(max_steps=max_steps)
    except ArithVMException as e:
        print(e.diagnostic(), file=out)
        return EXIT_FAILURE


@dataclass(frozen=True)
class ExecutionResult:
    """Base class for run outcomes - used as a union type."""
    output: Tuple[float, ...]


@dataclass(frozen=True)
class Halted(ExecutionResult):
    stack: Tuple[float, ...] = ()
    r1: float = 0.0
    r2: float = 0.0


@dataclass(frozen=True)
class Failed(ExecutionResult):
    error: Optional[ArithVMException] = None


class _RecordingVM(VM):
    """VM whose PRINT appends to a list instead of writing text."""

    def __init__(self, code: bytes, values: List[float]):
        super().__init__(code)
        self._values = values

    def _print(self, value: float) -> None:
        self._values.append(value)


def execute_bytecode(code: bytes, max_steps: Optional[int] = None) -> ExecutionResult:
    """
    Run a program and capture its printed values instead of writing them out.

    Returns:
        Halted with the printed values and final stack/registers, or
        Failed with the printed values and the exception that ended the run
    """
    values: List[float] = []
    vm = _RecordingVM(code, values)
    try:
        vm.run(max_steps=max_steps)
    except ArithVMException as e:
        return Failed(output=tuple(values), error=e)
    return Halted(output=tuple(values), stack=vm.stack, r1=vm.r1, r2=vm.r2)
