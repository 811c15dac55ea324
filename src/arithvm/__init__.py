"""ArithVM: a stack-based virtual machine for double-precision arithmetic."""

from .codec import (
    WIRE_BYTE_ORDER, UINT32_MAX,
    decode_u32, decode_f64, encode_u32, encode_f64,
)

from .bytecode import (
    # Opcodes
    Opcode, JUMP_OPCODES, SMALL_CONSTANTS, operand_size, is_valid_opcode,
    # Instructions
    Instruction, BytecodeError,
    # Serialization
    serialize_instruction, serialize_program, assemble,
    deserialize_instruction, deserialize_program,
    disassemble, format_listing,
)

from .vm import (
    # Constants
    STACK_SIZE, EXIT_SUCCESS, EXIT_FAILURE,
    # Exceptions
    ArithVMException, DivisionByZero, InvalidOpcode,
    StackOverflow, StackUnderflow, ProgramCounterOutOfRange,
    StepLimitExceeded, VMHalted,
    # VM State & Execution
    VM, run_bytecode, execute_bytecode,
    ExecutionResult, Halted, Failed,
)

from .programs import SIMPLE, README, FIBONACCI, PROGRAMS

__version__ = "0.1.0"
