"""CHIP-8 machine faults.

Handlers run inside ``jax.jit`` and cannot raise, so they record an
``ErrorCode`` on the state instead. The host converts a recorded code into
one of the exceptions below with ``raise_for_error``.
"""

from enum import IntEnum

import jax.numpy as jnp

from chip8vm.decode import disassemble
from chip8vm.state import EmulatorState


class ErrorCode(IntEnum):
    """Fault recorded on a halted machine."""
    NONE = 0
    ILLEGAL_INSTRUCTION = 1
    STACK_OVERFLOW = 2
    STACK_UNDERFLOW = 3
    INVALID_JUMP_TARGET = 4
    ADDRESS_OUT_OF_RANGE = 5
    ADDRESS_OVERFLOW = 6
    INVALID_REGISTER_VALUE = 7
    FLAG_REGISTER_OPERAND = 8


class Chip8Error(Exception):
    """Base class for faults raised by a running program."""

    code = ErrorCode.NONE
    description = "machine fault"

    def __init__(self, pc: int, opcode: int, message: str = ""):
        self.pc = pc
        self.opcode = opcode
        super().__init__(
            message or f"{self.description} at 0x{pc:03X}: {disassemble(opcode)} (0x{opcode:04X})"
        )


class IllegalInstruction(Chip8Error):
    code = ErrorCode.ILLEGAL_INSTRUCTION
    description = "illegal instruction"


class FlagRegisterOperand(IllegalInstruction):
    """A flag-producing ALU instruction names VF as an operand."""
    code = ErrorCode.FLAG_REGISTER_OPERAND
    description = "VF used as operand of a flag-producing instruction"


class StackOverflow(Chip8Error):
    code = ErrorCode.STACK_OVERFLOW
    description = "call stack is full"


class StackUnderflow(Chip8Error):
    code = ErrorCode.STACK_UNDERFLOW
    description = "return with an empty call stack"


class InvalidJumpTarget(Chip8Error):
    code = ErrorCode.INVALID_JUMP_TARGET
    description = "illegal jump target"


class AddressOutOfRange(Chip8Error):
    code = ErrorCode.ADDRESS_OUT_OF_RANGE
    description = "memory access outside program region"


class AddressOverflow(Chip8Error):
    code = ErrorCode.ADDRESS_OVERFLOW
    description = "address exceeds 0xFFF"


class InvalidRegisterValue(Chip8Error):
    code = ErrorCode.INVALID_REGISTER_VALUE
    description = "register value above 0xF"


class ProgramTooLargeError(ValueError):
    """Program does not fit between 0x200 and the end of memory."""


EXCEPTIONS = {
    cls.code: cls
    for cls in (
        IllegalInstruction,
        FlagRegisterOperand,
        StackOverflow,
        StackUnderflow,
        InvalidJumpTarget,
        AddressOutOfRange,
        AddressOverflow,
        InvalidRegisterValue,
    )
}


def fail_if(state: EmulatorState, condition, code: ErrorCode) -> EmulatorState:
    """Record ``code`` on the state when ``condition`` holds, keeping the first fault."""
    failed = (state.error == ErrorCode.NONE) & condition
    return state.replace(error=jnp.where(failed, jnp.uint8(int(code)), state.error).astype(jnp.uint8))


def error_of(state: EmulatorState) -> ErrorCode:
    """Host-side view of the fault recorded on a state."""
    return ErrorCode(int(state.error))


def raise_for_error(state: EmulatorState) -> None:
    """Raise the typed exception for the fault recorded on ``state``, if any.

    A faulted state is the state right before the failing instruction, so
    ``pc`` still points at it.
    """
    code = error_of(state)
    if code == ErrorCode.NONE:
        return
    pc = int(state.pc)
    opcode = (int(state.memory[pc]) << 8) | int(state.memory[(pc + 1) & 0xFFF])
    raise EXCEPTIONS[code](pc, opcode)
