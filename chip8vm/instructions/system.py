"""CHIP-8 system instructions (0x0xxx)."""

import jax.numpy as jnp
from chip8vm.state import EmulatorState
from chip8vm.decode import DecodedInstruction
from chip8vm.errors import ErrorCode, fail_if
from chip8vm.stack import pop, is_empty


def execute_clear_screen(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """00E0 - Clear display."""
    return state.replace(display=jnp.zeros_like(state.display), draw_flag=jnp.array(True))


def execute_return(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """00EE - Return from subroutine."""
    state = fail_if(state, is_empty(state.stack), ErrorCode.STACK_UNDERFLOW)
    stack, address = pop(state.stack)
    return state.replace(stack=stack, pc=address)


def execute_illegal(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """0NNN (SYS) and undefined encodings."""
    return fail_if(state, True, ErrorCode.ILLEGAL_INSTRUCTION)
