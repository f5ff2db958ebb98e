"""CHIP-8 control flow instructions."""

import jax
import jax.lax
import jax.numpy as jnp
from chip8vm.state import EmulatorState
from chip8vm.decode import DecodedInstruction
from chip8vm.constants import ADDRESS_MASK, PROGRAM_START
from chip8vm.errors import ErrorCode, fail_if
from chip8vm.stack import push, is_full


def _skip(state: EmulatorState) -> EmulatorState:
    return state.replace(pc=(state.pc + 2) & ADDRESS_MASK)


def execute_jump(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """1NNN - Jump to address NNN."""
    state = fail_if(state, instruction.nnn < PROGRAM_START, ErrorCode.INVALID_JUMP_TARGET)
    return state.replace(pc=jnp.astype(instruction.nnn, jnp.uint16))


def execute_call(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """2NNN - Call subroutine at NNN."""
    state = fail_if(state, is_full(state.stack), ErrorCode.STACK_OVERFLOW)
    state = state.replace(stack=push(state.stack, state.pc))
    return execute_jump(state, instruction)


def make_skip_instruction(condition_fn):
    """Factory for skip instructions."""
    def skip_instruction(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
        condition = condition_fn(state, instruction)
        return jax.lax.cond(
            condition,
            _skip,
            lambda s: s,
            state
        )
    return skip_instruction


execute_skip_if_equal_immediate = make_skip_instruction(
    lambda state, inst: state.V[inst.x] == inst.nn
)

execute_skip_if_not_equal_immediate = make_skip_instruction(
    lambda state, inst: state.V[inst.x] != inst.nn
)

execute_skip_if_equal_register = make_skip_instruction(
    lambda state, inst: state.V[inst.x] == state.V[inst.y]
)

execute_skip_if_not_equal_register = make_skip_instruction(
    lambda state, inst: state.V[inst.x] != state.V[inst.y]
)


def execute_jump_with_offset(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """BNNN - Jump to address NNN + V0."""
    jump_address = jnp.astype(instruction.nnn, jnp.int32) + jnp.astype(state.V[0], jnp.int32)
    state = fail_if(
        state,
        (jump_address < PROGRAM_START) | (jump_address > ADDRESS_MASK),
        ErrorCode.INVALID_JUMP_TARGET,
    )
    return state.replace(pc=jnp.astype(jump_address & ADDRESS_MASK, jnp.uint16))


def make_key_skip_instruction(skip_when_pressed: bool):
    """Factory for EX9E/EXA1, which index the keypad with VX."""
    def key_skip_instruction(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
        key = state.V[instruction.x]
        state = fail_if(state, key > 0xF, ErrorCode.INVALID_REGISTER_VALUE)
        key_pressed = state.keypad[key & 0xF]
        condition = key_pressed if skip_when_pressed else ~key_pressed
        return jax.lax.cond(condition, _skip, lambda s: s, state)
    return key_skip_instruction


# EX9E - Skip if key VX pressed
execute_skip_if_key = make_key_skip_instruction(True)
# EXA1 - Skip if key VX not pressed
execute_skip_if_not_key = make_key_skip_instruction(False)
