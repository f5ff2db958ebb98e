"""CHIP-8 miscellaneous instructions (Fxxx)."""

import jax
import jax.lax
import jax.numpy as jnp
from chip8vm.state import EmulatorState
from chip8vm.decode import DecodedInstruction
from chip8vm.constants import FONT_START, GLYPH_SIZE, ADDRESS_MASK, PROGRAM_START, NUM_REGISTERS
from chip8vm.errors import ErrorCode, fail_if


def execute_get_delay_timer(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """FX07 - Set VX to delay timer value."""
    return state.replace(V=state.V.at[instruction.x].set(state.delay_timer))


def execute_set_delay_timer(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """FX15 - Set delay timer to VX."""
    return state.replace(delay_timer=state.V[instruction.x])


def execute_set_sound_timer(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """FX18 - Set sound timer to VX."""
    return state.replace(sound_timer=state.V[instruction.x])


def execute_add_to_index(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """FX1E - Add VX to I register."""
    new_i = jnp.astype(state.I, jnp.int32) + state.V[instruction.x]
    state = fail_if(state, new_i > ADDRESS_MASK, ErrorCode.ADDRESS_OVERFLOW)
    return state.replace(I=jnp.astype(new_i & ADDRESS_MASK, jnp.uint16))


def execute_wait_for_key(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """FX0A - Wait for key press.

    Completes at once when a key is already down. Otherwise the machine parks
    on this instruction in the awaiting-key state and ``step`` resumes it.
    """
    def key_pressed_action(state):
        pressed_key = jnp.astype(jnp.argmax(state.keypad), jnp.uint8)
        return state.replace(V=state.V.at[instruction.x].set(pressed_key))

    def wait_action(state):
        return state.replace(
            pc=(state.pc - 2) & ADDRESS_MASK,
            awaiting_key=jnp.array(True),
            key_register=jnp.astype(instruction.x, jnp.uint8),
        )

    return jax.lax.cond(jnp.any(state.keypad), key_pressed_action, wait_action, state)


def execute_font_character(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """FX29 - Set I to location of sprite for digit VX."""
    digit = state.V[instruction.x]
    state = fail_if(state, digit > 0xF, ErrorCode.INVALID_REGISTER_VALUE)
    font_address = FONT_START + jnp.astype(digit & 0xF, jnp.int32) * GLYPH_SIZE
    return state.replace(I=jnp.astype(font_address, jnp.uint16))


def execute_bcd_conversion(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """FX33 - Store BCD representation of VX at I, I+1, I+2."""
    index = jnp.astype(state.I, jnp.int32)
    state = fail_if(
        state,
        (index < PROGRAM_START) | (index + 2 > ADDRESS_MASK),
        ErrorCode.ADDRESS_OUT_OF_RANGE,
    )
    value = state.V[instruction.x]

    # Vectorized BCD conversion
    digits = jnp.array([
        value // 100,
        (value // 10) % 10,
        value % 10
    ], dtype=jnp.uint8)

    # Single vectorized memory update
    indices = jnp.arange(3) + index
    new_memory = state.memory.at[indices].set(digits, mode="drop")
    return state.replace(memory=new_memory)


def execute_store_registers(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """FX55 - Store V0 through VX in memory starting at I."""
    index = jnp.astype(state.I, jnp.int32)
    state = fail_if(
        state,
        (index < PROGRAM_START) | (index + instruction.x > ADDRESS_MASK),
        ErrorCode.ADDRESS_OUT_OF_RANGE,
    )
    register_mask = jnp.arange(NUM_REGISTERS) <= instruction.x
    base_indices = index + jnp.arange(NUM_REGISTERS)
    current_memory_values = state.memory.at[base_indices].get(mode="fill", fill_value=0)
    new_memory_values = jnp.where(register_mask, state.V, current_memory_values)
    new_memory = state.memory.at[base_indices].set(new_memory_values, mode="drop")
    return state.replace(memory=new_memory)


def execute_load_registers(state: EmulatorState, instruction: DecodedInstruction) -> EmulatorState:
    """FX65 - Load V0 through VX from memory starting at I."""
    index = jnp.astype(state.I, jnp.int32)
    state = fail_if(state, index + instruction.x > ADDRESS_MASK, ErrorCode.ADDRESS_OVERFLOW)
    register_mask = jnp.arange(NUM_REGISTERS) <= instruction.x
    base_indices = index + jnp.arange(NUM_REGISTERS)
    memory_values = state.memory.at[base_indices].get(mode="fill", fill_value=0)
    new_V = jnp.where(register_mask, memory_values, state.V)
    return state.replace(V=new_V)
