"""Main CHIP-8 emulator execution engine."""

from functools import partial
from typing import Optional

import jax
import jax.lax
import jax.numpy as jnp
import numpy as np

from chip8vm.state import EmulatorState, create_state
from chip8vm.decode import decode, classify
from chip8vm.constants import (
    ADDRESS_MASK, FONT_DATA, FONT_START, MAX_PROGRAM_SIZE, PROGRAM_START,
)
from chip8vm.errors import ErrorCode, ProgramTooLargeError
from chip8vm.logging import scan_with_progress
from chip8vm.instructions.system import execute_clear_screen, execute_return, execute_illegal
from chip8vm.instructions.control_flow import (
    execute_jump, execute_call, execute_skip_if_equal_immediate,
    execute_skip_if_not_equal_immediate, execute_skip_if_equal_register,
    execute_skip_if_not_equal_register, execute_jump_with_offset,
    execute_skip_if_key, execute_skip_if_not_key,
)
from chip8vm.instructions.alu import (
    execute_alu_set, execute_alu_or, execute_alu_and, execute_alu_xor,
    execute_alu_add, execute_alu_sub_xy, execute_alu_shift_right,
    execute_alu_sub_yx, execute_alu_shift_left,
)
from chip8vm.instructions.memory import execute_set, execute_add, execute_set_index, execute_random
from chip8vm.instructions.display import execute_display
from chip8vm.instructions.misc import (
    execute_get_delay_timer, execute_wait_for_key, execute_set_delay_timer,
    execute_set_sound_timer, execute_add_to_index, execute_font_character,
    execute_bcd_conversion, execute_store_registers, execute_load_registers,
)

# Indexed by ``Instruction``
HANDLERS = (
    execute_clear_screen,              # CLS
    execute_return,                    # RET
    execute_illegal,                   # SYS
    execute_jump,                      # JP
    execute_call,                      # CALL
    execute_skip_if_equal_immediate,   # SE Vx, byte
    execute_skip_if_not_equal_immediate,  # SNE Vx, byte
    execute_skip_if_equal_register,    # SE Vx, Vy
    execute_set,                       # LD Vx, byte
    execute_add,                       # ADD Vx, byte
    execute_alu_set,                   # LD Vx, Vy
    execute_alu_or,                    # OR
    execute_alu_and,                   # AND
    execute_alu_xor,                   # XOR
    execute_alu_add,                   # ADD Vx, Vy
    execute_alu_sub_xy,                # SUB
    execute_alu_shift_right,           # SHR
    execute_alu_sub_yx,                # SUBN
    execute_alu_shift_left,            # SHL
    execute_skip_if_not_equal_register,  # SNE Vx, Vy
    execute_set_index,                 # LD I, addr
    execute_jump_with_offset,          # JP V0, addr
    execute_random,                    # RND
    execute_display,                   # DRW
    execute_skip_if_key,               # SKP
    execute_skip_if_not_key,           # SKNP
    execute_get_delay_timer,           # LD Vx, DT
    execute_wait_for_key,              # LD Vx, K
    execute_set_delay_timer,           # LD DT, Vx
    execute_set_sound_timer,           # LD ST, Vx
    execute_add_to_index,              # ADD I, Vx
    execute_font_character,            # LD F, Vx
    execute_bcd_conversion,            # LD B, Vx
    execute_store_registers,           # LD [I], Vx
    execute_load_registers,            # LD Vx, [I]
    execute_illegal,                   # undefined
)


def execute(state: EmulatorState, instruction: int) -> EmulatorState:
    """Execute single CHIP-8 instruction.

    PC is expected to already point past the instruction (see ``fetch``).
    Faults are recorded on ``state.error``; use ``step`` for the rollback.
    """
    decoded_instruction = decode(jnp.asarray(instruction, dtype=jnp.int32))
    return jax.lax.switch(classify(decoded_instruction), HANDLERS, state, decoded_instruction)


def _pack_u16(high: jnp.uint8, low: jnp.uint8) -> jnp.uint16:
    """Pack two bytes into uint16."""
    return (high.astype(jnp.uint16) << 8) | low.astype(jnp.uint16)


def fetch(state: EmulatorState) -> tuple[EmulatorState, jnp.uint16]:
    """Fetch next instruction from memory."""
    instruction = _pack_u16(state.memory[state.pc], state.memory[(state.pc + 1) & ADDRESS_MASK])
    return state.replace(pc=(state.pc + 2) & ADDRESS_MASK), instruction


def _resume_key_wait(state: EmulatorState) -> EmulatorState:
    """Complete a pending LD Vx, K once the host reports a key."""
    def key_pressed_action(state):
        pressed_key = jnp.astype(jnp.argmax(state.keypad), jnp.uint8)
        return state.replace(
            V=state.V.at[state.key_register].set(pressed_key),
            pc=(state.pc + 2) & ADDRESS_MASK,
            awaiting_key=jnp.array(False),
        )

    return jax.lax.cond(jnp.any(state.keypad), key_pressed_action, lambda s: s, state)


def _cycle(state: EmulatorState) -> EmulatorState:
    """Fetch, decode and execute, discarding every mutation on a fault."""
    fetched, instruction = fetch(state)
    executed = execute(fetched, instruction)
    return jax.lax.cond(
        executed.error != ErrorCode.NONE,
        lambda: state.replace(error=executed.error),
        lambda: executed,
    )


@jax.jit
def step(state: EmulatorState) -> EmulatorState:
    """Run one machine cycle.

    A faulted machine stays put. A machine awaiting a key only checks the
    keypad. Otherwise one instruction is fetched and executed.
    """
    return jax.lax.cond(
        state.error != ErrorCode.NONE,
        lambda s: s,
        lambda s: jax.lax.cond(s.awaiting_key, _resume_key_wait, _cycle, s),
        state,
    )


@jax.jit
def tick_timers(state: EmulatorState) -> EmulatorState:
    """Decrement delay and sound timers by one, stopping at zero (60 Hz)."""
    def _decrement(timer):
        return jnp.where(timer > 0, timer - 1, timer).astype(jnp.uint8)

    return state.replace(
        delay_timer=_decrement(state.delay_timer),
        sound_timer=_decrement(state.sound_timer),
    )


@partial(jax.jit, static_argnums=1)
def run(state: EmulatorState, num_steps: int) -> EmulatorState:
    """Run ``num_steps`` cycles without touching the timers."""
    state, _ = jax.lax.scan(lambda s, _: (step(s), None), state, length=num_steps)
    return state


@partial(jax.jit, static_argnums=1)
def run_frame(state: EmulatorState, steps_per_frame: int) -> EmulatorState:
    """Run one 60 Hz frame: ``steps_per_frame`` cycles then one timer tick."""
    return tick_timers(run(state, steps_per_frame))


def run_with_progress(
    state: EmulatorState,
    num_steps: int,
    desc: Optional[str] = None,
    print_rate: Optional[int] = None,
) -> EmulatorState:
    """Like ``run`` but reports progress through a tqdm bar."""
    @scan_with_progress(num_steps, print_rate=print_rate, desc=desc or f"Running ({num_steps:,} cycles)")
    def _body(carry, _):
        return step(carry), None

    @jax.jit
    def _run(state):
        state, _ = jax.lax.scan(_body, state, jnp.arange(num_steps))
        return state

    return _run(state)


def load_program(state: EmulatorState, program: bytes) -> EmulatorState:
    """Load program bytes at 0x200, zeroing the rest of the program region.

    The glyph table is written again so a load always leaves it intact.
    """
    data = np.frombuffer(bytes(program), dtype=np.uint8)
    if len(data) > MAX_PROGRAM_SIZE:
        raise ProgramTooLargeError(
            f"Program is {len(data)} bytes, at most {MAX_PROGRAM_SIZE} fit at 0x{PROGRAM_START:03X}"
        )
    region = np.zeros(MAX_PROGRAM_SIZE, dtype=np.uint8)
    region[:len(data)] = data
    new_memory = state.memory.at[PROGRAM_START:].set(jnp.asarray(region))
    new_memory = new_memory.at[FONT_START:FONT_START + len(FONT_DATA)].set(FONT_DATA)
    return state.replace(memory=new_memory)


def load_rom(state: EmulatorState, filename: str) -> EmulatorState:
    """Load ROM data into CHIP-8 memory starting at 0x200."""
    with open(filename, 'rb') as f:
        rom_data = f.read()
    return load_program(state, rom_data)


def reset(state: EmulatorState, program: Optional[bytes] = None) -> EmulatorState:
    """Restore initial values, keeping the RNG key and configuration.

    ``program`` is loaded again when given.
    """
    fresh = create_state(state.rng, strict_flag_operands=state.strict_flag_operands)
    if program is not None:
        fresh = load_program(fresh, program)
    return fresh
