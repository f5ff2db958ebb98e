"""Test configuration and fixtures for CHIP-8 machine tests."""

import pytest
import jax
import jax.numpy as jnp
from chip8vm import create_state, load_program, step


@pytest.fixture
def fresh_state():
    """Provide a fresh emulator state for each test."""
    return create_state()


@pytest.fixture
def lenient_state():
    """Provide a fresh state that accepts VF as an ALU operand."""
    return create_state(strict_flag_operands=False)


def setup_sprite_in_memory(state, address, sprite_bytes):
    """Helper to put sprite data in memory."""
    return state.replace(
        memory=state.memory.at[address:address+len(sprite_bytes)].set(
            jnp.array(sprite_bytes, dtype=jnp.uint8)
        )
    )


def program_bytes(*words):
    """Assemble 16-bit instruction words into big-endian program bytes."""
    return b"".join(word.to_bytes(2, "big") for word in words)


def run_program(state, *words, steps=None):
    """Load ``words`` at 0x200 and step once per word (or ``steps`` times)."""
    state = load_program(state, program_bytes(*words))
    for _ in range(len(words) if steps is None else steps):
        state = step(state)
    return state


def assert_states_equal(left, right):
    """Every leaf of two states matches."""
    for a, b in zip(jax.tree_util.tree_leaves(left), jax.tree_util.tree_leaves(right)):
        assert jnp.array_equal(a, b)
