"""Tests for call stack operations."""

import jax.numpy as jnp
from chip8vm.state import StackState
from chip8vm.stack import push, pop, is_empty, is_full


def test_push_pop():
    stack = push(StackState(), jnp.uint16(0x202))
    assert stack.pointer == 1
    assert not is_empty(stack)

    stack, address = pop(stack)
    assert address == 0x202
    assert stack.pointer == 0
    assert is_empty(stack)


def test_lifo_order():
    stack = StackState()
    for address in (0x202, 0x304, 0x406):
        stack = push(stack, jnp.uint16(address))

    popped = []
    for _ in range(3):
        stack, address = pop(stack)
        popped.append(int(address))

    assert popped == [0x406, 0x304, 0x202]


def test_push_masks_address():
    stack = push(StackState(), jnp.int32(0x1234))
    assert stack.data[0] == 0x234


def test_full_stack():
    stack = StackState()
    for i in range(16):
        assert not is_full(stack)
        stack = push(stack, jnp.uint16(0x200 + 2 * i))
    assert is_full(stack)

    # A push past the end does not write anywhere
    overflowed = push(stack, jnp.uint16(0xABC))
    assert jnp.array_equal(overflowed.data, stack.data)


def test_pop_clears_slot():
    stack = push(StackState(), jnp.uint16(0x202))
    stack, _ = pop(stack)
    assert not stack.data.any()


def test_default_stack():
    """Each StackState builds its own empty arrays."""
    first, second = StackState(), StackState()
    assert first.data.shape == (16,)
    assert first.data.dtype == jnp.uint16
    assert first.pointer == 0
    assert not second.data.any()
