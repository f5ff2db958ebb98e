"""Tests for the fetch/execute cycle, timers, loading and reset."""

import jax
import jax.numpy as jnp
import pytest
from chip8vm import (
    create_state, step, fetch, tick_timers, run, run_frame, run_with_progress,
    load_program, reset, ErrorCode, ProgramTooLargeError,
    FONT_DATA, MAX_PROGRAM_SIZE, PROGRAM_START, STACK_SIZE,
)
from conftest import program_bytes, run_program, assert_states_equal


class TestFetch:
    """Test instruction fetch."""

    def test_fetch_big_endian(self, fresh_state):
        state = load_program(fresh_state, bytes([0x6A, 0x12]))
        state, instruction = fetch(state)
        assert instruction == 0x6A12
        assert state.pc == 0x202


class TestEndToEnd:
    """Small programs run through ``step``."""

    def test_clear_screen_program(self, fresh_state):
        """CLS clears a dirty display and advances PC."""
        state = fresh_state.replace(display=jnp.ones_like(fresh_state.display))
        state = run_program(state, 0x00E0)
        assert jnp.sum(state.display) == 0
        assert state.pc == 0x202

    def test_load_and_add_program(self, fresh_state):
        state = run_program(fresh_state, 0x6A12, 0x7A05)
        assert state.V[0xA] == 0x17
        assert state.pc == 0x204

    def test_call_and_return_program(self, fresh_state):
        state = load_program(fresh_state, program_bytes(0x2300))
        state = state.replace(memory=state.memory.at[0x300].set(0x00).at[0x301].set(0xEE))
        state = step(state)
        assert state.pc == 0x300
        assert state.stack.pointer == 1
        state = step(state)
        assert state.pc == 0x202
        assert state.stack.pointer == 0

    def test_skip_program(self, fresh_state):
        """A taken skip moves PC by 4 in one step."""
        state = run_program(fresh_state, 0x3000)  # V0 == 0
        assert state.pc == 0x204

    @pytest.mark.parametrize("depth", [1, 5, STACK_SIZE])
    def test_stack_round_trip(self, fresh_state, depth):
        """N nested calls then N returns come back right after the first call."""
        # Subroutine k at 0x300 + 4k is "CALL next; RET", the innermost is "RET"
        state = load_program(fresh_state, program_bytes(0x2300))
        memory = state.memory
        for level in range(depth):
            address = 0x300 + 4 * level
            if level < depth - 1:
                words = (0x2000 | (address + 4), 0x00EE)
            else:
                words = (0x00EE,)
            for offset, word in enumerate(words):
                memory = memory.at[address + 2 * offset].set(word >> 8)
                memory = memory.at[address + 2 * offset + 1].set(word & 0xFF)
        state = state.replace(memory=memory)

        for _ in range(depth):
            state = step(state)
        assert state.stack.pointer == depth

        for _ in range(depth):
            state = step(state)
        assert state.stack.pointer == 0
        assert state.pc == 0x202
        assert state.error == ErrorCode.NONE

    def test_stack_round_trip_returns(self, fresh_state):
        """Nested returns unwind in order."""
        # 0x200 CALL 0x300 / 0x300 CALL 0x400 / 0x302 RET / 0x400 RET
        state = load_program(fresh_state, program_bytes(0x2300))
        memory = state.memory
        for address, word in {0x300: 0x2400, 0x302: 0x00EE, 0x400: 0x00EE}.items():
            memory = memory.at[address].set(word >> 8).at[address + 1].set(word & 0xFF)
        state = state.replace(memory=memory)

        pcs = []
        for _ in range(4):
            state = step(state)
            pcs.append(int(state.pc))

        assert pcs == [0x300, 0x400, 0x302, 0x202]
        assert state.stack.pointer == 0


class TestFaults:
    """A faulting step leaves the machine untouched apart from the error."""

    def test_fault_rolls_back(self, fresh_state):
        state = run_program(fresh_state, 0x6A12, 0x00EE, steps=1)
        before = state

        state = step(state)

        assert state.error == ErrorCode.STACK_UNDERFLOW
        assert_states_equal(state.replace(error=before.error), before)
        assert state.pc == 0x202

    def test_halted_machine_does_not_run(self, fresh_state):
        state = run_program(fresh_state, 0x0123, 0x6A12, steps=1)
        assert state.error == ErrorCode.ILLEGAL_INSTRUCTION

        halted = step(state)
        assert_states_equal(halted, state)

    def test_reset_clears_fault(self, fresh_state):
        program = program_bytes(0x1100)
        state = step(load_program(fresh_state, program))
        assert state.error == ErrorCode.INVALID_JUMP_TARGET

        state = reset(state, program)
        assert state.error == ErrorCode.NONE
        assert state.pc == PROGRAM_START

    def test_bcd_fault_keeps_memory(self, fresh_state):
        """Nothing from the failing handler leaks into the returned state."""
        state = run_program(fresh_state, 0xA300, 0xFF33, steps=1)
        state = state.replace(I=jnp.asarray(0x100, dtype=jnp.uint16))
        memory_before = state.memory
        state = step(state)
        assert state.error == ErrorCode.ADDRESS_OUT_OF_RANGE
        assert jnp.array_equal(state.memory, memory_before)


class TestKeyWait:
    """LD Vx, K as an explicit suspended state."""

    def test_wait_suspends_and_resumes(self, fresh_state):
        state = run_program(fresh_state, 0xF50A, 0x6101)
        assert state.awaiting_key
        assert state.pc == 0x200

        # Still nothing pressed: no progress
        waiting = step(state)
        assert_states_equal(waiting, state)

        state = state.replace(keypad=state.keypad.at[9].set(True))
        state = step(state)
        assert not state.awaiting_key
        assert state.V[5] == 9
        assert state.pc == 0x202

        state = step(state)
        assert state.V[1] == 1
        assert state.pc == 0x204

    def test_timers_run_while_waiting(self, fresh_state):
        state = run_program(fresh_state, 0x6003, 0xF015, 0xF10A)
        assert state.awaiting_key
        state = tick_timers(state)
        assert state.delay_timer == 2


class TestTimers:
    """Test the 60 Hz timer tick."""

    def test_tick_decrements(self, fresh_state):
        state = fresh_state.replace(
            delay_timer=jnp.asarray(5, dtype=jnp.uint8),
            sound_timer=jnp.asarray(1, dtype=jnp.uint8),
        )
        state = tick_timers(state)
        assert state.delay_timer == 4
        assert state.sound_timer == 0

    def test_tick_stops_at_zero(self, fresh_state):
        state = tick_timers(tick_timers(fresh_state))
        assert state.delay_timer == 0
        assert state.sound_timer == 0

    def test_step_does_not_tick(self, fresh_state):
        state = run_program(fresh_state, 0x6010, 0xF015, 0x6000, 0x6000)
        assert state.delay_timer == 0x10


class TestRun:
    """Test batched execution helpers."""

    def test_run(self, fresh_state):
        state = load_program(fresh_state, program_bytes(0x6001, 0x7001, 0x1202))
        state = run(state, 10)
        assert state.V[0] == 6
        assert state.pc == 0x204

    def test_run_frame_ticks_once(self, fresh_state):
        state = load_program(fresh_state, program_bytes(0x600A, 0xF015, 0x1204))
        state = run_frame(state, 4)
        assert state.delay_timer == 9

    def test_run_with_progress_matches_run(self, fresh_state):
        state = load_program(fresh_state, program_bytes(0x6001, 0x7001, 0x1202))
        assert_states_equal(run_with_progress(state, 40), run(state, 40))

    def test_vmap_over_machines(self):
        """Independent machines step together under vmap."""
        program = program_bytes(0xC0FF, 0x1202)
        keys = jax.random.split(jax.random.PRNGKey(0), 8)
        states = jax.vmap(lambda key: load_program(create_state(key), program))(keys)

        states = jax.vmap(step)(states)

        assert states.V.shape == (8, 16)
        assert (states.pc == 0x202).all()
        assert len(set(int(v) for v in states.V[:, 0])) > 1


class TestLoading:
    """Test program loading and reset."""

    def test_load_program(self, fresh_state):
        state = load_program(fresh_state, b"\x12\x34\x56")
        assert list(state.memory[0x200:0x204]) == [0x12, 0x34, 0x56, 0x00]

    def test_load_reasserts_font_and_zeroes_region(self, fresh_state):
        dirty = fresh_state.memory.at[0:80].set(0).at[0x300].set(0xAA)
        state = load_program(fresh_state.replace(memory=dirty), b"\x00\xE0")
        assert (state.memory[:80] == FONT_DATA).all()
        assert state.memory[0x300] == 0

    def test_largest_program_fits(self, fresh_state):
        state = load_program(fresh_state, bytes([0x11]) * MAX_PROGRAM_SIZE)
        assert state.memory[0xFFF] == 0x11

    def test_program_too_large(self, fresh_state):
        with pytest.raises(ProgramTooLargeError):
            load_program(fresh_state, bytes(MAX_PROGRAM_SIZE + 1))

    def test_load_rom(self, fresh_state, tmp_path):
        from chip8vm import load_rom
        rom = tmp_path / "test.ch8"
        rom.write_bytes(program_bytes(0x6A12))
        state = load_rom(fresh_state, str(rom))
        assert state.memory[0x200] == 0x6A
        assert state.memory[0x201] == 0x12

    def test_initial_state(self, fresh_state):
        state = fresh_state
        assert state.memory.shape == (4096,)
        assert (state.memory[:80] == FONT_DATA).all()
        assert not state.memory[80:].any()
        assert state.pc == 0x200
        assert state.I == 0
        assert state.stack.pointer == 0
        assert not state.stack.data.any()
        assert not state.V.any()
        assert state.delay_timer == 0 and state.sound_timer == 0
        assert not state.display.any()
        assert not state.keypad.any()
        assert not state.awaiting_key
        assert state.error == ErrorCode.NONE

    def test_reset_invariant(self, fresh_state):
        program = program_bytes(0x6A12, 0x2300, 0xF00A)
        state = run_program(fresh_state, 0x6A12, 0x2300)
        state = state.replace(
            display=jnp.ones_like(state.display),
            delay_timer=jnp.asarray(3, dtype=jnp.uint8),
            keypad=state.keypad.at[2].set(True),
        )

        state = reset(state, program)

        expected = load_program(create_state(state.rng), program)
        assert_states_equal(state, expected)
        assert state.memory[0x200] == 0x6A
        assert not state.memory[0x206:].any()

    def test_reset_is_idempotent(self, fresh_state):
        once = reset(fresh_state)
        assert_states_equal(reset(once), once)
