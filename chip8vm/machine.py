"""Imperative host interface around the functional CHIP-8 core."""

import time
from typing import Callable, Optional

import jax
import jax.numpy as jnp
import numpy as np

from chip8vm.constants import NUM_KEYS
from chip8vm.emulator import load_program, reset, step, tick_timers
from chip8vm.errors import ErrorCode, EXCEPTIONS, error_of, raise_for_error
from chip8vm.logging import MachineLogger
from chip8vm.state import EmulatorState, create_state, set_keys

# Weight of the running average in the timing figures
SMOOTHING = 0.9


def _smooth(average: float, sample: float) -> float:
    return average * SMOOTHING + sample * (1 - SMOOTHING)


class Chip8:
    """A single CHIP-8 machine driven one call at a time.

    The driver decides the pacing: call ``step`` at the instruction rate and
    ``tick_timers`` at 60 Hz. Nothing here sleeps or blocks; a program waiting
    on LD Vx, K shows up as ``awaiting_key`` until a key is pressed.

    Faults raise a ``Chip8Error`` subclass and leave the machine halted on
    the failing instruction until ``reset``.
    """

    def __init__(
        self,
        rng: Optional[jax.random.PRNGKey] = None,
        seed: int = 0,
        strict_flag_operands: bool = True,
        on_draw: Optional[Callable[[np.ndarray], None]] = None,
        on_start_sound: Optional[Callable[[int], None]] = None,
        on_end_sound: Optional[Callable[[], None]] = None,
        logger: Optional[MachineLogger] = None,
    ):
        """Initialize the machine.

        Args:
            rng: PRNG key for RND instructions. Takes precedence over ``seed``
            seed: Seed used to build the key when ``rng`` is not given
            strict_flag_operands: Reject flag-producing ALU instructions that name VF
            on_draw: Called with the (64, 32) bool display after CLS or DRW,
                and once with the initial display on the first step (again after ``reset``).
                Without it, poll ``draw_flag`` and call ``consume_frame``
            on_start_sound: Called with the sound timer value when it leaves zero
            on_end_sound: Called when the sound timer reaches zero
            logger: Logger for loads, resets and faults
        """
        self._rng = rng if rng is not None else jax.random.PRNGKey(seed)
        self.strict_flag_operands = strict_flag_operands
        self.on_draw = on_draw
        self.on_start_sound = on_start_sound
        self.on_end_sound = on_end_sound
        self.logger = logger or MachineLogger(log_level="WARNING")

        self._program: Optional[bytes] = None
        self.state: EmulatorState = create_state(self._rng, strict_flag_operands=strict_flag_operands)

        self._first_step = True
        self._last_step_time: Optional[float] = None
        self._last_frame_time: Optional[float] = None
        self._average_step_interval = 0.0
        self._average_frame_interval = 0.0
        self._processing_time = 0.0
        self._rendering_time = 0.0

    def reset(self) -> None:
        """Restore the power-on state and reload the current program, if any."""
        initial = create_state(self._rng, strict_flag_operands=self.strict_flag_operands)
        self.state = reset(initial, self._program)
        self._first_step = True
        self.logger.log_reset()

    def load_program(self, program: bytes, source: Optional[str] = None) -> None:
        """Copy a program to 0x200. It is reloaded on every ``reset``."""
        program = bytes(program)
        self.state = load_program(self.state, program)
        self._program = program
        self.logger.log_program_loaded(len(program), source)

    def load_rom(self, filename: str) -> None:
        with open(filename, "rb") as f:
            self.load_program(f.read(), source=filename)

    def step(self) -> None:
        """Execute one cycle, dispatching draw and sound notifications.

        Also updates the smoothed ``clock_rate`` and ``processing_time``.
        """
        if self._first_step:
            self._first_step = False
            if self.on_draw is not None:
                self._draw(self.display)

        previous = self.state
        started = time.perf_counter()
        self.state = jax.block_until_ready(step(previous))
        finished = time.perf_counter()
        self._processing_time = _smooth(self._processing_time, finished - started)
        if self._last_step_time is not None:
            self._average_step_interval = _smooth(self._average_step_interval, finished - self._last_step_time)
        self._last_step_time = finished

        code = error_of(self.state)
        if code != ErrorCode.NONE:
            pc = self.pc
            opcode = self.current_opcode
            self.logger.log_fault(pc, opcode, EXCEPTIONS[code].description)
            self.logger.log_registers(self.state)
            raise_for_error(self.state)

        if int(previous.sound_timer) == 0 and int(self.state.sound_timer) > 0:
            self.logger.debug(f"Sound on for {int(self.state.sound_timer)} ticks")
            if self.on_start_sound is not None:
                self.on_start_sound(int(self.state.sound_timer))

        if self.on_draw is not None and bool(self.state.draw_flag):
            self._draw(self.consume_frame())

    def _draw(self, frame: np.ndarray) -> None:
        started = time.perf_counter()
        self.on_draw(frame)
        finished = time.perf_counter()
        self._rendering_time = _smooth(self._rendering_time, finished - started)
        if self._last_frame_time is not None:
            self._average_frame_interval = _smooth(self._average_frame_interval, finished - self._last_frame_time)
        self._last_frame_time = finished

    def run(self, num_steps: int) -> None:
        """Execute ``num_steps`` cycles through ``step``."""
        for _ in range(num_steps):
            self.step()

    def tick_timers(self) -> None:
        """Advance the delay and sound timers by one 60 Hz tick."""
        previous = int(self.state.sound_timer)
        self.state = tick_timers(self.state)
        if previous > 0 and int(self.state.sound_timer) == 0:
            self.logger.debug("Sound off")
            if self.on_end_sound is not None:
                self.on_end_sound()

    def consume_frame(self) -> np.ndarray:
        """Return the display and clear the draw flag."""
        self.state = self.state.replace(draw_flag=jnp.array(False))
        return self.display

    def set_keys(self, keys) -> None:
        """Replace the whole keypad with a 16-entry pressed/released vector."""
        self.state = set_keys(self.state, keys)

    def press(self, key: int) -> None:
        self._set_key(key, True)

    def release(self, key: int) -> None:
        self._set_key(key, False)

    def _set_key(self, key: int, pressed: bool) -> None:
        if not 0 <= key < NUM_KEYS:
            raise ValueError(f"Key must be between 0x0 and 0xF, got {key}")
        self.state = self.state.replace(keypad=self.state.keypad.at[key].set(pressed))

    @property
    def pc(self) -> int:
        return int(self.state.pc)

    @property
    def current_opcode(self) -> int:
        """Instruction word at PC."""
        pc = self.pc
        return (int(self.state.memory[pc]) << 8) | int(self.state.memory[(pc + 1) & 0xFFF])

    @property
    def registers(self) -> np.ndarray:
        return np.array(self.state.V)

    @property
    def display(self) -> np.ndarray:
        """Display as a (64, 32) bool array indexed ``[x, y]``."""
        return np.array(self.state.display, dtype=np.bool_)

    @property
    def draw_flag(self) -> bool:
        return bool(self.state.draw_flag)

    @property
    def awaiting_key(self) -> bool:
        return bool(self.state.awaiting_key)

    @property
    def clock_rate(self) -> float:
        """Smoothed cycles per second over recent ``step`` calls."""
        if self._average_step_interval <= 0:
            return 0.0
        return 1.0 / self._average_step_interval

    @property
    def processing_time(self) -> float:
        """Smoothed seconds spent executing one cycle."""
        return self._processing_time

    @property
    def frame_rate(self) -> float:
        """Smoothed frames per second pushed to ``on_draw``."""
        if self._average_frame_interval <= 0:
            return 0.0
        return 1.0 / self._average_frame_interval

    @property
    def rendering_time(self) -> float:
        """Smoothed seconds spent inside ``on_draw``."""
        return self._rendering_time

    @property
    def halted(self) -> bool:
        return error_of(self.state) != ErrorCode.NONE
