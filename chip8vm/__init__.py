"""CHIP-8 virtual machine package."""

from chip8vm.state import EmulatorState, create_state, set_keys
from chip8vm.emulator import (
    execute, fetch, step, tick_timers, run, run_frame, run_with_progress,
    load_program, load_rom, reset,
)
from chip8vm.decode import DecodedInstruction, Instruction, decode, identify, disassemble
from chip8vm.errors import (
    ErrorCode, Chip8Error, IllegalInstruction, FlagRegisterOperand, StackOverflow,
    StackUnderflow, InvalidJumpTarget, AddressOutOfRange, AddressOverflow,
    InvalidRegisterValue, ProgramTooLargeError, raise_for_error,
)
from chip8vm.constants import *
from chip8vm.machine import Chip8
from chip8vm.rendering import chip8_display_to_rgb, create_color_scheme, batch_render, display_to_bytes

__all__ = [
    "EmulatorState",
    "create_state",
    "set_keys",
    "fetch",
    "execute",
    "step",
    "tick_timers",
    "run",
    "run_frame",
    "run_with_progress",
    "load_program",
    "load_rom",
    "reset",
    "DecodedInstruction",
    "Instruction",
    "decode",
    "identify",
    "disassemble",
    "ErrorCode",
    "Chip8Error",
    "IllegalInstruction",
    "FlagRegisterOperand",
    "StackOverflow",
    "StackUnderflow",
    "InvalidJumpTarget",
    "AddressOutOfRange",
    "AddressOverflow",
    "InvalidRegisterValue",
    "ProgramTooLargeError",
    "raise_for_error",
    "Chip8",
    "PROGRAM_START",
    "FONT_START",
    "FONT_DATA",
    "SCREEN_WIDTH",
    "SCREEN_HEIGHT",
    "MEMORY_SIZE",
    "MAX_PROGRAM_SIZE",
    "STACK_SIZE",
    "TIMER_FREQUENCY",
    "chip8_display_to_rgb",
    "create_color_scheme",
    "batch_render",
    "display_to_bytes",
]
