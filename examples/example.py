import time

import jax

from chip8vm import create_state, load_program, run_frame, disassemble, TIMER_FREQUENCY
from chip8vm.rendering import chip8_display_to_rgb

# Cycles through the hex glyphs at random heights
PROGRAM = bytes([
    0x00, 0xE0,  # CLS
    0xC2, 0x1B,  # RND V2, 0x1B
    0xF0, 0x29,  # LD F, V0
    0xD1, 0x25,  # DRW V1, V2, 5
    0x70, 0x01,  # ADD V0, 0x01
    0x40, 0x10,  # SNE V0, 0x10
    0x60, 0x00,  # LD V0, 0x00
    0x71, 0x05,  # ADD V1, 0x05
    0x12, 0x02,  # JP 0x202
])

# Roughly 700 instructions per second
STEPS_PER_FRAME = 700 // TIMER_FREQUENCY

if __name__ == "__main__":
    for address in range(0, len(PROGRAM), 2):
        word = (PROGRAM[address] << 8) | PROGRAM[address + 1]
        print(f"0x{0x200 + address:03X}  {word:04X}  {disassemble(word)}")

    state = load_program(create_state(jax.random.PRNGKey(0)), PROGRAM)

    @jax.jit
    def rollout(state):
        def frame(state, _):
            state = run_frame(state, STEPS_PER_FRAME)
            return state, state.display

        return jax.lax.scan(frame, state, length=10 * TIMER_FREQUENCY)

    # Measure compilation time
    start_compile = time.time()
    compiled = jax.block_until_ready(rollout.lower(state).compile())
    end_compile = time.time()

    print("Compilation time (s):", end_compile - start_compile)

    # Measure execution time
    start_exec = time.time()
    final_state, frames = jax.block_until_ready(compiled(state))
    end_exec = time.time()

    print("Execution time (s):", end_exec - start_exec)
    print("Frames:", frames.shape[0], "error:", int(final_state.error))

    rgb = chip8_display_to_rgb(final_state.display, scale=1, on_color=(1, 1, 1))
    for row in rgb[..., 0]:
        print("".join("#" if pixel else "." for pixel in row))
