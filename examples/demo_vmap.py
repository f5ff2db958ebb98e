import time
import timeit

import jax
import numpy as np

from chip8vm import create_state, load_program, run
from chip8vm.rendering import batch_render

from example import PROGRAM


def time_it_measure(bench, repeat=10, number=3) -> np.ndarray:
    times = timeit.repeat(bench, repeat=repeat, number=number)
    return np.array(times) / number


if __name__ == "__main__":
    rng = jax.random.PRNGKey(0)
    # Number of machines, this is the var to fluctuate
    rngs = jax.random.split(rng, 1000)

    def rollout(rng):
        return run(load_program(create_state(rng), PROGRAM), 10000)

    # Measure compilation time
    start_compile = time.perf_counter()
    compiled = jax.block_until_ready(jax.jit(jax.vmap(rollout)).lower(rngs).compile())
    end_compile = time.perf_counter()

    print("Compilation time (s):", end_compile - start_compile)

    # Measure execution time
    def bench():
        jax.block_until_ready(compiled(rngs))

    times = time_it_measure(bench)
    print("Execution times (s):", times)
    print("Mean time (s):", times.mean())
    print("Q1 (s):", np.quantile(times, 0.25))
    print("Q3 (s):", np.quantile(times, 0.75))

    states = compiled(rngs)
    grid = batch_render(states.display[:16], scale=2, color_scheme="amber")
    print("Rendered grid:", grid.shape)
