"""Eighth-order 3D finite-difference wave-equation stencil."""

from __future__ import annotations

import argparse
import os
from typing import Sequence

import numpy as np

from kernelbench.timing import Timer

NX = 256
NY = 256
NZ = 256
DEFAULT_WIDTH = 4
DEFAULT_STEPS = 6
DEFAULT_COEFFICIENTS = (0.5, -0.25, 0.125, -0.0625)
STENCIL_RADIUS = 3

_F = np.float32


def init_data(nx, ny, nz):
    """Initial fields (a_even, a_odd, vsq), each float32 of shape (nz, ny, nx)."""
    if nx <= 0 or ny <= 0 or nz <= 0:
        raise ValueError("grid dimensions must be positive")
    z, y, x = np.meshgrid(
        np.arange(nz, dtype=np.int64),
        np.arange(ny, dtype=np.int64),
        np.arange(nx, dtype=np.int64),
        indexing="ij",
    )
    a_even = np.where(
        x < nx // 2,
        x.astype(np.float32) / _F(nx),
        y.astype(np.float32) / _F(ny),
    ).astype(np.float32)
    a_odd = np.zeros((nz, ny, nx), dtype=np.float32)
    vsq = ((x * y * z).astype(np.float32) / _F(nx * ny * nz)).astype(np.float32)
    return a_even, a_odd, vsq


def _check_fields(coef, vsq, a_in, a_out, width):
    coefficients = np.asarray(coef, dtype=np.float32)
    if coefficients.ndim != 1 or coefficients.size < STENCIL_RADIUS + 1:
        raise ValueError("coef must hold at least four coefficients")
    if width < STENCIL_RADIUS:
        raise ValueError(f"width must be at least {STENCIL_RADIUS}")
    for name, field in (("vsq", vsq), ("a_in", a_in), ("a_out", a_out)):
        if not isinstance(field, np.ndarray) or field.ndim != 3:
            raise ValueError(f"{name} must be a three-dimensional array")
    if not (vsq.shape == a_in.shape == a_out.shape):
        raise ValueError("all fields must share one shape")
    return coefficients


def stencil_step(coef, vsq, a_in, a_out, width=DEFAULT_WIDTH):
    """Advance one time step, updating the interior of a_out in place."""
    c = _check_fields(coef, vsq, a_in, a_out, width)
    nz, ny, nx = a_in.shape
    if min(nx, ny, nz) <= 2 * width:
        return a_out

    def shifted(dz, dy, dx):
        return a_in[
            width + dz : nz - width + dz,
            width + dy : ny - width + dy,
            width + dx : nx - width + dx,
        ]

    centre = shifted(0, 0, 0)
    div = c[0] * centre
    for r in range(1, STENCIL_RADIUS + 1):
        ring = (
            shifted(0, 0, r)
            + shifted(0, 0, -r)
            + shifted(0, r, 0)
            + shifted(0, -r, 0)
            + shifted(r, 0, 0)
            + shifted(-r, 0, 0)
        )
        div = div + c[r] * ring

    interior = (
        slice(width, nz - width),
        slice(width, ny - width),
        slice(width, nx - width),
    )
    a_out[interior] = _F(2) * centre - a_out[interior] + vsq[interior] * div
    return a_out


def run_stencil(coef, vsq, a_even, a_odd, steps=DEFAULT_STEPS, width=DEFAULT_WIDTH):
    """Run the stencil for a number of steps, ping-ponging between the two fields."""
    if steps < 0:
        raise ValueError("steps must not be negative")
    for t in range(steps):
        if t % 2 == 0:
            stencil_step(coef, vsq, a_even, a_odd, width)
        else:
            stencil_step(coef, vsq, a_odd, a_even, width)
    return a_even, a_odd


def main(argv: Sequence[str] | None = None) -> int:
    """Run the stencil benchmark and dump the even field as raw float32."""
    parser = argparse.ArgumentParser(prog="kernelbench-stencil")
    parser.add_argument("--nx", type=int, default=NX)
    parser.add_argument("--ny", type=int, default=NY)
    parser.add_argument("--nz", type=int, default=NZ)
    parser.add_argument("--steps", type=int, default=DEFAULT_STEPS)
    parser.add_argument("--width", type=int, default=DEFAULT_WIDTH)
    parser.add_argument("--output", default="stencil_ref_f32.bin")
    args = parser.parse_args(argv)

    if min(args.nx, args.ny, args.nz) <= 0:
        parser.error("grid dimensions must be positive")
    if args.steps < 0:
        parser.error("--steps must not be negative")
    if args.width < STENCIL_RADIUS:
        parser.error(f"--width must be at least {STENCIL_RADIUS}")

    a_even, a_odd, vsq = init_data(args.nx, args.ny, args.nz)
    coef = np.array(DEFAULT_COEFFICIENTS, dtype=np.float32)

    timer = Timer()
    run_stencil(coef, vsq, a_even, a_odd, args.steps, args.width)
    elapsed = timer.elapsed_mcycles()
    print(f"[execution time] {elapsed:0.6f}")

    try:
        with open(os.fspath(args.output), "wb") as fp:
            fp.write(np.ascontiguousarray(a_even, dtype=np.float32).tobytes())
    except OSError:
        print("Failed to open output file!")
        return 0
    print(f"Reference field written: {args.output} ({a_even.nbytes / 1.0e6:.1f} MB)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())