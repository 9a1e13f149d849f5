"""Mandelbrot set escape-time rendering with a PPM writer."""

from __future__ import annotations

import argparse
import os
from typing import Sequence

import numpy as np

from kernelbench.timing import Timer

DEFAULT_WIDTH = 768
DEFAULT_HEIGHT = 512
DEFAULT_MAX_ITERATIONS = 256

_F = np.float32
_X0, _X1 = _F(-2.0), _F(1.0)
_Y0, _Y1 = _F(-1.0), _F(1.0)
_ESCAPE = _F(4.0)
_TWO = _F(2.0)

_ODD_GREY = 240
_EVEN_GREY = 20


def _iterate(c_re: np.ndarray, c_im: np.ndarray, count: int) -> np.ndarray:
    """Escape-time iteration counts for arrays of points, in float32."""
    if count < 0:
        raise ValueError("iteration count must not be negative")
    z_re = c_re.astype(np.float32, copy=True)
    z_im = c_im.astype(np.float32, copy=True)
    counts = np.full(c_re.shape, count, dtype=np.int32)
    active = np.ones(c_re.shape, dtype=bool)

    for i in range(count):
        escaped = active & (z_re * z_re + z_im * z_im > _ESCAPE)
        counts[escaped] = i
        active &= ~escaped
        if not active.any():
            break
        new_re = z_re * z_re - z_im * z_im
        new_im = _TWO * z_re * z_im
        z_re = np.where(active, c_re + new_re, z_re).astype(np.float32)
        z_im = np.where(active, c_im + new_im, z_im).astype(np.float32)
    return counts


def mandel(c_re, c_im, count) -> int:
    """Number of iterations before the orbit of c escapes, capped at count."""
    re = np.array([c_re], dtype=np.float32)
    im = np.array([c_im], dtype=np.float32)
    return int(_iterate(re, im, int(count))[0])


def mandelbrot(
    width=DEFAULT_WIDTH, height=DEFAULT_HEIGHT, max_iterations=DEFAULT_MAX_ITERATIONS
) -> np.ndarray:
    """Iteration counts over [-2, 1] x [-1, 1], as an array of shape (height, width)."""
    if width <= 0 or height <= 0:
        raise ValueError("width and height must be positive")
    if max_iterations < 0:
        raise ValueError("max_iterations must not be negative")

    dx = (_X1 - _X0) / _F(width)
    dy = (_Y1 - _Y0) / _F(height)
    xs = (_X0 + np.arange(width, dtype=np.float32) * dx).astype(np.float32)
    ys = (_Y0 + np.arange(height, dtype=np.float32) * dy).astype(np.float32)
    c_re = np.broadcast_to(xs[None, :], (height, width)).copy()
    c_im = np.broadcast_to(ys[:, None], (height, width)).copy()
    return _iterate(c_re, c_im, int(max_iterations))


def write_ppm(counts, path) -> None:
    """Write iteration counts as a binary PPM, alternating two greys by parity."""
    grid = np.asarray(counts)
    if grid.ndim != 2:
        raise ValueError("counts must be a two-dimensional array")
    height, width = grid.shape
    grey = np.where(grid & 1, _ODD_GREY, _EVEN_GREY).astype(np.uint8)
    pixels = np.repeat(grey[..., None], 3, axis=-1)
    with open(os.fspath(path), "wb") as fp:
        fp.write(f"P6\n{width} {height}\n255\n".encode("ascii"))
        fp.write(pixels.tobytes())


def main(argv: Sequence[str] | None = None) -> int:
    """Render the Mandelbrot set, report timing and save the image."""
    parser = argparse.ArgumentParser(prog="kernelbench-mandelbrot")
    parser.add_argument("--width", type=int, default=DEFAULT_WIDTH)
    parser.add_argument("--height", type=int, default=DEFAULT_HEIGHT)
    parser.add_argument("--max-iterations", type=int, default=DEFAULT_MAX_ITERATIONS)
    parser.add_argument("--output", default="mandelbrot-serial.ppm")
    args = parser.parse_args(argv)

    if args.width <= 0 or args.height <= 0:
        parser.error("--width and --height must be positive")
    if args.max_iterations < 0:
        parser.error("--max-iterations must not be negative")

    timer = Timer()
    counts = mandelbrot(args.width, args.height, args.max_iterations)
    elapsed = timer.elapsed_mcycles()
    print(f"[execution time] {elapsed:0.6f}")

    write_ppm(counts, args.output)
    print(f"Wrote image file {args.output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())