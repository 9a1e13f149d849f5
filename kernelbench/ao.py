"""Ambient-occlusion rendering of three spheres resting on a plane."""

from __future__ import annotations

import argparse
import os
from dataclasses import dataclass
from typing import Iterator, NamedTuple, Sequence

import numpy as np

from kernelbench.timing import Timer

WIDTH = 1024
HEIGHT = 1024
NSUBSAMPLES = 2
NAO_SAMPLES = 8

_F = np.float32
_PI = _F(3.1415926535)
_FAR = _F(1.0e17)
_EPS = _F(0.0001)
_PARALLEL_LIMIT = _F(1.0e-17)
_BASIS_LIMIT = _F(0.6)


@dataclass(frozen=True, eq=False)
class Vec:
    """Three-component float32 vector; components may be scalars or arrays."""

    x: np.ndarray
    y: np.ndarray
    z: np.ndarray

    def __post_init__(self) -> None:
        for name in ("x", "y", "z"):
            object.__setattr__(self, name, np.asarray(getattr(self, name), dtype=np.float32))

    def __iter__(self) -> Iterator[np.ndarray]:
        yield self.x
        yield self.y
        yield self.z

    def __add__(self, other: Vec) -> Vec:
        return Vec(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: Vec) -> Vec:
        return Vec(self.x - other.x, self.y - other.y, self.z - other.z)

    def __mul__(self, other) -> Vec:
        if isinstance(other, Vec):
            return Vec(self.x * other.x, self.y * other.y, self.z * other.z)
        factor = np.asarray(other, dtype=np.float32)
        return Vec(self.x * factor, self.y * factor, self.z * factor)

    __rmul__ = __mul__

    def dot(self, other: Vec) -> np.ndarray:
        """Scalar product."""
        return self.x * other.x + self.y * other.y + self.z * other.z

    def cross(self, other: Vec) -> Vec:
        """Vector product."""
        return Vec(
            self.y * other.z - self.z * other.y,
            self.z * other.x - self.x * other.z,
            self.x * other.y - self.y * other.x,
        )

    def normalized(self) -> Vec:
        """This vector scaled to unit length."""
        with np.errstate(divide="ignore", invalid="ignore"):
            inv_len = _F(1.0) / np.sqrt(self.dot(self))
        return self * inv_len


@dataclass(frozen=True)
class _Sphere:
    center: Vec
    radius: np.float32


@dataclass(frozen=True)
class _Plane:
    point: Vec
    normal: Vec


_PLANE = _Plane(Vec(0.0, -0.5, 0.0), Vec(0.0, 1.0, 0.0))
_SPHERES = (
    _Sphere(Vec(-2.0, 0.0, -3.5), _F(0.5)),
    _Sphere(Vec(-0.5, 0.0, -3.0), _F(0.5)),
    _Sphere(Vec(1.0, 0.0, -2.2), _F(0.5)),
)

# Every occlusion sample uses the same fixed direction in the local frame.
_THETA = np.sqrt(_F(1.0))
_PHI = _F(2.0 * float(_F(2.0) * _PI) / 2.0 * 1.1)
_SAMPLE_X = _F(np.cos(_PHI) * _THETA)
_SAMPLE_Y = _F(np.sin(_PHI) * _THETA)
_SAMPLE_Z = np.sqrt(_F(1.0) - _THETA * _THETA)


class _Hit(NamedTuple):
    t: np.ndarray
    hit: np.ndarray
    point: Vec
    normal: Vec


def _select(mask: np.ndarray, chosen: Vec, current: Vec) -> Vec:
    return Vec(*(np.where(mask, a, b) for a, b in zip(chosen, current)))


def _trace(origin: Vec, direction: Vec) -> _Hit:
    """Nearest hit of rays against the spheres, then the plane."""
    shape = np.broadcast_shapes(*(np.shape(c) for c in (*origin, *direction)))
    t = np.full(shape, _FAR, dtype=np.float32)
    hit = np.zeros(shape, dtype=bool)
    point = Vec(*(np.zeros(shape, dtype=np.float32) for _ in range(3)))
    normal = Vec(*(np.zeros(shape, dtype=np.float32) for _ in range(3)))

    with np.errstate(all="ignore"):
        for sphere in _SPHERES:
            rs = origin - sphere.center
            b = rs.dot(direction)
            c = rs.dot(rs) - sphere.radius * sphere.radius
            d = b * b - c
            candidate = -b - np.sqrt(d)
            take = (d > 0) & (candidate > 0) & (candidate < t)
            if not take.any():
                continue
            p = origin + direction * candidate
            n = (p - sphere.center).normalized()
            t = np.where(take, candidate, t)
            hit |= take
            point = _select(take, p, point)
            normal = _select(take, n, normal)

        offset = -_PLANE.point.dot(_PLANE.normal)
        v = direction.dot(_PLANE.normal)
        candidate = -(origin.dot(_PLANE.normal) + offset) / v
        take = (np.abs(v) >= _PARALLEL_LIMIT) & (candidate > 0) & (candidate < t)
        if take.any():
            p = origin + direction * candidate
            t = np.where(take, candidate, t)
            hit |= take
            point = _select(take, p, point)
            normal = _select(take, _PLANE.normal, normal)

    return _Hit(t, hit, point, normal)


def _ortho_basis(n: Vec) -> tuple[Vec, Vec, Vec]:
    def inside(c):
        return (c < _BASIS_LIMIT) & (c > -_BASIS_LIMIT)

    use_x = inside(n.x)
    use_y = ~use_x & inside(n.y)
    use_z = ~use_x & ~use_y & inside(n.z)
    use_x = ~(use_y | use_z)
    seed = Vec(use_x.astype(np.float32), use_y.astype(np.float32), use_z.astype(np.float32))
    b0 = seed.cross(n).normalized()
    b1 = n.cross(b0).normalized()
    return b0, b1, n


def _ambient_occlusion(point: Vec, normal: Vec) -> np.ndarray:
    origin = point + normal * _EPS
    b0, b1, b2 = _ortho_basis(normal)
    direction = b0 * _SAMPLE_X + b1 * _SAMPLE_Y + b2 * _SAMPLE_Z
    samples = NAO_SAMPLES * NAO_SAMPLES
    # All samples share one direction, so each one gives the same answer.
    occlusion = _trace(origin, direction).hit.astype(np.float32) * _F(samples)
    return (_F(samples) - occlusion) / _F(samples)


def ao_render(width=WIDTH, height=HEIGHT, nsubsamples=NSUBSAMPLES) -> np.ndarray:
    """Render the scene; returns float32 RGB of shape (height, width, 3)."""
    if width <= 0 or height <= 0:
        raise ValueError("width and height must be positive")
    if nsubsamples <= 0:
        raise ValueError("nsubsamples must be positive")

    ys, xs = np.meshgrid(
        np.arange(height, dtype=np.float32),
        np.arange(width, dtype=np.float32),
        indexing="ij",
    )
    half_w = _F(width) / _F(2.0)
    half_h = _F(height) / _F(2.0)
    aspect = _F(width) / _F(height)
    origin = Vec(0.0, 0.0, 0.0)
    image = np.zeros((height, width), dtype=np.float32)

    for u in range(nsubsamples):
        for v in range(nsubsamples):
            px = (xs + _F(u) / _F(nsubsamples) - half_w) / half_w
            py = -(ys + _F(v) / _F(nsubsamples) - half_h) / half_h
            px = px * aspect
            direction = Vec(px, py, np.full_like(px, -1.0)).normalized()
            primary = _trace(origin, direction)
            ret = np.where(
                primary.hit, _ambient_occlusion(primary.point, primary.normal), _F(0.0)
            )
            image += ret.astype(np.float32)

    image /= _F(nsubsamples * nsubsamples)
    return np.repeat(image[..., None], 3, axis=-1)


def clamp_channel(value):
    """Map an intensity in [0, 1] to a byte, truncating and clamping to 0..255."""
    scaled = np.trunc(np.asarray(value, dtype=np.float64) * 255.5)
    clamped = np.clip(scaled, 0, 255).astype(np.uint8)
    if clamped.ndim == 0:
        return int(clamped)
    return clamped


def save_ppm(image, path) -> None:
    """Write a float RGB image of shape (height, width, 3) as a binary PPM."""
    pixels = np.asarray(image)
    if pixels.ndim != 3 or pixels.shape[2] != 3:
        raise ValueError("image must have shape (height, width, 3)")
    height, width, _ = pixels.shape
    data = clamp_channel(pixels)
    with open(os.fspath(path), "wb") as fp:
        fp.write(f"P6\n{width} {height}\n255\n".encode("ascii"))
        fp.write(np.ascontiguousarray(data).tobytes())


def main(argv: Sequence[str] | None = None) -> int:
    """Render the ambient-occlusion scene, report timing and save the image."""
    parser = argparse.ArgumentParser(prog="kernelbench-ao")
    parser.add_argument("--width", type=int, default=WIDTH)
    parser.add_argument("--height", type=int, default=HEIGHT)
    parser.add_argument("--subsamples", type=int, default=NSUBSAMPLES)
    parser.add_argument("--output", default="ao-serial.ppm")
    args = parser.parse_args(argv)

    if args.width <= 0 or args.height <= 0:
        parser.error("--width and --height must be positive")
    if args.subsamples <= 0:
        parser.error("--subsamples must be positive")

    timer = Timer()
    image = ao_render(args.width, args.height, args.subsamples)
    elapsed = timer.elapsed_mcycles()
    print(f"[execution time] {elapsed:0.6f}")

    try:
        save_ppm(image, args.output)
    except OSError as exc:
        parser.exit(1, f"{args.output}: {exc.strerror}\n")
    print(f"Wrote image file {args.output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())