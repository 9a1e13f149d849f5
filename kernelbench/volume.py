"""Single-scattering volume rendering of a voxel density grid by ray marching."""

from __future__ import annotations

import argparse
import math
import os
import sys
from dataclasses import dataclass
from typing import NamedTuple, Sequence

import numpy as np

from kernelbench.timing import Timer

Vec3 = tuple[float, float, float]
Matrix = tuple[tuple[float, float, float, float], ...]

P_MIN: Vec3 = (0.3, -0.2, 0.3)
P_MAX: Vec3 = (1.8, 2.3, 1.8)
LIGHT_POS: Vec3 = (-1.0, 4.0, 1.5)

EMISSION = 0.25
SIGMA_A = 10.0
SIGMA_S = 10.0
MARCH_STEP = 0.025
LIGHT_INTENSITY = 40.0
SHADOW_STEP = 0.2
MIN_ATTENUATION = 0.005
GAMMA = 2.2

_BOX_FAR = 1e30


class VolumeFormatError(ValueError):
    """A camera or density file ended early or is malformed."""


@dataclass(frozen=True)
class Ray:
    """A ray given by its origin and (not necessarily unit) direction."""

    origin: Vec3
    direction: Vec3


class Camera(NamedTuple):
    width: int
    height: int
    raster2camera: Matrix
    camera2world: Matrix


def _add(a: Vec3, b: Vec3) -> Vec3:
    return (a[0] + b[0], a[1] + b[1], a[2] + b[2])


def _sub(a: Vec3, b: Vec3) -> Vec3:
    return (a[0] - b[0], a[1] - b[1], a[2] - b[2])


def _scale(a: Vec3, f: float) -> Vec3:
    return (a[0] * f, a[1] * f, a[2] * f)


def _length(a: Vec3) -> float:
    return math.sqrt(a[0] * a[0] + a[1] * a[1] + a[2] * a[2])


def _distance_squared(a: Vec3, b: Vec3) -> float:
    d = _sub(a, b)
    return d[0] * d[0] + d[1] * d[1] + d[2] * d[2]


def _div(a: float, b: float) -> float:
    """IEEE-style division: zero divisors give infinities or NaN."""
    if b == 0.0:
        if a == 0.0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


def _lerp(t: float, a: float, b: float) -> float:
    return (1.0 - t) * a + t * b


def _clamp(v: int, low: int, high: int) -> int:
    return min(max(v, low), high)


def _matrix(values) -> Matrix:
    rows = tuple(tuple(float(v) for v in row) for row in values)
    if len(rows) != 4 or any(len(row) != 4 for row in rows):
        raise ValueError("matrix must be 4x4")
    return rows


def _tokens(path) -> list[str]:
    with open(os.fspath(path), "r", encoding="ascii", errors="replace") as fp:
        return fp.read().split()


def load_camera(path) -> Camera:
    """Read image size, then the raster-to-camera and camera-to-world matrices."""
    tokens = iter(_tokens(path))
    message = "Unexpected end of file in camera file"
    try:
        width = int(next(tokens))
        height = int(next(tokens))
        values = [float(next(tokens)) for _ in range(32)]
    except (StopIteration, ValueError):
        raise VolumeFormatError(message) from None
    r2c = tuple(tuple(values[4 * i : 4 * i + 4]) for i in range(4))
    c2w = tuple(tuple(values[16 + 4 * i : 16 + 4 * i + 4]) for i in range(4))
    return Camera(width, height, r2c, c2w)


def load_volume(path) -> tuple[np.ndarray, tuple[int, int, int]]:
    """Read the voxel counts and x*y*z densities; returns (densities, counts)."""
    tokens = _tokens(path)
    try:
        n_voxels = tuple(int(t) for t in tokens[:3])
    except ValueError:
        raise VolumeFormatError(
            "Couldn't find resolution at start of density file"
        ) from None
    if len(n_voxels) != 3 or any(n <= 0 for n in n_voxels):
        raise VolumeFormatError("Couldn't find resolution at start of density file")

    count = n_voxels[0] * n_voxels[1] * n_voxels[2]
    values = tokens[3 : 3 + count]
    density = np.empty(count, dtype=np.float32)
    for i in range(count):
        try:
            density[i] = float(values[i])
        except (IndexError, ValueError):
            raise VolumeFormatError(
                f"Unexpected end of file at {i}'th density value"
            ) from None
    return density, n_voxels


def generate_ray(raster2camera, camera2world, x, y) -> Ray:
    """Primary ray through raster position (x, y)."""
    r2c = raster2camera
    c2w = camera2world
    camw = float(r2c[3][3])
    camx = _div(r2c[0][0] * x + r2c[0][1] * y + r2c[0][3], camw)
    camy = _div(r2c[1][0] * x + r2c[1][1] * y + r2c[1][3], camw)
    camz = _div(float(r2c[2][3]), camw)

    direction = tuple(
        float(c2w[i][0] * camx + c2w[i][1] * camy + c2w[i][2] * camz) for i in range(3)
    )
    w = float(c2w[3][3])
    origin = tuple(_div(float(c2w[i][3]), w) for i in range(3))
    return Ray(origin, direction)


def intersect_box(ray: Ray, p_min, p_max) -> tuple[float, float] | None:
    """Parametric span (t0, t1) of the ray inside the box, or None on a miss."""
    t0, t1 = -_BOX_FAR, _BOX_FAR
    for lo, hi, o, d in zip(p_min, p_max, ray.origin, ray.direction):
        near = _div(lo - o, d)
        far = _div(hi - o, d)
        if near > far:
            near, far = far, near
        t0 = max(near, t0)
        t1 = min(far, t1)
    if t0 <= t1:
        return t0, t1
    return None


def _inside(p: Vec3, p_min: Vec3, p_max: Vec3) -> bool:
    return all(lo <= c <= hi for c, lo, hi in zip(p, p_min, p_max))


def density_at(point, p_min, p_max, density, n_voxels) -> float:
    """Trilinearly interpolated density at a point; zero outside the box."""
    if not _inside(point, p_min, p_max):
        return 0.0
    nx, ny, nz = n_voxels
    vox = [
        (c - lo) / (hi - lo) * n - 0.5
        for c, lo, hi, n in zip(point, p_min, p_max, (nx, ny, nz))
    ]
    vx, vy, vz = (int(v) for v in vox)
    dx, dy, dz = vox[0] - vx, vox[1] - vy, vox[2] - vz

    def d(x: int, y: int, z: int) -> float:
        x = _clamp(x, 0, nx - 1)
        y = _clamp(y, 0, ny - 1)
        z = _clamp(z, 0, nz - 1)
        return float(density[z * nx * ny + y * nx + x])

    d00 = _lerp(dx, d(vx, vy, vz), d(vx + 1, vy, vz))
    d10 = _lerp(dx, d(vx, vy + 1, vz), d(vx + 1, vy + 1, vz))
    d01 = _lerp(dx, d(vx, vy, vz + 1), d(vx + 1, vy, vz + 1))
    d11 = _lerp(dx, d(vx, vy + 1, vz + 1), d(vx + 1, vy + 1, vz + 1))
    d0 = _lerp(dy, d00, d10)
    d1 = _lerp(dy, d01, d11)
    return _lerp(dz, d0, d1)


def transmittance(p0, p1, p_min, p_max, sigma_t, density, n_voxels) -> float:
    """Fraction of light surviving the segment from p1 towards p0 through the volume."""
    ray = Ray(tuple(p1), _sub(tuple(p0), tuple(p1)))
    span = intersect_box(ray, p_min, p_max)
    if span is None:
        return 1.0
    t0, t1 = span
    t0 = max(t0, 0.0)

    tau = 0.0
    step_t = SHADOW_STEP / _length(ray.direction)
    t = t0
    pos = _add(ray.origin, _scale(ray.direction, t0))
    dir_step = _scale(ray.direction, step_t)
    while t < t1:
        tau += SHADOW_STEP * sigma_t * density_at(pos, p_min, p_max, density, n_voxels)
        pos = _add(pos, dir_step)
        t += step_t
    return math.exp(-tau)


def raymarch(density, n_voxels, ray: Ray) -> float:
    """Gamma-corrected radiance along the ray through the lit volume."""
    span = intersect_box(ray, P_MIN, P_MAX)
    if span is None:
        return 0.0
    t0, t1 = span
    t0 = max(t0, 0.0)

    sigma_t = SIGMA_A + SIGMA_S
    tau = 0.0
    radiance = 0.0
    step_t = MARCH_STEP / _length(ray.direction)
    t = t0
    pos = _add(ray.origin, _scale(ray.direction, t0))
    dir_step = _scale(ray.direction, step_t)
    while t < t1:
        d = density_at(pos, P_MIN, P_MAX, density, n_voxels)
        atten = math.exp(-tau)
        if atten < MIN_ATTENUATION:
            break
        li = (
            LIGHT_INTENSITY
            / _distance_squared(LIGHT_POS, pos)
            * transmittance(LIGHT_POS, pos, P_MIN, P_MAX, sigma_t, density, n_voxels)
        )
        radiance += MARCH_STEP * atten * d * SIGMA_S * (li + EMISSION)
        tau += MARCH_STEP * sigma_t * d
        pos = _add(pos, dir_step)
        t += step_t
    return radiance ** (1.0 / GAMMA)


def render(density, n_voxels, raster2camera, camera2world, width, height) -> np.ndarray:
    """Ray-march one ray per pixel; returns float32 of shape (height, width)."""
    if width <= 0 or height <= 0:
        raise ValueError("width and height must be positive")
    counts = tuple(int(n) for n in n_voxels)
    if len(counts) != 3 or any(n <= 0 for n in counts):
        raise ValueError("n_voxels must hold three positive counts")
    values = np.asarray(density, dtype=np.float32).ravel().tolist()
    if len(values) < counts[0] * counts[1] * counts[2]:
        raise ValueError("density holds fewer values than the voxel grid")
    r2c = _matrix(raster2camera)
    c2w = _matrix(camera2world)

    image = np.zeros((height, width), dtype=np.float32)
    for y in range(height):
        for x in range(width):
            ray = generate_ray(r2c, c2w, float(x), float(y))
            image[y, x] = raymarch(values, counts, ray)
    return image


def write_ppm(image, width, height, path) -> None:
    """Write intensities as a grey binary PPM, scaling by 255 and clamping."""
    values = np.asarray(image, dtype=np.float32)
    if values.size != width * height:
        raise ValueError("image must hold width * height values")
    scaled = np.nan_to_num(values.reshape(height, width) * np.float32(255.0), nan=0.0)
    grey = np.trunc(np.clip(scaled, 0.0, 255.0)).astype(np.uint8)
    pixels = np.repeat(grey[..., None], 3, axis=-1)
    with open(os.fspath(path), "wb") as fp:
        fp.write(f"P6\n{width} {height}\n255\n".encode("ascii"))
        fp.write(pixels.tobytes())


def main(argv: Sequence[str] | None = None) -> int:
    """Load camera and density, render the volume, report timing and save the image."""
    parser = argparse.ArgumentParser(prog="kernelbench-volume")
    parser.add_argument("camera", nargs="?", default="camera.dat")
    parser.add_argument("density", nargs="?", default="density_lowres.vol")
    parser.add_argument("--output", default="volume-serial.ppm")
    args = parser.parse_args(argv)

    try:
        camera = load_camera(args.camera)
        density, n_voxels = load_volume(args.density)
    except OSError as exc:
        print(f"{exc.filename}: {exc.strerror}", file=sys.stderr)
        return 1
    except VolumeFormatError as exc:
        print(exc, file=sys.stderr)
        return 1

    if camera.width <= 0 or camera.height <= 0:
        print("Camera file gives an empty image", file=sys.stderr)
        return 1

    print(f"width: {camera.width}, height: {camera.height}")
    timer = Timer()
    image = render(
        density,
        n_voxels,
        camera.raster2camera,
        camera.camera2world,
        camera.width,
        camera.height,
    )
    elapsed = timer.elapsed_mcycles()
    print(f"@time of serial run:\t\t\t[{elapsed:.3f}] million cycles")

    for matrix in (camera.raster2camera, camera.camera2world):
        for row in matrix:
            print("".join(f"{v:f} " for v in row))

    try:
        write_ppm(image, camera.width, camera.height, args.output)
    except OSError as exc:
        print(f"{args.output}: {exc.strerror}", file=sys.stderr)
        return 1
    print(f"Wrote image file {args.output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())