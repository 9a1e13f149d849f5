"""Ray casting against a triangle scene stored in a linear BVH."""

from __future__ import annotations

import argparse
import math
import os
import struct
import sys
from dataclasses import dataclass
from typing import BinaryIO, NamedTuple, Sequence

import numpy as np

from kernelbench.timing import Timer

WIDTH = 900
HEIGHT = 900
FAR = 1e30
TODO_STACK_SIZE = 64

Vec3 = tuple[float, float, float]
Matrix = tuple[tuple[float, float, float, float], ...]

_HEADER = struct.Struct("<2i")
_MATRIX = struct.Struct("<16f")
_COUNT = struct.Struct("<I")
_NODE = struct.Struct("<6fiBBH")
_TRIANGLE = struct.Struct("<9f")


class SceneFormatError(ValueError):
    """A camera or BVH file ended early or is malformed."""


@dataclass
class Ray:
    """A ray with its cached reciprocal direction and current hit state."""

    origin: Vec3
    direction: Vec3
    inv_dir: Vec3
    dir_is_neg: tuple[bool, bool, bool]
    mint: float = 0.0
    maxt: float = FAR
    hit_id: int = 0


@dataclass(frozen=True)
class Triangle:
    """Three vertices and the object id reported on a hit."""

    vertices: tuple[Vec3, Vec3, Vec3]
    id: int


@dataclass(frozen=True)
class BVHNode:
    """Node of a flattened BVH.

    For a leaf, offset is the first triangle index and n_primitives is
    positive; for an interior node, offset is the second child's index.
    """

    bounds: tuple[Vec3, Vec3]
    offset: int
    n_primitives: int
    split_axis: int
    pad: int = 0


class Camera(NamedTuple):
    width: int
    height: int
    camera2world: Matrix
    raster2camera: Matrix


def _sub(a: Vec3, b: Vec3) -> Vec3:
    return (a[0] - b[0], a[1] - b[1], a[2] - b[2])


def _mul(a: Vec3, b: Vec3) -> Vec3:
    return (a[0] * b[0], a[1] * b[1], a[2] * b[2])


def _dot(a: Vec3, b: Vec3) -> float:
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


def _cross(a: Vec3, b: Vec3) -> Vec3:
    return (
        a[1] * b[2] - a[2] * b[1],
        a[2] * b[0] - a[0] * b[2],
        a[0] * b[1] - a[1] * b[0],
    )


def _reciprocal(value: float) -> float:
    if value == 0.0:
        return math.copysign(math.inf, value)
    return 1.0 / value


def _matrix(values) -> Matrix:
    rows = tuple(tuple(float(v) for v in row) for row in values)
    if len(rows) != 4 or any(len(row) != 4 for row in rows):
        raise ValueError("matrix must be 4x4")
    return rows


def _read(fp: BinaryIO, layout: struct.Struct) -> tuple:
    data = fp.read(layout.size)
    if len(data) < layout.size:
        raise SceneFormatError("Unexpected EOF reading scene file")
    return layout.unpack(data)


def load_camera(path) -> Camera:
    """Read image size and the camera-to-world and raster-to-camera matrices."""
    with open(os.fspath(path), "rb") as fp:
        width, height = _read(fp, _HEADER)
        c2w = _read(fp, _MATRIX)
        r2c = _read(fp, _MATRIX)
    return Camera(
        width,
        height,
        tuple(tuple(c2w[4 * i : 4 * i + 4]) for i in range(4)),
        tuple(tuple(r2c[4 * i : 4 * i + 4]) for i in range(4)),
    )


def load_bvh(path) -> tuple[list[BVHNode], list[Triangle]]:
    """Read the BVH nodes and triangles; triangle ids count from 1."""
    with open(os.fspath(path), "rb") as fp:
        (n_nodes,) = _read(fp, _COUNT)
        nodes = []
        for _ in range(n_nodes):
            *b, offset, n_primitives, split_axis, pad = _read(fp, _NODE)
            nodes.append(
                BVHNode(
                    (tuple(b[0:3]), tuple(b[3:6])),
                    offset,
                    n_primitives,
                    split_axis,
                    pad,
                )
            )
        (n_tris,) = _read(fp, _COUNT)
        triangles = []
        for index in range(n_tris):
            v = _read(fp, _TRIANGLE)
            triangles.append(
                Triangle((tuple(v[0:3]), tuple(v[3:6]), tuple(v[6:9])), index + 1)
            )
    return nodes, triangles


def generate_ray(raster2camera, camera2world, x, y) -> Ray:
    """Primary ray through raster position (x, y)."""
    r2c = raster2camera
    c2w = camera2world
    camw = float(r2c[3][3])
    camx = (r2c[0][0] * x + r2c[0][1] * y + r2c[0][3]) / camw
    camy = (r2c[1][0] * x + r2c[1][1] * y + r2c[1][3]) / camw
    camz = float(r2c[2][3]) / camw

    direction = tuple(
        float(c2w[i][0] * camx + c2w[i][1] * camy + c2w[i][2] * camz) for i in range(3)
    )
    w = float(c2w[3][3])
    origin = tuple(float(c2w[i][3]) / w for i in range(3))
    inv_dir = tuple(_reciprocal(d) for d in direction)
    return Ray(
        origin=origin,
        direction=direction,
        inv_dir=inv_dir,
        dir_is_neg=tuple(v < 0 for v in inv_dir),
    )


def bbox_intersect(bounds, ray: Ray) -> bool:
    """Whether the ray's [mint, maxt] span overlaps the box."""
    t0, t1 = ray.mint, ray.maxt
    t_near = _mul(_sub(tuple(bounds[0]), ray.origin), ray.inv_dir)
    t_far = _mul(_sub(tuple(bounds[1]), ray.origin), ray.inv_dir)
    for near, far in zip(t_near, t_far):
        if near > far:
            near, far = far, near
        t0 = max(near, t0)
        t1 = min(far, t1)
    return t0 <= t1


def tri_intersect(triangle: Triangle, ray: Ray) -> bool:
    """Test the ray against a triangle, shortening the ray on a hit."""
    p0, p1, p2 = triangle.vertices
    e1 = _sub(p1, p0)
    e2 = _sub(p2, p0)

    s1 = _cross(ray.direction, e2)
    divisor = _dot(s1, e1)
    if divisor == 0.0:
        return False
    inv_divisor = 1.0 / divisor

    d = _sub(ray.origin, p0)
    b1 = _dot(d, s1) * inv_divisor
    if b1 < 0.0 or b1 > 1.0:
        return False

    s2 = _cross(d, e1)
    b2 = _dot(ray.direction, s2) * inv_divisor
    if b2 < 0.0 or b1 + b2 > 1.0:
        return False

    t = _dot(e2, s2) * inv_divisor
    if t < ray.mint or t > ray.maxt:
        return False

    ray.maxt = t
    ray.hit_id = triangle.id
    return True


def bvh_intersect(nodes: Sequence[BVHNode], triangles: Sequence[Triangle], ray: Ray) -> bool:
    """Find the nearest hit through the BVH, recording it on the ray."""
    if not nodes:
        return False
    hit = False
    todo: list[int] = []
    node_num = 0
    while True:
        node = nodes[node_num]
        if bbox_intersect(node.bounds, ray):
            if node.n_primitives > 0:
                start = node.offset
                for tri in triangles[start : start + node.n_primitives]:
                    if tri_intersect(tri, ray):
                        hit = True
                if not todo:
                    break
                node_num = todo.pop()
            else:
                if len(todo) >= TODO_STACK_SIZE:
                    raise SceneFormatError("BVH is deeper than the traversal stack")
                if ray.dir_is_neg[node.split_axis]:
                    todo.append(node_num + 1)
                    node_num = node.offset
                else:
                    todo.append(node.offset)
                    node_num += 1
        else:
            if not todo:
                break
            node_num = todo.pop()
    return hit


def render(raster2camera, camera2world, nodes, triangles, width=WIDTH, height=HEIGHT):
    """Cast one ray per pixel; returns (depth, ids) arrays of shape (height, width)."""
    if width <= 0 or height <= 0:
        raise ValueError("width and height must be positive")
    r2c = _matrix(raster2camera)
    c2w = _matrix(camera2world)
    depth = np.zeros((height, width), dtype=np.float32)
    ids = np.zeros((height, width), dtype=np.int32)
    for y in range(height):
        for x in range(width):
            ray = generate_ray(r2c, c2w, float(x), float(y))
            bvh_intersect(nodes, triangles, ray)
            depth[y, x] = ray.maxt
            ids[y, x] = ray.hit_id
    return depth, ids


def _colors(ids: np.ndarray) -> np.ndarray:
    values = np.asarray(ids, dtype=np.int64)
    channels = np.zeros(values.shape + (3,), dtype=np.int64)
    for i in range(8):
        for c in range(3):
            bit = (values >> (3 * i + c)) & 1
            channels[..., c] |= bit << (7 - i)
    return (channels & 0xFF).astype(np.uint8)


def id_to_color(hit_id) -> tuple[int, int, int]:
    """Spread the low 24 bits of an id over red, green and blue, high bits first."""
    r, g, b = _colors(np.asarray(int(hit_id)))
    return int(r), int(g), int(b)


def write_image(ids, width, height, path) -> None:
    """Write the id image as a binary PPM with a colour per object id."""
    values = np.asarray(ids)
    if values.size != width * height:
        raise ValueError("ids must hold width * height entries")
    pixels = _colors(values.reshape(height, width))
    with open(os.fspath(path), "wb") as fp:
        fp.write(f"P6\n{width} {height}\n255\n".encode("ascii"))
        fp.write(pixels.tobytes())


def main(argv: Sequence[str] | None = None) -> int:
    """Load a scene, cast primary rays, report timing and save the id image."""
    parser = argparse.ArgumentParser(prog="kernelbench-rt")
    parser.add_argument("scene", nargs="?", default="sponza", help="scene file base name")
    parser.add_argument("--output", default="rt-serial.ppm")
    args = parser.parse_args(argv)

    for loader, suffix in ((load_camera, ".camera"), (load_bvh, ".bvh")):
        path = f"{args.scene}{suffix}"
        try:
            loaded = loader(path)
        except OSError as exc:
            print(f"{path}: {exc.strerror}", file=sys.stderr)
            return 1
        except SceneFormatError as exc:
            print(exc, file=sys.stderr)
            return 1
        if suffix == ".camera":
            camera = loaded
        else:
            nodes, triangles = loaded

    if camera.width <= 0 or camera.height <= 0:
        print("Camera file gives an empty image", file=sys.stderr)
        return 1

    timer = Timer()
    _, ids = render(
        camera.raster2camera,
        camera.camera2world,
        nodes,
        triangles,
        camera.width,
        camera.height,
    )
    elapsed = timer.elapsed_mcycles()
    print(f"[execution time] {elapsed:0.6f}")

    try:
        write_image(ids, camera.width, camera.height, args.output)
    except OSError as exc:
        print(f"{args.output}: {exc.strerror}", file=sys.stderr)
        return 1
    print(f"Wrote image file {args.output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())