import math

import numpy as np
import pytest

from kernelbench.volume import (
    P_MAX,
    P_MIN,
    Ray,
    VolumeFormatError,
    density_at,
    generate_ray,
    intersect_box,
    load_camera,
    load_volume,
    main,
    raymarch,
    render,
    transmittance,
    write_ppm,
)

IDENTITY = tuple(tuple(1.0 if i == j else 0.0 for j in range(4)) for i in range(4))

# Raster (x, y) maps to camera direction (x, y, 1).
R2C = (
    (1.0, 0.0, 0.0, 0.0),
    (0.0, 1.0, 0.0, 0.0),
    (0.0, 0.0, 1.0, 1.0),
    (0.0, 0.0, 0.0, 1.0),
)
# Camera sits in front of the volume box, looking along +z.
C2W = (
    (1.0, 0.0, 0.0, 1.05),
    (0.0, 1.0, 0.0, 1.05),
    (0.0, 0.0, 1.0, -5.0),
    (0.0, 0.0, 0.0, 1.0),
)


def _matrix_text(matrix):
    return "\n".join(" ".join(str(v) for v in row) for row in matrix)


def _write_camera(path, width, height, r2c, c2w):
    path.write_text(f"{width} {height}\n{_matrix_text(r2c)}\n{_matrix_text(c2w)}\n")


def _uniform(value, n=2):
    return [value] * (n * n * n), (n, n, n)


def test_load_camera_round_trip(tmp_path):
    path = tmp_path / "camera.dat"
    _write_camera(path, 3, 2, R2C, C2W)
    camera = load_camera(path)
    assert (camera.width, camera.height) == (3, 2)
    assert camera.raster2camera == R2C
    assert camera.camera2world == C2W


def test_load_camera_truncated(tmp_path):
    path = tmp_path / "camera.dat"
    path.write_text("3 2\n1 0 0 0\n")
    with pytest.raises(VolumeFormatError, match="Unexpected end of file in camera file"):
        load_camera(path)


def test_load_volume_round_trip(tmp_path):
    path = tmp_path / "d.vol"
    values = [0.25 * i for i in range(12)]
    path.write_text("3 2 2\n" + " ".join(str(v) for v in values))
    density, n_voxels = load_volume(path)
    assert n_voxels == (3, 2, 2)
    assert density.tolist() == pytest.approx(values)


def test_load_volume_missing_resolution(tmp_path):
    path = tmp_path / "d.vol"
    path.write_text("2 2\n")
    with pytest.raises(VolumeFormatError, match="resolution"):
        load_volume(path)


def test_load_volume_truncated_reports_index(tmp_path):
    path = tmp_path / "d.vol"
    path.write_text("2 2 2\n1 1 1 1 1\n")
    with pytest.raises(VolumeFormatError, match="at 5'th density value"):
        load_volume(path)


def test_generate_ray_identity():
    ray = generate_ray(IDENTITY, IDENTITY, 3.0, 4.0)
    assert ray.origin == (0.0, 0.0, 0.0)
    assert ray.direction == (3.0, 4.0, 0.0)


def test_generate_ray_translation():
    ray = generate_ray(R2C, C2W, 0.0, 0.0)
    assert ray.origin == (1.05, 1.05, -5.0)
    assert ray.direction == (0.0, 0.0, 1.0)


def test_intersect_box_hit_span():
    ray = Ray((0.0, 0.0, 0.0), (1.0, 1.0, 1.0))
    span = intersect_box(ray, (1.0, 1.0, 1.0), (2.0, 2.0, 2.0))
    assert span == pytest.approx((1.0, 2.0))


def test_intersect_box_miss():
    ray = Ray((0.0, 0.0, 0.0), (-1.0, 0.0, 0.0))
    assert intersect_box(ray, (1.0, 1.0, 1.0), (2.0, 2.0, 2.0)) is None


def test_intersect_box_axis_parallel_inside_slab():
    ray = Ray((1.5, 1.5, 0.0), (0.0, 0.0, 1.0))
    t0, t1 = intersect_box(ray, (1.0, 1.0, 1.0), (2.0, 2.0, 2.0))
    assert t0 == pytest.approx(1.0)
    assert t1 == pytest.approx(2.0)


def test_density_outside_box_is_zero():
    density, n = _uniform(1.0)
    assert density_at((5.0, 5.0, 5.0), P_MIN, P_MAX, density, n) == 0.0


def test_density_uniform_grid_interpolates_to_constant():
    density, n = _uniform(0.7, n=3)
    for point in [(0.5, 0.1, 0.9), (1.7, 2.2, 0.31), (1.0, 1.0, 1.0)]:
        assert density_at(point, P_MIN, P_MAX, density, n) == pytest.approx(0.7)


def test_density_stays_within_grid_range():
    density = [float(i) for i in range(8)]
    value = density_at((1.0, 1.0, 1.0), P_MIN, P_MAX, density, (2, 2, 2))
    assert min(density) <= value <= max(density)


def test_transmittance_empty_volume_is_one():
    density, n = _uniform(0.0)
    assert transmittance((-1.0, 4.0, 1.5), (1.0, 1.0, 1.0), P_MIN, P_MAX, 20.0, density, n) == 1.0


def test_transmittance_dense_volume_attenuates():
    density, n = _uniform(1.0)
    value = transmittance((-1.0, 4.0, 1.5), (1.0, 1.0, 1.0), P_MIN, P_MAX, 20.0, density, n)
    assert 0.0 < value < 1.0


def test_transmittance_segment_missing_box():
    density, n = _uniform(1.0)
    value = transmittance((10.0, 10.0, 10.0), (10.0, 20.0, 10.0), P_MIN, P_MAX, 20.0, density, n)
    assert value == 1.0


def test_raymarch_miss_is_zero():
    density, n = _uniform(1.0)
    assert raymarch(density, n, Ray((0.0, 0.0, -5.0), (0.0, 0.0, -1.0))) == 0.0


def test_raymarch_empty_volume_is_zero():
    density, n = _uniform(0.0)
    assert raymarch(density, n, Ray((1.05, 1.05, -5.0), (0.0, 0.0, 1.0))) == 0.0


def test_raymarch_denser_volume_is_not_darker_at_entry():
    n = (2, 2, 2)
    ray = Ray((1.05, 1.05, -5.0), (0.0, 0.0, 1.0))
    thin = raymarch([0.05] * 8, n, ray)
    assert thin > 0.0
    assert math.isfinite(thin)


def test_render_hit_and_miss():
    density, n = _uniform(1.0)
    image = render(density, n, R2C, C2W, 2, 1)
    assert image.shape == (1, 2)
    assert image.dtype == np.float32
    assert image[0, 0] > 0.0
    assert image[0, 1] == 0.0


def test_render_rejects_short_density():
    with pytest.raises(ValueError):
        render([1.0, 1.0], (2, 2, 2), R2C, C2W, 1, 1)


def test_write_ppm_clamps_and_repeats(tmp_path):
    path = tmp_path / "out.ppm"
    write_ppm(np.array([-1.0, 0.5, 2.0], dtype=np.float32), 3, 1, path)
    data = path.read_bytes()
    header = b"P6\n3 1\n255\n"
    assert data.startswith(header)
    assert data[len(header):] == bytes([0, 0, 0, 127, 127, 127, 255, 255, 255])


def test_write_ppm_size_mismatch(tmp_path):
    with pytest.raises(ValueError):
        write_ppm([0.0, 0.0], 3, 1, tmp_path / "out.ppm")


def test_main_end_to_end(tmp_path, capsys):
    camera = tmp_path / "camera.dat"
    _write_camera(camera, 2, 1, R2C, C2W)
    volume = tmp_path / "d.vol"
    volume.write_text("2 2 2\n" + " ".join(["1.0"] * 8))
    output = tmp_path / "volume.ppm"

    assert main([str(camera), str(volume), "--output", str(output)]) == 0
    data = output.read_bytes()
    header = b"P6\n2 1\n255\n"
    assert data.startswith(header)
    assert len(data) == len(header) + 6
    assert data[len(header) + 3 :] == bytes(3)
    out = capsys.readouterr().out
    assert "width: 2, height: 1" in out
    assert f"Wrote image file {output}" in out


def test_main_missing_camera(tmp_path, capsys):
    missing = tmp_path / "nope.dat"
    assert main([str(missing), str(tmp_path / "d.vol")]) == 1
    assert str(missing) in capsys.readouterr().err