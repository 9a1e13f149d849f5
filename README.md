# kernelbench

A set of small compute kernels for benchmarking. Each kernel is a plain serial reference version that you can time and use to check results:

- **options** (`kernelbench.options`): European call pricing with Black–Scholes (`black_scholes`) and European put pricing on a 64-step binomial tree (`binomial_put`). Both compute in float32.
- **mandelbrot** (`kernelbench.mandelbrot`): escape-time iteration counts over [-2, 1] × [-1, 1] (`mandelbrot`, `mandel`).
- **stencil** (`kernelbench.stencil`): a 3-D finite-difference wave-equation stencil of radius 3 (`stencil_step`, `run_stencil`). Each step updates the interior of the grid and leaves a halo of `width` cells untouched. The default `width` is 4 and the default number of steps is 6.
- **ao** (`kernelbench.ao`): ambient-occlusion rendering of three spheres resting on a plane (`ao_render`).
- **rt** (`kernelbench.rt`): ray casting through a linear bounding volume hierarchy of triangles, loaded from binary scene files (`load_camera`, `load_bvh`, `render`).
- **volume** (`kernelbench.volume`): single-scattering ray marching through a voxel density grid, loaded from text files (`load_camera`, `load_volume`, `render`).

`kernelbench.timing.Timer` measures elapsed time since it was created or last `reset()`:

- `elapsed_mcycles()` counts nanoseconds as cycles, as if the clock ran at 1 GHz, and returns them in units of 2**20.
- `elapsed_msec()` returns wall-clock milliseconds.

## Installation

```
pip install .
```

The package needs Python 3.10 or later and numpy.

## Commands

Each command runs one kernel, prints `[execution time] …` in millions of cycles and writes its output. The volume command prints `@time of serial run: …` instead.

```
kernelbench-options black-scholes          # prints "sum = …" over 8,388,608 identical options
kernelbench-options binomial-put           # prints "sum = …" over 131,072 identical options
kernelbench-mandelbrot                     # writes mandelbrot-serial.ppm
kernelbench-stencil                        # writes stencil_ref_f32.bin (raw float32 even field)
kernelbench-ao                             # writes ao-serial.ppm
kernelbench-rt [SCENE]                     # reads SCENE.camera and SCENE.bvh (default: sponza), writes rt-serial.ppm
kernelbench-volume [CAMERA] [DENSITY]      # defaults: camera.dat density_lowres.vol, writes volume-serial.ppm
```

Options:

- `kernelbench-options`: `--count N` sets the number of options to price.
- `kernelbench-mandelbrot`: `--width`, `--height`, `--max-iterations` and `--output`. The defaults are 768, 512, 256 and `mandelbrot-serial.ppm`.
- `kernelbench-stencil`: `--nx`, `--ny`, `--nz`, `--steps`, `--width` and `--output`. The grid defaults to 256³.
- `kernelbench-ao`: `--width`, `--height`, `--subsamples` and `--output`. The defaults are 1024, 1024 and 2.
- `kernelbench-rt` and `kernelbench-volume`: `--output`.

## Library use

```python
from kernelbench.options import black_scholes, binomial_put
from kernelbench.mandelbrot import mandelbrot, write_ppm
from kernelbench.timing import Timer

timer = Timer()
calls = black_scholes([100.0], [98.0], [2.0], [0.02], [5.0])
puts = binomial_put([100.0], [98.0], [2.0], [0.02], [5.0])
print(calls, puts, timer.elapsed_mcycles())

counts = mandelbrot(768, 512, 256)   # int32 array of shape (height, width)
write_ppm(counts, "mandelbrot.ppm")
```

## Input files

- **rt** reads little-endian binary files.
  - `SCENE.camera` holds two int32 values (width and height), followed by the 4×4 float32 camera-to-world matrix and then the 4×4 raster-to-camera matrix.
  - `SCENE.bvh` holds a uint32 node count, then each node, then a uint32 triangle count, then each triangle. A node is six float32 bounds, an int32 offset and three small integers. A triangle is nine float32 values.
  - A file that ends early raises `SceneFormatError`.
- **volume** reads whitespace-separated text.
  - The camera file holds the width and height, followed by the raster-to-camera matrix and then the camera-to-world matrix.
  - The density file holds three voxel counts followed by x·y·z density values.
  - A malformed file raises `VolumeFormatError`.

## Image output

All images are binary PPM (`P6`) with a maximum value of 255:

- Mandelbrot pixels are grey 240 when the iteration count is odd and grey 20 when it is even.
- Ray-casting pixels take their colour from the bits of the hit triangle's id (`id_to_color`).
- Ambient-occlusion and volume pixels are grey intensities, scaled to 0–255 and clamped.

## What it does not do

- No scene, camera or density data files are included. The `rt` and `volume` commands need you to supply them.
- Every kernel is a single-threaded reference. There are no parallel or task-based variants to compare against.

## Running the tests

```
pip install .[test]
pytest
```