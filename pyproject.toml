[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kernelbench"
version = "0.1.0"
description = "Serial reference kernels for benchmarking: option pricing, Mandelbrot, stencil, ambient occlusion, ray casting and volume rendering"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = [
    "benchmark",
    "black-scholes",
    "binomial",
    "mandelbrot",
    "stencil",
    "ray tracing",
    "ambient occlusion",
    "volume rendering",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Benchmark",
    "Topic :: Scientific/Engineering :: Mathematics",
    "Topic :: Multimedia :: Graphics :: 3D Rendering",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
kernelbench-options = "kernelbench.options:main"
kernelbench-mandelbrot = "kernelbench.mandelbrot:main"
kernelbench-stencil = "kernelbench.stencil:main"
kernelbench-ao = "kernelbench.ao:main"
kernelbench-rt = "kernelbench.rt:main"
kernelbench-volume = "kernelbench.volume:main"

[tool.hatch.build.targets.wheel]
packages = ["kernelbench"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
