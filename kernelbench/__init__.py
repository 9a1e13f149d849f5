"""Serial reference compute kernels for benchmarking, with a cycle timer."""

__version__ = "0.1.0"