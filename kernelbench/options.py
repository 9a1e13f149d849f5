"""European option pricing: Black-Scholes calls and binomial-tree puts."""

from __future__ import annotations

import argparse
from typing import Sequence

import numpy as np

from kernelbench.timing import Timer

BINOMIAL_STEPS = 64

_F = np.float32
_INV_SQRT_2PI = _F(0.39894228040)
_COEFFS = (
    _F(0.31938153),
    _F(-0.356563782),
    _F(1.781477937),
    _F(-1.821255978),
    _F(1.330274429),
)

DEFAULT_COUNTS = {
    "black-scholes": 1024 * 8192,
    "binomial-put": 128 * 1024,
}


def cnd(x):
    """Cumulative normal distribution (polynomial approximation) in float32."""
    values = np.asarray(x, dtype=np.float32)
    magnitude = np.abs(values)
    k = _F(1.0) / (_F(1.0) + _F(0.2316419) * magnitude)
    k2 = k * k
    k3 = k2 * k
    k4 = k2 * k2
    k5 = k3 * k2
    w = (
        _COEFFS[0] * k
        + _COEFFS[1] * k2
        + _COEFFS[2] * k3
        + _COEFFS[3] * k4
        + _COEFFS[4] * k5
    )
    w = w * (_INV_SQRT_2PI * np.exp(-magnitude * magnitude * _F(0.5)))
    w = np.where(values > 0, _F(1.0) - w, w).astype(np.float32)
    if values.ndim == 0:
        return float(w)
    return w


def _option_arrays(spot, strike, time, rate, volatility):
    arrays = [
        np.atleast_1d(np.asarray(v, dtype=np.float32))
        for v in (spot, strike, time, rate, volatility)
    ]
    shape = arrays[0].shape
    if len(shape) != 1:
        raise ValueError("option inputs must be one-dimensional")
    if any(a.shape != shape for a in arrays):
        raise ValueError("option inputs must all have the same length")
    return arrays


def black_scholes(spot, strike, time, rate, volatility) -> np.ndarray:
    """Price European call options with the Black-Scholes formula."""
    s, x, t, r, v = _option_arrays(spot, strike, time, rate, volatility)
    sqrt_t = np.sqrt(t)
    d1 = (np.log(s / x) + (r + v * v * _F(0.5)) * t) / (v * sqrt_t)
    d2 = d1 - v * sqrt_t
    return (s * cnd(d1) - x * np.exp(-r * t) * cnd(d2)).astype(np.float32)


def binomial_put(spot, strike, time, rate, volatility) -> np.ndarray:
    """Price European put options on a 64-step binomial tree."""
    s, x, t, r, v = _option_arrays(spot, strike, time, rate, volatility)
    dt = t / _F(BINOMIAL_STEPS)
    u = np.exp(v * np.sqrt(dt))
    d = _F(1.0) / u
    disc = np.exp(r * dt)
    pu = (disc - d) / (u - d)

    exponents = (np.arange(BINOMIAL_STEPS, dtype=np.float32) * 2 - BINOMIAL_STEPS).astype(
        np.float32
    )
    upow = np.power(u[:, None], exponents[None, :])
    values = np.maximum(_F(0.0), x[:, None] - s[:, None] * upow).astype(np.float32)

    pu_col = pu[:, None]
    pd_col = _F(1.0) - pu_col
    disc_col = disc[:, None]
    for j in range(BINOMIAL_STEPS - 1, 0, -1):
        values[:, :j] = (pd_col * values[:, :j] + pu_col * values[:, 1 : j + 1]) / disc_col
    return values[:, 0].copy()


_KERNELS = {
    "black-scholes": black_scholes,
    "binomial-put": binomial_put,
}


def main(argv: Sequence[str] | None = None) -> int:
    """Price a batch of identical options and report the sum and timing."""
    parser = argparse.ArgumentParser(prog="kernelbench-options")
    parser.add_argument("kernel", choices=sorted(_KERNELS))
    parser.add_argument("--count", type=int, default=None, help="number of options")
    args = parser.parse_args(argv)

    count = DEFAULT_COUNTS[args.kernel] if args.count is None else args.count
    if count < 0:
        parser.error("--count must not be negative")

    spot = np.full(count, 100, dtype=np.float32)
    strike = np.full(count, 98, dtype=np.float32)
    time = np.full(count, 2, dtype=np.float32)
    rate = np.full(count, 0.02, dtype=np.float32)
    volatility = np.full(count, 5, dtype=np.float32)

    timer = Timer()
    result = _KERNELS[args.kernel](spot, strike, time, rate, volatility)
    elapsed = timer.elapsed_mcycles()

    total = float(np.sum(result, dtype=np.float64))
    print(f"sum = {total:f}")
    print(f"[execution time] {elapsed:0.6f}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())