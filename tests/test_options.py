import math

import numpy as np
import pytest

from kernelbench.options import binomial_put, black_scholes, cnd, main


def test_cnd_at_zero_is_half():
    assert cnd(0.0) == pytest.approx(0.5, abs=1e-6)


@pytest.mark.parametrize("x", [0.1, 0.7, 1.5, 3.0])
def test_cnd_symmetry(x):
    assert cnd(x) + cnd(-x) == pytest.approx(1.0, abs=1e-6)


def test_cnd_is_monotonic_on_array():
    xs = np.linspace(-4, 4, 41)
    values = cnd(xs)
    assert values.shape == xs.shape
    assert np.all(np.diff(values) >= 0)
    assert values[0] >= 0.0 and values[-1] <= 1.0


def test_black_scholes_benchmark_inputs_within_bounds():
    price = black_scholes([100], [98], [2], [0.02], [5])[0]
    lower = 100 - 98 * math.exp(-0.02 * 2)
    assert lower <= price <= 100


def test_black_scholes_increases_with_spot():
    prices = black_scholes([80, 100, 120], [100] * 3, [1] * 3, [0.05] * 3, [0.2] * 3)
    assert prices[0] < prices[1] < prices[2]


def test_binomial_put_above_lower_bound():
    price = binomial_put([100], [98], [2], [0.02], [5])[0]
    bound = max(0.0, 98 * math.exp(-0.02 * 2) - 100)
    assert bound <= price <= 98


def test_binomial_put_increases_with_strike():
    prices = binomial_put([100] * 3, [90, 100, 110], [1] * 3, [0.05] * 3, [0.2] * 3)
    assert prices[0] < prices[1] < prices[2]


def test_put_call_parity_between_kernels():
    s, x, t, r, v = 100.0, 98.0, 2.0, 0.02, 0.2
    call = black_scholes([s], [x], [t], [r], [v])[0]
    put = binomial_put([s], [x], [t], [r], [v])[0]
    assert call - put == pytest.approx(s - x * math.exp(-r * t), abs=0.15)


def test_deep_out_of_the_money_put_is_worthless():
    price = binomial_put([100], [10], [0.5], [0.02], [0.1])[0]
    assert price == pytest.approx(0.0, abs=1e-6)


def test_identical_options_give_identical_prices():
    prices = binomial_put([100] * 4, [98] * 4, [2] * 4, [0.02] * 4, [5] * 4)
    single = float(binomial_put([100], [98], [2], [0.02], [5])[0])
    assert 0.0 <= single <= 98.0
    assert prices.tolist() == [single] * 4


def test_empty_batch():
    assert black_scholes([], [], [], [], []).shape == (0,)
    assert binomial_put([], [], [], [], []).shape == (0,)


def test_mismatched_lengths_raise():
    with pytest.raises(ValueError):
        black_scholes([100, 100], [98], [2], [0.02], [5])
    with pytest.raises(ValueError):
        binomial_put([100], [98], [2, 2], [0.02], [5])


def test_main_reports_sum(capsys):
    assert main(["black-scholes", "--count", "16"]) == 0
    out = capsys.readouterr().out.splitlines()
    assert out[0].startswith("sum = ")
    assert out[1].startswith("[execution time] ")
    reported = float(out[0].split("=")[1])
    single = float(black_scholes([100], [98], [2], [0.02], [5])[0])
    assert reported == pytest.approx(16 * single, rel=1e-5)


def test_main_binomial(capsys):
    assert main(["binomial-put", "--count", "8"]) == 0
    out = capsys.readouterr().out.splitlines()
    reported = float(out[0].split("=")[1])
    single = float(binomial_put([100], [98], [2], [0.02], [5])[0])
    assert reported == pytest.approx(8 * single, rel=1e-5)


def test_main_rejects_unknown_kernel():
    with pytest.raises(SystemExit):
        main(["heston"])