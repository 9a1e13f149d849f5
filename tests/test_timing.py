import time

from kernelbench.timing import Timer


class _FakeCounter:
    def __init__(self, values):
        self._values = iter(values)

    def __call__(self):
        return next(self._values)


def test_elapsed_mcycles_uses_mebi_cycles():
    counter = _FakeCounter([0, 1024 * 1024 * 3])
    timer = Timer(cycle_counter=counter, wall_clock=lambda: 0.0)
    assert timer.elapsed_mcycles() == 3.0


def test_elapsed_msec_converts_seconds():
    wall = _FakeCounter([10.0, 12.5])
    timer = Timer(cycle_counter=lambda: 0, wall_clock=wall)
    assert timer.elapsed_msec() == 2500.0


def test_reset_restarts_measurement():
    counter = _FakeCounter([0, 1024 * 1024 * 4, 1024 * 1024 * 5])
    timer = Timer(cycle_counter=counter, wall_clock=lambda: 0.0)
    timer.reset()
    assert timer.elapsed_mcycles() == 1.0


def test_real_clock_advances_after_sleep():
    timer = Timer()
    time.sleep(0.02)
    assert timer.elapsed_msec() >= 15.0
    assert timer.elapsed_mcycles() > 0.0


def test_elapsed_is_monotonic():
    timer = Timer()
    first = timer.elapsed_mcycles()
    time.sleep(0.001)
    second = timer.elapsed_mcycles()
    assert second >= first >= 0.0