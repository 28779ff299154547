import numpy as np

from partixel.simulation.noise import smooth_noise


def test_noise_range_over_grid():
    xs, ys = np.meshgrid(np.linspace(-500, 1500, 80), np.linspace(-300, 900, 60))
    for t in (0.0, 1.7, 42.0, 1.7e6):
        values = smooth_noise(xs, ys, 0.02, t)
        assert values.shape == xs.shape
        assert np.all(values >= 0.0)
        assert np.all(values <= 1.0)


def test_noise_is_deterministic():
    xs = np.linspace(0, 720, 200)
    ys = np.linspace(0, 480, 200)
    first = smooth_noise(xs, ys, 0.02, 12.5)
    second = smooth_noise(xs, ys, 0.02, 12.5)
    assert np.array_equal(first, second)


def test_scalar_inputs_return_float():
    value = smooth_noise(10.0, 20.0, 0.02, 3.0)
    assert isinstance(value, float)
    assert value == smooth_noise(np.array([10.0]), np.array([20.0]), 0.02, 3.0)[0]


def test_noise_is_continuous_in_space_and_time():
    rng = np.random.default_rng(7)
    xs = rng.uniform(0, 720, 500)
    ys = rng.uniform(0, 480, 500)
    base = smooth_noise(xs, ys, 0.02, 5.0)

    assert np.max(np.abs(smooth_noise(xs + 1e-3, ys, 0.02, 5.0) - base)) < 1e-3
    assert np.max(np.abs(smooth_noise(xs, ys + 1e-3, 0.02, 5.0) - base)) < 1e-3
    assert np.max(np.abs(smooth_noise(xs, ys, 0.02, 5.0 + 1e-4) - base)) < 1e-3


def test_noise_crosses_lattice_boundaries_smoothly():
    # frequency 1 puts integer x exactly on lattice lines
    xs = np.array([2.0 - 1e-7, 2.0, 2.0 + 1e-7])
    values = smooth_noise(xs, np.full(3, 0.5), 1.0, 0.0)
    assert np.ptp(values) < 1e-5


def test_noise_drifts_with_time():
    xs = np.linspace(0, 720, 50)
    ys = np.linspace(0, 480, 50)
    assert not np.allclose(smooth_noise(xs, ys, 0.02, 0.0), smooth_noise(xs, ys, 0.02, 10.0))
