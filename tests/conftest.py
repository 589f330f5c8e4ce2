"""
Shared fixtures for the smc_square test suite.
"""
import numpy as np
import pytest

from smc_square import StochasticVolatility, TimeSchedule


@pytest.fixture
def rng():
    """Seeded generator for reproducible tests."""
    return np.random.default_rng(42)


@pytest.fixture
def two_point_schedule():
    """t0 unobserved start, t1 observed."""
    return TimeSchedule.from_times([1.0], start_time=0.0)


@pytest.fixture
def sv_model():
    return StochasticVolatility()


@pytest.fixture
def sv_data(sv_model):
    """Ten observations of the stochastic volatility model at times 1..10."""
    gen = np.random.default_rng(7)
    times = np.arange(0.0, 11.0)
    x, y = sv_model.simulate(gen, np.array([0.5, 0.05]), times)
    return y[1:], times[1:]
