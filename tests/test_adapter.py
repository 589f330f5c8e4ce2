import numpy as np
import pytest

from smc_square import CholeskyError, GaussianAdapter, ThetaPopulation


def make_population(thetas, log_weights=None):
    thetas = np.asarray(thetas, dtype=float)
    population = ThetaPopulation(thetas.shape[0])
    for s, theta in zip(population.s1s, thetas):
        s.theta = theta
    if log_weights is not None:
        population.log_weights[:] = log_weights
    return population


def test_not_ready_before_add():
    assert not GaussianAdapter().ready()


def test_ready_needs_enough_effective_particles(rng):
    adapter = GaussianAdapter()
    adapter.add(make_population(rng.normal(size=(2, 2))))
    assert not adapter.ready()

    adapter.clear()
    adapter.add(make_population(rng.normal(size=(20, 2))))
    assert adapter.ready()

    adapter.clear()
    lw = np.full(20, -np.inf)
    lw[0] = 0.0
    adapter.add(make_population(rng.normal(size=(20, 2)), lw))
    assert not adapter.ready()


def test_adapt_uses_weighted_moments(rng):
    thetas = rng.normal(size=(400, 2)) * [2.0, 0.5] + [1.0, -1.0]
    adapter = GaussianAdapter(scale=1.0)
    adapter.add(make_population(thetas))
    adapter.adapt()
    np.testing.assert_allclose(adapter.mean, thetas.mean(axis=0))
    np.testing.assert_allclose(adapter.cov, np.cov(thetas, rowvar=False, ddof=0))
    np.testing.assert_allclose(adapter.chol @ adapter.chol.T, adapter.cov)


def test_default_scale(rng):
    thetas = rng.normal(size=(50, 3))
    adapter = GaussianAdapter()
    adapter.add(make_population(thetas))
    adapter.adapt()
    expected = 2.38 ** 2 / 3 * np.cov(thetas, rowvar=False, ddof=0)
    np.testing.assert_allclose(adapter.cov, expected)


def test_propose_returns_random_walk_densities(rng):
    adapter = GaussianAdapter()
    adapter.add(make_population(rng.normal(size=(30, 2))))
    adapter.adapt()
    theta = np.array([0.3, -0.2])
    proposed, log_fwd, log_rev = adapter.propose(rng, theta)
    assert proposed.shape == (2,)
    assert log_fwd == pytest.approx(log_rev)
    assert log_fwd == pytest.approx(adapter.log_density(proposed, theta))


def test_singular_covariance_raises_on_propose(rng):
    # every particle identical: zero covariance
    adapter = GaussianAdapter()
    adapter.add(make_population(np.ones((10, 2))))
    adapter.adapt()
    assert adapter.chol is None
    with pytest.raises(CholeskyError):
        adapter.propose(rng, np.ones(2))


def test_collapsed_population_raises_on_propose(rng):
    # rounding leaves a tiny but positive definite covariance here
    adapter = GaussianAdapter()
    adapter.add(make_population(np.tile([0.5, 0.05], (10, 1))))
    assert adapter.ready()
    adapter.adapt()
    assert adapter.chol is None
    with pytest.raises(CholeskyError):
        adapter.propose(rng, np.array([0.5, 0.05]))


def test_small_but_genuine_spread_is_kept(rng):
    thetas = np.array([0.5, 0.05]) + 1e-4 * rng.normal(size=(20, 2))
    adapter = GaussianAdapter()
    adapter.add(make_population(thetas))
    adapter.adapt()
    assert adapter.chol is not None


def test_jitter_rescues_singular_covariance(rng):
    adapter = GaussianAdapter(jitter=1e-6)
    adapter.add(make_population(np.ones((10, 2))))
    adapter.adapt()
    proposed, _, _ = adapter.propose(rng, np.ones(2))
    assert np.all(np.isfinite(proposed))
