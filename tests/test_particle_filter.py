import numpy as np
import pytest

from smc_square import (
    BootstrapFilter,
    GaussianAdapter,
    ParticleFilterDegeneratedError,
    StochasticVolatility,
    ThetaOutput,
    ThetaState,
    TimeSchedule,
)


class Blind(StochasticVolatility):
    """A model under which every observation is impossible."""

    def log_observation(self, x, y_t, theta):
        return np.full(x.shape[0], -np.inf)


@pytest.fixture
def setup(sv_model, sv_data):
    y, times = sv_data
    schedule = TimeSchedule.from_times(times, start_time=0.0)
    pf = BootstrapFilter(sv_model, y, N_x=64)
    return pf, schedule


def test_init_draws_from_prior(rng, setup):
    pf, schedule = setup
    s, out = ThetaState(), ThetaOutput()
    pf.init(rng, schedule[0], s, out)
    assert s.theta.shape == (2,)
    assert s.log_prior == pytest.approx(pf.model.log_prior(s.theta))
    assert s.x.shape == (64, 1)
    assert s.log_likelihood == 0.0
    assert s.log_increments.shape == (pf.n_obs_slots,)


def test_init_accepts_fixed_theta_and_callable(rng, setup):
    pf, schedule = setup
    s, out = ThetaState(), ThetaOutput()
    pf.init(rng, schedule[0], s, out, np.array([0.5, 0.05]))
    np.testing.assert_array_equal(s.theta, [0.5, 0.05])
    pf.init(rng, schedule[0], s, out, lambda g: np.array([1.0, 0.1]))
    np.testing.assert_array_equal(s.theta, [1.0, 0.1])


def test_step_advances_one_element(rng, setup):
    pf, schedule = setup
    s, out = ThetaState(), ThetaOutput()
    pf.init(rng, schedule[0], s, out, np.array([0.5, 0.05]))
    pf.output0(s, out)
    pos = pf.step(rng, 0, schedule, len(schedule), s, out)
    assert pos == 1
    assert np.isfinite(s.log_increments[0])
    assert s.log_likelihood == pytest.approx(s.log_increments[0])
    assert 1 in out.means


def test_step_past_the_end_raises(rng, setup):
    pf, schedule = setup
    s, out = ThetaState(), ThetaOutput()
    pf.init(rng, schedule[0], s, out, np.array([0.5, 0.05]))
    with pytest.raises(ValueError):
        pf.step(rng, len(schedule) - 1, schedule, len(schedule), s, out)


def test_filter_likelihood_is_sum_of_increments(rng, setup):
    pf, schedule = setup
    s, out = ThetaState(), ThetaOutput()
    s.theta = np.array([0.5, 0.05])
    pf.filter(rng, schedule, 0, len(schedule), s, out)
    assert np.isfinite(s.log_likelihood)
    assert s.log_likelihood == pytest.approx(np.sum(s.log_increments))
    assert len(out.means) == len(schedule)


def test_filter_degeneracy_raises(rng, sv_data):
    y, times = sv_data
    schedule = TimeSchedule.from_times(times, start_time=0.0)
    pf = BootstrapFilter(Blind(), y, N_x=16)
    s, out = ThetaState(), ThetaOutput()
    s.theta = np.array([0.5, 0.05])
    with pytest.raises(ParticleFilterDegeneratedError) as info:
        pf.filter(rng, schedule, 0, len(schedule), s, out)
    assert info.value.time == 1.0


def test_correct_never_raises_on_degeneracy(rng, sv_data):
    y, times = sv_data
    schedule = TimeSchedule.from_times(times)
    pf = BootstrapFilter(Blind(), y, N_x=16)
    s, out = ThetaState(), ThetaOutput()
    pf.init(rng, schedule[0], s, out, np.array([0.5, 0.05]))
    pf.correct(rng, schedule[0], s)
    assert s.log_likelihood == -np.inf


def test_sample_path_covers_the_schedule(rng, setup):
    pf, schedule = setup
    s, out = ThetaState(), ThetaOutput()
    s.theta = np.array([0.5, 0.05])
    pf.filter(rng, schedule, 0, len(schedule), s, out)
    pf.sample_path(rng, s, out)
    assert s.path.shape == (len(schedule), 1)
    assert out.path is s.path


def test_prior_proposal_sets_both_densities(rng, setup):
    pf, schedule = setup
    s1, s2, out2 = ThetaState(), ThetaState(), ThetaOutput()
    pf.init(rng, schedule[0], s1, ThetaOutput(), np.array([0.5, 0.05]))
    pf.propose(rng, schedule[0], s1, s2, out2)
    assert s2.log_proposal == pytest.approx(pf.model.log_prior(s2.theta))
    assert s1.log_proposal == pytest.approx(pf.model.log_prior(s1.theta))
    assert s2.log_prior == pytest.approx(s2.log_proposal)


def test_adapted_proposal_is_symmetric(rng, setup):
    pf, schedule = setup
    adapter = GaussianAdapter()
    adapter.thetas = rng.normal(size=(50, 2)) * [1.0, 0.01] + [0.5, 0.05]
    adapter.weights = np.full(50, 1.0 / 50)
    adapter.adapt()

    s1, s2, out2 = ThetaState(), ThetaState(), ThetaOutput()
    s1.theta = np.array([0.5, 0.05])
    pf.propose(rng, schedule[0], s1, s2, out2, adapter)
    assert not np.array_equal(s2.theta, s1.theta)
    assert s1.log_proposal == pytest.approx(s2.log_proposal)


def test_swap_exchanges_contents():
    a, b = ThetaState(), ThetaState()
    a.log_likelihood, b.log_likelihood = 1.0, 2.0
    a.theta = np.array([1.0])
    a.swap(b)
    assert a.log_likelihood == 2.0 and a.theta is None
    assert b.log_likelihood == 1.0 and b.theta[0] == 1.0


def test_copy_is_independent(rng, setup):
    pf, schedule = setup
    s, out = ThetaState(), ThetaOutput()
    pf.init(rng, schedule[0], s, out, np.array([0.5, 0.05]))
    c = s.copy()
    c.theta[0] = 99.0
    c.log_increments[0] = 3.0
    assert s.theta[0] == 0.5
    assert s.log_increments[0] == 0.0
    assert c.nodes[0] is s.nodes[0]
