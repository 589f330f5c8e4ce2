import numpy as np

from .exceptions import ParticleFilterDegeneratedError
from .kernels import ess_reduce, logsumexp, multinomial_ancestors, normalised_weights


class AncestryNode:
    """One x-particle value at one schedule point, linked to its parent."""
    __slots__ = ('state', 'parent')

    def __init__(self, state, parent_node=None):
        self.state = state
        self.parent = parent_node

    def get_path(self):
        path = []
        current_node = self
        while current_node is not None:
            path.append(current_node.state)
            current_node = current_node.parent
        return np.array(path[::-1])


class ThetaState:
    """
    Everything one theta-particle owns: its parameter vector, the x-particles
    of its filter with their ancestry, and the likelihood bookkeeping.
    """

    def __init__(self):
        self.theta = None
        self.x = None
        self.log_weights = None
        self.nodes = []
        self.log_likelihood = 0.0
        self.log_prior = 0.0
        self.log_proposal = 0.0
        self.log_increments = None
        self.path = None

    def swap(self, other):
        """Exchanges the contents of two states without copying them."""
        self.__dict__, other.__dict__ = other.__dict__, self.__dict__

    def copy(self):
        # ancestry nodes are never mutated once created, so they can be shared
        new = ThetaState()
        new.theta = None if self.theta is None else self.theta.copy()
        new.x = None if self.x is None else self.x.copy()
        new.log_weights = None if self.log_weights is None else self.log_weights.copy()
        new.nodes = list(self.nodes)
        new.log_likelihood = self.log_likelihood
        new.log_prior = self.log_prior
        new.log_proposal = self.log_proposal
        new.log_increments = None if self.log_increments is None else self.log_increments.copy()
        new.path = None if self.path is None else self.path.copy()
        return new


class ThetaOutput:
    """Output buffer paired with one ThetaState."""

    def __init__(self):
        self.clear()

    def clear(self):
        self.theta = None
        self.means = {}  # index_output -> filtered mean of x
        self.path = None

    def swap(self, other):
        self.__dict__, other.__dict__ = other.__dict__, self.__dict__

    def copy(self):
        new = ThetaOutput()
        new.theta = None if self.theta is None else self.theta.copy()
        new.means = dict(self.means)
        new.path = None if self.path is None else self.path.copy()
        return new


class BootstrapFilter:
    """
    Bootstrap particle filter run inside every theta-particle.

    Args:
        model (StateSpaceModel): transition, observation density and prior.
        y (np.ndarray): observations, y[k] belonging to the k-th observed
                        schedule element.
        N_x (int): number of x-particles.
        threshold (float): relative ESS below which x-particles are resampled.
    """

    def __init__(self, model, y, N_x=300, threshold=0.5):
        if N_x < 1:
            raise ValueError(f"N_x must be positive, got {N_x}")
        self.model = model
        self.y = np.asarray(y, dtype=float)
        self.N_x = N_x
        self.threshold = threshold
        # one slot per observation plus one for trailing unobserved times
        self.n_obs_slots = len(self.y) + 1

    def init(self, rng, now, s, out, init_input=None):
        if init_input is None:
            theta = self.model.sample_prior(rng)
        elif callable(init_input):
            theta = init_input(rng)
        else:
            theta = init_input
        s.theta = np.array(theta, dtype=float)
        s.log_prior = self.model.log_prior(s.theta)

        s.x = self.model.sample_initial(rng, s.theta, self.N_x)
        s.log_weights = np.zeros(self.N_x)
        s.nodes = [AncestryNode(s.x[i]) for i in range(self.N_x)]
        s.log_likelihood = 0.0
        s.log_increments = np.zeros(self.n_obs_slots)
        s.path = None

    def output0(self, s, out):
        out.clear()
        out.theta = s.theta.copy()

    def output(self, now, s, out):
        weights = normalised_weights(s.log_weights)
        out.means[now.index_output] = weights @ s.x

    def correct(self, rng, now, s):
        """Weights the x-particles by the observation at `now`, if any."""
        if not now.is_observed:
            return
        lw = self.model.log_observation(s.x, self.y[now.index_obs], s.theta)
        prev = logsumexp(s.log_weights)
        s.log_weights = s.log_weights + lw
        if np.isfinite(prev):
            incr = logsumexp(s.log_weights) - prev
        else:
            incr = -np.inf
        if np.isnan(incr):
            incr = -np.inf
        s.log_increments[now.index_obs] = incr
        s.log_likelihood += incr

    def resample(self, rng, s):
        """Adaptive resampling of the x-particles; returns ancestor indices."""
        ess, _ = ess_reduce(s.log_weights)
        if ess < self.threshold * self.N_x:
            weights = normalised_weights(s.log_weights)
            a = multinomial_ancestors(weights, rng.random(self.N_x))
            # reset log weights
            s.log_weights = np.zeros(self.N_x)
        else:
            a = np.arange(self.N_x)
        return a

    def step(self, rng, pos, schedule, last, s, out):
        """
        Moves the filter from schedule[pos] to schedule[pos + 1].

        Returns:
            int: the new position.
        """
        if pos + 1 >= last:
            raise ValueError(f"cannot step past position {last - 1}")
        now = schedule[pos]
        nxt = schedule[pos + 1]

        a = self.resample(rng, s)
        x_t = self.model.transition(rng, s.x[a], s.theta, now.time, nxt.time)
        s.nodes = [AncestryNode(x_t[i], s.nodes[a[i]]) for i in range(self.N_x)]
        s.x = x_t

        self.correct(rng, nxt, s)
        self.output(nxt, s, out)
        return pos + 1

    def propose(self, rng, now, s1, s2, out2, adapter=None):
        """
        Proposes a new theta for s2 from s1.

        Without an adapter the proposal is an independent draw from the
        prior. Sets s2.log_prior, s2.log_proposal (forward density) and
        s1.log_proposal (reverse density).
        """
        if adapter is None:
            theta = self.model.sample_prior(rng)
            s2.log_proposal = self.model.log_prior(theta)
            s1.log_proposal = self.model.log_prior(s1.theta)
        else:
            theta, log_fwd, log_rev = adapter.propose(rng, s1.theta)
            s2.log_proposal = log_fwd
            s1.log_proposal = log_rev
        s2.theta = np.array(theta, dtype=float)
        s2.log_prior = self.model.log_prior(s2.theta)
        out2.clear()

    def filter(self, rng, schedule, first, target, s, out):
        """
        Runs the whole filter for s.theta over positions [first, target).

        Raises:
            ParticleFilterDegeneratedError: if the likelihood estimate
                                            collapses to zero.
        """
        now = schedule[first]
        self.init(rng, now, s, out, s.theta)
        self.output0(s, out)
        self.correct(rng, now, s)
        self._check(s, now)
        self.output(now, s, out)

        pos = first
        while pos + 1 < target:
            pos = self.step(rng, pos, schedule, target, s, out)
            self._check(s, schedule[pos])

    def _check(self, s, now):
        if not np.isfinite(s.log_likelihood):
            raise ParticleFilterDegeneratedError(
                f"particle filter degenerated at time {now.time}", time=now.time
            )

    def sample_path(self, rng, s, out):
        """Draws one x-particle by weight and traces back its trajectory."""
        weights = normalised_weights(s.log_weights)
        idx = rng.choice(self.N_x, p=weights)
        path = s.nodes[idx].get_path()
        s.path = path
        out.path = path
