import numpy as np
from scipy.linalg import solve_triangular

from .exceptions import CholeskyError
from .kernels import ess_reduce, normalised_weights


class GaussianAdapter:
    """
    Random-walk proposal scaled to the current theta-particle cloud.

    After `adapt`, proposals are theta' = theta + L eps where L L^T is the
    weighted covariance of the population times `scale`. The adapter is
    ready once the population holds enough well-weighted particles to
    estimate that covariance.

    Args:
        scale (float): covariance scaling; defaults to 2.38^2 / dim.
        min_ess (float): ESS the population needs before adapting; defaults
                         to dim + 1.
        jitter (float): added to the covariance diagonal before factorising.
    """

    def __init__(self, scale=None, min_ess=None, jitter=0.0):
        self.scale = scale
        self.min_ess = min_ess
        self.jitter = jitter
        self.mean = None
        self.cov = None
        self.chol = None
        self.clear()

    def clear(self):
        self.thetas = None
        self.weights = None
        self.ess = 0.0

    def add(self, population):
        self.thetas = population.thetas()
        self.weights = normalised_weights(population.log_weights)
        self.ess, _ = ess_reduce(population.log_weights)

    def ready(self):
        if self.thetas is None:
            return False
        n, dim = self.thetas.shape
        min_ess = self.min_ess if self.min_ess is not None else dim + 1
        return n > dim and self.ess >= min_ess

    def adapt(self):
        dim = self.thetas.shape[1]
        scale = self.scale if self.scale is not None else 2.38 ** 2 / dim
        self.mean = self.weights @ self.thetas
        cov = np.atleast_2d(np.cov(self.thetas, rowvar=False, aweights=self.weights, ddof=0))
        self.cov = scale * cov + self.jitter * np.eye(dim)
        # surfaced as CholeskyError by the next proposal
        self.chol = None
        if self._is_singular():
            return
        try:
            self.chol = np.linalg.cholesky(self.cov)
        except np.linalg.LinAlgError:
            self.chol = None

    def _is_singular(self):
        """
        True when the covariance is zero up to rounding, as it is for a
        population collapsed onto copies of one theta.
        """
        eps = np.finfo(float).eps
        magnitude = max(np.trace(self.cov), np.max(self.mean ** 2), np.finfo(float).tiny)
        return np.linalg.eigvalsh(self.cov)[0] <= eps * magnitude

    def log_density(self, theta_to, theta_from):
        """log q(theta_to | theta_from) of the random walk."""
        dim = self.chol.shape[0]
        z = solve_triangular(self.chol, theta_to - theta_from, lower=True)
        log_det = np.sum(np.log(np.diag(self.chol)))
        return -0.5 * (dim * np.log(2 * np.pi) + z @ z) - log_det

    def propose(self, rng, theta):
        """
        Returns:
            tuple: (theta', log q(theta' | theta), log q(theta | theta')).
        """
        if self.chol is None:
            raise CholeskyError("proposal covariance is not positive definite")
        theta = np.asarray(theta, dtype=float)
        proposed = theta + self.chol @ rng.standard_normal(theta.shape[0])
        return proposed, self.log_density(proposed, theta), self.log_density(theta, proposed)
