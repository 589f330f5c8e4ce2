import numpy as np

from .kernels import ess_reduce, multinomial_ancestors, normalised_weights, systematic_ancestors


class ESSResampler:
    """
    Resamples theta-particles at observed schedule points once their ESS
    drops below `threshold * size`.

    Args:
        threshold (float): relative ESS threshold in [0, 1].
        method (str): 'systematic' or 'multinomial'.
    """
    methods = ('systematic', 'multinomial')

    def __init__(self, threshold=0.5, method='systematic'):
        if method not in self.methods:
            raise ValueError(f"unknown resampling method {method!r}, expected one of {self.methods}")
        self.threshold = threshold
        self.method = method

    def is_triggered(self, log_weights):
        ess, _ = ess_reduce(log_weights)
        return ess < self.threshold * log_weights.shape[0]

    def ancestors(self, rng, log_weights):
        weights = normalised_weights(log_weights)
        if self.method == 'systematic':
            return systematic_ancestors(weights, rng.random())
        return multinomial_ancestors(weights, rng.random(weights.shape[0]))

    def resample(self, rng, now, population):
        """
        Returns:
            bool: whether the population was resampled.
        """
        if not (now.is_observed and self.is_triggered(population.log_weights)):
            population.ancestors[:] = np.arange(population.size)
            return False

        a = self.ancestors(rng, population.log_weights)
        population.ancestors[:] = a
        population.gather(a)
        # weights stay on the scale of the running marginal likelihood
        population.log_weights[:] = population.log_likelihood
        return True
