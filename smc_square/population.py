import numpy as np

from .particle_filter import ThetaOutput, ThetaState


class ThetaPopulation:
    """
    The population of theta-particles the sampler mutates.

    Slot p owns s1s[p] and out1s[p]. The pair (s2, out2) is scratch space
    for one proposal at a time; `scratch(n)` hands out further pairs for
    workers that propose concurrently.

    Args:
        size (int): number of theta-particles, fixed for the run.
        n_obs_slots (int): number of observation slots of log_increments.
    """

    def __init__(self, size, n_obs_slots=1):
        if size < 1:
            raise ValueError(f"population size must be positive, got {size}")
        self.size = size
        self.s1s = [ThetaState() for _ in range(size)]
        self.out1s = [ThetaOutput() for _ in range(size)]
        self.log_weights = np.zeros(size)
        self.ancestors = np.arange(size)
        self.ess = float(size)
        self.s2 = ThetaState()
        self.out2 = ThetaOutput()
        self._scratch = []

        self.log_likelihood = 0.0
        self.log_increments = np.zeros(n_obs_slots)

    def __len__(self):
        return self.size

    def __repr__(self):
        return f"ThetaPopulation(size={self.size}, ess={self.ess:.2f}, log_likelihood={self.log_likelihood:.4f})"

    def scratch(self, n):
        """
        Returns n scratch pairs; the first one is always (s2, out2).
        """
        while len(self._scratch) < n - 1:
            self._scratch.append((ThetaState(), ThetaOutput()))
        return [(self.s2, self.out2)] + self._scratch[:max(n - 1, 0)]

    def gather(self, ancestors):
        """
        Replaces slot p by a copy of slot ancestors[p].

        Duplicated particles are copied so that every slot keeps exclusive
        ownership of its state.
        """
        ancestors = np.asarray(ancestors)
        if ancestors.shape != (self.size,):
            raise ValueError(f"expected {self.size} ancestors, got shape {ancestors.shape}")
        old_s1s = self.s1s
        old_out1s = self.out1s
        used = set()
        new_s1s = []
        new_out1s = []
        for a in ancestors:
            a = int(a)
            if a in used:
                new_s1s.append(old_s1s[a].copy())
                new_out1s.append(old_out1s[a].copy())
            else:
                used.add(a)
                new_s1s.append(old_s1s[a])
                new_out1s.append(old_out1s[a])
        self.s1s = new_s1s
        self.out1s = new_out1s

    def thetas(self):
        return np.array([s.theta for s in self.s1s], dtype=float)

    def log_likelihoods(self):
        return np.array([s.log_likelihood for s in self.s1s])

    def check(self):
        """Raises ValueError if the per-particle containers disagree in size."""
        sizes = {
            'log_weights': len(self.log_weights),
            'ancestors': len(self.ancestors),
            's1s': len(self.s1s),
            'out1s': len(self.out1s),
        }
        bad = {k: n for k, n in sizes.items() if n != self.size}
        if bad:
            raise ValueError(f"population of size {self.size} has mismatched containers: {bad}")
