"""
Marginal sequential importance resampling over theta-particles.

Combined with a particle filter inside every theta-particle this is the
SMC^2 method of Chopin, Jacob & Papaspiliopoulos (2013): the outer
population is re-weighted by each filter's likelihood increments,
resampled when its ESS degenerates, and rejuvenated with particle
marginal Metropolis-Hastings moves.
"""
import sys
from enum import Enum

import numpy as np
import tqdm
from joblib import Parallel, delayed, effective_n_jobs
from scipy.special import logsumexp

from .aggregator import LocalContext
from .exceptions import NumericalDegeneracyError
from .kernels import ess_reduce


class SamplerStatus(Enum):
    UNINITIALIZED = 'uninitialized'
    INITIALIZED = 'initialized'
    STEPPING = 'stepping'
    TERMINATED = 'terminated'


class ProposalOutcome(Enum):
    """How the evaluation of one proposed theta-particle ended."""
    EVALUATED = 'evaluated'
    PRIOR_REJECTED = 'prior_rejected'  # non-finite prior, never filtered
    DEGENERATE = 'degenerate'  # numerical breakdown while proposing or filtering


class MarginalSIR:
    """
    SMC^2 driver.

    Args:
        filter: inner filter run by every theta-particle (init, output0,
                output, correct, step, propose, filter, sample_path).
        adapter: proposal adapter (clear, add, ready, adapt, propose).
        resampler: theta-particle resampler, resample(rng, now, population).
        nmoves (int): number of PMMH moves per theta-particle when rejuvenating.
        n_jobs (int): joblib threads used for the per-particle loops.
        context: execution context with rank, size and all_reduce; defaults
                 to a single stand-alone worker.
        logfile (str): optional file receiving every report line.
        verbose (bool): also write report lines to stderr.
    """

    def __init__(self, filter, adapter, resampler, nmoves=1, n_jobs=1,
                 context=None, logfile=None, verbose=True):
        if nmoves < 0:
            raise ValueError(f"nmoves must be non-negative, got {nmoves}")
        self.filter = filter
        self.adapter = adapter
        self.resampler = resampler
        self.nmoves = nmoves
        self.n_jobs = n_jobs
        self.context = context if context is not None else LocalContext()
        self.logfile = logfile
        self.verbose = verbose

        self.status = SamplerStatus.UNINITIALIZED
        self.last_resample = False
        self.last_accept_rate = 0.0

        # diagnostics
        self.ess_track = []
        self.likelihood_track = []
        self.accept_track = []
        self.reports = []

    def log(self, message):
        self.reports.append(message)
        if self.verbose:
            print(message, file=sys.stderr)
        if self.logfile is not None:
            with open(self.logfile, 'a') as f:
                f.write(message + '\n')

    def _parallel(self, fn, n):
        return Parallel(n_jobs=self.n_jobs, backend="threading")(
            delayed(fn)(p) for p in range(n)
        )

    def sample(self, rng, schedule, population, output, init_input=None,
               first=0, last=None, progress=False):
        """
        Runs the sampler over schedule positions [first, last).

        Returns:
            ThetaPopulation: the population, finalised by `term`.
        """
        last = len(schedule) if last is None else last
        pos = first
        self.init(rng, schedule, pos, population, output, init_input)
        with tqdm.tqdm(total=last - 1 - first, disable=not progress) as bar:
            while pos + 1 != last:
                new_pos = self.step(rng, schedule, first, pos, last, population, output)
                bar.update(new_pos - pos)
                pos = new_pos
        self.term(rng, population)
        self.report_t(schedule[pos])
        self.output_t(population, output)
        return population

    def init(self, rng, schedule, first, population, output, init_input=None):
        now = schedule[first]
        rngs = rng.spawn(population.size)

        def init_one(p):
            s1 = population.s1s[p]
            out1 = population.out1s[p]
            self.filter.init(rngs[p], now, s1, out1, _particle_input(init_input, p))
            self.filter.output0(s1, out1)
            self.filter.correct(rngs[p], now, s1)
            self.filter.output(now, s1, out1)

            population.log_weights[p] = s1.log_likelihood
            population.ancestors[p] = p

        self._parallel(init_one, population.size)
        population.ess, _ = ess_reduce(population.log_weights)
        output.clear()

        self.last_resample = False
        self.last_accept_rate = 0.0
        self.status = SamplerStatus.INITIALIZED

    def step(self, rng, schedule, first, pos, last, population, output):
        """
        Advances the population to the next observed schedule point, or to
        the last one.

        Returns:
            int: the new schedule position.
        """
        self.status = SamplerStatus.STEPPING
        while True:
            now = schedule[pos]
            self.adapt(population)
            self.resample(rng, now, population)
            self.rejuvenate(rng, schedule, first, pos + 1, population)
            self.report(now, population)

            rngs = rng.spawn(population.size)

            def step_one(p):
                s1 = population.s1s[p]
                out1 = population.out1s[p]
                new_pos = self.filter.step(rngs[p], pos, schedule, last, s1, out1)
                population.log_weights[p] += s1.log_increments[schedule[new_pos].index_obs]
                return new_pos

            positions = self._parallel(step_one, population.size)
            pos = positions[-1]
            if pos + 1 == last or schedule[pos].is_observed:
                break

        ess, lW = ess_reduce(population.log_weights)
        population.ess = ess
        population.log_increments[schedule[pos].index_obs] = lW - population.log_likelihood
        population.log_likelihood = lW
        population.check()
        self.ess_track.append(ess)
        self.likelihood_track.append(lW)
        return pos

    def adapt(self, population):
        self.adapter.clear()
        self.adapter.add(population)
        if self.adapter.ready():
            self.adapter.adapt()

    def resample(self, rng, now, population):
        resampled = self.resampler.resample(rng, now, population)
        if self.context.size > 1:
            # workers rejuvenate together so that they meet in the acceptance reduction
            resampled = bool(self.context.all_reduce([int(resampled)])[0] > 0)
        self.last_resample = resampled

    def rejuvenate(self, rng, schedule, first, target, population):
        """
        PMMH moves over every theta-particle after a resampling event.

        Particles are split into one contiguous batch per worker, each batch
        with its own scratch pair; every particle draws from its own child
        generator.
        """
        if not self.last_resample:
            return
        adapter = self.adapter if self.adapter.ready() else None

        size = population.size
        rngs = rng.spawn(size)
        n_batches = max(min(effective_n_jobs(self.n_jobs), size), 1)
        batches = np.array_split(np.arange(size), n_batches)
        slots = population.scratch(n_batches)

        counts = Parallel(n_jobs=self.n_jobs, backend="threading")(
            delayed(self._rejuvenate_batch)(
                batch, slots[b], rngs, schedule, first, target, population, adapter
            )
            for b, batch in enumerate(batches)
        )
        naccept = sum(counts)
        ntotal = self.nmoves * size
        if self.context.size > 1:
            naccept, ntotal = (int(v) for v in self.context.all_reduce([naccept, ntotal]))
        if ntotal > 0:
            self.last_accept_rate = naccept / ntotal
        self.accept_track.append(self.last_accept_rate)

    def _rejuvenate_batch(self, batch, slot, rngs, schedule, first, target, population, adapter):
        s2, out2 = slot
        naccept = 0
        for p in batch:
            s1 = population.s1s[p]
            out1 = population.out1s[p]
            for move in range(self.nmoves):
                outcome = self.propose_and_evaluate(
                    rngs[p], schedule, first, target, s1, s2, out2, adapter
                )
                if self.accept(rngs[p], s1, s2, outcome):
                    s1.swap(s2)
                    out1.swap(out2)
                    naccept += 1
        return naccept

    def propose_and_evaluate(self, rng, schedule, first, target, s1, s2, out2, adapter=None):
        """
        Proposes a replacement for s1 into s2 and estimates its likelihood
        over positions [first, target).
        """
        try:
            if adapter is not None:
                self.filter.propose(rng, schedule[first], s1, s2, out2, adapter)
            else:
                self.filter.propose(rng, schedule[first], s1, s2, out2)
            if not np.isfinite(s2.log_prior):
                s2.log_likelihood = -np.inf
                return ProposalOutcome.PRIOR_REJECTED
            self.filter.filter(rng, schedule, first, target, s2, out2)
        except NumericalDegeneracyError:
            s2.log_likelihood = -np.inf
            return ProposalOutcome.DEGENERATE
        return ProposalOutcome.EVALUATED

    def accept(self, rng, s1, s2, outcome=ProposalOutcome.EVALUATED):
        """Metropolis-Hastings decision between current s1 and proposed s2."""
        if outcome is not ProposalOutcome.EVALUATED or not np.isfinite(s2.log_likelihood):
            return False
        if not np.isfinite(s1.log_likelihood):
            return True

        loglr = s2.log_likelihood - s1.log_likelihood
        logpr = s2.log_prior - s1.log_prior
        logqr = s1.log_proposal - s2.log_proposal
        if not np.isfinite(s1.log_proposal) and not np.isfinite(s2.log_proposal):
            logqr = 0.0
        logratio = loglr + logpr + logqr
        u = rng.uniform()
        return bool(np.log(u) < logratio)

    def output_t(self, population, output):
        output.write(population)

    def report(self, now, population):
        if self.context.rank != 0:
            return
        line = f"{now.index_output}:\ttime {now.time}\tESS {population.ess}"
        if self.last_resample:
            line += f"\tresample-move with acceptance rate {self.last_accept_rate}"
        self.log(line)

    def report_t(self, now):
        if self.context.rank != 0:
            return
        self.log(f"{now.index_output}:\ttime {now.time}\t...finished.")

    def term(self, rng, population):
        population.log_likelihood += logsumexp(population.log_weights) - np.log(population.size)
        rngs = rng.spawn(population.size)

        def sample_one(p):
            self.filter.sample_path(rngs[p], population.s1s[p], population.out1s[p])

        self._parallel(sample_one, population.size)
        self.status = SamplerStatus.TERMINATED


def _particle_input(init_input, p):
    # a (C, dim) array holds one initial theta per particle
    if isinstance(init_input, np.ndarray) and init_input.ndim == 2:
        return init_input[p]
    return init_input
