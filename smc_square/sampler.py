import numpy as np

from .adapter import GaussianAdapter
from .marginal_sir import MarginalSIR
from .output import PopulationOutput, ZarrOutput
from .particle_filter import BootstrapFilter
from .population import ThetaPopulation
from .resampler import ESSResampler
from .schedule import TimeSchedule


class SMCSquare:
    """
    SMC^2 for one state-space model and one data set.

    Wires the bootstrap filter, the ESS resampler, the Gaussian proposal
    adapter and an output writer into a MarginalSIR run, and keeps the
    diagnostics of the run.

    Args:
        model (StateSpaceModel): model whose parameters are estimated.
        N_theta (int): number of theta-particles (per worker).
        N_x (int): number of x-particles in every theta-particle's filter.
        N_rejuvenate (int): PMMH moves per theta-particle after resampling.
        threshold (float): relative ESS below which theta-particles are resampled.
        x_threshold (float): relative ESS below which x-particles are resampled.
        resampling (str): 'systematic' or 'multinomial'.
        n_jobs (int): joblib threads for the per-particle loops.
        context: execution context; each worker of a tree runs its own
                 population and they pool acceptance statistics.
        logfile (str): path to the log file for recording progress.
        zarr_path (str): if given, the final population is written there.
        seed (int): seed of the run; workers derive their own streams from it.
        verbose (bool): print report lines to stderr.
    """

    def __init__(self, model, N_theta=50, N_x=300, N_rejuvenate=1, threshold=0.5,
                 x_threshold=0.5, resampling='systematic', n_jobs=1, context=None,
                 logfile=None, zarr_path=None, seed=None, verbose=False):
        if N_theta < 1:
            raise ValueError(f"N_theta must be positive, got {N_theta}")
        self.model = model
        self.N_theta = N_theta
        self.N_x = N_x
        self.N_rejuvenate = N_rejuvenate
        self.threshold = threshold
        self.x_threshold = x_threshold
        self.resampling = resampling
        self.n_jobs = n_jobs
        self.context = context
        self.logfile = logfile
        self.zarr_path = zarr_path
        self.seed = seed
        self.verbose = verbose

        self.population = None
        self.output = None
        self.sir = None

    def log(self, message):
        if self.logfile is not None:
            with open(self.logfile, 'a') as f:
                f.write(message + '\n')

    def _rng(self):
        rank = 0 if self.context is None else self.context.rank
        size = 1 if self.context is None else self.context.size
        seeds = np.random.SeedSequence(self.seed).spawn(size)
        return np.random.default_rng(seeds[rank])

    def run(self, y, times=None, start_time=None, init_theta=None, output=None, progress=False):
        """
        Runs SMC^2 on the observations y.

        Args:
            y (np.ndarray): observations, shape (T,).
            times (np.ndarray): observation times; defaults to 1, ..., T with
                                the schedule starting at 0.
            start_time (float): start of the schedule.
            init_theta: initial theta for every particle (array of shape (dim,)
                        or (N_theta, dim), or a callable of the generator);
                        defaults to draws from the prior.
            output: output collaborator; defaults to a ZarrOutput when
                    zarr_path is set, otherwise a PopulationOutput.
            progress (bool): show a tqdm progress bar.

        Returns:
            ThetaPopulation: the final population.
        """
        y = np.asarray(y, dtype=float)
        if times is None:
            times = np.arange(1, len(y) + 1, dtype=float)
            if start_time is None:
                start_time = 0.0
        schedule = TimeSchedule.from_times(times, start_time=start_time)
        if schedule.n_obs != len(y):
            raise ValueError(f"got {len(y)} observations for {schedule.n_obs} distinct observation times")
        self.log(f"Data dimensions: T={len(y)}, schedule={len(schedule)} points")

        if output is None:
            output = ZarrOutput(self.zarr_path) if self.zarr_path is not None else PopulationOutput()
        self.output = output

        pf = BootstrapFilter(self.model, y, N_x=self.N_x, threshold=self.x_threshold)
        self.population = ThetaPopulation(self.N_theta, schedule.n_obs_slots)
        self.sir = MarginalSIR(
            pf,
            GaussianAdapter(),
            ESSResampler(threshold=self.threshold, method=self.resampling),
            nmoves=self.N_rejuvenate,
            n_jobs=self.n_jobs,
            context=self.context,
            logfile=self.logfile,
            verbose=self.verbose,
        )

        if isinstance(init_theta, (list, tuple)):
            init_theta = np.asarray(init_theta, dtype=float)
        self.sir.sample(self._rng(), schedule, self.population, output,
                        init_input=init_theta, progress=progress)

        self.log(f'log evidence = {self.log_evidence}')
        self.log(f'log_likelihood after term = {self.population.log_likelihood}')
        return self.population

    @property
    def ESS_track(self):
        return [] if self.sir is None else self.sir.ess_track

    @property
    def likelihood_track(self):
        return [] if self.sir is None else self.sir.likelihood_track

    @property
    def accept_track(self):
        return [] if self.sir is None else self.sir.accept_track

    @property
    def log_evidence(self):
        """
        Log marginal likelihood of the data, the running evidence after the
        last step.

        The resampler keeps the theta-weights on the scale of the running
        evidence, so `population.log_likelihood` after `term` counts it a
        second time and is not the evidence itself. A run without any step
        (a single observed time) only has the post-term value.
        """
        if self.likelihood_track:
            return self.likelihood_track[-1]
        return None if self.population is None else self.population.log_likelihood

    def posterior_mean(self):
        """Weighted mean of the theta-particles, keyed by parameter name."""
        lw = self.population.log_weights
        w = np.exp(lw - np.max(lw))
        w /= np.sum(w)
        return self.model.theta_dict(w @ self.population.thetas())
