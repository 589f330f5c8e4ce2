"""SMC^2: nested sequential Monte Carlo for state-space model parameters."""

from .adapter import GaussianAdapter
from .aggregator import LocalContext, TreeAggregator, TreeContext, run_tree, tree_contexts
from .exceptions import (
    CholeskyError,
    CollectiveError,
    CollectiveMismatchError,
    CollectiveTimeoutError,
    MembershipInvariantError,
    NumericalDegeneracyError,
    ParticleFilterDegeneratedError,
    SMCSquareError,
)
from .marginal_sir import MarginalSIR, ProposalOutcome, SamplerStatus
from .models import AR1Volatility, StateSpaceModel, StochasticVolatility
from .output import PopulationOutput, ZarrOutput
from .particle_filter import AncestryNode, BootstrapFilter, ThetaOutput, ThetaState
from .population import ThetaPopulation
from .resampler import ESSResampler
from .sampler import SMCSquare
from .schedule import ScheduleElement, TimeSchedule
from .tree_network import TreeNetworkNode, build_tree

__version__ = "0.1.0"
