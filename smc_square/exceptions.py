class SMCSquareError(Exception):
    """Base class for errors raised by the sampler and its collaborators."""


class NumericalDegeneracyError(SMCSquareError):
    """
    A likelihood evaluation broke down numerically.

    Raised by the inner filter or the proposal adapter while evaluating a
    proposed theta-particle. The rejuvenation step turns it into a
    rejected move.
    """


class CholeskyError(NumericalDegeneracyError):
    """The proposal covariance could not be factorised."""


class ParticleFilterDegeneratedError(NumericalDegeneracyError):
    """Every x-particle received zero weight."""

    def __init__(self, message, time=None):
        super().__init__(message)
        self.time = time


class MembershipInvariantError(AssertionError):
    """A tree node was left with pending membership changes after commit."""

    def __init__(self, node_name, n_add, n_remove):
        super().__init__(
            f"{node_name}: pending sets not empty after commit "
            f"(pending_add={n_add}, pending_remove={n_remove})"
        )
        self.node_name = node_name


class CollectiveError(SMCSquareError):
    """A collective reduction over the worker tree went wrong."""


class CollectiveMismatchError(CollectiveError):
    """Two participants entered different rounds of a collective."""


class CollectiveTimeoutError(CollectiveError):
    """A participant waited too long for its neighbours in a collective."""
