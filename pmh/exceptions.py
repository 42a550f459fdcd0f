"""
Exceptions raised by the particle filter and the PMH sampler.
"""


class PMHError(Exception):
    """Base class for all errors raised by this package."""


class InvalidParameterError(PMHError, ValueError):
    """
    Model parameters violate the model constraints.

    Raised at setup time, e.g. an initial guess with ``|phi| >= 1`` or a
    non-positive standard deviation. Proposals made inside the sampler are
    never reported this way: they are rejected instead.
    """


class DimensionMismatchError(PMHError, ValueError):
    """Observation sequence, parameter vector or step size has the wrong shape."""


class DegenerateWeightsError(PMHError, FloatingPointError):
    """
    Every particle received zero weight at some time step.

    The parameters imply zero probability for an observation, so the
    normalised weights (and the log-likelihood) are undefined.
    """

    def __init__(self, t, message=None):
        self.t = t
        super().__init__(message or f"All particle weights are zero at t={t}")
