"""
Sequential importance resampling (particle filter) engine.

The engine is generic: what is model-specific lives in a *flow* object
(in the spirit of the Feynman-Kac classes of the ``particles`` library)
exposing

- ``n_states``: number of time points with a state estimate
- ``M0(N, random_source)``: initial particles
- ``M(t, xp, random_source)``: propagate resampled particles xp to time t
- ``logG(t, x)``: log-weights of the particles x at time t
- ``estimate(t, x, W)``: state estimate at time t
- ``draw_trajectory``: whether ``x_hat_filtered`` is a single trajectory
  drawn from the final particle system instead of the per-step estimates

Two flows are provided: ``FullyAdapted`` for the LGSS model and
``Bootstrap`` for the SV model.
"""

import numpy as np
from typing import NamedTuple, Optional, Sequence, Tuple
import logging

from .exceptions import DegenerateWeightsError, DimensionMismatchError
from .model import LinearGaussianSSM, StochVolSSM
from .variates import RandomSource

logger = logging.getLogger(__name__)


def check_observations(y, min_length: int = 1) -> np.ndarray:
    """Observations as a 1-D float array, NaN marking missing values."""
    y = np.asarray(y, dtype=float)
    if y.ndim != 1:
        raise DimensionMismatchError(f"Observations must be one-dimensional (got shape {y.shape})")
    if y.shape[0] < min_length:
        raise DimensionMismatchError(
            f"Need at least {min_length} observations (got {y.shape[0]})"
        )
    return y


def normalise_log_weights(lw: np.ndarray, t: int = 0) -> Tuple[np.ndarray, float]:
    """
    Normalised weights and log-likelihood increment from log-weights.

    The maximum log-weight is subtracted before exponentiating; the
    increment is ``max_lw + log(sum(exp(lw - max_lw))) - log(N)``.

    Raises
    ------
    DegenerateWeightsError
        If no particle has a finite positive weight.
    """
    lw = np.where(np.isnan(lw), -np.inf, lw)
    max_lw = np.max(lw)
    if not np.isfinite(max_lw):
        raise DegenerateWeightsError(t)
    w = np.exp(lw - max_lw)
    sum_w = np.sum(w)
    return w / sum_w, max_lw + np.log(sum_w) - np.log(lw.shape[0])


class FilterResult(NamedTuple):
    """
    Output of one particle filter run.

    Attributes
    ----------
    x_hat_filtered : ndarray (n_states,)
        State estimates (a single sampled trajectory for bootstrap flows)
    log_likelihood : float
        Estimate of the log-likelihood
    particles : ndarray (N, n_states)
        Particle values at each time point
    weights : ndarray (N, n_states)
        Normalised weights at each time point
    ancestors : ndarray (N, n_states)
        Index (in column t - 1) of the parent of each particle in column t
    filtered_mean : ndarray (n_states,)
        Weighted mean of the particles at each time point
    ess : ndarray (n_states,)
        Effective sample size at each time point
    """
    x_hat_filtered: np.ndarray
    log_likelihood: float
    particles: np.ndarray
    weights: np.ndarray
    ancestors: np.ndarray
    filtered_mean: np.ndarray
    ess: np.ndarray

    def ancestry(self, index: int) -> np.ndarray:
        """Particle indices, per time point, of the lineage ending at ``index``."""
        n_states = self.particles.shape[1]
        lineage = np.empty(n_states, dtype=np.int64)
        for t in range(n_states - 1, -1, -1):
            lineage[t] = index
            index = self.ancestors[index, t]
        return lineage

    def trajectory(self, index: int) -> np.ndarray:
        """State trajectory ending at terminal particle ``index``."""
        lineage = self.ancestry(index)
        return self.particles[lineage, np.arange(lineage.shape[0])]


class FullyAdapted:
    """
    Fully-adapted flow for the LGSS model.

    Particles at time t are drawn from p(x_t | x_{t-1}, y_t) and weighted
    by the predictive density p(y_{t+1} | x_t). The data hold y_0..y_T
    (y_0 is not used), so there are T state estimates x_0..x_{T-1}. The
    estimate is the plain particle mean: resampling already equalises the
    weights of the propagated particles.
    """

    draw_trajectory = False

    def __init__(self, model: LinearGaussianSSM, data):
        self.model = model
        self.data = check_observations(data, min_length=2)

    @property
    def n_states(self):
        return self.data.shape[0] - 1

    def M0(self, N, random_source):
        return random_source.sample(self.model.PX0(), size=N)

    def M(self, t, xp, random_source):
        return random_source.sample(self.model.proposal(t, xp, self.data))

    def logG(self, t, x):
        y_next = self.data[t + 1]
        if np.isnan(y_next):
            return np.zeros_like(x)
        return self.model.predictive(x).logpdf(y_next)

    def estimate(self, t, x, W):
        return np.mean(x)


class Bootstrap:
    """
    Bootstrap flow for the SV model.

    Particles are propagated with the state transition and weighted by the
    observation density; x_0 is drawn from the stationary law and weighted
    by y_0 (skipped when y_0 is missing).
    """

    draw_trajectory = True

    def __init__(self, model: StochVolSSM, data):
        self.model = model
        self.data = check_observations(data, min_length=1)

    @property
    def n_states(self):
        return self.data.shape[0]

    def M0(self, N, random_source):
        return random_source.sample(self.model.PX0(), size=N)

    def M(self, t, xp, random_source):
        return random_source.sample(self.model.PX(t, xp))

    def logG(self, t, x):
        y_t = self.data[t]
        if np.isnan(y_t):
            return np.zeros_like(x)
        return self.model.PY(t, None, x).logpdf(y_t)

    def estimate(self, t, x, W):
        return np.average(x, weights=W)


class ParticleFilter:
    """
    Particle filter with multinomial resampling at every step.

    Parameters
    ----------
    flow : FullyAdapted or Bootstrap
        Model-specific propagation and weighting
    n_particles : int
        Number of particles (>= 1)
    random_source : RandomSource, optional
        Source of all random draws (fresh entropy if omitted)
    """

    def __init__(self, flow, n_particles: int, random_source: Optional[RandomSource] = None):
        if int(n_particles) < 1:
            raise ValueError(f"n_particles must be at least 1 (got {n_particles})")
        self.flow = flow
        self.N = int(n_particles)
        self.random_source = random_source if random_source is not None else RandomSource()

    def run(self) -> FilterResult:
        N, n_states = self.N, self.flow.n_states
        rs = self.random_source

        particles = np.zeros((N, n_states))
        ancestors = np.zeros((N, n_states), dtype=np.int64)
        weights = np.zeros((N, n_states))
        x_hat = np.zeros(n_states)
        filtered_mean = np.zeros(n_states)
        ess = np.zeros(n_states)
        log_likelihood = 0.0

        ancestors[:, 0] = np.arange(N)
        particles[:, 0] = self.flow.M0(N, rs)

        for t in range(n_states):
            if t > 0:
                # Resample (multinomial) using the weights of the previous step
                new_ancestors = rs.multinomial(weights[:, t - 1])
                ancestors[:, t] = new_ancestors
                particles[:, t] = self.flow.M(t, particles[new_ancestors, t - 1], rs)

            W, increment = normalise_log_weights(self.flow.logG(t, particles[:, t]), t)
            weights[:, t] = W
            log_likelihood += increment
            ess[t] = 1.0 / np.sum(W ** 2)

            x_hat[t] = self.flow.estimate(t, particles[:, t], W)
            filtered_mean[t] = np.dot(W, particles[:, t])

        result = FilterResult(
            x_hat_filtered=x_hat,
            log_likelihood=float(log_likelihood),
            particles=particles,
            weights=weights,
            ancestors=ancestors,
            filtered_mean=filtered_mean,
            ess=ess
        )

        if self.flow.draw_trajectory:
            index = rs.multinomial(weights[:, n_states - 1], M=1)[0]
            result = result._replace(x_hat_filtered=result.trajectory(index))

        return result


def particle_filter(
    y,
    theta: Sequence[float],
    n_particles: int,
    initial_state: float = 0.0,
    random_source: Optional[RandomSource] = None
) -> FilterResult:
    """
    Fully-adapted particle filter for the LGSS model.

    Parameters
    ----------
    y : array-like
        Observations y_0..y_T (y_0 is a placeholder and is ignored)
    theta : array-like
        (phi, sigma_v, sigma_e)
    n_particles : int
        Number of particles
    initial_state : float
        Known initial state x_0

    Returns
    -------
    FilterResult
        T state estimates and the log-likelihood estimate of y_1..y_T
    """
    model = LinearGaussianSSM.from_theta(theta, x0=initial_state).check_params()
    return ParticleFilter(FullyAdapted(model, y), n_particles, random_source).run()


def particle_filter_sv(
    y,
    theta: Sequence[float],
    n_particles: int,
    random_source: Optional[RandomSource] = None
) -> FilterResult:
    """
    Bootstrap particle filter for the SV model.

    Parameters
    ----------
    y : array-like
        Observations y_0..y_T (NaN entries are treated as missing)
    theta : array-like
        (mu, phi, sigma_v)
    n_particles : int
        Number of particles

    Returns
    -------
    FilterResult
        ``x_hat_filtered`` is one trajectory x_0..x_T drawn from the final
        particle system; ``filtered_mean`` holds the weighted means.
    """
    model = StochVolSSM.from_theta(theta).check_params()
    return ParticleFilter(Bootstrap(model, y), n_particles, random_source).run()
