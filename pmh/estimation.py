"""
Parameter estimation with particle Metropolis-Hastings (PMH).

The particle filter provides an unbiased estimate of the likelihood, which
is plugged into a Gaussian random walk Metropolis-Hastings sampler. The
filter's randomness is part of the state of the chain: on rejection the
previous log-likelihood estimate is carried forward, never recomputed.
"""

import numpy as np
import pandas as pd
from typing import Callable, Dict, NamedTuple, Optional, Sequence
import logging

from .exceptions import DegenerateWeightsError, DimensionMismatchError
from .filtering import Bootstrap, FilterResult, FullyAdapted, ParticleFilter, check_observations
from .model import LinearGaussianSSM, StochVolSSM, default_prior, log_prior
from .proposals import IdentityTransform, RandomWalkProposal, SVReparameterisation, make_step
from .variates import RandomSource

logger = logging.getLogger(__name__)

REPORT_EVERY = 100


class LGSSTarget:
    """
    Posterior of phi in the LGSS model with sigma_v and sigma_e held fixed.

    Parameters
    ----------
    y : array-like
        Observations y_0..y_T (y_0 is a placeholder)
    sigma_v, sigma_e : float
        Known noise standard deviations
    initial_state : float
        Known initial state
    prior : dict, optional
        Prior on phi; defaults to N(0, 1)
    """

    param_names = ('phi',)
    transform = IdentityTransform()

    def __init__(self, y, sigma_v: float, sigma_e: float, initial_state: float = 0.0,
                 prior: Optional[Dict] = None):
        self.data = check_observations(y, min_length=2)
        LinearGaussianSSM(phi=0.0, sigma_v=sigma_v, sigma_e=sigma_e).check_params()
        self.sigma_v = sigma_v
        self.sigma_e = sigma_e
        self.initial_state = initial_state
        self.prior = prior if prior is not None else default_prior('lgss')

    @property
    def dimension(self):
        return len(self.param_names)

    @property
    def n_states(self):
        return self.data.shape[0] - 1

    def is_valid(self, theta) -> bool:
        return bool(abs(theta[0]) < 1.0)

    def check_initial(self, theta):
        LinearGaussianSSM(phi=theta[0], sigma_v=self.sigma_v, sigma_e=self.sigma_e).check_params()

    def log_prior(self, theta) -> float:
        return log_prior(self.prior, self.param_names, theta)

    def run_filter(self, theta, n_particles: int, random_source: RandomSource) -> FilterResult:
        model = LinearGaussianSSM(
            phi=theta[0], sigma_v=self.sigma_v, sigma_e=self.sigma_e, x0=self.initial_state
        )
        return ParticleFilter(FullyAdapted(model, self.data), n_particles, random_source).run()


class SVTarget:
    """
    Posterior of (mu, phi, sigma_v) in the SV model.

    Parameters
    ----------
    y : array-like
        Observed returns (NaN entries are missing)
    prior : dict, optional
        Priors on mu, phi and sigma_v; defaults to N(0, 1), N(0.95, 0.05)
        and Gamma(2, 10)
    """

    param_names = StochVolSSM.param_names
    transform = IdentityTransform()
    prior_name = 'sv'

    def __init__(self, y, prior: Optional[Dict] = None):
        self.data = check_observations(y, min_length=1)
        self.prior = prior if prior is not None else default_prior(self.prior_name)

    @property
    def dimension(self):
        return len(self.param_names)

    @property
    def n_states(self):
        return self.data.shape[0]

    def is_valid(self, theta) -> bool:
        return bool(abs(theta[1]) < 1.0 and theta[2] > 0.0)

    def check_initial(self, theta):
        StochVolSSM.from_theta(theta).check_params()

    def log_prior(self, theta) -> float:
        return log_prior(self.prior, self.param_names, theta)

    def run_filter(self, theta, n_particles: int, random_source: RandomSource) -> FilterResult:
        model = StochVolSSM.from_theta(theta)
        return ParticleFilter(Bootstrap(model, self.data), n_particles, random_source).run()


class SVReparameterisedTarget(SVTarget):
    """
    SV posterior explored on (mu, psi, zeta) with phi = tanh(psi) and
    sigma_v = exp(zeta). Every proposal satisfies the constraints, so no
    proposal is gated out; the acceptance ratio carries the log-Jacobian of
    the transformation. The default prior on sigma_v is Gamma(3, 10).
    """

    transform = SVReparameterisation()
    prior_name = 'sv_reparameterised'

    def is_valid(self, theta) -> bool:
        # Only fails when tanh/exp saturate in floating point
        return bool(np.all(np.isfinite(theta)) and abs(theta[1]) < 1.0 and theta[2] > 0.0)


class ProgressReport(NamedTuple):
    iteration: int
    n_iter: int
    current: np.ndarray
    proposed: np.ndarray
    posterior_mean: np.ndarray
    acceptance_rate: float


def log_progress(report: ProgressReport):
    """Default progress callback: a summary of the chain through ``logger``."""
    def fmt(values):
        return " ".join(f"{v:.4f}" for v in np.atleast_1d(values))

    logger.info("#" * 69)
    logger.info(f" Iteration: {report.iteration} of : {report.n_iter} completed.")
    logger.info(f" Current state of the Markov chain:       {fmt(report.current)}")
    logger.info(f" Proposed next state of the Markov chain: {fmt(report.proposed)}")
    logger.info(f" Current posterior mean:                  {fmt(report.posterior_mean)}")
    logger.info(f" Current acceptance rate:                 {report.acceptance_rate:.4f}")
    logger.info("#" * 69)


class PMHChain:
    """
    Markov chain produced by ``PMHSampler.run``.

    All arrays are pre-sized to ``n_iter``; entry 0 holds the initial
    parameters and is never an accepted proposal.

    Attributes
    ----------
    theta : ndarray (n_iter, P)
        Parameters of the chain
    theta_transformed : ndarray (n_iter, P)
        Parameters in the space of the random walk
    theta_proposed : ndarray (n_iter, P)
        Proposed parameters
    log_likelihood : ndarray (n_iter,)
        Log-likelihood estimate attached to theta
    log_likelihood_proposed : ndarray (n_iter,)
        Log-likelihood estimate of the proposal (-inf when not scored)
    x_hat_filtered : ndarray (n_iter, n_states)
        State estimate attached to theta
    accepted : ndarray (n_iter,) of bool
        Whether the proposal of each iteration was accepted
    scored : ndarray (n_iter,) of bool
        Whether the particle filter was run on the proposal
    """

    def __init__(self, param_names: Sequence[str], n_iter: int, n_states: int):
        P = len(param_names)
        self.param_names = tuple(param_names)
        self.theta = np.zeros((n_iter, P))
        self.theta_transformed = np.zeros((n_iter, P))
        self.theta_proposed = np.zeros((n_iter, P))
        self.log_likelihood = np.zeros(n_iter)
        self.log_likelihood_proposed = np.full(n_iter, -np.inf)
        self.x_hat_filtered = np.zeros((n_iter, n_states))
        self.accepted = np.zeros(n_iter, dtype=bool)
        self.scored = np.zeros(n_iter, dtype=bool)

    def __len__(self):
        return self.theta.shape[0]

    @property
    def acceptance_rate(self) -> float:
        if len(self) < 2:
            return 0.0
        return float(np.mean(self.accepted[1:]))

    def posterior_mean(self, burnin: int = 0) -> np.ndarray:
        return self.theta[burnin:].mean(axis=0)

    def to_frame(self, burnin: int = 0) -> pd.DataFrame:
        """Parameter trace, log-likelihood and acceptance indicators."""
        frame = pd.DataFrame(self.theta[burnin:], columns=list(self.param_names))
        frame['log_likelihood'] = self.log_likelihood[burnin:]
        frame['accepted'] = self.accepted[burnin:]
        frame.index = pd.RangeIndex(burnin, len(self), name='iteration')
        return frame


class PMHSampler:
    """
    Particle Metropolis-Hastings sampler.

    Parameters
    ----------
    target : LGSSTarget, SVTarget or SVReparameterisedTarget
        Posterior to explore
    n_particles : int
        Particles used by every likelihood estimate
    step_size : float or array-like
        Standard deviation of the walk for one-parameter targets, covariance
        matrix of the walk otherwise
    random_source : RandomSource, optional
        Source of all random draws of the sampler and its filters
    report_every : int
        Progress callback cadence in iterations (default: 100)
    progress_callback : callable, optional
        Receives a ``ProgressReport``; ``None`` disables progress reports
    """

    def __init__(
        self,
        target,
        n_particles: int,
        step_size,
        random_source: Optional[RandomSource] = None,
        report_every: int = REPORT_EVERY,
        progress_callback: Optional[Callable[[ProgressReport], None]] = log_progress
    ):
        if int(n_particles) < 1:
            raise ValueError(f"n_particles must be at least 1 (got {n_particles})")
        self.target = target
        self.n_particles = int(n_particles)
        self.proposal = RandomWalkProposal(make_step(target.dimension, step_size), target.transform)
        self.random_source = random_source if random_source is not None else RandomSource()
        self.report_every = report_every
        self.progress_callback = progress_callback

    def run(self, initial_theta: Sequence[float], n_iter: int) -> PMHChain:
        """
        Run ``n_iter - 1`` proposal steps from ``initial_theta``.

        Raises
        ------
        InvalidParameterError
            If ``initial_theta`` violates the model constraints
        DimensionMismatchError
            If ``initial_theta`` does not match the target's dimension
        DegenerateWeightsError
            If the particle filter collapses at ``initial_theta``; only
            later proposals are rejected on degenerate weights
        """
        if int(n_iter) < 1:
            raise ValueError(f"n_iter must be at least 1 (got {n_iter})")
        n_iter = int(n_iter)

        theta = np.atleast_1d(np.asarray(initial_theta, dtype=float))
        if theta.shape != (self.target.dimension,):
            raise DimensionMismatchError(
                f"initial_theta has shape {theta.shape}, expected ({self.target.dimension},)"
            )
        self.target.check_initial(theta)

        chain = PMHChain(self.target.param_names, n_iter, self.target.n_states)
        result = self.target.run_filter(theta, self.n_particles, self.random_source)

        chain.theta[0] = theta
        chain.theta_proposed[0] = theta
        chain.theta_transformed[0] = self.target.transform.to_unconstrained(theta)
        chain.log_likelihood[0] = result.log_likelihood
        chain.log_likelihood_proposed[0] = result.log_likelihood
        chain.x_hat_filtered[0] = result.x_hat_filtered
        chain.scored[0] = True

        logger.debug(f"Initial log-likelihood: {result.log_likelihood:.4f}")

        for k in range(1, n_iter):
            self._step(chain, k)

            if self.progress_callback is not None and (k + 1) % self.report_every == 0:
                self.progress_callback(ProgressReport(
                    iteration=k + 1,
                    n_iter=n_iter,
                    current=chain.theta[k].copy(),
                    proposed=chain.theta_proposed[k].copy(),
                    posterior_mean=chain.theta[:k + 1].mean(axis=0),
                    acceptance_rate=float(np.mean(chain.accepted[1:k + 1]))
                ))

        return chain

    def _step(self, chain: PMHChain, k: int):
        rs = self.random_source
        theta_current = chain.theta[k - 1]

        theta_proposed, transformed_proposed = self.proposal.propose(chain.theta_transformed[k - 1], rs)
        chain.theta_proposed[k] = theta_proposed

        accept_probability = 0.0
        x_hat_proposed = None
        if self.target.is_valid(theta_proposed):
            try:
                result = self.target.run_filter(theta_proposed, self.n_particles, rs)
            except DegenerateWeightsError as exc:
                logger.debug(f"Iteration {k + 1}: {exc}; proposal rejected")
            else:
                chain.scored[k] = True
                chain.log_likelihood_proposed[k] = result.log_likelihood
                x_hat_proposed = result.x_hat_filtered

                log_ratio = (
                    self.target.log_prior(theta_proposed) - self.target.log_prior(theta_current)
                    + result.log_likelihood - chain.log_likelihood[k - 1]
                    + self.proposal.log_jacobian_ratio(theta_proposed, theta_current)
                )
                if not np.isnan(log_ratio):
                    accept_probability = float(np.exp(min(log_ratio, 0.0)))

        # One uniform per iteration, whether or not the proposal was scored
        if rs.uniform() < accept_probability:
            chain.theta[k] = theta_proposed
            chain.theta_transformed[k] = transformed_proposed
            chain.log_likelihood[k] = chain.log_likelihood_proposed[k]
            chain.x_hat_filtered[k] = x_hat_proposed
            chain.accepted[k] = True
        else:
            chain.theta[k] = chain.theta[k - 1]
            chain.theta_transformed[k] = chain.theta_transformed[k - 1]
            chain.log_likelihood[k] = chain.log_likelihood[k - 1]
            chain.x_hat_filtered[k] = chain.x_hat_filtered[k - 1]


def particle_metropolis_hastings(
    y,
    initial_phi: float,
    sigma_v: float,
    sigma_e: float,
    n_particles: int,
    initial_state: float,
    n_iter: int,
    step_size: float,
    random_source: Optional[RandomSource] = None,
    progress_callback: Optional[Callable[[ProgressReport], None]] = log_progress
) -> PMHChain:
    """
    PMH for phi in the LGSS model, with the fully-adapted particle filter.

    Returns
    -------
    PMHChain
        ``chain.theta[:, 0]`` is the trace of phi
    """
    target = LGSSTarget(y, sigma_v, sigma_e, initial_state)
    sampler = PMHSampler(target, n_particles, step_size, random_source,
                         progress_callback=progress_callback)
    return sampler.run([initial_phi], n_iter)


def particle_metropolis_hastings_sv(
    y,
    initial_theta: Sequence[float],
    n_particles: int,
    n_iter: int,
    step_size,
    random_source: Optional[RandomSource] = None,
    progress_callback: Optional[Callable[[ProgressReport], None]] = log_progress
) -> PMHChain:
    """PMH for (mu, phi, sigma_v) in the SV model, random walk on theta."""
    sampler = PMHSampler(SVTarget(y), n_particles, step_size, random_source,
                         progress_callback=progress_callback)
    return sampler.run(initial_theta, n_iter)


def particle_metropolis_hastings_sv_reparameterised(
    y,
    initial_theta: Sequence[float],
    n_particles: int,
    n_iter: int,
    step_size,
    random_source: Optional[RandomSource] = None,
    progress_callback: Optional[Callable[[ProgressReport], None]] = log_progress
) -> PMHChain:
    """
    PMH for the SV model with the random walk on (mu, atanh(phi), log(sigma_v)).

    ``initial_theta`` is given on the original scale (mu, phi, sigma_v).
    """
    sampler = PMHSampler(SVReparameterisedTarget(y), n_particles, step_size, random_source,
                         progress_callback=progress_callback)
    return sampler.run(initial_theta, n_iter)


def integrated_autocorrelation_time(samples, max_lag: int = 100) -> float:
    """
    IACT estimate 1 + 2 * sum of the first ``max_lag`` autocorrelations.

    Returns NaN for a chain that never moves.
    """
    x = np.asarray(samples, dtype=float)
    n = x.shape[0]
    x = x - x.mean()
    f = np.fft.rfft(x, n=2 * n)
    acov = np.fft.irfft(f * np.conj(f))[:n] / n
    if acov[0] <= 0.0:
        return np.nan
    acf = acov / acov[0]
    max_lag = min(max_lag, n - 1)
    return float(1.0 + 2.0 * np.sum(acf[1:max_lag + 1]))


def summarize_chain(chain: PMHChain, burnin: int = 0, max_lag: int = 100) -> Dict:
    """
    Posterior summary of a PMH chain after discarding ``burnin`` iterations.

    Returns
    -------
    dict
        - posterior_means, posterior_stds: per parameter
        - credible_intervals: 95% intervals per parameter
        - iact: integrated autocorrelation time per parameter
        - estimated_cov: posterior covariance (for tuning the proposal with
          ``proposals.scaled_covariance``)
        - x_hat_mean, x_hat_std: posterior mean / std of the state estimate
        - acceptance_rate
    """
    if burnin >= len(chain):
        raise ValueError(
            f"No samples remaining after burn-in. burnin={burnin}, n_iter={len(chain)}. "
            f"Reduce burnin or increase n_iter."
        )

    samples = chain.theta[burnin:]
    posterior_means = {}
    posterior_stds = {}
    credible_intervals = {}
    iact = {}

    for i, param in enumerate(chain.param_names):
        values = samples[:, i]
        posterior_means[param] = float(values.mean())
        posterior_stds[param] = float(values.std(ddof=1)) if len(values) > 1 else 0.0
        credible_intervals[param] = (
            float(np.percentile(values, 2.5)),
            float(np.percentile(values, 97.5))
        )
        iact[param] = integrated_autocorrelation_time(values, max_lag=max_lag)

    x_hat = chain.x_hat_filtered[burnin:]

    return {
        'posterior_means': posterior_means,
        'posterior_stds': posterior_stds,
        'credible_intervals': credible_intervals,
        'iact': iact,
        'estimated_cov': np.atleast_2d(np.cov(samples, rowvar=False)) if len(samples) > 1
        else np.zeros((samples.shape[1], samples.shape[1])),
        'x_hat_mean': x_hat.mean(axis=0),
        'x_hat_std': x_hat.std(axis=0),
        'acceptance_rate': chain.acceptance_rate
    }


def diagnose_mixing(chain: PMHChain, burnin: int = 0, max_lag: int = 100,
                    verbose: bool = True) -> Dict:
    """
    Flag parameters whose trace is stuck or mixes poorly.

    A parameter is ``stuck`` when its trace never moves after burn-in and
    ``poor`` when its effective sample size n / IACT is below a tenth of
    the n retained samples.

    Returns
    -------
    dict
        Per parameter: moves, iact, ess, status and is_stuck; plus the
        acceptance rate
    """
    summary = summarize_chain(chain, burnin=burnin, max_lag=max_lag)
    n = len(chain) - burnin

    diagnostics = {}
    for i, param in enumerate(chain.param_names):
        moves = int(np.count_nonzero(np.diff(chain.theta[burnin:, i])))
        iact = summary['iact'][param]
        ess = n / iact if np.isfinite(iact) and iact > 0.0 else 0.0

        if moves == 0:
            status = 'stuck'
        elif ess < 0.1 * n:
            status = 'poor'
        else:
            status = 'ok'

        diagnostics[param] = {
            'moves': moves,
            'iact': iact,
            'ess': ess,
            'status': status,
            'is_stuck': moves == 0
        }
        if verbose:
            logger.info(f"{param}: {status}, {moves} moves in {n} iterations, "
                        f"IACT={iact:.1f}, ESS={ess:.0f}")

    rate = summary['acceptance_rate']
    diagnostics['acceptance_rate'] = rate
    if verbose and not 0.1 <= rate <= 0.5:
        logger.warning(f"Acceptance rate {rate:.2%} is outside 10%-50%; retune the step size.")

    return diagnostics
