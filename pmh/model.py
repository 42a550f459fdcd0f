"""
Linear Gaussian and stochastic volatility state-space models.
"""

import numpy as np
from typing import Dict, Optional, Sequence, Union
from particles import distributions as dists
from particles import state_space_models as ssm
import logging

from .exceptions import InvalidParameterError

logger = logging.getLogger(__name__)


class LinearGaussianSSM(ssm.StateSpaceModel):
    """
    Linear Gaussian state-space model (LGSS).

    - State: x_t = phi * x_{t-1} + sigma_v * v_t
    - Observation: y_t = x_t + sigma_e * e_t

    with v_t, e_t i.i.d. N(0, 1).

    Parameters
    ----------
    phi : float
        Persistence of the state, |phi| < 1
    sigma_v : float
        Standard deviation of the state noise
    sigma_e : float
        Standard deviation of the observation noise
    x0 : float
        Known initial state
    """

    param_names = ('phi', 'sigma_v', 'sigma_e')

    def __init__(self, phi: float, sigma_v: float, sigma_e: float, x0: float = 0.0):
        super().__init__()
        self.phi = phi
        self.sigma_v = sigma_v
        self.sigma_e = sigma_e
        self.x0 = x0

    @classmethod
    def from_theta(cls, theta: Sequence[float], x0: float = 0.0) -> "LinearGaussianSSM":
        phi, sigma_v, sigma_e = theta
        return cls(phi=phi, sigma_v=sigma_v, sigma_e=sigma_e, x0=x0)

    def check_params(self):
        if not abs(self.phi) < 1.0:
            raise InvalidParameterError(f"LGSS model is unstable: |phi| = {abs(self.phi)} >= 1")
        if not (self.sigma_v > 0.0 and self.sigma_e > 0.0):
            raise InvalidParameterError(
                f"Noise standard deviations must be positive "
                f"(sigma_v={self.sigma_v}, sigma_e={self.sigma_e})"
            )
        return self

    def PX0(self):
        """Initial state is known."""
        return dists.Dirac(loc=self.x0)

    def PX(self, t, xp):
        return dists.Normal(loc=self.phi * xp, scale=self.sigma_v)

    def PY(self, t, xp, x):
        return dists.Normal(loc=x, scale=self.sigma_e)

    @property
    def proposal_variance(self):
        return 1.0 / (self.sigma_v ** -2 + self.sigma_e ** -2)

    def proposal0(self, data):
        return self.PX0()

    def proposal(self, t, xp, data):
        """
        Fully-adapted proposal p(x_t | x_{t-1} = xp, y_t).

        Completing the square in the joint Gaussian of x_t and y_t gives
        precision sigma_v^-2 + sigma_e^-2 and a mean that combines the
        prediction phi * xp with the observation y_t.
        """
        y_t = data[t]
        if np.isnan(y_t):
            return self.PX(t, xp)
        P = self.proposal_variance
        mean = P * (self.sigma_e ** -2 * y_t + self.sigma_v ** -2 * self.phi * xp)
        return dists.Normal(loc=mean, scale=np.sqrt(P))

    def predictive(self, x):
        """One-step-ahead observation density p(y_{t+1} | x_t = x)."""
        return dists.Normal(
            loc=self.phi * x,
            scale=np.sqrt(self.sigma_e ** 2 + self.sigma_v ** 2)
        )


class StochVolSSM(ssm.StateSpaceModel):
    """
    Stochastic volatility model.

    - State (log-volatility): x_t = mu + phi * (x_{t-1} - mu) + sigma_v * v_t
    - Observation (returns): y_t = exp(x_t / 2) * e_t

    The initial state is drawn from the stationary law
    N(mu, sigma_v / sqrt(1 - phi^2)).

    Parameters
    ----------
    mu : float
        Mean of the log-volatility
    phi : float
        Persistence of the log-volatility, |phi| < 1
    sigma_v : float
        Standard deviation of the log-volatility noise
    """

    param_names = ('mu', 'phi', 'sigma_v')

    def __init__(self, mu: float, phi: float, sigma_v: float):
        super().__init__()
        self.mu = mu
        self.phi = phi
        self.sigma_v = sigma_v

    @classmethod
    def from_theta(cls, theta: Sequence[float]) -> "StochVolSSM":
        mu, phi, sigma_v = theta
        return cls(mu=mu, phi=phi, sigma_v=sigma_v)

    def check_params(self):
        if not abs(self.phi) < 1.0:
            raise InvalidParameterError(f"SV model is not stationary: |phi| = {abs(self.phi)} >= 1")
        if not self.sigma_v > 0.0:
            raise InvalidParameterError(f"sigma_v must be positive (got {self.sigma_v})")
        return self

    @property
    def stationary_std(self):
        return self.sigma_v / np.sqrt(1.0 - self.phi ** 2)

    def PX0(self):
        return dists.Normal(loc=self.mu, scale=self.stationary_std)

    def PX(self, t, xp):
        return dists.Normal(loc=self.mu + self.phi * (xp - self.mu), scale=self.sigma_v)

    def PY(self, t, xp, x):
        return dists.Normal(loc=0.0, scale=np.exp(x / 2.0))


def default_prior(model: str) -> Dict[str, dists.ProbDist]:
    """
    Default priors used by the PMH targets.

    Parameters
    ----------
    model : str
        'lgss', 'sv' or 'sv_reparameterised'

    Returns
    -------
    dict
        Parameter name -> ``particles.distributions`` object. Gamma
        distributions are parameterised by shape ``a`` and rate ``b``.
    """
    if model == 'lgss':
        return {'phi': dists.Normal(loc=0.0, scale=1.0)}
    if model == 'sv':
        return {
            'mu': dists.Normal(loc=0.0, scale=1.0),
            'phi': dists.Normal(loc=0.95, scale=0.05),
            'sigma_v': dists.Gamma(a=2.0, b=10.0),
        }
    if model == 'sv_reparameterised':
        return {
            'mu': dists.Normal(loc=0.0, scale=1.0),
            'phi': dists.Normal(loc=0.95, scale=0.05),
            'sigma_v': dists.Gamma(a=3.0, b=10.0),
        }
    raise ValueError(f"Unknown model: {model}. Use 'lgss', 'sv' or 'sv_reparameterised'.")


def log_prior(prior: Dict[str, dists.ProbDist], names: Sequence[str], theta: Sequence[float]) -> float:
    """Sum of the marginal log prior densities of ``theta``."""
    return float(sum(prior[name].logpdf(value) for name, value in zip(names, theta)))


class LGSSModel:
    """
    High-level interface for the linear Gaussian state-space model.

    Examples
    --------
    >>> from pmh import LGSSModel
    >>>
    >>> lgss = LGSSModel(phi=0.75, sigma_v=1.0, sigma_e=0.1)
    >>> lgss.simulate(n_obs=250, seed=10)
    >>> lgss.fit(n_particles=20, seed=10)
    >>> print(f"Log-likelihood: {lgss.log_likelihood:.2f}")
    """

    def __init__(
        self,
        phi: Optional[float] = None,
        sigma_v: float = 1.0,
        sigma_e: float = 0.1,
        initial_state: float = 0.0,
        data: Optional[Sequence[float]] = None
    ):
        """
        Parameters
        ----------
        phi : float, optional
            Persistence (estimated by ``estimate_parameters`` when unknown)
        sigma_v : float
            State noise standard deviation (held fixed)
        sigma_e : float
            Observation noise standard deviation (held fixed)
        initial_state : float
            Known initial state x_0
        data : array-like, optional
            Observations y_0..y_T, y_0 being a NaN placeholder
        """
        self.phi = phi
        self.sigma_v = sigma_v
        self.sigma_e = sigma_e
        self.initial_state = initial_state

        self.data = None if data is None else np.asarray(data, dtype=float)
        self.states = None

        self.log_likelihood = None
        self.filtered_state = None
        self.kalman_state = None
        self.kalman_log_likelihood = None

        self.estimated_params = {}
        self.chain = None

    @property
    def theta(self):
        return np.array([self.phi, self.sigma_v, self.sigma_e], dtype=float)

    def _require_data(self):
        if self.data is None:
            raise ValueError("No data available. Call simulate() or pass data.")

    def _require_phi(self):
        if self.phi is None:
            raise ValueError("phi is not set. Provide phi or call estimate_parameters() first.")

    def simulate(self, n_obs: int = 250, seed: Optional[int] = None):
        """
        Generate synthetic data from the model with the current parameters.

        Returns
        -------
        SimulatedData
            States x and observations y (both of length n_obs + 1)
        """
        from .simulation import generate_data
        from .variates import RandomSource

        self._require_phi()
        simulated = generate_data(self.theta, n_obs, self.initial_state, RandomSource(seed))
        self.states = simulated.x
        self.data = simulated.y
        logger.info(f"Simulated {n_obs} observations from the LGSS model")
        return simulated

    def fit(self, n_particles: int = 20, seed: Optional[int] = None, verbose: bool = True) -> dict:
        """
        Run the fully-adapted particle filter with the current parameters.

        Returns
        -------
        dict
            log_likelihood and filtered_state estimates
        """
        from .filtering import particle_filter
        from .variates import RandomSource

        self._require_data()
        self._require_phi()
        if verbose:
            logger.info(f"Running fully-adapted particle filter with {n_particles} particles...")

        result = particle_filter(
            self.data, self.theta, n_particles, self.initial_state, RandomSource(seed)
        )
        self.log_likelihood = result.log_likelihood
        self.filtered_state = result.x_hat_filtered

        if verbose:
            logger.info(f"Estimated log-likelihood: {self.log_likelihood:.2f}")

        return {
            'log_likelihood': self.log_likelihood,
            'filtered_state': self.filtered_state
        }

    def kalman(self, initial_covariance: float = 0.0):
        """Exact filtering with the Kalman filter (validation oracle)."""
        from .kalman import kalman_filter

        self._require_data()
        self._require_phi()
        result = kalman_filter(self.data, self.theta, self.initial_state, initial_covariance)
        self.kalman_state = result.x_hat_filtered
        self.kalman_log_likelihood = result.log_likelihood
        return result

    def estimate_parameters(
        self,
        n_iter: int = 5000,
        n_particles: int = 100,
        step_size: float = 0.10,
        initial_phi: Optional[float] = None,
        burnin: int = 1000,
        seed: Optional[int] = None,
        verbose: bool = True
    ) -> dict:
        """
        Estimate phi by particle Metropolis-Hastings.

        Parameters
        ----------
        n_iter : int
            Number of PMH iterations (default: 5000)
        n_particles : int
            Particles per likelihood estimate (default: 100)
        step_size : float
            Standard deviation of the random walk on phi (default: 0.10)
        initial_phi : float, optional
            Starting value; defaults to the current phi, or 0.5
        burnin : int
            Iterations discarded before summarising (default: 1000)

        Returns
        -------
        dict
            The chain and its posterior summary
        """
        from .estimation import LGSSTarget, PMHSampler, summarize_chain
        from .variates import RandomSource

        self._require_data()
        if burnin >= n_iter:
            raise ValueError(f"burnin ({burnin}) must be less than n_iter ({n_iter}).")

        if initial_phi is None:
            initial_phi = self.phi if self.phi is not None else 0.5

        target = LGSSTarget(self.data, self.sigma_v, self.sigma_e, self.initial_state)
        sampler = PMHSampler(target, n_particles, step_size, random_source=RandomSource(seed))
        if verbose:
            logger.info(f"Running PMH with {n_iter} iterations and {n_particles} particles...")

        self.chain = sampler.run([initial_phi], n_iter)
        summary = summarize_chain(self.chain, burnin=burnin)
        self.estimated_params = summary['posterior_means']
        self.phi = self.estimated_params['phi']

        if verbose:
            logger.info(
                f"phi: mean={self.phi:.4f}, std={summary['posterior_stds']['phi']:.4f}, "
                f"acceptance rate={self.chain.acceptance_rate:.2%}"
            )

        return {'chain': self.chain, **summary}

    def get_results(self) -> dict:
        results = {
            'parameters': {
                'phi': self.phi,
                'sigma_v': self.sigma_v,
                'sigma_e': self.sigma_e,
                'initial_state': self.initial_state
            },
            'log_likelihood': self.log_likelihood,
            'filtered_state': self.filtered_state,
        }
        if self.kalman_state is not None:
            results['kalman_state'] = self.kalman_state
            results['kalman_log_likelihood'] = self.kalman_log_likelihood
        if self.estimated_params:
            results['estimated_parameters'] = self.estimated_params
        return results


class SVModel:
    """
    High-level interface for the stochastic volatility model.

    Examples
    --------
    >>> from pmh import SVModel
    >>>
    >>> sv = SVModel()
    >>> sv.load_data(prices=close_prices)
    >>> results = sv.estimate_parameters(n_iter=7500, n_particles=500)
    >>> print(results['posterior_means'])
    """

    def __init__(
        self,
        mu: Optional[float] = None,
        phi: Optional[float] = None,
        sigma_v: Optional[float] = None,
        data: Optional[Sequence[float]] = None
    ):
        self.mu = mu
        self.phi = phi
        self.sigma_v = sigma_v

        self.data = None if data is None else np.asarray(data, dtype=float)
        self.states = None
        self.dates = None

        self.log_likelihood = None
        self.filtered_log_volatility = None
        self.smoothed_log_volatility = None

        self.estimated_params = {}
        self.chain = None

    @property
    def theta(self):
        return np.array([self.mu, self.phi, self.sigma_v], dtype=float)

    def _require_data(self):
        if self.data is None:
            raise ValueError("No data loaded. Call load_data() or simulate() first.")

    def _require_params(self):
        if any(p is None for p in [self.mu, self.phi, self.sigma_v]):
            raise ValueError(
                "Model parameters not set. Provide mu, phi, sigma_v "
                "or call estimate_parameters() first."
            )

    def load_data(
        self,
        prices=None,
        returns=None,
        csv_path: Optional[str] = None,
        column: str = "Close",
        scale: float = 100.0
    ):
        """
        Load log-returns from a price series, a return series or a CSV file.

        Parameters
        ----------
        prices : pd.Series or array-like, optional
            Price levels; converted to scaled log-returns
        returns : array-like, optional
            Returns used as they are
        csv_path : str, optional
            CSV file with a price column
        column : str
            Price column in the CSV file (default: "Close")
        scale : float
            Multiplier of the log-returns (default: 100, i.e. percent)
        """
        from .utils import load_returns_csv, log_returns_from_prices

        if sum(arg is not None for arg in (prices, returns, csv_path)) != 1:
            raise ValueError("Provide exactly one of prices, returns or csv_path.")

        if csv_path is not None:
            log_returns = load_returns_csv(csv_path, column=column, scale=scale)
        elif prices is not None:
            log_returns = log_returns_from_prices(prices, scale=scale)
        else:
            log_returns = None
            self.data = np.asarray(returns, dtype=float)

        if log_returns is not None:
            self.data = log_returns.to_numpy(dtype=float)
            self.dates = log_returns.index

        logger.info(f"Loaded {len(self.data)} observations")

    def simulate(self, n_obs: int = 500, seed: Optional[int] = None):
        from .simulation import generate_sv_data
        from .variates import RandomSource

        self._require_params()
        simulated = generate_sv_data(self.theta, n_obs, RandomSource(seed))
        self.states = simulated.x
        self.data = simulated.y
        logger.info(f"Simulated {n_obs} observations from the SV model")
        return simulated

    def fit(self, n_particles: int = 500, seed: Optional[int] = None, verbose: bool = True) -> dict:
        """
        Run the bootstrap particle filter with the current parameters.

        Returns
        -------
        dict
            log_likelihood, filtered (weighted mean) log-volatility and one
            smoothed trajectory drawn from the particle system
        """
        from .filtering import particle_filter_sv
        from .variates import RandomSource

        self._require_data()
        self._require_params()
        if verbose:
            logger.info(f"Running bootstrap particle filter with {n_particles} particles...")

        result = particle_filter_sv(self.data, self.theta, n_particles, RandomSource(seed))
        self.log_likelihood = result.log_likelihood
        self.filtered_log_volatility = result.filtered_mean
        self.smoothed_log_volatility = result.x_hat_filtered

        if verbose:
            logger.info(f"Estimated log-likelihood: {self.log_likelihood:.2f}")

        return {
            'log_likelihood': self.log_likelihood,
            'filtered_log_volatility': self.filtered_log_volatility,
            'smoothed_log_volatility': self.smoothed_log_volatility
        }

    def estimate_parameters(
        self,
        method: str = 'pmh',
        n_iter: int = 7500,
        n_particles: int = 500,
        step_size: Optional[Union[np.ndarray, Sequence[Sequence[float]]]] = None,
        initial_theta: Optional[Sequence[float]] = None,
        burnin: int = 2500,
        seed: Optional[int] = None,
        verbose: bool = True
    ) -> dict:
        """
        Estimate (mu, phi, sigma_v) by particle Metropolis-Hastings.

        Parameters
        ----------
        method : str
            'pmh' (random walk on theta) or 'pmh_reparameterised' (random
            walk on (mu, atanh(phi), log(sigma_v)))
        n_iter : int
            Number of PMH iterations (default: 7500)
        n_particles : int
            Particles per likelihood estimate (default: 500)
        step_size : array-like, optional
            Proposal covariance; defaults to diag([0.10, 0.01, 0.05])^2
        initial_theta : array-like, optional
            Starting value; defaults to (0, 0.9, 0.2)
        burnin : int
            Iterations discarded before summarising (default: 2500)
        """
        from .estimation import PMHSampler, SVReparameterisedTarget, SVTarget, summarize_chain
        from .variates import RandomSource

        self._require_data()
        if burnin >= n_iter:
            raise ValueError(f"burnin ({burnin}) must be less than n_iter ({n_iter}).")

        if step_size is None:
            step_size = np.diag(np.array([0.10, 0.01, 0.05]) ** 2)
        if initial_theta is None:
            initial_theta = (0.0, 0.9, 0.2)

        if method == 'pmh':
            target = SVTarget(self.data)
        elif method == 'pmh_reparameterised':
            target = SVReparameterisedTarget(self.data)
        else:
            raise ValueError(f"Unknown estimation method: {method}. Use 'pmh' or 'pmh_reparameterised'.")

        sampler = PMHSampler(target, n_particles, step_size, random_source=RandomSource(seed))
        if verbose:
            logger.info(f"Running {method} with {n_iter} iterations and {n_particles} particles...")

        self.chain = sampler.run(initial_theta, n_iter)
        summary = summarize_chain(self.chain, burnin=burnin)

        self.estimated_params = summary['posterior_means']
        self.mu = self.estimated_params['mu']
        self.phi = self.estimated_params['phi']
        self.sigma_v = self.estimated_params['sigma_v']
        self.smoothed_log_volatility = summary['x_hat_mean']

        if verbose:
            logger.info("\n=== PMH Posterior Statistics ===")
            for param in self.chain.param_names:
                logger.info(
                    f"{param:8s}: mean={summary['posterior_means'][param]:.4f}, "
                    f"std={summary['posterior_stds'][param]:.4f}, "
                    f"95% CI=[{summary['credible_intervals'][param][0]:.4f}, "
                    f"{summary['credible_intervals'][param][1]:.4f}]"
                )

        return {'chain': self.chain, **summary}

    def get_results(self) -> dict:
        results = {
            'parameters': {
                'mu': self.mu,
                'phi': self.phi,
                'sigma_v': self.sigma_v
            },
            'log_likelihood': self.log_likelihood,
            'filtered_log_volatility': self.filtered_log_volatility,
            'smoothed_log_volatility': self.smoothed_log_volatility,
        }
        if self.dates is not None:
            results['dates'] = self.dates
        if self.estimated_params:
            results['estimated_parameters'] = self.estimated_params
        return results
