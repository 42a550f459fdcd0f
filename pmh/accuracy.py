"""
Accuracy of the fully-adapted particle filter against the Kalman filter.
"""

import numpy as np
from typing import Dict, Optional, Sequence
import scipy.stats
import logging

from .filtering import particle_filter
from .kalman import kalman_filter
from .variates import RandomSource

logger = logging.getLogger(__name__)

DEFAULT_PARTICLE_GRID = (10, 20, 50, 100, 200, 500, 1000)


def particle_count_study(
    y,
    theta: Sequence[float],
    initial_state: float = 0.0,
    particle_grid: Sequence[int] = DEFAULT_PARTICLE_GRID,
    n_runs: int = 1,
    random_source: Optional[RandomSource] = None,
    verbose: bool = True
) -> Dict:
    """
    Bias and MSE of the particle filter state estimate as N grows.

    For every N in ``particle_grid`` the filter is run ``n_runs`` times on
    independent random streams and compared with the exact Kalman estimate
    (known initial state).

    Parameters
    ----------
    y : array-like
        Observations y_0..y_T
    theta : array-like
        (phi, sigma_v, sigma_e)
    initial_state : float
        Known initial state
    particle_grid : sequence of int
        Particle counts to compare (default: 10 to 1000)
    n_runs : int
        Independent filter runs per particle count (default: 1)

    Returns
    -------
    dict
        - grid: particle counts
        - log_bias, log_mse: log of mean |PF - KF| and mean (PF - KF)^2,
          averaged over runs
        - loglik_error_mean, loglik_error_std: PF minus KF log-likelihood
        - kalman_log_likelihood
        - mse_fit: linear regression of log-MSE on log N
    """
    if n_runs < 1:
        raise ValueError(f"n_runs must be at least 1 (got {n_runs})")
    random_source = random_source if random_source is not None else RandomSource()

    kf = kalman_filter(y, theta, initial_state, initial_covariance=0.0)
    kf_estimate = kf.x_hat_filtered[:-1]

    grid = np.asarray(particle_grid, dtype=int)
    log_bias = np.zeros(grid.shape[0])
    log_mse = np.zeros(grid.shape[0])
    loglik_error_mean = np.zeros(grid.shape[0])
    loglik_error_std = np.zeros(grid.shape[0])

    streams = random_source.spawn(grid.shape[0] * n_runs)

    if verbose:
        logger.info(f"Running {n_runs} filter run(s) for each of {len(grid)} particle counts...")

    for i, N in enumerate(grid):
        bias = np.zeros(n_runs)
        mse = np.zeros(n_runs)
        loglik_error = np.zeros(n_runs)
        for r in range(n_runs):
            pf = particle_filter(y, theta, N, initial_state, streams[i * n_runs + r])
            difference = pf.x_hat_filtered - kf_estimate
            bias[r] = np.mean(np.abs(difference))
            mse[r] = np.mean(difference ** 2)
            loglik_error[r] = pf.log_likelihood - kf.log_likelihood

        log_bias[i] = np.log(bias.mean())
        log_mse[i] = np.log(mse.mean())
        loglik_error_mean[i] = loglik_error.mean()
        loglik_error_std[i] = loglik_error.std(ddof=1) if n_runs > 1 else 0.0

        if verbose:
            logger.info(
                f"N={N:5d}: log-bias={log_bias[i]:.3f}, log-MSE={log_mse[i]:.3f}, "
                f"loglik error={loglik_error_mean[i]:.3f}"
            )

    results = {
        'grid': grid,
        'log_bias': log_bias,
        'log_mse': log_mse,
        'loglik_error_mean': loglik_error_mean,
        'loglik_error_std': loglik_error_std,
        'kalman_log_likelihood': kf.log_likelihood
    }

    # Monte Carlo error decays like 1/N, so the slope should be close to -1
    if grid.shape[0] > 2:
        fit = scipy.stats.linregress(np.log(grid), log_mse)
        results['mse_fit'] = {
            'slope': fit.slope,
            'intercept': fit.intercept,
            'rvalue': fit.rvalue,
            'pvalue': fit.pvalue
        }
        if verbose:
            logger.info(f"log-MSE vs log-N slope: {fit.slope:.3f} (p-value {fit.pvalue:.4f})")

    return results
