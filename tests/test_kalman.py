"""
Tests for the Kalman filter oracle.
"""

import numpy as np
import pytest
import scipy.stats

from pmh import RandomSource, generate_data, kalman_filter


def _exact_log_likelihood(y, phi, sigma_v, sigma_e, x0):
    """log N(y_1..y_T) from the joint Gaussian of the LGSS model."""
    T = len(y)
    t = np.arange(1, T + 1)
    cov = np.zeros((T, T))
    for i in range(T):
        for j in range(T):
            k = np.arange(1, min(i, j) + 2)
            cov[i, j] = sigma_v ** 2 * np.sum(phi ** (i + 1 - k) * phi ** (j + 1 - k))
    cov += sigma_e ** 2 * np.eye(T)
    mean = phi ** t * x0
    return scipy.stats.multivariate_normal(mean=mean, cov=cov).logpdf(y)


def test_kalman_log_likelihood_is_exact():
    theta = (0.8, 0.7, 0.3)
    data = generate_data(theta, n_obs=6, initial_state=0.5, random_source=RandomSource(4))

    result = kalman_filter(data.y, theta, initial_state=0.5, initial_covariance=0.0)
    expected = _exact_log_likelihood(data.y[1:], *theta, x0=0.5)

    assert result.log_likelihood == pytest.approx(expected, abs=1e-8)


def test_kalman_output_shapes():
    data = generate_data((0.75, 1.0, 0.1), n_obs=20, random_source=RandomSource(5))
    result = kalman_filter(data.y, (0.75, 1.0, 0.1), initial_state=0.0)

    assert result.x_hat_filtered.shape == (21,)
    assert result.filtered_variance.shape == (21,)
    assert result.x_hat_filtered[0] == 0.0
    assert np.all(result.filtered_variance[1:] > 0)


def test_kalman_tracks_state_with_small_observation_noise():
    data = generate_data((0.75, 1.0, 0.1), n_obs=200, random_source=RandomSource(6))
    result = kalman_filter(data.y, (0.75, 1.0, 0.1))
    assert np.mean((result.x_hat_filtered - data.x) ** 2) < 0.02


def test_kalman_skips_missing_observations():
    y = np.array([np.nan, 0.3, np.nan, -0.2])
    result = kalman_filter(y, (0.5, 1.0, 0.1))
    assert result.x_hat_filtered[2] == pytest.approx(0.5 * result.x_hat_filtered[1])
    assert np.isfinite(result.log_likelihood)
