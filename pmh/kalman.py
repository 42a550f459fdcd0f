"""
Kalman filter for the LGSS model (exact oracle for the particle filter).
"""

import numpy as np
from typing import NamedTuple, Sequence
from particles import distributions as dists

from .filtering import check_observations
from .model import LinearGaussianSSM


class KalmanResult(NamedTuple):
    x_hat_filtered: np.ndarray
    filtered_variance: np.ndarray
    x_hat_predicted: np.ndarray
    log_likelihood: float


def kalman_filter(
    y,
    theta: Sequence[float],
    initial_state: float = 0.0,
    initial_covariance: float = 0.0
) -> KalmanResult:
    """
    Scalar Kalman filter for x_t = phi x_{t-1} + sigma_v v_t,
    y_t = x_t + sigma_e e_t.

    Parameters
    ----------
    y : array-like
        Observations y_0..y_T; y_0 (and any other NaN) is treated as missing
    theta : array-like
        (phi, sigma_v, sigma_e)
    initial_state : float
        Mean of x_0
    initial_covariance : float
        Variance of x_0. With 0 (known initial state) the log-likelihood is
        exactly the quantity estimated by the fully-adapted particle filter.

    Returns
    -------
    KalmanResult
        Filtered means and variances for t = 0..T, one-step predictions and
        the log-likelihood of the observed y_t.
    """
    y = check_observations(y, min_length=1)
    model = LinearGaussianSSM.from_theta(theta, x0=initial_state).check_params()
    A, C = model.phi, 1.0
    Q, R = model.sigma_v ** 2, model.sigma_e ** 2

    n = y.shape[0]
    x_hat_filtered = np.zeros(n)
    filtered_variance = np.zeros(n)
    x_hat_predicted = np.zeros(n)
    log_likelihood = 0.0

    x_hat_filtered[0] = initial_state
    filtered_variance[0] = initial_covariance
    x_hat_predicted[0] = initial_state

    for t in range(1, n):
        # Prediction step
        x_hat_predicted[t] = A * x_hat_filtered[t - 1]
        predicted_variance = A * filtered_variance[t - 1] * A + Q

        if np.isnan(y[t]):
            x_hat_filtered[t] = x_hat_predicted[t]
            filtered_variance[t] = predicted_variance
            continue

        # Correction step
        S = C * predicted_variance * C + R
        kalman_gain = predicted_variance * C / S
        y_hat_predicted = C * x_hat_predicted[t]
        x_hat_filtered[t] = x_hat_predicted[t] + kalman_gain * (y[t] - y_hat_predicted)
        filtered_variance[t] = predicted_variance - kalman_gain * S * kalman_gain

        log_likelihood += dists.Normal(loc=y_hat_predicted, scale=np.sqrt(S)).logpdf(y[t])

    return KalmanResult(
        x_hat_filtered=x_hat_filtered,
        filtered_variance=filtered_variance,
        x_hat_predicted=x_hat_predicted,
        log_likelihood=float(log_likelihood)
    )
