"""
Synthetic data from the LGSS and SV models.
"""

import numpy as np
from typing import NamedTuple, Optional, Sequence

from .model import LinearGaussianSSM, StochVolSSM
from .variates import RandomSource


class SimulatedData(NamedTuple):
    """States x_0..x_T and observations y_0..y_T (y_0 is NaN)."""
    x: np.ndarray
    y: np.ndarray


def _simulate(model, x0, n_obs, random_source):
    if int(n_obs) < 1:
        raise ValueError(f"n_obs must be at least 1 (got {n_obs})")
    n_obs = int(n_obs)

    x = np.zeros(n_obs + 1)
    y = np.zeros(n_obs + 1)
    x[0] = x0
    y[0] = np.nan

    for t in range(1, n_obs + 1):
        x[t] = random_source.sample(model.PX(t, x[t - 1]), size=None)
        y[t] = random_source.sample(model.PY(t, x[t - 1], x[t]), size=None)

    return SimulatedData(x=x, y=y)


def generate_data(
    theta: Sequence[float],
    n_obs: int,
    initial_state: float = 0.0,
    random_source: Optional[RandomSource] = None
) -> SimulatedData:
    """
    Generate data from the LGSS model.

    Parameters
    ----------
    theta : array-like
        (phi, sigma_v, sigma_e); |phi| < 1 and positive standard deviations
    n_obs : int
        Number of time points to simulate
    initial_state : float
        x_0

    Returns
    -------
    SimulatedData
        x and y of length n_obs + 1, with x[0] = initial_state and y[0] = NaN
    """
    random_source = random_source if random_source is not None else RandomSource()
    model = LinearGaussianSSM.from_theta(theta, x0=initial_state).check_params()
    return _simulate(model, initial_state, n_obs, random_source)


def generate_sv_data(
    theta: Sequence[float],
    n_obs: int,
    random_source: Optional[RandomSource] = None
) -> SimulatedData:
    """
    Generate data from the SV model, x_0 drawn from the stationary law.

    Returns
    -------
    SimulatedData
        log-volatility x and returns y of length n_obs + 1, y[0] = NaN
    """
    random_source = random_source if random_source is not None else RandomSource()
    model = StochVolSSM.from_theta(theta).check_params()
    x0 = float(random_source.sample(model.PX0(), size=None))
    return _simulate(model, x0, n_obs, random_source)
