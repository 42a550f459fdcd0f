"""
Gaussian random walk proposals and parameter transformations for PMH.
"""

import numpy as np
from typing import Sequence, Union
import scipy.linalg

from .exceptions import DimensionMismatchError, InvalidParameterError
from .variates import RandomSource

# Scale of the optimal Gaussian random walk, 2.562^2 / P times the posterior
# covariance (Sherlock et al., 2015)
OPTIMAL_RW_SCALE = 2.562


class ScalarStep:
    """
    Step size of a one-dimensional random walk.

    Parameters
    ----------
    scale : float
        Standard deviation of the increment
    """

    dimension = 1

    def __init__(self, scale: float):
        scale = float(scale)
        if not scale > 0.0:
            raise InvalidParameterError(f"Step size must be positive (got {scale})")
        self.scale = scale

    def perturb(self, current: np.ndarray, random_source: RandomSource) -> np.ndarray:
        return current + self.scale * random_source.normal(size=1)

    def __repr__(self):
        return f"ScalarStep(scale={self.scale})"


class CovarianceStep:
    """
    Step of a multivariate random walk with a full covariance matrix.

    Parameters
    ----------
    cov : array-like (P, P)
        Covariance of the increment; must be symmetric positive semi-definite
    """

    def __init__(self, cov):
        cov = np.atleast_2d(np.asarray(cov, dtype=float))
        if cov.ndim != 2 or cov.shape[0] != cov.shape[1]:
            raise DimensionMismatchError(f"Step covariance must be square (got shape {cov.shape})")
        if not np.allclose(cov, cov.T):
            raise InvalidParameterError("Step covariance must be symmetric")
        eigenvalues = scipy.linalg.eigvalsh(cov)
        if eigenvalues.min() < -1e-12 * max(1.0, eigenvalues.max()):
            raise InvalidParameterError("Step covariance must be positive semi-definite")
        self.cov = cov

    @property
    def dimension(self):
        return self.cov.shape[0]

    def perturb(self, current: np.ndarray, random_source: RandomSource) -> np.ndarray:
        return random_source.multivariate_normal(current, self.cov)

    def __repr__(self):
        return f"CovarianceStep(cov={self.cov.tolist()})"


def make_step(dimension: int, step_size) -> Union[ScalarStep, CovarianceStep]:
    """
    Step-size variant for a model with ``dimension`` free parameters.

    One-dimensional models take a scalar standard deviation; models with
    more parameters take a (dimension x dimension) covariance matrix.
    """
    if dimension == 1:
        if np.size(step_size) != 1:
            raise DimensionMismatchError(
                f"A one-parameter model takes a scalar step size (got shape {np.shape(step_size)})"
            )
        return ScalarStep(np.ravel(step_size)[0])

    step = CovarianceStep(step_size)
    if step.dimension != dimension:
        raise DimensionMismatchError(
            f"Step covariance is {step.dimension}x{step.dimension}, "
            f"expected {dimension}x{dimension}"
        )
    return step


def scaled_covariance(estimated_cov) -> np.ndarray:
    """
    Random walk covariance tuned from a pilot run:
    2.562^2 / P times the estimated posterior covariance.
    """
    estimated_cov = np.atleast_2d(np.asarray(estimated_cov, dtype=float))
    return OPTIMAL_RW_SCALE ** 2 / estimated_cov.shape[0] * estimated_cov


class IdentityTransform:
    """The random walk runs directly on the model parameters."""

    def to_unconstrained(self, theta):
        return np.array(theta, dtype=float)

    def to_constrained(self, vartheta):
        return np.array(vartheta, dtype=float)

    def log_jacobian(self, theta) -> float:
        return 0.0


class SVReparameterisation:
    """
    Unconstrained parameters (mu, psi, zeta) of the SV model with
    phi = tanh(psi) and sigma_v = exp(zeta).
    """

    def to_unconstrained(self, theta):
        mu, phi, sigma_v = theta
        return np.array([mu, np.arctanh(phi), np.log(sigma_v)], dtype=float)

    def to_constrained(self, vartheta):
        mu, psi, zeta = vartheta
        return np.array([mu, np.tanh(psi), np.exp(zeta)], dtype=float)

    def log_jacobian(self, theta) -> float:
        """
        log |d(phi, sigma_v) / d(psi, zeta)| = log|1 - phi^2| + log|sigma_v|,
        evaluated at the constrained parameters.
        """
        _, phi, sigma_v = theta
        return float(np.log(np.abs(1.0 - phi ** 2)) + np.log(np.abs(sigma_v)))


class RandomWalkProposal:
    """
    Gaussian random walk in (possibly transformed) parameter space.

    Parameters
    ----------
    step : ScalarStep or CovarianceStep
        Increment distribution
    transform : IdentityTransform or SVReparameterisation
        Map between the model parameters and the space of the walk
    """

    def __init__(self, step, transform=None):
        self.step = step
        self.transform = transform if transform is not None else IdentityTransform()

    def propose(self, current_transformed: Sequence[float], random_source: RandomSource):
        """
        Returns
        -------
        (theta_proposed, theta_transformed_proposed)
        """
        current_transformed = np.asarray(current_transformed, dtype=float)
        transformed = np.asarray(self.step.perturb(current_transformed, random_source), dtype=float)
        return self.transform.to_constrained(transformed), transformed

    def log_jacobian_ratio(self, theta_proposed, theta_current) -> float:
        return self.transform.log_jacobian(theta_proposed) - self.transform.log_jacobian(theta_current)
