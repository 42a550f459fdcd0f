"""
Seedable source of random variates shared by the filters and the sampler.
"""

import numpy as np
from typing import List, Optional, Union
from particles import distributions as dists
from particles import resampling as rs


class RandomSource:
    """
    Deterministic source of normal, uniform and multivariate-normal draws.

    Every random quantity in the package is drawn through one of these
    objects, so fixing ``seed`` makes filter outputs and Markov chains
    bit-identical across runs.

    Parameters
    ----------
    seed : int, np.random.SeedSequence or None
        Seed of the underlying ``numpy.random.Generator``. ``None`` draws
        fresh entropy from the OS.
    """

    def __init__(self, seed: Optional[Union[int, np.random.SeedSequence]] = None):
        if isinstance(seed, np.random.SeedSequence):
            self.seed_sequence = seed
        else:
            self.seed_sequence = np.random.SeedSequence(seed)
        self.generator = np.random.default_rng(self.seed_sequence)

    def spawn(self, n: int) -> List["RandomSource"]:
        """Independent child streams derived from this source's seed."""
        return [RandomSource(child) for child in self.seed_sequence.spawn(n)]

    def normal(self, loc=0.0, scale=1.0, size=None):
        return self.generator.normal(loc=loc, scale=scale, size=size)

    def uniform(self, size=None):
        return self.generator.random(size=size)

    def multivariate_normal(self, mean, cov):
        return self.generator.multivariate_normal(mean, cov)

    def sample(self, dist, size=None):
        """
        Draw from a ``particles.distributions`` Normal or Dirac object.

        When the distribution's location is already an array (one entry per
        particle) ``size`` must be left to ``None``.
        """
        if isinstance(dist, dists.Dirac):
            if size is None:
                return np.array(dist.loc, dtype=float)
            return np.full(size, dist.loc, dtype=float)
        if isinstance(dist, dists.Normal):
            return self.normal(loc=dist.loc, scale=dist.scale, size=size)
        raise TypeError(f"Cannot sample from {type(dist).__name__}")

    def uniform_spacings(self, M: int) -> np.ndarray:
        """M sorted uniform variates, generated in O(M) without sorting."""
        z = np.cumsum(-np.log(self.uniform(M + 1)))
        return z[:-1] / z[-1]

    def multinomial(self, W: np.ndarray, M: Optional[int] = None) -> np.ndarray:
        """
        Multinomial resampling: M ancestor indices drawn with replacement
        with selection probabilities W (normalised weights).
        """
        W = np.asarray(W, dtype=float)
        M = W.shape[0] if M is None else M
        return rs.inverse_cdf(self.uniform_spacings(M), W)
