"""
Particle filtering and particle Metropolis-Hastings for state-space models.

This package provides fully-adapted and bootstrap particle filters for a
linear Gaussian and a stochastic volatility model, a Kalman filter oracle,
and a particle Metropolis-Hastings sampler for parameter inference.
"""

from .exceptions import (
    DegenerateWeightsError,
    DimensionMismatchError,
    InvalidParameterError,
    PMHError,
)
from .variates import RandomSource
from .model import LinearGaussianSSM, StochVolSSM, LGSSModel, SVModel, default_prior
from .kalman import kalman_filter
from .filtering import ParticleFilter, FullyAdapted, Bootstrap, particle_filter, particle_filter_sv
from .proposals import ScalarStep, CovarianceStep, SVReparameterisation, make_step, scaled_covariance
from .estimation import (
    LGSSTarget,
    SVTarget,
    SVReparameterisedTarget,
    PMHSampler,
    PMHChain,
    particle_metropolis_hastings,
    particle_metropolis_hastings_sv,
    particle_metropolis_hastings_sv_reparameterised,
    summarize_chain,
    diagnose_mixing,
)
from .simulation import generate_data, generate_sv_data

__all__ = [
    'PMHError', 'InvalidParameterError', 'DimensionMismatchError', 'DegenerateWeightsError',
    'RandomSource',
    'LinearGaussianSSM', 'StochVolSSM', 'LGSSModel', 'SVModel', 'default_prior',
    'kalman_filter',
    'ParticleFilter', 'FullyAdapted', 'Bootstrap', 'particle_filter', 'particle_filter_sv',
    'ScalarStep', 'CovarianceStep', 'SVReparameterisation', 'make_step', 'scaled_covariance',
    'LGSSTarget', 'SVTarget', 'SVReparameterisedTarget', 'PMHSampler', 'PMHChain',
    'particle_metropolis_hastings', 'particle_metropolis_hastings_sv',
    'particle_metropolis_hastings_sv_reparameterised', 'summarize_chain', 'diagnose_mixing',
    'generate_data', 'generate_sv_data',
]
__version__ = '0.1.0'
