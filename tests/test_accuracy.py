"""
Tests for the particle-count accuracy study.
"""

import numpy as np
import pytest

from pmh import RandomSource, generate_data
from pmh.accuracy import particle_count_study


@pytest.fixture(scope="module")
def data():
    return generate_data((0.75, 1.0, 0.1), n_obs=100, random_source=RandomSource(10))


def test_particle_count_study(data):
    results = particle_count_study(
        data.y, (0.75, 1.0, 0.1), particle_grid=(10, 100, 1000), n_runs=2,
        random_source=RandomSource(1), verbose=False
    )

    np.testing.assert_array_equal(results['grid'], [10, 100, 1000])
    assert results['log_mse'][-1] < results['log_mse'][0]
    assert results['log_bias'][-1] < results['log_bias'][0]
    assert np.all(results['loglik_error_std'] >= 0.0)
    assert abs(results['loglik_error_mean'][-1]) < 1.0
    assert results['mse_fit']['slope'] < 0.0


def test_particle_count_study_small_grid(data):
    results = particle_count_study(
        data.y, (0.75, 1.0, 0.1), particle_grid=(10, 20), random_source=RandomSource(2),
        verbose=False
    )
    assert 'mse_fit' not in results
    np.testing.assert_array_equal(results['loglik_error_std'], 0.0)


def test_particle_count_study_requires_runs(data):
    with pytest.raises(ValueError):
        particle_count_study(data.y, (0.75, 1.0, 0.1), n_runs=0)
