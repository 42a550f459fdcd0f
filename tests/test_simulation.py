"""
Tests for synthetic data generation.
"""

import numpy as np
import pytest

from pmh import InvalidParameterError, RandomSource, generate_data, generate_sv_data


def test_generate_data_lengths_and_initial_state():
    data = generate_data((0.5, 1.0, 0.1), n_obs=100, initial_state=0.0,
                         random_source=RandomSource(1))

    assert data.x.shape == (101,)
    assert data.y.shape == (101,)
    assert data.x[0] == 0.0
    assert np.isnan(data.y[0])
    assert np.all(np.isfinite(data.y[1:]))


def test_generate_data_observation_noise():
    data = generate_data((0.5, 1.0, 0.1), n_obs=2000, random_source=RandomSource(2))
    residuals = data.y[1:] - data.x[1:]
    assert residuals.std() == pytest.approx(0.1, rel=0.1)


def test_generate_data_is_reproducible():
    first = generate_data((0.75, 1.0, 0.1), n_obs=50, random_source=RandomSource(10))
    second = generate_data((0.75, 1.0, 0.1), n_obs=50, random_source=RandomSource(10))
    np.testing.assert_array_equal(first.x, second.x)
    np.testing.assert_array_equal(first.y[1:], second.y[1:])


@pytest.mark.parametrize("theta", [(1.0, 1.0, 0.1), (-1.5, 1.0, 0.1), (0.5, 0.0, 0.1), (0.5, 1.0, -0.1)])
def test_generate_data_rejects_invalid_parameters(theta):
    with pytest.raises(InvalidParameterError):
        generate_data(theta, n_obs=10)


def test_generate_sv_data():
    data = generate_sv_data((0.0, 0.9, 0.2), n_obs=300, random_source=RandomSource(3))

    assert data.x.shape == (301,)
    assert np.isnan(data.y[0])
    # Returns are centred and scaled by exp(x / 2)
    standardised = data.y[1:] / np.exp(data.x[1:] / 2)
    assert abs(standardised.mean()) < 0.2
    assert standardised.std() == pytest.approx(1.0, rel=0.15)


def test_generate_sv_data_rejects_nonstationary_model():
    with pytest.raises(InvalidParameterError):
        generate_sv_data((0.0, 1.0, 0.2), n_obs=10)
