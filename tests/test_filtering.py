"""
Tests for the particle filters.
"""

import numpy as np
import pytest
import particles
from particles import state_space_models as ssm

from pmh import (
    DegenerateWeightsError,
    DimensionMismatchError,
    InvalidParameterError,
    RandomSource,
    StochVolSSM,
    generate_data,
    generate_sv_data,
    kalman_filter,
    particle_filter,
    particle_filter_sv,
)
from pmh.filtering import normalise_log_weights

THETA_LGSS = (0.75, 1.0, 0.1)
THETA_SV = (0.0, 0.9, 0.2)


@pytest.fixture(scope="module")
def lgss_data():
    return generate_data(THETA_LGSS, n_obs=100, initial_state=0.0, random_source=RandomSource(10))


@pytest.fixture(scope="module")
def sv_data():
    return generate_sv_data(THETA_SV, n_obs=100, random_source=RandomSource(20))


def test_normalise_log_weights():
    lw = np.log(np.array([1.0, 2.0, 3.0, 4.0])) - 1000.0
    W, increment = normalise_log_weights(lw)

    np.testing.assert_allclose(W, [0.1, 0.2, 0.3, 0.4])
    assert increment == pytest.approx(np.log(10.0 / 4.0) - 1000.0)


def test_normalise_log_weights_treats_nan_as_zero_weight():
    W, _ = normalise_log_weights(np.array([0.0, np.nan, 0.0]))
    np.testing.assert_allclose(W, [0.5, 0.0, 0.5])


def test_normalise_log_weights_degenerate():
    with pytest.raises(DegenerateWeightsError) as excinfo:
        normalise_log_weights(np.full(5, -np.inf), t=7)
    assert excinfo.value.t == 7


def test_fully_adapted_output_shapes(lgss_data):
    result = particle_filter(lgss_data.y, THETA_LGSS, 50, random_source=RandomSource(1))

    assert result.x_hat_filtered.shape == (100,)
    assert result.particles.shape == (50, 100)
    assert result.weights.shape == (50, 100)
    assert np.isfinite(result.log_likelihood)
    np.testing.assert_allclose(result.weights.sum(axis=0), 1.0)
    assert np.all(result.ess >= 1.0 - 1e-9)
    assert np.all(result.ess <= 50 + 1e-9)


def test_fully_adapted_starts_at_initial_state(lgss_data):
    result = particle_filter(lgss_data.y, THETA_LGSS, 20, initial_state=0.0,
                             random_source=RandomSource(1))
    assert np.all(result.particles[:, 0] == 0.0)
    assert result.x_hat_filtered[0] == 0.0


def test_fully_adapted_matches_kalman(lgss_data):
    kf = kalman_filter(lgss_data.y, THETA_LGSS, initial_state=0.0, initial_covariance=0.0)
    pf = particle_filter(lgss_data.y, THETA_LGSS, 1000, random_source=RandomSource(2))

    assert np.mean((pf.x_hat_filtered - kf.x_hat_filtered[:-1]) ** 2) < 1e-3
    assert pf.log_likelihood == pytest.approx(kf.log_likelihood, abs=1.0)


def test_fully_adapted_error_decreases_with_particles(lgss_data):
    kf = kalman_filter(lgss_data.y, THETA_LGSS)
    mse = {}
    for N in (10, 1000):
        errors = [
            np.mean((particle_filter(lgss_data.y, THETA_LGSS, N, random_source=stream).x_hat_filtered
                     - kf.x_hat_filtered[:-1]) ** 2)
            for stream in RandomSource(3).spawn(3)
        ]
        mse[N] = np.mean(errors)
    assert mse[1000] < mse[10]


def test_fully_adapted_is_reproducible(lgss_data):
    first = particle_filter(lgss_data.y, THETA_LGSS, 30, random_source=RandomSource(5))
    second = particle_filter(lgss_data.y, THETA_LGSS, 30, random_source=RandomSource(5))

    np.testing.assert_array_equal(first.x_hat_filtered, second.x_hat_filtered)
    assert first.log_likelihood == second.log_likelihood


def test_fully_adapted_degenerate_weights():
    # The predictive density of an astronomically large observation
    # underflows for every particle
    y = np.array([np.nan, 0.1, 1e200])
    with pytest.raises(DegenerateWeightsError) as excinfo:
        particle_filter(y, THETA_LGSS, 10, random_source=RandomSource(0))
    assert excinfo.value.t == 1


def test_fully_adapted_rejects_invalid_inputs(lgss_data):
    with pytest.raises(InvalidParameterError):
        particle_filter(lgss_data.y, (1.0, 1.0, 0.1), 10)
    with pytest.raises(DimensionMismatchError):
        particle_filter(np.array([np.nan]), THETA_LGSS, 10)
    with pytest.raises(DimensionMismatchError):
        particle_filter(np.zeros((3, 2)), THETA_LGSS, 10)
    with pytest.raises(ValueError):
        particle_filter(lgss_data.y, THETA_LGSS, 0)


def test_bootstrap_output_shapes(sv_data):
    result = particle_filter_sv(sv_data.y, THETA_SV, 200, random_source=RandomSource(4))

    assert result.x_hat_filtered.shape == (101,)
    assert result.filtered_mean.shape == (101,)
    assert np.isfinite(result.log_likelihood)
    np.testing.assert_allclose(result.weights.sum(axis=0), 1.0)
    # y_0 is missing: the initial particles keep uniform weights
    np.testing.assert_allclose(result.weights[:, 0], 1.0 / 200)


def test_bootstrap_trajectory_follows_ancestry(sv_data):
    result = particle_filter_sv(sv_data.y, THETA_SV, 100, random_source=RandomSource(6))
    n_states = result.particles.shape[1]

    # The returned trajectory is one lineage of the particle system
    lineages = [result.trajectory(i) for i in range(100)]
    assert any(np.array_equal(result.x_hat_filtered, lineage) for lineage in lineages)

    lineage = result.ancestry(17)
    assert lineage[-1] == 17
    for t in range(1, n_states):
        assert lineage[t - 1] == result.ancestors[lineage[t], t]


def test_bootstrap_matches_particles_library(sv_data):
    y = sv_data.y[1:]
    ours = np.mean([
        particle_filter_sv(y, THETA_SV, 1000, random_source=stream).log_likelihood
        for stream in RandomSource(7).spawn(3)
    ])

    np.random.seed(7)
    fk = ssm.Bootstrap(ssm=StochVolSSM(*THETA_SV), data=y)
    reference = []
    for _ in range(3):
        alg = particles.SMC(fk=fk, N=1000, resampling='multinomial', ESSrmin=1.0)
        alg.run()
        reference.append(alg.logLt)

    assert ours == pytest.approx(np.mean(reference), abs=1.0)


def test_bootstrap_rejects_nonstationary_model(sv_data):
    with pytest.raises(InvalidParameterError):
        particle_filter_sv(sv_data.y, (0.0, 1.2, 0.2), 10)
    with pytest.raises(InvalidParameterError):
        particle_filter_sv(sv_data.y, (0.0, 0.9, -0.2), 10)
