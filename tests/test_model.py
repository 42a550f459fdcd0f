"""
Tests for the state-space models and the high-level model interfaces.
"""

import numpy as np
import pandas as pd
import pytest

from pmh import InvalidParameterError, LGSSModel, LinearGaussianSSM, StochVolSSM, SVModel, default_prior


def test_lgss_proposal_combines_prediction_and_observation():
    model = LinearGaussianSSM(phi=0.5, sigma_v=1.0, sigma_e=1.0)
    data = np.array([np.nan, 2.0])
    proposal = model.proposal(1, np.array([1.0]), data)

    # Precision 2, mean (2.0 + 0.5) / 2
    np.testing.assert_allclose(proposal.loc, [1.25])
    assert proposal.scale == pytest.approx(np.sqrt(0.5))


def test_lgss_proposal_without_observation_is_transition():
    model = LinearGaussianSSM(phi=0.5, sigma_v=1.0, sigma_e=0.1)
    proposal = model.proposal(1, np.array([2.0]), np.array([np.nan, np.nan]))
    np.testing.assert_allclose(proposal.loc, [1.0])
    assert proposal.scale == 1.0


def test_lgss_predictive():
    model = LinearGaussianSSM(phi=0.5, sigma_v=1.0, sigma_e=0.1)
    predictive = model.predictive(np.array([2.0]))
    np.testing.assert_allclose(predictive.loc, [1.0])
    assert predictive.scale == pytest.approx(np.sqrt(1.01))


def test_check_params():
    with pytest.raises(InvalidParameterError):
        LinearGaussianSSM(phi=1.0, sigma_v=1.0, sigma_e=0.1).check_params()
    with pytest.raises(InvalidParameterError):
        StochVolSSM(mu=0.0, phi=0.9, sigma_v=0.0).check_params()
    assert StochVolSSM(mu=0.0, phi=0.9, sigma_v=0.2).check_params().phi == 0.9


def test_default_prior():
    assert set(default_prior('sv')) == {'mu', 'phi', 'sigma_v'}
    with pytest.raises(ValueError):
        default_prior('garch')


def test_lgss_model_workflow():
    lgss = LGSSModel(phi=0.75)
    simulated = lgss.simulate(n_obs=50, seed=1)
    assert simulated.y.shape == (51,)

    fitted = lgss.fit(n_particles=100, seed=2, verbose=False)
    kf = lgss.kalman()
    assert fitted['filtered_state'].shape == (50,)
    assert fitted['log_likelihood'] == pytest.approx(kf.log_likelihood, abs=2.0)

    results = lgss.get_results()
    assert results['parameters']['phi'] == 0.75
    assert 'kalman_state' in results


def test_lgss_model_estimate_parameters():
    lgss = LGSSModel(phi=0.5)
    lgss.simulate(n_obs=50, seed=3)
    results = lgss.estimate_parameters(n_iter=60, n_particles=20, burnin=20, seed=4, verbose=False)

    assert len(results['chain']) == 60
    assert lgss.phi == results['posterior_means']['phi']
    assert 'estimated_parameters' in lgss.get_results()


def test_lgss_model_errors():
    with pytest.raises(ValueError):
        LGSSModel(phi=0.5).fit()
    with pytest.raises(ValueError):
        LGSSModel().simulate()
    lgss = LGSSModel(phi=0.5)
    lgss.simulate(n_obs=20, seed=5)
    with pytest.raises(ValueError):
        lgss.estimate_parameters(n_iter=10, burnin=10)


def test_sv_model_load_data():
    sv = SVModel()
    dates = pd.date_range("2024-01-01", periods=5, freq="D")
    sv.load_data(prices=pd.Series([100.0, 101.0, 99.0, 100.5, 102.0], index=dates))
    assert sv.data.shape == (4,)
    assert list(sv.dates) == list(dates[1:])

    sv.load_data(returns=[0.1, -0.2])
    np.testing.assert_array_equal(sv.data, [0.1, -0.2])

    with pytest.raises(ValueError):
        sv.load_data(prices=[1.0, 2.0], returns=[0.1])


def test_sv_model_workflow():
    sv = SVModel(mu=0.0, phi=0.9, sigma_v=0.2)
    sv.simulate(n_obs=40, seed=6)
    fitted = sv.fit(n_particles=100, seed=7, verbose=False)

    assert fitted['filtered_log_volatility'].shape == (41,)
    assert fitted['smoothed_log_volatility'].shape == (41,)
    assert np.isfinite(fitted['log_likelihood'])


@pytest.mark.parametrize("method", ["pmh", "pmh_reparameterised"])
def test_sv_model_estimate_parameters(method):
    sv = SVModel(mu=0.0, phi=0.9, sigma_v=0.2)
    sv.simulate(n_obs=30, seed=8)
    results = sv.estimate_parameters(method=method, n_iter=30, n_particles=30, burnin=10,
                                     seed=9, verbose=False)

    assert set(results['posterior_means']) == {'mu', 'phi', 'sigma_v'}
    assert sv.phi == results['posterior_means']['phi']
    assert results['x_hat_mean'].shape == (31,)


def test_sv_model_errors():
    with pytest.raises(ValueError):
        SVModel().fit()
    sv = SVModel(data=[0.1, 0.2, -0.1])
    with pytest.raises(ValueError):
        sv.fit()
    with pytest.raises(ValueError):
        sv.estimate_parameters(method='qmc', n_iter=10, burnin=5)
