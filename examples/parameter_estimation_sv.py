"""
Parameter estimation in the stochastic volatility model.

This example demonstrates:
1. Loading returns (simulated here, or from a CSV of prices)
2. A pilot PMH run on (mu, phi, sigma_v)
3. A second run with the proposal tuned from the pilot posterior covariance
4. The reparameterised sampler on (mu, atanh(phi), log(sigma_v))
"""

import sys
from pmh import SVModel
from pmh.proposals import scaled_covariance
import logging

# Set up logging
logging.basicConfig(level=logging.INFO)

sv = SVModel(mu=0.0, phi=0.95, sigma_v=0.2)
if len(sys.argv) > 1:
    # e.g. python parameter_estimation_sv.py prices.csv
    sv.load_data(csv_path=sys.argv[1], column="Close")
else:
    sv.simulate(n_obs=500, seed=10)

# Pilot run with a diagonal proposal
print("\nPilot PMH run (this will take several minutes)...")
pilot = sv.estimate_parameters(method='pmh', n_iter=2500, n_particles=500, burnin=500, seed=10)

# Tuned run
step_size = scaled_covariance(pilot['estimated_cov'])
print("\nTuned PMH run...")
tuned = sv.estimate_parameters(
    method='pmh', n_iter=7500, n_particles=500, step_size=step_size,
    initial_theta=(0.0, 0.9, 0.2), burnin=2500, seed=10
)

# Reparameterised run (covariance on the transformed scale)
print("\nReparameterised PMH run...")
reparameterised = sv.estimate_parameters(
    method='pmh_reparameterised', n_iter=7500, n_particles=500,
    step_size=[[0.01, 0.0, 0.0], [0.0, 0.01, 0.0], [0.0, 0.0, 0.01]],
    initial_theta=(0.0, 0.9, 0.2), burnin=2500, seed=10
)

print("\n=== Posterior means ===")
for name, results in (("tuned", tuned), ("reparameterised", reparameterised)):
    means = results['posterior_means']
    print(f"{name:16s}: mu={means['mu']:.4f} phi={means['phi']:.4f} sigma_v={means['sigma_v']:.4f} "
          f"(acceptance {results['acceptance_rate']:.2%})")
