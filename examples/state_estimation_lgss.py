"""
State estimation in the LGSS model.

This example demonstrates:
1. Generating data from the linear Gaussian state-space model
2. Running the fully-adapted particle filter and the Kalman filter
3. Bias and MSE of the particle filter as the number of particles grows
"""

from pmh import LGSSModel
from pmh.accuracy import particle_count_study
from pmh.variates import RandomSource
import logging

# Set up logging
logging.basicConfig(level=logging.INFO)

# x[t + 1] = phi * x[t] + sigmav * v[t],    v[t] ~ N(0, 1)
# y[t] = x[t] + sigmae * e[t],              e[t] ~ N(0, 1)
lgss = LGSSModel(phi=0.75, sigma_v=1.0, sigma_e=0.1, initial_state=0.0)
lgss.simulate(n_obs=250, seed=10)

# Particle filter with 20 particles against the Kalman filter
lgss.fit(n_particles=20, seed=10)
kf = lgss.kalman()
difference = lgss.filtered_state - kf.x_hat_filtered[:-1]

print("\n=== State estimation ===")
print(f"Particle filter log-likelihood: {lgss.log_likelihood:.4f}")
print(f"Kalman filter log-likelihood:   {kf.log_likelihood:.4f}")
print(f"Max |PF - KF| state error:      {abs(difference).max():.4f}")

# Bias and MSE while varying the number of particles
study = particle_count_study(lgss.data, lgss.theta, random_source=RandomSource(10))

print("\n=== Bias / MSE vs number of particles ===")
for N, log_bias, log_mse in zip(study['grid'], study['log_bias'], study['log_mse']):
    print(f"N={N:5d}  log-bias={log_bias:7.3f}  log-MSE={log_mse:7.3f}")
