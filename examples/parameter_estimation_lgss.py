"""
Parameter estimation in the LGSS model.

This example demonstrates:
1. Estimating phi with particle Metropolis-Hastings
2. The effect of the random walk step size on mixing
"""

from pmh import LGSSModel, diagnose_mixing
import logging

# Set up logging
logging.basicConfig(level=logging.INFO)

true_phi = 0.75
lgss = LGSSModel(phi=true_phi, sigma_v=1.0, sigma_e=0.1)
lgss.simulate(n_obs=250, seed=10)
data = lgss.data

print("\nEstimating phi with three step sizes (this will take a few minutes)...")
for step_size in (0.01, 0.10, 0.50):
    model = LGSSModel(sigma_v=1.0, sigma_e=0.1, data=data)
    results = model.estimate_parameters(
        n_iter=5000,
        n_particles=100,
        step_size=step_size,
        initial_phi=0.5,
        burnin=1000,
        seed=10
    )
    print(f"\nstep size {step_size:.2f}: posterior mean of phi = {model.phi:.4f} "
          f"(true value {true_phi}), IACT = {results['iact']['phi']:.1f}")
    diagnose_mixing(results['chain'], burnin=1000)
