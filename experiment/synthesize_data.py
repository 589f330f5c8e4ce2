import numpy as np

from smc_square import AR1Volatility, StochasticVolatility


def simulate_sv(T, mu=0.5, phi=0.05, seed=0):
    """
    Simulate data from the random-walk stochastic volatility model.

    Args:
        T (int): Number of time steps
        mu (float): Observation mean
        phi (float): Variance of the log-volatility increments
        seed (int): Random seed

    Returns:
        y (np.ndarray): shape (T,)
        log_lambda (np.ndarray): shape (T,)
        times (np.ndarray): shape (T,), observation times 1, ..., T
    """
    rng = np.random.default_rng(seed)
    model = StochasticVolatility()
    times = np.arange(1, T + 1, dtype=float)
    log_lambda, y = model.simulate(rng, np.array([mu, phi]), np.concatenate([[0.0], times]))
    return y[1:], log_lambda[1:, 0], times


def simulate_ar1_sv(T, mu=-1.0, rho=0.9, phi=0.1, seed=0):
    """
    Simulate data from the stationary AR(1) stochastic volatility model.

    Returns:
        y (np.ndarray): shape (T,)
        log_lambda (np.ndarray): shape (T,)
        times (np.ndarray): shape (T,)
    """
    rng = np.random.default_rng(seed)
    model = AR1Volatility()
    times = np.arange(1, T + 1, dtype=float)
    log_lambda, y = model.simulate(rng, np.array([mu, rho, phi]), np.concatenate([[0.0], times]))
    return y[1:], log_lambda[1:, 0], times
