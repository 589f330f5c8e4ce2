import numpy as np
from numba import njit


@njit(nogil=True, cache=True)
def logsumexp(a):
    """
    Numba-compatible logsumexp implementation.
    NaN entries are treated as zero weight.
    """
    max_val = -np.inf
    for x in a:
        if x > max_val:
            max_val = x

    if np.isinf(max_val):
        return max_val

    sum_exp = 0.0
    for x in a:
        if not np.isnan(x):
            sum_exp += np.exp(x - max_val)

    return np.log(sum_exp) + max_val


@njit(nogil=True, cache=True)
def ess_reduce(lws):
    """
    Effective sample size of a vector of log-weights.

    Returns:
        tuple: (ess, lW) where ess = (sum w)^2 / sum w^2 and lW is the log of
               the mean weight. NaN log-weights count as zero weight.
    """
    n = lws.shape[0]
    max_val = -np.inf
    for x in lws:
        if x > max_val:
            max_val = x

    if n == 0 or max_val == -np.inf:
        return 0.0, -np.inf
    if max_val == np.inf:
        # a single infinite weight dominates everything else
        return 1.0, np.inf

    sum1 = 0.0
    sum2 = 0.0
    for x in lws:
        if not np.isnan(x):
            w = np.exp(x - max_val)
            sum1 += w
            sum2 += w * w

    ess = (sum1 * sum1) / sum2
    lW = max_val + np.log(sum1) - np.log(n)
    return ess, lW


@njit(nogil=True, cache=True)
def normalised_weights(lws):
    """Linear-domain weights summing to one; NaN counts as zero."""
    n = lws.shape[0]
    max_val = -np.inf
    for x in lws:
        if x > max_val:
            max_val = x

    weights = np.zeros(n)
    if max_val == -np.inf:
        weights[:] = 1.0 / n
        return weights

    total = 0.0
    for i in range(n):
        if not np.isnan(lws[i]):
            weights[i] = np.exp(lws[i] - max_val)
            total += weights[i]
    for i in range(n):
        weights[i] /= total
    return weights


@njit(nogil=True, cache=True)
def multinomial_ancestors(weights, u):
    """Multinomial resampling by inverse CDF; u are n uniform draws."""
    cdf = np.cumsum(weights)
    cdf[-1] = 1.0  # fix precision
    return np.searchsorted(cdf, u)


@njit(nogil=True, cache=True)
def systematic_ancestors(weights, u0):
    """Systematic resampling from a single uniform draw u0 in [0, 1)."""
    n = weights.shape[0]
    cdf = np.cumsum(weights)
    cdf[-1] = 1.0
    ancestors = np.empty(n, dtype=np.int64)
    j = 0
    for i in range(n):
        u = (i + u0) / n
        while j < n - 1 and cdf[j] < u:
            j += 1
        ancestors[i] = j
    return ancestors
