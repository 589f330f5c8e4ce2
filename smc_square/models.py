import numpy as np
from scipy.stats import beta, invgamma, norm


class StateSpaceModel:
    """
    Base class of the models the bootstrap filter can run.

    theta is a 1-D float array of length `dim`; x-particles are arrays of
    shape (N_x, state_dim). Subclasses implement the prior, the initial
    state distribution, the transition and the observation density.
    """
    dim = None
    state_dim = 1
    param_names = ()

    def sample_prior(self, rng):
        raise NotImplementedError

    def log_prior(self, theta):
        raise NotImplementedError

    def sample_initial(self, rng, theta, N):
        raise NotImplementedError

    def transition(self, rng, x, theta, t_from, t_to):
        raise NotImplementedError

    def log_observation(self, x, y_t, theta):
        raise NotImplementedError

    def sample_observation(self, rng, x, theta):
        raise NotImplementedError

    def simulate(self, rng, theta, times):
        """
        Simulates one latent path and its observations at `times`.

        Returns:
            tuple: (x, y) with x of shape (T, state_dim) and y of shape (T,).
        """
        theta = np.asarray(theta, dtype=float)
        times = np.asarray(times, dtype=float)
        x = np.zeros((len(times), self.state_dim))
        y = np.zeros(len(times))
        x_t = self.sample_initial(rng, theta, 1)
        for k, t in enumerate(times):
            if k > 0:
                x_t = self.transition(rng, x_t, theta, times[k - 1], t)
            x[k] = x_t[0]
            y[k] = self.sample_observation(rng, x_t, theta)[0]
        return x, y

    def theta_dict(self, theta):
        return dict(zip(self.param_names, np.asarray(theta, dtype=float)))


class StochasticVolatility(StateSpaceModel):
    """
    Random-walk log-volatility with a constant mean.

        x_0 ~ N(0, sigma_0)
        x_t = x_{t-1} + sqrt(phi * dt) * eps_t
        y_t ~ N(mu, exp(x_t))

    theta = (mu, phi) with mu ~ N(0, 10), phi ~ InvGamma(2, scale=0.5).
    """
    dim = 2
    param_names = ('mu', 'phi')

    def __init__(self, sigma_0=2.31, mu_var=10.0, phi_shape=2.0, phi_scale=0.5):
        self.sigma_0 = sigma_0  # variance of the initial log-volatility
        self.mu_var = mu_var
        self.phi_shape = phi_shape
        self.phi_scale = phi_scale

    def sample_prior(self, rng):
        mu = rng.normal(0.0, np.sqrt(self.mu_var))
        phi = invgamma.rvs(self.phi_shape, scale=self.phi_scale, random_state=rng)
        return np.array([mu, phi])

    def log_prior(self, theta):
        mu, phi = theta
        if not phi > 0:
            return -np.inf
        return (norm.logpdf(mu, 0.0, np.sqrt(self.mu_var))
                + invgamma.logpdf(phi, self.phi_shape, scale=self.phi_scale))

    def sample_initial(self, rng, theta, N):
        return rng.normal(0.0, np.sqrt(self.sigma_0), size=(N, 1))

    def transition(self, rng, x, theta, t_from, t_to):
        phi = theta[1]
        dt = t_to - t_from
        x_t = x + rng.normal(0.0, np.sqrt(phi * dt), size=x.shape)
        # add clipping
        return np.clip(x_t, -10.0, 10.0)

    def log_observation(self, x, y_t, theta):
        mu = theta[0]
        res = np.clip(y_t - mu, -1e3, 1e3)
        lw = -0.5 * (np.log(2 * np.pi) + x[:, 0] + np.exp(-x[:, 0]) * res ** 2)
        return np.where(np.isnan(lw), -np.inf, lw)

    def sample_observation(self, rng, x, theta):
        return theta[0] + np.exp(0.5 * x[:, 0]) * rng.normal(size=x.shape[0])


class AR1Volatility(StateSpaceModel):
    """
    Stationary AR(1) log-volatility.

        x_0 ~ N(mu, phi / (1 - rho^2))
        x_t = mu + rho * (x_{t-1} - mu) + sqrt(phi) * eps_t
        y_t ~ N(0, exp(x_t))

    theta = (mu, rho, phi); the prior on (rho + 1) / 2 is Beta(phi1, phi2).
    """
    dim = 3
    param_names = ('mu', 'rho', 'phi')

    def __init__(self, mu_var=10.0, phi1=20.0, phi2=1.5, phi_shape=2.0, phi_scale=0.5):
        self.mu_var = mu_var
        self.phi1 = phi1
        self.phi2 = phi2
        self.phi_shape = phi_shape
        self.phi_scale = phi_scale

    def sample_prior(self, rng):
        mu = rng.normal(0.0, np.sqrt(self.mu_var))
        rho = 2.0 * rng.beta(self.phi1, self.phi2) - 1.0
        phi = invgamma.rvs(self.phi_shape, scale=self.phi_scale, random_state=rng)
        return np.array([mu, rho, phi])

    def log_prior(self, theta):
        mu, rho, phi = theta
        if rho <= -1 or rho >= 1 or not phi > 0:
            return -np.inf
        return (norm.logpdf(mu, 0.0, np.sqrt(self.mu_var))
                + beta.logpdf((rho + 1) / 2, self.phi1, self.phi2) - np.log(2.0)
                + invgamma.logpdf(phi, self.phi_shape, scale=self.phi_scale))

    def sample_initial(self, rng, theta, N):
        mu, rho, phi = theta
        var0 = phi / (1.0 - rho ** 2)
        return rng.normal(mu, np.sqrt(var0), size=(N, 1))

    def transition(self, rng, x, theta, t_from, t_to):
        mu, rho, phi = theta
        # one AR(1) step per unit of time
        n_steps = max(int(round(t_to - t_from)), 1)
        for _ in range(n_steps):
            x = mu + rho * (x - mu) + rng.normal(0.0, np.sqrt(phi), size=x.shape)
        return np.clip(x, -10.0, 10.0)

    def log_observation(self, x, y_t, theta):
        res = np.clip(y_t, -1e3, 1e3)
        lw = -0.5 * (np.log(2 * np.pi) + x[:, 0] + np.exp(-x[:, 0]) * res ** 2)
        return np.where(np.isnan(lw), -np.inf, lw)

    def sample_observation(self, rng, x, theta):
        return np.exp(0.5 * x[:, 0]) * rng.normal(size=x.shape[0])
