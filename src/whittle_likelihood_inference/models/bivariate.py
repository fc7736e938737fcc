import numpy

from whittle_likelihood_inference.models.base import TimeSeriesModel, ModelParameter
from whittle_likelihood_inference.backend import BackendManager

xp = BackendManager.get_backend()


def _pattern(values: xp.ndarray, weights) -> xp.ndarray:
    """Multiply values by the compact-layout weights, adding the leading component axis."""
    weights = xp.asarray(weights, dtype=xp.float64)
    return xp.reshape(weights, (-1,) + (1,) * values.ndim) * values


class CorrelatedOU(TimeSeriesModel):
    r"""
    Bivariate Ornstein-Uhlenbeck process whose two components share the damping and the amplitude, and
    are driven by noises with correlation rho,

    $$
        \gamma(\tau) = \sigma^2 e^{-\theta|\tau|}
        \begin{pmatrix} 1 & \rho \\ \rho & 1\end{pmatrix}.
    $$

    Attributes
    ----------
    theta: ModelParameter
        damping parameter

    sigma: ModelParameter
        amplitude parameter

    rho: ModelParameter
        correlation between the two components

    Examples
    --------
    >>> model = CorrelatedOU([1., 1., 0.5])
    >>> model.acv(xp.array([0.]))
    array([[1. ],
           [0.5],
           [1. ]])
    """

    ndim = 2

    theta = ModelParameter(default=1.0, bounds=(0, numpy.inf), doc="Damping parameter")
    sigma = ModelParameter(default=1.0, bounds=(0, numpy.inf), doc="Amplitude parameter")
    rho = ModelParameter(default=0.0, bounds=(-1, 1), doc="Correlation parameter")

    @property
    def correlation(self):
        """correlation matrix in compact layout, and its derivative with respect to rho"""
        return (1.0, self.rho, 1.0), (0.0, 1.0, 0.0)

    def _assemble_grad(self, base, d_theta, d_sigma):
        r, d_r = self.correlation
        return xp.stack((_pattern(d_theta, r), _pattern(d_sigma, r), _pattern(base, d_r)))

    def _assemble_hess(self, d_theta_theta, d_sigma_theta, d_sigma_sigma, d_theta, d_sigma):
        r, d_r = self.correlation
        return xp.stack(
            (
                _pattern(d_theta_theta, r),
                _pattern(d_sigma_theta, r),
                _pattern(d_sigma_sigma, r),
                _pattern(d_theta, d_r),
                _pattern(d_sigma, d_r),
                xp.zeros((3,) + d_theta.shape),
            )
        )

    def sdf(self, omega: xp.ndarray):
        base = self.sigma**2 * self.theta / (xp.pi * (self.theta**2 + omega**2))
        return _pattern(base, self.correlation[0])

    def acv(self, tau: xp.ndarray):
        return _pattern(self.sigma**2 * xp.exp(-self.theta * xp.abs(tau)), self.correlation[0])

    def grad_sdf(self, omega: xp.ndarray):
        s = self.theta**2 + omega**2
        base = self.sigma**2 * self.theta / (xp.pi * s)
        d_theta = self.sigma**2 * (omega**2 - self.theta**2) / (xp.pi * s**2)
        return self._assemble_grad(base, d_theta, 2 * base / self.sigma)

    def hess_sdf(self, omega: xp.ndarray):
        s = self.theta**2 + omega**2
        base = self.sigma**2 * self.theta / (xp.pi * s)
        d_theta = self.sigma**2 * (omega**2 - self.theta**2) / (xp.pi * s**2)
        d_theta_theta = (
            2 * self.sigma**2 * self.theta * (self.theta**2 - 3 * omega**2) / (xp.pi * s**3)
        )
        return self._assemble_hess(
            d_theta_theta,
            2 * d_theta / self.sigma,
            2 * base / self.sigma**2,
            d_theta,
            2 * base / self.sigma,
        )

    def grad_acv(self, tau: xp.ndarray):
        e = xp.exp(-self.theta * xp.abs(tau))
        base = self.sigma**2 * e
        return self._assemble_grad(base, -xp.abs(tau) * base, 2 * self.sigma * e)

    def hess_acv(self, tau: xp.ndarray):
        e = xp.exp(-self.theta * xp.abs(tau))
        base = self.sigma**2 * e
        return self._assemble_hess(
            tau**2 * base,
            -2 * self.sigma * xp.abs(tau) * e,
            2 * e,
            -xp.abs(tau) * base,
            2 * self.sigma * e,
        )
