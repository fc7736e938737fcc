import numpy
from scipy.special import digamma, gammaln, kv, polygamma

from whittle_likelihood_inference.models.base import TimeSeriesModel, ModelParameter
from whittle_likelihood_inference.backend import BackendManager


xp = BackendManager.get_backend()


class OU(TimeSeriesModel):
    r"""
    Implements the Ornstein-Uhlenbeck process, with autocovariance

    $$
        \gamma(\tau) = \sigma^2 e^{-\theta |\tau|},
        \quad
        f(\omega) = \frac{\sigma^2 \theta}{\pi (\theta^2 + \omega^2)}.
    $$

    Attributes
    ----------
    sigma: ModelParameter
        amplitude parameter

    theta: ModelParameter
        damping parameter, the inverse of the correlation time

    Examples
    --------
    >>> model = OU([1.41, 0.5])
    >>> model.acv(xp.array([0., 1.]))
    array([1.9881    , 1.20584952])
    >>> OU.parameter_names()
    ['sigma', 'theta']
    """

    sigma = ModelParameter(default=1.0, bounds=(0, numpy.inf), doc="Amplitude parameter")
    theta = ModelParameter(default=1.0, bounds=(0, numpy.inf), doc="Damping parameter")

    def sdf(self, omega: xp.ndarray):
        return self.sigma**2 * self.theta / (xp.pi * (self.theta**2 + omega**2))

    def acv(self, tau: xp.ndarray):
        return self.sigma**2 * xp.exp(-self.theta * xp.abs(tau))

    def grad_sdf(self, omega: xp.ndarray):
        s = self.theta**2 + omega**2
        d_sigma = 2 * self.sigma * self.theta / (xp.pi * s)
        d_theta = self.sigma**2 * (omega**2 - self.theta**2) / (xp.pi * s**2)
        return xp.stack((d_sigma, d_theta))

    def hess_sdf(self, omega: xp.ndarray):
        s = self.theta**2 + omega**2
        d_sigma_sigma = 2 * self.theta / (xp.pi * s)
        d_theta_sigma = 2 * self.sigma * (omega**2 - self.theta**2) / (xp.pi * s**2)
        d_theta_theta = (
            2 * self.sigma**2 * self.theta * (self.theta**2 - 3 * omega**2) / (xp.pi * s**3)
        )
        return xp.stack((d_sigma_sigma, d_theta_sigma, d_theta_theta))

    def grad_acv(self, tau: xp.ndarray):
        e = xp.exp(-self.theta * xp.abs(tau))
        d_sigma = 2 * self.sigma * e
        d_theta = -self.sigma**2 * xp.abs(tau) * e
        return xp.stack((d_sigma, d_theta))

    def hess_acv(self, tau: xp.ndarray):
        e = xp.exp(-self.theta * xp.abs(tau))
        d_sigma_sigma = 2 * e
        d_theta_sigma = -2 * self.sigma * xp.abs(tau) * e
        d_theta_theta = self.sigma**2 * tau**2 * e
        return xp.stack((d_sigma_sigma, d_theta_sigma, d_theta_theta))


class Matern(TimeSeriesModel):
    r"""
    Implements the Matern process,

    $$
        \gamma(\tau) = \sigma^2 \frac{2^{1-\nu}}{\Gamma(\nu)} (a|\tau|)^\nu K_\nu(a|\tau|),
        \quad
        f(\omega) = \sigma^2 \frac{\Gamma(\nu + 1/2) a^{2\nu}}{\Gamma(\nu)\sqrt{\pi}} (a^2 + \omega^2)^{-\nu-1/2}.
    $$

    The derivatives of the spectral density are available in closed form. Derivatives of the
    autocovariance with respect to the slope parameter nu are not, hence the autocovariance hooks
    stop at the autocovariance itself.

    Attributes
    ----------
    sigma: ModelParameter
        amplitude parameter

    nu: ModelParameter
        slope parameter, nu = 1/2 corresponds to the OU process

    a: ModelParameter
        inverse length scale

    Examples
    --------
    >>> model = Matern([1., 0.5, 2.])
    >>> model.acv(xp.array([0., 1.]))
    array([1.        , 0.13533528])
    """

    sigma = ModelParameter(default=1.0, bounds=(0, numpy.inf), doc="Amplitude parameter")
    nu = ModelParameter(default=1.5, bounds=(0, numpy.inf), doc="Slope parameter")
    a = ModelParameter(default=1.0, bounds=(0, numpy.inf), doc="Inverse length scale")

    @property
    def sdf_const(self):
        return (
            self.sigma**2
            * numpy.exp(gammaln(self.nu + 0.5) - gammaln(self.nu))
            * self.a ** (2 * self.nu)
            / numpy.sqrt(numpy.pi)
        )

    def sdf(self, omega: xp.ndarray):
        return self.sdf_const * (self.a**2 + omega**2) ** (-self.nu - 0.5)

    def acv(self, tau: xp.ndarray):
        x = self.a * xp.abs(tau)
        nonzero = x > 1e-10
        x_safe = xp.where(nonzero, x, 1.0)
        const = self.sigma**2 * 2 ** (1 - self.nu) / numpy.exp(gammaln(self.nu))
        return xp.where(nonzero, const * x_safe**self.nu * kv(self.nu, x_safe), self.sigma**2)

    def _log_derivatives(self, omega: xp.ndarray):
        """first derivatives of the log spectral density"""
        s = self.a**2 + omega**2
        dl_sigma = 2 / self.sigma * xp.ones_like(s)
        dl_nu = digamma(self.nu + 0.5) - digamma(self.nu) + 2 * numpy.log(self.a) - xp.log(s)
        dl_a = 2 * self.nu / self.a - (2 * self.nu + 1) * self.a / s
        return dl_sigma, dl_nu, dl_a

    def grad_sdf(self, omega: xp.ndarray):
        f = self.sdf(omega)
        return xp.stack([f * dl for dl in self._log_derivatives(omega)])

    def hess_sdf(self, omega: xp.ndarray):
        f = self.sdf(omega)
        s = self.a**2 + omega**2
        dl_sigma, dl_nu, dl_a = self._log_derivatives(omega)
        # second derivatives of the log spectral density
        dl_sigma_sigma = -2 / self.sigma**2
        dl_nu_nu = polygamma(1, self.nu + 0.5) - polygamma(1, self.nu)
        dl_a_nu = 2 / self.a - 2 * self.a / s
        dl_a_a = -2 * self.nu / self.a**2 - (2 * self.nu + 1) * (omega**2 - self.a**2) / s**2
        return xp.stack(
            (
                f * (dl_sigma_sigma + dl_sigma**2),
                f * dl_nu * dl_sigma,
                f * (dl_nu_nu + dl_nu**2),
                f * dl_a * dl_sigma,
                f * (dl_a_nu + dl_a * dl_nu),
                f * (dl_a_a + dl_a**2),
            )
        )
