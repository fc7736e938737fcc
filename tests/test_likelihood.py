from whittle_likelihood_inference.backend import BackendManager

BackendManager.set_backend("numpy")
np = BackendManager.get_backend()

import numpy
import pytest
from numdifftools import Gradient, Hessian
from numpy.testing import assert_allclose

from whittle_likelihood_inference.exceptions import (
    DimensionMismatchError,
    InvalidParameterError,
    ShapeMismatchError,
    WhittleError,
)
from whittle_likelihood_inference.inference.likelihood import WhittleLikelihood
from whittle_likelihood_inference.models.base import ModelParameter, TimeSeriesModel
from whittle_likelihood_inference.models.bivariate import CorrelatedOU
from whittle_likelihood_inference.models.univariate import OU, Matern
from whittle_likelihood_inference.timeseries import TimeSeries


def simulate_ou(n, sigma, theta, delta, seed=1712):
    """exact simulation of a sampled OU process, which is an AR(1) process"""
    rng = numpy.random.default_rng(seed)
    phi = numpy.exp(-theta * delta)
    x = numpy.zeros(n)
    x[0] = sigma * rng.standard_normal()
    for t in range(1, n):
        x[t] = phi * x[t - 1] + sigma * numpy.sqrt(1 - phi**2) * rng.standard_normal()
    return x


def correlated_sample(n, rho, seed=1712):
    rng = numpy.random.default_rng(seed)
    chol = numpy.linalg.cholesky(numpy.array([[1.0, rho], [rho, 1.0]]))
    return rng.standard_normal((n, 2)) @ chol.T


class ZeroSpectrum(TimeSeriesModel):
    """degenerate model with a zero spectral density"""

    sigma = ModelParameter(default=1.0, bounds=(0, numpy.inf), doc="Unused parameter")

    def sdf(self, omega):
        return np.zeros_like(omega)


def test_construction_errors():
    """
    Non-positive sampling intervals and series whose column count differs from the model dimension are
    rejected at construction.
    """
    x = np.random.randn(64)
    with pytest.raises(InvalidParameterError):
        WhittleLikelihood(OU, x, 0.0)
    with pytest.raises(InvalidParameterError):
        WhittleLikelihood(OU, x, -1.0)
    with pytest.raises(DimensionMismatchError):
        WhittleLikelihood(OU, np.random.randn(64, 2), 1.0)
    with pytest.raises(DimensionMismatchError):
        WhittleLikelihood(CorrelatedOU, x, 1.0)
    with pytest.raises(DimensionMismatchError):
        WhittleLikelihood(OU, x, 1.0, taper=np.ones(32))
    with pytest.raises(InvalidParameterError):
        WhittleLikelihood(OU, x)
    with pytest.raises(InvalidParameterError):
        WhittleLikelihood(OU, x, 1.0, lower_cutoff=2.0, upper_cutoff=1.0)


def test_errors_are_whittle_errors():
    with pytest.raises(ValueError):
        WhittleLikelihood(OU, np.random.randn(64), 0.0)
    with pytest.raises(WhittleError):
        WhittleLikelihood(OU, np.random.randn(64), 0.0)


def test_call_errors():
    likelihood = WhittleLikelihood(OU, simulate_ou(128, 1.0, 0.5, 1.0), 1.0)
    with pytest.raises(ShapeMismatchError):
        likelihood(1.0, np.zeros(3), None, [1.0, 0.5])
    with pytest.raises(ShapeMismatchError):
        likelihood(None, None, np.zeros((2, 3)), [1.0, 0.5])
    with pytest.raises(DimensionMismatchError):
        likelihood([1.0, 0.5, 1.0])
    with pytest.raises(InvalidParameterError):
        likelihood([1.0, -0.5])


def test_repr():
    likelihood = WhittleLikelihood(OU, np.random.randn(16), 1.0)
    assert repr(likelihood) == "Whittle likelihood for the OU model."
    assert likelihood.model is OU
    assert "OU + Matern" in repr(WhittleLikelihood(OU + Matern, np.random.randn(16), 1.0))


def test_fgh_convention():
    """
    F = None returns None. Otherwise the returned value is the same as the one of the single-argument call.
    """
    likelihood = WhittleLikelihood(OU, simulate_ou(256, 1.0, 0.5, 0.5), 0.5)
    values = np.array([1.2, 0.4])
    G = np.zeros(2)
    H = np.zeros((2, 2))
    assert likelihood(None, G, H, values) is None
    assert likelihood(None, None, None, values) is None
    value = likelihood(1.0, G, H, values)
    assert value == likelihood(values)
    assert np.isfinite(value)


def test_timeseries_input():
    x = simulate_ou(128, 1.0, 0.5, 0.5)
    values = [1.0, 0.5]
    from_array = WhittleLikelihood(OU, x, 0.5)(values)
    from_timeseries = WhittleLikelihood(OU, TimeSeries(x, 0.5))(values)
    assert from_array == from_timeseries
    with pytest.raises(InvalidParameterError):
        WhittleLikelihood(OU, TimeSeries(x, 0.5), 1.0)


def test_ones_scenario():
    """
    OU model with 1000 ones sampled at unit interval. The periodogram vanishes away from the zero frequency,
    which is excluded, and the value is minus the sum of the log spectral densities.
    """
    likelihood = WhittleLikelihood(OU, np.ones(1000), 1.0)
    values = np.array([1.0, 1.0])
    value = likelihood(values)
    assert_allclose(value, 2006.7870804551364, rtol=1e-12)
    assert likelihood(values) == value
    G = np.zeros(2)
    H = np.zeros((2, 2))
    assert likelihood(1.0, G, H, values) == value
    assert np.all(np.isfinite(G))
    assert np.all(np.isfinite(H))
    assert H[0, 1] == H[1, 0]


def test_gradient_ou():
    """
    This test verifies that the analytical gradient of the likelihood is close to a numerical approximation
    to that gradient, for the OU model.
    """
    likelihood = WhittleLikelihood(OU, simulate_ou(256, 1.0, 0.5, 0.5), 0.5)
    values = np.array([1.2, 0.4])
    G = np.zeros(2)
    likelihood(None, G, None, values)
    assert_allclose(G, Gradient(likelihood, step=1e-6)(values), rtol=1e-5, atol=1e-6)


def test_hessian_ou():
    likelihood = WhittleLikelihood(OU, simulate_ou(256, 1.0, 0.5, 0.5), 0.5)
    values = np.array([1.2, 0.4])
    H = np.zeros((2, 2))
    likelihood(None, None, H, values)
    assert_allclose(H, Hessian(likelihood, step=1e-4)(values), rtol=1e-4, atol=1e-6)
    assert H[0, 1] == H[1, 0]


def test_gradient_hessian_matern():
    likelihood = WhittleLikelihood(Matern, simulate_ou(256, 1.0, 0.5, 0.5), 0.5)
    values = np.array([1.0, 1.2, 0.8])
    G = np.zeros(3)
    H = np.zeros((3, 3))
    likelihood(None, G, H, values)
    assert_allclose(G, Gradient(likelihood, step=1e-6)(values), rtol=1e-5, atol=1e-6)
    assert_allclose(H, Hessian(likelihood, step=1e-4)(values), rtol=1e-4, atol=1e-6)


def test_gradient_hessian_bivariate():
    """
    Gradient and observed Hessian of the likelihood of a bivariate model, against numerical derivatives.
    """
    likelihood = WhittleLikelihood(CorrelatedOU, correlated_sample(128, 0.4), 1.0)
    values = np.array([0.8, 1.1, 0.3])
    G = np.zeros(3)
    H = np.zeros((3, 3))
    value = likelihood(1.0, G, H, values)
    assert np.isfinite(value)
    assert_allclose(G, Gradient(likelihood, step=1e-6)(values), rtol=1e-5, atol=1e-6)
    assert_allclose(H, Hessian(likelihood, step=1e-4)(values), rtol=1e-4, atol=1e-6)
    assert_allclose(H, H.T)


def test_gradient_additive():
    model_type = OU + OU
    likelihood = WhittleLikelihood(model_type, simulate_ou(256, 1.0, 0.5, 0.5), 0.5)
    values = np.array([0.8, 0.3, 0.5, 2.0])
    G = np.zeros(4)
    H = np.zeros((4, 4))
    likelihood(None, G, H, values)
    assert_allclose(G, Gradient(likelihood, step=1e-6)(values), rtol=1e-5, atol=1e-6)
    assert_allclose(H, Hessian(likelihood, step=1e-4)(values), rtol=1e-4, atol=1e-6)


def test_upper_cutoff():
    """
    A smaller upper cutoff reduces the number of frequencies in the sum and changes the value.
    """
    x = simulate_ou(256, 1.0, 0.5, 1.0)
    full = WhittleLikelihood(OU, x, 1.0)
    cut = WhittleLikelihood(OU, x, 1.0, upper_cutoff=1.0)
    assert cut.data.n_used < full.data.n_used
    assert full.data.n_used == 255
    assert cut([1.0, 0.5]) != full([1.0, 0.5])


def test_zero_frequency_excluded():
    """
    The lower cutoff is strict, so the zero frequency is excluded by default and the value does not depend
    on the mean of the series.
    """
    x = simulate_ou(256, 1.0, 0.5, 1.0)
    likelihood = WhittleLikelihood(OU, x, 1.0)
    assert not likelihood.data.used[0]
    assert likelihood.data.n_used == 255
    assert WhittleLikelihood(OU, x, 1.0, lower_cutoff=1e-6).data.n_used == 255
    assert_allclose(WhittleLikelihood(OU, x + 3.0, 1.0)([1.0, 0.5]), likelihood([1.0, 0.5]), rtol=1e-10)


def test_empty_frequency_set():
    """
    Cutoffs that exclude every frequency raise a warning, and the likelihood is then identically zero.
    """
    with pytest.warns(UserWarning):
        likelihood = WhittleLikelihood(OU, np.random.randn(64), 1.0, lower_cutoff=10.0, upper_cutoff=20.0)
    G = np.ones(2)
    assert likelihood(1.0, G, None, [1.0, 1.0]) == 0.0
    assert np.all(G == 0)


def test_taper():
    x = simulate_ou(256, 1.0, 0.5, 1.0)
    taper = np.hanning(256)
    values = [1.0, 0.5]
    tapered = WhittleLikelihood(OU, x, 1.0, taper=taper)
    assert np.isfinite(tapered(values))
    assert tapered(values) != WhittleLikelihood(OU, x, 1.0)(values)
    assert np.all(taper == np.hanning(256))


def test_aliasing():
    """
    The number of aliases changes the spectral density used by the likelihood.
    """
    x = simulate_ou(256, 1.0, 0.5, 1.0)
    values = [1.0, 0.5]
    assert WhittleLikelihood(OU, x, 1.0, n_alias=0)(values) != WhittleLikelihood(OU, x, 1.0)(values)


def test_singular_spectral_density():
    """
    A zero spectral density gives a non-finite value rather than an exception.
    """
    likelihood = WhittleLikelihood(ZeroSpectrum, np.random.randn(32), 1.0)
    with np.errstate(divide="ignore", invalid="ignore"):
        assert not np.isfinite(likelihood([1.0]))
