from whittle_likelihood_inference.backend import BackendManager

BackendManager.set_backend("numpy")
np = BackendManager.get_backend()

import numpy
import pytest
from numpy.testing import assert_allclose

from whittle_likelihood_inference.exceptions import MissingDerivativeError
from whittle_likelihood_inference.inference.storage import (
    Acv2EIStorage,
    AdditiveStorage,
    Sdf2EIStorage,
    SdfStorage,
    allocate_ei_storage,
    allocate_sdf_storage,
    spectral_derivatives_only,
)
from whittle_likelihood_inference.models.base import ModelParameter, TimeSeriesModel
from whittle_likelihood_inference.models.bivariate import CorrelatedOU
from whittle_likelihood_inference.models.univariate import OU, Matern
from whittle_likelihood_inference.utils import fourier_frequencies


class SpectralOU(TimeSeriesModel):
    """OU process known through its spectral density only"""

    sigma = ModelParameter(default=1.0, bounds=(0, numpy.inf), doc="Amplitude parameter")
    theta = ModelParameter(default=1.0, bounds=(0, numpy.inf), doc="Damping parameter")

    def sdf(self, omega):
        return OU([self.sigma, self.theta]).sdf(omega)

    def grad_sdf(self, omega):
        return OU([self.sigma, self.theta]).grad_sdf(omega)


class PlainOU(TimeSeriesModel):
    """OU process without derivatives"""

    sigma = ModelParameter(default=1.0, bounds=(0, numpy.inf), doc="Amplitude parameter")
    theta = ModelParameter(default=1.0, bounds=(0, numpy.inf), doc="Damping parameter")

    def sdf(self, omega):
        return OU([self.sigma, self.theta]).sdf(omega)

    def acv(self, tau):
        return OU([self.sigma, self.theta]).acv(tau)


def test_buffer_shapes():
    """
    Buffers have the frequency index on their last axis, and are complex for multivariate models only.
    """
    store = SdfStorage(OU, 32, 1.0)
    assert store.values.shape == (32,)
    assert store.gradient.shape == (2, 32)
    assert store.hessian.shape == (3, 32)
    assert store.values.dtype == np.float64
    store = Acv2EIStorage(CorrelatedOU, 32, 1.0, hessian=True)
    assert store.values.shape == (3, 32)
    assert store.gradient.shape == (3, 3, 32)
    assert store.hessian.shape == (6, 3, 32)
    assert store.acv.shape == (3, 63)
    assert store.values.dtype == np.complex128


def test_no_hessian_buffers():
    store = Acv2EIStorage(OU, 32, 1.0)
    assert store.gradient is not None
    assert store.hessian is None
    store = Acv2EIStorage(Matern, 32, 1.0, hessian=True)
    assert store.gradient is None
    assert store.hessian is None


def test_sdf_storage_aliasing():
    """
    The stored spectral density is the sum of the aliases of the spectral density.
    """
    n, delta = 16, 0.5
    model = OU([1.0, 2.0])
    store = SdfStorage(OU, n, delta, n_alias=2)
    store.compute(model)
    freqs = fourier_frequencies(n, delta)
    expected = sum(model.sdf(freqs + 2 * np.pi * k / delta) for k in range(-2, 3))
    assert_allclose(store.values, expected)
    store = SdfStorage(OU, n, delta, n_alias=0)
    store.compute(model)
    assert_allclose(store.values, model.sdf(freqs))


def test_buffers_overwritten():
    """
    Successive evaluations overwrite the buffers in place.
    """
    store = Acv2EIStorage(OU, 32, 1.0)
    values = store.values
    store.compute(OU([1.0, 1.0]))
    first = values.copy()
    store.compute(OU([2.0, 1.0]))
    assert store.values is values
    assert_allclose(store.values, 4 * first)


def test_sdf_to_ei():
    """
    The expected periodogram computed from the spectral density matches the one computed from the
    autocovariance, for a smooth spectral density.
    """
    n, delta = 64, 1.0
    model = Matern([1.0, 2.5, 1.0])
    from_acv = Acv2EIStorage(Matern, n, delta)
    from_sdf = Sdf2EIStorage(Matern, n, delta)
    from_acv.compute(model)
    from_sdf.compute(model)
    assert_allclose(from_sdf.acv, from_acv.acv, rtol=1e-6, atol=1e-7)
    assert_allclose(from_sdf.values, from_acv.values, rtol=1e-6, atol=1e-7)


def test_sdf_to_ei_gradient():
    """
    This test verifies the gradient of the expected periodogram of a spectral model against finite
    differences.
    """
    n, delta, epsilon = 32, 1.0, 1e-6
    values = np.array([1.0, 2.5, 1.0])
    store = Sdf2EIStorage(Matern, n, delta)
    store.compute_gradient(Matern(values))
    for k in range(3):
        up, down = values.copy(), values.copy()
        up[k] += epsilon
        down[k] -= epsilon
        store.compute(Matern(up))
        f_up = store.values.copy()
        store.compute(Matern(down))
        f_down = store.values.copy()
        assert_allclose(store.gradient[k], (f_up - f_down) / (2 * epsilon), rtol=1e-5, atol=1e-9)


def test_acv_to_ei_hessian():
    n, delta, epsilon = 32, 0.5, 1e-6
    values = np.array([1.3, 0.6])
    store = Acv2EIStorage(OU, n, delta, hessian=True)
    store.compute_hessian(OU(values))
    up, down = values.copy(), values.copy()
    up[1] += epsilon
    down[1] -= epsilon
    store.compute_gradient(OU(up))
    g_up = store.gradient.copy()
    store.compute_gradient(OU(down))
    g_down = store.gradient.copy()
    numerical = (g_up - g_down) / (2 * epsilon)
    # pairs (1, 0) and (1, 1)
    assert_allclose(store.hessian[1], numerical[0], rtol=1e-5, atol=1e-9)
    assert_allclose(store.hessian[2], numerical[1], rtol=1e-5, atol=1e-9)


def test_storage_selection():
    """
    The expected periodogram is computed from the autocovariance when available, from the spectral
    density otherwise, or when the derivatives are only implemented for the spectral density.
    """
    assert type(allocate_ei_storage(OU, 16, 1.0)) is Acv2EIStorage
    assert type(allocate_ei_storage(OU, 16, 1.0, hessian=True)) is Acv2EIStorage
    assert type(allocate_ei_storage(SpectralOU, 16, 1.0)) is Sdf2EIStorage
    assert type(allocate_ei_storage(PlainOU, 16, 1.0)) is Acv2EIStorage
    assert type(allocate_ei_storage(Matern, 16, 1.0)) is Sdf2EIStorage
    assert spectral_derivatives_only(Matern, False)
    assert not spectral_derivatives_only(PlainOU, True)
    assert type(allocate_sdf_storage(OU, 16, 1.0)) is SdfStorage
    store = allocate_ei_storage(OU + SpectralOU, 16, 1.0)
    assert isinstance(store, AdditiveStorage)
    assert [type(s) for s in store.stores] == [Acv2EIStorage, Sdf2EIStorage]


def test_additive_storage():
    """
    The additive storage sums the values of the components and concatenates their gradients.
    """
    n, delta = 32, 1.0
    model_type = OU + OU
    model = model_type([1.0, 0.5, 2.0, 3.0])
    store = allocate_ei_storage(model_type, n, delta)
    store.compute(model)
    store.compute_gradient(model)
    first, second = Acv2EIStorage(OU, n, delta), Acv2EIStorage(OU, n, delta)
    for s, child in zip((first, second), model.children):
        s.compute(child)
        s.compute_gradient(child)
    assert_allclose(store.values, first.values + second.values)
    assert_allclose(store.gradient, np.concatenate((first.gradient, second.gradient)))


def test_missing_derivative_propagates():
    store = allocate_ei_storage(PlainOU, 16, 1.0)
    with pytest.raises(MissingDerivativeError):
        store.compute_gradient(PlainOU([1.0, 1.5]))
    store = allocate_ei_storage(SpectralOU + OU, 16, 1.0, hessian=True)
    with pytest.raises(MissingDerivativeError):
        store.compute_hessian((SpectralOU + OU)([1.0, 1.0, 1.0, 1.0]))
