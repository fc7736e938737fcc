"""
Preallocated storage for the evaluation of Whittle likelihoods.

A storage owns the buffers holding the spectral matrices of a model over the Fourier grid of the data, either
the (aliased) spectral density for the standard Whittle likelihood, or the expected periodogram for the debiased
Whittle likelihood, together with their first and second derivatives with respect to the model parameters.
Buffers are allocated once from the length of the series, the sampling interval and the model type, and are
overwritten on every evaluation. A storage is therefore not safe for concurrent use.

All buffers have the frequency index on their last axis:

buffer | d = 1 | d > 1
:----------- |:-------------:| -----------:
values         | (n, )       | (L, n)
gradient         | (npars, n)        | (npars, L, n)
hessian         | (npars(npars + 1)/2, n)        | (npars(npars + 1)/2, L, n)
"""

from whittle_likelihood_inference.backend import BackendManager

xp = BackendManager.get_backend()

from whittle_likelihood_inference.inference.periodogram import ExpectedPeriodogram
from whittle_likelihood_inference.models.base import AdditiveModel, TimeSeriesModel
from whittle_likelihood_inference.utils import (
    fourier_frequencies,
    lags,
    triangular_number,
)

zeros = BackendManager.get_zeros()
fft, ifft = BackendManager.get_fft_methods()

DEFAULT_N_ALIAS = 5


def _compact_shape(model: type) -> tuple:
    return () if model.ndim == 1 else (model.ncomponents(),)


def _spectral_dtype(model: type):
    return xp.float64 if model.ndim == 1 else xp.complex128


class TimeSeriesModelStorage:
    """
    Common interface of storages.

    Attributes
    ----------
    model: type
        model type for which the buffers are sized

    n: int
        length of the series, i.e. number of Fourier frequencies

    values: ndarray
        spectral matrices at all Fourier frequencies

    gradient: ndarray | None
        first derivatives, None if the model does not provide them

    hessian: ndarray | None
        second derivatives, None if not requested or not provided by the model
    """

    def __init__(self, model: type, n: int):
        self.model = model
        self.n = n
        self.values = None
        self.gradient = None
        self.hessian = None

    @property
    def ndim(self) -> int:
        return self.model.ndim

    @property
    def npars(self) -> int:
        return self.model.npars()

    def _allocate(self, n_lead: int = None):
        shape = _compact_shape(self.model) + (self.n,)
        if n_lead is not None:
            shape = (n_lead,) + shape
        return zeros(shape, dtype=_spectral_dtype(self.model))

    def compute(self, model: TimeSeriesModel):
        """write the spectral matrices of the model in values"""
        raise NotImplementedError()

    def compute_gradient(self, model: TimeSeriesModel):
        """write the first derivatives of the spectral matrices in gradient"""
        raise NotImplementedError()

    def compute_hessian(self, model: TimeSeriesModel):
        """write the second derivatives of the spectral matrices in hessian"""
        raise NotImplementedError()


class SdfStorage(TimeSeriesModelStorage):
    r"""
    Storage of the aliased spectral density of a model at the Fourier frequencies of the series,

    $$
        S(\omega) = \sum_{k=-K}^{K} f\left(\omega + \frac{2\pi k}{\Delta}\right),
    $$

    which is the spectral density of the sampled process when K is large. K is the n_alias attribute.
    """

    def __init__(
        self,
        model: type,
        n: int,
        delta: float,
        n_alias: int = DEFAULT_N_ALIAS,
        hessian: bool = True,
    ):
        super().__init__(model, n)
        self.frequencies = fourier_frequencies(n, delta)
        self.shifts = 2 * xp.pi / delta * xp.arange(-n_alias, n_alias + 1)
        self.values = self._allocate()
        if model.implements("grad_sdf"):
            self.gradient = self._allocate(self.npars)
        if hessian and model.implements("hess_sdf"):
            self.hessian = self._allocate(triangular_number(self.npars))

    def _alias_sum(self, hook, out):
        # the hook is called before writing, a missing derivative leaves the buffer untouched
        out[...] = hook(self.frequencies + self.shifts[0])
        for shift in self.shifts[1:]:
            out += hook(self.frequencies + shift)
        return out

    def compute(self, model):
        self._alias_sum(model.sdf, self.values)

    def compute_gradient(self, model):
        self._alias_sum(model.grad_sdf, self.gradient)

    def compute_hessian(self, model):
        self._alias_sum(model.hess_sdf, self.hessian)


class Acv2EIStorage(TimeSeriesModelStorage):
    """
    Storage of the expected periodogram of a model, obtained from its autocovariance on the lags of the
    series. Holds the autocovariance buffers, the folding workspaces and the expected periodogram buffers,
    for the model and its derivatives. A single transform object, and its FFT, is shared by all of them.
    """

    derivative_hooks = ("grad_acv", "hess_acv")

    def __init__(
        self,
        model: type,
        n: int,
        delta: float,
        taper: xp.ndarray = None,
        hessian: bool = False,
    ):
        super().__init__(model, n)
        self.delta = delta
        self.lags = lags(n, delta)
        self.transform = ExpectedPeriodogram(n, delta, taper)
        grad_hook, hess_hook = self.derivative_hooks
        self.values = self._allocate()
        self.acv = self._allocate_lags()
        self.workspace = self._allocate_lags()
        if model.implements(grad_hook):
            self.gradient = self._allocate(self.npars)
            self.grad_acv = self._allocate_lags(self.npars)
            self.grad_workspace = self._allocate_lags(self.npars)
        if hessian and model.implements(hess_hook):
            n_pairs = triangular_number(self.npars)
            self.hessian = self._allocate(n_pairs)
            self.hess_acv = self._allocate_lags(n_pairs)
            self.hess_workspace = self._allocate_lags(n_pairs)

    def _allocate_lags(self, n_lead: int = None):
        shape = _compact_shape(self.model) + (2 * self.n - 1,)
        if n_lead is not None:
            shape = (n_lead,) + shape
        return zeros(shape)

    def compute(self, model):
        self.acv[...] = model.acv(self.lags)
        self.transform(self.acv, self.values, self.workspace)

    def compute_gradient(self, model):
        values = model.grad_acv(self.lags)
        self.grad_acv[...] = values
        self.transform(self.grad_acv, self.gradient, self.grad_workspace)

    def compute_hessian(self, model):
        values = model.hess_acv(self.lags)
        self.hess_acv[...] = values
        self.transform(self.hess_acv, self.hessian, self.hess_workspace)


class Sdf2EIStorage(Acv2EIStorage):
    r"""
    Storage of the expected periodogram of a model which only provides its spectral density. The autocovariance
    on the lags is first recovered from the aliased spectral density on a Fourier grid with twice the
    resolution of the data's,

    $$
        \gamma(\tau\Delta) \approx \frac{2\pi}{2n\Delta} \sum_{m=0}^{2n-1} S(\omega_m) e^{i\omega_m\tau\Delta},
        \quad \omega_m = \frac{2\pi m}{2n\Delta},
    $$

    which is an inverse FFT, and then transformed as in Acv2EIStorage.
    """

    derivative_hooks = ("grad_sdf", "hess_sdf")

    def __init__(
        self,
        model: type,
        n: int,
        delta: float,
        taper: xp.ndarray = None,
        n_alias: int = DEFAULT_N_ALIAS,
        hessian: bool = False,
    ):
        super().__init__(model, n, delta, taper, hessian)
        self.sdf_storage = SdfStorage(model, 2 * n, delta, n_alias, hessian)

    def _sdf_to_acv(self, sdf: xp.ndarray, out: xp.ndarray):
        n = self.n
        acv = ifft(sdf, axis=-1)
        acv *= 2 * xp.pi / self.delta
        # the inverse FFT is real up to numerical precision
        out[..., :n] = xp.real(acv[..., :n])
        out[..., n:] = xp.real(acv[..., n + 1 :])
        return out

    def compute(self, model):
        self.sdf_storage.compute(model)
        self._sdf_to_acv(self.sdf_storage.values, self.acv)
        self.transform(self.acv, self.values, self.workspace)

    def compute_gradient(self, model):
        self.sdf_storage.compute_gradient(model)
        self._sdf_to_acv(self.sdf_storage.gradient, self.grad_acv)
        self.transform(self.grad_acv, self.gradient, self.grad_workspace)

    def compute_hessian(self, model):
        self.sdf_storage.compute_hessian(model)
        self._sdf_to_acv(self.sdf_storage.hessian, self.hess_acv)
        self.transform(self.hess_acv, self.hessian, self.hess_workspace)


class AdditiveStorage(TimeSeriesModelStorage):
    """
    Storage for an additive model, made of the storages of its components and of merge buffers. Spectral
    matrices add up, gradients are concatenated and Hessians are block diagonal since the components do not
    share parameters.
    """

    def __init__(self, model: type, stores: list[TimeSeriesModelStorage]):
        super().__init__(model, stores[0].n)
        self.stores = stores
        self.values = self._allocate()
        if any(store.gradient is not None for store in stores):
            self.gradient = self._allocate(self.npars)
        if any(store.hessian is not None for store in stores):
            # entries coupling two components are never written and remain zero
            self.hessian = self._allocate(triangular_number(self.npars))

    def compute(self, model):
        for store, child in zip(self.stores, model.children):
            store.compute(child)
        self.values[...] = self.stores[0].values
        for store in self.stores[1:]:
            self.values += store.values

    def compute_gradient(self, model):
        for store, child, offset in zip(self.stores, model.children, self.model.offsets()):
            store.compute_gradient(child)
            self.gradient[offset : offset + store.npars] = store.gradient

    def compute_hessian(self, model):
        for store, child, index in zip(
            self.stores, model.children, self.model.hessian_blocks()
        ):
            store.compute_hessian(child)
            self.hessian[index] = store.hessian


def allocate_sdf_storage(
    model: type,
    n: int,
    delta: float,
    n_alias: int = DEFAULT_N_ALIAS,
) -> TimeSeriesModelStorage:
    """Storage for the standard Whittle likelihood, with first and second derivatives."""
    if issubclass(model, AdditiveModel):
        return AdditiveStorage(
            model, [allocate_sdf_storage(c, n, delta, n_alias) for c in model.components]
        )
    return SdfStorage(model, n, delta, n_alias)


def spectral_derivatives_only(model: type, hessian: bool) -> bool:
    """True if some derivative order is implemented for the spectral density but not for the autocovariance."""
    orders = [("grad_acv", "grad_sdf")]
    if hessian:
        orders.append(("hess_acv", "hess_sdf"))
    return any(
        model.implements(sdf_hook) and not model.implements(acv_hook) for acv_hook, sdf_hook in orders
    )


def allocate_ei_storage(
    model: type,
    n: int,
    delta: float,
    taper: xp.ndarray = None,
    n_alias: int = DEFAULT_N_ALIAS,
    hessian: bool = False,
) -> TimeSeriesModelStorage:
    """
    Storage for the debiased Whittle likelihood. The expected periodogram is computed from the autocovariance
    when the model provides it, and from the spectral density otherwise, or when only the spectral density has
    the derivatives the likelihood may request. Second derivatives are only allocated if hessian is True.
    """
    if issubclass(model, AdditiveModel):
        return AdditiveStorage(
            model,
            [
                allocate_ei_storage(c, n, delta, taper, n_alias, hessian)
                for c in model.components
            ],
        )
    if model.implements("acv") and not spectral_derivatives_only(model, hessian):
        return Acv2EIStorage(model, n, delta, taper, hessian)
    return Sdf2EIStorage(model, n, delta, taper, n_alias, hessian)
