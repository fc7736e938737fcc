from whittle_likelihood_inference.backend import BackendManager

xp = BackendManager.get_backend()

from typing import Union

import numpy

from whittle_likelihood_inference.exceptions import ShapeMismatchError
from whittle_likelihood_inference.inference.data import DebiasedWhittleData, WhittleData
from whittle_likelihood_inference.inference.generalwhittle import evaluate
from whittle_likelihood_inference.inference.storage import (
    DEFAULT_N_ALIAS,
    allocate_ei_storage,
    allocate_sdf_storage,
)
from whittle_likelihood_inference.timeseries import TimeSeries

ndarray = xp.ndarray


def check_output_shapes(values: numpy.ndarray, G: numpy.ndarray, H: numpy.ndarray):
    """Check the shapes of the gradient and Hessian buffers against the parameter vector."""
    shape = numpy.shape(values)
    if G is not None and G.shape != shape:
        raise ShapeMismatchError(
            f"The gradient buffer should have the shape {shape} of the parameter vector, got {G.shape}."
        )
    if H is not None and H.shape != shape * 2:
        raise ShapeMismatchError(
            f"The Hessian buffer should have shape {shape * 2}, got {H.shape}."
        )


class WhittleLikelihoodBase:
    """
    Common machinery of the Whittle likelihoods. A likelihood object owns the data-dependent quantities
    and a storage sized once for its model type and series, which every call overwrites. Calls on a same
    object are therefore not thread-safe. Use one object per worker instead.

    A likelihood object is called either with a parameter vector, returning the likelihood value,
    or as obj(F, G, H, values), where G and H are None or arrays filled in place with the gradient and
    Hessian. In the latter case, the value is returned if F is not None, otherwise None is returned.
    This is the calling convention of optimizers which evaluate value, gradient and Hessian together.
    """

    label = None
    expected_hessian = False

    def __init__(self, model: type, data: WhittleData, store):
        self._model = model
        self.data = data
        self.store = store

    @property
    def model(self) -> type:
        """model type of the likelihood"""
        return self._model

    @property
    def npars(self) -> int:
        return self.model.npars()

    def __call__(self, *args):
        if len(args) == 1:
            return self._evaluate(True, None, None, args[0], self.store, self.expected_hessian)
        F, G, H, values = args
        return self._evaluate(F, G, H, values, self.store, self.expected_hessian)

    def _evaluate(self, F, G, H, values, store, expected_hessian):
        check_output_shapes(values, G, H)
        model = self.model(values)
        return evaluate(F, G, H, model, self.data, store, expected_hessian)

    def __repr__(self):
        return f"{self.label} for the {self.model.label()} model."


class WhittleLikelihood(WhittleLikelihoodBase):
    r"""
    Standard Whittle likelihood, comparing the periodogram of the data to the aliased spectral density of the
    model,

    $$
        \ell(\theta) = - \sum_{\omega\in\Omega} \log\det S_\theta(\omega)
        + tr\left(S_\theta^{-1}(\omega) I(\omega)\right),
    $$

    where $\Omega$ is the set of Fourier frequencies whose absolute value lies within the cutoffs.
    The Hessian returned through H is the observed Hessian of the likelihood. The model should implement
    the sdf hook, and grad_sdf and hess_sdf for the gradient and Hessian.

    Examples
    --------
    >>> from whittle_likelihood_inference.models.univariate import OU
    >>> likelihood = WhittleLikelihood(OU, xp.ones(100), 1.)
    >>> likelihood
    Whittle likelihood for the OU model.
    >>> G = numpy.zeros(2)
    >>> value = likelihood(1., G, None, [1., 1.])
    """

    label = "Whittle likelihood"

    def __init__(
        self,
        model: type,
        ts: Union[TimeSeries, ndarray],
        delta: float = None,
        *,
        lower_cutoff: float = 0.0,
        upper_cutoff: float = numpy.inf,
        taper: ndarray = None,
        n_alias: int = DEFAULT_N_ALIAS,
    ):
        """
        Parameters
        ----------
        model
            model type, e.g. OU or OU + Matern

        ts
            observed series, either a TimeSeries or an array of shape (n, d) or (n, )

        delta
            sampling interval, only when ts is an array

        lower_cutoff
            absolute angular frequencies in the likelihood sum are strictly larger, so that the zero
            frequency is excluded by default

        upper_cutoff
            largest absolute angular frequency included in the likelihood sum

        taper
            taper of length n applied to the data, normalised to unit energy. None for no taper.

        n_alias
            number of aliases on each side of the principal band in the computation of the spectral density
            of the sampled process
        """
        data = WhittleData(model, ts, delta, lower_cutoff, upper_cutoff, taper)
        store = allocate_sdf_storage(model, data.n, data.delta, n_alias)
        super().__init__(model, data, store)


class DebiasedWhittleLikelihood(WhittleLikelihoodBase):
    r"""
    Debiased Whittle likelihood, comparing the periodogram of the data to its expectation under the model,

    $$
        \ell(\theta) = - \sum_{\omega\in\Omega} \log\det \overline{I}_\theta(\omega)
        + tr\left(\overline{I}_\theta^{-1}(\omega) I(\omega)\right).
    $$

    The expected periodogram accounts for the finite sampling of the process and is computed exactly from the
    autocovariance of the model, or from its spectral density if the model only implements the latter.
    The Hessian returned through H is the expected Hessian, as the Fisher information which is positive
    semi-definite. The observed Hessian is available through the observed_hessian method.

    Examples
    --------
    >>> from whittle_likelihood_inference.models.univariate import OU
    >>> likelihood = DebiasedWhittleLikelihood(OU, xp.ones(100), 1.)
    >>> likelihood
    Debiased Whittle likelihood for the OU model.
    """

    label = "Debiased Whittle likelihood"
    expected_hessian = True

    def __init__(
        self,
        model: type,
        ts: Union[TimeSeries, ndarray],
        delta: float = None,
        *,
        lower_cutoff: float = 0.0,
        upper_cutoff: float = numpy.inf,
        n_alias: int = DEFAULT_N_ALIAS,
    ):
        """
        Parameters
        ----------
        model
            model type, e.g. OU or OU + Matern

        ts
            observed series, either a TimeSeries or an array of shape (n, d) or (n, )

        delta
            sampling interval, only when ts is an array

        lower_cutoff
            absolute angular frequencies in the likelihood sum are strictly larger, so that the zero
            frequency is excluded by default

        upper_cutoff
            largest absolute angular frequency included in the likelihood sum

        n_alias
            number of aliases used when the expected periodogram is computed from the spectral density
        """
        data = DebiasedWhittleData(model, ts, delta, lower_cutoff, upper_cutoff)
        self.n_alias = n_alias
        store = allocate_ei_storage(model, data.n, data.delta, data.taper, n_alias)
        super().__init__(model, data, store)
        self._observed_store = None

    def observed_hessian(self, F, G, H: numpy.ndarray, values):
        """
        Same as calling the likelihood with (F, G, H, values), but H receives the observed Hessian. This
        requires second derivatives of the autocovariance (or of the spectral density for spectral models).
        The storage for second derivatives is allocated on the first call.
        """
        if self._observed_store is None:
            self._observed_store = allocate_ei_storage(
                self.model, self.data.n, self.data.delta, self.data.taper, self.n_alias, hessian=True
            )
        return self._evaluate(F, G, H, values, self._observed_store, False)
