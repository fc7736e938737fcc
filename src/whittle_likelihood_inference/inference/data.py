import warnings

from whittle_likelihood_inference.backend import BackendManager

xp = BackendManager.get_backend()

from typing import Union

from whittle_likelihood_inference.exceptions import (
    DimensionMismatchError,
    InvalidParameterError,
)
from whittle_likelihood_inference.inference.periodogram import (
    Periodogram,
    lag_kernel,
    normalise_taper,
)
from whittle_likelihood_inference.timeseries import TimeSeries

ndarray = xp.ndarray


def as_timeseries(ts: Union[TimeSeries, ndarray], delta: float = None) -> TimeSeries:
    """Wrap an array and a sampling interval in a TimeSeries. A TimeSeries is returned unchanged."""
    if isinstance(ts, TimeSeries):
        if delta is not None and delta != ts.delta:
            raise InvalidParameterError(
                f"Sampling interval {delta} passed together with a time series sampled every {ts.delta}."
            )
        return ts
    if delta is None:
        raise InvalidParameterError("A sampling interval is required when the series is an array.")
    return TimeSeries(ts, delta)


def used_frequencies(frequencies: ndarray, lower_cutoff: float, upper_cutoff: float) -> ndarray:
    """
    Mask of the Fourier frequencies whose absolute value lies in (lower_cutoff, upper_cutoff]. The zero
    frequency is therefore excluded, as the periodogram there only measures the sample mean.

    Examples
    --------
    >>> used_frequencies(xp.array([0., 1., -2., -1.]), 0.5, 1.5)
    array([False,  True, False,  True])
    """
    if not 0 <= lower_cutoff <= upper_cutoff:
        raise InvalidParameterError(
            f"Cutoffs should satisfy 0 <= lower_cutoff <= upper_cutoff, got {lower_cutoff} and {upper_cutoff}."
        )
    return (xp.abs(frequencies) > lower_cutoff) & (xp.abs(frequencies) <= upper_cutoff)


class WhittleData:
    """
    Data-dependent quantities of a Whittle likelihood, computed once at construction.

    Attributes
    ----------
    ts: TimeSeries
        observed series

    used: ndarray
        boolean mask over the Fourier frequencies, True for the frequencies included in the likelihood sum

    periodogram: ndarray
        periodogram at the used frequencies, shape (n_used, ) for univariate data or (L, n_used) in
        Hermitian-compact layout
    """

    def __init__(
        self,
        model: type,
        ts: Union[TimeSeries, ndarray],
        delta: float = None,
        lower_cutoff: float = 0.0,
        upper_cutoff: float = xp.inf,
        taper: ndarray = None,
    ):
        self.ts = as_timeseries(ts, delta)
        if self.ts.ndim != model.ndim:
            raise DimensionMismatchError(
                f"{model.label()} model has dimension {model.ndim}, but the series has {self.ts.ndim} columns."
            )
        self.taper = normalise_taper(taper, self.ts.n)
        self.lower_cutoff = lower_cutoff
        self.upper_cutoff = upper_cutoff
        self.used = used_frequencies(self.ts.fourier_frequencies, lower_cutoff, upper_cutoff)
        if not xp.any(self.used):
            warnings.warn(
                f"No Fourier frequency lies within the cutoffs ({lower_cutoff}, {upper_cutoff}], "
                "the likelihood is identically zero."
            )
        self.periodogram = Periodogram(self.taper)(self.ts)[..., self.used]

    @property
    def n(self) -> int:
        return self.ts.n

    @property
    def delta(self) -> float:
        return self.ts.delta

    @property
    def ndim(self) -> int:
        return self.ts.ndim

    @property
    def n_used(self) -> int:
        """number of frequencies summed over"""
        return int(xp.sum(self.used))


class DebiasedWhittleData(WhittleData):
    """
    Data of the debiased Whittle likelihood. Additionally holds the lag kernel of the taper, from which the
    expected periodogram is synthesized at every evaluation.

    Attributes
    ----------
    kernel: ndarray
        lag kernel of the taper, shape (2n - 1, ). Without taper, 1 - |tau| / n.
    """

    def __init__(
        self,
        model: type,
        ts: Union[TimeSeries, ndarray],
        delta: float = None,
        lower_cutoff: float = 0.0,
        upper_cutoff: float = xp.inf,
        taper: ndarray = None,
    ):
        super().__init__(model, ts, delta, lower_cutoff, upper_cutoff, taper)
        self.kernel = lag_kernel(self.taper)
