from whittle_likelihood_inference.backend import BackendManager
from whittle_likelihood_inference.exceptions import InvalidParameterError
from whittle_likelihood_inference.utils import fourier_frequencies

xp = BackendManager.get_backend()


def as_series_matrix(ts) -> xp.ndarray:
    """Read a series as an (n, d) float array. One-dimensional input is read as a single column."""
    ts = BackendManager.convert(ts)
    if ts.ndim == 1:
        ts = xp.reshape(ts, (-1, 1))
    if ts.ndim != 2:
        raise InvalidParameterError(
            f"A time series should be a vector or an n by d matrix, got an array with {ts.ndim} dimensions."
        )
    return ts.astype(xp.float64)


def check_sampling_interval(delta: float) -> float:
    if not delta > 0:
        raise InvalidParameterError(f"The sampling interval should be positive, got {delta}.")
    return float(delta)


class TimeSeries:
    """
    A regularly sampled, possibly multivariate, time series.

    Attributes
    ----------
    ts: ndarray
        shape (n, d), observed values

    delta: float
        sampling interval

    n: int
        number of observations

    ndim: int
        number of variates

    fourier_frequencies: ndarray
        angular Fourier frequencies of the sampling, in FFT order

    Examples
    --------
    >>> series = TimeSeries(xp.ones(10), 0.5)
    >>> series.n, series.ndim
    (10, 1)
    """

    def __init__(self, ts: xp.ndarray, delta: float):
        self.ts = ts
        self.delta = delta

    @property
    def ts(self) -> xp.ndarray:
        """observed values, shape (n, d)"""
        return self._ts

    @ts.setter
    def ts(self, value):
        self._ts = as_series_matrix(value)

    @property
    def delta(self) -> float:
        """sampling interval, in units of time"""
        return self._delta

    @delta.setter
    def delta(self, value: float):
        self._delta = check_sampling_interval(value)

    @property
    def n(self) -> int:
        return self.ts.shape[0]

    @property
    def ndim(self) -> int:
        return self.ts.shape[1]

    @property
    def fourier_frequencies(self) -> xp.ndarray:
        return fourier_frequencies(self.n, self.delta)

    def __repr__(self):
        return f"TimeSeries(n={self.n}, ndim={self.ndim}, delta={self.delta})"
