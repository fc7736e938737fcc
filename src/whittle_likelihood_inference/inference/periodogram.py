from whittle_likelihood_inference.backend import BackendManager

xp = BackendManager.get_backend()

from typing import Union

from whittle_likelihood_inference.exceptions import DimensionMismatchError
from whittle_likelihood_inference.timeseries import TimeSeries, check_sampling_interval
from whittle_likelihood_inference.utils import compact_pairs

fft, ifft = BackendManager.get_fft_methods()
ndarray = xp.ndarray


def normalise_taper(taper: ndarray, n: int) -> ndarray:
    """
    Return a copy of the taper scaled to unit energy. Without taper, the constant taper 1 / sqrt(n)
    is returned, for which tapered and untapered periodograms coincide.

    Parameters
    ----------
    taper
        taper values, length n, or None

    n
        length of the series

    Examples
    --------
    >>> normalise_taper(xp.array([3., 4.]), 2)
    array([0.6, 0.8])
    """
    if taper is None:
        return xp.ones(n) / xp.sqrt(n)
    taper = BackendManager.convert(taper).astype(xp.float64)
    if taper.shape != (n,):
        raise DimensionMismatchError(
            f"The taper should be a vector of length {n}, got shape {taper.shape}."
        )
    return taper / xp.sqrt(xp.sum(taper**2))


def lag_kernel(taper: ndarray) -> ndarray:
    r"""
    Compute the lag kernel of a unit-energy taper via FFT,

    $$
        c_h(\tau) = \sum_{s}{h_s h_{s + \tau}}, \quad \tau=0, \ldots, n - 1, - (n - 1), \ldots, -1.
    $$

    Parameters
    ----------
    taper
        unit-energy taper, length n

    Returns
    -------
    kernel
        shape (2n - 1, ), in the lag ordering of utils.lags

    Examples
    --------
    >>> lag_kernel(xp.ones(4) / 2)
    array([1.  , 0.75, 0.5 , 0.25, 0.25, 0.5 , 0.75])
    """
    n = taper.shape[0]
    f = xp.abs(fft(taper, 2 * n - 1)) ** 2
    return xp.real(ifft(f))


def fold(cbar: ndarray, out: ndarray) -> ndarray:
    """
    Fold values on the 2n - 1 lags (last axis, ordering of utils.lags) onto the n residues modulo n.
    Lag -tau is added to lag n - tau. The result is written in out, of shape (..., n), which may be a view on
    the first n lags of cbar.
    """
    n = out.shape[-1]
    out[...] = cbar[..., :n]
    out[..., 1:] += cbar[..., n:]
    return out


class Periodogram:
    r"""
    Provides the capability to compute the (cross-)periodogram of a time series,

    $$
        I_{ij}(\omega) = \frac{\Delta}{2\pi} J_i(\omega) \overline{J_j(\omega)},
        \quad
        J_i(\omega) = \sum_{t=0}^{n-1} h_t X_{t,i} e^{-i\omega t\Delta},
    $$

    where h is a unit-energy taper, by default $h_t = 1/\sqrt{n}$.

    Attributes
    ----------
    taper: ndarray
        taper values, or None for no taper. Normalised to unit energy when the periodogram is computed.

    Examples
    --------
    >>> periodogram = Periodogram()
    >>> periodogram(TimeSeries(xp.ones(4), 1.))
    array([0.63661977, 0.        , 0.        , 0.        ])
    """

    def __init__(self, taper: ndarray = None):
        self.taper = taper

    @property
    def taper(self):
        return self._taper

    @taper.setter
    def taper(self, value: ndarray):
        self._taper = value

    def __call__(self, sample: Union[TimeSeries, ndarray], delta: float = None) -> ndarray:
        """
        Computes the periodogram of the data at all Fourier frequencies.

        Parameters
        ----------
        sample: TimeSeries | ndarray
            Observed series. An ndarray should have shape (n, d) or (n, ), and then requires delta.

        delta
            sampling interval, only when sample is an ndarray

        Returns
        -------
        periodogram: ndarray
            shape (n, ) for univariate data, real-valued.
            shape (L, n) for d-variate data, L = d(d + 1)/2, Hermitian-compact layout.
        """
        if not isinstance(sample, TimeSeries):
            sample = TimeSeries(sample, check_sampling_interval(delta))
        n, d = sample.n, sample.ndim
        h = normalise_taper(self.taper, n)
        j = fft(h[:, None] * sample.ts, axis=0)
        scale = sample.delta / (2 * xp.pi)
        if d == 1:
            return scale * xp.abs(j[:, 0]) ** 2
        rows, cols = zip(*compact_pairs(d))
        out = scale * j[:, list(rows)] * xp.conj(j[:, list(cols)])
        return xp.transpose(out)


class ExpectedPeriodogram:
    r"""
    Transform from autocovariance values on the lags of a series to the expected periodogram at its Fourier
    frequencies. In the notation of Periodogram,

    $$
        \overline{I}(\omega_k) =
        \frac{\Delta}{2\pi}
        \sum_{\tau=-n + 1}^{n - 1}
        c_h(\tau)
        \gamma(\tau\Delta)
        e^{-i \omega_k \tau\Delta},
    $$

    which is a circulant embedding of the Toeplitz covariance of the tapered data. Lags -tau and n - tau share
    the same complex exponential, hence the sum is folded onto n lags and computed by a single FFT of length n.

    Attributes
    ----------
    n: int
        length of the series

    delta: float
        sampling interval

    kernel: ndarray
        lag kernel of the taper, see lag_kernel
    """

    def __init__(self, n: int, delta: float, taper: ndarray = None):
        self.n = n
        self.delta = delta
        self.kernel = lag_kernel(normalise_taper(taper, n))
        self.fft = fft

    def __call__(self, acv: ndarray, out: ndarray, workspace: ndarray) -> ndarray:
        """
        Compute the expected periodogram for autocovariance values on the lags.

        Parameters
        ----------
        acv
            shape (..., 2n - 1), autocovariances (or their derivatives) on the lags of utils.lags.
            Leading dimensions, e.g. compact matrix entries or parameters, are transformed independently.

        out
            shape (..., n), where the result is written. Real-valued for univariate models.

        workspace
            shape (..., 2n - 1), buffer receiving the product of the lag kernel and the autocovariance, then folded
            in place onto its first n entries

        Returns
        -------
        out
        """
        xp.multiply(self.kernel, acv, out=workspace)
        folded = fold(workspace, workspace[..., : self.n])
        ep = self.fft(folded, axis=-1)
        ep *= self.delta / (2 * xp.pi)
        if xp.isrealobj(out):
            # univariate models have a real expected periodogram, up to numerical precision
            out[...] = xp.real(ep)
        else:
            out[...] = ep
        return out
