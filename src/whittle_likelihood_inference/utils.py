from functools import lru_cache

from whittle_likelihood_inference.backend import BackendManager

xp = BackendManager.get_backend()

fftfreq = xp.fft.fftfreq
ifftshift = xp.fft.ifftshift


def triangular_number(d: int) -> int:
    """number of entries in the lower triangle (diagonal included) of a d by d matrix."""
    return d * (d + 1) // 2


def pair_index(j: int, k: int) -> int:
    """
    Position of the unordered parameter pair (j, k) in second-derivative buffers. Pairs are stored
    in lower-triangle row-major order, (0, 0), (1, 0), (1, 1), (2, 0), ...

    Examples
    --------
    >>> pair_index(0, 0), pair_index(1, 0), pair_index(0, 1), pair_index(2, 1)
    (0, 1, 1, 4)
    """
    if j < k:
        j, k = k, j
    return triangular_number(j) + k


def parameter_pairs(npars: int) -> list[tuple[int, int]]:
    """list of the pairs (j, k), j >= k, in storage order."""
    return [(j, k) for j in range(npars) for k in range(j + 1)]


def compact_pairs(d: int) -> list[tuple[int, int]]:
    """entries (i, j), i >= j, of a d by d matrix in Hermitian-compact order"""
    return [(i, j) for j in range(d) for i in range(j, d)]


@lru_cache(maxsize=None)
def hermitian_index(d: int):
    """
    Index map of the Hermitian-compact layout. The lower triangle of a d by d Hermitian matrix is stored
    column by column, (0, 0), (1, 0), ..., (d - 1, 0), (1, 1), (2, 1), ...

    Returns
    -------
    index: ndarray
        shape (d, d), position in the compact array of entry (i, j), or of (j, i) for upper entries

    upper: ndarray
        shape (d, d), True for strictly upper entries, which are read conjugated

    Examples
    --------
    >>> index, upper = hermitian_index(2)
    >>> index
    array([[0, 1],
           [1, 2]])
    """
    index = xp.zeros((d, d), dtype=xp.int64)
    count = 0
    for j in range(d):
        for i in range(j, d):
            index[i, j] = count
            index[j, i] = count
            count += 1
    upper = xp.triu(xp.ones((d, d), dtype=bool), 1)
    return index, upper


def unpack_hermitian(compact: xp.ndarray, d: int) -> xp.ndarray:
    """
    Expand Hermitian-compact values to full matrices.

    Parameters
    ----------
    compact
        shape (..., L, n) with L = d(d + 1)/2, compact matrices for n frequencies

    d
        size of the matrices

    Returns
    -------
    full: ndarray
        shape (..., n, d, d)
    """
    index, upper = hermitian_index(d)
    full = xp.take(compact, index, axis=-2)
    # full has shape (..., d, d, n)
    full = xp.where(upper[:, :, None], xp.conj(full), full)
    return xp.moveaxis(full, -1, -3)


def fourier_frequencies(n: int, delta: float) -> xp.ndarray:
    r"""
    Angular Fourier frequencies of a series of length n sampled every delta units of time,
    $2\pi k / (n \delta)$, in the order of the FFT output.

    Examples
    --------
    >>> fourier_frequencies(4, 0.5)
    array([ 0.        ,  3.14159265, -6.28318531, -3.14159265])
    """
    return 2 * xp.pi * fftfreq(n, delta)


def lags(n: int, delta: float) -> xp.ndarray:
    """
    Lags of a series of length n, ordered as 0, delta, ..., (n - 1) delta, -(n - 1) delta, ..., -delta.
    This ordering makes the folding operation of the expected periodogram a simple slicing.

    Examples
    --------
    >>> lags(3, 1.)
    array([ 0.,  1.,  2., -2., -1.])
    """
    return ifftshift(xp.arange(-n + 1, n, dtype=xp.float64)) * delta
