from whittle_likelihood_inference.backend import BackendManager

BackendManager.set_backend("numpy")
np = BackendManager.get_backend()

from numpy.testing import assert_allclose

from whittle_likelihood_inference.utils import (
    compact_pairs,
    fourier_frequencies,
    hermitian_index,
    lags,
    pair_index,
    parameter_pairs,
    unpack_hermitian,
)


def test_pair_index():
    """
    Pair indices follow the lower-triangle row-major order and do not depend on the order of the pair.
    """
    for position, (j, k) in enumerate(parameter_pairs(4)):
        assert pair_index(j, k) == position
        assert pair_index(k, j) == position


def test_compact_pairs():
    assert compact_pairs(2) == [(0, 0), (1, 0), (1, 1)]
    assert compact_pairs(3) == [(0, 0), (1, 0), (2, 0), (1, 1), (2, 1), (2, 2)]


def test_hermitian_index():
    index, upper = hermitian_index(3)
    for position, (i, j) in enumerate(compact_pairs(3)):
        assert index[i, j] == position
        assert index[j, i] == position
    assert upper[0, 1] and not upper[1, 0] and not upper[1, 1]


def test_unpack_hermitian():
    """
    Upper entries are the conjugates of the stored lower entries.
    """
    compact = np.array([[1.0], [2.0 + 1.0j], [3.0]])
    full = unpack_hermitian(compact, 2)
    assert full.shape == (1, 2, 2)
    assert_allclose(full[0], [[1.0, 2.0 - 1.0j], [2.0 + 1.0j, 3.0]])


def test_unpack_hermitian_leading_dimensions():
    compact = np.random.randn(4, 6, 5) + 1j * np.random.randn(4, 6, 5)
    full = unpack_hermitian(compact, 3)
    assert full.shape == (4, 5, 3, 3)
    assert_allclose(full[2, 1, 2, 1], compact[2, 4, 1])
    assert_allclose(full[2, 1, 1, 2], np.conj(compact[2, 4, 1]))


def test_lags():
    assert np.all(lags(4, 1.0) == [0.0, 1.0, 2.0, 3.0, -3.0, -2.0, -1.0])
    assert_allclose(lags(3, 0.5), [0.0, 0.5, 1.0, -1.0, -0.5])


def test_fourier_frequencies():
    """
    Angular frequencies, 2 pi k / (n delta), in FFT order.
    """
    freqs = fourier_frequencies(8, 0.25)
    assert_allclose(freqs[1], 2 * np.pi / 2)
    assert_allclose(np.max(np.abs(freqs)), np.pi / 0.25)
