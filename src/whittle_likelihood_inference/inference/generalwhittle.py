r"""
Reductions shared by the standard and the debiased Whittle likelihoods.

With $S$ the spectral matrices of the model (the aliased spectral density, or the expected periodogram) and
$I$ the periodogram, sums running over the used Fourier frequencies,

$$
    \ell(\theta) = - \sum_{\omega} \log\det S(\omega) + tr(S^{-1}(\omega) I(\omega)).
$$

Writing $A_k = S^{-1}\partial_k S$ and $M = S^{-1}I$,

$$
    \partial_k \ell = -\sum_\omega Re\ tr(A_k(Id - M)),
$$

$$
    \partial_j\partial_k \ell = -\sum_\omega Re\left[tr(S^{-1}\partial_j\partial_k S(Id - M)) - tr(A_jA_k)
    + tr(A_jA_kM) + tr(A_kA_jM)\right],
$$

and since the expectation of $M$ is the identity when $S$ is the expectation of the periodogram, the expected
Hessian is $-\sum_\omega Re\ tr(A_jA_k)$. We return its opposite, the Fisher information, which is
positive semi-definite and does not require second derivatives of S.
"""

from whittle_likelihood_inference.backend import BackendManager

xp = BackendManager.get_backend()

from whittle_likelihood_inference.utils import parameter_pairs, pair_index, unpack_hermitian

inv = BackendManager.get_inv()
slogdet = BackendManager.get_slogdet()
LinAlgError = BackendManager.get_linalg_error()
ndarray = xp.ndarray


def spectral_matrices(values: ndarray, used: ndarray, d: int) -> ndarray:
    """
    Restrict buffers to the used frequencies and, for d > 1, expand them to full matrices.

    Parameters
    ----------
    values
        shape (..., n) for d = 1, (..., L, n) for d > 1

    used
        boolean mask of length n

    d
        dimension of the process

    Returns
    -------
    matrices
        shape (..., n_used) for d = 1, (..., n_used, d, d) for d > 1
    """
    values = values[..., used]
    if d == 1:
        return values
    return unpack_hermitian(values, d)


def _trace(a: ndarray, b: ndarray) -> ndarray:
    """real part of tr(a b) summed over frequencies, a and b of shape (n_used, d, d)"""
    return xp.real(xp.einsum("wij,wji->", a, b))


def whittle_value(s: ndarray, periodogram: ndarray, s_inv: ndarray = None) -> float:
    """
    Value of the Whittle log-likelihood.

    Parameters
    ----------
    s
        spectral matrices at the used frequencies, shape (n_used, ) or (n_used, d, d)

    periodogram
        periodogram, same shape as s

    s_inv
        inverse of s, d > 1 only

    Returns
    -------
    value
        likelihood value. Zero if no frequency is used.
    """
    if s.ndim == 1:
        return -xp.sum(xp.log(s) + periodogram / s).item()
    sign, logabsdet = slogdet(s)
    # Hermitian matrices have a real determinant, S is not a valid spectral matrix if it is not positive
    logdet = xp.where(xp.real(sign) > 0, logabsdet, xp.nan)
    return -(xp.sum(logdet) + _trace(s_inv, periodogram)).item()


def whittle_gradient(
    s: ndarray, ds: ndarray, periodogram: ndarray, out: ndarray, s_inv: ndarray = None
) -> ndarray:
    """
    Gradient of the Whittle log-likelihood, written in out (shape (npars, )).

    ds has shape (npars, n_used) or (npars, n_used, d, d).
    """
    if s.ndim == 1:
        out[:] = BackendManager.to_cpu(-xp.sum(ds / s * (1 - periodogram / s), axis=-1))
        return out
    residual = xp.eye(s.shape[-1]) - xp.matmul(s_inv, periodogram)
    a = xp.matmul(s_inv, ds)
    out[:] = BackendManager.to_cpu(-xp.real(xp.einsum("kwij,wji->k", a, residual)))
    return out


def whittle_hessian(
    s: ndarray,
    ds: ndarray,
    d2s: ndarray,
    periodogram: ndarray,
    out: ndarray,
    s_inv: ndarray = None,
) -> ndarray:
    """
    Observed Hessian of the Whittle log-likelihood, written in out (shape (npars, npars)). The lower triangle
    is computed and mirrored.

    d2s has shape (npars(npars + 1)/2, n_used) or (npars(npars + 1)/2, n_used, d, d), see utils.pair_index.
    """
    npars = ds.shape[0]
    if s.ndim == 1:
        m = periodogram / s
        for j, k in parameter_pairs(npars):
            h = d2s[pair_index(j, k)] / s * (1 - m) - ds[j] * ds[k] / s**2 * (1 - 2 * m)
            out[j, k] = out[k, j] = -xp.sum(h).item()
        return out
    m = xp.matmul(s_inv, periodogram)
    residual = xp.eye(s.shape[-1]) - m
    a = xp.matmul(s_inv, ds)
    for j, k in parameter_pairs(npars):
        a_jk = xp.matmul(a[j], a[k])
        h = (
            _trace(xp.matmul(s_inv, d2s[pair_index(j, k)]), residual)
            - xp.real(xp.einsum("wii->", a_jk))
            + _trace(a_jk, m)
            + _trace(xp.matmul(a[k], a[j]), m)
        )
        out[j, k] = out[k, j] = -h.item()
    return out


def whittle_expected_hessian(
    s: ndarray, ds: ndarray, out: ndarray, s_inv: ndarray = None
) -> ndarray:
    """
    Fisher information of the Whittle log-likelihood, i.e. minus its expected Hessian, written in out
    (shape (npars, npars)). Positive semi-definite.
    """
    npars = ds.shape[0]
    if s.ndim == 1:
        a = ds / s
        for j, k in parameter_pairs(npars):
            out[j, k] = out[k, j] = xp.sum(a[j] * a[k]).item()
        return out
    a = xp.matmul(s_inv, ds)
    for j, k in parameter_pairs(npars):
        out[j, k] = out[k, j] = _trace(a[j], a[k]).item()
    return out


def evaluate(F, G, H, model, data, store, expected_hessian: bool):
    """
    Evaluate the requested outputs of a Whittle likelihood at a model instance. Storage buffers are only
    populated for the requested outputs: nothing if F, G and H are all None, first derivatives if G or H is
    requested, second derivatives only for the observed Hessian.

    Parameters
    ----------
    F
        None, or any value to request the likelihood value

    G
        None, or array of shape (npars, ) receiving the gradient

    H
        None, or array of shape (npars, npars) receiving the observed Hessian, or the Fisher information
        if expected_hessian is True

    model
        model instance

    data
        WhittleData

    store
        storage sized for the model type and the data

    expected_hessian
        whether H receives the Fisher information rather than the observed Hessian

    Returns
    -------
    value
        likelihood value if F is not None, otherwise None. NaN if a spectral matrix is singular.
    """
    if F is None and G is None and H is None:
        return None
    d = data.ndim
    store.compute(model)
    if G is not None or H is not None:
        store.compute_gradient(model)
    if H is not None and not expected_hessian:
        store.compute_hessian(model)

    s = spectral_matrices(store.values, data.used, d)
    periodogram = spectral_matrices(data.periodogram, slice(None), d)
    try:
        s_inv = None if d == 1 else inv(s)
    except LinAlgError:
        if G is not None:
            G[:] = xp.nan
        if H is not None:
            H[:] = xp.nan
        return None if F is None else xp.nan

    if G is not None or H is not None:
        ds = spectral_matrices(store.gradient, data.used, d)
    if G is not None:
        whittle_gradient(s, ds, periodogram, G, s_inv)
    if H is not None:
        if expected_hessian:
            whittle_expected_hessian(s, ds, H, s_inv)
        else:
            d2s = spectral_matrices(store.hessian, data.used, d)
            whittle_hessian(s, ds, d2s, periodogram, H, s_inv)
    if F is None:
        return None
    return whittle_value(s, periodogram, s_inv)
