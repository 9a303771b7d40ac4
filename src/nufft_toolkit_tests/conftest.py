import numpy as np
import numpy.typing as npt
import opt_einsum as oe

import nufft_toolkit.util as ntk_util

__all__ = [
    "allclose",
    "inner_product",
    "l1close",
    "max_error",
    "nufft_tol",
    "random_points",
    "random_strengths",
    "rel_error",
    "relclose",
]


def allclose(
    a: np.ndarray,
    b: np.ndarray,
    dtype: npt.DTypeLike,
) -> bool:
    dtype = ntk_util.TranslateDType(dtype).to_float()
    atol = {
        np.dtype(np.float32): 1e-4,
        np.dtype(np.float64): 1e-8,
    }[dtype]

    match = np.allclose(a, b, atol=atol)
    return match


def rel_error(
    a: np.ndarray,
    b: np.ndarray,
    D: int,
) -> np.ndarray:
    r"""
    Relative distance between 2 vectors.

    Parameters
    ----------
    a: ndarray[float/complex]
        (..., N1,...,ND)
    b: ndarray[float/complex]
        (..., N1,...,ND)
    D: int

    Returns
    -------
    rel: ndarray[float]
        (...,)  \norm{a-b}{2} / \norm{b}{2}
    """
    axes = tuple(range(-D, 0))
    num = np.sum((a - b) * (a - b).conj(), axis=axes).real
    den = np.sum(b * b.conj(), axis=axes).real
    rel = np.sqrt(num / den)
    return rel


def max_error(
    a: np.ndarray,
    b: np.ndarray,
    D: int,
) -> np.ndarray:
    r"""
    Max-norm relative distance between 2 vectors.

    Returns
    -------
    rel: ndarray[float]
        (...,)  \norm{a-b}{\infty} / \norm{b}{\infty}
    """
    axes = tuple(range(-D, 0))
    num = np.max(np.abs(a - b), axis=axes)
    den = np.max(np.abs(b), axis=axes)
    rel = num / den
    return rel


def relclose(
    a: np.ndarray,
    b: np.ndarray,
    D: int,
    eps: float,
) -> bool:
    r"""
    Are `a` and `b` close up to a prescribed relative error?

    Parameters
    ----------
    a: ndarray[float/complex]
        (..., N1,...,ND)
    b: ndarray[float/complex]
        (..., N1,...,ND)
    D: int
    eps: float
        [0, 1[ tolerance.

    Returns
    -------
    close: bool
        \norm{a - b}{2} <= eps * \norm{b}{2}
    """
    assert 0 <= eps < 1
    r_err = rel_error(a, b, D)
    close = np.all(r_err <= eps)
    return close


def l1close(
    a: np.ndarray,
    b: np.ndarray,
    w: np.ndarray,
    D_out: int,
    D_in: int,
    eps: float,
) -> bool:
    r"""
    Are `a` and `b` close relative to the l1-norm of the input `w` they were computed from?

    Each NUFFT output is a sum of input terms of unit-modulus weight, hence :math:`\norm{b}{\infty} \le \norm{w}{1}`.
    Scaling by :math:`\norm{w}{1}` makes the bound independent of cancellations in `b`.

    Parameters
    ----------
    a: ndarray[float/complex]
        (..., N1,...,N_{D_out}) computed outputs.
    b: ndarray[float/complex]
        (..., N1,...,N_{D_out}) ground-truth outputs.
    w: ndarray[float/complex]
        (..., M1,...,M_{D_in}) inputs.
    D_out: int
    D_in: int
    eps: float
        [0, 1[ tolerance.

    Returns
    -------
    close: bool
        \norm{a - b}{\infty} <= eps * \norm{w}{1}
    """
    assert 0 <= eps < 1
    num = np.max(np.abs(a - b), axis=tuple(range(-D_out, 0)))
    den = np.sum(np.abs(w), axis=tuple(range(-D_in, 0)))
    close = np.all(num <= eps * den)
    return close


def inner_product(
    x: np.ndarray,
    y: np.ndarray,
    D: int,
) -> np.ndarray:
    """
    Compute stack-wize inner-product.

    Parameters
    ----------
    x: ndarray
        (..., N1,...,ND)
    y: ndarray
        (..., N1,...,ND)
    D: int
        Rank of inputs.

    Returns
    -------
    z: ndarray
        (...,) inner-products <x,y>.
    """
    x_ind = y_ind = (Ellipsis, *range(D))
    z_ind = (Ellipsis,)

    z = oe.contract(
        *(x, x_ind),
        *(y.conj(), y_ind),
        z_ind,
    )
    return z


def random_points(
    M: int,
    D: int,
    rng: np.random.Generator,
    clustered: bool = False,
) -> np.ndarray:
    """
    (M, D) points in [-pi, pi[.

    If `clustered`, points are drawn around a few random centres instead of uniformly.
    """
    if clustered:
        n_cl = max(1, M // 50)
        centre = rng.uniform(-np.pi, np.pi, (n_cl, D))
        x = centre[rng.integers(0, n_cl, M)] + rng.normal(scale=0.05, size=(M, D))
        x = np.mod(x + np.pi, 2 * np.pi) - np.pi
    else:
        x = rng.uniform(-np.pi, np.pi, (M, D))
    return x


def random_strengths(
    shape: tuple[int],
    dtype: npt.DTypeLike,
    rng: np.random.Generator,
    real: bool = False,
) -> np.ndarray:
    """
    Standard-normal (complex) samples of the given precision.
    """
    translate = ntk_util.TranslateDType(dtype)
    if real:
        w = rng.standard_normal(shape)
        w = w.astype(translate.to_float())
    else:
        w = 1j * rng.standard_normal(shape)
        w += rng.standard_normal(shape)
        w = w.astype(translate.to_complex())
    return w


def nufft_tol(eps: float, D: int) -> float:
    """
    Tolerance of :py:func:`l1close` for type-1/2 transforms in D dimensions.

    The separable kernel contributes one eps-sized error per axis.
    """
    return 10 * D * eps
