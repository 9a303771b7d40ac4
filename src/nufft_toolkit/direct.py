# Direct O(NM) evaluation of the NUFFT sums.
#
# These routines are exact up to floating-point round-off, and serve as ground truth in tests.

import numpy as np

import nufft_toolkit.complex as ntk_complex
import nufft_toolkit.kernel as ntk_kernel
import nufft_toolkit.spread as ntk_spread
import nufft_toolkit.util as ntk_util

__all__ = [
    "direct1",
    "direct2",
    "direct3",
]

_chunk = 1024  # frequencies per block


def _mode_mesh(n_modes: tuple[int], modeord: int) -> np.ndarray:
    # (N1,...,ND, D) integer frequencies in output order.
    k = [ntk_kernel.mode_indices(_N, modeord) for _N in n_modes]
    mesh = np.stack(np.meshgrid(*k, indexing="ij"), axis=-1)
    return mesh


def _sum(x: np.ndarray, c: np.ndarray, k: np.ndarray, isign: int) -> np.ndarray:
    # out[..., n] = \sum_{m} c[..., m] exp(isign j <k[n], x[m]>), computed in blocks of `k`.
    cdtype = ntk_util.TranslateDType(c.dtype).to_complex()
    c = c.astype(np.complex128)
    out = np.zeros((*c.shape[:-1], len(k)), dtype=np.complex128)
    for a in range(0, len(k), _chunk):
        b = min(a + _chunk, len(k))
        A = ntk_complex.cexp(isign * (k[a:b] @ x.T))  # (n, M)
        out[..., a:b] = c @ A.T
    return out.astype(cdtype)


def direct1(
    x: np.ndarray,
    c: np.ndarray,
    n_modes: tuple[int],
    isign: int = 1,
    modeord: int = 0,
) -> np.ndarray:
    r"""
    Type-1 sum :math:`f_{\bbk} = \sum_{j} c_{j} \ee^{ \sigma \cj \innerProduct{\bbk}{\bbx_{j}} }`.

    Parameters
    ----------
    x: ndarray[float]
        (M, D) points.
    c: ndarray[float/complex]
        (..., M) strengths.
    n_modes: int, tuple[int]
        (D,) mode counts.
    isign: +1, -1
    modeord: 0, 1

    Returns
    -------
    f: ndarray[complex]
        (..., N1,...,ND) modes.
    """
    x = ntk_spread.as_points(x)
    _, D = x.shape
    n_modes = ntk_util.broadcast_seq(n_modes, D, int)
    c = np.asarray(c)

    k = _mode_mesh(n_modes, modeord).reshape(-1, D).astype(np.double)
    f = _sum(x, c, k, isign)
    return f.reshape(*c.shape[:-1], *n_modes)


def direct2(
    x: np.ndarray,
    f: np.ndarray,
    isign: int = -1,
    modeord: int = 0,
) -> np.ndarray:
    r"""
    Type-2 sum :math:`c_{j} = \sum_{\bbk} f_{\bbk} \ee^{ \sigma \cj \innerProduct{\bbk}{\bbx_{j}} }`.

    Parameters
    ----------
    x: ndarray[float]
        (M, D) points.
    f: ndarray[float/complex]
        (..., N1,...,ND) modes.
    isign: +1, -1
    modeord: 0, 1

    Returns
    -------
    c: ndarray[complex]
        (..., M) values.
    """
    x = ntk_spread.as_points(x)
    _, D = x.shape
    f = np.asarray(f)
    n_modes = f.shape[f.ndim - D :]
    sh = f.shape[: f.ndim - D]

    k = _mode_mesh(n_modes, modeord).reshape(-1, D).astype(np.double)
    # roles of (x, k) are swapped w.r.t. type 1
    c = _sum(k, f.reshape(*sh, -1), x, isign)
    return c


def direct3(
    x: np.ndarray,
    c: np.ndarray,
    s: np.ndarray,
    isign: int = 1,
) -> np.ndarray:
    r"""
    Type-3 sum :math:`f_{k} = \sum_{j} c_{j} \ee^{ \sigma \cj \innerProduct{\bbs_{k}}{\bbx_{j}} }`.

    Parameters
    ----------
    x: ndarray[float]
        (M, D) points.
    c: ndarray[float/complex]
        (..., M) strengths.
    s: ndarray[float]
        (N, D) frequencies.
    isign: +1, -1

    Returns
    -------
    f: ndarray[complex]
        (..., N) values.
    """
    x = ntk_spread.as_points(x)
    s = ntk_spread.as_points(s)
    c = np.asarray(c)
    f = _sum(x, c, s, isign)
    return f
