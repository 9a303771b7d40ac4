import numpy as np

import nufft_toolkit.error as ntk_error
import nufft_toolkit.nufft1 as ntk_nufft1
import nufft_toolkit.nufft2 as ntk_nufft2
import nufft_toolkit.nufft3 as ntk_nufft3
import nufft_toolkit.spread as ntk_spread
import nufft_toolkit.typing as ntkt
import nufft_toolkit.util as ntk_util

__all__ = [
    "nufft",
    "nufft1d",
    "nufft2d",
    "nufft3d",
    "nufft1d1",
    "nufft1d2",
    "nufft1d3",
    "nufft2d1",
    "nufft2d2",
    "nufft2d3",
    "nufft3d1",
    "nufft3d2",
    "nufft3d3",
]

_eps_default: float = 1e-6
_isign_default = {1: +1, 2: -1, 3: +1}


def nufft(
    nufft_type: int,
    x: ntkt.ArrayR,
    data: ntkt.ArrayRC,
    n_modes: tuple[int] = None,
    s: ntkt.ArrayR = None,
    *,
    eps: float = _eps_default,
    isign: int = None,
    **kwargs,
) -> ntkt.ArrayC:
    r"""
    Multi-dimensional Non-Uniform FFT, of type 1, 2 or 3.

    * type 1: :math:`f_{\bbk} = \sum_{j} c_{j} \ee^{ \sigma \cj \innerProduct{\bbk}{\bbx_{j}} }`
    * type 2: :math:`c_{j} = \sum_{\bbk} f_{\bbk} \ee^{ \sigma \cj \innerProduct{\bbk}{\bbx_{j}} }`
    * type 3: :math:`f_{k} = \sum_{j} c_{j} \ee^{ \sigma \cj \innerProduct{\bbs_{k}}{\bbx_{j}} }`

    Parameters
    ----------
    nufft_type: 1, 2, 3
        Transform type.
    x: ArrayR
        (M, D) points :math:`\bbx_{j}`. (M,) arrays are accepted if D=1.
    data: ArrayRC
        * type 1, 3: (..., M) strengths :math:`c_{j} \in \bC`.
        * type 2: (..., N1,...,ND) modes :math:`f_{\bbk} \in \bC`.
    n_modes: int, tuple[int]
        (D,) mode counts. Required for type 1. Inferred from `data` for type 2 if omitted.
    s: ArrayR
        (N, D) target frequencies :math:`\bbs_{k}`. Required for type 3.
    eps: float
        Target relative precision :math:`\epsilon \in ]0, 1[`.
    isign: +1, -1
        Sign :math:`\sigma` of the exponent. (Default: +1 for types 1 and 3, -1 for type 2.)
    kwargs: dict
        Extra options. (See :py:data:`~nufft_toolkit.config.DEFAULTS`.)

    Returns
    -------
    out: ArrayC
        * type 1: (..., N1,...,ND) modes.
        * type 2: (..., M) values.
        * type 3: (..., N) values.

    Notes
    -----
    The output precision follows `data`: float32/complex64 inputs give complex64 outputs, and
    float64/complex128 inputs give complex128 outputs.
    """
    if nufft_type not in (1, 2, 3):
        raise ntk_error.ConfigurationError("nufft_type", nufft_type, "must be 1, 2 or 3.")
    if isign is None:
        isign = _isign_default[nufft_type]

    x = ntk_spread.as_points(x)
    _, D = x.shape
    data = np.asarray(data)
    dtype = _data_dtype(data)

    if nufft_type == 1:
        if n_modes is None:
            raise ntk_error.ConfigurationError("n_modes", n_modes, "required by type-1 transforms.")
        _no_targets(s)
        op = ntk_nufft1.NUFFT1(x, n_modes, isign=isign, eps=eps, dtype=dtype, **kwargs)
        out = op.apply(data)
    elif nufft_type == 2:
        _no_targets(s)
        if data.ndim < D:
            raise ntk_error.ConfigurationError("data", data.shape, f"type-2 modes must have at least {D} axes.")
        if n_modes is None:
            n_modes = data.shape[data.ndim - D :]
        op = ntk_nufft2.NUFFT2(x, n_modes, isign=isign, eps=eps, dtype=dtype, **kwargs)
        out = op.apply(data)
    else:
        if s is None:
            raise ntk_error.ConfigurationError("s", s, "required by type-3 transforms.")
        if n_modes is not None:
            raise ntk_error.ConfigurationError("n_modes", n_modes, "not used by type-3 transforms.")
        op = ntk_nufft3.NUFFT3(x, s, isign=isign, eps=eps, dtype=dtype, **kwargs)
        out = op.apply(data)
    return out


def nufft1d(nufft_type: int, x: ntkt.ArrayR, data: ntkt.ArrayRC, n_modes=None, s=None, **kwargs) -> ntkt.ArrayC:
    """
    1D :py:func:`~nufft_toolkit.nufft.nufft`.
    """
    return _nufft_nd(1, nufft_type, x, data, n_modes, s, **kwargs)


def nufft2d(nufft_type: int, x: ntkt.ArrayR, data: ntkt.ArrayRC, n_modes=None, s=None, **kwargs) -> ntkt.ArrayC:
    """
    2D :py:func:`~nufft_toolkit.nufft.nufft`.
    """
    return _nufft_nd(2, nufft_type, x, data, n_modes, s, **kwargs)


def nufft3d(nufft_type: int, x: ntkt.ArrayR, data: ntkt.ArrayRC, n_modes=None, s=None, **kwargs) -> ntkt.ArrayC:
    """
    3D :py:func:`~nufft_toolkit.nufft.nufft`.
    """
    return _nufft_nd(3, nufft_type, x, data, n_modes, s, **kwargs)


# Per-axis shortcuts ----------------------------------------------------------
def nufft1d1(x, c, n_modes, **kwargs) -> ntkt.ArrayC:
    """
    1D type-1 transform: (..., M) strengths -> (..., N1) modes.
    """
    return nufft1d(1, _stack(x), c, n_modes=n_modes, **kwargs)


def nufft1d2(x, f, **kwargs) -> ntkt.ArrayC:
    """
    1D type-2 transform: (..., N1) modes -> (..., M) values.
    """
    return nufft1d(2, _stack(x), f, **kwargs)


def nufft1d3(x, c, s, **kwargs) -> ntkt.ArrayC:
    """
    1D type-3 transform: (..., M) strengths -> (..., N) values at frequencies `s`.
    """
    return nufft1d(3, _stack(x), c, s=_stack(s), **kwargs)


def nufft2d1(x, y, c, n_modes, **kwargs) -> ntkt.ArrayC:
    """
    2D type-1 transform: (..., M) strengths -> (..., N1, N2) modes.
    """
    return nufft2d(1, _stack(x, y), c, n_modes=n_modes, **kwargs)


def nufft2d2(x, y, f, **kwargs) -> ntkt.ArrayC:
    """
    2D type-2 transform: (..., N1, N2) modes -> (..., M) values.
    """
    return nufft2d(2, _stack(x, y), f, **kwargs)


def nufft2d3(x, y, c, s, t, **kwargs) -> ntkt.ArrayC:
    """
    2D type-3 transform: (..., M) strengths -> (..., N) values at frequencies `(s, t)`.
    """
    return nufft2d(3, _stack(x, y), c, s=_stack(s, t), **kwargs)


def nufft3d1(x, y, z, c, n_modes, **kwargs) -> ntkt.ArrayC:
    """
    3D type-1 transform: (..., M) strengths -> (..., N1, N2, N3) modes.
    """
    return nufft3d(1, _stack(x, y, z), c, n_modes=n_modes, **kwargs)


def nufft3d2(x, y, z, f, **kwargs) -> ntkt.ArrayC:
    """
    3D type-2 transform: (..., N1, N2, N3) modes -> (..., M) values.
    """
    return nufft3d(2, _stack(x, y, z), f, **kwargs)


def nufft3d3(x, y, z, c, s, t, u, **kwargs) -> ntkt.ArrayC:
    """
    3D type-3 transform: (..., M) strengths -> (..., N) values at frequencies `(s, t, u)`.
    """
    return nufft3d(3, _stack(x, y, z), c, s=_stack(s, t, u), **kwargs)


# Helper routines (internal) --------------------------------------------------
def _nufft_nd(D: int, nufft_type: int, x, data, n_modes, s, **kwargs) -> ntkt.ArrayC:
    x = np.asarray(x)
    if (D == 1) and (x.ndim == 1):
        x = x[:, np.newaxis]
    if (x.ndim != 2) or (x.shape[1] != D):
        raise ntk_error.ConfigurationError("x", x.shape, f"expected (M, {D}) coordinates.")
    if s is not None:
        s = np.asarray(s)
        if (D == 1) and (s.ndim == 1):
            s = s[:, np.newaxis]
        if (s.ndim != 2) or (s.shape[1] != D):
            raise ntk_error.ConfigurationError("s", s.shape, f"expected (N, {D}) frequencies.")
    return nufft(nufft_type, x, data, n_modes=n_modes, s=s, **kwargs)


def _stack(*coords) -> ntkt.ArrayR:
    # (M,) arrays, one per axis -> (M, D)
    coords = [np.asarray(_x) for _x in coords]
    for _x in coords:
        if (_x.ndim != 1) or (len(_x) != len(coords[0])):
            shapes = tuple(_.shape for _ in coords)
            raise ntk_error.ConfigurationError("coordinates", shapes, "expected 1D arrays of identical length.")
    x = np.stack(coords, axis=1)
    return x


def _data_dtype(data: ntkt.ArrayRC) -> np.dtype:
    try:
        dtype = ntk_util.TranslateDType(data.dtype).to_complex()
    except AssertionError:
        raise ntk_error.ConfigurationError("data", data.dtype, "must be float32/64 or complex64/128.")
    return dtype


def _no_targets(s):
    if s is not None:
        raise ntk_error.ConfigurationError("s", np.shape(s), "only used by type-3 transforms.")
