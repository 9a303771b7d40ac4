import numpy as np

import nufft_toolkit.util as ntk_util

__all__ = [
    "cexp",
    "phase",
]


def cexp(x: np.ndarray) -> np.ndarray:
    """
    Computes code below more efficiently:

    .. code-block:: python

       y = np.exp(1j * x)

    Parameters
    ----------
    x: ndarray[float]

    Returns
    -------
    y: ndarray[complex]
    """
    translate = ntk_util.TranslateDType(x.dtype)
    cdtype = translate.to_complex()

    y = np.empty(x.shape, dtype=cdtype)
    np.cos(x, out=y.real)
    np.sin(x, out=y.imag)
    return y


def phase(x: np.ndarray, a: np.ndarray, isign: int) -> np.ndarray:
    r"""
    Plane-wave factors :math:`\exp(\pm j \innerProduct{\bba}{\bbx_{m}})`.

    Parameters
    ----------
    x: ndarray[float]
        (M, D) points.
    a: ndarray[float]
        (D,) wave vector.
    isign: +1, -1
        Sign of the exponent.

    Returns
    -------
    y: ndarray[complex]
        (M,)
    """
    y = cexp(isign * (x @ a))
    return y
