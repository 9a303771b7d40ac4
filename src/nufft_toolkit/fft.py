import ducc0.fft as dfft
import numpy as np
import scipy.fft as sfft

import nufft_toolkit.error as ntk_error

__all__ = [
    "FFT",
    "DuccFFT",
    "ScipyFFT",
    "get_backend",
]


class FFT:
    r"""
    Regular-grid FFT collaborator.

    Computes the un-normalized multi-dimensional DFT

    .. math::

       \hat{g}[\bbk] = \sum_{\bbl} g[\bbl] \ee^{ \sigma \cj 2\pi \innerProduct{\bbk}{\bbl / \bbn} },

    over the trailing axes of an array, where :math:`\sigma = \pm 1` is the sign of the exponent.
    Neither direction is scaled: applying sign=-1 then sign=+1 multiplies the input by :math:`\prod_{d} n_{d}`.

    Sub-classes only need to implement :py:meth:`~FFT.transform`.
    """

    def __init__(self, nthreads: int = 1):
        assert nthreads >= 1
        self._nthreads = int(nthreads)

    def transform(self, a: np.ndarray, axes: tuple[int], sign: int) -> np.ndarray:
        """
        Parameters
        ----------
        a: ndarray[complex]
            (..., N1,...,ND) array to transform.
        axes: tuple[int]
            Axes to transform.
        sign: +1, -1
            Sign of the exponent. (-1: forward DFT, +1: backward DFT.)

        Returns
        -------
        b: ndarray[complex]
            (..., N1,...,ND) transformed array, same dtype as `a`.
        """
        raise NotImplementedError


class DuccFFT(FFT):
    """
    FFT backend based on ``ducc0.fft``.
    """

    def transform(self, a: np.ndarray, axes: tuple[int], sign: int) -> np.ndarray:
        b = dfft.c2c(
            a,
            axes=tuple(axes),
            forward=(sign < 0),
            inorm=0,
            nthreads=self._nthreads,
        )
        return b


class ScipyFFT(FFT):
    """
    FFT backend based on ``scipy.fft``.
    """

    def transform(self, a: np.ndarray, axes: tuple[int], sign: int) -> np.ndarray:
        if sign < 0:
            b = sfft.fftn(a, axes=axes, norm="backward", workers=self._nthreads)
        else:
            # "forward" puts the 1/N factor on the forward transform: ifftn() is then un-normalized.
            b = sfft.ifftn(a, axes=axes, norm="forward", workers=self._nthreads)
        return b


def get_backend(backend, nthreads: int) -> FFT:
    """
    Instantiate an FFT backend.

    Parameters
    ----------
    backend: str, FFT
        "ducc", "scipy", or an FFT instance (returned as-is).
    nthreads: int
        Number of threads the backend may use.
    """
    if isinstance(backend, FFT):
        fft = backend
    elif backend == "ducc":
        fft = DuccFFT(nthreads)
    elif backend == "scipy":
        fft = ScipyFFT(nthreads)
    else:
        raise ntk_error.ConfigurationError("fft_backend", backend, "must be one of {ducc, scipy} or an FFT instance.")
    return fft
