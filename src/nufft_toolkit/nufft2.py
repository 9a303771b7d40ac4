import numpy as np

import nufft_toolkit.nufft1 as ntk_nufft1

__all__ = [
    "NUFFT2",
]


class NUFFT2(ntk_nufft1.NUFFT1):
    r"""
    Multi-dimensional Uniform-to-NonUniform Fourier Transform. (Type 2.)

    Given modes :math:`f_{\bbk} \in \bC` on the block

    .. math::

       k_{d} \in \{ -\lfloor N_{d}/2 \rfloor, \ldots, \lfloor (N_{d}-1)/2 \rfloor \},

    computes, at points :math:`\bbx_{j} \in [-\pi, \pi)^{D}`,

    .. math::

       c_{j} = \sum_{\bbk} f_{\bbk} \ee^{ \sigma \cj \innerProduct{\bbk}{\bbx_{j}} },

    to relative precision :math:`\epsilon`.

    This is the adjoint of a type-1 transform with the opposite sign.
    """

    def __init__(
        self,
        x: np.ndarray,
        n_modes: tuple[int],
        *,
        isign: int = -1,
        eps: float = 1e-6,
        dtype: np.dtype = None,
        **kwargs,
    ):
        r"""
        Parameters
        ----------
        x: ndarray[float]
            (M, D) points :math:`\bbx_{j} \in [-3\pi, 3\pi]^{D}`, interpreted modulo :math:`2\pi`.
            (M,) arrays are accepted if D=1.
        n_modes: int, tuple[int]
            (D,) mode counts :math:`\{ N_{1},\ldots,N_{D} \}`.
        isign: +1, -1
            Sign of the exponent.
        eps: float
            Target relative precision :math:`\epsilon \in ]0, 1[`.
        dtype: float/complex
            Working precision. (Default: double.)
        kwargs: dict
            Extra options. (See :py:data:`~nufft_toolkit.config.DEFAULTS`.)
        """
        if isinstance(isign, bool) or (not isinstance(isign, (int, np.integer, float, np.floating))):
            flip = isign  # rejected by NUFFT1._validate_inputs()
        else:
            flip = -isign
        super().__init__(
            x=x,
            n_modes=n_modes,
            isign=flip,
            eps=eps,
            dtype=dtype,
            **kwargs,
        )

    def apply(self, f: np.ndarray) -> np.ndarray:
        r"""
        Parameters
        ----------
        f: ndarray[float/complex]
            (..., N1,...,ND) modes :math:`f_{\bbk} \in \bC`.

        Returns
        -------
        c: ndarray[complex]
            (..., M) values :math:`c_{j} \in \bC`.
        """
        c = super().adjoint(f)
        return c

    def adjoint(self, c: np.ndarray) -> np.ndarray:
        r"""
        Parameters
        ----------
        c: ndarray[float/complex]
            (..., M) strengths :math:`c_{j} \in \bC`.

        Returns
        -------
        f: ndarray[complex]
            (..., N1,...,ND) modes :math:`f_{\bbk} \in \bC`.
        """
        f = super().apply(c)
        return f
