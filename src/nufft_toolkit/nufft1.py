import logging
import math
import time

import numpy as np

import nufft_toolkit.config as ntk_config
import nufft_toolkit.error as ntk_error
import nufft_toolkit.fft as ntk_fft
import nufft_toolkit.kernel as ntk_kernel
import nufft_toolkit.linalg as ntk_linalg
import nufft_toolkit.spread as ntk_spread
import nufft_toolkit.util as ntk_util

__all__ = [
    "NUFFT1",
]

logger = logging.getLogger(__name__)


class NUFFT1:
    r"""
    Multi-dimensional NonUniform-to-Uniform Fourier Transform. (Type 1.)

    Given strengths :math:`c_{j} \in \bC` at points :math:`\bbx_{j} \in [-\pi, \pi)^{D}`, computes

    .. math::

       f_{\bbk} = \sum_{j} c_{j} \ee^{ \sigma \cj \innerProduct{\bbk}{\bbx_{j}} },

    for integer frequencies :math:`\bbk` in the mode block

    .. math::

       k_{d} \in \{ -\lfloor N_{d}/2 \rfloor, \ldots, \lfloor (N_{d}-1)/2 \rfloor \},

    to relative precision :math:`\epsilon`. (:py:meth:`~NUFFT1.apply`.)

    The adjoint maps modes back to points: :math:`c_{j} = \sum_{\bbk} f_{\bbk} \ee^{ -\sigma \cj \innerProduct{\bbk}{\bbx_{j}} }`.
    (:py:meth:`~NUFFT1.adjoint`.)

    The transform is computed in 3 stages:

    1. strengths are spread onto an upsampled grid of size :math:`n_{d} \ge \text{upsampfac} \cdot N_{d}` with the ES kernel;
    2. the grid is FFT-ed;
    3. the central :math:`N_{d}` frequencies are kept and divided by the kernel's Fourier transform.

    Plans keep all point-dependent state, and can be applied repeatedly to new strengths.
    """

    def __init__(
        self,
        x: np.ndarray,
        n_modes: tuple[int],
        *,
        isign: int = 1,
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
            Scalars are broadcasted to all dimensions.
        isign: +1, -1
            Sign of the exponent.
        eps: float
            Target relative precision :math:`\epsilon \in ]0, 1[`.
        dtype: float/complex
            Working precision: decides the smallest achievable `eps`. (Default: double.)
        kwargs: dict
            Extra options. (See :py:data:`~nufft_toolkit.config.DEFAULTS`.)
        """
        x = ntk_spread.as_points(x)
        _, D = x.shape
        N = self._validate_modes(n_modes, D)

        # validate non-(x,N) inputs
        p = self._validate_inputs(D, isign, eps=eps, **kwargs)

        self.cfg = self._init_metadata(
            x=x,
            N=N,
            isign=p.isign,
            opts=p.opts,
            dtype=np.complex128 if (dtype is None) else dtype,
        )

    def apply(self, c: np.ndarray) -> np.ndarray:
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
        c = self._as_complex(c)
        t = [time.perf_counter()]

        g = self.cfg.spreader.spread(c)  # (..., n1,...,nD)
        t.append(time.perf_counter())

        gF = self.cfg.fft.transform(g, axes=self._grid_axes(g), sign=self.cfg.isign)  # (..., n1,...,nD)
        t.append(time.perf_counter())

        f = self._de_convolve(gF)  # (..., N1,...,ND)
        t.append(time.perf_counter())

        self._log_stages(t, ("spread", "fft", "deconvolve"))
        return f

    def adjoint(self, f: np.ndarray) -> np.ndarray:
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
        f = self._as_complex(f)
        t = [time.perf_counter()]

        gF = self._pad_convolve(f)  # (..., n1,...,nD)
        t.append(time.perf_counter())

        g = self.cfg.fft.transform(gF, axes=self._grid_axes(gF), sign=-self.cfg.isign)  # (..., n1,...,nD)
        t.append(time.perf_counter())

        c = self.cfg.spreader.interpolate(g)  # (..., M)
        t.append(time.perf_counter())

        self._log_stages(t, ("deconvolve", "fft", "interpolate"))
        return c

    # Helper routines (internal) ----------------------------------------------
    @staticmethod
    def _validate_modes(n_modes, D: int) -> tuple[int]:
        try:
            N = ntk_util.broadcast_seq(n_modes, D)
        except AssertionError:
            raise ntk_error.ConfigurationError("n_modes", n_modes, f"must be an int or {D}-tuple of ints.")
        for n in N:
            if isinstance(n, bool) or (not isinstance(n, (int, np.integer))) or (n < 0):
                raise ntk_error.ConfigurationError("n_modes", n_modes, "mode counts must be non-negative integers.")
        N = tuple(map(int, N))
        return N

    @staticmethod
    def _validate_inputs(D: int, isign: int, **kwargs):
        if isinstance(isign, bool) or (not isinstance(isign, (int, np.integer, float, np.floating))) or (isign == 0):
            raise ntk_error.ConfigurationError("isign", isign, "must be +1 or -1.")
        isign = int(isign / abs(isign))

        opts = ntk_config.resolve_options(D, **kwargs)

        params = ntk_util.as_namedtuple(
            D=D,
            isign=isign,
            opts=opts,
        )
        return params

    @classmethod
    def _init_metadata(
        cls,
        x: np.ndarray,
        N: tuple[int],
        isign: int,
        opts,
        dtype: np.dtype,
    ):
        r"""
        Compute all NUFFT1 parameters.

        Returns
        -------
        info: namedtuple
            # general ---------------------------------------------------------
            * D: int                    [Transform Dimensionality]
            * isign: int                [Sign of the exponent]
            * kernel: KernelSpec        [Spread pulse]
            * modeord: int              [Mode ordering]
            # operators -------------------------------------------------------
            * spreader: Spreader        [Spread/interpolate object]
            * fft: FFT                  [FFT backend]
            # grid-related ----------------------------------------------------
            * nf: (D,) int              [Fine-grid size]
            * corr: tuple[ndarray]      [(N1,),...,(ND,) de-convolution factors]
            * k_idx: tuple[ndarray]     [(N1,),...,(ND,) fine-grid index of each mode]
            # x-related -------------------------------------------------------
            * M: int                    [Number of points]
            # k-related -------------------------------------------------------
            * N: (D,) int               [Mode counts]
        """
        M, D = x.shape
        kernel = ntk_kernel.derive_kernel(opts.eps, opts.upsampfac, dtype)

        nf = tuple(
            ntk_util.next_fast_len(
                max(
                    math.ceil(opts.upsampfac * _N),
                    2 * kernel.width,
                )
            )
            for _N in N
        )
        if math.prod(nf) > ntk_config.MAX_GRID:
            raise ntk_error.ConfigurationError(
                "n_modes",
                N,
                f"mode-count overflow: fine grid {nf} exceeds {ntk_config.MAX_GRID} cells.",
            )

        corr = ntk_kernel.correction_table(kernel, nf, N, opts.modeord)
        k_idx = tuple(ntk_kernel.mode_indices(_N, opts.modeord) % _nf for (_N, _nf) in zip(N, nf))

        spreader = ntk_spread.Spreader(
            x,
            nf,
            kernel,
            **ntk_config.spreader_kwargs(opts),
        )
        fft = ntk_fft.get_backend(opts.fft_backend, opts.nthreads)

        logger.debug(
            "type-1 plan: D=%d, M=%d, N=%s, nf=%s, width=%d, beta=%.4f",
            D,
            M,
            N,
            nf,
            kernel.width,
            kernel.beta,
        )

        info = ntk_util.as_namedtuple(
            # general ------------------
            D=D,
            isign=isign,
            kernel=kernel,
            modeord=opts.modeord,
            # operators ---------------
            spreader=spreader,
            fft=fft,
            # grid-related ------------
            nf=nf,
            corr=corr,
            k_idx=k_idx,
            # x-related ----------------
            M=M,
            # k-related ----------------
            N=N,
        )
        return info

    def _as_complex(self, a: np.ndarray) -> np.ndarray:
        a = np.asarray(a)
        translate = ntk_util.TranslateDType(a.dtype)
        a = a.astype(translate.to_complex(), copy=False)
        return a

    def _grid_axes(self, g: np.ndarray) -> tuple[int]:
        D = self.cfg.D
        return tuple(range(g.ndim - D, g.ndim))

    def _corr(self, dtype: np.dtype) -> tuple[np.ndarray]:
        fdtype = ntk_util.TranslateDType(dtype).to_float()
        return tuple(_c.astype(fdtype) for _c in self.cfg.corr)

    def _de_convolve(self, gF: np.ndarray) -> np.ndarray:
        r"""
        Extract the mode block from the fine-grid spectrum and divide by :math:`\hat{\phi}`.

        Parameters
        ----------
        gF: ndarray
            (..., n1,...,nD) FFT of the spread grid.

        Returns
        -------
        f: ndarray
            (..., N1,...,ND) modes in `modeord` order.
        """
        select = np.ix_(*self.cfg.k_idx)
        g0F = gF[..., *select]  # (..., N1,...,ND)
        f = ntk_linalg.hadamard_outer(g0F, *self._corr(gF.dtype))
        return f.astype(gF.dtype, copy=False)

    def _pad_convolve(self, f: np.ndarray) -> np.ndarray:
        r"""
        Adjoint of _de_convolve()

        Parameters
        ----------
        f: ndarray
            (..., N1,...,ND) modes in `modeord` order.

        Returns
        -------
        gF: ndarray
            (..., n1,...,nD) zero-padded fine-grid spectrum.
        """
        D = self.cfg.D
        if (f.ndim < D) or (f.shape[f.ndim - D :] != self.cfg.N):
            raise ntk_error.ConfigurationError("f", f.shape, f"trailing axes must be {self.cfg.N}.")

        sh = f.shape[: f.ndim - D]
        g0F = ntk_linalg.hadamard_outer(f, *self._corr(f.dtype))

        gF = ntk_util.alloc_zeros((*sh, *self.cfg.nf), f.dtype)
        select = np.ix_(*self.cfg.k_idx)
        gF[..., *select] = g0F
        return gF

    def _log_stages(self, t: list[float], names: tuple[str]):
        if logger.isEnabledFor(logging.DEBUG):
            msg = ", ".join(f"{n}={b - a:.4f}[s]" for (n, a, b) in zip(names, t[:-1], t[1:]))
            logger.debug("%s: %s", type(self).__name__, msg)
