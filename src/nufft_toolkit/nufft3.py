import logging
import math
import time

import numpy as np

import nufft_toolkit.complex as ntk_complex
import nufft_toolkit.config as ntk_config
import nufft_toolkit.error as ntk_error
import nufft_toolkit.kernel as ntk_kernel
import nufft_toolkit.nufft1 as ntk_nufft1
import nufft_toolkit.nufft2 as ntk_nufft2
import nufft_toolkit.numba as ntk_numba
import nufft_toolkit.spread as ntk_spread
import nufft_toolkit.util as ntk_util

__all__ = [
    "NUFFT3",
]

logger = logging.getLogger(__name__)


class NUFFT3:
    r"""
    Multi-dimensional NonUniform-to-NonUniform Fourier Transform. (Type 3.)

    Given strengths :math:`c_{j} \in \bC` at points :math:`\bbx_{j} \in \bR^{D}`, computes

    .. math::

       f_{k} = \sum_{j} c_{j} \ee^{ \sigma \cj \innerProduct{\bbs_{k}}{\bbx_{j}} },

    at arbitrary frequencies :math:`\bbs_{k} \in \bR^{D}`, to relative precision :math:`\epsilon`.

    Per axis, let :math:`(C, X)` and :math:`(D, S)` denote the centre and half-width of the point and frequency
    clouds. The transform is computed as:

    1. pre-phase: :math:`c^{\prime}_{j} = c_{j} \ee^{ \sigma \cj \innerProduct{\bbD}{\bbx_{j}} }`;
    2. spread :math:`c^{\prime}_{j}` at re-scaled points :math:`x^{\prime} = (x - C) / \gamma \in ]-\pi, \pi[` onto a grid of
       size :math:`n`, with node :math:`l` located at :math:`h l - \pi`, :math:`h = 2 \pi / n`;
    3. evaluate the grid as type-2 modes at :math:`t_{k} = h \gamma (s_{k} - D)`;
    4. post-multiply by :math:`\ee^{ \sigma \cj \innerProduct{\bbs_{k} - \bbD}{\bbC} } / \prod_{d} \hat{\phi}(t_{k,d})`.

    The adjoint is a type-3 transform from :math:`\bbs_{k}` to :math:`\bbx_{j}` with the opposite sign.
    """

    def __init__(
        self,
        x: np.ndarray,
        s: np.ndarray,
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
            (M, D) source points :math:`\bbx_{j} \in \bR^{D}`. (M,) arrays are accepted if D=1.
        s: ndarray[float]
            (N, D) target frequencies :math:`\bbs_{k} \in \bR^{D}`. (N,) arrays are accepted if D=1.
        isign: +1, -1
            Sign of the exponent.
        eps: float
            Target relative precision :math:`\epsilon \in ]0, 1[`.
        dtype: float/complex
            Working precision. (Default: double.)
        kwargs: dict
            Extra options. (See :py:data:`~nufft_toolkit.config.DEFAULTS`.)
            `modeord` has no effect on type-3 transforms.
        """
        x = ntk_spread.as_points(x)
        s = ntk_spread.as_points(s)
        _, D = x.shape
        if s.shape[1] != D:
            raise ntk_error.ConfigurationError("s", s.shape, f"must have {D} coordinates per frequency, like `x`.")
        ntk_spread.check_points(x, chkbnds=False)
        ntk_spread.check_points(s, chkbnds=False)

        p = ntk_nufft1.NUFFT1._validate_inputs(D, isign, eps=eps, **kwargs)

        self._args = dict(eps=eps, dtype=dtype, **kwargs)  # to build the adjoint
        self._adj = None
        self.cfg = self._init_metadata(
            x=x,
            s=s,
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
            (..., N) values :math:`f_{k} \in \bC`.
        """
        c = np.asarray(c)
        if (c.ndim == 0) or (c.shape[-1] != self.cfg.M):
            raise ntk_error.ConfigurationError("c", c.shape, f"last axis must have length M={self.cfg.M}.")
        cdtype = ntk_util.TranslateDType(c.dtype).to_complex()
        fdtype = ntk_util.TranslateDType(c.dtype).to_float()
        t = [time.perf_counter()]

        c = c * self.cfg.pre_phase.astype(cdtype)  # (..., M)
        g = self.cfg.spreader.spread(c)  # (..., n1,...,nD)
        t.append(time.perf_counter())

        f = self.cfg.inner.apply(g)  # (..., N)
        t.append(time.perf_counter())

        f *= self.cfg.post_phase.astype(cdtype)
        f *= self.cfg.corr.astype(fdtype)
        t.append(time.perf_counter())

        if logger.isEnabledFor(logging.DEBUG):
            msg = ", ".join(
                f"{n}={b - a:.4f}[s]" for (n, a, b) in zip(("spread", "type-2", "deconvolve"), t[:-1], t[1:])
            )
            logger.debug("NUFFT3: %s", msg)
        return f

    def adjoint(self, f: np.ndarray) -> np.ndarray:
        r"""
        Parameters
        ----------
        f: ndarray[float/complex]
            (..., N) values :math:`f_{k} \in \bC`.

        Returns
        -------
        c: ndarray[complex]
            (..., M) values :math:`c_{j} = \sum_{k} f_{k} \ee^{ -\sigma \cj \innerProduct{\bbs_{k}}{\bbx_{j}} }`.
        """
        if self._adj is None:
            self._adj = NUFFT3(
                x=self.cfg.s,
                s=self.cfg.x,
                isign=-self.cfg.isign,
                **self._args,
            )
        c = self._adj.apply(f)
        return c

    # Helper routines (internal) ----------------------------------------------
    @staticmethod
    def _centre_halfwidth(x: np.ndarray) -> tuple[np.ndarray]:
        r"""
        Per-axis centre and half-width of a point cloud.

        The centre is snapped to 0 (and the half-width grown accordingly) when :math:`|C| < 0.1 X`.

        Parameters
        ----------
        x: ndarray[float64]
            (M, D) points.

        Returns
        -------
        C, X: ndarray[float64]
            (D,) centre and half-width.
        """
        M, D = x.shape
        if M == 0:
            C = np.zeros(D)
            X = np.zeros(D)
        else:
            x_min, x_max = ntk_numba.minmax(x)
            C = (x_max + x_min) / 2
            X = (x_max - x_min) / 2
            snap = np.abs(C) < 0.1 * X
            X = np.where(snap, X + np.abs(C), X)
            C = np.where(snap, 0, C)
        return C, X

    @classmethod
    def _init_metadata(
        cls,
        x: np.ndarray,
        s: np.ndarray,
        isign: int,
        opts,
        dtype: np.dtype,
    ):
        r"""
        Compute all NUFFT3 parameters.

        Returns
        -------
        info: namedtuple
            # general ---------------------------------------------------------
            * D: int                    [Transform Dimensionality]
            * isign: int                [Sign of the exponent]
            * kernel: KernelSpec        [Spread pulse]
            # operators -------------------------------------------------------
            * spreader: Spreader        [Spreads re-scaled sources]
            * inner: NUFFT2             [Grid -> re-scaled targets]
            # grid-related ----------------------------------------------------
            * nf: (D,) int              [Fine-grid size]
            * h: (D,) float             [Grid pitch]
            * gamma: (D,) float         [Source re-scaling]
            # x-related -------------------------------------------------------
            * M: int                    [Number of sources]
            * x: (M, D) float           [Sources; user order]
            * C: (D,) float             [Source centre]
            * X: (D,) float             [Source half-width]
            * pre_phase: (M,) complex   [exp(isign j <D, x>)]
            # s-related -------------------------------------------------------
            * N: int                    [Number of targets]
            * s: (N, D) float           [Targets; user order]
            * S_c: (D,) float           [Target centre]
            * S: (D,) float             [Target half-width]
            * post_phase: (N,) complex  [exp(isign j <s - D, C>)]
            * corr: (N,) float          [1 / \prod_{d} \hat{\phi}(t_{d})]
        """
        M, D = x.shape
        N = len(s)
        sigma = opts.upsampfac
        kernel = ntk_kernel.derive_kernel(opts.eps, sigma, dtype)
        w = kernel.width

        C, X = cls._centre_halfwidth(x)
        S_c, S = cls._centre_halfwidth(s)

        # Guard against degenerate extents.
        X_safe, S_safe = X.copy(), S.copy()
        for d in range(D):
            if (X[d] == 0) and (S[d] == 0):
                X_safe[d], S_safe[d] = 1, 1
            elif X[d] == 0:
                X_safe[d] = max(X_safe[d], 1 / S[d])
            else:
                S_safe[d] = max(S_safe[d], 1 / X[d])

        nf = tuple(
            ntk_util.next_fast_len(
                math.ceil(
                    max(
                        2 * sigma * S_safe[d] * X_safe[d] / np.pi + w + 1,
                        2 * w,
                    )
                )
            )
            for d in range(D)
        )
        if math.prod(nf) > ntk_config.MAX_GRID:
            raise ntk_error.ConfigurationError(
                "s",
                tuple(S),
                f"mode-count overflow: space-bandwidth product needs fine grid {nf} > {ntk_config.MAX_GRID} cells.",
            )
        nf_a = np.array(nf, dtype=np.double)
        h = 2 * np.pi / nf_a
        gamma = nf_a / (2 * sigma * S_safe)

        # Re-scaled sources/targets
        x_p = (x - C) / gamma + np.pi  # (M, D) in ]0, 2pi[
        t = (h * gamma) * (s - S_c)  # (N, D) in [-pi/sigma, pi/sigma]

        # Phase/de-convolution factors
        pre_phase = ntk_complex.phase(x, S_c, isign)  # (M,)
        post_phase = ntk_complex.phase(s - S_c, C, isign)  # (N,)
        phiF = ntk_kernel.kernel_ft(t, kernel)  # (N, D)
        ntk_kernel.check_positive(phiF, t, kernel)
        corr = 1 / np.prod(phiF, axis=1)  # (N,)

        spreader = ntk_spread.Spreader(
            x_p,
            nf,
            kernel,
            **ntk_config.spreader_kwargs(opts),
        )
        inner_kwargs = opts._asdict()
        inner_kwargs.update(modeord=0)
        inner = ntk_nufft2.NUFFT2(
            t,
            nf,
            isign=isign,
            dtype=dtype,
            **inner_kwargs,
        )

        logger.debug(
            "type-3 plan: D=%d, M=%d, N=%d, X=%s, S=%s, nf=%s, width=%d",
            D,
            M,
            N,
            X,
            S,
            nf,
            w,
        )

        info = ntk_util.as_namedtuple(
            # general ------------------
            D=D,
            isign=isign,
            kernel=kernel,
            # operators ---------------
            spreader=spreader,
            inner=inner,
            # grid-related ------------
            nf=nf,
            h=h,
            gamma=gamma,
            # x-related ----------------
            M=M,
            x=x,
            C=C,
            X=X,
            pre_phase=pre_phase,
            # s-related ----------------
            N=N,
            s=s,
            S_c=S_c,
            S=S,
            post_phase=post_phase,
            corr=corr,
        )
        return info
