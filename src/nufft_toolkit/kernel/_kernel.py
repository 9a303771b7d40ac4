import functools
import logging
import math
import typing as typ
import warnings

import numba as nb
import numpy as np
import scipy.linalg as spl
import scipy.special as sps

import nufft_toolkit.error as ntk_error
import nufft_toolkit.numba as ntk_numba
import nufft_toolkit.util as ntk_util

__all__ = [
    "MAX_WIDTH",
    "KernelSpec",
    "Kernel",
    "ExpSemicircle",
    "PPoly",
    "KERNEL_FAMILY",
    "derive_kernel",
    "evaluate_kernel",
    "kernel_ft",
    "kernel_row",
    "check_positive",
    "mode_indices",
    "correction_table",
]

logger = logging.getLogger(__name__)

MAX_WIDTH = 16  # max kernel width [grid cells]


class KernelSpec(typ.NamedTuple):
    r"""
    Parameters of the exponential-of-semicircle kernel

    .. math::

       \phi(z) = \exp\left( \beta \left( \sqrt{1 - c z^{2}} - 1 \right) \right) 1_{[-w/2, w/2]}(z),

    with :math:`c = 4 / w^{2}`. `z` is measured in fine-grid cells.
    """

    width: int
    beta: float
    c: float
    upsampfac: float


def derive_kernel(
    eps: float,
    upsampfac: float = 2.0,
    dtype: np.dtype = np.float64,
) -> KernelSpec:
    """
    Choose kernel parameters achieving relative accuracy `eps`.

    Parameters
    ----------
    eps: float
        Target relative accuracy in ]0, 1[.
        Values below the machine precision of `dtype` are clamped, with a warning.
    upsampfac: float
        Fine-grid upsampling factor, > 1.
    dtype: float/complex
        Working precision.

    Returns
    -------
    spec: KernelSpec
    """
    eps = float(eps)
    if not (math.isfinite(eps) and (0 < eps < 1)):
        raise ntk_error.ConfigurationError("eps", eps, "must lie in ]0, 1[.")
    upsampfac = float(upsampfac)
    if not (math.isfinite(upsampfac) and (upsampfac > 1)):
        raise ntk_error.ConfigurationError("upsampfac", upsampfac, "must be > 1.")

    fdtype = ntk_util.TranslateDType(dtype).to_float()
    eps_min = float(np.finfo(fdtype).eps)
    if eps < eps_min:
        msg = f"eps={eps:.3e} is below {fdtype} machine precision: clamped to {eps_min:.3e}."
        warnings.warn(msg)
        eps = eps_min

    if upsampfac == 2:
        width = math.ceil(-math.log10(eps / 10))
    else:
        width = math.ceil(-math.log(eps) / (math.pi * math.sqrt(1 - 1 / upsampfac)))
    width = max(2, width)
    if width > MAX_WIDTH:
        msg = f"eps={eps:.3e} requires a kernel of width {width}: clamped to {MAX_WIDTH}, accuracy will be lower."
        warnings.warn(msg)
        width = MAX_WIDTH

    if upsampfac == 2:
        # Tuned shape ratios at the narrowest widths.
        ratio = {2: 2.20, 3: 2.26, 4: 2.38}.get(width, 2.30)
    else:
        ratio = 0.97 * math.pi * (1 - 1 / (2 * upsampfac))

    spec = KernelSpec(
        width=int(width),
        beta=float(ratio * width),
        c=float(4 / width**2),
        upsampfac=upsampfac,
    )
    logger.debug("kernel: eps=%.3e, upsampfac=%g -> %s", eps, upsampfac, spec)
    return spec


def evaluate_kernel(z: np.ndarray, spec: KernelSpec) -> np.ndarray:
    """
    Evaluate the kernel at offsets `z` [grid cells].

    Values outside [-w/2, w/2] are 0. The output has the float dtype of `z`.
    """
    z = np.asarray(z)
    if z.dtype.kind not in "f":
        z = z.astype(np.double)

    arg = 1 - spec.c * (z**2)
    y = np.zeros_like(z)
    mask = arg >= 0
    y[mask] = np.exp(spec.beta * (np.sqrt(arg[mask]) - 1))
    return y


class Kernel:
    r"""
    Finite-support function :math:`f: \bR \to \bR`.
    """

    def support(self) -> float:
        r"""
        Function support.

        Returns
        -------
        s: float
            Value such that `f(x) = 0` for all `x \notin [-s, s]`.
        """
        raise NotImplementedError

    def __call__(self, x: np.ndarray) -> np.ndarray:
        """
        Compute `f(x)`.

        Must accept FP32/FP64 inputs.
        """
        raise NotImplementedError


class ExpSemicircle(Kernel):
    r"""
    Exponential of semicircle ("ES") pulse, in grid-cell units.

    f(x) = \exp(\beta * (\sqrt[ 1 - c x**2 ] - 1))
           1_{[-w/2, w/2]}(x)
    """

    def __init__(self, spec: KernelSpec):
        assert spec.width >= 2
        assert spec.beta > 0
        self._spec = spec

    @property
    def spec(self) -> KernelSpec:
        return self._spec

    def support(self) -> float:
        return self._spec.width / 2

    def __call__(self, x: np.ndarray) -> np.ndarray:
        return evaluate_kernel(x, self._spec)

    @classmethod
    def from_eps(cls, eps: float, upsampfac: float = 2.0, dtype: np.dtype = np.float64):
        """
        Create instance from a target relative accuracy.
        """
        spec = derive_kernel(eps, upsampfac, dtype)
        return cls(spec)


class PPoly(Kernel):
    r"""
    Piecewise-Polynomial pulse.

    For functions f: [-s, s] -> R:
        f(x) = \sum_{n=0...N} w[b, n] r**n
           b = int((x + s) / pitch)            # bin index
           r = 2 * ((x + s) / pitch - b) - 1   # local coordinate in [-1, 1]
           all bins lie in [-s, s]

    w = (B, N+1) polynomial coefficients. (B bins, order-N segments)
    """

    def __init__(
        self,
        weight: np.ndarray,
        pitch: float,
    ):
        """
        Parameters
        ----------
        weight: ndarray
            (B, N+1) coefficients encoding a B-piecewise polynomial of order N.

            Coefficients are ordered in decreasing powers (aN,...,a0).
        pitch: float
            Width of each bin.
        """
        assert weight.ndim == 2
        self._weight = np.require(weight, dtype=np.double, requirements="C")
        assert pitch > 0
        self._pitch = float(pitch)

    @property
    def weight(self) -> np.ndarray:
        return self._weight

    def support(self) -> float:
        B = self._weight.shape[0]
        s = B * self._pitch / 2
        return float(s)

    def __call__(self, x: np.ndarray) -> np.ndarray:
        x = np.asarray(x)
        if x.dtype.kind not in "f":
            x = x.astype(np.double)
        B, N1 = self._weight.shape
        s = self.support()

        t = (x + s) / self._pitch
        mask = (0 <= t) & (t <= B)
        b = np.clip(np.floor(t), 0, B - 1).astype(int)
        r = 2 * (t - b) - 1

        y = np.zeros(x.shape, dtype=np.double)
        for n in range(N1):
            y = y * r + self._weight[b, n]
        y[~mask] = 0
        return y.astype(x.dtype)

    @classmethod
    def fit_kernel(
        cls,
        kern: Kernel,
        B: int,
        N: int,
    ):
        """
        Find (weight, pitch) pair which best approximates a given kernel.

        Each bin is fitted by least-squares on Chebyshev nodes of its local coordinate.

        Parameters
        ----------
        kern: Kernel
            Function to approximate.
        B: int
            Number of piecewise bins.
        N: int
            Polynomial order.

        Returns
        -------
        weight: ndarray
            (B, N+1) coefficients encoding a B-piecewise polynomial of order N.

            Coefficients are ordered in decreasing powers (aN,...,a0).
        pitch: float
            Width of each bin.
        """
        assert B >= 1
        assert N >= 0

        pitch = 2 * kern.support() / B
        bin_bound = np.linspace(-kern.support(), kern.support(), B + 1)

        K = 2 * (N + 1)  # over-sampled fit
        r = np.cos(np.pi * (np.arange(K) + 0.5) / K)  # local coordinates
        A = r.reshape(-1, 1) ** np.arange(N, -1, -1)  # (K, N+1)
        weight = np.zeros((B, N + 1))
        for b in range(B):
            y = kern(bin_bound[b] + (r + 1) * (pitch / 2))
            weight[b], *_ = spl.lstsq(A, y)

        return weight, pitch

    @classmethod
    def from_kernel(
        cls,
        kern: Kernel,
        B: int,
        N: int,
    ):
        """
        Create instance by approximating a kernel.

        Parameters
        ----------
        kern: Kernel
            Function to approximate.
        B: int
            Number of piecewise bins.
        N: int
            Polynomial order.
        """
        w, p = cls.fit_kernel(kern, B, N)
        return cls(w, p)

    @classmethod
    def from_spec(cls, spec: KernelSpec):
        """
        Piecewise-polynomial surrogate of the ES kernel: one bin per grid cell, order (width + 3).

        Instances are cached per `spec`.
        """
        return _ppoly_from_spec(spec)


@functools.lru_cache(maxsize=32)
def _ppoly_from_spec(spec: KernelSpec) -> PPoly:
    kern = PPoly.from_kernel(
        KERNEL_FAMILY["es"](spec),
        B=spec.width,
        N=spec.width + 3,
    )
    kern.weight.setflags(write=False)
    return kern


KERNEL_FAMILY = {
    "es": ExpSemicircle,
}


@nb.jit(**ntk_numba._nb_flags)
def kernel_row(u, width, beta, c, horner, coeffs, ker):
    # Evaluate the kernel footprint of one point along one axis.
    #
    # Parameters
    # ----------
    # u: float
    #     Grid coordinate in [0, N).
    # width, beta, c: int, float, float
    #     Kernel parameters.
    # horner: bool
    #     Use piecewise-polynomial coefficients instead of exp/sqrt.
    # coeffs: ndarray[float]
    #     (width, P) coefficients in decreasing powers. (Ignored if `horner=False`.)
    # ker: ndarray[float]
    #     (width,) output buffer: ker[i] = phi(l0 + i - u).
    #
    # Returns
    # -------
    # l0: int
    #     Leftmost (un-wrapped) grid index of the footprint.
    l0 = math.ceil(u - 0.5 * width)
    t = l0 - u  # in [-w/2, -w/2 + 1[
    if horner:
        r = 2.0 * t + width - 1.0
        P = coeffs.shape[1]
        for i in range(width):
            acc = 0.0
            for n in range(P):
                acc = acc * r + coeffs[i, n]
            ker[i] = acc
    else:
        for i in range(width):
            z = t + i
            arg = 1.0 - c * z * z
            if arg >= 0.0:
                ker[i] = math.exp(beta * (math.sqrt(arg) - 1.0))
            else:
                ker[i] = 0.0
    return l0


def kernel_ft(xi: np.ndarray, spec: KernelSpec, chunk: int = 4096) -> np.ndarray:
    r"""
    Continuous Fourier transform of the kernel.

    .. math::

       \hat{\phi}(\xi) = \int_{-w/2}^{w/2} \phi(z) \cos(\xi z) dz,

    computed with Gauss-Legendre quadrature.

    Parameters
    ----------
    xi: ndarray[float]
        (...,) frequencies [rad/cell].
    spec: KernelSpec
    chunk: int
        Frequencies processed per block. (Bounds the (chunk, Q) cosine table.)

    Returns
    -------
    phiF: ndarray[float64]
        (...,) transform values.
    """
    Q = 2 * (2 + int(1.5 * spec.width))
    t, wq = sps.roots_legendre(Q)
    J2 = spec.width / 2
    z = J2 * t
    fq = (J2 * wq) * evaluate_kernel(z, spec)  # (Q,)

    xi = np.asarray(xi, dtype=np.double)
    sh = xi.shape
    xi = xi.reshape(-1)
    phiF = np.zeros(xi.size, dtype=np.double)
    for a in range(0, xi.size, chunk):
        b = min(a + chunk, xi.size)
        phiF[a:b] = np.cos(np.multiply.outer(xi[a:b], z)) @ fq
    return phiF.reshape(sh)


def check_positive(phiF: np.ndarray, xi: np.ndarray, spec: KernelSpec):
    """
    Raise NumericalDegeneracyError if the kernel transform vanishes (or is invalid) at some frequency.
    """
    bad = ~(np.isfinite(phiF) & (phiF > 0))
    if np.any(bad):
        i = np.flatnonzero(bad.reshape(-1))[0]
        _xi = float(np.asarray(xi).reshape(-1)[i])
        msg = " ".join(
            [
                f"kernel Fourier transform is {phiF.reshape(-1)[i]:.3e} at xi={_xi:.4g}:",
                f"cannot de-convolve (width={spec.width}, upsampfac={spec.upsampfac}).",
            ]
        )
        raise ntk_error.NumericalDegeneracyError("beta", spec.beta, msg)


def mode_indices(N: int, modeord: int) -> np.ndarray:
    """
    Integer frequencies of `N` modes, in output order.

    Parameters
    ----------
    N: int
        Mode count.
    modeord: 0, 1
        * 0: centered, i.e. -N//2, ..., (N-1)//2.
        * 1: FFT order, i.e. 0, 1, ..., (N-1)//2, -N//2, ..., -1.

    Returns
    -------
    k: ndarray[int]
        (N,) frequencies.
    """
    if modeord == 0:
        k = np.arange(-(N // 2), (N - 1) // 2 + 1)
    else:
        k = np.r_[np.arange(0, (N - 1) // 2 + 1), np.arange(-(N // 2), 0)]
    return k


@functools.lru_cache(maxsize=128)
def _correction_1d(
    spec: KernelSpec,
    nf: int,
    N: int,
    modeord: int,
) -> np.ndarray:
    k = mode_indices(N, modeord)
    xi = 2 * np.pi * k / nf
    phiF = kernel_ft(xi, spec)
    check_positive(phiF, xi, spec)

    corr = 1 / phiF
    corr.setflags(write=False)
    return corr


def correction_table(
    spec: KernelSpec,
    nf: tuple[int],
    N: tuple[int],
    modeord: int,
) -> tuple[np.ndarray]:
    """
    Per-axis deconvolution factors 1 / phiF(2 pi k / nf), for modes `k` in output order.

    Tables are cached and read-only.

    Parameters
    ----------
    spec: KernelSpec
    nf: tuple[int]
        (D,) fine-grid sizes.
    N: tuple[int]
        (D,) mode counts.
    modeord: 0, 1

    Returns
    -------
    corr: tuple[ndarray[float64]]
        (N1,), ..., (ND,) factors.
    """
    corr = tuple(_correction_1d(spec, int(_nf), int(_N), int(modeord)) for (_nf, _N) in zip(nf, N))
    return corr
