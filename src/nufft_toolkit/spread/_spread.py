import collections
import concurrent.futures as cf
import logging
import time

import numba as nb
import numpy as np

import nufft_toolkit.cluster as ntk_cluster
import nufft_toolkit.config as ntk_config
import nufft_toolkit.error as ntk_error
import nufft_toolkit.kernel as ntk_kernel
import nufft_toolkit.numba as ntk_numba
import nufft_toolkit.util as ntk_util

__all__ = [
    "Spreader",
    "as_points",
    "check_points",
    "fold",
    "interpolate",
    "spread",
]

logger = logging.getLogger(__name__)

_kernel_row = ntk_kernel.kernel_row


class Spreader:
    r"""
    Multi-dimensional periodic convolution sampled on a uniform lattice.

    Given the Dirac stream

    .. math::

       f(\bbz) = \sum_{m} c_{m} \delta(\bbz - \bbx_{m}),

    computes samples of :math:`g = f \conv \psi` on the :math:`2\pi`-periodic lattice
    :math:`\bbz_{\bbl} = 2\pi \bbl / \bbn`, i.e.,

    .. math::

       g[\bbl] = \sum_{m} c_{m} \psi(\bbl - \bbu_{m}),
       \qquad
       \bbu_{m} = \bbn \odot \frac{\bbx_{m}}{2\pi} \mod \bbn,

    where :math:`\psi(\bbz) = \prod_{d} \phi(z_{d})` is the separable ES kernel (in grid units) and
    :math:`\bbl` wraps periodically. (:py:meth:`~Spreader.spread`.)

    The adjoint operation samples the convolution at the points. (:py:meth:`~Spreader.interpolate`.)

    Along each axis, a point's footprint starts at grid index :math:`l_{0} = \lceil u - w/2 \rceil` and covers
    :math:`w` consecutive cells.

    Points are partitioned into subproblems (see :py:func:`~nufft_toolkit.cluster.sort_points`).
    Each subproblem is spread onto a private sub-grid by a thread pool, then sub-grids are added to the
    global grid in subproblem order: results do not depend on the thread count.
    """

    def __init__(
        self,
        x: np.ndarray,
        grid_shape: tuple[int],
        kernel: ntk_kernel.KernelSpec,
        **kwargs,
    ):
        r"""
        Parameters
        ----------
        x: ndarray[float]
            (M, D) points :math:`\bbx_{m} \in [-3\pi, 3\pi]^{D}`. (M,) arrays are accepted if D=1.
        grid_shape: tuple[int]
            (D,) lattice size :math:`\{ n_{1},\ldots,n_{D} \}`. Each must be >= kernel width.
        kernel: KernelSpec
            Spreading kernel parameters.
        kwargs: dict
            Runtime options. (See :py:data:`~nufft_toolkit.config.DEFAULTS`.)
            Only the following are used:

            * kernel_eval: "direct" or "horner"
            * nthreads: int
            * spread_sort: 0, 1, 2
            * bin_size: int or (D,) ints
            * max_subproblem_size: int
            * chkbnds: bool
        """
        x = as_points(x)
        M, D = x.shape

        try:
            N = ntk_util.broadcast_seq(grid_shape, D, int)
        except (AssertionError, TypeError, ValueError):
            raise ntk_error.ConfigurationError("grid_shape", grid_shape, f"must be an int or {D}-tuple of ints.")
        if any(n < kernel.width for n in N):
            raise ntk_error.ConfigurationError(
                "grid_shape",
                N,
                f"every axis must be >= kernel width {kernel.width}.",
            )
        N = np.array(N, dtype=np.int64)

        opts = ntk_config.resolve_options(D, **kwargs)
        check_points(x, opts.chkbnds)

        # Fold, then group points into subproblems.
        u = fold(x, N)  # (M, D)
        if opts.spread_sort == 2:
            sort = (D > 1) or (M > N.prod() / 10)
        else:
            sort = bool(opts.spread_sort)
        index = ntk_cluster.sort_points(
            u,
            N,
            sort=sort,
            bin_dim=opts.bin_size,
            N_max=opts.max_subproblem_size,
        )
        u = np.require(u[index.x_idx], requirements="C")  # sorted

        # Sub-grid placement of each subproblem.
        Q = len(index.bound) - 1
        if Q > 0:
            u_min, u_max = ntk_numba.group_minmax(u, index.bound)  # (Q, D)
            half = kernel.width / 2
            sub_off = np.ceil(u_min - half).astype(np.int64)
            sub_num = np.ceil(u_max - half).astype(np.int64) - sub_off + kernel.width
        else:
            sub_off = np.zeros((0, D), dtype=np.int64)
            sub_num = np.zeros((0, D), dtype=np.int64)

        if opts.kernel_eval == "horner":
            coeffs = ntk_kernel.PPoly.from_spec(kernel).weight
        else:
            coeffs = np.zeros((1, 1))  # unused

        self.cfg = ntk_util.as_namedtuple(
            M=M,
            D=D,
            N=N,
            # -------------------------
            kernel=kernel,
            horner=(opts.kernel_eval == "horner"),
            coeffs=coeffs,
            # -------------------------
            u=u,
            x_idx=index.x_idx,
            bound=index.bound,
            sub_off=sub_off,
            sub_num=sub_num,
            sorted=sort,
            # -------------------------
            nthreads=opts.nthreads,
            max_subproblem_size=opts.max_subproblem_size,
        )
        logger.debug(
            "spreader: M=%d, grid=%s, width=%d, sorted=%s, %d subproblem(s), eval=%s",
            M,
            tuple(N),
            kernel.width,
            sort,
            Q,
            opts.kernel_eval,
        )

    def spread(self, c: np.ndarray) -> np.ndarray:
        r"""
        Parameters
        ----------
        c: ndarray[float/complex]
            (..., M) strengths :math:`c_{m} \in \bC`.

        Returns
        -------
        g: ndarray[complex]
            (..., n1,...,nD) lattice samples :math:`g[\bbl] \in \bC`.
        """
        c = np.asarray(c)
        M, D, N = self.cfg.M, self.cfg.D, self.cfg.N
        if (c.ndim == 0) or (c.shape[-1] != M):
            raise ntk_error.ConfigurationError("c", c.shape, f"last axis must have length M={M}.")
        cdtype = ntk_util.TranslateDType(c.dtype).to_complex()

        # re-order/shape c
        sh = c.shape[:-1]  # (...,)
        Ns = int(np.prod(sh))
        c = c.reshape(Ns, M)[:, self.cfg.x_idx].astype(cdtype)  # (Ns, M)

        g = ntk_util.alloc_zeros((Ns, *N), cdtype)

        # spread each subproblem onto its own sub-grid, then update the global grid in subproblem order.
        # At most `nthreads` sub-grids are alive at any time.
        t = time.perf_counter()
        Q = len(self.cfg.bound) - 1
        window = self.cfg.nthreads
        with cf.ThreadPoolExecutor(max_workers=self.cfg.nthreads) as executor:
            fs = collections.deque()
            for q in range(Q):
                if len(fs) == window:
                    self._merge(g, *fs.popleft())
                fs.append((q, executor.submit(self._spread_subproblem, c, q)))
            while fs:
                self._merge(g, *fs.popleft())
        logger.debug("spread: %d subproblem(s) in %.4f[s]", Q, time.perf_counter() - t)

        g = g.reshape(*sh, *N)
        return g

    def interpolate(self, g: np.ndarray) -> np.ndarray:
        r"""
        Parameters
        ----------
        g: ndarray[float/complex]
            (..., n1,...,nD) lattice samples :math:`g[\bbl] \in \bC`.

        Returns
        -------
        c: ndarray[complex]
            (..., M) values :math:`c_{m} = \sum_{\bbl} g[\bbl] \psi(\bbl - \bbu_{m})`.
        """
        g = np.asarray(g)
        M, D, N = self.cfg.M, self.cfg.D, self.cfg.N
        if (g.ndim < D) or (g.shape[g.ndim - D :] != tuple(N)):
            raise ntk_error.ConfigurationError("g", g.shape, f"trailing axes must be {tuple(N)}.")
        cdtype = ntk_util.TranslateDType(g.dtype).to_complex()

        # re-shape g
        sh = g.shape[: g.ndim - D]  # (...,)
        Ns = int(np.prod(sh))
        g = np.require(g.reshape(Ns, *N), dtype=cdtype, requirements="C")

        c = ntk_util.alloc_zeros((Ns, M), cdtype)
        if M > 0:
            # split (sorted) points into chunks
            n_chunk = min(M, max(self.cfg.nthreads, int(np.ceil(M / self.cfg.max_subproblem_size))))
            bound = np.linspace(0, M, n_chunk + 1).round().astype(np.int64)

            t = time.perf_counter()
            with cf.ThreadPoolExecutor(max_workers=self.cfg.nthreads) as executor:
                fs = [executor.submit(self._interpolate_chunk, g, a, b) for (a, b) in zip(bound[:-1], bound[1:])]

            # update global support
            for a, b, future in zip(bound[:-1], bound[1:], fs):
                c[:, self.cfg.x_idx[a:b]] = future.result()
            logger.debug("interpolate: %d chunk(s) in %.4f[s]", n_chunk, time.perf_counter() - t)

        c = c.reshape(*sh, M)
        return c

    # Helper routines (internal) ----------------------------------------------
    def _kernel_args(self) -> tuple:
        k = self.cfg.kernel
        return (k.width, k.beta, k.c, self.cfg.horner, self.cfg.coeffs)

    def _spread_subproblem(self, c: np.ndarray, q: int) -> np.ndarray:
        # Spread the q-th subproblem onto its (un-wrapped) sub-grid.
        a, b = self.cfg.bound[q : q + 2]
        Ns = c.shape[0]
        g_q = ntk_util.alloc_zeros((Ns, *self.cfg.sub_num[q]), c.dtype)
        _spread[self.cfg.D](
            self.cfg.u[a:b],
            np.ascontiguousarray(c[:, a:b]),
            self.cfg.sub_off[q],
            *self._kernel_args(),
            g_q,
        )
        return g_q

    def _merge(self, g: np.ndarray, q: int, future: cf.Future):
        # Add the q-th sub-grid to the global grid, wrapping periodically.
        D, N = self.cfg.D, self.cfg.N
        idx = [(self.cfg.sub_off[q, d] + np.arange(self.cfg.sub_num[q, d])) % N[d] for d in range(D)]
        _add_wrapped[D](g, future.result(), *idx)

    def _interpolate_chunk(self, g: np.ndarray, a: int, b: int) -> np.ndarray:
        Ns = g.shape[0]
        c_q = ntk_util.alloc_zeros((Ns, b - a), g.dtype)
        _interpolate[self.cfg.D](
            self.cfg.u[a:b],
            g,
            *self._kernel_args(),
            c_q,
        )
        return c_q


def spread(
    x: np.ndarray,
    c: np.ndarray,
    grid_shape: tuple[int],
    kernel: ntk_kernel.KernelSpec,
    **kwargs,
) -> np.ndarray:
    """
    One-shot :py:meth:`Spreader.spread`.
    """
    op = Spreader(x, grid_shape, kernel, **kwargs)
    return op.spread(c)


def interpolate(
    x: np.ndarray,
    g: np.ndarray,
    kernel: ntk_kernel.KernelSpec,
    **kwargs,
) -> np.ndarray:
    """
    One-shot :py:meth:`Spreader.interpolate`.

    The grid shape is inferred from the trailing axes of `g`.
    """
    x = as_points(x)
    D = x.shape[1]
    g = np.asarray(g)
    if g.ndim < D:
        raise ntk_error.ConfigurationError("g", g.shape, f"must have at least {D} axes.")
    op = Spreader(x, g.shape[g.ndim - D :], kernel, **kwargs)
    return op.interpolate(g)


def fold(x: np.ndarray, N: np.ndarray) -> np.ndarray:
    """
    Map 2pi-periodic coordinates to grid units in [0, N).

    Parameters
    ----------
    x: ndarray[float]
        (M, D) coordinates.
    N: ndarray[int]
        (D,) grid size.

    Returns
    -------
    u: ndarray[float64]
        (M, D) grid coordinates.
    """
    u = np.array(x, dtype=np.double) / (2 * np.pi)
    u -= np.floor(u)
    u *= N
    u = np.where(u >= N, u - N, u)  # frac() may round up to 1
    return u


def check_points(x: np.ndarray, chkbnds: bool):
    """
    Reject non-finite coordinates, and (if `chkbnds`) coordinates outside [-3pi, 3pi].
    """
    bad = ~np.isfinite(x)
    if np.any(bad):
        value = x.reshape(-1)[np.flatnonzero(bad.reshape(-1))[0]]
        raise ntk_error.ConfigurationError("x", float(value), "coordinates must be finite.")
    if chkbnds:
        bad = np.abs(x) > 3 * np.pi
        if np.any(bad):
            value = x.reshape(-1)[np.flatnonzero(bad.reshape(-1))[0]]
            raise ntk_error.ConfigurationError(
                "x",
                float(value),
                "coordinate outside [-3pi, 3pi]: set chkbnds=False to fold arbitrary coordinates.",
            )


def as_points(x: np.ndarray) -> np.ndarray:
    # Canonical (M, D) float64 view of coordinates.
    x = np.asarray(x)
    if x.ndim == 1:
        x = x[:, np.newaxis]
    if x.ndim != 2:
        raise ntk_error.ConfigurationError("x", x.shape, "must be (M,) or (M, D).")
    if x.dtype.kind not in "iuf":
        raise ntk_error.ConfigurationError("x", x.dtype, "coordinates must be real-valued.")
    M, D = x.shape
    if D not in (1, 2, 3):
        raise ntk_error.ConfigurationError("D", D, "must be 1, 2 or 3.")
    x = np.require(x, dtype=np.double, requirements="C")
    return x


# Numba kernels ---------------------------------------------------------------
#
# Spread:      g[s, l - off] += c[s, m] * psi(l - u[m])     (un-wrapped sub-grid)
# Interpolate: c[s, m] = \sum_{l} g[s, l mod N] * psi(l - u[m])
# Add:         g[s, idx0[i], ...] += g_q[s, i, ...]
@nb.jit(**ntk_numba._nb_flags)
def _spread_1d(u, c, off, width, beta, kc, horner, coeffs, g):
    Ns, M = c.shape
    ker0 = np.empty(width)
    for m in range(M):
        l0 = _kernel_row(u[m, 0], width, beta, kc, horner, coeffs, ker0) - off[0]
        for s in range(Ns):
            cm = c[s, m]
            for i in range(width):
                g[s, l0 + i] += cm * ker0[i]


@nb.jit(**ntk_numba._nb_flags)
def _spread_2d(u, c, off, width, beta, kc, horner, coeffs, g):
    Ns, M = c.shape
    ker0 = np.empty(width)
    ker1 = np.empty(width)
    for m in range(M):
        l0 = _kernel_row(u[m, 0], width, beta, kc, horner, coeffs, ker0) - off[0]
        l1 = _kernel_row(u[m, 1], width, beta, kc, horner, coeffs, ker1) - off[1]
        for s in range(Ns):
            cm = c[s, m]
            for i in range(width):
                ci = cm * ker0[i]
                for j in range(width):
                    g[s, l0 + i, l1 + j] += ci * ker1[j]


@nb.jit(**ntk_numba._nb_flags)
def _spread_3d(u, c, off, width, beta, kc, horner, coeffs, g):
    Ns, M = c.shape
    ker0 = np.empty(width)
    ker1 = np.empty(width)
    ker2 = np.empty(width)
    for m in range(M):
        l0 = _kernel_row(u[m, 0], width, beta, kc, horner, coeffs, ker0) - off[0]
        l1 = _kernel_row(u[m, 1], width, beta, kc, horner, coeffs, ker1) - off[1]
        l2 = _kernel_row(u[m, 2], width, beta, kc, horner, coeffs, ker2) - off[2]
        for s in range(Ns):
            cm = c[s, m]
            for i in range(width):
                ci = cm * ker0[i]
                for j in range(width):
                    cij = ci * ker1[j]
                    for k in range(width):
                        g[s, l0 + i, l1 + j, l2 + k] += cij * ker2[k]


@nb.jit(**ntk_numba._nb_flags)
def _wrap(l, N):
    # Single-period wrap: valid for l in [-N, 2N[.
    if l < 0:
        return l + N
    elif l >= N:
        return l - N
    else:
        return l


@nb.jit(**ntk_numba._nb_flags)
def _interpolate_1d(u, g, width, beta, kc, horner, coeffs, c):
    Ns, N0 = g.shape
    M = u.shape[0]
    ker0 = np.empty(width)
    idx0 = np.empty(width, dtype=np.int64)
    for m in range(M):
        l0 = _kernel_row(u[m, 0], width, beta, kc, horner, coeffs, ker0)
        for i in range(width):
            idx0[i] = _wrap(l0 + i, N0)
        for s in range(Ns):
            acc = 0j
            for i in range(width):
                acc += g[s, idx0[i]] * ker0[i]
            c[s, m] = acc


@nb.jit(**ntk_numba._nb_flags)
def _interpolate_2d(u, g, width, beta, kc, horner, coeffs, c):
    Ns, N0, N1 = g.shape
    M = u.shape[0]
    ker0 = np.empty(width)
    ker1 = np.empty(width)
    idx0 = np.empty(width, dtype=np.int64)
    idx1 = np.empty(width, dtype=np.int64)
    for m in range(M):
        l0 = _kernel_row(u[m, 0], width, beta, kc, horner, coeffs, ker0)
        l1 = _kernel_row(u[m, 1], width, beta, kc, horner, coeffs, ker1)
        for i in range(width):
            idx0[i] = _wrap(l0 + i, N0)
            idx1[i] = _wrap(l1 + i, N1)
        for s in range(Ns):
            acc = 0j
            for i in range(width):
                acc_i = 0j
                for j in range(width):
                    acc_i += g[s, idx0[i], idx1[j]] * ker1[j]
                acc += acc_i * ker0[i]
            c[s, m] = acc


@nb.jit(**ntk_numba._nb_flags)
def _interpolate_3d(u, g, width, beta, kc, horner, coeffs, c):
    Ns, N0, N1, N2 = g.shape
    M = u.shape[0]
    ker0 = np.empty(width)
    ker1 = np.empty(width)
    ker2 = np.empty(width)
    idx0 = np.empty(width, dtype=np.int64)
    idx1 = np.empty(width, dtype=np.int64)
    idx2 = np.empty(width, dtype=np.int64)
    for m in range(M):
        l0 = _kernel_row(u[m, 0], width, beta, kc, horner, coeffs, ker0)
        l1 = _kernel_row(u[m, 1], width, beta, kc, horner, coeffs, ker1)
        l2 = _kernel_row(u[m, 2], width, beta, kc, horner, coeffs, ker2)
        for i in range(width):
            idx0[i] = _wrap(l0 + i, N0)
            idx1[i] = _wrap(l1 + i, N1)
            idx2[i] = _wrap(l2 + i, N2)
        for s in range(Ns):
            acc = 0j
            for i in range(width):
                acc_i = 0j
                for j in range(width):
                    acc_ij = 0j
                    for k in range(width):
                        acc_ij += g[s, idx0[i], idx1[j], idx2[k]] * ker2[k]
                    acc_i += acc_ij * ker1[j]
                acc += acc_i * ker0[i]
            c[s, m] = acc


@nb.jit(**ntk_numba._nb_flags)
def _add_wrapped_1d(g, g_q, idx0):
    Ns, S0 = g_q.shape
    for s in range(Ns):
        for i in range(S0):
            g[s, idx0[i]] += g_q[s, i]


@nb.jit(**ntk_numba._nb_flags)
def _add_wrapped_2d(g, g_q, idx0, idx1):
    Ns, S0, S1 = g_q.shape
    for s in range(Ns):
        for i in range(S0):
            gi = idx0[i]
            for j in range(S1):
                g[s, gi, idx1[j]] += g_q[s, i, j]


@nb.jit(**ntk_numba._nb_flags)
def _add_wrapped_3d(g, g_q, idx0, idx1, idx2):
    Ns, S0, S1, S2 = g_q.shape
    for s in range(Ns):
        for i in range(S0):
            gi = idx0[i]
            for j in range(S1):
                gj = idx1[j]
                for k in range(S2):
                    g[s, gi, gj, idx2[k]] += g_q[s, i, j, k]


_spread = {1: _spread_1d, 2: _spread_2d, 3: _spread_3d}
_interpolate = {1: _interpolate_1d, 2: _interpolate_2d, 3: _interpolate_3d}
_add_wrapped = {1: _add_wrapped_1d, 2: _add_wrapped_2d, 3: _add_wrapped_3d}
