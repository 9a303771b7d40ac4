# Runtime options shared by the transforms and the spreader.

import math
import os

import numpy as np

import nufft_toolkit.error as ntk_error
import nufft_toolkit.util as ntk_util

__all__ = [
    "DEFAULTS",
    "MAX_GRID",
    "default_nthreads",
    "resolve_options",
    "spreader_kwargs",
]

MAX_GRID = int(1e11)  # max fine-grid cell count

# Default per-axis bin sizes (in grid cells) used to sort points before spreading.
_bin_size_default = {
    1: 128,
    2: 32,
    3: 16,
}

DEFAULTS = dict(
    # Accuracy-related ------------
    eps=1e-6,
    upsampfac=2.0,
    kernel_eval="direct",
    # Output layout ---------------
    modeord=0,
    # Runtime behavior ------------
    nthreads=0,
    spread_sort=2,
    bin_size=None,
    max_subproblem_size=10_000,
    chkbnds=True,
    fft_backend="ducc",
)


def default_nthreads() -> int:
    """
    Thread count used when `nthreads=0`.

    The environment variable ``NUFFT_TOOLKIT_NTHREADS`` takes precedence over the core count.
    """
    env = os.getenv("NUFFT_TOOLKIT_NTHREADS")
    if env is not None:
        try:
            n = int(env)
        except ValueError:
            raise ntk_error.ConfigurationError("NUFFT_TOOLKIT_NTHREADS", env, "must be an integer.")
        if n < 1:
            raise ntk_error.ConfigurationError("NUFFT_TOOLKIT_NTHREADS", env, "must be >= 1.")
    else:
        n = os.cpu_count() or 1
    return n


def resolve_options(D: int, **kwargs):
    """
    Merge user options with `DEFAULTS` and validate them.

    Parameters
    ----------
    D: int
        Transform dimensionality.
    kwargs: dict
        User-provided options. Unknown keys are rejected.

    Returns
    -------
    opts: namedtuple
        Normalized options, with fields:

        * eps: float
        * upsampfac: float
        * kernel_eval: str
        * modeord: int
        * nthreads: int
        * spread_sort: int
        * bin_size: (D,) int
        * max_subproblem_size: int
        * chkbnds: bool
        * fft_backend: str | FFT
    """
    unknown = set(kwargs) - set(DEFAULTS)
    if len(unknown) > 0:
        name = sorted(unknown)[0]
        raise ntk_error.ConfigurationError(name, kwargs[name], "unknown option.")

    p = DEFAULTS.copy()
    p.update(kwargs)

    try:
        eps = float(p["eps"])
    except (TypeError, ValueError):
        raise ntk_error.ConfigurationError("eps", p["eps"], "must be a float.")
    if not (math.isfinite(eps) and (0 < eps < 1)):
        raise ntk_error.ConfigurationError("eps", p["eps"], "must lie in ]0, 1[.")

    try:
        upsampfac = float(p["upsampfac"])
    except (TypeError, ValueError):
        raise ntk_error.ConfigurationError("upsampfac", p["upsampfac"], "must be a float.")
    if not (math.isfinite(upsampfac) and (upsampfac > 1)):
        raise ntk_error.ConfigurationError("upsampfac", p["upsampfac"], "must be > 1.")

    kernel_eval = str(p["kernel_eval"]).strip().lower()
    if kernel_eval not in ("direct", "horner"):
        raise ntk_error.ConfigurationError("kernel_eval", p["kernel_eval"], "must be one of {direct, horner}.")

    modeord = p["modeord"]
    if (not _is_int(modeord)) or (modeord not in (0, 1)):
        raise ntk_error.ConfigurationError("modeord", modeord, "must be 0 (CMCL) or 1 (FFT).")

    nthreads = p["nthreads"]
    if (not _is_int(nthreads)) or (nthreads < 0):
        raise ntk_error.ConfigurationError("nthreads", nthreads, "must be a non-negative integer.")
    nthreads = int(nthreads) if (nthreads > 0) else default_nthreads()

    spread_sort = p["spread_sort"]
    if (not _is_int(spread_sort)) or (spread_sort not in (0, 1, 2)):
        raise ntk_error.ConfigurationError("spread_sort", spread_sort, "must be 0, 1 or 2.")

    bin_size = p["bin_size"]
    if bin_size is None:
        bin_size = _bin_size_default.get(D, 16)
    try:
        bin_size = ntk_util.broadcast_seq(bin_size, D, int)
    except (AssertionError, TypeError, ValueError):
        raise ntk_error.ConfigurationError("bin_size", p["bin_size"], f"must be an int or {D}-tuple of ints.")
    if any(b < 1 for b in bin_size):
        raise ntk_error.ConfigurationError("bin_size", p["bin_size"], "must be >= 1.")

    max_subproblem_size = p["max_subproblem_size"]
    if (not _is_int(max_subproblem_size)) or (max_subproblem_size < 1):
        raise ntk_error.ConfigurationError("max_subproblem_size", max_subproblem_size, "must be >= 1.")

    fft_backend = p["fft_backend"]
    if isinstance(fft_backend, str):
        fft_backend = fft_backend.strip().lower()
        if fft_backend not in ("ducc", "scipy"):
            raise ntk_error.ConfigurationError("fft_backend", p["fft_backend"], "must be one of {ducc, scipy}.")

    opts = ntk_util.as_namedtuple(
        # Accuracy-related ------------
        eps=eps,
        upsampfac=upsampfac,
        kernel_eval=kernel_eval,
        # Output layout ---------------
        modeord=int(modeord),
        # Runtime behavior ------------
        nthreads=nthreads,
        spread_sort=int(spread_sort),
        bin_size=np.array(bin_size, dtype=np.int64),
        max_subproblem_size=int(max_subproblem_size),
        chkbnds=bool(p["chkbnds"]),
        fft_backend=fft_backend,
    )
    return opts


def spreader_kwargs(opts) -> dict:
    """
    Subset of resolved options understood by :py:class:`~nufft_toolkit.spread.Spreader`.
    """
    kwargs = dict(
        kernel_eval=opts.kernel_eval,
        nthreads=opts.nthreads,
        spread_sort=opts.spread_sort,
        bin_size=tuple(opts.bin_size),
        max_subproblem_size=opts.max_subproblem_size,
        chkbnds=opts.chkbnds,
    )
    return kwargs


def _is_int(x) -> bool:
    # bool is a subclass of int, but never a valid count/flag value here.
    return isinstance(x, (int, np.integer)) and (not isinstance(x, (bool, np.bool_)))
