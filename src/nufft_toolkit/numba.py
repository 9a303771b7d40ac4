import numba as nb
import numba.types as nbt
import numpy as np

__all__ = [
    "bin_index",
    "count_sort",
    "group_minmax",
    "minmax",
]

_nb_flags = dict(
    nopython=True,
    nogil=True,
    cache=True,
    forceobj=False,
    # parallel=False,  # set manually per compiled func
    error_model="numpy",
    fastmath=True,
    locals={},
    boundscheck=False,
)

# integer types -----------------------
i_t = nbt.int64
i_1C_t = nbt.Array(i_t, 1, "C")
# 32-bit floating types ---------------
f32_t = nbt.float32
f32_1C_t = nbt.Array(f32_t, 1, "C")
f32_2C_t = nbt.Array(f32_t, 2, "C")
f32_2A_t = nbt.Array(f32_t, 2, "A")
# 64-bit floating types ---------------
f64_t = nbt.float64
f64_1C_t = nbt.Array(f64_t, 1, "C")
f64_2C_t = nbt.Array(f64_t, 2, "C")
f64_2A_t = nbt.Array(f64_t, 2, "A")


@nb.jit(
    [
        nbt.UniTuple(f32_1C_t, 2)(f32_2C_t),
        nbt.UniTuple(f64_1C_t, 2)(f64_2C_t),
        # row slices of C-contiguous arrays
        nbt.UniTuple(f32_1C_t, 2)(f32_2A_t),
        nbt.UniTuple(f64_1C_t, 2)(f64_2A_t),
    ],
    **_nb_flags,
    parallel=False,
)
def minmax(x: np.ndarray) -> tuple[np.ndarray]:
    # Computes code below more efficiently:
    #     (x.min(axis=0), x.max(axis=0))
    #
    # Parameters
    # ----------
    # x: ndarray[float]
    #     (M, D)
    #
    # Returns
    # -------
    # x_min, x_max: ndarray[float]
    #     (D,) axial min/max values
    M, D = x.shape
    x_min = np.full(D, fill_value=np.inf, dtype=x.dtype)
    x_max = np.full(D, fill_value=-np.inf, dtype=x.dtype)

    for m in range(M):
        for d in range(D):
            x_min[d] = min(x_min[d], x[m, d])
            x_max[d] = max(x_max[d], x[m, d])
    return x_min, x_max


@nb.jit(
    [
        nbt.UniTuple(f32_2C_t, 2)(f32_2C_t, i_1C_t),
        nbt.UniTuple(f64_2C_t, 2)(f64_2C_t, i_1C_t),
    ],
    **_nb_flags,
    parallel=True,
)
def group_minmax(
    x: np.ndarray,
    limits: np.ndarray,
) -> tuple[np.ndarray]:
    # Computes code below more efficiently:
    #     _, D = x.shape
    #     Q = len(limits) - 1
    #     x_min = np.empty((Q, D), dtype=x.dtype)
    #     x_max = np.empty((Q, D), dtype=x.dtype)
    #     for q in range(Q):
    #         _x = x[limits[q] : limits[q + 1], :]
    #         x_min[q,:], x_max[q,:] = minmax(_x)
    #
    # Parameters
    # ----------
    # x: ndarray[float]
    #     (M, D) points, already grouped.
    # limits: ndarray[int]
    #     (Q+1,) group start/stop indices
    #
    # Returns
    # -------
    # x_min, x_max: ndarray[float]
    #     (Q, D) axial min/max values per group
    _, D = x.shape
    Q = len(limits) - 1
    x_min = np.empty((Q, D), dtype=x.dtype)
    x_max = np.empty((Q, D), dtype=x.dtype)
    for q in nb.prange(Q):
        _x = x[limits[q] : limits[q + 1], :]
        x_min[q, :], x_max[q, :] = minmax(_x)
    return x_min, x_max


@nb.jit(
    i_1C_t(f64_2C_t, f64_1C_t, i_1C_t),
    **_nb_flags,
    parallel=True,
)
def bin_index(
    u: np.ndarray,
    bin_dim: np.ndarray,
    lattice_shape: np.ndarray,
) -> np.ndarray:
    # Computes code below more efficiently:
    #     cM_idx = np.minimum(
    #                  (u / bin_dim).astype(int),
    #                  lattice_shape - 1,
    #              )  # (M, D)
    #     c_idx = np.ravel_multi_index(cM_idx.T, lattice_shape)  # (M,)
    #
    # The bin lattice is anchored at grid index 0.
    #
    # Parameters
    # ----------
    # u: ndarray[float]
    #     (M, D) grid coordinates in [0, N).
    # bin_dim: ndarray[float]
    #     (D,) bin size, in grid cells.
    # lattice_shape: ndarray[int]
    #     (D,) bin count per dimension.
    #
    # Returns
    # -------
    # c_idx: ndarray[int]
    #     (M,) integer bins each element belongs to.
    M, D = u.shape

    # Compute (multi-index -> index) stride
    stride = np.ones(D, dtype=i_t)
    for d in range(D - 2, -1, -1):
        stride[d] = stride[d + 1] * lattice_shape[d + 1]

    c_idx = np.zeros(M, dtype=i_t)
    for m in nb.prange(M):
        for d in range(D):
            b = min(
                int(u[m, d] / bin_dim[d]),
                lattice_shape[d] - 1,
            )
            c_idx[m] += stride[d] * b

    return c_idx


@nb.jit(
    nbt.UniTuple(i_1C_t, 2)(i_1C_t, i_t),
    **_nb_flags,
    parallel=False,
)
def count_sort(
    x: np.ndarray,
    k: int,
) -> tuple[np.ndarray]:
    # Computes code below more efficiently:
    #     idx = np.argsort(x, kind="stable")
    #     _, count = np.unique(x, return_counts=True)
    #
    # Parameters
    # ----------
    # x: ndarray[int]
    #     (N,) non-negative integers in {0,...,max(x)}.
    # k: int
    #     Upper bound on values in `x`.
    #     Must satisfy `k > max(x)`.
    #
    # Returns
    # -------
    # count: ndarray[int]
    #     (Q,) counts of each element in `x`.
    # idx: ndarray[int]
    #     (N,) indices to sort `x` into ascending order.
    count = np.zeros(k, dtype=i_t)
    for _x in x:
        count[_x] += 1

    # Write-index for each category
    w_idx = np.zeros(k, dtype=i_t)
    w_idx[0] = 0
    w_idx[1:] = np.cumsum(count)[: k - 1]

    N = len(x)
    idx = np.zeros(N, dtype=i_t)
    for i, _x in enumerate(x):
        idx[w_idx[_x]] = i
        w_idx[_x] += 1

    # `count` contains zero entries -> trim to non-zero segments in-place
    i = 0
    for c in count:
        if c > 0:
            count[i] = c
            i += 1
    count = count[:i]

    return count, idx
