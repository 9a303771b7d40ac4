import typing as typ

import numpy as np

import nufft_toolkit.numba as ntk_numba

__all__ = [
    "SortedIndex",
    "bin_sort",
    "bisect_cluster",
    "sort_points",
]


class SortedIndex(typ.NamedTuple):
    """
    Point permutation and subproblem boundaries.

    ``x[x_idx][bound[q] : bound[q+1]]`` contains all points in the q-th subproblem.
    """

    x_idx: np.ndarray  # (M,) int
    bound: np.ndarray  # (Q+1,) int


def bin_sort(
    u: np.ndarray,
    N: np.ndarray,
    bin_dim: np.ndarray,
) -> tuple[np.ndarray]:
    """
    Split D-dimensional grid coordinates onto grid-aligned bins.
    Each bin may contain arbitrary-many points.

    Parameters
    ----------
    u: ndarray[float64]
        (M, D) grid coordinates in [0, N).
    N: ndarray[int]
        (D,) grid size.
    bin_dim: ndarray[int]
        (D,) bin size [grid cells].

    Returns
    -------
    x_idx: ndarray[int]
        (M,) indices that sort `u` along axis 0, bin after bin.
    cl_info: ndarray[int]
        (Q+1,) bin start/stop indices. (Only non-empty bins are listed.)

        ``u[x_idx][cl_info[q] : cl_info[q+1]]`` contains all points in the q-th bin.
    """
    M, D = u.shape
    idtype = np.int64
    N = np.array(N, dtype=idtype)
    bin_dim = np.array(bin_dim, dtype=idtype)
    assert (len(bin_dim) == D) and np.all(bin_dim > 0)

    # Quick exit if only one point.
    if M == 1:
        x_idx = np.array([0], dtype=idtype)
        cl_info = np.array([0, 1], dtype=idtype)
    else:
        # Compute bin index of each point
        lattice_shape = np.ceil(N / bin_dim).astype(idtype)
        c_idx = ntk_numba.bin_index(
            np.require(u, dtype=np.double, requirements="C"),
            bin_dim.astype(np.double),
            lattice_shape,
        )

        # Re-order & count points
        cl_count, x_idx = ntk_numba.count_sort(c_idx, k=lattice_shape.prod())

        # Encode `cl_info`
        Q = len(cl_count)
        cl_info = np.zeros(Q + 1, dtype=idtype)
        cl_info[1:] = cl_count.cumsum()
    return x_idx, cl_info


def bisect_cluster(
    cl_info: np.ndarray,
    N_max: int,
) -> np.ndarray:
    """
    Hierarchically split clusters until each contains at most `N_max` points.

    Parameters
    ----------
    cl_info: ndarray[int]
        (Q+1,) cluster start/stop indices.
    N_max: int
        Maximum number of points allocated per cluster.

    Returns
    -------
    clB_info: ndarray[int]
        (L+1,) bisected cluster start/stop indices.
    """
    idtype = cl_info.dtype

    M = cl_info[-1]
    Q = len(cl_info) - 1
    assert N_max > 0

    cl_size = cl_info[1:] - cl_info[:-1]
    cl_chunks = np.ceil(cl_size / N_max).astype(idtype)
    L = sum(cl_chunks)

    clB_info = np.full(L + 1, fill_value=M, dtype=idtype)
    _l = 0
    for q in range(Q):
        for c in range(cl_chunks[q]):
            clB_info[_l] = cl_info[q] + min(c * N_max, cl_size[q])
            _l += 1
    return clB_info


def sort_points(
    u: np.ndarray,
    N: np.ndarray,
    sort: bool,
    bin_dim: np.ndarray,
    N_max: int,
) -> SortedIndex:
    """
    Partition points into subproblems of at most `N_max` points.

    Parameters
    ----------
    u: ndarray[float64]
        (M, D) grid coordinates in [0, N).
    N: ndarray[int]
        (D,) grid size.
    sort: bool
        Group points by bin (True), or keep user order (False).
    bin_dim: ndarray[int]
        (D,) bin size [grid cells].
    N_max: int
        Maximum subproblem size.

    Returns
    -------
    index: SortedIndex
    """
    M = len(u)
    if M == 0:
        x_idx = np.zeros(0, dtype=np.int64)
        bound = np.zeros(1, dtype=np.int64)
    else:
        if sort:
            x_idx, cl_info = bin_sort(u, N, bin_dim)
        else:
            x_idx = np.arange(M, dtype=np.int64)
            cl_info = np.array([0, M], dtype=np.int64)
        bound = bisect_cluster(cl_info, N_max)
    return SortedIndex(x_idx=x_idx, bound=bound)
