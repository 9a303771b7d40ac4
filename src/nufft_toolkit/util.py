import collections

from typing import Optional
from collections.abc import Iterable, Callable
from numpy.typing import NDArray, DTypeLike
import ducc0.fft as dfft
import numpy as np

import nufft_toolkit.error as ntk_error

__all__ = [
    "alloc_zeros",
    "as_namedtuple",
    "broadcast_seq",
    "next_fast_len",
    "TranslateDType",
]


def broadcast_seq(
    x,
    N: Optional[int] = None,
    cast: Callable = lambda _: _,
) -> tuple:
    """
    Broadcast `x` to a tuple of length `N`.

    If `N` is omitted, then no broadcasting takes place, only tupling.
    """
    if isinstance(x, Iterable):
        y = tuple(x)
    else:
        y = (x,)

    if N is not None:
        if len(y) == 1:
            y *= N  # broadcast
        assert len(y) == N

    y = tuple(map(cast, y))
    return y


def as_namedtuple(**kwargs) -> tuple:
    """
    Pack keyword arguments into an (anonymous) namedtuple.
    """
    nt_t = collections.namedtuple("namedtuple", kwargs.keys())
    return nt_t(**kwargs)


def next_fast_len(n: int) -> int:
    """
    Smallest even integer >= `n` whose prime factors are all small.

    Fine-grid lengths must be even so that grid index `l` and centered mode `l - n/2` coincide.
    """
    L = max(2, int(n))
    L = dfft.good_size(L)
    while L % 2 == 1:
        L = dfft.good_size(L + 1)
    return int(L)


def alloc_zeros(shape: tuple[int], dtype: DTypeLike) -> NDArray:
    """
    Allocate a zero-initialized array, reporting allocation failures with the attempted shape.
    """
    try:
        x = np.zeros(shape, dtype=dtype)
    except MemoryError as e:
        raise ntk_error.ResourceExhaustionError(shape, np.dtype(dtype)) from e
    return x


class TranslateDType:
    """
    (int,float,complex) dtype translator.
    """

    map_to_float = {
        np.dtype(np.int32): np.dtype(np.float32),
        np.dtype(np.int64): np.dtype(np.float64),
        np.dtype(np.float32): np.dtype(np.float32),
        np.dtype(np.float64): np.dtype(np.float64),
        np.dtype(np.complex64): np.dtype(np.float32),
        np.dtype(np.complex128): np.dtype(np.float64),
    }
    map_from_float = {
        (np.dtype(np.float32), "i"): np.dtype(np.int32),
        (np.dtype(np.float64), "i"): np.dtype(np.int64),
        (np.dtype(np.float32), "f"): np.dtype(np.float32),
        (np.dtype(np.float64), "f"): np.dtype(np.float64),
        (np.dtype(np.float32), "c"): np.dtype(np.complex64),
        (np.dtype(np.float64), "c"): np.dtype(np.complex128),
    }

    def __init__(self, dtype: DTypeLike):
        dtype = np.dtype(dtype)
        assert dtype in self.map_to_float
        self._fdtype = self.map_to_float[dtype]

    def to_int(self) -> np.dtype:
        return self.map_from_float[(self._fdtype, "i")]

    def to_float(self) -> np.dtype:
        return self.map_from_float[(self._fdtype, "f")]

    def to_complex(self) -> np.dtype:
        return self.map_from_float[(self._fdtype, "c")]
