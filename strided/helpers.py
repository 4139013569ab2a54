import itertools
import os
from math import prod
from numbers import Integral
from typing import Iterator, Sequence

from strided.errors import BoundsError


def getenv(key: str, default=0):
    value = os.environ.get(key.upper(), default)
    try:
        return type(default)(value)
    except ValueError:
        raise ValueError(
            f"Invalid value for {key.upper()}: {value!r}. Expected {type(default).__name__}."
        )


DEBUG = getenv("DEBUG", 0)
VIEW_SIZE_THRESHOLD = getenv("VIEW_SIZE_THRESHOLD", 0.1)
MAX_STRIDE_THRESHOLD = getenv("MAX_STRIDE_THRESHOLD", 10)


dprint = lambda *args, **kwargs: print(*args, **kwargs) if DEBUG else None
dprint2 = lambda *args, **kwargs: print(*args, **kwargs) if DEBUG >= 2 else None


def normalize_dim(dim: int, rank: int, op: str = "dim") -> int:
    """Wrap a negative axis into ``[0, rank)``; ``rank`` may be passed as
    ``rank + 1`` by callers that allow inserting past the last axis."""
    nd = dim + rank if dim < 0 else dim
    if nd < 0 or nd >= rank:
        raise BoundsError(f"{op}: axis {dim} is out of bounds for rank {rank}")
    return nd


def all_coordinates(dims: Sequence[int]) -> Iterator[tuple[int, ...]]:
    # row-major: rightmost index moves fastest
    return itertools.product(*(range(d) for d in dims))


def full_int_index(idx: tuple, shape: Sequence[int]) -> tuple[int, ...] | None:
    """Integer indices (Python or numpy) addressing every dimension of ``shape``,
    negatives wrapped once; None when ``idx`` is anything else."""
    if len(idx) != len(shape) or not all(isinstance(i, Integral) for i in idx):
        return None
    return tuple(int(i) + sh if i < 0 else int(i) for i, sh in zip(idx, shape))


__all__ = [
    "DEBUG",
    "VIEW_SIZE_THRESHOLD",
    "MAX_STRIDE_THRESHOLD",
    "dprint",
    "dprint2",
    "getenv",
    "normalize_dim",
    "all_coordinates",
    "full_int_index",
    "prod",
]
