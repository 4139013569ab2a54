from dataclasses import dataclass
from math import prod

from strided.errors import BoundsError


def row_major_strides(dims: tuple[int, ...]) -> tuple[int, ...]:
    strides = []
    st = 1
    for d in reversed(dims):
        strides.append(st)
        st *= d
    return tuple(reversed(strides))


@dataclass(frozen=True)
class Shape:
    """
    Ordered, immutable sequence of non-negative dimension sizes.

    A rank-0 shape ``()`` is what an ``At`` slice leaves behind on a rank-1
    tensor; the operations in ``strided.shape.compute`` use ``Shape.scalar()``,
    a single dimension of size 1, when a result collapses to one element.
    """

    dims: tuple[int, ...]

    def __post_init__(self):
        dims = tuple(int(d) for d in self.dims)
        if any(d < 0 for d in dims):
            raise ValueError(f"Shape dimensions must be non-negative: {dims}")
        object.__setattr__(self, "dims", dims)

    @staticmethod
    def of(*dims: int) -> "Shape":
        if len(dims) == 1 and isinstance(dims[0], (tuple, list)):
            dims = tuple(dims[0])
        return Shape(dims)

    @staticmethod
    def scalar() -> "Shape":
        return Shape((1,))

    @property
    def rank(self) -> int:
        return len(self.dims)

    @property
    def volume(self) -> int:
        return prod(self.dims)

    @property
    def strides(self) -> tuple[int, ...]:
        return row_major_strides(self.dims)

    @property
    def is_scalar(self) -> bool:
        return self.rank == 0 or self.dims == (1,)

    def index(self, indices: tuple[int, ...]) -> int:
        """Row-major flat index of ``indices``."""
        if len(indices) != self.rank:
            raise BoundsError(f"Expected {self.rank} indices, got {len(indices)}")
        flat = 0
        for dim, (i, d) in enumerate(zip(indices, self.dims)):
            if i < 0 or i >= d:
                raise BoundsError(
                    f"Index {i} out of bounds for dimension {dim} with size {d}"
                )
            flat = flat * d + i
        return flat

    def unravel(self, flat: int) -> tuple[int, ...]:
        """Inverse of ``index``."""
        if not 0 <= flat < self.volume:
            raise BoundsError(
                f"Flat index {flat} out of bounds for shape {self.dims} with volume {self.volume}"
            )
        indices = []
        for d in reversed(self.dims):
            indices.append(flat % d)
            flat //= d
        return tuple(reversed(indices))

    def __getitem__(self, i: int) -> int:
        return self.dims[i]

    def __len__(self) -> int:
        return len(self.dims)

    def __iter__(self):
        return iter(self.dims)

    def __repr__(self) -> str:
        return f"Shape{self.dims}"
