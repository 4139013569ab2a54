from dataclasses import dataclass
from math import prod
from typing import Optional

from strided.errors import BoundsError
from strided.shape.shape import row_major_strides


def strides_for_shape(shape: tuple[int, ...]) -> tuple[int, ...]:
    return canonicalize_strides(row_major_strides(shape), shape)


def canonicalize_strides(
    strides: tuple[int, ...], shape: tuple[int, ...]
) -> tuple[int, ...]:
    return tuple(0 if sh == 1 else st for sh, st in zip(shape, strides))


@dataclass(frozen=True)
class View:
    """Strided layout of a dense buffer: ``flat = offset + sum(i * stride)``."""

    shape: tuple[int, ...]
    strides: tuple[int, ...]
    offset: int

    @staticmethod
    def create(shape: tuple[int, ...]) -> "View":
        return View(tuple(shape), strides_for_shape(tuple(shape)), 0)

    def get_index(self, indices: tuple[int, ...]) -> int:
        return self.offset + sum(st * i for st, i in zip(self.strides, indices))

    def get_indices(self, index: int) -> tuple[int, ...]:
        """
        Inverse of the row-major enumeration of ``shape``.
        e.g. shape: (2, 3, 4), index 17 -> (1, 1, 1)
        """
        indices = []
        for sh in reversed(self.shape):
            indices.append(index % sh)
            index = index // sh
        return tuple(reversed(indices))

    @property
    def ndim(self) -> int:
        return len(self.shape)

    @property
    def size(self) -> int:
        return prod(self.shape)

    @property
    def contiguous(self) -> bool:
        return self.strides == strides_for_shape(self.shape)

    def reshape(self, shape: tuple[int, ...]) -> Optional["View"]:
        # non-contiguous layouts can't be reinterpreted in place
        if not self.contiguous:
            return None
        assert prod(self.shape) == prod(shape)
        return View(tuple(shape), strides_for_shape(tuple(shape)), self.offset)

    def permute(self, axes: Optional[tuple[int, ...]] = None) -> "View":
        if axes is None:
            axes = tuple(range(self.ndim)[::-1])
        if sorted(axes) != list(range(self.ndim)):
            raise BoundsError(f"axes {axes} don't match layout of rank {self.ndim}")
        shape = tuple(self.shape[ax] for ax in axes)
        strides = tuple(self.strides[ax] for ax in axes)
        return View(shape, strides, self.offset)
