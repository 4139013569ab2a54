from enum import Enum
from typing import Optional, Sequence

from strided.errors import BoundsError
from strided.helpers import dprint2
from strided.shape.shape import Shape
from strided.shape.slice import (
    All,
    At,
    Range,
    Slice,
    Step,
    compute_sliced_shape,
    validate_slices,
)


class AccessPattern(Enum):
    CONTIGUOUS_SIMPLE = "contiguous_simple"
    CONTIGUOUS_COMPLEX = "contiguous_complex"
    NON_CONTIGUOUS = "non_contiguous"


class IndexMapper:
    """
    Translates coordinates in a view's space into coordinates in its parent's
    space, and reports the memory layout the mapping implies.
    """

    def map_to_parent(self, child_indices: Sequence[int]) -> tuple[int, ...]:
        raise NotImplementedError(f"map_to_parent not implemented for {type(self)}")

    def is_contiguous(self) -> bool:
        raise NotImplementedError(f"is_contiguous not implemented for {type(self)}")

    def get_stride(self) -> tuple[int, ...]:
        raise NotImplementedError(f"get_stride not implemented for {type(self)}")


class SliceIndexMapper(IndexMapper):
    """
    IndexMapper for one slice per parent dimension.

    Everything except the mapping itself is computed once here: row-major
    parent strides, view strides (parent stride times the slice step),
    the view-dimension -> parent-dimension table (``At`` slices consume a
    parent dimension without producing a view dimension), the flat offset of
    the first selected element, and the contiguity flag.
    """

    def __init__(
        self,
        parent_shape: Shape,
        slices: Sequence[Slice],
        view_shape: Optional[Shape] = None,
    ):
        self.parent_shape = parent_shape
        self.slices = validate_slices(parent_shape, slices)
        self.view_shape = (
            view_shape
            if view_shape is not None
            else compute_sliced_shape(parent_shape, self.slices)
        )
        if self.view_shape.rank != sum(s.keeps_dim for s in self.slices):
            raise BoundsError(
                f"View shape {self.view_shape} doesn't match slices {list(self.slices)}"
            )
        self.parent_strides = parent_shape.strides
        self.dimension_mapping = tuple(
            d for d, s in enumerate(self.slices) if s.keeps_dim
        )
        self.view_strides = tuple(
            self.parent_strides[d] * self.slices[d].stride_multiplier
            for d in self.dimension_mapping
        )
        self.offset = sum(
            st * _first_index(s) for st, s in zip(self.parent_strides, self.slices)
        )
        self._contiguous = self._compute_contiguity()

    def map_to_parent(self, child_indices: Sequence[int]) -> tuple[int, ...]:
        if len(child_indices) != self.view_shape.rank:
            raise BoundsError(
                f"Expected {self.view_shape.rank} view indices, got {len(child_indices)}"
            )
        parent = []
        cursor = 0
        for dim, s in enumerate(self.slices):
            if isinstance(s, At):
                parent.append(s.index)
                continue
            i = child_indices[cursor]
            if i < 0 or i >= self.view_shape[cursor]:
                raise BoundsError(
                    f"View index {i} out of range for {s!r} at dimension {dim}"
                )
            if isinstance(s, Range):
                parent.append(s.start + i)
            elif isinstance(s, All):
                parent.append(i)
            elif isinstance(s, Step):
                parent.append(s.start + i * s.step)
            else:
                raise TypeError(f"Unhandled slice variant {type(s).__name__}")
            cursor += 1
        dprint2(f"map_to_parent: {tuple(child_indices)} -> {tuple(parent)}")
        return tuple(parent)

    def map_to_flat(self, child_indices: Sequence[int]) -> int:
        """Row-major flat offset of the mapped element in the parent's buffer."""
        return sum(
            st * i for st, i in zip(self.parent_strides, self.map_to_parent(child_indices))
        )

    def is_contiguous(self) -> bool:
        """
        True when the view is one unbroken run of the parent's row-major buffer
        and no Step skips elements. This is looser than a "single cut dimension"
        rule: leading dimensions that pick one element (At, or a one-element
        Range) do not break the run, so [At(1), All(), All()] and
        [Range(0, 1), Range(1, 3)] on (4, 3) are contiguous.
        """
        return self._contiguous

    def get_stride(self) -> tuple[int, ...]:
        return self.view_strides

    def has_complex_strides(self) -> bool:
        return any(s.has_non_trivial_stride() for s in self.slices)

    def can_vectorize(self) -> bool:
        return self._contiguous and not self.has_complex_strides()

    def access_pattern(self) -> AccessPattern:
        if self._contiguous and not self.has_complex_strides():
            return AccessPattern.CONTIGUOUS_SIMPLE
        elif self._contiguous:
            return AccessPattern.CONTIGUOUS_COMPLEX
        return AccessPattern.NON_CONTIGUOUS

    def _compute_contiguity(self) -> bool:
        # Scan right to left: full dimensions extend the run, the first
        # dimension that isn't full is the cut, and everything left of the cut
        # must pick exactly one element.
        if self.has_complex_strides():
            return False
        cut = False
        for dim in range(self.parent_shape.rank - 1, -1, -1):
            s, size = self.slices[dim], self.parent_shape[dim]
            if not cut:
                if _selected(s, size) != size:
                    cut = True
                continue
            if _selected(s, size) != 1:
                return False
        return True

    def __repr__(self) -> str:
        return (
            f"SliceIndexMapper(parent={self.parent_shape}, slices={list(self.slices)}, "
            f"view={self.view_shape}, contiguous={self._contiguous})"
        )


def _first_index(s: Slice) -> int:
    if isinstance(s, At):
        return s.index
    elif isinstance(s, (Range, Step)):
        return s.start
    elif isinstance(s, All):
        return 0
    raise TypeError(f"Unhandled slice variant {type(s).__name__}")


def _selected(s: Slice, size: int) -> int:
    return 1 if isinstance(s, At) else s.result_size(size)
