from dataclasses import dataclass
from typing import Sequence

from strided.errors import BoundsError
from strided.shape.shape import Shape


class Slice:
    """
    How one parent dimension is selected. Closed set of variants:

        Range(start, end)       end - start elements, dimension kept
        At(index)               one element, dimension eliminated
        All()                   every element, dimension kept
        Step(start, end, step)  ceil((end - start) / step) elements, dimension kept

    Negative positions count from the end of the dimension (-1 is the last
    element) and are resolved by ``normalize`` once the dimension size is known.
    """

    def normalize(self, size: int) -> "Slice":
        if size < 0:
            raise BoundsError(f"Dimension size must be non-negative: {size}")
        if isinstance(self, Range):
            return Range(_wrap(self.start, size), _wrap(self.end, size))
        elif isinstance(self, At):
            return At(_wrap(self.index, size))
        elif isinstance(self, All):
            return self
        elif isinstance(self, Step):
            return Step(_wrap(self.start, size), _wrap(self.end, size), self.step)
        raise TypeError(f"Unhandled slice variant {type(self).__name__}")

    def invalid_reason(self, size: int) -> str | None:
        s = self.normalize(size)
        if isinstance(s, (Range, Step)):
            if s.start < 0 or s.start >= size:
                return f"start {self.start} out of bounds"
            if s.end > size or s.end < 0:
                return f"end {self.end} out of bounds"
            if s.start >= s.end:
                return f"start >= end after normalization ({s.start} >= {s.end})"
            return None
        elif isinstance(s, At):
            if s.index < 0 or s.index >= size:
                return f"index {self.index} out of bounds"
            return None
        elif isinstance(s, All):
            return None
        raise TypeError(f"Unhandled slice variant {type(self).__name__}")

    def is_valid(self, size: int) -> bool:
        return self.invalid_reason(size) is None

    def validate(self, size: int, dim: int | None = None) -> "Slice":
        """Normalize against ``size`` or raise ``BoundsError`` naming the dimension."""
        reason = self.invalid_reason(size)
        if reason is not None:
            where = f"dimension {dim}" if dim is not None else "dimension"
            raise BoundsError(f"Invalid slice for {where} (size {size}): {self!r}: {reason}")
        return self.normalize(size)

    def result_size(self, size: int) -> int:
        """Number of elements selected along the dimension; 0 for ``At``."""
        s = self.validate(size)
        if isinstance(s, Range):
            return s.end - s.start
        elif isinstance(s, At):
            return 0
        elif isinstance(s, All):
            return size
        elif isinstance(s, Step):
            return (s.end - s.start + s.step - 1) // s.step
        raise TypeError(f"Unhandled slice variant {type(self).__name__}")

    @property
    def keeps_dim(self) -> bool:
        return not isinstance(self, At)

    @property
    def stride_multiplier(self) -> int:
        return self.step if isinstance(self, Step) else 1

    def has_non_trivial_stride(self) -> bool:
        return isinstance(self, Step) and self.step != 1

    def is_contiguous(self) -> bool:
        return not self.has_non_trivial_stride()

    def is_empty(self) -> bool:
        if isinstance(self, (Range, Step)):
            return self.start >= 0 and self.end >= 0 and self.start >= self.end
        return False

    def is_full(self, size: int) -> bool:
        s = self.normalize(size)
        if isinstance(s, All):
            return True
        if isinstance(s, (Range, Step)):
            return s.start == 0 and s.end == size and s.step == 1
        return False


def _wrap(i: int, size: int) -> int:
    return i + size if i < 0 else i


@dataclass(frozen=True, repr=False)
class Range(Slice):
    start: int
    end: int
    step = 1

    def __repr__(self) -> str:
        return f"Range({self.start}, {self.end})"


@dataclass(frozen=True, repr=False)
class At(Slice):
    index: int

    def __repr__(self) -> str:
        return f"At({self.index})"


@dataclass(frozen=True, repr=False)
class All(Slice):
    def __repr__(self) -> str:
        return "All()"


@dataclass(frozen=True, repr=False)
class Step(Slice):
    start: int
    end: int
    step: int

    def __post_init__(self):
        if self.step <= 0:
            raise BoundsError(f"Step size must be positive: {self.step}")

    def __repr__(self) -> str:
        return f"Step({self.start}, {self.end}, {self.step})"


SLICE_VARIANTS = (Range, At, All, Step)


def validate_slices(parent: Shape, slices: Sequence[Slice]) -> tuple[Slice, ...]:
    """Check one slice per parent dimension and return them normalized."""
    if len(slices) != parent.rank:
        raise BoundsError(
            f"Number of slices ({len(slices)}) must match parent rank ({parent.rank})"
        )
    for dim, s in enumerate(slices):
        if not isinstance(s, SLICE_VARIANTS):
            raise TypeError(f"Expected a Slice at dimension {dim}, got {type(s).__name__}")
    return tuple(s.validate(parent[dim], dim) for dim, s in enumerate(slices))


def compute_sliced_shape(parent: Shape, slices: Sequence[Slice]) -> Shape:
    dims = []
    for dim, s in enumerate(validate_slices(parent, slices)):
        if isinstance(s, At):
            continue
        dims.append(s.result_size(parent[dim]))
    return Shape(tuple(dims))
