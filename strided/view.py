from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from functools import cached_property
from typing import Any, Callable, Sequence

import numpy as np
from numpy.typing import NDArray

from strided.errors import BoundsError
from strided.helpers import all_coordinates, dprint, full_int_index
from strided.shape.mapper import AccessPattern, SliceIndexMapper
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


class TensorView:
    """
    Zero-copy window onto a parent tensor: one Slice per parent dimension.

    The parent is anything exposing ``get(indices)``, ``set(indices, value)``
    and ``shape``. The view holds a strong reference to it; the parent's
    storage must stay alive (not ``release()``d) for as long as the view is
    read, or the view must be materialized first.

    Slicing a view again composes the slices onto the root parent, so a chain
    of views is always one mapping step deep.
    """

    def __init__(self, parent, slices: Sequence[Slice]):
        self.parent = parent
        self.slices = validate_slices(parent.shape, slices)
        dprint(f"TensorView: parent={parent.shape} slices={list(self.slices)}")

    @cached_property
    def view_shape(self) -> Shape:
        return compute_sliced_shape(self.parent.shape, self.slices)

    @cached_property
    def index_mapper(self) -> SliceIndexMapper:
        return SliceIndexMapper(self.parent.shape, self.slices, self.view_shape)

    @property
    def shape(self) -> Shape:
        return self.view_shape

    @property
    def data(self) -> "TensorView":
        return self

    @property
    def parent_tensor(self):
        return self.parent

    @property
    def dtype(self) -> np.dtype:
        return self.parent.dtype

    @property
    def ops(self) -> Any:
        return getattr(self.parent, "ops", None)

    @property
    def ndim(self) -> int:
        return self.view_shape.rank

    rank = ndim

    @property
    def size(self) -> int:
        return self.view_shape.volume

    @property
    def parent_released(self) -> bool:
        # the parent may itself be a view over a released tensor
        return getattr(self.parent, "released", False)

    @property
    def released(self) -> bool:
        return self.parent_released

    def _check_indices(self, indices: Sequence[int]) -> tuple[int, ...]:
        indices = tuple(indices)
        shape = self.view_shape
        if len(indices) != shape.rank:
            raise BoundsError(f"Expected {shape.rank} indices but got {len(indices)}")
        for dim, i in enumerate(indices):
            if i < 0 or i >= shape[dim]:
                raise BoundsError(
                    f"Index {i} out of bounds for dimension {dim} (size {shape[dim]})"
                )
        return indices

    def get(self, indices: Sequence[int]):
        return self.parent.get(self.index_mapper.map_to_parent(self._check_indices(indices)))

    def set(self, indices: Sequence[int], value) -> None:
        self.parent.set(self.index_mapper.map_to_parent(self._check_indices(indices)), value)

    def __getitem__(self, idx):
        idx = idx if isinstance(idx, tuple) else (idx,)
        if (full := full_int_index(idx, self.shape)) is not None:
            return self.get(full)
        from strided.tensor import to_slices

        return self.slice(to_slices(idx, self.shape))

    def __setitem__(self, idx, value) -> None:
        idx = idx if isinstance(idx, tuple) else (idx,)
        if (full := full_int_index(idx, self.shape)) is None:
            raise BoundsError("Only full integer indexing is supported for assignment")
        self.set(full, value)

    def iterate_all_elements(self):
        for idx in all_coordinates(self.view_shape.dims):
            yield self.get(idx)

    def numpy(self) -> NDArray:
        return np.fromiter(
            self.iterate_all_elements(), dtype=self.dtype, count=self.size
        ).reshape(self.view_shape.dims)

    def tolist(self) -> list:
        return self.numpy().tolist()

    def __repr__(self) -> str:
        return (
            f"TensorView(shape={self.view_shape.dims}, parent={self.parent.shape.dims}, "
            f"slices={list(self.slices)})"
        )

    # Layout

    def is_contiguous(self) -> bool:
        return self.index_mapper.is_contiguous()

    def access_pattern(self) -> AccessPattern:
        return self.index_mapper.access_pattern()

    def analyze_contiguity(self) -> "ContiguityAnalysis":
        contiguous = self.is_contiguous()
        parent_volume = self.parent.shape.volume
        return ContiguityAnalysis(
            is_contiguous=contiguous,
            view_volume=self.view_shape.volume,
            parent_volume=parent_volume,
            volume_ratio=self.view_shape.volume / parent_volume if parent_volume > 0 else 0.0,
            dimension_matches=tuple(
                s.is_full(size) for s, size in zip(self.slices, self.parent.shape)
            ),
            reason=(
                "View maintains contiguous memory access pattern"
                if contiguous
                else "View requires non-contiguous memory access"
            ),
        )

    # Chaining

    def slice(self, slices: Sequence[Slice]) -> "TensorView":
        return TensorView(self.parent, compose_slices(self, slices))

    def slice_view(self, build: Callable[[SliceBuilder], Any]) -> "TensorView":
        builder = SliceBuilder()
        build(builder)
        return self.slice(builder.validate(self.view_shape))

    def slice_ranges(self, *ranges: tuple[int, int]) -> "TensorView":
        slices = [Range(s, e) for s, e in ranges]
        return self.slice(slices + [All()] * (self.ndim - len(slices)))

    def slice_at(self, *indices: int) -> "TensorView":
        slices = [At(i) for i in indices]
        return self.slice(slices + [All()] * (self.ndim - len(slices)))

    def materialize(self, strategy=None):
        from strided.materialize import CopyMaterializationStrategy

        return (strategy or CopyMaterializationStrategy()).materialize(self)

    def slice_copy(self, build: Callable[[SliceBuilder], Any], strategy=None):
        return self.slice_view(build).materialize(strategy)


@dataclass(frozen=True)
class ContiguityAnalysis:
    is_contiguous: bool
    view_volume: int
    parent_volume: int
    volume_ratio: float
    dimension_matches: tuple[bool, ...]
    reason: str


class SliceBuilder:
    """
    Declares one slice per dimension, in order:

        t.slice_view(lambda b: b.range(0, 2).all().at(-1).step(0, 8, 2))
    """

    def __init__(self):
        self._slices: list[Slice] = []

    def range(self, start: int, end: int) -> "SliceBuilder":
        # negative positions are resolved once the dimension size is known
        if start >= 0 and end >= 0 and end <= start:
            raise BoundsError(
                f"Range end must be greater than start: end={end}, start={start} "
                f"(dimension {len(self._slices)})"
            )
        self._slices.append(Range(start, end))
        return self

    def at(self, index: int) -> "SliceBuilder":
        self._slices.append(At(index))
        return self

    def all(self) -> "SliceBuilder":
        self._slices.append(All())
        return self

    def step(self, start: int, end: int, step: int) -> "SliceBuilder":
        if step <= 0:
            raise BoundsError(
                f"Step size must be positive: {step} (dimension {len(self._slices)})"
            )
        self._slices.append(Step(start, end, step))
        return self

    def build(self) -> tuple[Slice, ...]:
        return tuple(self._slices)

    def validate(self, shape: Shape) -> tuple[Slice, ...]:
        if len(self._slices) != shape.rank:
            raise BoundsError(
                f"Slice configuration incomplete: expected {shape.rank} dimensions, "
                f"got {len(self._slices)}"
            )
        return validate_slices(shape, self._slices)


def compose_slices(view: TensorView, new_slices: Sequence[Slice]) -> tuple[Slice, ...]:
    """
    Express ``view`` sliced by ``new_slices`` as slices of ``view.parent``.

    ``new_slices`` address the view's dimensions; dimensions the view already
    eliminated with ``At`` pass through unchanged.
    """
    new_slices = validate_slices(view.view_shape, new_slices)
    composed = []
    cursor = 0
    for current in view.slices:
        if isinstance(current, At):
            composed.append(current)
            continue
        composed.append(_compose_pair(current, new_slices[cursor]))
        cursor += 1
    out = tuple(composed)
    for dim, s in enumerate(out):
        if not s.is_valid(view.parent.shape[dim]):
            raise BoundsError(
                f"Composed slice at dimension {dim} exceeds parent bounds: {s!r} "
                f"(parent dimension size {view.parent.shape[dim]})"
            )
    return out


def _compose_pair(current: Slice, new: Slice) -> Slice:
    # Both slices are normalized: ``current`` against the parent dimension,
    # ``new`` against the view dimension ``current`` produced.
    if isinstance(current, All):
        return new
    if isinstance(new, All):
        return current
    base = current.start
    k = current.step
    if isinstance(new, At):
        return At(base + new.index * k)
    elif isinstance(new, (Range, Step)):
        last = new.start + (new.end - new.start - 1) // new.step * new.step
        start = base + new.start * k
        end = base + last * k + 1
        step = k * new.step
        return Range(start, end) if step == 1 else Step(start, end, step)
    raise TypeError(f"Unhandled slice variant {type(new).__name__}")


class NCHWSlicePattern(Enum):
    BATCH_SLICE = "batch_slice"
    CHANNEL_SLICE = "channel_slice"
    SPATIAL_REGION = "spatial_region"
    WIDTH_SLICE = "width_slice"
    OTHER = "other"


def detect_nchw_pattern(slices: Sequence[Slice]) -> NCHWSlicePattern:
    if len(slices) != 4:
        return NCHWSlicePattern.OTHER
    n, c, h, w = slices
    cut = lambda s: isinstance(s, (Range, Step))
    fixed = lambda s: isinstance(s, (All, At))
    if cut(n) and all(isinstance(s, All) for s in (c, h, w)):
        return NCHWSlicePattern.BATCH_SLICE
    if fixed(n) and cut(c) and isinstance(h, All) and isinstance(w, All):
        return NCHWSlicePattern.CHANNEL_SLICE
    if fixed(n) and fixed(c) and cut(h) and cut(w):
        return NCHWSlicePattern.SPATIAL_REGION
    if fixed(n) and fixed(c) and fixed(h) and cut(w):
        return NCHWSlicePattern.WIDTH_SLICE
    return NCHWSlicePattern.OTHER
