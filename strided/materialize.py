"""
Turning a TensorView into something that no longer needs (or needs less of)
its parent.

Copy walks the view once and returns an independent dense Tensor. Lazy returns
a LazyMaterializedTensor that reads through the view on first access and keeps
what it read. The view-vs-copy policies decide which of a view or a copy a
slicing call should hand back.
"""

import sys
import threading
from typing import Callable, Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from strided.errors import BoundsError, MaterializationError
from strided.helpers import (
    MAX_STRIDE_THRESHOLD,
    VIEW_SIZE_THRESHOLD,
    all_coordinates,
    dprint,
    full_int_index,
)
from strided.shape.shape import Shape
from strided.shape.slice import Slice, Step, compute_sliced_shape, validate_slices
from strided.tensor import Tensor
from strided.view import TensorView


class MaterializationStrategy:
    name = "base"

    def materialize(self, view: TensorView):
        raise NotImplementedError(f"materialize not implemented for {type(self)}")

    def can_materialize(self, view: TensorView) -> bool:
        return view.shape.volume >= 0

    def estimate_memory_overhead(self, view: TensorView) -> int:
        raise NotImplementedError(
            f"estimate_memory_overhead not implemented for {type(self)}"
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class CopyMaterializationStrategy(MaterializationStrategy):
    """
    Eager copy into a new row-major buffer. The result shares nothing with the
    parent, which may be released afterwards.
    """

    name = "copy"

    def can_materialize(self, view: TensorView) -> bool:
        return super().can_materialize(view) and not view.parent_released

    def materialize(self, view: TensorView) -> Tensor:
        if not self.can_materialize(view):
            raise MaterializationError(
                f"Cannot materialize view {view.shape.dims}: parent tensor is no longer available"
            )
        dprint(f"CopyMaterialization: {view!r}")
        return Tensor(self._gather(view), ops=view.ops)

    def _gather(self, view: TensorView) -> NDArray:
        parent = view.parent
        shape = view.shape
        if (
            isinstance(parent, Tensor)
            and parent.st.contiguous
            and view.is_contiguous()
        ):
            # one memory run in the parent: slice the buffer directly
            start = view.index_mapper.offset
            flat = np.frombuffer(parent.rawdata, dtype=parent.dtype)
            return flat[start : start + shape.volume].copy().reshape(shape.dims)
        out = np.empty(shape.volume, dtype=view.dtype)
        for flat_index, idx in enumerate(all_coordinates(shape.dims)):
            out[flat_index] = view.get(idx)
        return out.reshape(shape.dims)

    def estimate_memory_overhead(self, view: TensorView) -> int:
        return view.shape.volume * view.dtype.itemsize


class LazyMaterializedTensor:
    """
    Reads through ``view`` on first access to each element and keeps the
    value. The cache is a dense arena indexed by the element's row-major
    position plus a fill mask, both guarded by one lock.

    Writes never reach the parent. They are rejected unless the tensor was
    created with ``allow_writes=True``, in which case they only update the
    cache.
    """

    def __init__(self, view: TensorView, allow_writes: bool = False):
        self.view = view
        self.allow_writes = allow_writes
        self._shape = view.shape
        self._arena = np.empty(self._shape.volume, dtype=view.dtype)
        self._filled = np.zeros(self._shape.volume, dtype=bool)
        self._lock = threading.Lock()

    @property
    def data(self) -> "LazyMaterializedTensor":
        return self

    @property
    def shape(self) -> Shape:
        return self._shape

    @property
    def dtype(self) -> np.dtype:
        return self.view.dtype

    @property
    def ops(self):
        return self.view.ops

    @property
    def ndim(self) -> int:
        return self._shape.rank

    @property
    def size(self) -> int:
        return self._shape.volume

    @property
    def cached_count(self) -> int:
        with self._lock:
            return int(self._filled.sum())

    @property
    def is_fully_materialized(self) -> bool:
        return self.cached_count == self.size

    def get(self, indices: Sequence[int]):
        flat = self._shape.index(indices)
        with self._lock:
            if not self._filled[flat]:
                self._arena[flat] = self.view.get(indices)
                self._filled[flat] = True
            return self._arena[flat].item()

    def set(self, indices: Sequence[int], value) -> None:
        if not self.allow_writes:
            raise MaterializationError(
                "Lazy materialized tensor is read-only: writes would not reach the parent tensor"
            )
        flat = self._shape.index(indices)
        with self._lock:
            self._arena[flat] = value
            self._filled[flat] = True

    def __getitem__(self, idx):
        idx = idx if isinstance(idx, tuple) else (idx,)
        if (full := full_int_index(idx, self._shape)) is None:
            raise BoundsError("Only full integer indexing is supported on a lazy tensor")
        return self.get(full)

    def __setitem__(self, idx, value) -> None:
        idx = idx if isinstance(idx, tuple) else (idx,)
        if (full := full_int_index(idx, self._shape)) is None:
            raise BoundsError("Only full integer indexing is supported on a lazy tensor")
        self.set(full, value)

    def fill(self) -> None:
        for idx in all_coordinates(self._shape.dims):
            self.get(idx)

    def iterate_all_elements(self):
        for idx in all_coordinates(self._shape.dims):
            yield self.get(idx)

    def to_tensor(self) -> Tensor:
        self.fill()
        with self._lock:
            arr = self._arena.copy().reshape(self._shape.dims)
        return Tensor(arr, ops=self.ops)

    def numpy(self) -> NDArray:
        return self.to_tensor().numpy()

    def tolist(self) -> list:
        return self.numpy().tolist()

    def __repr__(self) -> str:
        return (
            f"LazyMaterializedTensor(shape={self._shape.dims}, "
            f"cached={self.cached_count}/{self.size})"
        )


class LazyMaterializationStrategy(MaterializationStrategy):
    name = "lazy"

    # wrapper object plus the arena and fill mask array headers
    BASE_OVERHEAD = sys.getsizeof(object()) + 2 * sys.getsizeof(np.empty(0))

    def __init__(self, allow_writes: bool = False):
        self.allow_writes = allow_writes

    def can_materialize(self, view: TensorView) -> bool:
        return super().can_materialize(view) and not view.parent_released

    def materialize(self, view: TensorView) -> LazyMaterializedTensor:
        if not self.can_materialize(view):
            raise MaterializationError(
                f"Cannot lazily materialize view {view.shape.dims}: parent tensor is no longer available"
            )
        dprint(f"LazyMaterialization: {view!r} allow_writes={self.allow_writes}")
        return LazyMaterializedTensor(view, self.allow_writes)

    def estimate_memory_overhead(self, view: TensorView) -> int:
        # arena + fill mask are allocated up front
        return self.BASE_OVERHEAD + view.shape.volume * (view.dtype.itemsize + 1)

    def force_materialize(self, tensor):
        """Fill a lazy tensor completely and return it as an independent dense Tensor.
        Anything else is returned unchanged."""
        if isinstance(tensor, LazyMaterializedTensor):
            return tensor.to_tensor()
        return tensor

    def __repr__(self) -> str:
        return f"LazyMaterializationStrategy(allow_writes={self.allow_writes})"


class ViewStrategy:
    """Decides whether slicing should return a zero-copy view or a copy."""

    def should_create_view(self, tensor, slices: Sequence[Slice]) -> bool:
        raise NotImplementedError(f"should_create_view not implemented for {type(self)}")

    def decision_reason(self, tensor, slices: Sequence[Slice]) -> str:
        raise NotImplementedError(f"decision_reason not implemented for {type(self)}")


class DefaultViewStrategy(ViewStrategy):
    """
    Copy when any step exceeds ``max_stride_threshold`` (strided walks are slow)
    or when the view is smaller than ``view_size_threshold`` of its parent
    (a copy lets the parent be released). Otherwise view.
    """

    def __init__(
        self,
        view_size_threshold: float = VIEW_SIZE_THRESHOLD,
        max_stride_threshold: int = MAX_STRIDE_THRESHOLD,
    ):
        self.view_size_threshold = view_size_threshold
        self.max_stride_threshold = max_stride_threshold

    def _excessive_stride(self, slices: Sequence[Slice]) -> bool:
        return any(isinstance(s, Step) and s.step > self.max_stride_threshold for s in slices)

    def _ratio(self, tensor, slices: Sequence[Slice]) -> float:
        parent_volume = tensor.shape.volume
        if parent_volume == 0:
            return 1.0
        return compute_sliced_shape(tensor.shape, slices).volume / parent_volume

    def _threshold(self) -> float:
        return self.view_size_threshold

    def should_create_view(self, tensor, slices: Sequence[Slice]) -> bool:
        slices = validate_slices(tensor.shape, slices)
        if self._excessive_stride(slices):
            return False
        return self._ratio(tensor, slices) >= self._threshold()

    def decision_reason(self, tensor, slices: Sequence[Slice]) -> str:
        slices = validate_slices(tensor.shape, slices)
        if self._excessive_stride(slices):
            return "Excessive stride detected in slice pattern, copying preferred for efficiency"
        ratio = self._ratio(tensor, slices)
        if ratio >= self._threshold():
            return f"View size ratio ({ratio:.3f}) is reasonable, zero-copy view preferred"
        return f"View size ratio ({ratio:.3f}) is small, copying preferred to enable parent GC"


class MemoryAwareViewStrategy(DefaultViewStrategy):
    """
    DefaultViewStrategy that raises the view size threshold to
    ``pressure_view_size_threshold`` while ``memory_pressure()`` reports
    pressure, so more slices become copies and parents can be released.
    """

    def __init__(
        self,
        memory_pressure: Callable[[], bool] = lambda: False,
        pressure_view_size_threshold: float = 0.3,
        view_size_threshold: float = VIEW_SIZE_THRESHOLD,
        max_stride_threshold: int = MAX_STRIDE_THRESHOLD,
    ):
        super().__init__(view_size_threshold, max_stride_threshold)
        self.memory_pressure = memory_pressure
        self.pressure_view_size_threshold = pressure_view_size_threshold

    def _threshold(self) -> float:
        if self.memory_pressure():
            return self.pressure_view_size_threshold
        return self.view_size_threshold

    def decision_reason(self, tensor, slices: Sequence[Slice]) -> str:
        reason = super().decision_reason(tensor, slices)
        return f"Memory pressure detected. {reason}" if self.memory_pressure() else reason


def batch_materialize(
    views: Sequence[TensorView], strategy: Optional[MaterializationStrategy] = None
) -> list:
    """Materialize every view, or none: all views are checked before any work is done."""
    strategy = strategy or CopyMaterializationStrategy()
    failed = [v for v in views if not strategy.can_materialize(v)]
    if failed:
        raise MaterializationError(
            f"Cannot materialize {len(failed)} views in batch operation"
        )
    dprint(f"batch_materialize: {len(views)} views with {strategy!r}")
    return [strategy.materialize(v) for v in views]


def estimate_batch_cost(
    views: Sequence[TensorView], strategy: Optional[MaterializationStrategy] = None
) -> int:
    strategy = strategy or CopyMaterializationStrategy()
    return sum(strategy.estimate_memory_overhead(v) for v in views)
