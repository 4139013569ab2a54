from __future__ import annotations

import random
from numbers import Integral
from typing import Any, Callable, Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from strided.errors import BoundsError, MaterializationError
from strided.helpers import all_coordinates, dprint, full_int_index, prod
from strided.shape.compute import (
    concat_shape,
    flatten_shape,
    permute_shape,
    reshape_shape,
    split_shapes,
    squeeze_shape,
    transpose_shape,
    unsqueeze_shape,
)
from strided.shape.shape import Shape
from strided.shape.shapetracker import ShapeTracker
from strided.shape.slice import All, At, Range, Slice, Step
from strided.view import SliceBuilder, TensorView


class Tensor:
    """
    Dense tensor over a flat 1-D buffer.

    The buffer is addressed through a ShapeTracker, so reshape, squeeze,
    unsqueeze, transpose and permute share the buffer with the source tensor.
    Slicing returns a ``TensorView``; ``slice_copy`` and the materialization
    strategies produce independent tensors.
    """

    def __init__(
        self,
        data: "Tensor" | NDArray | memoryview | list | int | float,
        st: Optional[ShapeTracker] = None,
        ops: Any = None,
    ):
        self.ops = ops
        if isinstance(data, Tensor):
            data._check_alive()
            self._dtype = data.dtype
            self.rawdata = data.rawdata
            self.st = st if st is not None else data.st
            self.ops = ops if ops is not None else data.ops
        elif isinstance(data, memoryview):
            self._dtype = np.dtype(data.format)
            # Ensure the memoryview is 1D
            self.rawdata = data.cast("B").cast(data.format) if data.ndim != 1 else data
            self.st = st if st is not None else ShapeTracker.create(data.shape)
        elif isinstance(data, (np.ndarray, list, int, float)):
            arr = np.asarray(data, dtype=np.float64 if isinstance(data, (int, float)) else None)
            self._dtype = arr.dtype
            self.rawdata = np.ascontiguousarray(arr).reshape(-1).data
            self.st = st if st is not None else ShapeTracker.create(arr.shape)
        else:
            raise TypeError(f"Unsupported data type: {type(data)}")

    # TensorData capability

    @property
    def data(self) -> "Tensor":
        return self

    @property
    def shape(self) -> Shape:
        return self.st.shape

    @property
    def dtype(self) -> np.dtype:
        return self._dtype

    @property
    def itemsize(self) -> int:
        return self._dtype.itemsize

    @property
    def ndim(self) -> int:
        return self.st.ndim

    rank = ndim

    @property
    def size(self) -> int:
        return self.st.size

    @property
    def released(self) -> bool:
        return self.rawdata is None

    def release(self) -> None:
        """Drop the storage. Views over this tensor can no longer read it."""
        dprint(f"Releasing Tensor with shape {self.shape}")
        self.rawdata = None

    def _check_alive(self):
        if self.rawdata is None:
            raise MaterializationError(
                f"Tensor with shape {self.shape.dims} has been released"
            )

    def _flat_index(self, indices: Sequence[int]) -> int:
        indices = tuple(indices)
        if len(indices) != self.ndim:
            raise BoundsError(f"Expected {self.ndim} indices, got {len(indices)}")
        for dim, (i, sh) in enumerate(zip(indices, self.st.view.shape)):
            if i < 0 or i >= sh:
                raise BoundsError(
                    f"Index {i} out of bounds for dimension {dim} with size {sh}"
                )
        return self.st.get_flat_index(indices)

    def get(self, indices: Sequence[int]):
        self._check_alive()
        return self.rawdata[self._flat_index(indices)]

    def set(self, indices: Sequence[int], value) -> None:
        self._check_alive()
        self.rawdata[self._flat_index(indices)] = self._dtype.type(value).item()

    def __getitem__(self, idx):
        idx = idx if isinstance(idx, tuple) else (idx,)
        if (full := full_int_index(idx, self.shape)) is not None:
            return self.get(full)
        return self.slice(to_slices(idx, self.shape))

    def __setitem__(self, idx, value) -> None:
        idx = idx if isinstance(idx, tuple) else (idx,)
        if (full := full_int_index(idx, self.shape)) is None:
            raise BoundsError("Only full integer indexing is supported for assignment")
        self.set(full, value)

    def iterate_all_elements(self):
        for idx in all_coordinates(self.shape.dims):
            yield self.get(idx)

    @property
    def npdata(self) -> NDArray:
        self._check_alive()
        flat = np.frombuffer(self.rawdata, dtype=self.dtype)
        if len(self.st.views) == 1:
            view = self.st.view
            np_strides = tuple(s * self.itemsize for s in view.strides)
            return np.lib.stride_tricks.as_strided(
                flat[view.offset :], view.shape, np_strides
            )
        return np.fromiter(self.iterate_all_elements(), dtype=self.dtype, count=self.size).reshape(
            self.shape.dims
        )

    def numpy(self) -> NDArray:
        return np.array(self.npdata)

    def tolist(self) -> list:
        return self.numpy().tolist()

    def __repr__(self) -> str:
        if self.released:
            return f"Tensor(<released>, shape={self.shape.dims})"
        return f"Tensor(data={self.tolist()}, shape={self.shape.dims})"

    # Structural ops (zero-copy through the layout tracker)

    def reshape(self, *shape: int) -> "Tensor":
        if len(shape) == 1 and isinstance(shape[0], (tuple, list, Shape)):
            shape = tuple(shape[0])
        out = reshape_shape(self.shape, shape)
        return Tensor(self, st=self.st.reshape(out.dims))

    def flatten(self, start_dim: int = 0, end_dim: int = -1) -> "Tensor":
        return self.reshape(flatten_shape(self.shape, start_dim, end_dim))

    def squeeze(self, dim: Optional[int] = None) -> "Tensor":
        return self.reshape(squeeze_shape(self.shape, dim))

    def unsqueeze(self, dim: int) -> "Tensor":
        return self.reshape(unsqueeze_shape(self.shape, dim))

    def permute(self, *axes: int) -> "Tensor":
        if len(axes) == 1 and isinstance(axes[0], (tuple, list)):
            axes = tuple(axes[0])
        permute_shape(self.shape, axes)
        axes = tuple(a + self.ndim if a < 0 else a for a in axes)
        return Tensor(self, st=self.st.permute(axes))

    def transpose(self) -> "Tensor":
        """Swap the last two dimensions."""
        transpose_shape(self.shape)
        axes = tuple(range(self.ndim - 2)) + (self.ndim - 1, self.ndim - 2)
        return Tensor(self, st=self.st.permute(axes))

    def t(self) -> "Tensor":
        return self.transpose()

    def contiguous(self) -> "Tensor":
        if self.st.contiguous:
            return self
        return Tensor(self.numpy(), ops=self.ops)

    # Slicing

    def slice(self, slices: Sequence[Slice]) -> TensorView:
        return TensorView(self, slices)

    def slice_view(self, build: Callable[[SliceBuilder], Any]) -> TensorView:
        builder = SliceBuilder()
        build(builder)
        return TensorView(self, builder.validate(self.shape))

    def slice_copy(self, build: Callable[[SliceBuilder], Any], strategy=None) -> "Tensor":
        from strided.materialize import CopyMaterializationStrategy

        view = self.slice_view(build)
        return (strategy or CopyMaterializationStrategy()).materialize(view)

    def slice_ranges(self, *ranges: tuple[int, int]) -> TensorView:
        slices = [Range(s, e) for s, e in ranges]
        return TensorView(self, slices + [All()] * (self.ndim - len(slices)))

    def slice_at(self, *indices: int) -> TensorView:
        slices = [At(i) for i in indices]
        return TensorView(self, slices + [All()] * (self.ndim - len(slices)))

    def slice_auto(self, slices: Sequence[Slice], policy=None) -> "TensorView | Tensor":
        """A view when ``policy`` prefers one, otherwise an independent copy."""
        from strided.materialize import CopyMaterializationStrategy, DefaultViewStrategy

        policy = policy or DefaultViewStrategy()
        view = TensorView(self, slices)
        if policy.should_create_view(self, view.slices):
            return view
        dprint(f"slice_auto: {policy.decision_reason(self, view.slices)}")
        return CopyMaterializationStrategy().materialize(view)

    def split(self, split_size: int, dim: int = 0) -> list[TensorView]:
        pieces = split_shapes(self.shape, split_size, dim)
        dim = dim + self.ndim if dim < 0 else dim
        views = []
        for n in range(len(pieces)):
            slices = [All()] * self.ndim
            slices[dim] = Range(n * split_size, (n + 1) * split_size)
            views.append(TensorView(self, slices))
        return views

    @staticmethod
    def concat(tensors: Sequence["Tensor | TensorView"], dim: int = 0) -> "Tensor":
        out_shape = concat_shape([t.shape for t in tensors], dim)
        dim = dim + out_shape.rank if dim < 0 else dim
        out = Tensor.empty(out_shape.dims, dtype=np.result_type(*(t.dtype for t in tensors)))
        offset = 0
        for t in tensors:
            for idx in all_coordinates(t.shape.dims):
                dst = idx[:dim] + (idx[dim] + offset,) + idx[dim + 1 :]
                out.set(dst, t.get(idx))
            offset += t.shape[dim]
        return out

    # Factories

    @staticmethod
    def empty(*shape: int | tuple[int, ...], dtype=np.float64) -> "Tensor":
        if len(shape) == 1 and isinstance(shape[0], (tuple, list, Shape)):
            shape = tuple(shape[0])
        return Tensor(np.empty(shape, dtype=dtype))

    @staticmethod
    def zeros(*shape: int | tuple[int, ...], dtype=np.float64) -> "Tensor":
        if len(shape) == 1 and isinstance(shape[0], (tuple, list, Shape)):
            shape = tuple(shape[0])
        return Tensor(np.zeros(shape, dtype=dtype))

    @staticmethod
    def zeros_like(a: "Tensor") -> "Tensor":
        return Tensor.zeros(a.shape.dims, dtype=a.dtype)

    @staticmethod
    def arange(*shape: int | tuple[int, ...], dtype=np.int64) -> "Tensor":
        """0, 1, 2, ... laid out row-major in ``shape``."""
        if len(shape) == 1 and isinstance(shape[0], (tuple, list, Shape)):
            shape = tuple(shape[0])
        return Tensor(np.arange(prod(shape), dtype=dtype).reshape(shape))

    # Random samples from a uniform distribution over the interval [0, 1)
    @staticmethod
    def rand(*shape: int | tuple[int, ...]) -> "Tensor":
        if len(shape) == 1 and isinstance(shape[0], (tuple, list, Shape)):
            shape = tuple(shape[0])
        data = np.fromiter((random.random() for _ in range(prod(shape))), dtype=np.float64)
        return Tensor(data.reshape(shape))


def to_slices(idx: tuple, shape: Shape) -> list[Slice]:
    """Translate Python indexing (ints, ``slice`` objects, ``Slice``s) into one
    Slice per dimension; missing trailing dimensions are ``All``."""
    ndim = shape.rank
    if len(idx) > ndim:
        raise BoundsError(f"Too many indices for tensor of rank {ndim}: {len(idx)}")
    slices: list[Slice] = []
    for i in idx:
        if isinstance(i, Slice):
            slices.append(i)
        elif isinstance(i, Integral):
            slices.append(At(int(i)))
        elif isinstance(i, slice):
            step = 1 if i.step is None else i.step
            if step <= 0:
                raise BoundsError(f"Slice step must be positive, got {step}")
            if i.start is None and i.stop is None and step == 1:
                slices.append(All())
                continue
            start = 0 if i.start is None else i.start
            end = shape[len(slices)] if i.stop is None else i.stop
            slices.append(Range(start, end) if step == 1 else Step(start, end, step))
        else:
            raise TypeError(f"Unsupported index type: {type(i).__name__}")
    return slices + [All()] * (ndim - len(slices))
