from dataclasses import dataclass
from typing import Optional

from strided.shape.shape import Shape
from strided.shape.view import View


@dataclass(frozen=True)
class ShapeTracker:
    """
    Stack of layouts. A reshape that the top layout can't express in place
    pushes a fresh row-major layout; flat indices are then resolved from the
    top layout down.
    """

    views: tuple[View, ...]

    @staticmethod
    def create(shape: tuple[int, ...] | Shape) -> "ShapeTracker":
        return ShapeTracker((View.create(tuple(shape)),))

    @property
    def view(self) -> View:
        return self.views[-1]

    @property
    def shape(self) -> Shape:
        return Shape(self.view.shape)

    @property
    def size(self) -> int:
        return self.view.size

    @property
    def ndim(self) -> int:
        return self.view.ndim

    @property
    def contiguous(self) -> bool:
        return len(self.views) == 1 and self.view.contiguous and self.view.offset == 0

    def reshape(self, shape: tuple[int, ...]) -> "ShapeTracker":
        if (view := self.view.reshape(shape)) is not None:
            return ShapeTracker(self.views[:-1] + (view,))
        return ShapeTracker(self.views + (View.create(shape),))

    def permute(self, axes: Optional[tuple[int, ...]] = None) -> "ShapeTracker":
        return ShapeTracker(self.views[:-1] + (self.view.permute(axes),))

    def get_flat_index(self, indices: tuple[int, ...]) -> int:
        flat_index = self.views[-1].get_index(indices)
        for view in reversed(self.views[:-1]):
            flat_index = view.get_index(view.get_indices(flat_index))
        return flat_index
