from strided.errors import (
    BoundsError,
    MaterializationError,
    ShapeMismatchError,
    StridedError,
)
from strided.shape.shape import Shape
from strided.shape.slice import All, At, Range, Slice, Step
from strided.tensor import Tensor
from strided.view import SliceBuilder, TensorView
from strided.materialize import (
    CopyMaterializationStrategy,
    DefaultViewStrategy,
    LazyMaterializationStrategy,
    LazyMaterializedTensor,
    MemoryAwareViewStrategy,
)
