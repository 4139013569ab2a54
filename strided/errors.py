class StridedError(Exception):
    pass


class BoundsError(StridedError, IndexError):
    """Invalid slice, index count mismatch or index out of range."""


class ShapeMismatchError(StridedError, ValueError):
    """Operand shapes are incompatible for the requested operation."""


class MaterializationError(StridedError, RuntimeError):
    """A view or lazy tensor is in a state that forbids the request."""
