"""
Output-shape rules shared by every array operation.

Each function validates its operands and returns the result ``Shape`` or
raises ``ShapeMismatchError`` naming the operation and the shapes involved.
Axis arguments out of range raise ``BoundsError``.
"""

from math import prod
from typing import Optional, Sequence

from strided.errors import BoundsError, ShapeMismatchError
from strided.helpers import dprint, normalize_dim
from strided.shape.shape import Shape

IntPair = int | tuple[int, int]


def _pair(x: IntPair, name: str) -> tuple[int, int]:
    if isinstance(x, int):
        return (x, x)
    if len(x) != 2:
        raise BoundsError(f"{name} must be an int or a pair, got {x}")
    return (int(x[0]), int(x[1]))


def _as_shape(x: Shape | Sequence[int]) -> Shape:
    return x if isinstance(x, Shape) else Shape(tuple(x))


def broadcast_shapes(
    a: Shape | Sequence[int], b: Shape | Sequence[int], op: str = "elementwise"
) -> Shape:
    """
    NumPy broadcasting: right-align, pad the shorter shape with leading 1s,
    and at every position the sizes must match or one of them must be 1.
    """
    a, b = _as_shape(a), _as_shape(b)
    ndim = max(a.rank, b.rank)
    ad = (1,) * (ndim - a.rank) + a.dims
    bd = (1,) * (ndim - b.rank) + b.dims
    out = []
    for i, (x, y) in enumerate(zip(ad, bd)):
        if x != y and x != 1 and y != 1:
            raise ShapeMismatchError(
                f"{op}: shapes {a.dims} and {b.dims} cannot be broadcast "
                f"(dimension {i}: {x} vs {y})"
            )
        out.append(y if x == 1 else x)
    return Shape(tuple(out))


def broadcast_all(*shapes: Shape | Sequence[int], op: str = "elementwise") -> Shape:
    if not shapes:
        raise ShapeMismatchError(f"{op}: at least one shape is required")
    out = _as_shape(shapes[0])
    for s in shapes[1:]:
        out = broadcast_shapes(out, s, op)
    return out


def elementwise_shape(a: Shape | Sequence[int], b: Shape | Sequence[int], op: str = "add") -> Shape:
    return broadcast_shapes(a, b, op)


def matmul_shape(a: Shape | Sequence[int], b: Shape | Sequence[int]) -> Shape:
    """
    (..., m, k) @ (..., k, n) -> (broadcast(...), m, n)

    A rank-1 left operand acts as (1, k) and a rank-1 right operand as (k, 1);
    the implicit dimension is dropped from the result. Two rank-1 operands
    give the scalar shape.
    """
    a, b = _as_shape(a), _as_shape(b)
    if a.rank == 0 or b.rank == 0:
        raise ShapeMismatchError(
            f"matmul: operands must have at least 1 dimension, got {a.dims} and {b.dims}"
        )
    a_eff = (1,) + a.dims if a.rank == 1 else a.dims
    b_eff = b.dims + (1,) if b.rank == 1 else b.dims
    m, ka = a_eff[-2], a_eff[-1]
    kb, n = b_eff[-2], b_eff[-1]
    if ka != kb:
        raise ShapeMismatchError(
            f"matmul: inner dimensions must match ({ka} != {kb}) for shapes {a.dims} and {b.dims}"
        )
    batch = broadcast_shapes(Shape(a_eff[:-2]), Shape(b_eff[:-2]), "matmul batch").dims
    if a.rank == 1 and b.rank == 1:
        return Shape.scalar()
    if a.rank == 1:
        return Shape(batch + (n,))
    if b.rank == 1:
        return Shape(batch + (m,))
    return Shape(batch + (m, n))


def _check_nchw(x: Shape, op: str, what: str = "input"):
    if x.rank != 4:
        raise ShapeMismatchError(
            f"{op}: {what} must have rank 4 (N, C, H, W), got {x.dims}"
        )


def conv_output_size(size: int, kernel: int, stride: int, padding: int, dilation: int) -> int:
    return (size + 2 * padding - dilation * (kernel - 1) - 1) // stride + 1


def conv2d_shape(
    input: Shape | Sequence[int],
    weight: Shape | Sequence[int],
    stride: IntPair = 1,
    padding: IntPair = 0,
    dilation: IntPair = 1,
    groups: int = 1,
) -> Shape:
    x, w = _as_shape(input), _as_shape(weight)
    _check_nchw(x, "conv2d")
    if w.rank != 4:
        raise ShapeMismatchError(
            f"conv2d: weight must have rank 4 (out_channels, in_channels/groups, kH, kW), got {w.dims}"
        )
    (sh, sw), (ph, pw), (dh, dw) = (
        _pair(stride, "stride"),
        _pair(padding, "padding"),
        _pair(dilation, "dilation"),
    )
    if min(sh, sw, dh, dw, groups) < 1 or min(ph, pw) < 0:
        raise BoundsError(
            f"conv2d: invalid parameters stride={stride}, padding={padding}, "
            f"dilation={dilation}, groups={groups}"
        )
    n, c, h, wd = x.dims
    out_c, in_c, kh, kw = w.dims
    if c != in_c * groups:
        raise ShapeMismatchError(
            f"conv2d: input channels {c} != weight in_channels {in_c} * groups {groups} "
            f"for input {x.dims} and weight {w.dims}"
        )
    if out_c % groups != 0:
        raise ShapeMismatchError(
            f"conv2d: out_channels {out_c} is not divisible by groups {groups}"
        )
    oh = conv_output_size(h, kh, sh, ph, dh)
    ow = conv_output_size(wd, kw, sw, pw, dw)
    if oh <= 0 or ow <= 0:
        raise ShapeMismatchError(
            f"conv2d: kernel {(kh, kw)} with dilation {(dh, dw)} is larger than "
            f"padded input {(h + 2 * ph, wd + 2 * pw)}"
        )
    dprint(f"conv2d_shape: {x.dims} * {w.dims} -> {(n, out_c, oh, ow)}")
    return Shape((n, out_c, oh, ow))


def pool_output_size(size: int, kernel: int, stride: int, padding: int) -> int:
    return (size + 2 * padding - kernel) // stride + 1


def _pool2d_shape(
    op: str,
    input: Shape | Sequence[int],
    kernel_size: IntPair,
    stride: Optional[IntPair],
    padding: IntPair,
) -> Shape:
    x = _as_shape(input)
    _check_nchw(x, op)
    kh, kw = _pair(kernel_size, "kernel_size")
    sh, sw = _pair(stride, "stride") if stride is not None else (kh, kw)
    ph, pw = _pair(padding, "padding")
    if min(kh, kw, sh, sw) < 1 or min(ph, pw) < 0:
        raise BoundsError(
            f"{op}: invalid parameters kernel_size={kernel_size}, stride={stride}, padding={padding}"
        )
    n, c, h, w = x.dims
    oh = pool_output_size(h, kh, sh, ph)
    ow = pool_output_size(w, kw, sw, pw)
    if oh <= 0 or ow <= 0:
        raise ShapeMismatchError(
            f"{op}: kernel {(kh, kw)} is larger than padded input {(h + 2 * ph, w + 2 * pw)}"
        )
    return Shape((n, c, oh, ow))


def max_pool2d_shape(
    input: Shape | Sequence[int],
    kernel_size: IntPair,
    stride: Optional[IntPair] = None,
    padding: IntPair = 0,
) -> Shape:
    return _pool2d_shape("max_pool2d", input, kernel_size, stride, padding)


def avg_pool2d_shape(
    input: Shape | Sequence[int],
    kernel_size: IntPair,
    stride: Optional[IntPair] = None,
    padding: IntPair = 0,
) -> Shape:
    return _pool2d_shape("avg_pool2d", input, kernel_size, stride, padding)


def reshape_shape(shape: Shape | Sequence[int], new_shape: Sequence[int]) -> Shape:
    """Any shape of equal volume; one dimension may be -1 and is inferred."""
    shape = _as_shape(shape)
    dims = list(new_shape.dims if isinstance(new_shape, Shape) else new_shape)
    infer = [i for i, d in enumerate(dims) if d == -1]
    if len(infer) > 1:
        raise ShapeMismatchError(f"reshape: only one dimension can be -1, got {tuple(dims)}")
    if any(d < -1 for d in dims):
        raise ShapeMismatchError(f"reshape: invalid dimension in {tuple(dims)}")
    if infer:
        known = prod(d for d in dims if d != -1)
        if known == 0 or shape.volume % known != 0:
            raise ShapeMismatchError(
                f"reshape: cannot infer -1 in {tuple(dims)} from shape {shape.dims} "
                f"with volume {shape.volume}"
            )
        dims[infer[0]] = shape.volume // known
    out = Shape(tuple(dims))
    if out.volume != shape.volume:
        raise ShapeMismatchError(
            f"reshape: volume mismatch, cannot reshape {shape.dims} (volume {shape.volume}) "
            f"into {out.dims} (volume {out.volume})"
        )
    return out


def flatten_shape(shape: Shape | Sequence[int], start_dim: int = 0, end_dim: int = -1) -> Shape:
    shape = _as_shape(shape)
    if shape.rank == 0:
        return Shape.scalar()
    s = normalize_dim(start_dim, shape.rank, "flatten")
    e = normalize_dim(end_dim, shape.rank, "flatten")
    if s > e:
        raise BoundsError(f"flatten: start_dim {start_dim} must be <= end_dim {end_dim}")
    dims = shape.dims
    return Shape(dims[:s] + (prod(dims[s : e + 1]),) + dims[e + 1 :])


def squeeze_shape(shape: Shape | Sequence[int], dim: Optional[int] = None) -> Shape:
    shape = _as_shape(shape)
    if dim is None:
        kept = tuple(d for d in shape.dims if d != 1)
        return Shape(kept) if kept else Shape.scalar()
    nd = normalize_dim(dim, shape.rank, "squeeze")
    if shape[nd] != 1:
        raise ShapeMismatchError(
            f"squeeze: dimension {dim} of shape {shape.dims} has size {shape[nd]}, expected 1"
        )
    kept = shape.dims[:nd] + shape.dims[nd + 1 :]
    return Shape(kept) if kept else Shape.scalar()


def unsqueeze_shape(shape: Shape | Sequence[int], dim: int) -> Shape:
    shape = _as_shape(shape)
    nd = normalize_dim(dim, shape.rank + 1, "unsqueeze")
    return Shape(shape.dims[:nd] + (1,) + shape.dims[nd:])


def concat_shape(shapes: Sequence[Shape | Sequence[int]], dim: int = 0) -> Shape:
    if not shapes:
        raise ShapeMismatchError("concat: at least one shape is required")
    shapes = [_as_shape(s) for s in shapes]
    first = shapes[0]
    nd = normalize_dim(dim, first.rank, "concat")
    total = 0
    for idx, s in enumerate(shapes):
        if s.rank != first.rank:
            raise ShapeMismatchError(
                f"concat: rank mismatch, shape {idx} {s.dims} vs {first.dims}"
            )
        for axis in range(first.rank):
            if axis != nd and s[axis] != first[axis]:
                raise ShapeMismatchError(
                    f"concat: shapes must match except in dimension {nd}, "
                    f"mismatch at dimension {axis}: {s.dims} vs {first.dims}"
                )
        total += s[nd]
    return Shape(first.dims[:nd] + (total,) + first.dims[nd + 1 :])


def split_shapes(shape: Shape | Sequence[int], split_size: int, dim: int = 0) -> list[Shape]:
    shape = _as_shape(shape)
    nd = normalize_dim(dim, shape.rank, "split")
    if split_size <= 0:
        raise BoundsError(f"split: split_size must be positive, got {split_size}")
    if shape[nd] % split_size != 0:
        raise ShapeMismatchError(
            f"split: dimension {nd} of shape {shape.dims} (size {shape[nd]}) "
            f"is not divisible by split_size {split_size}"
        )
    piece = Shape(shape.dims[:nd] + (split_size,) + shape.dims[nd + 1 :])
    return [piece] * (shape[nd] // split_size)


def reduce_shape(
    shape: Shape | Sequence[int], dim: Optional[int] = None, keepdim: bool = False
) -> Shape:
    """Result shape of sum/mean/variance over ``dim`` (or everything)."""
    shape = _as_shape(shape)
    if dim is None:
        if keepdim and shape.rank > 0:
            return Shape((1,) * shape.rank)
        return Shape.scalar()
    nd = normalize_dim(dim, shape.rank, "reduce")
    if keepdim:
        return Shape(shape.dims[:nd] + (1,) + shape.dims[nd + 1 :])
    kept = shape.dims[:nd] + shape.dims[nd + 1 :]
    return Shape(kept) if kept else Shape.scalar()


def transpose_shape(shape: Shape | Sequence[int]) -> Shape:
    """Swaps the last two dimensions only."""
    shape = _as_shape(shape)
    if shape.rank < 2:
        raise ShapeMismatchError(
            f"transpose: requires at least 2 dimensions, got {shape.dims}"
        )
    return Shape(shape.dims[:-2] + (shape.dims[-1], shape.dims[-2]))


def permute_shape(shape: Shape | Sequence[int], axes: Sequence[int]) -> Shape:
    shape = _as_shape(shape)
    if len(axes) != shape.rank:
        raise ShapeMismatchError(
            f"permute: {len(axes)} axes given for shape {shape.dims} of rank {shape.rank}"
        )
    axes = tuple(normalize_dim(a, shape.rank, "permute") for a in axes)
    if sorted(axes) != list(range(shape.rank)):
        raise ShapeMismatchError(f"permute: axes {axes} are not a permutation")
    return Shape(tuple(shape[a] for a in axes))
