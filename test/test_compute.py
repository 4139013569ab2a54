from itertools import product

import pytest
import torch
import torch.nn.functional as F

from strided.errors import BoundsError, ShapeMismatchError
from strided.shape.compute import (
    avg_pool2d_shape,
    broadcast_all,
    broadcast_shapes,
    concat_shape,
    conv2d_shape,
    elementwise_shape,
    flatten_shape,
    matmul_shape,
    max_pool2d_shape,
    permute_shape,
    reduce_shape,
    reshape_shape,
    split_shapes,
    squeeze_shape,
    transpose_shape,
    unsqueeze_shape,
)
from strided.shape.shape import Shape


def _torch_shape(t: torch.Tensor) -> tuple[int, ...]:
    return tuple(t.shape)


def test_broadcast():
    assert elementwise_shape((4, 1, 3), (1, 5, 3)).dims == (4, 5, 3)
    with pytest.raises(ShapeMismatchError) as e:
        elementwise_shape((4, 2, 3), (4, 5, 3))
    assert "(4, 2, 3)" in str(e.value) and "(4, 5, 3)" in str(e.value)
    assert "add" in str(e.value)


def test_broadcast_against_torch():
    shapes = [(), (1,), (3,), (2, 1), (2, 3), (1, 3), (4, 1, 3), (1, 2, 1)]
    for a, b in product(shapes, shapes):
        try:
            expected = tuple(torch.broadcast_shapes(a, b))
        except RuntimeError:
            with pytest.raises(ShapeMismatchError):
                broadcast_shapes(a, b)
            continue
        assert broadcast_shapes(a, b).dims == expected


def test_broadcast_symmetry():
    shapes = [(1,), (3,), (2, 1), (2, 3), (5, 1, 3), (1, 4, 1)]
    for a, b in product(shapes, shapes):
        try:
            ab = broadcast_shapes(a, b)
        except ShapeMismatchError:
            with pytest.raises(ShapeMismatchError):
                broadcast_shapes(b, a)
            continue
        assert ab == broadcast_shapes(b, a)


def test_broadcast_all():
    assert broadcast_all((3,), (2, 1), (4, 1, 1)).dims == (4, 2, 3)
    with pytest.raises(ShapeMismatchError):
        broadcast_all()


def test_matmul():
    assert matmul_shape((2, 3, 4), (4, 5)).dims == (2, 3, 5)
    with pytest.raises(ShapeMismatchError) as e:
        matmul_shape((3, 4), (5, 2))
    assert "4 != 5" in str(e.value)
    assert matmul_shape((4,), (4,)) == Shape.scalar()
    with pytest.raises(ShapeMismatchError):
        matmul_shape((), (4,))


def test_matmul_against_torch():
    cases = [
        ((3, 4), (4, 5)),
        ((2, 3, 4), (4, 5)),
        ((4,), (4, 5)),
        ((3, 4), (4,)),
        ((2, 1, 3, 4), (5, 4, 2)),
        ((4,), (2, 4, 5)),
        ((2, 3, 4), (4,)),
        ((2, 3, 4), (3, 4, 5)),
    ]
    for a, b in cases:
        try:
            expected = _torch_shape(torch.matmul(torch.empty(a), torch.empty(b)))
        except RuntimeError:
            with pytest.raises(ShapeMismatchError):
                matmul_shape(a, b)
            continue
        assert matmul_shape(a, b).dims == expected


def test_conv2d():
    out = conv2d_shape((1, 3, 32, 32), (16, 3, 3, 3), stride=(1, 1), padding=(1, 1), dilation=(1, 1))
    assert out.dims == (1, 16, 32, 32)
    with pytest.raises(ShapeMismatchError):
        conv2d_shape((3, 32, 32), (16, 3, 3, 3))
    with pytest.raises(ShapeMismatchError):
        conv2d_shape((1, 4, 32, 32), (16, 3, 3, 3))
    with pytest.raises(ShapeMismatchError):
        conv2d_shape((1, 3, 2, 2), (16, 3, 3, 3))
    with pytest.raises(BoundsError):
        conv2d_shape((1, 3, 8, 8), (16, 3, 3, 3), stride=0)


def test_conv2d_against_torch():
    for (n, c, h, w), (oc, k), stride, padding, dilation, groups in product(
        [(1, 4, 9, 9), (2, 4, 16, 11)],
        [(8, 3), (4, 1), (8, 2)],
        [1, 2, (2, 1)],
        [0, 1, (1, 2)],
        [1, 2],
        [1, 2, 4],
    ):
        x, wt = (n, c, h, w), (oc, c // groups, k, k)
        expected = _torch_shape(
            F.conv2d(torch.empty(x), torch.empty(wt), None, stride, padding, dilation, groups)
        )
        assert conv2d_shape(x, wt, stride, padding, dilation, groups).dims == expected


def test_conv2d_groups():
    assert conv2d_shape((1, 4, 8, 8), (6, 2, 3, 3), groups=2).dims == (1, 6, 6, 6)
    with pytest.raises(ShapeMismatchError):
        conv2d_shape((1, 4, 8, 8), (5, 2, 3, 3), groups=2)


def test_pool2d_against_torch():
    for x, kernel, stride, padding in product(
        [(1, 3, 8, 8), (2, 1, 9, 7)],
        [1, 2, 3, (2, 3)],
        [None, 1, 2, (1, 2)],
        [0, 1],
    ):
        kmin = min(kernel) if isinstance(kernel, tuple) else kernel
        if padding * 2 > kmin:
            continue
        t = torch.empty(x)
        expected = _torch_shape(F.max_pool2d(t, kernel, stride, padding))
        assert max_pool2d_shape(x, kernel, stride, padding).dims == expected
        expected = _torch_shape(F.avg_pool2d(t, kernel, stride, padding))
        assert avg_pool2d_shape(x, kernel, stride, padding).dims == expected


def test_pool2d_errors():
    with pytest.raises(ShapeMismatchError):
        max_pool2d_shape((3, 8, 8), 2)
    with pytest.raises(ShapeMismatchError):
        max_pool2d_shape((1, 3, 2, 2), 3)
    with pytest.raises(BoundsError):
        avg_pool2d_shape((1, 3, 8, 8), 0)


def test_reshape():
    assert reshape_shape((2, 3, 4), (6, 4)).dims == (6, 4)
    assert reshape_shape((2, 3, 4), (-1, 4)).dims == (6, 4)
    assert reshape_shape(Shape((2, 3, 4)), Shape((24,))).dims == (24,)
    with pytest.raises(ShapeMismatchError) as e:
        reshape_shape((2, 3, 4), (5, 5))
    assert "volume" in str(e.value)
    with pytest.raises(ShapeMismatchError):
        reshape_shape((2, 3, 4), (-1, -1))
    with pytest.raises(ShapeMismatchError):
        reshape_shape((2, 3, 4), (-1, 5))


def test_flatten():
    assert flatten_shape((2, 3, 4, 5), 1, 2).dims == (2, 12, 5)
    assert flatten_shape((2, 3, 4), 0, -1).dims == (24,)
    assert flatten_shape((2, 3, 4), -2).dims == (2, 12)
    assert flatten_shape((), 0) == Shape.scalar()
    with pytest.raises(BoundsError):
        flatten_shape((2, 3, 4), 2, 1)
    with pytest.raises(BoundsError):
        flatten_shape((2, 3, 4), 0, 3)


def test_volume_conservation():
    dims = (2, 3, 4)
    for s, e in product(range(-3, 3), range(-3, 3)):
        try:
            out = flatten_shape(dims, s, e)
        except BoundsError:
            continue
        assert out.volume == 24
    for target in [(24,), (4, 6), (2, 2, 6), (-1, 2), (1, 24, 1)]:
        assert reshape_shape(dims, target).volume == 24


def test_squeeze_unsqueeze():
    assert squeeze_shape((1, 3, 1, 2)).dims == (3, 2)
    assert squeeze_shape((1, 1)) == Shape.scalar()
    assert squeeze_shape((1, 3, 1, 2), 2).dims == (1, 3, 2)
    assert squeeze_shape((1,), 0) == Shape.scalar()
    with pytest.raises(ShapeMismatchError):
        squeeze_shape((1, 3), 1)
    assert unsqueeze_shape((3, 2), 0).dims == (1, 3, 2)
    assert unsqueeze_shape((3, 2), 2).dims == (3, 2, 1)
    assert unsqueeze_shape((3, 2), -1).dims == (3, 2, 1)
    with pytest.raises(BoundsError):
        unsqueeze_shape((3, 2), 3)


def test_concat():
    assert concat_shape([(2, 3), (4, 3), (1, 3)], 0).dims == (7, 3)
    assert concat_shape([(2, 3), (2, 5)], -1).dims == (2, 8)
    with pytest.raises(ShapeMismatchError) as e:
        concat_shape([(2, 3), (2, 4)], 0)
    assert "dimension 1" in str(e.value)
    with pytest.raises(ShapeMismatchError):
        concat_shape([(2, 3), (2, 3, 1)], 0)
    with pytest.raises(ShapeMismatchError):
        concat_shape([], 0)


def test_split():
    pieces = split_shapes((6, 4), 2, 0)
    assert [p.dims for p in pieces] == [(2, 4)] * 3
    assert [p.dims for p in split_shapes((6, 4), 4, 1)] == [(6, 4)]
    with pytest.raises(ShapeMismatchError):
        split_shapes((6, 4), 4, 0)
    with pytest.raises(BoundsError):
        split_shapes((6, 4), 0, 0)


def test_reduce():
    assert reduce_shape((2, 3, 4)) == Shape.scalar()
    assert reduce_shape((2, 3, 4), 1).dims == (2, 4)
    assert reduce_shape((2, 3, 4), -1).dims == (2, 3)
    assert reduce_shape((5,), 0) == Shape.scalar()
    assert reduce_shape((2, 3, 4), 1, keepdim=True).dims == (2, 1, 4)
    assert reduce_shape((2, 3), keepdim=True).dims == (1, 1)
    for dims, dim in product([(2, 3, 4), (3, 1)], [0, 1, -1]):
        t = torch.empty(dims)
        assert reduce_shape(dims, dim, keepdim=True).dims == _torch_shape(t.sum(dim, keepdim=True))
        assert reduce_shape(dims, dim).dims == _torch_shape(t.sum(dim))
    with pytest.raises(BoundsError):
        reduce_shape((2, 3), 2)


def test_transpose():
    assert transpose_shape((2, 3)).dims == (3, 2)
    assert transpose_shape((2, 3, 4)).dims == (2, 4, 3)
    with pytest.raises(ShapeMismatchError):
        transpose_shape((3,))


def test_permute():
    assert permute_shape((2, 3, 4), (2, 0, 1)).dims == (4, 2, 3)
    assert permute_shape((2, 3, 4), (-1, 0, 1)).dims == (4, 2, 3)
    with pytest.raises(ShapeMismatchError):
        permute_shape((2, 3, 4), (0, 0, 1))
    with pytest.raises(ShapeMismatchError):
        permute_shape((2, 3, 4), (0, 1))
