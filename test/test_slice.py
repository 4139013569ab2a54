from itertools import product

import pytest

from strided.errors import BoundsError
from strided.shape.shape import Shape
from strided.shape.slice import (
    SLICE_VARIANTS,
    All,
    At,
    Range,
    Slice,
    Step,
    compute_sliced_shape,
    validate_slices,
)


def _enumerate(s: Slice, size: int) -> list[int]:
    """Indices the slice selects, spelled with a Python slice."""
    s = s.normalize(size)
    if isinstance(s, All):
        return list(range(size))
    elif isinstance(s, Range):
        return list(range(size))[s.start : s.end]
    elif isinstance(s, Step):
        return list(range(size))[s.start : s.end : s.step]
    raise AssertionError(s)


def test_normalize():
    assert Range(-3, -1).normalize(5) == Range(2, 4)
    assert At(-1).normalize(5) == At(4)
    assert Step(-4, 5, 2).normalize(5) == Step(1, 5, 2)
    assert All().normalize(5) == All()


def test_result_size():
    assert Range(0, 2).result_size(4) == 2
    assert At(2).result_size(5) == 0
    assert All().result_size(7) == 7
    assert Step(0, 5, 2).result_size(5) == 3
    assert Step(1, 6, 2).result_size(6) == 3
    assert Step(0, 6, 3).result_size(6) == 2


def test_result_size_round_trip():
    size = 7
    candidates = [All()]
    for start, end in product(range(-size, size), range(-size, size + 1)):
        candidates.append(Range(start, end))
        for step in (1, 2, 3, 5):
            candidates.append(Step(start, end, step))
    checked = 0
    for s in candidates:
        if not s.is_valid(size):
            continue
        assert s.result_size(size) == len(_enumerate(s, size)), s
        checked += 1
    assert checked > 100


def test_invalid():
    assert not Range(2, 2).is_valid(5)
    assert not Range(3, 1).is_valid(5)
    assert not Range(0, 6).is_valid(5)
    assert not At(5).is_valid(5)
    assert not At(-6).is_valid(5)
    assert At(-5).is_valid(5)
    with pytest.raises(BoundsError):
        Step(0, 4, 0)
    with pytest.raises(BoundsError):
        Step(0, 4, -1)
    with pytest.raises(BoundsError) as e:
        Range(3, 1).validate(5, 2)
    assert "dimension 2" in str(e.value)
    assert "start >= end" in str(e.value)
    with pytest.raises(IndexError):
        At(9).validate(5)


def test_properties():
    assert not At(0).keeps_dim
    assert all(s.keeps_dim for s in (Range(0, 1), All(), Step(0, 2, 2)))
    assert Step(0, 4, 2).has_non_trivial_stride()
    assert not Step(0, 4, 1).has_non_trivial_stride()
    assert not Step(0, 4, 2).is_contiguous()
    assert Range(1, 3).is_contiguous()
    assert Step(0, 4, 3).stride_multiplier == 3
    assert Range(0, 4).stride_multiplier == 1
    assert Range(3, 3).is_empty()
    assert not Range(-2, 3).is_empty()
    assert not At(1).is_empty()
    assert Range(0, 4).is_full(4)
    assert Range(-4, 4).is_full(4)
    assert not Range(0, 3).is_full(4)
    assert not At(0).is_full(1)
    assert not Step(0, 4, 2).is_full(4)
    assert All().is_full(0)


def test_variants_exhaustive():
    assert set(SLICE_VARIANTS) == {Range, At, All, Step}
    for s in (Range(0, 1), At(0), All(), Step(0, 1, 1)):
        assert isinstance(s, Slice)
        s.normalize(1)
        s.result_size(1)
        s.invalid_reason(1)

    class Other(Slice):
        pass

    with pytest.raises(TypeError):
        Other().normalize(3)
    with pytest.raises(TypeError):
        validate_slices(Shape((3,)), [slice(0, 1)])


def test_validate_slices():
    parent = Shape((4, 3, 2))
    with pytest.raises(BoundsError) as e:
        validate_slices(parent, [All(), All()])
    assert "(2)" in str(e.value) and "(3)" in str(e.value)
    assert validate_slices(parent, [Range(-2, 4), At(-1), All()]) == (Range(2, 4), At(2), All())


def test_compute_sliced_shape():
    assert compute_sliced_shape(Shape((4, 3, 2)), [Range(0, 2), All(), All()]).dims == (2, 3, 2)
    assert compute_sliced_shape(Shape((5,)), [At(2)]).dims == ()
    assert compute_sliced_shape(Shape((8, 3)), [Step(1, 8, 3), At(0)]).dims == (3,)


def test_repr():
    assert repr([Range(0, 2), At(1), All(), Step(0, 4, 2)]) == "[Range(0, 2), At(1), All(), Step(0, 4, 2)]"
