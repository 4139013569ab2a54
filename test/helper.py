from itertools import product

import numpy as np
import pytest

from strided.tensor import Tensor

"""
ComparableTensor pairs a numpy array with a strided Tensor (or TensorView) holding
the same data. Indexing and structural ops are applied to both, so results can be
checked against numpy.
"""


class ComparableTensor:
    def __init__(self, *args, **kwargs):
        if len(args) == 2:
            self.a, self.b = args
            return
        self.a = np.array(*args, **kwargs)
        self.b = Tensor(self.a)

    @property
    def numpy(self):
        return self.a

    @property
    def strided(self):
        return self.b

    def __getitem__(self, idx):
        return ComparableTensor(self.a[idx], self.b[idx])

    def __getattr__(self, name):
        def method_forwarder(*args, **kwargs):
            result_a = getattr(self.a, name)(*args, **kwargs)
            result_b = getattr(self.b, name)(*args, **kwargs)
            return ComparableTensor(result_a, result_b)

        return method_forwarder

    def permute(self, *axes):
        return ComparableTensor(self.a.transpose(*axes), self.b.permute(*axes))

    def transpose(self):
        return ComparableTensor(np.swapaxes(self.a, -1, -2), self.b.transpose())

    def unsqueeze(self, dim):
        return ComparableTensor(np.expand_dims(self.a, dim), self.b.unsqueeze(dim))

    def __repr__(self):
        return f"<numpy {self.a}>\n<strided {self.b}>"

    @property
    def shape(self):
        assert self.a.shape == self.b.shape.dims
        return self.b.shape

    def assert_all(self):
        _assert_all(self.a, self.b)


def _assert_all(n, t):
    n = np.asarray(n)
    assert n.shape == t.shape.dims
    for idx in product(*(range(sh) for sh in n.shape)):
        assert n[idx] == t.get(idx)
    np.testing.assert_array_equal(n, t.numpy())


def _assert_except(n, t, f, exctype):
    with pytest.raises(exctype):
        f(n)
    with pytest.raises(exctype):
        f(t)
