import numpy as np
import pytest
from numpy.testing import assert_allclose

from qsparray import dense


def test_allocate():
    x = dense.allocate((2, 3), dtype="complex128")
    assert x.shape == (2, 3)
    assert x.dtype == np.complex128
    assert_allclose(x, 0.0)
    assert dense.allocate(()).shape == ()


@pytest.mark.parametrize("beta", (0.0, 1.0, 2.0))
def test_dot_accumulate(beta):
    rng = np.random.default_rng(42)
    a = rng.normal(size=(2, 3, 4))
    b = rng.normal(size=(3, 4, 5))
    c = rng.normal(size=(2, 5))
    out = dense.dot_accumulate(0.5, a, b, 2, beta, c)
    assert_allclose(out, 0.5 * np.tensordot(a, b, 2) + beta * c)


def test_transpose_is_fresh():
    x = np.arange(6.0).reshape(2, 3)
    y = dense.transpose((1, 0), x)
    y[0, 0] = 100.0
    assert x[0, 0] == 0.0
    assert_allclose(y[1:], x.T[1:])


def test_slice_copy():
    dst = np.zeros((2, 4))
    src = np.arange(4.0).reshape(2, 2)
    dense.slice_copy(dst, 1, (3, 0), src)
    assert_allclose(dst, [[1.0, 0.0, 0.0, 0.0], [3.0, 0.0, 0.0, 2.0]])


def test_gather():
    x = np.arange(12.0).reshape(3, 4)
    y = dense.gather(x, [(2, 0), None])
    assert_allclose(y, x[[2, 0], :])
    z = dense.gather(x, [(1,), (3, 1)])
    assert_allclose(z, [[7.0, 5.0]])


def test_num_elements():
    assert dense.num_elements((2, 3, 4)) == 24
    assert dense.num_elements(()) == 1


def test_no_free_kernel():
    # releasing storage is done by the tensor dropping its block references
    assert not hasattr(dense, "free")
