import itertools

import autoray as ar
import numpy as np
import pytest
from numpy.testing import assert_allclose

import qsparray as qs


def test_allocate_basics():
    x = qs.allocate((3, 3), (1, -1), ([-1, 0, 1], [-1, 0, 1]))
    x.check()
    assert x.shape == (3, 3)
    assert x.ndim == 2
    assert x.block_shape == (3, 3)
    assert x.num_blocks == 3
    assert tuple(x.blocks) == ((0, 0), (1, 1), (2, 2))
    assert x.sectors == ((-1, -1), (0, 0), (1, 1))
    assert x.get_sparsity() == pytest.approx(1 / 3)
    for array in x.blocks.values():
        assert array.shape == (1, 1)
        assert_allclose(array, 0.0)


def test_allocate_block_shapes():
    x = qs.allocate((4, 3), (1, 1), ([0, 1, 0, -1], [0, 1, -1]))
    assert x.get_block((0, 0)).shape == (2, 1)
    assert x.get_block((-1, 1)).shape == (1, 1)
    assert x.get_block((1, -1)).shape == (1, 1)
    assert x.num_blocks == 3


def test_allocate_invalid():
    with pytest.raises(qs.InvalidShapeError):
        qs.allocate((3, 2), (1, -1), ([0, 1, 2], [0, 1, 2]))
    with pytest.raises(qs.InvalidShapeError):
        qs.allocate((3,), (1, -1), ([0, 1, 2],))
    with pytest.raises(qs.InvalidShapeError):
        qs.allocate((0,), (1,), ([],))


def test_allocate_dtype():
    x = qs.allocate((2, 2), (1, -1), ([0, 1], [0, 1]), dtype="complex64")
    assert x.dtype == "complex64"
    assert x.get_block((1, 1)).dtype == np.complex64


def test_valid_block_indices():
    x = qs.utils.get_rand((3, 4, 5), seed=7)
    expected = [
        idx
        for idx in itertools.product(*map(range, x.block_shape))
        if x.is_valid_block_index(idx)
    ]
    assert list(x.gen_valid_block_indices()) == expected
    assert list(x.blocks) == expected


def test_get_block():
    x = qs.allocate((3, 3), (1, -1), ([-1, 0, 1], [-1, 0, 1]))
    x.blocks[1, 1][0, 0] = 3.0
    assert_allclose(qs.get_block(x, (0, 0)), [[3.0]])
    # valid labels but the block does not satisfy the conservation law
    assert x.get_block((0, 1)) is None
    # label not found on the axis
    assert x.get_block((5, 0)) is None
    assert x.get_block_index((1, 1)) == (2, 2)
    assert x.flat_block_index((2, 2)) == 8
    assert x.has_block((2, 2))
    assert not x.has_block((0, 2))


def test_scale_and_conjugate():
    x = qs.utils.get_rand((3, 4, 5), seed=42, dtype="complex128")
    xd = x.to_dense()

    y = x.copy(deep=True)
    z = qs.scale(2.0, y)
    assert z is y
    assert_allclose(y.to_dense(), 2.0 * xd)
    # original untouched
    assert_allclose(x.to_dense(), xd)

    qs.conjugate(y)
    assert_allclose(y.to_dense(), 2.0 * xd.conj())

    assert_allclose(x.scale(-1.0).to_dense(), -xd)
    assert_allclose(x.conj().to_dense(), xd.conj())
    assert_allclose(ar.do("conj", x).to_dense(), xd.conj())


def test_arithmetic():
    x = qs.utils.get_rand((3, 4), seed=3)
    xd = x.to_dense()
    assert_allclose((2 * x).to_dense(), 2 * xd)
    assert_allclose((x * 3).to_dense(), 3 * xd)
    assert_allclose((x / 2).to_dense(), xd / 2)
    assert_allclose((-x).to_dense(), -xd)
    assert x.norm() == pytest.approx(np.linalg.norm(xd))
    assert qs.norm(x) == pytest.approx(np.linalg.norm(xd))
    assert x.allclose(x.copy())


@pytest.mark.parametrize("seed", range(5))
@pytest.mark.parametrize("shape", [(3,), (3, 4), (2, 3, 4), (2, 2, 3, 2)])
def test_dense_round_trip(shape, seed):
    x = qs.utils.get_rand(shape, seed=seed)
    xd = x.to_dense()
    assert xd.shape == shape
    y = qs.from_dense(xd, x.directions, x.labels)
    assert y.allclose(x)
    assert_allclose(y.to_dense(), xd)


@pytest.mark.parametrize("seed", range(3))
def test_to_dense_zero_outside_blocks(seed):
    x = qs.utils.get_rand((3, 4, 3), seed=seed)
    xd = x.to_dense()
    for pos in itertools.product(*map(range, x.shape)):
        total = sum(
            d * labels[p]
            for d, labels, p in zip(x.directions, x.labels, pos)
        )
        if total != 0:
            assert xd[pos] == 0.0


def test_from_dense_projects():
    array = np.arange(1.0, 5.0).reshape(2, 2)
    x = qs.from_dense(array, (1, 1), ([0, 1], [0, 1]))
    assert x.num_blocks == 1
    assert_allclose(x.to_dense(), [[1.0, 0.0], [0.0, 0.0]])


def test_from_dense_invalid_blocks():
    array = np.arange(1.0, 5.0).reshape(2, 2)
    labels = ([0, 1], [0, 1])
    with pytest.warns(UserWarning):
        qs.from_dense(array, (1, 1), labels, invalid_blocks="warn")
    with pytest.raises(ValueError):
        qs.from_dense(array, (1, 1), labels, invalid_blocks="raise")
    # no problem if the dropped region is zero
    diag = np.diag([1.0, 2.0])
    x = qs.from_dense(diag, (1, -1), labels, invalid_blocks="raise")
    assert_allclose(x.to_dense(), diag)


@pytest.mark.parametrize("seed", range(3))
def test_transpose(seed):
    x = qs.utils.get_rand((2, 3, 4, 5), seed=seed)
    xd = x.to_dense()
    perm = (3, 1, 0, 2)
    y = x.transpose(perm)
    y.check()
    assert y.shape == (5, 3, 2, 4)
    assert y.directions == tuple(x.directions[p] for p in perm)
    assert_allclose(y.to_dense(), xd.transpose(perm))
    assert list(y.blocks) == sorted(y.blocks)
    assert_allclose(ar.do("transpose", x, perm).to_dense(), xd.transpose(perm))
    assert_allclose(x.T.to_dense(), xd.T)

    # transposing back recovers the original
    inv = tuple(np.argsort(perm))
    assert y.transpose(inv).allclose(x)


def test_transpose_does_not_alias():
    x = qs.utils.get_rand((3, 3), directions=(1, -1), seed=2)
    y = x.transpose((0, 1))
    for idx in y.blocks:
        y.blocks[idx][...] = 0.0
    assert not x.is_zero()


@pytest.mark.parametrize("perm", [(0, 0, 1), (0, 1), (0, 1, 3), "abc"])
def test_transpose_invalid(perm):
    x = qs.utils.get_rand((2, 3, 4), seed=1)
    with pytest.raises(qs.InvalidPermutationError):
        x.transpose(perm)


def test_conj_transpose():
    x = qs.utils.get_rand((3, 4), seed=5, dtype="complex128")
    xd = x.to_dense()
    assert_allclose(x.H.to_dense(), xd.conj().T)
    assert_allclose(qs.conj_transpose(x, (1, 0)).to_dense(), xd.conj().T)


def test_scalar_tensor():
    x = qs.allocate((), (), ())
    x.check()
    assert x.ndim == 0
    assert x.num_blocks == 1
    assert x.get_block(()).shape == ()
    assert x.to_dense().shape == ()

    y = qs.from_dense(np.array(3.0), (), ())
    assert y.item() == 3.0
    assert float(y) == 3.0
    assert y.transpose().item() == 3.0
    assert (2 * y).item() == 6.0


def test_free():
    x = qs.utils.get_rand((3, 4), seed=0)
    qs.free(x)
    assert x.is_freed
    assert x.num_blocks == 0
    with pytest.raises(ValueError):
        x.free()


def test_context_manager():
    with qs.allocate((2, 2), (1, -1), ([0, 1], [0, 1])) as x:
        assert x.num_blocks == 2
    assert x.is_freed


def test_check_catches_missing_block():
    x = qs.allocate((3, 3), (1, -1), ([-1, 0, 1], [-1, 0, 1]))
    x.blocks.pop((1, 1))
    with pytest.raises(ValueError):
        x.check()


def test_repr_and_str():
    x = qs.utils.get_rand((3, 4), seed=0)
    assert "BlockSparseTensor" in repr(x)
    assert "ndim=2" in str(x)
    x.free()
    assert "freed" in repr(x)


def test_double_conj_transpose_restores():
    x = qs.utils.get_rand((3, 3), directions=(1, -1), dtype="complex128")
    assert x.H.H.allclose(x)
    assert_allclose(x.H.H.to_dense(), x.to_dense())


def test_blockwise_maps_update_dtype():
    x = qs.utils.get_rand((3, 4), directions=(1, -1), seed=2)
    xd = x.to_dense()
    assert x.dtype == "float64"

    assert (x * 1j).dtype == "complex128"
    assert (1j * x).to_dense().dtype == np.complex128
    assert (x / 2j).dtype == "complex128"
    assert_allclose((x * 1j).to_dense(), 1j * xd)

    y = x.copy(deep=True)
    qs.scale(1j, y)
    assert y.dtype == "complex128"
    assert_allclose(y.to_dense(), 1j * xd)
    assert x.dtype == "float64"

    x *= 2j
    assert x.dtype == "complex128"
    assert_allclose(x.to_dense(), 2j * xd)


def test_no_reductions_or_array_namespace():
    # elementwise reductions are not defined for the sparse layout
    x = qs.utils.get_rand((3, 4), seed=1)
    for name in ("max", "min", "sum"):
        assert not hasattr(qs, name)
        assert not hasattr(x, name)
    assert not hasattr(x, "__array_namespace__")
