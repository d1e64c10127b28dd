import autoray as ar
import numpy as np
import pytest
from numpy.testing import assert_allclose

import qsparray as qs
from qsparray.utils_test import rand_contractible_pair


@pytest.mark.parametrize("seed", range(20))
def test_tensordot_matches_dense(seed):
    a, b, ncon = rand_contractible_pair(seed=seed)
    c = a.tensordot(b, ncon)
    c.check()
    assert c.ndim == a.ndim + b.ndim - 2 * ncon
    assert_allclose(
        c.to_dense(),
        np.tensordot(a.to_dense(), b.to_dense(), ncon),
        atol=1e-12,
    )


@pytest.mark.parametrize("ncon", (0, 1, 2))
def test_tensordot_ncon(ncon):
    a, b, _ = rand_contractible_pair(ndim_a=2, ndim_b=3, ncon=ncon, seed=ncon)
    c = qs.tensordot(a, b, ncon)
    assert_allclose(
        c.to_dense(),
        np.tensordot(a.to_dense(), b.to_dense(), ncon),
        atol=1e-12,
    )


def test_tensordot_full_contraction():
    a, b, _ = rand_contractible_pair(ndim_a=3, ndim_b=3, ncon=3, seed=1)
    expected = np.tensordot(a.to_dense(), b.to_dense(), 3)
    c = a.tensordot(b, 3)
    assert c.ndim == 0
    assert c.item() == pytest.approx(float(expected))
    s = ar.do("tensordot", a, b, axes=3)
    assert float(s) == pytest.approx(float(expected))


def test_tensordot_tuple_axes():
    rng = np.random.default_rng(3)
    ax_x, ax_y, ax_z, ax_w = (
        qs.utils.rand_axis(d, seed=rng) for d in (2, 3, 4, 2)
    )
    a = qs.BlockSparseTensor.random((ax_x, ax_y, ax_z), seed=rng)
    b = qs.BlockSparseTensor.random(
        (ax_z.conj(), ax_w, ax_y.conj()), seed=rng
    )
    c = ar.do("tensordot", a, b, axes=((1, 2), (2, 0)))
    assert_allclose(
        c.to_dense(),
        np.tensordot(a.to_dense(), b.to_dense(), ((1, 2), (2, 0))),
        atol=1e-12,
    )


def test_matmul_and_associativity():
    rng = np.random.default_rng(7)
    ax1, ax2, ax3, ax4 = (
        qs.utils.rand_axis(d, seed=rng) for d in (3, 4, 5, 2)
    )
    a = qs.BlockSparseTensor.random((ax1, ax2), seed=rng)
    b = qs.BlockSparseTensor.random((ax2.conj(), ax3), seed=rng)
    c = qs.BlockSparseTensor.random((ax3.conj(), ax4), seed=rng)
    left = (a @ b) @ c
    right = a @ (b @ c)
    assert left.allclose(right)
    assert_allclose(
        left.to_dense(),
        a.to_dense() @ b.to_dense() @ c.to_dense(),
        atol=1e-12,
    )


def test_vector_inner_product():
    ax = qs.BlockAxis([0, 1, 0, -1], 1)
    v = qs.BlockSparseTensor.random((ax,), seed=0)
    w = qs.BlockSparseTensor.random((ax.conj(),), seed=1)
    assert float(v @ w) == pytest.approx(
        float(v.to_dense() @ w.to_dense())
    )


def test_contract_result_conserves_labels():
    a, b, ncon = rand_contractible_pair(ndim_a=3, ndim_b=3, ncon=1, seed=9)
    c = a.tensordot(b, ncon)
    for idx in c.blocks:
        assert c.is_valid_block_index(idx)
    assert c.axes == a.axes[:2] + b.axes[1:]


def test_contract_block():
    from qsparray.contract import contract_block

    a, b, ncon = rand_contractible_pair(ndim_a=2, ndim_b=2, ncon=1, seed=5)
    c = a.tensordot(b, ncon)
    for idx, block in c.blocks.items():
        out = np.zeros_like(block)
        assert_allclose(contract_block(a, b, ncon, idx, out), block)


def test_axis_mismatch_labels():
    a = qs.allocate((2, 3), (1, 1), ([0, 1], [0, 1, 2]))
    b = qs.allocate((3, 4), (-1, 1), ([0, 1, 1], [0, 1, 2, 3]))
    with pytest.raises(qs.AxisMismatchError):
        a.tensordot(b, 1)


def test_axis_mismatch_extent():
    a = qs.allocate((2, 3), (1, 1), ([0, 1], [0, 1, 2]))
    b = qs.allocate((2, 4), (-1, 1), ([0, 1], [0, 1, 2, 3]))
    with pytest.raises(qs.AxisMismatchError):
        a.tensordot(b, 1)


def test_axis_mismatch_direction():
    a = qs.allocate((2, 3), (1, 1), ([0, 1], [0, 1, 2]))
    b = qs.allocate((3, 4), (1, 1), ([0, 1, 2], [0, 1, 2, 3]))
    with pytest.raises(qs.AxisMismatchError):
        a.tensordot(b, 1)


def test_axis_mismatch_same_block_count():
    a = qs.allocate((2, 3), (1, 1), ([0, 1], [0, 1, 1]))
    b = qs.allocate((3, 4), (-1, 1), ([1, 0, 1], [0, 1, 2, 3]))
    with pytest.raises(qs.AxisMismatchError):
        a.tensordot(b, 1)


@pytest.mark.parametrize("ncon", (-1, 3))
def test_axis_mismatch_ncon(ncon):
    a, b, _ = rand_contractible_pair(ndim_a=2, ndim_b=2, ncon=1, seed=0)
    with pytest.raises(qs.AxisMismatchError):
        a.tensordot(b, ncon)


def test_missing_block_is_structural_error():
    from qsparray.utils import set_debug

    set_debug(False)
    a = qs.allocate((2, 2), (1, -1), ([0, 1], [0, 1]))
    b = qs.allocate((2, 2), (1, -1), ([0, 1], [0, 1]))
    b.blocks.pop((1, 1))
    with pytest.raises(qs.StructuralInvariantError):
        a.tensordot(b, 1)
