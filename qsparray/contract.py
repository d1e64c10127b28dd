"""Contraction of block sparse tensors over matching axes."""

import itertools
import numbers

from . import dense, utils
from .errors import AxisMismatchError, StructuralInvariantError


def without(it, remove):
    """Return a tuple of the elements in ``it`` with those in ``remove``
    removed.
    """
    return tuple(i for i in it if i not in remove)


def parse_tensordot_axes(axes, ndim_a, ndim_b):
    """Parse the axes argument for single integer and also negative indices.
    Returning the 4 axes groups: free axes of ``a``, contracted axes of ``a``,
    contracted axes of ``b`` and free axes of ``b``.
    """
    if isinstance(axes, numbers.Integral):
        if not 0 <= axes <= min(ndim_a, ndim_b):
            raise AxisMismatchError(
                f"Cannot contract {axes} axes of tensors with {ndim_a} and "
                f"{ndim_b} dimensions."
            )
        axes_a = tuple(range(ndim_a - axes, ndim_a))
        axes_b = tuple(range(0, axes))
    else:
        axes_a, axes_b = axes
        axes_a = tuple(x % ndim_a for x in axes_a)
        axes_b = tuple(x % ndim_b for x in axes_b)
        if not len(axes_a) == len(axes_b):
            raise AxisMismatchError("Axes must have same length.")

    # axes left on the left and right tensors respectively
    left_axes = without(range(ndim_a), axes_a)
    right_axes = without(range(ndim_b), axes_b)

    return left_axes, axes_a, axes_b, right_axes


def check_contractible(a, b, ncon):
    """Check that the last ``ncon`` axes of ``a`` can be contracted with the
    first ``ncon`` axes of ``b``: equal extents and block counts, opposite
    directions and identical labels position by position.

    Raises
    ------
    AxisMismatchError
    """
    for i in range(ncon):
        ax_a = a.axes[a.ndim - ncon + i]
        ax_b = b.axes[i]
        pair = f"axis {a.ndim - ncon + i} of a and axis {i} of b"

        if ax_a.size_total != ax_b.size_total:
            raise AxisMismatchError(
                f"Extents of {pair} differ: "
                f"{ax_a.size_total} != {ax_b.size_total}."
            )
        if ax_a.num_blocks != ax_b.num_blocks:
            raise AxisMismatchError(
                f"Number of blocks of {pair} differ: "
                f"{ax_a.num_blocks} != {ax_b.num_blocks}."
            )
        if ax_a.direction != -ax_b.direction:
            raise AxisMismatchError(
                f"Directions of {pair} must be opposite, both are "
                f"{ax_a.direction}."
            )
        if ax_a.labels != ax_b.labels:
            raise AxisMismatchError(f"Labels of {pair} differ.")


def contract_block(a, b, ncon, new_idx, out):
    """Accumulate into ``out`` every product of blocks of ``a`` and ``b``
    that contributes to block ``new_idx`` of their contraction over ``ncon``
    axes.

    Parameters
    ----------
    a, b : BlockSparseTensor
        The tensors being contracted, already checked to be contractible.
    ncon : int
        The number of trailing axes of ``a`` contracted with the leading
        axes of ``b``.
    new_idx : tuple[int]
        The block multi-index of the result, free axes of ``a`` first.
    out : array_like
        The current value of the result block.

    Returns
    -------
    array_like
        The accumulated result block.
    """
    nfree_a = a.ndim - ncon
    left = new_idx[:nfree_a]
    right = new_idx[nfree_a:]

    for con_idx in itertools.product(*map(range, b.block_shape[:ncon])):
        idx_a = left + con_idx
        if not a.is_valid_block_index(idx_a):
            continue

        # labels of contracted axes agree, so this is valid too
        idx_b = con_idx + right
        try:
            block_a = a.blocks[idx_a]
            block_b = b.blocks[idx_b]
        except KeyError:
            raise StructuralInvariantError(
                f"Block {idx_a} of a or block {idx_b} of b is absent "
                "despite satisfying the conservation law."
            )

        out = dense.dot_accumulate(1.0, block_a, block_b, ncon, 1.0, out)

    return out


def _tensordot_trailing_leading(a, b, ncon):
    """Contract the last ``ncon`` axes of ``a`` with the first ``ncon`` axes
    of ``b``, blockwise.
    """
    check_contractible(a, b, ncon)

    new = a.__class__.from_axes(
        a.axes[: a.ndim - ncon] + b.axes[ncon:],
        dtype=a.dtype,
        like=a.backend,
    )

    new_blocks = {
        new_idx: contract_block(a, b, ncon, new_idx, out)
        for new_idx, out in new.blocks.items()
    }
    return new.copy_with(blocks=new_blocks)


def tensordot_blocksparse(a, b, axes=1, preserve_array=True):
    """Contract two block sparse tensors. Each result block is the sum, over
    every contracted block-coordinate combination satisfying the conservation
    law, of the dense tensordot of the matching blocks of ``a`` and ``b``.

    Parameters
    ----------
    a, b : BlockSparseTensor
        The tensors to be contracted.
    axes : int or tuple[Sequence[int], Sequence[int]], optional
        The axes to contract. If an integer, the last ``axes`` axes of ``a``
        are contracted with the first ``axes`` axes of ``b``, ``0`` giving the
        outer product. If a tuple, the axes to contract in ``a`` and ``b``
        respectively, which are first moved into that position.
    preserve_array : bool, optional
        Whether to return a rank 0 tensor, rather than a raw scalar, when all
        axes are contracted.

    Returns
    -------
    BlockSparseTensor or scalar
    """
    if not hasattr(b, "axes"):
        if getattr(b, "ndim", 0) == 0:
            # assume scalar
            return a * b
        raise TypeError(f"Expected BlockSparseTensor, got {type(b)}.")

    if utils.DEBUG:
        a.check()
        b.check()

    left_axes, axes_a, axes_b, right_axes = parse_tensordot_axes(
        axes, a.ndim, b.ndim
    )
    ncon = len(axes_a)

    perm_a = left_axes + axes_a
    if perm_a != tuple(range(a.ndim)):
        a = a.transpose(perm_a)
    perm_b = axes_b + right_axes
    if perm_b != tuple(range(b.ndim)):
        b = b.transpose(perm_b)

    c = _tensordot_trailing_leading(a, b, ncon)

    if utils.DEBUG:
        c.check()

    if (c.ndim == 0) and (not preserve_array):
        return c.blocks[()]

    return c

