"""Common interface functions for `qsparray` tensor objects."""

import autoray as ar

from .core import BlockSparseTensor


def allocate(shape, directions, labels, dtype="float64", like="numpy"):
    """Allocate a zero-filled block sparse tensor, with a block for every
    combination of labels satisfying the conservation law. See
    :meth:`BlockSparseTensor.allocate`.
    """
    return BlockSparseTensor.allocate(
        shape, directions, labels, dtype=dtype, like=like
    )


def free(x):
    """Release the blocks and labels of a `qsparray` tensor."""
    x.free()


def get_block(x, labels):
    """Retrieve the dense block of a `qsparray` tensor with the given label
    along each axis, or ``None`` if there is no such block.
    """
    return x.get_block(labels)


def scale(alpha, x):
    """Multiply every block of a `qsparray` tensor by ``alpha``, inplace."""
    return x.scale(alpha, inplace=True)


def conjugate(x):
    """Complex conjugate every block of a `qsparray` tensor, inplace."""
    return x.conj(inplace=True)


def conj(x, **kwargs):
    """Conjugate a `qsparray` tensor."""
    return x.conj(**kwargs)


def to_dense(x):
    """Convert a `qsparray` tensor to a dense array."""
    return x.to_dense()


def from_dense(array, directions, labels, **kwargs):
    """Create a `qsparray` tensor from a dense array, keeping only entries
    in blocks that satisfy the conservation law.
    """
    return BlockSparseTensor.from_dense(array, directions, labels, **kwargs)


def transpose(a, axes=None, **kwargs):
    """Transpose a `qsparray` tensor."""
    return a.transpose(axes, **kwargs)


def conj_transpose(a, axes=None):
    """Transpose then conjugate a `qsparray` tensor."""
    return a.conj_transpose(axes)


def tensordot(a, b, axes=2, **kwargs):
    """Contract two `qsparray` tensors along the specified axes.

    Parameters
    ----------
    a : BlockSparseTensor
        First tensor to contract.
    b : BlockSparseTensor
        Second tensor to contract.
    axes : int or tuple of int, optional
        If an integer, the number of axes to contract. If a tuple, the axes
        to contract. Default is 2.
    """
    kwargs.setdefault("preserve_array", False)
    try:
        return a.tensordot(b, axes, **kwargs)
    except AttributeError:
        if getattr(a, "ndim", 0) == 0:
            # likely called as effective scalar multiplication of block array
            return a * b
        else:
            raise TypeError(
                f"Expected BlockSparseTensor, got {type(a).__name__}."
            )


def norm(x):
    """Return the frobenius norm of a `qsparray` tensor."""
    return x.norm()


# non-standard 'composed' functions


def flatten_axes(x, axis, new_direction=None, **kwargs):
    """Merge axes ``axis`` and ``axis + 1`` of a `qsparray` tensor."""
    return x.flatten_axes(axis, new_direction, **kwargs)


ar.register_function("qsparray", "flatten_axes", flatten_axes)


def fuse(x, *axes, **kwargs):
    """Merge a contiguous run of axes of a `qsparray` tensor."""
    return x.fuse(*axes, **kwargs)


ar.register_function("qsparray", "fuse", fuse)
ar.register_function("qsparray", "conj_transpose", conj_transpose)
ar.register_function("qsparray", "to_dense", to_dense)
