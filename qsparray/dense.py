"""The dense array kernels that block sparse operations delegate to, for
every occupied block. All dispatch goes through ``autoray`` so that blocks
may be held by any array library it supports.
"""

import math

import autoray as ar


def allocate(shape, dtype="float64", like="numpy"):
    """Allocate a zero-filled dense array.

    Parameters
    ----------
    shape : tuple[int]
        The shape of the array, ``()`` for a scalar.
    dtype : str, optional
        The dtype name, translated to the backend's own dtype.
    like : str or array_like, optional
        The backend to allocate with, or an example array of it.
    """
    backend = like if isinstance(like, str) else ar.infer_backend(like)
    return ar.do(
        "zeros",
        tuple(shape),
        dtype=ar.to_backend_dtype(dtype, like=backend),
        like=backend,
    )


def scale(alpha, buffer):
    return buffer * alpha


def conjugate(buffer):
    return ar.do("conj", buffer)


def copy(buffer):
    return ar.do("copy", buffer)


def transpose(perm, buffer):
    """Permute the axes of ``buffer``, returning a fresh array rather than a
    view of the original.
    """
    return copy(ar.do("transpose", buffer, tuple(perm)))


def dot_accumulate(alpha, a, b, ncon, beta, c):
    """Contract the last ``ncon`` axes of ``a`` with the first ``ncon`` axes
    of ``b`` and return ``alpha * (a . b) + beta * c``.
    """
    ab = ar.do("tensordot", a, b, axes=ncon)
    if alpha != 1.0:
        ab = ab * alpha
    if beta == 0.0:
        return ab
    if beta != 1.0:
        c = c * beta
    return c + ab


def slice_copy(dst, axis, positions, src):
    """Copy ``src`` into ``dst`` inplace, with consecutive entries of ``src``
    along ``axis`` landing at ``positions`` of ``dst``. All axes before and
    after ``axis`` are copied whole, so trailing axes move as contiguous
    slices.
    """
    selector = (slice(None),) * axis + (list(positions),)
    dst[selector] = src
    return dst


def gather(array, positions):
    """Select ``positions[i]`` along each axis ``i`` of ``array``, where a
    ``None`` entry keeps that axis whole.
    """
    for ax, pos in enumerate(positions):
        if pos is None:
            continue
        selector = (slice(None),) * ax + (list(pos),)
        array = array[selector]
    return array


def reshape(buffer, shape):
    return ar.do("reshape", buffer, tuple(shape))


def concatenate(buffers, axis):
    return ar.do("concatenate", tuple(buffers), axis=axis)


def num_elements(shape):
    return math.prod(shape)


def allclose(a, b, **allclose_opts):
    return bool(ar.do("allclose", a, b, **allclose_opts))
