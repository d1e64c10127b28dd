"""Merging adjacent axes of block sparse tensors."""

import os
from collections import OrderedDict

import autoray as ar

from . import dense, utils
from .errors import InvalidShapeError, StructuralInvariantError
from .index import BlockAxis, check_direction
from .partition import combine_labels, inverse_permutation
from .utils import replace_pair


def calc_flatten_info(ax0, ax1, new_direction):
    """Calculate how the blocks of two adjacent axes land in the merged axis.

    Parameters
    ----------
    ax0, ax1 : BlockAxis
        The two axes to merge, ``ax0`` being the slower varying.
    new_direction : {1, -1}
        The direction of the merged axis.

    Returns
    -------
    merged : BlockAxis
        The merged axis, whose logical position ``(j, k)`` is
        ``j * ax1.size_total + k``.
    pairmap : dict[tuple[int, int], tuple[int, tuple[int]]]
        For each pair of block-coordinates ``(i0, i1)`` of the two axes, the
        block-coordinate of the merged axis they land in, and the block-local
        positions there of each row of the reshaped source block.
    """
    merged = BlockAxis(
        combine_labels(
            ax0.labels, ax0.direction, ax1.labels, ax1.direction, new_direction
        ),
        new_direction,
    )
    n1 = ax1.size_total

    pairmap = {}
    fan_ins = {}
    for i0, q0 in enumerate(ax0.block_labels):
        for i1, q1 in enumerate(ax1.block_labels):
            q = new_direction * (ax0.direction * q0 + ax1.direction * q1)
            j = merged.position_of(q)
            if j is None:
                raise StructuralInvariantError(
                    f"Merged label {q} is missing from the flattened axis."
                )
            try:
                fin = fan_ins[j]
            except KeyError:
                fin = fan_ins[j] = merged.fan_in(j)

            pairmap[i0, i1] = (
                j,
                tuple(
                    fin[p0 * n1 + p1]
                    for p0 in ax0.fan_out(i0)
                    for p1 in ax1.fan_out(i1)
                ),
            )

    return merged, pairmap


_flatteninfos = OrderedDict()

try:
    _flatteninfo_cache_maxsize = int(
        os.environ["QSPARRAY_FLATTEN_CACHE_MAXSIZE"]
    )
    print(f"Using QSPARRAY_FLATTEN_CACHE_MAXSIZE={_flatteninfo_cache_maxsize}.")
except KeyError:
    _flatteninfo_cache_maxsize = 4096
except (TypeError, ValueError):
    print("QSPARRAY_FLATTEN_CACHE_MAXSIZE must be an integer, using default.")
    _flatteninfo_cache_maxsize = 4096

_fl_missed = 0
_fl_hit = 0


def print_flatten_cache_stats():
    total = _fl_missed + _fl_hit
    print(
        f"Cache size: {len(_flatteninfos)}\n"
        f"missed: {_fl_missed}, hit: {_fl_hit}\n"
        f"ratio: {_fl_missed / total if total else 0.0:.2f}\n"
    )


def clear_flatten_cache():
    global _fl_missed, _fl_hit
    _flatteninfos.clear()
    _fl_missed = _fl_hit = 0


def cached_flatten_info(ax0, ax1, new_direction):
    """Calculating the flattening remap is expensive, so cache the results in
    a LRU cache keyed by the two axes and the new direction.
    """
    if _flatteninfo_cache_maxsize == 0:
        # cache disabled
        return calc_flatten_info(ax0, ax1, new_direction)

    key = (ax0.hashkey(), ax1.hashkey(), new_direction)

    try:
        res = _flatteninfos[key]
        # mark as most recently used
        _flatteninfos.move_to_end(key)
        global _fl_hit
        _fl_hit += 1
    except KeyError:
        res = _flatteninfos[key] = calc_flatten_info(ax0, ax1, new_direction)
        if len(_flatteninfos) > _flatteninfo_cache_maxsize:
            # cache is full, remove the oldest entry
            _flatteninfos.popitem(last=False)
        global _fl_missed
        _fl_missed += 1

    return res


def _gen_flattened_pieces(x, axis, pairmap):
    """For every occupied block of ``x``, yield the destination block
    multi-index, the destination positions along ``axis``, and the source
    block with axes ``axis`` and ``axis + 1`` merged.
    """
    for idx, array in x.blocks.items():
        j, positions = pairmap[idx[axis], idx[axis + 1]]
        new_idx = replace_pair(idx, axis, j)
        shape = ar.shape(array)
        new_shape = replace_pair(shape, axis, shape[axis] * shape[axis + 1])
        yield new_idx, positions, dense.reshape(array, new_shape)


def _flatten_blocks_via_insert(x, new, axis, pairmap):
    """Perform the flattening by copying slices of each source block into
    preallocated destination blocks.
    """
    for new_idx, positions, array in _gen_flattened_pieces(x, axis, pairmap):
        try:
            dst = new.blocks[new_idx]
        except KeyError:
            raise StructuralInvariantError(
                f"Destination block {new_idx} of flattened tensor is absent."
            )
        new.blocks[new_idx] = dense.slice_copy(dst, axis, positions, array)


def _flatten_blocks_via_concat(x, new, axis, pairmap):
    """Perform the flattening by concatenating the pieces for each destination
    block then reordering them, without mutating any arrays.
    """
    pieces = {}
    for new_idx, positions, array in _gen_flattened_pieces(x, axis, pairmap):
        if new_idx not in new.blocks:
            raise StructuralInvariantError(
                f"Destination block {new_idx} of flattened tensor is absent."
            )
        pieces.setdefault(new_idx, []).append((positions, array))

    for new_idx in new.blocks:
        try:
            block_pieces = pieces[new_idx]
        except KeyError:
            raise StructuralInvariantError(
                f"Destination block {new_idx} of flattened tensor has no "
                "source blocks."
            )
        positions = [p for ps, _ in block_pieces for p in ps]
        if len(positions) != new.get_block_shape(new_idx)[axis]:
            raise StructuralInvariantError(
                f"Destination block {new_idx} of flattened tensor is not "
                "fully covered by source blocks."
            )
        array = dense.concatenate([a for _, a in block_pieces], axis=axis)
        order = inverse_permutation(positions)
        new.blocks[new_idx] = dense.gather(array, (None,) * axis + (order,))


_FLATTEN_MODES = {
    "insert": _flatten_blocks_via_insert,
    "concat": _flatten_blocks_via_concat,
}


def flatten_axes(x, axis, new_direction=None, mode="auto"):
    """Merge axes ``axis`` and ``axis + 1`` of block sparse tensor ``x`` into
    a single axis of extent ``d0 * d1``. Logical position ``(j, k)`` of the
    pair lands at ``j * d1 + k``, i.e. the result matches a row-major reshape
    of the equivalent dense array.

    Parameters
    ----------
    x : BlockSparseTensor
        The tensor to flatten.
    axis : int
        The first of the two axes to merge, negative values counting from the
        end.
    new_direction : {1, -1}, optional
        The direction of the merged axis, by default that of ``axis``.
    mode : {"auto", "insert", "concat"}, optional
        How to build the merged blocks. "insert" copies slices into
        preallocated blocks and so requires a backend supporting inplace
        assignment. "concat" uses only concatenation and indexing, which is
        friendly to autodiff backends. "auto" uses "insert" for numpy and
        "concat" otherwise.

    Returns
    -------
    BlockSparseTensor
    """
    ndim = x.ndim
    if axis < 0:
        axis += ndim
    if axis < 0 or axis + 1 >= ndim:
        raise InvalidShapeError(
            f"Cannot flatten axis {axis} with the next axis of a "
            f"{ndim}-dimensional tensor."
        )

    ax0, ax1 = x.axes[axis], x.axes[axis + 1]
    if new_direction is None:
        new_direction = ax0.direction
    new_direction = check_direction(new_direction)

    if mode == "auto":
        mode = "insert" if x.backend == "numpy" else "concat"
    try:
        _flatten_blocks = _FLATTEN_MODES[mode]
    except KeyError:
        raise ValueError(f"Unknown flatten mode {mode!r}.")

    merged, pairmap = cached_flatten_info(ax0, ax1, new_direction)

    # take the dtype from the blocks themselves, which are what get copied
    dtype = ar.get_dtype_name(x.get_any_array()) if x.blocks else x.dtype
    new = x.__class__.from_axes(
        replace_pair(x.axes, axis, merged),
        dtype=dtype,
        like=x.backend,
    )
    _flatten_blocks(x, new, axis, pairmap)

    if utils.DEBUG:
        new.check()

    return new


def fuse(x, *axes, new_direction=None, mode="auto"):
    """Merge a contiguous, increasing run of axes of ``x`` into one, by
    repeatedly flattening neighbouring pairs.

    Parameters
    ----------
    x : BlockSparseTensor
        The tensor to fuse.
    axes : int
        The axes to merge, e.g. ``fuse(x, 1, 2, 3)``.
    new_direction : {1, -1}, optional
        The direction of the merged axis, by default that of the first axis.
    mode : {"auto", "insert", "concat"}, optional
        See :func:`flatten_axes`.

    Returns
    -------
    BlockSparseTensor
    """
    axes = tuple(ax + x.ndim if ax < 0 else ax for ax in axes)
    if axes and axes != tuple(range(axes[0], axes[0] + len(axes))):
        raise InvalidShapeError(
            f"Axes to fuse must be contiguous and increasing, got {axes}."
        )
    if len(axes) <= 1:
        # nothing to merge
        return x.copy(deep=True)
    if new_direction is None:
        new_direction = x.axes[axes[0]].direction

    for _ in range(len(axes) - 1):
        x = flatten_axes(x, axes[0], new_direction, mode=mode)

    return x
