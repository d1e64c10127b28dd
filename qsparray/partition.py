"""Partitioning of per-position axis labels into blocks of equal label, and
the index maps translating between logical and block-local positions.
"""

import functools
import numbers
from collections import Counter

from .errors import InvalidShapeError


def check_labels(labels):
    """Validate a sequence of axis labels, returning them as a tuple of
    python ints.
    """
    labels = tuple(labels)
    for q in labels:
        if isinstance(q, bool) or not isinstance(q, numbers.Integral):
            raise TypeError(f"Axis labels must be integers, got {q!r}.")
    return tuple(map(int, labels))


@functools.lru_cache(maxsize=2**14)
def _partition_cached(labels):
    if not labels:
        raise InvalidShapeError("Cannot partition an axis with no labels.")
    # sorting the counted pairs makes the result independent of input order
    counts = sorted(Counter(labels).items())
    block_labels = tuple(q for q, _ in counts)
    multiplicities = tuple(m for _, m in counts)
    return block_labels, multiplicities


def partition_labels(labels):
    """Find the distinct labels along an axis and how often each occurs.

    Parameters
    ----------
    labels : Sequence[int]
        The label of each logical position along the axis.

    Returns
    -------
    block_labels : tuple[int]
        The distinct labels, sorted ascending.
    multiplicities : tuple[int]
        The number of logical positions carrying each of ``block_labels``.

    Examples
    --------

        >>> partition_labels([1, -1, 0, 1])
        ((-1, 0, 1), (1, 1, 2))

    """
    return _partition_cached(check_labels(labels))


def chargemap(labels):
    """A mapping from each distinct label to its multiplicity, sorted by
    label.
    """
    return dict(zip(*partition_labels(labels)))


@functools.lru_cache(maxsize=2**14)
def _fan_out_cached(labels, label):
    return tuple(j for j, q in enumerate(labels) if q == label)


def fan_out(labels, label):
    """The ordered logical positions carrying ``label``, i.e. the map from
    block-local position (the index into the result) to logical position.

    Examples
    --------

        >>> fan_out([1, -1, 0, 1], 1)
        (0, 3)

    """
    return _fan_out_cached(tuple(labels), label)


def fan_in(labels, label):
    """The map from logical position to block-local position, restricted to
    the positions carrying ``label``.

    Examples
    --------

        >>> fan_in([1, -1, 0, 1], 1)
        {0: 0, 3: 1}

    """
    return {j: i for i, j in enumerate(fan_out(labels, label))}


@functools.lru_cache(maxsize=2**12)
def _block_order_cached(labels):
    block_labels, _ = _partition_cached(labels)
    return tuple(j for q in block_labels for j in _fan_out_cached(labels, q))


def block_order(labels):
    """The permutation of logical positions that groups them by block,
    blocks in ascending label order, positions within a block in logical
    order. Slicing an axis taken in this order by cumulative multiplicities
    yields the blocks.
    """
    return _block_order_cached(check_labels(labels))


def inverse_permutation(perm):
    """Invert a permutation given as a sequence of ints."""
    inv = [0] * len(perm)
    for i, p in enumerate(perm):
        inv[p] = i
    return tuple(inv)


def combine_labels(labels_a, direction_a, labels_b, direction_b, new_direction):
    """Compute the labels of the axis formed by merging two adjacent axes.
    The merged position ``(j, k)`` sits at ``j * len(labels_b) + k`` and has
    label ``new_direction * (direction_a * labels_a[j] + direction_b *
    labels_b[k])``, so that its contribution to the conservation sum is
    unchanged.

    Examples
    --------

        >>> combine_labels([0, 1], 1, [0, 1], -1, 1)
        (0, -1, 1, 0)

    """
    return tuple(
        new_direction * (direction_a * qa + direction_b * qb)
        for qa in labels_a
        for qb in labels_b
    )
