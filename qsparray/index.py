"""Axis objects for block sparse tensors, carrying the labels of each
logical position and the blocks they partition into.
"""

import bisect
import numbers

from .errors import InvalidShapeError
from .partition import (
    block_order,
    check_labels,
    fan_in,
    fan_out,
    inverse_permutation,
    partition_labels,
)
from .utils import hasher


def check_direction(direction):
    """Validate and normalize an axis direction to the int ``+1`` or ``-1``."""
    if (
        isinstance(direction, bool)
        or not isinstance(direction, numbers.Integral)
        or direction not in (1, -1)
    ):
        raise ValueError(f"Axis direction must be +1 or -1, got {direction}.")
    return int(direction)


class BlockAxis:
    """An axis of a block sparse tensor. This is intended to be used
    immutably.

    Parameters
    ----------
    labels : Sequence[int]
        The label of each logical position along the axis. Its length is the
        logical extent of the axis.
    direction : {1, -1}, optional
        Whether labels of this axis enter the conservation sum with a positive
        or negative sign.
    """

    __slots__ = (
        "_labels",
        "_direction",
        "_block_labels",
        "_sizes",
        "_hashkey",
    )

    def __init__(self, labels, direction=1):
        self._labels = check_labels(labels)
        if not self._labels:
            raise InvalidShapeError("Axis extent must be positive, got 0.")
        self._direction = check_direction(direction)
        self._block_labels, self._sizes = partition_labels(self._labels)
        self._hashkey = None

    @property
    def labels(self):
        """The label of each logical position."""
        return self._labels

    @property
    def direction(self):
        """The sign, +1 or -1, with which this axis's labels are summed."""
        return self._direction

    @property
    def block_labels(self):
        """The distinct labels, sorted ascending. The position of a label in
        this tuple is its block-coordinate.
        """
        return self._block_labels

    @property
    def sizes(self):
        """The multiplicity of each block label, i.e. the size of the blocks
        along this axis.
        """
        return self._sizes

    @property
    def chargemap(self):
        """A mapping from block label to block size."""
        return dict(zip(self._block_labels, self._sizes))

    @property
    def size_total(self):
        """The logical extent of this axis."""
        return len(self._labels)

    @property
    def num_blocks(self):
        """The number of distinct labels, i.e. block-coordinates."""
        return len(self._block_labels)

    def position_of(self, label):
        """The block-coordinate of ``label``, or ``None`` if no logical
        position carries it.
        """
        i = bisect.bisect_left(self._block_labels, label)
        if i < len(self._block_labels) and self._block_labels[i] == label:
            return i
        return None

    def size_of(self, label):
        """The size of the block with label ``label``."""
        i = self.position_of(label)
        if i is None:
            raise KeyError(label)
        return self._sizes[i]

    def fan_out(self, position):
        """The logical positions making up block-coordinate ``position``."""
        return fan_out(self._labels, self._block_labels[position])

    def fan_in(self, position):
        """A mapping of logical to block-local positions for block-coordinate
        ``position``.
        """
        return fan_in(self._labels, self._block_labels[position])

    def block_order(self):
        """The logical positions ordered block by block."""
        return block_order(self._labels)

    def inverse_block_order(self):
        """For each logical position, where it sits when the axis is ordered
        block by block.
        """
        return inverse_permutation(self.block_order())

    def is_grouped(self):
        """Whether the logical positions are already ordered block by block."""
        return self.block_order() == tuple(range(self.size_total))

    def copy_with(self, labels=None, direction=None):
        """A copy of this axis with some attributes replaced."""
        return self.__class__(
            self._labels if labels is None else labels,
            self._direction if direction is None else direction,
        )

    def conj(self):
        """A copy of this axis with the direction reversed."""
        return self.copy_with(direction=-self._direction)

    def check(self):
        """Check that the axis is well-formed."""
        if self.size_total <= 0:
            raise InvalidShapeError("Axis extent must be positive.")
        assert list(self._block_labels) == sorted(set(self._labels))
        assert sum(self._sizes) == self.size_total
        for q, d in zip(self._block_labels, self._sizes):
            assert d == self._labels.count(q)

    def matches(self, other):
        """Whether this axis can be contracted with ``other``, namely, whether
        the labels are identical position by position and the directions are
        opposite.

        Parameters
        ----------
        other : BlockAxis
            The other axis to compare to.
        """
        return (
            self._labels == other._labels
            and self._direction == -other._direction
        )

    def hashkey(self):
        """Get a hash key for this axis."""
        if self._hashkey is None:
            self._hashkey = hasher((self._labels, self._direction))
        return self._hashkey

    def __eq__(self, other):
        if not isinstance(other, BlockAxis):
            return NotImplemented
        return (
            self._labels == other._labels
            and self._direction == other._direction
        )

    def __hash__(self):
        return hash((self._labels, self._direction))

    def __str__(self):
        return (
            f"({self.size_total} = {'+'.join(map(str, self._sizes))} "
            f": {'+' if self._direction > 0 else '-'}"
            f"[{','.join(map(str, self._block_labels))}])"
        )

    def __repr__(self):
        return (
            f"{self.__class__.__name__}("
            f"labels={list(self._labels)}, direction={self._direction})"
        )
