"""Basic functionality for array like objects consisting of a dict of dense
blocks, keyed by block multi-index.
"""

import functools
import operator

import autoray as ar


class BlockCommon:
    """Mixin class for arrays consisting of dicts of blocks. Missing keys
    represent blocks that are exactly zero.
    """

    __slots__ = ("_blocks",)

    @property
    def blocks(self):
        """The blocks of the array."""
        return self._blocks

    def get_any_array(self):
        """Get any array from the blocks, to check type and backend for
        example.
        """
        return next(iter(self._blocks.values()), 0.0)

    @property
    def num_blocks(self):
        """The number of occupied blocks in the array."""
        return len(self._blocks)

    def has_block(self, idx):
        """Check if the array has an occupied block at multi-index ``idx``."""
        return tuple(idx) in self._blocks

    def is_zero(self, tol=1e-12):
        """Check if all blocks are zero up to a tolerance."""
        return all(
            ar.do("allclose", b, 0.0, atol=tol) for b in self._blocks.values()
        )

    def apply_to_arrays(self, fn):
        """Apply the ``fn`` inplace to the array of every block."""
        for idx, array in self._blocks.items():
            self._blocks[idx] = fn(array)

    def item(self):
        """Convert the block array to a scalar if it is a scalar block array."""
        (array,) = self._blocks.values()
        return array.item()

    def __float__(self):
        return float(self.item())

    def __complex__(self):
        return complex(self.item())

    def __int__(self):
        return int(self.item())

    def __mul__(self, other):
        new = self.copy()
        new.apply_to_arrays(lambda x: x * other)
        return new

    def __imul__(self, other):
        self.apply_to_arrays(lambda x: x * other)
        return self

    def __rmul__(self, other):
        return self * other

    def __truediv__(self, other):
        new = self.copy()
        new.apply_to_arrays(lambda x: x / other)
        return new

    def __itruediv__(self, other):
        self.apply_to_arrays(lambda x: x / other)
        return self

    def __neg__(self):
        new = self.copy()
        new.apply_to_arrays(operator.neg)
        return new

    def norm(self):
        """Get the frobenius norm of the block array."""
        if not self._blocks:
            return 0.0
        backend = self.backend
        _sum = ar.get_lib_fn(backend, "sum")
        _abs = ar.get_lib_fn(backend, "abs")
        return (
            functools.reduce(
                operator.add,
                (_sum(_abs(x) ** 2) for x in self._blocks.values()),
            )
            ** 0.5
        )

    def _allclose_blocks(self, other, **allclose_opts):
        _allclose = ar.get_lib_fn(self.backend, "allclose")

        # all shared blocks must be close
        shared = self._blocks.keys() & other.blocks.keys()
        for idx in shared:
            if not _allclose(
                self._blocks[idx], other.blocks[idx], **allclose_opts
            ):
                return False

        # all missing blocks must be zero
        left = self._blocks.keys() - other.blocks.keys()
        right = other.blocks.keys() - self._blocks.keys()
        for idx in left:
            if not _allclose(self._blocks[idx], 0.0, **allclose_opts):
                return False
        for idx in right:
            if not _allclose(other.blocks[idx], 0.0, **allclose_opts):
                return False

        return True
