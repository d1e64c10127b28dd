"""Block sparse tensors whose entries obey an additive conservation law on
integer axis labels.
"""

import itertools
import math
import warnings

import autoray as ar

from . import dense, utils
from .block_core import BlockCommon
from .errors import InvalidPermutationError, InvalidShapeError
from .index import BlockAxis
from .utils import permuted


def gen_valid_block_indices(axes):
    """Generate, in row-major order, every block multi-index of ``axes``
    whose direction weighted labels sum to zero.

    Parameters
    ----------
    axes : Sequence[BlockAxis]
        The axes of the tensor.

    Yields
    ------
    tuple[int]
    """
    if not axes:
        # the scalar block
        yield ()
        return

    *first_axes, last_axis = axes

    for partial_idx in itertools.product(
        *(range(ax.num_blocks) for ax in first_axes)
    ):
        partial_sum = sum(
            ax.direction * ax.block_labels[i]
            for ax, i in zip(first_axes, partial_idx)
        )
        # last direction * last label = -partial sum, and direction = +-1
        j = last_axis.position_of(-partial_sum * last_axis.direction)
        if j is not None:
            # but only if it is a label present on the last axis
            yield partial_idx + (j,)


def check_permutation(perm, ndim):
    """Check that ``perm`` is a permutation of ``range(ndim)``, returning it
    as a tuple of ints.
    """
    try:
        perm = tuple(int(p) for p in perm)
    except (TypeError, ValueError):
        raise InvalidPermutationError(f"Invalid permutation {perm}.")
    if sorted(perm) != list(range(ndim)):
        raise InvalidPermutationError(
            f"{perm} is not a permutation of the {ndim} axes."
        )
    return perm


class BlockSparseTensor(BlockCommon):
    """A block sparse tensor, storing only the dense blocks whose axis labels
    satisfy the conservation law ``sum(direction * label) == 0``.

    Parameters
    ----------
    axes : Sequence[BlockAxis]
        The axes of the tensor, carrying labels and directions.
    blocks : dict[tuple[int], array_like]
        A mapping of each block multi-index (one block-coordinate per axis) to
        the dense block. This should contain exactly the valid multi-indices.
    dtype : str, optional
        The dtype name of the blocks, inferred from them if not given.
    backend : str, optional
        The array backend of the blocks, inferred from them if not given.
    """

    __slots__ = ("_axes", "_dtype", "_backend", "_freed")

    def __init__(self, axes, blocks=(), dtype=None, backend=None):
        self._axes = tuple(axes)
        self._blocks = dict(blocks)

        if dtype is None:
            dtype = (
                ar.get_dtype_name(self.get_any_array())
                if self._blocks
                else "float64"
            )
        if backend is None:
            backend = (
                ar.infer_backend(self.get_any_array())
                if self._blocks
                else "numpy"
            )
        self._dtype = dtype
        self._backend = backend
        self._freed = False

        if utils.DEBUG:
            self.check()

    # --------------------------- construction ---------------------------- #

    @classmethod
    def allocate(cls, shape, directions, labels, dtype="float64", like="numpy"):
        """Allocate a block sparse tensor with a zero-filled dense block for
        every block multi-index satisfying the conservation law.

        Parameters
        ----------
        shape : Sequence[int]
            The logical extent of each axis.
        directions : Sequence[{1, -1}]
            The direction of each axis.
        labels : Sequence[Sequence[int]]
            For each axis, the label of each logical position.
        dtype : str, optional
            The dtype of the blocks.
        like : str or array_like, optional
            The backend to allocate the blocks with.

        Returns
        -------
        BlockSparseTensor
        """
        shape = tuple(shape)
        ndim = len(shape)

        if len(directions) != ndim or len(labels) != ndim:
            raise InvalidShapeError(
                f"Expected {ndim} directions and label sequences, got "
                f"{len(directions)} and {len(labels)}."
            )
        for i, (d, qs) in enumerate(zip(shape, labels)):
            if d <= 0:
                raise InvalidShapeError(
                    f"Extent of axis {i} must be positive, got {d}."
                )
            if len(qs) != d:
                raise InvalidShapeError(
                    f"Axis {i} has extent {d} but {len(qs)} labels."
                )

        axes = tuple(
            BlockAxis(qs, direction) for qs, direction in zip(labels, directions)
        )
        return cls.from_axes(axes, dtype=dtype, like=like)

    @classmethod
    def from_axes(cls, axes, dtype="float64", like="numpy"):
        """Allocate a zero-filled block sparse tensor from existing axes."""
        backend = like if isinstance(like, str) else ar.infer_backend(like)

        def fill_fn(shape):
            return dense.allocate(shape, dtype=dtype, like=backend)

        return cls.from_fill_fn(fill_fn, axes, dtype=dtype, backend=backend)

    @classmethod
    def from_fill_fn(cls, fill_fn, axes, dtype=None, backend=None):
        """Generate a block sparse tensor from a filling function. Every valid
        block will be filled with the result of the filling function.

        Parameters
        ----------
        fill_fn : callable
            The filling function, with signature ``fill_fn(shape)``.
        axes : Sequence[BlockAxis]
            The axes of the tensor.

        Returns
        -------
        BlockSparseTensor
        """
        axes = tuple(axes)
        blocks = {
            idx: fill_fn(tuple(ax.sizes[i] for ax, i in zip(axes, idx)))
            for idx in gen_valid_block_indices(axes)
        }
        return cls(axes, blocks, dtype=dtype, backend=backend)

    @classmethod
    def random(
        cls,
        axes,
        seed=None,
        dist="normal",
        dtype="float64",
        scale=1.0,
        loc=0.0,
    ):
        """Create a block sparse tensor with random values in every valid
        block.

        Parameters
        ----------
        axes : Sequence[BlockAxis]
            The axes of the tensor.
        seed : None, int or numpy.random.Generator
            The random seed or generator to use.
        dist : str
            The distribution to use. Can be one of ``"normal"``, ``"uniform"``,
            etc., see :func:`numpy.random.default_rng` for details.

        Returns
        -------
        BlockSparseTensor
        """
        from .utils import get_random_fill_fn

        fill_fn = get_random_fill_fn(
            dist=dist,
            dtype=dtype,
            loc=loc,
            scale=scale,
            seed=seed,
        )

        return cls.from_fill_fn(fill_fn, axes, dtype=dtype, backend="numpy")

    @classmethod
    def from_dense(
        cls,
        array,
        directions,
        labels,
        invalid_blocks="ignore",
    ):
        """Create a block sparse tensor from a dense array by supplying the
        label of each logical position along each axis. Entries of ``array``
        that fall outside the blocks allowed by the conservation law are
        dropped.

        Parameters
        ----------
        array : array_like
            The dense array.
        directions : Sequence[{1, -1}]
            The direction of each axis.
        labels : Sequence[Sequence[int]]
            For each axis, the label of each logical position.
        invalid_blocks : {"ignore", "warn", "raise"}, optional
            How to handle dropped regions that contain non-zero entries.

        Returns
        -------
        BlockSparseTensor
        """
        if invalid_blocks not in ("ignore", "warn", "raise"):
            raise ValueError(
                f"Unknown invalid_blocks option {invalid_blocks!r}."
            )

        new = cls.allocate(
            ar.shape(array),
            directions,
            labels,
            dtype=ar.get_dtype_name(array),
            like=array,
        )

        if new.ndim == 0:
            new._blocks[()] = dense.copy(array)
            return new

        for idx in new._blocks:
            new._blocks[idx] = dense.gather(array, new.get_fan_out(idx))

        if invalid_blocks != "ignore":
            for idx in itertools.product(*map(range, new.block_shape)):
                if idx in new._blocks:
                    continue
                subarray = dense.gather(array, new.get_fan_out(idx))
                if dense.allclose(subarray, 0.0, rtol=0.0, atol=1e-12):
                    continue

                msg = (
                    f"Block with labels {new.get_block_labels(idx)} has "
                    "non-zero elements but does not satisfy the "
                    "conservation law."
                )
                if invalid_blocks == "raise":
                    raise ValueError(msg)
                warnings.warn(f"{msg} Ignoring them.")

        if utils.DEBUG:
            new.check()

        return new

    def to_dense(self):
        """Convert this block sparse tensor to a dense array, with absent
        blocks filled by zeros.
        """
        if self.ndim == 0:
            return dense.copy(self._blocks[()])

        def _recurse_all_blocks(partial_idx=()):
            i = len(partial_idx)
            if i == self.ndim:
                # full multi-index, return the block, making zeros if absent
                array = self._blocks.get(partial_idx, None)
                if array is None:
                    array = dense.allocate(
                        self.get_block_shape(partial_idx),
                        dtype=self._dtype,
                        like=self._backend,
                    )
                return array
            else:
                # partial multi-index -> recurse further
                arrays = tuple(
                    _recurse_all_blocks(partial_idx + (j,))
                    for j in range(self._axes[i].num_blocks)
                )
                # then concatenate along the current axis
                return dense.concatenate(arrays, axis=i)

        grouped = _recurse_all_blocks()

        # move positions from block order back to logical order
        return dense.gather(
            grouped,
            [
                None if ax.is_grouped() else ax.inverse_block_order()
                for ax in self._axes
            ],
        )

    # ---------------------------- lifecycle ------------------------------ #

    def copy(self, deep=False):
        """Copy this block sparse tensor. If ``deep``, the dense blocks are
        copied as well, else they are shared.
        """
        new = self.__new__(self.__class__)
        new._axes = self._axes
        new._blocks = (
            {idx: dense.copy(b) for idx, b in self._blocks.items()}
            if deep
            else self._blocks.copy()
        )
        new._dtype = self._dtype
        new._backend = self._backend
        new._freed = False
        return new

    def _sync_dtype(self):
        # blockwise maps such as scaling by a complex number can promote
        if self._blocks:
            self._dtype = ar.get_dtype_name(self.get_any_array())

    def apply_to_arrays(self, fn):
        """Apply the ``fn`` inplace to the array of every block, updating the
        recorded dtype to match.
        """
        super().apply_to_arrays(fn)
        self._sync_dtype()

    def copy_with(self, axes=None, blocks=None):
        """A copy of this tensor with some attributes replaced. Note that
        checks are only performed in debug mode, this is intended for
        internal use.
        """
        new = self.copy()
        if axes is not None:
            new._axes = tuple(axes)
        if blocks is not None:
            new._blocks = blocks
            new._sync_dtype()

        if utils.DEBUG:
            new.check()

        return new

    def free(self):
        """Release every dense block and the axis labels. The tensor is not
        usable afterwards and must not be freed again.
        """
        if self._freed:
            raise ValueError("Tensor has already been freed.")
        self._blocks = {}
        self._axes = ()
        self._freed = True

    @property
    def is_freed(self):
        """Whether :meth:`free` has been called on this tensor."""
        return self._freed

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        if not self._freed:
            self.free()

    # ---------------------------- properties ----------------------------- #

    @property
    def axes(self):
        """The axes of the tensor."""
        return self._axes

    @property
    def ndim(self):
        """The number of dimensions/axes."""
        return len(self._axes)

    @property
    def shape(self):
        """The logical shape, i.e. that of the equivalent dense array."""
        return tuple(ax.size_total for ax in self._axes)

    @property
    def size(self):
        """The number of elements of the equivalent dense array."""
        return math.prod(self.shape)

    @property
    def block_shape(self):
        """The number of block-coordinates along each axis."""
        return tuple(ax.num_blocks for ax in self._axes)

    @property
    def directions(self):
        """The direction of each axis."""
        return tuple(ax.direction for ax in self._axes)

    @property
    def labels(self):
        """The label of each logical position, for each axis."""
        return tuple(ax.labels for ax in self._axes)

    @property
    def block_labels(self):
        """The sorted distinct labels, for each axis."""
        return tuple(ax.block_labels for ax in self._axes)

    @property
    def sizes(self):
        """The block sizes along each axis."""
        return tuple(ax.sizes for ax in self._axes)

    @property
    def signature(self):
        return "".join("+" if d > 0 else "-" for d in self.directions)

    @property
    def dtype(self):
        """The dtype name of the blocks."""
        return self._dtype

    @property
    def backend(self):
        """The array backend of the blocks."""
        return self._backend

    @property
    def sectors(self):
        """The label tuples of the occupied blocks."""
        return tuple(map(self.get_block_labels, self._blocks))

    @property
    def T(self):
        """The transpose of the tensor, with axes reversed."""
        return self.transpose()

    @property
    def H(self):
        """The conjugate transpose of the tensor, with axes reversed."""
        return self.conj_transpose()

    # ------------------------------ lookup ------------------------------- #

    def is_valid_block_index(self, idx):
        """Check if block multi-index ``idx`` satisfies the conservation law."""
        return (
            sum(
                ax.direction * ax.block_labels[i]
                for ax, i in zip(self._axes, idx)
            )
            == 0
        )

    def gen_valid_block_indices(self):
        """Generate all valid block multi-indices, in row-major order."""
        return gen_valid_block_indices(self._axes)

    def flat_block_index(self, idx):
        """The row-major offset of block multi-index ``idx``."""
        offset = 0
        for ax, i in zip(self._axes, idx):
            offset = offset * ax.num_blocks + i
        return offset

    def get_block_shape(self, idx):
        """Get the shape of the block at multi-index ``idx``."""
        return tuple(ax.sizes[i] for ax, i in zip(self._axes, idx))

    def get_block_labels(self, idx):
        """Get the label of each axis for block multi-index ``idx``."""
        return tuple(ax.block_labels[i] for ax, i in zip(self._axes, idx))

    def get_fan_out(self, idx):
        """For each axis, the logical positions of block ``idx``."""
        return tuple(ax.fan_out(i) for ax, i in zip(self._axes, idx))

    def get_block_index(self, labels):
        """Get the block multi-index with the given label along each axis, or
        ``None`` if any label doesn't occur on its axis.
        """
        if len(labels) != self.ndim:
            raise InvalidShapeError(
                f"Expected {self.ndim} labels, got {len(labels)}."
            )
        idx = []
        for ax, q in zip(self._axes, labels):
            i = ax.position_of(q)
            if i is None:
                return None
            idx.append(i)
        return tuple(idx)

    def get_block(self, labels):
        """Retrieve the dense block with the given label along each axis.

        Parameters
        ----------
        labels : Sequence[int]
            One label per axis.

        Returns
        -------
        array_like or None
            The block, or ``None`` if a label is not found on its axis or the
            block is absent.
        """
        idx = self.get_block_index(labels)
        if idx is None:
            return None
        return self._blocks.get(idx, None)

    def get_sparsity(self):
        """Return the fraction of elements of the equivalent dense array that
        are explicitly stored.
        """
        stored = sum(
            dense.num_elements(self.get_block_shape(idx))
            for idx in self._blocks
        )
        return stored / self.size

    # ---------------------------- elementwise ---------------------------- #

    def scale(self, alpha, inplace=False):
        """Multiply every occupied block by ``alpha``."""
        new = self if inplace else self.copy()
        new.apply_to_arrays(lambda x: dense.scale(alpha, x))
        return new

    def conj(self, inplace=False):
        """Complex conjugate every occupied block."""
        new = self if inplace else self.copy()
        new.apply_to_arrays(dense.conjugate)
        return new

    # ---------------------------- structural ----------------------------- #

    def transpose(self, perm=None):
        """Permute the axes of the tensor, such that axis ``i`` of the result
        is axis ``perm[i]`` of this tensor.

        Parameters
        ----------
        perm : Sequence[int], optional
            The permutation, by default the axes are reversed.

        Returns
        -------
        BlockSparseTensor
        """
        if perm is None:
            perm = tuple(range(self.ndim - 1, -1, -1))
        perm = check_permutation(perm, self.ndim)

        if self.ndim == 0:
            return self.copy(deep=True)

        new_blocks = {
            permuted(idx, perm): dense.transpose(perm, array)
            for idx, array in self._blocks.items()
        }
        return self.copy_with(
            axes=permuted(self._axes, perm),
            # keep blocks in row-major order
            blocks=dict(sorted(new_blocks.items())),
        )

    def conj_transpose(self, perm=None):
        """Transpose then complex conjugate the tensor."""
        return self.transpose(perm).conj(inplace=True)

    def flatten_axes(self, axis, new_direction=None, mode="auto"):
        """Merge axes ``axis`` and ``axis + 1`` into a single axis. See
        :func:`qsparray.flatten.flatten_axes`.
        """
        from .flatten import flatten_axes

        return flatten_axes(self, axis, new_direction, mode=mode)

    def fuse(self, *axes, new_direction=None, mode="auto"):
        """Merge a contiguous, increasing run of axes into a single axis. See
        :func:`qsparray.flatten.fuse`.
        """
        from .flatten import fuse

        return fuse(self, *axes, new_direction=new_direction, mode=mode)

    def tensordot(self, other, axes=1, preserve_array=True):
        """Contract this tensor with ``other``. See
        :func:`qsparray.contract.tensordot_blocksparse`.
        """
        from .contract import tensordot_blocksparse

        return tensordot_blocksparse(
            self, other, axes=axes, preserve_array=preserve_array
        )

    def __matmul__(self, other):
        if self.ndim > 2 or other.ndim > 2:
            raise ValueError("Only 1D and 2D tensors supported.")
        return self.tensordot(other, axes=1, preserve_array=False)

    # ------------------------------ checks ------------------------------- #

    def check(self):
        """Check that the block layout is consistent with the axis labels and
        directions: a block is present exactly when its labels satisfy the
        conservation law, with the shape given by the label multiplicities.
        """
        for ax in self._axes:
            ax.check()

        if self.ndim == 0:
            if tuple(self._blocks) != ((),):
                raise ValueError("A scalar tensor must have exactly one block.")

        for idx in itertools.product(*map(range, self.block_shape)):
            valid = self.is_valid_block_index(idx)
            present = idx in self._blocks
            if valid and not present:
                raise ValueError(
                    f"Block {idx} with labels {self.get_block_labels(idx)} "
                    "satisfies the conservation law but is missing."
                )
            if present and not valid:
                raise ValueError(
                    f"Block {idx} with labels {self.get_block_labels(idx)} "
                    "does not satisfy the conservation law."
                )

        for idx, array in self._blocks.items():
            if tuple(ar.shape(array)) != self.get_block_shape(idx):
                raise ValueError(
                    f"Block shape {ar.shape(array)} does not match "
                    f"expected shape {self.get_block_shape(idx)} "
                    f"for block {idx}."
                )

    def allclose(self, other, **allclose_opts):
        """Test whether this tensor is close to another, that is, has the same
        axes, and the corresponding blocks are close.

        Parameters
        ----------
        other : BlockSparseTensor
            The other tensor to compare to.
        allclose_opts
            Keyword arguments to pass to `allclose`.

        Returns
        -------
        bool
        """
        if self._axes != other.axes:
            return False
        return self._allclose_blocks(other, **allclose_opts)

    def __str__(self):
        lines = [f"{self.__class__.__name__}(ndim={self.ndim}, axes=["]
        lines.extend(f"    {ax}" for ax in self._axes)
        lines.append(
            f"], num_blocks={self.num_blocks}, backend={self.backend}, "
            f"dtype={self.dtype})"
        )
        return "\n".join(lines)

    def __repr__(self):
        if self._freed:
            return f"{self.__class__.__name__}(<freed>)"
        return "".join(
            [
                f"{self.__class__.__name__}(",
                (
                    f"shape~{self.shape}:[{self.signature}]"
                    if self._axes
                    else f"{self.get_any_array()}"
                ),
                f", num_blocks={self.num_blocks})",
            ]
        )
