from . import utils
from .core import BlockSparseTensor, gen_valid_block_indices
from .errors import (
    AxisMismatchError,
    InvalidPermutationError,
    InvalidShapeError,
    QsparrayError,
    StructuralInvariantError,
)
from .flatten import clear_flatten_cache, print_flatten_cache_stats
from .index import BlockAxis
from .interface import (
    allocate,
    conj,
    conj_transpose,
    conjugate,
    flatten_axes,
    free,
    from_dense,
    fuse,
    get_block,
    norm,
    scale,
    tensordot,
    to_dense,
    transpose,
)
from .partition import partition_labels

__all__ = (
    "allocate",
    "AxisMismatchError",
    "BlockAxis",
    "BlockSparseTensor",
    "clear_flatten_cache",
    "conj",
    "conj_transpose",
    "conjugate",
    "flatten_axes",
    "free",
    "from_dense",
    "fuse",
    "gen_valid_block_indices",
    "get_block",
    "InvalidPermutationError",
    "InvalidShapeError",
    "norm",
    "partition_labels",
    "print_flatten_cache_stats",
    "QsparrayError",
    "scale",
    "StructuralInvariantError",
    "tensordot",
    "to_dense",
    "transpose",
    "utils",
)
