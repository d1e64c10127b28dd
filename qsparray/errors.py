"""Exception types raised by block sparse tensor operations."""


class QsparrayError(Exception):
    """Base class for all errors raised by ``qsparray``."""


class InvalidShapeError(QsparrayError, ValueError):
    """An axis has a non-positive extent, its labels don't match its extent,
    or an axis argument is out of range for the tensor.
    """


class InvalidPermutationError(QsparrayError, ValueError):
    """A transpose argument is not a bijection on ``range(ndim)``."""


class AxisMismatchError(QsparrayError, ValueError):
    """Paired axes of a contraction differ in extent, block count, direction
    or per-position labels.
    """


class StructuralInvariantError(QsparrayError, RuntimeError):
    """A block coordinate derived from a well formed tensor does not exist.
    This indicates an incorrectly constructed tensor, not a user error.
    """
