import functools
import hashlib
import os
import pickle

# a simple flag for enabling rigorous checks in many places
DEBUG = bool(os.environ.get("QSPARRAY_DEBUG", "0").upper() in ("1", "TRUE"))


def set_debug(debug):
    global DEBUG
    DEBUG = debug


def hasher(k):
    return hashlib.sha1(pickle.dumps(k)).hexdigest()


def permuted(it, perm):
    """Return a tuple of the elements in ``it`` (which should be indexable),
    in the order given by ``perm``.

    Examples
    --------

        >>> permuted(['a', 'b', 'c', 'd'], [3, 1, 0, 2])
        ('d', 'b', 'a', 'c')

    """
    return tuple(it[p] for p in perm)


def replace_pair(it, index, item):
    """Return a tuple with the two items at ``index`` and ``index + 1``
    replaced by the single ``item``.
    """
    return (*it[:index], item, *it[index + 2 :])


class RandomStateTranslated:
    """Simple wrapper to make `numpy.random.RandomState` have the same
    interface as `numpy.random.Generator`."""

    def __init__(self, rng):
        self.rng = rng

    def integers(self, *args, **kwargs):
        return self.rng.randint(*args, **kwargs)

    def __getattribute__(self, name):
        try:
            return object.__getattribute__(self, name)
        except AttributeError:
            x = getattr(self.rng, name)
            super().__getattribute__("__dict__")[name] = x
            return x


def get_rng(seed=None):
    import numpy as np

    # RandomStateTranslated is useful for determinism across numpy versions
    if isinstance(seed, RandomStateTranslated):
        return seed
    elif isinstance(seed, np.random.RandomState):
        return RandomStateTranslated(seed)
    else:
        return np.random.default_rng(seed)


def get_random_fill_fn(
    seed=None,
    dist="normal",
    dtype="float64",
    scale=1.0,
    loc=0.0,
):
    """Get a function that produces numpy arrays of random numbers with the
    specified distribution, dtype, loc, and scale.

    Parameters
    ----------
    seed : None, int, or numpy.random.Generator, optional
        The seed for the random number generator.
    dist : str, optional
        The distribution of the random numbers. Can be "normal" or "uniform" or
        any other distribution supported by numpy.
    dtype : str, optional
        The data type of the random numbers. If "complex", the real and
        imaginary parts are generated separately and added.
    scale : float, optional
        A multiplicative factor to the distribution.
    loc : float, optional
        An additive offset to the distribution.

    Returns
    -------
    callable
        A function with signature `fill_fn(shape) -> numpy.ndarray`.
    """
    rng = get_rng(seed)

    def fill_fn(shape):
        x = getattr(rng, dist)(size=shape)
        if "complex" in dtype:
            x = x + 1j * getattr(rng, dist)(size=shape)
        if scale != 1.0:
            x *= scale
        if loc != 0.0:
            x += loc
        if x.dtype != dtype:
            x = x.astype(dtype)

        return x

    return fill_fn


def rand_partition(d, n, seed=None):
    """Randomly partition `d` into `n` sizes each of size at least 1."""
    if d == n:
        return [1] * n

    rng = get_rng(seed)

    if n == 2:
        # cut in two
        s = int(rng.integers(1, d))
        return [s, d - s]

    # cut into 3 or more
    splits = (
        0,
        *sorted(rng.choice(range(1, d), size=n - 1, replace=False)),
        d,
    )
    return [int(splits[i + 1] - splits[i]) for i in range(n)]


@functools.cache
def get_labels_near_zero(nlabel):
    """Get a tuple of ``nlabel`` distinct integer labels that are as close to
    zero as possible, with a slight bias towards positive labels.
    """
    labels = list(range(-nlabel // 2 + 1, +nlabel // 2 + 1))
    labels.sort(key=lambda x: (abs(x), -x))
    return tuple(labels[:nlabel])


def rand_labels(d, subsizes="random", shuffle=True, seed=None):
    """Generate a random sequence of ``d`` integer labels for the logical
    positions of one axis.

    Parameters
    ----------
    d : int
        The logical extent of the axis.
    subsizes : "random", "equal", "maximal", "minimal", or tuple[int], optional
        The multiplicities of the distinct labels. The choices are as follows:

        - "random": the labels and multiplicities are randomly determined.
        - "equal": up to 3 labels 'close to' zero are chosen, all with equal
          multiplicity (up to remainders).
        - "maximal": as many labels as possible are chosen, each occurring
          once.
        - "minimal": only the zero label is used, for every position.
        - tuple: the multiplicities explicitly, a matching number of labels
          are chosen automatically, in sequence 'closest to zero'.

    shuffle : bool, optional
        Whether to randomly interleave the labels along the axis, rather than
        leaving positions grouped by label.
    seed : None, int, or numpy.random.Generator, optional
        The seed for the random number generator.

    Returns
    -------
    tuple[int]
    """
    rng = get_rng(seed)

    if (subsizes is None) or (subsizes == "random"):
        nlabel = int(rng.integers(1, d + 1))
        subsizes = rand_partition(d, nlabel, seed=rng)
    elif subsizes == "equal":
        nlabel = min(d, 3)
        subsizes = [
            d // nlabel + int(i < d % nlabel) for i in range(nlabel)
        ]
    elif subsizes == "maximal":
        subsizes = [1] * d
    elif subsizes == "minimal":
        subsizes = [d]

    labels = [
        q
        for q, size in zip(get_labels_near_zero(len(subsizes)), subsizes)
        for _ in range(size)
    ]
    if shuffle:
        labels = [labels[i] for i in rng.permutation(len(labels))]

    return tuple(labels)


def rand_axis(d, direction="random", subsizes="random", seed=None):
    """Generate a random ``BlockAxis`` of logical extent ``d``.

    Parameters
    ----------
    d : int
        The logical extent of the axis.
    direction : {1, -1, "random"}, optional
        The direction of the axis. If "random", it is randomly chosen.
    subsizes : str or tuple[int], optional
        See :func:`rand_labels`.
    seed : None, int, or numpy.random.Generator, optional
        The seed for the random number generator.

    Returns
    -------
    BlockAxis
    """
    from .index import BlockAxis

    rng = get_rng(seed)
    if (direction is None) or (direction == "random"):
        direction = int(rng.choice([1, -1]))

    return BlockAxis(rand_labels(d, subsizes, seed=rng), direction)


def choose_directions(directions, ndim):
    if directions == "equal":
        # split ~half and ~half
        return [1 if i < ndim // 2 else -1 for i in range(ndim)]
    elif directions in ("random", None, 1, -1):
        # repeat for all axes
        return [directions] * ndim
    else:
        # assume given explicit sequence
        if len(directions) != ndim:
            raise ValueError(
                f"Length of directions ({len(directions)}) does not match "
                f"ndim ({ndim})."
            )
        return list(directions)


def get_rand(
    shape,
    directions="random",
    seed=None,
    dist="normal",
    dtype="float64",
    subsizes="random",
    **kwargs,
):
    """Get a random block sparse tensor with the given shape. The directions
    and label multiplicities can be specified or randomly generated.

    Parameters
    ----------
    shape : tuple[int | BlockAxis, ...]
        The logical shape of the tensor. Each element can be an int, in which
        case labels are generated according to `subsizes`, or an explicit
        ``BlockAxis``.
    directions : "random", "equal", 1, -1 or Sequence[int], optional
        The direction of each axis. Ignored for axes given as ``BlockAxis``.
    seed : None, int, or numpy.random.Generator, optional
        The seed for the random number generator.
    dist : str, optional
        The distribution of the random numbers. Can be "normal" or "uniform".
    dtype : str, optional
        The data type of the blocks.
    subsizes : "random", "equal", "maximal", "minimal", or tuple[int], optional
        See :func:`rand_labels`.
    kwargs
        Additional keyword arguments are passed to
        :meth:`BlockSparseTensor.random`.

    Returns
    -------
    BlockSparseTensor
    """
    from .core import BlockSparseTensor
    from .index import BlockAxis

    rng = get_rng(seed)
    directions = choose_directions(directions, len(shape))

    axes = [
        d
        if isinstance(d, BlockAxis)
        else rand_axis(d, direction=direction, subsizes=subsizes, seed=rng)
        for d, direction in zip(shape, directions)
    ]

    return BlockSparseTensor.random(
        axes=axes,
        seed=rng,
        dist=dist,
        dtype=dtype,
        **kwargs,
    )
