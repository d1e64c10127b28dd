"""Utility functions specifically for testing."""


def rand_contractible_pair(
    ndim_a=None,
    ndim_b=None,
    ncon=None,
    min_ndim=1,
    max_ndim=4,
    min_d=1,
    max_d=4,
    subsizes="random",
    seed=None,
    **kwargs,
):
    """Generate two random block sparse tensors such that the last ``ncon``
    axes of the first can be contracted with the first ``ncon`` axes of the
    second. For testing purposes.

    Parameters
    ----------
    ndim_a : int or None
        Number of dimensions for the first tensor. If None, a random number
        is chosen between `min_ndim` and `max_ndim` (inclusive).
    ndim_b : int or None
        Number of dimensions for the second tensor. If None, a random number
        is chosen between `min_ndim` and `max_ndim` (inclusive).
    ncon : int or None
        Number of axes to contract. If None, a random number is chosen between
        0 and min(ndim_a, ndim_b) (inclusive).
    min_ndim : int
        Minimum number of dimensions for each tensor.
    max_ndim : int
        Maximum number of dimensions for each tensor.
    min_d : int
        Minimum logical extent of each axis.
    max_d : int
        Maximum logical extent of each axis.
    subsizes : str or tuple[int]
        Passed to `rand_axis`.
    seed : int or np.random.Generator or None
        Random seed or generator. If None, a new generator is created.
    **kwargs
        Additional arguments passed to `BlockSparseTensor.random`.

    Returns
    -------
    a : BlockSparseTensor
        First random tensor.
    b : BlockSparseTensor
        Second random tensor.
    ncon : int
        The number of axes to contract.
    """
    from .core import BlockSparseTensor
    from .utils import get_rng, rand_axis

    rng = get_rng(seed)

    if ndim_a is None:
        ndim_a = int(rng.integers(min_ndim, max_ndim + 1))
    if ndim_b is None:
        ndim_b = int(rng.integers(min_ndim, max_ndim + 1))
    if ncon is None:
        ncon = int(rng.integers(0, min(ndim_a, ndim_b) + 1))

    def _rand_axis():
        d = int(rng.integers(min_d, max_d + 1))
        return rand_axis(d, subsizes=subsizes, seed=rng)

    axes_con = [_rand_axis() for _ in range(ncon)]
    axes_a = [_rand_axis() for _ in range(ndim_a - ncon)] + axes_con
    axes_b = [ax.conj() for ax in axes_con] + [
        _rand_axis() for _ in range(ndim_b - ncon)
    ]

    a = BlockSparseTensor.random(axes_a, seed=rng, **kwargs)
    b = BlockSparseTensor.random(axes_b, seed=rng, **kwargs)

    return a, b, ncon
