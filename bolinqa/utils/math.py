import numpy as np


def huge(dtype=float):
    """
    Get a large value.

    Non-finite objective function values are replaced with this value when they
    enter the quadratic models.
    """
    return 2.0 ** min(100.0, 0.5 * np.finfo(dtype).maxexp)


def max_abs_arrays(*arrays, initial=1.0):
    """
    Get the largest absolute value among several arrays.

    Only the finite components of the arrays are taken into account.
    """
    return max(map(lambda array: np.max(np.abs(array[np.isfinite(array)]), initial=initial), arrays))


def get_arrays_tol(*arrays):
    """
    Get a relative tolerance for a set of arrays.

    Parameters
    ----------
    *arrays: tuple
        Set of `numpy.ndarray` to get the tolerance for.

    Returns
    -------
    float
        Relative tolerance for the set of arrays.

    Raises
    ------
    ValueError
        If no array is provided.
    """
    if len(arrays) == 0:
        raise ValueError('At least one array must be provided.')
    size = max(array.size for array in arrays)
    return 10.0 * np.finfo(float).eps * max(size, 1.0) * max_abs_arrays(*arrays)


def moderate(fun_val):
    """
    Replace a non-finite objective function value with a huge finite value.

    Negative infinity is replaced as well: such a value cannot be compared
    meaningfully with the other values, and it is reported as is in the history
    only.
    """
    if not np.isfinite(fun_val):
        return huge()
    return min(fun_val, huge())
