import operator

import numpy as np
from numpy.testing import assert_array_compare

from ..factorization import InverseFactorization
from ..problem import ObjectiveFunction, BoundConstraints, LinearConstraints, Problem


def assert_array_less_equal(x, y, err_msg='', verbose=True):
    """
    Raise an AssertionError if two objects are not less-or-equal-ordered.

    Parameters
    ----------
    x : array_like
        Smaller object to check.
    y : array_like
        Larger object to compare.
    err_msg : str, optional
        Error message to be printed in case of failure.
    verbose : bool, optional
        Whether the conflicting values are appended to the error message
        (default is True).

    Raises
    ------
    AssertionError
        The two arrays are not less-or-equal-ordered.
    """
    assert_array_compare(operator.__le__, x, y, err_msg, verbose, 'Arrays are not less-or-equal-ordered')


def get_problem(fun, x0, xl=None, xu=None, constraints=(), store_history=False, history_size=100):
    """
    Build a problem with the given objective function, initial guess, bounds,
    and linear constraints.
    """
    n = len(x0)
    if xl is None:
        xl = np.full(n, -np.inf)
    if xu is None:
        xu = np.full(n, np.inf)
    obj = ObjectiveFunction(fun, False, store_history, history_size, True)
    bounds = BoundConstraints(xl, xu)
    linear = LinearConstraints(list(constraints), n, True)
    return Problem(obj, x0, bounds, linear, np.sqrt(np.finfo(float).eps), True)


def kkt_inverse(xpt):
    """
    Invert the matrix of the KKT system that defines the least-Frobenius-norm
    quadratic interpolants, with the constant term placed after the points.
    """
    npt, n = xpt.shape
    w = np.zeros((npt + n + 1, npt + n + 1))
    w[:npt, :npt] = 0.5 * (xpt @ xpt.T) ** 2.0
    w[:npt, npt] = 1.0
    w[npt, :npt] = 1.0
    w[:npt, npt + 1:] = xpt
    w[npt + 1:, :npt] = xpt.T
    return np.linalg.inv(w)


def assert_factorization_inverts(factorization, xpt, atol=1e-8):
    """
    Compare a factorization with the inverse of the KKT matrix.
    """
    npt = xpt.shape[0]
    h = kkt_inverse(xpt)
    omega = factorization.zmat @ (factorization.signature[:, np.newaxis] * factorization.zmat.T)
    scale = max(1.0, np.max(np.abs(h)))
    np.testing.assert_allclose(omega, h[:npt, :npt], atol=atol * scale)
    np.testing.assert_allclose(factorization.bmat[:npt, :], h[:npt, npt + 1:], atol=atol * scale)
    np.testing.assert_allclose(factorization.bmat[npt:, :], h[npt + 1:, npt + 1:], atol=atol * scale)


def coordinate_points(n, npt, step_a=1.0, step_b=-1.0):
    """
    Build a set of interpolation points along the coordinates, as done by the
    initialization of the models.
    """
    xpt = np.zeros((npt, n))
    for k in range(1, npt):
        if k <= n:
            xpt[k, k - 1] = step_a
        elif k <= 2 * n:
            xpt[k, k - n - 1] = step_b
        else:
            spread = (k - n - 1) // n
            jpt = k - spread * n - n
            ipt = jpt + spread
            if ipt > n:
                spread = jpt
                jpt = ipt - n
                ipt = spread
            xpt[k, ipt - 1] = xpt[ipt, ipt - 1]
            xpt[k, jpt - 1] = xpt[jpt, jpt - 1]
    return xpt


def build_factorization(n, npt, debug=True):
    """
    Build the factorization of a set of points along the coordinates.
    """
    xpt = coordinate_points(n, npt)
    return xpt, InverseFactorization.from_coordinate_points(xpt, debug)
