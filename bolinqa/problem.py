import warnings
from collections import deque

import numpy as np
from scipy.optimize import LinearConstraint

from .settings import PRINT_OPTIONS


class ObjectiveFunction:
    """
    Real-valued objective function.
    """

    def __init__(self, fun, verbose, store_history, history_size, debug, *args):
        """
        Initialize the objective function.

        Parameters
        ----------
        fun : callable
            Function to evaluate.

                ``fun(x, *args) -> float``

            where ``x`` is an array with shape (n,) and `args` is a tuple.
        verbose : bool
            Whether to print the function evaluations.
        store_history : bool
            Whether to store the function evaluations.
        history_size : int
            Maximum number of function evaluations to store. When the history
            is full, the oldest evaluations are discarded first.
        debug : bool
            Whether to make debugging tests during the execution.
        *args : tuple
            Additional arguments to be passed to the function.
        """
        if debug:
            assert callable(fun)
            assert isinstance(verbose, bool)
            assert isinstance(store_history, bool)
            assert isinstance(history_size, int)
            assert history_size > 0
            assert isinstance(debug, bool)

        self._fun = fun
        self._verbose = verbose
        self._store_history = store_history
        self._history = deque(maxlen=history_size)
        self._args = args
        self._n_eval = 0

    def __call__(self, x):
        """
        Evaluate the objective function.

        Parameters
        ----------
        x : array_like, shape (n,)
            Point at which the objective function is evaluated.

        Returns
        -------
        float
            Function value at `x`. It may be NaN or infinite.
        """
        x = np.array(x, dtype=float)
        f = float(np.squeeze(self._fun(x, *self._args)))
        self._n_eval += 1
        if self._store_history:
            self._history.append((x, f))
        if self._verbose:
            with np.printoptions(**PRINT_OPTIONS):
                print(f"{self.name}({x}) = {f}")
        return f

    @property
    def n_eval(self):
        """
        Number of function evaluations.

        Returns
        -------
        int
            Number of function evaluations.
        """
        return self._n_eval

    @property
    def name(self):
        """
        Name of the objective function.

        Returns
        -------
        str
            Name of the objective function.
        """
        try:
            return self._fun.__name__
        except AttributeError:
            return "fun"

    @property
    def fun_history(self):
        """
        History of the objective function values, oldest first.

        Returns
        -------
        `numpy.ndarray`, shape (n_history,)
            History of the objective function values.
        """
        return np.array([f for _, f in self._history], dtype=float)

    @property
    def x_history(self):
        """
        History of the evaluated points, oldest first.

        Returns
        -------
        `numpy.ndarray`, shape (n_history, n)
            History of the evaluated points.
        """
        if len(self._history) == 0:
            return np.empty((0, 0))
        return np.array([x for x, _ in self._history])


class BoundConstraints:
    """
    Bound constraints ``xl <= x <= xu``.
    """

    def __init__(self, xl, xu):
        """
        Initialize the bound constraints.

        Parameters
        ----------
        xl : array_like, shape (n,)
            Lower bound.
        xu : array_like, shape (n,)
            Upper bound.
        """
        self._xl = np.array(xl, dtype=float)
        self._xu = np.array(xu, dtype=float)

        # Remove the ill-defined bounds.
        self.xl[np.isnan(self.xl)] = -np.inf
        self.xu[np.isnan(self.xu)] = np.inf

    @property
    def xl(self):
        """
        Lower bound.

        Returns
        -------
        `numpy.ndarray`, shape (n,)
            Lower bound.
        """
        return self._xl

    @property
    def xu(self):
        """
        Upper bound.

        Returns
        -------
        `numpy.ndarray`, shape (n,)
            Upper bound.
        """
        return self._xu

    @property
    def m(self):
        """
        Number of bound constraints.

        Returns
        -------
        int
            Number of bound constraints.
        """
        return np.count_nonzero(self.xl > -np.inf) + np.count_nonzero(self.xu < np.inf)

    def maxcv(self, x):
        """
        Evaluate the maximum constraint violation.

        Parameters
        ----------
        x : array_like, shape (n,)
            Point at which the maximum constraint violation is evaluated.

        Returns
        -------
        float
            Maximum constraint violation at `x`.
        """
        x = np.asarray(x, dtype=float)
        val = np.max(self.xl - x, initial=0.0)
        return np.max(x - self.xu, initial=val)

    def project(self, x):
        """
        Project a point onto the feasible set.

        Parameters
        ----------
        x : array_like, shape (n,)
            Point to be projected.

        Returns
        -------
        `numpy.ndarray`, shape (n,)
            Projection of `x` onto the feasible set.
        """
        return np.clip(x, self.xl, self.xu)


class LinearConstraints:
    """
    Linear inequality constraints ``a_ub @ x <= b_ub``.

    Equality constraints are represented by two opposite inequalities.
    """

    def __init__(self, constraints, n, debug):
        """
        Initialize the linear constraints.

        Parameters
        ----------
        constraints : list of LinearConstraint
            Linear constraints.
        n : int
            Number of variables.
        debug : bool
            Whether to make debugging tests during the execution.
        """
        if debug:
            assert isinstance(constraints, list)
            for constraint in constraints:
                assert isinstance(constraint, LinearConstraint)
            assert isinstance(debug, bool)

        self._a_ub = np.empty((0, n))
        self._b_ub = np.empty(0)
        for constraint in constraints:
            a = np.atleast_2d(np.asarray(constraint.A, dtype=float))
            if a.shape[1] != n:
                raise ValueError(f'The left-hand side matrices of the linear constraints must have {n} columns.')
            m = a.shape[0]
            lb = np.broadcast_to(np.asarray(constraint.lb, dtype=float), (m,))
            ub = np.broadcast_to(np.asarray(constraint.ub, dtype=float), (m,))
            self._a_ub = np.vstack((self.a_ub, a, -a))
            self._b_ub = np.concatenate((self.b_ub, ub, -lb))

        # Remove the ill-defined constraints. The constraints with infinite
        # right-hand sides are always satisfied.
        self.a_ub[np.isnan(self.a_ub)] = 0.0
        undef_ub = np.isnan(self.b_ub) | np.isinf(self.b_ub)
        self._a_ub = self.a_ub[~undef_ub, :]
        self._b_ub = self.b_ub[~undef_ub]

    @property
    def a_ub(self):
        """
        Left-hand side matrix of the linear inequality constraints.

        Returns
        -------
        `numpy.ndarray`, shape (m, n)
            Left-hand side matrix of the linear inequality constraints.
        """
        return self._a_ub

    @property
    def b_ub(self):
        """
        Right-hand side vector of the linear inequality constraints.

        Returns
        -------
        `numpy.ndarray`, shape (m,)
            Right-hand side vector of the linear inequality constraints.
        """
        return self._b_ub

    @property
    def m(self):
        """
        Number of linear inequality constraints.

        Returns
        -------
        int
            Number of linear inequality constraints.
        """
        return self.b_ub.size

    def maxcv(self, x):
        """
        Evaluate the maximum constraint violation.

        Parameters
        ----------
        x : array_like, shape (n,)
            Point at which the maximum constraint violation is evaluated.

        Returns
        -------
        float
            Maximum constraint violation at `x`.
        """
        x = np.asarray(x, dtype=float)
        return float(np.max(self.a_ub @ x - self.b_ub, initial=0.0))


class Problem:
    """
    Optimization problem.

    The problem keeps track of the best point evaluated so far. Only the
    evaluations with finite objective function values are taken into account.
    """

    def __init__(self, obj, x0, bounds, linear, feasibility_tol, debug):
        """
        Initialize the problem.

        Parameters
        ----------
        obj : ObjectiveFunction
            Objective function.
        x0 : array_like, shape (n,)
            Initial guess.
        bounds : BoundConstraints
            Bound constraints.
        linear : LinearConstraints
            Linear constraints.
        feasibility_tol : float
            Tolerance on the constraint violation.
        debug : bool
            Whether to make debugging tests during the execution.
        """
        if debug:
            assert isinstance(obj, ObjectiveFunction)
            assert isinstance(bounds, BoundConstraints)
            assert isinstance(linear, LinearConstraints)
            assert isinstance(feasibility_tol, float)
            assert isinstance(debug, bool)

        # Check the consistency of the problem.
        x0 = np.array(x0, dtype=float)
        if x0.ndim != 1:
            raise ValueError('The initial guess must be a vector.')
        n = x0.size
        if n < 1:
            raise ValueError('The initial guess must have at least one component.')
        if not np.all(np.isfinite(x0)):
            raise ValueError('The initial guess must be finite.')
        if bounds.xl.shape != (n,) or bounds.xu.shape != (n,):
            raise ValueError(f'The bounds must have {n} elements.')
        if not np.all(bounds.xl <= bounds.xu):
            raise ValueError('The bound constraints are infeasible.')
        if linear.a_ub.shape[1] != n:
            raise ValueError(f'The left-hand side matrices of the linear constraints must have {n} columns.')

        self._obj = obj
        self._bounds = bounds
        self._linear = linear
        self._feasibility_tol = feasibility_tol

        # Project the initial guess onto the bound constraints.
        self._x0 = bounds.project(x0)
        if np.any(self._x0 != x0):
            warnings.warn('The initial guess has been projected onto the bound constraints.', RuntimeWarning, 3)
        if linear.maxcv(self._x0) > feasibility_tol:
            warnings.warn('The initial guess does not satisfy the linear constraints.', RuntimeWarning, 3)

        self._x_best = np.copy(self._x0)
        self._fun_best = np.nan
        self._maxcv_best = np.inf

    def __call__(self, x):
        """
        Evaluate the objective function.

        Parameters
        ----------
        x : array_like, shape (n,)
            Point at which the objective function is evaluated.

        Returns
        -------
        float
            Objective function value at `x`.
        float
            Maximum constraint violation at `x`.
        """
        x = np.asarray(x, dtype=float)
        fun_val = self._obj(x)
        maxcv_val = self.maxcv(x)
        if np.isfinite(fun_val) and self.is_better(fun_val, maxcv_val, self._fun_best, self._maxcv_best):
            self._x_best = np.copy(x)
            self._fun_best = fun_val
            self._maxcv_best = maxcv_val
        return fun_val, maxcv_val

    @property
    def n(self):
        """
        Number of variables.

        Returns
        -------
        int
            Number of variables.
        """
        return self.x0.size

    @property
    def x0(self):
        """
        Initial guess, projected onto the bound constraints.

        Returns
        -------
        `numpy.ndarray`, shape (n,)
            Initial guess.
        """
        return self._x0

    @property
    def bounds(self):
        """
        Bound constraints.

        Returns
        -------
        BoundConstraints
            Bound constraints.
        """
        return self._bounds

    @property
    def linear(self):
        """
        Linear constraints.

        Returns
        -------
        LinearConstraints
            Linear constraints.
        """
        return self._linear

    @property
    def feasibility_tol(self):
        """
        Tolerance on the constraint violation.

        Returns
        -------
        float
            Tolerance on the constraint violation.
        """
        return self._feasibility_tol

    @property
    def n_eval(self):
        """
        Number of function evaluations.

        Returns
        -------
        int
            Number of function evaluations.
        """
        return self._obj.n_eval

    @property
    def fun_name(self):
        """
        Name of the objective function.

        Returns
        -------
        str
            Name of the objective function.
        """
        return self._obj.name

    @property
    def fun_history(self):
        """
        History of the objective function values.

        Returns
        -------
        `numpy.ndarray`, shape (n_history,)
            History of the objective function values.
        """
        return self._obj.fun_history

    @property
    def x_history(self):
        """
        History of the evaluated points.

        Returns
        -------
        `numpy.ndarray`, shape (n_history, n)
            History of the evaluated points.
        """
        return self._obj.x_history

    @property
    def type(self):
        """
        Type of the problem.

        Returns
        -------
        {'unconstrained', 'bound-constrained', 'linearly constrained'}
            Type of the problem.
        """
        if self.linear.m > 0:
            return 'linearly constrained'
        elif self.bounds.m > 0:
            return 'bound-constrained'
        else:
            return 'unconstrained'

    @property
    def best_eval(self):
        """
        Best point evaluated so far.

        The comparison favors the points whose constraint violations are at
        most the feasibility tolerance. If no evaluation provided a finite
        objective function value, the initial guess is returned with a NaN
        objective function value.

        Returns
        -------
        `numpy.ndarray`, shape (n,)
            Best point.
        float
            Objective function value at the best point.
        float
            Maximum constraint violation at the best point.
        """
        maxcv_best = self._maxcv_best if np.isfinite(self._maxcv_best) else self.maxcv(self._x_best)
        return np.copy(self._x_best), self._fun_best, maxcv_best

    def maxcv(self, x):
        """
        Evaluate the maximum constraint violation.

        Parameters
        ----------
        x : array_like, shape (n,)
            Point at which the maximum constraint violation is evaluated.

        Returns
        -------
        float
            Maximum constraint violation at `x`.
        """
        return max(self.bounds.maxcv(x), self.linear.maxcv(x))

    def is_better(self, fun1, maxcv1, fun2, maxcv2):
        """
        Compare two evaluations, the constraint violations being considered
        first.

        Parameters
        ----------
        fun1 : float
            Objective function value of the first evaluation.
        maxcv1 : float
            Maximum constraint violation of the first evaluation.
        fun2 : float
            Objective function value of the second evaluation. If it is NaN,
            the first evaluation is always better.
        maxcv2 : float
            Maximum constraint violation of the second evaluation.

        Returns
        -------
        bool
            Whether the first evaluation is strictly better than the second.
        """
        if np.isnan(fun2):
            return True
        feasible1 = maxcv1 <= self.feasibility_tol
        feasible2 = maxcv2 <= self.feasibility_tol
        if feasible1 and feasible2:
            return fun1 < fun2
        elif feasible1 != feasible2:
            return feasible1
        return maxcv1 < maxcv2 or maxcv1 == maxcv2 and fun1 < fun2
