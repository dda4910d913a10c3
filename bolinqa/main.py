import logging
import warnings

import numpy as np
from scipy.optimize import Bounds, LinearConstraint, OptimizeResult

from .framework import TrustRegion
from .problem import ObjectiveFunction, BoundConstraints, LinearConstraints, Problem
from .settings import ExitStatus, Options, Constants, DEFAULT_OPTIONS, DEFAULT_CONSTANTS, PRINT_OPTIONS
from .utils import MaxEvalError, TargetSuccess, NonFiniteStartError, DegenerateGeometryError, moderate

_log = logging.getLogger(__name__)


def minimize(fun, x0, args=(), bounds=None, constraints=(), options=None, **kwargs):
    r"""
    Minimize a scalar function using a derivative-free trust-region method.

    The method builds quadratic models of the objective function by
    underdetermined interpolation, the freedom in the models being taken up by
    minimizing the Frobenius norm of the change of their Hessian matrices
    [2]_. The trust-region subproblems are solved by truncated conjugate
    gradient methods, which handle the bound constraints as in BOBYQA [3]_
    and the linear constraints by an active-set strategy as in LINCOA [4]_.

    Parameters
    ----------
    fun : callable
        Objective function to be minimized.

            ``fun(x, *args) -> float``

        where ``x`` is an array with shape (n,) and `args` is a tuple. It may
        return NaN or infinite values, except at the initial guess.
    x0 : array_like, shape (n,)
        Initial guess.
    args : tuple, optional
        Extra arguments passed to the objective function.
    bounds : {`scipy.optimize.Bounds`, array_like, shape (n, 2)}, optional
        Bound constraints of the problem. It can be one of the cases below.

        #. An instance of `scipy.optimize.Bounds`.
        #. An array with shape (n, 2). The bound constraints for ``x[i]`` are
           ``bounds[i][0] <= x[i] <= bounds[i][1]``. Set ``bounds[i][0]`` to
           :math:`-\infty` if there is no lower bound, and set ``bounds[i][1]``
           to :math:`\infty` if there is no upper bound.

    constraints : {`scipy.optimize.LinearConstraint`, list}, optional
        Linear constraints of the problem. It can be an instance of
        `scipy.optimize.LinearConstraint` or a list of such instances.
    options : dict, optional
        Options passed to the solver. Accepted keys are:

            verbose : bool, optional
                Whether to print information about the optimization procedure.
            max_eval : int, optional
                Maximum number of function evaluations.
            nb_points : int, optional
                Number of interpolation points. It must lie between ``n + 2``
                and ``(n + 1) * (n + 2) / 2``.
            radius_init : float, optional
                Initial trust-region radius.
            radius_final : float, optional
                Final trust-region radius.
            target : float, optional
                Target on the objective function value. The optimization
                procedure is terminated when the objective function value of a
                nearly feasible point is less than or equal to this target.
            feasibility_tol : float, optional
                Tolerance on the constraint violation.
            store_history : bool, optional
                Whether to store the history of the function evaluations.
            history_size : int, optional
                Maximum number of function evaluations to store in the history.
            debug : bool, optional
                Whether to perform additional checks. This option should be
                used only for debugging purposes and is highly discouraged.

    **kwargs
        Algorithmic constants of the solver. See `bolinqa.settings.Constants`
        for the accepted keys.

    Returns
    -------
    `scipy.optimize.OptimizeResult`
        Result of the optimization procedure, with the following fields:

            message : str
                Description of the cause of the termination.
            success : bool
                Whether the optimization procedure terminated successfully.
            status : int
                Termination status of the optimization procedure.
            x : `numpy.ndarray`, shape (n,)
                Solution point.
            fun : float
                Objective function value at the solution point.
            maxcv : float
                Maximum constraint violation at the solution point.
            nit : int
                Number of iterations.
            nfev : int
                Number of function evaluations.

        If the ``store_history`` option is True, the result also has the
        following fields:

            fun_history : `numpy.ndarray`, shape (n_history,)
                History of the objective function values.
            x_history : `numpy.ndarray`, shape (n_history, n)
                History of the evaluated points.

        A description of the termination statuses is given below.

        .. list-table::
            :widths: 25 75
            :header-rows: 1

            * - Exit status
              - Description
            * - 0
              - The lower bound for the trust-region radius has been reached.
            * - 1
              - The target objective function value has been reached.
            * - 2
              - The maximum number of function evaluations has been exceeded.
            * - -1
              - The objective function value at the initial guess is not
                finite.
            * - -2
              - The interpolation set cannot be repaired.

    References
    ----------
    .. [1] J. Nocedal and S. J. Wright. *Numerical Optimization*. Springer
       Series in Operations Research and Financial Engineering. Springer, New
       York, NY, USA, second edition, 2006.
    .. [2] M. J. D. Powell. Least Frobenius norm updating of quadratic models
       that satisfy interpolation conditions. *Math. Program.*, 100(1):183–215,
       2004.
    .. [3] M. J. D. Powell. The BOBYQA algorithm for bound constrained
       optimization without derivatives. Tech. rep. DAMTP 2009/NA06.
       Cambridge, UK: Department of Applied Mathematics and Theoretical
       Physics, University of Cambridge, 2009.
    .. [4] M. J. D. Powell. On fast trust region methods for quadratic models
       with linear constraints. *Math. Program. Comput.*, 7(3):237–267, 2015.

    Examples
    --------
    Let us first minimize the Rosenbrock function implemented in
    `scipy.optimize` in an unconstrained setting.

    .. testsetup::

        import numpy as np
        np.set_printoptions(precision=3, suppress=True)

    >>> import numpy as np
    >>> from bolinqa import minimize
    >>> from scipy.optimize import Bounds, LinearConstraint, rosen

    To solve the problem, run:

    >>> x0 = [1.3, 0.7, 0.8, 1.9, 1.2]
    >>> res = minimize(rosen, x0)
    >>> res.x
    array([1., 1., 1., 1., 1.])

    To see how bound and linear constraints are handled using `minimize`, we
    solve Example 16.4 of [1]_, defined as

    .. math::

        \begin{aligned}
            \min_{x \in \mathbb{R}^2}   & \quad (x_1 - 1)^2 + (x_2 - 2.5)^2\\
            \text{s.t.}                 & \quad -x_1 + 2x_2 \le 2,\\
                                        & \quad x_1 + 2x_2 \le 6,\\
                                        & \quad x_1 - 2x_2 \le 2,\\
                                        & \quad x_1 \ge 0,\\
                                        & \quad x_2 \ge 0.
        \end{aligned}

    Its objective function can be implemented as:

    >>> def fun(x):
    ...     return (x[0] - 1.0) ** 2.0 + (x[1] - 2.5) ** 2.0

    This problem can be solved using `minimize` as:

    >>> x0 = [2.0, 0.0]
    >>> bounds = Bounds([0.0, 0.0], np.inf)
    >>> constraints = LinearConstraint([[-1.0, 2.0], [1.0, 2.0], [1.0, -2.0]], -np.inf, [2.0, 6.0, 2.0])
    >>> res = minimize(fun, x0, bounds=bounds, constraints=constraints)
    >>> res.x
    array([1.4, 1.7])
    """
    # Get basic options that are needed for the initialization.
    if options is None:
        options = {}
    else:
        options = dict(options)
    verbose = options.get(Options.VERBOSE, DEFAULT_OPTIONS[Options.VERBOSE])
    verbose = bool(verbose)
    feasibility_tol = options.get(Options.FEASIBILITY_TOL, DEFAULT_OPTIONS[Options.FEASIBILITY_TOL])
    feasibility_tol = float(feasibility_tol)
    store_history = options.get(Options.STORE_HISTORY, DEFAULT_OPTIONS[Options.STORE_HISTORY])
    store_history = bool(store_history)
    if Options.HISTORY_SIZE in options and options[Options.HISTORY_SIZE] <= 0:
        raise ValueError('The size of the history must be positive.')
    history_size = options.get(Options.HISTORY_SIZE, DEFAULT_OPTIONS[Options.HISTORY_SIZE])
    history_size = int(history_size)
    debug = options.get(Options.DEBUG, DEFAULT_OPTIONS[Options.DEBUG])
    debug = bool(debug)
    constants = _set_default_constants(kwargs)

    # Bound the size of the history by the memory it may use, each entry
    # storing a point and a function value.
    if not hasattr(x0, '__len__'):
        x0 = [x0]
    n = len(x0)
    if store_history:
        capacity = max(int(constants[Constants.HISTORY_MEMORY] // (8 * (n + 1))), 1)
        if history_size > capacity:
            if Options.HISTORY_SIZE in options:
                warnings.warn(f'The size of the history has been reduced to {capacity}.', RuntimeWarning, 2)
            history_size = capacity
    options[Options.HISTORY_SIZE.value] = history_size

    # Initialize the objective function.
    if not isinstance(args, tuple):
        args = (args,)
    obj = ObjectiveFunction(fun, verbose, store_history, history_size, debug, *args)

    # Initialize the bound and linear constraints.
    xl, xu = _get_bounds(bounds, n)
    bounds = BoundConstraints(xl, xu)
    linear = LinearConstraints(_get_linear_constraints(constraints), n, debug)

    # Initialize the problem and set the default options.
    pb = Problem(obj, x0, bounds, linear, feasibility_tol, debug)
    _set_default_options(options, pb.n)

    if verbose:
        print('Starting the optimization procedure.')
        print(f'Initial trust-region radius: {options[Options.RHOBEG]}.')
        print(f'Final trust-region radius: {options[Options.RHOEND]}.')
        print(f'Maximum number of function evaluations: {options[Options.MAX_EVAL]}.')
        print()
    try:
        framework = TrustRegion(pb, options, constants)
    except NonFiniteStartError:
        # The objective function value at the initial guess is not finite.
        return _build_result(pb, False, ExitStatus.NONFINITE_START_ERROR, 0, options)
    if framework.models.target_init:
        # The target on the objective function value has been reached.
        return _build_result(pb, True, ExitStatus.TARGET_SUCCESS, 0, options)

    # Start the optimization procedure. The lengths of the last trust-region
    # steps are saved to decide whether the models are accurate.
    success = False
    n_iter = 0
    s_norm_history = np.full(5, np.inf)
    step = np.zeros(pb.n)
    short_step = False
    while True:
        n_iter += 1
        framework.shift_x_base()
        models = framework.models

        # Evaluate the trial step.
        step, n_getact = framework.get_trust_region_step()
        s_norm = min(framework.radius, np.linalg.norm(step))
        short_step = framework.is_short_step(step, n_getact)
        s_norm_history = np.roll(s_norm_history, -1)
        s_norm_history[-1] = s_norm
        if framework.radius > framework.resolution or not short_step:
            s_norm_history.fill(np.inf)
        predicted = -models.quadinc(step)

        ratio = -np.inf
        k_new = None
        if short_step or not predicted > 0.0:
            # The step is not worth an evaluation of the objective function.
            framework.radius = 0.5 * framework.radius
            _log.debug(f'Short trust-region step of length {s_norm}.')
        else:
            try:
                fun_val, maxcv_val = _eval(pb, framework, step, options)
            except MaxEvalError:
                success = True
                status = ExitStatus.MAX_EVAL_WARNING
                break
            except TargetSuccess:
                success = True
                status = ExitStatus.TARGET_SUCCESS
                break

            # Update the trust-region radius.
            ratio = framework.get_reduction_ratio(step, fun_val)
            framework.update_radius(step, ratio)

            # Choose an interpolation point to remove and update the
            # interpolation set, or rebuild it if no choice is safe.
            vlag, beta = models.lagrange_values(step)
            reduced = models.is_better(moderate(fun_val), maxcv_val)
            k_new = framework.get_index_to_remove(step, vlag, beta, reduced)
            try:
                if k_new is not None:
                    try:
                        models.update_interpolation(k_new, step, fun_val, maxcv_val, vlag, beta)
                    except ZeroDivisionError:
                        k_new = None
                if k_new is None:
                    framework.rescue(options, step, fun_val, maxcv_val)
            except MaxEvalError:
                success = True
                status = ExitStatus.MAX_EVAL_WARNING
                break
            except TargetSuccess:
                success = True
                status = ExitStatus.TARGET_SUCCESS
                break
            except DegenerateGeometryError:
                status = ExitStatus.DEGENERATE_ERROR
                break

        # Decide whether to improve the geometry of the interpolation set or
        # to reduce the resolution. Both never happen in the same iteration.
        resolution = framework.resolution
        accurate_models = np.all(s_norm_history <= 0.5 * resolution) or np.all(s_norm_history[2:] <= 0.1 * resolution)
        dist_sq = np.sum((models.xpt - models.x_opt) ** 2.0, axis=1)
        close_points = np.all(dist_sq <= 4.0 * framework.radius ** 2.0)
        adequate_geometry = short_step and accurate_models or close_points
        small_radius = max(framework.radius, s_norm) <= resolution
        bad_step = short_step or not predicted > 0.0 or k_new is None
        improve_geometry = (bad_step or ratio <= 0.1) and not adequate_geometry
        reduce_resolution = (bad_step or ratio <= 0.0) and adequate_geometry and small_radius

        if improve_geometry:
            framework.shift_x_base()
            k_new, dist_new = framework.get_geometry_index()
            _log.debug(f'Improving the geometry by replacing a point at distance {dist_new}.')
            step, feasible = framework.get_geometry_step(k_new)
            vlag, beta = models.lagrange_values(step)
            try:
                if framework.get_denominator(k_new, step) <= 0.5 * vlag[k_new] ** 2.0:
                    framework.rescue(options)
                else:
                    fun_val, maxcv_val = _eval(pb, framework, step, options)
                    try:
                        models.update_interpolation(k_new, step, fun_val, maxcv_val, vlag, beta, feasible)
                    except ZeroDivisionError:
                        framework.rescue(options, step, fun_val, maxcv_val)
            except MaxEvalError:
                success = True
                status = ExitStatus.MAX_EVAL_WARNING
                break
            except TargetSuccess:
                success = True
                status = ExitStatus.TARGET_SUCCESS
                break
            except DegenerateGeometryError:
                status = ExitStatus.DEGENERATE_ERROR
                break

        if reduce_resolution:
            if framework.resolution <= options[Options.RHOEND]:
                success = True
                status = ExitStatus.RADIUS_SUCCESS
                break
            framework.reduce_resolution(options)
            s_norm_history.fill(np.inf)
            if verbose:
                _print_step(f'New trust-region radius: {framework.resolution}', pb, framework.x_best, framework.fun_best, framework.models.c_opt, pb.n_eval, n_iter)
                print()

    # Try the last trust-region step if it was too short to be evaluated.
    if status == ExitStatus.RADIUS_SUCCESS and short_step and pb.n_eval < options[Options.MAX_EVAL]:
        try:
            _eval(pb, framework, step, options)
        except TargetSuccess:
            status = ExitStatus.TARGET_SUCCESS
    return _build_result(pb, success, status, n_iter, options)


def _get_bounds(bounds, n):
    """
    Extract the lower and upper bounds.
    """
    if bounds is None:
        return np.full(n, -np.inf), np.full(n, np.inf)
    elif isinstance(bounds, Bounds):
        xl = np.broadcast_to(np.asarray(bounds.lb, dtype=float), (n,))
        xu = np.broadcast_to(np.asarray(bounds.ub, dtype=float), (n,))
        return xl, xu
    elif hasattr(bounds, '__len__'):
        bounds = np.asarray(bounds, dtype=float)
        if bounds.shape != (n, 2):
            raise ValueError('The shape of the bounds is not compatible with the number of variables.')
        return bounds[:, 0], bounds[:, 1]
    else:
        raise TypeError('The bounds must be an instance of scipy.optimize.Bounds or an array-like object.')


def _get_linear_constraints(constraints):
    """
    Gather the linear constraints into a list.
    """
    if isinstance(constraints, LinearConstraint):
        return [constraints]
    elif isinstance(constraints, dict) or not hasattr(constraints, '__iter__'):
        raise TypeError('The constraints must be an instance of scipy.optimize.LinearConstraint or a list of such instances.')
    constraints = list(constraints)
    for constraint in constraints:
        if not isinstance(constraint, LinearConstraint):
            raise TypeError('The constraints must be an instance of scipy.optimize.LinearConstraint or a list of such instances.')
    return constraints


def _set_default_options(options, n):
    """
    Set the default options.
    """
    if Options.RHOBEG in options and options[Options.RHOBEG] <= 0.0:
        raise ValueError('The initial trust-region radius must be positive.')
    if Options.RHOEND in options and options[Options.RHOEND] <= 0.0:
        raise ValueError('The final trust-region radius must be positive.')
    if Options.RHOBEG in options and Options.RHOEND in options:
        if options[Options.RHOBEG] < options[Options.RHOEND]:
            raise ValueError('The initial trust-region radius must be greater than or equal to the final trust-region radius.')
    elif Options.RHOBEG in options:
        options[Options.RHOEND.value] = min(DEFAULT_OPTIONS[Options.RHOEND], options[Options.RHOBEG])
    elif Options.RHOEND in options:
        options[Options.RHOBEG.value] = max(DEFAULT_OPTIONS[Options.RHOBEG], options[Options.RHOEND])
    else:
        options[Options.RHOBEG.value] = DEFAULT_OPTIONS[Options.RHOBEG]
        options[Options.RHOEND.value] = DEFAULT_OPTIONS[Options.RHOEND]
    options[Options.RHOBEG.value] = float(options[Options.RHOBEG])
    options[Options.RHOEND.value] = float(options[Options.RHOEND])
    if Options.NPT in options and options[Options.NPT] < n + 2:
        raise ValueError(f'The number of interpolation points must be at least {n + 2}.')
    if Options.NPT in options and options[Options.NPT] > ((n + 1) * (n + 2)) // 2:
        raise ValueError(f'The number of interpolation points must be at most {((n + 1) * (n + 2)) // 2}.')
    options.setdefault(Options.NPT.value, DEFAULT_OPTIONS[Options.NPT](n))
    options[Options.NPT.value] = int(options[Options.NPT])
    if Options.MAX_EVAL in options and options[Options.MAX_EVAL] <= 0:
        raise ValueError('The maximum number of function evaluations must be positive.')
    if Options.MAX_EVAL in options and options[Options.MAX_EVAL] < options[Options.NPT] + 1:
        raise ValueError(f'The maximum number of function evaluations must be at least {options[Options.NPT] + 1}.')
    options.setdefault(Options.MAX_EVAL.value, max(DEFAULT_OPTIONS[Options.MAX_EVAL](n), options[Options.NPT] + 1))
    options[Options.MAX_EVAL.value] = int(options[Options.MAX_EVAL])
    options.setdefault(Options.TARGET.value, DEFAULT_OPTIONS[Options.TARGET])
    options[Options.TARGET.value] = float(options[Options.TARGET])
    options.setdefault(Options.FEASIBILITY_TOL.value, DEFAULT_OPTIONS[Options.FEASIBILITY_TOL])
    options[Options.FEASIBILITY_TOL.value] = float(options[Options.FEASIBILITY_TOL])
    options.setdefault(Options.VERBOSE.value, DEFAULT_OPTIONS[Options.VERBOSE])
    options[Options.VERBOSE.value] = bool(options[Options.VERBOSE])
    options.setdefault(Options.STORE_HISTORY.value, DEFAULT_OPTIONS[Options.STORE_HISTORY])
    options[Options.STORE_HISTORY.value] = bool(options[Options.STORE_HISTORY])
    options.setdefault(Options.HISTORY_SIZE.value, DEFAULT_OPTIONS[Options.HISTORY_SIZE])
    options[Options.HISTORY_SIZE.value] = int(options[Options.HISTORY_SIZE])
    options.setdefault(Options.DEBUG.value, DEFAULT_OPTIONS[Options.DEBUG])
    options[Options.DEBUG.value] = bool(options[Options.DEBUG])

    # Check whether they are any unknown options.
    for key in options:
        if key not in Options.__members__.values():
            warnings.warn(f'Unknown option: {key}.', RuntimeWarning, 3)


def _set_default_constants(kwargs):
    """
    Set the default constants of the solver.
    """
    constants = dict(kwargs)
    for key in constants:
        if key not in Constants.__members__.values():
            warnings.warn(f'Unknown constant: {key}.', RuntimeWarning, 3)
    for key, value in DEFAULT_CONSTANTS.items():
        constants.setdefault(key, value)
        constants[key] = float(constants[key])
    if not 0.0 <= constants[Constants.DECREASE_RADIUS_THRESHOLD] < constants[Constants.INCREASE_RADIUS_THRESHOLD]:
        raise ValueError('The thresholds for updating the trust-region radius must satisfy 0 <= decrease < increase.')
    if not 0.0 < constants[Constants.DECREASE_RADIUS_FACTOR] < 1.0 < constants[Constants.INCREASE_RADIUS_FACTOR]:
        raise ValueError('The factors for updating the trust-region radius must satisfy 0 < decrease < 1 < increase.')
    if not 0.0 < constants[Constants.DECREASE_RESOLUTION_FACTOR] < 1.0:
        raise ValueError('The factor for reducing the resolution must lie in (0, 1).')
    if not 1.0 <= constants[Constants.MODERATE_RESOLUTION_THRESHOLD] <= constants[Constants.LARGE_RESOLUTION_THRESHOLD]:
        raise ValueError('The thresholds for reducing the resolution must satisfy 1 <= moderate <= large.')
    if constants[Constants.HISTORY_MEMORY] <= 0.0:
        raise ValueError('The memory available for the history must be positive.')
    return constants


def _eval(pb, framework, step, options):
    """
    Evaluate the objective function at ``x_best + step``.
    """
    if pb.n_eval >= options[Options.MAX_EVAL]:
        raise MaxEvalError
    fun_val, maxcv_val = pb(framework.models.interpolation.build_x(framework.models.x_opt + step))
    if np.isfinite(fun_val) and fun_val <= options[Options.TARGET] and maxcv_val <= options[Options.FEASIBILITY_TOL]:
        raise TargetSuccess
    return fun_val, maxcv_val


def _build_result(pb, success, status, n_iter, options):
    """
    Build the result of the optimization process.
    """
    x, fun, maxcv = pb.best_eval
    result = OptimizeResult()
    result.message = {
        ExitStatus.RADIUS_SUCCESS: 'The lower bound for the trust-region radius has been reached',
        ExitStatus.TARGET_SUCCESS: 'The target objective function value has been reached',
        ExitStatus.MAX_EVAL_WARNING: 'The maximum number of function evaluations has been exceeded',
        ExitStatus.NONFINITE_START_ERROR: 'The objective function value at the initial guess is not finite',
        ExitStatus.DEGENERATE_ERROR: 'The interpolation set cannot be repaired',
    }.get(status, 'Unknown exit status')
    result.success = success
    result.status = status.value
    result.x = x
    result.fun = fun
    result.maxcv = maxcv
    result.nfev = pb.n_eval
    result.nit = n_iter
    if options[Options.STORE_HISTORY]:
        result.fun_history = pb.fun_history
        result.x_history = pb.x_history
    _log.info(f'{result.message} after {result.nfev} function evaluations.')

    # Print the result if requested.
    if options[Options.VERBOSE]:
        _print_step(result.message, pb, result.x, result.fun, result.maxcv, result.nfev, result.nit)
    return result


def _print_step(message, pb, x, fun_val, r_val, n_eval, n_iter):
    """
    Print information about the current state of the optimization process.
    """
    print()
    print(f'{message}.')
    print(f'Number of function evaluations: {n_eval}.')
    print(f'Number of iterations: {n_iter}.')
    print(f'Least value of {pb.fun_name}: {fun_val}.')
    if pb.type == 'linearly constrained':
        print(f'Maximum constraint violation: {r_val}.')
    with np.printoptions(**PRINT_OPTIONS):
        print(f'Corresponding point: {x}.')
