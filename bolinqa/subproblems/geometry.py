import numpy as np

from ..utils import max_abs_arrays


def bound_constrained_geometry_step(grad, hess_prod, xpt, kopt, sl, su, delta, denominator, debug):
    r"""
    Maximize approximately the absolute value of a Lagrange polynomial subject
    to bound constraints in a trust region.

    This function solves approximately

    .. math::

        \begin{aligned}
            \max_{d \in \R^n}   & \quad \abs[\bigg]{g^{\T}d + \frac{1}{2} d^{\T}Hd}\\
            \text{s.t.}         & \quad l \le x_{\text{opt}} + d \le u,\\
                                & \quad \norm{d} \le \Delta,
        \end{aligned}

    where :math:`g` and :math:`H` are the gradient at :math:`x_{\text{opt}}`
    and the Hessian matrix of the Lagrange polynomial, which vanishes at
    :math:`x_{\text{opt}}`. Two candidates are calculated: the best step along
    the straight lines through the center and the interpolation points, and
    the best step along the constrained Cauchy direction. The one with the
    largest denominator of the updating formula is returned.

    Parameters
    ----------
    grad : numpy.ndarray, shape (n,)
        Gradient :math:`g` as shown above.
    hess_prod : callable
        Product of the Hessian matrix :math:`H` with any vector.

            ``hess_prod(d) -> numpy.ndarray, shape (n,)``

        returns the product :math:`Hd`.
    xpt : numpy.ndarray, shape (npt, n)
        Interpolation points.
    kopt : int
        Index of the center of the trust region :math:`x_{\text{opt}}`.
    sl : numpy.ndarray, shape (n,)
        Lower bounds :math:`l` as shown above.
    su : numpy.ndarray, shape (n,)
        Upper bounds :math:`u` as shown above.
    delta : float
        Trust-region radius :math:`\Delta` as shown above.
    denominator : callable
        Denominator of the updating formula.

            ``denominator(d) -> float``

        returns the denominator when the interpolation point is replaced with
        ``x_opt + d``.
    debug : bool
        Whether to make debugging tests during the execution.

    Returns
    -------
    numpy.ndarray, shape (n,)
        Approximate solution :math:`d`.

    Notes
    -----
    This function is adapted from the ALTMOV algorithm of BOBYQA [1]_, with the
    alternatives described in p. 115 of [2]_.

    References
    ----------
    .. [1] M. J. D. Powell. The BOBYQA algorithm for bound constrained
       optimization without derivatives. Tech. rep. DAMTP 2009/NA06. Cambridge,
       UK: Department of Applied Mathematics and Theoretical Physics, University
       of Cambridge, 2009.
    .. [2] T. M. Ragonneau. "Model-Based Derivative-Free Optimization Methods
       and Software." Ph.D. thesis. Hong Kong: Department of Applied
       Mathematics, The Hong Kong Polytechnic University, 2022.
    """
    xopt = xpt[kopt, :]
    xl = np.minimum(sl - xopt, 0.0)
    xu = np.maximum(su - xopt, 0.0)
    if debug:
        n = grad.size
        tol = 10.0 * np.finfo(float).eps * n * max_abs_arrays(sl, su)
        assert np.max(sl - xopt) <= tol
        assert np.min(su - xopt) >= -tol
        assert np.isfinite(delta) and delta > 0.0

    directions = np.delete(xpt, kopt, 0) - xopt
    line_step = _line_step(grad, hess_prod, directions, xl, xu, delta)
    cauchy_step = _cauchy_step(grad, hess_prod, xl, xu, delta)
    step = line_step
    if denominator(cauchy_step) > denominator(line_step):
        step = cauchy_step

    if debug:
        assert np.all(xl <= step)
        assert np.all(step <= xu)
        assert np.linalg.norm(step) < 1.1 * delta
    return step


def linearly_constrained_geometry_step(grad, hess_prod, xpt, kopt, a_ub, b_ub, sl, su, active, delta, debug):
    r"""
    Maximize approximately the absolute value of a Lagrange polynomial subject
    to bound constraints in a trust region, and check whether the solution
    satisfies the linear constraints.

    Two candidates are calculated: the best step along the straight lines
    through the center and the interpolation points, and the step along the
    gradient of the Lagrange polynomial projected onto the null space of the
    active constraints. The latter is preferred when it increases the absolute
    value of the Lagrange polynomial at least half as much as the former and
    when it is feasible.

    Parameters
    ----------
    grad : numpy.ndarray, shape (n,)
        Gradient of the Lagrange polynomial at the center of the trust region.
    hess_prod : callable
        Product of the Hessian matrix of the Lagrange polynomial with any
        vector.
    xpt : numpy.ndarray, shape (npt, n)
        Interpolation points.
    kopt : int
        Index of the center of the trust region.
    a_ub : numpy.ndarray, shape (m_linear_ub, n)
        Left-hand side matrix of the linear constraints ``a_ub @ x <= b_ub``.
    b_ub : numpy.ndarray, shape (m_linear_ub,)
        Right-hand side vector of the linear constraints.
    sl : numpy.ndarray, shape (n,)
        Lower bounds on the variables.
    su : numpy.ndarray, shape (n,)
        Upper bounds on the variables.
    active : ActiveSet
        Working set of the last trust-region step.
    delta : float
        Trust-region radius.
    debug : bool
        Whether to make debugging tests during the execution.

    Returns
    -------
    numpy.ndarray, shape (n,)
        Geometry-improving step.
    bool
        Whether ``xpt[kopt] + step`` satisfies the linear constraints that
        ``xpt[kopt]`` satisfies, without increasing the violation of the
        other ones.

    Notes
    -----
    This function is adapted from the GEOSTEP algorithm of LINCOA [1]_.

    References
    ----------
    .. [1] M. J. D. Powell. "On fast trust region methods for quadratic models
       with linear constraints." In: Math. Program. Comput. 7 (2015), pp.
       237--267.
    """
    tiny = np.finfo(float).tiny
    xopt = xpt[kopt, :]
    xl = np.minimum(sl - xopt, 0.0)
    xu = np.maximum(su - xopt, 0.0)
    if debug:
        assert np.isfinite(delta) and delta > 0.0

    directions = np.delete(xpt, kopt, 0) - xopt
    step = _line_step(grad, hess_prod, directions, xl, xu, delta)
    q_val = abs(np.inner(grad, step) + 0.5 * np.inner(step, hess_prod(step)))

    # Calculate the step along the projected gradient, whose sign is chosen
    # to maximize the absolute value of the Lagrange polynomial.
    pgrad = active.project(grad)
    pg_norm = np.linalg.norm(pgrad)
    if pg_norm > tiny * delta:
        pstep = (delta / pg_norm) * pgrad
        grad_step = np.inner(grad, pstep)
        curv_step = np.inner(pstep, hess_prod(pstep))
        if abs(grad_step + 0.5 * curv_step) < abs(-grad_step + 0.5 * curv_step):
            pstep = -pstep
        pstep = np.clip(pstep, xl, xu)
        pq_val = abs(np.inner(grad, pstep) + 0.5 * np.inner(pstep, hess_prod(pstep)))
        if pq_val >= 0.5 * q_val and _is_feasible(pstep, xopt, a_ub, b_ub):
            step = pstep

    feasible = _is_feasible(step, xopt, a_ub, b_ub)
    if debug:
        assert np.all(xl <= step)
        assert np.all(step <= xu)
        assert np.linalg.norm(step) < 1.1 * delta
    return step, feasible


def _is_feasible(step, xopt, a_ub, b_ub):
    """
    Whether ``xopt + step`` does not violate the linear constraints more than
    ``xopt`` does.
    """
    if b_ub.size == 0:
        return True
    resid = b_ub - a_ub @ xopt
    tol = 10.0 * np.finfo(float).eps * step.size * np.max(np.abs(b_ub), initial=1.0)
    return bool(np.all(a_ub @ step <= np.maximum(resid, 0.0) + tol))


def _line_step(grad, hess_prod, directions, xl, xu, delta):
    """
    Maximize the absolute value of the quadratic function along the straight
    lines through the origin and the rows of `directions`.
    """
    tiny = np.finfo(float).tiny
    step = np.zeros_like(grad)
    q_val = 0.0
    for direction in directions:
        # Set alpha_tr to the step size for the trust-region constraint.
        s_norm = np.linalg.norm(direction)
        if s_norm <= tiny * delta:
            continue
        alpha_tr = max(delta / s_norm, 0.0)

        # Set alpha_xl and alpha_xu to the most negative and most positive
        # step sizes allowed by the bound constraints.
        i_pos = direction > 0.0
        i_neg = direction < 0.0
        alpha_xl = max(np.max(xl[i_pos] / direction[i_pos], initial=-np.inf), np.max(xu[i_neg] / direction[i_neg], initial=-np.inf))
        alpha_xu = min(np.min(xu[i_pos] / direction[i_pos], initial=np.inf), np.min(xl[i_neg] / direction[i_neg], initial=np.inf))

        # The quadratic function along the line is a parabola vanishing at
        # the origin, so that its extrema are at the unconstrained stationary
        # point or at the boundaries of the feasible interval.
        grad_step = np.inner(grad, direction)
        curv_step = np.inner(direction, hess_prod(direction))
        alpha_pos = min(alpha_tr, alpha_xu)
        alpha_neg = max(-alpha_tr, alpha_xl)
        candidates = [alpha_pos, alpha_neg]
        if abs(curv_step) > tiny * abs(grad_step):
            alpha_stat = -grad_step / curv_step
            if alpha_neg < alpha_stat < alpha_pos:
                candidates.append(alpha_stat)
        for alpha in candidates:
            value = alpha * grad_step + 0.5 * alpha ** 2.0 * curv_step
            if abs(value) > abs(q_val):
                step = np.clip(alpha * direction, xl, xu)
                q_val = value
    return step


def _cauchy_step(grad, hess_prod, xl, xu, delta):
    """
    Maximize the absolute value of the quadratic function along the
    constrained Cauchy directions of the function and of its negative.
    """
    step_pos, q_pos = _signed_cauchy_step(grad, hess_prod, xl, xu, delta)
    step_neg, q_neg = _signed_cauchy_step(-grad, lambda v: -hess_prod(v), xl, xu, delta)
    return step_pos if q_pos >= q_neg else step_neg


def _signed_cauchy_step(grad, hess_prod, xl, xu, delta):
    """
    Maximize the quadratic function along its constrained Cauchy direction.
    """
    tiny = np.finfo(float).tiny

    # Move the variables along the gradient until the total length reaches
    # delta, fixing the variables whose bounds are reached.
    fixed_xl = (xl < 0.0) & (grad < 0.0)
    fixed_xu = (xu > 0.0) & (grad > 0.0)
    cauchy_step = np.zeros_like(grad)
    cauchy_step[fixed_xl] = xl[fixed_xl]
    cauchy_step[fixed_xu] = xu[fixed_xu]
    if np.linalg.norm(cauchy_step) > delta:
        working = fixed_xl | fixed_xu
        while True:
            g_norm = np.linalg.norm(grad[working])
            delta_reduced = np.sqrt(max(delta ** 2.0 - np.inner(cauchy_step[~working], cauchy_step[~working]), 0.0))
            if g_norm <= tiny * abs(delta_reduced):
                break
            cauchy_step[working] = (delta_reduced / g_norm) * grad[working]
            fixed_xl = working & (cauchy_step < xl)
            fixed_xu = working & (cauchy_step > xu)
            if not np.any(fixed_xl) and not np.any(fixed_xu):
                break
            cauchy_step[fixed_xl] = xl[fixed_xl]
            cauchy_step[fixed_xu] = xu[fixed_xu]
            working = working & ~(fixed_xl | fixed_xu)

    # Choose the step size that maximizes the quadratic function along the
    # Cauchy direction.
    grad_step = np.inner(grad, cauchy_step)
    if grad_step <= 0.0:
        return np.zeros_like(grad), 0.0
    s_norm = np.linalg.norm(cauchy_step)
    alpha_tr = delta / s_norm if s_norm > tiny * delta else 0.0
    curv_step = np.inner(cauchy_step, hess_prod(cauchy_step))
    if curv_step < -tiny * grad_step:
        alpha_quad = max(-grad_step / curv_step, 0.0)
    else:
        alpha_quad = np.inf
    i_xl = cauchy_step < 0.0
    i_xu = cauchy_step > 0.0
    alpha_bd = min(np.min(xl[i_xl] / cauchy_step[i_xl], initial=np.inf), np.min(xu[i_xu] / cauchy_step[i_xu], initial=np.inf))
    alpha = min(alpha_tr, alpha_quad, alpha_bd)
    step = np.clip(alpha * cauchy_step, xl, xu)
    return step, alpha * grad_step + 0.5 * alpha ** 2.0 * curv_step
