from enum import Enum

import numpy as np

from ..utils import max_abs_arrays
from .utils import evalc, getact


class Phase(Enum):
    """
    Phases of the truncated conjugate gradient method with bound constraints.
    """
    FREE_SEARCH = 'free_search'
    BOUNDARY_RESTART = 'boundary_restart'
    ALTERNATIVE_SEARCH = 'alternative_search'


def bound_constrained_tr_step(grad, hess_prod, xopt, sl, su, delta, debug):
    r"""
    Minimize approximately a quadratic function subject to bound constraints in
    a trust region.

    This function solves approximately

    .. math::

        \begin{aligned}
            \min_{d \in \R^n}   & \quad g^{\T}d + \frac{1}{2} d^{\T}Hd\\
            \text{s.t.}         & \quad l \le x_{\text{opt}} + d \le u,\\
                                & \quad \norm{d} \le \Delta,
        \end{aligned}

    using an active-set variation of the truncated conjugate gradient method.

    Parameters
    ----------
    grad : numpy.ndarray, shape (n,)
        Gradient :math:`g` as shown above.
    hess_prod : callable
        Product of the Hessian matrix :math:`H` with any vector.

            ``hess_prod(d) -> numpy.ndarray, shape (n,)``

        returns the product :math:`Hd`.
    xopt : numpy.ndarray, shape (n,)
        Center of the trust region :math:`x_{\text{opt}}` as shown above.
    sl : numpy.ndarray, shape (n,)
        Lower bounds :math:`l` as shown above.
    su : numpy.ndarray, shape (n,)
        Upper bounds :math:`u` as shown above.
    delta : float
        Trust-region radius :math:`\Delta` as shown above.
    debug : bool
        Whether to make debugging tests during the execution.

    Returns
    -------
    numpy.ndarray, shape (n,)
        Approximate solution :math:`d`.

    Notes
    -----
    The method is adapted from the TRSBOX algorithm [1]_. The truncated
    conjugate gradient iterations are restricted to the free variables, and a
    variable is fixed when its bound is reached, in which case the iterations
    restart. Once the trust-region boundary is reached, alternative iterations
    are made in the two-dimensional spaces spanned by the current step and the
    reduced gradient, parametrized by the tangent of half the angle of rotation.

    References
    ----------
    .. [1] M. J. D. Powell. The BOBYQA algorithm for bound constrained
       optimization without derivatives. Tech. rep. DAMTP 2009/NA06. Cambridge,
       UK: Department of Applied Mathematics and Theoretical Physics, University
       of Cambridge, 2009.
    """
    n = grad.size
    if debug:
        tol = 10.0 * np.finfo(float).eps * n * max_abs_arrays(sl, su)
        assert np.all(sl <= xopt + tol)
        assert np.all(xopt <= su + tol)
        assert np.isfinite(delta) and delta > 0.0

    # The i-th component of xbdi is -1 (respectively +1) if the i-th variable
    # is fixed at its lower (respectively upper) bound, and 0 otherwise.
    xbdi = np.zeros(n, dtype=int)
    xbdi[(xopt >= su) & (grad <= 0.0)] = 1
    xbdi[(xopt <= sl) & (grad >= 0.0)] = -1
    nact = np.count_nonzero(xbdi)
    step = np.zeros_like(grad)
    gnew = np.copy(grad)
    delsq = delta ** 2.0
    qred = 0.0
    iterc = 0
    itermax = n
    beta = 0.0
    gredsq = 0.0
    s = np.zeros_like(grad)

    phase = Phase.BOUNDARY_RESTART
    while phase != Phase.ALTERNATIVE_SEARCH:
        if phase == Phase.BOUNDARY_RESTART:
            beta = 0.0

        # Set the next search direction of the conjugate gradient method. It
        # is the steepest descent direction initially and when the iterations
        # are restarted because a new variable has been fixed.
        free = xbdi == 0
        s = beta * s - gnew
        s[~free] = 0.0
        stepsq = np.inner(s, s)
        if stepsq <= 0.0:
            return _finish(step, xopt, sl, su, xbdi, delta, debug)
        if beta == 0.0:
            gredsq = stepsq
            itermax = iterc + n - nact
        if gredsq * delsq <= 1e-4 * qred ** 2.0:
            return _finish(step, xopt, sl, su, xbdi, delta, debug)

        # Multiply the search direction by the Hessian matrix of the quadratic
        # function, and calculate the steplength to the trust-region boundary.
        hs = hess_prod(s)
        resid = delsq - np.inner(step[free], step[free])
        ds = np.inner(step[free], s[free])
        shs = np.inner(s[free], hs[free])
        if resid <= 0.0:
            break
        temp = np.sqrt(stepsq * resid + ds ** 2.0)
        if ds < 0.0:
            bstep = (temp - ds) / stepsq
        else:
            bstep = resid / (temp + ds)
        stplen = bstep
        if shs > 0.0:
            stplen = min(bstep, gredsq / shs)

        # Reduce the steplength if necessary to preserve the bound constraints.
        xsum = xopt + step
        xtest = xsum + stplen * s
        sbound = np.full(n, stplen)
        i_su = (s > 0.0) & (xtest > su)
        i_sl = (s < 0.0) & (xtest < sl)
        sbound[i_su] = (su[i_su] - xsum[i_su]) / s[i_su]
        sbound[i_sl] = (sl[i_sl] - xsum[i_sl]) / s[i_sl]
        sbound[np.isnan(sbound)] = stplen
        iact = -1
        if np.any(sbound < stplen):
            iact = np.argmin(sbound)
            stplen = sbound[iact]

        # Update the step and the reduced gradient.
        sdec = 0.0
        ggsav = gredsq
        if stplen > 0.0:
            iterc += 1
            gnew += stplen * hs
            gredsq = np.inner(gnew[free], gnew[free])
            step += stplen * s
            sdec = max(stplen * (ggsav - 0.5 * stplen * shs), 0.0)
            qred += sdec

        # Restart the conjugate gradient method if a new variable has been
        # fixed, or continue the iterations otherwise.
        if iact >= 0:
            nact += 1
            xbdi[iact] = 1 if s[iact] > 0.0 else -1
            delsq -= step[iact] ** 2.0
            if delsq <= 0.0:
                break
            phase = Phase.BOUNDARY_RESTART
        elif stplen < bstep:
            if iterc == itermax or not sdec > 1e-2 * qred:
                return _finish(step, xopt, sl, su, xbdi, delta, debug)
            beta = gredsq / ggsav
            phase = Phase.FREE_SEARCH
        else:
            phase = Phase.ALTERNATIVE_SEARCH

    # Make alternative iterations on the trust-region boundary, until fewer
    # than two free variables remain.
    nactsav = nact - 1
    dredsq = dredg = 0.0
    hred = np.zeros_like(grad)
    while nact < n - 1:
        iterc += 1
        xsum = xopt + step
        fixed_su = (xbdi == 0) & (xsum >= su)
        fixed_sl = (xbdi == 0) & (xsum <= sl)
        xbdi[fixed_su] = 1
        xbdi[fixed_sl] = -1
        nact += np.count_nonzero(fixed_su | fixed_sl)
        free = xbdi == 0
        if nact > nactsav:
            dredsq = np.inner(step[free], step[free])
            gredsq = np.inner(gnew[free], gnew[free])
            dredg = np.inner(step[free], gnew[free])
            s = np.copy(step)
            s[~free] = 0.0
            hred = hess_prod(s)
            nactsav = nact

        # Calculate the direction orthogonal to the current step in the space
        # spanned by the step and the reduced gradient.
        temp = gredsq * dredsq - dredg ** 2.0
        if temp <= 1e-4 * qred ** 2.0:
            break
        temp = np.sqrt(temp)
        s = (dredg * step - dredsq * gnew) / temp
        s[~free] = 0.0
        sredg = -temp

        # Calculate the largest angle of rotation allowed by the bounds.
        ssq = step ** 2.0 + s ** 2.0
        bdi = np.zeros(n, dtype=int)
        bdi[free & (xopt - sl < np.sqrt(ssq))] = -1
        bdi[free & (su - xopt < np.sqrt(ssq))] = 1
        tang = np.ones(n)
        with np.errstate(divide='ignore', invalid='ignore'):
            i_sl = bdi < 0
            i_su = bdi > 0
            tang[i_sl] = (xsum[i_sl] - sl[i_sl]) / (np.sqrt(np.maximum(0.0, ssq[i_sl] - (xopt[i_sl] - sl[i_sl]) ** 2.0)) - s[i_sl])
            tang[i_su] = (su[i_su] - xsum[i_su]) / (np.sqrt(np.maximum(0.0, ssq[i_su] - (su[i_su] - xopt[i_su]) ** 2.0)) + s[i_su])
        tang[np.isnan(tang)] = 0.0
        iact = -1
        angbd = 1.0
        if np.any(tang < 1.0):
            iact = np.argmin(tang)
            angbd = tang[iact]
        if angbd <= 0.0:
            break

        # Calculate the optimal tangent of half the angle of rotation.
        hs = hess_prod(s)
        shs = np.inner(s[free], hs[free])
        dhs = np.inner(step[free], hs[free])
        dhd = np.inner(step[free], hred[free])
        args = (shs, dhd, dhs, dredg, sredg)
        hangt = _alternative_angle(args, angbd, int(17.0 * angbd + 3.1))
        sdec = _alternative_reduction(hangt, args)
        if not sdec > 0.0:
            break

        # Update the step, the gradient, and the curvature information.
        cth = (1.0 - hangt ** 2.0) / (1.0 + hangt ** 2.0)
        sth = 2.0 * hangt / (1.0 + hangt ** 2.0)
        gnew += (cth - 1.0) * hred + sth * hs
        step[free] = cth * step[free] + sth * s[free]
        dredg = np.inner(step[free], gnew[free])
        gredsq = np.inner(gnew[free], gnew[free])
        hred = cth * hred + sth * hs
        qred += sdec
        if iact >= 0 and hangt >= angbd:
            nact += 1
            xbdi[iact] = bdi[iact]
        elif not sdec > 1e-2 * qred:
            break

    return _finish(step, xopt, sl, su, xbdi, delta, debug)


def linearly_constrained_tr_step(grad, hess_prod, xopt, a_ub, b_ub, sl, su, active, delta, debug):
    r"""
    Minimize approximately a quadratic function subject to bound and linear
    constraints in a trust region.

    This function solves approximately

    .. math::

        \begin{aligned}
            \min_{d \in \R^n}   & \quad g^{\T}d + \frac{1}{2} d^{\T}Hd\\
            \text{s.t.}         & \quad A (x_{\text{opt}} + d) \le b,\\
                                & \quad l \le x_{\text{opt}} + d \le u,\\
                                & \quad \norm{d} \le \Delta,
        \end{aligned}

    using an active-set variation of the truncated conjugate gradient method.

    Parameters
    ----------
    grad : numpy.ndarray, shape (n,)
        Gradient :math:`g` as shown above.
    hess_prod : callable
        Product of the Hessian matrix :math:`H` with any vector.

            ``hess_prod(d) -> numpy.ndarray, shape (n,)``

        returns the product :math:`Hd`.
    xopt : numpy.ndarray, shape (n,)
        Center of the trust region :math:`x_{\text{opt}}` as shown above.
    a_ub : numpy.ndarray, shape (m_linear_ub, n)
        Matrix :math:`A` as shown above.
    b_ub : numpy.ndarray, shape (m_linear_ub,)
        Vector :math:`b` as shown above.
    sl : numpy.ndarray, shape (n,)
        Lower bounds :math:`l` as shown above.
    su : numpy.ndarray, shape (n,)
        Upper bounds :math:`u` as shown above.
    active : ActiveSet
        Working set of the constraints, kept from one call to the next.
    delta : float
        Trust-region radius :math:`\Delta` as shown above.
    debug : bool
        Whether to make debugging tests during the execution.

    Returns
    -------
    numpy.ndarray, shape (n,)
        Approximate solution :math:`d`.
    int
        Number of times the working set has been chosen. A value of at least
        two indicates that the working set changed during the calculations.

    Notes
    -----
    The method is adapted from the TRSTEP algorithm [1]_. It is an active-set
    variation of the truncated conjugate gradient method, which maintains the
    QR factorization of the matrix whose columns are the gradients of the
    active constraints.

    References
    ----------
    .. [1] M. J. D. Powell. "On fast trust region methods for quadratic models
       with linear constraints." In: Math. Program. Comput. 7 (2015), pp.
       237--267.
    """
    tiny = np.finfo(float).tiny
    m_linear_ub, n = a_ub.shape
    tol = 10.0 * np.finfo(float).eps * n

    # Work with the step from the center, so that the origin is feasible.
    b_ub = b_ub - a_ub @ xopt
    xl = sl - xopt
    xu = su - xopt
    if debug:
        assert np.max(xl) <= tol * max_abs_arrays(sl, su)
        assert np.min(xu) >= -tol * max_abs_arrays(sl, su)
        assert np.isfinite(delta) and delta > 0.0

    # Scale each row of the linear constraints to a unit gradient and drop the
    # rows with a vanishing gradient.
    a_norm = np.linalg.norm(a_ub, axis=1)
    keep = a_norm > tol * np.maximum(1.0, np.abs(b_ub))
    a_ub = a_ub[keep, :] / a_norm[keep, np.newaxis]
    b_ub = b_ub[keep] / a_norm[keep]
    m_linear_ub = a_ub.shape[0]

    # Slacks of the linear constraints, then of the lower and upper bounds. The
    # working set of the previous call is reused as a warm start.
    resid = np.maximum(0.0, np.r_[b_ub, -xl, xu])
    step = np.zeros_like(grad)
    gq = np.copy(grad)
    sd = np.zeros_like(step)
    n_getact = 0
    reduct = 0.0
    stepsq = 0.0
    alpbd = 1.0
    inext = 0
    iterc = 0
    gamma = 0.0
    while iterc < n - active.nact or inext >= 0:
        # Restart on the first pass and whenever a constraint was hit.
        if inext >= 0:
            # Update the working set. The returned direction is rescaled to a
            # length of delta / 5, which keeps it feasible.
            sdd = getact(gq, a_ub, resid, active, delta)
            n_getact += 1
            snorm = np.linalg.norm(sdd)
            if snorm <= 0.2 * tiny * delta:
                break
            sdd *= 0.2 * delta / snorm
            nact, qfac, rfac = active.nact, active.qfac, active.rfac

            # An active constraint with a large slack pulls the step back to
            # its boundary before the conjugate gradient iterations resume.
            gamma = 0.0
            if np.max(resid[active.indices], initial=0.0) > 1e-4 * delta:
                temp = np.copy(resid[active.indices])
                for k in range(nact):
                    temp[k] -= np.inner(rfac[:k, k], temp[:k])
                    temp[k] /= rfac[k, k]
                sd = qfac[:, :nact] @ temp

                # Longest move along sd that stays in the trust region.
                rhs = delta ** 2.0 - np.inner(step + sdd, step + sdd)
                temp = np.inner(sd, step + sdd)
                sdsq = np.inner(sd, sd)
                if rhs > 0.0:
                    sqrd = np.sqrt(sdsq * rhs + temp ** 2.0)
                    if temp <= 0.0 and sdsq > tiny * abs(sqrd - temp):
                        gamma = max((sqrd - temp) / sdsq, 0.0)
                    elif abs(sqrd + temp) > tiny * rhs:
                        gamma = max(rhs / (sqrd + temp), 0.0)
                    else:
                        gamma = 1.0

                # Only the inactive constraints can block this move.
                if gamma > 0.0:
                    for i in range(m_linear_ub + 2 * n):
                        if i not in active.indices:
                            asd = evalc(i, sd, a_ub)
                            asdd = evalc(i, sdd, a_ub)
                            if asd > tiny * abs(resid[i] - asdd):
                                gamma = min(gamma, max((resid[i] - asdd) / asd, 0.0))
                    gamma = min(gamma, 1.0)

            # A pull towards the boundaries costs one extra iteration, since sd
            # then does not come from the model alone.
            sd = sdd + gamma * sd
            iterc = 0 if gamma <= 0.0 else -1
            alpbd = 1.0

        # Stop once sd cannot decrease the model by a useful amount inside the
        # trust region.
        nact = active.nact
        iterc += 1
        rhs = delta ** 2.0 - stepsq
        if rhs <= 0.0:
            break
        sdgq = np.inner(sd, gq)
        if sdgq >= 0.0:
            break
        sdstep = np.inner(sd, step)
        sdsq = np.inner(sd, sd)
        sqrd = np.sqrt(sdsq * rhs + sdstep ** 2.0)
        if sdstep <= 0.0 and sdsq > tiny * abs(sqrd - sdstep):
            alpht = max((sqrd - sdstep) / sdsq, 0.0)
        elif abs(sqrd + sdstep) > tiny * rhs:
            alpht = max(rhs / (sqrd + sdstep), 0.0)
        else:
            break
        alpha = alpht
        if -alpha * sdgq <= 1e-2 * reduct:
            break

        # Exact line minimizer of the model along sd, if the curvature is
        # positive.
        hsd = hess_prod(sd)
        curv = np.inner(sd, hsd)
        if curv > tiny * abs(sdgq):
            alphm = max(-sdgq / curv, 0.0)
        else:
            alphm = np.inf
        alpha = min(alpha, alphm)

        # First inactive constraint met along sd.
        inext = -1
        asd = np.zeros_like(resid)
        alphf = np.inf
        for i in range(m_linear_ub + 2 * n):
            if i not in active.indices:
                asd[i] = evalc(i, sd, a_ub)
                if abs(asd[i]) > tiny * abs(resid[i]):
                    if alphf * asd[i] > resid[i]:
                        alphf = max(resid[i] / asd[i], 0.0)
                        inext = i
        alpha = min(alpha, alphf)
        alpha = max(alpha, alpbd)
        alpha = min(alpha, alphm, alpht)
        if iterc == 0:
            alpha = min(alpha, 1.0)

        # Take the step. Slacks are clipped at zero against rounding.
        step += alpha * sd
        stepsq = np.inner(step, step)
        gq += alpha * hsd
        for i in range(m_linear_ub + 2 * n):
            if i not in active.indices:
                resid[i] = max(0.0, resid[i] - alpha * asd[i])
        if iterc == 0:
            resid[active.indices] *= max(0.0, 1.0 - gamma)
        reduct -= alpha * (sdgq + 0.5 * alpha * curv)

        # Truncate at the trust-region boundary, or when even an unblocked
        # move would gain little.
        if alpha >= alpht:
            break
        alphs = min(alphm, alpht)
        if -alphs * (sdgq + 0.5 * alphs * curv) <= 1e-2 * reduct:
            break

        # A blocking constraint joins the working set on the next pass while
        # the step is well inside the trust region.
        if inext >= 0:
            if stepsq <= 0.64 * delta ** 2.0:
                continue
            break

        # Conjugate direction in the null space of the working set. After a
        # pull towards the boundaries (iterc == 0) the recurrence restarts.
        sdu = active.project(gq) if nact > 0 else gq
        if iterc == 0:
            beta = 0.0
        else:
            beta = np.inner(sdu, hsd) / curv
        sd = beta * sd - sdu
        alpbd = 0.0

    if reduct <= 0.0:
        step = np.zeros_like(step)
    if debug:
        feas_tol = 10.0 * tol * max(1.0, delta)
        assert np.all(a_ub @ step <= np.maximum(b_ub, 0.0) + feas_tol)
        assert np.all(xl - feas_tol <= step)
        assert np.all(step <= xu + feas_tol)
        assert np.linalg.norm(step) < 1.1 * delta
    return step, max(n_getact, 1)


def _finish(step, xopt, sl, su, xbdi, delta, debug):
    """
    Snap the step of the bound-constrained solver onto the fixed bounds.
    """
    xnew = np.clip(xopt + step, sl, su)
    xnew[xbdi == -1] = sl[xbdi == -1]
    xnew[xbdi == 1] = su[xbdi == 1]
    step = xnew - xopt
    if debug:
        assert np.all(sl <= xopt + step)
        assert np.all(xopt + step <= su)
        assert np.linalg.norm(step) < 1.1 * delta
    return step


def _alternative_reduction(hangt, args):
    """
    Reduction of the quadratic function when the step is rotated by the angle
    whose half has tangent `hangt`.
    """
    if hangt == 0.0:
        return 0.0
    shs, dhd, dhs, dredg, sredg = args
    sth = 2.0 * hangt / (1.0 + hangt ** 2.0)
    temp = shs + hangt * (hangt * dhd - 2.0 * dhs)
    return sth * (hangt * dredg - sredg - 0.5 * sth * temp)


def _alternative_angle(args, angbd, iu):
    """
    Maximize approximately the reduction of the quadratic function along the
    alternative iterations.

    The reduction is evaluated on a grid of `iu` points of ``(0, angbd]``, and
    the best grid point is refined by a parabolic interpolation.
    """
    grid = angbd * np.arange(1, iu + 1) / iu
    values = np.array([_alternative_reduction(hangt, args) for hangt in grid])
    isav = np.argmax(values)
    if not values[isav] > 0.0:
        return 0.0
    if isav < iu - 1:
        rdprev = values[isav - 1] if isav > 0 else 0.0
        rdnext = values[isav + 1]
        denom = 2.0 * values[isav] - rdprev - rdnext
        if denom > 0.0:
            temp = (rdnext - rdprev) / denom
            return angbd * (isav + 1 + 0.5 * temp) / iu
    return grid[isav]
