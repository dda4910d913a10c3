import numpy as np
from scipy.linalg import get_blas_funcs


def rotg(a, b):
    """
    Construct a Givens plane rotation.

    Parameters
    ----------
    a : float
        First component of the vector to be rotated.
    b : float
        Second component of the vector to be rotated.

    Returns
    -------
    float
        First component of the vector in the rotated coordinate system.
    float
        Cosine of the angle of rotation.
    float
        Sine of the angle of rotation.
    """
    blas_rotg, = get_blas_funcs(('rotg',), (np.float64(a), np.float64(b)))
    c, s = blas_rotg(a, b)
    return c * a + s * b, c, s


def rot(x, y, c, s):
    """
    Apply a Givens plane rotation in place.

    Parameters
    ----------
    x : numpy.ndarray, shape (m,)
        The x-coordinates of each planar point to be rotated.
    y : numpy.ndarray, shape (m,)
        The y-coordinates of each planar point to be rotated.
    c : float
        Cosine of the angle of rotation.
    s : float
        Sine of the angle of rotation.
    """
    blas_rot, = get_blas_funcs(('rot',), (x, y))
    xr, yr = blas_rot(np.array(x), np.array(y), c, s)
    np.copyto(x, xr)
    np.copyto(y, yr)


class ActiveSet:
    """
    Working set of the linear inequality constraints.

    The gradients of the active constraints are maintained through the QR
    factorization of the matrix whose columns are these gradients. The working
    set is kept from one trust-region iteration to the next.
    """

    def __init__(self, n):
        """
        Initialize an empty working set.

        Parameters
        ----------
        n : int
            Number of variables.
        """
        self.iact = np.empty(n, dtype=int)
        self.nact = np.array(0, dtype=int)
        self.qfac = np.eye(n)
        self.rfac = np.zeros((n, n))

    @property
    def indices(self):
        """
        Indices of the active constraints.

        Returns
        -------
        numpy.ndarray, shape (nact,)
            Indices of the active constraints.
        """
        return self.iact[:self.nact]

    def null_space(self):
        """
        Orthonormal basis of the null space of the active gradients.

        Returns
        -------
        numpy.ndarray, shape (n, n - nact)
            Orthonormal basis of the null space of the active gradients.
        """
        return self.qfac[:, self.nact:]

    def project(self, v):
        """
        Project a vector onto the null space of the active gradients.
        """
        z = self.null_space()
        return z @ (z.T @ v)


def evalc(i, x, a_ub):
    """
    Evaluate the left-hand side of a constraint.

    Parameters
    ----------
    i : int
        Index of the constraint to be evaluated. The first indices correspond to
        the linear inequality constraints, followed by the lower bounds and the
        upper bounds on the variables.
    x : numpy.ndarray, shape (n,)
        Point at which the constraint is to be evaluated.
    a_ub : numpy.ndarray, shape (m_linear_ub, n)
        Normalized left-hand side matrix of the linear inequality constraints.

    Returns
    -------
    float
        Value of the `i`-th constraint at `x`.
    """
    m_linear_ub, n = a_ub.shape
    if i < m_linear_ub:
        return np.inner(a_ub[i, :], x)
    elif i < m_linear_ub + n:
        return -x[i - m_linear_ub]
    else:
        return x[i - m_linear_ub - n]


def getact(grad, a_ub, resid, active, delta):
    """
    Update the working set and return a feasible descent direction.

    The direction is the projection of ``-grad`` onto the cone of steps that
    keep every nearly active constraint satisfied, a constraint being nearly
    active when its normalized residual is at most ``0.2 * delta``. On return,
    the working set holds the constraints that bound this direction.

    Parameters
    ----------
    grad : numpy.ndarray, shape (n,)
        Vector from which the selected direction should be the closest.
    a_ub : numpy.ndarray, shape (m_linear_ub, n)
        Normalized left-hand side matrix of the linear inequality constraints.
    resid : numpy.ndarray, shape (m_linear_ub + 2 * n,)
        Normalized residuals of each constraint, starting with the linear
        constraints, followed by the bound constraints.
    active : ActiveSet
        Working set, modified in place.
    delta : float
        Current trust-region radius.

    Returns
    -------
    numpy.ndarray, shape (n,)
        The selected direction.

    Notes
    -----
    The selected direction is calculated using the Goldfarb and Idnani
    algorithm for quadratic programming [1]_.

    References
    ----------
    .. [1] D. Goldfarb and A. Idnani. "A numerically stable dual method for
       solving strictly convex quadratic programs." In: Math. Program. 27
       (1983), pp. 1--33.
    """
    tiny = np.finfo(float).tiny
    n = grad.size
    tol = 10.0 * np.finfo(float).eps * n
    grad_tol = tol * np.max(np.abs(grad), initial=1.0)
    tdel = 0.2 * delta
    iact, nact, qfac, rfac = active.iact, active.nact, active.qfac, active.rfac

    # Drop the constraints that are no longer nearly active.
    for k in range(nact - 1, -1, -1):
        if resid[iact[k]] > tdel:
            rmact(k, nact, qfac, rfac, iact)

    # Multipliers of the working set, in vlam[:nact]. A constraint with a
    # nonnegative multiplier does not block -grad and leaves the set.
    vlam = np.zeros_like(grad)
    k = nact - 1
    while k >= 0:
        temp = np.inner(qfac[:, k], grad)
        temp -= np.inner(rfac[k, k + 1:nact], vlam[k + 1:nact])
        if temp >= 0.0:
            rmact(k, nact, qfac, rfac, iact, vlam)
            k = nact - 1
        else:
            vlam[k] = temp / rfac[k, k]
            k -= 1

    # At most n independent gradients fit in the working set.
    step_sq = 2.0 * np.inner(grad, grad)
    while nact < n:
        # Projection of -grad onto the null space of the working set. Give up
        # when it vanishes or when it fails to shrink.
        temp = qfac[:, nact:].T @ -grad
        step = qfac[:, nact:] @ temp
        ssq = np.inner(step, step)
        if ssq - step_sq >= grad_tol or np.sqrt(ssq) <= grad_tol:
            return np.zeros_like(step)
        step_sq = ssq

        # Nearly active constraint most violated by a move of length delta
        # along step.
        test = np.sqrt(ssq) / delta
        inext = -1
        violmx = 0.0
        for i in range(resid.size):
            if i not in active.indices and resid[i] <= tdel:
                lhs = evalc(i, step, a_ub)
                if lhs > max(test * resid[i], violmx):
                    inext = i
                    violmx = lhs

        # Violations at the level of the working set's own rounding are
        # ignored.
        ctol = 0.0
        if 0.0 < violmx < 1e-2 * delta:
            for k in range(nact):
                ctol = max(ctol, abs(evalc(iact[k], step, a_ub)))
        ctol *= 10.0
        if inext == -1 or violmx <= ctol:
            return step

        # Append constraint inext: rotate its gradient into qfac and store the
        # new column of rfac.
        sval = 0.0
        for k in range(n - 1, -1, -1):
            cval = evalc(inext, qfac[:, k], a_ub)
            if k < nact:
                rfac[k, nact] = cval
            elif abs(sval) <= tol * abs(cval):
                sval = cval
            else:
                sval, cosv, sinv = rotg(cval, sval)
                rot(qfac[:, k], qfac[:, k + 1], cosv, sinv)
        if sval < 0.0:
            qfac[:, nact] = -qfac[:, nact]
        rfac[nact, nact] = abs(sval)
        iact[nact] = inext
        vlam[nact] = 0.0
        nact += 1

        while violmx > ctol:
            # Multipliers with the new constraint included.
            vmu = np.empty(nact)
            vmu[-1] = 1.0 / rfac[nact - 1, nact - 1] ** 2.0
            for k in range(nact - 2, -1, -1):
                temp = -np.inner(rfac[k, k + 1:nact], vmu[k + 1:])
                vmu[k] = temp / rfac[k, k]
            vmult = violmx
            ic = -1
            for k in range(nact - 1):
                if vlam[k] >= vmult * vmu[k]:
                    if abs(vmu[k]) > tiny * abs(vlam[k]):
                        ic = k
                        vmult = vlam[k] / vmu[k]
            vlam[:nact] -= vmult * vmu
            if ic >= 0:
                vlam[ic] = 0.0
                violmx = max(violmx - vmult, 0.0)
            else:
                violmx = 0.0

            # Constraints whose multiplier became nonnegative leave again.
            for k in range(nact - 1, -1, -1):
                if vlam[k] >= 0.0:
                    rmact(k, nact, qfac, rfac, iact, vlam)

    return np.zeros_like(grad)


def rmact(k, nact, qfac, rfac, *args):
    """
    Remove a constraint from the working set.

    A constraint is removed by applying a sequence of Givens rotations to the
    factors of the matrix whose columns are the active gradients.

    Parameters
    ----------
    k : int
        Index of the constraint to be removed.
    nact : numpy.ndarray, shape ()
        Number of active constraints before the removal. It is decremented in
        place.
    qfac : numpy.ndarray, shape (n, n)
        Orthogonal factor.
    rfac : numpy.ndarray, shape (n, n)
        Upper triangular factor. Only its first `nact` columns are meaningful.
    *args
        Arrays of shape (n,) rearranged along with the working set, such as the
        indices of the active constraints or their Lagrange multipliers.
    """
    for j in range(k, nact - 1):
        # Swap constraints j and j + 1 in the factorization.
        cval, sval = rfac[j + 1, j + 1], rfac[j, j + 1]
        hval, cosv, sinv = rotg(cval, sval)
        slicing = np.s_[j:nact]
        rot(rfac[j + 1, slicing], rfac[j, slicing], cosv, sinv)
        rfac[[j, j + 1], slicing] = rfac[[j + 1, j], slicing]
        rfac[:j + 2, [j, j + 1]] = rfac[:j + 2, [j + 1, j]]
        rfac[j, j] = hval
        rfac[j + 1, j] = 0.0

        rot(qfac[:, j + 1], qfac[:, j], cosv, sinv)
        qfac[:, [j, j + 1]] = qfac[:, [j + 1, j]]

    for array in args:
        array[k:nact - 1] = array[k + 1:nact]
    nact -= 1
