import logging
import warnings

import numpy as np

from .factorization import InverseFactorization
from .settings import Options
from .utils import NonFiniteStartError, moderate

_log = logging.getLogger(__name__)


class Interpolation:
    """
    Interpolation set.

    This class stores a base point around which the models are expanded and the
    interpolation points. The coordinates of the interpolation points are
    relative to the base point.
    """

    def __init__(self, pb, options):
        """
        Initialize the base point of the interpolation set.

        The initial trust-region radius is reduced if the bound constraints do
        not leave enough room for the initial interpolation points, and the
        base point is moved away from the nearby bounds.

        Parameters
        ----------
        pb : Problem
            Problem to be solved.
        options : dict
            Options of the solver. The trust-region radii may be modified.

        Raises
        ------
        ValueError
            A variable is fixed by the bound constraints.
        """
        xl, xu = pb.bounds.xl, pb.bounds.xu
        gap = np.min(xu - xl, initial=np.inf)
        if gap <= 0.0:
            raise ValueError('The lower and upper bounds must differ for every variable.')
        if options[Options.RHOBEG] > 0.5 * gap:
            options[Options.RHOBEG.value] = 0.5 * gap
            options[Options.RHOEND.value] = min(options[Options.RHOEND], options[Options.RHOBEG])
            warnings.warn(f'The initial trust-region radius has been reduced to {options[Options.RHOBEG]}.', RuntimeWarning, 3)
        radius = options[Options.RHOBEG]

        # Set the initial point around which the models are expanded. The
        # distance from the base point to a bound is either zero or at least
        # the initial trust-region radius.
        self._xl = xl
        self._xu = xu
        self._x_base = np.copy(pb.x0)
        sl = xl - self._x_base
        su = xu - self._x_base
        close_xl = sl >= -radius
        close_xu = ~close_xl & (su <= radius)
        on_xl = close_xl & (sl >= 0.0)
        on_xu = close_xu & (su <= 0.0)
        self._x_base[on_xl] = xl[on_xl]
        self._x_base[close_xl & ~on_xl] = xl[close_xl & ~on_xl] + radius
        self._x_base[on_xu] = xu[on_xu]
        self._x_base[close_xu & ~on_xu] = xu[close_xu & ~on_xu] - radius
        self._xpt = np.zeros((options[Options.NPT], pb.n))

    @property
    def n(self):
        """
        Number of variables.

        Returns
        -------
        int
            Number of variables.
        """
        return self._xpt.shape[1]

    @property
    def npt(self):
        """
        Number of interpolation points.

        Returns
        -------
        int
            Number of interpolation points.
        """
        return self._xpt.shape[0]

    @property
    def xpt(self):
        """
        Interpolation points, relative to the base point.

        Returns
        -------
        numpy.ndarray, shape (npt, n)
            Interpolation points.
        """
        return self._xpt

    @xpt.setter
    def xpt(self, xpt):
        self._xpt = xpt

    @property
    def x_base(self):
        """
        Base point around which the models are expanded.

        Returns
        -------
        numpy.ndarray, shape (n,)
            Base point around which the models are expanded.
        """
        return self._x_base

    @x_base.setter
    def x_base(self, x_base):
        self._x_base = x_base

    @property
    def sl(self):
        """
        Lower bounds, relative to the base point.

        Returns
        -------
        numpy.ndarray, shape (n,)
            Lower bounds, relative to the base point.
        """
        return self._xl - self._x_base

    @property
    def su(self):
        """
        Upper bounds, relative to the base point.

        Returns
        -------
        numpy.ndarray, shape (n,)
            Upper bounds, relative to the base point.
        """
        return self._xu - self._x_base

    def build_x(self, x_diff):
        """
        Build a point from its coordinates relative to the base point.

        The point is clipped to the bound constraints, and the components that
        are on a bound are set exactly to this bound.

        Parameters
        ----------
        x_diff : numpy.ndarray, shape (n,)
            Coordinates relative to the base point.

        Returns
        -------
        numpy.ndarray, shape (n,)
            Point, relative to the origin.
        """
        return build_point(self._x_base, x_diff, self._xl, self._xu)

    def point(self, k):
        """
        Get the `k`-th interpolation point, relative to the origin.
        """
        return self.build_x(self._xpt[k, :])


class Quadratic:
    """
    Quadratic model.

    This class stores the Hessian matrix of the quadratic model using the
    implicit/explicit representation designed by Powell for NEWUOA [1]_. The
    model is expanded around the center of the trust region: its gradient
    `gopt` is the gradient at this center, and its value at the center is the
    function value at the center.

    References
    ----------
    .. [1] M. J. D. Powell. The NEWUOA software for unconstrained optimization
       without derivatives. In G. Di Pillo and M. Roma, editors, *Large-Scale
       Nonlinear Optimization*, volume 83 of *Nonconvex Optimization and Its
       Applications*, pages 255--297. Springer, Boston, MA, USA, 2006.
    """

    def __init__(self, gopt, hq, pq):
        """
        Initialize the quadratic model.

        Parameters
        ----------
        gopt : numpy.ndarray, shape (n,)
            Gradient of the model at the center of the trust region.
        hq : numpy.ndarray, shape (n, n)
            Explicit part of the Hessian matrix.
        pq : numpy.ndarray, shape (npt,)
            Implicit part of the Hessian matrix.
        """
        self._gopt = np.array(gopt, dtype=float)
        self._hq = np.array(hq, dtype=float)
        self._pq = np.array(pq, dtype=float)

    @classmethod
    def alternative(cls, factorization, fval, xpt, kopt):
        """
        Build the least-Frobenius-norm interpolant of the function values.

        Parameters
        ----------
        factorization : InverseFactorization
            Factorization associated with `xpt`.
        fval : numpy.ndarray, shape (npt,)
            Function values at the interpolation points.
        xpt : numpy.ndarray, shape (npt, n)
            Interpolation points, relative to the base point.
        kopt : int
            Index of the center of the trust region.

        Returns
        -------
        Quadratic
            Alternative quadratic model.
        """
        npt, n = xpt.shape
        f_shift = fval - fval[kopt]
        pq = factorization.omega_mul(f_shift)
        gopt = factorization.bmat[:npt, :].T @ f_shift + xpt.T @ (pq * (xpt @ xpt[kopt, :]))
        return cls(gopt, np.zeros((n, n)), pq)

    @property
    def n(self):
        """
        Number of variables.

        Returns
        -------
        int
            Number of variables.
        """
        return self._gopt.size

    @property
    def npt(self):
        """
        Number of interpolation points used to define the quadratic model.

        Returns
        -------
        int
            Number of interpolation points.
        """
        return self._pq.size

    @property
    def gopt(self):
        """
        Gradient of the model at the center of the trust region.

        Returns
        -------
        numpy.ndarray, shape (n,)
            Gradient of the model at the center of the trust region.
        """
        return self._gopt

    @property
    def hq(self):
        """
        Explicit part of the Hessian matrix.

        Returns
        -------
        numpy.ndarray, shape (n, n)
            Explicit part of the Hessian matrix.
        """
        return self._hq

    @property
    def pq(self):
        """
        Implicit part of the Hessian matrix.

        Returns
        -------
        numpy.ndarray, shape (npt,)
            Implicit part of the Hessian matrix.
        """
        return self._pq

    @property
    def is_finite(self):
        """
        Whether all the coefficients of the model are finite.

        Returns
        -------
        bool
            Whether all the coefficients of the model are finite.
        """
        return bool(np.all(np.isfinite(self._gopt)) and np.all(np.isfinite(self._hq)) and np.all(np.isfinite(self._pq)))

    def quadinc(self, d, xpt):
        """
        Evaluate the increment of the model from the center of the trust
        region to a given point.

        Parameters
        ----------
        d : numpy.ndarray, shape (n,)
            Step from the center of the trust region.
        xpt : numpy.ndarray, shape (npt, n)
            Interpolation points.

        Returns
        -------
        float
            Increment of the model along `d`.
        """
        return np.inner(self._gopt, d) + 0.5 * self.curv(d, xpt)

    def grad(self, d, xpt):
        """
        Evaluate the gradient of the model at ``xopt + d``.
        """
        return self._gopt + self.hess_prod(d, xpt)

    def hess(self, xpt):
        """
        Evaluate the Hessian matrix of the quadratic model.

        Parameters
        ----------
        xpt : numpy.ndarray, shape (npt, n)
            Interpolation points.

        Returns
        -------
        numpy.ndarray, shape (n, n)
            Hessian matrix of the quadratic model.
        """
        return self._hq + xpt.T @ (self._pq[:, np.newaxis] * xpt)

    def hess_prod(self, v, xpt):
        """
        Evaluate the right product of the Hessian matrix of the quadratic model
        with a given vector.

        Parameters
        ----------
        v : numpy.ndarray, shape (n,)
            Vector with which the Hessian matrix is multiplied from the right.
        xpt : numpy.ndarray, shape (npt, n)
            Interpolation points.

        Returns
        -------
        numpy.ndarray, shape (n,)
            Right product of the Hessian matrix with `v`.
        """
        return self._hq @ v + xpt.T @ (self._pq * (xpt @ v))

    def curv(self, v, xpt):
        """
        Evaluate the curvature of the quadratic model along a given direction.

        Parameters
        ----------
        v : numpy.ndarray, shape (n,)
            Direction along which the curvature is evaluated.
        xpt : numpy.ndarray, shape (npt, n)
            Interpolation points.

        Returns
        -------
        float
            Curvature of the quadratic model along `v`.
        """
        return v @ self._hq @ v + self._pq @ np.square(xpt @ v)

    def update(self, knew, moderr, x_drop, x_osav, xpt, factorization):
        """
        Update the quadratic model when an interpolation point is replaced.

        This method applies the derivative-free symmetric Broyden update to the
        quadratic model. The interpolation points and the factorization must be
        updated before calling this method.

        Parameters
        ----------
        knew : int
            Index of the replaced interpolation point.
        moderr : float
            Difference between the function value and the value of the model
            at the new interpolation point.
        x_drop : numpy.ndarray, shape (n,)
            Value of ``xpt[knew]`` before the update.
        x_osav : numpy.ndarray, shape (n,)
            Center of the trust region at which `gopt` is evaluated.
        xpt : numpy.ndarray, shape (npt, n)
            Updated interpolation points.
        factorization : InverseFactorization
            Updated factorization.
        """
        # Forward the knew-th element of the implicit Hessian matrix to the
        # explicit Hessian matrix, as the knew-th interpolation point changes.
        self._hq += self._pq[knew] * np.outer(x_drop, x_drop)
        self._pq[knew] = 0.0

        pq_inc = moderr * factorization.omega_col(knew)
        self._pq += pq_inc
        self._gopt += moderr * factorization.bmat[knew, :] + xpt.T @ (pq_inc * (xpt @ x_osav))

    def correct(self, k, diff, factorization):
        """
        Add a multiple of the `k`-th Lagrange polynomial to the model.

        The gradient of the model must be evaluated at the base point.

        Parameters
        ----------
        k : int
            Index of the Lagrange polynomial.
        diff : float
            Multiple of the Lagrange polynomial to be added.
        factorization : InverseFactorization
            Factorization associated with the interpolation points.
        """
        self._gopt += diff * factorization.bmat[k, :]
        self._pq += diff * factorization.omega_col(k)

    def move_center(self, d, xpt):
        """
        Move the point at which `gopt` is evaluated by `d`.
        """
        self._gopt = self.grad(d, xpt)

    def shift_base(self, xpt, x_opt):
        """
        Update the explicit Hessian matrix when the base point moves.

        Parameters
        ----------
        xpt : numpy.ndarray, shape (npt, n)
            Interpolation points, relative to the former base point.
        x_opt : numpy.ndarray, shape (n,)
            New base point, relative to the former base point.
        """
        w = xpt.T @ self._pq - 0.5 * np.sum(self._pq) * x_opt
        update = np.outer(w, x_opt)
        self._hq += update + update.T

    def fold(self, xpt):
        """
        Move the implicit part of the Hessian matrix into the explicit part.
        """
        self._hq = self.hess(xpt)
        self._hq = 0.5 * (self._hq + self._hq.T)
        self._pq = np.zeros_like(self._pq)


class Models:
    """
    Interpolation set, function values, and quadratic model of the objective
    function.
    """

    def __init__(self, pb, options):
        """
        Build the initial interpolation set and the initial model.

        The objective function is evaluated at the initial interpolation
        points, unless the target value is reached before, in which case
        `target_init` is set and no model is built.

        Parameters
        ----------
        pb : Problem
            Problem to be solved.
        options : dict
            Options of the solver.

        Raises
        ------
        NonFiniteStartError
            The objective function value at the first point is not finite.
        """
        self._debug = options[Options.DEBUG]
        self._pb = pb
        self._interpolation = Interpolation(pb, options)
        n = pb.n
        npt = options[Options.NPT]
        radius = options[Options.RHOBEG]
        xpt = self.interpolation.xpt
        sl, su = self.interpolation.sl, self.interpolation.su
        self._fval = np.zeros(npt)
        self._cval = np.zeros(npt)
        self._kopt = 0
        self._itest = 3
        self._target_init = False

        gopt = np.zeros(n)
        hq = np.zeros((n, n))
        for k in range(npt):
            # Set the k-th interpolation point.
            if 1 <= k <= n:
                i = k - 1
                step_a = -radius if su[i] == 0.0 else radius
                xpt[k, i] = step_a
            elif n < k <= 2 * n:
                i = k - n - 1
                step_a = xpt[k - n, i]
                step_b = -radius
                if sl[i] == 0.0:
                    step_b = min(2.0 * radius, su[i])
                if su[i] == 0.0:
                    step_b = max(-2.0 * radius, sl[i])
                xpt[k, i] = step_b
            elif k > 2 * n:
                spread = (k - n - 1) // n
                jpt = k - spread * n - n
                ipt = jpt + spread
                if ipt > n:
                    spread = jpt
                    jpt = ipt - n
                    ipt = spread
                xpt[k, ipt - 1] = xpt[ipt, ipt - 1]
                xpt[k, jpt - 1] = xpt[jpt, jpt - 1]

            # Evaluate the objective function at the k-th interpolation point.
            fun_val, maxcv_val = pb(self.interpolation.point(k))
            if k == 0 and not np.isfinite(fun_val):
                raise NonFiniteStartError(f'The objective function value at the initial guess is {fun_val}.')
            self._fval[k] = moderate(fun_val)
            self._cval[k] = maxcv_val
            if np.isfinite(fun_val) and fun_val <= options[Options.TARGET] and maxcv_val <= options[Options.FEASIBILITY_TOL]:
                self._target_init = True
                return
            if pb.is_better(self._fval[k], self._cval[k], self._fval[self._kopt], self._cval[self._kopt]):
                self._kopt = k

            # Build the model from the differences of the function values.
            f_diff = self._fval[k] - self._fval[0]
            if 1 <= k <= n:
                gopt[i] = f_diff / step_a
            elif n < k <= 2 * n:
                temp = f_diff / step_b
                hq[i, i] = 2.0 * (temp - gopt[i]) / (step_b - step_a)
                gopt[i] = (gopt[i] * step_b - temp * step_a) / (step_b - step_a)
                if step_a * step_b < 0.0 and pb.is_better(self._fval[k], self._cval[k], self._fval[k - n], self._cval[k - n]):
                    # Place the lower function value at the first point along
                    # the i-th coordinate.
                    self._fval[[k, k - n]] = self._fval[[k - n, k]]
                    self._cval[[k, k - n]] = self._cval[[k - n, k]]
                    if self._kopt == k:
                        self._kopt = k - n
                    xpt[k - n, i] = step_b
                    xpt[k, i] = step_a
            elif k > 2 * n:
                temp = xpt[k, ipt - 1] * xpt[k, jpt - 1]
                hq[ipt - 1, jpt - 1] = (self._fval[0] - self._fval[ipt] - self._fval[jpt] + self._fval[k]) / temp
                hq[jpt - 1, ipt - 1] = hq[ipt - 1, jpt - 1]

        # Build the initial factorization and move the gradient to the center.
        self._factorization = InverseFactorization.from_coordinate_points(xpt, self._debug)
        self._fun = Quadratic(gopt, hq, np.zeros(npt))
        if self._kopt != 0:
            self._fun.move_center(xpt[self._kopt, :], xpt)
        _log.debug(f'Initial interpolation set built with {npt} points.')
        if self._debug:
            self.check()

    @property
    def n(self):
        """
        Number of variables.

        Returns
        -------
        int
            Number of variables.
        """
        return self.interpolation.n

    @property
    def npt(self):
        """
        Number of interpolation points.

        Returns
        -------
        int
            Number of interpolation points.
        """
        return self.interpolation.npt

    @property
    def interpolation(self):
        """
        Interpolation set.

        Returns
        -------
        Interpolation
            Interpolation set.
        """
        return self._interpolation

    @property
    def xpt(self):
        """
        Interpolation points, relative to the base point.

        Returns
        -------
        numpy.ndarray, shape (npt, n)
            Interpolation points.
        """
        return self.interpolation.xpt

    @property
    def x_base(self):
        """
        Base point around which the models are expanded.

        Returns
        -------
        numpy.ndarray, shape (n,)
            Base point.
        """
        return self.interpolation.x_base

    @property
    def fval(self):
        """
        Objective function values at the interpolation points.

        The non-finite values are replaced with a huge finite value.

        Returns
        -------
        numpy.ndarray, shape (npt,)
            Objective function values.
        """
        return self._fval

    @property
    def cval(self):
        """
        Constraint violations at the interpolation points.

        Returns
        -------
        numpy.ndarray, shape (npt,)
            Constraint violations.
        """
        return self._cval

    @property
    def kopt(self):
        """
        Index of the center of the trust region.

        Returns
        -------
        int
            Index of the best interpolation point.
        """
        return self._kopt

    @property
    def x_opt(self):
        """
        Center of the trust region, relative to the base point.

        Returns
        -------
        numpy.ndarray, shape (n,)
            Center of the trust region.
        """
        return self.xpt[self._kopt, :]

    @property
    def f_opt(self):
        """
        Objective function value at the center of the trust region.

        Returns
        -------
        float
            Objective function value at the center.
        """
        return self._fval[self._kopt]

    @property
    def c_opt(self):
        """
        Constraint violation at the center of the trust region.

        Returns
        -------
        float
            Constraint violation at the center.
        """
        return self._cval[self._kopt]

    @property
    def fun(self):
        """
        Quadratic model of the objective function.

        Returns
        -------
        Quadratic
            Quadratic model of the objective function.
        """
        return self._fun

    @property
    def factorization(self):
        """
        Factorization of the inverse of the interpolation system.

        Returns
        -------
        InverseFactorization
            Factorization of the inverse of the interpolation system.
        """
        return self._factorization

    @property
    def target_init(self):
        """
        Whether the target value has been reached during the initialization.

        Returns
        -------
        bool
            Whether the target value has been reached.
        """
        return self._target_init

    @property
    def itest(self):
        """
        Number of consecutive updates for which the alternative model
        predicted the function values much better than the updated model.

        Returns
        -------
        int
            Counter of the alternative model rule.
        """
        return self._itest

    def quadinc(self, d):
        """
        Evaluate the increment of the model along `d` from the center.
        """
        return self._fun.quadinc(d, self.xpt)

    def hess_prod(self, v):
        """
        Evaluate the product of the Hessian matrix of the model with `v`.
        """
        return self._fun.hess_prod(v, self.xpt)

    def lagrange_values(self, d):
        """
        Evaluate the Lagrange functions at ``x_opt + d``.

        Parameters
        ----------
        d : numpy.ndarray, shape (n,)
            Step from the center of the trust region.

        Returns
        -------
        numpy.ndarray, shape (npt + n,)
            Values of the Lagrange functions, followed by the components used
            in the update of the factorization.
        float
            Parameter of the updating formula.
        """
        return self._factorization.lagrange_values(self.xpt, self._kopt, d)

    def is_better(self, fun_val, maxcv_val):
        """
        Whether a new evaluation is better than the center.
        """
        return self._pb.is_better(fun_val, maxcv_val, self.f_opt, self.c_opt)

    def update_interpolation(self, knew, d, fun_val, maxcv_val, vlag, beta, feasible=True):
        """
        Replace an interpolation point with ``x_opt + d``.

        The factorization, the function values, and the model are updated, and
        the model is replaced with the least-Frobenius-norm interpolant when
        the latter predicted the last three function values much better.

        Parameters
        ----------
        knew : int
            Index of the interpolation point to be replaced.
        d : numpy.ndarray, shape (n,)
            Step from the center of the trust region to the new point.
        fun_val : float
            Objective function value at the new point.
        maxcv_val : float
            Constraint violation at the new point.
        vlag : numpy.ndarray, shape (npt + n,)
            Values of the Lagrange functions at the new point.
        beta : float
            Parameter of the updating formula.
        feasible : bool, optional
            Whether the step is feasible with respect to the linear
            constraints. An infeasible point never becomes the center.

        Returns
        -------
        bool
            Whether the center of the trust region has moved.

        Raises
        ------
        ZeroDivisionError
            The denominator of the updating formula is zero.
        """
        fun_val = moderate(fun_val)
        moderr = fun_val - self.f_opt - self.quadinc(d)

        # Evaluate the error of the alternative model at the new point.
        dffalt = moderr
        if self._itest >= 3:
            self._itest = 0
        elif feasible:
            alt = Quadratic.alternative(self._factorization, self._fval, self.xpt, self._kopt)
            dffalt = fun_val - self.f_opt - alt.quadinc(d, self.xpt)

        # Update the factorization, the interpolation set, and the model.
        self._factorization.update(knew, beta, vlag)
        reduced = feasible and self.is_better(fun_val, maxcv_val)
        x_drop = np.copy(self.xpt[knew, :])
        x_osav = np.copy(self.x_opt)
        self.xpt[knew, :] = x_osav + d
        self._fval[knew] = fun_val
        self._cval[knew] = maxcv_val
        self._fun.update(knew, moderr, x_drop, x_osav, self.xpt, self._factorization)
        if reduced:
            self._kopt = knew
            self._fun.move_center(d, self.xpt)

        # Replace the model with the alternative one if necessary.
        if feasible:
            if abs(dffalt) >= 0.1 * abs(moderr):
                self._itest = 0
            else:
                self._itest += 1
        if self._itest == 3:
            _log.debug('The model is replaced with the least-Frobenius-norm interpolant.')
            self.reset_model()
        if self._debug:
            self.check()
        return reduced

    def reset_model(self):
        """
        Replace the model with the least-Frobenius-norm interpolant.
        """
        self._fun = Quadratic.alternative(self._factorization, self._fval, self.xpt, self._kopt)

    def shift_base(self):
        """
        Move the base point to the center of the trust region.
        """
        x_opt = np.copy(self.x_opt)
        _log.debug('The base point is moved to the center of the trust region.')
        self._factorization.shift_base(self.xpt, self._kopt)
        self._fun.shift_base(self.xpt, x_opt)
        self.interpolation.x_base = self.interpolation.x_base + x_opt
        self.interpolation.xpt -= x_opt
        self.interpolation.xpt[self._kopt, :] = 0.0
        if self._debug:
            self.check()

    def reset(self, x_base, xpt, fval, cval, kopt, fun, factorization):
        """
        Replace the whole interpolation set, as done by a rescue.
        """
        self.interpolation.x_base = x_base
        self.interpolation.xpt = xpt
        self._fval = fval
        self._cval = cval
        self._kopt = kopt
        self._fun = fun
        self._factorization = factorization
        self._itest = 3
        if self._debug:
            self.check()

    def check(self):
        """
        Check the interpolation conditions of the model and the factorization.

        A `RuntimeWarning` is raised if the conditions are violated.
        """
        self._factorization.check(self.xpt, self._kopt)
        error = 0.0
        for k in range(self.npt):
            error = max(error, abs(self.f_opt + self.quadinc(self.xpt[k, :] - self.x_opt) - self._fval[k]))
        tol = 10.0 * np.sqrt(np.finfo(float).eps) * max(self.n, self.npt)
        if error > tol * np.max(np.abs(self._fval), initial=1.0):
            warnings.warn('The interpolation conditions for the objective function are not satisfied.', RuntimeWarning)


def build_point(x_base, x_diff, xl, xu):
    """
    Build a point from its coordinates relative to a base point.

    The point is clipped to the bound constraints, and the components that are
    on a bound are set exactly to this bound.

    Parameters
    ----------
    x_base : numpy.ndarray, shape (n,)
        Base point.
    x_diff : numpy.ndarray, shape (n,)
        Coordinates relative to the base point.
    xl : numpy.ndarray, shape (n,)
        Lower bounds.
    xu : numpy.ndarray, shape (n,)
        Upper bounds.

    Returns
    -------
    numpy.ndarray, shape (n,)
        Point, relative to the origin.
    """
    x = np.clip(x_base + x_diff, xl, xu)
    on_xl = x_diff <= xl - x_base
    on_xu = x_diff >= xu - x_base
    x[on_xl] = xl[on_xl]
    x[on_xu] = xu[on_xu]
    return x
