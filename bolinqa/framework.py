import logging

import numpy as np

from .factorization import InverseFactorization
from .models import Models, Quadratic, build_point
from .settings import Constants, Options
from .subproblems import ActiveSet, bound_constrained_geometry_step, bound_constrained_tr_step, linearly_constrained_geometry_step, linearly_constrained_tr_step
from .utils import DegenerateGeometryError, MaxEvalError, TargetSuccess, moderate

_log = logging.getLogger(__name__)


class TrustRegion:
    """
    Trust-region framework.

    This class maintains the trust-region radius, the lower bound on the
    trust-region radius (called the resolution), and the working set of the
    linear constraints. It also chooses the interpolation points to be
    replaced, and repairs the interpolation set when it degenerates.
    """

    def __init__(self, pb, options, constants):
        """
        Initialize the trust-region framework.

        Parameters
        ----------
        pb : Problem
            Problem to be solved.
        options : dict
            Options of the solver.
        constants : dict
            Constants of the solver.

        Raises
        ------
        NonFiniteStartError
            The objective function value at the initial guess is not finite.
        """
        self._pb = pb
        self._debug = options[Options.DEBUG]
        self._constants = constants

        # Build the initial interpolation set and the initial model. The
        # initial trust-region radius may be reduced by the models.
        self._models = Models(pb, options)
        self._radius = options[Options.RHOBEG]
        self._resolution = options[Options.RHOBEG]
        self._active = ActiveSet(pb.n)
        self._n_eval_rescue = -1

    @property
    def models(self):
        """
        Models of the objective function.

        Returns
        -------
        Models
            Models of the objective function.
        """
        return self._models

    @property
    def radius(self):
        """
        Trust-region radius.

        Returns
        -------
        float
            Trust-region radius.
        """
        return self._radius

    @radius.setter
    def radius(self, radius):
        """
        Set the trust-region radius.

        The radius is set to the resolution if it is not substantially larger.

        Parameters
        ----------
        radius : float
            New trust-region radius.
        """
        if radius <= 0.99 * np.sqrt(self._constants[Constants.INCREASE_RADIUS_FACTOR]) * self.resolution:
            radius = self.resolution
        self._radius = radius

    @property
    def resolution(self):
        """
        Resolution of the trust-region framework.

        The resolution is a lower bound on the trust-region radius.

        Returns
        -------
        float
            Resolution of the trust-region framework.
        """
        return self._resolution

    @resolution.setter
    def resolution(self, resolution):
        """
        Set the resolution of the trust-region framework.

        Parameters
        ----------
        resolution : float
            New resolution of the trust-region framework.
        """
        self._resolution = resolution

    @property
    def x_best(self):
        """
        Center of the trust region, relative to the origin.

        Returns
        -------
        numpy.ndarray, shape (n,)
            Center of the trust region.
        """
        return self.models.interpolation.point(self.models.kopt)

    @property
    def fun_best(self):
        """
        Objective function value at the center of the trust region.

        Returns
        -------
        float
            Objective function value at the center.
        """
        return self.models.f_opt

    def b_ub(self):
        """
        Right-hand side of the linear constraints, relative to the base point.
        """
        return self._pb.linear.b_ub - self._pb.linear.a_ub @ self.models.x_base

    def get_trust_region_step(self):
        """
        Get the trust-region step.

        Returns
        -------
        numpy.ndarray, shape (n,)
            Trust-region step.
        int
            Number of times the working set of the linear constraints has been
            chosen. It is zero if the problem has no linear constraints.
        """
        models = self.models
        interpolation = models.interpolation
        if self._pb.type == 'linearly constrained':
            step, n_getact = linearly_constrained_tr_step(models.fun.gopt, models.hess_prod, models.x_opt, self._pb.linear.a_ub, self.b_ub(), interpolation.sl, interpolation.su, self._active, self.radius, self._debug)
        else:
            step = bound_constrained_tr_step(models.fun.gopt, models.hess_prod, models.x_opt, interpolation.sl, interpolation.su, self.radius, self._debug)
            n_getact = 0
        return step, n_getact

    def is_short_step(self, step, n_getact):
        """
        Whether a trust-region step is too short to be evaluated.
        """
        s_norm = min(self.radius, np.linalg.norm(step))
        if self._pb.type == 'linearly constrained':
            return s_norm < 0.5 * self.radius and n_getact < 2 or s_norm < 0.1999 * self.radius
        return s_norm < 0.5 * self.radius

    def get_reduction_ratio(self, step, fun_val):
        """
        Get the reduction ratio.

        Parameters
        ----------
        step : numpy.ndarray, shape (n,)
            Trust-region step.
        fun_val : float
            Objective function value at the trial point.

        Returns
        -------
        float
            Ratio of the actual reduction to the predicted reduction.
        """
        actual = self.models.f_opt - moderate(fun_val)
        predicted = -self.models.quadinc(step)
        if np.isnan(actual) or not predicted > 0.0:
            return -np.inf
        if np.isinf(predicted):
            return np.sign(actual) if np.isinf(actual) else 0.0
        return actual / predicted

    def update_radius(self, step, ratio):
        """
        Update the trust-region radius.

        Parameters
        ----------
        step : numpy.ndarray, shape (n,)
            Trust-region step.
        ratio : float
            Reduction ratio.
        """
        s_norm = min(self.radius, np.linalg.norm(step))
        if ratio <= self._constants[Constants.DECREASE_RADIUS_THRESHOLD]:
            self.radius = self._constants[Constants.DECREASE_RADIUS_FACTOR] * s_norm
        elif ratio <= self._constants[Constants.INCREASE_RADIUS_THRESHOLD]:
            self.radius = max(self._constants[Constants.DECREASE_RADIUS_FACTOR] * self.radius, s_norm)
        else:
            self.radius = max(self._constants[Constants.DECREASE_RADIUS_FACTOR] * self.radius, self._constants[Constants.INCREASE_RADIUS_FACTOR] * s_norm)

    def reduce_resolution(self, options):
        """
        Reduce the resolution of the trust-region framework.

        Parameters
        ----------
        options : dict
            Options of the solver.
        """
        radius = 0.5 * self.resolution
        ratio = self.resolution / options[Options.RHOEND]
        if ratio <= self._constants[Constants.MODERATE_RESOLUTION_THRESHOLD]:
            self.resolution = options[Options.RHOEND]
        elif ratio <= self._constants[Constants.LARGE_RESOLUTION_THRESHOLD]:
            self.resolution = np.sqrt(ratio) * options[Options.RHOEND]
        else:
            self.resolution *= self._constants[Constants.DECREASE_RESOLUTION_FACTOR]
        self._radius = max(radius, self.resolution)
        _log.info(f'The resolution is reduced to {self.resolution}.')

    def get_index_to_remove(self, step, vlag, beta, reduced):
        """
        Get the index of the interpolation point to be replaced with the
        trial point ``x_opt + step``.

        The choice favors the points far from the new center of the trust
        region and the large denominators of the updating formula.

        Parameters
        ----------
        step : numpy.ndarray, shape (n,)
            Trust-region step.
        vlag : numpy.ndarray, shape (npt + n,)
            Values of the Lagrange functions at the trial point.
        beta : float
            Parameter of the updating formula.
        reduced : bool
            Whether the trial point becomes the center of the trust region.

        Returns
        -------
        {int, None}
            Index of the interpolation point to be replaced, or None if no
            index provides a safe denominator.
        """
        models = self.models
        x_center = models.x_opt + step if reduced else models.x_opt
        dist_sq = np.sum((models.xpt - x_center) ** 2.0, axis=1)
        weights = np.maximum(1.0, (dist_sq / self.radius ** 2.0) ** 2.0)
        scores = weights * models.factorization.denominators(vlag, beta)
        big_sq = weights * vlag[:models.npt] ** 2.0
        if not reduced:
            scores[models.kopt] = -np.inf
            big_sq[models.kopt] = 0.0
        k_new = np.argmax(scores)
        if not scores[k_new] > 0.5 * np.max(big_sq):
            _log.debug('No interpolation point provides a safe denominator.')
            return None
        return k_new

    def get_geometry_index(self):
        """
        Get the index of the interpolation point farthest from the center.

        Returns
        -------
        int
            Index of the interpolation point to be replaced.
        float
            Distance from the center to this point.
        """
        models = self.models
        dist_sq = np.sum((models.xpt - models.x_opt) ** 2.0, axis=1)
        k_new = np.argmax(dist_sq)
        return k_new, np.sqrt(dist_sq[k_new])

    def get_geometry_step(self, k_new):
        """
        Get the geometry-improving step.

        The step maximizes approximately the absolute value of the `k_new`-th
        Lagrange polynomial in a trust region of radius
        ``max(0.1 * radius, resolution)``.

        Parameters
        ----------
        k_new : int
            Index of the interpolation point to be replaced.

        Returns
        -------
        numpy.ndarray, shape (n,)
            Geometry-improving step.
        bool
            Whether the step satisfies the linear constraints.
        """
        models = self.models
        factorization = models.factorization
        xpt = models.xpt
        delta = max(0.1 * self.radius, self.resolution)
        omega = factorization.omega_col(k_new)
        lag_grad = factorization.bmat[k_new, :] + xpt.T @ (omega * (xpt @ models.x_opt))

        def lag_hess_prod(v):
            return xpt.T @ (omega * (xpt @ v))

        interpolation = models.interpolation
        if self._pb.type == 'linearly constrained':
            step, feasible = linearly_constrained_geometry_step(lag_grad, lag_hess_prod, xpt, models.kopt, self._pb.linear.a_ub, self.b_ub(), interpolation.sl, interpolation.su, self._active, delta, self._debug)
        else:
            step = bound_constrained_geometry_step(lag_grad, lag_hess_prod, xpt, models.kopt, interpolation.sl, interpolation.su, delta, lambda d: self.get_denominator(k_new, d), self._debug)
            feasible = True
        return step, feasible

    def get_denominator(self, k_new, step):
        """
        Denominator of the updating formula when the `k_new`-th interpolation
        point is replaced with ``x_opt + step``.
        """
        vlag, beta = self.models.lagrange_values(step)
        return beta * self.models.factorization.alpha(k_new) + vlag[k_new] ** 2.0

    def shift_x_base(self):
        """
        Shift the base point to the center of the trust region if the latter
        is far from the former.
        """
        if np.inner(self.models.x_opt, self.models.x_opt) >= 1e4 * self.radius ** 2.0:
            self.models.shift_base()

    def rescue(self, options, step=None, fun_val=None, maxcv_val=None):
        """
        Rebuild the interpolation set and the factorization.

        The new interpolation set consists of points along the coordinate
        directions from the center of the trust region, some of which are then
        replaced greedily by previous interpolation points, so that only the
        remaining points are evaluated. The model is kept up to corrections
        that restore the interpolation conditions.

        Parameters
        ----------
        options : dict
            Options of the solver.
        step : numpy.ndarray, shape (n,), optional
            Step from the center to a trial point that was evaluated but not
            included in the interpolation set.
        fun_val : float, optional
            Objective function value at the trial point.
        maxcv_val : float, optional
            Constraint violation at the trial point.

        Raises
        ------
        DegenerateGeometryError
            No function evaluation has been made since the last rescue.
        MaxEvalError
            The maximum number of function evaluations is reached.
        TargetSuccess
            The target objective function value is reached.

        Notes
        -----
        This method is adapted from the RESCUE algorithm of BOBYQA [1]_.

        References
        ----------
        .. [1] M. J. D. Powell. The BOBYQA algorithm for bound constrained
           optimization without derivatives. Tech. rep. DAMTP 2009/NA06.
           Cambridge, UK: Department of Applied Mathematics and Theoretical
           Physics, University of Cambridge, 2009.
        """
        pb = self._pb
        models = self.models
        npt, n = models.npt, models.n
        if pb.n_eval <= self._n_eval_rescue:
            raise DegenerateGeometryError('The interpolation set degenerated again after a rescue.')
        _log.debug(f'Rescue of the interpolation set after {pb.n_eval} function evaluations.')

        # Keep the old model with an explicit Hessian matrix, and gather the
        # points that may be reinstated in the interpolation set.
        fun = Quadratic(models.fun.gopt, models.fun.hq, models.fun.pq)
        fun.fold(models.xpt)
        pool_x = np.copy(models.xpt)
        pool_f = np.copy(models.fval)
        pool_c = np.copy(models.cval)
        center = models.kopt
        if step is not None:
            pool_x = np.vstack((pool_x, models.x_opt + step))
            pool_f = np.append(pool_f, moderate(fun_val))
            pool_c = np.append(pool_c, maxcv_val)
            if models.is_better(pool_f[-1], pool_c[-1]):
                fun.move_center(step, models.xpt)
                center = npt
        x_base = models.x_base + pool_x[center, :]
        pool_x -= pool_x[center, :]
        xl, xu = pb.bounds.xl, pb.bounds.xu
        sl, su = xl - x_base, xu - x_base

        # Build the provisional interpolation set along the coordinates. The
        # center of the trust region is the first interpolation point.
        step_a = np.minimum(self.radius, su)
        step_b = np.maximum(-self.radius, sl)
        swap = step_a + step_b < 0.0
        step_a[swap], step_b[swap] = step_b[swap], step_a[swap]
        small = np.abs(step_b) < 0.5 * np.abs(step_a)
        step_b[small] = 0.5 * step_a[small]
        xpt = np.zeros((npt, n))
        for k in range(1, npt):
            if k <= n:
                xpt[k, k - 1] = step_a[k - 1]
            elif k <= 2 * n:
                xpt[k, k - n - 1] = step_b[k - n - 1]
            else:
                spread = int((k - n - 0.5) / n)
                ip = k - n - spread * n
                iq = ip + spread
                if iq > n:
                    iq -= n
                xpt[k, ip - 1] = step_a[ip - 1]
                xpt[k, iq - 1] = step_a[iq - 1]
        factorization = InverseFactorization.from_coordinate_points(xpt, self._debug)
        fval = np.zeros(npt)
        cval = np.zeros(npt)
        fval[0] = pool_f[center]
        cval[0] = pool_c[center]
        provisional = np.ones(npt, dtype=bool)
        provisional[0] = False

        # Reinstate the previous points greedily, the closest to the center
        # first, provided that the denominators of the updating formula remain
        # large enough.
        weights = np.sum(pool_x ** 2.0, axis=1)
        weights[center] = 0.0
        winc = np.max(weights, initial=0.0)
        while np.any(weights > 0.0) and np.any(provisional):
            i = np.argmin(np.where(weights > 0.0, weights, np.inf))
            vlag, beta = factorization.lagrange_values(xpt, 0, pool_x[i, :])
            den = np.where(provisional, factorization.denominators(vlag, beta), -np.inf)
            k_old = np.argmax(den)
            if den[k_old] <= 1e-2 * np.max(vlag[:npt] ** 2.0):
                weights[i] = -weights[i] - winc
                continue
            factorization.update(k_old, beta, vlag)
            xpt[k_old, :] = pool_x[i, :]
            fval[k_old] = pool_f[i]
            cval[k_old] = pool_c[i]
            provisional[k_old] = False
            weights[i] = 0.0
            weights = np.abs(weights)
        _log.debug(f'{np.count_nonzero(provisional)} provisional points must be evaluated.')

        # Evaluate the objective function at the remaining provisional points.
        for k in np.flatnonzero(provisional):
            if pb.n_eval >= options[Options.MAX_EVAL]:
                raise MaxEvalError
            fun_val, maxcv_val = pb(build_point(x_base, xpt[k, :], xl, xu))
            if np.isfinite(fun_val) and fun_val <= options[Options.TARGET] and maxcv_val <= options[Options.FEASIBILITY_TOL]:
                raise TargetSuccess
            fval[k] = moderate(fun_val)
            cval[k] = maxcv_val

        # Correct the model so that it interpolates the function values. The
        # corrections vanish at the reinstated points if the old model
        # interpolated them already.
        old_model_finite = fun.is_finite
        fun = Quadratic(fun.gopt, fun.hq, np.zeros(npt))
        for k in range(1, npt):
            diff = fval[k] - fval[0] - fun.quadinc(xpt[k, :], xpt)
            fun.correct(k, diff, factorization)

        # Choose the new center of the trust region.
        kopt = 0
        for k in range(1, npt):
            if pb.is_better(fval[k], cval[k], fval[kopt], cval[kopt]):
                kopt = k
        if old_model_finite:
            fun.move_center(xpt[kopt, :], xpt)
        else:
            fun = Quadratic.alternative(factorization, fval, xpt, kopt)
        models.reset(x_base, xpt, fval, cval, kopt, fun, factorization)
        self._n_eval_rescue = pb.n_eval

