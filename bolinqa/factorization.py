import logging
import warnings

import numpy as np

from .subproblems.utils import rot, rotg
from .utils import get_arrays_tol

_log = logging.getLogger(__name__)


class InverseFactorization:
    r"""
    Factorization of the inverse of the interpolation system.

    The inverse of the matrix of the KKT system that defines the
    least-Frobenius-norm quadratic interpolants is stored as

    .. math::

        \begin{bmatrix}
            Z S Z^{\T}  & \Xi^{\T}\\
            \Xi         & \Upsilon
        \end{bmatrix},

    where :math:`Z` has ``npt - n - 1`` columns, :math:`S` is a diagonal matrix
    whose first `idz` diagonal entries are -1 and whose remaining diagonal
    entries are 1, and the row associated with the constant term is omitted.
    The matrices :math:`\Xi^{\T}` and :math:`\Upsilon` are stored together in
    `bmat`, with shape (npt + n, n).
    """

    def __init__(self, bmat, zmat, idz=0, debug=False):
        """
        Initialize the factorization.

        Parameters
        ----------
        bmat : numpy.ndarray, shape (npt + n, n)
            Matrices :math:`\\Xi^{\\T}` and :math:`\\Upsilon` stacked together.
        zmat : numpy.ndarray, shape (npt, npt - n - 1)
            Factor :math:`Z`.
        idz : int, optional
            Number of columns of `zmat` with a negative signature.
        debug : bool, optional
            Whether to make debugging tests during the execution.
        """
        self._bmat = np.array(bmat, dtype=float)
        self._zmat = np.array(zmat, dtype=float)
        self._idz = int(idz)
        self._debug = debug
        if debug:
            npt = self._zmat.shape[0]
            n = self._bmat.shape[1]
            assert self._bmat.shape == (npt + n, n)
            assert self._zmat.shape == (npt, npt - n - 1)
            assert 0 <= self._idz <= npt - n - 1

    @classmethod
    def from_coordinate_points(cls, xpt, debug=False):
        """
        Build the factorization of a set of points along the coordinates.

        The point ``xpt[0]`` must be the origin. For ``j = 0, ..., n - 1``, the
        point ``xpt[j + 1]`` must be a nonzero multiple of the ``j``-th
        coordinate vector and, if it exists, so must ``xpt[j + n + 1]``, with a
        different multiple. Each remaining point must be the sum of two points
        ``xpt[ip + 1]`` and ``xpt[iq + 1]`` with ``ip != iq``.

        Parameters
        ----------
        xpt : numpy.ndarray, shape (npt, n)
            Interpolation points.
        debug : bool, optional
            Whether to make debugging tests during the execution.

        Returns
        -------
        InverseFactorization
            Factorization associated with the interpolation points.
        """
        npt, n = xpt.shape
        if debug:
            assert np.all(xpt[0, :] == 0.0)
        bmat = np.zeros((npt + n, n))
        zmat = np.zeros((npt, npt - n - 1))
        for j in range(n):
            step_a = xpt[j + 1, j]
            if j + n + 1 < npt:
                step_b = xpt[j + n + 1, j]
                temp = 1.0 / (step_a - step_b)
                bmat[j + 1, j] = -temp + 1.0 / step_a
                bmat[j + n + 1, j] = temp + 1.0 / step_b
                bmat[0, j] = -bmat[j + 1, j] - bmat[j + n + 1, j]
                zmat[0, j] = np.sqrt(2.0) / abs(step_a * step_b)
                zmat[j + 1, j] = zmat[0, j] * step_b * temp
                zmat[j + n + 1, j] = -zmat[0, j] * step_a * temp
            else:
                bmat[0, j] = -1.0 / step_a
                bmat[j + 1, j] = 1.0 / step_a
                bmat[npt + j, j] = -0.5 * step_a ** 2.0
        for k in range(2 * n + 1, npt):
            ip, iq = np.flatnonzero(xpt[k, :])
            temp = 1.0 / (xpt[k, ip] * xpt[k, iq])
            zmat[0, k - n - 1] = temp
            zmat[ip + 1, k - n - 1] = -temp
            zmat[iq + 1, k - n - 1] = -temp
            zmat[k, k - n - 1] = temp
        return cls(bmat, zmat, 0, debug)

    @property
    def npt(self):
        """
        Number of interpolation points.

        Returns
        -------
        int
            Number of interpolation points.
        """
        return self._zmat.shape[0]

    @property
    def n(self):
        """
        Number of variables.

        Returns
        -------
        int
            Number of variables.
        """
        return self._bmat.shape[1]

    @property
    def bmat(self):
        """
        Matrices :math:`\\Xi^{\\T}` and :math:`\\Upsilon` stacked together.

        Returns
        -------
        numpy.ndarray, shape (npt + n, n)
            Matrices :math:`\\Xi^{\\T}` and :math:`\\Upsilon`.
        """
        return self._bmat

    @property
    def zmat(self):
        """
        Factor :math:`Z`.

        Returns
        -------
        numpy.ndarray, shape (npt, npt - n - 1)
            Factor :math:`Z`.
        """
        return self._zmat

    @property
    def idz(self):
        """
        Number of columns of `zmat` with a negative signature.

        Returns
        -------
        int
            Split index of the signature.
        """
        return self._idz

    @property
    def signature(self):
        """
        Diagonal of :math:`S`.

        Returns
        -------
        numpy.ndarray, shape (npt - n - 1,)
            Signature of the columns of `zmat`.
        """
        sign = np.ones(self._zmat.shape[1])
        sign[:self._idz] = -1.0
        return sign

    def omega_col(self, k):
        """
        Column of :math:`\\Omega = Z S Z^{\\T}`.

        Parameters
        ----------
        k : int
            Index of the column.

        Returns
        -------
        numpy.ndarray, shape (npt,)
            The `k`-th column of :math:`\\Omega`.
        """
        return self._zmat @ (self.signature * self._zmat[k, :])

    def omega_mul(self, v):
        """
        Product of :math:`\\Omega` with a vector.
        """
        return self._zmat @ (self.signature * (self._zmat.T @ v))

    def alpha(self, k=None):
        """
        Diagonal elements of :math:`\\Omega`.

        Parameters
        ----------
        k : int, optional
            Index of the diagonal element. All the diagonal elements are
            returned if it is not provided.

        Returns
        -------
        {float, numpy.ndarray, shape (npt,)}
            Diagonal element(s) of :math:`\\Omega`.
        """
        if k is None:
            return np.sum(self.signature * self._zmat ** 2.0, axis=1)
        return np.sum(self.signature * self._zmat[k, :] ** 2.0)

    def lagrange_values(self, xpt, kopt, step):
        """
        Evaluate the Lagrange functions at a trial point.

        Parameters
        ----------
        xpt : numpy.ndarray, shape (npt, n)
            Interpolation points, relative to the base point.
        kopt : int
            Index of the center of the trust region.
        step : numpy.ndarray, shape (n,)
            Step from ``xpt[kopt]`` to the trial point.

        Returns
        -------
        numpy.ndarray, shape (npt + n,)
            Values of the Lagrange functions at the trial point, followed by
            the components used in the update of `bmat`.
        float
            Parameter :math:`\\beta` of the updating formula.
        """
        npt = self.npt
        x_opt = xpt[kopt, :]
        xpt_step = xpt @ step
        w = xpt_step * (0.5 * xpt_step + xpt @ x_opt)
        z_w = self.signature * (self._zmat.T @ w)
        vlag = np.empty(npt + self.n)
        vlag[:npt] = self._bmat[:npt, :] @ step + self._zmat @ z_w
        beta = -np.inner(z_w, self._zmat.T @ w)
        b_w = self._bmat[:npt, :].T @ w
        vlag[npt:] = b_w + self._bmat[npt:, :] @ step
        step_sq = np.inner(step, step)
        x_opt_sq = np.inner(x_opt, x_opt)
        step_x_opt = np.inner(step, x_opt)
        b_sum = np.inner(b_w, step) + np.inner(vlag[npt:], step)
        beta += step_x_opt ** 2.0 + step_sq * (x_opt_sq + 2.0 * step_x_opt + 0.5 * step_sq) - b_sum
        vlag[kopt] += 1.0
        return vlag, beta

    def denominators(self, vlag, beta):
        """
        Denominators of the updating formula for every interpolation point.
        """
        return beta * self.alpha() + vlag[:self.npt] ** 2.0

    def update(self, knew, beta, vlag):
        """
        Update the factorization when an interpolation point is replaced.

        Parameters
        ----------
        knew : int
            Index of the interpolation point to be replaced.
        beta : float
            Parameter :math:`\\beta` of the updating formula.
        vlag : numpy.ndarray, shape (npt + n,)
            Values of the Lagrange functions at the new point, as returned by
            `lagrange_values`. It is modified in place.

        Raises
        ------
        ZeroDivisionError
            The denominator of the updating formula is zero, up to the
            precision of the stored matrices.
        """
        npt, n = self.npt, self.n
        zmat = self._zmat
        idz = self._idz

        # Apply the rotations that put zeros in the knew-th row of zmat.
        jdz = 0
        for j in range(1, npt - n - 1):
            if j == idz:
                jdz = idz
            elif zmat[knew, j] != 0.0:
                _, cosv, sinv = rotg(zmat[knew, jdz], zmat[knew, j])
                rot(zmat[:, jdz], zmat[:, j], cosv, sinv)
                zmat[knew, j] = 0.0

        # Put the first npt components of the knew-th column of Omega into w,
        # and calculate the parameters of the updating formula.
        scala = zmat[knew, 0] if idz == 0 else -zmat[knew, 0]
        w = scala * zmat[:, 0]
        if jdz > 0:
            w += zmat[knew, jdz] * zmat[:, jdz]
        alpha = w[knew]
        tau = vlag[knew]
        denom = alpha * beta + tau ** 2.0
        tol = np.finfo(float).tiny * max(np.max(np.abs(self._bmat)), np.max(np.abs(zmat), initial=0.0))
        if abs(denom) <= tol or not np.isfinite(denom):
            raise ZeroDivisionError('The denominator of the updating formula is zero.')
        vlag[knew] -= 1.0

        # Complete the updating of zmat when there is only one nonzero element
        # in its knew-th row. The first column of zmat may be exchanged with
        # another one later on.
        reduce_idz = False
        if jdz == 0:
            temp = np.sqrt(abs(denom))
            tempb = scala / temp
            tempa = tau / temp
            zmat[:, 0] = tempa * zmat[:, 0] - tempb * vlag[:npt]
            # The condition below is never met as temp is a square root. The
            # signature is then never flipped in this branch, and the run
            # histories depend on it.
            if idz == 0 and temp < 0.0:
                idz = 1
            if idz >= 1 and temp >= 0.0:
                reduce_idz = True
        else:
            ja = jdz if beta >= 0.0 else 0
            jb = jdz - ja
            temp = zmat[knew, jb] / denom
            tempa = temp * beta
            tempb = temp * tau
            temp = zmat[knew, ja]
            scala = 1.0 / np.sqrt(abs(beta) * temp ** 2.0 + tau ** 2.0)
            scalb = scala * np.sqrt(abs(denom))
            zmat[:, ja] = scala * (tau * zmat[:, ja] - temp * vlag[:npt])
            zmat[:, jb] = scalb * (zmat[:, jb] - tempa * w - tempb * vlag[:npt])
            if denom <= 0.0:
                if beta < 0.0:
                    idz += 1
                else:
                    reduce_idz = True

        # Reduce idz and exchange the first column of zmat with another one.
        if reduce_idz:
            idz -= 1
            if idz > 0:
                zmat[:, [0, idz]] = zmat[:, [idz, 0]]
        if idz != self._idz:
            _log.debug(f'Signature split index changed from {self._idz} to {idz}.')
        self._idz = idz

        # Finally, update bmat with a symmetric rank-2 correction.
        w_b = np.copy(self._bmat[knew, :])
        tempa = (alpha * vlag[npt:] - tau * w_b) / denom
        tempb = (-beta * w_b - tau * vlag[npt:]) / denom
        self._bmat[:npt, :] += np.outer(vlag[:npt], tempa) + np.outer(w, tempb)
        self._bmat[npt:, :] += np.outer(vlag[npt:], tempa) + np.outer(w_b, tempb)
        self._bmat[npt:, :] = 0.5 * (self._bmat[npt:, :] + self._bmat[npt:, :].T)

    def shift_base(self, xpt, kopt):
        """
        Update the factorization when the base point moves to ``xpt[kopt]``.

        The matrix `zmat` is invariant. The interpolation points must be given
        relative to the former base point, and they must be shifted by the
        caller afterwards.

        Parameters
        ----------
        xpt : numpy.ndarray, shape (npt, n)
            Interpolation points, relative to the former base point.
        kopt : int
            Index of the new base point.
        """
        npt = self.npt
        x_opt = xpt[kopt, :]
        x_opt_sq = np.inner(x_opt, x_opt)
        frac_sq = 0.25 * x_opt_sq
        w_npt = xpt @ x_opt - 0.5 * x_opt_sq
        v = w_npt[:, np.newaxis] * xpt + np.outer(frac_sq - 0.5 * w_npt, x_opt)
        b_pt = self._bmat[:npt, :]
        update = b_pt.T @ v
        self._bmat[npt:, :] += update + update.T

        # Then the revisions of bmat that depend on zmat.
        v_z = w_npt[:, np.newaxis] * self._zmat
        w_z = xpt.T @ v_z + np.outer(x_opt, frac_sq * np.sum(self._zmat, axis=0) - 0.5 * np.sum(v_z, axis=0))
        sign = self.signature
        self._bmat[:npt, :] += self._zmat @ (sign * w_z).T
        self._bmat[npt:, :] += (sign * w_z) @ w_z.T
        self._bmat[npt:, :] = 0.5 * (self._bmat[npt:, :] + self._bmat[npt:, :].T)

    def check(self, xpt, kopt):
        """
        Check the interpolation conditions of the Lagrange functions.

        A `RuntimeWarning` is raised if the conditions are violated.

        Parameters
        ----------
        xpt : numpy.ndarray, shape (npt, n)
            Interpolation points, relative to the base point.
        kopt : int
            Index of the center of the trust region.

        Returns
        -------
        float
            Largest violation of the interpolation conditions.
        """
        npt = self.npt
        quad = 0.5 * (xpt @ xpt.T) ** 2.0
        omega = self._zmat @ (self.signature[:, np.newaxis] * self._zmat.T)
        lag = self._bmat[:npt, :] @ (xpt - xpt[kopt, :]).T + omega @ (quad - quad[:, [kopt]])
        expected = np.eye(npt)
        expected[kopt, :] -= 1.0
        error = np.max(np.abs(lag - expected), initial=0.0)
        tol = 10.0 * np.sqrt(get_arrays_tol(xpt, self._bmat, self._zmat))
        if error > tol * max(1.0, np.max(np.abs(lag), initial=0.0)):
            warnings.warn(f'The interpolation conditions of the Lagrange functions are violated ({error:.3e}).', RuntimeWarning, 3)
        return error
