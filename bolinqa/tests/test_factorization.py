import numpy as np
import pytest

from ..factorization import InverseFactorization
from . import assert_factorization_inverts, build_factorization, coordinate_points, kkt_inverse

SIZES = [(1, 3), (2, 4), (2, 5), (2, 6), (5, 7), (5, 11), (5, 21)]


def kkt_matrix(xpt):
    npt, n = xpt.shape
    w = np.zeros((npt + n + 1, npt + n + 1))
    w[:npt, :npt] = 0.5 * (xpt @ xpt.T) ** 2.0
    w[:npt, npt] = 1.0
    w[npt, :npt] = 1.0
    w[:npt, npt + 1:] = xpt
    w[npt + 1:, :npt] = xpt.T
    return w


class TestInverseFactorization:

    @pytest.mark.parametrize('n,npt', SIZES)
    def test_coordinate_points(self, n, npt):
        xpt, factorization = build_factorization(n, npt)
        assert factorization.npt == npt
        assert factorization.n == n
        assert factorization.idz == 0
        assert factorization.bmat.shape == (npt + n, n)
        assert factorization.zmat.shape == (npt, npt - n - 1)
        assert_factorization_inverts(factorization, xpt)
        assert factorization.check(xpt, 0) < 1e-10

    @pytest.mark.parametrize('step_a,step_b', [(1.0, -1.0), (0.5, 1.0), (-2.0, -0.5)])
    def test_coordinate_points_asymmetric(self, step_a, step_b):
        xpt = coordinate_points(3, 8, step_a, step_b)
        factorization = InverseFactorization.from_coordinate_points(xpt, True)
        assert_factorization_inverts(factorization, xpt)

    @pytest.mark.parametrize('n,npt', SIZES)
    def test_lagrange_values(self, n, npt):
        rng = np.random.default_rng(n * npt)
        xpt, factorization = build_factorization(n, npt)
        h = kkt_inverse(xpt)
        kopt = 1
        step = 0.5 * rng.standard_normal(n)
        x = xpt[kopt, :] + step
        vlag, beta = factorization.lagrange_values(xpt, kopt, step)
        w = np.concatenate((0.5 * (xpt @ x) ** 2.0, [1.0], x))
        np.testing.assert_allclose(vlag[:npt], h[:npt, :] @ w, atol=1e-10)

        # The denominators are the ratios of the determinants of the KKT
        # matrices after and before the replacement.
        denominators = factorization.denominators(vlag, beta)
        det_old = np.linalg.det(kkt_matrix(xpt))
        for k in range(npt):
            xpt_new = np.copy(xpt)
            xpt_new[k, :] = x
            ratio = np.linalg.det(kkt_matrix(xpt_new)) / det_old
            np.testing.assert_allclose(denominators[k], ratio, rtol=1e-6, atol=1e-10)

    @pytest.mark.parametrize('n,npt', SIZES)
    def test_update(self, n, npt):
        rng = np.random.default_rng(n + npt)
        xpt, factorization = build_factorization(n, npt)
        kopt = 0
        for _ in range(3 * npt):
            step = rng.standard_normal(n)
            vlag, beta = factorization.lagrange_values(xpt, kopt, step)
            denominators = factorization.denominators(vlag, beta)
            knew = np.argmax(np.abs(denominators))
            factorization.update(knew, beta, vlag)
            xpt[knew, :] = xpt[kopt, :] + step
            assert 0 <= factorization.idz <= npt - n - 1
            assert_factorization_inverts(factorization, xpt, 1e-6)
            kopt = knew

    def test_single_column_sign_branch(self):
        # With a single column in zmat, the signature is only flipped when the
        # square root of the absolute value of the denominator is negative,
        # which never happens. A negative denominator leaves idz unchanged.
        xpt, factorization = build_factorization(2, 4)
        assert factorization.zmat.shape == (4, 1)
        knew = 1
        vlag = np.zeros(6)
        vlag[knew] = 0.1
        beta = -10.0
        assert beta * factorization.alpha(knew) + vlag[knew] ** 2.0 < 0.0
        factorization.update(knew, beta, vlag)
        assert factorization.idz == 0

    def test_zero_denominator(self):
        xpt, factorization = build_factorization(2, 5)
        vlag = np.zeros(7)
        with pytest.raises(ZeroDivisionError):
            factorization.update(1, 0.0, vlag)

    @pytest.mark.parametrize('n,npt', SIZES)
    def test_shift_base(self, n, npt):
        rng = np.random.default_rng(npt)
        xpt, factorization = build_factorization(n, npt)
        step = 0.5 * rng.standard_normal(n)
        vlag, beta = factorization.lagrange_values(xpt, 0, step)
        knew = np.argmax(np.abs(factorization.denominators(vlag, beta)[1:])) + 1
        factorization.update(knew, beta, vlag)
        xpt[knew, :] = step
        zmat = np.copy(factorization.zmat)
        factorization.shift_base(xpt, knew)
        np.testing.assert_array_equal(factorization.zmat, zmat)
        assert_factorization_inverts(factorization, xpt - xpt[knew, :], 1e-8)

    def test_omega(self):
        xpt, factorization = build_factorization(3, 8)
        h = kkt_inverse(xpt)
        v = np.arange(8.0)
        np.testing.assert_allclose(factorization.omega_mul(v), h[:8, :8] @ v, atol=1e-10)
        for k in range(8):
            np.testing.assert_allclose(factorization.omega_col(k), h[:8, k], atol=1e-10)
        np.testing.assert_allclose(factorization.alpha(), np.diag(h[:8, :8]), atol=1e-10)

    def test_check(self):
        xpt, factorization = build_factorization(2, 5)
        factorization.bmat[1, 0] += 1.0
        with pytest.warns(RuntimeWarning):
            error = factorization.check(xpt, 0)
        assert error >= 0.5
