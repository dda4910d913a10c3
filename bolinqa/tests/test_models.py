import numpy as np
import pytest
from scipy.optimize import rosen

from ..factorization import InverseFactorization
from ..models import Interpolation, Quadratic, Models, build_point
from ..settings import Options
from ..utils import NonFiniteStartError
from . import assert_array_less_equal, coordinate_points, get_problem


def get_options(n, npt=None, radius=0.5, target=-np.inf):
    return {
        Options.DEBUG.value: True,
        Options.NPT.value: 2 * n + 1 if npt is None else npt,
        Options.RHOBEG.value: radius,
        Options.RHOEND.value: 1e-6,
        Options.TARGET.value: target,
        Options.FEASIBILITY_TOL.value: np.sqrt(np.finfo(float).eps),
    }


def quadratic(x):
    return 1.0 + x[0] - 2.0 * x[1] + 3.0 * x[0] ** 2.0 + x[0] * x[1] + 2.0 * x[1] ** 2.0


class TestInterpolation:

    def test_simple(self):
        pb = get_problem(rosen, [0.5, 0.5])
        options = get_options(pb.n)
        interpolation = Interpolation(pb, options)
        assert interpolation.n == pb.n
        assert interpolation.npt == options[Options.NPT]
        np.testing.assert_array_equal(interpolation.x_base, pb.x0)
        np.testing.assert_array_equal(interpolation.xpt, np.zeros((5, 2)))

    def test_close_bounds(self):
        options = get_options(2, radius=0.25)
        pb = get_problem(rosen, [0.1, 0.5], [0.0, 0.0], [1.0, 1.0])
        interpolation = Interpolation(pb, options)
        np.testing.assert_allclose(interpolation.x_base, [0.25, 0.5])
        pb = get_problem(rosen, [0.0, 0.9], [0.0, 0.0], [1.0, 1.0])
        interpolation = Interpolation(pb, options)
        np.testing.assert_allclose(interpolation.x_base, [0.0, 0.75])
        for sl, su in zip(interpolation.sl, interpolation.su):
            assert sl == 0.0 or sl <= -0.25
            assert su == 0.0 or su >= 0.25

    def test_reduce_radius(self):
        options = get_options(2, radius=1.0)
        pb = get_problem(rosen, [0.5, 0.1], [0.0, 0.0], [1.0, 0.2])
        with pytest.warns(RuntimeWarning):
            Interpolation(pb, options)
        assert options[Options.RHOBEG] == pytest.approx(0.1)
        assert options[Options.RHOEND] <= options[Options.RHOBEG]

    def test_fixed_variable(self):
        pb = get_problem(rosen, [0.5, 0.1], [0.0, 0.1], [1.0, 0.1])
        with pytest.raises(ValueError):
            Interpolation(pb, get_options(2))

    def test_build_point(self):
        xl = np.array([0.0, -1.0])
        xu = np.array([1.0, 1.0])
        x_base = np.array([0.5, 0.0])
        x = build_point(x_base, np.array([0.5, 2.0]), xl, xu)
        np.testing.assert_array_equal(x, [1.0, 1.0])
        x = build_point(x_base, np.array([-0.5 - 1e-17, 0.5]), xl, xu)
        np.testing.assert_array_equal(x, [0.0, 0.5])


class TestQuadratic:

    @staticmethod
    def get_quadratic(n, npt, seed=0):
        rng = np.random.default_rng(seed)
        gopt = rng.standard_normal(n)
        hq = rng.standard_normal((n, n))
        hq = 0.5 * (hq + hq.T)
        pq = rng.standard_normal(npt)
        xpt = rng.standard_normal((npt, n))
        return Quadratic(gopt, hq, pq), xpt

    @pytest.mark.parametrize('n,npt', [(1, 3), (3, 7), (5, 11)])
    def test_values(self, n, npt):
        fun, xpt = self.get_quadratic(n, npt)
        hess = fun.hess(xpt)
        np.testing.assert_allclose(hess, hess.T, atol=1e-12)
        d = np.linspace(-1.0, 1.0, n)
        np.testing.assert_allclose(fun.hess_prod(d, xpt), hess @ d, atol=1e-12)
        np.testing.assert_allclose(fun.curv(d, xpt), d @ hess @ d, atol=1e-12)
        np.testing.assert_allclose(fun.quadinc(d, xpt), fun.gopt @ d + 0.5 * d @ hess @ d, atol=1e-12)
        np.testing.assert_allclose(fun.grad(d, xpt), fun.gopt + hess @ d, atol=1e-12)
        assert fun.n == n
        assert fun.npt == npt
        assert fun.is_finite

    def test_fold(self):
        fun, xpt = self.get_quadratic(3, 7)
        hess = fun.hess(xpt)
        fun.fold(xpt)
        np.testing.assert_array_equal(fun.pq, np.zeros(7))
        np.testing.assert_allclose(fun.hq, hess, atol=1e-12)

    def test_shift_base(self):
        fun, xpt = self.get_quadratic(4, 9)
        hess = fun.hess(xpt)
        x_opt = np.copy(xpt[2, :])
        fun.shift_base(xpt, x_opt)
        np.testing.assert_allclose(fun.hess(xpt - x_opt), hess, atol=1e-10)

    def test_move_center(self):
        fun, xpt = self.get_quadratic(3, 7)
        d = np.array([0.1, -0.2, 0.3])
        grad = fun.gopt + fun.hess(xpt) @ d
        fun.move_center(d, xpt)
        np.testing.assert_allclose(fun.gopt, grad, atol=1e-12)
        np.testing.assert_allclose(fun.grad(-d, xpt), grad - fun.hess(xpt) @ d, atol=1e-12)

    @pytest.mark.parametrize('n,npt', [(2, 4), (2, 6), (4, 9)])
    def test_alternative(self, n, npt):
        rng = np.random.default_rng(n)
        xpt = coordinate_points(n, npt)
        factorization = InverseFactorization.from_coordinate_points(xpt, True)
        fval = rng.standard_normal(npt)
        kopt = np.argmin(fval)
        fun = Quadratic.alternative(factorization, fval, xpt, kopt)
        np.testing.assert_array_equal(fun.hq, np.zeros((n, n)))
        for k in range(npt):
            value = fval[kopt] + fun.quadinc(xpt[k, :] - xpt[kopt, :], xpt)
            assert value == pytest.approx(fval[k], abs=1e-10)


class TestModels:

    def test_quadratic_recovery(self):
        # A quadratic function in two variables is determined by six points.
        pb = get_problem(quadratic, [0.3, -0.2])
        models = Models(pb, get_options(2, 6))
        assert pb.n_eval == 6
        rng = np.random.default_rng(0)
        for k in range(models.npt):
            value = models.f_opt + models.quadinc(models.xpt[k, :] - models.x_opt)
            assert value == pytest.approx(models.fval[k], abs=1e-12)
        for _ in range(10):
            d = rng.standard_normal(2)
            x = models.x_base + models.x_opt + d
            assert models.f_opt + models.quadinc(d) == pytest.approx(quadratic(x), abs=1e-10)

    @pytest.mark.parametrize('n', [1, 2, 5])
    @pytest.mark.parametrize('npt_f', [
        lambda n: n + 2,
        lambda n: 2 * n + 1,
        lambda n: (n + 1) * (n + 2) // 2,
    ])
    def test_interpolation(self, n, npt_f):
        npt = npt_f(n)
        pb = get_problem(rosen, np.zeros(n))
        models = Models(pb, get_options(n, npt))
        assert models.npt == npt
        assert models.n == n
        assert models.itest == 3
        assert not models.target_init
        assert pb.n_eval == npt
        assert models.kopt == np.argmin(models.fval)
        for k in range(npt):
            value = models.f_opt + models.quadinc(models.xpt[k, :] - models.x_opt)
            assert value == pytest.approx(models.fval[k], abs=1e-10)
            x = models.interpolation.point(k)
            assert rosen(x) == pytest.approx(models.fval[k], abs=1e-12)

    def test_bounds(self):
        xl = np.array([0.0, -1.0, 0.5])
        xu = np.array([1.0, 0.0, 3.0])
        pb = get_problem(rosen, [0.05, -0.5, 2.9], xl, xu)
        models = Models(pb, get_options(3, 10))
        for k in range(models.npt):
            x = models.interpolation.point(k)
            assert_array_less_equal(xl, x)
            assert_array_less_equal(x, xu)

    def test_target(self):
        pb = get_problem(rosen, [0.5, 0.5])
        models = Models(pb, get_options(2, target=np.inf))
        assert models.target_init
        assert pb.n_eval == 1

    def test_nonfinite_start(self):
        pb = get_problem(lambda x: np.nan, [0.5, 0.5])
        with pytest.raises(NonFiniteStartError):
            Models(pb, get_options(2))

    def test_nonfinite_later(self):
        def fun(x):
            return np.inf if x[0] > 0.6 else rosen(x)

        pb = get_problem(fun, [0.5, 0.5])
        models = Models(pb, get_options(2, radius=0.25))
        assert np.all(np.isfinite(models.fval))
        assert np.isfinite(models.f_opt)
        assert models.fun.is_finite

    @pytest.mark.parametrize('n', [2, 4])
    def test_update_interpolation(self, n):
        rng = np.random.default_rng(n)
        pb = get_problem(rosen, np.full(n, 0.5))
        models = Models(pb, get_options(n))
        for _ in range(10):
            d = 0.3 * rng.standard_normal(n)
            fun_val, maxcv_val = pb(models.interpolation.build_x(models.x_opt + d))
            vlag, beta = models.lagrange_values(d)
            denominators = models.factorization.denominators(vlag, beta)
            denominators[models.kopt] = 0.0
            knew = np.argmax(np.abs(denominators))
            f_opt = models.f_opt
            reduced = models.update_interpolation(knew, d, fun_val, maxcv_val, vlag, beta)
            assert reduced == (fun_val < f_opt)
            assert models.f_opt == np.min(models.fval)
            assert 0 <= models.itest <= 3
            for k in range(models.npt):
                value = models.f_opt + models.quadinc(models.xpt[k, :] - models.x_opt)
                assert value == pytest.approx(models.fval[k], rel=1e-8, abs=1e-8)

    def test_shift_base(self):
        pb = get_problem(rosen, [0.5, 0.5, 0.5])
        models = Models(pb, get_options(3))
        x = np.array([0.7, 0.2, 0.4])
        value = models.f_opt + models.quadinc(x - models.x_base - models.x_opt)
        x_opt = models.x_base + models.x_opt
        models.shift_base()
        np.testing.assert_allclose(models.x_base, x_opt, atol=1e-15)
        np.testing.assert_array_equal(models.x_opt, np.zeros(3))
        new_value = models.f_opt + models.quadinc(x - models.x_base - models.x_opt)
        assert new_value == pytest.approx(value, abs=1e-10)

    def test_reset_model(self):
        pb = get_problem(rosen, [0.5, 0.5, 0.5])
        models = Models(pb, get_options(3))
        models.reset_model()
        np.testing.assert_array_equal(models.fun.hq, np.zeros((3, 3)))
        for k in range(models.npt):
            value = models.f_opt + models.quadinc(models.xpt[k, :] - models.x_opt)
            assert value == pytest.approx(models.fval[k], abs=1e-10)
