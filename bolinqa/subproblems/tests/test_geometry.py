import numpy as np
import pytest
from numpy.testing import assert_, assert_allclose

from bolinqa.subproblems import ActiveSet, bound_constrained_geometry_step, linearly_constrained_geometry_step
from bolinqa.tests import assert_array_less_equal


def lagrange_value(grad, hess, step):
    return np.inner(grad, step) + 0.5 * np.inner(step, hess @ step)


class TestBoundConstrained:

    @pytest.mark.parametrize('n', [1, 5, 10, 50])
    def test_simple(self, n):
        rng = np.random.default_rng(n)
        npt = 2 * n + 1
        kopt = rng.integers(npt)
        grad = rng.standard_normal(n)
        hess = rng.standard_normal((n, n))
        hess = 0.5 * (hess + hess.T)
        sl = -rng.uniform(0.0, 1.0, n)
        su = rng.uniform(0.0, 1.0, n)
        xpt = rng.uniform(sl, su, (npt, n))
        delta = rng.uniform(0.1, 1.0)

        def denominator(d):
            return lagrange_value(grad, hess, d) ** 2.0

        step = bound_constrained_geometry_step(grad, lambda v: hess @ v, xpt, kopt, sl, su, delta, denominator, True)
        assert_(step.shape == (n,))

        # Ensure the feasibility of the output.
        tol = 10.0 * np.finfo(float).eps * n
        assert_array_less_equal(sl - xpt[kopt, :] - step, tol)
        assert_array_less_equal(xpt[kopt, :] + step - su, tol)
        assert_(np.linalg.norm(step) < 1.1 * delta)
        assert_(abs(lagrange_value(grad, hess, step)) > 0.0)

    def test_line(self):
        xpt = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0], [-1.0, 0.0]])
        grad = np.array([0.0, 2.0])
        inf = np.full(2, np.inf)
        step = bound_constrained_geometry_step(grad, lambda v: np.zeros(2), xpt, 0, -inf, inf, 0.5, lambda d: abs(np.inner(grad, d)), True)
        assert_allclose(np.abs(step), [0.0, 0.5], atol=1e-12)


class TestLinearlyConstrained:

    @staticmethod
    def get_step(a_ub, b_ub):
        xpt = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 1.0]])
        grad = np.array([1.0, 0.0])
        inf = np.full(2, np.inf)
        return linearly_constrained_geometry_step(grad, lambda v: np.zeros(2), xpt, 0, a_ub, b_ub, -inf, inf, ActiveSet(2), 1.0, True)

    def test_feasible(self):
        step, feasible = self.get_step(np.empty((0, 2)), np.empty(0))
        assert_allclose(step, [1.0, 0.0])
        assert_(feasible)
        step, feasible = self.get_step(np.array([[1.0, 0.0]]), np.array([2.0]))
        assert_allclose(step, [1.0, 0.0])
        assert_(feasible)

    def test_infeasible(self):
        step, feasible = self.get_step(np.array([[1.0, 0.0]]), np.array([0.1]))
        assert_(np.linalg.norm(step) > 0.0)
        assert_(not feasible)

    def test_violated_center(self):
        # A step that does not increase the violation of a constraint that
        # the center already violates is considered feasible.
        step, feasible = self.get_step(np.array([[0.0, 1.0]]), np.array([-1.0]))
        assert_allclose(step, [1.0, 0.0])
        assert_(feasible)
