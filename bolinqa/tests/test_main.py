import warnings

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal
from scipy.optimize import Bounds, LinearConstraint, rosen

from .. import minimize
from ..framework import TrustRegion


def quadratic(x, a=(1.0, 2.0)):
    x = np.asarray(x)
    a = np.asarray(a)
    return (x[0] - a[0]) ** 2.0 + 10.0 * (x[1] - a[1]) ** 2.0


def sphere(x, a=1.0):
    return np.sum((np.asarray(x) - a) ** 2.0)


class TestMinimize:

    def test_quadratic(self):
        res = minimize(quadratic, [0.0, 0.0], options={'radius_init': 1.0, 'radius_final': 1e-8})
        assert res.success
        assert res.status == 0
        assert res.nfev < 200
        assert_allclose(res.x, [1.0, 2.0], atol=1e-6)
        assert res.fun == pytest.approx(quadratic(res.x))
        assert res.maxcv == 0.0
        assert res.nit > 0

    def test_rosen(self):
        res = minimize(rosen, [0.0, 0.0], options={'max_eval': 3000})
        assert res.status == 0
        assert_allclose(res.x, [1.0, 1.0], atol=1e-3)

    @pytest.mark.parametrize('npt', [5, 7, 10])
    def test_npt(self, npt):
        res = minimize(sphere, [0.0, 0.0, 0.0], options={'nb_points': npt, 'radius_final': 1e-8})
        assert res.status == 0
        assert_allclose(res.x, np.ones(3), atol=1e-5)

    def test_args(self):
        res = minimize(sphere, [0.0, 0.0], args=(3.0,))
        assert_allclose(res.x, [3.0, 3.0], atol=1e-4)
        res = minimize(sphere, [0.0, 0.0], args=3.0)
        assert_allclose(res.x, [3.0, 3.0], atol=1e-4)

    def test_scalar_x0(self):
        res = minimize(sphere, 0.0, options={'nb_points': 3})
        assert res.x.shape == (1,)
        assert_allclose(res.x, [1.0], atol=1e-4)

    def test_bounds(self):
        res = minimize(sphere, [0.0, 0.0], args=(2.0,), bounds=Bounds(-1.0, 1.0))
        assert_allclose(res.x, [1.0, 1.0], atol=1e-8)
        assert np.all(res.x <= 1.0)
        res_array = minimize(sphere, [0.0, 0.0], args=(2.0,), bounds=[[-1.0, 1.0], [-1.0, 1.0]])
        assert_array_equal(res.x, res_array.x)
        assert res.nfev == res_array.nfev

    def test_close_bounds(self):
        with pytest.warns(RuntimeWarning, match='reduced to 0.05'):
            res = minimize(sphere, [0.0, 0.0], bounds=[[0.0, 0.1], [-np.inf, np.inf]], options={'radius_init': 1.0})
        assert_allclose(res.x, [0.1, 1.0], atol=1e-4)

    def test_linear_constraints(self):
        def fun(x):
            return (x[0] - 1.0) ** 2.0 + (x[1] - 2.5) ** 2.0

        constraints = LinearConstraint([[-1.0, 2.0], [1.0, 2.0], [1.0, -2.0]], -np.inf, [2.0, 6.0, 2.0])
        res = minimize(fun, [2.0, 0.0], bounds=Bounds([0.0, 0.0], np.inf), constraints=constraints)
        assert res.success
        assert_allclose(res.x, [1.4, 1.7], atol=1e-4)
        assert res.maxcv <= 1e-8

    def test_target(self):
        res = minimize(quadratic, [0.0, 0.0], options={'target': 1e-2})
        assert res.success
        assert res.status == 1
        assert res.fun <= 1e-2

    def test_target_init(self):
        res = minimize(quadratic, [1.0, 2.0], options={'target': 0.0})
        assert res.status == 1
        assert res.nfev == 1
        assert res.nit == 0

    def test_max_eval(self):
        res = minimize(rosen, [0.0, 0.0], options={'max_eval': 10})
        assert res.success
        assert res.status == 2
        assert res.nfev <= 10

    def test_nonfinite_start(self):
        res = minimize(lambda x: np.nan, [0.0, 0.0])
        assert not res.success
        assert res.status == -1
        assert res.nfev == 1

    def test_nonfinite_values(self):
        n_calls = [0]

        def fun(x):
            n_calls[0] += 1
            if n_calls[0] == 5:
                return np.nan
            return quadratic(x)

        res = minimize(fun, [0.0, 0.0], options={'store_history': True})
        assert res.status in (0, 2)
        assert np.isfinite(res.fun)
        assert np.isnan(res.fun_history[4])
        assert res.fun == np.nanmin(res.fun_history)
        assert res.fun < quadratic([0.0, 0.0])

    @pytest.mark.parametrize('value,call', [(-np.inf, 5), (np.inf, 5), (-np.inf, 20), (np.inf, 20)])
    def test_infinite_values(self, value, call):
        n_calls = [0]

        def fun(x):
            n_calls[0] += 1
            if n_calls[0] == call:
                return value
            return quadratic(x)

        res = minimize(fun, [0.0, 0.0], options={'radius_final': 1e-8, 'store_history': True})
        assert res.status == 0
        assert res.nfev > call
        assert res.fun_history[call - 1] == value
        assert np.isfinite(res.fun)
        assert_allclose(res.x, [1.0, 2.0], atol=1e-3)

    def test_history(self):
        res = minimize(quadratic, [0.0, 0.0], options={'store_history': True, 'history_size': 5})
        assert res.fun_history.shape == (5,)
        assert res.x_history.shape == (5, 2)
        res = minimize(quadratic, [0.0, 0.0])
        assert 'fun_history' not in res

    def test_history_memory(self):
        with pytest.warns(RuntimeWarning, match='reduced to 10'):
            res = minimize(quadratic, [0.0, 0.0], options={'store_history': True, 'history_size': 100}, history_memory=240)
        assert res.fun_history.size == 10
        with warnings.catch_warnings():
            warnings.simplefilter('error')
            res = minimize(quadratic, [0.0, 0.0], options={'store_history': True}, history_memory=240)
        assert res.fun_history.size == 10

    def test_verbose(self, capsys):
        minimize(quadratic, [0.0, 0.0], options={'verbose': True, 'max_eval': 10})
        captured = capsys.readouterr()
        assert 'Starting the optimization procedure.' in captured.out
        assert 'quadratic(' in captured.out
        assert 'Number of function evaluations: 10.' in captured.out

    def test_debug(self):
        res = minimize(rosen, [0.0, 0.0, 0.0], options={'debug': True, 'max_eval': 200})
        assert res.status in (0, 2)
        assert res.fun < rosen([0.0, 0.0, 0.0])

    def test_rescue(self, monkeypatch):
        options = {'radius_final': 1e-8}
        res_ref = minimize(sphere, [0.0, 0.0, 0.0], options=options)

        calls = []
        get_index_to_remove = TrustRegion.get_index_to_remove

        def first_unsafe(self, *args):
            calls.append(None)
            if len(calls) == 1:
                return None
            return get_index_to_remove(self, *args)

        monkeypatch.setattr(TrustRegion, 'get_index_to_remove', first_unsafe)
        res = minimize(sphere, [0.0, 0.0, 0.0], options=options)
        assert len(calls) > 1
        assert res.status == 0
        assert_allclose(res.x, res_ref.x, atol=1e-6)

    def test_degenerate(self, monkeypatch):
        # Every trial point and every geometry step requires a rescue, so a
        # geometry step following a rescued trial step has nothing new to use.
        calls = []
        rescue = TrustRegion.rescue

        def counted_rescue(self, *args, **kwargs):
            calls.append(self.models.npt)
            return rescue(self, *args, **kwargs)

        monkeypatch.setattr(TrustRegion, 'get_index_to_remove', lambda self, *args: None)
        monkeypatch.setattr(TrustRegion, 'get_denominator', lambda self, k_new, step: -1.0)
        monkeypatch.setattr(TrustRegion, 'rescue', counted_rescue)
        res = minimize(sphere, [0.0, 0.0], options={'radius_final': 1e-8})
        assert not res.success
        assert res.status == -2
        assert len(calls) >= 2
        assert res.fun <= sphere([0.0, 0.0])

    def test_radius_schedule(self, monkeypatch):
        radii = []
        get_trust_region_step = TrustRegion.get_trust_region_step

        def recorded_step(self):
            radii.append((self.radius, self.resolution))
            return get_trust_region_step(self)

        monkeypatch.setattr(TrustRegion, 'get_trust_region_step', recorded_step)
        res = minimize(rosen, [0.0, 0.0, 0.0], options={'radius_final': 1e-6, 'max_eval': 3000})
        assert res.status in (0, 2)
        radii = np.array(radii)
        assert radii.shape[0] == res.nit
        assert np.all(radii[:, 0] >= radii[:, 1])
        assert np.all(np.diff(radii[:, 1]) <= 0.0)
        assert np.all(radii[:, 1] >= 1e-6)

    def test_options_errors(self):
        with pytest.raises(ValueError):
            minimize(sphere, [0.0, 0.0], options={'radius_init': 0.0})
        with pytest.raises(ValueError):
            minimize(sphere, [0.0, 0.0], options={'radius_final': -1.0})
        with pytest.raises(ValueError):
            minimize(sphere, [0.0, 0.0], options={'radius_final': 0.0})
        with pytest.raises(ValueError):
            minimize(sphere, [0.0, 0.0], options={'radius_init': 0.1, 'radius_final': 1.0})
        with pytest.raises(ValueError):
            minimize(sphere, [0.0, 0.0], options={'nb_points': 3})
        with pytest.raises(ValueError):
            minimize(sphere, [0.0, 0.0], options={'nb_points': 7})
        with pytest.raises(ValueError):
            minimize(sphere, [0.0, 0.0], options={'max_eval': 5})
        with pytest.raises(ValueError):
            minimize(sphere, [0.0, 0.0], options={'history_size': 0})
        with pytest.raises(ValueError):
            minimize(sphere, [0.0, 0.0], decrease_radius_factor=1.5)

    def test_arguments_errors(self):
        with pytest.raises(TypeError):
            minimize(sphere, [0.0, 0.0], bounds=1.0)
        with pytest.raises(ValueError):
            minimize(sphere, [0.0, 0.0], bounds=[[0.0, 1.0]])
        with pytest.raises(TypeError):
            minimize(sphere, [0.0, 0.0], constraints={'type': 'ineq', 'fun': sphere})
        with pytest.raises(TypeError):
            minimize(sphere, [0.0, 0.0], constraints=[1.0])
        with pytest.raises(ValueError):
            minimize(sphere, [0.0, np.nan])

    def test_unknown(self):
        with pytest.warns(RuntimeWarning, match='Unknown option'):
            minimize(sphere, [0.0, 0.0], options={'foo': 1, 'max_eval': 10})
        with pytest.warns(RuntimeWarning, match='Unknown constant'):
            minimize(sphere, [0.0, 0.0], options={'max_eval': 10}, foo=1.0)
