import numpy as np
import pytest
from numpy.testing import assert_, assert_raises

from bolinqa.utils import get_arrays_tol, huge, max_abs_arrays, moderate


def test_huge():
    assert_(huge() == 2.0 ** 100)
    assert_(huge(np.float32) == 2.0 ** 64)


@pytest.mark.parametrize('fun_val', [np.nan, np.inf, -np.inf, 1e200])
def test_moderate(fun_val):
    assert_(moderate(fun_val) == huge())


def test_moderate_finite():
    assert_(moderate(1.0) == 1.0)
    assert_(moderate(-1e200) == -1e200)


def test_max_abs_arrays():
    assert_(max_abs_arrays(np.array([1.0, -3.0, np.inf]), np.array([2.0])) == 3.0)
    assert_(max_abs_arrays(np.array([0.1, -np.inf])) == 1.0)
    assert_(max_abs_arrays(np.array([0.1]), initial=0.0) == 0.1)


def test_get_arrays_tol():
    tol = get_arrays_tol(np.array([1.0, -4.0]), np.array([2.0, 3.0, np.nan]))
    assert_(tol == 10.0 * np.finfo(float).eps * 3 * 4.0)
    with assert_raises(ValueError):
        get_arrays_tol()
