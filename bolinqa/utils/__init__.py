from .exceptions import MaxEvalError, TargetSuccess, NonFiniteStartError, DegenerateGeometryError
from .math import get_arrays_tol, huge, max_abs_arrays, moderate
from ._show_versions import show_versions

__all__ = ['MaxEvalError', 'TargetSuccess', 'NonFiniteStartError', 'DegenerateGeometryError', 'get_arrays_tol', 'huge', 'max_abs_arrays', 'moderate', 'show_versions']
