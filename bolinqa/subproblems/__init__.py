from .geometry import bound_constrained_geometry_step, linearly_constrained_geometry_step
from .trust_region import Phase, bound_constrained_tr_step, linearly_constrained_tr_step
from .utils import ActiveSet

__all__ = ["ActiveSet", "Phase", "bound_constrained_geometry_step", "bound_constrained_tr_step", "linearly_constrained_geometry_step", "linearly_constrained_tr_step"]
