import sys
from enum import Enum

import numpy as np


# Exit status.
class ExitStatus(Enum):
    """
    Exit statuses.
    """
    RADIUS_SUCCESS = 0
    TARGET_SUCCESS = 1
    MAX_EVAL_WARNING = 2
    NONFINITE_START_ERROR = -1
    DEGENERATE_ERROR = -2


class Options(str, Enum):
    """
    Option names.
    """
    DEBUG = 'debug'
    FEASIBILITY_TOL = 'feasibility_tol'
    HISTORY_SIZE = 'history_size'
    MAX_EVAL = 'max_eval'
    NPT = 'nb_points'
    RHOBEG = 'radius_init'
    RHOEND = 'radius_final'
    STORE_HISTORY = 'store_history'
    TARGET = 'target'
    VERBOSE = 'verbose'


class Constants(str, Enum):
    """
    Names of the algorithmic constants.
    """
    DECREASE_RADIUS_THRESHOLD = 'decrease_radius_threshold'
    INCREASE_RADIUS_THRESHOLD = 'increase_radius_threshold'
    DECREASE_RADIUS_FACTOR = 'decrease_radius_factor'
    INCREASE_RADIUS_FACTOR = 'increase_radius_factor'
    DECREASE_RESOLUTION_FACTOR = 'decrease_resolution_factor'
    LARGE_RESOLUTION_THRESHOLD = 'large_resolution_threshold'
    MODERATE_RESOLUTION_THRESHOLD = 'moderate_resolution_threshold'
    HISTORY_MEMORY = 'history_memory'


# Default options.
DEFAULT_OPTIONS = {
    Options.DEBUG.value: False,
    Options.FEASIBILITY_TOL.value: np.sqrt(np.finfo(float).eps),
    Options.HISTORY_SIZE.value: sys.maxsize,
    Options.MAX_EVAL.value: lambda n: 500 * n,
    Options.NPT.value: lambda n: 2 * n + 1,
    Options.RHOBEG.value: 1.0,
    Options.RHOEND.value: 1e-6,
    Options.STORE_HISTORY.value: False,
    Options.TARGET.value: -np.inf,
    Options.VERBOSE.value: False,
}

# Default constants.
DEFAULT_CONSTANTS = {
    Constants.DECREASE_RADIUS_THRESHOLD.value: 0.1,
    Constants.INCREASE_RADIUS_THRESHOLD.value: 0.7,
    Constants.DECREASE_RADIUS_FACTOR.value: 0.5,
    Constants.INCREASE_RADIUS_FACTOR.value: 2.0,
    Constants.DECREASE_RESOLUTION_FACTOR.value: 0.1,
    Constants.LARGE_RESOLUTION_THRESHOLD.value: 250.0,
    Constants.MODERATE_RESOLUTION_THRESHOLD.value: 16.0,
    Constants.HISTORY_MEMORY.value: 300 * 2 ** 20,
}


# Printing options.
PRINT_OPTIONS = {
    'threshold': 6,
    'edgeitems': 2,
    'linewidth': sys.maxsize,
    'formatter': {'float_kind': lambda x: np.format_float_scientific(x, precision=3, unique=False, pad_left=2)}
}
