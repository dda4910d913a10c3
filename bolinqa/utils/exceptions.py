class MaxEvalError(Exception):
    """
    Exception raised when the maximum number of evaluations is reached.
    """
    pass


class TargetSuccess(Exception):
    """
    Exception raised when the target value is reached.
    """
    pass


class NonFiniteStartError(ArithmeticError):
    """
    Exception raised when the objective function is not finite at the initial
    guess.
    """
    pass


class DegenerateGeometryError(Exception):
    """
    Exception raised when the interpolation set cannot be repaired, even by a
    fresh rescue.
    """
    pass
