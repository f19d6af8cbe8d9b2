"""Minimization problems with linear equality constraints and lower bounds, the
optimum-state contract and the minimizers solving them."""

from .optimum_state import *
from .minimizer import *

__all__ = []
__all__.extend(optimum_state.__all__)
__all__.extend(minimizer.__all__)
