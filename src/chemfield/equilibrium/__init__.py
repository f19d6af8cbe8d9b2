"""The equilibrium subpackage provides the solver for chemical equilibrium by Gibbs
energy minimization, and the definition and solution of inverse equilibrium problems,
where titrant amounts are sought such that the equilibrium state satisfies given
constraints."""

from .solver import *
from .inverse_problem import *
from .inverse_solver import *

__all__ = []
__all__.extend(solver.__all__)
__all__.extend(inverse_problem.__all__)
__all__.extend(inverse_solver.__all__)
