"""The field subpackage provides the chemical solver, performing equilibrium and
kinetic calculations at all points of a field, and the container of derived fields
with their sensitivities."""

from .chemical_field import *
from .chemical_solver import *

__all__ = []
__all__.extend(chemical_field.__all__)
__all__.extend(chemical_solver.__all__)
