"""The kinetics subpackage provides rate laws of mineral reactions and the solver
advancing the kinetic species of a chemical state in time."""

from .mechanisms import *
from .solver import *

__all__ = []
__all__.extend(mechanisms.__all__)
__all__.extend(solver.__all__)
