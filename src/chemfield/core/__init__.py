"""The core subpackage contains the static description of chemical systems (species,
phases, elements), their partition into equilibrium, kinetic and inert species, the
state of a system at a point, and chemical reactions."""

from .species import *
from .phase import *
from .system import *
from .partition import *
from .state import *
from .reaction import *

__all__ = []
__all__.extend(species.__all__)
__all__.extend(phase.__all__)
__all__.extend(system.__all__)
__all__.extend(partition.__all__)
__all__.extend(state.__all__)
__all__.extend(reaction.__all__)
