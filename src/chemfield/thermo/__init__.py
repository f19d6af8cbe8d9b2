"""Thermodynamic models providing standard-state properties and activities."""

from .interfaces import *
from .standard_state import *
from .activity import *

__all__ = []
__all__.extend(interfaces.__all__)
__all__.extend(standard_state.__all__)
__all__.extend(activity.__all__)
