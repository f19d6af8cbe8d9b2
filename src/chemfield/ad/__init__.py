"""Forward-mode sensitivity values and functions acting on them."""

from . import functions
from .forward_mode import SensitivityArray, init_sensitivity_arrays
from .utils import concatenate

__all__ = ["functions", "SensitivityArray", "init_sensitivity_arrays", "concatenate"]
