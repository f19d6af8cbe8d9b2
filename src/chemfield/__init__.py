"""   ChemField.

Root directory for the ChemField package. Contains the following sub-packages:

ad: Forward-mode sensitivity values (values with Jacobians).

core: Species, phases, chemical systems, partitions, states and reactions.

thermo: Standard-state and activity models providing thermodynamic properties.

optimization: The optimum-state contract and the minimizer adapters.

equilibrium: Gibbs energy minimization and the inverse equilibrium problem.

kinetics: Kinetic rate mechanisms and the kinetic step solver.

field: The field engine solving equilibrium and kinetics over many points.

utils: Logging, exceptions and array utilities.


isort:skip_file

"""

import os
from pathlib import Path
import configparser


__version__ = "0.3.0"

# Try to read the config file from the directory where python process was launched
try:
    cwd = Path(os.getcwd())
    pth = cwd / Path("chemfield.cfg")
    cfg = configparser.ConfigParser()
    cfg.read(pth)
    config = {name: dict(section) for name, section in cfg.items()}
except (OSError, configparser.Error):
    # the assumption is that no configurations are given
    config = {}

# ------------------------------------
# Simplified namespaces. Classes and modules that a user can be exposed to have a
# shortcut here.

from chemfield._core import *
from chemfield.utils.errors import *
from chemfield.utils.logging import time_logger
from chemfield.utils import array_operations

# Sensitivity values
from chemfield import ad
from chemfield.ad.forward_mode import SensitivityArray, init_sensitivity_arrays

# Chemical system
from chemfield.core.species import *
from chemfield.core.phase import *
from chemfield.core.system import *
from chemfield.core.partition import *
from chemfield.core.state import *
from chemfield.core.reaction import *

# Thermodynamic models
from chemfield.thermo.standard_state import *
from chemfield.thermo.activity import *

# Solvers
from chemfield.optimization import *
from chemfield.equilibrium import *
from chemfield.kinetics import *
from chemfield.field import *
