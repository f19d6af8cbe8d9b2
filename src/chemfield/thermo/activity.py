"""Ideal activity models for phases.

Activities follow the ideal mixing rules. Solutions use the mole fraction as activity,
gases the partial pressure relative to :data:`~chemfield._core.P_REF`. A phase with a
single species has unit activity (pure phase).

"""

from __future__ import annotations

from typing import Any

import numpy as np

from chemfield._core import P_REF, R_IDEAL_MOL
from chemfield.ad import functions as af

__all__ = ["IdealSolution", "IdealGas"]


class IdealSolution:
    """Ideal solution of liquid or solid species, with activity equal to the mole
    fraction and molar volumes equal to the standard molar volumes."""

    def ln_activities(self, T: Any, P: Any, n: Any) -> Any:
        return af.log(n) - af.log(af.sum(n))

    def molar_volumes(self, T: Any, P: Any, standard_volumes: Any) -> Any:
        return standard_volumes

    def __repr__(self) -> str:
        return "IdealSolution()"


class IdealGas:
    """Ideal gas mixture, with activities given by the partial pressures relative to
    the reference pressure and molar volume ``R T / P``."""

    def ln_activities(self, T: Any, P: Any, n: Any) -> Any:
        return af.log(n) - af.log(af.sum(n)) + af.log(P / P_REF)

    def molar_volumes(self, T: Any, P: Any, standard_volumes: Any) -> Any:
        return R_IDEAL_MOL * T / P * np.ones(len(standard_volumes))

    def __repr__(self) -> str:
        return "IdealGas()"
