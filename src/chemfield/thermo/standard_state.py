"""Standard-state property models for single species.

The models are functions of temperature and pressure only. They accept plain numbers
or sensitivity values and return values of the same kind.

"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from chemfield._core import P_REF, T_REF

__all__ = ["ConstantStandardState", "LinearStandardState"]


@dataclass(frozen=True)
class LinearStandardState:
    """Standard-state model linearized around the reference state.

    The standard chemical potential reads

    .. math::

        \\mu^0(T, P) = G_0 - S_0 (T - T_{ref}) + V_0 (P - P_{ref}),

    and the standard molar volume is constant.

    """

    G0: float
    """Standard Gibbs energy of formation at the reference state ``[J / mol]``."""

    S0: float = 0.0
    """Standard molar entropy ``[J / K mol]``."""

    V0: float = 0.0
    """Standard molar volume ``[m^3 / mol]``."""

    def gibbs_energy(self, T: Any, P: Any) -> Any:
        return self.G0 - self.S0 * (T - T_REF) + self.V0 * (P - P_REF)

    def volume(self, T: Any, P: Any) -> Any:
        return self.V0 + 0.0 * T


@dataclass(frozen=True)
class ConstantStandardState:
    """Standard-state model with constant chemical potential and molar volume."""

    G0: float
    """Standard chemical potential ``[J / mol]``."""

    V0: float = 0.0
    """Standard molar volume ``[m^3 / mol]``."""

    def gibbs_energy(self, T: Any, P: Any) -> Any:
        return self.G0 + 0.0 * T

    def volume(self, T: Any, P: Any) -> Any:
        return self.V0 + 0.0 * T
