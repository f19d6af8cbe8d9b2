"""Capability interfaces of the thermodynamic models consumed by ChemField.

Thermodynamic property computations are external collaborators of the chemical system.
Any object implementing the respective protocol can be used.

Arguments ``T``, ``P`` and ``n`` of all methods are either plain numbers (arrays) or
:class:`~chemfield.ad.forward_mode.SensitivityArray` instances. In the latter case the
returned values carry the derivatives w.r.t. the same independent variables.

"""

from __future__ import annotations

from typing import Any, Protocol

__all__ = ["StandardStateModel", "ActivityModel", "CompoundDatabase"]


class StandardStateModel(Protocol):
    """Standard-state properties of a single species."""

    def gibbs_energy(self, T: Any, P: Any) -> Any:
        """Standard chemical potential ``[J / mol]`` at temperature ``T [K]`` and
        pressure ``P [Pa]``."""
        ...

    def volume(self, T: Any, P: Any) -> Any:
        """Standard molar volume ``[m^3 / mol]``."""
        ...


class ActivityModel(Protocol):
    """Activities and molar volumes of the species in a single phase."""

    def ln_activities(self, T: Any, P: Any, n: Any) -> Any:
        """Natural logarithm of the species activities in the phase, given the amounts
        ``n`` of the species in the phase.

        Must return a vector value of the same length as ``n``.

        """
        ...

    def molar_volumes(self, T: Any, P: Any, standard_volumes: Any) -> Any:
        """Partial molar volumes of the species in the phase ``[m^3 / mol]``, given
        their standard molar volumes."""
        ...


class CompoundDatabase(Protocol):
    """Resolves substance names to elemental formulas."""

    def formula(self, name: str) -> dict[str, float]:
        """Elemental formula of the substance. Must raise
        :class:`~chemfield.utils.errors.ChemicalModellingError` if the name is
        unknown."""
        ...
