"""Module containing rate laws for the dissolution and precipitation of minerals.

A mineral reaction proceeds through one or more mechanisms. The rate contribution of a
mechanism ``m`` reads

.. math::

    r_m = k_m(T) f_m \\, \\mathrm{sgn}(1 - \\Omega) |1 - \\Omega^{p_m}|^{q_m},
    \\quad
    k_m(T) = 10^{\\log k_m}
    \\exp\\left(-\\frac{E_{a,m}}{R}
    \\left(\\frac{1}{T} - \\frac{1}{T_{ref}}\\right)\\right),

where :math:`\\Omega = Q / K` is the saturation index of the reaction and :math:`f_m`
the product of its catalyst terms. The rate of the reaction is the sum of all
contributions times the reactive surface area of the mineral. It is positive for
undersaturated conditions (:math:`\\Omega < 1`), i.e. the reaction proceeds in forward
direction. Mineral reactions are hence written with the mineral as reactant, e.g.
``'Calcite = Ca++ + CO3--'``.

Rate constants are given in ``[mol / m^2 s]``, activation energies in ``[J / mol]``.

"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional, Sequence

from chemfield._core import P_REF, R_IDEAL_MOL, T_REF
from chemfield.ad import functions as af
from chemfield.core.reaction import RateFunction, Reaction
from chemfield.utils.array_operations import safe_sum
from chemfield.utils.errors import ChemicalModellingError

__all__ = ["MineralCatalyst", "MineralMechanism", "mineral_reaction_rate"]


@dataclass(frozen=True)
class MineralCatalyst:
    """A catalyst term of a mineral mechanism, the activity or partial pressure of a
    species raised to a power."""

    species: str
    """Name of the catalyzing species."""

    power: float
    """Exponent of the catalyst term."""

    quantity: Literal["activity", "pressure"] = "activity"
    """Catalyzing quantity. Partial pressures are in ``[bar]``."""

    def __post_init__(self) -> None:
        if self.quantity not in ("activity", "pressure"):
            raise ChemicalModellingError(
                f"Unknown catalyst quantity '{self.quantity}'."
            )


@dataclass(frozen=True)
class MineralMechanism:
    """A mechanism of a mineral reaction, e.g. acid, neutral or carbonate."""

    logk: float
    """Decimal logarithm of the rate constant at :data:`~chemfield._core.T_REF` in
    ``[mol / m^2 s]``."""

    Ea: float = 0.0
    """Arrhenius activation energy ``[J / mol]``."""

    p: float = 1.0
    """Empirical power of the saturation index."""

    q: float = 1.0
    """Empirical power of the affinity term."""

    catalysts: Sequence[MineralCatalyst] = field(default_factory=tuple)
    """Catalyst terms of the mechanism."""

    @property
    def kappa(self) -> float:
        """Rate constant at the reference temperature ``[mol / m^2 s]``."""
        return 10.0**self.logk

    def rate_constant(self, T: Any) -> Any:
        """Rate constant at temperature ``T`` ``[mol / m^2 s]``."""
        return self.kappa * af.exp(-self.Ea / R_IDEAL_MOL * (1.0 / T - 1.0 / T_REF))


def mineral_reaction_rate(
    reaction: Reaction,
    mechanisms: Sequence[MineralMechanism],
    mineral: Optional[str] = None,
    surface_area: Optional[float] = None,
    specific_surface_area: Optional[float] = None,
) -> RateFunction:
    """Build the rate function of a mineral reaction.

    The reactive surface area is either constant, or proportional to the mass of the
    mineral.

    Parameters:
        reaction: The mineral reaction.
        mechanisms: Mechanisms of the reaction.
        mineral: ``default=None``

            Name of the mineral species. Required with ``specific_surface_area``.
        surface_area: ``default=None``

            Constant reactive surface area ``[m^2]``.
        specific_surface_area: ``default=None``

            Reactive surface area per mass of mineral ``[m^2 / kg]``.

    Raises:
        ChemicalModellingError: If not exactly one of the surface area arguments is
            given, if the mineral is missing, or if a catalyst is unknown.

    Returns:
        A rate function ``(T, P, n, a) -> r`` to be passed to a reaction.

    """
    system = reaction.system
    if (surface_area is None) == (specific_surface_area is None):
        raise ChemicalModellingError(
            "Give either a surface area or a specific surface area."
        )
    if specific_surface_area is not None:
        if mineral is None:
            raise ChemicalModellingError("Specific surface area requires a mineral.")
        i_mineral = system.index_species(mineral)
        molar_mass = system.species[i_mineral].molar_mass

    # catalyst species and their phases, looked up once
    lookup = []
    for mechanism in mechanisms:
        terms = []
        for catalyst in mechanism.catalysts:
            i = system.index_species(catalyst.species)
            phase = system.indices_species_in_phase(system.index_phase_with_species(i))
            terms.append((catalyst, i, phase))
        lookup.append(terms)

    K_function = reaction.equilibrium_constant_function()

    def rate(T: float, P: float, n: Any, a: Any) -> Any:
        K = K_function(T, P)
        Omega = reaction.reaction_quotient(a) / K

        contributions = []
        for mechanism, terms in zip(mechanisms, lookup):
            factors = []
            for catalyst, i, phase in terms:
                if catalyst.quantity == "activity":
                    factors.append(a[i] ** catalyst.power)
                else:
                    partial_pressure = n[i] / af.sum(n[phase]) * (P / P_REF)
                    factors.append(partial_pressure**catalyst.power)
            affinity = 1.0 - Omega**mechanism.p
            term = (
                mechanism.rate_constant(T)
                * af.sign(affinity)
                * af.abs(affinity) ** mechanism.q
            )
            contributions.append(term * _prod(factors) if factors else term)

        r = safe_sum(contributions)
        if surface_area is not None:
            return r * surface_area
        return r * (specific_surface_area * molar_mass) * n[i_mineral]

    return rate


def _prod(factors: list) -> Any:
    result = factors[0]
    for f in factors[1:]:
        result = result * f
    return result
