"""Module containing chemical reactions, their equilibrium constants, reaction quotients
and rates, and systems of reactions.

A reaction is given by the species it involves and their stoichiometric coefficients,
with the convention that products have positive and reactants negative coefficients.
Its reaction quotient is

.. math::

    Q = \\prod_i a_i^{\\nu_i},

and its equilibrium constant

.. math::

    K(T, P) = \\exp\\left(-\\frac{\\sum_i \\nu_i \\mu^0_i(T, P)}{R T}\\right).

"""

from __future__ import annotations

import logging
import re
import warnings
from typing import Any, Callable, Optional, Sequence, Union

import numba
import numpy as np

import chemfield as cf
from chemfield._core import NUMBA_CACHE, NUMBA_FAST_MATH, R_IDEAL_MOL
from chemfield.ad import functions as af
from chemfield.ad.forward_mode import SensitivityArray, init_sensitivity_arrays
from chemfield.ad.utils import concatenate
from chemfield.utils.array_operations import safe_sum
from chemfield.utils.errors import ChemicalModellingError, UndefinedQuotientWarning

from .species import Species
from .system import ChemicalSystem

__all__ = [
    "RateFunction",
    "equilibrium_constant_function",
    "reaction_quotient",
    "Reaction",
    "ReactionSystem",
]

logger = logging.getLogger(__name__)

module_sections = ["kinetics"]

RateFunction = Callable[[float, float, SensitivityArray, SensitivityArray], Any]
"""Type alias for rate functions ``(T, P, n, a) -> r``.

``n`` and ``a`` are the amounts and activities of all species, given as vector
sensitivity values differentiated w.r.t. the species amounts. The rate ``r``
``[mol / s]`` is returned as a scalar sensitivity value or a plain number.

"""


@numba.njit(
    "Tuple((float64, float64[:]))(float64[:], float64[:,:], int64[:], float64[:])",
    cache=NUMBA_CACHE,
    fastmath=NUMBA_FAST_MATH,
)
def _reaction_quotient(
    a: np.ndarray, da: np.ndarray, indices: np.ndarray, nu: np.ndarray
) -> tuple[float, np.ndarray]:
    """NJIT-ed computation of a reaction quotient and its gradient.

    The value is computed in a first pass, the gradient in a second pass using
    :math:`\\nabla Q = Q \\sum_i \\frac{\\nu_i}{a_i} \\nabla a_i`.
    Species with zero activity and positive coefficient are skipped in the second pass.

    Parameters:
        a: Activities of all species.
        da: ``shape=(num_species, num_vars)``

            Derivatives of the activities.
        indices: Indices of the reacting species.
        nu: Stoichiometric coefficients of the reacting species.

    """
    Q = 1.0
    for k in range(indices.shape[0]):
        Q *= a[indices[k]] ** nu[k]

    grad = np.zeros(da.shape[1])
    for k in range(indices.shape[0]):
        i = indices[k]
        if a[i] != 0.0:
            grad += nu[k] / a[i] * da[i]
    return Q, Q * grad


def reaction_quotient(
    a: Union[SensitivityArray, np.ndarray],
    indices: np.ndarray,
    stoichiometries: np.ndarray,
) -> SensitivityArray:
    """Evaluate a reaction quotient.

    The quotient is undefined if a species with negative coefficient has zero activity
    or if any reacting species has negative activity. In this case the value and
    gradient are ``nan`` and an :class:`UndefinedQuotientWarning` is emitted.

    Parameters:
        a: Activities of all species. If given as sensitivity value, the quotient is
            differentiated w.r.t. the same variables. Otherwise w.r.t. the activities.
        indices: Indices of the reacting species in ``a``.
        stoichiometries: Coefficients of the reacting species.

    Returns:
        The reaction quotient as scalar sensitivity value.

    """
    if isinstance(a, SensitivityArray):
        val = np.asarray(a.val, dtype=float)
        jac = a.full_jac(0)
    else:
        val = np.asarray(a, dtype=float)
        jac = np.eye(val.size)

    indices = np.asarray(indices, dtype=np.int64)
    nu = np.asarray(stoichiometries, dtype=float)

    a_r = val[indices]
    undefined = ((a_r == 0.0) & (nu < 0.0)) | ((a_r < 0.0) & (nu != 0.0))
    if np.any(undefined):
        warnings.warn(
            "Reaction quotient undefined for activities "
            + f"{a_r[undefined].tolist()} with coefficients {nu[undefined].tolist()}.",
            UndefinedQuotientWarning,
        )
        return SensitivityArray(np.nan, np.full(jac.shape[1], np.nan))

    Q, dQ = _reaction_quotient(
        val, np.ascontiguousarray(jac, dtype=float), indices.copy(), nu.copy()
    )
    return SensitivityArray(Q, dQ)


def equilibrium_constant_function(
    system: ChemicalSystem, indices: Sequence[int], stoichiometries: Sequence[float]
) -> Callable[[Any, Any], Any]:
    """Build the equilibrium constant of a reaction as a function of ``(T, P)``.

    The standard-state models of the reacting species are looked up once.

    Raises:
        ChemicalModellingError: If a reacting species has no standard-state model.

    """
    models = []
    for i in indices:
        species = system.species[i]
        if species.standard_state is None:
            raise ChemicalModellingError(
                f"Species '{species.name}' has no standard-state model."
            )
        models.append(species.standard_state)
    nu = [float(v) for v in stoichiometries]

    def equilibrium_constant(T: Any, P: Any) -> Any:
        dG0 = safe_sum([v * m.gibbs_energy(T, P) for v, m in zip(nu, models)])
        return af.exp(-dG0 / (R_IDEAL_MOL * T))

    return equilibrium_constant


_EQUATION_TERM = re.compile(r"^(?:(\d+(?:\.\d*)?)\*)?(.+)$")


def _parse_equation(equation: str) -> dict[str, float]:
    """Parse an equation like ``'CaCO3 = Ca++ + 2*HCO3-'``.

    Left-hand side species are reactants (negative coefficients). Terms are separated
    by `` + ``, with optional coefficients written as ``2*name``.

    """
    sides = equation.split("=")
    if len(sides) != 2:
        raise ChemicalModellingError(f"Invalid reaction equation '{equation}'.")
    coefficients: dict[str, float] = {}
    for sign, side in zip((-1.0, 1.0), sides):
        for token in side.split():
            if token == "+":
                continue
            match = _EQUATION_TERM.match(token)
            coeff = float(match.group(1)) if match.group(1) else 1.0
            name = match.group(2)
            coefficients[name] = coefficients.get(name, 0.0) + sign * coeff
    return coefficients


def _term(coefficient: float, name: str) -> str:
    return name if coefficient == 1.0 else f"{coefficient:g}*{name}"


class Reaction:
    """A chemical reaction among species of a chemical system.

    Parameters:
        system: The chemical system.
        species: Reacting species given by name, index or :class:`Species`.
        stoichiometries: Stoichiometric coefficients, positive for products.
        rate: ``default=None``

            Rate function, see :data:`RateFunction`. Required for kinetic reactions.
        name: ``default=None``

            Name of the reaction. Defaults to a representation of the equation.
        equilibrium_constant: ``default=None``

            Function ``(T, P) -> K`` replacing the equilibrium constant computed from
            the standard chemical potentials.

    Raises:
        ChemicalModellingError: If the numbers of species and coefficients differ, or
            if a species is unknown or given twice.

    """

    def __init__(
        self,
        system: ChemicalSystem,
        species: Sequence[Union[str, int, Species]],
        stoichiometries: Sequence[float],
        rate: Optional[RateFunction] = None,
        name: Optional[str] = None,
        equilibrium_constant: Optional[Callable[[Any, Any], Any]] = None,
    ) -> None:
        if len(species) != len(stoichiometries):
            raise ChemicalModellingError(
                f"Reaction with {len(species)} species and {len(stoichiometries)} "
                + "stoichiometric coefficients."
            )

        indices = []
        for s in species:
            if isinstance(s, Species):
                indices.append(system.index_species(s.name))
            elif isinstance(s, str):
                indices.append(system.index_species(s))
            else:
                indices.append(int(s))
                if not 0 <= indices[-1] < system.num_species:
                    raise ChemicalModellingError(f"Species index {s} out of range.")
        if len(set(indices)) != len(indices):
            raise ChemicalModellingError("Species appear more than once in reaction.")

        self._system = system
        self._indices = np.array(indices, dtype=np.int64)
        self._indices.flags.writeable = False
        self._nu = np.array(stoichiometries, dtype=float)
        self._nu.flags.writeable = False
        self._rate = rate
        self._K = equilibrium_constant

        names = [system.species[i].name for i in self._indices]
        self._names = names
        if name is None:
            lhs = [_term(-v, s) for s, v in zip(names, self._nu) if v < 0]
            rhs = [_term(v, s) for s, v in zip(names, self._nu) if v > 0]
            name = " + ".join(lhs) + " = " + " + ".join(rhs)
        self.name: str = name
        """Name of the reaction."""

    @classmethod
    def from_equation(
        cls,
        system: ChemicalSystem,
        equation: Union[str, dict[str, float]],
        rate: Optional[RateFunction] = None,
        name: Optional[str] = None,
    ) -> Reaction:
        """Create a reaction from a mapping of species names to coefficients, or from an
        equation string like ``'Calcite = Ca++ + CO3--'`` (reactants on the left)."""
        if isinstance(equation, str):
            coefficients = _parse_equation(equation)
            if name is None:
                name = equation
        else:
            coefficients = dict(equation)
        return cls(
            system,
            list(coefficients.keys()),
            list(coefficients.values()),
            rate=rate,
            name=name,
        )

    def __repr__(self) -> str:
        return f"Reaction({self.name})"

    @property
    def system(self) -> ChemicalSystem:
        return self._system

    @property
    def indices(self) -> np.ndarray:
        """Indices of the reacting species in the chemical system."""
        return self._indices

    @property
    def stoichiometries(self) -> np.ndarray:
        return self._nu

    @property
    def species_names(self) -> list[str]:
        return list(self._names)

    @property
    def num_species(self) -> int:
        """Number of reacting species."""
        return self._indices.size

    @property
    def has_rate(self) -> bool:
        return self._rate is not None

    def contains_species(self, name: str) -> bool:
        return name in self._names

    def index_species(self, name: str) -> int:
        """Local index of a species in this reaction, or :attr:`num_species` if the
        species does not participate."""
        try:
            return self._names.index(name)
        except ValueError:
            return self.num_species

    def stoichiometry(self, name: str) -> float:
        """Stoichiometric coefficient of a species, 0 if it does not participate."""
        i = self.index_species(name)
        return float(self._nu[i]) if i < self.num_species else 0.0

    def stoichiometric_vector(self) -> np.ndarray:
        """Coefficients of the reaction for all species of the system."""
        vec = np.zeros(self._system.num_species)
        vec[self._indices] = self._nu
        return vec

    def equilibrium_constant_function(self) -> Callable[[Any, Any], Any]:
        """The function ``(T, P) -> K``, built on first request."""
        if self._K is None:
            self._K = equilibrium_constant_function(
                self._system, self._indices, self._nu
            )
        return self._K

    def equilibrium_constant(self, T: Any, P: Any) -> SensitivityArray:
        """Equilibrium constant with its derivatives w.r.t. ``T`` and ``P``.

        If ``T`` and ``P`` are plain numbers, the gradient of the returned value is
        ``[dK/dT, dK/dP]``. Otherwise the derivatives of ``T`` and ``P`` are propagated.

        """
        if not isinstance(T, SensitivityArray) and not isinstance(P, SensitivityArray):
            T, P = init_sensitivity_arrays([float(T), float(P)])
        K = self.equilibrium_constant_function()(T, P)
        if not isinstance(K, SensitivityArray):
            K = SensitivityArray(float(K), np.zeros(2))
        return K

    def ln_equilibrium_constant(self, T: Any, P: Any) -> SensitivityArray:
        return af.log(self.equilibrium_constant(T, P))

    @cf.time_logger(sections=module_sections)
    def reaction_quotient(
        self, a: Union[SensitivityArray, np.ndarray]
    ) -> SensitivityArray:
        """Reaction quotient for activities ``a`` of all species of the system.

        See :func:`reaction_quotient`.

        """
        return reaction_quotient(a, self._indices, self._nu)

    def rate(self, T: float, P: float, n: Any, a: Any) -> Any:
        """Evaluate the rate function of the reaction.

        Raises:
            ChemicalModellingError: If the reaction has no rate function.

        """
        if self._rate is None:
            raise ChemicalModellingError(f"Reaction '{self.name}' has no rate.")
        return self._rate(T, P, n, a)


class ReactionSystem:
    """A chemical system together with a sequence of reactions.

    Parameters:
        system: The chemical system.
        reactions: Reactions among species of ``system``.

    Raises:
        ChemicalModellingError: If a reaction belongs to another chemical system.

    """

    def __init__(self, system: ChemicalSystem, reactions: Sequence[Reaction]) -> None:
        for reaction in reactions:
            if reaction.system is not system:
                raise ChemicalModellingError(
                    f"Reaction '{reaction.name}' belongs to another chemical system."
                )
        self._system = system
        self._reactions = tuple(reactions)
        S = np.zeros((len(self._reactions), system.num_species))
        for j, reaction in enumerate(self._reactions):
            S[j] = reaction.stoichiometric_vector()
        S.flags.writeable = False
        self._stoichiometric_matrix = S

    @property
    def system(self) -> ChemicalSystem:
        return self._system

    @property
    def reactions(self) -> tuple[Reaction, ...]:
        return self._reactions

    @property
    def num_reactions(self) -> int:
        return len(self._reactions)

    @property
    def stoichiometric_matrix(self) -> np.ndarray:
        """Read-only ``(num_reactions, num_species)`` matrix of coefficients."""
        return self._stoichiometric_matrix

    def index_reaction(self, name: str) -> int:
        for j, reaction in enumerate(self._reactions):
            if reaction.name == name:
                return j
        raise ChemicalModellingError(f"Unknown reaction '{name}'.")

    def equilibrium_constants(self, T: Any, P: Any) -> SensitivityArray:
        """Equilibrium constants of all reactions with derivatives w.r.t.
        ``(T, P)``."""
        return concatenate([r.equilibrium_constant(T, P) for r in self._reactions])

    def reaction_quotients(self, a: Any) -> SensitivityArray:
        return concatenate([r.reaction_quotient(a) for r in self._reactions])

    @cf.time_logger(sections=module_sections)
    def rates(self, T: float, P: float, n: np.ndarray) -> SensitivityArray:
        """Rates of all reactions ``[mol / s]`` with derivatives w.r.t. the amounts of
        all species, ``jac.shape == (num_reactions, num_species)``."""
        (n_ad,) = init_sensitivity_arrays([np.asarray(n, dtype=float)])
        a_ad = self._system.activities(T, P, n_ad)
        N = self._system.num_species
        rates = []
        for reaction in self._reactions:
            r = reaction.rate(T, P, n_ad, a_ad)
            if not isinstance(r, SensitivityArray):
                r = SensitivityArray(float(r), np.zeros(N))
            elif r.num_vars == 0:
                r = SensitivityArray(r.val, r.full_jac(N).reshape(-1))
            rates.append(r)
        if len(rates) == 0:
            return SensitivityArray(np.zeros(0), np.zeros((0, N)))
        return concatenate(rates)
