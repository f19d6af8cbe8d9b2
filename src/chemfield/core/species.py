"""Chemical species, elemental formulas and the interface to compound databases.

Species carry their elemental formula, electric charge, molar mass and a
standard-state model providing the standard chemical potential and molar volume.

Compound data can be loaded from third-party databases. Currently supported
(Python-) packages include

- chemicals

"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Optional

import chemicals

from chemfield.thermo.interfaces import StandardStateModel
from chemfield.utils.errors import ChemicalModellingError

__all__ = [
    "Species",
    "parse_formula",
    "ChemicalsDatabase",
    "load_species",
]

logger = logging.getLogger(__name__)

_CHARGE_PATTERN = re.compile(r"([+-])(\d*)$")


def parse_formula(formula: str) -> tuple[dict[str, float], float]:
    """Parse a chemical formula with an optional trailing charge.

    Supported charge notations are ``Ca+2``, ``Ca++``, ``CO3-2`` and ``Cl-``.

    Parameters:
        formula: A chemical formula such as ``'H2O'``, ``'HCO3-'`` or ``'Ca(OH)2'``.

    Raises:
        ChemicalModellingError: If the formula cannot be parsed.

    Returns:
        A 2-tuple containing the elemental formula (element symbol to number of atoms,
        in order of appearance) and the electric charge.

    """
    body = formula.strip()
    charge = 0.0

    # repeated signs, e.g. Ca++
    signs = re.search(r"([+-]+)$", body)
    if signs is not None and len(signs.group(1)) > 1:
        sign = 1.0 if signs.group(1)[0] == "+" else -1.0
        charge = sign * len(signs.group(1))
        body = body[: signs.start()]
    else:
        match = _CHARGE_PATTERN.search(body)
        if match is not None:
            sign = 1.0 if match.group(1) == "+" else -1.0
            charge = sign * float(match.group(2) or 1)
            body = body[: match.start()]

    try:
        atoms = chemicals.elements.nested_formula_parser(body)
    except (ValueError, KeyError, IndexError) as err:
        raise ChemicalModellingError(f"Unable to parse formula '{formula}'.") from err
    if not atoms and body:
        raise ChemicalModellingError(f"Unable to parse formula '{formula}'.")

    # keep the order in which elements appear in the formula
    symbols = re.findall(r"[A-Z][a-z]?", body)
    ordered: dict[str, float] = {}
    for symbol in symbols:
        if symbol in atoms and symbol not in ordered:
            ordered[symbol] = float(atoms[symbol])
    for symbol, count in atoms.items():
        if symbol not in ordered:
            ordered[symbol] = float(count)
    return ordered, charge


@dataclass(frozen=True)
class Species:
    """A basic data class for chemical species.

    Species are identified by their name inside a chemical system.

    """

    name: str
    """Name of the species, unique inside a chemical system."""

    formula: dict[str, float] = field(default_factory=dict)
    """Elemental formula: element symbols mapped to the number of atoms."""

    charge: float = 0.0
    """Electric charge of the species."""

    molar_mass: float = 0.0
    """Molar mass in ``[kg / mol]``."""

    standard_state: Optional[StandardStateModel] = field(
        default=None, compare=False, repr=False
    )
    """Model for the standard chemical potential and standard molar volume."""

    def __post_init__(self) -> None:
        for element, count in self.formula.items():
            if count < 0:
                raise ChemicalModellingError(
                    f"Negative number of atoms of '{element}' in species '{self.name}'."
                )
        if self.molar_mass == 0.0 and self.formula:
            try:
                mass = chemicals.elements.molecular_weight(self.formula) * 1e-3
            except (ValueError, KeyError):
                # formula with symbols which are not in the periodic table
                logger.debug(f"No molar mass computable for species '{self.name}'.")
            else:
                object.__setattr__(self, "molar_mass", mass)

    @classmethod
    def from_formula(
        cls,
        formula: str,
        name: Optional[str] = None,
        standard_state: Optional[StandardStateModel] = None,
    ) -> Species:
        """Create a species from its chemical formula, e.g. ``'HCO3-'``.

        The name defaults to the formula.

        """
        atoms, charge = parse_formula(formula)
        return cls(
            name=formula if name is None else name,
            formula=atoms,
            charge=charge,
            standard_state=standard_state,
        )

    def elements(self) -> list[str]:
        """Element symbols in the formula of this species."""
        return list(self.formula.keys())


class ChemicalsDatabase:
    """Compound database backed by the ``chemicals`` package.

    Names are passed directly to the package. There is no guarantee that the
    third-party database resolves a name to the intended compound.

    """

    def __init__(self) -> None:
        self._cache: dict[str, dict[str, float]] = {}

    def formula(self, name: str) -> dict[str, float]:
        """Elemental formula of the compound identified by ``name``.

        Raises:
            ChemicalModellingError: If the name cannot be resolved.

        """
        if name not in self._cache:
            try:
                cas = chemicals.CAS_from_any(name)
                metadata = chemicals.search_chemical(cas)
            except ValueError as err:
                raise ChemicalModellingError(
                    f"Compound '{name}' not found in chemicals database."
                ) from err
            atoms, _ = parse_formula(metadata.formula)
            logger.debug(f"Resolved compound '{name}' (CAS {cas}) as {atoms}.")
            self._cache[name] = atoms
        return dict(self._cache[name])

    def molar_mass(self, name: str) -> float:
        """Molar mass in ``[kg / mol]`` of the compound identified by ``name``."""
        try:
            return chemicals.MW(chemicals.CAS_from_any(name)) * 1e-3
        except ValueError as err:
            raise ChemicalModellingError(
                f"Compound '{name}' not found in chemicals database."
            ) from err


def load_species(
    names: list[str],
    standard_states: Optional[dict[str, StandardStateModel]] = None,
    package: str = "chemicals",
) -> list[Species]:
    """Creates species, if identifiable by ``name`` in ``package``.

    Parameters:
        names: A list of names or chemical formulae to look up the chemical species.
        standard_states: ``default=None``

            Standard-state models per species name.
        package: ``default='chemicals'``

            Name of one of the supported packages containing chemical databases.

    Raises:
        NotImplementedError: If an unsupported package is passed as argument.
        ChemicalModellingError: If a name cannot be resolved.

    Returns:
        A species per name.

    """
    if package != "chemicals":
        raise NotImplementedError(f"Unsupported compound database {package}.")

    database = ChemicalsDatabase()
    if standard_states is None:
        standard_states = {}

    species: list[Species] = []
    for name in names:
        species.append(
            Species(
                name=name,
                formula=database.formula(name),
                molar_mass=database.molar_mass(name),
                standard_state=standard_states.get(name, None),
            )
        )
    return species
