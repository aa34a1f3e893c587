"""Structure modifiers. Each modifier has a mode, chosen from a fixed set
of modes of which a structure dependent subset is applicable, and an
:meth:`apply` method returning a new
:class:`CrystalStructure <.crystal.CrystalStructure>`; the structure
passed in is never modified.

==========================  ===================================================
Modifier                    Modes
==========================  ===================================================
:class:`HydrogenFilter`     ``none``, ``constant``, ``anisotropic``
:class:`DisorderFilter`     ``all``, ``group1``, ``group2``
:class:`SymmetryGrower`     ``bonds-{yes,no,none}-hbonds-{yes,no,none}``
:class:`AtomLabelFilter`    ``on``, ``off``
:class:`BondGenerator`      ``keep``, ``add``, ``replace``, ``create``, ``ignore``
:class:`IsolatedHydrogenFixer`  ``on``, ``off``
==========================  ===================================================
"""

from __future__ import annotations

import abc
import warnings
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

import numpy as np
import numba
from scipy.spatial.distance import pdist, squareform

from .crystal import CrystalStructure
from .atom import Atom, Bond
from .adp import UAnisoADP
from .utils import infer_element_from_label
from .globals_ import (
    ELEMENT_PROPERTIES,
    BOND_TOLERANCE_FACTOR,
    MIN_BOND_DISTANCE,
    ISOLATED_H_MAX_BOND_DISTANCE,
)
from .errors import InvalidModeError, MissingKeyError, StructureError
from ._types import FloatArray

__all__ = [
    "BaseFilter",
    "HydrogenFilter",
    "DisorderFilter",
    "SymmetryGrower",
    "AtomLabelFilter",
    "BondGenerator",
    "IsolatedHydrogenFixer",
]


class BaseFilter(abc.ABC):
    """Base class of the structure modifiers. Subclasses set ``MODES``,
    ``DEFAULT_MODE`` and ``PREFERRED_FALLBACK_ORDER`` and implement
    :meth:`apply` and :meth:`get_applicable_modes`.

    Parameters
    ----------
    mode : str, optional
        Initial mode. Case is ignored and underscores are read as
        hyphens. The class default is used if not given.

    Raises
    ------
    InvalidModeError
        If ``mode`` is not one of ``MODES``.
    """

    MODES: Tuple[str, ...] = ()
    DEFAULT_MODE: str = ""
    PREFERRED_FALLBACK_ORDER: Tuple[str, ...] = ()

    def __init__(self, mode: Optional[str] = None):
        self._mode = None
        self.mode = self.DEFAULT_MODE if mode is None else mode

    @property
    def filter_name(self) -> str:
        return self.__class__.__name__

    @property
    def requires_camera_update(self) -> bool:
        """Whether applying the modifier can change the extent of the
        structure."""
        return False

    @property
    def mode(self) -> str:
        return self._mode

    @mode.setter
    def mode(self, value: str):
        used_mode = str(value).lower().replace("_", "-")
        if used_mode not in self.MODES:
            raise InvalidModeError(
                f'Invalid {self.filter_name} mode: "{value}". '
                f"Valid modes are: {', '.join(self.MODES)}"
            )
        self._mode = used_mode

    def ensure_valid_mode(self, structure: CrystalStructure) -> None:
        """Switch to an applicable mode if the current one is not. The
        first applicable mode of ``PREFERRED_FALLBACK_ORDER`` is taken,
        else the first applicable mode."""

        valid_modes = self.get_applicable_modes(structure)
        if self._mode in valid_modes:
            return
        new_mode = next(
            (m for m in self.PREFERRED_FALLBACK_ORDER if m in valid_modes),
            valid_modes[0]
        )
        warnings.warn(
            f"{self.filter_name} mode {self._mode} is not applicable to the "
            f"structure, switching to {new_mode}"
        )
        self._mode = new_mode

    def cycle_mode(self, structure: CrystalStructure) -> str:
        """Advance to the next applicable mode and return it."""
        modes = self.get_applicable_modes(structure)
        self.ensure_valid_mode(structure)
        index = modes.index(self._mode)
        self._mode = modes[(index + 1) % len(modes)]
        return self._mode

    @abc.abstractmethod
    def apply(self, structure: CrystalStructure) -> CrystalStructure:
        pass

    @abc.abstractmethod
    def get_applicable_modes(self, structure: CrystalStructure) -> List[str]:
        pass

    def __repr__(self):
        return f"{self.__class__.__name__}(mode={self._mode!r})"


def _is_hydrogen(atom: Atom) -> bool:
    return atom.atom_type == "H"


class HydrogenFilter(BaseFilter):
    """Remove hydrogen atoms (``none``), drop their displacement
    parameters (``constant``) or keep them as they are
    (``anisotropic``)."""

    NONE = "none"
    CONSTANT = "constant"
    ANISOTROPIC = "anisotropic"
    MODES = (NONE, CONSTANT, ANISOTROPIC)
    DEFAULT_MODE = NONE
    PREFERRED_FALLBACK_ORDER = (ANISOTROPIC, CONSTANT, NONE)

    def apply(self, structure: CrystalStructure) -> CrystalStructure:
        self.ensure_valid_mode(structure)

        atoms = []
        for atom in structure.atoms:
            if _is_hydrogen(atom) and self.mode == self.NONE:
                continue
            adp = None if _is_hydrogen(atom) and self.mode == self.CONSTANT else atom.adp
            atoms.append(Atom(atom.label, atom.atom_type, atom.position, adp, atom.disorder_group))

        if self.mode == self.NONE:
            hydrogens = {a.label for a in structure.atoms if _is_hydrogen(a)}
            bonds = [
                b for b in structure.bonds
                if b.atom1_label not in hydrogens and b.atom2_label not in hydrogens
            ]
            hbonds = []
        else:
            bonds = list(structure.bonds)
            hbonds = list(structure.hbonds)

        return CrystalStructure(structure.cell, atoms, bonds, hbonds, structure.symmetry)

    def get_applicable_modes(self, structure: CrystalStructure) -> List[str]:
        modes = [self.NONE]
        hydrogens = [atom for atom in structure.atoms if _is_hydrogen(atom)]
        if not hydrogens:
            return modes
        modes.append(self.CONSTANT)
        if any(isinstance(atom.adp, UAnisoADP) for atom in hydrogens):
            modes.append(self.ANISOTROPIC)
        return modes


class DisorderFilter(BaseFilter):
    """Show all atoms or only one of the disorder groups. Atoms without
    disorder (group 0) are always kept. ``group1`` removes groups above
    1, ``group2`` removes group 1."""

    ALL = "all"
    GROUP1 = "group1"
    GROUP2 = "group2"
    MODES = (ALL, GROUP1, GROUP2)
    DEFAULT_MODE = ALL
    PREFERRED_FALLBACK_ORDER = (ALL, GROUP1, GROUP2)

    def _excluded(self, disorder_group: int) -> bool:
        if self.mode == self.GROUP1:
            return disorder_group > 1
        if self.mode == self.GROUP2:
            return disorder_group == 1
        return False

    def apply(self, structure: CrystalStructure) -> CrystalStructure:
        self.ensure_valid_mode(structure)

        excluded = {
            atom.label for atom in structure.atoms
            if self._excluded(atom.disorder_group)
        }
        atoms = [atom for atom in structure.atoms if atom.label not in excluded]
        bonds = [
            b for b in structure.bonds
            if b.atom1_label not in excluded and b.atom2_label not in excluded
        ]
        hbonds = [
            hb for hb in structure.hbonds
            if not {hb.donor_atom_label, hb.hydrogen_atom_label, hb.acceptor_atom_label} & excluded
        ]
        return CrystalStructure(structure.cell, atoms, bonds, hbonds, structure.symmetry)

    def get_applicable_modes(self, structure: CrystalStructure) -> List[str]:
        modes = [self.ALL]
        groups = {atom.disorder_group for atom in structure.atoms}
        if 1 in groups:
            modes.append(self.GROUP1)
        if any(group > 1 for group in groups):
            modes.append(self.GROUP2)
        return modes


class SymmetryGrower(BaseFilter):
    """Grow the structure along bonds and hydrogen bonds to atoms at
    symmetry equivalent positions.

    The mode ``bonds-<b>-hbonds-<h>`` states for bonds and hydrogen bonds
    separately whether the connected groups at the other end of the
    symmetry bonds are grown (``yes``), not grown (``no``), or whether
    there are no such bonds (``none``). Grown atoms are labelled
    ``label@code``, e.g. ``C1@2_655``.
    """

    MODES = tuple(
        f"bonds-{b}-hbonds-{h}"
        for b in ("yes", "no", "none") for h in ("yes", "no", "none")
    )
    DEFAULT_MODE = "bonds-no-hbonds-no"
    PREFERRED_FALLBACK_ORDER = (
        "bonds-no-hbonds-no",
        "bonds-no-hbonds-none",
        "bonds-none-hbonds-no",
    )

    @property
    def requires_camera_update(self) -> bool:
        return True

    @staticmethod
    def combine_sym_op_label(atom_label: str, sym_op: Optional[str]) -> str:
        """``label@sym_op``, or the label itself for no symmetry
        (``None``, empty or ``.``)."""
        if not sym_op or sym_op == ".":
            return atom_label
        return f"{atom_label}@{sym_op}"

    @staticmethod
    def find_growable_atoms(
            structure: CrystalStructure
    ) -> Tuple[List[Tuple[str, str]], List[Tuple[str, str]]]:
        """(label, symmetry code) pairs of the atoms reached through
        bonds and through hydrogen bonds with symmetry."""

        bond_atoms = [
            (b.atom2_label, b.atom2_site_symmetry) for b in structure.bonds
            if b.atom2_site_symmetry and b.atom2_site_symmetry != "."
        ]
        hbond_atoms = [
            (hb.acceptor_atom_label, hb.acceptor_atom_symmetry) for hb in structure.hbonds
            if hb.acceptor_atom_symmetry and hb.acceptor_atom_symmetry != "."
        ]
        return bond_atoms, hbond_atoms

    def _grow_atoms(
            self,
            structure: CrystalStructure,
            atoms_to_grow: Iterable[Tuple[str, str]],
            growth: _Growth
    ) -> None:
        combine = self.combine_sym_op_label
        for atom_label, sym_op in atoms_to_grow:
            if combine(atom_label, sym_op) in growth.grown_labels:
                continue

            group = next(
                (g for g in structure.connected_groups
                 if any(atom.label == atom_label for atom in g.atoms)),
                None
            )
            if group is None:
                raise StructureError(
                    f"Atom {atom_label} is not in any group. Typo or "
                    "structure.recalculate_connected_groups()?"
                )

            new_atoms = structure.symmetry.apply_symmetry(sym_op, group.atoms, structure.cell)
            for atom in new_atoms:
                atom.label = combine(atom.label, sym_op)
                growth.grown_labels.add(atom.label)
                growth.add_atom(atom)

            for bond in group.bonds:
                if bond.atom2_site_symmetry != ".":
                    continue
                growth.bonds.append(bond._replace(
                    atom1_label=combine(bond.atom1_label, sym_op),
                    atom2_label=combine(bond.atom2_label, sym_op),
                ))

            for hbond in group.hbonds:
                if hbond.acceptor_atom_symmetry != ".":
                    continue
                growth.hbonds.append(hbond._replace(
                    donor_atom_label=combine(hbond.donor_atom_label, sym_op),
                    hydrogen_atom_label=combine(hbond.hydrogen_atom_label, sym_op),
                    acceptor_atom_label=combine(hbond.acceptor_atom_label, sym_op),
                ))

    def apply(self, structure: CrystalStructure) -> CrystalStructure:
        self.ensure_valid_mode(structure)
        combine = self.combine_sym_op_label

        bond_atoms, hbond_atoms = self.find_growable_atoms(structure)
        growth = _Growth(structure)

        if self.mode.startswith("bonds-yes"):
            self._grow_atoms(structure, bond_atoms, growth)
        if self.mode.endswith("hbonds-yes"):
            self._grow_atoms(structure, hbond_atoms, growth)

        for bond in structure.bonds:
            if bond.atom2_site_symmetry == ".":
                continue
            target = combine(bond.atom2_label, bond.atom2_site_symmetry)
            if target in growth.labels:
                growth.bonds.append(bond._replace(atom2_label=target, atom2_site_symmetry="."))

        for hbond in structure.hbonds:
            if hbond.acceptor_atom_symmetry == ".":
                continue
            target = combine(hbond.acceptor_atom_label, hbond.acceptor_atom_symmetry)
            if target in growth.labels:
                growth.hbonds.append(
                    hbond._replace(acceptor_atom_label=target, acceptor_atom_symmetry=".")
                )

        hbonds = [
            hb for hb in growth.hbonds
            if hb.donor_atom_label in growth.labels
            and hb.hydrogen_atom_label in growth.labels
            and hb.acceptor_atom_label in growth.labels
        ]

        return CrystalStructure(
            structure.cell, growth.atoms, growth.bonds, hbonds, structure.symmetry
        )

    def get_applicable_modes(self, structure: CrystalStructure) -> List[str]:
        bond_atoms, hbond_atoms = self.find_growable_atoms(structure)
        if not bond_atoms and not hbond_atoms:
            return ["bonds-none-hbonds-none"]
        if not bond_atoms:
            return ["bonds-none-hbonds-yes", "bonds-none-hbonds-no"]
        if not hbond_atoms:
            return ["bonds-yes-hbonds-none", "bonds-no-hbonds-none"]
        return [
            "bonds-yes-hbonds-yes",
            "bonds-yes-hbonds-no",
            "bonds-no-hbonds-yes",
            "bonds-no-hbonds-no",
        ]


class _Growth:
    """Atoms, bonds and hydrogen bonds collected while growing a
    structure."""

    def __init__(self, structure: CrystalStructure):
        self.atoms = list(structure.atoms)
        self.bonds = list(structure.bonds)
        self.hbonds = list(structure.hbonds)
        self.labels = {atom.label for atom in structure.atoms}
        self.grown_labels: Set[str] = set()

    def add_atom(self, atom: Atom) -> None:
        self.atoms.append(atom)
        self.labels.add(atom.label)


class AtomLabelFilter(BaseFilter):
    """Remove atoms by label, together with their bonds and hydrogen
    bonds, when the mode is ``on``.

    Parameters
    ----------
    filtered_labels : list of str or str, optional
        Labels to remove, as a list or a comma separated string. An
        entry ``start>end`` removes the atoms from ``start`` to ``end``
        (both included) in the order of the structure's atoms.
    mode : str, default ``off``
        Initial mode.
    """

    ON = "on"
    OFF = "off"
    MODES = (ON, OFF)
    DEFAULT_MODE = OFF

    def __init__(
            self,
            filtered_labels: Union[str, Sequence[str], None] = None,
            mode: Optional[str] = None
    ):
        super().__init__(mode)
        self.set_filtered_labels(filtered_labels if filtered_labels is not None else [])

    @property
    def requires_camera_update(self) -> bool:
        return True

    def set_filtered_labels(self, labels: Union[str, Sequence[str]]) -> None:
        if isinstance(labels, str):
            labels = [label.strip() for label in labels.split(",")]
        self.filtered_labels = [label for label in labels if label]

    @staticmethod
    def _parse_range(expression: str, all_labels: List[str]) -> List[str]:
        start, _, end = (part.strip() for part in expression.partition(">"))
        if not start or not end:
            warnings.warn(f"Invalid range expression: {expression}")
            return []
        if start not in all_labels:
            raise MissingKeyError(f"Range filtering included unknown start label: {start}")
        if end not in all_labels:
            raise MissingKeyError(f"Range filtering included unknown end label: {end}")
        return all_labels[all_labels.index(start):all_labels.index(end) + 1]

    def _expand_ranges(self, structure: CrystalStructure) -> Set[str]:
        all_labels = [atom.label for atom in structure.atoms]
        labels = set()
        for label in self.filtered_labels:
            if ">" in label and label not in all_labels:
                labels.update(self._parse_range(label, all_labels))
            else:
                labels.add(label)
        return labels

    def apply(self, structure: CrystalStructure) -> CrystalStructure:
        if self.mode == self.OFF:
            return structure

        removed = self._expand_ranges(structure)
        atoms = [atom for atom in structure.atoms if atom.label not in removed]
        bonds = [
            b for b in structure.bonds
            if b.atom1_label not in removed and b.atom2_label not in removed
        ]
        hbonds = [
            hb for hb in structure.hbonds
            if not {hb.donor_atom_label, hb.hydrogen_atom_label, hb.acceptor_atom_label} & removed
        ]
        return CrystalStructure(structure.cell, atoms, bonds, hbonds, structure.symmetry)

    def get_applicable_modes(self, structure: CrystalStructure) -> List[str]:
        return list(self.MODES)


@numba.njit(cache=True, fastmath=True)
def _bonded_pairs(dm, max_dm, is_h, has_bond, min_distance):
    """Index pairs i < j with ``min_distance < dm[i, j] <= max_dm[i, j]``.
    Pairs including a hydrogen are skipped if either atom is already
    bonded."""

    n = dm.shape[0]
    pairs = []
    for i in range(n):
        for j in range(i + 1, n):
            if (is_h[i] or is_h[j]) and (has_bond[i] or has_bond[j]):
                continue
            d = dm[i, j]
            if d > min_distance and d <= max_dm[i, j]:
                pairs.append((i, j))
    return pairs


def _cart_coords(structure: CrystalStructure, atoms: Sequence[Atom]) -> FloatArray:
    return np.array(
        [atom.position.to_cartesian(structure.cell).coords for atom in atoms],
        dtype=np.float64
    ).reshape((-1, 3))


class BondGenerator(BaseFilter):
    """Generate bonds from interatomic distances. Two atoms are bonded
    if their distance is at most the sum of their radii times
    ``tolerance_factor``.

    Modes ``keep``, ``add`` and ``replace`` apply to structures with
    bonds: keep them, add generated bonds, or use only generated ones.
    For structures without bonds ``create`` generates bonds and
    ``ignore`` leaves the structure without.

    Parameters
    ----------
    element_properties : dict, optional
        Element symbol to properties, each with a ``radius`` in Å.
        Defaults to the bundled element table.
    tolerance_factor : float, default 1.3
        Factor applied to the sum of radii.
    mode : str, default ``keep``
        Initial mode.
    """

    KEEP = "keep"
    ADD = "add"
    REPLACE = "replace"
    CREATE = "create"
    IGNORE = "ignore"
    MODES = (KEEP, ADD, REPLACE, CREATE, IGNORE)
    DEFAULT_MODE = KEEP
    PREFERRED_FALLBACK_ORDER = (KEEP, ADD, REPLACE, CREATE, IGNORE)

    def __init__(
            self,
            element_properties: Optional[Dict[str, dict]] = None,
            tolerance_factor: float = BOND_TOLERANCE_FACTOR,
            mode: Optional[str] = None
    ):
        super().__init__(mode)
        if element_properties is None:
            element_properties = ELEMENT_PROPERTIES
        self.element_properties = element_properties
        self.tolerance_factor = tolerance_factor

    def _radius(self, atom_type: str) -> float:
        element = atom_type
        if element not in self.element_properties:
            try:
                element = infer_element_from_label(atom_type)
            except ValueError:
                raise MissingKeyError(f"Missing radius for element {atom_type}")
        radius = self.element_properties.get(element, {}).get("radius")
        if not radius:
            raise MissingKeyError(f"Missing radius for element {element}")
        return radius

    def get_max_bond_distance(self, element1: str, element2: str) -> float:
        return (self._radius(element1) + self._radius(element2)) * self.tolerance_factor

    def generate_bonds(self, structure: CrystalStructure) -> List[Bond]:
        """Bonds between atoms closer than the sum of their radii times
        the tolerance factor, without standard uncertainties.

        Raises
        ------
        MissingKeyError
            If an atom's element has no radius.
        """

        atoms = structure.atoms
        if len(atoms) < 2:
            return []

        radii = np.array([self._radius(atom.atom_type) for atom in atoms], dtype=np.float64)
        dm = squareform(pdist(_cart_coords(structure, atoms)))
        max_dm = np.add.outer(radii, radii) * self.tolerance_factor

        bonded = set()
        for bond in structure.bonds:
            bonded.add(bond.atom1_label)
            bonded.add(bond.atom2_label)
        is_h = np.array([_is_hydrogen(atom) for atom in atoms], dtype=np.bool_)
        has_bond = np.array([atom.label in bonded for atom in atoms], dtype=np.bool_)

        pairs = _bonded_pairs(dm, max_dm, is_h, has_bond, MIN_BOND_DISTANCE)
        return [
            Bond(atoms[i].label, atoms[j].label, float(dm[i, j]), None, ".")
            for i, j in pairs
        ]

    def apply(self, structure: CrystalStructure) -> CrystalStructure:
        self.ensure_valid_mode(structure)

        if self.mode in (self.KEEP, self.IGNORE):
            return structure
        if self.mode == self.ADD:
            bonds = list(structure.bonds) + self.generate_bonds(structure)
        else:
            bonds = self.generate_bonds(structure)

        return CrystalStructure(
            structure.cell, structure.atoms, bonds, structure.hbonds, structure.symmetry
        )

    def get_applicable_modes(self, structure: CrystalStructure) -> List[str]:
        if structure.bonds:
            return [self.KEEP, self.ADD, self.REPLACE]
        return [self.CREATE, self.IGNORE]


class IsolatedHydrogenFixer(BaseFilter):
    """Bond hydrogen atoms without any bond to a nearby non-hydrogen
    atom. The atoms preceding the hydrogen in the atom list are searched
    first, nearest in the list first, then the following ones. Partners
    need a compatible disorder group (the same, or either one 0) and a
    distance of at most ``max_bond_distance``.

    Parameters
    ----------
    mode : str, default ``off``
        Initial mode.
    max_bond_distance : float, default 1.1
        Maximum bond length in Å.
    """

    ON = "on"
    OFF = "off"
    MODES = (ON, OFF)
    DEFAULT_MODE = OFF
    PREFERRED_FALLBACK_ORDER = (ON, OFF)

    def __init__(
            self,
            mode: Optional[str] = None,
            max_bond_distance: float = ISOLATED_H_MAX_BOND_DISTANCE
    ):
        super().__init__(mode)
        self.max_bond_distance = max_bond_distance

    @staticmethod
    def find_isolated_hydrogen_atoms(structure: CrystalStructure) -> List[Tuple[Atom, int]]:
        """Hydrogen atoms forming a connected group on their own, with
        their index in the structure's atom list."""

        index_of = {atom.label: i for i, atom in enumerate(structure.atoms)}
        return [
            (group.atoms[0], index_of[group.atoms[0].label])
            for group in structure.connected_groups
            if len(group.atoms) == 1 and _is_hydrogen(group.atoms[0])
        ]

    def _bond_for(self, structure: CrystalStructure, hydrogen: Atom, index: int) -> Optional[Bond]:
        atoms = structure.atoms
        h_coords = hydrogen.position.to_cartesian(structure.cell).coords
        search_order = list(range(index - 1, -1, -1)) + list(range(index + 1, len(atoms)))
        for i in search_order:
            partner = atoms[i]
            if _is_hydrogen(partner):
                continue
            groups = (partner.disorder_group, hydrogen.disorder_group)
            if groups[0] != groups[1] and 0 not in groups:
                continue
            distance = float(np.linalg.norm(
                h_coords - partner.position.to_cartesian(structure.cell).coords
            ))
            if distance <= self.max_bond_distance:
                return Bond(partner.label, hydrogen.label, distance, None, ".")
        return None

    def apply(self, structure: CrystalStructure) -> CrystalStructure:
        self.ensure_valid_mode(structure)
        if self.mode == self.OFF:
            return structure

        new_bonds = []
        for hydrogen, index in self.find_isolated_hydrogen_atoms(structure):
            bond = self._bond_for(structure, hydrogen, index)
            if bond is not None:
                new_bonds.append(bond)

        if not new_bonds:
            return structure
        return CrystalStructure(
            structure.cell,
            structure.atoms,
            list(structure.bonds) + new_bonds,
            structure.hbonds,
            structure.symmetry
        )

    def get_applicable_modes(self, structure: CrystalStructure) -> List[str]:
        if not structure.bonds:
            return [self.OFF]
        if self.find_isolated_hydrogen_atoms(structure):
            return [self.ON, self.OFF]
        return [self.OFF]
