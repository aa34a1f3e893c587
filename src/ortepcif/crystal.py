"""Implements the :class:`CrystalStructure` object: unit cell, atoms,
bonds, hydrogen bonds and symmetry of a crystal, and the groups of atoms
connected through bonds.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Dict, List, NamedTuple, Optional, Sequence, Set

from .cif import CifLoop
from .unitcell import UnitCell
from .atom import Atom, Bond, HBond
from .symmetry import SymmetryOperation, CellSymmetry
from .errors import DummyAtomError, MissingKeyError, StructureError, SymmetryError

if TYPE_CHECKING:
    from .cif import CifBlock

__all__ = [
    "ConnectedGroup",
    "BondValidation",
    "CrystalStructure",
    "create_bonds",
    "create_hbonds",
    "validate_bonds",
    "validate_hbonds",
]

# Centroids and other pseudo atoms used in bond tables
_CENTROID_RE = re.compile(r"^(cg|cnt)", re.IGNORECASE)

_BOND_LABEL_KEYS = (
    ["_geom_bond.atom_site_label_1", "_geom_bond_atom_site_label_1"],
    ["_geom_bond.atom_site_label_2", "_geom_bond_atom_site_label_2"],
)
_HBOND_LABEL_KEYS = (
    ["_geom_hbond.atom_site_label_d", "_geom_hbond_atom_site_label_D"],
    ["_geom_hbond.atom_site_label_h", "_geom_hbond_atom_site_label_H"],
    ["_geom_hbond.atom_site_label_a", "_geom_hbond_atom_site_label_A"],
)


class ConnectedGroup(NamedTuple):
    """Atoms connected by bonds without symmetry, with these bonds and
    the hydrogen bonds of the atoms."""

    atoms: List[Atom]
    bonds: List[Bond]
    hbonds: List[HBond]


class BondValidation:
    """Collects the problems found in bonds or hydrogen bonds."""

    def __init__(self):
        self.atom_label_errors = []
        self.symmetry_errors = []

    def is_valid(self) -> bool:
        return not self.atom_label_errors and not self.symmetry_errors

    def report(self, atoms: Sequence[Atom], symmetry: CellSymmetry) -> str:
        parts = []
        if self.atom_label_errors:
            parts.append(
                "Unknown atom label(s). Known labels are \n"
                + ", ".join(atom.label for atom in atoms) + "\n"
                + "\n".join(self.atom_label_errors)
            )
        if self.symmetry_errors:
            parts.append(
                "Unknown symmetry ID(s) or String format. Expected format is "
                "<id>_abc. Known IDs are:\n"
                + ", ".join(symmetry.operation_ids) + "\n"
                + "\n".join(self.symmetry_errors)
            )
        return "\n".join(parts)


def _is_centroid(label: str) -> bool:
    return bool(_CENTROID_RE.match(str(label)))


def _keep_labels(labels: Sequence[str], atom_labels: Set[str]) -> bool:
    # '?' drops the entry, centroids only stay if they are real atoms
    if any(label == "?" for label in labels):
        return False
    return all(
        not _is_centroid(label) or label in atom_labels for label in labels
    )


def create_bonds(cif_block: CifBlock, atom_labels: Set[str]) -> List[Bond]:
    """Bonds of the ``_geom_bond`` loop, leaving out bonds to centroids
    that are not atoms and bonds with ``?`` labels. No loop gives an
    empty list."""

    geom_bond = cif_block.get("_geom_bond", None)
    if not isinstance(geom_bond, CifLoop):
        return []
    try:
        n_bonds = len(geom_bond.get(_BOND_LABEL_KEYS[0]))
    except MissingKeyError:
        return []

    bonds = []
    for i in range(n_bonds):
        labels = [str(geom_bond.get_index(keys, i)) for keys in _BOND_LABEL_KEYS]
        if _keep_labels(labels, atom_labels):
            bonds.append(Bond.from_cif(cif_block, i))
    return bonds


def create_hbonds(cif_block: CifBlock, atom_labels: Set[str]) -> List[HBond]:
    """Hydrogen bonds of the ``_geom_hbond`` loop, filtered like
    :func:`create_bonds`."""

    geom_hbond = cif_block.get("_geom_hbond", None)
    if not isinstance(geom_hbond, CifLoop):
        return []
    try:
        n_hbonds = len(geom_hbond.get(_HBOND_LABEL_KEYS[0]))
    except MissingKeyError:
        return []

    hbonds = []
    for i in range(n_hbonds):
        labels = [str(geom_hbond.get_index(keys, i, "?")) for keys in _HBOND_LABEL_KEYS]
        if _keep_labels(labels, atom_labels):
            hbonds.append(HBond.from_cif(cif_block, i))
    return hbonds


def _check_symmetry(code: str, symmetry: CellSymmetry) -> bool:
    if not code or code == ".":
        return True
    try:
        symmetry.parse_position_code(code)
    except SymmetryError:
        return False
    return True


def validate_bonds(
        bonds: Sequence[Bond],
        atoms: Sequence[Atom],
        symmetry: CellSymmetry
) -> BondValidation:
    """Check that bonds refer to existing atoms and valid symmetry
    codes."""

    validation = BondValidation()
    labels = {atom.label for atom in atoms}
    for bond in bonds:
        missing = [l for l in (bond.atom1_label, bond.atom2_label) if l not in labels]
        if missing:
            validation.atom_label_errors.append(
                f"Non-existent atoms in bond: {bond.atom1_label} - "
                f"{bond.atom2_label}, non-existent atom(s): {', '.join(missing)}"
            )
        if not _check_symmetry(bond.atom2_site_symmetry, symmetry):
            validation.symmetry_errors.append(
                f"Invalid symmetry in bond: {bond.atom1_label} - "
                f"{bond.atom2_label}, invalid symmetry operation: "
                f"{bond.atom2_site_symmetry}"
            )
    return validation


def validate_hbonds(
        hbonds: Sequence[HBond],
        atoms: Sequence[Atom],
        symmetry: CellSymmetry
) -> BondValidation:
    """Check that hydrogen bonds refer to existing atoms and valid
    symmetry codes."""

    validation = BondValidation()
    labels = {atom.label for atom in atoms}
    for hbond in hbonds:
        names = (hbond.donor_atom_label, hbond.hydrogen_atom_label, hbond.acceptor_atom_label)
        missing = [l for l in names if l not in labels]
        description = " - ".join(names)
        if missing:
            validation.atom_label_errors.append(
                f"Non-existent atoms in H-bond: {description}, "
                f"non-existent atom(s): {', '.join(missing)}"
            )
        if not _check_symmetry(hbond.acceptor_atom_symmetry, symmetry):
            validation.symmetry_errors.append(
                f"Invalid symmetry in H-bond: {description}, invalid symmetry "
                f"operation: {hbond.acceptor_atom_symmetry}"
            )
    return validation


def _has_symmetry(code: Optional[str]) -> bool:
    return code is not None and code != "."


class CrystalStructure:
    """A crystal structure. Structures are not modified after creation,
    the structure modifiers return new ones.

    Parameters
    ----------
    cell : :class:`.unitcell.UnitCell`
        The unit cell.
    atoms : list of :class:`.atom.Atom`
        Atoms with unique labels.
    bonds : list of :class:`.atom.Bond`, optional
        Covalent bonds.
    hbonds : list of :class:`.atom.HBond`, optional
        Hydrogen bonds.
    symmetry : :class:`.symmetry.CellSymmetry`, optional
        Space group symmetry, only the identity if not given.

    Attributes
    ----------
    connected_groups : list of :class:`ConnectedGroup`
        Partition of the atoms into groups connected by bonds without
        symmetry.
    """

    def __init__(
            self,
            cell: UnitCell,
            atoms: List[Atom],
            bonds: Optional[List[Bond]] = None,
            hbonds: Optional[List[HBond]] = None,
            symmetry: Optional[CellSymmetry] = None
    ):
        self.cell = cell
        self.atoms = atoms
        self.bonds = bonds if bonds is not None else []
        self.hbonds = hbonds if hbonds is not None else []
        if symmetry is None:
            symmetry = CellSymmetry("None", 0, [SymmetryOperation("x,y,z")])
        self.symmetry = symmetry
        self.recalculate_connected_groups()

    @classmethod
    def from_cif(cls, cif_block: CifBlock) -> CrystalStructure:
        """Create the structure of a CIF block. Placeholder rows of the
        ``_atom_site`` loop are left out.

        Raises
        ------
        StructureError
            If the cell is invalid, no atoms remain or bonds/H-bonds
            refer to unknown atoms or symmetry codes.
        """

        cell = UnitCell.from_cif(cif_block)
        atom_site = cif_block.get("_atom_site")
        n_atoms = len(atom_site.get(["_atom_site.label", "_atom_site_label"]))

        atoms = []
        for i in range(n_atoms):
            try:
                atoms.append(Atom.from_cif(cif_block, i))
            except DummyAtomError:
                continue

        if not atoms:
            raise StructureError("The cif file contains no valid atoms.")

        atom_labels = {atom.label for atom in atoms}
        bonds = create_bonds(cif_block, atom_labels)
        hbonds = create_hbonds(cif_block, atom_labels)
        symmetry = CellSymmetry.from_cif(cif_block)

        bond_validation = validate_bonds(bonds, atoms, symmetry)
        hbond_validation = validate_hbonds(hbonds, atoms, symmetry)
        if not (bond_validation.is_valid() and hbond_validation.is_valid()):
            reports = [
                v.report(atoms, symmetry)
                for v in (bond_validation, hbond_validation) if not v.is_valid()
            ]
            raise StructureError(
                "There were errors in the bond or H-bond creation\n" + "\n".join(reports)
            )

        return cls(cell, atoms, bonds, hbonds, symmetry)

    def get_atom_by_label(self, label: str) -> Atom:
        """The atom with ``label``. An exact match is preferred, else
        the case-insensitive match is returned.

        Raises
        ------
        MissingKeyError
            If there is no such atom.
        """

        label = str(label)
        for atom in self.atoms:
            if atom.label == label:
                return atom
        lower = label.lower()
        for atom in self.atoms:
            if atom.label.lower() == lower:
                return atom
        available = ", ".join(atom.label for atom in self.atoms)
        raise MissingKeyError(
            f"Could not find atom with label: {label}, available are: {available}"
        )

    def recalculate_connected_groups(self) -> None:
        """Group the atoms into sets connected by bonds without
        symmetry. Hydrogen bonds without symmetry are added to the group
        of their donor, and to the group of their acceptor if the
        acceptor is bonded; they do not join groups. Unbonded atoms form
        groups of their own."""

        group_of: Dict[str, dict] = {}
        groups = []

        for bond in self.bonds:
            if _has_symmetry(bond.atom2_site_symmetry):
                continue
            atom1 = self.get_atom_by_label(bond.atom1_label)
            atom2 = self.get_atom_by_label(bond.atom2_label)
            group1 = group_of.get(atom1.label)
            group2 = group_of.get(atom2.label)

            if group1 is None and group2 is None:
                group = {"atoms": {}, "bonds": [], "hbonds": []}
                groups.append(group)
            else:
                group = group1 if group1 is not None else group2
                if group1 is not None and group2 is not None and group1 is not group2:
                    for atom in group2["atoms"].values():
                        group_of[atom.label] = group1
                    group1["atoms"].update(group2["atoms"])
                    group1["bonds"].extend(group2["bonds"])
                    groups.remove(group2)

            group["atoms"][id(atom1)] = atom1
            group["atoms"][id(atom2)] = atom2
            group["bonds"].append(bond)
            group_of[atom1.label] = group
            group_of[atom2.label] = group

        bonded_labels = set(group_of)
        for atom in self.atoms:
            if atom.label not in group_of:
                group = {"atoms": {id(atom): atom}, "bonds": [], "hbonds": []}
                groups.append(group)
                group_of[atom.label] = group

        for hbond in self.hbonds:
            if _has_symmetry(hbond.acceptor_atom_symmetry):
                continue
            donor = self.get_atom_by_label(hbond.donor_atom_label)
            acceptor = self.get_atom_by_label(hbond.acceptor_atom_label)
            donor_group = group_of[donor.label]
            donor_group["hbonds"].append(hbond)
            if acceptor.label in bonded_labels:
                acceptor_group = group_of[acceptor.label]
                if acceptor_group is not donor_group:
                    acceptor_group["hbonds"].append(hbond)

        self.connected_groups = [
            ConnectedGroup(list(g["atoms"].values()), g["bonds"], g["hbonds"])
            for g in groups
        ]

    def __repr__(self):
        return (
            f"{self.__class__.__name__}(cell={self.cell!r}, "
            f"n_atoms={len(self.atoms)}, n_bonds={len(self.bonds)}, "
            f"n_hbonds={len(self.hbonds)}, symmetry={self.symmetry!r})"
        )
