"""Atoms, covalent bonds and hydrogen bonds of a crystal structure."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, NamedTuple, Optional, Union

from .position import FractPosition, CartPosition, position_from_cif
from .adp import UIsoADP, UAnisoADP, adp_from_cif
from .utils import infer_element_from_label
from .errors import DummyAtomError

if TYPE_CHECKING:
    from .cif import CifBlock

__all__ = [
    "Atom",
    "Bond",
    "HBond",
]

_PLACEHOLDERS = (".", "?")


class Atom:
    """An atom of the asymmetric unit (or a symmetry generated copy of
    one).

    Parameters
    ----------
    label : str
        Label, unique within a structure.
    atom_type : str
        Element symbol.
    position : :class:`.position.FractPosition` or :class:`.position.CartPosition`
        Position of the atom.
    adp : :class:`.adp.UIsoADP` or :class:`.adp.UAnisoADP`, optional
        Displacement parameters, None if there are none.
    disorder_group : int, default 0
        Disorder group, 0 if the atom is not disordered.
    """

    def __init__(
            self,
            label: str,
            atom_type: str,
            position: Union[FractPosition, CartPosition],
            adp: Optional[Union[UIsoADP, UAnisoADP]] = None,
            disorder_group: int = 0
    ):
        self.label = str(label)
        self.atom_type = atom_type
        self.position = position
        self.adp = adp
        self.disorder_group = disorder_group

    @classmethod
    def from_cif(
            cls,
            cif_block: CifBlock,
            index: Optional[int] = None,
            label: Optional[str] = None
    ) -> Atom:
        """Create the atom in row ``index`` of the ``_atom_site`` loop,
        or the row with the given ``label``. The element is inferred
        from the label if the type symbol is missing.

        Raises
        ------
        DummyAtomError
            If the row is a placeholder: ``.``/``?`` label, type or
            coordinates, or calc_flag ``dum``.
        ValueError
            If neither index nor label is given.
        """

        atom_site = cif_block.get("_atom_site")
        labels = atom_site.get(["_atom_site.label", "_atom_site_label"])
        if index is None:
            if label is None:
                raise ValueError("Either index or label need to be provided")
            index = labels.index(label)

        atom_label = labels[index]
        if atom_label in _PLACEHOLDERS:
            raise DummyAtomError("Dummy atom: Invalid label")

        calc_flag = atom_site.get_index(
            ["_atom_site.calc_flag", "_atom_site_calc_flag"], index, ""
        )
        if str(calc_flag).lower() == "dum":
            raise DummyAtomError("Dummy atom: calc_flag is dum")

        atom_type = atom_site.get_index(
            ["_atom_site.type_symbol", "_atom_site_type_symbol"], index, None
        )
        if not atom_type:
            atom_type = infer_element_from_label(str(atom_label))
        if atom_type in _PLACEHOLDERS:
            raise DummyAtomError("Dummy atom: Invalid atom type")

        position = position_from_cif(cif_block, index)
        adp = adp_from_cif(cif_block, index)

        disorder_group = atom_site.get_index(
            ["_atom_site.disorder_group", "_atom_site_disorder_group"], index, "."
        )
        if not isinstance(disorder_group, int):
            disorder_group = 0

        return cls(atom_label, str(atom_type), position, adp, disorder_group)

    def __repr__(self):
        return (
            f"{self.__class__.__name__}(label={self.label!r}, "
            f"atom_type={self.atom_type!r}, position={self.position!r}, "
            f"adp={self.adp!r}, disorder_group={self.disorder_group})"
        )


class Bond(NamedTuple):
    """Covalent bond between two atoms. ``atom2_site_symmetry`` is the
    symmetry code (``<id>_abc``) applied to the second atom, ``.`` if
    none."""

    atom1_label: str
    atom2_label: str
    bond_length: Optional[float] = None
    bond_length_su: Optional[float] = None
    atom2_site_symmetry: str = "."

    @classmethod
    def from_cif(cls, cif_block: CifBlock, index: int) -> Bond:
        """Bond in row ``index`` of the ``_geom_bond`` loop. A second
        site symmetry equal to the first counts as no symmetry."""

        geom_bond = cif_block.get("_geom_bond")
        symmetry = geom_bond.get_index(
            ["_geom_bond.site_symmetry_2", "_geom_bond_site_symmetry_2"], index, "."
        )
        symmetry_1 = geom_bond.get_index(
            ["_geom_bond.site_symmetry_1", "_geom_bond_site_symmetry_1"], index, None
        )
        if symmetry_1 is not None and symmetry_1 == symmetry:
            symmetry = "."

        return cls(
            str(geom_bond.get_index(["_geom_bond.atom_site_label_1", "_geom_bond_atom_site_label_1"], index)),
            str(geom_bond.get_index(["_geom_bond.atom_site_label_2", "_geom_bond_atom_site_label_2"], index)),
            geom_bond.get_index(["_geom_bond.distance", "_geom_bond_distance"], index),
            geom_bond.get_index(["_geom_bond.distance_su", "_geom_bond_distance_su"], index, math.nan),
            "." if symmetry == "?" else str(symmetry),
        )


class HBond(NamedTuple):
    """Hydrogen bond donor-hydrogen...acceptor. ``acceptor_atom_symmetry``
    is the symmetry code applied to the acceptor, ``.`` if none."""

    donor_atom_label: str
    hydrogen_atom_label: str
    acceptor_atom_label: str
    donor_hydrogen_distance: float = math.nan
    donor_hydrogen_distance_su: float = math.nan
    acceptor_hydrogen_distance: float = math.nan
    acceptor_hydrogen_distance_su: float = math.nan
    donor_acceptor_distance: float = math.nan
    donor_acceptor_distance_su: float = math.nan
    hbond_angle: float = math.nan
    hbond_angle_su: float = math.nan
    acceptor_atom_symmetry: str = "."

    @classmethod
    def from_cif(cls, cif_block: CifBlock, index: int) -> HBond:
        """H-bond in row ``index`` of the ``_geom_hbond`` loop."""

        geom_hbond = cif_block.get("_geom_hbond")

        def value(dot_key, underscore_key, default=math.nan):
            return geom_hbond.get_index([dot_key, underscore_key], index, default)

        symmetry = value("_geom_hbond.site_symmetry_a", "_geom_hbond_site_symmetry_A", ".")
        return cls(
            str(geom_hbond.get_index(["_geom_hbond.atom_site_label_d", "_geom_hbond_atom_site_label_D"], index)),
            str(geom_hbond.get_index(["_geom_hbond.atom_site_label_h", "_geom_hbond_atom_site_label_H"], index)),
            str(geom_hbond.get_index(["_geom_hbond.atom_site_label_a", "_geom_hbond_atom_site_label_A"], index)),
            value("_geom_hbond.distance_dh", "_geom_hbond_distance_DH"),
            value("_geom_hbond.distance_dh_su", "_geom_hbond_distance_DH_su"),
            value("_geom_hbond.distance_ha", "_geom_hbond_distance_HA"),
            value("_geom_hbond.distance_ha_su", "_geom_hbond_distance_HA_su"),
            value("_geom_hbond.distance_da", "_geom_hbond_distance_DA"),
            value("_geom_hbond.distance_da_su", "_geom_hbond_distance_DA_su"),
            value("_geom_hbond.angle_dha", "_geom_hbond_angle_DHA"),
            value("_geom_hbond.angle_dha_su", "_geom_hbond_angle_DHA_su"),
            "." if symmetry == "?" else str(symmetry),
        )
