"""Atomic displacement parameters (ADPs): isotropic
(:class:`UIsoADP`) and anisotropic (:class:`UAnisoADP`), and
:func:`adp_from_cif` which picks the right kind for an atom of a CIF.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Optional, Union

import numpy as np

from .utils import adp_to_matrix, ucif_to_ucart
from .errors import ADPError, MissingKeyError
from .globals_ import ROTATION_DET_TOL
from ._types import FloatArray

if TYPE_CHECKING:
    from .cif import CifBlock
    from .unitcell import UnitCell

__all__ = [
    "UIsoADP",
    "UAnisoADP",
    "adp_from_cif",
]

_B_TO_U = 1 / (8 * math.pi ** 2)

_ANISO_LABEL_KEYS = ["_atom_site_aniso.label", "_atom_site_aniso_label"]
_UANI_KEYS = [
    [f"_atom_site_aniso.u_{ij}", f"_atom_site_aniso_U_{ij}"]
    for ij in ("11", "22", "33", "12", "13", "23")
]
_BANI_KEYS = [
    [f"_atom_site_aniso.b_{ij}", f"_atom_site_aniso_B_{ij}"]
    for ij in ("11", "22", "33", "12", "13", "23")
]
_UISO_KEYS = ["_atom_site.u_iso_or_equiv", "_atom_site_U_iso_or_equiv"]
_BISO_KEYS = ["_atom_site.b_iso_or_equiv", "_atom_site_B_iso_or_equiv"]
_ADP_TYPE_KEYS = [
    "_atom_site.adp_type",
    "_atom_site_adp_type",
    "_atom_site.thermal_displace_type",
    "_atom_site_thermal_displace_type",
]


class UIsoADP:
    """Isotropic displacement parameter Uiso (Å²)."""

    def __init__(self, uiso: float):
        self.uiso = uiso

    @classmethod
    def from_biso(cls, biso: float) -> UIsoADP:
        return cls(biso * _B_TO_U)

    def __repr__(self):
        return f"{self.__class__.__name__}({self.uiso})"


class UAnisoADP:
    """Anisotropic displacement tensor in the CIF convention, given by
    its six independent components (Å²)."""

    def __init__(self, u11, u22, u33, u12, u13, u23):
        self.u11 = u11
        self.u22 = u22
        self.u33 = u33
        self.u12 = u12
        self.u13 = u13
        self.u23 = u23

    @classmethod
    def from_bani(cls, b11, b22, b33, b12, b13, b23) -> UAnisoADP:
        return cls(*(b * _B_TO_U for b in (b11, b22, b33, b12, b13, b23)))

    @property
    def components(self) -> FloatArray:
        """U11, U22, U33, U12, U13, U23."""
        return np.array(
            [self.u11, self.u22, self.u33, self.u12, self.u13, self.u23],
            dtype=np.float64,
        )

    def to_matrix(self) -> FloatArray:
        return adp_to_matrix(self.components)

    def get_u_cart(self, unit_cell: UnitCell) -> FloatArray:
        """The tensor in Cartesian coordinates as U11, U22, U33, U12,
        U13, U23."""
        return ucif_to_ucart(unit_cell.fract_to_cart_matrix, self.components)

    def get_ellipsoid_matrix(self, unit_cell: UnitCell) -> FloatArray:
        """Matrix transforming a unit sphere into the displacement
        ellipsoid: eigenvectors of the Cartesian tensor scaled by the
        square roots of the eigenvalues. The eigenvector matrix is
        normalised by its determinant so the transform never mirrors.
        Non-positive eigenvalues give NaN columns, marking an ellipsoid
        that is not physical.

        Parameters
        ----------
        unit_cell : :class:`.unitcell.UnitCell`
            Cell the tensor refers to.

        Returns
        -------
        :class:`numpy.ndarray`
            3x3 transformation matrix.
        """

        u_cart = adp_to_matrix(self.get_u_cart(unit_cell))
        eigenvalues, eigenvectors = np.linalg.eigh(u_cart)
        with np.errstate(invalid="ignore"):
            scales = np.sqrt(np.where(eigenvalues > 0, eigenvalues, np.nan))

        det = np.linalg.det(eigenvectors)
        if abs(det - 1) > ROTATION_DET_TOL:
            eigenvectors = eigenvectors / det
        return eigenvectors @ np.diag(scales)

    def __repr__(self):
        return (
            f"{self.__class__.__name__}({self.u11}, {self.u22}, {self.u33}, "
            f"{self.u12}, {self.u13}, {self.u23})"
        )


def _number(value) -> float:
    if isinstance(value, (int, float)):
        return float(value)
    return math.nan


def _aniso_row(cif_block: CifBlock, label: str, kind: str) -> int:
    try:
        aniso = cif_block.get("_atom_site_aniso")
    except MissingKeyError:
        raise ADPError(
            f"Atom {label} had ADP type {kind}, but no atom_site_aniso loop was found"
        ) from None

    labels = aniso.get(_ANISO_LABEL_KEYS)
    if label not in labels:
        raise ADPError(
            f"Atom {label} has ADP type {kind}, but was not found in "
            "atom_site_aniso.label"
        )
    return labels.index(label)


def _create_aniso(cif_block: CifBlock, label: str, b_values: bool):
    kind, keys = ("Bani", _BANI_KEYS) if b_values else ("Uani", _UANI_KEYS)
    row = _aniso_row(cif_block, label, kind)
    aniso = cif_block.get("_atom_site_aniso")
    values = [_number(aniso.get_index(k, row, math.nan)) for k in keys]
    if any(math.isnan(v) for v in values):
        return None
    if b_values:
        return UAnisoADP.from_bani(*values)
    return UAnisoADP(*values)


def _create_iso(cif_block: CifBlock, index: int, b_values: bool):
    keys = _BISO_KEYS if b_values else _UISO_KEYS
    value = _number(cif_block.get("_atom_site").get_index(keys, index, math.nan))
    if math.isnan(value):
        return None
    if b_values:
        return UIsoADP.from_biso(value)
    return UIsoADP(value)


def _in_aniso_loop(cif_block: CifBlock, label: str) -> bool:
    aniso = cif_block.get("_atom_site_aniso", None)
    if aniso is None or isinstance(aniso, (str, int, float)):
        return False
    return label in aniso.get(_ANISO_LABEL_KEYS, [])


def adp_from_cif(cif_block: CifBlock, index: int) -> Optional[Union[UIsoADP, UAnisoADP]]:
    """Displacement parameters of row ``index`` of the ``_atom_site``
    loop.

    An explicit ADP type (``Uani``, ``Aniso``, ``Bani``, ``Uiso``,
    ``Iso``, ``Biso``) is followed. Without one, anisotropic U then B
    values from the ``_atom_site_aniso`` loop are tried, followed by
    isotropic U then B values.

    Returns
    -------
    :class:`UIsoADP`, :class:`UAnisoADP` or None
        None if there are no usable displacement parameters.

    Raises
    ------
    ADPError
        If an anisotropic type is declared but the atom has no row in an
        ``_atom_site_aniso`` loop.
    """

    atom_site = cif_block.get("_atom_site")
    label = atom_site.get_index(["_atom_site.label", "_atom_site_label"], index)
    adp_type = atom_site.get_index(_ADP_TYPE_KEYS, index, None)

    if isinstance(adp_type, str):
        adp_type = adp_type.lower()
        if adp_type in ("uani", "aniso"):
            return _create_aniso(cif_block, label, b_values=False)
        if adp_type == "bani":
            return _create_aniso(cif_block, label, b_values=True)
        if adp_type in ("uiso", "iso"):
            return _create_iso(cif_block, index, b_values=False)
        if adp_type == "biso":
            return _create_iso(cif_block, index, b_values=True)
        return None

    if _in_aniso_loop(cif_block, label):
        adp = _create_aniso(cif_block, label, b_values=False)
        if adp is not None:
            return adp
        adp = _create_aniso(cif_block, label, b_values=True)
        if adp is not None:
            return adp

    adp = _create_iso(cif_block, index, b_values=False)
    if adp is not None:
        return adp
    return _create_iso(cif_block, index, b_values=True)
