"""Atomic positions in fractional or Cartesian coordinates."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Iterator

import numpy as np

from .errors import DummyAtomError, ParseError, MissingKeyError

if TYPE_CHECKING:
    from .cif import CifBlock
    from .unitcell import UnitCell

__all__ = [
    "FractPosition",
    "CartPosition",
    "position_from_cif",
]

_PLACEHOLDERS = (".", "?")


class _Position:
    """Coordinate triple shared by :class:`FractPosition` and
    :class:`CartPosition`. Behaves like a sequence of three floats."""

    def __init__(self, x: float, y: float, z: float):
        self.coords = np.array([x, y, z], dtype=np.float64)

    @property
    def x(self) -> float:
        return float(self.coords[0])

    @x.setter
    def x(self, value: float):
        self.coords[0] = value

    @property
    def y(self) -> float:
        return float(self.coords[1])

    @y.setter
    def y(self, value: float):
        self.coords[1] = value

    @property
    def z(self) -> float:
        return float(self.coords[2])

    @z.setter
    def z(self, value: float):
        self.coords[2] = value

    def __len__(self):
        return 3

    def __getitem__(self, index):
        return float(self.coords[index])

    def __iter__(self) -> Iterator[float]:
        return iter(self.coords.tolist())

    def __array__(self, dtype=None, copy=None):
        if dtype is None:
            return self.coords.copy()
        return self.coords.astype(dtype)

    def __eq__(self, other):
        if type(self) is not type(other):
            return NotImplemented
        return bool(np.array_equal(self.coords, other.coords))

    def __repr__(self):
        return f"{self.__class__.__name__}({self.x}, {self.y}, {self.z})"


class FractPosition(_Position):
    """Position in fractional coordinates of a unit cell."""

    def to_cartesian(self, unit_cell: UnitCell) -> CartPosition:
        return CartPosition(*(unit_cell.fract_to_cart_matrix @ self.coords))

    def to_fractional(self, unit_cell: UnitCell = None) -> FractPosition:
        return self


class CartPosition(_Position):
    """Position in Cartesian coordinates (Å)."""

    def to_cartesian(self, unit_cell: UnitCell = None) -> CartPosition:
        return self

    def to_fractional(self, unit_cell: UnitCell) -> FractPosition:
        return FractPosition(*(unit_cell.cart_to_fract_matrix @ self.coords))


def _coordinate(value) -> float:
    if isinstance(value, (int, float)):
        return float(value)
    raise ParseError(f"Invalid coordinate: {value}")


def position_from_cif(cif_block: CifBlock, index: int) -> _Position:
    """Read the position of row ``index`` of the ``_atom_site`` loop.
    Fractional coordinates are preferred over Cartesian ones.

    Raises
    ------
    DummyAtomError
        If the row is flagged with calc_flag ``dum`` or its coordinates
        are ``.`` or ``?``.
    ParseError
        If neither fractional nor Cartesian coordinates exist.
    """

    atom_site = cif_block.get("_atom_site")
    calc_flag = atom_site.get_index(["_atom_site.calc_flag", "_atom_site_calc_flag"], index, "")
    if str(calc_flag).lower() == "dum":
        raise DummyAtomError("Dummy atom: calc_flag is dum")

    key_sets = (
        (FractPosition, (
            ["_atom_site.fract_x", "_atom_site_fract_x"],
            ["_atom_site.fract_y", "_atom_site_fract_y"],
            ["_atom_site.fract_z", "_atom_site_fract_z"],
        )),
        (CartPosition, (
            ["_atom_site.Cartn_x", "_atom_site.cartn_x", "_atom_site_Cartn_x"],
            ["_atom_site.Cartn_y", "_atom_site.cartn_y", "_atom_site_Cartn_y"],
            ["_atom_site.Cartn_z", "_atom_site.cartn_z", "_atom_site_Cartn_z"],
        )),
    )

    found_placeholder = False
    for position_class, keys in key_sets:
        try:
            values = [atom_site.get_index(k, index) for k in keys]
        except MissingKeyError:
            continue
        if any(v in _PLACEHOLDERS for v in values):
            found_placeholder = True
            continue
        coords = [_coordinate(v) for v in values]
        if any(math.isnan(c) for c in coords):
            found_placeholder = True
            continue
        return position_class(*coords)

    if found_placeholder:
        raise DummyAtomError("Dummy atom: Invalid position")
    raise ParseError("Invalid position: No valid fractional or Cartesian coordinates found")
