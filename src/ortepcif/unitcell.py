"""Implements the :class:`UnitCell` object."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from .utils import fract_to_cart_matrix
from .errors import StructureError
from ._types import FloatArray

if TYPE_CHECKING:
    from .cif import CifBlock

__all__ = ["UnitCell"]

_CELL_KEYS = {
    "a": ["_cell.length_a", "_cell_length_a"],
    "b": ["_cell.length_b", "_cell_length_b"],
    "c": ["_cell.length_c", "_cell_length_c"],
    "alpha": ["_cell.angle_alpha", "_cell_angle_alpha"],
    "beta": ["_cell.angle_beta", "_cell_angle_beta"],
    "gamma": ["_cell.angle_gamma", "_cell_angle_gamma"],
}


def _check_length(name: str, value: float) -> float:
    if not value > 0:
        raise StructureError(f"Cell parameter '{name}' must be positive")
    return float(value)


def _check_angle(name: str, value: float) -> float:
    if not 0 < value < 180:
        raise StructureError(f"Angle {name} must be between 0 and 180 degrees")
    return float(value)


class UnitCell:
    """Unit cell given by the lengths a, b, c (Å) and angles alpha,
    beta, gamma (degrees). The fractional to Cartesian matrix is
    recalculated whenever a parameter changes.

    Attributes
    ----------
    fract_to_cart_matrix : :class:`numpy.ndarray`
        3x3 matrix M with ``M @ fract = cart``.

    Raises
    ------
    StructureError
        If a length is not positive or an angle is outside (0, 180).
    """

    def __init__(self, a, b, c, alpha, beta, gamma):
        self._a = _check_length("a", a)
        self._b = _check_length("b", b)
        self._c = _check_length("c", c)
        self._alpha = _check_angle("alpha", alpha)
        self._beta = _check_angle("beta", beta)
        self._gamma = _check_angle("gamma", gamma)
        self._update_matrix()

    def _update_matrix(self):
        self.fract_to_cart_matrix = fract_to_cart_matrix(
            self._a, self._b, self._c, self._alpha, self._beta, self._gamma
        )

    @classmethod
    def from_cif(cls, cif_block: CifBlock) -> UnitCell:
        """Read the cell parameters of a CIF block.

        Raises
        ------
        StructureError
            Listing every parameter that is missing, not a number or
            negative.
        """

        values = {}
        invalid = []
        for name, keys in _CELL_KEYS.items():
            value = cif_block.get(keys, None)
            if not isinstance(value, (int, float)) or value < 0:
                invalid.append(name)
            values[name] = value

        if invalid:
            raise StructureError(
                "Unit cell parameter entries missing in CIF or negative for "
                f"cell parameters: {', '.join(invalid)}"
            )
        return cls(**values)

    @property
    def cart_to_fract_matrix(self) -> FloatArray:
        return np.linalg.inv(self.fract_to_cart_matrix)

    @property
    def cellpar(self) -> FloatArray:
        return np.array(
            [self._a, self._b, self._c, self._alpha, self._beta, self._gamma]
        )

    @property
    def a(self) -> float:
        return self._a

    @a.setter
    def a(self, value: float):
        self._a = _check_length("a", value)
        self._update_matrix()

    @property
    def b(self) -> float:
        return self._b

    @b.setter
    def b(self, value: float):
        self._b = _check_length("b", value)
        self._update_matrix()

    @property
    def c(self) -> float:
        return self._c

    @c.setter
    def c(self, value: float):
        self._c = _check_length("c", value)
        self._update_matrix()

    @property
    def alpha(self) -> float:
        return self._alpha

    @alpha.setter
    def alpha(self, value: float):
        self._alpha = _check_angle("alpha", value)
        self._update_matrix()

    @property
    def beta(self) -> float:
        return self._beta

    @beta.setter
    def beta(self, value: float):
        self._beta = _check_angle("beta", value)
        self._update_matrix()

    @property
    def gamma(self) -> float:
        return self._gamma

    @gamma.setter
    def gamma(self, value: float):
        self._gamma = _check_angle("gamma", value)
        self._update_matrix()

    def __repr__(self):
        return (
            f"{self.__class__.__name__}(a={self._a}, b={self._b}, c={self._c}, "
            f"alpha={self._alpha}, beta={self._beta}, gamma={self._gamma})"
        )
