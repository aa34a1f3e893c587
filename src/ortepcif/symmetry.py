"""Crystallographic symmetry: single operations parsed from ``x,y,z``
style instructions (:class:`SymmetryOperation`) and the set of
operations of a space group (:class:`CellSymmetry`), which resolves
symmetry codes such as ``2_555`` used by bond tables.
"""

from __future__ import annotations

import re
import warnings
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from .atom import Atom
from .adp import UIsoADP, UAnisoADP
from .position import FractPosition, CartPosition
from .cif import CifLoop
from .utils import adp_to_matrix
from .errors import SymmetryError
from .globals_ import FRACTION_TOL, FRACTION_DENOMINATORS
from ._types import FloatArray

if TYPE_CHECKING:
    from .cif import CifBlock
    from .unitcell import UnitCell

__all__ = [
    "SymmetryOperation",
    "CellSymmetry",
]

_TERM_RE = re.compile(r"([+-]?\d*\.?\d*(?:/\d+)?)\*?([XYZ])")
_TRANSLATION_RE = re.compile(r"[+-]?\d*\.?\d+(?:/\d+)?")
_AXES = ("x", "y", "z")

_SYMOP_XYZ_KEYS = [
    "_space_group_symop.operation_xyz",
    "_space_group_symop_operation_xyz",
    "_symmetry_equiv.pos_as_xyz",
    "_symmetry_equiv_pos_as_xyz",
]
_SYMOP_ID_KEYS = [
    "_space_group_symop.id",
    "_space_group_symop_id",
    "_symmetry_equiv.id",
    "_symmetry_equiv_pos_site_id",
]
_SPACE_GROUP_NAME_KEYS = [
    "_space_group.name_h-m_alt",
    "_space_group.name_H-M_full",
    "_symmetry_space_group_name_H-M",
    "_space_group_name_H-M_alt",
]
_SPACE_GROUP_NUMBER_KEYS = [
    "_space_group.it_number",
    "_space_group.IT_number",
    "_symmetry_Int_Tables_number",
    "_space_group_IT_number",
]


def _parse_number(string: str) -> float:
    if "/" in string:
        num, den = string.split("/")
        return float(num) / float(den)
    return float(string)


def _format_fraction(value: float) -> str:
    """Format a number as an integer or a fraction over 2, 3, 4 or 6
    if it is close to one, else as a decimal. Values close to zero give
    an empty string."""

    if abs(value) < FRACTION_TOL:
        return ""
    sign = "-" if value < 0 else ""
    value = abs(value)
    if abs(value - round(value)) < FRACTION_TOL:
        return sign + str(round(value))
    for den in FRACTION_DENOMINATORS:
        num = round(value * den)
        if abs(value * den - num) < FRACTION_TOL:
            return sign + ("1" if num == den else f"{num}/{den}")
    return sign + str(value)


class SymmetryOperation:
    """Symmetry operation ``p -> R p + t`` on fractional coordinates.

    Parameters
    ----------
    instruction : str
        Operation in the CIF notation, e.g. ``-x+1/2,y,-z`` (case and
        whitespace are ignored).

    Attributes
    ----------
    rot_matrix : :class:`numpy.ndarray`
        3x3 rotation matrix R.
    trans_vector : :class:`numpy.ndarray`
        Translation vector t.

    Raises
    ------
    SymmetryError
        If the instruction does not have three components.
    """

    def __init__(self, instruction: str):
        self.rot_matrix, self.trans_vector = self._parse_instruction(instruction)

    @staticmethod
    def _parse_instruction(instruction: str) -> Tuple[FloatArray, FloatArray]:
        components = [
            re.sub(r"\s+", "", part).upper() for part in str(instruction).split(",")
        ]
        if len(components) != 3:
            raise SymmetryError(
                "Symmetry operation must have exactly three components, "
                f"got '{instruction}'"
            )

        matrix = np.zeros((3, 3), dtype=np.float64)
        vector = np.zeros(3, dtype=np.float64)
        for i, component in enumerate(components):
            for coefficient, axis in _TERM_RE.findall(component):
                if coefficient in ("", "+"):
                    coefficient = 1.0
                elif coefficient == "-":
                    coefficient = -1.0
                else:
                    coefficient = _parse_number(coefficient)
                matrix[i, "XYZ".index(axis)] = coefficient

            remainder = _TERM_RE.sub("", component)
            for term in _TRANSLATION_RE.findall(remainder):
                vector[i] += _parse_number(term)

        return matrix, vector

    @classmethod
    def from_cif(cls, cif_block: CifBlock, index: int) -> SymmetryOperation:
        """Operation in row ``index`` of the symmetry operation loop. A
        single operation stored as a plain value is row 0.

        Raises
        ------
        MissingKeyError
            If the block has no symmetry operations.
        IndexError
            If the row does not exist.
        """
        entry = cif_block.get(
            ["_space_group_symop", "_symmetry_equiv", "_symmetry_equiv_pos"] + _SYMOP_XYZ_KEYS
        )
        if not isinstance(entry, CifLoop):
            if index != 0:
                raise IndexError(
                    f"Index {index} out of range, the block has a single symmetry operation"
                )
            return cls(entry)
        return cls(entry.get_index(_SYMOP_XYZ_KEYS, index))

    def apply_to_point(self, point: Sequence[float]) -> FloatArray:
        return self.rot_matrix @ np.asarray(point, dtype=np.float64) + self.trans_vector

    def apply_to_atom(self, atom: Atom, unit_cell: Optional[UnitCell] = None) -> Atom:
        """Return a transformed copy of ``atom``. Anisotropic
        displacement tensors transform as R U Rᵀ. Atoms with Cartesian
        positions are converted to fractional coordinates with
        ``unit_cell`` first.

        Raises
        ------
        SymmetryError
            If the atom has a Cartesian position and no unit cell is
            given.
        """

        position = atom.position
        if isinstance(position, CartPosition):
            if unit_cell is None:
                raise SymmetryError(
                    f"Atom {atom.label} has a Cartesian position, a unit cell "
                    "is needed to apply a symmetry operation"
                )
            position = position.to_fractional(unit_cell)

        new_position = FractPosition(*self.apply_to_point(position.coords))

        adp = None
        if isinstance(atom.adp, UAnisoADP):
            u = self.rot_matrix @ atom.adp.to_matrix() @ self.rot_matrix.T
            adp = UAnisoADP(u[0, 0], u[1, 1], u[2, 2], u[0, 1], u[0, 2], u[1, 2])
        elif isinstance(atom.adp, UIsoADP):
            adp = UIsoADP(atom.adp.uiso)

        return Atom(atom.label, atom.atom_type, new_position, adp, atom.disorder_group)

    def apply_to_atoms(self, atoms: Sequence[Atom], unit_cell: Optional[UnitCell] = None) -> List[Atom]:
        return [self.apply_to_atom(atom, unit_cell) for atom in atoms]

    def copy(self) -> SymmetryOperation:
        new = SymmetryOperation("x,y,z")
        new.rot_matrix = self.rot_matrix.copy()
        new.trans_vector = self.trans_vector.copy()
        return new

    def is_identity(self) -> bool:
        return (
            np.allclose(self.rot_matrix, np.identity(3), rtol=0, atol=1e-10)
            and np.allclose(self.trans_vector, 0, rtol=0, atol=1e-10)
        )

    def to_symmetry_string(self, additional_translation: Optional[Sequence[float]] = None) -> str:
        """Write the operation in the ``x,y,z`` notation, e.g.
        ``1/2-x,y,-z``. Coefficients and translations close to simple
        fractions are written as fractions.

        Parameters
        ----------
        additional_translation : array_like, optional
            Translation added to the operation's own translation.
        """

        translation = self.trans_vector
        if additional_translation is not None:
            translation = translation + np.asarray(additional_translation, dtype=np.float64)

        components = []
        for i in range(3):
            expression = ""
            for j, axis in enumerate(_AXES):
                coefficient = self.rot_matrix[i, j]
                if abs(coefficient) <= 1e-10:
                    continue
                if abs(abs(coefficient) - 1) < 1e-10:
                    term = axis
                else:
                    term = _format_fraction(abs(coefficient)) + axis
                if coefficient < 0:
                    expression += "-" + term
                elif expression:
                    expression += "+" + term
                else:
                    expression = term

            if not expression:
                expression = "0"

            if abs(translation[i]) > 1e-10:
                shift = _format_fraction(translation[i])
                if expression == "0":
                    expression = shift
                elif expression.startswith("-"):
                    expression = shift + expression
                else:
                    expression = shift + "+" + expression
            components.append(expression)

        return ",".join(components)

    def __repr__(self):
        return f"{self.__class__.__name__}({self.to_symmetry_string()!r})"


class CellSymmetry:
    """All symmetry operations of a space group.

    Parameters
    ----------
    space_group_name : str
        Hermann-Mauguin symbol.
    space_group_number : int
        International Tables number, 0 if unknown.
    symmetry_operations : list of :class:`SymmetryOperation`
        The operations.
    operation_ids : dict, optional
        Maps symmetry operation ids (as used in symmetry codes) to the
        index of the operation. Defaults to ids ``"1"``, ``"2"``, ...

    Attributes
    ----------
    identity_sym_op_id : str or None
        Id of the identity operation, if there is one.
    """

    def __init__(
            self,
            space_group_name: str,
            space_group_number: int,
            symmetry_operations: List[SymmetryOperation],
            operation_ids: Optional[Dict[str, int]] = None
    ):
        self.space_group_name = space_group_name
        self.space_group_number = space_group_number
        self.symmetry_operations = symmetry_operations
        if operation_ids is None:
            operation_ids = {str(i + 1): i for i in range(len(symmetry_operations))}
        self.operation_ids = operation_ids
        self.identity_sym_op_id = next(
            (op_id for op_id, i in operation_ids.items()
             if symmetry_operations[i].is_identity()),
            None
        )

    def generate_equivalent_positions(self, point: Sequence[float]) -> List[FloatArray]:
        """Apply every symmetry operation to a fractional ``point``.

        Parameters
        ----------
        point : array_like
            Fractional coordinates.

        Returns
        -------
        list of :class:`numpy.ndarray`
            One position per operation, in the order of
            ``symmetry_operations``. Positions are not wrapped into the
            unit cell.
        """
        return [op.apply_to_point(point) for op in self.symmetry_operations]

    def parse_position_code(self, code: str) -> Tuple[SymmetryOperation, FloatArray]:
        """Resolve a symmetry code ``<id>_abc`` into the operation and
        the lattice translation (each digit minus 5). A code without a
        valid translation part is taken as an operation id with zero
        translation.

        Raises
        ------
        SymmetryError
            If the operation id is unknown.
        """

        code = str(code)
        op_id, _, digits = code.rpartition("_")
        if op_id and len(digits) == 3 and digits.isdigit():
            translation = np.array([int(d) - 5 for d in digits], dtype=np.float64)
        else:
            op_id = code
            translation = np.zeros(3, dtype=np.float64)

        if op_id not in self.operation_ids:
            raise SymmetryError(
                f"Invalid symmetry operation ID in string {code}: {op_id}, "
                'expecting string format "<symOpId>_abc". Known IDs are: '
                f"{', '.join(self.operation_ids)}"
            )
        return self.symmetry_operations[self.operation_ids[op_id]], translation

    def apply_symmetry(
            self,
            code: str,
            atoms: Union[Atom, Sequence[Atom]],
            unit_cell: Optional[UnitCell] = None
    ) -> Union[Atom, List[Atom]]:
        """Apply the operation and lattice translation given by a
        symmetry code to one atom or a list of atoms, returning new
        atoms."""

        sym_op, translation = self.parse_position_code(code)
        if isinstance(atoms, Atom):
            new_atoms = [sym_op.apply_to_atom(atoms, unit_cell)]
        else:
            new_atoms = sym_op.apply_to_atoms(atoms, unit_cell)

        for atom in new_atoms:
            atom.position.coords += translation

        if isinstance(atoms, Atom):
            return new_atoms[0]
        return new_atoms

    @classmethod
    def from_cif(cls, cif_block: CifBlock) -> CellSymmetry:
        """Read the space group and its operations from a CIF block. A
        single operation stored as a plain value gives a group with one
        operation. Without any operations a warning is issued and only
        the identity is used."""

        name = cif_block.get(_SPACE_GROUP_NAME_KEYS, "Unknown")
        number = cif_block.get(_SPACE_GROUP_NUMBER_KEYS, 0)
        entry = cif_block.get(
            ["_space_group_symop", "_symmetry_equiv", "_symmetry_equiv_pos"] + _SYMOP_XYZ_KEYS,
            None
        )

        if entry is None:
            warnings.warn("No symmetry operations found in CIF block, will use P1")
            return cls(name, number, [SymmetryOperation("x,y,z")])

        if not isinstance(entry, CifLoop):
            return cls(name, number, [SymmetryOperation(entry)])

        operations = [SymmetryOperation(op) for op in entry.get(_SYMOP_XYZ_KEYS)]
        ids = entry.get(_SYMOP_ID_KEYS, None)
        operation_ids = None
        if ids is not None:
            operation_ids = {str(op_id): i for i, op_id in enumerate(ids)}
        return cls(name, number, operations, operation_ids)

    def __repr__(self):
        return (
            f"{self.__class__.__name__}({self.space_group_name!r}, "
            f"{self.space_group_number}, n_operations={len(self.symmetry_operations)})"
        )
