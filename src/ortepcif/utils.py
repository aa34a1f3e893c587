"""Miscellaneous utility functions: unit cell matrices, conversion of
displacement parameters between conventions, formatting of values with
standard uncertainties and element inference from atom labels.
"""

import math
import re
from typing import Optional, Sequence

import numpy as np
import numba

from .globals_ import NO_ESD_DECIMALS, TWO_LETTER_ELEMENTS, ONE_LETTER_ELEMENTS
from ._types import FloatArray

__all__ = [
    "cellpar_to_cell",
    "fract_to_cart_matrix",
    "adp_to_matrix",
    "matrix_to_adp",
    "ucif_to_ucart",
    "round_to_decimals",
    "format_value_esd",
    "infer_element_from_label",
]


@numba.njit(cache=True, fastmath=True)
def cellpar_to_cell(cellpar: FloatArray) -> FloatArray:
    """Convert conventional unit cell parameters a,b,c,α,β,γ into a 3x3
    :class:`numpy.ndarray` whose rows are the lattice vectors in
    orthogonal coordinates (a along x, b in the xy-plane).

    Parameters
    ----------
    cellpar : :class:`numpy.ndarray`
        Vector of six unit cell parameters in the canonical order
        a,b,c,α,β,γ, angles in degrees.

    Returns
    -------
    cell : :class:`numpy.ndarray`
        Unit cell represented as a 3x3 matrix in orthogonal coordinates.

    Raises
    ------
    ValueError
        If the angles do not describe a valid cell.
    """

    a, b, c, al, be, ga = cellpar
    eps = 2 * np.spacing(90)

    cos_alpha = 0.0 if abs(abs(al) - 90.0) < eps else np.cos(np.deg2rad(al))
    cos_beta = 0.0 if abs(abs(be) - 90.0) < eps else np.cos(np.deg2rad(be))
    cos_gamma = 0.0 if abs(abs(ga) - 90.0) < eps else np.cos(np.deg2rad(ga))

    if abs(ga - 90.0) < eps:
        sin_gamma = 1.0
    elif abs(ga + 90.0) < eps:
        sin_gamma = -1.0
    else:
        sin_gamma = np.sin(np.deg2rad(ga))

    cy = (cos_alpha - cos_beta * cos_gamma) / sin_gamma
    cz_sqr = 1.0 - cos_beta**2 - cy**2
    if cz_sqr < 0:
        raise ValueError("Could not create a unit cell from given parameters.")

    cell = np.zeros((3, 3), dtype=np.float64)
    cell[0, 0] = a
    cell[1, 0] = b * cos_gamma
    cell[1, 1] = b * sin_gamma
    cell[2, 0] = c * cos_beta
    cell[2, 1] = c * cy
    cell[2, 2] = c * np.sqrt(cz_sqr)
    return cell


def fract_to_cart_matrix(
        a: float,
        b: float,
        c: float,
        alpha: float,
        beta: float,
        gamma: float
) -> FloatArray:
    """Return the matrix M converting fractional coordinates into
    Cartesian coordinates (Å) via ``M @ fract``. The columns of M are the
    lattice vectors a, b, c.

    Parameters
    ----------
    a, b, c : float
        Cell lengths in Å.
    alpha, beta, gamma : float
        Cell angles in degrees.

    Returns
    -------
    :class:`numpy.ndarray`
        Upper triangular 3x3 transformation matrix.
    """
    cellpar = np.array([a, b, c, alpha, beta, gamma], dtype=np.float64)
    return np.ascontiguousarray(cellpar_to_cell(cellpar).T)


def adp_to_matrix(adp: Sequence[float]) -> FloatArray:
    """Symmetric 3x3 tensor from the six components U11, U22, U33,
    U12, U13, U23."""
    u11, u22, u33, u12, u13, u23 = adp
    return np.array([
        [u11, u12, u13],
        [u12, u22, u23],
        [u13, u23, u33],
    ], dtype=np.float64)


def matrix_to_adp(matrix: FloatArray) -> FloatArray:
    """Six independent components U11, U22, U33, U12, U13, U23 of a
    symmetric 3x3 tensor."""
    return np.array([
        matrix[0, 0], matrix[1, 1], matrix[2, 2],
        matrix[0, 1], matrix[0, 2], matrix[1, 2],
    ], dtype=np.float64)


def ucif_to_ucart(fract_to_cart: FloatArray, adp: Sequence[float]) -> FloatArray:
    """Convert an anisotropic displacement tensor from the CIF
    convention (U in the basis of the reciprocal cell lengths) into
    Cartesian coordinates.

    Parameters
    ----------
    fract_to_cart : :class:`numpy.ndarray`
        Fractional to Cartesian matrix of the unit cell, see
        :func:`fract_to_cart_matrix`.
    adp : array_like
        U11, U22, U33, U12, U13, U23 as given in the CIF.

    Returns
    -------
    :class:`numpy.ndarray`
        U11, U22, U33, U12, U13, U23 of the Cartesian tensor.
    """

    m = np.asarray(fract_to_cart, dtype=np.float64)
    # Lengths of the reciprocal lattice vectors a*, b*, c*
    n = np.diag(np.linalg.norm(np.linalg.inv(m), axis=1))
    u_star = n @ adp_to_matrix(adp) @ n.T
    return matrix_to_adp(m @ u_star @ m.T)


def round_to_decimals(value: float, decimals: int) -> float:
    """Round ``value`` to ``decimals`` decimal places (negative values
    round to tens, hundreds, ...). Halves are rounded up."""
    factor = 10.0 ** decimals
    return math.floor(value * factor + 0.5) / factor


def format_value_esd(
        value: float,
        esd: Optional[float],
        no_esd_decimals: int = NO_ESD_DECIMALS
) -> str:
    """Format a value with its estimated standard deviation in the
    parenthesis notation used by CIF, e.g. ``123.456(7)``. The ESD is
    given one significant digit, or two if its leading digit is 1.

    Parameters
    ----------
    value : float
        The value to format.
    esd : float or None
        Estimated standard deviation. None, NaN, non-finite or
        non-positive values mean there is no ESD.
    no_esd_decimals : int, default 4
        Number of decimals used when there is no ESD.

    Returns
    -------
    str
        The formatted value.
    """

    if esd is None or not math.isfinite(esd) or esd <= 0:
        rounded = round_to_decimals(value, no_esd_decimals)
        return f"{rounded:.{no_esd_decimals}f}"

    order = math.floor(math.log10(esd))
    if esd * 10.0 ** -order < 2:
        order -= 1

    rounded = round_to_decimals(value, -order)
    if order < 0:
        esd_digits = math.floor(esd / 10.0 ** order + 0.5)
        return f"{rounded:.{-order}f}({esd_digits})"
    esd_rounded = round_to_decimals(esd, -order)
    return f"{rounded:.0f}({esd_rounded:.0f})"


_TWO_LETTER_RE = re.compile(
    "^(" + "|".join(sym.upper() for sym in TWO_LETTER_ELEMENTS) + ")"
)
_ONE_LETTER_RE = re.compile("^([" + ONE_LETTER_ELEMENTS + "])")


def infer_element_from_label(label: str) -> str:
    """Guess the element symbol from an atom label such as ``Fe1`` or
    ``C12A``. Two letter symbols are tried before single letter ones,
    so ``CA1`` is read as calcium.

    Raises
    ------
    ValueError
        If no element symbol starts the label.
    """

    if not label or not isinstance(label, str):
        raise ValueError(f"Invalid atom label: {label}")

    upper = label.upper()
    match = _TWO_LETTER_RE.match(upper)
    if match:
        symbol = match.group(1)
        return symbol[0] + symbol[1].lower()

    match = _ONE_LETTER_RE.match(upper)
    if match:
        return match.group(1)

    raise ValueError(f"Could not infer element type from atom label: {label}")
