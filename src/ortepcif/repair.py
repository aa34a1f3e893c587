"""Heuristics repairing common inconsistencies in CIF blocks written by
refinement programs: atom labels in the displacement parameter and bond
tables which differ from the ``_atom_site`` labels in case, brackets or
suffixes, and symmetry codes which are not in the ``<id>_abc`` form.

All functions modify the loops of the block in place. Nothing is raised
for labels or codes that cannot be resolved, these are left unchanged.
"""

from __future__ import annotations

import re
import warnings
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from .cif import CifLoop

if TYPE_CHECKING:
    from .cif import CifBlock

__all__ = [
    "normalize_atom_label",
    "create_label_map",
    "reconcile_atom_labels",
    "atom_labels_match",
    "guess_symmetry_operation",
    "reconcile_symmetry_operations",
    "try_to_fix_cif_block",
]

_BRACKETS_RE = re.compile(r"[()\[\]{}]")
_SUFFIX_RES = (
    re.compile(r"\^[a-zA-Z1-9]+$"),
    re.compile(r"_[a-zA-Z1-9]+$"),
    re.compile(r"_\$\d+$"),
)
_CANONICAL_SYMOP_RE = re.compile(r"^\d+_\d{3}$")
_SEPARATED_SYMOP_RE = re.compile(r"^-?([^\s\-_.]+)[\s\-.](\d{3})$")
_DIGITS_SYMOP_RE = re.compile(r"^\d{5,6}$")


def normalize_atom_label(label: str, remove_suffixes: bool = True) -> str:
    """Upper case ``label`` and remove brackets. With
    ``remove_suffixes``, trailing ``^A``, ``_1`` and ``_$1`` style
    annotations are removed as well.

    Raises
    ------
    ValueError
        If the label is empty or nothing remains after normalisation.

    Examples
    --------
    >>> normalize_atom_label("H(2)a")
    'H2A'
    >>> normalize_atom_label("C1_$1")
    'C1'
    """

    if label is None or label == "":
        raise ValueError("Empty atom label")

    normalized = _BRACKETS_RE.sub("", str(label).upper())
    if remove_suffixes:
        for suffix_re in _SUFFIX_RES:
            normalized = suffix_re.sub("", normalized)

    if not normalized:
        raise ValueError(f'Label "{label}" normalizes to empty string')
    return normalized


def create_label_map(labels: Sequence[str], remove_suffixes: bool = True) -> Dict[str, str]:
    """Map normalised labels to the original ones. Normalised forms
    shared by several labels are left out with a warning, as are labels
    that cannot be normalised."""

    originals_of: Dict[str, List[str]] = {}
    for label in labels:
        try:
            normalized = normalize_atom_label(label, remove_suffixes)
        except ValueError as err:
            warnings.warn(f"Skipping invalid label: {err}")
            continue
        originals_of.setdefault(normalized, []).append(label)

    label_map = {}
    for normalized, originals in originals_of.items():
        if len(originals) == 1:
            label_map[normalized] = originals[0]
        else:
            warnings.warn(
                f"Multiple labels map to {normalized}: "
                f"{', '.join(str(o) for o in originals)}. Skipping mapping."
            )
    return label_map


def reconcile_atom_labels(
        loop: CifLoop,
        column: str,
        reference_labels: Sequence[str],
        remove_suffixes: bool = True
) -> None:
    """Replace the labels in ``column`` of ``loop`` by the reference
    label with the same normalised form. Labels without a unique match
    are kept."""

    label_map = create_label_map(reference_labels, remove_suffixes)
    reconciled = []
    for value in loop.get(column):
        try:
            normalized = normalize_atom_label(value, remove_suffixes)
        except ValueError:
            reconciled.append(value)
            continue
        reconciled.append(label_map.get(normalized, value))
    loop.data[column] = reconciled


def atom_labels_match(label1: str, label2: str, remove_suffixes: bool = True) -> bool:
    return (
        normalize_atom_label(label1, remove_suffixes)
        == normalize_atom_label(label2, remove_suffixes)
    )


def _distance_from_555(digits: str) -> int:
    return sum(abs(int(d) - 5) for d in digits)


def guess_symmetry_operation(code: Any) -> Any:
    """Bring a symmetry code into the ``<id>_abc`` form.

    Handled forms are ``<id>_abc`` (unchanged), ``<id>`` and ``abc``
    separated by a space, hyphen or dot, and runs of five or six digits
    such as ``56503`` or ``20555``. For the latter the half whose digits
    are closer to ``555`` is taken as the translation. Missing codes
    give ``.``, anything else is returned as it is.

    Examples
    --------
    >>> guess_symmetry_operation("2 555")
    '2_555'
    >>> guess_symmetry_operation("56503")
    '3_565'
    >>> guess_symmetry_operation("20555")
    '2_555'
    """

    if code is None or code == "" or code == ".":
        return "."

    text = str(code).strip()
    if _CANONICAL_SYMOP_RE.match(text):
        return text

    match = _SEPARATED_SYMOP_RE.match(text)
    if match:
        op_id, translation = match.groups()
        sign = "-" if text.startswith("-") else ""
        return f"{sign}{op_id}_{translation}"

    if _DIGITS_SYMOP_RE.match(text):
        first, last = text[:3], text[-3:]
        if _distance_from_555(first) < _distance_from_555(last):
            # translation first, e.g. 56503
            return f"{int(text[3:])}_{first}"
        # id, a zero, then the translation, e.g. 20555
        return f"{int(text[:-4])}_{last}"

    return code


def reconcile_symmetry_operations(loop: CifLoop, column: str) -> None:
    loop.data[column] = [guess_symmetry_operation(v) for v in loop.get(column)]


def _available_key(loop: CifLoop, keys: Sequence[str]) -> Optional[str]:
    return next((key for key in keys if key in loop.header_lines), None)


def _reconcile_labels_of(loop: CifLoop, keys: Sequence[str], labels: Sequence[str]) -> None:
    key = _available_key(loop, keys)
    if key is not None:
        reconcile_atom_labels(loop, key, labels)


def _reconcile_symmetry_of(loop: CifLoop, keys: Sequence[str]) -> None:
    key = _available_key(loop, keys)
    if key is not None:
        reconcile_symmetry_operations(loop, key)


def try_to_fix_cif_block(
        cif_block: CifBlock,
        fix_adp_labels: bool = True,
        fix_bond_labels: bool = True,
        fix_bond_symmetry: bool = True
) -> None:
    """Repair a CIF block in place so that
    :meth:`CrystalStructure.from_cif <.crystal.CrystalStructure.from_cif>`
    can be retried after it failed.

    Parameters
    ----------
    cif_block : :class:`.cif.CifBlock`
        The block to repair.
    fix_adp_labels : bool, default True
        Match the labels of ``_atom_site_aniso`` to ``_atom_site``.
    fix_bond_labels : bool, default True
        Match the labels of ``_geom_bond`` and ``_geom_hbond`` to
        ``_atom_site``.
    fix_bond_symmetry : bool, default True
        Normalise the symmetry codes of ``_geom_bond`` and
        ``_geom_hbond``.
    """

    atom_site_labels = []
    if fix_adp_labels or fix_bond_labels:
        atom_site_labels = cif_block.get("_atom_site").get(["_atom_site.label", "_atom_site_label"])

    if fix_adp_labels:
        aniso = cif_block.get("_atom_site_aniso", None)
        if isinstance(aniso, CifLoop):
            _reconcile_labels_of(
                aniso, ["_atom_site_aniso.label", "_atom_site_aniso_label"], atom_site_labels
            )

    if not (fix_bond_labels or fix_bond_symmetry):
        return

    bond_loop = cif_block.get("_geom_bond", None)
    if isinstance(bond_loop, CifLoop):
        if fix_bond_labels:
            for n in ("1", "2"):
                _reconcile_labels_of(
                    bond_loop,
                    [f"_geom_bond.atom_site_label_{n}", f"_geom_bond_atom_site_label_{n}"],
                    atom_site_labels
                )
        if fix_bond_symmetry:
            for n in ("1", "2"):
                _reconcile_symmetry_of(
                    bond_loop, [f"_geom_bond.site_symmetry_{n}", f"_geom_bond_site_symmetry_{n}"]
                )

    hbond_loop = cif_block.get("_geom_hbond", None)
    if isinstance(hbond_loop, CifLoop):
        if fix_bond_labels:
            for site in ("D", "H", "A"):
                _reconcile_labels_of(
                    hbond_loop,
                    [f"_geom_hbond.atom_site_label_{site.lower()}",
                     f"_geom_hbond_atom_site_label_{site}"],
                    atom_site_labels
                )
        if fix_bond_symmetry:
            _reconcile_symmetry_of(
                hbond_loop, ["_geom_hbond.site_symmetry_a", "_geom_hbond_site_symmetry_A"]
            )
