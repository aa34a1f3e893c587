"""Command line interface printing a summary of the crystal structures
in CIF files.
"""

import argparse
import sys
import warnings
from pathlib import Path
from typing import Iterator, List

from .cif import CifBlock
from .crystal import CrystalStructure
from .io import read_cif_file, crystal_structure_from_cif_block
from .modifiers import BaseFilter, HydrogenFilter, DisorderFilter, SymmetryGrower
from .utils import format_value_esd
from .errors import ParseError

_CELL_SU_KEYS = {
    "a": ["_cell.length_a_su", "_cell_length_a_su"],
    "b": ["_cell.length_b_su", "_cell_length_b_su"],
    "c": ["_cell.length_c_su", "_cell_length_c_su"],
    "alpha": ["_cell.angle_alpha_su", "_cell_angle_alpha_su"],
    "beta": ["_cell.angle_beta_su", "_cell_angle_beta_su"],
    "gamma": ["_cell.angle_gamma_su", "_cell_angle_gamma_su"],
}


def _cif_paths(path: str) -> Iterator[Path]:
    path = Path(path)
    if path.is_dir():
        yield from sorted(p for p in path.rglob("*") if p.suffix.lower() == ".cif")
    else:
        yield path


def summarise(structure: CrystalStructure, cif_block: CifBlock) -> str:
    """Text summary of a structure read from ``cif_block``: block name,
    cell with ESDs, space group and the number of atoms, bonds, hydrogen
    bonds and connected groups."""

    cell = structure.cell
    cell_parts = [
        f"{name}={format_value_esd(getattr(cell, name), cif_block.get(keys, None))}"
        for name, keys in _CELL_SU_KEYS.items()
    ]
    symmetry = structure.symmetry
    lines = [
        f"data_{cif_block.data_block_name}",
        f"  cell: {', '.join(cell_parts)}",
        f"  space group: {symmetry.space_group_name} ({symmetry.space_group_number}), "
        f"{len(symmetry.symmetry_operations)} symmetry operations",
        f"  atoms: {len(structure.atoms)}, bonds: {len(structure.bonds)}, "
        f"H-bonds: {len(structure.hbonds)}, "
        f"connected groups: {len(structure.connected_groups)}",
    ]
    return "\n".join(lines)


def main():
    """Entry point for the ``ortep-cif-info`` command."""

    desc = "Print a summary of the crystal structures in CIF files: cell, " \
           "space group and the number of atoms, bonds and hydrogen bonds. " \
           "Disorder and hydrogen filters and symmetry growth can be " \
           "applied before counting."

    parser = argparse.ArgumentParser(prog="ortep-cif-info", description=desc)

    parser.add_argument('paths', type=str, nargs='+',
        help='(str) Paths to .cif files or folders.')
    parser.add_argument('--disorder', type=str, default=None,
        choices=list(DisorderFilter.MODES),
        help='(str) Disorder filter mode applied before counting.')
    parser.add_argument('--hydrogens', type=str, default=None,
        choices=list(HydrogenFilter.MODES),
        help='(str) Hydrogen filter mode applied before counting.')
    parser.add_argument('--grow', type=str, default=None,
        choices=list(SymmetryGrower.MODES),
        help='(str) Symmetry growth mode applied before counting.')
    parser.add_argument('--no_su', default=False, action='store_true',
        help='(flag) Do not split standard uncertainties from values.')
    parser.add_argument('--no_fix', default=False, action='store_true',
        help='(flag) Do not try to repair blocks that fail to read.')
    parser.add_argument('--supress_warnings', default=False, action='store_true',
        help='(flag) Do not show warnings encountered during reading.')

    kwargs = vars(parser.parse_args())

    if kwargs['supress_warnings']:
        warnings.simplefilter('ignore')

    modifiers: List[BaseFilter] = []
    if kwargs['disorder'] is not None:
        modifiers.append(DisorderFilter(kwargs['disorder']))
    if kwargs['hydrogens'] is not None:
        modifiers.append(HydrogenFilter(kwargs['hydrogens']))
    if kwargs['grow'] is not None:
        modifiers.append(SymmetryGrower(kwargs['grow']))

    n_read = 0
    for path in kwargs['paths']:
        for cif_path in _cif_paths(path):
            cif = read_cif_file(cif_path, split_su=not kwargs['no_su'])
            for block in cif:
                try:
                    structure = crystal_structure_from_cif_block(
                        block, try_fix=not kwargs['no_fix']
                    )
                except ParseError as err:
                    warnings.warn(f'"{cif_path}": {err}, skipping')
                    continue
                for modifier in modifiers:
                    structure = modifier.apply(structure)
                sys.stdout.write(summarise(structure, block) + "\n")
                n_read += 1

    if n_read == 0:
        sys.stderr.write("No structures could be read.\n")
        sys.exit(1)
