import numpy as np
import pytest
import ortepcif
from ortepcif import Bond, HBond

_HEADER = (
    'test\n_cell_length_a 10\n_cell_length_b 10\n_cell_length_c 10\n'
    '_cell_angle_alpha 90\n_cell_angle_beta 90\n_cell_angle_gamma 90\n'
    "loop_\n_space_group_symop_id\n_space_group_symop_operation_xyz\n1 'x,y,z'\n2 '-x,-y,-z'\n"
)

_ATOM_SITE = (
    'loop_\n_atom_site_label\n_atom_site_type_symbol\n_atom_site_fract_x\n'
    '_atom_site_fract_y\n_atom_site_fract_z\n_atom_site_disorder_group\n'
    'C1 C 0.10 0.10 0.10 .\n'
    'C2 C 0.25 0.10 0.10 1\n'
    'C3 C 0.25 0.25 0.10 2\n'
    'X1 ? . . . .\n'
)


def _block(extra=''):
    return ortepcif.CifBlock(_HEADER + _ATOM_SITE + extra)


def test_sample_structure(sample_structure):
    labels = [atom.label for atom in sample_structure.atoms]
    if labels != ['C1', 'O1', 'N1', 'H1', 'H2']:
        pytest.fail(f'Dummy atom Q1 should be left out, got atoms {labels}')
    if len(sample_structure.bonds) != 5 or len(sample_structure.hbonds) != 2:
        pytest.fail('sample.cif has 5 bonds and 2 H-bonds')
    bond = sample_structure.bonds[-1]
    if bond.atom2_site_symmetry != '3_556' or not np.isclose(bond.bond_length_su, 0.003):
        pytest.fail(f'Unexpected symmetry bond {bond}')
    hbond = sample_structure.hbonds[0]
    if hbond.acceptor_atom_symmetry != '2_545' or not np.isclose(hbond.donor_acceptor_distance_su, 0.002):
        pytest.fail(f'Unexpected H-bond {hbond}')
    if not np.isnan(hbond.hbond_angle_su):
        pytest.fail('An angle without su should have a NaN su')
    if not np.allclose(sample_structure.cell.cellpar, [5.565, 7.202, 9.318, 90, 101.34, 90]):
        pytest.fail(f'Unexpected cell {sample_structure.cell}')


def test_sample_connected_groups(sample_structure):
    groups = sample_structure.connected_groups
    if len(groups) != 1:
        pytest.fail(f'sample.cif has one connected group, got {len(groups)}')
    group = groups[0]
    if len(group.atoms) != 5 or len(group.bonds) != 4 or len(group.hbonds) != 1:
        pytest.fail(
            'Group should have 5 atoms, 4 bonds without symmetry and the one '
            f'H-bond without symmetry, got {len(group.atoms)}, {len(group.bonds)}, '
            f'{len(group.hbonds)}'
        )


def test_atoms_from_cif():
    structure = ortepcif.CrystalStructure.from_cif(_block())
    groups = [atom.disorder_group for atom in structure.atoms]
    if groups != [0, 1, 2]:
        pytest.fail(f'Disorder groups should be [0, 1, 2], got {groups}')
    c2 = structure.get_atom_by_label('C2')
    cart = c2.position.to_cartesian(structure.cell)
    if not isinstance(cart, ortepcif.CartPosition) or not np.allclose(list(cart), [2.5, 1.0, 1.0]):
        pytest.fail(f'Unexpected Cartesian position of C2: {cart}')


def test_get_atom_by_label(make_structure):
    structure = make_structure([
        ('C1', 'C', (0, 0, 0), 0),
        ('c1', 'C', (0.5, 0, 0), 0),
        ('O1', 'O', (0.1, 0, 0), 0),
    ])
    if structure.get_atom_by_label('c1') is not structure.atoms[1]:
        pytest.fail('Exact label match should be preferred')
    if structure.get_atom_by_label('o1') is not structure.atoms[2]:
        pytest.fail('Label lookup should fall back to a case-insensitive match')
    with pytest.raises(ortepcif.MissingKeyError, match='available are: C1, c1, O1'):
        structure.get_atom_by_label('N1')


def test_connected_groups_merge(make_structure):
    specs = [
        ('A1', 'C', (0.1, 0.1, 0.1), 0),
        ('A2', 'C', (0.2, 0.1, 0.1), 0),
        ('B1', 'C', (0.5, 0.5, 0.5), 0),
        ('B2', 'C', (0.6, 0.5, 0.5), 0),
        ('E1', 'O', (0.8, 0.8, 0.8), 0),
    ]
    separate = make_structure(specs, [Bond('A1', 'A2'), Bond('B1', 'B2'), Bond('A2', 'B1', atom2_site_symmetry='2_555')])
    sizes = sorted(len(g.atoms) for g in separate.connected_groups)
    if sizes != [1, 2, 2]:
        pytest.fail(f'Bonds with symmetry should not join groups, got group sizes {sizes}')

    merged = make_structure(specs, [Bond('A1', 'A2'), Bond('B1', 'B2'), Bond('A2', 'B1')])
    groups = sorted(merged.connected_groups, key=lambda g: len(g.atoms))
    if [len(g.atoms) for g in groups] != [1, 4] or len(groups[1].bonds) != 3:
        pytest.fail('A bond between two groups should merge them')
    if {a.label for a in groups[1].atoms} != {'A1', 'A2', 'B1', 'B2'}:
        pytest.fail('Merged group has the wrong atoms')


def test_connected_groups_hbonds(make_structure):
    specs = [
        ('N1', 'N', (0.1, 0.1, 0.1), 0),
        ('H1', 'H', (0.2, 0.1, 0.1), 0),
        ('O1', 'O', (0.4, 0.1, 0.1), 0),
        ('C1', 'C', (0.5, 0.1, 0.1), 0),
        ('O2', 'O', (0.1, 0.4, 0.1), 0),
    ]
    hbonds = [HBond('N1', 'H1', 'O1'), HBond('N1', 'H1', 'O2'), HBond('N1', 'H1', 'O1', acceptor_atom_symmetry='2_555')]
    structure = make_structure(specs, [Bond('N1', 'H1'), Bond('O1', 'C1')], hbonds)
    by_label = {g.atoms[0].label: g for g in structure.connected_groups}
    if len(by_label['N1'].hbonds) != 2:
        pytest.fail('Donor group should hold both H-bonds without symmetry')
    if by_label['O1'].hbonds != [hbonds[0]]:
        pytest.fail('Group of a bonded acceptor should hold its H-bond')
    if by_label['O2'].hbonds:
        pytest.fail('An unbonded acceptor should not get the H-bond')
    if len(structure.connected_groups) != 3:
        pytest.fail('H-bonds should not join groups')


def test_every_atom_in_one_group(sample_structure):
    labels = [a.label for g in sample_structure.connected_groups for a in g.atoms]
    if sorted(labels) != sorted(a.label for a in sample_structure.atoms):
        pytest.fail('Connected groups should partition the atoms')


def test_bonds_to_centroids_and_unknown_labels_dropped():
    bonds = (
        'loop_\n_geom_bond_atom_site_label_1\n_geom_bond_atom_site_label_2\n'
        '_geom_bond_distance\n_geom_bond_site_symmetry_2\n'
        'C1 C2 1.5 .\nCg1 C1 2.0 .\nC2 ? 1.0 .\nC2 C3 1.5 2_555\n'
    )
    structure = ortepcif.CrystalStructure.from_cif(_block(bonds))
    pairs = [(b.atom1_label, b.atom2_label, b.atom2_site_symmetry) for b in structure.bonds]
    if pairs != [('C1', 'C2', '.'), ('C2', 'C3', '2_555')]:
        pytest.fail(f'Unexpected bonds {pairs}')


@pytest.mark.parametrize('label', ['Cg1', 'CNT2', 'cg1', 'cnt1', 'cG3', 'Cnt4'])
def test_centroid_labels_any_case(label):
    bonds = (
        'loop_\n_geom_bond_atom_site_label_1\n_geom_bond_atom_site_label_2\n'
        '_geom_bond_distance\n_geom_bond_site_symmetry_2\n'
        f'C1 C2 1.5 .\n{label} C1 2.0 .\n'
    )
    structure = ortepcif.CrystalStructure.from_cif(_block(bonds))
    if len(structure.bonds) != 1:
        pytest.fail(f'Bond to centroid {label} should be dropped, got {structure.bonds}')


def test_bond_site_symmetry_1_equal_to_2():
    bonds = (
        'loop_\n_geom_bond_atom_site_label_1\n_geom_bond_atom_site_label_2\n'
        '_geom_bond_distance\n_geom_bond_site_symmetry_1\n_geom_bond_site_symmetry_2\n'
        'C1 C2 1.5 2_555 2_555\n'
    )
    structure = ortepcif.CrystalStructure.from_cif(_block(bonds))
    if structure.bonds[0].atom2_site_symmetry != '.':
        pytest.fail('Equal site symmetries on both atoms should count as no symmetry')


@pytest.mark.parametrize(
    'bond_row, message',
    [
        ('C1 C9 1.5 .', 'Non-existent atoms in bond: C1 - C9'),
        ('C1 C2 1.5 9_555', 'invalid symmetry operation: 9_555'),
    ]
)
def test_invalid_bonds(bond_row, message):
    bonds = (
        'loop_\n_geom_bond_atom_site_label_1\n_geom_bond_atom_site_label_2\n'
        '_geom_bond_distance\n_geom_bond_site_symmetry_2\n' + bond_row + '\n'
    )
    with pytest.raises(ortepcif.StructureError, match=message):
        ortepcif.CrystalStructure.from_cif(_block(bonds))


def test_invalid_hbond():
    hbonds = (
        'loop_\n_geom_hbond_atom_site_label_D\n_geom_hbond_atom_site_label_H\n'
        '_geom_hbond_atom_site_label_A\n_geom_hbond_site_symmetry_A\nC1 H7 C3 .\n'
    )
    with pytest.raises(ortepcif.StructureError, match='non-existent atom\\(s\\): H7'):
        ortepcif.CrystalStructure.from_cif(_block(hbonds))


def test_no_valid_atoms():
    block = ortepcif.CifBlock(
        _HEADER + 'loop_\n_atom_site_label\n_atom_site_fract_x\n_atom_site_fract_y\n'
        '_atom_site_fract_z\nC1 . . .\n'
    )
    with pytest.raises(ortepcif.StructureError, match='no valid atoms'):
        ortepcif.CrystalStructure.from_cif(block)


def test_invalid_cell():
    block = ortepcif.CifBlock(
        'test\n_cell_length_a 10\n_cell_length_b ?\n_cell_angle_alpha 90\n'
        '_cell_angle_beta 90\n_cell_angle_gamma 90\n'
    )
    with pytest.raises(ortepcif.StructureError, match='b, c'):
        ortepcif.UnitCell.from_cif(block)


def test_unit_cell_validation_and_update(cubic_cell):
    with pytest.raises(ortepcif.StructureError):
        ortepcif.UnitCell(-1, 10, 10, 90, 90, 90)
    with pytest.raises(ortepcif.StructureError):
        ortepcif.UnitCell(10, 10, 10, 90, 180, 90)
    cubic_cell.a = 20
    if not np.isclose(cubic_cell.fract_to_cart_matrix[0, 0], 20):
        pytest.fail('Changing a cell parameter should update the matrix')
    if not np.allclose(cubic_cell.cart_to_fract_matrix @ cubic_cell.fract_to_cart_matrix, np.eye(3)):
        pytest.fail('Cartesian to fractional matrix should invert the fractional to Cartesian one')
    with pytest.raises(ortepcif.StructureError):
        cubic_cell.gamma = 0


def test_dummy_atoms():
    block = ortepcif.CifBlock(
        _HEADER + 'loop_\n_atom_site_label\n_atom_site_fract_x\n_atom_site_fract_y\n'
        '_atom_site_fract_z\n_atom_site_calc_flag\n'
        'C1 0.1 0.1 0.1 d\nC2 0.2 0.2 0.2 dum\nC3 ? 0.3 0.3 d\n. 0.4 0.4 0.4 d\n'
    )
    for index in (1, 2, 3):
        with pytest.raises(ortepcif.DummyAtomError):
            ortepcif.Atom.from_cif(block, index)
    atom = ortepcif.Atom.from_cif(block, label='C1')
    if atom.atom_type != 'C' or atom.disorder_group != 0:
        pytest.fail(f'Element should be inferred from the label, got {atom}')


def test_cartesian_positions(data_dir):
    with open(str(data_dir / 'multi.cif')) as f:
        block = ortepcif.CIF(f.read()).get_block(1)
    with pytest.warns(UserWarning):
        structure = ortepcif.CrystalStructure.from_cif(block)
    fe1 = structure.atoms[0]
    if not isinstance(fe1.position, ortepcif.CartPosition) or fe1.adp is not None:
        pytest.fail(f'Fe1 should have a Cartesian position and no ADP, got {fe1}')
