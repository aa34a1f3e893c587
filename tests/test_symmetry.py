import numpy as np
import pytest
import ortepcif
from ortepcif import SymmetryOperation


def test_parse_instruction():
    op = SymmetryOperation('-x, y+1/2, -z+1/2')
    if not np.allclose(op.rot_matrix, np.diag([-1, 1, -1])):
        pytest.fail(f'Unexpected rotation matrix\n{op.rot_matrix}')
    if not np.allclose(op.trans_vector, [0, 0.5, 0.5]):
        pytest.fail(f'Unexpected translation {op.trans_vector}')


@pytest.mark.parametrize(
    'instruction, rotation, translation',
    [
        ('X-Y, X, Z+1/6', [[1, -1, 0], [1, 0, 0], [0, 0, 1]], [0, 0, 1/6]),
        ('1/2-x,1/2+y,z', [[-1, 0, 0], [0, 1, 0], [0, 0, 1]], [0.5, 0.5, 0]),
        ('-y+0.25, x-0.75, -z', [[0, -1, 0], [1, 0, 0], [0, 0, -1]], [0.25, -0.75, 0]),
    ]
)
def test_parse_instruction_variants(instruction, rotation, translation):
    op = SymmetryOperation(instruction)
    if not np.allclose(op.rot_matrix, rotation) or not np.allclose(op.trans_vector, translation):
        pytest.fail(
            f'{instruction} parsed to\n{op.rot_matrix}\n{op.trans_vector}'
        )


def test_parse_instruction_invalid():
    with pytest.raises(ortepcif.SymmetryError):
        SymmetryOperation('x, y')


@pytest.mark.parametrize(
    'instruction, string',
    [
        ('x, y, z', 'x,y,z'),
        ('-x, y+1/2, -z+1/2', '-x,1/2+y,1/2-z'),
        ('x-y, x, z+1/6', 'x-y,x,1/6+z'),
        ('-x+2/3, -y+1/3, -z+1/3', '2/3-x,1/3-y,1/3-z'),
    ]
)
def test_to_symmetry_string(instruction, string):
    op = SymmetryOperation(instruction)
    written = op.to_symmetry_string()
    if written != string:
        pytest.fail(f'{instruction} was written as {written}, expected {string}')
    again = SymmetryOperation(written)
    if not np.allclose(again.rot_matrix, op.rot_matrix) or not np.allclose(again.trans_vector, op.trans_vector):
        pytest.fail(f'{written} does not parse back to the same operation')


def test_to_symmetry_string_additional_translation():
    written = SymmetryOperation('x,y,z').to_symmetry_string([1, 0, -1])
    if written != '1+x,y,-1+z':
        pytest.fail(f'Additional translation was not written correctly: {written}')


def test_identity_and_copy():
    op = SymmetryOperation('X, Y, Z')
    if not op.is_identity():
        pytest.fail('X, Y, Z should be the identity')
    copied = SymmetryOperation('-x,-y,-z').copy()
    copied.trans_vector[0] = 0.5
    if copied.is_identity() or copied.to_symmetry_string() != '1/2-x,-y,-z':
        pytest.fail('Copy should be an independent operation')


def test_apply_to_atom_transforms_adp():
    op = SymmetryOperation('-x, y+1/2, -z+1/2')
    adp = ortepcif.UAnisoADP(0.01, 0.02, 0.03, 0.001, 0.002, 0.003)
    atom = ortepcif.Atom('C1', 'C', ortepcif.FractPosition(0.1, 0.2, 0.3), adp, 1)
    new = op.apply_to_atom(atom)
    if not np.allclose(new.position.coords, [-0.1, 0.7, 0.2]):
        pytest.fail(f'Unexpected transformed position {new.position}')
    if not np.allclose(new.adp.components, [0.01, 0.02, 0.03, -0.001, 0.002, -0.003]):
        pytest.fail(f'ADP should transform as R U R^T, got {new.adp.components}')
    if new.label != 'C1' or new.disorder_group != 1 or new is atom:
        pytest.fail('Transformed atom should be a new atom with the same label and disorder group')
    if not np.allclose(atom.position.coords, [0.1, 0.2, 0.3]):
        pytest.fail('Original atom was modified')


def test_apply_to_cartesian_atom(cubic_cell):
    op = SymmetryOperation('-x, -y, -z')
    atom = ortepcif.Atom('Fe1', 'Fe', ortepcif.CartPosition(1.0, 2.0, 3.0))
    with pytest.raises(ortepcif.SymmetryError):
        op.apply_to_atom(atom)
    new = op.apply_to_atom(atom, cubic_cell)
    if not isinstance(new.position, ortepcif.FractPosition):
        pytest.fail('Symmetry generated atoms should have fractional positions')
    if not np.allclose(new.position.coords, [-0.1, -0.2, -0.3]):
        pytest.fail(f'Unexpected position {new.position}')


def test_cell_symmetry_from_cif(sample_block):
    symmetry = ortepcif.CellSymmetry.from_cif(sample_block)
    if symmetry.space_group_name != 'P 1 21/c 1' or symmetry.space_group_number != 14:
        pytest.fail(f'Unexpected space group {symmetry}')
    if len(symmetry.symmetry_operations) != 4:
        pytest.fail('P21/c has 4 symmetry operations')
    if symmetry.identity_sym_op_id != '1':
        pytest.fail(f'Identity should have id 1, got {symmetry.identity_sym_op_id}')


def test_cell_symmetry_without_operations(data_dir):
    with open(str(data_dir / 'multi.cif')) as f:
        block = ortepcif.CIF(f.read()).get_block(0)
    with pytest.warns(UserWarning, match='No symmetry operations'):
        symmetry = ortepcif.CellSymmetry.from_cif(block)
    if len(symmetry.symmetry_operations) != 1 or not symmetry.symmetry_operations[0].is_identity():
        pytest.fail('Without operations only the identity should be used')


@pytest.mark.parametrize(
    'code, op_index, translation',
    [
        ('3_556', 2, [0, 0, 1]),
        ('2_545', 1, [0, -1, 0]),
        ('1_555', 0, [0, 0, 0]),
        ('4', 3, [0, 0, 0]),
    ]
)
def test_parse_position_code(sample_block, code, op_index, translation):
    symmetry = ortepcif.CellSymmetry.from_cif(sample_block)
    op, shift = symmetry.parse_position_code(code)
    if op is not symmetry.symmetry_operations[op_index]:
        pytest.fail(f'{code} should refer to operation {op_index + 1}')
    if not np.allclose(shift, translation):
        pytest.fail(f'{code} should give translation {translation}, got {shift}')


def test_parse_position_code_unknown_id(sample_block):
    symmetry = ortepcif.CellSymmetry.from_cif(sample_block)
    with pytest.raises(ortepcif.SymmetryError, match='Known IDs are: 1, 2, 3, 4'):
        symmetry.parse_position_code('9_555')


def test_apply_symmetry(sample_structure):
    symmetry = sample_structure.symmetry
    c1 = sample_structure.get_atom_by_label('C1')
    new = symmetry.apply_symmetry('3_556', c1)
    if not np.allclose(new.position.coords, [-0.25, -0.12, 0.69]):
        pytest.fail(f'Unexpected position of C1 under 3_556: {new.position}')
    atoms = symmetry.apply_symmetry('2_545', sample_structure.atoms[:2])
    if len(atoms) != 2 or not np.allclose(atoms[1].position.coords, [-0.42, -0.29, 0.22]):
        pytest.fail(f'Unexpected positions under 2_545: {atoms}')
    if not np.allclose(c1.position.coords, [0.25, 0.12, 0.31]):
        pytest.fail('Applying symmetry should not modify the original atom')


def test_generate_equivalent_positions(inversion_symmetry):
    positions = inversion_symmetry.generate_equivalent_positions([0.1, 0.2, 0.3])
    if len(positions) != 2:
        pytest.fail(f'P-1 should give 2 positions, got {len(positions)}')
    if not np.allclose(positions[0], [0.1, 0.2, 0.3]):
        pytest.fail(f'Identity should keep the point, got {positions[0]}')
    if not np.allclose(positions[1], [-0.1, -0.2, -0.3]):
        pytest.fail(f'Inversion should negate the point, got {positions[1]}')


def test_symmetry_operation_from_cif(sample_block):
    op = SymmetryOperation.from_cif(sample_block, 1)
    if not np.allclose(op.rot_matrix, np.diag([-1, 1, -1])):
        pytest.fail(f'Second operation of P21/c should be a 2-fold screw, got {op}')


def test_symmetry_operation_from_cif_single_value():
    block = ortepcif.CifBlock("single\n_symmetry_equiv_pos_as_xyz '-x,-y,-z'\n")
    op = SymmetryOperation.from_cif(block, 0)
    if not np.allclose(op.rot_matrix, -np.eye(3)):
        pytest.fail(f'Single operation should be read from a plain value, got {op}')
    with pytest.raises(IndexError):
        SymmetryOperation.from_cif(block, 1)


def test_symmetry_operation_from_cif_missing():
    block = ortepcif.CifBlock('nothing\n_cell_length_a 10\n')
    with pytest.raises(ortepcif.MissingKeyError):
        SymmetryOperation.from_cif(block, 0)
