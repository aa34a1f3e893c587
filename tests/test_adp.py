import math

import numpy as np
import pytest
import ortepcif

_CELL = (
    '_cell_length_a 10\n_cell_length_b 10\n_cell_length_c 10\n'
    '_cell_angle_alpha 90\n_cell_angle_beta 90\n_cell_angle_gamma 90\n'
)


def _block(atom_site, aniso=''):
    return ortepcif.CifBlock('adp\n' + _CELL + atom_site + aniso)


_ATOM_SITE_TYPED = (
    'loop_\n_atom_site_label\n_atom_site_fract_x\n_atom_site_fract_y\n'
    '_atom_site_fract_z\n_atom_site_U_iso_or_equiv\n_atom_site_B_iso_or_equiv\n'
    '_atom_site_adp_type\n'
    'C1 0.1 0.1 0.1 0.02 . Uani\n'
    'C2 0.2 0.2 0.2 0.03 . Uiso\n'
    'C3 0.3 0.3 0.3 . 1.5 Biso\n'
    'C4 0.4 0.4 0.4 . . Bani\n'
    'C5 0.5 0.5 0.5 . . Uiso\n'
)

_ANISO = (
    'loop_\n_atom_site_aniso_label\n_atom_site_aniso_U_11\n_atom_site_aniso_U_22\n'
    '_atom_site_aniso_U_33\n_atom_site_aniso_U_12\n_atom_site_aniso_U_13\n'
    '_atom_site_aniso_U_23\n_atom_site_aniso_B_11\n_atom_site_aniso_B_22\n'
    '_atom_site_aniso_B_33\n_atom_site_aniso_B_12\n_atom_site_aniso_B_13\n'
    '_atom_site_aniso_B_23\n'
    'C1 0.01 0.02 0.03 0.001 0.002 0.003 . . . . . .\n'
    'C4 . . . . . . 1.0 2.0 3.0 0.1 0.2 0.3\n'
)


def test_adp_types_from_cif():
    block = _block(_ATOM_SITE_TYPED, _ANISO)

    c1 = ortepcif.adp_from_cif(block, 0)
    if not isinstance(c1, ortepcif.UAnisoADP):
        pytest.fail(f'Uani atom should get an anisotropic ADP, got {c1}')
    if not np.allclose(c1.components, [0.01, 0.02, 0.03, 0.001, 0.002, 0.003]):
        pytest.fail(f'Unexpected Uani components {c1.components}')

    c2 = ortepcif.adp_from_cif(block, 1)
    if not isinstance(c2, ortepcif.UIsoADP) or not math.isclose(c2.uiso, 0.03):
        pytest.fail(f'Uiso atom should get Uiso 0.03, got {c2}')

    c3 = ortepcif.adp_from_cif(block, 2)
    if not isinstance(c3, ortepcif.UIsoADP) or not math.isclose(c3.uiso, 1.5 / (8 * math.pi ** 2)):
        pytest.fail(f'Biso should be converted to Uiso, got {c3}')

    c4 = ortepcif.adp_from_cif(block, 3)
    expected = np.array([1.0, 2.0, 3.0, 0.1, 0.2, 0.3]) / (8 * math.pi ** 2)
    if not isinstance(c4, ortepcif.UAnisoADP) or not np.allclose(c4.components, expected):
        pytest.fail(f'Bani values should be converted to U values, got {c4}')

    if ortepcif.adp_from_cif(block, 4) is not None:
        pytest.fail('An atom without ADP values should have no ADP')


def test_adp_without_type():
    atom_site = (
        'loop_\n_atom_site_label\n_atom_site_fract_x\n_atom_site_fract_y\n'
        '_atom_site_fract_z\n_atom_site_U_iso_or_equiv\n'
        'C1 0.1 0.1 0.1 0.02\nC2 0.2 0.2 0.2 0.04\nC3 0.3 0.3 0.3 ?\n'
    )
    block = _block(atom_site, _ANISO)
    if not isinstance(ortepcif.adp_from_cif(block, 0), ortepcif.UAnisoADP):
        pytest.fail('Atoms in the aniso loop should be anisotropic without an ADP type')
    c2 = ortepcif.adp_from_cif(block, 1)
    if not isinstance(c2, ortepcif.UIsoADP) or not math.isclose(c2.uiso, 0.04):
        pytest.fail(f'Atoms outside the aniso loop should use Uiso, got {c2}')
    if ortepcif.adp_from_cif(block, 2) is not None:
        pytest.fail('A ? Uiso should give no ADP')


def test_uani_without_aniso_loop():
    block = _block(_ATOM_SITE_TYPED)
    with pytest.raises(ortepcif.ADPError, match='no atom_site_aniso loop'):
        ortepcif.adp_from_cif(block, 0)


def test_uani_missing_from_aniso_loop():
    aniso = (
        'loop_\n_atom_site_aniso_label\n_atom_site_aniso_U_11\n_atom_site_aniso_U_22\n'
        '_atom_site_aniso_U_33\n_atom_site_aniso_U_12\n_atom_site_aniso_U_13\n'
        '_atom_site_aniso_U_23\nC9 0.01 0.01 0.01 0 0 0\n'
    )
    block = _block(_ATOM_SITE_TYPED, aniso)
    with pytest.raises(ortepcif.ADPError, match='C1'):
        ortepcif.adp_from_cif(block, 0)


def test_sample_adps(sample_block):
    c1 = ortepcif.adp_from_cif(sample_block, 0)
    if not np.allclose(c1.components, [0.021, 0.026, 0.028, 0.001, 0.004, -0.002]):
        pytest.fail(f'Aniso columns in a different order were not matched, got {c1.components}')
    h1 = ortepcif.adp_from_cif(sample_block, 3)
    if not isinstance(h1, ortepcif.UIsoADP) or not math.isclose(h1.uiso, 0.035):
        pytest.fail(f'H1 should have Uiso 0.035, got {h1}')


def test_ellipsoid_matrix(cubic_cell):
    adp = ortepcif.UAnisoADP(0.02, 0.01, 0.03, 0.002, -0.001, 0.003)
    matrix = adp.get_ellipsoid_matrix(cubic_cell)
    if not np.allclose(matrix @ matrix.T, adp.to_matrix()):
        pytest.fail('Ellipsoid matrix times its transpose should give the Cartesian tensor')
    if np.linalg.det(matrix) <= 0:
        pytest.fail('Ellipsoid matrix should not mirror')


def test_ellipsoid_matrix_non_positive(cubic_cell):
    adp = ortepcif.UAnisoADP(-0.01, 0.02, 0.03, 0, 0, 0)
    matrix = adp.get_ellipsoid_matrix(cubic_cell)
    if not np.isnan(matrix).any():
        pytest.fail('A non positive definite tensor should give NaN in the ellipsoid matrix')
