import pytest
import pathlib
import warnings

import ortepcif


@pytest.fixture(scope='session', autouse=True)
def data_dir():
    return pathlib.Path(__file__).absolute().parent / 'data'


@pytest.fixture(scope='session')
def sample_cif_text(data_dir):
    with open(str(data_dir / 'sample.cif')) as f:
        return f.read()


@pytest.fixture
def sample_block(sample_cif_text):
    """First block of sample.cif, parsed freshly for each test."""
    return ortepcif.CIF(sample_cif_text).get_block(0)


@pytest.fixture
def sample_structure(sample_block):
    return ortepcif.CrystalStructure.from_cif(sample_block)


@pytest.fixture
def cubic_cell():
    return ortepcif.UnitCell(10, 10, 10, 90, 90, 90)


@pytest.fixture
def make_structure(cubic_cell):
    """Factory building a structure in a 10 Å cubic cell from tuples
    (label, type, (x, y, z), disorder_group) with fractional positions."""

    def _make(atom_specs, bonds=None, hbonds=None, symmetry=None, adps=None):
        adps = adps or {}
        atoms = [
            ortepcif.Atom(
                label, atom_type, ortepcif.FractPosition(*xyz),
                adps.get(label), disorder_group
            )
            for label, atom_type, xyz, disorder_group in atom_specs
        ]
        return ortepcif.CrystalStructure(cubic_cell, atoms, bonds, hbonds, symmetry)

    return _make


@pytest.fixture
def inversion_symmetry():
    return ortepcif.CellSymmetry(
        'P -1', 2,
        [ortepcif.SymmetryOperation('x,y,z'), ortepcif.SymmetryOperation('-x,-y,-z')]
    )


@pytest.fixture
def no_warnings():
    with warnings.catch_warnings():
        warnings.simplefilter('error')
        yield
