import json
from pathlib import Path

BOND_TOLERANCE_FACTOR = 1.3
MIN_BOND_DISTANCE = 1e-4
ISOLATED_H_MAX_BOND_DISTANCE = 1.1
FRACTION_TOL = 2.1e-3
FRACTION_DENOMINATORS = (2, 3, 4, 6)
ROTATION_DET_TOL = 1e-10
NO_ESD_DECIMALS = 4

# Element symbols with two letters, checked before the single letter ones
TWO_LETTER_ELEMENTS = (
    "He", "Li", "Be", "Ne", "Na", "Mg", "Al", "Si", "Cl", "Ar", "Ca", "Sc",
    "Ti", "Cr", "Mn", "Fe", "Co", "Ni", "Cu", "Zn", "Ga", "Ge", "As", "Se",
    "Br", "Kr", "Rb", "Sr", "Zr", "Nb", "Mo", "Tc", "Ru", "Rh", "Pd", "Ag",
    "Cd", "In", "Sn", "Sb", "Te", "Xe", "Cs", "Ba", "La", "Ce", "Pr", "Nd",
    "Pm", "Sm", "Eu", "Gd", "Tb", "Dy", "Ho", "Er", "Tm", "Yb", "Lu", "Hf",
    "Ta", "Re", "Os", "Ir", "Pt", "Au", "Hg", "Tl", "Pb", "Bi", "Po", "At",
    "Rn", "Fr", "Ra", "Ac", "Th", "Pa", "Np", "Pu", "Am", "Cm",
)
ONE_LETTER_ELEMENTS = "HBCNOFPSKVYIWUD"

with open(str(Path(__file__).absolute().parent / "element_properties.json")) as f:
    ELEMENT_PROPERTIES = json.load(f)
