"""
ortep-cif: crystal structures from CIF files
============================================

Parse Crystallographic Information Files, build crystal structures with
atoms, displacement parameters, bonds, hydrogen bonds and symmetry, and
modify them for display (hydrogen and disorder filters, symmetry
growth, bond generation).

List of modules
***************

===================    ===================================================
Module                 Description
===================    ===================================================
:mod:`.cif`            Parse CIF text into blocks, loops and values
:mod:`.crystal`        Implements the CrystalStructure object
:mod:`.atom`           Atoms, bonds and hydrogen bonds
:mod:`.adp`            Atomic displacement parameters
:mod:`.position`       Fractional and Cartesian positions
:mod:`.unitcell`       Implements the UnitCell object
:mod:`.symmetry`       Symmetry operations and space group symmetry
:mod:`.modifiers`      Filters and growers returning new structures
:mod:`.repair`         Repair labels and symmetry codes of CIF blocks
:mod:`.io`             Read CrystalStructures from files
:mod:`.utils`          Utility functions
===================    ===================================================
"""

__version__ = "0.9.0"
__license__ = "MIT"


from .errors import *
from .cif import *
from .position import *
from .unitcell import *
from .adp import *
from .atom import *
from .symmetry import *
from .crystal import *
from .modifiers import *
from .repair import *
from .io import *
from .utils import *
