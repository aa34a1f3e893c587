"""Exceptions raised while reading CIF text and building crystal
structures from it.
"""

__all__ = [
    "ParseError",
    "MissingKeyError",
    "DummyAtomError",
    "StructureError",
    "ADPError",
    "SymmetryError",
    "InvalidModeError",
]


class ParseError(ValueError):
    """Raised when CIF text does not follow the grammar, e.g. an
    unparsable line or a loop whose values do not fill its columns."""
    pass


class MissingKeyError(KeyError):
    """Raised when none of the requested keys exist in a block, loop or
    document."""

    def __str__(self):
        return str(self.args[0]) if self.args else ""


class DummyAtomError(ValueError):
    """Raised when an ``_atom_site`` row is a placeholder rather than a
    real atom."""
    pass


class StructureError(ValueError):
    """Raised when a crystal structure cannot be assembled."""
    pass


class ADPError(ValueError):
    """Raised when an atom declares a displacement parameter type whose
    data is missing."""
    pass


class SymmetryError(ValueError):
    """Raised for malformed symmetry operations or unknown symmetry
    operation ids."""
    pass


class InvalidModeError(ValueError):
    """Raised when a structure modifier is given an unknown mode."""
    pass
