"""Tools for reading crystal structures from CIF files. The reader
returns :class:`CrystalStructure <.crystal.CrystalStructure>` objects,
one for each data block.
"""

import warnings
import collections.abc
import os
import errno
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Union

import tqdm

from .cif import CIF, CifBlock
from .crystal import CrystalStructure
from .repair import try_to_fix_cif_block
from .errors import ParseError


def _custom_warning(message, category, filename, lineno, *args, **kwargs):
    return f"{category.__name__}: {message}\n"


warnings.formatwarning = _custom_warning


__all__ = [
    "CifReader",
    "read_cif_file",
    "crystal_structure_from_cif_block",
]


def read_cif_file(path: Union[str, os.PathLike], split_su: bool = True) -> CIF:
    """Read and parse a CIF file. Undecodable bytes are replaced."""
    text = Path(path).read_text(encoding="utf-8", errors="replace")
    return CIF(text, split_su=split_su)


def crystal_structure_from_cif_block(
        cif_block: CifBlock,
        try_fix: bool = True
) -> CrystalStructure:
    """Create a :class:`CrystalStructure <.crystal.CrystalStructure>`
    from a CIF block. If this fails and ``try_fix`` is True, the block
    is repaired with :func:`try_to_fix_cif_block <.repair.try_to_fix_cif_block>`
    and read again.

    Raises
    ------
    ParseError
        If no structure can be created from the block.
    """

    try:
        return CrystalStructure.from_cif(cif_block)
    except (ValueError, KeyError, IndexError) as err:
        if not try_fix:
            raise ParseError(f"Could not read block: {err}") from err
        first_error = err

    try:
        try_to_fix_cif_block(cif_block)
        return CrystalStructure.from_cif(cif_block)
    except (ValueError, KeyError, IndexError) as err:
        raise ParseError(
            f"Could not read block, also after trying to fix it: {first_error}"
        ) from err


def _block_name(cif_block: CifBlock) -> str:
    # taken from the raw text, the block may not parse
    return cif_block.raw_text.split("\n", 1)[0].strip()


class _Reader(collections.abc.Iterator):
    """Turns CIF blocks into crystal structures one at a time. Blocks
    that cannot be read are skipped, and warnings from reading a block
    are repeated with the block name in front.

    Parameters
    ----------
    iterable : iterable of :class:`CifBlock <.cif.CifBlock>`
        Blocks to read, in order.
    converter : callable
        Builds a structure from one block, raising
        :class:`ParseError <.errors.ParseError>` if it cannot.
    show_warnings : bool
        Repeat warnings and report skipped blocks.
    verbose : bool
        Show a progress bar counting blocks.
    """

    def __init__(
        self,
        iterable: Iterable[CifBlock],
        converter: Callable[[CifBlock], CrystalStructure],
        show_warnings: bool,
        verbose: bool,
    ):
        self._blocks = iter(iterable)
        self._converter = converter
        self.show_warnings = show_warnings
        if verbose:
            self._progress_bar = tqdm.tqdm(desc="Reading blocks", unit="block", delay=1)
        else:
            self._progress_bar = None

    def __next__(self) -> CrystalStructure:
        """Structure of the next block that can be read."""

        while True:
            try:
                block = next(self._blocks)
            except StopIteration:
                if self._progress_bar is not None:
                    self._progress_bar.close()
                raise

            name = _block_name(block)
            with warnings.catch_warnings(record=True) as block_warnings:
                warnings.simplefilter("always")
                try:
                    structure = self._converter(block)
                except ParseError as err:
                    parse_error = err
                else:
                    parse_error = None
                finally:
                    if self._progress_bar is not None:
                        self._progress_bar.update(1)

            if parse_error is not None:
                if self.show_warnings:
                    warnings.warn(f"(name={name}) {parse_error}, skipping")
                continue

            if self.show_warnings:
                for warning in block_warnings:
                    warnings.warn(f"(name={name}) {warning.message}", category=warning.category)

            return structure

    def read(self) -> Union[CrystalStructure, List[CrystalStructure]]:
        """Read every remaining block. A single structure is returned
        as is, several (or none) as a list.
        """
        structures = list(self)
        if len(structures) == 1:
            return structures[0]
        return structures


class CifReader(_Reader):
    """Read the crystal structures of a .cif file, or of every .cif
    file below a folder, one data block at a time.

    Parameters
    ----------
    path : str
        Path to a .cif file or directory. Directories are searched
        recursively and files are read in sorted order.
    split_su : bool, default True
        Split standard uncertainties from values.
    try_fix : bool, default True
        Repair blocks that fail to read with
        :func:`try_to_fix_cif_block <.repair.try_to_fix_cif_block>` and
        read them again. Blocks that still fail are skipped.
    show_warnings : bool, default True
        Repeat warnings from reading a block, prefixed with its name.
    verbose : bool, default False
        Show a progress bar counting the blocks read.

    Yields
    ------
    :class:`CrystalStructure <.crystal.CrystalStructure>`
        The structure of each readable data block.

    Raises
    ------
    FileNotFoundError
        If ``path`` does not exist.

    Examples
    --------

        ::

            # Every data block of a file
            structures = list(ortepcif.CifReader('structures.cif'))

            # Every .cif file in a folder and its subfolders
            structures = list(ortepcif.CifReader('path/to/folder'))

            # A file with a single block gives the structure itself
            structure = ortepcif.CifReader('structure.cif').read()
    """

    def __init__(
        self,
        path: Union[str, os.PathLike],
        split_su: bool = True,
        try_fix: bool = True,
        show_warnings: bool = True,
        verbose: bool = False,
    ):

        def converter(block):
            return crystal_structure_from_cif_block(block, try_fix=try_fix)

        path = Path(path)
        if path.is_file():
            blocks = read_cif_file(path, split_su=split_su)
        elif path.is_dir():
            blocks = _blocks_in_directory(path, split_su)
        else:
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path))

        super().__init__(blocks, converter, show_warnings, verbose)


def _blocks_in_directory(directory: Path, split_su: bool) -> Iterator[CifBlock]:
    """Data blocks of all .cif files below ``directory``. Files that
    cannot be read are skipped with a warning."""

    for path in sorted(directory.rglob("*")):
        if path.is_file() and path.suffix.lower() == ".cif":
            try:
                yield from read_cif_file(path, split_su=split_su)
            except (OSError, ValueError) as err:
                warnings.warn(f'Could not read "{path}", skipping file: {err!r}')
