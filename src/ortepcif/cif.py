"""Parser for Crystallographic Information Files (CIF). The text is
split into data blocks (:class:`CIF`), each block into scalar entries
and loops (:class:`CifBlock`, :class:`CifLoop`). Parsing is lazy: blocks
and loops are only parsed on first access. Values carrying a standard
uncertainty in parenthesis notation, e.g. ``1.234(5)``, are split into
the value and a sibling ``<key>_su`` entry.

Keys are accepted in both dot notation (``_atom_site.label``) and
underscore notation (``_atom_site_label``); every lookup takes a list of
candidate keys and returns the first one present.
"""

import math
import re
import functools
from typing import Any, Iterator, List, NamedTuple, Optional, Sequence, Tuple, Union

from .errors import ParseError, MissingKeyError

__all__ = [
    "ParsedValue",
    "parse_value",
    "parse_multiline_string",
    "STANDARD_LOOP_NAMES",
    "CifLoop",
    "resolve_loop_naming_conflict",
    "CifBlock",
    "CIF",
]


class ParsedValue(NamedTuple):
    """A parsed CIF value and its standard uncertainty (NaN if the
    value has none)."""

    value: Union[int, float, str]
    su: float


_SCI_SU_RE = re.compile(r"^([+-]?)(\d+\.?\d*|\.\d+)[eE]([+-]?\d+)\((\d+)\)$")
_SCI_RE = re.compile(r"^([+-]?)(\d+\.?\d*|\.\d+)[eE]([+-]?\d+)$")
_SU_RE = re.compile(r"^([+-]?)(\d+\.?\d*|\.\d+)\((\d+)\)$")
_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)$")
_QUOTED_RE = re.compile(r"^(\".*\"|'.*')$", re.DOTALL)
_ESCAPE_RE = re.compile(r"\\([^\\])")
_TOKEN_RE = re.compile(r"'([^']*(?:'\S[^']*)*)'|\"([^\"]*(?:\"\S[^\"]*)*)\"|\S+")
_COMMENT_RE = re.compile(
    r" #(?=(?:[^\"]*\"[^\"]*\")*[^\"]*$)(?=(?:[^']*'[^']*')*[^']*$)"
)
_KEY_VALUE_RE = re.compile(r"^(_\S+)\s+(.*)$")
_BLOCK_NAME_RE = re.compile(r"^(\w+[\w.-]*)")
_MAX_ROUNDING_DECIMALS = 100


def _n_decimals(number_string: str) -> int:
    if "." in number_string:
        return len(number_string.split(".")[1])
    return 0


def _scientific(sign, mantissa, exponent, su_digits):
    sign_mult = -1 if sign == "-" else 1
    exp = int(exponent)
    precision = _n_decimals(mantissa) - exp
    value = sign_mult * float(mantissa) * 10.0 ** exp
    su = math.nan
    if su_digits is not None:
        su = int(su_digits) * 10.0 ** -precision
    if 0 <= precision <= _MAX_ROUNDING_DECIMALS:
        value = round(value, precision)
        if su_digits is not None:
            su = round(su, precision)
    return ParsedValue(value, su)


def parse_value(entry: str, split_su: bool = True) -> ParsedValue:
    """Parse a single CIF token into a number or string and its
    standard uncertainty.

    Recognised forms, tried in order: scientific notation with and
    without an uncertainty (``1.23e-4(2)``, ``1.23E4``), decimals or
    integers with an uncertainty (``123.456(7)``, ``-12(3)``), quoted
    strings, plain numbers and finally plain strings. Backslash escapes
    in strings are removed.

    Parameters
    ----------
    entry : str
        The raw token.
    split_su : bool, default True
        Split the parenthesised uncertainty from the value. If False,
        tokens with an uncertainty are kept as strings.

    Returns
    -------
    :class:`ParsedValue`
        Named tuple (value, su), su is NaN when absent.

    Examples
    --------
    >>> parse_value("123.456(7)")
    ParsedValue(value=123.456, su=0.007)
    """

    if split_su:
        match = _SCI_SU_RE.match(entry)
        if match:
            return _scientific(*match.groups())

    match = _SCI_RE.match(entry)
    if match:
        return _scientific(*match.groups(), None)

    if split_su:
        match = _SU_RE.match(entry)
        if match:
            sign, number, su_digits = match.groups()
            sign_mult = -1 if sign == "-" else 1
            if "." in number:
                decimals = _n_decimals(number)
                value = round(sign_mult * float(number), decimals)
                su = round(10.0 ** -decimals * int(su_digits), decimals)
                return ParsedValue(value, su)
            return ParsedValue(sign_mult * int(number), int(su_digits))

    if _NUMBER_RE.match(entry):
        if "." in entry:
            return ParsedValue(float(entry), math.nan)
        return ParsedValue(int(entry), math.nan)

    if len(entry) > 1 and _QUOTED_RE.match(entry):
        entry = entry[1:-1]
    return ParsedValue(_ESCAPE_RE.sub(r"\1", entry), math.nan)


def parse_multiline_string(lines: Sequence[str], start: int) -> Tuple[str, int]:
    """Parse a semicolon delimited text field.

    Parameters
    ----------
    lines : list of str
        All lines of the block or loop.
    start : int
        Index of the line opening the field (starting with ``;``).

    Returns
    -------
    value : str
        Text of the field with leading and trailing blank lines removed.
        Text following the opening ``;`` counts as the first line.
    next_index : int
        Index of the line after the closing ``;`` line.

    Raises
    ------
    ParseError
        If no closing ``;`` line exists.
    """

    content = [lines[start][1:]]
    end = start + 1
    while end < len(lines) and not lines[end].startswith(";"):
        content.append(lines[end])
        end += 1

    if end >= len(lines):
        raise ParseError(
            f"Unterminated multi-line string starting at line {start}"
        )

    non_empty = [i for i, line in enumerate(content) if line.strip()]
    if non_empty:
        content = content[non_empty[0]:non_empty[-1] + 1]
    else:
        content = []
    return "\n".join(content), end + 1


# Most specific names first
STANDARD_LOOP_NAMES = (
    "_space_group_symop_ssg",
    "_space_group_symop",
    "_symmetry_equiv",
    "_geom_bond",
    "_geom_hbond",
    "_geom_angle",
    "_geom_torsion",
    "_diffrn_refln",
    "_refln",
    "_atom_site_fourier_wave_vector",
    "_atom_site_moment_fourier_param",
    "_atom_site_moment_special_func",
    "_atom_site_moment",
    "_atom_site_rotation",
    "_atom_site_displace_Fourier",
    "_atom_site_displace_special_func",
    "_atom_site_occ_Fourier",
    "_atom_site_occ_special_func",
    "_atom_site_phason",
    "_atom_site_rot_Fourier_param",
    "_atom_site_rot_Fourier",
    "_atom_site_rot_special_func",
    "_atom_site_U_Fourier",
    "_atom_site_anharm_gc_c",
    "_atom_site_anharm_gc_d",
    "_atom_site_aniso",
    "_atom_site",
)

_NOTSET = object()


def _as_key_list(keys: Union[str, Sequence[str]]) -> List[str]:
    if isinstance(keys, str):
        return [keys]
    return list(keys)


class CifLoop:
    """A ``loop_`` construct: a table whose columns are addressed by
    their header. The data lines are only tokenised when the loop is
    first queried.

    Parameters
    ----------
    header_lines : list of str
        The ``_key`` lines following ``loop_``.
    data_lines : list of str
        The raw lines holding the values.
    end_index : int
        Index (relative to the ``loop_`` line) of the first line after
        the loop.
    split_su : bool, default True
        Split values and standard uncertainties.
    name : str, optional
        Category name of the loop. Derived from the headers with
        :meth:`find_common_start` if not given.

    Attributes
    ----------
    headers : list of str
        Column names including generated ``<header>_su`` columns.
        Available after parsing.
    data : dict
        Maps header to column (list of values). None until parsed.
    name : str
        Category name, e.g. ``_atom_site``.
    """

    def __init__(
            self,
            header_lines: List[str],
            data_lines: List[str],
            end_index: int,
            split_su: bool = True,
            name: Optional[str] = None
    ):
        self.header_lines = header_lines
        self.data_lines = data_lines
        self.end_index = end_index
        self.split_su = split_su
        self._headers = None
        self.data = None
        self.name = name if name else self.find_common_start()

    @classmethod
    def from_lines(cls, lines: Sequence[str], split_su: bool = True) -> "CifLoop":
        """Create a loop from the lines of a block, starting at the
        ``loop_`` line. Header lines follow ``loop_`` directly, data
        lines continue until the next key or ``loop_`` outside of a
        multi-line text field."""

        i = 1
        while i < len(lines) and lines[i].strip().startswith("_"):
            i += 1
        header_lines = [line.strip() for line in lines[1:i]]
        if not header_lines:
            raise ParseError("Found loop_ without any header lines")

        end = i
        in_text_field = False
        while end < len(lines):
            stripped = lines[end].strip()
            starts_entry = stripped.startswith("_") or stripped.startswith("loop_")
            if starts_entry and not in_text_field:
                break
            if lines[end].startswith(";"):
                in_text_field = not in_text_field
            end += 1

        return cls(header_lines, list(lines[i:end]), end, split_su)

    def _tokenize(self) -> List[ParsedValue]:
        lines = list(self.data_lines)
        values = []
        i = 0
        while i < len(lines):
            line = lines[i].strip()
            if not line:
                i += 1
                continue
            if line.startswith(";"):
                text, next_index = parse_multiline_string(lines, i)
                values.append(ParsedValue(text, math.nan))
                for j in range(i, next_index):
                    lines[j] = ""
                i = next_index
                continue
            for match in _TOKEN_RE.finditer(line):
                values.append(parse_value(match.group(0), self.split_su))
            i += 1
        return values

    def parse(self) -> None:
        """Distribute the values of the data lines into columns. Does
        nothing if the loop is already parsed.

        Raises
        ------
        ParseError
            If there are no values or they cannot be evenly distributed
            over the columns.
        """

        if self.data is not None:
            return

        values = self._tokenize()
        n_cols = len(self.header_lines)

        if len(values) % n_cols != 0:
            entries = ", ".join(f"{{value: {v.value}, su: {v.su}}}" for v in values)
            raise ParseError(
                f"Loop {self.name}: Cannot distribute {len(values)} values "
                f"evenly into {n_cols} columns\nentries are: {entries}"
            )
        if not values:
            raise ParseError(f"Loop {self.name} has no data values.")

        headers = list(self.header_lines)
        data = {}
        for i, header in enumerate(self.header_lines):
            column = values[i::n_cols]
            data[header] = [v.value for v in column]
            if any(not math.isnan(v.su) for v in column):
                data[header + "_su"] = [v.su for v in column]
                headers.append(header + "_su")

        self._headers = headers
        self.data = data

    @property
    def headers(self) -> List[str]:
        self.parse()
        return self._headers

    @property
    def n_rows(self) -> int:
        self.parse()
        return len(self.data[self.header_lines[0]])

    def __contains__(self, key: str) -> bool:
        return key in self.headers

    def __repr__(self):
        return (
            f"{self.__class__.__name__}(name={self.name!r}, "
            f"headers={self.header_lines!r})"
        )

    def find_common_start(self, check_standard_names: bool = True) -> str:
        """Derive the category name shared by the headers.

        Parameters
        ----------
        check_standard_names : bool, default True
            First look for a name from :data:`STANDARD_LOOP_NAMES`
            which at least half the headers start with (ignoring case).

        Returns
        -------
        str
            The standard name, else the part before the dot if at least
            half the headers share it, else the longest sequence of
            ``_``/``.`` separated tokens shared by the headers (both of
            two headers, or at least half of more).
        """

        headers = self.header_lines
        half = len(headers) / 2

        if check_standard_names:
            for name in STANDARD_LOOP_NAMES:
                lower = name.lower()
                hits = sum(1 for h in headers if h.lower().startswith(lower))
                if hits >= half:
                    return name

        first_split = headers[0].split(".")
        if len(first_split) > 1:
            prefix = first_split[0]
            if sum(1 for h in headers if h.split(".")[0] == prefix) >= half:
                return prefix

        tokens = [[t for t in re.split(r"[_.]", h) if t] for h in headers]
        min_len = min(len(t) for t in tokens)
        common = ""
        for i in range(min_len):
            token = tokens[0][i]
            hits = sum(1 for t in tokens if t[i] == token)
            if len(headers) == 2:
                if hits != 2:
                    break
            elif hits < half:
                break
            common += "_" + token
        return common

    def get(self, keys: Union[str, Sequence[str]], default: Any = _NOTSET) -> list:
        """Column of the first key in ``keys`` present in the loop.

        Raises
        ------
        MissingKeyError
            If no key is present and no default is given.
        """

        self.parse()
        keys = _as_key_list(keys)
        for key in keys:
            if key in self.data:
                return self.data[key]
        if default is not _NOTSET:
            return default
        raise MissingKeyError(
            f"None of the keys [{', '.join(keys)}] found in CIF loop {self.name}"
        )

    def get_index(
            self,
            keys: Union[str, Sequence[str]],
            index: int,
            default: Any = _NOTSET
    ) -> Any:
        """Value in row ``index`` of the first key in ``keys`` present
        in the loop.

        Raises
        ------
        MissingKeyError
            If no key is present and no default is given.
        IndexError
            If the row does not exist.
        """

        self.parse()
        keys = _as_key_list(keys)
        if not any(key in self._headers for key in keys):
            if default is not _NOTSET:
                return default
            raise MissingKeyError(
                f"None of the keys [{', '.join(keys)}] found in CIF loop {self.name}"
            )

        column = self.get(keys)
        if index < len(column):
            return column[index]
        raise IndexError(
            f"Tried to look up value of index {index} in {self.name}, "
            f"but length is only {len(column)}"
        )


def _is_loop(entry) -> bool:
    return isinstance(entry, CifLoop)


def _first_header_tokens(loop: CifLoop) -> List[str]:
    return [t for t in re.split(r"[_.]", loop.header_lines[0]) if t]


def _extended_name(name: str, loop: CifLoop) -> str:
    n_tokens = len([t for t in name.split("_") if t])
    tokens = _first_header_tokens(loop)
    if n_tokens < len(tokens):
        return name + "_" + tokens[n_tokens]
    return loop.header_lines[0]


def resolve_loop_naming_conflict(
        entry1: Any,
        entry2: Any,
        name: str
) -> Tuple[Tuple[str, str], Tuple[Any, Any]]:
    """Find distinct names for two block entries that would be stored
    under the same ``name``. At least one of the entries is a loop; the
    names of the loops are updated in place.

    If one entry is not a loop it keeps ``name`` and the loop gets the
    name extended by the next token of its first header. If the loops'
    common starts (without the standard name list) differ in length,
    each loop is named by its common start. Otherwise the loop with the
    longer first header gets the extended name and the other keeps
    ``name``.

    Returns
    -------
    names : tuple of str
        New names for ``entry1`` and ``entry2``.
    entries : tuple
        ``entry1`` and ``entry2``.
    """

    if not (_is_loop(entry1) and _is_loop(entry2)):
        loop = entry1 if _is_loop(entry1) else entry2
        new_name = _extended_name(name, loop)
        names = (new_name, name) if loop is entry1 else (name, new_name)
    else:
        start1 = entry1.find_common_start(False)
        start2 = entry2.find_common_start(False)
        if len(start1) != len(start2):
            names = (start1, start2)
        elif len(_first_header_tokens(entry1)) >= len(_first_header_tokens(entry2)):
            names = (_extended_name(name, entry1), name)
        else:
            names = (name, _extended_name(name, entry2))

    for entry, new_name in zip((entry1, entry2), names):
        if _is_loop(entry):
            entry.name = new_name

    return names, (entry1, entry2)


class CifBlock:
    """A single ``data_`` block. The text is parsed on first access.

    Parameters
    ----------
    raw_text : str
        Text of the block, starting with the block name (the text after
        ``data_``).
    split_su : bool, default True
        Split values and standard uncertainties.
    """

    def __init__(self, raw_text: str, split_su: bool = True):
        self.raw_text = raw_text
        self.split_su = split_su
        self.data = None
        self._data_block_name = None

    def _lines(self) -> List[str]:
        lines = []
        for line in self.raw_text.split("\n"):
            if line.strip().startswith("#"):
                continue
            lines.append(_COMMENT_RE.split(line, maxsplit=1)[0])
        return lines

    def _add_loop(self, loop: CifLoop) -> None:
        if loop.name not in self.data:
            self.data[loop.name] = loop
            return
        names, entries = resolve_loop_naming_conflict(
            self.data[loop.name], loop, loop.name
        )
        for new_name, entry in zip(names, entries):
            self.data[new_name] = entry

    def _set_value(self, key: str, parsed: ParsedValue) -> None:
        self.data[key] = parsed.value
        if not math.isnan(parsed.su):
            self.data[key + "_su"] = parsed.su

    def parse(self) -> None:
        """Parse the block into :attr:`data`. Does nothing if the block
        is already parsed.

        Raises
        ------
        ParseError
            If a line is neither a key, a value belonging to a key, a
            text field nor part of a loop.
        """

        if self.data is not None:
            return

        self.data = {}
        lines = self._lines()
        self._data_block_name = lines[0].strip()

        i = 1
        while i < len(lines):
            line = lines[i].strip()

            if i + 1 < len(lines) and lines[i + 1].startswith(";") and line.startswith("_"):
                value, i = parse_multiline_string(lines, i + 1)
                self.data[line] = value
                continue

            if line.startswith("loop_"):
                loop = CifLoop.from_lines(lines[i:], self.split_su)
                self._add_loop(loop)
                i += loop.end_index
                continue

            if not line:
                i += 1
                continue

            match = _KEY_VALUE_RE.match(line)
            if match:
                self._set_value(match.group(1), parse_value(match.group(2).strip(), self.split_su))
            elif line.startswith("_") and i + 1 < len(lines) and not lines[i + 1].strip().startswith("_"):
                self._set_value(line, parse_value(lines[i + 1].strip(), self.split_su))
                i += 1
            else:
                raise ParseError(f"Could not parse line {i}: {lines[i]}")
            i += 1

    @property
    def data_block_name(self) -> str:
        self.parse()
        return self._data_block_name

    def __contains__(self, key: str) -> bool:
        self.parse()
        return key in self.data

    def __repr__(self):
        return f"{self.__class__.__name__}({self.raw_text.split(chr(10), 1)[0].strip()!r})"

    def get(self, keys: Union[str, Sequence[str]], default: Any = _NOTSET) -> Any:
        """Entry (value or :class:`CifLoop`) of the first key in ``keys``
        present in the block.

        Raises
        ------
        MissingKeyError
            If no key is present and no default is given.
        """

        self.parse()
        keys = _as_key_list(keys)
        for key in keys:
            if key in self.data:
                return self.data[key]
        if default is not _NOTSET:
            return default
        raise MissingKeyError(f"None of the keys [{', '.join(keys)}] found in CIF block")


class CIF:
    """A CIF document consisting of one or more data blocks. Blocks are
    parsed lazily when accessed.

    Parameters
    ----------
    cif_string : str
        The content of the CIF.
    split_su : bool, default True
        Split values and standard uncertainties.

    Examples
    --------
    ::

        cif = CIF(text)
        block = cif.get_block(0)
        a = block.get(["_cell.length_a", "_cell_length_a"])
    """

    def __init__(self, cif_string: str, split_su: bool = True):
        self.split_su = split_su
        self.raw_cif_blocks = self._split_cif_blocks("\n\n" + cif_string)
        self.blocks: List[Optional[CifBlock]] = [None] * len(self.raw_cif_blocks)

    @staticmethod
    def _split_cif_blocks(text: str) -> List[str]:
        # A fragment with an odd number of text field delimiters ends
        # inside a text field, so the data_ split it was part of the text
        fragments = re.split(r"\r?\ndata_", text.replace("\r\n", "\n"))[1:]
        blocks = []
        i = 0
        while i < len(fragments):
            block = fragments[i]
            while block.count("\n;") % 2 == 1 and i + 1 < len(fragments):
                i += 1
                block += "\ndata_" + fragments[i]
            blocks.append(block)
            i += 1
        return blocks

    def __len__(self):
        return len(self.raw_cif_blocks)

    def __iter__(self) -> Iterator[CifBlock]:
        for i in range(len(self)):
            yield self.get_block(i)

    def __getitem__(self, index: int) -> CifBlock:
        return self.get_block(index)

    def get_block(self, index: int = 0) -> CifBlock:
        """The block at position ``index``, parsed on first access."""
        if self.blocks[index] is None:
            self.blocks[index] = CifBlock(self.raw_cif_blocks[index], self.split_su)
        return self.blocks[index]

    def get_all_blocks(self) -> List[CifBlock]:
        return [self.get_block(i) for i in range(len(self))]

    @functools.cached_property
    def _block_names(self) -> Tuple[str, ...]:
        names = []
        for raw in self.raw_cif_blocks:
            match = _BLOCK_NAME_RE.match(raw)
            names.append(match.group(1) if match else "")
        return tuple(names)

    def get_block_names(self) -> List[str]:
        """Names of all blocks without parsing them."""
        return list(self._block_names)

    def get_block_by_name(self, name: str) -> CifBlock:
        """The block called ``name`` (a leading ``data_`` is ignored).

        Raises
        ------
        MissingKeyError
            If no block has this name.
        """

        if name.startswith("data_"):
            name = name[len("data_"):]
        names = self._block_names
        if name not in names:
            raise MissingKeyError(
                f"Block with name '{name}' not found. "
                f"Available blocks: {', '.join(names)}"
            )
        return self.get_block(names.index(name))
