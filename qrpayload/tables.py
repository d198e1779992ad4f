"""
Lookup tables and character sets for the QR encoding modes.

A table provider knows how to produce the static data each mode needs: the
alphanumeric character-to-value table, and the sets of characters allowed in
byte and kanji mode. A TableContext sits in front of a provider and loads
each table at most once, no matter how many threads ask for it at the same
time. Encoders receive a context and only ever read from it.

Classes
-------
TableId
    Identifiers of the tables a provider can supply.
TableProvider
    Protocol implemented by table providers.
ResourceTableProvider
    Default provider backed by packaged resources and Python codecs.
FileTableProvider
    Provider reading user-supplied table and charset files.
TableContext
    Exactly-once cache of loaded tables.

Functions
---------
read_encoding_table
    Parse the line-oriented ``<char><value>`` table format.
read_charset
    Parse the charset text format.
default_context
    Process-wide TableContext backed by ResourceTableProvider.
"""

from __future__ import annotations

import codecs
import logging
import threading
from enum import Enum
from importlib import resources
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Protocol, Union

from qrpayload.exceptions import TableUnavailableError

logger = logging.getLogger(__name__)

# Two-byte Shift-JIS ranges that kanji mode can represent.
KANJI_RANGES = ((0x8140, 0x9FFC), (0xE040, 0xEBBF))

_KANJI_LEAD_BYTES = (*range(0x81, 0xA0), *range(0xE0, 0xEC))
_KANJI_TRAIL_BYTES = tuple(b for b in range(0x40, 0xFD) if b != 0x7F)

_ALPHANUMERIC_RESOURCE = "alphanumeric.txt"

# Values above this overflow the 6-bit single and 11-bit pair widths.
ALPHANUMERIC_MAX_VALUE = 44


class TableId(str, Enum):
    ALPHANUMERIC = "alphanumeric"
    LATIN1 = "ISO8859-1"
    JIS_X_0208 = "JIS-X-0208"


class TableProvider(Protocol):
    def load_mapping(self, table_id: TableId) -> Mapping[str, int]:
        ...

    def load_charset(self, table_id: TableId) -> frozenset[str]:
        ...


# ---------- Text formats ----------

def read_encoding_table(
    lines: Iterable[str],
    max_value: int = ALPHANUMERIC_MAX_VALUE,
) -> dict[str, int]:
    """
    Parse a character-to-value encoding table.

    Each non-blank line holds exactly one character immediately followed by
    its decimal value. Whitespace between the two is ignored, so ``"A 10"``
    and ``"A10"`` are equivalent, and ``"  36"`` maps the space character.

    Parameters
    ----------
    lines : iterable of str
        Lines of the table source, with or without line terminators.
    max_value : int, optional
        Largest value a character may map to. The default is 44, the top
        of the alphanumeric alphabet.

    Returns
    -------
    dict
        Mapping from character to integer value.

    Raises
    ------
    TableUnavailableError
        If a line has no value, a non-integer value, a value outside
        0..`max_value`, or repeats a character.
    """
    table: dict[str, int] = {}
    for lineno, raw in enumerate(lines, start=1):
        line = raw.rstrip("\r\n")
        if not line.strip():
            continue

        char, rest = line[0], line[1:].strip()
        try:
            value = int(rest)
        except ValueError:
            raise TableUnavailableError(
                f"line {lineno}: expected a character followed by an "
                f"integer, got {line!r}"
            ) from None

        if not 0 <= value <= max_value:
            raise TableUnavailableError(
                f"line {lineno}: value {value} for {char!r} is outside 0..{max_value}"
            )
        if char in table:
            raise TableUnavailableError(
                f"line {lineno}: duplicate entry for {char!r}"
            )
        table[char] = value

    return table


def read_charset(text: str) -> frozenset[str]:
    """
    Parse a character set source.

    Every character of `text` is a member except the line terminators
    ``\\r`` and ``\\n``. Characters are not separated, so a space in the
    source is the space character.
    """
    return frozenset(text) - {"\r", "\n"}


# ---------- Providers ----------

def _latin1_charset() -> frozenset[str]:
    return frozenset(bytes(range(256)).decode("latin-1"))


def _in_kanji_range(code: int) -> bool:
    return any(lo <= code <= hi for lo, hi in KANJI_RANGES)


def _jis_x_0208_charset() -> frozenset[str]:
    """
    Enumerate the JIS X 0208 repertoire through the Shift-JIS codec.

    A character is kept only if its two-byte sequence decodes strictly and
    the character encodes back to the same two bytes, which places it in
    one of the kanji-mode ranges.
    """
    decode = codecs.getdecoder("shift_jis")
    chars = set()
    for lead in _KANJI_LEAD_BYTES:
        for trail in _KANJI_TRAIL_BYTES:
            raw = bytes((lead, trail))
            try:
                char, _ = decode(raw)
            except UnicodeDecodeError:
                continue  # unassigned code point
            if len(char) != 1 or char.encode("shift_jis") != raw:
                continue
            if _in_kanji_range((lead << 8) | trail):
                chars.add(char)
    return frozenset(chars)


class ResourceTableProvider:
    """
    Default table provider.

    The alphanumeric table is read from a text resource shipped with the
    package. The byte and kanji character sets are derived from Python's
    ``latin-1`` and ``shift_jis`` codecs, which define those repertoires.
    """

    def load_mapping(self, table_id: TableId) -> Mapping[str, int]:
        if table_id is not TableId.ALPHANUMERIC:
            raise TableUnavailableError(f"no mapping table named {table_id.value!r}")

        source = resources.files("qrpayload.resources") / _ALPHANUMERIC_RESOURCE
        try:
            text = source.read_text(encoding="utf-8")
        except OSError as exc:
            raise TableUnavailableError(
                f"cannot read resource {_ALPHANUMERIC_RESOURCE!r}"
            ) from exc
        return read_encoding_table(text.splitlines())

    def load_charset(self, table_id: TableId) -> frozenset[str]:
        if table_id is TableId.ALPHANUMERIC:
            return frozenset(self.load_mapping(table_id))
        if table_id is TableId.LATIN1:
            return _latin1_charset()
        if table_id is TableId.JIS_X_0208:
            return _jis_x_0208_charset()
        raise TableUnavailableError(f"no character set named {table_id!r}")


PathLike = Union[str, Path]


class FileTableProvider:
    """
    Table provider reading tables and character sets from files.

    Parameters
    ----------
    mapping_paths : mapping of TableId to path, optional
        Files in the ``read_encoding_table`` format.
    charset_paths : mapping of TableId to path, optional
        Files in the ``read_charset`` format.
    encoding : str, optional
        Text encoding of the files. The default is 'utf-8'.

    Notes
    -----
    A charset requested for a table that only has a mapping file is the
    mapping's key set.
    """

    def __init__(
        self,
        mapping_paths: Optional[Mapping[TableId, PathLike]] = None,
        charset_paths: Optional[Mapping[TableId, PathLike]] = None,
        *,
        encoding: str = "utf-8",
    ) -> None:
        self.mapping_paths = {k: Path(v) for k, v in (mapping_paths or {}).items()}
        self.charset_paths = {k: Path(v) for k, v in (charset_paths or {}).items()}
        self.encoding = encoding

    def _read(self, path: Path) -> str:
        try:
            return path.read_text(encoding=self.encoding)
        except OSError as exc:
            raise TableUnavailableError(f"cannot read table file {path}") from exc

    def load_mapping(self, table_id: TableId) -> Mapping[str, int]:
        path = self.mapping_paths.get(table_id)
        if path is None:
            raise TableUnavailableError(f"no mapping file configured for {table_id.value!r}")
        return read_encoding_table(self._read(path).splitlines())

    def load_charset(self, table_id: TableId) -> frozenset[str]:
        path = self.charset_paths.get(table_id)
        if path is not None:
            return read_charset(self._read(path))
        if table_id in self.mapping_paths:
            return frozenset(self.load_mapping(table_id))
        raise TableUnavailableError(f"no charset file configured for {table_id.value!r}")


# ---------- Exactly-once cache ----------

class TableContext:
    """
    Exactly-once, thread-safe cache of tables from a provider.

    Each (kind, table) pair has its own lock. The first caller loads the
    table while holding that lock; concurrent callers block on it and then
    observe the same object. Once stored, a table is read without locking
    and never replaced. A failed load is not cached.

    Parameters
    ----------
    provider : TableProvider, optional
        Source of table data. The default is ResourceTableProvider().
    """

    def __init__(self, provider: Optional[TableProvider] = None) -> None:
        self.provider = provider if provider is not None else ResourceTableProvider()
        self._tables: dict[tuple[str, TableId], object] = {}
        self._locks: dict[tuple[str, TableId], threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, key: tuple[str, TableId]) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(key, threading.Lock())

    def _get(self, kind: str, table_id: TableId, load):
        key = (kind, table_id)
        table = self._tables.get(key)
        if table is not None:
            return table

        with self._lock_for(key):
            table = self._tables.get(key)
            if table is not None:
                return table
            try:
                table = load(table_id)
            except TableUnavailableError:
                logger.warning("Failed to load %s table %s", kind, table_id.value)
                raise
            except (OSError, ValueError, LookupError) as exc:
                logger.warning("Failed to load %s table %s", kind, table_id.value)
                raise TableUnavailableError(
                    f"cannot load {kind} table {table_id.value!r}: {exc}"
                ) from exc

            if kind == "mapping":
                table = MappingProxyType(dict(table))
            else:
                table = frozenset(table)
            logger.debug("Loaded %s table %s (%d entries)", kind, table_id.value, len(table))
            self._tables[key] = table
            return table

    def mapping(self, table_id: TableId) -> Mapping[str, int]:
        """Return the read-only character-to-value mapping for `table_id`."""
        return self._get("mapping", table_id, self.provider.load_mapping)

    def charset(self, table_id: TableId) -> frozenset[str]:
        """Return the allowed-character set for `table_id`."""
        return self._get("charset", table_id, self.provider.load_charset)

    def is_loaded(self, table_id: TableId) -> bool:
        return any(key[1] is table_id for key in self._tables.copy())

    def clear(self) -> None:
        """Drop every cached table. Intended for tests."""
        with self._locks_guard:
            self._tables.clear()
            self._locks.clear()


_default_context: Optional[TableContext] = None
_default_context_lock = threading.Lock()


def default_context() -> TableContext:
    """Return the process-wide TableContext, creating it on first use."""
    global _default_context
    if _default_context is None:
        with _default_context_lock:
            if _default_context is None:
                _default_context = TableContext()
    return _default_context
