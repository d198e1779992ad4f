"""
Mode encoders for QR data payloads.

Each encoder turns text into the bit sequence for one QR encoding mode, as
defined by ISO/IEC 18004. The bit sequence is a one-dimensional NumPy array
of dtype uint8 holding one bit (0 or 1) per element, most significant bit of
every group first, groups in input order.

Every encoder validates the whole input against its mode's allowed
characters before doing any work, so invalid input never yields a partial
result.

Classes
-------
Mode
    QR encoding mode tag.
ModeEncoder
    Protocol shared by all encoders.
NumericEncoder, AlphanumericEncoder, ByteEncoder, KanjiEncoder
    One encoder per mode.

Functions
---------
encoder_for
    Return the encoder for a mode.
encode
    Encode text in a given mode.
kanji_qr_value
    Remap a two-byte Shift-JIS code to its 13-bit QR value.

Examples
--------
>>> bits = encode("01234567", Mode.NUMERIC)
>>> "".join(map(str, bits))
'000000110001010110011000011'
"""

from __future__ import annotations

from enum import IntEnum
from typing import Container, Iterable, KeysView, Optional, Protocol, Union

import numpy as np
from qrcode.util import MODE_8BIT_BYTE, MODE_ALPHA_NUM, MODE_KANJI, MODE_NUMBER

from qrpayload.exceptions import EncodingRangeFault, InvalidInputError
from qrpayload.tables import KANJI_RANGES, TableContext, TableId, default_context

# Bit width of a numeric group, keyed by its digit count.
NUMERIC_GROUP_BITS = {3: 10, 2: 7, 1: 4}
ALPHANUMERIC_PAIR_BITS = 11
ALPHANUMERIC_SINGLE_BITS = 6
KANJI_BITS = 13

_NUMERIC_CHARS = frozenset("0123456789")


class Mode(IntEnum):
    """QR encoding modes, valued by their 4-bit mode indicator."""

    NUMERIC = MODE_NUMBER
    ALPHANUMERIC = MODE_ALPHA_NUM
    BYTE = MODE_8BIT_BYTE
    KANJI = MODE_KANJI

    @classmethod
    def parse(cls, value: Union["Mode", int, str]) -> "Mode":
        """
        Normalize a mode given as a Mode, its indicator value, or a name.

        Names are case-insensitive. ``"alpha_numeric"`` is accepted as an
        alias of ALPHANUMERIC.

        Raises
        ------
        ValueError
            If `value` does not name a mode.
        """
        if isinstance(value, str):
            name = value.strip().upper().replace("-", "_")
            if name == "ALPHA_NUMERIC":
                name = "ALPHANUMERIC"
            try:
                return cls[name]
            except KeyError:
                raise ValueError(f"unknown encoding mode {value!r}") from None
        return cls(value)


Bits = np.ndarray


class ModeEncoder(Protocol):
    mode: Mode

    def is_allowed(self, char: str) -> bool:
        ...

    def encode(self, text: str) -> Bits:
        ...


# ---------- Bit helpers ----------

def _empty_bits() -> Bits:
    return np.zeros(0, dtype=np.uint8)


def _pack_groups(values: Iterable[int], width: int) -> Bits:
    """Emit the low `width` bits of every value, MSB first, in order."""
    values = np.fromiter(values, dtype=np.uint32)
    shifts = np.arange(width - 1, -1, -1, dtype=np.uint32)
    return ((values[:, None] >> shifts) & 1).astype(np.uint8).ravel()


def _validate(text: str, allowed: Container[str], mode: Mode) -> None:
    if not isinstance(text, str):
        raise TypeError(f"text must be a str, not {type(text).__name__}")

    invalid = [i for i, char in enumerate(text) if char not in allowed]
    if invalid:
        chars = "".join(dict.fromkeys(text[i] for i in invalid))
        raise InvalidInputError(mode.name.lower(), chars, invalid[0])


# ---------- Encoders ----------

class NumericEncoder:
    """
    Numeric mode: digits 0-9, packed three at a time.

    Groups of three digits take 10 bits. A trailing group of two digits
    takes 7 bits and a trailing single digit takes 4 bits.
    """

    mode = Mode.NUMERIC

    def __init__(self, context: Optional[TableContext] = None) -> None:
        # Digits are fixed; no table to load.
        self.context = context

    @property
    def allowed_chars(self) -> frozenset[str]:
        return _NUMERIC_CHARS

    def is_allowed(self, char: str) -> bool:
        return char in _NUMERIC_CHARS

    def encode(self, text: str) -> Bits:
        _validate(text, _NUMERIC_CHARS, self.mode)

        full = len(text) - len(text) % 3
        bits = [
            _pack_groups(
                (int(text[i:i + 3]) for i in range(0, full, 3)),
                NUMERIC_GROUP_BITS[3],
            )
        ]
        rest = text[full:]
        if rest:
            bits.append(_pack_groups([int(rest)], NUMERIC_GROUP_BITS[len(rest)]))
        return np.concatenate(bits)


class AlphanumericEncoder:
    """
    Alphanumeric mode: 0-9, A-Z, space and ``$ % * + - . / :``.

    Characters are paired; a pair (c1, c2) is packed as
    ``value(c1) * 45 + value(c2)`` in 11 bits, and a trailing single
    character as its value in 6 bits.
    """

    mode = Mode.ALPHANUMERIC

    def __init__(self, context: Optional[TableContext] = None) -> None:
        self.context = context if context is not None else default_context()

    @property
    def table(self):
        return self.context.mapping(TableId.ALPHANUMERIC)

    @property
    def allowed_chars(self) -> KeysView[str]:
        # Allowed set is the key set of the value table.
        return self.table.keys()

    def is_allowed(self, char: str) -> bool:
        return char in self.allowed_chars

    def encode(self, text: str) -> Bits:
        _validate(text, self.allowed_chars, self.mode)

        table = self.table
        values = [table[char] for char in text]
        full = len(values) - len(values) % 2
        bits = [
            _pack_groups(
                (values[i] * 45 + values[i + 1] for i in range(0, full, 2)),
                ALPHANUMERIC_PAIR_BITS,
            )
        ]
        if full < len(values):
            bits.append(_pack_groups(values[full:], ALPHANUMERIC_SINGLE_BITS))
        return np.concatenate(bits)


class ByteEncoder:
    """Byte mode: Latin-1 characters, 8 bits each."""

    mode = Mode.BYTE

    def __init__(self, context: Optional[TableContext] = None) -> None:
        self.context = context if context is not None else default_context()

    @property
    def allowed_chars(self) -> frozenset[str]:
        return self.context.charset(TableId.LATIN1)

    def is_allowed(self, char: str) -> bool:
        return char in self.allowed_chars

    def encode(self, text: str) -> Bits:
        _validate(text, self.allowed_chars, self.mode)

        data = np.frombuffer(text.encode("latin-1"), dtype=np.uint8)
        return np.unpackbits(data, bitorder="big")


def _remap_kanji(code: int, char: Optional[str] = None) -> int:
    (lo1, hi1), (lo2, hi2) = KANJI_RANGES
    if lo1 <= code <= hi1:
        value = code
    elif lo2 <= code <= hi2:
        value = code - 0xC140
    else:
        raise EncodingRangeFault(code, char)
    return (value >> 8) * 0xC0 + (value & 0xFF)


def kanji_qr_value(code: int) -> int:
    """
    Remap a big-endian two-byte Shift-JIS code to its kanji-mode value.

    Codes in 0x8140-0x9FFC are split into high and low bytes and combined
    as ``hi * 0xC0 + lo``. Codes in 0xE040-0xEBBF first have 0xC140
    subtracted, then are combined the same way. Only the low 13 bits of the
    result are emitted by KanjiEncoder.

    Raises
    ------
    EncodingRangeFault
        If `code` lies outside both ranges.
    """
    return _remap_kanji(code)


class KanjiEncoder:
    """
    Kanji mode: JIS X 0208 characters, 13 bits each.

    The text is transcoded to Shift-JIS once; each two-byte code is then
    remapped by kanji_qr_value.
    """

    mode = Mode.KANJI

    def __init__(self, context: Optional[TableContext] = None) -> None:
        self.context = context if context is not None else default_context()

    @property
    def allowed_chars(self) -> frozenset[str]:
        return self.context.charset(TableId.JIS_X_0208)

    def is_allowed(self, char: str) -> bool:
        return char in self.allowed_chars

    def _codes(self, text: str) -> list[int]:
        try:
            data = text.encode("shift_jis")
        except UnicodeEncodeError as exc:
            raise EncodingRangeFault(None, exc.object[exc.start]) from exc

        if len(data) != 2 * len(text):
            # Locate the character that did not transcode to two bytes.
            for char in text:
                raw = char.encode("shift_jis")
                if len(raw) != 2:
                    raise EncodingRangeFault(int.from_bytes(raw, "big"), char)

        pairs = np.frombuffer(data, dtype=np.uint8).reshape(-1, 2).astype(np.uint32)
        return ((pairs[:, 0] << 8) | pairs[:, 1]).tolist()

    def encode(self, text: str) -> Bits:
        _validate(text, self.allowed_chars, self.mode)
        if not text:
            return _empty_bits()

        codes = self._codes(text)
        values = [_remap_kanji(code, char) for code, char in zip(codes, text)]
        return _pack_groups(values, KANJI_BITS)


ENCODERS = {
    Mode.NUMERIC: NumericEncoder,
    Mode.ALPHANUMERIC: AlphanumericEncoder,
    Mode.BYTE: ByteEncoder,
    Mode.KANJI: KanjiEncoder,
}


def encoder_for(
    mode: Union[Mode, int, str],
    context: Optional[TableContext] = None,
) -> ModeEncoder:
    """
    Return the encoder for `mode`.

    Parameters
    ----------
    mode : Mode, int or str
        Encoding mode, as accepted by ``Mode.parse``.
    context : TableContext, optional
        Table cache injected into the encoder. The default is the
        process-wide context.
    """
    return ENCODERS[Mode.parse(mode)](context)


def encode(
    text: str,
    mode: Union[Mode, int, str],
    context: Optional[TableContext] = None,
) -> Bits:
    """Encode `text` in `mode`; see ``encoder_for``."""
    return encoder_for(mode, context).encode(text)
