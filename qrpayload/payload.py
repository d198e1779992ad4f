"""
QR data payload construction.

This module is the front end of qrpayload: it pairs payload text with an
encoding mode and an error-correction level, and produces the mode-specific
bit sequence that forms the data payload of a QR symbol. The bits are
computed once and stored as a NumPy uint8 array, one element per bit.

Functions
---------
make_payload
    Create an EncodedPayload from text and configuration.
to_bitstring
    Render a bit array as a string of '0' and '1'.
pack_bits
    Pack a bit array into bytes, MSB first.

Classes
-------
PayloadSpec
    Immutable payload configuration.
EncodedPayload
    Payload backed by its encoded bit array.

Examples
--------
Encode alphanumeric text:

>>> payload = make_payload("AC-42", mode="alphanumeric")
>>> payload.bitstring
'0011100111011100111001000010'
>>> payload.bit_length
28

Pack the bits into bytes for a downstream assembler:

>>> payload.to_bytes()
b'9\\xdc\\xe4 '

Notes
-----
Mode indicators, character-count indicators, padding and error-correction
codewords are added by the symbol assembler, not here. The
error-correction level is carried along so the assembler receives the
whole configuration in one object.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Union

import numpy as np
from qrcode.constants import (
    ERROR_CORRECT_L,
    ERROR_CORRECT_M,
    ERROR_CORRECT_Q,
    ERROR_CORRECT_H,
)

from qrpayload.encoders import Bits, Mode, encoder_for
from qrpayload.tables import TableContext

_ECC_MAP = {
    "L": ERROR_CORRECT_L,  # ~7% error correction
    "M": ERROR_CORRECT_M,  # ~15% (default)
    "Q": ERROR_CORRECT_Q,  # ~25%
    "H": ERROR_CORRECT_H,  # ~30%
}


def to_bitstring(bits: Bits) -> str:
    """Return `bits` as a string such as ``'0110'``."""
    return "".join("1" if b else "0" for b in np.asarray(bits).tolist())


def pack_bits(bits: Bits) -> bytes:
    """
    Pack a bit array into bytes.

    Bits are packed MSB first. If the bit count is not a multiple of eight,
    the last byte is padded with zero bits.
    """
    return np.packbits(np.asarray(bits, dtype=np.uint8), bitorder="big").tobytes()


@dataclass(frozen=True)
class PayloadSpec:
    """
    Immutable configuration of a QR data payload.

    Parameters
    ----------
    data : str
        Text to encode. Every character must be allowed in `mode`. An
        empty string is valid and yields an empty payload.
    mode : Mode, int or str
        Encoding mode. Accepts a Mode, its indicator value, or a
        case-insensitive name ('numeric', 'alphanumeric', 'byte',
        'kanji'). Normalized to a Mode.
    ecc : {'L', 'M', 'Q', 'H'}, optional
        Error-correction level. The value is case-insensitive and is
        normalized to uppercase. The default is 'M'.

    Raises
    ------
    TypeError
        If `data` is not a string.
    ValueError
        If `mode` or `ecc` is not recognized.
    """

    data: str
    mode: Mode
    ecc: str = "M"

    def __post_init__(self) -> None:
        if not isinstance(self.data, str):
            raise TypeError("'data' must be a string")

        ecc_upper = str(self.ecc).upper()
        if ecc_upper not in _ECC_MAP:
            raise ValueError("'ecc' must be one of {'L', 'M', 'Q', 'H'}")

        object.__setattr__(self, "mode", Mode.parse(self.mode))
        object.__setattr__(self, "ecc", ecc_upper)

    @property
    def ecc_level(self) -> int:
        """Integer error-correction constant used by the qrcode library."""
        return _ECC_MAP[self.ecc]


@dataclass(frozen=True)
class EncodedPayload:
    """
    Payload text together with its encoded bit sequence.

    The bits are computed once at construction. Invalid text raises
    InvalidInputError here, before an object exists.

    Parameters
    ----------
    spec : PayloadSpec
        Payload configuration.
    context : TableContext, optional
        Table cache used by the encoder. The default is the process-wide
        context.
    """

    spec: PayloadSpec
    context: Optional[TableContext] = field(default=None, repr=False, compare=False)
    _bits: Bits = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        bits = encoder_for(self.spec.mode, self.context).encode(self.spec.data)
        bits.setflags(write=False)
        object.__setattr__(self, "_bits", bits)

    @property
    def bits(self) -> Bits:
        """Read-only uint8 array of bits, MSB first."""
        return self._bits

    @property
    def bit_length(self) -> int:
        return int(self._bits.size)

    @property
    def bitstring(self) -> str:
        return to_bitstring(self._bits)

    def to_bytes(self) -> bytes:
        """Bits packed MSB first, last byte zero-padded."""
        return pack_bits(self._bits)


def make_payload(
    data: str,
    *,
    mode: Union[Mode, int, str],
    ecc: str = "M",
    context: Optional[TableContext] = None,
) -> EncodedPayload:
    """
    Create an EncodedPayload from text and configuration.

    Parameters
    ----------
    data : str
        Text to encode.
    mode : Mode, int or str
        Encoding mode. See PayloadSpec.
    ecc : {'L', 'M', 'Q', 'H'}, optional
        Error-correction level. The default is 'M'.
    context : TableContext, optional
        Table cache injected into the encoder.

    Returns
    -------
    EncodedPayload

    Raises
    ------
    InvalidInputError
        If `data` contains characters not allowed in `mode`.
    ValueError
        If `mode` or `ecc` is invalid, as enforced by PayloadSpec.
    """
    spec = PayloadSpec(data=data, mode=mode, ecc=ecc)
    return EncodedPayload(spec, context=context)
