"""
Exceptions raised by qrpayload.

All errors derive from QRPayloadError so callers can catch the whole family
at once, while each subclass also derives from the builtin exception that
best describes it.
"""

from __future__ import annotations

from typing import Optional


class QRPayloadError(Exception):
    pass


class InvalidInputError(QRPayloadError, ValueError):
    """
    Input text contains characters outside the active mode's allowed set.

    Parameters
    ----------
    mode : str
        Name of the encoding mode that rejected the input.
    invalid_chars : str
        Offending characters, unique and in order of first appearance.
    position : int
        Index of the first offending character in the input.
    """

    def __init__(self, mode: str, invalid_chars: str, position: int) -> None:
        self.mode = mode
        self.invalid_chars = invalid_chars
        self.position = position
        super().__init__(
            f"text contains characters not allowed in {mode} encoding: "
            f"{invalid_chars!r} (first at index {position})"
        )


class TableUnavailableError(QRPayloadError, LookupError):
    pass


class EncodingRangeFault(QRPayloadError, RuntimeError):
    """
    Internal fault: a validated character has no two-byte Kanji code.

    Raised when a Shift-JIS code value falls outside both remapping ranges,
    or when a character that passed validation cannot be transcoded at all
    (`code` is None in that case). Either means the allowed-character set
    and the transcoder disagree.
    """

    def __init__(self, code: Optional[int], char: Optional[str] = None) -> None:
        self.code = code
        self.char = char
        where = f" for {char!r}" if char is not None else ""
        if code is None:
            msg = f"character{where} has no two-byte Shift-JIS code"
        else:
            msg = (
                f"Shift-JIS code 0x{code:04X}{where} is outside the Kanji "
                f"ranges 0x8140-0x9FFC and 0xE040-0xEBBF"
            )
        super().__init__(msg)
