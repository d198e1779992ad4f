"""
qrpayload: mode-specific QR data payload encoding.

Encodes text into the numeric, alphanumeric, byte or kanji bit sequence of a
QR symbol's data payload (ISO/IEC 18004).
"""

from qrpayload.encoders import (
    AlphanumericEncoder,
    ByteEncoder,
    KanjiEncoder,
    Mode,
    ModeEncoder,
    NumericEncoder,
    encode,
    encoder_for,
    kanji_qr_value,
)
from qrpayload.exceptions import (
    EncodingRangeFault,
    InvalidInputError,
    QRPayloadError,
    TableUnavailableError,
)
from qrpayload.payload import (
    EncodedPayload,
    PayloadSpec,
    make_payload,
    pack_bits,
    to_bitstring,
)
from qrpayload.tables import (
    FileTableProvider,
    ResourceTableProvider,
    TableContext,
    TableId,
    TableProvider,
    default_context,
)

__version__ = "0.1.0"

__all__ = [
    "AlphanumericEncoder",
    "ByteEncoder",
    "EncodedPayload",
    "EncodingRangeFault",
    "FileTableProvider",
    "InvalidInputError",
    "KanjiEncoder",
    "Mode",
    "ModeEncoder",
    "NumericEncoder",
    "PayloadSpec",
    "QRPayloadError",
    "ResourceTableProvider",
    "TableContext",
    "TableId",
    "TableProvider",
    "TableUnavailableError",
    "default_context",
    "encode",
    "encoder_for",
    "kanji_qr_value",
    "make_payload",
    "pack_bits",
    "to_bitstring",
]
