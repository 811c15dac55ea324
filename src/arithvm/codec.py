"""Wire-order codec for multi-byte immediate operands.

Immediates embedded in the instruction stream are always big-endian
(most significant byte first). Conversion is explicit on every read, so the
same bytes decode to the same value on any host.
"""

import struct

# =============================================================================
# Constants
# =============================================================================

WIRE_BYTE_ORDER = 'big'

U32_SIZE = 4
F64_SIZE = 8
UINT32_MAX = 0xFFFFFFFF

_F64 = struct.Struct('>d')


def _check_size(data: bytes, size: int, what: str) -> None:
    if len(data) != size:
        raise ValueError(f"{what} needs exactly {size} bytes, got {len(data)}")


# =============================================================================
# Decoding (wire bytes -> values)
# =============================================================================

def decode_u32(data: bytes) -> int:
    """
    Decode a 4-byte big-endian unsigned integer.

    Args:
        data: Exactly 4 bytes taken from the instruction stream

    Returns:
        Integer in the range 0..0xFFFFFFFF

    Raises:
        ValueError: If data is not 4 bytes long
    """
    _check_size(data, U32_SIZE, "u32")
    return int.from_bytes(data, WIRE_BYTE_ORDER, signed=False)


def decode_f64(data: bytes) -> float:
    """
    Decode an 8-byte big-endian IEEE-754 binary64 value.

    Raises:
        ValueError: If data is not 8 bytes long
    """
    _check_size(data, F64_SIZE, "f64")
    return _F64.unpack(data)[0]


# =============================================================================
# Encoding (values -> wire bytes)
# =============================================================================

def encode_u32(value: int) -> bytes:
    """Encode an unsigned 32-bit integer in wire order."""
    if not (0 <= value <= UINT32_MAX):
        raise ValueError(f"u32 value must be 0-0x{UINT32_MAX:X}, got {value}")
    return value.to_bytes(U32_SIZE, WIRE_BYTE_ORDER)


def encode_f64(value: float) -> bytes:
    """Encode a double in wire order."""
    return _F64.pack(value)
