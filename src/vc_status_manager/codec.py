"""
Encoded list codec.

An encoded list is ``base64url(gzip(bytes))`` without padding. The legacy
RevocationList2020 manager stores its list as one unsigned integer; the
numeric helpers convert that integer to the same textual representation.
"""

from __future__ import annotations

import base64
import binascii
import gzip
import zlib

from vc_status_manager.bitstring import Bitstring
from vc_status_manager.errors import DecodeError

# Minimum list length in bytes (16KB = 131072 bits) for herd privacy
MIN_LENGTH = 16384
MIN_BITS = MIN_LENGTH * 8


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def _b64url_decode(encoded: str) -> bytes:
    # Add padding if needed
    padding = -len(encoded) % 4
    try:
        if isinstance(encoded, bytes):
            encoded = encoded.decode("ascii")
        return base64.b64decode(encoded + "=" * padding, altchars=b"-_", validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Invalid base64url payload: {e}") from e


def _decompress(compressed: bytes) -> bytes:
    try:
        return gzip.decompress(compressed)
    except (OSError, EOFError, zlib.error) as e:
        raise DecodeError(f"Invalid gzip stream: {e}") from e


def encode_list(bitstring: Bitstring) -> str:
    """Compress and encode a bitstring for transport."""
    return _b64url_encode(gzip.compress(bytes(bitstring.value)))


def decode_list(encoded: str) -> Bitstring:
    """Decode an encoded list into a fresh Bitstring.

    Raises:
        DecodeError: If the payload is not base64url or not a gzip stream.
    """
    if not isinstance(encoded, (str, bytes)):
        raise DecodeError(f"Encoded list must be a string, got {type(encoded).__name__}")
    return Bitstring(_decompress(_b64url_decode(encoded)))


def number_to_bytes(n: int, length: int = MIN_LENGTH) -> bytes:
    """Big-endian bytes of ``n``, left-padded to at least ``length`` bytes."""
    if n < 0:
        raise ValueError(f"List value must be non-negative, got {n}")
    size = max(length, (n.bit_length() + 7) // 8)
    return n.to_bytes(size, byteorder="big")


def bytes_to_number(data: bytes) -> int:
    return int.from_bytes(data, byteorder="big")


def number_to_bitstring(n: int, length: int = MIN_LENGTH) -> Bitstring:
    if length < MIN_LENGTH:
        raise ValueError(f"List must be at least {MIN_LENGTH} bytes long")
    return Bitstring(number_to_bytes(n, length))


def bitstring_to_number(bitstring: Bitstring) -> int:
    return bytes_to_number(bytes(bitstring.value))


def number_to_encoded_list(n: int, length: int = MIN_LENGTH) -> str:
    """Encode a legacy numeric list.

    Raises:
        ValueError: If ``length`` is below MIN_LENGTH or ``n`` is negative.
    """
    return encode_list(number_to_bitstring(n, length))


def encoded_list_to_number(encoded: str) -> int:
    """Decode an encoded list back to its legacy numeric form."""
    return bitstring_to_number(decode_list(encoded))
