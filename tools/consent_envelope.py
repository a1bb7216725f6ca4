"""
consent_envelope.py - Version dispatch for vendor consent strings

Every consent string starts with a 6-bit format version. decode() reads it
and hands the rest of the buffer to that version's decoder; encode() picks
the encoder from the record type. Unknown versions fail immediately with
UnsupportedVersion, nothing past the version field is parsed.

Adding a format version means adding one entry to each table below.

Usage:
    from consent_envelope import decode, encode
    from scalar_codecs import VendorEncoding

    record = decode("BOEFEAyOEFEAyAHABDENAI4AAAB9vABAASA")
    record.vendor_consent.insert(9)
    text = encode(record)                                  # record's own mode
    text = encode(record, encoding=VendorEncoding.BITFIELD)
"""

from typing import Callable, Dict, Optional, Type, Union

from bit_cursor import BitCursor
from consent_errors import UnsupportedVersion
from consent_string import (
    VERSION_BITS, VendorConsentV1, decode_v1, encode_v1, from_base64, to_base64,
)
from scalar_codecs import VendorEncoding


# Union of the supported record variants
VendorConsent = Union[VendorConsentV1]

DECODERS: Dict[int, Callable[[BitCursor], VendorConsent]] = {
    VendorConsentV1.version: decode_v1,
}

ENCODERS: Dict[Type, Callable[..., None]] = {
    VendorConsentV1: encode_v1,
}

SUPPORTED_VERSIONS = tuple(sorted(DECODERS))


def peek_version(data: bytes) -> int:
    """Leading 6-bit version of a raw consent buffer."""
    return BitCursor(data).read_uint(VERSION_BITS)


def decode_bytes(data: bytes) -> VendorConsent:
    cursor = BitCursor(data)
    version = cursor.read_uint(VERSION_BITS)
    decoder = DECODERS.get(version)
    if decoder is None:
        raise UnsupportedVersion(version)
    return decoder(cursor)


def encode_bytes(record: VendorConsent,
                 encoding: Optional[VendorEncoding] = None) -> bytes:
    encoder = ENCODERS.get(type(record))
    if encoder is None:
        raise TypeError(f"Not a consent record: {type(record).__name__}")
    cursor = BitCursor()
    encoder(record, cursor, encoding)
    return cursor.finish()


def decode(text: str) -> VendorConsent:
    """Decode a base64 consent string into a record."""
    return decode_bytes(from_base64(text))


def encode(record: VendorConsent,
           encoding: Optional[VendorEncoding] = None) -> str:
    """Encode a record to its base64 consent string.

    encoding overrides the record's vendor_encoding for this call only.
    """
    return to_base64(encode_bytes(record, encoding))
