"""
scalar_codecs.py - Header scalars that are not plain integers

Timestamps:
    36-bit count of deciseconds (1/10 s) since 1970-01-01T00:00:00Z.
    Encoding floors to the decisecond, so a datetime with a non-zero
    sub-100ms component comes back truncated (12:00:00.456 -> 12:00:00.400).
    Naive datetimes are taken as UTC; decoded datetimes are UTC-aware.

Language code:
    Two letters A..Z, each stored as 6 bits (letter - 'A').

Encoding type:
    One bit selecting the vendor payload layout (0 = bitfield, 1 = range).
"""

from datetime import datetime, timedelta, timezone
from enum import IntEnum

from bit_cursor import BitCursor
from consent_errors import InvalidLanguageCode, TimestampOutOfRange


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

TIMESTAMP_BITS = 36
MS_PER_DECISECOND = 100

LANGUAGE_LETTER_BITS = 6
LANGUAGE_LETTERS = 2
LANGUAGE_MAX_LETTER = 25


class VendorEncoding(IntEnum):
    """Vendor payload layout (1 bit)."""
    BITFIELD = 0
    RANGE = 1


# =============================================================================
# Timestamps
# =============================================================================

def epoch_ms(dt: datetime) -> int:
    """Milliseconds since the epoch, floored."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return (dt - EPOCH) // timedelta(milliseconds=1)


def from_epoch_ms(ms: int) -> datetime:
    """UTC datetime for a millisecond epoch timestamp."""
    return EPOCH + timedelta(milliseconds=ms)


def to_deciseconds(dt: datetime) -> int:
    ticks = epoch_ms(dt) // MS_PER_DECISECOND
    if ticks < 0 or ticks >= (1 << TIMESTAMP_BITS):
        raise TimestampOutOfRange(
            f"Timestamp {dt.isoformat()} does not fit in {TIMESTAMP_BITS} bits of deciseconds")
    return ticks


def from_deciseconds(ticks: int) -> datetime:
    return from_epoch_ms(ticks * MS_PER_DECISECOND)


def write_timestamp(cursor: BitCursor, dt: datetime) -> None:
    cursor.write_uint(to_deciseconds(dt), TIMESTAMP_BITS)


def read_timestamp(cursor: BitCursor) -> datetime:
    return from_deciseconds(cursor.read_uint(TIMESTAMP_BITS))


# =============================================================================
# Language code
# =============================================================================

def validate_language(code: str) -> str:
    """Return code if it is exactly two letters A..Z, else raise."""
    if not isinstance(code, str) or len(code) != LANGUAGE_LETTERS:
        raise InvalidLanguageCode(f"Consent language must be 2 letters, got {code!r}")
    for i, letter in enumerate(code):
        if not 'A' <= letter <= 'Z':
            raise InvalidLanguageCode(
                f"Invalid char {letter!r} in consent language at position {i}")
    return code


def write_language(cursor: BitCursor, code: str) -> None:
    for letter in validate_language(code):
        cursor.write_uint(ord(letter) - ord('A'), LANGUAGE_LETTER_BITS)


def read_language(cursor: BitCursor) -> str:
    letters = []
    for i in range(LANGUAGE_LETTERS):
        value = cursor.read_uint(LANGUAGE_LETTER_BITS)
        if value > LANGUAGE_MAX_LETTER:
            raise InvalidLanguageCode(
                f"Language letter value {value} at position {i} is outside A..Z")
        letters.append(chr(ord('A') + value))
    return ''.join(letters)


# =============================================================================
# Encoding type
# =============================================================================

def write_encoding(cursor: BitCursor, encoding: VendorEncoding) -> None:
    cursor.write_uint(int(encoding), 1)


def read_encoding(cursor: BitCursor) -> VendorEncoding:
    return VendorEncoding(cursor.read_uint(1))
