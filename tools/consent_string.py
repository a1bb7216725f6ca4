"""
consent_string.py - Vendor consent string (V1) record and codec

Layout (all integers unsigned, MSB first, zero padded to a byte boundary,
then base64 URL-safe without '=' padding):

    Offset  Field               Bits
    ------  ------------------  ----
         0  version                6   always 1
         6  created               36   deciseconds since epoch
        42  last_updated          36   deciseconds since epoch
        78  cmp_id                12
        90  cmp_version           12
       102  consent_screen         6
       108  consent_language      12   2 x 6 bits, 'A' = 0
       120  vendor_list_version   12
       132  purposes_allowed      24   bit i set = purpose i+1 allowed
       156  max_vendor_id         16
       172  encoding_type          1   0 = bitfield, 1 = range
       173  vendor payload

    Bitfield payload:  max_vendor_id bits, vendor 1 first.
    Range payload:     default_consent(1) num_entries(12), then per entry
                       is_range(1) and vendor_id(16) or start(16) end(16).

Usage:
    from consent_envelope import decode, encode

    record = decode("BOEFBi5OEFBi5AHABDENAI4AAAB9vABAASA")
    record.last_updated = from_epoch_ms(1526040000000)
    record.vendor_consent.remove(10)
    encode(record)   # "BOEFBi5ONlzmAAHABDENAI4AAAB9vABgASABQA"
"""

import base64
import binascii
import warnings
from dataclasses import dataclass
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional, Set, Tuple

from bit_cursor import BitCursor
from consent_errors import ConsentStringError, InvalidPurposeId, MalformedInput
from range_compressor import NUM_ENTRIES_BITS, VENDOR_ID_BITS, RangeEntry
from scalar_codecs import (
    VendorEncoding, from_epoch_ms, epoch_ms, read_encoding, read_language,
    read_timestamp, validate_language, write_encoding, write_language,
    write_timestamp,
)
from vendor_consent import VendorConsentSet


VERSION_BITS = 6
CMP_ID_BITS = 12
CMP_VERSION_BITS = 12
CONSENT_SCREEN_BITS = 6
VENDOR_LIST_VERSION_BITS = 12
PURPOSES_BITS = 24
MAX_VENDOR_ID_BITS = 16

# (field, bits) in wire order, header only
V1_LAYOUT: List[Tuple[str, int]] = [
    ('version', VERSION_BITS),
    ('created', 36),
    ('last_updated', 36),
    ('cmp_id', CMP_ID_BITS),
    ('cmp_version', CMP_VERSION_BITS),
    ('consent_screen', CONSENT_SCREEN_BITS),
    ('consent_language', 12),
    ('vendor_list_version', VENDOR_LIST_VERSION_BITS),
    ('purposes_allowed', PURPOSES_BITS),
    ('max_vendor_id', MAX_VENDOR_ID_BITS),
    ('encoding_type', 1),
]

V1_HEADER_BITS = sum(bits for _, bits in V1_LAYOUT)


def layout_offsets() -> List[Tuple[str, int, int]]:
    """(field, offset, bits) for each V1 header field."""
    rows = []
    offset = 0
    for name, bits in V1_LAYOUT:
        rows.append((name, offset, bits))
        offset += bits
    return rows


@dataclass
class VendorConsentV1:
    """Decoded version 1 consent record.

    vendor_encoding is the wire mode used when the record is encoded without
    an explicit override. It defaults to the form backing vendor_consent, so
    a decoded record re-encodes in the mode it was read with.
    """
    created: datetime
    last_updated: datetime
    cmp_id: int
    cmp_version: int
    consent_screen: int
    consent_language: str
    vendor_list_version: int
    purposes_allowed: Set[int]
    vendor_consent: VendorConsentSet
    vendor_encoding: Optional[VendorEncoding] = None

    version: ClassVar[int] = 1

    def __post_init__(self):
        language = self.consent_language
        if isinstance(language, str) and language.isascii() and language.islower():
            warnings.warn(
                f"Consent language {language!r} is lower case, normalized to {language.upper()!r}",
                UserWarning, stacklevel=3)
            self.consent_language = language.upper()
        validate_language(self.consent_language)

        self.purposes_allowed = set(self.purposes_allowed)
        validate_purposes(self.purposes_allowed)

        if self.vendor_encoding is None:
            self.vendor_encoding = self.vendor_consent.encoding
        else:
            self.vendor_encoding = VendorEncoding(self.vendor_encoding)

    @property
    def max_vendor_id(self) -> int:
        return self.vendor_consent.max_vendor_id


# =============================================================================
# Text form
# =============================================================================

def from_base64(text: str) -> bytes:
    """Decode URL-safe base64, with or without '=' padding."""
    text = text.strip()
    if '+' in text or '/' in text:
        raise MalformedInput("Consent string must use the URL-safe base64 alphabet ('-' and '_')")
    padding = -len(text) % 4
    try:
        return base64.b64decode(text + '=' * padding, altchars=b'-_', validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedInput(f"Invalid base64 consent string: {e}") from e


def to_base64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode('ascii').rstrip('=')


# =============================================================================
# Purposes
# =============================================================================

def validate_purposes(purposes: Set[int]) -> Set[int]:
    for purpose in purposes:
        if not 1 <= purpose <= PURPOSES_BITS:
            raise InvalidPurposeId(f"Purpose id {purpose} outside [1, {PURPOSES_BITS}]")
    return purposes


def read_purposes(cursor: BitCursor) -> Set[int]:
    flags = cursor.read_bits(PURPOSES_BITS)
    return {i + 1 for i, allowed in enumerate(flags) if allowed}


def write_purposes(cursor: BitCursor, purposes: Set[int]) -> None:
    # The set is mutable after construction
    validate_purposes(purposes)
    cursor.write_bits([(i + 1) in purposes for i in range(PURPOSES_BITS)])


# =============================================================================
# Vendor payload
# =============================================================================

def read_vendor_payload(cursor: BitCursor, max_vendor_id: int,
                        encoding: VendorEncoding) -> VendorConsentSet:
    if encoding == VendorEncoding.BITFIELD:
        return VendorConsentSet.from_bitfield(cursor.read_bits(max_vendor_id))

    default_consent = cursor.read_bool()
    num_entries = cursor.read_uint(NUM_ENTRIES_BITS)
    entries = []
    for _ in range(num_entries):
        if cursor.read_bool():
            start = cursor.read_uint(VENDOR_ID_BITS)
            end = cursor.read_uint(VENDOR_ID_BITS)
            entries.append(RangeEntry(start, end))
        else:
            entries.append(RangeEntry.single(cursor.read_uint(VENDOR_ID_BITS)))
    return VendorConsentSet.from_ranges(max_vendor_id, default_consent, entries)


def write_vendor_payload(cursor: BitCursor, consent: VendorConsentSet,
                         encoding: VendorEncoding) -> None:
    if encoding == VendorEncoding.BITFIELD:
        cursor.write_bits(consent.to_bitfield())
        return

    default_consent, entries = consent.to_ranges()
    cursor.write_bool(default_consent)
    cursor.write_uint(len(entries), NUM_ENTRIES_BITS)
    for entry in entries:
        cursor.write_bool(entry.is_range)
        cursor.write_uint(entry.start, VENDOR_ID_BITS)
        if entry.is_range:
            cursor.write_uint(entry.end, VENDOR_ID_BITS)


# =============================================================================
# V1 body (everything after the version field)
# =============================================================================

def decode_v1(cursor: BitCursor) -> VendorConsentV1:
    """Read a V1 record; the cursor must sit just after the version field."""
    created = read_timestamp(cursor)
    last_updated = read_timestamp(cursor)
    cmp_id = cursor.read_uint(CMP_ID_BITS)
    cmp_version = cursor.read_uint(CMP_VERSION_BITS)
    consent_screen = cursor.read_uint(CONSENT_SCREEN_BITS)
    consent_language = read_language(cursor)
    vendor_list_version = cursor.read_uint(VENDOR_LIST_VERSION_BITS)
    purposes_allowed = read_purposes(cursor)
    max_vendor_id = cursor.read_uint(MAX_VENDOR_ID_BITS)
    encoding = read_encoding(cursor)
    vendor_consent = read_vendor_payload(cursor, max_vendor_id, encoding)

    if cursor.bits_remaining() >= 8:
        raise MalformedInput(
            f"{cursor.bits_remaining() // 8} trailing bytes after vendor payload "
            f"ending at bit {cursor.bit_position()}")

    return VendorConsentV1(
        created=created,
        last_updated=last_updated,
        cmp_id=cmp_id,
        cmp_version=cmp_version,
        consent_screen=consent_screen,
        consent_language=consent_language,
        vendor_list_version=vendor_list_version,
        purposes_allowed=purposes_allowed,
        vendor_consent=vendor_consent,
        vendor_encoding=encoding,
    )


def encode_v1(record: VendorConsentV1, cursor: BitCursor,
              encoding: Optional[VendorEncoding] = None) -> None:
    """Write a V1 record, version field included."""
    if encoding is None:
        encoding = record.vendor_encoding

    cursor.write_uint(VendorConsentV1.version, VERSION_BITS)
    write_timestamp(cursor, record.created)
    write_timestamp(cursor, record.last_updated)
    cursor.write_uint(record.cmp_id, CMP_ID_BITS)
    cursor.write_uint(record.cmp_version, CMP_VERSION_BITS)
    cursor.write_uint(record.consent_screen, CONSENT_SCREEN_BITS)
    write_language(cursor, record.consent_language)
    cursor.write_uint(record.vendor_list_version, VENDOR_LIST_VERSION_BITS)
    write_purposes(cursor, record.purposes_allowed)
    cursor.write_uint(record.max_vendor_id, MAX_VENDOR_ID_BITS)
    write_encoding(cursor, encoding)
    write_vendor_payload(cursor, record.vendor_consent, encoding)


# =============================================================================
# Record documents (YAML/JSON friendly dicts)
# =============================================================================

def format_timestamp(dt: datetime) -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix."""
    ms = epoch_ms(dt)
    dt = from_epoch_ms(ms)
    return dt.strftime('%Y-%m-%dT%H:%M:%S.') + f"{ms % 1000:03d}Z"


def parse_timestamp(value: Any) -> datetime:
    """Accept datetimes (YAML parses them natively), ISO strings or epoch ms."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, int):
        return from_epoch_ms(value)
    text = str(value).strip()
    if text.endswith(('Z', 'z')):
        text = text[:-1] + '+00:00'
    try:
        return datetime.fromisoformat(text)
    except ValueError as e:
        raise MalformedInput(f"Invalid timestamp {value!r}: {e}") from e


def record_to_dict(record: VendorConsentV1) -> Dict[str, Any]:
    default_consent, entries = record.vendor_consent.to_ranges()
    return {
        'version': record.version,
        'created': format_timestamp(record.created),
        'last_updated': format_timestamp(record.last_updated),
        'cmp_id': record.cmp_id,
        'cmp_version': record.cmp_version,
        'consent_screen': record.consent_screen,
        'consent_language': record.consent_language,
        'vendor_list_version': record.vendor_list_version,
        'purposes_allowed': sorted(record.purposes_allowed),
        'vendor_consent': {
            'max_vendor_id': record.max_vendor_id,
            'encoding': record.vendor_encoding.name.lower(),
            'default_consent': default_consent,
            'exceptions': [[e.start, e.end] if e.is_range else e.start for e in entries],
        },
    }


def _parse_entry(item: Any) -> RangeEntry:
    if isinstance(item, int):
        return RangeEntry.single(item)
    if isinstance(item, (list, tuple)) and len(item) == 2:
        return RangeEntry(int(item[0]), int(item[1]))
    raise MalformedInput(f"Vendor exception must be an id or [start, end], got {item!r}")


def record_from_dict(doc: Dict[str, Any]) -> VendorConsentV1:
    """Inverse of record_to_dict."""
    try:
        vendors = doc['vendor_consent']
        max_vendor_id = int(vendors['max_vendor_id'])
        encoding_name = str(vendors.get('encoding', 'range')).upper()
        if encoding_name not in VendorEncoding.__members__:
            raise MalformedInput(f"Unknown vendor encoding {vendors.get('encoding')!r}")
        encoding = VendorEncoding[encoding_name]
        default_consent = bool(vendors.get('default_consent', False))
        entries = [_parse_entry(item) for item in vendors.get('exceptions', [])]

        consent = VendorConsentSet.from_ranges(max_vendor_id, default_consent, entries)
        if encoding == VendorEncoding.BITFIELD:
            consent = VendorConsentSet.from_bitfield(consent.to_bitfield())

        return VendorConsentV1(
            created=parse_timestamp(doc['created']),
            last_updated=parse_timestamp(doc.get('last_updated', doc['created'])),
            cmp_id=int(doc['cmp_id']),
            cmp_version=int(doc['cmp_version']),
            consent_screen=int(doc['consent_screen']),
            consent_language=str(doc['consent_language']),
            vendor_list_version=int(doc['vendor_list_version']),
            purposes_allowed=set(doc.get('purposes_allowed', [])),
            vendor_consent=consent,
            vendor_encoding=encoding,
        )
    except KeyError as e:
        raise MalformedInput(f"Missing field in consent record: {e}") from e
    except ConsentStringError:
        raise
    except (TypeError, ValueError) as e:
        raise MalformedInput(f"Invalid consent record: {e}") from e
