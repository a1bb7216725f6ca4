"""
range_compressor.py - Range list <-> per-vendor bitfield conversion

A range list is a default consent value plus entries that flip it: every
vendor id covered by an entry has the opposite of the default. Entries are
either a single id (17 bits on the wire) or an inclusive [start, end] pair
(33 bits on the wire).

Bitfields here are plain lists of bools where index 0 is vendor id 1.

Usage:
    from range_compressor import RangeEntry, expand, compress

    bits = expand(True, [RangeEntry(9, 9)], max_vendor_id=2011)
    default_consent, entries = compress(bits)   # (True, [RangeEntry(9, 9)])
"""

from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

from consent_errors import VendorIdOutOfRange


VENDOR_ID_BITS = 16
NUM_ENTRIES_BITS = 12
ENTRY_FLAG_BITS = 1

# default_consent + num_entries
RANGE_HEADER_BITS = 1 + NUM_ENTRIES_BITS


@dataclass(frozen=True)
class RangeEntry:
    """Inclusive vendor id range; start == end is a single-id entry."""
    start: int
    end: int

    @classmethod
    def single(cls, vendor_id: int) -> 'RangeEntry':
        return cls(vendor_id, vendor_id)

    @property
    def is_range(self) -> bool:
        return self.start != self.end

    @property
    def encoded_bits(self) -> int:
        """Wire size: IsRange flag plus one or two vendor ids."""
        ids = 2 if self.is_range else 1
        return ENTRY_FLAG_BITS + ids * VENDOR_ID_BITS

    def validate(self, max_vendor_id: int) -> 'RangeEntry':
        if self.start > self.end:
            raise VendorIdOutOfRange(
                f"Range start {self.start} is greater than end {self.end}")
        if self.start < 1 or self.end > max_vendor_id:
            raise VendorIdOutOfRange(
                f"Range [{self.start}, {self.end}] outside [1, {max_vendor_id}]")
        return self

    def __contains__(self, vendor_id: int) -> bool:
        return self.start <= vendor_id <= self.end


def normalize(entries: Iterable[RangeEntry], max_vendor_id: int) -> List[RangeEntry]:
    """Validate entries, sort them and merge overlaps.

    Adjacent entries are left apart; only compress() rebuilds maximal runs.
    """
    ordered = sorted((e.validate(max_vendor_id) for e in entries),
                     key=lambda e: (e.start, e.end))
    merged: List[RangeEntry] = []
    for entry in ordered:
        if merged and entry.start <= merged[-1].end:
            last = merged[-1]
            merged[-1] = RangeEntry(last.start, max(last.end, entry.end))
        else:
            merged.append(entry)
    return merged


def expand(default_consent: bool, entries: Iterable[RangeEntry],
           max_vendor_id: int) -> List[bool]:
    """Per-vendor consent for ids 1..max_vendor_id."""
    bits = [default_consent] * max_vendor_id
    for entry in entries:
        entry.validate(max_vendor_id)
        for vendor_id in range(entry.start, entry.end + 1):
            bits[vendor_id - 1] = not default_consent
    return bits


def compress(bits: Sequence[bool]) -> Tuple[bool, List[RangeEntry]]:
    """Minimal range form of a bitfield.

    The majority value becomes the default (a tie picks False) and every
    maximal run of the minority value becomes one entry, in ascending order.
    """
    consenting = sum(1 for b in bits if b)
    default_consent = consenting > len(bits) - consenting

    entries: List[RangeEntry] = []
    start = None
    for index, value in enumerate(bits):
        vendor_id = index + 1
        if value != default_consent:
            if start is None:
                start = vendor_id
        elif start is not None:
            entries.append(RangeEntry(start, vendor_id - 1))
            start = None
    if start is not None:
        entries.append(RangeEntry(start, len(bits)))

    return default_consent, entries


def range_payload_bits(entries: Iterable[RangeEntry]) -> int:
    """Size of a range-mode vendor payload, excluding the encoding type bit."""
    return RANGE_HEADER_BITS + sum(e.encoded_bits for e in entries)
