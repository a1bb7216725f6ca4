"""
vendor_consent.py - Mutable vendor consent set

A VendorConsentSet answers "does vendor N consent?" for N in
[1, max_vendor_id]. It is backed by one of two forms:

    Bitfield(consents)                 one bool per vendor id
    Ranges(default_consent, entries)   default plus sorted, non-overlapping
                                       exception entries

Both forms answer contains/insert/remove/iteration identically. Mutations
update whichever form is active; the set is only recompressed when it is
serialized in range mode (see range_compressor.compress).

Usage:
    from vendor_consent import VendorConsentSet

    consent = VendorConsentSet.from_ranges(2011, True, [RangeEntry.single(9)])
    consent.remove(10)
    consent.contains(10)        # False
    consent.contains(5000)      # False, ids past max_vendor_id never consent
    for vendor_id, allowed in consent:
        ...
"""

from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from consent_errors import VendorIdOutOfRange
from range_compressor import (
    RangeEntry, compress, expand, normalize, range_payload_bits,
)
from scalar_codecs import VendorEncoding


MAX_VENDOR_ID = (1 << 16) - 1


@dataclass
class Bitfield:
    """One consent flag per vendor id; index 0 is vendor 1."""
    consents: List[bool] = field(default_factory=list)


@dataclass
class Ranges:
    """Default consent plus ascending, non-overlapping exception entries."""
    default_consent: bool = False
    entries: List[RangeEntry] = field(default_factory=list)


ConsentForm = Union[Bitfield, Ranges]


class VendorConsentSet:
    """Per-vendor consent for ids 1..max_vendor_id."""

    def __init__(self, max_vendor_id: int, form: Optional[ConsentForm] = None):
        if not 0 <= max_vendor_id <= MAX_VENDOR_ID:
            raise VendorIdOutOfRange(
                f"max_vendor_id must be in [0, {MAX_VENDOR_ID}], got {max_vendor_id}")
        if form is None:
            form = Bitfield([False] * max_vendor_id)
        elif isinstance(form, Bitfield):
            if len(form.consents) != max_vendor_id:
                raise VendorIdOutOfRange(
                    f"Bitfield has {len(form.consents)} flags, expected {max_vendor_id}")
            form = Bitfield([bool(c) for c in form.consents])
        elif isinstance(form, Ranges):
            form = Ranges(bool(form.default_consent), normalize(form.entries, max_vendor_id))
        else:
            raise TypeError(f"Unknown consent form: {type(form).__name__}")

        self.max_vendor_id = max_vendor_id
        self._form: ConsentForm = form

    @classmethod
    def from_bitfield(cls, consents: Sequence[bool]) -> 'VendorConsentSet':
        return cls(len(consents), Bitfield(list(consents)))

    @classmethod
    def from_ranges(cls, max_vendor_id: int, default_consent: bool,
                    entries: Iterable[RangeEntry]) -> 'VendorConsentSet':
        return cls(max_vendor_id, Ranges(default_consent, list(entries)))

    @classmethod
    def from_ids(cls, max_vendor_id: int, vendor_ids: Iterable[int]) -> 'VendorConsentSet':
        """Bitfield-backed set where exactly vendor_ids consent."""
        consent = cls(max_vendor_id)
        for vendor_id in vendor_ids:
            consent.insert(vendor_id)
        return consent

    # -------------------------------------------------------------------------
    # Form introspection
    # -------------------------------------------------------------------------

    @property
    def form(self) -> ConsentForm:
        return self._form

    @property
    def encoding(self) -> VendorEncoding:
        """Wire encoding matching the active form."""
        if isinstance(self._form, Ranges):
            return VendorEncoding.RANGE
        return VendorEncoding.BITFIELD

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def _range_index(self, vendor_id: int) -> int:
        """Index of the entry covering vendor_id, or -1."""
        entries = self._form.entries
        i = bisect_right([e.start for e in entries], vendor_id) - 1
        if i >= 0 and vendor_id in entries[i]:
            return i
        return -1

    def contains(self, vendor_id: int) -> bool:
        """True if vendor_id consents. Ids outside [1, max] never consent."""
        if not 1 <= vendor_id <= self.max_vendor_id:
            return False
        form = self._form
        if isinstance(form, Bitfield):
            return form.consents[vendor_id - 1]
        covered = self._range_index(vendor_id) >= 0
        return covered != form.default_consent

    __contains__ = contains

    def to_bitfield(self) -> List[bool]:
        """Fresh per-vendor list; index 0 is vendor 1."""
        form = self._form
        if isinstance(form, Bitfield):
            return list(form.consents)
        return expand(form.default_consent, form.entries, self.max_vendor_id)

    def to_ranges(self) -> Tuple[bool, List[RangeEntry]]:
        """Minimal (default_consent, entries) for range-mode output."""
        return compress(self.to_bitfield())

    def consented_ids(self) -> List[int]:
        return [vendor_id for vendor_id, allowed in self if allowed]

    def __iter__(self) -> Iterator[Tuple[int, bool]]:
        """(vendor_id, consent) for every id, from a snapshot taken now."""
        snapshot = self.to_bitfield()
        return ((index + 1, allowed) for index, allowed in enumerate(snapshot))

    def payload_bits(self, encoding: VendorEncoding) -> int:
        """Vendor payload size in bits when written with encoding."""
        if encoding == VendorEncoding.BITFIELD:
            return self.max_vendor_id
        _, entries = self.to_ranges()
        return range_payload_bits(entries)

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def insert(self, vendor_id: int) -> None:
        """Grant consent for vendor_id."""
        self._set(vendor_id, True)

    def remove(self, vendor_id: int) -> None:
        """Withdraw consent for vendor_id."""
        self._set(vendor_id, False)

    def _set(self, vendor_id: int, allowed: bool) -> None:
        if not 1 <= vendor_id <= self.max_vendor_id:
            raise VendorIdOutOfRange(
                f"Vendor id {vendor_id} outside [1, {self.max_vendor_id}]")

        form = self._form
        if isinstance(form, Bitfield):
            form.consents[vendor_id - 1] = allowed
            return

        i = self._range_index(vendor_id)
        if allowed != form.default_consent:
            if i < 0:
                starts = [e.start for e in form.entries]
                form.entries.insert(bisect_right(starts, vendor_id),
                                    RangeEntry.single(vendor_id))
        elif i >= 0:
            entry = form.entries[i]
            pieces = []
            if entry.start < vendor_id:
                pieces.append(RangeEntry(entry.start, vendor_id - 1))
            if vendor_id < entry.end:
                pieces.append(RangeEntry(vendor_id + 1, entry.end))
            form.entries[i:i + 1] = pieces

    # -------------------------------------------------------------------------
    # Comparison
    # -------------------------------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VendorConsentSet):
            return NotImplemented
        return (self.max_vendor_id == other.max_vendor_id
                and self.to_bitfield() == other.to_bitfield())

    def __repr__(self) -> str:
        default_consent, entries = self.to_ranges()
        return (f"VendorConsentSet(max_vendor_id={self.max_vendor_id}, "
                f"encoding={self.encoding.name}, default_consent={default_consent}, "
                f"exceptions={len(entries)})")


def smallest_encoding(consent: VendorConsentSet) -> VendorEncoding:
    """Encoding with the shorter vendor payload; ties go to bitfield."""
    bitfield = consent.payload_bits(VendorEncoding.BITFIELD)
    ranges = consent.payload_bits(VendorEncoding.RANGE)
    if bitfield <= ranges:
        return VendorEncoding.BITFIELD
    return VendorEncoding.RANGE
