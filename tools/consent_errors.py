"""
consent_errors.py - Error kinds raised by the vendor consent string codec

Every error derives from ConsentStringError, which is a ValueError, so callers
that only catch ValueError keep working.

Usage:
    from consent_errors import ConsentStringError, UnsupportedVersion

    try:
        record = decode(text)
    except UnsupportedVersion as e:
        print(f"Unknown consent string version {e.version}")
    except ConsentStringError as e:
        print(f"Invalid consent string: {e}")
"""


class ConsentStringError(ValueError):
    """Base class for consent string codec errors."""
    pass


class UnsupportedVersion(ConsentStringError):
    """Leading version field does not match an implemented format."""

    def __init__(self, version: int):
        super().__init__(f"Unsupported consent string version: {version}")
        self.version = version


class MalformedInput(ConsentStringError):
    """Input is not valid base64 or does not match the declared layout."""
    pass


class TruncatedInput(MalformedInput):
    """Bit buffer exhausted before a field could be read."""
    pass


class InvalidLanguageCode(ConsentStringError):
    """Consent language is not two letters in A..Z."""
    pass


class TimestampOutOfRange(ConsentStringError):
    """Timestamp does not fit the 36-bit decisecond field."""
    pass


class VendorIdOutOfRange(ConsentStringError):
    """Vendor id outside [1, max_vendor_id], or a range with start > end."""
    pass


class InvalidPurposeId(ConsentStringError):
    """Purpose id outside the 24 purposes the header can carry."""
    pass


class ValueTooLarge(ConsentStringError):
    """Value does not fit the bit width of the field being written."""
    pass
