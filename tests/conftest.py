"""
pytest configuration and fixtures for the consent string codec tests.

Provides reusable fixtures for:
- Reference consent strings and their decoded field values
- Builders for V1 records
- Hypothesis property-based testing configuration
"""

import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add project paths
sys.path.insert(0, str(Path(__file__).parent.parent / "tools"))

from consent_string import VendorConsentV1
from vendor_consent import VendorConsentSet

# Configure Hypothesis profiles
try:
    from hypothesis import settings, Verbosity, Phase

    # Default profile: balanced speed and coverage
    settings.register_profile(
        "default",
        max_examples=100,
        deadline=None,
    )

    # CI profile: more thorough testing
    settings.register_profile(
        "ci",
        max_examples=500,
        deadline=None,
        suppress_health_check=[],
        phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    )

    # Dev profile: fast iteration
    settings.register_profile(
        "dev",
        max_examples=10,
        deadline=None,
    )

    # Debug profile: verbose output
    settings.register_profile(
        "debug",
        max_examples=10,
        verbosity=Verbosity.verbose,
        deadline=None,
    )

    # Load profile from environment
    profile = os.environ.get("HYPOTHESIS_PROFILE", "default")
    settings.load_profile(profile)

except ImportError:
    pass  # Hypothesis not installed


# Header of the reference vectors: 2017-11-07T19:15:55.4Z, CMP 7 v1,
# screen 3, EN, vendor list 8, purposes 1-3
HEADER_CREATED = datetime(2017, 11, 7, 19, 15, 55, 400000, tzinfo=timezone.utc)


@pytest.fixture
def make_record():
    """
    Build a V1 record with the reference header values.

    Usage:
        def test_x(make_record):
            record = make_record(VendorConsentSet.from_ids(10, [3]))
    """
    def _make(vendor_consent=None, encoding=None, **overrides):
        if vendor_consent is None:
            vendor_consent = VendorConsentSet(0)
        fields = dict(
            created=HEADER_CREATED,
            last_updated=HEADER_CREATED,
            cmp_id=7,
            cmp_version=1,
            consent_screen=3,
            consent_language="EN",
            vendor_list_version=8,
            purposes_allowed={1, 2, 3},
            vendor_consent=vendor_consent,
            vendor_encoding=encoding,
        )
        fields.update(overrides)
        return VendorConsentV1(**fields)
    return _make


@pytest.fixture
def sparse_bits():
    """Vendors 3, 5, 6 and 7 of 10 consent."""
    return [False, False, True, False, True, True, True, False, False, False]


# Markers for test categorization
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "compliance: marks tests as reference vector compliance tests"
    )
