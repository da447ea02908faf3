"""
Pytest configuration and shared fixtures for rfloc_core tests.

This module provides reusable fixtures for emitter identities, reference
fixes, stores and caches, plus helpers to place points at metric offsets.
"""

import sys
from pathlib import Path
from typing import List

import pytest

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from rfloc_core.metrics import reset_metrics
from rfloc_core.proto import EmitterKind, RfIdentification, Observation, ReferenceFix
from rfloc_core.localization.geo import METER_TO_DEG, cos_lat
from rfloc_core.storage import SQLiteEmitterStore, EmitterCache


# Hong Kong harbour, away from the poles and from null island
BASE_LAT = 22.2900
BASE_LON = 114.1700


# =============================================================================
# Metrics
# =============================================================================


@pytest.fixture(autouse=True)
def fresh_metrics():
    """Give every test its own metrics collector."""
    reset_metrics()
    yield


# =============================================================================
# Identity Fixtures
# =============================================================================


@pytest.fixture
def wifi_ident() -> RfIdentification:
    """A WiFi access point."""
    return RfIdentification("00:11:22:33:44:55", EmitterKind.WLAN)


@pytest.fixture
def cell_ident() -> RfIdentification:
    """An LTE cell."""
    return RfIdentification("LTE/454/00/12345/100/2000", EmitterKind.MOBILE)


@pytest.fixture
def wifi_idents() -> List[RfIdentification]:
    """Five distinct WiFi access points."""
    return [RfIdentification(f"00:11:22:33:44:{i:02x}", EmitterKind.WLAN) for i in range(5)]


# =============================================================================
# Reference Fix Fixtures
# =============================================================================


@pytest.fixture
def good_reference() -> ReferenceFix:
    """Reference accurate enough for every kind."""
    return ReferenceFix(lat=BASE_LAT, lon=BASE_LON, accuracy_m=5.0, time_s=100.0)


@pytest.fixture
def poor_reference() -> ReferenceFix:
    """Reference good enough for cells but not for WiFi."""
    return ReferenceFix(lat=BASE_LAT, lon=BASE_LON, accuracy_m=50.0, time_s=100.0)


# =============================================================================
# Storage Fixtures
# =============================================================================


@pytest.fixture
def store():
    """In-memory SQLite store."""
    s = SQLiteEmitterStore(":memory:")
    yield s
    s.close()


@pytest.fixture
def cache(store) -> EmitterCache:
    """Cache over the in-memory store."""
    return EmitterCache(store)


# =============================================================================
# Helper Functions
# =============================================================================


def offset(lat: float, lon: float, north_m: float = 0.0, east_m: float = 0.0):
    """
    Point displaced by a metric offset (small-area approximation).

    Args:
        lat, lon: Start point (degrees)
        north_m: Displacement north (meters)
        east_m: Displacement east (meters)

    Returns:
        (lat, lon) of the displaced point
    """
    new_lat = lat + north_m * METER_TO_DEG
    new_lon = lon + east_m * METER_TO_DEG / cos_lat(lat)
    return new_lat, new_lon


def reference_at(north_m: float = 0.0, east_m: float = 0.0,
                 accuracy_m: float = 5.0, time_s: float = 100.0) -> ReferenceFix:
    """Reference fix at a metric offset from the base point."""
    lat, lon = offset(BASE_LAT, BASE_LON, north_m, east_m)
    return ReferenceFix(lat=lat, lon=lon, accuracy_m=accuracy_m, time_s=time_s)


def observe(ident: RfIdentification, asu: int = 20, note: str = "") -> Observation:
    """Observation of an emitter."""
    return Observation(ident, asu, note)
