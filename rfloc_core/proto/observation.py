"""
Emitter Observation Schema.

Defines the identity of an RF emitter and the per-scan sightings produced by
the observation collaborator (WiFi scan results, cell tower lists).

Signal strength is carried as ASU (arbitrary strength unit). Every emitter
kind is mapped onto the same ASU range so that weights are comparable across
WiFi and cellular sightings.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import List, Optional

from .reference_fix import ReferenceFix


MINIMUM_ASU = 1
MAXIMUM_ASU = 31


class EmitterKind(IntEnum):
    """Kind of RF emitter."""

    WLAN = 0            # WiFi, band unknown
    WLAN_24 = 1         # WiFi 2.4 GHz
    WLAN_5 = 2          # WiFi 5 GHz
    MOBILE = 3          # Cell tower (GSM, LTE, ...)

    @property
    def is_wlan(self) -> bool:
        """True for any WiFi band."""
        return self in (EmitterKind.WLAN, EmitterKind.WLAN_24, EmitterKind.WLAN_5)

    @classmethod
    def from_name(cls, name: str) -> 'EmitterKind':
        """Parse a stored kind name (e.g. "WLAN_5")."""
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown emitter kind: {name!r}") from None


@dataclass(frozen=True, order=True)
class RfIdentification:
    """
    Complete identification of an RF emitter.

    Attributes:
        rf_id: Identifier unique within the kind (BSSID, "LTE/mcc/mnc/ci/pci/tac")
        kind: Emitter kind

    Notes:
        - Hashable and ordered; used as the cache and storage key
    """

    rf_id: str
    kind: EmitterKind

    def __post_init__(self):
        """Validate identification."""
        if not self.rf_id:
            raise ValueError("Emitter id cannot be empty")

    def __str__(self) -> str:
        return f"{self.kind.name}:{self.rf_id}"


@dataclass
class Observation:
    """
    One sighting of an emitter in a scan.

    Attributes:
        identification: Which emitter was seen
        asu: Raw signal strength; the emitter clamps it with its SignalModel
        note: Free text from the scan (the SSID for WiFi)
    """

    identification: RfIdentification
    asu: int = MINIMUM_ASU
    note: str = ""

    def __post_init__(self):
        """Normalize fields; out of range signal strength is not an error."""
        self.asu = int(self.asu)
        if self.note is None:
            self.note = ""

    @property
    def kind(self) -> EmitterKind:
        """Kind of the observed emitter."""
        return self.identification.kind


@dataclass
class ObservationBatch:
    """
    Observations from one scan plus the reference fix current at queue time.

    Attributes:
        observations: Sightings from the scan
        time_s: Time the scan was collected (seconds, wall clock)
        reference: Smoothed reference position at queue time, if any
    """

    observations: List[Observation]
    time_s: float
    reference: Optional[ReferenceFix] = None

    def __len__(self) -> int:
        return len(self.observations)

