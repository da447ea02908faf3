"""
RF Emitter Model.

One RfEmitter represents one physical emitter for its whole lifetime in the
local model: identity, last signal strength, learned coverage, trust and
persistence status. Emitters are created and owned by the EmitterCache;
everything outside the cache receives immutable CoverageEstimate snapshots.

Coverage is learned from reference fixes. Internally it is an axis-aligned
box stored as centre plus a radius tangent to the box sides; externally the
radius is scaled by sqrt(2) so the reported disk covers the box corners.

Status machine:
    UNKNOWN -> NEW, CACHED, BLACKLISTED
    NEW -> CACHED, BLACKLISTED
    CACHED, CHANGED -> CACHED, CHANGED, BLACKLISTED
    BLACKLISTED (terminal)

Requests outside the table are ignored.
"""

import math
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from rfloc_core.proto import EmitterKind, RfIdentification, MINIMUM_ASU
from rfloc_core.metrics import get_metrics
from .blacklist import should_blacklist
from .geo import DEG_TO_METER, METER_TO_DEG, cos_lat, distance_m
from .rf_characteristics import (
    RfCharacteristics,
    SignalModel,
    DEFAULT_SIGNAL_MODEL,
    MINIMUM_TRUST,
    REQUIRED_TRUST,
    MAXIMUM_TRUST,
    get_rf_characteristics,
)

logger = logging.getLogger(__name__)

SQRT_2 = math.sqrt(2.0)

# Slack when testing whether a sample lies outside the box; absorbs the
# round trip through degrees and meters (~0.1 mm)
EDGE_TOLERANCE_DEG = 1e-9


class EmitterStatus(Enum):
    """Persistence status of an emitter."""

    UNKNOWN = 'unknown'             # Newly seen, no data at all
    NEW = 'new'                     # Not in storage, coverage known
    CHANGED = 'changed'             # In storage, changes pending
    CACHED = 'cached'               # In storage, nothing pending
    BLACKLISTED = 'blacklisted'     # Never used for positioning


ALLOWED_TRANSITIONS = {
    EmitterStatus.UNKNOWN: frozenset({
        EmitterStatus.NEW, EmitterStatus.CACHED, EmitterStatus.BLACKLISTED,
    }),
    EmitterStatus.NEW: frozenset({
        EmitterStatus.CACHED, EmitterStatus.BLACKLISTED,
    }),
    EmitterStatus.CHANGED: frozenset({
        EmitterStatus.CACHED, EmitterStatus.CHANGED, EmitterStatus.BLACKLISTED,
    }),
    EmitterStatus.CACHED: frozenset({
        EmitterStatus.CACHED, EmitterStatus.CHANGED, EmitterStatus.BLACKLISTED,
    }),
    EmitterStatus.BLACKLISTED: frozenset(),
}


def can_transition(current: EmitterStatus, requested: EmitterStatus) -> bool:
    """True if the status machine allows current -> requested."""
    return requested in ALLOWED_TRANSITIONS[current]


class SyncAction(Enum):
    """What a sync must do in storage for one emitter."""

    NONE = 'none'
    INSERT = 'insert'
    UPDATE = 'update'
    DELETE = 'delete'


@dataclass
class Coverage:
    """
    Learned coverage area.

    Attributes:
        latitude: Centre latitude (degrees)
        longitude: Centre longitude (degrees)
        radius_m: Radius tangent to the sides of the coverage box (meters)
    """

    latitude: float
    longitude: float
    radius_m: float = 0.0


@dataclass(frozen=True)
class CoverageEstimate:
    """
    Immutable snapshot of an emitter's coverage for position estimation.

    Attributes:
        identification: Which emitter
        latitude: Centre latitude (degrees)
        longitude: Centre longitude (degrees)
        accuracy_m: Reported radius (signal scaled, floored at minimum range)
        asu: Signal strength of the last sighting
    """

    identification: RfIdentification
    latitude: float
    longitude: float
    accuracy_m: float
    asu: int

    @property
    def kind(self) -> EmitterKind:
        return self.identification.kind

    @property
    def lat(self) -> float:
        return self.latitude

    @property
    def lon(self) -> float:
        return self.longitude


class RfEmitter:
    """
    Coverage, trust and persistence state of one emitter.

    Usage (normally only through EmitterCache):
        emitter = RfEmitter(ident)
        emitter.asu = 20
        emitter.note = "HomeNet"
        emitter.update_coverage(reference_fix)
        estimate = emitter.get_public_location()
    """

    def __init__(
        self,
        identification: RfIdentification,
        characteristics: Optional[RfCharacteristics] = None,
        signal_model: Optional[SignalModel] = None,
        asu: int = MINIMUM_ASU,
    ):
        """
        Create an emitter in status UNKNOWN.

        Args:
            identification: Emitter identity
            characteristics: Kind characteristics (defaults by kind)
            signal_model: ASU scaling model
            asu: Initial signal strength
        """
        self.identification = identification
        self.characteristics = characteristics or get_rf_characteristics(identification.kind)
        self.signal_model = signal_model or DEFAULT_SIGNAL_MODEL
        self.metrics = get_metrics()

        self._asu = self.signal_model.clamp(asu)
        self._note = ""
        self.coverage: Optional[Coverage] = None
        self.trust = self.characteristics.discovery_trust
        self.trust_exhausted = False
        self.age = 0
        self.status = EmitterStatus.UNKNOWN

        if should_blacklist(self.identification, self._note):
            self._change_status(EmitterStatus.BLACKLISTED, 'create')

    @property
    def kind(self) -> EmitterKind:
        return self.identification.kind

    @property
    def asu(self) -> int:
        """Signal strength of the last sighting."""
        return self._asu

    @asu.setter
    def asu(self, value: int):
        self._asu = self.signal_model.clamp(value)

    @property
    def note(self) -> str:
        """Free text from the last sighting (SSID for WiFi)."""
        return self._note

    @note.setter
    def note(self, value: Optional[str]):
        value = value or ""
        if value == self._note:
            return
        self._note = value
        if should_blacklist(self.identification, value):
            self._change_status(EmitterStatus.BLACKLISTED, 'note')

    @property
    def is_blacklisted(self) -> bool:
        return self.status == EmitterStatus.BLACKLISTED

    def can_update(self) -> bool:
        """True if trust may change (known emitter, not blacklisted)."""
        return self.status not in (EmitterStatus.UNKNOWN, EmitterStatus.BLACKLISTED)

    # =========================================================================
    # Cache age
    # =========================================================================

    def reset_age(self):
        self.age = 0

    def increment_age(self):
        self.age += 1

    # =========================================================================
    # Coverage
    # =========================================================================

    def update_coverage(self, reference) -> bool:
        """
        Learn from a reference fix taken while this emitter was visible.

        Args:
            reference: ReferenceFix (or any object with lat, lon, accuracy_m)

        Returns:
            True if the coverage changed
        """
        if self.is_blacklisted or reference is None:
            return False

        if reference.accuracy_m > self.characteristics.required_reference_accuracy:
            return False

        if self.coverage is None:
            self.coverage = Coverage(reference.lat, reference.lon, 0.0)
            self._change_status(EmitterStatus.NEW, 'coverage seeded')
            self.metrics.increment('coverage_updates')
            logger.debug(f"{self.identification} new coverage at ({reference.lat:.6f}, {reference.lon:.6f})")
            return True

        distance = distance_m(
            reference.lat, reference.lon,
            self.coverage.latitude, self.coverage.longitude,
        )

        if distance >= self.characteristics.move_detect_distance:
            logger.info(f"{self.identification} appears to have moved {distance:.0f}m, resetting coverage")
            self.coverage = Coverage(reference.lat, reference.lon, 0.0)
            self.trust = self.characteristics.discovery_trust
            self.trust_exhausted = False
            self._change_status(EmitterStatus.CHANGED, 'moved')
            self.metrics.increment('coverage_updates')
            return True

        if not self._grow(reference.lat, reference.lon):
            return False

        self._change_status(EmitterStatus.CHANGED, 'coverage grown')
        self.metrics.increment('coverage_updates')
        return True

    def _grow(self, lat: float, lon: float) -> bool:
        """Grow the coverage box to include a point; False if already inside."""
        c = self.coverage
        d_lat = c.radius_m * METER_TO_DEG
        d_lon = d_lat / cos_lat(c.latitude)

        north, south = c.latitude + d_lat, c.latitude - d_lat
        east, west = c.longitude + d_lon, c.longitude - d_lon

        if (south - EDGE_TOLERANCE_DEG <= lat <= north + EDGE_TOLERANCE_DEG
                and west - EDGE_TOLERANCE_DEG <= lon <= east + EDGE_TOLERANCE_DEG):
            return False

        north, south = max(north, lat), min(south, lat)
        east, west = max(east, lon), min(west, lon)

        c.latitude = (north + south) / 2.0
        c.longitude = (east + west) / 2.0

        ns_radius = (north - c.latitude) * DEG_TO_METER
        ew_radius = (east - c.longitude) * DEG_TO_METER * cos_lat(c.latitude)
        c.radius_m = max(ns_radius, ew_radius)
        return True

    def coverage_estimate(self) -> Optional[CoverageEstimate]:
        """
        Coverage as reported to estimators, ignoring trust.

        Accuracy is the box radius scaled by sqrt(2) and by the signal
        strength, floored at the kind's minimum range.
        """
        if self.coverage is None:
            return None

        accuracy = self.coverage.radius_m * SQRT_2 * self.signal_model.scale(self._asu)
        accuracy = max(accuracy, self.characteristics.minimum_range)

        return CoverageEstimate(
            identification=self.identification,
            latitude=self.coverage.latitude,
            longitude=self.coverage.longitude,
            accuracy_m=accuracy,
            asu=self._asu,
        )

    def get_public_location(self) -> Optional[CoverageEstimate]:
        """Coverage estimate if the emitter is trusted enough to position with."""
        if self.trust < REQUIRED_TRUST or self.is_blacklisted:
            return None
        return self.coverage_estimate()

    # =========================================================================
    # Trust
    # =========================================================================

    def increment_trust(self):
        """Seen this cycle: raise trust, clamped to MAXIMUM_TRUST."""
        if not self.can_update():
            return
        new_trust = min(self.trust + self.characteristics.increment_trust, MAXIMUM_TRUST)
        if new_trust != self.trust:
            self.trust = new_trust
            self._change_status(EmitterStatus.CHANGED, 'trust up')

    def decrement_trust(self):
        """
        Expected but not seen this cycle: lower trust, clamped to MINIMUM_TRUST.

        A decrement that would go below the minimum marks the emitter as
        trust-exhausted; its stored record is deleted at the next sync.
        """
        if not self.can_update():
            return
        step = self.characteristics.decrement_trust
        if step <= 0:
            return
        if self.trust - step < MINIMUM_TRUST:
            self.trust = MINIMUM_TRUST
            if not self.trust_exhausted:
                logger.debug(f"{self.identification} trust exhausted")
            self.trust_exhausted = True
        else:
            self.trust -= step
        self._change_status(EmitterStatus.CHANGED, 'trust down')

    # =========================================================================
    # Persistence
    # =========================================================================

    def load_info(self, info):
        """
        Apply a stored record (EmitterInfo) to a freshly created emitter.

        Args:
            info: Object with trust, latitude, longitude, radius and note
        """
        if info is None:
            return
        self.coverage = Coverage(info.latitude, info.longitude, info.radius)
        self.trust = max(MINIMUM_TRUST, min(int(info.trust), MAXIMUM_TRUST))
        self._change_status(EmitterStatus.CACHED, 'loaded')
        self.note = info.note

    def needs_sync(self) -> bool:
        """True if storage is out of date for this emitter."""
        return self.plan_sync() != SyncAction.NONE

    def plan_sync(self) -> SyncAction:
        """
        Storage action needed to bring storage up to date. Does not mutate.

        NEW emitters that exhausted their trust before ever being stored are
        simply forgotten.
        """
        if self.status == EmitterStatus.BLACKLISTED:
            return SyncAction.DELETE if self.coverage is not None else SyncAction.NONE
        if self.status == EmitterStatus.NEW:
            return SyncAction.NONE if self.trust_exhausted else SyncAction.INSERT
        if self.status == EmitterStatus.CHANGED:
            return SyncAction.DELETE if self.trust_exhausted else SyncAction.UPDATE
        return SyncAction.NONE

    def mark_synced(self, action: SyncAction):
        """
        Apply the in-memory side of a committed sync.

        Args:
            action: The action that was committed for this emitter
        """
        if self.status == EmitterStatus.BLACKLISTED:
            if action == SyncAction.DELETE:
                self.coverage = None
            return
        if self.status in (EmitterStatus.NEW, EmitterStatus.CHANGED):
            self._change_status(EmitterStatus.CACHED, f'synced ({action.value})')

    def _change_status(self, new_status: EmitterStatus, reason: str):
        if new_status == self.status:
            return
        if not can_transition(self.status, new_status):
            return
        logger.debug(f"{self.identification}: {self.status.value} -> {new_status.value} ({reason})")
        self.status = new_status

    def __repr__(self) -> str:
        return (f"RfEmitter({self.identification}, status={self.status.value}, "
                f"trust={self.trust}, asu={self._asu}, note={self._note!r})")
