"""
Per-kind RF emitter characteristics and the signal strength model.

Characteristics are fixed configuration, not learned: how accurate a
reference fix must be before it may teach us about an emitter's coverage,
how large a coverage area is plausible, how far an emitter may appear to
jump before we decide it has physically moved, and how trust evolves.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional

from rfloc_core.proto import EmitterKind, MINIMUM_ASU, MAXIMUM_ASU

METERS = 1.0
KM = 1000.0 * METERS

MINIMUM_TRUST = 0
REQUIRED_TRUST = 30
MAXIMUM_TRUST = 100


@dataclass(frozen=True)
class RfCharacteristics:
    """
    Static model parameters for one emitter kind.

    Attributes:
        required_reference_accuracy: Reference accuracy (m) needed to update coverage
        minimum_range: Smallest believable coverage radius (m)
        typical_range: Typical coverage radius (m), used to size expected areas
        move_detect_distance: Jump distance (m) that marks an emitter as moved
        discovery_trust: Trust assigned on first discovery or after a move
        increment_trust: Trust gained per cycle the emitter is seen
        decrement_trust: Trust lost per cycle it is expected but not seen
        minimum_count: Emitters required in the consensus group for a fix
    """

    required_reference_accuracy: float
    minimum_range: float
    typical_range: float
    move_detect_distance: float
    discovery_trust: int
    increment_trust: int
    decrement_trust: int
    minimum_count: int

    def __post_init__(self):
        """Validate characteristics."""
        if self.minimum_range <= 0:
            raise ValueError(f"Minimum range must be positive: {self.minimum_range}")
        if self.move_detect_distance <= 0:
            raise ValueError(f"Move detect distance must be positive: {self.move_detect_distance}")
        if not MINIMUM_TRUST <= self.discovery_trust <= MAXIMUM_TRUST:
            raise ValueError(f"Discovery trust out of range: {self.discovery_trust}")
        if self.increment_trust < 0 or self.decrement_trust < 0:
            raise ValueError("Trust deltas cannot be negative")
        if self.minimum_count < 1:
            raise ValueError(f"Minimum count must be at least 1: {self.minimum_count}")


_WLAN = RfCharacteristics(
    required_reference_accuracy=20 * METERS,
    minimum_range=50 * METERS,
    typical_range=150 * METERS,
    move_detect_distance=1 * KM,        # Long detection ranges seen in rural areas
    discovery_trust=0,
    increment_trust=REQUIRED_TRUST // 3,
    decrement_trust=1,
    minimum_count=2,
)

_WLAN_5 = RfCharacteristics(
    required_reference_accuracy=20 * METERS,
    minimum_range=30 * METERS,
    typical_range=100 * METERS,
    move_detect_distance=500 * METERS,
    discovery_trust=0,
    increment_trust=REQUIRED_TRUST // 3,
    decrement_trust=1,
    minimum_count=2,
)

_MOBILE = RfCharacteristics(
    required_reference_accuracy=200 * METERS,
    minimum_range=500 * METERS,
    typical_range=2 * KM,
    move_detect_distance=100 * KM,      # Desert towers cover very large areas
    discovery_trust=MAXIMUM_TRUST,
    increment_trust=MAXIMUM_TRUST,
    decrement_trust=0,
    minimum_count=1,
)

# Unknown kinds get values that make them practically unusable: a reference
# accuracy nobody achieves, no trust growth, and an unreachable group size.
FALLBACK_CHARACTERISTICS = RfCharacteristics(
    required_reference_accuracy=2 * METERS,
    minimum_range=50 * METERS,
    typical_range=50 * METERS,
    move_detect_distance=100 * METERS,
    discovery_trust=0,
    increment_trust=0,
    decrement_trust=1,
    minimum_count=99,
)

DEFAULT_CHARACTERISTICS: Mapping[EmitterKind, RfCharacteristics] = MappingProxyType({
    EmitterKind.WLAN: _WLAN,
    EmitterKind.WLAN_24: _WLAN,
    EmitterKind.WLAN_5: _WLAN_5,
    EmitterKind.MOBILE: _MOBILE,
})


class CharacteristicsTable:
    """
    Lookup of characteristics by emitter kind.

    Usage:
        table = CharacteristicsTable()                       # defaults
        table = CharacteristicsTable({EmitterKind.WLAN: custom})  # override one kind
        chars = table.get(EmitterKind.MOBILE)
    """

    def __init__(self, overrides: Optional[Mapping[EmitterKind, RfCharacteristics]] = None):
        self._table = dict(DEFAULT_CHARACTERISTICS)
        if overrides:
            self._table.update(overrides)

    def get(self, kind: EmitterKind) -> RfCharacteristics:
        """Characteristics for a kind (fallback values if not configured)."""
        return self._table.get(kind, FALLBACK_CHARACTERISTICS)

    def __getitem__(self, kind: EmitterKind) -> RfCharacteristics:
        return self.get(kind)

    def kinds(self):
        """Kinds with explicit characteristics."""
        return list(self._table.keys())


@dataclass(frozen=True)
class SignalModel:
    """
    Signal strength heuristic: a stronger signal means we are probably closer
    to the centre of the coverage area, so the reported radius shrinks.

        scale = (maximum_asu - asu + minimum_asu) / maximum_asu

    Attributes:
        minimum_asu: Lowest ASU (scale 1.0)
        maximum_asu: Highest ASU (scale minimum_asu / maximum_asu)
    """

    minimum_asu: int = MINIMUM_ASU
    maximum_asu: int = MAXIMUM_ASU

    def __post_init__(self):
        """Validate signal model."""
        if not 0 < self.minimum_asu < self.maximum_asu:
            raise ValueError(
                f"Need 0 < minimum_asu < maximum_asu: {self.minimum_asu}, {self.maximum_asu}"
            )

    def clamp(self, asu: int) -> int:
        """Clamp a raw ASU into the model range."""
        return max(self.minimum_asu, min(int(asu), self.maximum_asu))

    def scale(self, asu: int) -> float:
        """Radius scale factor for a signal strength, in (0, 1]."""
        asu = self.clamp(asu)
        return (self.maximum_asu - asu + self.minimum_asu) / self.maximum_asu


DEFAULT_SIGNAL_MODEL = SignalModel()


def get_rf_characteristics(kind: EmitterKind) -> RfCharacteristics:
    """Default characteristics for a kind."""
    return DEFAULT_CHARACTERISTICS.get(kind, FALLBACK_CHARACTERISTICS)
