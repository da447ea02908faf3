"""
Localization Module: Coverage model, filtering, fusion and outlier rejection.

Key classes:
- BoundingBox: Growing latitude/longitude box
- Kalman1D / KalmanTracker: Constant-velocity smoothing of position streams
- ReferenceTracker: Smoothed trusted reference (GPS) positions
- RfEmitter: Per-emitter coverage, trust and persistence status
- WeightedAverage: Signal weighted fusion of coverage estimates
- cull / select_consensus: Largest geometrically consistent group
"""

from .geo import (
    DEG_TO_METER,
    METER_TO_DEG,
    BoundingBox,
    bearing_deg,
    cos_lat,
    distance_m,
    is_null_island,
)
from .kalman import (
    Kalman1D,
    KalmanTracker,
    TrackedPosition,
    REFERENCE_PROCESS_NOISE_M,
    RESULT_PROCESS_NOISE_M,
)
from .reference_tracker import ReferenceTracker
from .rf_characteristics import (
    RfCharacteristics,
    CharacteristicsTable,
    SignalModel,
    DEFAULT_CHARACTERISTICS,
    FALLBACK_CHARACTERISTICS,
    MINIMUM_TRUST,
    REQUIRED_TRUST,
    MAXIMUM_TRUST,
    get_rf_characteristics,
)
from .blacklist import should_blacklist, is_mobile_ssid
from .emitter import (
    RfEmitter,
    EmitterStatus,
    ALLOWED_TRANSITIONS,
    Coverage,
    CoverageEstimate,
    SyncAction,
    can_transition,
)
from .weighted_average import (
    WeightedAverage,
    grow_accuracy,
    MINIMUM_BELIEVABLE_ACCURACY_M,
    EXPECTED_SPEED_M_S,
)
from .clustering import divide_in_groups, cull, select_consensus

__all__ = [
    # Geo
    'DEG_TO_METER',
    'METER_TO_DEG',
    'BoundingBox',
    'bearing_deg',
    'cos_lat',
    'distance_m',
    'is_null_island',
    # Filtering
    'Kalman1D',
    'KalmanTracker',
    'TrackedPosition',
    'REFERENCE_PROCESS_NOISE_M',
    'RESULT_PROCESS_NOISE_M',
    'ReferenceTracker',
    # Emitter model
    'RfCharacteristics',
    'CharacteristicsTable',
    'SignalModel',
    'DEFAULT_CHARACTERISTICS',
    'FALLBACK_CHARACTERISTICS',
    'MINIMUM_TRUST',
    'REQUIRED_TRUST',
    'MAXIMUM_TRUST',
    'get_rf_characteristics',
    'should_blacklist',
    'is_mobile_ssid',
    'RfEmitter',
    'EmitterStatus',
    'ALLOWED_TRANSITIONS',
    'Coverage',
    'CoverageEstimate',
    'SyncAction',
    'can_transition',
    # Fusion
    'WeightedAverage',
    'grow_accuracy',
    'MINIMUM_BELIEVABLE_ACCURACY_M',
    'EXPECTED_SPEED_M_S',
    'divide_in_groups',
    'cull',
    'select_consensus',
]
