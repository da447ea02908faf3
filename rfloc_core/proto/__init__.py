"""
Protocol Module: Message schemas shared by all components.

- Emitter identity and scan observations (input)
- Reference fixes from a trusted position source (input)
- Fused position fixes (output)
"""

from .reference_fix import ReferenceFix
from .observation import (
    EmitterKind,
    RfIdentification,
    Observation,
    ObservationBatch,
    MINIMUM_ASU,
    MAXIMUM_ASU,
)
from .position_fix import PositionFix

__all__ = [
    'ReferenceFix',
    'EmitterKind',
    'RfIdentification',
    'Observation',
    'ObservationBatch',
    'MINIMUM_ASU',
    'MAXIMUM_ASU',
    'PositionFix',
]
