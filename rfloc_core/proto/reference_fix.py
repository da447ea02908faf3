"""
Reference Fix Schema.

A position sample from a trusted, non-RF source (normally the GPS). Reference
fixes drive coverage learning: an emitter's coverage only grows from fixes
whose accuracy is good enough for that emitter kind.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class ReferenceFix:
    """
    Trusted position sample.

    Attributes:
        lat: Latitude (degrees)
        lon: Longitude (degrees)
        accuracy_m: Horizontal accuracy radius (meters)
        time_s: Sample time (seconds, wall clock)
        altitude_m: Altitude (meters), if the source reports one
    """

    lat: float
    lon: float
    accuracy_m: float
    time_s: float
    altitude_m: Optional[float] = None

    def __post_init__(self):
        """Validate reference fix."""
        if not -90.0 <= self.lat <= 90.0:
            raise ValueError(f"Latitude out of range: {self.lat}")
        if not -180.0 <= self.lon <= 180.0:
            raise ValueError(f"Longitude out of range: {self.lon}")
        if self.accuracy_m < 0:
            raise ValueError(f"Accuracy cannot be negative: {self.accuracy_m}")

