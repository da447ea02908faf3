"""
Position Fix Output Schema.

Defines the fused position reported to the position sink once per
collection cycle.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class PositionFix:
    """
    Fused device position.

    Attributes:
        lat: Latitude (degrees)
        lon: Longitude (degrees)
        accuracy_m: Estimated accuracy radius (meters)
        time_s: Time of the fix (seconds, wall clock)
        sample_count: Number of coverage estimates averaged into the fix

        # Optional kinematic info (only from the result smoother)
        speed_m_s: Speed estimate (m/s)
        bearing_deg: Compass bearing (degrees, 0 = north)

    Notes:
        - A fix is never produced from zero samples; insufficient data is
          reported as None by the producer, not as an empty fix
    """

    lat: float
    lon: float
    accuracy_m: float
    time_s: float
    sample_count: int

    speed_m_s: Optional[float] = None
    bearing_deg: Optional[float] = None

    def __post_init__(self):
        """Validate position fix."""
        if self.accuracy_m < 0:
            raise ValueError(f"Accuracy cannot be negative: {self.accuracy_m}")

        if self.sample_count < 1:
            raise ValueError(f"Sample count must be positive: {self.sample_count}")

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'lat': self.lat,
            'lon': self.lon,
            'accuracy_m': self.accuracy_m,
            'time_s': self.time_s,
            'sample_count': self.sample_count,
            'speed_m_s': self.speed_m_s,
            'bearing_deg': self.bearing_deg,
        }
