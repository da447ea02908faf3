"""
Kalman Tracker (Constant-Velocity, per axis).

Two layers:
- Kalman1D: constant-velocity filter on one coordinate, state [position, velocity]
- KalmanTracker: one Kalman1D per axis (latitude, longitude, optional altitude)

Latitude and longitude are filtered in degrees. Measurement noise arrives in
meters and is converted per call; the longitude conversion uses cos(latitude)
of the sample being processed, so the scaling follows the track instead of
being frozen at construction.

There is no accelerometer input, so process noise must cover ordinary
changes in vehicle speed (roughly 0 to 100 km/h in 5 s, ~5.6 m/s^2).
"""

import math
import logging
from dataclasses import dataclass
from typing import Optional
import numpy as np

from .geo import DEG_TO_METER, METER_TO_DEG, cos_lat
from rfloc_core.metrics import get_metrics

logger = logging.getLogger(__name__)


# Process noise for reference (GPS) smoothing and for fused-result smoothing
REFERENCE_PROCESS_NOISE_M = 3.0
RESULT_PROCESS_NOISE_M = 6.0


class Kalman1D:
    """
    Single-axis constant-velocity Kalman filter.

    State vector:
        x = [position, velocity]^T

    Prediction runs in fixed sub-steps so the process noise accumulates the
    same way regardless of how irregularly predict() is called. At 200 km/h
    and a best accuracy of 3 m there is nothing to gain from stepping faster
    than about 165 ms.

    Usage:
        kf = Kalman1D(process_noise=2.7e-5, time_s=t0)
        kf.set_state(position, 0.0, noise)
        kf.predict(t1)
        kf.update(measured_position, measurement_noise)
    """

    TIME_STEP_S = 0.150

    def __init__(self, process_noise: float, time_s: float):
        """
        Initialize filter.

        Args:
            process_noise: Acceleration noise standard deviation (units/s^2)
            time_s: Time the filter starts at (seconds)
        """
        self.process_noise = process_noise
        self._pred_time = time_s

        dt = self.TIME_STEP_S

        # State transition matrix (constant velocity)
        self._F = np.array([
            [1.0, dt],
            [0.0, 1.0],
        ])

        # Process noise covariance (white acceleration over one step)
        G = np.array([[dt * dt / 2.0], [dt]])
        self._Q = (process_noise ** 2) * (G @ G.T)

        self.x = np.zeros(2)
        self.P = self._Q.copy()

    def set_state(self, position: float, velocity: float, noise: float):
        """
        Reset the filter to a given state.

        Args:
            position: Initial position
            velocity: Initial velocity (units/s)
            noise: Standard deviation of the initial position; velocity starts
                   with the same deviation per second
        """
        self.x = np.array([position, velocity], dtype=float)
        self.P = np.diag([noise ** 2, noise ** 2])

    def predict(self, time_s: float):
        """
        Advance the state to time_s in fixed sub-steps.

        Args:
            time_s: Target time (seconds); earlier times are ignored
        """
        while time_s - self._pred_time > self.TIME_STEP_S:
            self._pred_time += self.TIME_STEP_S
            self.x = self._F @ self.x
            self.P = self._F @ self.P @ self._F.T + self._Q

    def update(self, position: float, noise: float) -> float:
        """
        Correct the state with a position measurement.

        Args:
            position: Measured position
            noise: Measurement noise standard deviation

        Returns:
            Innovation (measurement minus predicted position)
        """
        r = noise ** 2

        # Innovation
        y = position - self.x[0]

        # Innovation covariance (H = [1, 0])
        s = self.P[0, 0] + r

        # Kalman gain
        K = self.P[:, 0] / s

        self.x = self.x + K * y
        self.P = self.P - np.outer(K, self.P[0, :])

        return float(y)

    @property
    def position(self) -> float:
        """Estimated position."""
        return float(self.x[0])

    @property
    def velocity(self) -> float:
        """Estimated velocity (units/s)."""
        return float(self.x[1])

    @property
    def accuracy(self) -> float:
        """Position standard deviation."""
        return float(math.sqrt(max(self.P[0, 0], 0.0)))


@dataclass
class TrackedPosition:
    """
    Output of KalmanTracker.get_estimate().

    Attributes:
        lat: Latitude (degrees)
        lon: Longitude (degrees)
        accuracy_m: Horizontal accuracy (meters, floored)
        time_s: Time of the estimate
        speed_m_s: Speed derived from the velocity state
        bearing_deg: Compass bearing of travel (held while not moving)
        samples: Number of samples since the last reset_samples()
        altitude_m: Altitude, if any sample carried one
    """

    lat: float
    lon: float
    accuracy_m: float
    time_s: float
    speed_m_s: float
    bearing_deg: float
    samples: int
    altitude_m: Optional[float] = None


class KalmanTracker:
    """
    Position tracker built from independent per-axis Kalman1D filters.

    Samples are any objects with lat, lon, accuracy_m, time_s and optionally
    altitude_m (ReferenceFix, PositionFix).

    Usage:
        tracker = KalmanTracker(first_fix, REFERENCE_PROCESS_NOISE_M)
        tracker.update(next_fix)
        estimate = tracker.get_estimate(t_now)
    """

    ALTITUDE_NOISE_M = 10.0
    MOVING_THRESHOLD_M_S = 0.7      # ~2.5 km/h
    MIN_ACCURACY_M = 3.0

    def __init__(self, sample, process_noise_m: float):
        """
        Initialize tracker from its first sample.

        Args:
            sample: First position sample
            process_noise_m: Process noise (m/s^2) for latitude and longitude
        """
        self.process_noise_m = process_noise_m
        self.metrics = get_metrics()

        noise_deg = process_noise_m * METER_TO_DEG
        self._lat = Kalman1D(noise_deg, sample.time_s)
        self._lon = Kalman1D(noise_deg, sample.time_s)
        self._alt: Optional[Kalman1D] = None

        lat_noise, lon_noise = self._noise_degrees(sample)
        self._lat.set_state(sample.lat, 0.0, lat_noise)
        self._lon.set_state(sample.lon, 0.0, lon_noise)
        self._init_altitude(sample)

        self._bearing = 0.0
        self.last_update_time = sample.time_s
        self.samples = 1

    def update(self, sample):
        """
        Predict to the sample time and correct with the sample.

        Args:
            sample: Position sample
        """
        self.predict(sample.time_s)
        self.last_update_time = sample.time_s
        self.samples += 1

        lat_noise, lon_noise = self._noise_degrees(sample)
        innovation_lat = self._lat.update(sample.lat, lat_noise)
        innovation_lon = self._lon.update(sample.lon, lon_noise)

        altitude = getattr(sample, 'altitude_m', None)
        if altitude is not None:
            if self._alt is None:
                self._init_altitude(sample)
            else:
                self._alt.update(altitude, max(sample.accuracy_m, self.MIN_ACCURACY_M))

        innovation_m = math.hypot(
            innovation_lat * DEG_TO_METER,
            innovation_lon * DEG_TO_METER * cos_lat(sample.lat),
        )
        self.metrics.record_histogram('kalman_innovation_m', innovation_m)
        logger.debug(f"Kalman update: innovation={innovation_m:.1f}m, samples={self.samples}")

    def predict(self, time_s: float):
        """Advance all axes to time_s."""
        self._lat.predict(time_s)
        self._lon.predict(time_s)
        if self._alt is not None:
            self._alt.predict(time_s)

    def get_estimate(self, time_s: float) -> TrackedPosition:
        """
        Predict to time_s and report the estimate in meters.

        Args:
            time_s: Time of the estimate

        Returns:
            TrackedPosition with floored accuracy, speed and bearing
        """
        self.predict(time_s)

        lat = self._lat.position
        lon = self._lon.position
        cos_now = cos_lat(lat)

        accuracy = max(
            self._lat.accuracy * DEG_TO_METER,
            self._lon.accuracy * DEG_TO_METER * cos_now,
            self.MIN_ACCURACY_M,
        )

        v_north = self._lat.velocity * DEG_TO_METER
        v_east = self._lon.velocity * DEG_TO_METER * cos_now
        speed = math.hypot(v_north, v_east)

        # Bearing is only meaningful while moving; hold the last one otherwise
        if speed > self.MOVING_THRESHOLD_M_S:
            self._bearing = math.degrees(math.atan2(v_east, v_north)) % 360.0

        return TrackedPosition(
            lat=lat,
            lon=lon,
            accuracy_m=accuracy,
            time_s=time_s,
            speed_m_s=speed,
            bearing_deg=self._bearing,
            samples=self.samples,
            altitude_m=self._alt.position if self._alt is not None else None,
        )

    def reset_samples(self, samples: int = 0):
        """Override the sample count (e.g. to count only the current cycle)."""
        self.samples = samples

    def _noise_degrees(self, sample):
        """Measurement noise for (lat, lon) in degrees."""
        lat_noise = max(sample.accuracy_m, self.MIN_ACCURACY_M) * METER_TO_DEG
        lon_noise = lat_noise / cos_lat(sample.lat)
        return lat_noise, lon_noise

    def _init_altitude(self, sample):
        altitude = getattr(sample, 'altitude_m', None)
        if altitude is None:
            return
        self._alt = Kalman1D(self.ALTITUDE_NOISE_M, sample.time_s)
        self._alt.set_state(altitude, 0.0, max(sample.accuracy_m, self.MIN_ACCURACY_M))
