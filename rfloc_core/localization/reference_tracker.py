"""
Reference Position Tracker.

Smooths the trusted reference stream (GPS) with a KalmanTracker and hands
out snapshots for coverage learning. Samples near (0, 0) and samples older
than the tracker state are rejected.
"""

import logging
from typing import Optional

from rfloc_core.proto import ReferenceFix
from rfloc_core.metrics import get_metrics
from .geo import is_null_island
from .kalman import KalmanTracker, REFERENCE_PROCESS_NOISE_M

logger = logging.getLogger(__name__)


class ReferenceTracker:
    """
    Owner of the reference-position Kalman stream.

    Usage:
        tracker = ReferenceTracker()
        tracker.update(ReferenceFix(lat, lon, accuracy_m, time_s))
        ref = tracker.snapshot(scan_time_s)    # None until the first fix
    """

    def __init__(self, process_noise_m: float = REFERENCE_PROCESS_NOISE_M):
        """
        Args:
            process_noise_m: Kalman process noise (m/s^2)
        """
        self.process_noise_m = process_noise_m
        self.metrics = get_metrics()
        self._kalman: Optional[KalmanTracker] = None
        self.last_fix: Optional[ReferenceFix] = None

    def update(self, fix: ReferenceFix) -> bool:
        """
        Feed one reference sample.

        Args:
            fix: Reference sample

        Returns:
            True if the sample was accepted
        """
        if is_null_island(fix.lat, fix.lon):
            self.metrics.increment_drop('null_island')
            logger.warning(f"Rejected reference fix near null island: ({fix.lat:.5f}, {fix.lon:.5f})")
            return False

        if self._kalman is not None and fix.time_s < self._kalman.last_update_time:
            self.metrics.increment_drop('out_of_order')
            logger.warning(
                f"Rejected out of order reference fix: t={fix.time_s:.3f} < "
                f"{self._kalman.last_update_time:.3f}"
            )
            return False

        if self._kalman is None:
            self._kalman = KalmanTracker(fix, self.process_noise_m)
        else:
            self._kalman.update(fix)

        self.last_fix = fix
        self.metrics.increment('reference_updates')
        return True

    def snapshot(self, time_s: float) -> Optional[ReferenceFix]:
        """
        Smoothed reference position predicted to time_s.

        Args:
            time_s: Time of the snapshot

        Returns:
            ReferenceFix, or None if no sample has been accepted
        """
        if self._kalman is None:
            return None

        estimate = self._kalman.get_estimate(time_s)
        return ReferenceFix(
            lat=estimate.lat,
            lon=estimate.lon,
            accuracy_m=estimate.accuracy_m,
            time_s=time_s,
            altitude_m=estimate.altitude_m,
        )

    @property
    def has_fix(self) -> bool:
        return self._kalman is not None

    def reset(self):
        """Forget the reference stream."""
        self._kalman = None
        self.last_fix = None
