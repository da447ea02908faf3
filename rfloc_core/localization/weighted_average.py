"""
Weighted Position Estimator.

Fuses coverage estimates into one position. Each estimate is weighted by
signal strength over coverage radius: a strong signal from a small cell
pulls hardest. Mean and variance are accumulated with the weighted
incremental (West/Welford) update, per coordinate, so no sample list is
kept.

The reported accuracy is the weighted standard deviation of the inputs
converted to meters, with reliability weights:

    sd = sqrt(S / (W - W2 / W))

where W is the sum of weights and W2 the sum of squared weights.
"""

import math
import logging
from dataclasses import replace
from typing import Optional
import numpy as np

from rfloc_core.proto import PositionFix
from .geo import DEG_TO_METER, cos_lat

logger = logging.getLogger(__name__)


MINIMUM_BELIEVABLE_ACCURACY_M = 15.0
EXPECTED_SPEED_M_S = 120.0 / 3.6     # 120 km/h


def grow_accuracy(fix: PositionFix, time_s: float,
                  speed_m_s: float = EXPECTED_SPEED_M_S) -> PositionFix:
    """
    Age an earlier fix to time_s.

    The device may have moved at speed_m_s since the fix, so its accuracy
    radius grows by the distance covered. Earlier times leave it unchanged.
    """
    elapsed = max(0.0, time_s - fix.time_s)
    return replace(fix, accuracy_m=fix.accuracy_m + speed_m_s * elapsed, time_s=time_s)


class WeightedAverage:
    """
    Streaming weighted mean and deviation of positions.

    Estimates are any objects with lat, lon, accuracy_m and asu
    (CoverageEstimate).

    Usage:
        avg = WeightedAverage()
        for estimate in group:
            avg.add(estimate)
        fix = avg.result(time_s)    # None if nothing was added
    """

    def __init__(self, minimum_accuracy_m: float = MINIMUM_BELIEVABLE_ACCURACY_M):
        """
        Args:
            minimum_accuracy_m: Floor for input accuracy (in the weight) and
                                for the reported accuracy
        """
        self.minimum_accuracy_m = minimum_accuracy_m
        self.reset()

    def reset(self):
        """Forget all samples."""
        self._w_sum = 0.0
        self._w2_sum = 0.0
        self._mean = np.zeros(2)        # [lat, lon]
        self._s = np.zeros(2)
        self.count = 0
        self._last_accuracy = 0.0
        self._max_accuracy = 0.0

    def add(self, estimate, asu: Optional[int] = None):
        """
        Add one coverage estimate.

        Args:
            estimate: Object with lat, lon, accuracy_m and asu; None is ignored
            asu: Signal strength to weight with instead of estimate.asu
        """
        if estimate is None:
            return

        if asu is None:
            asu = estimate.asu
        accuracy = max(estimate.accuracy_m, self.minimum_accuracy_m)
        weight = max(asu, 1) / accuracy

        self.count += 1
        self._last_accuracy = estimate.accuracy_m
        self._max_accuracy = max(self._max_accuracy, estimate.accuracy_m)

        position = np.array([estimate.lat, estimate.lon], dtype=float)

        self._w_sum += weight
        self._w2_sum += weight * weight

        old_mean = self._mean
        self._mean = old_mean + (weight / self._w_sum) * (position - old_mean)
        self._s = self._s + weight * (position - old_mean) * (position - self._mean)

    def result(self, time_s: float) -> Optional[PositionFix]:
        """
        Fused position.

        Args:
            time_s: Time stamp for the fix

        Returns:
            PositionFix, or None if no estimate was added
        """
        if self.count < 1:
            return None

        lat, lon = float(self._mean[0]), float(self._mean[1])

        if self.count == 1:
            accuracy = self._last_accuracy
        else:
            accuracy = self._spread_m(lat)

        return PositionFix(
            lat=lat,
            lon=lon,
            accuracy_m=accuracy,
            time_s=time_s,
            sample_count=self.count,
        )

    def _spread_m(self, lat: float) -> float:
        """Weighted standard deviation in meters, floored."""
        denominator = self._w_sum - self._w2_sum / self._w_sum
        if denominator <= 0.0:
            # All weight effectively in one sample
            logger.debug("Degenerate weights, reporting largest input accuracy")
            return max(self._max_accuracy, self.minimum_accuracy_m)

        sd = np.sqrt(np.maximum(self._s, 0.0) / denominator)
        sd_lat_m = sd[0] * DEG_TO_METER
        sd_lon_m = sd[1] * DEG_TO_METER * cos_lat(lat)

        accuracy = math.hypot(sd_lat_m, sd_lon_m)
        if not math.isfinite(accuracy):
            return max(self._max_accuracy, self.minimum_accuracy_m)
        return max(accuracy, self.minimum_accuracy_m)

    def __len__(self) -> int:
        return self.count
