"""
Collection Cycle Processor.

Drives the pipeline for observation batches grouped into fixed-length
collection cycles (cycle id = floor(time / interval)).

Per batch:
1. Resolve each observation to its emitter through the cache
2. Record it as seen this cycle
3. Update coverage if the batch reference is accurate enough for the kind

Per cycle (closed by the first batch of a later cycle, or end_cycle()):
1. Cull public coverages of seen emitters per kind (consensus group)
2. Fuse the surviving groups with WeightedAverage, blending in the previous
   average with its accuracy grown by the distance the device may have moved
3. Feed each surviving estimate to the result KalmanTracker; report the
   smoothed estimate when WiFi contributed, otherwise the weighted average
4. Build the expected set around the fused position and the reference
5. Raise trust of seen emitters, lower trust of expected but unseen ones
6. Sync the cache

Bursts accumulate into one cycle. Silence closes nothing, so no trust
changes happen while no batches arrive.
"""

import math
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set

from rfloc_core.proto import EmitterKind, ObservationBatch, PositionFix, RfIdentification
from rfloc_core.metrics import get_metrics
from rfloc_core.localization.geo import BoundingBox, is_null_island
from rfloc_core.localization.kalman import KalmanTracker, RESULT_PROCESS_NOISE_M
from rfloc_core.localization.weighted_average import (
    WeightedAverage,
    grow_accuracy,
    MINIMUM_BELIEVABLE_ACCURACY_M,
    EXPECTED_SPEED_M_S,
)
from rfloc_core.localization.clustering import select_consensus
from rfloc_core.localization.emitter import CoverageEstimate
from rfloc_core.storage.cache import EmitterCache
from rfloc_core.storage.store import StorageError

logger = logging.getLogger(__name__)


@dataclass
class ProcessorConfig:
    """
    Configuration for the cycle processor.

    Attributes:
        collection_interval_s: Length of one collection cycle (seconds)
        result_process_noise_m: Process noise of the result smoother (m/s^2)
        minimum_accuracy_m: Accuracy floor of the weighted average (meters)
        expected_speed_m_s: Assumed device speed when aging the previous
                            average before blending it in (m/s)
    """

    collection_interval_s: float = 4.0
    result_process_noise_m: float = RESULT_PROCESS_NOISE_M
    minimum_accuracy_m: float = MINIMUM_BELIEVABLE_ACCURACY_M
    expected_speed_m_s: float = EXPECTED_SPEED_M_S

    def __post_init__(self):
        """Validate configuration."""
        if self.collection_interval_s <= 0:
            raise ValueError(f"Collection interval must be positive: {self.collection_interval_s}")
        if self.result_process_noise_m <= 0:
            raise ValueError(f"Process noise must be positive: {self.result_process_noise_m}")
        if self.minimum_accuracy_m <= 0:
            raise ValueError(f"Minimum accuracy must be positive: {self.minimum_accuracy_m}")
        if self.expected_speed_m_s <= 0:
            raise ValueError(f"Expected speed must be positive: {self.expected_speed_m_s}")


class CycleProcessor:
    """
    Orchestrator of coverage learning, positioning and trust decay.

    Characteristics come from the cache, so emitters and the processor
    always agree on them.

    Usage:
        processor = CycleProcessor(cache, position_sink=print)
        for batch in batches:
            processor.process(batch)
        processor.end_cycle()
    """

    def __init__(
        self,
        cache: EmitterCache,
        config: Optional[ProcessorConfig] = None,
        position_sink: Optional[Callable[[PositionFix], None]] = None,
    ):
        """
        Args:
            cache: Emitter cache (owns all emitters)
            config: Processor configuration (defaults if None)
            position_sink: Called with each reported fix
        """
        self.cache = cache
        self.config = config or ProcessorConfig()
        self.position_sink = position_sink
        self.characteristics = cache.characteristics
        self.metrics = get_metrics()

        self._lock = threading.Lock()
        self._smoother: Optional[KalmanTracker] = None
        self._last_average: Optional[PositionFix] = None
        self.last_fix: Optional[PositionFix] = None

        self._cycle_id: Optional[int] = None
        self._cycle_time_s = 0.0
        self._seen: Dict[RfIdentification, None] = {}    # Ordered set
        self._reference = None

    def cycle_id(self, time_s: float) -> int:
        """Collection cycle a time belongs to."""
        return int(math.floor(time_s / self.config.collection_interval_s))

    @property
    def seen(self) -> Set[RfIdentification]:
        """Emitters seen in the open cycle."""
        with self._lock:
            return set(self._seen)

    # =========================================================================
    # Batches
    # =========================================================================

    def process(self, batch: ObservationBatch) -> Optional[PositionFix]:
        """
        Process one observation batch.

        Args:
            batch: Observations plus the reference snapshot taken at queue time

        Returns:
            Fix reported by a cycle this batch closed, if any

        Raises:
            StorageError: From cache lookups or the cycle sync. A failed sync
                of the closed cycle is raised after this batch is processed.
        """
        with self._lock:
            fix = None
            close_error = None
            cycle = self.cycle_id(batch.time_s)
            if self._cycle_id is not None and cycle != self._cycle_id:
                try:
                    fix = self._close_cycle()
                except StorageError as e:
                    logger.error(f"Closing cycle failed, still processing batch t={batch.time_s:.3f}: {e}")
                    close_error = e
            self._cycle_id = cycle
            self._cycle_time_s = max(self._cycle_time_s, batch.time_s)

            self.metrics.increment('batches_in')
            self.metrics.increment('observations_in', len(batch.observations))

            reference = batch.reference
            if reference is not None and is_null_island(reference.lat, reference.lon):
                self.metrics.increment_drop('null_island')
                logger.warning("Ignoring null island reference in batch")
                reference = None

            for obs in batch.observations:
                emitter = self.cache.get(obs.identification)
                emitter.asu = obs.asu
                emitter.note = obs.note
                self._seen[obs.identification] = None

                if emitter.is_blacklisted:
                    self.metrics.increment_drop('blacklisted')
                    continue

                if reference is None:
                    continue

                required = self.characteristics.get(obs.kind).required_reference_accuracy
                if reference.accuracy_m > required:
                    self.metrics.increment_drop('inaccurate_reference')
                    continue

                emitter.update_coverage(reference)

            if reference is not None:
                self._reference = reference

            logger.debug(f"Batch t={batch.time_s:.3f}: {len(batch.observations)} observations, "
                         f"cycle {cycle}, {len(self._seen)} seen")
            if close_error is not None:
                raise close_error
            return fix

    def end_cycle(self) -> Optional[PositionFix]:
        """
        Close the open cycle now.

        Returns:
            Reported fix, or None (no open cycle or insufficient data)

        Raises:
            StorageError: From the cycle sync
        """
        with self._lock:
            if self._cycle_id is None:
                return None
            return self._close_cycle()

    # =========================================================================
    # Cycle end
    # =========================================================================

    def _close_cycle(self) -> Optional[PositionFix]:
        time_s = self._cycle_time_s
        try:
            estimates = self._seen_estimates()
            fused, survivors, wifi_used = self._fuse(estimates, time_s)

            fix = None
            if fused is not None:
                fix = self._smooth(fused, survivors, wifi_used, time_s)
                self._report(fix)

            expected = self._expected(fused, estimates)
            self._adjust_trust(expected)
            self.cache.sync()

            self.metrics.increment('cycles_closed')
            return fix
        finally:
            self._reset_cycle()

    def _seen_estimates(self) -> Dict[EmitterKind, List[CoverageEstimate]]:
        """Public coverage estimates of seen emitters, per kind, in seen order."""
        by_kind: Dict[EmitterKind, List[CoverageEstimate]] = {}
        for ident in self._seen:
            emitter = self.cache.get(ident)
            estimate = emitter.get_public_location()
            if estimate is None:
                if not emitter.is_blacklisted:
                    self.metrics.increment_drop('untrusted_emitter')
                continue
            by_kind.setdefault(ident.kind, []).append(estimate)
        return by_kind

    def _fuse(self, by_kind: Dict[EmitterKind, List[CoverageEstimate]], time_s: float):
        """
        Weighted average of the consensus groups.

        The previous average is added as one more sample, aged to time_s and
        weighted at full signal strength. It smooths the hand over between
        a single cell and many WiFi APs but never makes a fix on its own.

        Returns:
            (fix or None, surviving estimates, wifi used)
        """
        average = WeightedAverage(self.config.minimum_accuracy_m)
        survivors: List[CoverageEstimate] = []
        wifi_used = False

        for kind, estimates in by_kind.items():
            group = select_consensus(estimates, self.characteristics.get(kind))
            if not group:
                continue
            self.metrics.record_histogram('cluster_size', len(group))
            wifi_used = wifi_used or kind.is_wlan
            for estimate in group:
                average.add(estimate)
            survivors.extend(group)

        if survivors and self._last_average is not None:
            prior = grow_accuracy(self._last_average, time_s, self.config.expected_speed_m_s)
            average.add(prior, asu=self.cache.signal_model.maximum_asu)

        fused = average.result(time_s)
        if fused is not None:
            self._last_average = fused
        if fused is None and self._seen and not by_kind:
            self.metrics.increment_drop('insufficient_emitters')
        if fused is None:
            logger.debug(f"No fix for cycle {self._cycle_id}: insufficient emitters")
        return fused, survivors, wifi_used

    def _smooth(self, fused: PositionFix, survivors: List[CoverageEstimate],
                wifi_used: bool, time_s: float) -> PositionFix:
        """
        Feed the result smoother one surviving estimate at a time.

        The smoother is good with several WiFi emitters per cycle but falsely
        converges on a lone cell tower, so it is only reported for WiFi.
        """
        for estimate in survivors:
            sample = PositionFix(estimate.lat, estimate.lon, estimate.accuracy_m, time_s, 1)
            if self._smoother is None:
                self._smoother = KalmanTracker(sample, self.config.result_process_noise_m)
            else:
                self._smoother.update(sample)

        if not wifi_used:
            return fused

        estimate = self._smoother.get_estimate(time_s)
        return PositionFix(
            lat=estimate.lat,
            lon=estimate.lon,
            accuracy_m=estimate.accuracy_m,
            time_s=time_s,
            sample_count=fused.sample_count,
            speed_m_s=estimate.speed_m_s,
            bearing_deg=estimate.bearing_deg,
        )

    def _report(self, fix: PositionFix):
        self.last_fix = fix
        self.metrics.increment('position_fixes')
        self.metrics.record_histogram('fused_accuracy_m', fix.accuracy_m)
        logger.info(f"Position fix: ({fix.lat:.6f}, {fix.lon:.6f}) "
                    f"+/-{fix.accuracy_m:.0f}m from {fix.sample_count} emitters")
        if self.position_sink is not None:
            self.position_sink(fix)

    def _expected(self, fused: Optional[PositionFix],
                  by_kind: Dict[EmitterKind, List[CoverageEstimate]]) -> Set[RfIdentification]:
        """
        Known emitters that should have been seen this cycle.

        For every kind seen, a box around the fused position and the
        reference (each grown by the kind's typical range) is stretched to
        include the seen coverages, then queried through the cache.
        """
        expected: Set[RfIdentification] = set()
        kinds = list(dict.fromkeys(ident.kind for ident in self._seen))

        for kind in kinds:
            chars = self.characteristics.get(kind)
            box = BoundingBox()

            if fused is not None:
                box.expand(fused.lat, fused.lon, chars.typical_range)
            reference = self._reference
            if reference is not None and reference.accuracy_m <= chars.required_reference_accuracy:
                box.expand(reference.lat, reference.lon, chars.typical_range)

            if box.is_empty:
                continue

            for estimate in by_kind.get(kind, []):
                box.expand(estimate.lat, estimate.lon)

            expected |= self.cache.query_known(kind, box)

        return expected

    def _adjust_trust(self, expected: Set[RfIdentification]):
        for ident in self._seen:
            self.cache.get(ident).increment_trust()

        missing = expected.difference(self._seen)
        for ident in sorted(missing):
            self.cache.get(ident).decrement_trust()
        if missing:
            logger.debug(f"{len(missing)} expected emitters not seen")

    def _reset_cycle(self):
        self._cycle_id = None
        self._cycle_time_s = 0.0
        self._seen = {}
        self._reference = None
