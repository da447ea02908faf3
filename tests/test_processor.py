"""
Unit tests for the collection cycle processor.

Tests cover:
- Cycle boundaries, bursts and silence
- Coverage learning gated by reference accuracy
- End to end: a lone AP becomes trusted and yields a fix
- Trust decay of expected but unseen emitters
- Blacklisted and untrusted emitters
- Cell-only cycles report the weighted average, blended with the last one
- Storage failures reset the cycle without losing the closing batch
"""

from dataclasses import replace

import pytest

from rfloc_core.metrics import get_metrics
from rfloc_core.proto import EmitterKind, ObservationBatch, ReferenceFix, RfIdentification
from rfloc_core.localization.emitter import EmitterStatus, RfEmitter
from rfloc_core.localization.rf_characteristics import CharacteristicsTable, SignalModel, get_rf_characteristics
from rfloc_core.storage import EmitterCache, EmitterInfo, SQLiteEmitterStore, StorageError
from rfloc_core.domain import CycleProcessor, ProcessorConfig
from conftest import BASE_LAT, BASE_LON, observe, offset, reference_at


def make_processor(store, overrides=None):
    """Processor over a fresh cache; returns (processor, reported fixes)."""
    fixes = []
    cache = EmitterCache(store, characteristics=CharacteristicsTable(overrides))
    processor = CycleProcessor(cache, position_sink=fixes.append)
    return processor, fixes


def single_ap_overrides():
    """WiFi characteristics that accept a group of one AP."""
    return {EmitterKind.WLAN: replace(get_rf_characteristics(EmitterKind.WLAN), minimum_count=1)}


def batch(idents, time_s, reference=None, note=""):
    return ObservationBatch([observe(ident, note=note) for ident in idents], time_s, reference)


def store_emitter(store, ident, trust, north_m=0.0):
    ref = reference_at(north_m=north_m)
    emitter = RfEmitter(ident)
    emitter.load_info(EmitterInfo(trust, ref.lat, ref.lon, 50.0))
    with store.transaction():
        store.insert(emitter)


# =============================================================================
# Configuration
# =============================================================================


class TestProcessorConfig:
    """Tests for ProcessorConfig validation."""

    def test_defaults(self):
        config = ProcessorConfig()
        assert config.collection_interval_s == 4.0
        assert config.result_process_noise_m == 6.0

    @pytest.mark.parametrize("field", [
        'collection_interval_s', 'result_process_noise_m', 'minimum_accuracy_m',
        'expected_speed_m_s',
    ])
    def test_rejects_non_positive(self, field):
        with pytest.raises(ValueError):
            ProcessorConfig(**{field: 0.0})


# =============================================================================
# Cycle Boundaries
# =============================================================================


class TestCycles:
    """Tests for cycle grouping."""

    @pytest.mark.parametrize("time_s,expected", [
        (0.0, 0), (3.99, 0), (4.0, 1), (9.5, 2), (-0.5, -1),
    ])
    def test_cycle_id(self, cache, time_s, expected):
        assert CycleProcessor(cache).cycle_id(time_s) == expected

    def test_burst_accumulates(self, store, wifi_idents, good_reference):
        processor, _ = make_processor(store)

        for i, ident in enumerate(wifi_idents[:3]):
            assert processor.process(batch([ident], 0.5 * i, good_reference)) is None

        assert processor.seen == set(wifi_idents[:3])
        assert get_metrics().get_counter('cycles_closed') == 0
        assert store.count() == 0

    def test_later_batch_closes_cycle(self, store, wifi_idents, good_reference):
        processor, _ = make_processor(store)
        processor.process(batch(wifi_idents[:3], 1.0, good_reference))

        processor.process(batch([wifi_idents[3]], 5.0))

        assert get_metrics().get_counter('cycles_closed') == 1
        assert store.count() == 3
        assert processor.seen == {wifi_idents[3]}

    def test_silence_closes_nothing(self, store):
        processor, fixes = make_processor(store)

        assert processor.end_cycle() is None
        assert get_metrics().get_counter('cycles_closed') == 0
        assert fixes == []

    def test_counts_batches(self, store, wifi_idents):
        processor, _ = make_processor(store)
        processor.process(batch(wifi_idents[:2], 0.0))
        processor.process(batch(wifi_idents[2:], 1.0))

        assert get_metrics().get_counter('batches_in') == 2
        assert get_metrics().get_counter('observations_in') == 5


# =============================================================================
# Coverage Learning
# =============================================================================


class TestCoverageLearning:
    """Tests for reference gating in process()."""

    def test_accurate_reference_seeds_coverage(self, store, wifi_ident, good_reference):
        processor, _ = make_processor(store)
        processor.process(batch([wifi_ident], 0.0, good_reference))

        emitter = processor.cache.get(wifi_ident)
        assert emitter.status == EmitterStatus.NEW
        assert emitter.coverage.latitude == BASE_LAT

    def test_inaccurate_reference_skipped_for_wifi(self, store, wifi_ident, poor_reference):
        processor, _ = make_processor(store)
        processor.process(batch([wifi_ident], 0.0, poor_reference))

        assert processor.cache.get(wifi_ident).coverage is None
        assert get_metrics().get_drop_count('inaccurate_reference') == 1

    def test_same_reference_good_enough_for_cell(self, store, cell_ident, poor_reference):
        processor, _ = make_processor(store)
        processor.process(batch([cell_ident], 0.0, poor_reference))

        assert processor.cache.get(cell_ident).coverage is not None

    def test_no_reference(self, store, wifi_ident):
        processor, _ = make_processor(store)
        processor.process(batch([wifi_ident], 0.0))

        assert processor.cache.get(wifi_ident).status == EmitterStatus.UNKNOWN

    def test_null_island_reference_ignored(self, store, wifi_ident):
        processor, _ = make_processor(store)
        processor.process(batch([wifi_ident], 0.0, ReferenceFix(0.0, 0.0, 5.0, 0.0)))

        assert processor.cache.get(wifi_ident).coverage is None
        assert get_metrics().get_drop_count('null_island') == 1

    def test_observation_updates_signal_and_note(self, store, wifi_ident):
        processor, _ = make_processor(store)
        processor.process(ObservationBatch([observe(wifi_ident, asu=25, note="HomeNet")], 0.0))

        emitter = processor.cache.get(wifi_ident)
        assert emitter.asu == 25
        assert emitter.note == "HomeNet"

    def test_signal_limits_from_cache_model(self, store, wifi_ident):
        """Signal strength is clamped by the configured model, not a fixed range."""
        cache = EmitterCache(store, signal_model=SignalModel(maximum_asu=63))
        processor = CycleProcessor(cache)

        processor.process(ObservationBatch([observe(wifi_ident, asu=50)], 0.0))

        assert processor.cache.get(wifi_ident).asu == 50

    def test_default_model_clamps_signal(self, store, wifi_ident):
        processor, _ = make_processor(store)

        processor.process(ObservationBatch([observe(wifi_ident, asu=50)], 0.0))

        assert processor.cache.get(wifi_ident).asu == 31


# =============================================================================
# End to End
# =============================================================================


class TestEndToEnd:
    """A lone AP learned over several cycles, then used for positioning."""

    def test_single_ap_becomes_trusted(self, store, wifi_ident, good_reference):
        processor, fixes = make_processor(store, single_ap_overrides())

        # Three cycles with a reference: trust 10, 20, 30
        for time_s in (0.0, 4.0, 8.0):
            assert processor.process(batch([wifi_ident], time_s, good_reference)) is None
        assert processor.process(batch([wifi_ident], 12.0)) is None
        assert fixes == []

        fix = processor.end_cycle()

        assert fix is not None
        assert fixes == [fix]
        assert fix.lat == pytest.approx(BASE_LAT, abs=1e-6)
        assert fix.lon == pytest.approx(BASE_LON, abs=1e-6)
        assert fix.accuracy_m == pytest.approx(50.0, rel=1e-3)
        assert fix.sample_count == 1
        assert processor.last_fix is fix
        assert store.query_by_identification(wifi_ident).trust == 40

    def test_default_rejects_single_ap(self, store, wifi_ident, good_reference):
        processor, fixes = make_processor(store)

        for time_s in (0.0, 4.0, 8.0, 12.0):
            processor.process(batch([wifi_ident], time_s, good_reference))

        assert processor.end_cycle() is None
        assert fixes == []
        assert get_metrics().get_drop_count('insufficient_emitters') >= 1

    def test_two_aps_default_settings(self, store, wifi_idents, good_reference):
        processor, fixes = make_processor(store)
        pair = wifi_idents[:2]

        for time_s in (0.0, 4.0, 8.0, 12.0):
            processor.process(batch(pair, time_s, good_reference))
        fix = processor.end_cycle()

        assert fix is not None
        assert fix.sample_count == 2
        assert len(fixes) == 1

    def test_one_fix_per_cycle(self, store, wifi_ident, good_reference):
        processor, fixes = make_processor(store, single_ap_overrides())
        for time_s in (0.0, 4.0, 8.0):
            processor.process(batch([wifi_ident], time_s, good_reference))

        # Many batches inside cycles 3 and 4
        for time_s in (12.0, 12.5, 13.0, 15.9, 16.0, 17.0):
            processor.process(batch([wifi_ident], time_s))
        processor.end_cycle()

        assert len(fixes) == 2
        assert get_metrics().get_counter('position_fixes') == 2


# =============================================================================
# Trust
# =============================================================================


class TestTrustDecay:
    """Tests for expected but unseen emitters."""

    def test_expected_unseen_loses_trust(self, store, wifi_idents, good_reference):
        store_emitter(store, wifi_idents[1], trust=50, north_m=40.0)
        processor, _ = make_processor(store)

        processor.process(batch([wifi_idents[0]], 0.0, good_reference))
        processor.end_cycle()

        assert store.query_by_identification(wifi_idents[1]).trust == 49

    def test_far_emitter_not_expected(self, store, wifi_idents, good_reference):
        store_emitter(store, wifi_idents[1], trust=50, north_m=5000.0)
        processor, _ = make_processor(store)

        processor.process(batch([wifi_idents[0]], 0.0, good_reference))
        processor.end_cycle()

        assert store.query_by_identification(wifi_idents[1]).trust == 50

    def test_exhausted_emitter_deleted(self, store, wifi_idents, good_reference):
        store_emitter(store, wifi_idents[1], trust=0, north_m=40.0)
        processor, _ = make_processor(store)

        processor.process(batch([wifi_idents[0]], 0.0, good_reference))
        processor.end_cycle()

        assert store.query_by_identification(wifi_idents[1]) is None
        assert wifi_idents[1] not in processor.cache

    def test_cells_do_not_decay(self, store, cell_ident, good_reference):
        store_emitter(store, cell_ident, trust=100, north_m=40.0)
        processor, _ = make_processor(store)
        other_cell = RfIdentification("LTE/454/00/12345/100/2001", EmitterKind.MOBILE)

        processor.process(batch([other_cell], 0.0, good_reference))
        processor.end_cycle()

        assert store.query_by_identification(cell_ident).trust == 100

    def test_seen_emitter_gains_trust(self, store, wifi_ident, good_reference):
        processor, _ = make_processor(store)

        processor.process(batch([wifi_ident], 0.0, good_reference))
        processor.end_cycle()

        assert store.query_by_identification(wifi_ident).trust == 10

    def test_untrusted_counted(self, store, wifi_ident, good_reference):
        processor, _ = make_processor(store)

        processor.process(batch([wifi_ident], 0.0, good_reference))
        processor.end_cycle()

        assert get_metrics().get_drop_count('untrusted_emitter') == 1


# =============================================================================
# Blacklist
# =============================================================================


class TestBlacklisted:
    """Tests for mobile hotspots."""

    def test_hotspot_never_learned(self, store, wifi_ident, good_reference):
        processor, _ = make_processor(store)

        processor.process(batch([wifi_ident], 0.0, good_reference, note="AndroidAP"))
        processor.end_cycle()

        emitter = processor.cache.get(wifi_ident)
        assert emitter.is_blacklisted
        assert emitter.coverage is None
        assert store.count() == 0
        assert get_metrics().get_drop_count('blacklisted') == 1
        assert get_metrics().get_drop_count('untrusted_emitter') == 0

    def test_stored_emitter_turning_hotspot_is_deleted(self, store, wifi_ident, good_reference):
        store_emitter(store, wifi_ident, trust=80)
        processor, _ = make_processor(store)

        processor.process(batch([wifi_ident], 0.0, good_reference, note="Jane's iPhone"))
        processor.end_cycle()

        assert store.query_by_identification(wifi_ident) is None


# =============================================================================
# Cells
# =============================================================================


class TestCellOnly:
    """Cycles without WiFi report the weighted average directly."""

    def test_cell_fix_not_smoothed(self, store, cell_ident, good_reference):
        processor, fixes = make_processor(store)

        processor.process(batch([cell_ident], 0.0, good_reference))
        fix = processor.end_cycle()

        assert fix is not None
        assert fix.accuracy_m == 500.0
        assert fix.speed_m_s is None
        assert fix.lat == BASE_LAT
        assert fixes == [fix]

    def wifi_then_cell(self, store, wifi_idents, cell_ident, gap_s):
        """A WiFi cycle at the base, then a cell-only cycle gap_s later."""
        store_emitter(store, wifi_idents[0], trust=50)
        store_emitter(store, wifi_idents[1], trust=50)
        store_emitter(store, cell_ident, trust=100, north_m=3000.0)
        processor, fixes = make_processor(store)

        processor.process(batch(wifi_idents[:2], 0.0))
        processor.process(batch([cell_ident], gap_s))
        processor.end_cycle()
        return fixes

    def test_cell_cycle_pulled_toward_wifi_fix(self, store, wifi_idents, cell_ident):
        wifi_fix, cell_fix = self.wifi_then_cell(store, wifi_idents, cell_ident, 4.0)

        cell_lat, _ = offset(BASE_LAT, BASE_LON, north_m=3000.0)
        # Prior 15 m aged 4 s at 120 km/h, weight 31/148; cell 20/500
        expected_lat, _ = offset(BASE_LAT, BASE_LON, north_m=481.9)

        assert wifi_fix.lat == pytest.approx(BASE_LAT, abs=1e-6)
        assert BASE_LAT < cell_fix.lat < cell_lat
        assert cell_fix.lat == pytest.approx(expected_lat, abs=1e-5)
        assert cell_fix.sample_count == 2
        assert cell_fix.speed_m_s is None

    def test_older_fix_pulls_less(self, store, wifi_idents, cell_ident):
        _, soon = self.wifi_then_cell(store, wifi_idents, cell_ident, 4.0)
        other_store = SQLiteEmitterStore(":memory:")
        try:
            _, later = self.wifi_then_cell(other_store, wifi_idents, cell_ident, 40.0)
        finally:
            other_store.close()

        assert soon.lat < later.lat

    def test_no_prior_without_survivors(self, store, wifi_idents, cell_ident):
        """An earlier fix alone never produces a new one."""
        store_emitter(store, wifi_idents[0], trust=50)
        store_emitter(store, wifi_idents[1], trust=50)
        processor, fixes = make_processor(store)

        processor.process(batch(wifi_idents[:2], 0.0))
        processor.process(batch([cell_ident], 4.0))

        assert processor.end_cycle() is None
        assert len(fixes) == 1


# =============================================================================
# Failures
# =============================================================================


class TestStorageFailure:
    """A failing sync propagates and leaves a fresh cycle."""

    def test_sync_failure_propagates(self, store, wifi_ident, good_reference, monkeypatch):
        processor, _ = make_processor(store)
        processor.process(batch([wifi_ident], 0.0, good_reference))

        def failing_insert(emitter):
            raise StorageError("disk full")

        monkeypatch.setattr(store, 'insert', failing_insert)

        with pytest.raises(StorageError):
            processor.end_cycle()

        assert processor.seen == set()
        assert processor.cache.get(wifi_ident).status == EmitterStatus.NEW
        assert store.count() == 0

    def test_close_failure_keeps_batch(self, store, wifi_idents, good_reference, monkeypatch):
        """The batch that closes a failing cycle is still seen and learned."""
        processor, _ = make_processor(store)
        processor.process(batch([wifi_idents[0]], 0.0, good_reference))

        def failing_insert(emitter):
            raise StorageError("disk full")

        monkeypatch.setattr(store, 'insert', failing_insert)

        with pytest.raises(StorageError):
            processor.process(batch([wifi_idents[1]], 5.0, good_reference))

        assert processor.seen == {wifi_idents[1]}
        assert processor.cache.get(wifi_idents[1]).coverage is not None
        assert get_metrics().get_counter('batches_in') == 2

        monkeypatch.undo()
        processor.end_cycle()

        assert store.count() == 2
        assert get_metrics().get_counter('cycles_closed') == 1
