"""
Write-back Emitter Cache.

All access to emitters goes through the cache: it is the only place that
creates RfEmitter objects and the only path by which they reach storage.

sync() is failure safe. Storage actions are planned without touching any
emitter, executed inside one store transaction, and only after the commit
is the in-memory side applied (status, eviction, ages). If the store
raises, the exception propagates and the working set is exactly as before,
so the next sync retries the same dirty set.
"""

import logging
import threading
from typing import Dict, List, Optional, Set

from rfloc_core.proto import EmitterKind, RfIdentification
from rfloc_core.metrics import get_metrics
from rfloc_core.localization.emitter import RfEmitter, CoverageEstimate, SyncAction
from rfloc_core.localization.rf_characteristics import (
    CharacteristicsTable,
    SignalModel,
    DEFAULT_SIGNAL_MODEL,
)
from .store import EmitterStore

logger = logging.getLogger(__name__)


MAX_AGE = 30            # Unused entries leave at the sync after they reach this age
MAX_WORKING_SET = 200


class EmitterCache:
    """
    Working set of emitters in front of an EmitterStore.

    Usage:
        cache = EmitterCache(store)
        emitter = cache.get(ident)       # loads or creates
        ...mutate emitter...
        cache.sync()                     # once per cycle
    """

    def __init__(
        self,
        store: EmitterStore,
        max_age: int = MAX_AGE,
        max_working_set: int = MAX_WORKING_SET,
        characteristics: Optional[CharacteristicsTable] = None,
        signal_model: Optional[SignalModel] = None,
    ):
        """
        Args:
            store: Storage collaborator
            max_age: Syncs an unused entry survives; the next one evicts it
            max_working_set: Hard cap; the set is cleared after a sync above it
            characteristics: Per-kind characteristics for new emitters
            signal_model: ASU scaling model for new emitters
        """
        if max_age < 1:
            raise ValueError(f"max_age must be at least 1: {max_age}")
        if max_working_set < 1:
            raise ValueError(f"max_working_set must be at least 1: {max_working_set}")

        self.store = store
        self.max_age = max_age
        self.max_working_set = max_working_set
        self.characteristics = characteristics or CharacteristicsTable()
        self.signal_model = signal_model or DEFAULT_SIGNAL_MODEL
        self.metrics = get_metrics()

        self._lock = threading.RLock()
        self._emitters: Dict[RfIdentification, RfEmitter] = {}

    def get(self, identification: RfIdentification) -> RfEmitter:
        """
        Emitter for an identification, loading or creating it on a miss.

        Args:
            identification: Emitter identity

        Returns:
            The cached RfEmitter (same object until it is evicted)

        Raises:
            StorageError: If the store lookup fails (working set unchanged)
        """
        with self._lock:
            emitter = self._emitters.get(identification)
            if emitter is not None:
                emitter.reset_age()
                return emitter

            info = self.store.query_by_identification(identification)

            emitter = RfEmitter(
                identification,
                characteristics=self.characteristics.get(identification.kind),
                signal_model=self.signal_model,
            )
            if info is not None:
                emitter.load_info(info)
                self.metrics.increment('emitters_loaded')
            else:
                self.metrics.increment('emitters_created')

            emitter.reset_age()
            self._emitters[identification] = emitter
            return emitter

    def sync(self) -> int:
        """
        Write dirty emitters to storage and age the working set.

        Returns:
            Number of storage actions committed

        Raises:
            StorageError: If the transaction fails (working set unchanged)
        """
        with self._lock:
            plan = [
                (emitter, emitter.plan_sync())
                for emitter in self._emitters.values()
            ]
            dirty = [(e, action) for e, action in plan if action != SyncAction.NONE]

            if dirty:
                with self.store.transaction():
                    for emitter, action in dirty:
                        if action == SyncAction.INSERT:
                            self.store.insert(emitter)
                        elif action == SyncAction.UPDATE:
                            self.store.update(emitter)
                        elif action == SyncAction.DELETE:
                            self.store.delete(emitter)
                logger.debug(f"Synced {len(dirty)} emitters")
                self.metrics.increment('emitters_synced', len(dirty))

            # Committed; apply the in-memory side
            for emitter, action in dirty:
                emitter.mark_synced(action)

            exhausted = [e.identification for e, _ in plan if e.trust_exhausted]
            for identification in exhausted:
                del self._emitters[identification]
            if exhausted:
                logger.info(f"Dropped {len(exhausted)} emitters with exhausted trust")
                self.metrics.increment('emitters_dropped', len(exhausted))

            # Entries already max_age syncs old go; the rest age by one
            stale = [ident for ident, e in self._emitters.items() if e.age >= self.max_age]
            for identification in stale:
                del self._emitters[identification]
            for emitter in self._emitters.values():
                emitter.increment_age()
            if stale:
                self.metrics.increment('emitters_evicted', len(stale))

            if len(self._emitters) > self.max_working_set:
                logger.warning(
                    f"Working set {len(self._emitters)} above cap {self.max_working_set}, clearing"
                )
                self.metrics.increment('emitters_evicted', len(self._emitters))
                self._emitters.clear()

            return len(dirty)

    def query_known(self, kind: EmitterKind, box) -> Set[RfIdentification]:
        """
        Identifications of known emitters of a kind located inside a box.

        Combines stored records with in-memory emitters whose coverage
        centre lies in the box (these may not be stored yet).

        Raises:
            StorageError: If the store query fails
        """
        with self._lock:
            known = {ident for ident, _ in self.store.query_by_bounding_box(kind, box)}
            for ident, emitter in self._emitters.items():
                if ident.kind != kind or emitter.coverage is None:
                    continue
                if box.contains(emitter.coverage.latitude, emitter.coverage.longitude):
                    known.add(ident)
            return known

    def snapshot(self) -> List[CoverageEstimate]:
        """Coverage estimates of all cached emitters with coverage."""
        with self._lock:
            estimates = (e.coverage_estimate() for e in self._emitters.values())
            return [estimate for estimate in estimates if estimate is not None]

    def clear(self):
        """Drop the working set without syncing."""
        with self._lock:
            self._emitters.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._emitters)

    def __contains__(self, identification: RfIdentification) -> bool:
        with self._lock:
            return identification in self._emitters
