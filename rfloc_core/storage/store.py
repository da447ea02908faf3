"""
Emitter Storage Contract.

The core never owns the storage engine; it talks to an EmitterStore. Writes
are grouped by the cache into one transaction per sync. Any failure in the
engine must surface as StorageError so callers handle one error type.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

from rfloc_core.proto import EmitterKind, RfIdentification


class StorageError(Exception):
    """Raised when the storage engine fails a query or transaction."""


@dataclass(frozen=True)
class EmitterInfo:
    """
    Persisted fields of one emitter.

    Attributes:
        trust: Trust score [0, 100]
        latitude: Coverage centre latitude (degrees)
        longitude: Coverage centre longitude (degrees)
        radius: Coverage radius tangent to the box sides (meters)
        note: Free text (SSID for WiFi)
    """

    trust: int
    latitude: float
    longitude: float
    radius: float
    note: str = ""

    @classmethod
    def from_emitter(cls, emitter) -> 'EmitterInfo':
        """
        Extract the persisted fields from an RfEmitter.

        Raises:
            ValueError: If the emitter has no coverage to persist
        """
        if emitter.coverage is None:
            raise ValueError(f"Emitter {emitter.identification} has no coverage to persist")
        return cls(
            trust=int(emitter.trust),
            latitude=emitter.coverage.latitude,
            longitude=emitter.coverage.longitude,
            radius=emitter.coverage.radius_m,
            note=emitter.note or "",
        )


class EmitterStore(ABC):
    """
    Read/write/query contract for persisted emitters.

    Usage:
        with store.transaction():
            store.insert(new_emitter)
            store.update(changed_emitter)
            store.delete(dropped_emitter)
        info = store.query_by_identification(ident)
    """

    @abstractmethod
    def insert(self, emitter):
        """Add a new emitter record."""

    @abstractmethod
    def update(self, emitter):
        """Overwrite an existing emitter record."""

    @abstractmethod
    def delete(self, emitter):
        """Remove an emitter record (no-op if absent)."""

    @abstractmethod
    def query_by_identification(self, identification: RfIdentification) -> Optional[EmitterInfo]:
        """Stored record for one emitter, or None."""

    @abstractmethod
    def query_by_bounding_box(self, kind: EmitterKind, box) -> List[Tuple[RfIdentification, EmitterInfo]]:
        """Stored emitters of a kind whose coverage centre lies in a box."""

    @abstractmethod
    def begin(self):
        """Start a write transaction."""

    @abstractmethod
    def commit(self):
        """Commit the open transaction."""

    @abstractmethod
    def rollback(self):
        """Abandon the open transaction."""

    @contextmanager
    def transaction(self) -> Iterator['EmitterStore']:
        """
        Bracket a batch of writes.

        Commits on success; rolls back and re-raises on any error.
        """
        self.begin()
        try:
            yield self
            self.commit()
        except BaseException:
            self.rollback()
            raise
