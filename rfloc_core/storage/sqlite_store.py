"""
SQLite Emitter Store.

Reference EmitterStore backed by the standard library sqlite3 module. One
table, keyed by (rfID, rfType); the kind is stored by name.

Transactions are explicit (BEGIN / COMMIT / ROLLBACK) so a whole cache
sync is applied atomically. sqlite3 errors are re-raised as StorageError.
"""

import logging
import sqlite3
from typing import List, Optional, Tuple

from rfloc_core.proto import EmitterKind, RfIdentification
from .store import EmitterInfo, EmitterStore, StorageError

logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS emitters (
    rfID      TEXT NOT NULL,
    rfType    TEXT NOT NULL,
    trust     INTEGER NOT NULL,
    latitude  REAL NOT NULL,
    longitude REAL NOT NULL,
    radius    REAL NOT NULL,
    note      TEXT,
    PRIMARY KEY (rfID, rfType)
);
CREATE INDEX IF NOT EXISTS emitters_position
    ON emitters (rfType, latitude, longitude);
"""


class SQLiteEmitterStore(EmitterStore):
    """
    EmitterStore on a SQLite file (or ":memory:").

    Usage:
        store = SQLiteEmitterStore("emitters.db")
        cache = EmitterCache(store)
        ...
        store.close()
    """

    def __init__(self, path: str = ":memory:"):
        """
        Open (and create if needed) the database.

        Args:
            path: Database file path, or ":memory:"

        Raises:
            StorageError: If the database cannot be opened
        """
        self.path = path
        try:
            # Autocommit mode; transactions are issued explicitly
            self.conn = sqlite3.connect(path, isolation_level=None, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self.conn.executescript(SCHEMA)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open emitter database {path}: {e}") from e
        logger.info(f"Opened emitter database: {path}")

    # =========================================================================
    # Transactions
    # =========================================================================

    def begin(self):
        self._execute("BEGIN")

    def commit(self):
        self._execute("COMMIT")

    def rollback(self):
        if self.conn.in_transaction:
            self._execute("ROLLBACK")

    # =========================================================================
    # Writes
    # =========================================================================

    def insert(self, emitter):
        info = EmitterInfo.from_emitter(emitter)
        ident = emitter.identification
        self._execute(
            """
            INSERT INTO emitters
              (rfID, rfType, trust, latitude, longitude, radius, note)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (ident.rf_id, ident.kind.name, info.trust, info.latitude,
             info.longitude, info.radius, info.note),
        )

    def update(self, emitter):
        info = EmitterInfo.from_emitter(emitter)
        ident = emitter.identification
        self._execute(
            """
            UPDATE emitters
               SET trust = ?, latitude = ?, longitude = ?, radius = ?, note = ?
             WHERE rfID = ? AND rfType = ?
            """,
            (info.trust, info.latitude, info.longitude, info.radius, info.note,
             ident.rf_id, ident.kind.name),
        )

    def delete(self, emitter):
        ident = emitter.identification
        self._execute(
            "DELETE FROM emitters WHERE rfID = ? AND rfType = ?",
            (ident.rf_id, ident.kind.name),
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def query_by_identification(self, identification: RfIdentification) -> Optional[EmitterInfo]:
        row = self._execute(
            """
            SELECT trust, latitude, longitude, radius, note
              FROM emitters
             WHERE rfID = ? AND rfType = ?
            """,
            (identification.rf_id, identification.kind.name),
        ).fetchone()
        if row is None:
            return None
        return self._row_to_info(row)

    def query_by_bounding_box(self, kind: EmitterKind, box) -> List[Tuple[RfIdentification, EmitterInfo]]:
        if box.is_empty:
            return []
        rows = self._execute(
            """
            SELECT rfID, trust, latitude, longitude, radius, note
              FROM emitters
             WHERE rfType = ?
               AND latitude >= ? AND latitude <= ?
               AND longitude >= ? AND longitude <= ?
            """,
            (kind.name, box.south, box.north, box.west, box.east),
        ).fetchall()
        return [
            (RfIdentification(row['rfID'], kind), self._row_to_info(row))
            for row in rows
        ]

    def count(self) -> int:
        """Number of stored emitters."""
        return self._execute("SELECT COUNT(*) FROM emitters").fetchone()[0]

    def close(self):
        """Close the connection."""
        self.conn.close()
        logger.info(f"Closed emitter database: {self.path}")

    @staticmethod
    def _row_to_info(row) -> EmitterInfo:
        return EmitterInfo(
            trust=int(row['trust']),
            latitude=float(row['latitude']),
            longitude=float(row['longitude']),
            radius=float(row['radius']),
            note=row['note'] or "",
        )

    def _execute(self, sql: str, params: tuple = ()):
        try:
            return self.conn.execute(sql, params)
        except sqlite3.Error as e:
            raise StorageError(f"Emitter database error: {e}") from e
