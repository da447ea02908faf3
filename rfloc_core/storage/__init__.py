"""
Storage Module: Emitter persistence and the write-back cache.

- EmitterStore: storage contract (insert/update/delete/query, transactions)
- SQLiteEmitterStore: reference store on sqlite3
- EmitterCache: working set; the only creator of RfEmitter objects
"""

from .store import EmitterStore, EmitterInfo, StorageError
from .sqlite_store import SQLiteEmitterStore
from .cache import EmitterCache, MAX_AGE, MAX_WORKING_SET

__all__ = [
    'EmitterStore',
    'EmitterInfo',
    'StorageError',
    'SQLiteEmitterStore',
    'EmitterCache',
    'MAX_AGE',
    'MAX_WORKING_SET',
]
