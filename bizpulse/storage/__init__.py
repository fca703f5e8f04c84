"""
Record storage layer.

The engine reads transactional records through the `RecordStore` interface
using `Query` pipelines; backends are interchangeable:

- memory: thread-safe in-process store (tests, demos)
- duckdb: single-file OLAP store with filter push-down
"""

from typing import Optional

from bizpulse.config import Settings, get_settings

from .base import RecordStore, StorageError
from .duckdb_storage import DuckDBRecordStore
from .memory_storage import MemoryRecordStore
from .query import (
    AddToSet,
    Avg,
    Count,
    CountDistinct,
    DateBucket,
    First,
    Max,
    Min,
    Push,
    Query,
    Sum,
    evaluate,
    resolve,
)


def get_store(settings: Optional[Settings] = None) -> RecordStore:
    """
    Build the record store selected by configuration.

    Returns:
        RecordStore implementation instance
    """
    settings = settings or get_settings()
    if settings.store_backend == "duckdb":
        return DuckDBRecordStore(db_path=settings.db_path)
    return MemoryRecordStore()


__all__ = [
    "RecordStore",
    "StorageError",
    "MemoryRecordStore",
    "DuckDBRecordStore",
    "get_store",
    "Query",
    "DateBucket",
    "Sum",
    "Count",
    "CountDistinct",
    "Avg",
    "Min",
    "Max",
    "First",
    "AddToSet",
    "Push",
    "evaluate",
    "resolve",
]
