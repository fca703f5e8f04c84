"""
In-process record store.

Holds validated records as plain dicts and evaluates every pipeline stage
with the shared query evaluator. Used by tests, demos and single-process
deployments.
"""

import copy
import threading
from typing import Iterable, Union

import structlog
from pydantic import BaseModel

from .base import RecordStore
from .query import Query, evaluate

logger = structlog.get_logger(__name__)


class MemoryRecordStore(RecordStore):
    """
    Thread-safe in-memory record store.

    Attributes:
        _collections: collection name -> {record id -> record dict}
        _lock: Guards writes and snapshot reads
    """

    def __init__(self):
        self._collections: dict[str, dict[str, dict]] = {}
        self._lock = threading.Lock()

    def execute(self, query: Query) -> list[dict]:
        with self._lock:
            rows = list(self._collections.get(query.collection, {}).values())
        # Callers get copies; stored records are never exposed for mutation.
        return evaluate(copy.deepcopy(rows), query.stages)

    def insert(self, collection: str, records: Iterable[Union[dict, BaseModel]]) -> int:
        validated = [self._validate(collection, r).model_dump() for r in records]
        with self._lock:
            bucket = self._collections.setdefault(collection, {})
            for record in validated:
                bucket[record["id"]] = record
        logger.debug("records_inserted", collection=collection, count=len(validated))
        return len(validated)

    def count(self, collection: str) -> int:
        with self._lock:
            return len(self._collections.get(collection, {}))
