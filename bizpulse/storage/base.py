"""
Abstract record-store interface for the analytics engine.

The engine is read-only against transactional records: every report is built
from `execute(query)` calls. `insert` exists for seeding and tests; the
production write path (invoicing, purchasing, ledger postings) lives outside
this package.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Union

from pydantic import BaseModel

from bizpulse.models.records import RECORD_MODELS

from .query import Query


class StorageError(Exception):
    """Base exception for all record-store failures."""

    pass


class RecordStore(ABC):
    """
    Abstract base class for record-store implementations.

    Implementations must be safe to call from several threads at once, since
    report fan-out issues independent queries concurrently.
    """

    @abstractmethod
    def execute(self, query: Query) -> list[dict]:
        """
        Run an aggregation pipeline and return its result rows.

        Args:
            query: Pipeline to execute against `query.collection`

        Returns:
            Result rows as plain dicts (empty list when nothing matches)

        Raises:
            StorageError: If the backend cannot serve the query
        """
        pass

    @abstractmethod
    def insert(self, collection: str, records: Iterable[Union[dict, BaseModel]]) -> int:
        """
        Validate and upsert records into a collection, keyed by record id.

        Returns:
            Number of records written

        Raises:
            StorageError: If the collection is unknown or the write fails
        """
        pass

    @abstractmethod
    def count(self, collection: str) -> int:
        """Number of records held in a collection."""
        pass

    def close(self) -> None:
        """Release backend resources."""
        pass

    @staticmethod
    def _validate(collection: str, record: Union[dict, BaseModel]) -> BaseModel:
        model = RECORD_MODELS.get(collection)
        if model is None:
            raise StorageError(f"Unknown collection: {collection}")
        if isinstance(record, model):
            return record
        if isinstance(record, BaseModel):
            record = record.model_dump()
        return model.model_validate(record)
