"""
DuckDB record store for the analytics engine.

Records from every collection share one `records` table: the scope and time
columns used by report filters are stored as typed columns, and the full
validated document is kept as JSON. Leading tenant/branch/status/date filters
of a query are pushed down into SQL; the remaining pipeline stages are
evaluated in-process by the shared query evaluator.
"""

import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Union

import duckdb
import structlog
from pydantic import BaseModel

from bizpulse.models.records import DATE_FIELDS, RECORD_MODELS

from .base import RecordStore, StorageError
from .query import Match, Query, evaluate

logger = structlog.get_logger(__name__)

_SQL_OPERATORS = {"eq": "=", "gt": ">", "gte": ">=", "lt": "<", "lte": "<="}


class DuckDBRecordStore(RecordStore):
    """
    DuckDB implementation of the record store.

    Architecture:
    - One root connection per store; each thread works on its own cursor
    - Upserts keyed by (collection, record_id)
    - Indexed scope columns so tenant/branch/date filters stay cheap

    Attributes:
        db_path: Path to the DuckDB database file (or ":memory:")
        _local: Thread-local storage for per-thread cursors
        _lock: Thread lock for schema operations
    """

    def __init__(self, db_path: str = "./data/bizpulse.duckdb"):
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._local = threading.local()
        self._lock = threading.Lock()
        try:
            self._root = duckdb.connect(db_path)
        except duckdb.Error as e:
            logger.error("duckdb_connection_failed", db_path=db_path, error=str(e))
            raise StorageError(f"Failed to connect to DuckDB: {e}") from e

        logger.info("duckdb_store_initialized", db_path=db_path)
        self._initialize_schema()

    @contextmanager
    def _get_connection(self):
        """
        Get this thread's DuckDB cursor.

        Yields:
            DuckDB cursor sharing the root connection's database
        """
        if not hasattr(self._local, "cursor"):
            self._local.cursor = self._root.cursor()
            logger.debug("duckdb_cursor_created", thread_id=threading.get_ident())
        yield self._local.cursor

    def _initialize_schema(self) -> None:
        with self._lock:
            try:
                with self._get_connection() as conn:
                    conn.execute(
                        """
                        CREATE TABLE IF NOT EXISTS records (
                            collection VARCHAR NOT NULL,
                            record_id VARCHAR NOT NULL,
                            tenant_id VARCHAR NOT NULL,
                            branch_id VARCHAR,
                            status VARCHAR,
                            ts TIMESTAMP,
                            doc JSON NOT NULL,
                            PRIMARY KEY (collection, record_id)
                        )
                        """
                    )
                    conn.execute(
                        "CREATE INDEX IF NOT EXISTS idx_records_scope "
                        "ON records(collection, tenant_id, branch_id)"
                    )
                    conn.execute("CREATE INDEX IF NOT EXISTS idx_records_ts ON records(collection, ts)")
            except duckdb.Error as e:
                logger.error("schema_initialization_failed", error=str(e))
                raise StorageError(f"Failed to initialize schema: {e}") from e

    def insert(self, collection: str, records: Iterable[Union[dict, BaseModel]]) -> int:
        """Validate records and upsert them in a single transaction."""
        models = [self._validate(collection, r) for r in records]
        if not models:
            return 0

        date_field = DATE_FIELDS.get(collection)
        rows = [
            [
                collection,
                m.id,
                m.tenant_id,
                getattr(m, "branch_id", None),
                getattr(m, "status", None),
                getattr(m, date_field) if date_field else None,
                m.model_dump_json(),
            ]
            for m in models
        ]

        with self._get_connection() as conn:
            try:
                conn.begin()
                conn.executemany(
                    """
                    INSERT OR REPLACE INTO records (
                        collection, record_id, tenant_id, branch_id, status, ts, doc
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    rows,
                )
                conn.commit()
            except duckdb.Error as e:
                conn.rollback()
                logger.error("insert_records_failed", collection=collection, error=str(e))
                raise StorageError(f"Failed to insert {collection} records: {e}") from e

        logger.info("records_written", collection=collection, count=len(rows))
        return len(rows)

    def _pushdown(self, query: Query) -> tuple[str, list]:
        """Translate leading scope/status/date matches into a WHERE clause."""
        columns = {"tenant_id": "tenant_id", "branch_id": "branch_id", "status": "status"}
        date_field = DATE_FIELDS.get(query.collection)
        if date_field:
            columns[date_field] = "ts"

        clauses = ["collection = ?"]
        params: list = [query.collection]
        for match in query.leading_matches():
            column = columns.get(match.path)
            if column is None:
                continue
            clause = self._clause(column, match)
            if clause is None:
                continue
            sql, values = clause
            clauses.append(sql)
            params.extend(values)
        return " AND ".join(clauses), params

    @staticmethod
    def _clause(column: str, match: Match):
        if match.op in _SQL_OPERATORS and match.value is not None:
            return f"{column} {_SQL_OPERATORS[match.op]} ?", [match.value]
        if match.op == "in" and match.value:
            values = list(match.value)
            placeholders = ", ".join("?" for _ in values)
            return f"{column} IN ({placeholders})", values
        return None

    def execute(self, query: Query) -> list[dict]:
        model = RECORD_MODELS.get(query.collection)
        if model is None:
            raise StorageError(f"Unknown collection: {query.collection}")

        where, params = self._pushdown(query)
        try:
            with self._get_connection() as conn:
                result = conn.execute(
                    f"SELECT doc FROM records WHERE {where} ORDER BY record_id", params
                ).fetchall()
        except duckdb.Error as e:
            logger.error("execute_query_failed", collection=query.collection, error=str(e))
            raise StorageError(f"Failed to query {query.collection}: {e}") from e

        rows = [model.model_validate_json(row[0]).model_dump() for row in result]
        logger.debug("records_read", collection=query.collection, count=len(rows))
        return evaluate(rows, query.stages)

    def count(self, collection: str) -> int:
        try:
            with self._get_connection() as conn:
                row = conn.execute(
                    "SELECT COUNT(*) FROM records WHERE collection = ?", [collection]
                ).fetchone()
                return row[0]
        except duckdb.Error as e:
            raise StorageError(f"Failed to count {collection}: {e}") from e

    def close(self) -> None:
        self._root.close()
        logger.info("duckdb_store_closed", db_path=self.db_path)
