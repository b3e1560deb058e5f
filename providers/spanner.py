"""
providers/spanner.py
--------------------
Google Cloud Spanner provider on the google-cloud-spanner client library.

Spanner is not a DB-API engine here: the "connection" is a ``Database``
handle, queries run in read-only snapshots, schema changes go through
``update_ddl`` long-running operations and rows are written as mutations.

Design Decisions:
    * The connection string is the database path
      ``projects/<p>/instances/<i>/databases/<d>``, optionally given as
      ``Data Source=<path>``.
    * Bulk load commits mutation batches sized so that no commit exceeds
      ``spanner_max_mutations`` cells (rows x columns).
    * There are no cheap row estimates and no statistics refresh; views and
      routines are reported as unsupported.
"""
from __future__ import annotations

import datetime
import re
import threading
import uuid
from contextlib import contextmanager
from typing import Any, Iterator, Sequence

from config import CONFIG
from core.connection_string import parse_connection_string, pick
from core.errors import (
    BulkLoadError,
    DatabaseConnectionError,
    DatabaseError,
    IntrospectionError,
    raise_if_cancelled,
    translate_errors,
)
from logger import get_logger
from models.migration import TableDescriptor
from providers.base import Provider, Row, RowStream

log = get_logger(__name__)

_PATH_RE = re.compile(
    r"projects/(?P<project>[^/;\s]+)/instances/(?P<instance>[^/;\s]+)/databases/(?P<database>[^/;\s]+)"
)
_DDL_PREFIXES = ("CREATE", "DROP", "ALTER")

_TABLES_SQL = """
SELECT t.TABLE_SCHEMA, t.TABLE_NAME, 0, 0,
       (SELECT COUNT(*) FROM INFORMATION_SCHEMA.COLUMNS c
         WHERE c.TABLE_SCHEMA = t.TABLE_SCHEMA AND c.TABLE_NAME = t.TABLE_NAME)
FROM INFORMATION_SCHEMA.TABLES t
WHERE t.TABLE_TYPE = 'BASE TABLE' AND t.TABLE_SCHEMA = ''
ORDER BY t.TABLE_NAME
"""


def parse_database_path(connection_string: str) -> tuple[str, str, str]:
    """
    Split a Spanner database path into (project, instance, database).

    Example::

        parse_database_path("Data Source=projects/p1/instances/i1/databases/shop")
            →  ("p1", "i1", "shop")

    Raises:
        ValueError: If no database path is present.
    """
    raw = (connection_string or "").strip()
    params = parse_connection_string(raw) if "=" in raw else {}
    path = pick(params, ("data source", "database path", "database"), raw)
    match = _PATH_RE.search(path or "")
    if not match:
        raise ValueError(
            "Spanner connection string must contain "
            "projects/<project>/instances/<instance>/databases/<database>"
        )
    return match.group("project"), match.group("instance"), match.group("database")


def _mutation_value(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime.datetime) and value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    if isinstance(value, datetime.time):
        return value.isoformat()
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    return value


def _is_ddl(sql: str) -> bool:
    return sql.lstrip().upper().startswith(_DDL_PREFIXES)


class SpannerProvider(Provider):
    """Capability set for Cloud Spanner (GoogleSQL dialect)."""

    paramstyle = "@p"

    def _connect(self, connection_string: str) -> Any:
        from google.cloud import spanner

        project, instance, database = parse_database_path(connection_string)
        client = spanner.Client(project=project)
        return client.instance(instance).database(database)

    @contextmanager
    def connection(self, connection_string: str) -> Iterator[Any]:
        # Database handles share the client's session pool; nothing to close.
        with translate_errors(DatabaseConnectionError, f"Could not connect to {self.name}"):
            database = self._connect(connection_string)
        yield database

    def execute(
        self,
        connection_string: str,
        sql: str,
        cancel: threading.Event | None = None,
    ) -> None:
        raise_if_cancelled(cancel)
        statement = sql.strip().rstrip(";")
        log.debug("[%s] execute: %s", self.name, statement)
        with self.connection(connection_string) as database:
            with translate_errors(DatabaseError, f"{self.name} statement failed"):
                if _is_ddl(statement):
                    database.update_ddl([statement]).result()
                else:
                    database.run_in_transaction(lambda txn: txn.execute_update(statement))

    def _query(
        self,
        connection_string: str,
        sql: str,
        params: Sequence[Any] | None = None,
        cancel: threading.Event | None = None,
        error_cls: type[DatabaseError] = IntrospectionError,
    ) -> list[Row]:
        raise_if_cancelled(cancel)
        log.debug("[%s] query: %s", self.name, sql)
        with self.connection(connection_string) as database:
            with translate_errors(error_cls, f"{self.name} query failed"):
                kwargs: dict[str, Any] = {}
                if params:
                    from google.cloud.spanner_v1 import param_types

                    kwargs["params"] = {f"p{i}": v for i, v in enumerate(params, start=1)}
                    kwargs["param_types"] = {f"p{i}": param_types.STRING for i in range(1, len(params) + 1)}
                with database.snapshot() as snapshot:
                    return [tuple(row) for row in snapshot.execute_sql(sql, **kwargs)]

    def list_tables(
        self, connection_string: str, cancel: threading.Event | None = None
    ) -> list[TableDescriptor]:
        return self._descriptors(self._query(connection_string, _TABLES_SQL, cancel=cancel))

    def refresh_statistics(
        self,
        connection_string: str,
        schema: str | None = None,
        table: str | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        log.debug("[%s] statistics refresh is managed by the service; skipping", self.name)

    def stream_rows(
        self,
        connection_string: str,
        schema: str,
        table: str,
        batch_size: int,
        cancel: threading.Event | None = None,
    ) -> RowStream:
        sql = f"SELECT * FROM {self.dialect.quote(table)}"
        log.debug("[%s] stream: %s", self.name, sql)
        raise_if_cancelled(cancel)
        with self.connection(connection_string) as database:
            with database.snapshot() as snapshot:
                with translate_errors(DatabaseError, f"Reading {table} failed"):
                    results = snapshot.execute_sql(sql)
                    rows = iter(results)
                columns: list[str] | None = None
                while True:
                    raise_if_cancelled(cancel)
                    with translate_errors(DatabaseError, f"Reading {table} failed"):
                        row = next(rows, None)
                    if row is None:
                        break
                    if columns is None:
                        # Field metadata arrives with the first partial result.
                        columns = [f.name for f in results.fields]
                    yield columns, tuple(row)

    def bulk_insert(
        self,
        connection_string: str,
        schema: str,
        table: str,
        columns: Sequence[str],
        rows: Sequence[Row],
        cancel: threading.Event | None = None,
    ) -> int:
        if not rows:
            return 0
        raise_if_cancelled(cancel)
        chunk_size = max(1, CONFIG.drivers.spanner_max_mutations // max(1, len(columns)))
        total = 0
        with self.connection(connection_string) as database:
            with translate_errors(BulkLoadError, f"Bulk insert into {table} failed"):
                for start in range(0, len(rows), chunk_size):
                    raise_if_cancelled(cancel)
                    chunk = rows[start:start + chunk_size]
                    with database.batch() as batch:
                        batch.insert(
                            table=table,
                            columns=list(columns),
                            values=[[_mutation_value(v) for v in row] for row in chunk],
                        )
                    total += len(chunk)
        log.debug("[%s] loaded %d rows into %s", self.name, total, table)
        return total
