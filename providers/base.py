"""
providers/base.py
-----------------
The capability contract every dialect provider fulfils, plus the DB-API
plumbing shared by the drivers that follow PEP 249.

Design Decisions:
    * Providers are stateless: each operation opens its own connection via
      ``connection()`` and closes it on exit, so one instance can serve
      several worker threads at once.
    * A provider is built from a ``Dialect`` record.  Variants share a class
      and differ only in the record they were built with.
    * Driver exceptions are translated into the ``core.errors`` taxonomy at
      this boundary; callers never see driver-specific types.
    * Cancellation is cooperative: ``cancel`` (a ``threading.Event``) is
      checked before every statement, every fetched row and every bulk
      chunk.
    * Catalog queries bind values with the driver's own placeholder style
      (``paramstyle``); identifiers are always quoted by the dialect.
"""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Iterator, Sequence

from core.dialects import Dialect
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

log = get_logger(__name__)

Row = tuple
RowStream = Iterator[tuple[list[str], Row]]


def as_text(value: Any) -> str | None:
    """Normalise a scalar result (LOB handles, bytes, numbers) to text."""
    if value is None:
        return None
    if hasattr(value, "read"):
        value = value.read()
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    return str(value)


def as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def placeholder(kind: str, construct: str, name: str | None = None) -> str:
    """
    Comment text returned instead of DDL when a definition is unavailable.

    Example::

        placeholder("not found", "view", "public.v")  →  "-- view public.v not found"
        placeholder("not supported", "views")         →  "-- views not supported"
    """
    return f"-- {construct} {name} {kind}" if name else f"-- {construct} {kind}"


def is_placeholder(definition: str | None) -> bool:
    return not definition or definition.lstrip().startswith("--")


class Provider(ABC):
    """
    Capability set for one dialect.

    Subclasses implement ``_connect`` and ``list_tables``; everything else
    has a working DB-API default that subclasses refine where their engine
    has a faster or more precise native path.
    """

    paramstyle = "?"
    table_statistics = False

    def __init__(self, dialect: Dialect) -> None:
        self.dialect = dialect

    @property
    def name(self) -> str:
        return self.dialect.name

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    @abstractmethod
    def _connect(self, connection_string: str) -> Any:
        """Open and return a DB-API connection (autocommit off)."""

    @contextmanager
    def connection(self, connection_string: str) -> Iterator[Any]:
        """
        Open a connection for the duration of the ``with`` block.

        Raises:
            DatabaseConnectionError: If the driver cannot connect.
        """
        with translate_errors(DatabaseConnectionError, f"Could not connect to {self.name}"):
            conn = self._connect(connection_string)
        try:
            yield conn
        finally:
            try:
                conn.close()
            except Exception as exc:
                log.debug("Ignoring error while closing %s connection: %s", self.name, exc)

    @staticmethod
    def _rollback(conn: Any) -> None:
        try:
            conn.rollback()
        except Exception as exc:
            log.warning("Rollback failed: %s", exc)

    # ------------------------------------------------------------------
    # Raw execution
    # ------------------------------------------------------------------

    def _prepare_for_statement(self, conn: Any) -> None:
        """Hook for engines that need session changes before raw DDL."""

    def execute(
        self,
        connection_string: str,
        sql: str,
        cancel: threading.Event | None = None,
    ) -> None:
        """Run one statement and commit it."""
        raise_if_cancelled(cancel)
        log.debug("[%s] execute: %s", self.name, sql)
        with self.connection(connection_string) as conn:
            with translate_errors(DatabaseError, f"{self.name} statement failed"):
                self._prepare_for_statement(conn)
                cursor = conn.cursor()
                try:
                    cursor.execute(sql)
                    if cursor.description:
                        cursor.fetchall()
                finally:
                    cursor.close()
                conn.commit()

    def execute_scalar(
        self,
        connection_string: str,
        sql: str,
        cancel: threading.Event | None = None,
    ) -> str | None:
        """Run a query and return the first column of the first row as text."""
        rows = self._query(connection_string, sql, cancel=cancel, error_cls=DatabaseError)
        return as_text(rows[0][0]) if rows and rows[0] else None

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
        with self.connection(connection_string) as conn:
            with translate_errors(error_cls, f"{self.name} query failed"):
                cursor = conn.cursor()
                try:
                    if params is None:
                        cursor.execute(sql)
                    else:
                        cursor.execute(sql, tuple(params))
                    # LOB handles must be read before the connection closes.
                    return [
                        tuple(v.read() if hasattr(v, "read") else v for v in r)
                        for r in cursor.fetchall()
                    ]
                finally:
                    cursor.close()

    def _names(self, connection_string: str, sql: str, cancel: threading.Event | None = None) -> list[str]:
        return [as_text(r[0]) or "" for r in self._query(connection_string, sql, cancel=cancel)]

    def _definition(
        self,
        connection_string: str,
        sql: str,
        params: Sequence[Any],
        cancel: threading.Event | None = None,
    ) -> str | None:
        rows = self._query(connection_string, sql, params=params, cancel=cancel)
        return as_text(rows[0][0]) if rows and rows[0] else None

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    @abstractmethod
    def list_tables(
        self, connection_string: str, cancel: threading.Event | None = None
    ) -> list[TableDescriptor]:
        """Base tables outside the engine's system schemas, with catalog estimates."""

    def _descriptors(self, rows: list[Row]) -> list[TableDescriptor]:
        # Rows are (schema, name, rows, bytes, columns).
        return [
            TableDescriptor(
                schema_name=(as_text(r[0]) or "").strip(),
                name=(as_text(r[1]) or "").strip(),
                estimated_row_count=as_int(r[2]),
                size_bytes=as_int(r[3]),
                column_count=as_int(r[4]),
            )
            for r in rows
        ]

    def list_views(self, connection_string: str, cancel: threading.Event | None = None) -> list[str]:
        return []

    def get_view_definition(
        self, connection_string: str, schema: str, name: str, cancel: threading.Event | None = None
    ) -> str:
        return placeholder("not supported", "views")

    def list_functions(self, connection_string: str, cancel: threading.Event | None = None) -> list[str]:
        return []

    def get_function_definition(
        self, connection_string: str, signature: str, cancel: threading.Event | None = None
    ) -> str:
        return placeholder("not supported", "functions")

    def list_procedures(self, connection_string: str, cancel: threading.Event | None = None) -> list[str]:
        return []

    def get_procedure_definition(
        self, connection_string: str, signature: str, cancel: threading.Event | None = None
    ) -> str:
        return placeholder("not supported", "procedures")

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def _table_statistics_sql(self, schema: str, table: str) -> str | None:
        """Statement refreshing one table's statistics, or None if unsupported."""
        return None

    def _all_statistics_sql(self) -> str | None:
        """Single statement refreshing the whole database, if the engine has one."""
        return None

    def refresh_statistics(
        self,
        connection_string: str,
        schema: str | None = None,
        table: str | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        """
        Trigger the engine's statistics refresh for one table or for all.

        Engines without a database-wide statement are refreshed table by
        table; engines without either are a no-op.
        """
        if table:
            sql = self._table_statistics_sql(schema or self.dialect.default_schema, table)
            if sql:
                self.execute(connection_string, sql, cancel=cancel)
            return

        sql = self._all_statistics_sql()
        if sql:
            self.execute(connection_string, sql, cancel=cancel)
            return
        if not self.table_statistics:
            return
        for t in self.list_tables(connection_string, cancel=cancel):
            stmt = self._table_statistics_sql(t.schema_name, t.name)
            if stmt:
                self.execute(connection_string, stmt, cancel=cancel)

    # ------------------------------------------------------------------
    # Row streaming
    # ------------------------------------------------------------------

    def _select_sql(self, connection_string: str, schema: str, table: str) -> str:
        return f"SELECT * FROM {self.dialect.qualify(schema, table)}"

    def _stream_cursor(self, conn: Any) -> Any:
        return conn.cursor()

    def stream_rows(
        self,
        connection_string: str,
        schema: str,
        table: str,
        batch_size: int,
        cancel: threading.Event | None = None,
    ) -> RowStream:
        """
        Lazily yield ``(column_names, row)`` for every row of the table.

        Rows are fetched ``batch_size`` at a time.  The generator is single
        pass; calling again re-runs the query.  Closing it early releases
        the connection.

        Raises:
            MigrationCancelledError: As soon as ``cancel`` is observed set.
        """
        sql = self._select_sql(connection_string, schema, table)
        log.debug("[%s] stream: %s", self.name, sql)
        raise_if_cancelled(cancel)
        with self.connection(connection_string) as conn:
            cursor = self._stream_cursor(conn)
            try:
                with translate_errors(DatabaseError, f"Reading {schema}.{table} failed"):
                    cursor.execute(sql)
                columns: list[str] | None = None
                while True:
                    raise_if_cancelled(cancel)
                    with translate_errors(DatabaseError, f"Reading {schema}.{table} failed"):
                        rows = cursor.fetchmany(batch_size)
                    if columns is None:
                        columns = [d[0] for d in (cursor.description or ())]
                    if not rows:
                        break
                    for row in rows:
                        raise_if_cancelled(cancel)
                        yield columns, tuple(row)
            finally:
                cursor.close()

    # ------------------------------------------------------------------
    # Bulk load
    # ------------------------------------------------------------------

    def _insert_sql(self, schema: str, table: str, columns: Sequence[str]) -> str:
        cols = ", ".join(self.dialect.quote(c) for c in columns)
        marks = ", ".join([self.paramstyle] * len(columns))
        return f"INSERT INTO {self.dialect.qualify(schema, table)} ({cols}) VALUES ({marks})"

    def _bulk_load(
        self,
        conn: Any,
        schema: str,
        table: str,
        columns: Sequence[str],
        rows: Sequence[Row],
        cancel: threading.Event | None,
    ) -> int:
        """Default fast path: one ``executemany`` over the whole batch."""
        cursor = conn.cursor()
        try:
            cursor.executemany(self._insert_sql(schema, table, columns), [tuple(r) for r in rows])
        finally:
            cursor.close()
        return len(rows)

    def bulk_insert(
        self,
        connection_string: str,
        schema: str,
        table: str,
        columns: Sequence[str],
        rows: Sequence[Row],
        cancel: threading.Event | None = None,
    ) -> int:
        """
        Load ``rows`` into the target table through the engine's fast path.

        The batch is committed as a whole; any failure rolls back and raises.

        Returns:
            Number of rows inserted.

        Raises:
            BulkLoadError: If the load fails.
        """
        if not rows:
            return 0
        raise_if_cancelled(cancel)
        with self.connection(connection_string) as conn:
            with translate_errors(BulkLoadError, f"Bulk insert into {schema}.{table} failed"):
                try:
                    count = self._bulk_load(conn, schema, table, columns, rows, cancel)
                    conn.commit()
                except Exception:
                    self._rollback(conn)
                    raise
        log.debug("[%s] loaded %d rows into %s.%s", self.name, count, schema, table)
        return count
