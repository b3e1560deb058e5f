"""
providers/mysql.py
------------------
MySQL family provider (MySQL, MariaDB, Percona, TiDB, Aurora MySQL) on
mysql-connector-python.

Design Decisions:
    * Bulk load is a multi-row ``INSERT ... VALUES (...), (...)`` with the
      row values flattened into one parameter list, issued in chunks of
      ``insert_chunk_size`` rows inside a single transaction so a batch
      either lands completely or not at all.
    * ``group_concat_max_len`` is raised per session; the column
      introspection query aggregates every column into one GROUP_CONCAT.
    * Only the connected database (``DATABASE()``) is listed, matching how
      MySQL users scope a connection.
"""
from __future__ import annotations

import threading
from typing import Any, Sequence

from config import CONFIG
from core.connection_string import (
    DATABASE_KEYS,
    HOST_KEYS,
    PASSWORD_KEYS,
    PORT_KEYS,
    USER_KEYS,
    parse_connection_string,
    pick,
    split_host_port,
)
from core.errors import IntrospectionError, raise_if_cancelled, translate_errors
from logger import get_logger
from models.migration import TableDescriptor
from providers.base import Provider, Row, as_text, placeholder

log = get_logger(__name__)

_TABLES_SQL = """
SELECT t.TABLE_SCHEMA, t.TABLE_NAME,
       COALESCE(t.TABLE_ROWS, 0),
       COALESCE(t.DATA_LENGTH, 0) + COALESCE(t.INDEX_LENGTH, 0),
       (SELECT COUNT(*) FROM information_schema.COLUMNS c
         WHERE c.TABLE_SCHEMA = t.TABLE_SCHEMA AND c.TABLE_NAME = t.TABLE_NAME)
FROM information_schema.TABLES t
WHERE t.TABLE_SCHEMA = DATABASE() AND t.TABLE_TYPE = 'BASE TABLE'
ORDER BY 4 DESC, t.TABLE_NAME
"""

_ROUTINES_SQL = """
SELECT CONCAT(ROUTINE_SCHEMA, '.', ROUTINE_NAME)
FROM information_schema.ROUTINES
WHERE ROUTINE_SCHEMA = DATABASE() AND ROUTINE_TYPE = %s
ORDER BY 1
"""


def connect_kwargs(connection_string: str) -> dict[str, Any]:
    """
    Keyword arguments for ``mysql.connector.connect``.

    Example::

        connect_kwargs("Server=db;Port=3307;Database=shop;Uid=app;Pwd=pw")
            →  {"host": "db", "port": 3307, "database": "shop",
                "user": "app", "password": "pw"}
    """
    params = parse_connection_string(connection_string)
    host, port = split_host_port(pick(params, HOST_KEYS))
    port = pick(params, PORT_KEYS, port)
    kwargs: dict[str, Any] = {
        "host": host,
        "port": int(port) if port else None,
        "database": pick(params, DATABASE_KEYS),
        "user": pick(params, USER_KEYS),
        "password": pick(params, PASSWORD_KEYS),
    }
    return {k: v for k, v in kwargs.items() if v}


class MySqlProvider(Provider):
    """Capability set for MySQL and its wire-compatible variants."""

    paramstyle = "%s"
    table_statistics = True

    def _connect(self, connection_string: str) -> Any:
        import mysql.connector

        conn = mysql.connector.connect(
            charset="utf8mb4",
            connect_timeout=CONFIG.drivers.connect_timeout,
            **connect_kwargs(connection_string),
        )
        cursor = conn.cursor()
        try:
            cursor.execute("SET SESSION group_concat_max_len = 4194304")
        finally:
            cursor.close()
        return conn

    def list_tables(
        self, connection_string: str, cancel: threading.Event | None = None
    ) -> list[TableDescriptor]:
        return self._descriptors(self._query(connection_string, _TABLES_SQL, cancel=cancel))

    def list_views(self, connection_string: str, cancel: threading.Event | None = None) -> list[str]:
        return self._names(
            connection_string,
            "SELECT CONCAT(TABLE_SCHEMA, '.', TABLE_NAME) FROM information_schema.VIEWS "
            "WHERE TABLE_SCHEMA = DATABASE() ORDER BY 1",
            cancel=cancel,
        )

    def get_view_definition(
        self, connection_string: str, schema: str, name: str, cancel: threading.Event | None = None
    ) -> str:
        body = self._definition(
            connection_string,
            "SELECT VIEW_DEFINITION FROM information_schema.VIEWS "
            "WHERE TABLE_SCHEMA = %s AND TABLE_NAME = %s",
            (schema, name),
            cancel=cancel,
        )
        if not body:
            return placeholder("not found", "view", f"{schema}.{name}")
        return f"CREATE OR REPLACE VIEW {self.dialect.qualify(schema, name)} AS\n{body};"

    def _show_create(
        self, connection_string: str, kind: str, signature: str, cancel: threading.Event | None
    ) -> str:
        """Body of ``SHOW CREATE FUNCTION|PROCEDURE``, found by column name."""
        schema, _, name = signature.removesuffix("()").partition(".")
        target = self.dialect.qualify(schema, name) if name else self.dialect.quote(schema)
        raise_if_cancelled(cancel)
        with self.connection(connection_string) as conn:
            with translate_errors(IntrospectionError, f"SHOW CREATE {kind.upper()} {target} failed"):
                cursor = conn.cursor()
                try:
                    cursor.execute(f"SHOW CREATE {kind.upper()} {target}")
                    row = cursor.fetchone()
                    labels = [d[0] for d in (cursor.description or ())]
                finally:
                    cursor.close()
        wanted = f"create {kind}"
        if row:
            for label, value in zip(labels, row):
                if str(label).lower() == wanted and value:
                    return as_text(value) or ""
        log.debug("SHOW CREATE %s %s returned no definition", kind.upper(), target)
        return placeholder("not found", kind, signature)

    def list_functions(self, connection_string: str, cancel: threading.Event | None = None) -> list[str]:
        return [r[0] for r in self._query(connection_string, _ROUTINES_SQL, ("FUNCTION",), cancel=cancel)]

    def get_function_definition(
        self, connection_string: str, signature: str, cancel: threading.Event | None = None
    ) -> str:
        return self._show_create(connection_string, "function", signature, cancel)

    def list_procedures(self, connection_string: str, cancel: threading.Event | None = None) -> list[str]:
        return [r[0] for r in self._query(connection_string, _ROUTINES_SQL, ("PROCEDURE",), cancel=cancel)]

    def get_procedure_definition(
        self, connection_string: str, signature: str, cancel: threading.Event | None = None
    ) -> str:
        return self._show_create(connection_string, "procedure", signature, cancel)

    def _table_statistics_sql(self, schema: str, table: str) -> str | None:
        return f"ANALYZE TABLE {self.dialect.qualify(schema, table)};"

    def _bulk_load(
        self,
        conn: Any,
        schema: str,
        table: str,
        columns: Sequence[str],
        rows: Sequence[Row],
        cancel: threading.Event | None,
    ) -> int:
        cols = ", ".join(self.dialect.quote(c) for c in columns)
        row_marks = "(" + ", ".join(["%s"] * len(columns)) + ")"
        prefix = f"INSERT INTO {self.dialect.qualify(schema, table)} ({cols}) VALUES "
        chunk_size = max(1, CONFIG.migration.insert_chunk_size)

        cursor = conn.cursor()
        try:
            for start in range(0, len(rows), chunk_size):
                raise_if_cancelled(cancel)
                chunk = rows[start:start + chunk_size]
                flat: list[Any] = []
                for row in chunk:
                    flat.extend(row)
                cursor.execute(prefix + ", ".join([row_marks] * len(chunk)), flat)
        finally:
            cursor.close()
        return len(rows)
