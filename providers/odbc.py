"""
providers/odbc.py
-----------------
Generic ODBC provider (Pervasive / Actian Zen and other engines reachable
only through an ODBC driver) on pyodbc.

The connection string is handed to the ODBC driver manager unchanged, so
it must name a ``DSN`` or a ``Driver``.  Tables come from
INFORMATION_SCHEMA without estimates; bulk load is a plain ``executemany``
because generic drivers do not reliably support parameter arrays.
"""
from __future__ import annotations

import threading
from typing import Any, Sequence

from config import CONFIG
from models.migration import TableDescriptor
from providers.base import Provider, Row


class OdbcProvider(Provider):
    """Capability set for engines reached through a generic ODBC driver."""

    paramstyle = "?"
    fast_executemany = False

    def _connection_string(self, connection_string: str) -> str:
        return connection_string

    def _connect(self, connection_string: str) -> Any:
        import pyodbc

        return pyodbc.connect(
            self._connection_string(connection_string),
            autocommit=False,
            timeout=CONFIG.drivers.connect_timeout,
        )

    def list_tables(
        self, connection_string: str, cancel: threading.Event | None = None
    ) -> list[TableDescriptor]:
        rows = self._query(
            connection_string,
            "SELECT TABLE_SCHEMA, TABLE_NAME, 0, 0, 0 FROM INFORMATION_SCHEMA.TABLES "
            "WHERE TABLE_TYPE = 'BASE TABLE' ORDER BY TABLE_SCHEMA, TABLE_NAME",
            cancel=cancel,
        )
        return self._descriptors(rows)

    def _bulk_load(
        self,
        conn: Any,
        schema: str,
        table: str,
        columns: Sequence[str],
        rows: Sequence[Row],
        cancel: threading.Event | None,
    ) -> int:
        cursor = conn.cursor()
        cursor.fast_executemany = self.fast_executemany
        try:
            cursor.executemany(self._insert_sql(schema, table, columns), [tuple(r) for r in rows])
        finally:
            cursor.close()
        return len(rows)
