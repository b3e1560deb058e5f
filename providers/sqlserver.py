"""
providers/sqlserver.py
----------------------
SQL Server / Azure SQL provider on pyodbc.

Design Decisions:
    * Bulk load uses ``executemany`` with ``fast_executemany`` enabled, which
      sends the whole batch as one parameter array instead of one round
      trip per row.
    * Connection strings that already name an ODBC ``Driver`` are used
      verbatim; ADO.NET style strings (``Server=host,1433;User Id=...``) are
      rewritten for the configured ODBC driver.
    * Row counts and sizes come from sys.partitions / sys.allocation_units,
      never from COUNT(*).
"""
from __future__ import annotations

import threading

from config import CONFIG
from core.connection_string import (
    DATABASE_KEYS,
    HOST_KEYS,
    PASSWORD_KEYS,
    USER_KEYS,
    parse_connection_string,
    pick,
    split_host_port,
    to_odbc,
)
from models.migration import TableDescriptor
from providers.base import placeholder
from providers.odbc import OdbcProvider

# ADO.NET keys consumed while building the ODBC string; the rest pass through.
_TRANSLATED_KEYS = frozenset(HOST_KEYS + DATABASE_KEYS + USER_KEYS + PASSWORD_KEYS + ("port",))

_TABLES_SQL = """
SELECT s.name, t.name,
       COALESCE((SELECT SUM(p.rows) FROM sys.partitions p
                  WHERE p.object_id = t.object_id AND p.index_id IN (0, 1)), 0),
       COALESCE((SELECT SUM(a.total_pages) FROM sys.partitions p
                  JOIN sys.allocation_units a ON a.container_id = p.partition_id
                  WHERE p.object_id = t.object_id), 0) * 8 * 1024,
       (SELECT COUNT(*) FROM sys.columns c WHERE c.object_id = t.object_id)
FROM sys.tables t
JOIN sys.schemas s ON s.schema_id = t.schema_id
WHERE t.is_ms_shipped = 0
ORDER BY 4 DESC, s.name, t.name
"""

_OBJECTS_SQL = """
SELECT s.name + '.' + o.name
FROM sys.objects o
JOIN sys.schemas s ON s.schema_id = o.schema_id
WHERE o.is_ms_shipped = 0 AND o.type IN ({types})
ORDER BY 1
"""

_MODULE_SQL = "SELECT m.definition FROM sys.sql_modules m WHERE m.object_id = OBJECT_ID(?)"


def odbc_connection_string(connection_string: str, driver: str | None = None) -> str:
    """
    Build a pyodbc connection string.

    Example::

        odbc_connection_string("Server=db,1433;Database=app;User Id=sa;Password=pw")
            →  "Driver={ODBC Driver 18 for SQL Server};Server=db,1433;"
               "Database=app;UID=sa;PWD=pw"
    """
    params = parse_connection_string(connection_string)
    if "driver" in params or "dsn" in params:
        return connection_string
    host, port = split_host_port(pick(params, HOST_KEYS))
    port = port or params.get("port")
    odbc: dict[str, str] = {"Driver": driver or CONFIG.drivers.sqlserver_odbc_driver}
    if host:
        odbc["Server"] = f"{host},{port}" if port else host
    for key, aliases in (
        ("Database", DATABASE_KEYS),
        ("UID", USER_KEYS),
        ("PWD", PASSWORD_KEYS),
    ):
        value = pick(params, aliases)
        if value:
            odbc[key] = value
    for key, value in params.items():
        if key not in _TRANSLATED_KEYS:
            odbc[key] = value
    return to_odbc(odbc)


class SqlServerProvider(OdbcProvider):
    """Capability set for SQL Server and Azure SQL."""

    fast_executemany = True
    table_statistics = True

    def _connection_string(self, connection_string: str) -> str:
        return odbc_connection_string(connection_string)

    def list_tables(
        self, connection_string: str, cancel: threading.Event | None = None
    ) -> list[TableDescriptor]:
        return self._descriptors(self._query(connection_string, _TABLES_SQL, cancel=cancel))

    def list_views(self, connection_string: str, cancel: threading.Event | None = None) -> list[str]:
        return self._names(connection_string, _OBJECTS_SQL.format(types="'V'"), cancel=cancel)

    def get_view_definition(
        self, connection_string: str, schema: str, name: str, cancel: threading.Event | None = None
    ) -> str:
        body = self._definition(
            connection_string, _MODULE_SQL, (self.dialect.qualify(schema, name),), cancel=cancel
        )
        return body or placeholder("not found", "view", f"{schema}.{name}")

    def list_functions(self, connection_string: str, cancel: threading.Event | None = None) -> list[str]:
        return self._names(
            connection_string, _OBJECTS_SQL.format(types="'FN', 'IF', 'TF'"), cancel=cancel
        )

    def get_function_definition(
        self, connection_string: str, signature: str, cancel: threading.Event | None = None
    ) -> str:
        body = self._definition(connection_string, _MODULE_SQL, (self._object_name(signature),), cancel=cancel)
        return body or placeholder("not found", "function", signature)

    def list_procedures(self, connection_string: str, cancel: threading.Event | None = None) -> list[str]:
        return self._names(connection_string, _OBJECTS_SQL.format(types="'P'"), cancel=cancel)

    def get_procedure_definition(
        self, connection_string: str, signature: str, cancel: threading.Event | None = None
    ) -> str:
        body = self._definition(connection_string, _MODULE_SQL, (self._object_name(signature),), cancel=cancel)
        return body or placeholder("not found", "procedure", signature)

    def _object_name(self, signature: str) -> str:
        schema, _, name = signature.partition(".")
        if not name:
            schema, name = self.dialect.default_schema, schema
        return self.dialect.qualify(schema, name)

    def _all_statistics_sql(self) -> str | None:
        return "EXEC sp_updatestats;"

    def _table_statistics_sql(self, schema: str, table: str) -> str | None:
        return f"UPDATE STATISTICS {self.dialect.qualify(schema, table)};"
