"""
providers/oracle.py
-------------------
Oracle provider on python-oracledb (thin mode, no Instant Client needed).

Design Decisions:
    * Bulk load uses array binding: one ``executemany`` with numbered
      binds sends the whole batch in a single round trip.
    * LOBs are fetched as ``str``/``bytes`` (``defaults.fetch_lobs = False``)
      so streamed rows can be handed straight to another driver.
    * DDL for views and routines comes from ``DBMS_METADATA.GET_DDL``.
    * Object names are passed to catalog queries as-is; the catalog's own
      upper-case folding is applied by callers that start from user input.
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
    is_url,
    parse_connection_string,
    pick,
)
from logger import get_logger
from models.migration import TableDescriptor
from providers.base import Provider, Row, placeholder

log = get_logger(__name__)

_SYSTEM_OWNERS = (
    "('SYS', 'SYSTEM', 'XDB', 'MDSYS', 'CTXSYS', 'ORDSYS', 'ORDDATA', 'LBACSYS', "
    "'OUTLN', 'DBSNMP', 'WMSYS', 'APPQOSSYS', 'GSMADMIN_INTERNAL', 'OJVMSYS', "
    "'DVSYS', 'AUDSYS', 'OLAPSYS', 'DBSFWUSER')"
)

_TABLES_SQL = f"""
SELECT t.OWNER, t.TABLE_NAME, NVL(t.NUM_ROWS, 0),
       NVL((SELECT SUM(s.BYTES) FROM USER_SEGMENTS s
             WHERE t.OWNER = USER AND s.SEGMENT_NAME = t.TABLE_NAME), 0),
       (SELECT COUNT(*) FROM ALL_TAB_COLUMNS c
         WHERE c.OWNER = t.OWNER AND c.TABLE_NAME = t.TABLE_NAME)
FROM ALL_TABLES t
WHERE t.OWNER NOT IN {_SYSTEM_OWNERS} AND t.NESTED = 'NO'
ORDER BY 4 DESC, t.OWNER, t.TABLE_NAME
"""

_OBJECTS_SQL = f"""
SELECT OWNER || '.' || OBJECT_NAME FROM ALL_OBJECTS
WHERE OBJECT_TYPE = :1 AND OWNER NOT IN {_SYSTEM_OWNERS}
ORDER BY 1
"""


def connect_kwargs(connection_string: str) -> dict[str, Any]:
    """
    Keyword arguments for ``oracledb.connect``.

    Example::

        connect_kwargs("User Id=app;Password=pw;Data Source=//db:1521/XEPDB1")
            →  {"user": "app", "password": "pw", "dsn": "db:1521/XEPDB1"}
    """
    params = parse_connection_string(connection_string)
    if is_url(connection_string):
        host = params.get("host", "")
        port = params.get("port")
        service = params.get("database", "")
        dsn = f"{host}:{port}/{service}" if port else f"{host}/{service}"
    else:
        dsn = pick(params, ("data source", "dsn", "connect string"))
        if not dsn:
            host, port = pick(params, HOST_KEYS), pick(params, PORT_KEYS)
            service = pick(params, ("service name", "service_name") + DATABASE_KEYS, "")
            dsn = f"{host}:{port}/{service}" if port else f"{host}/{service}"
    kwargs = {
        "user": pick(params, USER_KEYS),
        "password": pick(params, PASSWORD_KEYS),
        "dsn": dsn.removeprefix("//") if dsn else dsn,
    }
    return {k: v for k, v in kwargs.items() if v}


class OracleProvider(Provider):
    """Capability set for Oracle Database."""

    paramstyle = ":1"
    table_statistics = True

    def _connect(self, connection_string: str) -> Any:
        import oracledb

        oracledb.defaults.fetch_lobs = False
        return oracledb.connect(
            tcp_connect_timeout=CONFIG.drivers.connect_timeout,
            **connect_kwargs(connection_string),
        )

    def list_tables(
        self, connection_string: str, cancel: threading.Event | None = None
    ) -> list[TableDescriptor]:
        return self._descriptors(self._query(connection_string, _TABLES_SQL, cancel=cancel))

    def _metadata_ddl(
        self, connection_string: str, object_type: str, signature: str, cancel: threading.Event | None
    ) -> str:
        owner, _, name = signature.partition(".")
        body = self._definition(
            connection_string,
            "SELECT DBMS_METADATA.GET_DDL(:1, :2, :3) FROM DUAL",
            (object_type, name, owner),
            cancel=cancel,
        )
        return body.strip() if body else placeholder("not found", object_type.lower(), signature)

    def list_views(self, connection_string: str, cancel: threading.Event | None = None) -> list[str]:
        rows = self._query(connection_string, _OBJECTS_SQL, ("VIEW",), cancel=cancel)
        return [r[0] for r in rows]

    def get_view_definition(
        self, connection_string: str, schema: str, name: str, cancel: threading.Event | None = None
    ) -> str:
        return self._metadata_ddl(connection_string, "VIEW", f"{schema}.{name}", cancel)

    def list_functions(self, connection_string: str, cancel: threading.Event | None = None) -> list[str]:
        rows = self._query(connection_string, _OBJECTS_SQL, ("FUNCTION",), cancel=cancel)
        return [r[0] for r in rows]

    def get_function_definition(
        self, connection_string: str, signature: str, cancel: threading.Event | None = None
    ) -> str:
        return self._metadata_ddl(connection_string, "FUNCTION", signature, cancel)

    def list_procedures(self, connection_string: str, cancel: threading.Event | None = None) -> list[str]:
        rows = self._query(connection_string, _OBJECTS_SQL, ("PROCEDURE",), cancel=cancel)
        return [r[0] for r in rows]

    def get_procedure_definition(
        self, connection_string: str, signature: str, cancel: threading.Event | None = None
    ) -> str:
        return self._metadata_ddl(connection_string, "PROCEDURE", signature, cancel)

    def _all_statistics_sql(self) -> str | None:
        return "BEGIN DBMS_STATS.GATHER_SCHEMA_STATS(USER); END;"

    def _table_statistics_sql(self, schema: str, table: str) -> str | None:
        d = self.dialect
        return (
            f"BEGIN DBMS_STATS.GATHER_TABLE_STATS(ownname => {d.literal(schema)}, "
            f"tabname => {d.literal(table)}); END;"
        )

    def _select_sql(self, connection_string: str, schema: str, table: str) -> str:
        rows = self._query(
            connection_string,
            "SELECT COLUMN_NAME FROM ALL_TAB_COLUMNS "
            "WHERE OWNER = :1 AND TABLE_NAME = :2 ORDER BY COLUMN_ID",
            (schema, table),
        )
        if not rows:
            return super()._select_sql(connection_string, schema, table)
        cols = ", ".join(self.dialect.quote(r[0]) for r in rows)
        return f"SELECT {cols} FROM {self.dialect.qualify(schema, table)}"

    def _stream_cursor(self, conn: Any) -> Any:
        cursor = conn.cursor()
        cursor.arraysize = CONFIG.migration.default_batch_size
        cursor.prefetchrows = CONFIG.migration.default_batch_size
        return cursor

    def _insert_sql(self, schema: str, table: str, columns: Sequence[str]) -> str:
        cols = ", ".join(self.dialect.quote(c) for c in columns)
        binds = ", ".join(f":{i}" for i in range(1, len(columns) + 1))
        return f"INSERT INTO {self.dialect.qualify(schema, table)} ({cols}) VALUES ({binds})"

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
        try:
            cursor.executemany(self._insert_sql(schema, table, columns), [list(r) for r in rows])
        finally:
            cursor.close()
        return len(rows)
