"""
providers/postgres.py
---------------------
Postgres family provider (Postgres, Aurora Postgres, Hyperscale, CockroachDB)
on psycopg2.

Design Decisions:
    * Bulk load uses ``COPY ... FROM STDIN`` in CSV format through
      ``cursor.copy_expert``: one round trip per batch and atomic by nature.
      NULL is the unquoted empty field; every other value is quoted so an
      empty string survives the trip.
    * Rows are streamed through a named (server-side) cursor so large
      tables are never materialised client-side.
    * Catalog types psycopg2 cannot adapt back (aclitem, pg_node_tree,
      regproc...) are cast to text in the streaming SELECT.
    * CockroachDB has no pg_stat size catalog; a dialect with
      ``catalog_statistics`` off lists tables from information_schema with
      zero estimates.
"""
from __future__ import annotations

import csv
import io
import json
import threading
import uuid
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

_SYSTEM_SCHEMAS = "('pg_catalog', 'information_schema', 'crdb_internal', 'pg_extension')"
_TEXT_CAST_TYPES = frozenset(
    {"aclitem", "aclitem[]", "pg_node_tree", "regproc", "regprocedure"}
)

_TABLES_SQL = f"""
SELECT n.nspname, c.relname,
       COALESCE(s.n_live_tup, GREATEST(c.reltuples, 0))::bigint,
       pg_total_relation_size(c.oid),
       (SELECT count(*) FROM pg_attribute a
         WHERE a.attrelid = c.oid AND a.attnum > 0 AND NOT a.attisdropped)
FROM pg_class c
JOIN pg_namespace n ON n.oid = c.relnamespace
LEFT JOIN pg_stat_all_tables s ON s.relid = c.oid
WHERE c.relkind IN ('r', 'p') AND NOT c.relispartition
  AND n.nspname NOT IN {_SYSTEM_SCHEMAS}
  AND n.nspname NOT LIKE 'pg_toast%%'
  AND n.nspname NOT LIKE 'pg_temp%%'
ORDER BY pg_total_relation_size(c.oid) DESC, n.nspname, c.relname
"""

_INFORMATION_SCHEMA_TABLES_SQL = f"""
SELECT t.table_schema, t.table_name, 0, 0,
       (SELECT count(*) FROM information_schema.columns c
         WHERE c.table_schema = t.table_schema AND c.table_name = t.table_name)
FROM information_schema.tables t
WHERE t.table_type = 'BASE TABLE' AND t.table_schema NOT IN {_SYSTEM_SCHEMAS}
ORDER BY t.table_schema, t.table_name
"""

_ROUTINES_SQL = f"""
SELECT n.nspname || '.' || p.proname || '(' || pg_get_function_identity_arguments(p.oid) || ')'
FROM pg_proc p
JOIN pg_namespace n ON n.oid = p.pronamespace
WHERE p.prokind = %s AND n.nspname NOT IN {_SYSTEM_SCHEMAS}
  AND NOT EXISTS (SELECT 1 FROM pg_depend d WHERE d.objid = p.oid AND d.deptype = 'e')
ORDER BY 1
"""


def connect_kwargs(connection_string: str) -> dict[str, Any]:
    """
    psycopg2 keyword arguments for a connection string.

    libpq keyword DSNs (``host=db dbname=app``) and URLs pass through as
    ``dsn``; ADO-style ``Host=db;Database=app;Username=u`` is translated.
    """
    raw = (connection_string or "").strip()
    if is_url(raw) or ";" not in raw:
        return {"dsn": raw}
    params = parse_connection_string(raw)
    kwargs = {
        "host": pick(params, HOST_KEYS),
        "port": pick(params, PORT_KEYS),
        "dbname": pick(params, DATABASE_KEYS),
        "user": pick(params, USER_KEYS),
        "password": pick(params, PASSWORD_KEYS),
        "sslmode": pick(params, ("sslmode", "ssl mode")),
    }
    if kwargs["sslmode"]:
        kwargs["sslmode"] = kwargs["sslmode"].lower()
    return {k: v for k, v in kwargs.items() if v}


def _copy_value(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "\\x" + bytes(value).hex()
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return value


class PostgresProvider(Provider):
    """Capability set for Postgres and its wire-compatible variants."""

    paramstyle = "%s"
    table_statistics = True

    def _connect(self, connection_string: str) -> Any:
        import psycopg2

        return psycopg2.connect(
            connect_timeout=CONFIG.drivers.connect_timeout,
            **connect_kwargs(connection_string),
        )

    def _prepare_for_statement(self, conn: Any) -> None:
        # VACUUM and CREATE DATABASE refuse to run inside a transaction block.
        conn.autocommit = True

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def list_tables(
        self, connection_string: str, cancel: threading.Event | None = None
    ) -> list[TableDescriptor]:
        sql = _TABLES_SQL if self.dialect.catalog_statistics else _INFORMATION_SCHEMA_TABLES_SQL
        # The queries carry literal %% for psycopg2; bind an empty tuple so
        # they are unescaped consistently.
        return self._descriptors(self._query(connection_string, sql, params=(), cancel=cancel))

    def list_views(self, connection_string: str, cancel: threading.Event | None = None) -> list[str]:
        return self._names(
            connection_string,
            "SELECT schemaname || '.' || viewname FROM pg_views "
            f"WHERE schemaname NOT IN {_SYSTEM_SCHEMAS} ORDER BY 1",
            cancel=cancel,
        )

    def get_view_definition(
        self, connection_string: str, schema: str, name: str, cancel: threading.Event | None = None
    ) -> str:
        qualified = self.dialect.qualify(schema, name)
        body = self._definition(
            connection_string,
            "SELECT pg_get_viewdef(to_regclass(%s), true)",
            (qualified,),
            cancel=cancel,
        )
        if not body:
            return placeholder("not found", "view", f"{schema}.{name}")
        return f"CREATE OR REPLACE VIEW {qualified} AS\n{body.rstrip().rstrip(';')};"

    def _routines(self, connection_string: str, kind: str, cancel: threading.Event | None) -> list[str]:
        rows = self._query(connection_string, _ROUTINES_SQL, params=(kind,), cancel=cancel)
        return [r[0] for r in rows]

    def _routine_definition(
        self, connection_string: str, signature: str, construct: str, cancel: threading.Event | None
    ) -> str:
        body = self._definition(
            connection_string,
            "SELECT pg_get_functiondef(to_regprocedure(%s))",
            (signature,),
            cancel=cancel,
        )
        return body or placeholder("not found", construct, signature)

    def list_functions(self, connection_string: str, cancel: threading.Event | None = None) -> list[str]:
        return self._routines(connection_string, "f", cancel)

    def get_function_definition(
        self, connection_string: str, signature: str, cancel: threading.Event | None = None
    ) -> str:
        return self._routine_definition(connection_string, signature, "function", cancel)

    def list_procedures(self, connection_string: str, cancel: threading.Event | None = None) -> list[str]:
        return self._routines(connection_string, "p", cancel)

    def get_procedure_definition(
        self, connection_string: str, signature: str, cancel: threading.Event | None = None
    ) -> str:
        return self._routine_definition(connection_string, signature, "procedure", cancel)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def _all_statistics_sql(self) -> str | None:
        return "VACUUM ANALYZE;"

    def _table_statistics_sql(self, schema: str, table: str) -> str | None:
        return f"ANALYZE {self.dialect.qualify(schema, table)};"

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    def _select_sql(self, connection_string: str, schema: str, table: str) -> str:
        rows = self._query(
            connection_string,
            "SELECT a.attname, format_type(a.atttypid, a.atttypmod) "
            "FROM pg_attribute a "
            "WHERE a.attrelid = to_regclass(%s) AND a.attnum > 0 AND NOT a.attisdropped "
            "ORDER BY a.attnum",
            params=(self.dialect.qualify(schema, table),),
        )
        if not rows:
            return super()._select_sql(connection_string, schema, table)
        select_list = []
        for name, type_name in rows:
            quoted = self.dialect.quote(name)
            if type_name in _TEXT_CAST_TYPES:
                select_list.append(f"{quoted}::text AS {quoted}")
            else:
                select_list.append(quoted)
        return f"SELECT {', '.join(select_list)} FROM {self.dialect.qualify(schema, table)}"

    def _stream_cursor(self, conn: Any) -> Any:
        return conn.cursor(name=f"dbmigrator_{uuid.uuid4().hex[:12]}")

    # ------------------------------------------------------------------
    # Bulk load
    # ------------------------------------------------------------------

    def _bulk_load(
        self,
        conn: Any,
        schema: str,
        table: str,
        columns: Sequence[str],
        rows: Sequence[Row],
        cancel: threading.Event | None,
    ) -> int:
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_NOTNULL, lineterminator="\n")
        for row in rows:
            writer.writerow([_copy_value(v) for v in row])
        buffer.seek(0)

        cols = ", ".join(self.dialect.quote(c) for c in columns)
        copy_sql = (
            f"COPY {self.dialect.qualify(schema, table)} ({cols}) "
            "FROM STDIN WITH (FORMAT csv)"
        )
        cursor = conn.cursor()
        try:
            cursor.copy_expert(copy_sql, buffer)
        finally:
            cursor.close()
        return len(rows)
