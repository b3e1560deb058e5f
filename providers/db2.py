"""
providers/db2.py
----------------
IBM Db2 provider over the Db2 ODBC/CLI driver via pyodbc.

Catalog estimates come from SYSCAT.TABLES (CARD is -1 until RUNSTATS has
run, which is reported as 0).  View and routine DDL is the creating
statement text Db2 keeps in SYSCAT.VIEWS / SYSCAT.ROUTINES.
"""
from __future__ import annotations

import threading

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
    to_odbc,
)
from models.migration import TableDescriptor
from providers.base import placeholder
from providers.odbc import OdbcProvider

_SYSTEM_SCHEMAS = (
    "('SYSIBM', 'SYSCAT', 'SYSSTAT', 'SYSFUN', 'SYSPROC', 'SYSTOOLS', "
    "'SYSIBMADM', 'SYSIBMINTERNAL', 'SYSIBMTS', 'SYSPUBLIC', 'NULLID', 'SQLJ')"
)

_TABLES_SQL = f"""
SELECT RTRIM(TABSCHEMA), TABNAME,
       CASE WHEN CARD < 0 THEN 0 ELSE CARD END, 0, COLCOUNT
FROM SYSCAT.TABLES
WHERE TYPE = 'T' AND TABSCHEMA NOT IN {_SYSTEM_SCHEMAS}
ORDER BY 3 DESC, 1, 2
"""


def db2_connection_string(connection_string: str) -> str:
    """ODBC string for the Db2 driver; strings naming a Driver/DSN pass through."""
    params = parse_connection_string(connection_string)
    if "driver" in params or "dsn" in params:
        return connection_string
    host, port = split_host_port(pick(params, HOST_KEYS))
    odbc = {
        "Driver": CONFIG.drivers.db2_odbc_driver,
        "Database": pick(params, DATABASE_KEYS, ""),
        "Hostname": host or "",
        "Port": pick(params, PORT_KEYS, port) or "50000",
        "Protocol": "TCPIP",
        "UID": pick(params, USER_KEYS, ""),
        "PWD": pick(params, PASSWORD_KEYS, ""),
    }
    return to_odbc({k: v for k, v in odbc.items() if v})


class Db2Provider(OdbcProvider):
    """Capability set for Db2 LUW."""

    fast_executemany = True
    table_statistics = True

    def _connection_string(self, connection_string: str) -> str:
        return db2_connection_string(connection_string)

    def list_tables(
        self, connection_string: str, cancel: threading.Event | None = None
    ) -> list[TableDescriptor]:
        return self._descriptors(self._query(connection_string, _TABLES_SQL, cancel=cancel))

    def list_views(self, connection_string: str, cancel: threading.Event | None = None) -> list[str]:
        return self._names(
            connection_string,
            "SELECT RTRIM(VIEWSCHEMA) || '.' || VIEWNAME FROM SYSCAT.VIEWS "
            f"WHERE VIEWSCHEMA NOT IN {_SYSTEM_SCHEMAS} ORDER BY 1",
            cancel=cancel,
        )

    def get_view_definition(
        self, connection_string: str, schema: str, name: str, cancel: threading.Event | None = None
    ) -> str:
        body = self._definition(
            connection_string,
            "SELECT TEXT FROM SYSCAT.VIEWS WHERE VIEWSCHEMA = ? AND VIEWNAME = ?",
            (schema, name),
            cancel=cancel,
        )
        return body or placeholder("not found", "view", f"{schema}.{name}")

    def _routines(self, connection_string: str, routine_type: str, cancel: threading.Event | None) -> list[str]:
        rows = self._query(
            connection_string,
            "SELECT RTRIM(ROUTINESCHEMA) || '.' || ROUTINENAME FROM SYSCAT.ROUTINES "
            f"WHERE ROUTINETYPE = ? AND ROUTINESCHEMA NOT IN {_SYSTEM_SCHEMAS} ORDER BY 1",
            (routine_type,),
            cancel=cancel,
        )
        return [r[0] for r in rows]

    def _routine_text(
        self, connection_string: str, signature: str, routine_type: str, construct: str,
        cancel: threading.Event | None,
    ) -> str:
        schema, _, name = signature.partition(".")
        body = self._definition(
            connection_string,
            "SELECT TEXT FROM SYSCAT.ROUTINES "
            "WHERE ROUTINESCHEMA = ? AND ROUTINENAME = ? AND ROUTINETYPE = ? "
            "FETCH FIRST 1 ROW ONLY",
            (schema, name, routine_type),
            cancel=cancel,
        )
        return body or placeholder("not found", construct, signature)

    def list_functions(self, connection_string: str, cancel: threading.Event | None = None) -> list[str]:
        return self._routines(connection_string, "F", cancel)

    def get_function_definition(
        self, connection_string: str, signature: str, cancel: threading.Event | None = None
    ) -> str:
        return self._routine_text(connection_string, signature, "F", "function", cancel)

    def list_procedures(self, connection_string: str, cancel: threading.Event | None = None) -> list[str]:
        return self._routines(connection_string, "P", cancel)

    def get_procedure_definition(
        self, connection_string: str, signature: str, cancel: threading.Event | None = None
    ) -> str:
        return self._routine_text(connection_string, signature, "P", "procedure", cancel)

    def _table_statistics_sql(self, schema: str, table: str) -> str | None:
        command = f"RUNSTATS ON TABLE {self.dialect.qualify(schema, table)} AND INDEXES ALL"
        return f"CALL SYSPROC.ADMIN_CMD({self.dialect.literal(command)})"
