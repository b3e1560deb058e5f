"""
core/introspector.py
--------------------
Column discovery for source tables.

Each dialect family answers with a single aggregate query that returns one
value: every column of the table, in ordinal order, encoded as
``name|type|nullable|length|precision|scale`` entries joined by ``;;``.
One round trip per table regardless of width.

Design Decisions:
    * Query text is built here, executed through the provider's
      ``execute_scalar`` and parsed here, so providers stay free of
      column-shape knowledge.
    * Parsing is lenient: unparseable numbers become 0, a missing nullable
      flag means nullable, entries without a name are dropped.
"""
from __future__ import annotations

import threading
from typing import Callable, TYPE_CHECKING

from core.dialects import Dialect, DialectFamily
from core.errors import DatabaseConnectionError, DatabaseError, IntrospectionError
from logger import get_logger
from models.migration import SourceColumn

if TYPE_CHECKING:
    from providers.base import Provider

log = get_logger(__name__)

FIELD_SEPARATOR = "|"
COLUMN_SEPARATOR = ";;"


def _postgres(d: Dialect, schema: str, table: str) -> str:
    return (
        "SELECT string_agg(concat_ws('|', column_name, data_type, is_nullable, "
        "coalesce(character_maximum_length::text, ''), "
        "coalesce(numeric_precision::text, ''), "
        "coalesce(numeric_scale::text, '')), ';;' ORDER BY ordinal_position) "
        "FROM information_schema.columns "
        f"WHERE table_schema = {d.literal(schema)} AND table_name = {d.literal(table)}"
    )


def _sqlserver(d: Dialect, schema: str, table: str) -> str:
    # max_length is in bytes; n-types store two bytes per character.
    object_name = d.literal(d.qualify(schema, table))
    return (
        "SELECT STUFF((SELECT ';;' + c.name + '|' + t.name + '|' + "
        "CASE WHEN c.is_nullable = 1 THEN 'YES' ELSE 'NO' END + '|' + "
        "CAST(CASE WHEN c.max_length = -1 THEN -1 "
        "WHEN t.name IN ('nvarchar', 'nchar') THEN c.max_length / 2 "
        "ELSE c.max_length END AS varchar(11)) + '|' + "
        "CAST(c.precision AS varchar(11)) + '|' + CAST(c.scale AS varchar(11)) "
        "FROM sys.columns c "
        "JOIN sys.types t ON t.user_type_id = c.system_type_id "
        f"WHERE c.object_id = OBJECT_ID(N{object_name}) "
        "ORDER BY c.column_id "
        "FOR XML PATH(''), TYPE).value('.', 'nvarchar(max)'), 1, 2, '')"
    )


def _mysql(d: Dialect, schema: str, table: str) -> str:
    return (
        "SELECT GROUP_CONCAT(CONCAT_WS('|', COLUMN_NAME, DATA_TYPE, IS_NULLABLE, "
        "IFNULL(CHARACTER_MAXIMUM_LENGTH, ''), IFNULL(NUMERIC_PRECISION, ''), "
        "IFNULL(NUMERIC_SCALE, '')) ORDER BY ORDINAL_POSITION SEPARATOR ';;') "
        "FROM information_schema.COLUMNS "
        f"WHERE TABLE_SCHEMA = {d.literal(schema)} AND TABLE_NAME = {d.literal(table)}"
    )


def _oracle(d: Dialect, schema: str, table: str) -> str:
    return (
        "SELECT LISTAGG(COLUMN_NAME || '|' || DATA_TYPE || '|' || "
        "CASE NULLABLE WHEN 'Y' THEN 'YES' ELSE 'NO' END || '|' || "
        "NVL(TO_CHAR(CHAR_LENGTH), '') || '|' || NVL(TO_CHAR(DATA_PRECISION), '') || '|' || "
        "NVL(TO_CHAR(DATA_SCALE), ''), ';;') WITHIN GROUP (ORDER BY COLUMN_ID) "
        "FROM ALL_TAB_COLUMNS "
        f"WHERE OWNER = {d.literal(schema)} AND TABLE_NAME = {d.literal(table)}"
    )


def _db2(d: Dialect, schema: str, table: str) -> str:
    # LENGTH is the character length for strings and the precision for decimals.
    return (
        "SELECT LISTAGG(RTRIM(COLNAME) || '|' || RTRIM(TYPENAME) || '|' || "
        "CASE NULLS WHEN 'Y' THEN 'YES' ELSE 'NO' END || '|' || "
        "VARCHAR(LENGTH) || '|' || VARCHAR(LENGTH) || '|' || VARCHAR(SCALE), ';;') "
        "WITHIN GROUP (ORDER BY COLNO) "
        "FROM SYSCAT.COLUMNS "
        f"WHERE TABSCHEMA = {d.literal(schema)} AND TABNAME = {d.literal(table)}"
    )


def _spanner(d: Dialect, schema: str, table: str) -> str:
    return (
        "SELECT STRING_AGG(CONCAT(COLUMN_NAME, '|', SPANNER_TYPE, '|', IS_NULLABLE, '|||'), "
        "';;' ORDER BY ORDINAL_POSITION) "
        "FROM INFORMATION_SCHEMA.COLUMNS "
        f"WHERE TABLE_SCHEMA = '' AND TABLE_NAME = {d.literal(table)}"
    )


def _odbc(d: Dialect, schema: str, table: str) -> str:
    return (
        "SELECT STRING_AGG(COLUMN_NAME || '|' || DATA_TYPE || '|' || IS_NULLABLE || '|' || "
        "COALESCE(CAST(CHARACTER_MAXIMUM_LENGTH AS VARCHAR(11)), '') || '|' || "
        "COALESCE(CAST(NUMERIC_PRECISION AS VARCHAR(11)), '') || '|' || "
        "COALESCE(CAST(NUMERIC_SCALE AS VARCHAR(11)), ''), ';;') "
        "FROM INFORMATION_SCHEMA.COLUMNS "
        f"WHERE TABLE_SCHEMA = {d.literal(schema)} AND TABLE_NAME = {d.literal(table)}"
    )


_COLUMN_QUERIES: dict[DialectFamily, Callable[[Dialect, str, str], str]] = {
    DialectFamily.POSTGRES: _postgres,
    DialectFamily.SQLSERVER: _sqlserver,
    DialectFamily.MYSQL: _mysql,
    DialectFamily.ORACLE: _oracle,
    DialectFamily.DB2: _db2,
    DialectFamily.SPANNER: _spanner,
    DialectFamily.ODBC: _odbc,
}


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------

def build_columns_query(dialect: Dialect, schema: str, table: str) -> str:
    """Aggregate column query for ``schema.table``, case-folded as the catalog needs."""
    return _COLUMN_QUERIES[dialect.family](
        dialect, dialect.catalog_name(schema), dialect.catalog_name(table)
    )


def _to_int(text: str) -> int:
    try:
        return int(text.strip())
    except ValueError:
        return 0


def parse_columns(blob: str | None) -> list[SourceColumn]:
    """
    Decode the aggregate string into ordered ``SourceColumn`` values.

    Example::

        parse_columns("id|integer|NO|||;;name|varchar|YES|80||")
            →  [SourceColumn("id", "integer", False, 0, 0, 0),
                SourceColumn("name", "varchar", True, 80, 0, 0)]
    """
    columns: list[SourceColumn] = []
    if not blob:
        return columns
    for entry in blob.split(COLUMN_SEPARATOR):
        if not entry:
            continue
        parts = entry.split(FIELD_SEPARATOR)
        name = parts[0].strip()
        if not name:
            continue
        parts += [""] * (6 - len(parts))
        nullable_flag = parts[2].strip() or "YES"
        columns.append(
            SourceColumn(
                name=name,
                native_type=parts[1].strip(),
                nullable=nullable_flag.upper() == "YES",
                length=_to_int(parts[3]),
                precision=_to_int(parts[4]),
                scale=_to_int(parts[5]),
            )
        )
    return columns


def get_source_columns(
    provider: "Provider",
    connection_string: str,
    schema: str,
    table: str,
    cancel: threading.Event | None = None,
) -> list[SourceColumn]:
    """
    Introspect the columns of one source table.

    Raises:
        IntrospectionError: If the metadata query fails.
    """
    sql = build_columns_query(provider.dialect, schema, table)
    try:
        blob = provider.execute_scalar(connection_string, sql, cancel=cancel)
    except DatabaseConnectionError:
        raise
    except DatabaseError as exc:
        raise IntrospectionError(
            f"Column discovery for {schema}.{table} failed: {exc}"
        ) from exc
    columns = parse_columns(blob)
    log.debug("Discovered %d columns for %s.%s", len(columns), schema, table)
    return columns
