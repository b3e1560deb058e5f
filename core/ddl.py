"""
core/ddl.py
-----------
Target DDL synthesis: CREATE/DROP TABLE, conditional CREATE SCHEMA and the
exact row-count query.

Design Decisions:
    * Pure functions; every identifier goes through ``Dialect.quote`` so
      DDL and queries always agree on quoting.
    * Tables are structurally minimal: column names, mapped types and
      nullability only.  No defaults, keys or indexes are carried over,
      except the primary key clause Spanner cannot create a table without.
    * Statements that must tolerate a missing table are wrapped in the
      engine's own guard (IF EXISTS, OBJECT_ID, PL/SQL handler, ...).
"""
from __future__ import annotations

from typing import Callable

from core.dialects import Dialect, DialectFamily
from core.errors import NoColumnsDiscoveredError
from core.type_mapper import map_type
from models.migration import SourceColumn


def _column_clause(column: SourceColumn, dialect: Dialect) -> str:
    col_type = map_type(
        column.native_type, column.length, column.precision, column.scale, dialect
    )
    if not column.nullable:
        null_clause = " NOT NULL"
    elif dialect.explicit_null:
        null_clause = " NULL"
    else:
        null_clause = ""
    return f"  {dialect.quote(column.name)} {col_type}{null_clause}"


def build_create_table(
    columns: list[SourceColumn],
    dialect: Dialect,
    schema: str,
    table: str,
) -> str:
    """
    Generate a ``CREATE TABLE`` statement for the target dialect.

    Args:
        columns: Source columns in ordinal order.
        dialect: Target dialect record.
        schema:  Target schema (ignored where the dialect has none).
        table:   Target table name (unquoted).

    Returns:
        The complete statement, terminated as the dialect's driver expects.

    Raises:
        NoColumnsDiscoveredError: If ``columns`` is empty.
    """
    if not columns:
        raise NoColumnsDiscoveredError(schema, table)

    keyed = dialect.family == DialectFamily.SPANNER
    if keyed:
        # The key column of a Spanner table cannot hold NULL.
        columns = [columns[0]._replace(nullable=False)] + list(columns[1:])

    body = ",\n".join(_column_clause(c, dialect) for c in columns)
    sql = f"CREATE TABLE {dialect.qualify(schema, table)} (\n{body}\n)"
    if keyed:
        sql += f" PRIMARY KEY ({dialect.quote(columns[0].name)})"
    return sql + dialect.terminator


def _pl_string(text: str) -> str:
    return text.replace("'", "''")


_DROP: dict[DialectFamily, Callable[[str], str]] = {
    DialectFamily.POSTGRES: lambda q: f"DROP TABLE IF EXISTS {q} CASCADE;",
    DialectFamily.SQLSERVER: lambda q: (
        f"IF OBJECT_ID(N'{_pl_string(q)}', 'U') IS NOT NULL DROP TABLE {q};"
    ),
    DialectFamily.MYSQL: lambda q: f"DROP TABLE IF EXISTS {q};",
    DialectFamily.ORACLE: lambda q: (
        f"BEGIN EXECUTE IMMEDIATE 'DROP TABLE {_pl_string(q)} CASCADE CONSTRAINTS'; "
        "EXCEPTION WHEN OTHERS THEN IF SQLCODE != -942 THEN RAISE; END IF; END;"
    ),
    DialectFamily.DB2: lambda q: (
        "BEGIN DECLARE CONTINUE HANDLER FOR SQLSTATE '42704' BEGIN END; "
        f"EXECUTE IMMEDIATE 'DROP TABLE {_pl_string(q)}'; END"
    ),
    DialectFamily.SPANNER: lambda q: f"DROP TABLE {q}",
    DialectFamily.ODBC: lambda q: f"DROP TABLE {q}",
}


def build_drop_table(dialect: Dialect, schema: str, table: str) -> str:
    """Dialect-specific ``DROP TABLE`` that tolerates a missing table where the engine can."""
    return _DROP[dialect.family](dialect.qualify(schema, table))


def build_create_schema(dialect: Dialect, schema: str) -> str | None:
    """
    Conditional schema creation, or ``None`` where the dialect has no
    separately creatable namespace (Oracle users, Db2, Spanner, ODBC).
    """
    if not schema or not dialect.supports_schemas:
        return None
    quoted = dialect.quote(schema)
    if dialect.family in (DialectFamily.POSTGRES, DialectFamily.MYSQL):
        return f"CREATE SCHEMA IF NOT EXISTS {quoted};"
    if dialect.family == DialectFamily.SQLSERVER:
        return (
            f"IF NOT EXISTS (SELECT 1 FROM sys.schemas WHERE name = N{dialect.literal(schema)}) "
            f"EXEC('CREATE SCHEMA {_pl_string(quoted)}');"
        )
    return None


def build_count_query(dialect: Dialect, schema: str, table: str) -> str:
    qualified = dialect.qualify(schema, table)
    if dialect.family == DialectFamily.POSTGRES:
        return f"SELECT COUNT(*)::bigint FROM {qualified}"
    if dialect.family == DialectFamily.SQLSERVER:
        return f"SELECT COUNT_BIG(*) FROM {qualified}"
    return f"SELECT COUNT(*) FROM {qualified}"
