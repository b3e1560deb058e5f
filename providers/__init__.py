"""
providers/__init__.py
---------------------
Provider registry: maps a dialect name to a ready-to-use provider.
"""
from __future__ import annotations

from core.dialects import DialectFamily, resolve_dialect
from providers.base import Provider
from providers.db2 import Db2Provider
from providers.mysql import MySqlProvider
from providers.odbc import OdbcProvider
from providers.oracle import OracleProvider
from providers.postgres import PostgresProvider
from providers.spanner import SpannerProvider
from providers.sqlserver import SqlServerProvider

_FAMILY_CLASSES: dict[DialectFamily, type[Provider]] = {
    DialectFamily.POSTGRES: PostgresProvider,
    DialectFamily.SQLSERVER: SqlServerProvider,
    DialectFamily.MYSQL: MySqlProvider,
    DialectFamily.ORACLE: OracleProvider,
    DialectFamily.DB2: Db2Provider,
    DialectFamily.SPANNER: SpannerProvider,
    DialectFamily.ODBC: OdbcProvider,
}


def get_provider(name: str) -> Provider:
    """
    Build the provider for a dialect name or alias.

    Raises:
        UnknownProviderError: If the name is not in the catalog.
    """
    dialect = resolve_dialect(name)
    return _FAMILY_CLASSES[dialect.family](dialect)


__all__ = [
    "Db2Provider",
    "MySqlProvider",
    "OdbcProvider",
    "OracleProvider",
    "PostgresProvider",
    "Provider",
    "SpannerProvider",
    "SqlServerProvider",
    "get_provider",
]
