"""
core/__init__.py
----------------
Catalog, type mapping, introspection and DDL building blocks.

The engine lives in ``core.migrator`` and is imported from there; it
depends on ``providers``, which in turn depends on this package.
"""
from core.dialects import Dialect, DialectFamily, list_dialects, resolve_dialect, split_qualified_name
from core.errors import (
    BulkLoadError,
    DatabaseConnectionError,
    DatabaseError,
    DdlSynthesisError,
    IntrospectionError,
    MigrationCancelledError,
    MigrationError,
    NoColumnsDiscoveredError,
    UnknownProviderError,
    UnsupportedOperationError,
)
from core.type_mapper import TypeCategory, classify, map_type
from core.ddl import build_count_query, build_create_schema, build_create_table, build_drop_table
from core.introspector import build_columns_query, get_source_columns, parse_columns

__all__ = [
    "Dialect",
    "DialectFamily",
    "list_dialects",
    "resolve_dialect",
    "split_qualified_name",
    "BulkLoadError",
    "DatabaseConnectionError",
    "DatabaseError",
    "DdlSynthesisError",
    "IntrospectionError",
    "MigrationCancelledError",
    "MigrationError",
    "NoColumnsDiscoveredError",
    "UnknownProviderError",
    "UnsupportedOperationError",
    "TypeCategory",
    "classify",
    "map_type",
    "build_count_query",
    "build_create_schema",
    "build_create_table",
    "build_drop_table",
    "build_columns_query",
    "get_source_columns",
    "parse_columns",
]
