"""
core/dialects.py
----------------
Dialect catalog: the supported engine names and their SQL surface rules.

Design Decisions:
    * A dialect is a frozen ``Dialect`` value, not a class.  Wire-compatible
      variants (MariaDB, Aurora, Hyperscale, ...) are copies of the base
      record with only the name replaced.  CockroachDB differs from Postgres
      in one flag (``catalog_statistics``) that switches its table listing.
    * Every rule the other modules need (quoting, qualification, literal
      escaping, catalog case folding, statement terminator, type limits)
      lives on the record so callers look the dialect up once and never
      switch on name strings.
    * Lookup is case-insensitive and fails fast with
      ``UnknownProviderError`` before any connection is attempted.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from core.errors import UnknownProviderError


class DialectFamily(str, Enum):
    """Shared implementation a dialect is served by."""
    POSTGRES = "postgres"
    SQLSERVER = "sqlserver"
    MYSQL = "mysql"
    ORACLE = "oracle"
    DB2 = "db2"
    SPANNER = "spanner"
    ODBC = "odbc"


@dataclass(frozen=True)
class Dialect:
    """
    Per-dialect configuration record.

    Attributes:
        name:               Canonical catalog name reported back to callers.
        family:             Which provider implementation serves it.
        quote_open:         Opening identifier quote.
        quote_close:        Closing identifier quote.
        quote_escape:       Replacement for ``quote_close`` inside a name.
        supports_schemas:   False where names are never schema-qualified.
        default_schema:     Schema assumed for bare table names.
        uppercase_catalog:  Catalog stores unquoted names in upper case.
        explicit_null:      Column clauses spell out ``NULL`` for nullable.
        terminator:         Appended to generated DDL statements.
        max_varchar:        Longest bounded character type before text.
        max_precision:      Largest decimal precision the engine accepts.
        catalog_statistics: Row/size estimates are available in the catalog.
        backslash_literals: String literals escape with backslashes.
    """
    name: str
    family: DialectFamily
    quote_open: str
    quote_close: str
    quote_escape: str
    supports_schemas: bool = True
    default_schema: str = "public"
    uppercase_catalog: bool = False
    explicit_null: bool = True
    terminator: str = ";"
    max_varchar: int = 10485760
    max_precision: int = 38
    catalog_statistics: bool = True
    backslash_literals: bool = False

    def quote(self, identifier: str) -> str:
        """Quote one identifier, escaping embedded closing quotes."""
        escaped = identifier.replace(self.quote_close, self.quote_escape)
        return f"{self.quote_open}{escaped}{self.quote_close}"

    def qualify(self, schema: str | None, table: str) -> str:
        """Quoted ``schema.table``, or just the table where schemas do not apply."""
        if not self.supports_schemas or not schema:
            return self.quote(table)
        return f"{self.quote(schema)}.{self.quote(table)}"

    def qualified_name(self, schema: str | None, table: str) -> str:
        """Unquoted display name used in results and warnings."""
        if not self.supports_schemas or not schema:
            return table
        return f"{schema}.{table}"

    def literal(self, value: str) -> str:
        """Single-quoted string literal."""
        if self.backslash_literals:
            return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"
        return "'" + value.replace("'", "''") + "'"

    def catalog_name(self, identifier: str) -> str:
        """Fold a name the way the engine's catalog stores it."""
        return identifier.upper() if self.uppercase_catalog else identifier


POSTGRES = Dialect(
    name="Postgres",
    family=DialectFamily.POSTGRES,
    quote_open='"', quote_close='"', quote_escape='""',
    max_precision=1000,
)
COCKROACHDB = replace(POSTGRES, name="CockroachDB", catalog_statistics=False)

SQLSERVER = Dialect(
    name="SqlServer",
    family=DialectFamily.SQLSERVER,
    quote_open="[", quote_close="]", quote_escape="]]",
    default_schema="dbo",
    max_varchar=4000,
)

MYSQL = Dialect(
    name="MySql",
    family=DialectFamily.MYSQL,
    quote_open="`", quote_close="`", quote_escape="``",
    max_varchar=16383,
    max_precision=65,
)

ORACLE = Dialect(
    name="Oracle",
    family=DialectFamily.ORACLE,
    quote_open='"', quote_close='"', quote_escape='""',
    uppercase_catalog=True,
    terminator="",
    max_varchar=4000,
)

DB2 = Dialect(
    name="Db2",
    family=DialectFamily.DB2,
    quote_open='"', quote_close='"', quote_escape='""',
    uppercase_catalog=True,
    explicit_null=False,
    terminator="",
    max_varchar=32672,
    max_precision=31,
)

SPANNER = Dialect(
    name="GoogleCloudSpanner",
    family=DialectFamily.SPANNER,
    quote_open="`", quote_close="`", quote_escape="\\`",
    supports_schemas=False,
    default_schema="",
    backslash_literals=True,
    explicit_null=False,
    terminator="",
    max_varchar=2621440,
)

PERVASIVE = Dialect(
    name="Pervasive",
    family=DialectFamily.ODBC,
    quote_open="[", quote_close="]", quote_escape="]]",
    catalog_statistics=False,
    max_varchar=8000,
)

_CATALOG: dict[str, Dialect] = {
    d.name: d
    for d in (
        POSTGRES,
        replace(POSTGRES, name="AmazonAuroraPostgres"),
        replace(POSTGRES, name="Hyperscale"),
        COCKROACHDB,
        SQLSERVER,
        replace(SQLSERVER, name="AzureSQL"),
        MYSQL,
        replace(MYSQL, name="MariaDB"),
        replace(MYSQL, name="Percona"),
        replace(MYSQL, name="TiDB"),
        replace(MYSQL, name="AmazonAuroraMySql"),
        ORACLE,
        DB2,
        SPANNER,
        PERVASIVE,
    )
}

_ALIASES: dict[str, str] = {
    "Azure SQL": "AzureSQL",
    "Aurora MySQL": "AmazonAuroraMySql",
    "Aurora Postgres": "AmazonAuroraPostgres",
}

_LOOKUP: dict[str, Dialect] = {name.casefold(): d for name, d in _CATALOG.items()}
_LOOKUP.update({alias.casefold(): _CATALOG[target] for alias, target in _ALIASES.items()})


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------

def list_dialects() -> list[str]:
    """Canonical names of every supported dialect, in catalog order."""
    return list(_CATALOG)


def resolve_dialect(name: str) -> Dialect:
    """
    Look up a dialect by name or alias (case-insensitive).

    Raises:
        UnknownProviderError: If the name is not registered.
    """
    dialect = _LOOKUP.get((name or "").strip().casefold())
    if dialect is None:
        raise UnknownProviderError(name)
    return dialect


def split_qualified_name(name: str, dialect: Dialect) -> tuple[str, str]:
    """
    Split ``schema.table`` on the first dot.

    Bare names get the dialect's default schema.

    Example::

        split_qualified_name("sales.orders", POSTGRES)   # ("sales", "orders")
        split_qualified_name("orders", SQLSERVER)        # ("dbo", "orders")
    """
    name = name.strip()
    if "." in name:
        schema, table = name.split(".", 1)
        return schema, table
    return dialect.default_schema, name
