"""
core/type_mapper.py
-------------------
Cross-dialect column type mapping.

``map_type`` works in two steps:
    1. ``classify`` reduces a source engine's native type string to a
       semantic ``TypeCategory`` by keyword matching.
    2. The category is rendered as the target dialect's closest native
       type, using length/precision/scale when the source reported them.

Design Decision:
    Pure functions with no side effects make this module trivially testable.
    Keyword lists and per-family renderings are kept as data; the order of
    ``_KEYWORDS`` is significant because native names overlap
    ("datetime" contains "time", "bigint" contains "int").
"""
from __future__ import annotations

from enum import Enum

from core.dialects import Dialect, DialectFamily


class TypeCategory(str, Enum):
    BOOL = "bool"
    UUID = "uuid"
    JSON = "json"
    TIMESTAMP = "timestamp"
    DATE = "date"
    TIME = "time"
    FLOAT = "float"
    BINARY = "binary"
    BIGINT = "bigint"
    SMALLINT = "smallint"
    INT = "int"
    DECIMAL = "decimal"
    TEXT = "text"
    VARCHAR = "varchar"
    OTHER = "other"


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------
_BOOL_NAMES = frozenset({"boolean", "bool", "bit"})

# Checked in order after the exact-match categories; first hit wins.
_KEYWORDS: tuple[tuple[TypeCategory, tuple[str, ...]], ...] = (
    (TypeCategory.UUID,      ("uuid", "uniqueidentifier")),
    (TypeCategory.JSON,      ("json",)),
    (TypeCategory.TIMESTAMP, ("timestamp", "datetime")),
    (TypeCategory.FLOAT,     ("float", "double", "real")),
    (TypeCategory.BINARY,    ("binary", "blob", "bytea", "bytes", "raw", "image")),
    (TypeCategory.BIGINT,    ("bigint", "int8", "int64")),
    (TypeCategory.SMALLINT,  ("smallint", "tinyint", "int2")),
)
_INT_LOOKALIKES = ("interval", "point")
_DECIMAL_KEYWORDS = ("numeric", "decimal", "number", "money")
_TEXT_KEYWORDS = ("text", "clob", "string", "xml")


def classify(native_type: str) -> TypeCategory:
    """
    Map a native type name onto a semantic category.

    Examples::

        classify("character varying")            →  TypeCategory.VARCHAR
        classify("timestamp without time zone")  →  TypeCategory.TIMESTAMP
        classify("datetime2")                    →  TypeCategory.TIMESTAMP
        classify("interval")                     →  TypeCategory.OTHER
    """
    t = (native_type or "").strip().lower()
    if not t or t.startswith("array") or t.endswith("[]"):
        return TypeCategory.OTHER
    if t in _BOOL_NAMES:
        return TypeCategory.BOOL

    for category, keywords in _KEYWORDS[:3]:
        if any(k in t for k in keywords):
            return category
    if t == "date":
        return TypeCategory.DATE
    if t.startswith("time"):
        return TypeCategory.TIME
    for category, keywords in _KEYWORDS[3:]:
        if any(k in t for k in keywords):
            return category

    if "int" in t and not any(k in t for k in _INT_LOOKALIKES):
        return TypeCategory.INT
    if any(k in t for k in _DECIMAL_KEYWORDS):
        return TypeCategory.DECIMAL
    if any(k in t for k in _TEXT_KEYWORDS):
        return TypeCategory.TEXT
    if "char" in t:
        return TypeCategory.VARCHAR
    return TypeCategory.OTHER


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------
# Fixed renderings.  TEXT doubles as the fallback for OTHER.
_FIXED: dict[DialectFamily, dict[TypeCategory, str]] = {
    DialectFamily.SQLSERVER: {
        TypeCategory.BOOL: "bit",
        TypeCategory.UUID: "uniqueidentifier",
        TypeCategory.BIGINT: "bigint",
        TypeCategory.INT: "int",
        TypeCategory.SMALLINT: "smallint",
        TypeCategory.FLOAT: "float",
        TypeCategory.DATE: "date",
        TypeCategory.TIMESTAMP: "datetime2",
        TypeCategory.TIME: "time",
        TypeCategory.BINARY: "varbinary(max)",
        TypeCategory.TEXT: "nvarchar(max)",
        TypeCategory.JSON: "nvarchar(max)",
    },
    DialectFamily.POSTGRES: {
        TypeCategory.BOOL: "boolean",
        TypeCategory.UUID: "uuid",
        TypeCategory.BIGINT: "bigint",
        TypeCategory.INT: "integer",
        TypeCategory.SMALLINT: "smallint",
        TypeCategory.FLOAT: "double precision",
        TypeCategory.DATE: "date",
        TypeCategory.TIMESTAMP: "timestamp",
        TypeCategory.TIME: "time",
        TypeCategory.BINARY: "bytea",
        TypeCategory.TEXT: "text",
        TypeCategory.JSON: "jsonb",
    },
    DialectFamily.MYSQL: {
        TypeCategory.BOOL: "tinyint(1)",
        TypeCategory.UUID: "char(36)",
        TypeCategory.BIGINT: "bigint",
        TypeCategory.INT: "int",
        TypeCategory.SMALLINT: "smallint",
        TypeCategory.FLOAT: "double",
        TypeCategory.DATE: "date",
        TypeCategory.TIMESTAMP: "datetime(6)",
        TypeCategory.TIME: "time",
        TypeCategory.BINARY: "longblob",
        TypeCategory.TEXT: "longtext",
        TypeCategory.JSON: "json",
    },
    DialectFamily.ORACLE: {
        TypeCategory.BOOL: "NUMBER(1)",
        TypeCategory.UUID: "VARCHAR2(36)",
        TypeCategory.BIGINT: "NUMBER(19)",
        TypeCategory.INT: "NUMBER(10)",
        TypeCategory.SMALLINT: "NUMBER(5)",
        TypeCategory.FLOAT: "BINARY_DOUBLE",
        TypeCategory.DATE: "DATE",
        TypeCategory.TIMESTAMP: "TIMESTAMP",
        TypeCategory.TIME: "VARCHAR2(16)",
        TypeCategory.BINARY: "BLOB",
        TypeCategory.TEXT: "CLOB",
        TypeCategory.JSON: "CLOB",
    },
    DialectFamily.DB2: {
        TypeCategory.BOOL: "SMALLINT",
        TypeCategory.UUID: "CHAR(36)",
        TypeCategory.BIGINT: "BIGINT",
        TypeCategory.INT: "INTEGER",
        TypeCategory.SMALLINT: "SMALLINT",
        TypeCategory.FLOAT: "DOUBLE",
        TypeCategory.DATE: "DATE",
        TypeCategory.TIMESTAMP: "TIMESTAMP",
        TypeCategory.TIME: "TIME",
        TypeCategory.BINARY: "BLOB",
        TypeCategory.TEXT: "CLOB",
        TypeCategory.JSON: "CLOB",
    },
    DialectFamily.SPANNER: {
        TypeCategory.BOOL: "BOOL",
        TypeCategory.UUID: "STRING(36)",
        TypeCategory.BIGINT: "INT64",
        TypeCategory.INT: "INT64",
        TypeCategory.SMALLINT: "INT64",
        TypeCategory.FLOAT: "FLOAT64",
        TypeCategory.DATE: "DATE",
        TypeCategory.TIMESTAMP: "TIMESTAMP",
        TypeCategory.TIME: "STRING(16)",
        TypeCategory.BINARY: "BYTES(MAX)",
        TypeCategory.TEXT: "STRING(MAX)",
        TypeCategory.JSON: "JSON",
    },
}
# Generic ODBC targets speak the SQL Server type vocabulary.
_FIXED[DialectFamily.ODBC] = _FIXED[DialectFamily.SQLSERVER]

# (template with precision/scale, default when the source reported none)
_DECIMAL: dict[DialectFamily, tuple[str, str]] = {
    DialectFamily.SQLSERVER: ("decimal({p},{s})", "decimal(38,9)"),
    DialectFamily.ODBC:      ("decimal({p},{s})", "decimal(38,9)"),
    DialectFamily.POSTGRES:  ("numeric({p},{s})", "numeric"),
    DialectFamily.MYSQL:     ("decimal({p},{s})", "decimal(38,9)"),
    DialectFamily.ORACLE:    ("NUMBER({p},{s})", "NUMBER"),
    DialectFamily.DB2:       ("DECIMAL({p},{s})", "DECIMAL(31,9)"),
    DialectFamily.SPANNER:   ("NUMERIC", "NUMERIC"),
}

# (template with length, default when the source reported none)
_VARCHAR: dict[DialectFamily, tuple[str, str]] = {
    DialectFamily.SQLSERVER: ("nvarchar({n})", "nvarchar(255)"),
    DialectFamily.ODBC:      ("nvarchar({n})", "nvarchar(255)"),
    DialectFamily.POSTGRES:  ("varchar({n})", "varchar(255)"),
    DialectFamily.MYSQL:     ("varchar({n})", "varchar(255)"),
    DialectFamily.ORACLE:    ("VARCHAR2({n})", "VARCHAR2(255)"),
    DialectFamily.DB2:       ("VARCHAR({n})", "VARCHAR(255)"),
    DialectFamily.SPANNER:   ("STRING({n})", "STRING(MAX)"),
}


def _render_decimal(precision: int, scale: int, target: Dialect) -> str:
    template, default = _DECIMAL[target.family]
    if precision <= 0:
        return default
    p = min(precision, target.max_precision)
    s = min(max(scale, 0), p)
    return template.format(p=p, s=s)


def _render_varchar(length: int, target: Dialect) -> str:
    template, default = _VARCHAR[target.family]
    if length == 0:
        return default
    if length < 0 or length > target.max_varchar:
        # Unbounded source column (e.g. nvarchar(max)) or wider than the
        # target allows for a bounded type.
        return _FIXED[target.family][TypeCategory.TEXT]
    return template.format(n=length)


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------

def map_type(
    native_type: str,
    length: int,
    precision: int,
    scale: int,
    target: Dialect,
) -> str:
    """
    Return the target dialect's type literal for a source column.

    Args:
        native_type: Type name as reported by the source catalog.
        length:      Character length (0 when unknown, negative for "max").
        precision:   Numeric precision (0 when unknown).
        scale:       Numeric scale (0 when unknown).
        target:      Target dialect record.

    Examples::

        map_type("character varying", 80, 0, 0, SQLSERVER)  →  "nvarchar(80)"
        map_type("numeric", 0, 12, 2, MYSQL)                →  "decimal(12,2)"
        map_type("geometry", 0, 0, 0, POSTGRES)             →  "text"
    """
    category = classify(native_type)
    if category == TypeCategory.DECIMAL:
        return _render_decimal(precision, scale, target)
    if category == TypeCategory.VARCHAR:
        return _render_varchar(length, target)
    fixed = _FIXED[target.family]
    return fixed.get(category, fixed[TypeCategory.TEXT])
