"""
tests/test_ddl.py
-----------------
Unit tests for core/ddl.py.
Run with: python -m pytest tests/
"""
from __future__ import annotations

import pytest

from core.ddl import build_count_query, build_create_schema, build_create_table, build_drop_table
from core.dialects import DB2, MYSQL, ORACLE, PERVASIVE, POSTGRES, SPANNER, SQLSERVER
from core.errors import DdlSynthesisError, NoColumnsDiscoveredError
from models.migration import SourceColumn

COLUMNS = [
    SourceColumn("id", "integer", False),
    SourceColumn("name", "varchar", True, 80),
]


class TestBuildCreateTable:
    def test_postgres(self) -> None:
        assert build_create_table(COLUMNS, POSTGRES, "public", "users") == (
            'CREATE TABLE "public"."users" (\n'
            '  "id" integer NOT NULL,\n'
            '  "name" varchar(80) NULL\n'
            ");"
        )

    def test_sqlserver(self) -> None:
        assert build_create_table(COLUMNS, SQLSERVER, "dbo", "users") == (
            "CREATE TABLE [dbo].[users] (\n"
            "  [id] int NOT NULL,\n"
            "  [name] nvarchar(80) NULL\n"
            ");"
        )

    def test_mysql(self) -> None:
        sql = build_create_table(COLUMNS, MYSQL, "shop", "users")
        assert sql.startswith("CREATE TABLE `shop`.`users` (")
        assert "`name` varchar(80) NULL" in sql

    def test_oracle_has_no_terminator(self) -> None:
        sql = build_create_table(COLUMNS, ORACLE, "APP", "USERS")
        assert '"id" NUMBER(10) NOT NULL' in sql
        assert sql.endswith(")")

    def test_db2_omits_null_keyword(self) -> None:
        sql = build_create_table(COLUMNS, DB2, "APP", "USERS")
        assert '  "name" VARCHAR(80)\n)' in sql
        assert '"id" INTEGER NOT NULL' in sql

    def test_spanner_gets_primary_key_on_first_column(self) -> None:
        columns = [SourceColumn("id", "bigint", True), SourceColumn("name", "text", True)]
        assert build_create_table(columns, SPANNER, "public", "users") == (
            "CREATE TABLE `users` (\n"
            "  `id` INT64 NOT NULL,\n"
            "  `name` STRING(MAX)\n"
            ") PRIMARY KEY (`id`)"
        )

    def test_columns_keep_discovery_order(self) -> None:
        columns = [SourceColumn(n, "text") for n in ("z", "a", "m")]
        sql = build_create_table(columns, POSTGRES, "public", "t")
        assert sql.index('"z"') < sql.index('"a"') < sql.index('"m"')

    def test_no_constraints_are_emitted(self) -> None:
        sql = build_create_table(COLUMNS, POSTGRES, "public", "users")
        assert "PRIMARY KEY" not in sql
        assert "DEFAULT" not in sql

    def test_no_columns_raises(self) -> None:
        with pytest.raises(NoColumnsDiscoveredError) as exc_info:
            build_create_table([], POSTGRES, "public", "users")
        assert str(exc_info.value) == "No columns discovered for public.users on source."
        assert isinstance(exc_info.value, DdlSynthesisError)


class TestBuildDropTable:
    def test_postgres(self) -> None:
        assert build_drop_table(POSTGRES, "public", "t") == 'DROP TABLE IF EXISTS "public"."t" CASCADE;'

    def test_sqlserver(self) -> None:
        assert build_drop_table(SQLSERVER, "dbo", "t") == (
            "IF OBJECT_ID(N'[dbo].[t]', 'U') IS NOT NULL DROP TABLE [dbo].[t];"
        )

    def test_mysql(self) -> None:
        assert build_drop_table(MYSQL, "shop", "t") == "DROP TABLE IF EXISTS `shop`.`t`;"

    def test_oracle_swallows_missing_table_only(self) -> None:
        sql = build_drop_table(ORACLE, "APP", "T")
        assert "EXECUTE IMMEDIATE 'DROP TABLE \"APP\".\"T\" CASCADE CONSTRAINTS'" in sql
        assert "-942" in sql

    def test_db2_continue_handler(self) -> None:
        sql = build_drop_table(DB2, "APP", "T")
        assert "SQLSTATE '42704'" in sql

    def test_spanner(self) -> None:
        assert build_drop_table(SPANNER, "", "t") == "DROP TABLE `t`"

    def test_odbc(self) -> None:
        assert build_drop_table(PERVASIVE, "dbo", "t") == "DROP TABLE [dbo].[t]"


class TestBuildCreateSchema:
    def test_postgres(self) -> None:
        assert build_create_schema(POSTGRES, "sales") == 'CREATE SCHEMA IF NOT EXISTS "sales";'

    def test_mysql(self) -> None:
        assert build_create_schema(MYSQL, "sales") == "CREATE SCHEMA IF NOT EXISTS `sales`;"

    def test_sqlserver_is_guarded(self) -> None:
        sql = build_create_schema(SQLSERVER, "sales")
        assert "sys.schemas WHERE name = N'sales'" in sql
        assert "EXEC('CREATE SCHEMA [sales]')" in sql

    @pytest.mark.parametrize("dialect", [ORACLE, DB2, SPANNER, PERVASIVE])
    def test_not_applicable(self, dialect) -> None:
        assert build_create_schema(dialect, "sales") is None

    def test_empty_schema(self) -> None:
        assert build_create_schema(POSTGRES, "") is None


class TestBuildCountQuery:
    def test_postgres(self) -> None:
        assert build_count_query(POSTGRES, "public", "t") == 'SELECT COUNT(*)::bigint FROM "public"."t"'

    def test_sqlserver(self) -> None:
        assert build_count_query(SQLSERVER, "dbo", "t") == "SELECT COUNT_BIG(*) FROM [dbo].[t]"

    def test_spanner(self) -> None:
        assert build_count_query(SPANNER, "", "t") == "SELECT COUNT(*) FROM `t`"

    def test_oracle(self) -> None:
        assert build_count_query(ORACLE, "APP", "T") == 'SELECT COUNT(*) FROM "APP"."T"'
