"""
tests/test_providers.py
-----------------------
Unit tests for the provider registry and the per-dialect providers.

No database is needed: each provider's ``_connect`` is patched to return a
MagicMock connection, so the tests check the SQL and driver calls issued.
Run with: python -m pytest tests/
"""
from __future__ import annotations

import threading
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from config import CONFIG
from core.dialects import COCKROACHDB, DB2, MYSQL, ORACLE, PERVASIVE, POSTGRES, SPANNER, SQLSERVER
from core.errors import (
    BulkLoadError,
    DatabaseConnectionError,
    IntrospectionError,
    MigrationCancelledError,
    UnknownProviderError,
)
from models.migration import TableDescriptor
from providers import (
    Db2Provider,
    MySqlProvider,
    OdbcProvider,
    OracleProvider,
    PostgresProvider,
    SpannerProvider,
    SqlServerProvider,
    get_provider,
)
from providers.base import is_placeholder, placeholder


@pytest.fixture
def conn() -> MagicMock:
    return MagicMock()


@pytest.fixture
def cursor(conn: MagicMock) -> MagicMock:
    return conn.cursor.return_value


class TestRegistry:
    @pytest.mark.parametrize("name,cls", [
        ("Postgres", PostgresProvider),
        ("CockroachDB", PostgresProvider),
        ("SqlServer", SqlServerProvider),
        ("AzureSQL", SqlServerProvider),
        ("Percona", MySqlProvider),
        ("TiDB", MySqlProvider),
        ("Oracle", OracleProvider),
        ("Db2", Db2Provider),
        ("GoogleCloudSpanner", SpannerProvider),
        ("Pervasive", OdbcProvider),
    ])
    def test_family_classes(self, name: str, cls: type) -> None:
        provider = get_provider(name)
        assert type(provider) is cls
        assert provider.name == name

    def test_unknown_name(self) -> None:
        with pytest.raises(UnknownProviderError):
            get_provider("Informix")


class TestPlaceholders:
    def test_text(self) -> None:
        assert placeholder("not found", "view", "public.v") == "-- view public.v not found"
        assert placeholder("not supported", "views") == "-- views not supported"

    @pytest.mark.parametrize("definition,expected", [
        (None, True), ("", True), ("  -- view x not found", True), ("CREATE VIEW v AS SELECT 1", False),
    ])
    def test_is_placeholder(self, definition, expected) -> None:
        assert is_placeholder(definition) is expected


class TestExecution:
    def test_execute_commits(self, conn: MagicMock, cursor: MagicMock) -> None:
        provider = MySqlProvider(MYSQL)
        cursor.description = None
        with patch.object(MySqlProvider, "_connect", return_value=conn):
            provider.execute("cs", "CREATE TABLE t (id int)")
        cursor.execute.assert_called_once_with("CREATE TABLE t (id int)")
        conn.commit.assert_called_once()
        conn.close.assert_called_once()

    def test_postgres_statements_run_in_autocommit(self, conn: MagicMock, cursor: MagicMock) -> None:
        cursor.description = None
        with patch.object(PostgresProvider, "_connect", return_value=conn):
            PostgresProvider(POSTGRES).execute("cs", "VACUUM ANALYZE;")
        assert conn.autocommit is True

    def test_execute_scalar_returns_text(self, conn: MagicMock, cursor: MagicMock) -> None:
        cursor.fetchall.return_value = [(42,)]
        with patch.object(PostgresProvider, "_connect", return_value=conn):
            assert PostgresProvider(POSTGRES).execute_scalar("cs", "SELECT 42") == "42"

    def test_execute_scalar_without_rows(self, conn: MagicMock, cursor: MagicMock) -> None:
        cursor.fetchall.return_value = []
        with patch.object(PostgresProvider, "_connect", return_value=conn):
            assert PostgresProvider(POSTGRES).execute_scalar("cs", "SELECT 1 WHERE false") is None

    def test_connect_failure_is_translated(self) -> None:
        with patch.object(PostgresProvider, "_connect", side_effect=RuntimeError("refused")):
            with pytest.raises(DatabaseConnectionError, match="refused"):
                PostgresProvider(POSTGRES).list_tables("cs")

    def test_query_failure_is_introspection_error(self, conn: MagicMock, cursor: MagicMock) -> None:
        cursor.execute.side_effect = RuntimeError("permission denied")
        with patch.object(MySqlProvider, "_connect", return_value=conn):
            with pytest.raises(IntrospectionError, match="permission denied"):
                MySqlProvider(MYSQL).list_tables("cs")
        conn.close.assert_called_once()

    def test_cancelled_before_connecting(self) -> None:
        cancel = threading.Event()
        cancel.set()
        with patch.object(PostgresProvider, "_connect") as connect:
            with pytest.raises(MigrationCancelledError):
                PostgresProvider(POSTGRES).execute("cs", "SELECT 1", cancel=cancel)
        connect.assert_not_called()


class TestListTables:
    def test_descriptors(self, conn: MagicMock, cursor: MagicMock) -> None:
        cursor.fetchall.return_value = [("public", "orders", 120, 8192, 4)]
        with patch.object(PostgresProvider, "_connect", return_value=conn):
            (table,) = PostgresProvider(POSTGRES).list_tables("cs")
        assert table == TableDescriptor(
            schema_name="public", name="orders", estimated_row_count=120, size_bytes=8192, column_count=4,
        )

    def test_postgres_reads_size_catalog(self, conn: MagicMock, cursor: MagicMock) -> None:
        cursor.fetchall.return_value = []
        with patch.object(PostgresProvider, "_connect", return_value=conn):
            PostgresProvider(POSTGRES).list_tables("cs")
        assert "pg_total_relation_size" in cursor.execute.call_args.args[0]

    def test_cockroach_uses_information_schema(self, conn: MagicMock, cursor: MagicMock) -> None:
        cursor.fetchall.return_value = []
        with patch.object(PostgresProvider, "_connect", return_value=conn):
            PostgresProvider(COCKROACHDB).list_tables("cs")
        sql = cursor.execute.call_args.args[0]
        assert "pg_total_relation_size" not in sql
        assert "information_schema.tables" in sql

    def test_db2_reads_syscat(self, conn: MagicMock, cursor: MagicMock) -> None:
        cursor.fetchall.return_value = [("APP   ", "ORDERS", 10, 0, 3)]
        with patch.object(Db2Provider, "_connect", return_value=conn):
            (table,) = Db2Provider(DB2).list_tables("cs")
        assert "SYSCAT.TABLES" in cursor.execute.call_args.args[0]
        assert table.schema_name == "APP"


class TestDefinitions:
    def test_postgres_view(self, conn: MagicMock, cursor: MagicMock) -> None:
        cursor.fetchall.return_value = [(" SELECT 1;",)]
        with patch.object(PostgresProvider, "_connect", return_value=conn):
            ddl = PostgresProvider(POSTGRES).get_view_definition("cs", "public", "v")
        assert ddl == 'CREATE OR REPLACE VIEW "public"."v" AS\n SELECT 1;'

    def test_postgres_missing_view(self, conn: MagicMock, cursor: MagicMock) -> None:
        cursor.fetchall.return_value = [(None,)]
        with patch.object(PostgresProvider, "_connect", return_value=conn):
            ddl = PostgresProvider(POSTGRES).get_view_definition("cs", "public", "v")
        assert ddl == "-- view public.v not found"

    def test_oracle_uses_dbms_metadata(self, conn: MagicMock, cursor: MagicMock) -> None:
        cursor.fetchall.return_value = [("  CREATE OR REPLACE FUNCTION APP.F ...  ",)]
        with patch.object(OracleProvider, "_connect", return_value=conn):
            ddl = OracleProvider(ORACLE).get_function_definition("cs", "APP.F")
        assert ddl == "CREATE OR REPLACE FUNCTION APP.F ..."
        sql, params = cursor.execute.call_args.args
        assert "DBMS_METADATA.GET_DDL" in sql
        assert params == ("FUNCTION", "F", "APP")

    def test_mysql_show_create_reads_definition_column(self, conn: MagicMock, cursor: MagicMock) -> None:
        cursor.description = [("Function",), ("sql_mode",), ("Create Function",)]
        cursor.fetchone.return_value = ("f", "", "CREATE FUNCTION `f`() RETURNS int RETURN 1")
        with patch.object(MySqlProvider, "_connect", return_value=conn):
            ddl = MySqlProvider(MYSQL).get_function_definition("cs", "shop.f")
        assert ddl == "CREATE FUNCTION `f`() RETURNS int RETURN 1"
        assert cursor.execute.call_args.args[0] == "SHOW CREATE FUNCTION `shop`.`f`"

    def test_mysql_show_create_missing_row(self, conn: MagicMock, cursor: MagicMock) -> None:
        cursor.fetchone.return_value = None
        with patch.object(MySqlProvider, "_connect", return_value=conn):
            ddl = MySqlProvider(MYSQL).get_function_definition("cs", "shop.f")
        assert ddl == "-- function shop.f not found"

    def test_mysql_show_create_failure_keeps_cause(self, conn: MagicMock, cursor: MagicMock) -> None:
        cursor.execute.side_effect = RuntimeError("SHOW command denied to user 'app'")
        with patch.object(MySqlProvider, "_connect", return_value=conn):
            with pytest.raises(IntrospectionError, match="command denied"):
                MySqlProvider(MYSQL).get_procedure_definition("cs", "shop.p")

    def test_generic_odbc_has_no_programmable_objects(self) -> None:
        provider = OdbcProvider(PERVASIVE)
        assert provider.list_views("cs") == []
        assert provider.list_functions("cs") == []
        assert provider.get_view_definition("cs", "dbo", "v") == "-- views not supported"
        assert provider.get_procedure_definition("cs", "dbo.p") == "-- procedures not supported"


class TestStatistics:
    def test_postgres_whole_database(self) -> None:
        provider = PostgresProvider(POSTGRES)
        with patch.object(provider, "execute") as execute:
            provider.refresh_statistics("cs")
        execute.assert_called_once_with("cs", "VACUUM ANALYZE;", cancel=None)

    def test_postgres_single_table(self) -> None:
        provider = PostgresProvider(POSTGRES)
        with patch.object(provider, "execute") as execute:
            provider.refresh_statistics("cs", "sales", "orders")
        execute.assert_called_once_with("cs", 'ANALYZE "sales"."orders";', cancel=None)

    def test_mysql_refreshes_table_by_table(self) -> None:
        provider = MySqlProvider(MYSQL)
        tables = [TableDescriptor(schema_name="shop", name="a"), TableDescriptor(schema_name="shop", name="b")]
        with patch.object(provider, "list_tables", return_value=tables), \
                patch.object(provider, "execute") as execute:
            provider.refresh_statistics("cs")
        assert [c.args[1] for c in execute.call_args_list] == [
            "ANALYZE TABLE `shop`.`a`;",
            "ANALYZE TABLE `shop`.`b`;",
        ]

    def test_db2_runstats(self) -> None:
        provider = Db2Provider(DB2)
        with patch.object(provider, "execute") as execute:
            provider.refresh_statistics("cs", "APP", "T")
        assert execute.call_args.args[1] == (
            "CALL SYSPROC.ADMIN_CMD('RUNSTATS ON TABLE \"APP\".\"T\" AND INDEXES ALL')"
        )

    def test_generic_odbc_is_a_no_op(self) -> None:
        provider = OdbcProvider(PERVASIVE)
        with patch.object(provider, "execute") as execute, \
                patch.object(provider, "list_tables") as list_tables:
            provider.refresh_statistics("cs")
        execute.assert_not_called()
        list_tables.assert_not_called()


class TestStreamRows:
    def test_yields_rows_with_column_names(self, conn: MagicMock, cursor: MagicMock) -> None:
        cursor.fetchmany.side_effect = [[(1, "a"), (2, "b")], [(3, "c")], []]
        cursor.description = [("id",), ("name",)]
        with patch.object(MySqlProvider, "_connect", return_value=conn):
            rows = list(MySqlProvider(MYSQL).stream_rows("cs", "shop", "t", 2))
        assert rows == [(["id", "name"], (1, "a")), (["id", "name"], (2, "b")), (["id", "name"], (3, "c"))]
        cursor.execute.assert_called_once_with("SELECT * FROM `shop`.`t`")
        cursor.fetchmany.assert_called_with(2)
        conn.close.assert_called_once()

    def test_cancel_stops_the_stream(self, conn: MagicMock, cursor: MagicMock) -> None:
        cursor.fetchmany.side_effect = [[(1,), (2,)], []]
        cursor.description = [("id",)]
        cancel = threading.Event()
        with patch.object(MySqlProvider, "_connect", return_value=conn):
            stream = MySqlProvider(MYSQL).stream_rows("cs", "shop", "t", 10, cancel=cancel)
            assert next(stream) == (["id"], (1,))
            cancel.set()
            with pytest.raises(MigrationCancelledError):
                next(stream)
        conn.close.assert_called_once()

    def test_postgres_casts_catalog_types_to_text(self, conn: MagicMock, cursor: MagicMock) -> None:
        cursor.fetchall.return_value = [("id", "integer"), ("acl", "aclitem[]")]
        with patch.object(PostgresProvider, "_connect", return_value=conn):
            sql = PostgresProvider(POSTGRES)._select_sql("cs", "public", "t")
        assert sql == 'SELECT "id", "acl"::text AS "acl" FROM "public"."t"'

    def test_postgres_uses_named_cursor(self, conn: MagicMock) -> None:
        PostgresProvider(POSTGRES)._stream_cursor(conn)
        assert conn.cursor.call_args.kwargs["name"].startswith("dbmigrator_")


class TestBulkInsert:
    def test_empty_batch_does_not_connect(self) -> None:
        with patch.object(PostgresProvider, "_connect") as connect:
            assert PostgresProvider(POSTGRES).bulk_insert("cs", "public", "t", ["id"], []) == 0
        connect.assert_not_called()

    def test_postgres_copy_csv(self, conn: MagicMock, cursor: MagicMock) -> None:
        captured = {}

        def copy_expert(sql, buffer):
            captured["sql"] = sql
            captured["data"] = buffer.read()

        cursor.copy_expert.side_effect = copy_expert
        rows = [(1, "a", None), (2, "", b"\x01")]
        with patch.object(PostgresProvider, "_connect", return_value=conn):
            count = PostgresProvider(POSTGRES).bulk_insert("cs", "public", "t", ["id", "name", "raw"], rows)
        assert count == 2
        assert captured["sql"] == 'COPY "public"."t" ("id", "name", "raw") FROM STDIN WITH (FORMAT csv)'
        assert captured["data"] == '"1","a",\n"2","","\\x01"\n'
        conn.commit.assert_called_once()

    def test_failure_rolls_back(self, conn: MagicMock, cursor: MagicMock) -> None:
        cursor.copy_expert.side_effect = RuntimeError("bad row")
        with patch.object(PostgresProvider, "_connect", return_value=conn):
            with pytest.raises(BulkLoadError, match="bad row"):
                PostgresProvider(POSTGRES).bulk_insert("cs", "public", "t", ["id"], [(1,)])
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()

    def test_mysql_multi_row_insert(self, conn: MagicMock, cursor: MagicMock) -> None:
        rows = [(1, "a"), (2, "b"), (3, "c")]
        with patch.object(MySqlProvider, "_connect", return_value=conn):
            MySqlProvider(MYSQL).bulk_insert("cs", "shop", "t", ["id", "name"], rows)
        first_sql, _ = cursor.execute.call_args_list[0].args
        assert first_sql.startswith("INSERT INTO `shop`.`t` (`id`, `name`) VALUES (%s, %s)")
        flat = [v for c in cursor.execute.call_args_list for v in c.args[1]]
        assert flat == [1, "a", 2, "b", 3, "c"]

    def test_sqlserver_fast_executemany(self, conn: MagicMock, cursor: MagicMock) -> None:
        with patch.object(SqlServerProvider, "_connect", return_value=conn):
            SqlServerProvider(SQLSERVER).bulk_insert("cs", "dbo", "t", ["id", "name"], [(1, "a")])
        assert cursor.fast_executemany is True
        cursor.executemany.assert_called_once_with(
            "INSERT INTO [dbo].[t] ([id], [name]) VALUES (?, ?)", [(1, "a")]
        )

    def test_generic_odbc_plain_executemany(self, conn: MagicMock, cursor: MagicMock) -> None:
        with patch.object(OdbcProvider, "_connect", return_value=conn):
            OdbcProvider(PERVASIVE).bulk_insert("cs", "dbo", "t", ["id"], [(1,)])
        assert cursor.fast_executemany is False

    def test_oracle_positional_binds(self, conn: MagicMock, cursor: MagicMock) -> None:
        with patch.object(OracleProvider, "_connect", return_value=conn):
            OracleProvider(ORACLE).bulk_insert("cs", "APP", "T", ["ID", "NAME"], [(1, "a")])
        cursor.executemany.assert_called_once_with(
            'INSERT INTO "APP"."T" ("ID", "NAME") VALUES (:1, :2)', [[1, "a"]]
        )


class TestSpanner:
    @pytest.fixture
    def database(self) -> MagicMock:
        return MagicMock()

    def test_ddl_goes_through_update_ddl(self, database: MagicMock) -> None:
        with patch.object(SpannerProvider, "_connect", return_value=database):
            SpannerProvider(SPANNER).execute("cs", "CREATE TABLE `t` (`id` INT64 NOT NULL) PRIMARY KEY (`id`)")
        database.update_ddl.assert_called_once_with(
            ["CREATE TABLE `t` (`id` INT64 NOT NULL) PRIMARY KEY (`id`)"]
        )
        database.run_in_transaction.assert_not_called()

    def test_dml_runs_in_transaction(self, database: MagicMock) -> None:
        with patch.object(SpannerProvider, "_connect", return_value=database):
            SpannerProvider(SPANNER).execute("cs", "DELETE FROM `t` WHERE true;")
        database.run_in_transaction.assert_called_once()
        database.update_ddl.assert_not_called()

    def test_bulk_insert_respects_mutation_limit(self, database: MagicMock) -> None:
        batch = database.batch.return_value.__enter__.return_value
        chunk = CONFIG.drivers.spanner_max_mutations // 2
        rows = [(i, "x") for i in range(chunk * 2 + 1)]
        with patch.object(SpannerProvider, "_connect", return_value=database):
            count = SpannerProvider(SPANNER).bulk_insert("cs", "", "t", ["id", "name"], rows)
        assert count == len(rows)
        assert batch.insert.call_count == 3
        assert batch.insert.call_args_list[0].kwargs["table"] == "t"
        assert len(batch.insert.call_args_list[-1].kwargs["values"]) == 1

    def test_stream_rows(self, database: MagicMock) -> None:
        snapshot = database.snapshot.return_value.__enter__.return_value
        results = MagicMock()
        results.__iter__.return_value = iter([[1, "a"], [2, "b"]])
        results.fields = [SimpleNamespace(name="id"), SimpleNamespace(name="name")]
        snapshot.execute_sql.return_value = results
        with patch.object(SpannerProvider, "_connect", return_value=database):
            rows = list(SpannerProvider(SPANNER).stream_rows("cs", "", "t", 100))
        assert rows == [(["id", "name"], (1, "a")), (["id", "name"], (2, "b"))]
        snapshot.execute_sql.assert_called_once_with("SELECT * FROM `t`")

    def test_statistics_refresh_is_skipped(self) -> None:
        with patch.object(SpannerProvider, "_connect") as connect:
            SpannerProvider(SPANNER).refresh_statistics("cs")
        connect.assert_not_called()
