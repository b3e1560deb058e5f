"""
tests/test_connection_string.py
-------------------------------
Unit tests for core/connection_string.py and the per-driver builders.
Run with: python -m pytest tests/
"""
from __future__ import annotations

import pytest

from config import CONFIG
from core.connection_string import is_url, parse_connection_string, pick, split_host_port, to_odbc
from providers.db2 import db2_connection_string
from providers.mysql import connect_kwargs as mysql_kwargs
from providers.oracle import connect_kwargs as oracle_kwargs
from providers.postgres import connect_kwargs as postgres_kwargs
from providers.spanner import parse_database_path
from providers.sqlserver import odbc_connection_string


class TestParse:
    def test_pairs_with_lower_cased_keys(self) -> None:
        assert parse_connection_string("Host=db;Port=5432;Username=app") == {
            "host": "db", "port": "5432", "username": "app",
        }

    def test_braced_value(self) -> None:
        params = parse_connection_string("Driver={ODBC Driver 18 for SQL Server};Server=db")
        assert params["driver"] == "ODBC Driver 18 for SQL Server"
        assert params["server"] == "db"

    def test_braced_value_with_separator_and_escaped_brace(self) -> None:
        params = parse_connection_string("Pwd={a;b}}c};Uid=x")
        assert params == {"pwd": "a;b}c", "uid": "x"}

    def test_trailing_separator_and_spaces(self) -> None:
        assert parse_connection_string(" Server = db ; Database = app ; ") == {
            "server": "db", "database": "app",
        }

    def test_url(self) -> None:
        assert parse_connection_string("mysql://app:p%40ss@db:3306/sales?ssl=true") == {
            "scheme": "mysql", "host": "db", "port": "3306",
            "user": "app", "password": "p@ss", "database": "sales", "ssl": "true",
        }

    def test_empty(self) -> None:
        assert parse_connection_string("") == {}

    def test_is_url(self) -> None:
        assert is_url("postgresql://db/app")
        assert not is_url("Server=db;Database=app")


class TestHelpers:
    def test_pick_returns_first_non_empty(self) -> None:
        params = {"server": "", "data source": "db"}
        assert pick(params, ("host", "server", "data source")) == "db"
        assert pick(params, ("uid",), "fallback") == "fallback"

    @pytest.mark.parametrize("raw,expected", [
        ("db,1433", ("db", "1433")),
        ("db:5432", ("db", "5432")),
        ("db", ("db", None)),
        ("[::1]", ("[::1]", None)),
        (None, (None, None)),
    ])
    def test_split_host_port(self, raw, expected) -> None:
        assert split_host_port(raw) == expected

    def test_to_odbc_braces_special_values(self) -> None:
        assert to_odbc({"Driver": "X Y", "PWD": "a;b", "UID": "u"}) == "Driver={X Y};PWD={a;b};UID=u"


class TestDriverBuilders:
    def test_sqlserver_from_ado(self) -> None:
        driver = CONFIG.drivers.sqlserver_odbc_driver
        assert odbc_connection_string(
            "Server=db,1433;Database=app;User Id=sa;Password=pw"
        ) == f"Driver={{{driver}}};Server=db,1433;Database=app;UID=sa;PWD=pw"

    def test_sqlserver_keeps_extra_keys(self) -> None:
        result = odbc_connection_string("Server=db;TrustServerCertificate=yes")
        assert result.endswith(";trustservercertificate=yes")

    def test_sqlserver_passthrough_with_driver(self) -> None:
        raw = "Driver={FreeTDS};Server=db;UID=sa"
        assert odbc_connection_string(raw) == raw

    def test_db2(self) -> None:
        driver = CONFIG.drivers.db2_odbc_driver
        assert db2_connection_string("Server=db:50000;Database=SAMPLE;UID=u;PWD=p") == (
            f"Driver={{{driver}}};Database=SAMPLE;Hostname=db;Port=50000;"
            "Protocol=TCPIP;UID=u;PWD=p"
        )

    def test_db2_passthrough_with_dsn(self) -> None:
        assert db2_connection_string("DSN=sample;UID=u") == "DSN=sample;UID=u"

    def test_postgres_libpq_dsn_passes_through(self) -> None:
        assert postgres_kwargs("host=db dbname=app") == {"dsn": "host=db dbname=app"}
        assert postgres_kwargs("postgresql://u@db/app") == {"dsn": "postgresql://u@db/app"}

    def test_postgres_from_ado(self) -> None:
        assert postgres_kwargs("Host=db;Port=5433;Database=app;Username=u;Password=p;SSL Mode=Require") == {
            "host": "db", "port": "5433", "dbname": "app",
            "user": "u", "password": "p", "sslmode": "require",
        }

    def test_mysql(self) -> None:
        assert mysql_kwargs("Server=db;Port=3307;Database=shop;Uid=app;Pwd=pw") == {
            "host": "db", "port": 3307, "database": "shop", "user": "app", "password": "pw",
        }

    def test_mysql_url(self) -> None:
        assert mysql_kwargs("mysql://app:pw@db/shop") == {
            "host": "db", "database": "shop", "user": "app", "password": "pw",
        }

    def test_oracle(self) -> None:
        assert oracle_kwargs("User Id=app;Password=pw;Data Source=//db:1521/XEPDB1") == {
            "user": "app", "password": "pw", "dsn": "db:1521/XEPDB1",
        }

    def test_oracle_from_host_and_service(self) -> None:
        assert oracle_kwargs("Host=db;Port=1521;Service Name=ORCL;User Id=app")["dsn"] == "db:1521/ORCL"

    def test_spanner_path(self) -> None:
        assert parse_database_path("projects/p1/instances/i1/databases/shop") == ("p1", "i1", "shop")
        assert parse_database_path(
            "Data Source=projects/p1/instances/i1/databases/shop"
        ) == ("p1", "i1", "shop")

    def test_spanner_path_required(self) -> None:
        with pytest.raises(ValueError):
            parse_database_path("Host=localhost")
