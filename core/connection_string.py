"""
core/connection_string.py
-------------------------
Parsing of the opaque connection strings carried by migration requests.

Two shapes are accepted:
    * ``key=value;key=value`` pairs (ADO.NET / ODBC style).  Keys are
      case-insensitive; a value may be wrapped in braces to contain ``;``
      (``Driver={ODBC Driver 18 for SQL Server}``), with ``}}`` standing
      for a literal ``}``.
    * URLs such as ``postgresql://user:pw@host:5432/db?sslmode=require``.

Providers turn the parsed mapping into driver keyword arguments with
``pick`` so the usual aliases (Server/Host, User Id/Username/UID, ...)
are all understood.
"""
from __future__ import annotations

from urllib.parse import parse_qsl, unquote, urlparse

HOST_KEYS = ("host", "server", "data source", "address", "addr")
PORT_KEYS = ("port",)
DATABASE_KEYS = ("database", "initial catalog", "dbname", "db")
USER_KEYS = ("user id", "userid", "username", "user", "uid")
PASSWORD_KEYS = ("password", "pwd")


def is_url(raw: str) -> bool:
    return "://" in raw.split(";", 1)[0]


def _parse_pairs(raw: str) -> dict[str, str]:
    params: dict[str, str] = {}
    i, n = 0, len(raw)
    while i < n:
        eq = raw.find("=", i)
        if eq < 0:
            break
        key = raw[i:eq].strip().lower()
        i = eq + 1
        while i < n and raw[i] == " ":
            i += 1
        if i < n and raw[i] == "{":
            buf = []
            i += 1
            while i < n:
                if raw[i] == "}":
                    if i + 1 < n and raw[i + 1] == "}":
                        buf.append("}")
                        i += 2
                        continue
                    i += 1
                    break
                buf.append(raw[i])
                i += 1
            value = "".join(buf)
            semi = raw.find(";", i)
            i = n if semi < 0 else semi + 1
        else:
            semi = raw.find(";", i)
            end = n if semi < 0 else semi
            value = raw[i:end].strip()
            i = end + 1
        if key:
            params[key] = value
    return params


def _parse_url(raw: str) -> dict[str, str]:
    url = urlparse(raw)
    params: dict[str, str] = {"scheme": url.scheme}
    if url.hostname:
        params["host"] = url.hostname
    if url.port:
        params["port"] = str(url.port)
    if url.username:
        params["user"] = unquote(url.username)
    if url.password:
        params["password"] = unquote(url.password)
    database = url.path.lstrip("/")
    if database:
        params["database"] = unquote(database)
    for key, value in parse_qsl(url.query):
        params[key.lower()] = value
    return params


def parse_connection_string(raw: str) -> dict[str, str]:
    """
    Parse a connection string into a lower-cased key → value mapping.

    Examples::

        parse_connection_string("Host=db;Port=5432;Username=app")
            →  {"host": "db", "port": "5432", "username": "app"}
        parse_connection_string("mysql://app:pw@db:3306/sales")
            →  {"scheme": "mysql", "host": "db", "port": "3306",
                "user": "app", "password": "pw", "database": "sales"}
    """
    raw = (raw or "").strip()
    if not raw:
        return {}
    if is_url(raw):
        return _parse_url(raw)
    return _parse_pairs(raw)


def pick(params: dict[str, str], keys: tuple[str, ...], default: str | None = None) -> str | None:
    """Return the first non-empty value among ``keys``."""
    for key in keys:
        value = params.get(key)
        if value:
            return value
    return default


def split_host_port(host: str | None) -> tuple[str | None, str | None]:
    """
    Split ``host,port`` (SQL Server) or ``host:port`` into its parts.

    Bracketed IPv6 literals and bare hosts are returned unchanged.
    """
    if not host:
        return host, None
    if "," in host:
        name, port = host.rsplit(",", 1)
        return name.strip(), port.strip()
    if host.count(":") == 1:
        name, port = host.split(":")
        if port.isdigit():
            return name, port
    return host, None


def to_odbc(params: dict[str, str]) -> str:
    """Render a mapping back into an ODBC connection string."""
    parts = []
    for key, value in params.items():
        if any(c in value for c in ";{} "):
            value = "{" + value.replace("}", "}}") + "}"
        parts.append(f"{key}={value}")
    return ";".join(parts)
