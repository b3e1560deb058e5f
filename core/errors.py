"""
core/errors.py
--------------
Exception taxonomy shared by the catalog, the providers and the engine.

Design Decisions:
    * Everything derives from ``MigrationError`` so the engine can tell its
      own failures apart from driver exceptions that escaped translation.
    * Driver exceptions are wrapped at the provider boundary (see
      ``translate_errors``) with ``raise ... from exc`` so the original
      traceback is kept.
"""
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class MigrationError(Exception):
    """Base class for every error raised by the migrator."""


class UnknownProviderError(MigrationError):
    """Raised when a dialect name is not registered in the catalog."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown provider: {name!r}")
        self.name = name


class DatabaseError(MigrationError):
    """Raised for statement failures reported by a provider."""


class DatabaseConnectionError(DatabaseError):
    """Raised when a provider cannot open a connection (network or auth)."""


class IntrospectionError(DatabaseError):
    """Raised when a metadata query fails or returns nothing usable."""


class BulkLoadError(DatabaseError):
    """Raised when a bulk insert into the target fails."""


class DdlSynthesisError(MigrationError):
    """Raised when target DDL cannot be produced."""


class NoColumnsDiscoveredError(DdlSynthesisError):
    """Raised when introspection found no columns for a source table."""

    def __init__(self, schema: str, table: str) -> None:
        super().__init__(f"No columns discovered for {schema}.{table} on source.")
        self.schema = schema
        self.table = table


class UnsupportedOperationError(MigrationError):
    """Raised when a dialect has no equivalent of the requested construct."""


class MigrationCancelledError(MigrationError):
    """Raised when the caller's cancellation token has been set."""

    def __init__(self) -> None:
        super().__init__("Migration cancelled")


def raise_if_cancelled(cancel: threading.Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise MigrationCancelledError()


@contextmanager
def translate_errors(error_cls: type[MigrationError], context: str) -> Iterator[None]:
    """
    Re-raise driver exceptions inside the block as ``error_cls``.

    Errors that are already part of the taxonomy pass through unchanged so
    a connection failure is not relabelled as an introspection failure.

    Example::

        with translate_errors(IntrospectionError, "listing tables"):
            cursor.execute(sql)
    """
    try:
        yield
    except MigrationError:
        raise
    except Exception as exc:
        raise error_cls(f"{context}: {exc}") from exc
