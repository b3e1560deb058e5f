"""
core/migrator.py
----------------
Migration engine: preview, parallel table copy and post-object replication.

Design Decisions:
    * The engine is a plain class with injected dependencies (a provider
      lookup and the worker count).  It keeps no state between calls; the
      request carries everything, so a caller can preview, hold the
      request, and migrate later.
    * Progress is reported via a callback (``progress_cb``) so both CLI
      and embedding callers can display updates without coupling this
      module to any front end.
    * Tables are copied by a fixed pool of workers draining a queue that is
      filled once up front.  Every table is isolated: whatever goes wrong
      becomes a failed ``MigrationResult`` and the worker moves on.
    * Rows are pulled from the source generator and flushed to the target
      in fixed-size batches, so memory is bounded by one batch per worker.
    * Only errors raised outside any per-object boundary reach
      ``MigrationReport.errors``.
"""
from __future__ import annotations

import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import closing
from datetime import datetime, timezone
from typing import Callable

from config import CONFIG
from core.ddl import build_count_query, build_create_schema, build_create_table, build_drop_table
from core.dialects import split_qualified_name
from core.errors import MigrationCancelledError, UnsupportedOperationError, raise_if_cancelled
from core.introspector import get_source_columns
from logger import get_logger
from models.migration import (
    MigrationReport,
    MigrationRequest,
    MigrationResult,
    MigrationSummary,
    TableDescriptor,
)
from providers import get_provider
from providers.base import Provider, Row, is_placeholder

log = get_logger(__name__)

ProgressCallback = Callable[[str, int, int], None]  # message, current, total
ProviderFactory = Callable[[str], Provider]


def _selection(request: MigrationRequest) -> list[str]:
    return [name.strip() for name in request.tables if name.strip()]


def filter_tables(tables: list[TableDescriptor], selected: list[str]) -> list[TableDescriptor]:
    """
    Keep the tables named in ``selected``; an empty selection keeps all.

    Names match case-insensitively against both ``schema.table`` and the
    bare table name.
    """
    if not selected:
        return list(tables)
    wanted = {name.casefold() for name in selected}
    return [
        t for t in tables
        if f"{t.schema_name}.{t.name}".casefold() in wanted or t.name.casefold() in wanted
    ]


class MigrationEngine:
    """
    Runs previews and migrations between two dialects.

    Args:
        provider_factory: Name → provider lookup (``providers.get_provider``).
        concurrency:      Number of tables copied at once.
        progress_cb:      Optional callback ``(message, current, total)``.

    Example::

        engine = MigrationEngine()
        summary = engine.preview(request)
        report = engine.migrate(request)
    """

    def __init__(
        self,
        provider_factory: ProviderFactory = get_provider,
        concurrency: int | None = None,
        progress_cb: ProgressCallback | None = None,
    ) -> None:
        self._provider_factory = provider_factory
        self._concurrency = max(1, concurrency or CONFIG.migration.table_concurrency)
        self._progress_cb = progress_cb or self._default_progress

    @staticmethod
    def _default_progress(msg: str, current: int, total: int) -> None:
        log.info("%s (%d/%s)", msg, current, total if total else "?")

    def _progress(self, msg: str, current: int = 0, total: int = 0) -> None:
        self._progress_cb(msg, current, total)

    def _providers(self, request: MigrationRequest) -> tuple[Provider, Provider]:
        # Both names are resolved before any connection is opened.
        return (
            self._provider_factory(request.source_provider),
            self._provider_factory(request.target_provider),
        )

    # ------------------------------------------------------------------
    # Preview
    # ------------------------------------------------------------------

    def preview(
        self, request: MigrationRequest, cancel: threading.Event | None = None
    ) -> MigrationSummary:
        """
        Compare source and target without changing either.

        Failures are folded into ``summary.warnings``; only an unknown
        dialect name raises.

        Raises:
            UnknownProviderError: If either dialect name is not registered.
        """
        src, tgt = self._providers(request)
        summary = MigrationSummary()
        selected = _selection(request)

        try:
            if request.run_analyze:
                try:
                    src.refresh_statistics(request.source_connection, cancel=cancel)
                except MigrationCancelledError:
                    raise
                except Exception as exc:
                    log.warning("Statistics refresh on %s failed; continuing: %s", src.name, exc)
                    summary.warnings.append(f"Statistics refresh failed: {exc}")

            summary.source_tables = filter_tables(
                src.list_tables(request.source_connection, cancel=cancel), selected
            )
            summary.target_tables = filter_tables(
                tgt.list_tables(request.target_connection, cancel=cancel), selected
            )

            if request.exact_row_counts and summary.source_tables:
                summary.source_tables = self._exact_row_counts(
                    src, request.source_connection, summary.source_tables, summary.warnings, cancel
                )

            if request.include_views:
                summary.views = src.list_views(request.source_connection, cancel=cancel)
            if request.include_functions:
                summary.functions = src.list_functions(request.source_connection, cancel=cancel)
            if request.include_procedures:
                summary.procedures = src.list_procedures(request.source_connection, cancel=cancel)

            targets = {
                (t.schema_name.casefold(), t.name.casefold()): t for t in summary.target_tables
            }
            for s in summary.source_tables:
                match = targets.get((s.schema_name.casefold(), s.name.casefold()))
                if match is None:
                    summary.warnings.append(f"{s.qualified_name} will be created on target")
                elif match.column_count != s.column_count:
                    summary.warnings.append(
                        f"{s.qualified_name} column count mismatch "
                        f"(src:{s.column_count} vs tgt:{match.column_count})"
                    )
        except Exception as exc:
            log.error("Preview failed: %s", exc, exc_info=True)
            summary.warnings.append(f"Preview error: {exc}")

        return summary

    def _exact_row_counts(
        self,
        src: Provider,
        connection_string: str,
        tables: list[TableDescriptor],
        warnings: list[str],
        cancel: threading.Event | None,
    ) -> list[TableDescriptor]:
        counted: list[TableDescriptor] = []
        for t in tables:
            sql = build_count_query(src.dialect, t.schema_name, t.name)
            try:
                value = src.execute_scalar(connection_string, sql, cancel=cancel)
                t = t.model_copy(update={"estimated_row_count": int(value)})
            except MigrationCancelledError:
                raise
            except Exception as exc:
                log.warning("Exact count failed for %s: %s", t.qualified_name, exc)
                warnings.append(f"Exact row count failed for {t.qualified_name}: {exc}")
            counted.append(t)
        return counted

    # ------------------------------------------------------------------
    # Migrate
    # ------------------------------------------------------------------

    def migrate(
        self, request: MigrationRequest, cancel: threading.Event | None = None
    ) -> MigrationReport:
        """
        Copy the selected tables, then views, functions and procedures.

        Per-object failures become failed results; anything else is
        recorded once in ``report.errors``.  Results gathered before a
        pipeline failure are kept.

        Raises:
            UnknownProviderError: If either dialect name is not registered.
        """
        src, tgt = self._providers(request)
        report = MigrationReport(source_provider=src.name, target_provider=tgt.name)

        try:
            tables = self._resolve_tables(request, src, cancel)
            log.info(
                "Migrating %d table(s) from %s to %s with %d worker(s)",
                len(tables), src.name, tgt.name, self._concurrency,
            )

            if request.run_analyze:
                try:
                    src.refresh_statistics(request.source_connection, cancel=cancel)
                except MigrationCancelledError:
                    raise
                except Exception as exc:
                    log.warning("Statistics refresh on %s failed; continuing: %s", src.name, exc)

            table_results = self._copy_tables(request, src, tgt, tables, cancel)
            report.results.extend(sorted(table_results, key=lambda r: r.object_name))

            if request.include_views:
                raise_if_cancelled(cancel)
                report.results.extend(self._replicate_views(request, src, tgt, cancel))
            if request.include_functions:
                raise_if_cancelled(cancel)
                report.results.extend(self._replicate_routines(
                    "FUNCTION",
                    src.list_functions(request.source_connection, cancel=cancel),
                    src.get_function_definition,
                    request, tgt, cancel,
                ))
            if request.include_procedures:
                raise_if_cancelled(cancel)
                report.results.extend(self._replicate_routines(
                    "PROCEDURE",
                    src.list_procedures(request.source_connection, cancel=cancel),
                    src.get_procedure_definition,
                    request, tgt, cancel,
                ))
        except Exception as exc:
            log.error("Migration pipeline error: %s", exc, exc_info=True)
            report.errors.append(f"Migration pipeline error: {exc}")
        finally:
            report.completed_at = datetime.now(timezone.utc)

        failed = sum(1 for r in report.results if not r.success)
        log.info(
            "Migration finished: %d object(s), %d failed, %d pipeline error(s)",
            len(report.results), failed, len(report.errors),
        )
        return report

    def _resolve_tables(
        self, request: MigrationRequest, src: Provider, cancel: threading.Event | None
    ) -> list[tuple[str, str]]:
        """(schema, table) pairs to copy, in queue order."""
        discovered = src.list_tables(request.source_connection, cancel=cancel)
        selected = _selection(request)
        if not selected:
            return [(t.schema_name, t.name) for t in discovered]

        by_qualified: dict[str, TableDescriptor] = {}
        by_name: dict[str, TableDescriptor] = {}
        for t in discovered:
            by_qualified.setdefault(f"{t.schema_name}.{t.name}".casefold(), t)
            by_name.setdefault(t.name.casefold(), t)

        resolved: list[tuple[str, str]] = []
        seen: set[tuple[str, str]] = set()
        for name in selected:
            key = name.casefold()
            match = by_qualified.get(key) or (by_name.get(key) if "." not in name else None)
            pair = (match.schema_name, match.name) if match else split_qualified_name(name, src.dialect)
            # One queue entry per table, whichever way it was named.
            folded = (pair[0].casefold(), pair[1].casefold())
            if folded in seen:
                continue
            seen.add(folded)
            resolved.append(pair)
        return resolved

    def _copy_tables(
        self,
        request: MigrationRequest,
        src: Provider,
        tgt: Provider,
        tables: list[tuple[str, str]],
        cancel: threading.Event | None,
    ) -> list[MigrationResult]:
        work: queue.Queue[tuple[str, str]] = queue.Queue()
        for item in tables:
            work.put(item)

        results: list[MigrationResult] = []
        lock = threading.Lock()
        total = len(tables)

        def worker() -> None:
            while True:
                try:
                    schema, table = work.get_nowait()
                except queue.Empty:
                    return
                result = self._migrate_table(request, src, tgt, schema, table, cancel)
                with lock:
                    results.append(result)
                    done = len(results)
                self._progress(f"Table {result}", done, total)

        workers = min(self._concurrency, total)
        if workers:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="copy") as pool:
                futures = [pool.submit(worker) for _ in range(workers)]
                for future in futures:
                    future.result()
        return results

    def _migrate_table(
        self,
        request: MigrationRequest,
        src: Provider,
        tgt: Provider,
        schema: str,
        table: str,
        cancel: threading.Event | None,
    ) -> MigrationResult:
        name = src.dialect.qualified_name(schema, table)
        try:
            raise_if_cancelled(cancel)
            self._ensure_schema(tgt, request.target_connection, schema, cancel)
            self._ensure_table(request, src, tgt, schema, table, cancel)
            copied = self._copy_table(request, src, tgt, schema, table, cancel)
        except Exception as exc:
            log.error("Failed migrating table %s: %s", name, exc, exc_info=True)
            return MigrationResult(object_name=name, success=False, error_message=str(exc))
        log.info("Copied %d rows into %s", copied, name)
        return MigrationResult(object_name=name, rows_copied=copied, success=True)

    @staticmethod
    def _ensure_schema(
        tgt: Provider, connection_string: str, schema: str, cancel: threading.Event | None
    ) -> None:
        sql = build_create_schema(tgt.dialect, schema)
        if not sql:
            return
        try:
            tgt.execute(connection_string, sql, cancel=cancel)
        except MigrationCancelledError:
            raise
        except Exception as exc:
            log.warning("Ensuring schema %s on %s failed: %s", schema, tgt.name, exc)

    @staticmethod
    def _ensure_table(
        request: MigrationRequest,
        src: Provider,
        tgt: Provider,
        schema: str,
        table: str,
        cancel: threading.Event | None,
    ) -> None:
        """Missing → create; exists → keep, or drop and recreate on request."""
        wanted = tgt.dialect.qualified_name(schema, table).casefold()
        exists = any(
            tgt.dialect.qualified_name(t.schema_name, t.name).casefold() == wanted
            for t in tgt.list_tables(request.target_connection, cancel=cancel)
        )
        if exists and not request.drop_destination_if_exists:
            log.debug("%s already exists on %s; keeping it", wanted, tgt.name)
            return
        if exists:
            try:
                tgt.execute(
                    request.target_connection,
                    build_drop_table(tgt.dialect, schema, table),
                    cancel=cancel,
                )
            except MigrationCancelledError:
                raise
            except Exception as exc:
                log.warning("Dropping %s.%s on %s failed: %s", schema, table, tgt.name, exc)

        columns = get_source_columns(src, request.source_connection, schema, table, cancel=cancel)
        ddl = build_create_table(columns, tgt.dialect, schema, table)
        tgt.execute(request.target_connection, ddl, cancel=cancel)

    @staticmethod
    def _copy_table(
        request: MigrationRequest,
        src: Provider,
        tgt: Provider,
        schema: str,
        table: str,
        cancel: threading.Event | None,
    ) -> int:
        requested = request.batch_size if request.batch_size > 0 else CONFIG.migration.default_batch_size
        batch_size = max(CONFIG.migration.min_batch_size, requested)

        copied = 0
        columns: list[str] | None = None
        buffer: list[Row] = []
        stream = src.stream_rows(request.source_connection, schema, table, batch_size, cancel=cancel)
        with closing(stream):
            for cols, row in stream:
                if columns is None:
                    columns = cols
                buffer.append(row)
                if len(buffer) >= batch_size:
                    copied += tgt.bulk_insert(
                        request.target_connection, schema, table, columns, buffer, cancel=cancel
                    )
                    log.debug("Flushed %d rows into %s.%s (%d so far)", len(buffer), schema, table, copied)
                    buffer = []

        if buffer and columns is not None:
            copied += tgt.bulk_insert(
                request.target_connection, schema, table, columns, buffer, cancel=cancel
            )
        return copied

    # ------------------------------------------------------------------
    # Views, functions, procedures
    # ------------------------------------------------------------------

    @staticmethod
    def _apply_definition(
        label: str,
        definition: str,
        request: MigrationRequest,
        tgt: Provider,
        cancel: threading.Event | None,
    ) -> MigrationResult:
        if is_placeholder(definition):
            raise UnsupportedOperationError(definition or f"-- {label} has no definition")
        tgt.execute(request.target_connection, definition, cancel=cancel)
        return MigrationResult(object_name=label, success=True)

    def _replicate_views(
        self,
        request: MigrationRequest,
        src: Provider,
        tgt: Provider,
        cancel: threading.Event | None,
    ) -> list[MigrationResult]:
        results: list[MigrationResult] = []
        for view in src.list_views(request.source_connection, cancel=cancel):
            label = f"VIEW:{view}"
            try:
                schema, name = split_qualified_name(view, src.dialect)
                ddl = src.get_view_definition(request.source_connection, schema, name, cancel=cancel)
                results.append(self._apply_definition(label, ddl, request, tgt, cancel))
            except UnsupportedOperationError as exc:
                log.warning("Skipping view %s: %s", view, exc)
                results.append(MigrationResult(object_name=label, success=False, error_message=str(exc)))
            except Exception as exc:
                log.error("Failed replicating view %s: %s", view, exc, exc_info=True)
                results.append(MigrationResult(object_name=label, success=False, error_message=str(exc)))
        return results

    def _replicate_routines(
        self,
        kind: str,
        signatures: list[str],
        fetch: Callable[..., str],
        request: MigrationRequest,
        tgt: Provider,
        cancel: threading.Event | None,
    ) -> list[MigrationResult]:
        results: list[MigrationResult] = []
        for signature in signatures:
            label = f"{kind}:{signature}"
            try:
                ddl = fetch(request.source_connection, signature, cancel=cancel)
                results.append(self._apply_definition(label, ddl, request, tgt, cancel))
            except UnsupportedOperationError as exc:
                log.warning("Skipping %s %s: %s", kind.lower(), signature, exc)
                results.append(MigrationResult(object_name=label, success=False, error_message=str(exc)))
            except Exception as exc:
                log.error("Failed replicating %s %s: %s", kind.lower(), signature, exc, exc_info=True)
                results.append(MigrationResult(object_name=label, success=False, error_message=str(exc)))
        return results
