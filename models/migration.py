"""
models/migration.py
-------------------
Request, summary and report contracts exchanged with callers.

Design Decisions:
    * Contracts are pydantic models so a summary or report serialises to
      JSON and validates back into an equal object; a caller can hold the
      request between preview and migrate without the engine keeping any
      state of its own.
    * Field names follow Python conventions; ``populate_by_name`` plus
      camelCase aliases lets JSON produced by other front ends load too.
    * ``SourceColumn`` is a plain ``NamedTuple``: it only lives for the
      duration of one DDL synthesis and is never serialised.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import NamedTuple, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

M = TypeVar("M", bound=BaseModel)


class _Contract(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SourceColumn(NamedTuple):
    """One introspected source column, in ordinal order."""
    name: str
    native_type: str
    nullable: bool = True
    length: int = 0
    precision: int = 0
    scale: int = 0


class TableDescriptor(_Contract):
    """Catalog snapshot of one base table."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    schema_name: str = Field(default="", alias="schema")
    name: str
    estimated_row_count: int = 0
    size_bytes: int = 0
    column_count: int = 0

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.name}" if self.schema_name else self.name


class MigrationRequest(_Contract):
    """Everything the engine needs to preview or run a migration."""
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    source_provider: str = "Postgres"
    target_provider: str = "SqlServer"
    source_connection: str = ""
    target_connection: str = ""
    tables: list[str] = Field(default_factory=list)
    drop_destination_if_exists: bool = False
    batch_size: int = 10000
    include_views: bool = False
    include_functions: bool = False
    include_procedures: bool = False
    run_analyze: bool = False
    exact_row_counts: bool = False

    @field_validator("tables", mode="before")
    @classmethod
    def _split_table_list(cls, value: object) -> object:
        # Front ends commonly post the selection as one comma-separated field.
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, (list, tuple)):
            return [str(v).strip() for v in value if str(v).strip()]
        return value


class MigrationSummary(_Contract):
    """Preview output: what exists on each side and what will happen."""
    source_tables: list[TableDescriptor] = Field(default_factory=list)
    target_tables: list[TableDescriptor] = Field(default_factory=list)
    views: list[str] = Field(default_factory=list)
    functions: list[str] = Field(default_factory=list)
    procedures: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class MigrationResult(_Contract):
    """Outcome for one table, view, function or procedure."""
    object_name: str
    rows_copied: int = 0
    success: bool = False
    error_message: str | None = None

    def __str__(self) -> str:
        status = "OK" if self.success else "FAILED"
        text = f"[{status}] {self.object_name}: {self.rows_copied} rows"
        if self.error_message:
            text += f" ({self.error_message})"
        return text


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MigrationReport(_Contract):
    """Execution output accumulated across every phase of a run."""
    source_provider: str = ""
    target_provider: str = ""
    started_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = None
    results: list[MigrationResult] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.errors and all(r.success for r in self.results)


# ---------------------------------------------------------------------------
# JSON persistence
# ---------------------------------------------------------------------------

def save_model(path: Path, model: BaseModel) -> None:
    """
    Serialise a contract to JSON and write atomically (write-then-rename).

    Args:
        path:  Destination file path.
        model: Request, summary or report to persist.
    """
    tmp = path.with_suffix(".tmp")
    tmp.write_text(model.model_dump_json(by_alias=True, indent=4), encoding="utf-8")
    tmp.replace(path)


def load_model(path: Path, model_cls: type[M]) -> M:
    """
    Load and validate a contract previously written by ``save_model``.

    Raises:
        ValueError: If the file is not valid JSON.
        pydantic.ValidationError: If the JSON does not match the contract.
    """
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in '{path}': {exc}") from exc
    return model_cls.model_validate(raw)


def load_request(path: Path) -> MigrationRequest:
    return load_model(path, MigrationRequest)
