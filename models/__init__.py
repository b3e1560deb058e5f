"""models/__init__.py"""
from models.migration import (
    MigrationReport,
    MigrationRequest,
    MigrationResult,
    MigrationSummary,
    SourceColumn,
    TableDescriptor,
    load_model,
    load_request,
    save_model,
)

__all__ = [
    "MigrationReport",
    "MigrationRequest",
    "MigrationResult",
    "MigrationSummary",
    "SourceColumn",
    "TableDescriptor",
    "load_model",
    "load_request",
    "save_model",
]
