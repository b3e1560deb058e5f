#!/usr/bin/env python3
"""
main.py
-------
Command-line entry point for the database migrator.

Usage:
    python main.py dialects
    python main.py preview <request.json> [-v]
    python main.py migrate <request.json> [-v]

The request file holds a ``MigrationRequest`` as JSON (camelCase or
snake_case keys).  The summary or report is printed to stdout as JSON;
logs go to stderr.  ``migrate`` exits with status 1 when any object or
the pipeline failed, ``preview`` when it produced a ``Preview error``.
"""
from __future__ import annotations

import json
import logging
import signal
import sys
import threading
from pathlib import Path

from pydantic import ValidationError

from config import CONFIG
from core.dialects import list_dialects
from core.errors import UnknownProviderError
from core.migrator import MigrationEngine
from logger import get_logger, set_console_level
from models.migration import load_request

log = get_logger(__name__)

USAGE = f"""
{CONFIG.app_name} {CONFIG.app_version}

Usage:
    python main.py [command] [options]

Commands:
    dialects                 - List supported dialect names
    preview <request.json>   - Compare source and target, print the summary
    migrate <request.json>   - Run the migration, print the report

Options:
    -v                       - Verbose (DEBUG) logging on stderr

Examples:
    python main.py preview request.json
    python main.py migrate request.json -v
"""


def _print_json(model) -> None:
    print(model.model_dump_json(by_alias=True, indent=2))


def _run(command: str, request_path: Path) -> int:
    try:
        request = load_request(request_path)
    except (OSError, ValueError, ValidationError) as exc:
        print(f"✗ Could not read request '{request_path}': {exc}", file=sys.stderr)
        return 2

    engine = MigrationEngine()
    cancel = threading.Event()

    def _interrupt(signum, frame) -> None:
        log.warning("Interrupted; cancelling after the current statements")
        cancel.set()

    previous = signal.signal(signal.SIGINT, _interrupt)
    try:
        if command == "preview":
            summary = engine.preview(request, cancel=cancel)
            _print_json(summary)
            return 1 if any(w.startswith("Preview error") for w in summary.warnings) else 0

        report = engine.migrate(request, cancel=cancel)
        _print_json(report)
        return 0 if report.succeeded else 1
    except UnknownProviderError as exc:
        print(f"✗ {exc}", file=sys.stderr)
        return 2
    finally:
        signal.signal(signal.SIGINT, previous)


def main(argv: list[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    if "-v" in args:
        args.remove("-v")
        set_console_level(logging.DEBUG)

    if not args:
        print(USAGE)
        return 0

    command = args[0].lower()
    if command == "dialects":
        print(json.dumps(list_dialects(), indent=2))
        return 0
    if command in ("preview", "migrate"):
        if len(args) < 2:
            print(f"✗ '{command}' needs a request file\n{USAGE}", file=sys.stderr)
            return 2
        return _run(command, Path(args[1]))

    print(f"✗ Unknown command: {command}\n{USAGE}", file=sys.stderr)
    return 2


if __name__ == "__main__":
    sys.exit(main())
