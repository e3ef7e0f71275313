"""
Import a scan export file from CLI.
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path

from app.domain.scan_import import ImportProgress, ProgressPhase
from app.services.scan_import_service import ScanImportError, ScanImportService
from store import StoreUnavailableError, build_document_store


def _print_progress(event: ImportProgress) -> None:
    if event.phase == ProgressPhase.WRITE:
        return
    print(
        f"[{event.kind or '-'}] {event.pass_name} {event.phase} {event.current}/{event.total}",
        file=sys.stderr,
    )


def main() -> int:
    parser = argparse.ArgumentParser(description="Import a players or guilds scan export.")
    parser.add_argument("kind", choices=["players", "guilds"], help="Entity kind of the export.")
    parser.add_argument("path", type=Path, help="Path to the CSV export.")
    parser.add_argument(
        "--encoding",
        dest="encoding",
        default="utf-8-sig",
        help="Text encoding of the export file.",
    )
    parser.add_argument(
        "--progress",
        action="store_true",
        help="Print pass progress to stderr.",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").strip().upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    try:
        text = args.path.read_text(encoding=args.encoding)
    except (OSError, UnicodeDecodeError) as exc:
        print(f"Cannot read {args.path}: {exc}", file=sys.stderr)
        return 2

    service = ScanImportService(build_document_store())
    try:
        report = service.import_csv_text(
            args.kind,
            text,
            on_progress=_print_progress if args.progress else None,
        )
    except StoreUnavailableError as exc:
        print(f"Store unavailable: {exc}", file=sys.stderr)
        return 3
    except ScanImportError as exc:
        print(f"Import rejected: {exc}", file=sys.stderr)
        return 2

    print(json.dumps(asdict(report), indent=2, default=str))
    return 1 if report.errors else 0


if __name__ == "__main__":
    raise SystemExit(main())
