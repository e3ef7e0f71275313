"""
app/services/scan_writer.py

Create-only persistence of raw scan rows.

Every valid row becomes one immutable scan document addressed by entity and
timestamp. Re-importing the same export is safe: the second write finds the
path taken and reports a duplicate instead of overwriting anything.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from app.domain.scan_import import (
    ImportPass,
    ImportProgress,
    ImportResultItem,
    ParsedScanRow,
    ProgressCallback,
    ProgressPhase,
)
from app.failure_codes import OUTCOME_CREATED, OUTCOME_DUPLICATE, OUTCOME_ERROR
from app.services.batch_executor import BatchExecutor
from app.services.batch_scheduler import emit_progress
from store.base import StoreResult, StoreStatus, WriteMode, WriteOp

logger = logging.getLogger(__name__)


@dataclass
class ScanWriteSummary:
    """
    Outcome of the scan pass. ``results`` follows input row order.
    """

    results: list[ImportResultItem] = field(default_factory=list)
    created: int = 0
    duplicate: int = 0
    error: int = 0


def build_scan_document(row: ParsedScanRow, *, now: datetime | None = None) -> dict[str, Any]:
    created_at = (now or datetime.now(timezone.utc)).isoformat()
    return {
        "entity_id": row.key.entity_id,
        "server": row.key.server,
        "timestamp": row.timestamp_sec,
        "timestamp_raw": None if row.timestamp_raw is None else str(row.timestamp_raw),
        "name": row.name,
        "values": dict(row.raw),
        "created_at": created_at,
    }


def classify_result(result: StoreResult) -> tuple[str, str | None]:
    if result.status == StoreStatus.OK:
        return OUTCOME_CREATED, None
    if result.status == StoreStatus.ALREADY_EXISTS:
        return OUTCOME_DUPLICATE, None
    return OUTCOME_ERROR, result.message or "Scan write failed."


class ScanWriter:
    """
    Writes scan documents through a batch executor and classifies outcomes.
    """

    def __init__(self, executor: BatchExecutor, *, batch_size: int = 120) -> None:
        self._executor = executor
        self._batch_size = max(1, batch_size)

    def write(
        self,
        rows: Sequence[ParsedScanRow],
        *,
        kind: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ScanWriteSummary:
        total = len(rows)
        now = datetime.now(timezone.utc)
        ops = [
            WriteOp(
                path=row.key.scan_path(row.timestamp_sec),
                data=build_scan_document(row, now=now),
                mode=WriteMode.CREATE,
            )
            for row in rows
        ]
        summary = ScanWriteSummary()
        items: list[ImportResultItem | None] = [None] * total

        emit_progress(
            on_progress,
            ImportProgress(ProgressPhase.PREPARE, 0, total, ImportPass.SCANS, 0, 0, 0, kind),
        )

        def _on_result(index: int, result: StoreResult) -> None:
            status, message = classify_result(result)
            if status == OUTCOME_CREATED:
                summary.created += 1
            elif status == OUTCOME_DUPLICATE:
                summary.duplicate += 1
            else:
                summary.error += 1
                logger.warning("Scan write failed path=%s error=%s", ops[index].path, message)
            row = rows[index]
            items[index] = ImportResultItem(
                key=row.key.result_key(row.timestamp_sec),
                status=status,
                message=message,
            )
            done = summary.created + summary.duplicate + summary.error
            emit_progress(
                on_progress,
                ImportProgress(
                    ProgressPhase.WRITE,
                    done,
                    total,
                    ImportPass.SCANS,
                    summary.created,
                    summary.duplicate,
                    summary.error,
                    kind,
                ),
            )

        for start in range(0, total, self._batch_size):
            chunk = ops[start : start + self._batch_size]
            self._executor.create_all(
                chunk,
                lambda index, result, offset=start: _on_result(offset + index, result),
            )
        summary.results = [item for item in items if item is not None]

        emit_progress(
            on_progress,
            ImportProgress(
                ProgressPhase.DONE,
                total,
                total,
                ImportPass.SCANS,
                summary.created,
                summary.duplicate,
                summary.error,
                kind,
            ),
        )
        logger.info(
            "Scan pass finished kind=%s created=%d duplicate=%d error=%d",
            kind,
            summary.created,
            summary.duplicate,
            summary.error,
        )
        return summary
