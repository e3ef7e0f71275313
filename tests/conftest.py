"""
tests/conftest.py

Shared fixtures: in-memory document store, fast import settings and row
builders. Nothing here needs a database.
"""

from __future__ import annotations

from typing import Any, Callable

import pytest

from aggregation.folding import FoldClassifier
from app.config import DEFAULT_MAX_KEYS, DEFAULT_MAX_SUBSTRINGS, ScanImportSettings
from app.services.latest_cache import LatestTimestampCache
from app.services.scan_import_service import ScanImportService
from store.memory import InMemoryDocumentStore

# 2023-11-14 22:13:20 UTC (Tuesday, ISO week 2023-W46)
T1 = 1_700_000_000
# 2023-11-15 11:46:40 UTC, same week and month
T2 = 1_700_050_000


@pytest.fixture()
def memory_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture()
def import_settings() -> ScanImportSettings:
    return ScanImportSettings(chunk_delay_seconds=0.0, executor="chunked", max_workers=4)


@pytest.fixture()
def classifier() -> FoldClassifier:
    return FoldClassifier(max_keys=DEFAULT_MAX_KEYS, max_substrings=DEFAULT_MAX_SUBSTRINGS)


@pytest.fixture()
def make_service(
    memory_store: InMemoryDocumentStore,
    import_settings: ScanImportSettings,
    classifier: FoldClassifier,
) -> Callable[..., ScanImportService]:
    """Build a service; keyword overrides go straight to the constructor."""

    def _make(**overrides: Any) -> ScanImportService:
        store = overrides.pop("store", memory_store)
        settings = overrides.pop("settings", import_settings)
        overrides.setdefault("classifier", classifier)
        overrides.setdefault("cache", LatestTimestampCache(max_entries=100, ttl_seconds=0))
        return ScanImportService(store, settings=settings, **overrides)

    return _make


@pytest.fixture()
def player_row() -> Callable[..., dict[str, str]]:
    def _row(
        pid: str = "p1",
        server: str = "EU5",
        ts: int = T1,
        strength: str = "50",
        **extra: str,
    ) -> dict[str, str]:
        row = {
            "ID": pid,
            "Server": server,
            "Timestamp": str(ts),
            "Name": "Hero",
            "Class": "1",
            "Level": "300",
            "Strength": strength,
            "Dexterity": "10",
            "Intelligence": "10",
            "Constitution": "100",
            "Luck": "20",
            "Guild": "Knights",
            "Guild Identifier": "EU5_g1",
        }
        row.update(extra)
        return row

    return _row


@pytest.fixture()
def guild_row() -> Callable[..., dict[str, str]]:
    def _row(
        gid: str = "g1",
        server: str = "EU5",
        ts: int = T1,
        members: str = "2",
        **extra: str,
    ) -> dict[str, str]:
        row = {
            "Guild Identifier": gid,
            "Server": server,
            "Timestamp": str(ts),
            "Name": "Knights",
            "Guild Member Count": members,
            "Hall of Fame Rank": "12",
        }
        row.update(extra)
        return row

    return _row
