"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files

_ALLOWED_EXECUTORS = {"bulk", "chunked"}
_ALLOWED_STORE_BACKENDS = {"sql", "memory"}

DEFAULT_MAX_KEYS: tuple[str, ...] = (
    "Strength",
    "Dexterity",
    "Intelligence",
    "Constitution",
    "Luck",
    "Attribute",
)
DEFAULT_MAX_SUBSTRINGS: tuple[str, ...] = ("equipment",)


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_csv_env(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    """
    Read a comma-separated list from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    items = tuple(item.strip() for item in value.split(",") if item.strip())
    return items if items else default


def _get_choice_env(name: str, default: str, allowed: set[str]) -> str:
    value = _get_str_env(name, default).lower()
    return value if value in allowed else default


@dataclass(frozen=True)
class ScanImportSettings:
    """
    Runtime settings for the scan import pipeline.

    Batch limits differ per write kind: latest projections carry the full
    column map plus search fields and use much smaller commits.
    """

    batch_scans: int = 120
    batch_latest: int = 40
    batch_history: int = 120
    batch_index: int = 40
    chunk_delay_seconds: float = 0.012
    executor: str = "bulk"
    max_workers: int = 8
    timezone: str = "UTC"
    latest_cache_size: int = 5000
    latest_cache_ttl_seconds: float = 300.0
    snapshot_limit: int = 500
    seed_rollups: bool = True


@dataclass(frozen=True)
class FoldSettings:
    """
    Column classification for rollup folds.

    Columns whose canonical name is listed in ``max_keys`` or contains one of
    ``max_substrings`` keep their highest numeric value; every other column
    keeps its most recent non-empty value.
    """

    max_keys: tuple[str, ...] = DEFAULT_MAX_KEYS
    max_substrings: tuple[str, ...] = DEFAULT_MAX_SUBSTRINGS


@dataclass(frozen=True)
class StoreSettings:
    """
    Document store backend selection and retry behavior.
    """

    backend: str = "sql"
    max_retries: int = 3
    backoff_initial_seconds: float = 0.2
    backoff_multiplier: float = 2.0


@lru_cache(maxsize=1)
def get_scan_import_settings() -> ScanImportSettings:
    """
    Return cached scan import settings from environment variables.
    """

    return ScanImportSettings(
        batch_scans=max(1, _get_int_env("SCAN_IMPORT_BATCH_SCANS", 120)),
        batch_latest=max(1, _get_int_env("SCAN_IMPORT_BATCH_LATEST", 40)),
        batch_history=max(1, _get_int_env("SCAN_IMPORT_BATCH_HISTORY", 120)),
        batch_index=max(1, _get_int_env("SCAN_IMPORT_BATCH_INDEX", 40)),
        chunk_delay_seconds=max(0.0, _get_float_env("SCAN_IMPORT_CHUNK_DELAY_SECONDS", 0.012)),
        executor=_get_choice_env("SCAN_IMPORT_EXECUTOR", "bulk", _ALLOWED_EXECUTORS),
        max_workers=max(1, _get_int_env("SCAN_IMPORT_MAX_WORKERS", 8)),
        timezone=_get_str_env("SCAN_IMPORT_TIMEZONE", "UTC"),
        latest_cache_size=max(1, _get_int_env("SCAN_IMPORT_LATEST_CACHE_SIZE", 5000)),
        latest_cache_ttl_seconds=max(
            0.0, _get_float_env("SCAN_IMPORT_LATEST_CACHE_TTL_SECONDS", 300.0)
        ),
        snapshot_limit=max(1, _get_int_env("SCAN_IMPORT_SNAPSHOT_LIMIT", 500)),
        seed_rollups=_get_bool_env("SCAN_IMPORT_SEED_ROLLUPS", True),
    )


@lru_cache(maxsize=1)
def get_fold_settings() -> FoldSettings:
    """
    Return cached fold classification settings from environment variables.
    """

    return FoldSettings(
        max_keys=_get_csv_env("SCAN_FOLD_MAX_KEYS", DEFAULT_MAX_KEYS),
        max_substrings=_get_csv_env("SCAN_FOLD_MAX_SUBSTRINGS", DEFAULT_MAX_SUBSTRINGS),
    )


@lru_cache(maxsize=1)
def get_store_settings() -> StoreSettings:
    """
    Return cached document store settings from environment variables.
    """

    return StoreSettings(
        backend=_get_choice_env("SCAN_STORE_BACKEND", "sql", _ALLOWED_STORE_BACKENDS),
        max_retries=max(0, _get_int_env("SCAN_STORE_MAX_RETRIES", 3)),
        backoff_initial_seconds=max(0.0, _get_float_env("SCAN_STORE_BACKOFF_INITIAL_SECONDS", 0.2)),
        backoff_multiplier=max(1.0, _get_float_env("SCAN_STORE_BACKOFF_MULTIPLIER", 2.0)),
    )
