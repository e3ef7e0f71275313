"""
db/config.py

Environment loading and database URL resolution shared by the app, the
SQL document store and Alembic.
"""

from __future__ import annotations

import os
from pathlib import Path

ENV_FILENAMES: tuple[str, ...] = (".env", ".env.local")
_CLOUD_LIKE_ENVIRONMENTS = {"prod", "production", "staging", "cloud"}


def load_env_files(project_root: Path | None = None) -> list[Path]:
    """
    Load simple KEY=VALUE pairs from `.env` and `.env.local` (if present).

    Existing process environment variables are not overwritten. Returns the
    files that were read.
    """

    root = project_root or Path(__file__).resolve().parents[1]
    loaded: list[Path] = []
    for filename in ENV_FILENAMES:
        env_path = root / filename
        if not env_path.exists():
            continue
        loaded.append(env_path)

        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            if line.startswith("export "):
                line = line[len("export ") :]

            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip().strip('"').strip("'")
            if key and key not in os.environ:
                os.environ[key] = value
    return loaded


def normalize_postgres_url(url: str) -> str:
    """
    Normalize postgres URLs to SQLAlchemy's psycopg driver form.
    """

    url = url.strip()
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def find_database_url() -> str | None:
    """
    Resolve the database URL, or None when nothing is configured.

    Priority:
    1) DATABASE_URL
    2) CLOUD_DATABASE_URL when ENVIRONMENT is cloud-like
    3) LOCAL_DATABASE_URL
    """

    load_env_files()

    direct_url = os.getenv("DATABASE_URL", "").strip()
    if direct_url:
        return normalize_postgres_url(direct_url)

    environment = os.getenv("ENVIRONMENT", "local").strip().lower()
    cloud_url = os.getenv("CLOUD_DATABASE_URL", "").strip()
    if environment in _CLOUD_LIKE_ENVIRONMENTS and cloud_url:
        return normalize_postgres_url(cloud_url)

    local_url = os.getenv("LOCAL_DATABASE_URL", "").strip()
    if local_url:
        return normalize_postgres_url(local_url)
    return None


def resolve_database_url() -> str:
    """
    Like ``find_database_url`` but raises when nothing is configured.
    """

    url = find_database_url()
    if url is None:
        raise RuntimeError(
            "No database URL configured. Set DATABASE_URL, or configure "
            "LOCAL_DATABASE_URL / CLOUD_DATABASE_URL."
        )
    return url
