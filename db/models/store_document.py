"""
db/models/store_document.py

Path-addressed JSON document backing the SQL document store.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class StoreDocument(TimestampMixin, Base):
    __tablename__ = "store_documents"

    path: Mapped[str] = mapped_column(
        String(512),
        primary_key=True,
        comment="Slash-separated document path, e.g. players/EU5__42/scans/1700000000",
    )
    collection: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Parent collection path (path without the last segment)",
    )
    data: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        comment="Document payload",
    )

    __table_args__ = (
        Index("ix_store_documents_collection", "collection"),
    )


def collection_of(path: str) -> str:
    """Return the parent collection path of a document path."""
    head, _, _ = path.rpartition("/")
    return head
