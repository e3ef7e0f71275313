"""
db/base.py

Declarative base and shared mixins for the SQL document store models.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """
    Project-wide declarative base.

    Plain ``dict`` annotations map to JSONB.
    """

    type_annotation_map: dict[type, Any] = {dict[str, Any]: JSONB}


class TimestampMixin:
    """
    Adds created_at and updated_at.

    Both default on the server. Upserts that bypass the ORM set
    ``updated_at`` themselves; ORM updates refresh it via onupdate.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
