"""
SQLAlchemy Base class and composable model mixins.

Models are assembled by listing the mixins they need (identity,
timestamps, soft delete, archiving) rather than by mutating a shared
schema at runtime.
"""

import json
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column


def generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid4())


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round trip)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def dump_json(value: Any) -> str:
    """Serialize a value for a JSON Text column."""
    return json.dumps(value, default=str)


def load_json(raw: str | None, default: Any) -> Any:
    """Deserialize a JSON Text column, falling back to ``default`` when empty."""
    if not raw:
        return default
    return json.loads(raw)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Provides common configuration and type annotations.
    """

    type_annotation_map = {
        str: String,
    }

    @declared_attr.directive
    @classmethod
    def __tablename__(cls) -> str:
        """Generate table name from class name (snake_case, pluralized)."""
        name = cls.__name__
        result = [name[0].lower()]
        for char in name[1:]:
            if char.isupper():
                result.extend(["_", char.lower()])
            else:
                result.append(char)
        return "".join(result) + "s"


class UUIDMixin:
    """Mixin that adds a string UUID primary key (portable across PostgreSQL and SQLite)."""

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=generate_uuid,
        nullable=False,
    )


class TimestampMixin:
    """
    Mixin that adds created_at and updated_at timestamps.

    Timestamps are automatically set on insert and update.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        onupdate=utc_now,
        nullable=False,
    )


class SoftDeleteMixin:
    """
    Mixin that adds soft delete functionality.

    Rows are marked as deleted instead of being removed from the database.
    """

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        default=None,
        nullable=True,
    )

    @property
    def is_deleted(self) -> bool:
        """Check if row is soft-deleted."""
        return self.deleted_at is not None

    def soft_delete(self) -> None:
        """Mark row as deleted."""
        self.deleted_at = utc_now()


class ArchivableMixin:
    """
    Mixin that adds archiving.

    Archived rows stay readable but are hidden from default listings.
    """

    archived_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        default=None,
        nullable=True,
    )

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    def archive(self) -> None:
        if self.archived_at is None:
            self.archived_at = utc_now()

    def unarchive(self) -> None:
        self.archived_at = None


class BaseModel(Base, UUIDMixin, TimestampMixin):
    """
    Abstract base model with UUID primary key and timestamps.

    Most models should inherit from this class.
    """

    __abstract__ = True

    def to_dict(self) -> dict[str, Any]:
        """Convert model columns to a dictionary."""
        return {column.name: getattr(self, column.name) for column in self.__table__.columns}


class SoftDeleteModel(BaseModel, SoftDeleteMixin):
    """
    Abstract base model with soft delete support.

    Use this for models where data should be preserved after deletion.
    """

    __abstract__ = True
