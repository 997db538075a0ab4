"""
Record model - a row of a database.

Property values are stored as a flat JSON map keyed by property id.
Every write bumps ``version`` (SQLAlchemy's version counter), which is
how concurrent writers to the same record are detected.
"""

from typing import TYPE_CHECKING, Any

from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from brainbase.db.base import SoftDeleteModel, dump_json, load_json

if TYPE_CHECKING:
    from brainbase.models.database import Database


class Record(SoftDeleteModel):
    """
    Record model - a single row in a database.

    ``data`` holds {"property_id": value, ...}. Relation values are lists
    of record ids. ``relations_cache`` holds resolved relation targets and
    may be discarded at any time.
    """

    __tablename__: str = "records"  # type: ignore[assignment]

    database_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("databases.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    data: Mapped[str] = mapped_column(Text, nullable=False, default="{}")

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    relations_cache: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)

    # Audit trail (opaque actor ids supplied by the caller)
    created_by_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_edited_by_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    deleted_by_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    database: Mapped["Database"] = relationship("Database", back_populates="records")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_records_database_created", "database_id", "created_at"),
        Index("ix_records_deleted_at", "deleted_at"),
    )

    def __repr__(self) -> str:
        return f"<Record {self.id} in database {self.database_id} v{self.version}>"

    def get_all_values(self) -> dict[str, Any]:
        """Get the full property map."""
        return load_json(self.data, {})

    def set_all_values(self, values: dict[str, Any]) -> None:
        self.data = dump_json(values)

    def get_value(self, property_id: str) -> Any:
        return self.get_all_values().get(property_id)

    def get_relation_ids(self, property_id: str) -> list[str]:
        """Target ids held by a relation property, always as a list."""
        value = self.get_value(property_id)
        if value is None:
            return []
        if isinstance(value, list):
            return [str(v) for v in value]
        return [str(value)]

    def set_relation_ids(self, property_id: str, ids: list[str]) -> None:
        """Store relation targets; an empty list removes the key."""
        values = self.get_all_values()
        if ids:
            values[property_id] = list(ids)
        else:
            values.pop(property_id, None)
        self.set_all_values(values)

    def get_relations_cache(self) -> dict[str, Any] | None:
        return load_json(self.relations_cache, None)
