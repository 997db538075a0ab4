"""
Database model - a named schema container.

A database owns its ordered property definitions and its saved views.
Both are embedded as JSON lists so the schema travels with the row and
is deleted with it.
"""

from typing import TYPE_CHECKING, Any

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from brainbase.db.base import ArchivableMixin, SoftDeleteModel, dump_json, load_json

if TYPE_CHECKING:
    from brainbase.models.record import Record


class Database(SoftDeleteModel, ArchivableMixin):
    """
    Database model - a user-defined table of records.

    Property format: {"id", "name", "type", "config", "order",
    "is_system", "is_visible", "description"}.
    View format: {"id", "name", "type", "filters", "sorts", "group",
    "config", "is_default", "order"}.
    """

    __tablename__: str = "databases"  # type: ignore[assignment]

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    icon: Mapped[str | None] = mapped_column(String(64), nullable=True)
    owner_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)

    properties: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    views: Mapped[str] = mapped_column(Text, nullable=False, default="[]")

    records: Mapped[list["Record"]] = relationship(
        "Record",
        back_populates="database",
        cascade="all, delete-orphan",
        lazy="raise",
    )

    __table_args__ = (Index("ix_databases_owner_created", "owner_id", "created_at"),)

    def __repr__(self) -> str:
        return f"<Database {self.id} {self.name!r}>"

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    def get_properties(self) -> list[dict[str, Any]]:
        """Property definitions sorted by display order."""
        props = load_json(self.properties, [])
        return sorted(props, key=lambda p: p.get("order", 0))

    def set_properties(self, props: list[dict[str, Any]]) -> None:
        self.properties = dump_json(props)

    def get_property(self, property_id: str) -> dict[str, Any] | None:
        for prop in self.get_properties():
            if prop["id"] == property_id:
                return prop
        return None

    def find_property(self, ref: str) -> dict[str, Any] | None:
        """Look a property up by id, then by case-insensitive name."""
        props = self.get_properties()
        for prop in props:
            if prop["id"] == ref:
                return prop
        lowered = ref.strip().lower()
        for prop in props:
            if prop["name"].strip().lower() == lowered:
                return prop
        return None

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def get_views(self) -> list[dict[str, Any]]:
        views = load_json(self.views, [])
        return sorted(views, key=lambda v: v.get("order", 0))

    def set_views(self, views: list[dict[str, Any]]) -> None:
        self.views = dump_json(views)

    def get_view(self, view_id: str) -> dict[str, Any] | None:
        for view in self.get_views():
            if view["id"] == view_id:
                return view
        return None
