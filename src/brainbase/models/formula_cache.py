"""
Formula cache model - memoized results of computed properties.

One row per (record, property, expression hash). Rows carry their own
expiry; expired rows are ignored on read and removed by
``FormulaService.purge_expired``.
"""

import hashlib
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from brainbase.db.base import BaseModel, dump_json, ensure_utc, load_json, utc_now


def hash_expression(expression: str) -> str:
    """Stable digest used as the expression component of a cache key."""
    return hashlib.sha256(expression.encode("utf-8")).hexdigest()


class FormulaCacheEntry(BaseModel):
    """Cached value of a formula or rollup property for one record."""

    __tablename__: str = "formula_cache_entries"  # type: ignore[assignment]

    record_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("records.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    property_id: Mapped[str] = mapped_column(String(255), nullable=False)
    expression_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    expression: Mapped[str] = mapped_column(Text, nullable=False, default="")

    value: Mapped[str | None] = mapped_column(Text, nullable=True)
    data_type: Mapped[str] = mapped_column(String(20), nullable=False, default="any")
    dependencies: Mapped[str] = mapped_column(Text, nullable=False, default="[]")

    calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Record version the value was computed from
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint(
            "record_id", "property_id", "expression_hash", name="uq_formula_cache_key"
        ),
        Index("ix_formula_cache_expires_at", "expires_at"),
        Index("ix_formula_cache_property", "property_id"),
    )

    def __repr__(self) -> str:
        return f"<FormulaCacheEntry {self.record_id}:{self.property_id}>"

    def get_value(self) -> Any:
        return load_json(self.value, None)

    def set_value(self, value: Any) -> None:
        self.value = dump_json(value)

    def get_dependencies(self) -> list[str]:
        return load_json(self.dependencies, [])

    def set_dependencies(self, dependencies: list[str]) -> None:
        self.dependencies = dump_json(sorted(set(dependencies)))

    def is_expired(self, now: datetime | None = None) -> bool:
        expires_at = ensure_utc(self.expires_at)
        if expires_at is None:
            return False
        return expires_at <= (now or utc_now())
