"""Database layer for BrainBase."""

from brainbase.db.base import Base
from brainbase.db.session import (
    AsyncSessionLocal,
    engine,
    get_db,
    init_db,
)

__all__ = [
    "Base",
    "AsyncSessionLocal",
    "engine",
    "get_db",
    "init_db",
]
