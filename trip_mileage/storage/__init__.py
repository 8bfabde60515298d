"""Relational persistence for shifts, fixes and trips."""

from .db import Base, create_db_engine, create_session_factory, init_db
from .repository import TripStore, as_utc

__all__ = [
    "Base",
    "create_db_engine",
    "create_session_factory",
    "init_db",
    "TripStore",
    "as_utc",
]
