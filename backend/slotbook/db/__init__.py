from slotbook.db.base import Base, TimestampMixin, UTCDateTime, utcnow
from slotbook.db.session import dispose_engine, get_db, get_engine, get_session_factory, init_engine

__all__ = [
    "Base", "TimestampMixin", "UTCDateTime", "utcnow",
    "dispose_engine", "get_db", "get_engine", "get_session_factory", "init_engine",
]
