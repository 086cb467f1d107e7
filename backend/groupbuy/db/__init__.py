from groupbuy.db.base import Base
from groupbuy.db.session import get_db, engine, SessionLocal
from groupbuy.db.tables import ALL_TABLE_NAMES

__all__ = ["get_db", "engine", "SessionLocal", "Base", "ALL_TABLE_NAMES"]
