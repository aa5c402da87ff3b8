"""Database engine and session helpers."""

from nobetci.db.session import Base, SessionLocal, engine

__all__ = ["Base", "SessionLocal", "engine"]
