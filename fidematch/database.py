"""
SQLite table behind the persistent match store.

A single ``entries`` table maps string keys to text values. Keys carry their
own namespace (cache vs denylist), so the table needs no other columns.
"""

from datetime import datetime
from pathlib import Path
from sqlalchemy import create_engine, Column, String, Text, DateTime
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

Base = declarative_base()


class Entry(Base):
    """One stored key/value pair."""

    __tablename__ = "entries"

    key = Column(String, primary_key=True)  # fide-cache-YYYY-MM-term | fide-invalid-term
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


def _engine(db_path: Path) -> Engine:
    return create_engine(f"sqlite:///{db_path}")


def init_database(db_path: Path) -> Engine:
    """
    Create the database file (and its parent directories) and the entries table.

    Safe to call on an existing database. Returns an engine bound to the file.
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = _engine(db_path)
    Base.metadata.create_all(engine)
    return engine


def get_session(db_path: Path) -> Session:
    """Open a session on an already initialized database."""
    return sessionmaker(bind=_engine(db_path))()
