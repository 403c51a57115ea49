from pathlib import Path

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from feedbrief.config.settings import get_settings
from feedbrief.db.models import Base

_engine: Engine | None = None

SQLITE_FILE_PREFIX = "sqlite:///"


def make_engine(database_url: str) -> Engine:
    """Engine for an explicit url; tests use "sqlite://" for an in-memory db."""
    if database_url.startswith(SQLITE_FILE_PREFIX) and ":memory:" not in database_url:
        # sqlite won't create the parent folder of the db file
        Path(database_url[len(SQLITE_FILE_PREFIX):]).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(database_url, future=True)


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        _engine = make_engine(get_settings().database_url)
    return _engine


def init_db(engine: Engine | None = None) -> None:
    """
    Create the sources / digests / pushed_items tables if missing, then
    make sure the database answers.
    """
    engine = engine or get_engine()
    Base.metadata.create_all(engine)

    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
