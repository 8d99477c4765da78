"""Generate database sessions"""

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from chesscore.config import SETTINGS
from chesscore.db.schema import Base
from chesscore.db.sql_repository import SQLStatsRepository


def build_engine(url: Optional[str] = None, echo: Optional[bool] = None) -> Engine:
    """Create the engine and make sure all tables exist."""
    database_url = url or SETTINGS.database_url
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    engine = create_engine(
        database_url,
        echo=SETTINGS.database_echo if echo is None else echo,
        connect_args=connect_args,
    )
    Base.metadata.create_all(bind=engine)
    return engine


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False)


def get_db(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


def stats_repository_scope(session_factory: sessionmaker[Session]):
    """
    Scope factory for the statistics aggregator.
    Background updates run on their own thread, so every update opens (and closes) its own session.
    """

    @contextmanager
    def scope() -> Generator[SQLStatsRepository, None, None]:
        db = session_factory()
        try:
            yield SQLStatsRepository(db)
        finally:
            db.close()

    return scope
