"""
Database configuration and session management.
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import NullPool, StaticPool


# Create declarative base
Base = declarative_base()


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create the SQLAlchemy engine.
    In-memory SQLite shares one connection so every session sees the same data.
    """
    is_sqlite = database_url.startswith("sqlite")
    if is_sqlite and (":memory:" in database_url or database_url.rstrip("/") == "sqlite:"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=echo,
        )
    if is_sqlite:
        return create_engine(database_url, connect_args={"check_same_thread": False}, echo=echo)
    return create_engine(database_url, poolclass=NullPool, echo=echo)


def create_session_factory(engine: Engine) -> sessionmaker:
    """Create SessionLocal class bound to the engine."""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
        bind=engine,
    )


def init_db(engine: Engine) -> None:
    """Create all tables."""
    # Register table models on the metadata
    from billsync.infrastructure.db import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
