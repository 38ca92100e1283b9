"""Database engine, session factory, and declarative base."""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def build_session_factory(database_url: str, *, create_tables: bool = True) -> sessionmaker:
    """Create a session factory bound to *database_url*.

    SQLite connections are shared across worker threads, since sessions are
    driven from ``asyncio.to_thread``.
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    engine = create_engine(database_url, pool_pre_ping=True, connect_args=connect_args)
    if create_tables:
        # Register mapped tables before create_all.
        from dashboard.models import cache_entry  # noqa: F401

        Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)
