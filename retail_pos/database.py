from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from retail_pos.config import settings


def create_db_engine(url: str | None = None, echo: bool | None = None) -> Engine:
    """
    Build the storage engine.

    Called once at process start (see main.lifespan); nothing here runs at import.
    """
    url = url or settings.DATABASE_URL
    kwargs = {
        "pool_pre_ping": True,  # Verify connections before using
        "echo": settings.DEBUG if echo is None else echo,  # Log SQL queries in debug mode
    }
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs["pool_size"] = settings.DB_POOL_SIZE
        kwargs["max_overflow"] = settings.DB_MAX_OVERFLOW
    return create_engine(url, **kwargs)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db(request: Request) -> Iterator[Session]:
    """
    FastAPI dependency for database sessions.

    Yields a session from the factory the application built at startup
    and ensures it's closed after use.
    """
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """
    Run a block as one all-or-nothing unit.

    Commits when the block completes; any exception rolls back every
    write attempted inside the block and is re-raised.
    """
    try:
        yield db
        db.commit()
    except BaseException:
        db.rollback()
        raise
