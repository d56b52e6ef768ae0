"""
Database connection/session configuration for the FastAPI app.
Uses SQLAlchemy; PostgreSQL in production, SQLite for development and tests.
"""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import sessionmaker
from starlette.requests import Request

from .models import Base


# PUBLIC_INTERFACE
def create_db_engine(url: str, timeout: float = 5.0) -> Engine:
    """
    Creates an engine whose statements cannot block longer than `timeout` seconds.

    SQLite waits at most `timeout` for a write lock; PostgreSQL gets a
    server-side statement_timeout. Both get a bounded pool checkout.
    """
    backend = make_url(url).get_backend_name()
    if backend == "sqlite":
        return create_engine(
            url,
            connect_args={"timeout": timeout, "check_same_thread": False},
        )
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_recycle=3600,
        pool_timeout=timeout,
        connect_args={"options": f"-c statement_timeout={int(timeout * 1000)}"},
    )


# PUBLIC_INTERFACE
def create_session_factory(url: str, timeout: float = 5.0) -> sessionmaker:
    engine = create_db_engine(url, timeout=timeout)
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


# PUBLIC_INTERFACE
def init_db(engine: Engine) -> None:
    """Creates missing tables. Production deployments run the Alembic migrations instead."""
    Base.metadata.create_all(bind=engine)


# PUBLIC_INTERFACE
def get_db(request: Request):
    """
    Yields a new database session from the application's session factory.
    """
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
