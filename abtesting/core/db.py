from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .settings import config_settings


def _connect_args(database_url: str, timeout_seconds: float) -> dict:
    # The store timeout is enforced by the database itself so that a hung
    # query surfaces as an OperationalError rather than blocking the request.
    if database_url.startswith("sqlite"):
        # Only needed for SQLite to handle concurrent requests
        return {"check_same_thread": False, "timeout": timeout_seconds}
    if database_url.startswith("postgresql"):
        return {
            "connect_timeout": max(1, int(timeout_seconds)),
            "options": f"-c statement_timeout={int(timeout_seconds * 1000)}",
        }
    return {}


def build_engine(database_url: str, timeout_seconds: float, **kwargs) -> Engine:
    if not database_url.startswith("sqlite"):
        kwargs.setdefault("pool_timeout", timeout_seconds)
        kwargs.setdefault("pool_pre_ping", True)
    return create_engine(
        database_url,
        connect_args=_connect_args(database_url, timeout_seconds),
        **kwargs,
    )


engine = build_engine(config_settings.DATABASE_URL, config_settings.STORE_TIMEOUT_SECONDS)

# Each request gets its own session (a unit of work)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """
    Dependency that yields a database session for a single request,
    and ensures the session is closed afterward.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
