import importlib.util
from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker


def normalize_database_url(url: str) -> str:
    """Point bare Postgres URLs at the psycopg (v3) driver when psycopg2 is absent.

    A plain 'postgresql://' (or legacy 'postgres://') URL makes SQLAlchemy try
    psycopg2; we only depend on psycopg[binary].
    """
    try:
        psycopg2_present = importlib.util.find_spec("psycopg2") is not None
    except ValueError:  # pragma: no cover
        psycopg2_present = False
    if psycopg2_present or "+psycopg" in url:
        return url
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str | None, echo: bool = False, busy_timeout: float = 30.0) -> Engine:
    if not url:
        raise RuntimeError("DATABASE_URL environment variable must be set")
    url = normalize_database_url(url)
    if url.startswith("sqlite"):
        # Request threads share the pool; writers queue on the file lock for up to busy_timeout.
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": busy_timeout},
        )
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine
    return create_engine(url, echo=echo, pool_pre_ping=True)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def get_db(request: Request) -> Iterator[Session]:
    """One session per request, taken from the factory the app was built with."""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
