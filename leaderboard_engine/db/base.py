"""
Database wiring: declarative Base, the process-wide engine, the request
session dependency and the connection health check.

The engine is built once at import time from settings; nothing here
lazily reconnects or hides failures behind None.
"""
from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Optional, Sequence

from sqlalchemy import create_engine, insert, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from leaderboard_engine.core.config import settings
from leaderboard_engine.core.errors import StoreUnavailableError


class Base(DeclarativeBase):
    pass


def build_engine(url: str) -> Engine:
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args, pool_pre_ping=True)


engine = build_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HealthCheck:
    connected: bool
    reason: Optional[str] = None


def check_health(db: Session) -> HealthCheck:
    """Round-trip a trivial query; report why it failed instead of raising."""
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        db.rollback()
        return HealthCheck(connected=False, reason=exc.__class__.__name__)
    return HealthCheck(connected=True)


# ---------------------------------------------------------------------------
# Write helpers shared by the stores
# ---------------------------------------------------------------------------

@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Translate driver/ORM failures into StoreUnavailableError."""
    try:
        yield
    except SQLAlchemyError as exc:
        raise StoreUnavailableError(operation, exc.__class__.__name__) from exc


def insert_if_missing(
    db: Session,
    model: Any,
    values: dict[str, Any],
    conflict_columns: Sequence[str],
) -> bool:
    """
    Insert a row unless one already exists for `conflict_columns`.
    Returns True when this call created the row.

    Single statement on PostgreSQL / SQLite (ON CONFLICT DO NOTHING) and
    MySQL (INSERT IGNORE); other dialects fall back to a savepoint and let
    the unique constraint decide.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(model).values(**values).on_conflict_do_nothing(
            index_elements=list(conflict_columns)
        )
    elif dialect == "sqlite":
        stmt = sqlite_insert(model).values(**values).on_conflict_do_nothing(
            index_elements=list(conflict_columns)
        )
    elif dialect in ("mysql", "mariadb"):
        stmt = insert(model).values(**values).prefix_with("IGNORE")
    else:
        try:
            with db.begin_nested():
                db.execute(insert(model).values(**values))
        except IntegrityError:
            return False
        return True
    return db.execute(stmt).rowcount == 1
