from __future__ import annotations

from typing import Any, Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from app.core.config import COUPON_LOOKUP_TIMEOUT_SECONDS, DATABASE_URL


def build_connect_args(database_url: str, timeout_seconds: float) -> dict[str, Any]:
    """Driver-level timeouts so a stuck lookup fails fast instead of hanging the request."""
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False, "timeout": timeout_seconds}
    if database_url.startswith(("postgresql", "postgres")):
        timeout_ms = int(timeout_seconds * 1000)
        return {
            "connect_timeout": max(1, int(timeout_seconds)),
            "options": f"-c statement_timeout={timeout_ms}",
        }
    return {}


engine = create_engine(
    DATABASE_URL,
    connect_args=build_connect_args(DATABASE_URL, COUPON_LOOKUP_TIMEOUT_SECONDS),
    pool_pre_ping=True,
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
