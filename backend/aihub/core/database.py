import logging
from collections.abc import Generator
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from aihub.core.config import settings

logger = logging.getLogger(__name__)


def _connect_args(dsn: str) -> dict[str, Any]:
    if dsn.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    settings.APP_DATABASE_DSN,
    connect_args=_connect_args(settings.APP_DATABASE_DSN),
    pool_pre_ping=True,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base: Any = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session; the console only reads through it."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def dialect_name(db: Session) -> str:
    """Dialect name of the engine the session is bound to."""
    return str(db.get_bind().dialect.name)


def init_db() -> None:
    """Create the fact tables for local development (no migrations)."""
    import aihub.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Created tables on %s", engine.url.render_as_string(hide_password=True))
