from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from liveshelf.core.logging import get_logger
from liveshelf.core.settings import get_settings

logger = get_logger(__name__)

Base = declarative_base()

# Global engine instance
_engine = None
_SessionLocal = None


def init_db(create_tables: bool = True):
    """Initialize database engine and session factory."""
    global _engine, _SessionLocal

    if _engine is not None:
        return

    settings = get_settings()
    database_url = str(settings.database_url)

    engine_kwargs: dict = {"pool_pre_ping": True, "echo": settings.debug}
    if database_url.startswith("sqlite"):
        # FastAPI runs sync dependencies in a threadpool
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    else:
        engine_kwargs["pool_size"] = settings.database_pool_size
        engine_kwargs["max_overflow"] = settings.database_max_overflow

    _engine = create_engine(database_url, **engine_kwargs)
    _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_engine)

    if create_tables:
        # Import models so they register on Base.metadata
        from liveshelf.models import schema  # noqa: F401

        Base.metadata.create_all(bind=_engine)

    logger.info("Database initialized successfully")


def get_session_factory():
    """Get the session factory, initializing if necessary."""
    if _SessionLocal is None:
        init_db()
    return _SessionLocal


def get_db_session() -> Generator[Session, None, None]:
    """Yield a request-scoped session (FastAPI dependency)."""
    SessionLocal = get_session_factory()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
