import logging
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool
from threatlens.config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def create_session_factory(database_url: str):
    """Engine + sessionmaker for a database URL. In-memory SQLite shares one connection."""
    kwargs = {"pool_pre_ping": True}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in database_url or database_url.rstrip("/") == "sqlite:":
            kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **kwargs)
    return engine, sessionmaker(autocommit=False, autoflush=False, bind=engine)


engine, SessionLocal = create_session_factory(settings.DATABASE_URL)


def init_db(bind=None):
    """Initialize database tables"""
    # Models must be imported so they register with Base
    import threatlens.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
    logger.info("✓ Database tables ready")
