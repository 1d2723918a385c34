#alfred_core\infrastructure\postgres\database.py

"""SQLAlchemy engine and sessions for the Postgres-backed stores."""

import logging
from functools import lru_cache
from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import declarative_base, sessionmaker

from alfred_core.infrastructure.postgres.config import DatabaseSettings, get_database_settings

logger = logging.getLogger(__name__)


Base = declarative_base()


def create_db_engine(settings: Optional[DatabaseSettings] = None) -> Engine:
    """Pooled engine for the configured database."""
    settings = settings or get_database_settings()
    url = make_url(settings.database_url)

    engine = create_engine(
        url,
        echo=settings.echo_sql,
        pool_pre_ping=True,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        pool_timeout=settings.pool_timeout,
        pool_recycle=settings.pool_recycle,
    )

    if engine.dialect.name == "postgresql":
        @event.listens_for(engine, "connect")
        def set_search_path(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("SET search_path TO public")
            cursor.close()

    logger.info(f"Database engine ready: {url.render_as_string(hide_password=True)}")

    return engine


@lru_cache()
def get_engine() -> Engine:
    """Production engine, created on first use."""
    return create_db_engine()


def get_session_factory(engine_instance: Optional[Engine] = None) -> sessionmaker:
    """Session factory for the stores; tests pass their own engine."""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine_instance or get_engine(),
        expire_on_commit=False
    )


def init_db(engine_instance: Engine) -> None:
    """Create the tables directly. Deployed databases are migrated with Alembic."""
    from alfred_core.infrastructure.postgres import models  # noqa: F401

    Base.metadata.create_all(bind=engine_instance)
