"""
SQLAlchemy engine construction for the bot detection store.

The engine is created explicitly and handed to :class:`~bot_detector.storage.store.Store`;
nothing here keeps a process-wide session factory.
"""

import logging
import os

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.pool import StaticPool

from bot_detector.config import DatabaseConfig
from bot_detector.models import Base

logger = logging.getLogger(__name__)


def create_db_engine(db_config: DatabaseConfig) -> Engine:
    """
    Create an engine for the configured database URL.

    SQLite URLs get a thread-tolerant connection (and a single shared connection
    for in-memory databases); every other backend gets a pre-pinged pool.

    Args:
        db_config: Database configuration.

    Returns:
        A SQLAlchemy Engine.
    """
    url = make_url(db_config.url)

    if url.get_backend_name() == "sqlite":
        database = url.database
        if database and database != ":memory:":
            db_dir = os.path.dirname(database)
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)
            return create_engine(
                url,
                echo=db_config.echo,
                connect_args={"check_same_thread": False},
            )
        return create_engine(
            url,
            echo=db_config.echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    return create_engine(
        url,
        echo=db_config.echo,
        pool_size=db_config.pool_size,
        max_overflow=db_config.max_overflow,
        pool_recycle=db_config.pool_recycle,
        pool_pre_ping=True,
    )


def init_schema(engine: Engine) -> None:
    """Create any missing tables. Existing tables are left untouched."""
    logger.info(f"Ensuring schema on {engine.url.render_as_string(hide_password=True)}")
    Base.metadata.create_all(engine)


def check_connection(engine: Engine) -> bool:
    """Return True if a trivial query succeeds against the engine."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {str(e)}")
        return False
