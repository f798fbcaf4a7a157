"""Database engine setup, creating the database when it does not exist yet."""

from __future__ import annotations

import logging

from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import OperationalError

from dialogtree.config import DBConfig

logger = logging.getLogger(__name__)

MAINTENANCE_DATABASE = "postgres"
MAX_IDLE_CONNS = 10
MAX_OPEN_CONNS = 100
CONN_MAX_LIFETIME_SECONDS = 20 * 60

_DRIVERS = {"pgsql": "postgresql", "mysql": "mysql"}
_QUERIES = {
    "pgsql": {"sslmode": "disable"},
    "mysql": {"charset": "utf8mb4"},
}


def engine_url(db_config: DBConfig, database: str) -> URL:
    """SQLAlchemy URL for the configured server and the given database."""
    try:
        driver = _DRIVERS[db_config.source]
    except KeyError:
        raise ValueError(f"unsupported db source: {db_config.source!r}") from None
    return URL.create(
        driver,
        username=db_config.user or None,
        password=db_config.password or None,
        host=db_config.host or None,
        port=db_config.port or None,
        database=database,
        query=_QUERIES[db_config.source],
    )


def create_database_sql(name: str) -> str:
    return f"CREATE DATABASE {name} WITH ENCODING 'UTF8';"


def _pooled_engine(url: URL) -> Engine:
    return create_engine(
        url,
        pool_size=MAX_IDLE_CONNS,
        max_overflow=MAX_OPEN_CONNS - MAX_IDLE_CONNS,
        pool_recycle=CONN_MAX_LIFETIME_SECONDS,
    )


def _check(engine: Engine) -> None:
    with engine.connect():
        pass


def init_db(db_config: DBConfig) -> Engine:
    """Connect to the configured database, creating it if it is missing."""
    engine = _pooled_engine(engine_url(db_config, db_config.dbname))
    try:
        _check(engine)
    except OperationalError as exc:
        engine.dispose()
        if "does not exist" not in str(exc):
            logger.error("DB open error: %s", exc)
            raise
        engine = create_db(db_config)
    logger.info("DataBase [%s:%d] connection successful", db_config.host, db_config.port)
    return engine


def create_db(db_config: DBConfig) -> Engine:
    """Create the configured database and return an engine connected to it."""
    admin = create_engine(
        engine_url(db_config, MAINTENANCE_DATABASE), isolation_level="AUTOCOMMIT"
    )
    try:
        with admin.connect() as connection:
            connection.execute(text(create_database_sql(db_config.dbname)))
    except OperationalError as exc:
        logger.error("Create database error: %s", exc)
        raise
    finally:
        admin.dispose()
    logger.info("Database created: %s", db_config.dbname)

    engine = _pooled_engine(engine_url(db_config, db_config.dbname))
    try:
        _check(engine)
    except OperationalError as exc:
        engine.dispose()
        logger.error("Reconnect error: %s", exc)
        raise
    return engine