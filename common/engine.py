"""
Database engine factory supporting PostgreSQL, MariaDB, and SQLite.
Handles connection pooling and retry logic at startup.
"""

import time
import urllib.parse
import logging
from sqlalchemy import create_engine, event, exc
from sqlalchemy.exc import OperationalError
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from .config import DatabaseConfig, DatabaseType


logger = logging.getLogger(__name__)


def create_engine_from_config(
    db_config: DatabaseConfig,
    retries: int = 3,
    retry_delay: int = 5
) -> Engine:
    """
    Create SQLAlchemy engine from database configuration with retry logic.

    Supports:
    - PostgreSQL (postgresql+psycopg2)
    - MariaDB (mysql+pymysql)
    - SQLite (file or in-memory)

    Args:
        db_config: Database configuration
        retries: Number of connection retry attempts (default: 3)
        retry_delay: Delay between retries in seconds (default: 5)

    Returns:
        Engine: SQLAlchemy engine with connection pooling

    Raises:
        ValueError: If database type is unsupported
        OperationalError: If connection fails after retries
    """
    connection_url = db_config.url or _build_connection_string(db_config)

    attempt = 0
    while attempt < retries:
        try:
            if db_config.db_type == DatabaseType.SQLITE:
                engine = _create_sqlite_engine(connection_url)
            else:
                engine = create_engine(
                    connection_url,
                    pool_size=db_config.pool_size,
                    max_overflow=db_config.max_overflow,
                    pool_timeout=db_config.pool_timeout,
                    pool_recycle=db_config.pool_recycle,
                    pool_pre_ping=db_config.pool_pre_ping
                )

            logger.info(
                f"SQLAlchemy engine created successfully: {db_config.db_type.value} "
                f"(host={db_config.host or 'local'}, database={db_config.database or connection_url})"
            )

            # Test connection
            with engine.connect():
                logger.debug(f"Connection test successful for {db_config.db_type.value}")

            return engine

        except OperationalError as oe:
            attempt += 1
            logger.error(
                f"Connection attempt {attempt}/{retries} failed for {db_config.db_type.value}: {oe}"
            )

            if attempt >= retries:
                logger.critical(
                    f"Max retries ({retries}) reached. Could not create SQLAlchemy engine."
                )
                raise

            logger.info(f"Retrying in {retry_delay} seconds...")
            time.sleep(retry_delay)

        except exc.SQLAlchemyError as e:
            logger.error(f"SQLAlchemy error occurred for {db_config.db_type.value}: {e}")
            raise

    raise OperationalError("Failed to create database engine", None, None)


def _create_sqlite_engine(connection_url: str) -> Engine:
    """SQLite engine; in-memory databases share one connection across threads."""
    in_memory = connection_url in ('sqlite://', 'sqlite:///:memory:')
    if in_memory:
        engine = create_engine(
            connection_url,
            connect_args={'check_same_thread': False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(
            connection_url,
            connect_args={'check_same_thread': False, 'timeout': 30},
        )

    @event.listens_for(engine, 'connect')
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute('PRAGMA foreign_keys=ON')
        cursor.close()
        if not in_memory:
            # Let BEGIN below control transactions instead of pysqlite
            dbapi_connection.isolation_level = None

    if not in_memory:
        # Take the write lock when the transaction starts so concurrent
        # writers queue on busy_timeout instead of failing to upgrade a read lock
        @event.listens_for(engine, 'begin')
        def _begin_immediate(conn):
            conn.exec_driver_sql('BEGIN IMMEDIATE')

    return engine


def _build_connection_string(db_config: DatabaseConfig) -> str:
    """
    Build database-specific connection string.

    Args:
        db_config: Database configuration

    Returns:
        str: Connection string for SQLAlchemy

    Raises:
        ValueError: If database type is unsupported
    """
    if db_config.db_type == DatabaseType.SQLITE:
        if not db_config.database or db_config.database == ':memory:':
            return 'sqlite://'
        return f"sqlite:///{db_config.database}"

    # URL-encode credentials for special characters
    username = urllib.parse.quote_plus(db_config.username)
    password = urllib.parse.quote_plus(db_config.password)

    if db_config.db_type == DatabaseType.MARIADB:
        connection_url = (
            f"mysql+pymysql://{username}:{password}"
            f"@{db_config.host}:{db_config.port}/{db_config.database}"
        )
        logger.debug("MariaDB connection string built")

    elif db_config.db_type == DatabaseType.POSTGRESQL:
        connection_url = (
            f"postgresql+psycopg2://{username}:{password}"
            f"@{db_config.host}:{db_config.port}/{db_config.database}"
        )
        logger.debug("PostgreSQL connection string built")

    else:
        raise ValueError(
            f"Unsupported database type: {db_config.db_type}. "
            f"Supported types: {', '.join([t.value for t in DatabaseType])}"
        )

    return connection_url
