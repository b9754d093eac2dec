"""
Database-specific upsert strategies using the Strategy pattern.
Handles differences in upsert syntax across PostgreSQL, SQLite, and MariaDB.

Two operations are provided:
- upsert: insert, or update the existing row on a unique-key conflict
- insert_if_absent: insert, or leave the existing row untouched on a unique-key
  conflict; reports whether this statement created the row where the driver
  can tell (None otherwise)
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Dict, Any, Optional, Type
from sqlalchemy.orm import Session
from sqlalchemy.dialects import postgresql, mysql, sqlite

from .config import DatabaseType


logger = logging.getLogger(__name__)


class UpsertStrategy(ABC):
    """Abstract base class for database-specific upsert strategies"""

    # Columns to exclude from UPDATE SET (auto-managed by database/ORM)
    EXCLUDED_UPDATE_COLUMNS = {'created_at', 'updated_at'}

    @abstractmethod
    def upsert(
        self,
        session: Session,
        model: Type,
        values: Dict[str, Any],
        constraint_columns: List[str]
    ) -> None:
        """
        Upsert single record.

        Args:
            session: SQLAlchemy session
            model: SQLAlchemy model class
            values: Dictionary of column name -> value
            constraint_columns: Columns that determine uniqueness (for conflict resolution)
        """
        pass

    @abstractmethod
    def insert_if_absent(
        self,
        session: Session,
        model: Type,
        values: Dict[str, Any],
        constraint_columns: List[str]
    ) -> Optional[bool]:
        """
        Insert a record unless one already exists for the unique key.

        The check and the insert are one statement, so concurrent callers
        cannot both insert.

        Returns:
            True if this call inserted the row, False if it already existed,
            None if the driver cannot tell
        """
        pass

    def _update_values(self, values: Dict[str, Any], constraint_columns: List[str]) -> Dict[str, Any]:
        excluded_cols = set(constraint_columns) | self.EXCLUDED_UPDATE_COLUMNS
        return {k: v for k, v in values.items() if k not in excluded_cols}


class PostgreSQLUpsertStrategy(UpsertStrategy):
    """
    PostgreSQL upsert using ON CONFLICT.

    Syntax:
        INSERT INTO table (col1, col2) VALUES (:val1, :val2)
        ON CONFLICT (col1) DO UPDATE SET col2 = EXCLUDED.col2
    """

    dialect_insert = staticmethod(postgresql.insert)
    name = 'PostgreSQL'

    def upsert(
        self,
        session: Session,
        model: Type,
        values: Dict[str, Any],
        constraint_columns: List[str]
    ) -> None:
        stmt = self.dialect_insert(model).values(**values)
        update_dict = self._update_values(values, constraint_columns)
        if hasattr(model, 'updated_at'):
            update_dict['updated_at'] = datetime.now(timezone.utc)
        stmt = stmt.on_conflict_do_update(
            index_elements=constraint_columns,
            set_=update_dict
        )
        session.execute(stmt)
        logger.debug(f"{self.name} upsert: {model.__tablename__}")

    def insert_if_absent(
        self,
        session: Session,
        model: Type,
        values: Dict[str, Any],
        constraint_columns: List[str]
    ) -> bool:
        stmt = self.dialect_insert(model).values(**values).on_conflict_do_nothing(
            index_elements=constraint_columns
        )
        result = session.execute(stmt)
        inserted = result.rowcount == 1
        logger.debug(
            f"{self.name} insert-if-absent: {model.__tablename__} "
            f"({'inserted' if inserted else 'already present'})"
        )
        return inserted


class SQLiteUpsertStrategy(PostgreSQLUpsertStrategy):
    """
    SQLite upsert. Same ON CONFLICT syntax as PostgreSQL (SQLite >= 3.24).
    """

    dialect_insert = staticmethod(sqlite.insert)
    name = 'SQLite'


class MariaDBUpsertStrategy(UpsertStrategy):
    """
    MariaDB/MySQL upsert using ON DUPLICATE KEY UPDATE.

    Syntax:
        INSERT INTO table (col1, col2) VALUES (:val1, :val2)
        ON DUPLICATE KEY UPDATE col2 = VALUES(col2)
    """

    def upsert(
        self,
        session: Session,
        model: Type,
        values: Dict[str, Any],
        constraint_columns: List[str]
    ) -> None:
        stmt = mysql.insert(model).values(**values)

        update_dict = self._update_values(values, constraint_columns)
        if hasattr(model, 'updated_at'):
            update_dict['updated_at'] = datetime.now(timezone.utc)

        stmt = stmt.on_duplicate_key_update(**update_dict)
        session.execute(stmt)
        logger.debug(f"MariaDB upsert: {model.__tablename__}")

    def insert_if_absent(
        self,
        session: Session,
        model: Type,
        values: Dict[str, Any],
        constraint_columns: List[str]
    ) -> Optional[bool]:
        # id = id keeps the stored row; other constraint and foreign key errors
        # still raise. Under CLIENT_FOUND_ROWS a duplicate also reports 1 row.
        pk = model.__table__.primary_key.columns.values()[0]
        stmt = mysql.insert(model).values(**values).on_duplicate_key_update({pk.name: pk})
        session.execute(stmt)
        logger.debug(f"MariaDB insert-if-absent: {model.__tablename__}")
        return None


class UpsertFactory:
    """Factory for creating database-specific upsert strategies"""

    _strategies = {
        DatabaseType.POSTGRESQL: PostgreSQLUpsertStrategy(),
        DatabaseType.SQLITE: SQLiteUpsertStrategy(),
        DatabaseType.MARIADB: MariaDBUpsertStrategy(),
    }

    @classmethod
    def get_strategy(cls, db_type: DatabaseType) -> UpsertStrategy:
        """
        Get upsert strategy for database type.

        Args:
            db_type: Database type

        Returns:
            UpsertStrategy: Database-specific upsert strategy

        Raises:
            ValueError: If database type is unsupported
        """
        strategy = cls._strategies.get(db_type)

        if strategy is None:
            raise ValueError(
                f"Unsupported database type for upsert: {db_type}. "
                f"Supported types: {', '.join([t.value for t in DatabaseType])}"
            )

        return strategy
