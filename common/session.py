"""
Transactional sessions for the billing store.

One engine operation runs in one session_scope(): commit on success,
rollback on any error, and SQLAlchemy failures surface as billing errors.
"""

import logging
from contextlib import contextmanager
from typing import Generator
from sqlalchemy.exc import DisconnectionError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.engine import Engine

from .exceptions import BillingError, ConflictError, DependencyError


logger = logging.getLogger(__name__)


class SessionManager:
    """
    Hands out sessions bound to one engine.

    Sessions keep loaded attributes after commit (expire_on_commit=False)
    so results can be returned to callers once the transaction is closed.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self.Session = sessionmaker(bind=engine, expire_on_commit=False)
        logger.debug("Session manager initialized")

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope.

        Yields:
            Session: SQLAlchemy session

        Raises:
            DependencyError: Connection-level failures (retryable)
            ConflictError: Unique or check constraint violations
        """
        session = self.Session()
        try:
            yield session
            session.commit()
            logger.debug("Session committed")

        except (OperationalError, InterfaceError, DisconnectionError) as e:
            session.rollback()
            logger.error(f"Storage unavailable, rolled back: {e}")
            raise DependencyError(f'Storage unavailable: {getattr(e, "orig", None) or e}') from e

        except IntegrityError as e:
            session.rollback()
            logger.warning(f"Constraint violation, rolled back: {e.orig}")
            raise ConflictError(f'Write rejected by storage constraint: {e.orig}') from e

        except BillingError as e:
            session.rollback()
            logger.debug(f"Session rolled back: {e.kind}: {e.message}")
            raise

        except Exception as e:
            session.rollback()
            logger.error(f"Session rolled back due to error: {e}")
            raise

        finally:
            session.close()
