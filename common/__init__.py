"""
Common infrastructure for the billing engine.

Configuration, database engine and sessions, ORM models, dialect-specific
upserts, calendar-month helpers and the error taxonomy.

Example Usage:
    from common import get_database_config, create_engine_from_config, SessionManager

    engine = create_engine_from_config(get_database_config('backend'))
    session_manager = SessionManager(engine)

    with session_manager.session_scope() as session:
        ...
"""

__version__ = '1.0.0'

# Configuration
from .config import (
    AuthConfig,
    BillingConfig,
    DatabaseConfig,
    DatabaseType,
    NotificationConfig,
)
from .config_loader import get_config, get_database_config

# Database engine and session management
from .engine import create_engine_from_config
from .session import SessionManager

# Models
from .models import Base, BaseModel, TimestampMixin
from .models import Organization, Property, LedgerEntry, Booking, FeePlan, Invoice, Payment

# Upsert strategies
from .upsert_strategies import (
    UpsertStrategy,
    UpsertFactory,
    PostgreSQLUpsertStrategy,
    SQLiteUpsertStrategy,
    MariaDBUpsertStrategy,
)

# Errors
from .exceptions import (
    BillingError,
    ValidationError,
    NotFoundError,
    ConflictError,
    DependencyError,
    FeeResolutionError,
)


__all__ = [
    # Version
    '__version__',

    # Configuration
    'AuthConfig',
    'BillingConfig',
    'DatabaseConfig',
    'DatabaseType',
    'NotificationConfig',
    'get_config',
    'get_database_config',

    # Database
    'create_engine_from_config',
    'SessionManager',

    # Models
    'Base',
    'BaseModel',
    'TimestampMixin',
    'Organization',
    'Property',
    'LedgerEntry',
    'Booking',
    'FeePlan',
    'Invoice',
    'Payment',

    # Upsert strategies
    'UpsertStrategy',
    'UpsertFactory',
    'PostgreSQLUpsertStrategy',
    'SQLiteUpsertStrategy',
    'MariaDBUpsertStrategy',

    # Errors
    'BillingError',
    'ValidationError',
    'NotFoundError',
    'ConflictError',
    'DependencyError',
    'FeeResolutionError',
]
