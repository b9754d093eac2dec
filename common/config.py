"""
Typed configuration for the billing engine.
Built from the unified config loader (YAML + environment secrets).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Any


class DatabaseType(Enum):
    """Supported database types"""
    POSTGRESQL = "postgresql"
    MARIADB = "mariadb"
    SQLITE = "sqlite"


@dataclass
class DatabaseConfig:
    """
    Database connection configuration.
    Supports PostgreSQL, MariaDB, and SQLite (local development and tests).
    """
    db_type: DatabaseType
    host: str = ''
    port: int = 0
    database: str = ''
    username: str = ''
    password: str = ''
    url: Optional[str] = None  # Full URL override (DATABASE_URL)

    # Connection pool settings
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    pool_pre_ping: bool = True

    def __repr__(self) -> str:
        """Safe representation without password"""
        return (f"DatabaseConfig(db_type={self.db_type.value}, host={self.host}, "
                f"database={self.database}, username={self.username})")

    @classmethod
    def from_url(cls, url: str) -> 'DatabaseConfig':
        """Build a config from a SQLAlchemy URL, inferring the database type."""
        scheme = url.split(':', 1)[0].split('+', 1)[0].lower()
        db_type_map = {
            'postgresql': DatabaseType.POSTGRESQL,
            'postgres': DatabaseType.POSTGRESQL,
            'mysql': DatabaseType.MARIADB,
            'mariadb': DatabaseType.MARIADB,
            'sqlite': DatabaseType.SQLITE,
        }
        if scheme not in db_type_map:
            raise ValueError(f"Unsupported database URL scheme: {scheme}")
        return cls(db_type=db_type_map[scheme], url=url)


@dataclass
class BillingConfig:
    """Billing policy settings."""
    currency: str = 'CAD'
    default_tier: str = 'launch'
    invoice_prefix: str = 'INV'
    portal_url: str = 'http://localhost:3000'
    history_default_months: int = 12
    history_max_months: int = 36


@dataclass
class EmailConfig:
    """SMTP settings for invoice notifications."""
    enabled: bool = False
    smtp_host: str = ''
    smtp_port: int = 587
    smtp_user: str = ''
    smtp_password: str = ''
    use_tls: bool = True
    from_address: str = ''
    to_addresses: List[str] = field(default_factory=list)


@dataclass
class SlackConfig:
    """Slack webhook settings for invoice notifications."""
    enabled: bool = False
    webhook_url: str = ''
    channel: str = '#billing'
    username: str = 'Billing Engine'


@dataclass
class NotificationConfig:
    """Notification channels configuration."""
    email: EmailConfig = field(default_factory=EmailConfig)
    slack: SlackConfig = field(default_factory=SlackConfig)


@dataclass
class AuthConfig:
    """JWT settings for the HTTP API."""
    enabled: bool = True
    jwt_secret: Optional[str] = None
    algorithm: str = 'HS256'


def _section_value(section: Any, key: str, default: Any) -> Any:
    """Read key from a ConfigSection (or None) with a default."""
    if section is None:
        return default
    return section.get(key, default)


def load_billing_config(app_config) -> BillingConfig:
    """Build BillingConfig from the 'billing' YAML section."""
    section = app_config.billing
    defaults = BillingConfig()
    return BillingConfig(
        currency=_section_value(section, 'currency', defaults.currency),
        default_tier=_section_value(section, 'default_tier', defaults.default_tier),
        invoice_prefix=_section_value(section, 'invoice_prefix', defaults.invoice_prefix),
        portal_url=_section_value(section, 'portal_url', defaults.portal_url),
        history_default_months=int(_section_value(
            section, 'history_default_months', defaults.history_default_months)),
        history_max_months=int(_section_value(
            section, 'history_max_months', defaults.history_max_months)),
    )


def load_notification_config(app_config) -> NotificationConfig:
    """Build NotificationConfig from the 'notifications' YAML section."""
    email_cfg = app_config.notifications.email
    slack_cfg = app_config.notifications.slack

    email = EmailConfig()
    if email_cfg is not None:
        email = EmailConfig(
            enabled=bool(_section_value(email_cfg, 'enabled', False)),
            smtp_host=_section_value(email_cfg, 'smtp_host', ''),
            smtp_port=int(_section_value(email_cfg, 'smtp_port', 587)),
            smtp_user=_section_value(email_cfg, 'smtp_user', ''),
            smtp_password=_section_value(email_cfg, 'smtp_password_env', '') or '',
            use_tls=bool(_section_value(email_cfg, 'use_tls', True)),
            from_address=_section_value(email_cfg, 'from_address', ''),
            to_addresses=list(_section_value(email_cfg, 'to_addresses', [])),
        )

    slack = SlackConfig()
    if slack_cfg is not None:
        slack = SlackConfig(
            enabled=bool(_section_value(slack_cfg, 'enabled', False)),
            webhook_url=_section_value(slack_cfg, 'webhook_url_env', '') or '',
            channel=_section_value(slack_cfg, 'channel', '#billing'),
            username=_section_value(slack_cfg, 'username', 'Billing Engine'),
        )

    return NotificationConfig(email=email, slack=slack)


def load_auth_config(app_config) -> AuthConfig:
    """Build AuthConfig from the 'app' YAML section."""
    section = app_config.app.auth
    return AuthConfig(
        enabled=bool(_section_value(section, 'enabled', True)),
        jwt_secret=_section_value(section, 'jwt_secret_env', None),
        algorithm=_section_value(section, 'algorithm', 'HS256'),
    )
