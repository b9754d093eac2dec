"""
Unified Configuration Loader for the Billing Engine

Loads configuration from YAML files and resolves secrets from the environment.
Provides a single source of truth for all application configuration.
"""

import os
import yaml
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from decouple import config as env_config

from .config import DatabaseConfig, DatabaseType

logger = logging.getLogger(__name__)


def _load_root_env():
    """Load root .env file for bootstrap secrets."""
    from dotenv import load_dotenv
    root_env = Path(__file__).parent.parent / '.env'
    if root_env.exists():
        load_dotenv(root_env)
        logger.debug(f"Loaded root .env from {root_env}")


# Load root .env on module import
_load_root_env()


class ConfigSection:
    """
    Dynamic configuration section that allows dot-notation access.
    Example: config.database.backend.host

    Keys ending in _env hold the NAME of an environment variable; reading
    them returns the variable's value instead.
    """

    def __init__(self, data: Dict[str, Any] = None):
        self._data = data or {}

    def __getattr__(self, name: str) -> Any:
        if name.startswith('_'):
            return super().__getattribute__(name)

        if name not in self._data:
            return None

        value = self._data[name]

        # If it's a dict, wrap it in ConfigSection for nested access
        if isinstance(value, dict):
            return ConfigSection(value)

        # If key ends with _env, resolve from environment
        if isinstance(value, str) and name.endswith('_env'):
            return self._resolve_env(value)

        return value

    @staticmethod
    def _resolve_env(env_key: str) -> Optional[str]:
        """Resolve an environment reference to its actual value."""
        return env_config(env_key, default=None)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a value with optional default."""
        value = getattr(self, key)
        return value if value is not None else default

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (does not resolve environment references)."""
        return self._data.copy()

    def __repr__(self):
        return f"ConfigSection({list(self._data.keys())})"


class AppConfig:
    """
    Main application configuration.
    Loads every YAML file of the config directory as a named section.
    """

    def __init__(self, config_dir: str = None):
        """
        Initialize configuration.

        Args:
            config_dir: Path to config directory containing YAML files
        """
        self._config_dir = Path(config_dir) if config_dir else self._find_config_dir()
        self._sections: Dict[str, ConfigSection] = {}
        self._load_configs()

    def _find_config_dir(self) -> Path:
        """Find config directory: env override, then cwd, then repository root."""
        env_dir = os.environ.get('BILLING_CONFIG_DIR')
        if env_dir:
            return Path(env_dir)

        config_path = Path.cwd() / "config"
        if config_path.exists():
            return config_path

        return Path(__file__).parent.parent / "config"

    def _load_configs(self):
        """Load all YAML config files."""
        if not self._config_dir.exists():
            logger.warning(f"Config directory not found: {self._config_dir}")
            return

        for yaml_file in sorted(self._config_dir.glob("*.yaml")):
            section_name = yaml_file.stem  # filename without extension
            try:
                with open(yaml_file, 'r') as f:
                    data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.error(f"Failed to load {yaml_file}: {e}")
                continue
            self._sections[section_name] = ConfigSection(data)
            logger.debug(f"Loaded config: {section_name}")

    def __getattr__(self, name: str) -> ConfigSection:
        if name.startswith('_'):
            return super().__getattribute__(name)

        if name in self._sections:
            return self._sections[name]

        # Return empty section for missing configs
        return ConfigSection({})


# =============================================================================
# Singleton instance and convenience functions
# =============================================================================

_config_instance: Optional[AppConfig] = None


def get_config(config_dir: str = None) -> AppConfig:
    """
    Get or create the global config instance.

    Args:
        config_dir: Path to config directory (only used on first call)

    Returns:
        AppConfig instance
    """
    global _config_instance

    if _config_instance is None:
        _config_instance = AppConfig(config_dir)

    return _config_instance


def reset_config():
    """Drop the global configuration so the next get_config() reloads it."""
    global _config_instance
    _config_instance = None


# =============================================================================
# Helper functions for common config access patterns
# =============================================================================

def get_database_config(db_name: str = 'backend') -> DatabaseConfig:
    """
    Build the database configuration.

    DATABASE_URL in the environment wins over the YAML block.

    Args:
        db_name: Database section name in database.yaml

    Returns:
        DatabaseConfig
    """
    url = env_config('DATABASE_URL', default=None)
    if url:
        return DatabaseConfig.from_url(url)

    config = get_config()
    db = getattr(config.database, db_name)

    if db is None:
        raise ValueError(f"Database config not found: {db_name}")

    db_type_str = (db.db_type or 'postgresql').lower()
    try:
        db_type = DatabaseType(db_type_str)
    except ValueError:
        raise ValueError(
            f"Unsupported database type: {db_type_str}. "
            f"Supported types: {', '.join([t.value for t in DatabaseType])}"
        )

    if db_type == DatabaseType.SQLITE:
        return DatabaseConfig(db_type=db_type, database=db.name or ':memory:')

    # password_env automatically resolves from environment due to _env suffix
    password = db.password_env
    if not password:
        raw_key = config.database.to_dict().get(db_name, {}).get('password_env', 'unknown')
        raise ValueError(f"Database password not set in environment variable: {raw_key}")

    pool = db.pool
    return DatabaseConfig(
        db_type=db_type,
        host=db.host,
        port=db.port or (5432 if db_type == DatabaseType.POSTGRESQL else 3306),
        database=db.name,
        username=db.username,
        password=password,
        pool_size=pool.size if pool and pool.size else 5,
        max_overflow=pool.max_overflow if pool and pool.max_overflow else 10,
        pool_timeout=pool.timeout if pool and pool.timeout else 30,
    )


def get_flask_config() -> Dict[str, Any]:
    """Get Flask configuration dictionary."""
    config = get_config()
    flask_cfg = config.app.flask

    # secret_key_env automatically resolves from environment due to _env suffix
    secret_key = flask_cfg.secret_key_env if flask_cfg else None
    if not secret_key:
        # Generate a random key if not configured
        import secrets
        secret_key = secrets.token_hex(32)
        logger.warning("Flask secret key not configured, using random key")

    return {
        'SECRET_KEY': secret_key,
        'DEBUG': bool(flask_cfg.debug) if flask_cfg else False,
        'JSON_SORT_KEYS': False,
    }
