import pytest
from sqlalchemy.dialects import mysql

from common.config import (
    DatabaseConfig, DatabaseType, load_auth_config, load_billing_config, load_notification_config,
)
from common.config_loader import AppConfig, get_database_config, reset_config
from common.engine import _build_connection_string
from common.models import Invoice
from common.upsert_strategies import (
    MariaDBUpsertStrategy, PostgreSQLUpsertStrategy, SQLiteUpsertStrategy, UpsertFactory,
)


@pytest.fixture
def config_dir(tmp_path):
    (tmp_path / 'billing.yaml').write_text(
        'currency: USD\n'
        'default_tier: elevate\n'
        'history_max_months: 24\n'
    )
    (tmp_path / 'notifications.yaml').write_text(
        'email:\n'
        '  enabled: true\n'
        '  smtp_host: smtp.test\n'
        '  smtp_password_env: TEST_SMTP_PASSWORD\n'
        '  to_addresses: [ops@test]\n'
        'slack:\n'
        '  enabled: true\n'
        '  webhook_url_env: TEST_SLACK_WEBHOOK\n'
    )
    (tmp_path / 'app.yaml').write_text(
        'auth:\n'
        '  enabled: false\n'
        '  jwt_secret_env: TEST_JWT_SECRET\n'
    )
    (tmp_path / 'database.yaml').write_text(
        'backend:\n'
        '  db_type: sqlite\n'
        '  name: ":memory:"\n'
    )
    return tmp_path


@pytest.fixture
def fresh_config(monkeypatch, config_dir):
    monkeypatch.setenv('BILLING_CONFIG_DIR', str(config_dir))
    monkeypatch.delenv('DATABASE_URL', raising=False)
    reset_config()
    yield
    reset_config()


def test_billing_section_with_defaults(config_dir):
    billing = load_billing_config(AppConfig(str(config_dir)))
    assert billing.currency == 'USD'
    assert billing.default_tier == 'elevate'
    assert billing.history_max_months == 24
    assert billing.history_default_months == 12
    assert billing.invoice_prefix == 'INV'


def test_env_suffixed_keys_resolve_from_environment(monkeypatch, config_dir):
    monkeypatch.setenv('TEST_SMTP_PASSWORD', 's3cret')
    monkeypatch.setenv('TEST_SLACK_WEBHOOK', 'https://hooks.test/x')
    monkeypatch.setenv('TEST_JWT_SECRET', 'jwt-secret')
    app_config = AppConfig(str(config_dir))

    notifications = load_notification_config(app_config)
    assert notifications.email.smtp_password == 's3cret'
    assert notifications.email.to_addresses == ['ops@test']
    assert notifications.slack.webhook_url == 'https://hooks.test/x'

    auth = load_auth_config(app_config)
    assert auth.enabled is False
    assert auth.jwt_secret == 'jwt-secret'


def test_missing_config_dir_gives_defaults(tmp_path):
    app_config = AppConfig(str(tmp_path / 'absent'))
    assert load_billing_config(app_config).currency == 'CAD'
    assert load_auth_config(app_config).enabled is True


def test_database_config_from_yaml(fresh_config):
    db_config = get_database_config('backend')
    assert db_config.db_type == DatabaseType.SQLITE
    assert _build_connection_string(db_config) == 'sqlite://'


def test_database_url_overrides_yaml(fresh_config, monkeypatch):
    monkeypatch.setenv('DATABASE_URL', 'postgresql+psycopg2://u:p@db:5432/billing')
    db_config = get_database_config('backend')
    assert db_config.db_type == DatabaseType.POSTGRESQL
    assert db_config.url == 'postgresql+psycopg2://u:p@db:5432/billing'


def test_connection_string_escapes_credentials():
    db_config = DatabaseConfig(db_type=DatabaseType.MARIADB, host='db', port=3306,
                               database='billing', username='svc', password='p@ss/word')
    assert _build_connection_string(db_config) == 'mysql+pymysql://svc:p%40ss%2Fword@db:3306/billing'


def test_unsupported_url_scheme():
    with pytest.raises(ValueError):
        DatabaseConfig.from_url('oracle://db/billing')


@pytest.mark.parametrize('db_type, strategy', [
    (DatabaseType.POSTGRESQL, PostgreSQLUpsertStrategy),
    (DatabaseType.SQLITE, SQLiteUpsertStrategy),
    (DatabaseType.MARIADB, MariaDBUpsertStrategy),
])
def test_upsert_factory(db_type, strategy):
    assert isinstance(UpsertFactory.get_strategy(db_type), strategy)


class _RecordingSession:
    def __init__(self):
        self.statements = []

    def execute(self, statement):
        self.statements.append(statement)


def test_mariadb_insert_if_absent_keeps_constraint_errors():
    session = _RecordingSession()
    values = {'id': 'inv-1', 'org_id': 'org-1', 'scope_key': '*', 'invoice_number': 'INV-202503-ORG1'}

    result = MariaDBUpsertStrategy().insert_if_absent(
        session, Invoice, values, ['org_id', 'bill_month', 'scope_key'])

    sql = str(session.statements[0].compile(dialect=mysql.dialect()))
    assert result is None
    assert 'IGNORE' not in sql
    assert 'ON DUPLICATE KEY UPDATE id = ' in sql
