"""Shared fixtures: in-memory SQLite store, service, Flask client, tokens."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from billing.service import BillingService
from billing.store import BillingStore
from common.config import BillingConfig, DatabaseConfig, DatabaseType

JWT_SECRET = 'test-secret'
ORG_ID = '5f0c2a9e-0000-4000-8000-000000000001'
OTHER_ORG_ID = '7b1d3c4f-0000-4000-8000-000000000002'
PROPERTY_ID = 'a1b2c3d4-0000-4000-8000-00000000000a'
OWNER_ID = 'u-owner-0001'


@pytest.fixture
def store():
    db_config = DatabaseConfig(db_type=DatabaseType.SQLITE, database=':memory:')
    store = BillingStore.from_config(db_config, create_schema=True)
    yield store
    store.engine.dispose()


@pytest.fixture
def billing_config():
    return BillingConfig(portal_url='https://portal.example.com')


@pytest.fixture
def service(store, billing_config):
    return BillingService(store, billing_config)


@pytest.fixture
def org(service):
    service.add_organization('Maple Stays', 'owner@maplestays.example', org_id=ORG_ID)
    service.add_property(ORG_ID, 'Lakeview Cabin', owner_user_id=OWNER_ID, property_id=PROPERTY_ID)
    return ORG_ID


@pytest.fixture
def march_ledger(service, org):
    """+$5,000.00 revenue and -$800.00 expense in March 2025."""
    service.add_ledger_entry(org, 500000, '2025-03-05', PROPERTY_ID, 'March stays')
    service.add_ledger_entry(org, -80000, '2025-03-20', PROPERTY_ID, 'Cleaning')
    return org


@pytest.fixture(scope='session')
def audit_dir(tmp_path_factory):
    return tmp_path_factory.mktemp('audit')


@pytest.fixture
def app(service, audit_dir):
    from web.app import create_app
    app = create_app(
        config={
            'TESTING': True,
            'AUTH_ENABLED': True,
            'JWT_SECRET': JWT_SECRET,
            'JWT_ALGORITHM': 'HS256',
            'AUDIT_LOG_DIR': str(audit_dir),
        },
        service=service,
    )
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def make_token(role, sub='tester', secret=JWT_SECRET, expires_in=3600, **claims):
    payload = {
        'sub': sub,
        'role': role,
        'exp': datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        **claims,
    }
    return jwt.encode(payload, secret, algorithm='HS256')


@pytest.fixture
def admin_headers():
    return {'Authorization': f'Bearer {make_token("admin", sub="alice")}'}


@pytest.fixture
def member_headers():
    return {'Authorization': f'Bearer {make_token("member", sub="bob", org_id=ORG_ID)}'}
