import os
import tempfile
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import Session

from config import Config
from app import create_app
from app import database
from app.database import Base, create_all, get_session
from app.models import (
    Tenant, AppUser, Profile, TenantSubscription, PortalClient, Contract
)

_db_dir = tempfile.mkdtemp(prefix='agency-tests-')


class TestConfig(Config):
    """Configuration for tests: SQLite file database, no mail, no CSRF."""
    TESTING = True
    WTF_CSRF_ENABLED = False
    SQLALCHEMY_DATABASE_URI = f"sqlite:///{os.path.join(_db_dir, 'test.db')}"
    SQLALCHEMY_ECHO = False
    MAIL_SUPPRESS_SEND = True
    CRON_SECRET = 'test-cron-secret'
    TENANT_BASE_DOMAIN = 'agencyportal.test'
    RATE_LIMIT_BACKEND = 'sql'
    TRUST_UPSTREAM_IDENTITY = False
    TRUST_PROXY_HEADERS = False
    SESSION_COOKIE_SECURE = False


class FakeClock:
    """Controllable clock for expiry and window tests."""

    def __init__(self, now=None):
        self.now = now or datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app(TestConfig)
    with app.app_context():
        create_all()
    return app


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """
    Database session for test setup and assertions.

    Independent of the request-scoped session, so objects created here stay
    usable after requests tear their own session down. Call
    session.expire_all() before reading rows a request has changed.
    """
    session = Session(bind=database.engine, expire_on_commit=False)
    yield session
    session.rollback()
    session.close()


@pytest.fixture(autouse=True)
def clean_database(app):
    """Empty every table after each test."""
    yield
    get_session().remove()
    with database.engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def run_in_threads(app):
    """
    Factory: run_in_threads(n, work) -> results of work(session) in n threads.

    Each thread gets its own Session on the file database and starts work
    at the same moment. An exception raised by work is returned as the
    thread's result.
    """
    def run(n, work):
        barrier = threading.Barrier(n)

        def worker(_):
            thread_session = Session(bind=database.engine, expire_on_commit=False)
            try:
                barrier.wait(timeout=10)
                return work(thread_session)
            except Exception as e:
                thread_session.rollback()
                return e
            finally:
                thread_session.close()

        with ThreadPoolExecutor(max_workers=n) as pool:
            return list(pool.map(worker, range(n)))
    return run


def _make_tenant(session, name, plan='free', **kwargs):
    suffix = str(uuid.uuid4())[:8]
    tenant = Tenant(
        name=f'{name} {suffix}',
        subdomain=f'{name.lower().replace(" ", "-")}-{suffix}',
        active=True,
        **kwargs
    )
    session.add(tenant)
    session.flush()
    session.add(TenantSubscription(tenant_id=tenant.id, plan_type=plan, status='active'))
    session.commit()
    return tenant


def _make_user(session, tenant, role='owner', password='password123'):
    suffix = str(uuid.uuid4())[:8]
    user = AppUser(
        email=f'user-{suffix}@test.com',
        full_name='Test User',
        active=True
    )
    user.set_password(password)
    session.add(user)
    session.flush()
    session.add(Profile(user_id=user.id, tenant_id=tenant.id, role=role))
    session.commit()
    return user


@pytest.fixture(scope='function')
def tenant1(session):
    """First test tenant, on the professional plan."""
    return _make_tenant(session, 'Agency One', plan='professional')


@pytest.fixture(scope='function')
def tenant2(session):
    """Second test tenant for isolation tests."""
    return _make_tenant(session, 'Agency Two', plan='professional')


@pytest.fixture(scope='function')
def free_tenant(session):
    """Tenant on the free plan (no contracts, no workflows)."""
    return _make_tenant(session, 'Free Agency', plan='free')


@pytest.fixture(scope='function')
def make_user(session):
    """Factory: make_user(tenant, role='member')."""
    def factory(tenant, role='owner', password='password123'):
        return _make_user(session, tenant, role=role, password=password)
    return factory


@pytest.fixture(scope='function')
def user1(session, tenant1):
    """Owner of tenant1."""
    return _make_user(session, tenant1)


@pytest.fixture(scope='function')
def user2(session, tenant2):
    """Owner of tenant2."""
    return _make_user(session, tenant2)


@pytest.fixture(scope='function')
def portal_client1(session, tenant1):
    """Portal client of tenant1 with password 'portal-pass-1'."""
    client = PortalClient(tenant_id=tenant1.id, name='Client One', email='client@acme.test', is_active=True)
    client.set_password('portal-pass-1')
    session.add(client)
    session.commit()
    return client


@pytest.fixture(scope='function')
def portal_client2(session, tenant2):
    """Portal client of tenant2 sharing portal_client1's email."""
    client = PortalClient(tenant_id=tenant2.id, name='Client Two', email='client@acme.test', is_active=True)
    client.set_password('portal-pass-2')
    session.add(client)
    session.commit()
    return client


@pytest.fixture(scope='function')
def contracts(session, tenant1, tenant2, portal_client1, portal_client2):
    """Two contracts per tenant; the first of each shared with its portal client."""
    rows = {
        't1_shared': Contract(tenant_id=tenant1.id, portal_client_id=portal_client1.id, title='T1 Retainer'),
        't1_internal': Contract(tenant_id=tenant1.id, title='T1 Internal'),
        't2_shared': Contract(tenant_id=tenant2.id, portal_client_id=portal_client2.id, title='T2 Retainer'),
        't2_internal': Contract(tenant_id=tenant2.id, title='T2 Internal'),
    }
    session.add_all(rows.values())
    session.commit()
    return rows


@pytest.fixture(scope='function')
def authenticated_client(client, user1):
    """Test client logged in as user1 (owner of tenant1)."""
    with client.session_transaction() as sess:
        sess['user_id'] = user1.id
    return client


@pytest.fixture
def login_as(client):
    """Factory: login_as(user) puts user.id into the signed session cookie."""
    def login(user):
        with client.session_transaction() as sess:
            sess['user_id'] = user.id
        return client
    return login
