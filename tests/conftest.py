import pytest
from firebase_admin import messaging

from app import create_app, firebase_init
from app.services import usage_limits
from config import Config
from tests.fakes import FakeFirestore, FakeMessaging

TODAY = '2026-10-17'
YESTERDAY = '2026-10-16'


class TestingConfig(Config):
    TESTING = True
    SOCKETIO_ASYNC_MODE = 'threading'
    CORS_ALLOWED_ORIGINS = ''
    NOTIFICATION_RETENTION = 30
    NOTIFICATION_PAGE_SIZE = 15


@pytest.fixture
def db(monkeypatch):
    fake = FakeFirestore()
    monkeypatch.setattr(firebase_init, '_app', object())
    monkeypatch.setattr(firebase_init, '_db', fake)
    return fake


@pytest.fixture
def fcm(monkeypatch):
    fake = FakeMessaging()
    monkeypatch.setattr(messaging, 'send', fake.send)
    return fake


@pytest.fixture
def today(monkeypatch):
    monkeypatch.setattr(usage_limits, '_today', lambda: TODAY)
    return TODAY


@pytest.fixture
def app(db, fcm, today):
    return create_app(TestingConfig)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def family(db):
    """A linked parent/child pair; only the parent has a push token."""
    from app.services import device_links
    device_links.register('p1', 'parent', 'parent-token', family_id='fam1')
    device_links.register('c1', 'child', None, family_id='fam1')
    device_links.link('p1', 'c1')
    return 'p1', 'c1'
