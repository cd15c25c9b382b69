import os
import sys

import pytest
import redis

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from app import create_app  # noqa: E402
from extensions import db  # noqa: E402


WALLET = "0x52908400098527886E0F7030069857D2E4169EE7"


class MemoryRedis:
    """Just enough of the redis client API for the streak stores."""

    def __init__(self):
        self.data = {}

    def get(self, key):
        value = self.data.get(key)
        return value.encode("utf-8") if isinstance(value, str) else value

    def set(self, key, value):
        self.data[key] = value
        return True

    def delete(self, *keys):
        return sum(1 for k in keys if self.data.pop(k, None) is not None)


class DownRedis(MemoryRedis):
    def get(self, key):
        raise redis.ConnectionError("redis is down")

    def set(self, key, value):
        raise redis.ConnectionError("redis is down")

    def delete(self, *keys):
        raise redis.ConnectionError("redis is down")


@pytest.fixture
def redis_client():
    return MemoryRedis()


@pytest.fixture
def app(redis_client):
    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "SQLALCHEMY_ENGINE_OPTIONS": {},
            "RATELIMIT_ENABLED": False,
            "ADMIN_API_KEY": "test-admin-key",
        },
        redis_client=redis_client,
    )
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def services(app):
    return app.extensions["streaks"]


@pytest.fixture
def client(app):
    return app.test_client()
