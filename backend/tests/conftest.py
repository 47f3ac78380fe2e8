import os
import sys
import uuid
from pathlib import Path

import pytest

from visualgit.utils import disposable_db

STAMP = Path(__file__).resolve().parents[1] / ".test-db-name"


def pytest_configure(config):
    """Give the run its own database before the app (and its engine) is imported."""
    if os.environ.get("PYTEST_XDIST_WORKER"):
        name = disposable_db.read_stamp(STAMP)
        if name:
            os.environ["ENV"] = "test"
            os.environ["DB_NAME"] = name
            os.environ.pop("DATABASE_URL", None)
            return
    disposable_db.provision("test", STAMP)


def pytest_unconfigure(config):
    if os.environ.get("PYTEST_XDIST_WORKER"):
        return
    database = sys.modules.get("visualgit.database")
    if database is not None:
        database.engine.dispose()
    disposable_db.teardown(STAMP)


def unique_email(prefix="user"):
    return f"{prefix}-{uuid.uuid4().hex[:10]}@example.com"


@pytest.fixture
def make_user():
    """Register and log in a fresh user; returns (user json, auth headers, login json)."""
    from fastapi.testclient import TestClient
    from visualgit.main import app

    client = TestClient(app)

    def _make(email=None, password="secret123"):
        email = email or unique_email()
        r = client.post('/auth/register', json={'email': email, 'password': password})
        assert r.status_code == 201, r.text
        login = client.post('/auth/login', json={'email': email, 'password': password})
        assert login.status_code == 200, login.text
        body = login.json()
        return body['user'], {'Authorization': f"Bearer {body['accessToken']}"}, body

    return _make


@pytest.fixture
def lesson_factory():
    """Create lessons through the API with unique slugs."""
    from fastapi.testclient import TestClient
    from visualgit.main import app

    client = TestClient(app)

    def _create(**overrides):
        slug = overrides.pop('slug', f"lesson-{uuid.uuid4().hex[:8]}")
        payload = {'title': 'Branching basics', 'content': 'Branches are movable pointers.', 'slug': slug}
        payload.update(overrides)
        r = client.post('/lessons', json=payload)
        assert r.status_code == 201, r.text
        return r.json()

    return _create
