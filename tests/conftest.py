"""Shared fixtures for the knowledge library test suite.

Design:
- app: fresh in-memory SQLite database per test, app context pushed
- user / other_user: two accounts for ownership checks
- auth_client: test client already logged in as ``user``
"""

import pytest

from app import create_app
from credentials import UserIdentity, create_user
from models import db


PASSWORD = "correct horse battery staple"


@pytest.fixture
def app():
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "LOG_LEVEL": "DEBUG",
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def user(app) -> UserIdentity:
    created = create_user("alice", PASSWORD)
    return UserIdentity(created.id, created.username)


@pytest.fixture
def other_user(app) -> UserIdentity:
    created = create_user("bob", PASSWORD)
    return UserIdentity(created.id, created.username)


def login(client, username, password=PASSWORD):
    return client.post("/api/login", json={"username": username, "password": password})


@pytest.fixture
def auth_client(client, user):
    response = login(client, user.username)
    assert response.status_code == 200
    return client
