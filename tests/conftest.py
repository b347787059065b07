from types import SimpleNamespace

import mongomock
import pytest
from fastapi.testclient import TestClient

from main import create_app
from settings import Settings


@pytest.fixture
def settings():
    return Settings(jwt_secret="test-secret", bcrypt_rounds=4, environment="test")


@pytest.fixture
def db():
    return mongomock.MongoClient()["sporty_test"]


@pytest.fixture
def client(settings, db):
    with TestClient(create_app(settings, db)) as c:
        yield c


@pytest.fixture
def register(client):
    """Register a user and return its id, token and auth headers."""

    def _register(name, role, email=None, password="secret123"):
        email = email or "%s@sporty.io" % name.lower().replace(" ", ".")
        resp = client.post(
            "/auth/register",
            json={"name": name, "email": email, "password": password, "role": role},
        )
        assert resp.status_code == 201, resp.text
        data = resp.json()["data"]
        return SimpleNamespace(
            id=data["user"]["id"],
            token=data["token"],
            user=data["user"],
            headers={"Authorization": "Bearer %s" % data["token"]},
        )

    return _register


@pytest.fixture
def player(register):
    return register("Ana Silva", "player")


@pytest.fixture
def scout(register):
    return register("Sam Reed", "scout")


@pytest.fixture
def coach(register):
    return register("Carla Diaz", "coach")


@pytest.fixture
def club(register):
    return register("Alpha FC", "club")
