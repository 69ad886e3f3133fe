import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app


@pytest.fixture
def settings(tmp_path):
    return Settings(
        jwt_secret="test-secret",
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        bcrypt_rounds=4,
    )


@pytest.fixture
def app(settings):
    app = create_app(settings)
    yield app
    app.state.engine.dispose()


@pytest.fixture
def client(app):
    return TestClient(app)


def register(client, email="user-a@test.com", password="pw1"):
    res = client.post("/api/register", json={"email": email, "password": password})
    assert res.status_code == 200, res.text
    return res.json()


def auth(user):
    return {"Authorization": f"Bearer {user['token']}"}


@pytest.fixture
def user(client):
    return register(client)


@pytest.fixture
def headers(user):
    return auth(user)
