import pytest
from fastapi.testclient import TestClient

from config import Settings
from database import Database
from main import create_app


@pytest.fixture
def settings():
    return Settings(session_secret="test-secret", allowed_usernames=["desivar", "octocat"])


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def other_client(app, client):
    # Shares the running app (and its store) but keeps its own cookie jar
    return TestClient(app)


@pytest.fixture
def db(settings):
    database = Database(settings).connect()
    yield database
    database.close()


def login(client, username="desivar"):
    response = client.post("/auth/github", json={"username": username})
    assert response.status_code == 200, response.text
    return response.json()["user"]


@pytest.fixture
def user(client):
    return login(client)
