import pytest

from app import create_app
from config import TestingConfig


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    yield app

    from models import db
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def register(client, name="Ana Gómez", email="ana@x.com", password="secret1"):
    return client.post(
        "/api/auth/register",
        json={"name": name, "email": email, "password": password},
    )


def login(client, email="ana@x.com", password="secret1"):
    return client.post("/api/auth/login", json={"email": email, "password": password})


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_user(client):
    """Register and log in a user, returning (user_data, auth headers)."""

    def _make_user(name="Ana Gómez", email="ana@x.com", password="secret1"):
        resp = register(client, name=name, email=email, password=password)
        assert resp.status_code == 201, resp.get_json()
        token = login(client, email=email, password=password).get_json()["data"]["token"]
        return resp.get_json()["data"], auth_header(token)

    return _make_user


@pytest.fixture
def make_task(client):
    def _make_task(headers, title="Write report", description="Draft the quarterly report", **extra):
        resp = client.post(
            "/api/tasks",
            json={"title": title, "description": description, **extra},
            headers=headers,
        )
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()["data"]

    return _make_task
