import os
import tempfile

# Settings are read at import time, so the environment is prepared first.
os.environ["APP_ENV"] = "test"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["ADMIN_EMAIL"] = ""
os.environ["ADMIN_PASS"] = ""
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="marketplace-images-")

import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import main

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "adminpass"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture
def db(monkeypatch):
    mock_db = mongomock.MongoClient().marketplace_test
    monkeypatch.setattr(database, "db", mock_db)
    return mock_db


@pytest.fixture
def client(db):
    return TestClient(main.app)


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def png(name: str = "photo.png"):
    return ("images", (name, PNG_BYTES, "image/png"))


LISTING_FIELDS = {
    "name": "Vintage bicycle",
    "description": "Steel frame, recently serviced",
    "phone_no": "5551234567",
    "city": "Austin",
    "state": "TX",
}


@pytest.fixture
def admin_token(client, db):
    main.seed_admin(db, ADMIN_EMAIL, ADMIN_PASSWORD)
    res = client.post("/admin/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert res.status_code == 200, res.text
    client.cookies.clear()
    return res.json()["token"]


@pytest.fixture
def make_user(client):
    """Sign up and log in a member; returns (token, user_id)."""

    def _make(email: str = "user1@example.com", name: str = "Member One", password: str = "password123"):
        res = client.post("/auth/signup", json={"name": name, "email": email, "password": password})
        assert res.status_code == 201, res.text
        res = client.post("/auth/login", json={"email": email, "password": password})
        assert res.status_code == 200, res.text
        client.cookies.clear()
        body = res.json()
        return body["token"], body["user"]["id"]

    return _make


@pytest.fixture
def create_listing(client):
    def _create(token: str, **overrides):
        data = {**LISTING_FIELDS, **overrides}
        res = client.post("/products/create", data=data, files=[png()], headers=bearer(token))
        assert res.status_code == 201, res.text
        return res.json()["product"]

    return _create
