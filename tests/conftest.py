import os
import smtplib
import sys
import tempfile
from pathlib import Path

import mongomock
import pytest

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

os.environ.pop("DATABASE_URL", None)
os.environ.pop("EMAIL_USER", None)
os.environ.pop("EMAIL_PASS", None)
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="seratus-logs-")
os.environ["JWT_SECRET"] = "test-secret"

import database  # noqa: E402

# Every module binds `db` at import time, so the in-memory client must be in place first
database.db = mongomock.MongoClient().db

from fastapi.testclient import TestClient  # noqa: E402

from config import Config  # noqa: E402
from schemas import Artworks, Products  # noqa: E402
import catalog  # noqa: E402
import mailer  # noqa: E402
import main  # noqa: E402
import storage  # noqa: E402


@pytest.fixture(autouse=True)
def clean_db():
    for name in database.db.list_collection_names():
        database.db.drop_collection(name)
    yield


@pytest.fixture(autouse=True)
def public_dir(tmp_path, monkeypatch):
    root = tmp_path / "public"
    monkeypatch.setattr(Config, "PUBLIC_DIR", root)
    storage.ensure_directories()
    return root


@pytest.fixture
def db():
    return database.db


@pytest.fixture
def client(public_dir):
    with TestClient(main.app) as c:
        yield c


def login(client, username, password):
    r = client.post("/api/auth", json={"username": username, "password": password})
    assert r.status_code == 200, r.text
    # Tests pass credentials explicitly; keep the jar empty so anonymous calls stay anonymous
    client.cookies.clear()
    return {"Authorization": f"Bearer {r.json()['token']}"}


@pytest.fixture
def admin_headers(client):
    return login(client, Config.ADMIN_USERNAME, Config.ADMIN_PASSWORD)


@pytest.fixture
def user_headers(client, admin_headers):
    r = client.post("/api/admin/users", headers=admin_headers, json={
        "username": "customer",
        "email": "customer@example.com",
        "password": "secret123",
        "role": "user",
    })
    assert r.status_code == 201, r.text
    return login(client, "customer", "secret123")


@pytest.fixture
def make_product():
    def _make(**overrides):
        data = {
            "title": "Neon Koi",
            "description": "Digital painting of a koi pond at night",
            "price": 100000,
            "discount": 0,
            "category": "Digital Art",
            "file_url": "/uploads/neon-koi.png",
            "watermark_url": "/uploads/neon-koi-wm.png",
            "tags": ["koi", "neon"],
        }
        data.update(overrides)
        return catalog.create_product(Products(**data))
    return _make


@pytest.fixture
def make_artwork():
    def _make(**overrides):
        data = {
            "title": "Study",
            "description": "Sketchbook study",
            "images": ["/uploads/study-1.png"],
            "tags": [],
        }
        data.update(overrides)
        return catalog.create_artwork(Artworks(**data))
    return _make


@pytest.fixture
def order_payload():
    def _payload(product_id, **overrides):
        data = {
            "customer_name": "Sari Wulandari",
            "customer_email": "sari@example.com",
            "customer_phone": "+62 812 0000 0000",
            "customer_address": "Jl. Merdeka 1, Bandung",
            "product_id": product_id,
            "quantity": 1,
        }
        data.update(overrides)
        return data
    return _payload


class FakeSMTP:
    """Records outgoing mail instead of talking to a server."""

    sent = []
    fail_with = None

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port

    def starttls(self):
        pass

    def login(self, user, password):
        if FakeSMTP.fail_with is not None:
            raise FakeSMTP.fail_with

    def sendmail(self, sender, recipients, message):
        FakeSMTP.sent.append({"from": sender, "to": recipients, "message": message})

    def quit(self):
        pass


@pytest.fixture
def smtp(monkeypatch):
    FakeSMTP.sent = []
    FakeSMTP.fail_with = None
    monkeypatch.setattr(Config, "EMAIL_USER", "studio@example.com")
    monkeypatch.setattr(Config, "EMAIL_PASS", "app-password")
    monkeypatch.setattr(mailer.smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


@pytest.fixture
def smtp_down(smtp):
    smtp.fail_with = smtplib.SMTPAuthenticationError(535, b"Authentication failed")
    return smtp
