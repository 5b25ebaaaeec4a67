import base64
from datetime import datetime, timedelta

import pytest

from app import create_app
from models import db


class FakeClock:
    """Stands in for utils.utcnow; tests move it forward explicitly."""

    def __init__(self, start=datetime(2024, 5, 1, 12, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingMailer:
    def __init__(self):
        self.sent = []

    def send(self, to_email, subject, body):
        self.sent.append((to_email, subject, body))
        return True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def app(tmp_path, clock, mailer):
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
        "SECRET_KEY": "test-secret",
        "ENCRYPTION_KEY_B64": base64.b64encode(b"k" * 32).decode(),
        "UPLOAD_FOLDER": str(tmp_path / "uploads"),
        "SHARE_BASE_URL": "https://docs.example.com",
        "CLOUDINARY_CLOUD_NAME": None,
        "CLOUDINARY_UPLOAD_PRESET": None,
    }, mailer=mailer, clock=clock)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def services(app):
    with app.app_context():
        yield app.extensions["docshare"]


@pytest.fixture
def client(app):
    yield app.test_client()


def make_profile(store, uid, role="user", display_name=""):
    store.create("users", {
        "id": uid,
        "email": f"{uid}@example.com",
        "display_name": display_name,
        "role": role,
    })
    return store.get("users", uid)


def make_document(documents, owner_id, **overrides):
    data = {
        "title": "Passport",
        "description": "Scanned passport",
        "category": "government",
        "document_type": "passport",
        "media_url": "https://res.cloudinary.com/demo/image/upload/v1/government-ids/passport.png",
        "media_id": "government-ids/passport",
        "file_size": 1024,
        "mime_type": "image/png",
        "tags": ["travel"],
    }
    data.update(overrides)
    result = documents.upload_document(owner_id, data)
    assert result["success"], result
    return result["document_id"]
