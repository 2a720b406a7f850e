import os
import sys
from urllib.parse import urlparse, parse_qs

import pytest
from fastapi.testclient import TestClient

# Make `src` and `main` importable when pytest runs from any CWD
root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if root not in sys.path:
    sys.path.insert(0, root)

import src.database.manager as db_manager_mod
from src.admin.service import AdminService
from src.database.manager import DatabaseManager
from src.database.models import Base
from src.rbac.options import RBACOptions
from src.rbac.seed import seed_rbac
from src.services import email_service

DEFAULT_PASSWORD = "password123"


def token_from_url(url: str) -> str:
    return parse_qs(urlparse(url).query)["token"][0]


class Outbox:
    """Records the transactional emails a test triggered"""

    def __init__(self):
        self.messages = []

    def record(self, kind, to, url=None, **extra):
        self.messages.append({"kind": kind, "to": to, "url": url, **extra})
        return True

    def of_kind(self, kind):
        return [m for m in self.messages if m["kind"] == kind]

    def last(self, kind):
        sent = self.of_kind(kind)
        assert sent, f"no {kind} email was sent"
        return sent[-1]


@pytest.fixture
def db_manager(monkeypatch):
    """In-memory database with the schema and RBAC seed, patched in as the global manager."""
    mgr = DatabaseManager("sqlite:///:memory:", echo=False)
    mgr.create_tables(Base)
    seed_rbac(mgr, RBACOptions.from_config())
    monkeypatch.setattr(db_manager_mod, "_db_manager", mgr)
    yield mgr
    mgr.close()


@pytest.fixture
def outbox(monkeypatch):
    box = Outbox()
    monkeypatch.setattr(email_service, "send_verification_email",
                        lambda user, url: box.record("verify", user.email, url))
    monkeypatch.setattr(email_service, "send_change_email_verification",
                        lambda user, new_email, url: box.record("change_email", new_email, url))
    monkeypatch.setattr(email_service, "send_reset_password_email",
                        lambda user, url: box.record("reset", user.email, url))
    monkeypatch.setattr(email_service, "send_welcome_email",
                        lambda user: box.record("welcome", user.email))
    monkeypatch.setattr(email_service, "send_password_changed_email",
                        lambda user: box.record("password_changed", user.email))
    monkeypatch.setattr(email_service, "send_new_login_email",
                        lambda user, device, secure_account_link=None: box.record("new_login", user.email,
                                                                                 device=device))
    return box


@pytest.fixture
def client(db_manager, outbox):
    from main import app
    return TestClient(app)


def make_user(db_manager, email="alice@example.com", name="Alice", password=DEFAULT_PASSWORD,
              role="user", verified=True):
    return AdminService(db_manager).create_user(
        email, password, name, role=role, data={"email_verified": verified}
    )["user"]


def sign_in(client, email, password=DEFAULT_PASSWORD):
    resp = client.post("/api/v1/auth/sign-in/email", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    # Callers pass the token explicitly; keep the cookie jar clean
    client.cookies.clear()
    return resp.json()["token"]


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user(db_manager):
    return make_user(db_manager)


@pytest.fixture
def admin(db_manager):
    return make_user(db_manager, email="admin@example.com", name="Admin", role="admin")


@pytest.fixture
def admin_headers(client, admin):
    return bearer(sign_in(client, admin["email"]))
