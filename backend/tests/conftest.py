import os
from datetime import timedelta

import httpx
import pytest
import pytest_asyncio

from kudumbam.client.api_client import ApiClient
from kudumbam.client.storage import MemoryStorage
from kudumbam.config import get_settings
from kudumbam.core.database import Database, set_database, to_db_time, utc_now
from kudumbam.utils.security import hash_password

# The in-process app shares one rate limiter across the whole run.
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "100000")

BASE_URL = "http://testserver/api/v1"


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def db(tmp_path):
    database = Database(str(tmp_path / "kudumbam-test.sqlite3"))
    set_database(database)
    yield database
    set_database(None)


@pytest.fixture
def make_invitation(db):
    """Insert an invitation row directly; returns its id."""

    def _make(code="ABC123", email="x@y.com", phone=None, name="Invited Person",
              inviter_type="admin", inviter_id=1, days=7, status="pending"):
        now = utc_now()
        cursor = db.execute(
            """
            INSERT INTO invitations (
                invitation_code, invited_name, invited_email, invited_phone, invitation_type,
                invited_by_type, invited_by_id, status, created_at, expires_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                code, name, email, phone, "email" if email else "phone",
                inviter_type, inviter_id, status, to_db_time(now), to_db_time(now + timedelta(days=days)),
            ),
        )
        return cursor.lastrowid

    return _make


@pytest.fixture
def make_user(db):
    """Insert a user row directly (approved by default); returns the row."""

    def _make(email="member@example.com", password="secret123", full_name="Member One",
              approval_status="approved", user_type="Approved", phone=None, **columns):
        password_hash, salt = hash_password(password)
        now = to_db_time(utc_now())
        values = {
            "email": email,
            "phone": phone,
            "password_hash": password_hash,
            "password_salt": salt,
            "full_name": full_name,
            "approval_status": approval_status,
            "user_type": user_type,
            "created_at": now,
            "updated_at": now,
            **columns,
        }
        names = ", ".join(values)
        marks = ", ".join("?" for _ in values)
        cursor = db.execute(f"INSERT INTO users ({names}) VALUES ({marks})", tuple(values.values()))
        return db.fetch_one("SELECT * FROM users WHERE id = ?", (cursor.lastrowid,))

    return _make


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest_asyncio.fixture
async def client_factory(db):
    """Builds extra ApiClients talking to the app in-process; all closed afterwards."""
    from kudumbam.main import app

    clients = []

    def _make(storage=None, admin=False):
        client = ApiClient(
            storage=storage if storage is not None else MemoryStorage(),
            base_url=BASE_URL,
            transport=httpx.ASGITransport(app=app),
            admin=admin,
        )
        clients.append(client)
        return client

    yield _make
    for client in clients:
        await client.aclose()


@pytest_asyncio.fixture
async def api(client_factory, storage):
    """ApiClient for an ordinary member, sharing the `storage` fixture."""
    return client_factory(storage)


@pytest_asyncio.fixture
async def admin_api(client_factory):
    """ApiClient already holding an admin session for the seeded admin."""
    client = client_factory(admin=True)
    data = await client.post("/admin/login", {"username": "admin", "password": "admin123"})
    client.storage.save_admin_session(data["session_token"], data["user"])
    return client
