"""
Kudumbam — SQLite Database
Single-file persistence for accounts, sessions, invitations, profile sections,
groups, announcements, help posts, password resets, location lookups and
feature switches.
"""

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional

from kudumbam.config import get_settings
from kudumbam.services.form_relationships import FALLBACK_OPTIONS
from kudumbam.utils.logger import logger
from kudumbam.utils.security import hash_password


DB_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def to_db_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime(DB_TIME_FORMAT)


def from_db_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.strptime(value, DB_TIME_FORMAT).replace(tzinfo=timezone.utc)


SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        email TEXT UNIQUE,
        phone TEXT,
        password_hash TEXT NOT NULL,
        password_salt TEXT NOT NULL,
        full_name TEXT NOT NULL,
        enrollment_number TEXT UNIQUE,
        user_number INTEGER,
        approval_status TEXT NOT NULL DEFAULT 'pending',
        user_type TEXT NOT NULL DEFAULT 'Registered',
        is_active INTEGER NOT NULL DEFAULT 1,
        created_via_invitation INTEGER NOT NULL DEFAULT 0,
        invitation_id INTEGER,
        referred_by_type TEXT,
        referred_by_id INTEGER,
        intro_completed INTEGER NOT NULL DEFAULT 0,
        questions_completed INTEGER NOT NULL DEFAULT 0,
        profile_completed INTEGER NOT NULL DEFAULT 0,
        profile_completion_step TEXT,
        gender TEXT,
        marriage_type TEXT,
        is_married TEXT,
        has_children TEXT,
        marriage_status TEXT,
        status_acceptance TEXT,
        role TEXT,
        district TEXT,
        institution TEXT,
        company TEXT,
        pin_code TEXT,
        approved_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS admin_users (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT UNIQUE NOT NULL,
        email TEXT,
        password_hash TEXT NOT NULL,
        password_salt TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sessions (
        session_id TEXT PRIMARY KEY,
        user_id INTEGER NOT NULL,
        user_type TEXT NOT NULL,
        created_at TEXT NOT NULL,
        expires_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_sessions_expires ON sessions(expires_at)",
    """
    CREATE TABLE IF NOT EXISTS invitations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        invitation_code TEXT UNIQUE NOT NULL,
        invited_name TEXT NOT NULL,
        invited_email TEXT,
        invited_phone TEXT,
        invitation_type TEXT NOT NULL DEFAULT 'email',
        invited_by_type TEXT NOT NULL,
        invited_by_id INTEGER NOT NULL,
        message TEXT,
        status TEXT NOT NULL DEFAULT 'pending',
        used_by INTEGER,
        used_at TEXT,
        created_at TEXT NOT NULL,
        expires_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS profile_sections (
        user_id INTEGER NOT NULL,
        section TEXT NOT NULL,
        data_json TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (user_id, section)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_groups (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        type TEXT NOT NULL DEFAULT 'custom',
        district TEXT,
        area TEXT,
        pin_code TEXT,
        created_by INTEGER,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS group_members (
        group_id INTEGER NOT NULL,
        user_id INTEGER NOT NULL,
        role TEXT NOT NULL DEFAULT 'member',
        added_by INTEGER,
        is_active INTEGER NOT NULL DEFAULT 1,
        joined_at TEXT NOT NULL,
        PRIMARY KEY (group_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS announcements (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        content TEXT NOT NULL,
        created_by INTEGER NOT NULL,
        target_groups TEXT NOT NULL DEFAULT '[]',
        is_pinned INTEGER NOT NULL DEFAULT 0,
        is_archived INTEGER NOT NULL DEFAULT 0,
        archived_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS announcement_likes (
        announcement_id INTEGER NOT NULL,
        user_id INTEGER NOT NULL,
        created_at TEXT NOT NULL,
        PRIMARY KEY (announcement_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS announcement_comments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        announcement_id INTEGER NOT NULL,
        user_id INTEGER NOT NULL,
        parent_id INTEGER,
        content TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS announcement_views (
        announcement_id INTEGER NOT NULL,
        user_id INTEGER NOT NULL,
        viewed_at TEXT NOT NULL,
        PRIMARY KEY (announcement_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS password_reset_requests (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        request_token TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending',
        ip_address TEXT,
        user_agent TEXT,
        requested_at TEXT NOT NULL,
        approved_at TEXT,
        approved_by INTEGER,
        reset_token TEXT UNIQUE,
        reset_token_expires TEXT,
        used_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS help_posts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        title TEXT NOT NULL,
        content TEXT NOT NULL,
        category TEXT NOT NULL DEFAULT 'general',
        visibility TEXT NOT NULL DEFAULT 'public',
        target_groups TEXT NOT NULL DEFAULT '[]',
        target_areas TEXT NOT NULL DEFAULT '[]',
        target_institutions TEXT NOT NULL DEFAULT '[]',
        target_companies TEXT NOT NULL DEFAULT '[]',
        status TEXT NOT NULL DEFAULT 'pending',
        is_pinned INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS help_post_likes (
        post_id INTEGER NOT NULL,
        user_id INTEGER NOT NULL,
        created_at TEXT NOT NULL,
        PRIMARY KEY (post_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS help_post_comments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        post_id INTEGER NOT NULL,
        user_id INTEGER NOT NULL,
        parent_id INTEGER,
        content TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS help_post_views (
        post_id INTEGER NOT NULL,
        user_id INTEGER NOT NULL,
        PRIMARY KEY (post_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS districts (
        state TEXT NOT NULL,
        name TEXT NOT NULL,
        PRIMARY KEY (state, name)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS post_offices (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        pin_code TEXT NOT NULL,
        office_name TEXT NOT NULL,
        office_type TEXT NOT NULL,
        district TEXT NOT NULL,
        state TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_post_offices_pin ON post_offices(pin_code)",
    """
    CREATE TABLE IF NOT EXISTS feature_switches (
        feature_name TEXT PRIMARY KEY,
        is_enabled INTEGER NOT NULL DEFAULT 1,
        category TEXT NOT NULL,
        description TEXT,
        updated_by_admin INTEGER,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS form_values (
        id INTEGER PRIMARY KEY,
        value_type TEXT NOT NULL,
        value TEXT NOT NULL,
        parent_id INTEGER
    )
    """,
]


# ──────────────────────────────────────────────────────────────
# Seed data
# ──────────────────────────────────────────────────────────────

SEED_DISTRICTS = {
    "Tamil Nadu": [
        "Chennai", "Coimbatore", "Erode", "Karur", "Madurai",
        "Namakkal", "Salem", "Tiruchirappalli", "Tiruppur",
    ],
    "Karnataka": ["Bengaluru Urban", "Mysuru", "Mangaluru"],
    "Kerala": ["Ernakulam", "Palakkad", "Thiruvananthapuram"],
    "Puducherry": ["Puducherry", "Karaikal"],
}

SEED_POST_OFFICES = [
    ("600001", "Chennai G.P.O.", "Head Post Office", "Chennai", "Tamil Nadu"),
    ("600001", "Parrys", "Sub Post Office", "Chennai", "Tamil Nadu"),
    ("600017", "T Nagar", "Sub Post Office", "Chennai", "Tamil Nadu"),
    ("641001", "Coimbatore H.O", "Head Post Office", "Coimbatore", "Tamil Nadu"),
    ("638001", "Erode H.O", "Head Post Office", "Erode", "Tamil Nadu"),
    ("625001", "Madurai H.O", "Head Post Office", "Madurai", "Tamil Nadu"),
    ("637001", "Namakkal H.O", "Head Post Office", "Namakkal", "Tamil Nadu"),
    ("560001", "Bangalore G.P.O.", "Head Post Office", "Bengaluru Urban", "Karnataka"),
    ("682011", "Ernakulam H.O", "Head Post Office", "Ernakulam", "Kerala"),
]

SEED_FEATURE_SWITCHES = [
    ("user_profiles", 1, "core", "Member profiles and profile completion"),
    ("password_reset", 1, "core", "Self-service password reset"),
    ("user_invitations", 1, "community", "Members inviting new members"),
    ("help_posts", 1, "community", "Help requests and offers"),
    ("groups", 1, "community", "Community groups"),
    ("announcements", 1, "community", "Announcements feed"),
    ("subscriptions", 0, "billing", "Paid membership subscriptions"),
]

SEED_FORM_VALUES = [
    (item.id, option_type, item.value, item.parent_id)
    for option_type, items in FALLBACK_OPTIONS.items()
    for item in items
]


class Database:
    """SQLite-backed store shared by every service."""

    def __init__(self, path: Optional[str] = None):
        settings = get_settings()
        db_path = Path(path or settings.database_path)
        if not db_path.is_absolute():
            backend_root = Path(__file__).resolve().parents[2]
            db_path = backend_root / db_path
        self.db_path = db_path.resolve()
        self._lock = threading.RLock()
        self._initialize()
        logger.info(f"🗄️ Database ready at: {self.db_path}")

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=5.0)
        conn.row_factory = sqlite3.Row
        return conn

    def _initialize(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self.transaction() as conn:
            for statement in SCHEMA:
                conn.execute(statement)
            self._seed(conn)

    def _seed(self, conn: sqlite3.Connection) -> None:
        now = to_db_time(utc_now())
        if conn.execute("SELECT COUNT(*) FROM districts").fetchone()[0] == 0:
            conn.executemany(
                "INSERT INTO districts (state, name) VALUES (?, ?)",
                [(state, name) for state, names in SEED_DISTRICTS.items() for name in names],
            )
        if conn.execute("SELECT COUNT(*) FROM post_offices").fetchone()[0] == 0:
            conn.executemany(
                """
                INSERT INTO post_offices (pin_code, office_name, office_type, district, state)
                VALUES (?, ?, ?, ?, ?)
                """,
                SEED_POST_OFFICES,
            )
        conn.executemany(
            """
            INSERT OR IGNORE INTO feature_switches
                (feature_name, is_enabled, category, description, updated_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            [(*row, now) for row in SEED_FEATURE_SWITCHES],
        )
        # Admins edit these afterwards, so only an empty table is seeded.
        if conn.execute("SELECT COUNT(*) FROM form_values").fetchone()[0] == 0:
            conn.executemany(
                "INSERT INTO form_values (id, value_type, value, parent_id) VALUES (?, ?, ?, ?)",
                SEED_FORM_VALUES,
            )
        if conn.execute("SELECT COUNT(*) FROM admin_users").fetchone()[0] == 0:
            settings = get_settings()
            password_hash, salt = hash_password(settings.admin_password)
            conn.execute(
                """
                INSERT INTO admin_users (username, email, password_hash, password_salt, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (settings.admin_username, settings.admin_email, password_hash, salt, now),
            )
            logger.info(f"🔑 Seeded default admin account '{settings.admin_username}'")

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run several statements atomically; rolls back on any error."""
        with self._lock:
            conn = self._connect()
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                conn.close()

    def fetch_one(self, sql: str, params=()) -> Optional[dict]:
        with self.transaction() as conn:
            row = conn.execute(sql, params).fetchone()
        return dict(row) if row else None

    def fetch_all(self, sql: str, params=()) -> list[dict]:
        with self.transaction() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [dict(row) for row in rows]

    def fetch_value(self, sql: str, params=()) -> Any:
        with self.transaction() as conn:
            row = conn.execute(sql, params).fetchone()
        return row[0] if row else None

    def execute(self, sql: str, params=()) -> sqlite3.Cursor:
        with self.transaction() as conn:
            return conn.execute(sql, params)


def dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def loads(value: Optional[str], default: Any = None) -> Any:
    if not value:
        return default
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        logger.warning("Invalid JSON payload in database row; using default.")
        return default


_database: Optional[Database] = None


def get_database() -> Database:
    global _database
    if _database is None:
        _database = Database()
    return _database


def set_database(database: Optional[Database]) -> None:
    """Swap the shared database (tests point this at a temporary file)."""
    global _database
    _database = database
