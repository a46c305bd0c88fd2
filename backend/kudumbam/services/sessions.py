"""
Kudumbam — Session Manager
Opaque 64-hex session tokens stored in SQLite with a fixed lifetime.
"""

from datetime import timedelta
from typing import Optional

from kudumbam.config import get_settings
from kudumbam.core.database import Database, get_database, to_db_time, utc_now
from kudumbam.utils.logger import logger
from kudumbam.utils.security import generate_token


USER_SESSION = "user"
ADMIN_SESSION = "admin"


class SessionManager:
    def __init__(self, db: Optional[Database] = None, ttl_hours: Optional[int] = None):
        self.db = db or get_database()
        self.ttl = timedelta(hours=ttl_hours or get_settings().session_ttl_hours)

    def create(self, user_id: int, user_type: str = USER_SESSION) -> str:
        token = generate_token()
        now = utc_now()
        self.db.execute(
            """
            INSERT INTO sessions (session_id, user_id, user_type, created_at, expires_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (token, user_id, user_type, to_db_time(now), to_db_time(now + self.ttl)),
        )
        logger.info(f"🔐 Session opened for {user_type} {user_id}")
        return token

    def validate(self, token: Optional[str]) -> Optional[dict]:
        """Session row, or None when missing or expired (expired rows are removed)."""
        if not token:
            return None
        session = self.db.fetch_one("SELECT * FROM sessions WHERE session_id = ?", (token,))
        if not session:
            return None
        if session["expires_at"] <= to_db_time(utc_now()):
            self.destroy(token)
            return None
        return session

    def destroy(self, token: str) -> None:
        self.db.execute("DELETE FROM sessions WHERE session_id = ?", (token,))

    def destroy_for_user(self, user_id: int, user_type: str = USER_SESSION) -> None:
        self.db.execute(
            "DELETE FROM sessions WHERE user_id = ? AND user_type = ?",
            (user_id, user_type),
        )

    def clean_expired(self) -> int:
        cursor = self.db.execute(
            "DELETE FROM sessions WHERE expires_at <= ?",
            (to_db_time(utc_now()),),
        )
        removed = cursor.rowcount or 0
        if removed:
            logger.info(f"🧹 Removed {removed} expired session(s)")
        return removed

    def user_from_session(self, token: Optional[str]) -> Optional[dict]:
        """The user (or admin) row behind a valid session, tagged with `session_type`."""
        session = self.validate(token)
        if not session:
            return None
        table = "admin_users" if session["user_type"] == ADMIN_SESSION else "users"
        user = self.db.fetch_one(f"SELECT * FROM {table} WHERE id = ?", (session["user_id"],))
        if not user:
            return None
        user["session_type"] = session["user_type"]
        return user
