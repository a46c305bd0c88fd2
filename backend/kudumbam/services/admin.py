"""
Kudumbam — Admin Service
Admin login, the member directory (registered users plus pending invitees),
and approval decisions.
"""

import math
from typing import Optional

from kudumbam.config import get_settings
from kudumbam.core.database import Database, get_database, to_db_time, utc_now
from kudumbam.core.errors import AuthenticationError, NotFoundError, ValidationError
from kudumbam.services.accounts import public_user
from kudumbam.services.sessions import ADMIN_SESSION, SessionManager
from kudumbam.utils.logger import logger
from kudumbam.utils.security import verify_password


APPROVAL_STATUSES = ("pending", "approved", "rejected")
USER_TYPES = ("Registered", "Approved", "Member")
APPROVED_USER_TYPE = "Approved"


class AdminService:
    def __init__(self, db: Optional[Database] = None, sessions: Optional[SessionManager] = None):
        self.db = db or get_database()
        self.sessions = sessions or SessionManager(self.db)
        self.page_size = get_settings().admin_page_size

    def login(self, username: Optional[str], password: Optional[str]) -> dict:
        if username is None or password is None:
            raise ValidationError("Username and password are required")
        username = username.strip()
        if not username or not password:
            raise ValidationError("Username and password cannot be empty")

        admin = self.db.fetch_one("SELECT * FROM admin_users WHERE username = ?", (username,))
        if not admin or not verify_password(password, admin["password_hash"], admin["password_salt"]):
            logger.warning(f"🚫 Failed admin login for '{username}'")
            raise AuthenticationError("Invalid credentials")

        token = self.sessions.create(admin["id"], ADMIN_SESSION)
        logger.info(f"🛡️ Admin '{username}' logged in")
        return {
            "success": True,
            "message": "Login successful",
            "session_token": token,
            "user": {"id": admin["id"], "username": admin["username"], "email": admin["email"]},
        }

    # ──────────────────────────────────────────────────────────────
    # Member directory
    # ──────────────────────────────────────────────────────────────

    def _registered(self, status: str, search: str) -> list[dict]:
        where, params = [], []
        if status:
            where.append("u.approval_status = ?")
            params.append(status)
        if search:
            where.append(
                "(u.full_name LIKE ? OR u.email LIKE ? OR u.phone LIKE ? OR u.enrollment_number LIKE ?)"
            )
            params.extend([f"%{search}%"] * 4)
        clause = f"WHERE {' AND '.join(where)}" if where else ""
        rows = self.db.fetch_all(
            f"""
            SELECT u.*,
                CASE WHEN u.referred_by_type = 'admin' THEN a.username ELSE r.full_name END AS referred_by_name
            FROM users u
            LEFT JOIN admin_users a ON u.referred_by_type = 'admin' AND u.referred_by_id = a.id
            LEFT JOIN users r ON u.referred_by_type = 'user' AND u.referred_by_id = r.id
            {clause}
            """,
            tuple(params),
        )
        users = []
        for row in rows:
            user = public_user(row)
            user["source_type"] = "registered"
            users.append(user)
        return users

    def _invited(self, search: str) -> list[dict]:
        rows = self.db.fetch_all(
            """
            SELECT i.*,
                CASE WHEN i.invited_by_type = 'admin' THEN a.username ELSE r.full_name END AS referred_by_name
            FROM invitations i
            LEFT JOIN admin_users a ON i.invited_by_type = 'admin' AND i.invited_by_id = a.id
            LEFT JOIN users r ON i.invited_by_type = 'user' AND i.invited_by_id = r.id
            WHERE i.status = 'pending' AND i.expires_at > ?
            """,
            (to_db_time(utc_now()),),
        )
        invited = []
        needle = search.casefold()
        for row in rows:
            haystack = " ".join(
                str(row.get(k) or "") for k in ("invited_name", "invited_email", "invited_phone")
            ).casefold()
            if needle and needle not in haystack:
                continue
            invited.append({
                "id": f"inv_{row['id']}",
                "email": row["invited_email"] or row["invited_phone"],
                "phone": row["invited_phone"],
                "full_name": row["invited_name"],
                "approval_status": "pending",
                "user_type": "Invited",
                "profile_completed": False,
                "is_active": True,
                "referred_by_type": row["invited_by_type"],
                "referred_by_name": row["referred_by_name"],
                "created_at": row["created_at"],
                "source_type": "invited",
            })
        return invited

    def list_users(self, page: int = 1, status: str = "", search: str = "") -> dict:
        page = max(1, int(page or 1))
        status = status if status in APPROVAL_STATUSES else ""
        search = (search or "").strip()

        users = self._registered(status, search)
        if status in ("", "pending"):
            users.extend(self._invited(search))
        users.sort(key=lambda u: (u["created_at"], str(u["id"])), reverse=True)

        total = len(users)
        offset = (page - 1) * self.page_size
        return {
            "success": True,
            "users": users[offset:offset + self.page_size],
            "pagination": {
                "current_page": page,
                "total_pages": math.ceil(total / self.page_size),
                "total": total,
                "start": offset + 1 if total else 0,
                "end": min(offset + self.page_size, total),
                "limit": self.page_size,
            },
        }

    def update_user(
        self,
        admin_id: int,
        user_id: int,
        approval_status: Optional[str] = None,
        user_type: Optional[str] = None,
    ) -> dict:
        if not user_id or (approval_status is None and user_type is None):
            raise ValidationError("User ID and status are required")
        if approval_status is not None and approval_status not in APPROVAL_STATUSES:
            raise ValidationError("Invalid status")
        if user_type is not None and user_type not in USER_TYPES:
            raise ValidationError("Invalid user type")
        user = self.db.fetch_one("SELECT * FROM users WHERE id = ?", (user_id,))
        if not user:
            raise NotFoundError("User not found")

        status = approval_status or user["approval_status"]
        new_type = user_type or (APPROVED_USER_TYPE if approval_status == "approved" else user["user_type"])
        approved_at = to_db_time(utc_now()) if approval_status == "approved" else user["approved_at"]
        self.db.execute(
            "UPDATE users SET approval_status = ?, user_type = ?, approved_at = ?, updated_at = ? WHERE id = ?",
            (status, new_type, approved_at, to_db_time(utc_now()), user_id),
        )
        logger.info(f"🛡️ Admin {admin_id} set user {user_id} to {status}/{new_type}")
        return {"success": True, "message": "User status updated successfully"}
