"""
Kudumbam — Password Reset
Admin-approved password resets. A member files a request by email; an admin
approves it, which issues a one-time reset link valid for a limited time.
"""

from datetime import timedelta
from typing import Optional

from kudumbam.config import get_settings
from kudumbam.core.database import Database, get_database, to_db_time, utc_now
from kudumbam.core.errors import NotFoundError, ValidationError
from kudumbam.services.sessions import SessionManager
from kudumbam.utils.logger import logger
from kudumbam.utils.pagination import page_offset, pagination_payload
from kudumbam.utils.security import generate_token, hash_password
from kudumbam.utils.validators import is_valid_email, validate_password


REQUEST_STATUSES = ("pending", "approved", "rejected", "used")
DECISIONS = ("approve", "reject")
USER_AGENT_PREVIEW = 100

REQUEST_RECEIVED = (
    "Password reset request sent. If this email is registered, an admin will review your request."
)
ALREADY_PENDING = (
    "A password reset request is already pending. Please wait for admin approval or try again later."
)


class PasswordResetService:
    def __init__(self, db: Optional[Database] = None, sessions: Optional[SessionManager] = None):
        self.db = db or get_database()
        self.sessions = sessions or SessionManager(self.db)
        self.settings = get_settings()

    def request(self, email: Optional[str], ip_address: str = "unknown", user_agent: str = "unknown") -> dict:
        """Same answer whether or not the address is registered."""
        if email is None:
            raise ValidationError("Email is required")
        email = email.strip().lower()
        if not email:
            raise ValidationError("Email cannot be empty")
        if not is_valid_email(email):
            raise ValidationError("Invalid email format")

        user = self.db.fetch_one("SELECT id, full_name FROM users WHERE lower(email) = ? AND is_active = 1", (email,))
        if not user:
            logger.info("🔐 Password reset requested for an unknown address")
            return {"success": True, "message": REQUEST_RECEIVED}

        now = utc_now()
        window_start = now - timedelta(minutes=self.settings.password_reset_repeat_minutes)
        if self.db.fetch_one(
            "SELECT id FROM password_reset_requests WHERE user_id = ? AND status = 'pending' AND requested_at > ?",
            (user["id"], to_db_time(window_start)),
        ):
            return {"success": True, "message": ALREADY_PENDING}

        self.db.execute(
            """
            INSERT INTO password_reset_requests (user_id, request_token, ip_address, user_agent, requested_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (user["id"], generate_token(), ip_address, user_agent, to_db_time(now)),
        )
        logger.info(f"🔐 Password reset requested for user {user['id']}")
        return {"success": True, "message": REQUEST_RECEIVED}

    # ──────────────────────────────────────────────────────────────
    # Admin review
    # ──────────────────────────────────────────────────────────────

    def list_requests(self, page: int = 1, status: str = "pending", search: str = "") -> dict:
        per_page = self.settings.password_reset_page_size
        page, offset = page_offset(page, per_page)
        where, params = [], []
        status = status or "pending"
        if status != "all":
            if status not in REQUEST_STATUSES:
                raise ValidationError("Invalid status")
            where.append("r.status = ?")
            params.append(status)
        search = (search or "").strip()
        if search:
            where.append("(u.email LIKE ? OR u.full_name LIKE ? OR u.enrollment_number LIKE ?)")
            params.extend([f"%{search}%"] * 3)
        clause = f"WHERE {' AND '.join(where)}" if where else ""

        total = self.db.fetch_value(
            f"SELECT COUNT(*) FROM password_reset_requests r JOIN users u ON r.user_id = u.id {clause}",
            tuple(params),
        )
        rows = self.db.fetch_all(
            f"""
            SELECT r.id, r.user_id, r.status, r.requested_at, r.approved_at, r.ip_address, r.user_agent,
                   r.reset_token_expires, u.email, u.full_name, u.enrollment_number, u.user_type,
                   a.username AS approved_by
            FROM password_reset_requests r
            JOIN users u ON r.user_id = u.id
            LEFT JOIN admin_users a ON r.approved_by = a.id
            {clause}
            ORDER BY r.requested_at DESC, r.id DESC
            LIMIT ? OFFSET ?
            """,
            (*params, per_page, offset),
        )
        for row in rows:
            agent = row["user_agent"] or ""
            if len(agent) > USER_AGENT_PREVIEW:
                row["user_agent"] = agent[:USER_AGENT_PREVIEW] + "..."
        return {"success": True, "requests": rows, "pagination": pagination_payload(page, total, per_page)}

    def decide(self, admin_id: int, request_id, action: Optional[str]) -> dict:
        if not request_id or not action:
            raise ValidationError("Request ID and action are required")
        if action not in DECISIONS:
            raise ValidationError('Invalid action. Must be "approve" or "reject"')
        request = self.db.fetch_one(
            """
            SELECT r.*, u.email, u.full_name FROM password_reset_requests r
            JOIN users u ON r.user_id = u.id
            WHERE r.id = ? AND r.status = 'pending'
            """,
            (request_id,),
        )
        if not request:
            raise NotFoundError("Request not found or already processed")

        now = utc_now()
        reset_link = None
        if action == "approve":
            token = generate_token()
            expires = now + timedelta(hours=self.settings.password_reset_ttl_hours)
            self.db.execute(
                """
                UPDATE password_reset_requests
                SET status = 'approved', approved_at = ?, approved_by = ?, reset_token = ?, reset_token_expires = ?
                WHERE id = ?
                """,
                (to_db_time(now), admin_id, token, to_db_time(expires), request["id"]),
            )
            reset_link = f"{self.settings.password_reset_url}{token}"
            message = "Password reset request approved. Reset link generated."
        else:
            self.db.execute(
                "UPDATE password_reset_requests SET status = 'rejected', approved_at = ?, approved_by = ? WHERE id = ?",
                (to_db_time(now), admin_id, request["id"]),
            )
            message = "Password reset request rejected."

        logger.info(f"🔐 Admin {admin_id} {action}d password reset request {request['id']} (user {request['user_id']})")
        return {
            "success": True,
            "message": message,
            "reset_link": reset_link,
            "user_email": request["email"],
            "user_name": request["full_name"] or "User",
        }

    # ──────────────────────────────────────────────────────────────
    # Redeeming the link
    # ──────────────────────────────────────────────────────────────

    def reset(self, token: Optional[str], new_password: Optional[str], confirm_password: Optional[str]) -> dict:
        if token is None or new_password is None or confirm_password is None:
            raise ValidationError("Token and passwords are required")
        token = token.strip()
        if not token:
            raise ValidationError("Invalid reset token")
        error = validate_password(new_password)
        if error:
            raise ValidationError(error)
        if new_password != confirm_password:
            raise ValidationError("Passwords do not match")

        now = to_db_time(utc_now())
        request = self.db.fetch_one(
            """
            SELECT r.id, r.user_id, u.full_name FROM password_reset_requests r
            JOIN users u ON r.user_id = u.id
            WHERE r.reset_token = ? AND r.status = 'approved' AND r.reset_token_expires > ?
            """,
            (token, now),
        )
        if not request:
            raise ValidationError("Invalid or expired reset token")

        password_hash, salt = hash_password(new_password)
        with self.db.transaction() as conn:
            conn.execute(
                "UPDATE users SET password_hash = ?, password_salt = ?, updated_at = ? WHERE id = ?",
                (password_hash, salt, now, request["user_id"]),
            )
            conn.execute(
                "UPDATE password_reset_requests SET status = 'used', used_at = ? WHERE id = ?",
                (now, request["id"]),
            )
        # Sessions opened with the old password end here.
        self.sessions.destroy_for_user(request["user_id"])
        logger.info(f"🔑 Password reset completed for user {request['user_id']}")
        return {
            "success": True,
            "message": "Password reset successfully! You can now login with your new password.",
            "user_name": request["full_name"] or "User",
        }
