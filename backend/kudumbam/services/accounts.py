"""
Kudumbam — Account Service
Invitation-only registration, phone/email login, logout and the account snapshot
every page reads to decide where the user belongs.
"""

from typing import Optional

from kudumbam.core.database import Database, get_database, to_db_time, utc_now
from kudumbam.core.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from kudumbam.services.sessions import SessionManager
from kudumbam.utils.logger import logger
from kudumbam.utils.security import (
    generate_enrollment_number,
    hash_password,
    sanitize_input,
    verify_password,
)
from kudumbam.utils.validators import (
    is_valid_email,
    is_valid_login_phone,
    validate_full_name,
    validate_password,
)


PRIVATE_FIELDS = ("password_hash", "password_salt")
BOOLEAN_FIELDS = (
    "is_active", "created_via_invitation", "intro_completed",
    "questions_completed", "profile_completed",
)


def public_user(row: dict) -> dict:
    """Account snapshot safe to send to the browser (no password material)."""
    user = {k: v for k, v in row.items() if k not in PRIVATE_FIELDS and k != "session_type"}
    for key in BOOLEAN_FIELDS:
        if key in user:
            user[key] = bool(user[key])
    # Intro answers under the names the profile workflow reads.
    user["isMarried"] = row.get("is_married")
    user["hasChildren"] = row.get("has_children")
    user["marriageType"] = row.get("marriage_type")
    user["marriageStatus"] = row.get("marriage_status")
    user["statusAcceptance"] = row.get("status_acceptance")
    return user


class AccountService:
    def __init__(self, db: Optional[Database] = None, sessions: Optional[SessionManager] = None):
        self.db = db or get_database()
        self.sessions = sessions or SessionManager(self.db)

    # ──────────────────────────────────────────────────────────────
    # Registration
    # ──────────────────────────────────────────────────────────────

    def register(
        self,
        email: Optional[str],
        password: Optional[str],
        full_name: Optional[str],
        invitation_code: Optional[str],
        phone: Optional[str] = None,
    ) -> dict:
        email = (email or "").strip().lower()
        phone = (phone or "").strip()
        full_name = sanitize_input(full_name, max_length=255)

        if not email or not password or not full_name:
            raise ValidationError("Email, password and full name are required")
        error = validate_full_name(full_name)
        if error:
            raise ValidationError(error, {"full_name": error})
        if not is_valid_email(email):
            raise ValidationError("Invalid email format", {"email": "Invalid email format"})
        error = validate_password(password)
        if error:
            raise ValidationError(error, {"password": error})
        if not invitation_code or not invitation_code.strip():
            raise ValidationError("Invitation code is required for registration")

        if self.db.fetch_one("SELECT id FROM users WHERE lower(email) = ?", (email,)):
            raise ConflictError("Email already registered")

        now = utc_now()
        invitation = self.db.fetch_one(
            """
            SELECT * FROM invitations
            WHERE invitation_code = ? AND status = 'pending' AND expires_at > ?
            """,
            (invitation_code.strip(), to_db_time(now)),
        )
        if not invitation:
            raise ValidationError("Invalid or expired invitation code")
        if not self._matches_invitation(invitation, email, phone):
            raise ValidationError("Email/Phone does not match invitation")

        password_hash, salt = hash_password(password)
        phone = phone or invitation.get("invited_phone") or None

        with self.db.transaction() as conn:
            next_number = conn.execute("SELECT COALESCE(MAX(user_number), 0) + 1 FROM users").fetchone()[0]
            enrollment_number = generate_enrollment_number()
            while conn.execute(
                "SELECT 1 FROM users WHERE enrollment_number = ?", (enrollment_number,)
            ).fetchone():
                enrollment_number = generate_enrollment_number()

            cursor = conn.execute(
                """
                INSERT INTO users (
                    email, phone, password_hash, password_salt, full_name,
                    enrollment_number, user_number, approval_status, user_type,
                    created_via_invitation, invitation_id, referred_by_type, referred_by_id,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, 'pending', 'Registered', 1, ?, ?, ?, ?, ?)
                """,
                (
                    email, phone, password_hash, salt, full_name,
                    enrollment_number, next_number,
                    invitation["id"], invitation["invited_by_type"], invitation["invited_by_id"],
                    to_db_time(now), to_db_time(now),
                ),
            )
            user_id = cursor.lastrowid

            conn.execute(
                "UPDATE invitations SET status = 'used', used_at = ?, used_by = ? WHERE id = ?",
                (to_db_time(now), user_id, invitation["id"]),
            )
            # Other pending invites for the same person can no longer be used.
            conn.execute(
                """
                UPDATE invitations SET status = 'expired'
                WHERE status = 'pending' AND id != ?
                  AND ((invited_email IS NOT NULL AND lower(invited_email) = ?)
                       OR (invited_phone IS NOT NULL AND invited_phone = ?))
                """,
                (invitation["id"], email, phone or ""),
            )

        token = self.sessions.create(user_id)
        logger.info(f"🎉 Registered user {user_id} ({enrollment_number}) via invitation {invitation['id']}")
        return {
            "success": True,
            "message": "Registration successful",
            "session_token": token,
            "user": self.account(user_id),
        }

    @staticmethod
    def _matches_invitation(invitation: dict, email: str, phone: str) -> bool:
        invited_email = (invitation.get("invited_email") or "").strip().lower()
        invited_phone = (invitation.get("invited_phone") or "").strip()
        if invited_email and invited_email == email:
            return True
        if invited_phone and invited_phone in (phone, email):
            return True
        return False

    # ──────────────────────────────────────────────────────────────
    # Login / Logout
    # ──────────────────────────────────────────────────────────────

    def login(self, password: Optional[str], phone: Optional[str] = None, email: Optional[str] = None) -> dict:
        phone = (phone or "").strip()
        email = (email or "").strip().lower()
        if not password or not (phone or email):
            raise ValidationError("Phone number and password are required")

        if phone:
            if not is_valid_login_phone(phone):
                raise ValidationError("Please enter a valid phone number with country code")
            user = self.db.fetch_one("SELECT * FROM users WHERE phone = ?", (phone,))
            if not user:
                raise AuthenticationError(
                    "Phone number not found. Please check your phone number or contact support."
                )
        else:
            user = self.db.fetch_one("SELECT * FROM users WHERE lower(email) = ?", (email,))

        if not user or not verify_password(password, user["password_hash"], user["password_salt"]):
            logger.warning(f"🚫 Failed login for {phone or email}")
            raise AuthenticationError("Invalid credentials")
        if not user["is_active"]:
            raise PermissionDeniedError("Your account has been deactivated. Please contact support.")

        token = self.sessions.create(user["id"])
        logger.info(f"🔓 User {user['id']} logged in")
        return {
            "success": True,
            "message": "Login successful",
            "session_token": token,
            "user": self.account(user["id"]),
        }

    def logout(self, token: Optional[str]) -> dict:
        if token:
            self.sessions.destroy(token)
        return {"success": True, "message": "Logged out successfully"}

    # ──────────────────────────────────────────────────────────────
    # Account
    # ──────────────────────────────────────────────────────────────

    def account(self, user_id: int) -> dict:
        row = self.db.fetch_one("SELECT * FROM users WHERE id = ?", (user_id,))
        if not row:
            raise NotFoundError("Account not found")
        user = public_user(row)
        user["referred_by_display"] = self._referred_by_display(row)
        return user

    def _referred_by_display(self, row: dict) -> str:
        if row.get("referred_by_type") == "admin":
            admin = self.db.fetch_one(
                "SELECT username FROM admin_users WHERE id = ?", (row["referred_by_id"],)
            )
            return f"Admin: {admin['username'] if admin else 'Unknown'}"
        if row.get("referred_by_type") == "user":
            referrer = self.db.fetch_one(
                "SELECT user_number FROM users WHERE id = ?", (row["referred_by_id"],)
            )
            return f"User: {referrer['user_number'] if referrer else 'Unknown'}"
        return "Direct"

    def change_password(self, user_id: int, current_password: Optional[str], new_password: Optional[str]) -> dict:
        if not current_password or not new_password:
            raise ValidationError("Current password and new password are required")
        if validate_password(new_password):
            raise ValidationError("New password must be at least 6 characters")
        row = self.db.fetch_one("SELECT password_hash, password_salt FROM users WHERE id = ?", (user_id,))
        if not row:
            raise NotFoundError("Account not found")
        if not verify_password(current_password, row["password_hash"], row["password_salt"]):
            raise ValidationError("Current password is incorrect")

        password_hash, salt = hash_password(new_password)
        self.db.execute(
            "UPDATE users SET password_hash = ?, password_salt = ?, updated_at = ? WHERE id = ?",
            (password_hash, salt, to_db_time(utc_now()), user_id),
        )
        logger.info(f"🔑 Password changed for user {user_id}")
        return {"success": True, "message": "Password changed successfully"}

    def update_basic(self, user_id: int, full_name: Optional[str] = None, phone: Optional[str] = None) -> None:
        updates, params = [], []
        if full_name is not None:
            error = validate_full_name(full_name)
            if error:
                raise ValidationError(error)
            updates.append("full_name = ?")
            params.append(sanitize_input(full_name, max_length=255))
        if phone:
            if not is_valid_login_phone(phone):
                raise ValidationError("Please enter a valid phone number with country code")
            updates.append("phone = ?")
            params.append(phone)
        if not updates:
            return
        updates.append("updated_at = ?")
        params.extend([to_db_time(utc_now()), user_id])
        self.db.execute(f"UPDATE users SET {', '.join(updates)} WHERE id = ?", tuple(params))
