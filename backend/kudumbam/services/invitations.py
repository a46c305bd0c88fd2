"""
Kudumbam — Invitations
Approved members (and admins) issue single-use registration codes bound to an
email address or phone number. Codes expire after a fixed number of days.
"""

from datetime import timedelta
from typing import Optional

from kudumbam.config import get_settings
from kudumbam.core.database import Database, from_db_time, get_database, to_db_time, utc_now
from kudumbam.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from kudumbam.utils.logger import logger
from kudumbam.utils.pagination import page_offset, pagination_payload
from kudumbam.utils.security import generate_token, sanitize_input
from kudumbam.utils.validators import is_valid_email, is_valid_login_phone


INVITER_USER_TYPES = ("Approved", "Member")
INVITATION_STATUSES = ("pending", "used", "expired")
INVITATION_TYPES = ("email", "phone")


def can_invite(user: Optional[dict]) -> bool:
    return bool(user) and user.get("user_type") in INVITER_USER_TYPES and user.get("approval_status") == "approved"


def effective_status(invitation: dict, now_db: str) -> str:
    """A pending invitation past its expiry reads as expired."""
    if invitation["status"] == "pending" and invitation["expires_at"] <= now_db:
        return "expired"
    return invitation["status"]


class InvitationService:
    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()
        settings = get_settings()
        self.ttl = timedelta(days=settings.invitation_ttl_days)
        self.page_size = settings.invitations_page_size

    # ──────────────────────────────────────────────────────────────
    # Listing
    # ──────────────────────────────────────────────────────────────

    def list_for_user(self, user: dict, page: int = 1, status: str = "", search: str = "") -> dict:
        if not can_invite(user):
            return {
                "success": True,
                "invitations": [],
                "pagination": pagination_payload(1, 0, self.page_size),
                "stats": {s: 0 for s in INVITATION_STATUSES},
                "user_info": {
                    "user_type": user.get("user_type", "Unknown"),
                    "can_invite": False,
                    "message": "Only approved members can invite others",
                },
            }

        page, offset = page_offset(page, self.page_size)
        now_db = to_db_time(utc_now())
        where = ["i.invited_by_type = 'user'", "i.invited_by_id = ?"]
        params: list = [user["id"]]

        if status == "expired":
            where.append("(i.status = 'expired' OR (i.status = 'pending' AND i.expires_at <= ?))")
            params.append(now_db)
        elif status == "pending":
            where.append("i.status = 'pending' AND i.expires_at > ?")
            params.append(now_db)
        elif status and status != "all":
            where.append("i.status = ?")
            params.append(status)
        if search:
            where.append("(i.invited_name LIKE ? OR i.invited_email LIKE ? OR i.invited_phone LIKE ?)")
            term = f"%{search}%"
            params.extend([term, term, term])

        where_clause = " AND ".join(where)
        total = self.db.fetch_value(f"SELECT COUNT(*) FROM invitations i WHERE {where_clause}", tuple(params))
        rows = self.db.fetch_all(
            f"""
            SELECT i.*, u.email AS used_by_email, u.full_name AS used_by_name
            FROM invitations i
            LEFT JOIN users u ON i.used_by = u.id
            WHERE {where_clause}
            ORDER BY i.created_at DESC, i.id DESC
            LIMIT ? OFFSET ?
            """,
            (*params, self.page_size, offset),
        )
        for row in rows:
            row["status"] = effective_status(row, now_db)

        return {
            "success": True,
            "invitations": rows,
            "pagination": pagination_payload(page, total or 0, self.page_size),
            "stats": self.stats(user["id"]),
            "user_info": {"user_type": user["user_type"], "can_invite": True},
        }

    def stats(self, user_id: int) -> dict:
        now_db = to_db_time(utc_now())
        rows = self.db.fetch_all(
            "SELECT status, expires_at FROM invitations WHERE invited_by_type = 'user' AND invited_by_id = ?",
            (user_id,),
        )
        counts = {s: 0 for s in INVITATION_STATUSES}
        for row in rows:
            counts[effective_status(row, now_db)] += 1
        counts["total"] = len(rows)
        return counts

    # ──────────────────────────────────────────────────────────────
    # Creation
    # ──────────────────────────────────────────────────────────────

    def create(
        self,
        inviter: dict,
        invited_name: Optional[str],
        invitation_type: Optional[str],
        invited_email: Optional[str] = None,
        invited_phone: Optional[str] = None,
        message: Optional[str] = None,
        inviter_type: str = "user",
    ) -> dict:
        if inviter_type == "user" and not can_invite(inviter):
            raise PermissionDeniedError("Only approved members can invite others")

        invited_name = sanitize_input(invited_name, max_length=255)
        invited_email = (invited_email or "").strip().lower() or None
        invited_phone = (invited_phone or "").strip() or None
        invitation_type = (invitation_type or "email").strip().lower()

        if not invited_name:
            raise ValidationError("Name is required")
        if invitation_type not in INVITATION_TYPES:
            raise ValidationError("Invalid invitation type. Must be email or phone")

        if invitation_type == "email":
            if not invited_email:
                raise ValidationError("Email is required for email invitations")
            if not is_valid_email(invited_email):
                raise ValidationError("Invalid email address")
        else:
            if not invited_phone:
                raise ValidationError("Phone number is required for phone invitations")
            if not is_valid_login_phone(invited_phone):
                raise ValidationError("Invalid phone number format. Must include country code and be 7-15 digits.")
        if invited_email and invitation_type == "phone" and not is_valid_email(invited_email):
            raise ValidationError("Invalid email address")

        self._ensure_not_registered(invited_email, invited_phone)
        self._ensure_no_pending(invited_email, invited_phone)

        code = generate_token()
        while self.db.fetch_one("SELECT id FROM invitations WHERE invitation_code = ?", (code,)):
            code = generate_token()

        now = utc_now()
        cursor = self.db.execute(
            """
            INSERT INTO invitations (
                invitation_code, invited_name, invited_email, invited_phone, invitation_type,
                invited_by_type, invited_by_id, message, status, created_at, expires_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, 'pending', ?, ?)
            """,
            (
                code, invited_name, invited_email, invited_phone, invitation_type,
                inviter_type, inviter["id"], sanitize_input(message) or None,
                to_db_time(now), to_db_time(now + self.ttl),
            ),
        )
        invitation = self.db.fetch_one("SELECT * FROM invitations WHERE id = ?", (cursor.lastrowid,))
        logger.info(f"✉️ Invitation {invitation['id']} created by {inviter_type} {inviter['id']}")
        return {
            "success": True,
            "message": "Invitation created successfully",
            "invitation": invitation,
            "inviter_name": inviter.get("full_name") or inviter.get("username"),
        }

    def _ensure_not_registered(self, email: Optional[str], phone: Optional[str]) -> None:
        if email:
            if self.db.fetch_one("SELECT id FROM users WHERE lower(email) = ?", (email,)):
                raise ValidationError("User with this email already exists")
            if self.db.fetch_one("SELECT id FROM admin_users WHERE lower(email) = ?", (email,)):
                raise ValidationError("An admin user with this email already exists")
        if phone and self.db.fetch_one("SELECT id FROM users WHERE phone = ?", (phone,)):
            raise ValidationError("User with this phone number already exists")

    def _ensure_no_pending(self, email: Optional[str], phone: Optional[str]) -> None:
        now_db = to_db_time(utc_now())
        if email and self.db.fetch_one(
            "SELECT id FROM invitations WHERE lower(invited_email) = ? AND status = 'pending' AND expires_at > ?",
            (email, now_db),
        ):
            raise ValidationError("A pending invitation already exists for this email")
        if phone and self.db.fetch_one(
            "SELECT id FROM invitations WHERE invited_phone = ? AND status = 'pending' AND expires_at > ?",
            (phone, now_db),
        ):
            raise ValidationError("A pending invitation already exists for this phone number")

    # ──────────────────────────────────────────────────────────────
    # Deletion & lookup
    # ──────────────────────────────────────────────────────────────

    def delete(self, user: dict, invitation_id: Optional[int]) -> dict:
        if not can_invite(user):
            raise PermissionDeniedError("Only approved members can manage invitations")
        if not invitation_id:
            raise ValidationError("Invitation ID is required")
        invitation = self.db.fetch_one(
            "SELECT * FROM invitations WHERE id = ? AND invited_by_type = 'user' AND invited_by_id = ?",
            (invitation_id, user["id"]),
        )
        if not invitation:
            raise NotFoundError("Invitation not found or access denied")
        if effective_status(invitation, to_db_time(utc_now())) != "pending":
            raise ValidationError("Only pending invitations can be deleted")

        self.db.execute("DELETE FROM invitations WHERE id = ?", (invitation_id,))
        logger.info(f"🗑️ Invitation {invitation_id} deleted by user {user['id']}")
        return {"success": True, "message": "Invitation deleted successfully"}

    def lookup(self, code: Optional[str]) -> dict:
        """Public view of a usable invitation, for prefilling the registration form."""
        if not code:
            raise ValidationError("Invitation code is required")
        invitation = self.db.fetch_one("SELECT * FROM invitations WHERE invitation_code = ?", (code.strip(),))
        if not invitation or effective_status(invitation, to_db_time(utc_now())) != "pending":
            raise NotFoundError("Invalid or expired invitation code")
        return {
            "success": True,
            "invitation": {
                "invited_name": invitation["invited_name"],
                "invited_email": invitation["invited_email"],
                "invited_phone": invitation["invited_phone"],
                "invitation_type": invitation["invitation_type"],
                "expires_at": invitation["expires_at"],
                "expires_in_hours": max(
                    0, int((from_db_time(invitation["expires_at"]) - utc_now()).total_seconds() // 3600)
                ),
            },
        }

    def expire_stale(self) -> int:
        cursor = self.db.execute(
            "UPDATE invitations SET status = 'expired' WHERE status = 'pending' AND expires_at <= ?",
            (to_db_time(utc_now()),),
        )
        return cursor.rowcount or 0
