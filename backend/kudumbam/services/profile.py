"""
Kudumbam — Profile Service
Combined profile read and the edit-profile update (basic fields plus the
extended education, profession, Kulam and family details).
"""

from typing import Optional

from kudumbam.core.database import Database, get_database
from kudumbam.core.errors import ValidationError
from kudumbam.services.accounts import AccountService
from kudumbam.services.kulam_rules import apply_residence_rule
from kudumbam.services.profile_completion import (
    CHILDREN_SECTION,
    EXTENDED_SECTION,
    MEMBER_SECTION,
    SPOUSE_SECTION,
    TREE_SECTIONS,
    ProfileSections,
    clean_education,
    clean_kulam_values,
    clean_profession,
)
from kudumbam.utils.logger import logger
from kudumbam.utils.security import sanitize_input


LIVE_STATUSES = ("alive", "deceased")


def clean_family_additional(entries: dict) -> dict:
    """Per relative: native place, residence (mirrors native when ticked) and live status."""
    cleaned = {}
    for role, values in (entries or {}).items():
        if not isinstance(values, dict):
            continue
        record = {
            "native_place": sanitize_input(values.get("native_place"), max_length=255),
            "place_of_residence": sanitize_input(values.get("place_of_residence"), max_length=255),
            "same_as_native": bool(values.get("same_as_native")),
            "live_status": values.get("live_status") if values.get("live_status") in LIVE_STATUSES else None,
        }
        cleaned[role] = apply_residence_rule(record)
    return cleaned


class ProfileService:
    def __init__(self, db: Optional[Database] = None, accounts: Optional[AccountService] = None):
        self.db = db or get_database()
        self.sections = ProfileSections(self.db)
        self.accounts = accounts or AccountService(self.db)

    def get(self, user_id: int) -> dict:
        stored = self.sections.all(user_id)
        extended = stored.get(EXTENDED_SECTION) or {}
        return {
            "success": True,
            "profile": {
                **self.accounts.account(user_id),
                "member_details": stored.get(MEMBER_SECTION),
                "spouse_details": stored.get(SPOUSE_SECTION),
                "children": stored.get(CHILDREN_SECTION) or [],
                "member_family_tree": stored.get(TREE_SECTIONS["member"]),
                "spouse_family_tree": stored.get(TREE_SECTIONS["spouse"]),
                "education": extended.get("education", []),
                "profession": extended.get("profession", []),
                "kulam": extended.get("kulam", {}),
                "family_additional": extended.get("family_additional", {}),
            },
        }

    def update(self, user_id: int, body: dict) -> dict:
        if not isinstance(body, dict) or not body:
            raise ValidationError("No profile data provided")

        self.accounts.update_basic(user_id, full_name=body.get("full_name"), phone=body.get("phone"))

        extended = self.sections.get(user_id, EXTENDED_SECTION) or {}
        if "education" in body:
            extended["education"] = clean_education(body["education"])
        if "profession" in body:
            extended["profession"] = clean_profession(body["profession"])
        if "kulam" in body:
            extended["kulam"] = {
                role: clean_kulam_values(dict(values))
                for role, values in (body["kulam"] or {}).items()
                if isinstance(values, dict)
            }
        if "family_additional" in body:
            extended["family_additional"] = clean_family_additional(body["family_additional"])
        self.sections.put(user_id, EXTENDED_SECTION, extended)

        logger.info(f"✏️ Profile updated for user {user_id}")
        return {"success": True, "message": "Profile updated successfully", "profile": self.get(user_id)["profile"]}
