"""
Kudumbam — Profile Completion Service
Server side of the profile wizard: one handler per `step`, each persisting a
section document and advancing the user's completion step.
"""

import sqlite3
from typing import Callable, Optional

from kudumbam.config import get_settings
from kudumbam.core.database import Database, dumps, get_database, loads, to_db_time, utc_now
from kudumbam.core.errors import NotFoundError, ValidationError
from kudumbam.services.kulam_rules import KULAM_FIELD_TYPES, is_other_value, split_kulam_field
from kudumbam.services.profile_workflow import FAMILY_TREE_NAME_FIELDS, FAMILY_TREE_SUBSECTIONS
from kudumbam.services.sub_forms import EducationEntry, ProfessionEntry, new_entry_id, sort_education, sort_profession
from kudumbam.utils.logger import logger
from kudumbam.utils.security import sanitize_input
from kudumbam.utils.validators import (
    MAX_STORED_PHONE_LENGTH,
    is_valid_email,
    join_phone_number,
    validate_birth_date,
)


# Completion steps in the order they are reached; the stored step never moves backwards.
STEP_ORDER = (
    "member_details",
    "spouse_details",
    "children_details",
    "member_family_tree",
    "spouse_family_tree",
    "completed",
)

MEMBER_SECTION = "member_details"
SPOUSE_SECTION = "spouse_details"
CHILDREN_SECTION = "children_details"
TREE_SECTIONS = {"member": "member_family_tree", "spouse": "spouse_family_tree"}
EXTENDED_SECTION = "extended"


def advance_step(current: Optional[str], reached: str) -> str:
    """The later of the stored step and the newly reached one."""
    current_index = STEP_ORDER.index(current) if current in STEP_ORDER else -1
    reached_index = STEP_ORDER.index(reached)
    return STEP_ORDER[max(current_index, reached_index)]


def next_step_after(step: str) -> str:
    index = STEP_ORDER.index(step)
    return STEP_ORDER[min(index + 1, len(STEP_ORDER) - 1)]


def clean_kulam_values(values: dict, prefix: str = "") -> dict:
    """Drop `<field>_other` free text unless the matching field is set to Other."""
    for field_type in KULAM_FIELD_TYPES:
        name = f"{prefix}{field_type}"
        other = f"{name}_other"
        if other in values and not is_other_value(values.get(name)):
            values[other] = None
    return values


def clean_education(entries) -> list[dict]:
    parsed = [EducationEntry.from_payload(e) for e in entries or [] if isinstance(e, dict)]
    return [e.to_payload() for e in sort_education(parsed)]


def clean_profession(entries) -> list[dict]:
    parsed = [ProfessionEntry.from_payload(e) for e in entries or [] if isinstance(e, dict)]
    return [e.to_payload() for e in sort_profession(parsed)]


def _text(values: dict, key: str) -> str:
    return sanitize_input(values.get(key), max_length=500)


def _stored_phone(phone, country_code, label: str) -> str:
    number = join_phone_number(phone, country_code)
    if len(number) > MAX_STORED_PHONE_LENGTH:
        raise ValidationError(f"{label} phone number is too long")
    return number


class ProfileSections:
    """JSON documents per (user, section)."""

    def __init__(self, db: Database):
        self.db = db

    def get(self, user_id: int, section: str) -> Optional[dict]:
        row = self.db.fetch_one(
            "SELECT data_json FROM profile_sections WHERE user_id = ? AND section = ?",
            (user_id, section),
        )
        return loads(row["data_json"], {}) if row else None

    def all(self, user_id: int) -> dict[str, dict]:
        rows = self.db.fetch_all(
            "SELECT section, data_json FROM profile_sections WHERE user_id = ?", (user_id,)
        )
        return {row["section"]: loads(row["data_json"], {}) for row in rows}

    def put(self, user_id: int, section: str, data, conn: Optional[sqlite3.Connection] = None) -> None:
        params = (user_id, section, dumps(data), to_db_time(utc_now()))
        sql = """
            INSERT INTO profile_sections (user_id, section, data_json, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(user_id, section) DO UPDATE SET
                data_json = excluded.data_json, updated_at = excluded.updated_at
        """
        if conn is not None:
            conn.execute(sql, params)
        else:
            self.db.execute(sql, params)


class ProfileCompletionService:
    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()
        self.sections = ProfileSections(self.db)
        self.minimum_age = get_settings().minimum_member_age
        self._handlers: dict[str, Callable[[int, dict], dict]] = {
            "basic_details": self.basic_details,
            "member_details": self.member_details,
            "spouse_details": self.spouse_details,
            "children_details": self.children_details,
            "member_family_tree": lambda uid, body: self.family_tree_step(uid, "member", body),
            "spouse_family_tree": lambda uid, body: self.family_tree_step(uid, "spouse", body),
            "family_tree": self.family_tree,
            "complete_profile": lambda uid, body: self.complete_profile(uid),
            "get_member_details": lambda uid, body: self.get_member_details(uid),
            "get_spouse_details": lambda uid, body: self.get_spouse_details(uid),
            "get_children_details": lambda uid, body: self.get_children_details(uid),
            "get_member_family_tree": lambda uid, body: self.get_family_tree(uid, "member"),
            "get_spouse_family_tree": lambda uid, body: self.get_family_tree(uid, "spouse"),
        }
        for tree_type in TREE_SECTIONS:
            for subsection in FAMILY_TREE_SUBSECTIONS:
                self._handlers[f"save_{tree_type}_{subsection}"] = self._subsection_handler(tree_type, subsection)

    def _subsection_handler(self, tree_type: str, subsection: str):
        return lambda uid, body: self.save_family_tree_subsection(uid, tree_type, subsection, body.get("data"))

    @property
    def steps(self) -> list[str]:
        return list(self._handlers)

    def handle(self, user_id: int, step: Optional[str], body: dict) -> dict:
        handler = self._handlers.get(step or "")
        if handler is None:
            raise ValidationError("Invalid step")
        return handler(user_id, body)

    # ──────────────────────────────────────────────────────────────
    # Step bookkeeping
    # ──────────────────────────────────────────────────────────────

    def _advance(self, conn: sqlite3.Connection, user_id: int, reached: str) -> str:
        row = conn.execute("SELECT profile_completion_step FROM users WHERE id = ?", (user_id,)).fetchone()
        if row is None:
            raise NotFoundError("User not found")
        step = advance_step(row[0], reached)
        if step == "completed":
            conn.execute(
                "UPDATE users SET profile_completion_step = ?, profile_completed = 1, updated_at = ? WHERE id = ?",
                (step, to_db_time(utc_now()), user_id),
            )
        else:
            conn.execute(
                "UPDATE users SET profile_completion_step = ?, updated_at = ? WHERE id = ?",
                (step, to_db_time(utc_now()), user_id),
            )
        return step

    # ──────────────────────────────────────────────────────────────
    # Section normalisation
    # ──────────────────────────────────────────────────────────────

    def _member_document(self, details: dict) -> dict:
        if not isinstance(details, dict):
            raise ValidationError("Member details are required")
        email = (details.get("email") or "").strip()
        if email and not is_valid_email(email):
            raise ValidationError("Invalid email format")
        error = validate_birth_date(details.get("date_of_birth"), minimum_age=self.minimum_age)
        if error:
            raise ValidationError(error, {"date_of_birth": error})

        document = dict(details)
        document.update({
            "first_name": _text(details, "first_name"),
            "second_name": _text(details, "second_name"),
            "email": email,
            "phone": _stored_phone(details.get("phone"), details.get("country_code"), "Primary"),
            "secondary_phone": _stored_phone(
                details.get("secondary_phone"), details.get("secondary_country_code"), "Secondary"
            ),
            "same_as_current_address": bool(details.get("same_as_current")),
            "education": clean_education(details.get("education")),
            "profession": clean_profession(details.get("profession")),
        })
        document["name"] = f"{document['first_name']} {document['second_name']}".strip()
        document.pop("country_code", None)
        document.pop("secondary_country_code", None)
        return clean_kulam_values(document)

    def _spouse_document(self, details: dict) -> dict:
        if not isinstance(details, dict):
            raise ValidationError("Spouse details are required")
        email = (details.get("spouse_email") or "").strip()
        if email and not is_valid_email(email):
            raise ValidationError("Invalid spouse email format")
        error = validate_birth_date(details.get("spouse_date_of_birth"))
        if error:
            raise ValidationError(error, {"spouse_date_of_birth": error})

        document = dict(details)
        document.update({
            "spouse_first_name": _text(details, "spouse_first_name"),
            "spouse_second_name": _text(details, "spouse_second_name"),
            "spouse_email": email or None,
            "spouse_phone": _stored_phone(details.get("spouse_phone"), details.get("spouse_country_code"), "Spouse"),
            "education": clean_education(details.get("education")),
            "profession": clean_profession(details.get("profession")),
        })
        document.pop("spouse_country_code", None)
        return clean_kulam_values(document, prefix="spouse_")

    def _children_document(self, children) -> list[dict]:
        if isinstance(children, dict):
            children = list(children.values())
        kept = []
        for child in children or []:
            if not isinstance(child, dict) or not _text(child, "child_first_name"):
                continue
            error = validate_birth_date(child.get("child_date_of_birth"))
            if error:
                raise ValidationError(f"{child['child_first_name']}: {error}")
            document = dict(child)
            gender = (child.get("child_gender") or "").strip().lower()
            document.update({
                "id": child.get("id") or new_entry_id(),
                "child_first_name": _text(child, "child_first_name"),
                "child_second_name": _text(child, "child_second_name"),
                "child_gender": gender,
                "relationship": "son" if gender == "male" else "daughter",
                "education": clean_education(child.get("education")),
                "profession": clean_profession(child.get("profession")),
            })
            kept.append(clean_kulam_values(document))
        return kept

    @staticmethod
    def _tree_document(tree_type: str, data: dict) -> dict:
        data = data or {}
        document = {}
        for name in FAMILY_TREE_NAME_FIELDS:
            value = data.get(name, "")
            if tree_type == "spouse":
                value = data.get(f"spouse_{name}", value)
            document[name] = sanitize_input(value, max_length=255)
        # Kulam fields of ancestors (e.g. member_father_kulam) travel with the tree.
        for key, value in data.items():
            if split_kulam_field(key.removesuffix("_other")):
                document[key] = sanitize_input(value, max_length=255)
        for key in [k for k in document if k.endswith("_other")]:
            if not is_other_value(document.get(key.removesuffix("_other"))):
                document[key] = None
        return document

    # ──────────────────────────────────────────────────────────────
    # Save steps
    # ──────────────────────────────────────────────────────────────

    def _sync_user_columns(self, conn: sqlite3.Connection, user_id: int, member: dict) -> None:
        """Columns used for group auto-assignment, help-post targeting and the account snapshot."""
        education = member.get("education") or [{}]
        profession = member.get("profession") or [{}]
        conn.execute(
            "UPDATE users SET district = ?, pin_code = ?, institution = ?, company = ? WHERE id = ?",
            (
                member.get("district") or member.get("city") or None,
                member.get("pin_code") or None,
                education[0].get("institution") or None,
                profession[0].get("company_name") or None,
                user_id,
            ),
        )

    def member_details(self, user_id: int, body: dict) -> dict:
        document = self._member_document(body.get("member_details") or {})
        with self.db.transaction() as conn:
            self.sections.put(user_id, MEMBER_SECTION, document, conn)
            self._sync_user_columns(conn, user_id, document)
            step = self._advance(conn, user_id, next_step_after("member_details"))
        logger.info(f"👤 Member details saved for user {user_id}")
        return {"success": True, "message": "Member details saved successfully", "profile_completion_step": step}

    def spouse_details(self, user_id: int, body: dict) -> dict:
        document = self._spouse_document(body.get("spouse_details") or {})
        with self.db.transaction() as conn:
            self.sections.put(user_id, SPOUSE_SECTION, document, conn)
            step = self._advance(conn, user_id, next_step_after("spouse_details"))
        logger.info(f"💍 Spouse details saved for user {user_id}")
        return {"success": True, "message": "Spouse details saved successfully", "profile_completion_step": step}

    def children_details(self, user_id: int, body: dict) -> dict:
        children = self._children_document(body.get("children_details"))
        with self.db.transaction() as conn:
            self.sections.put(user_id, CHILDREN_SECTION, children, conn)
            step = self._advance(conn, user_id, next_step_after("children_details"))
        logger.info(f"👶 {len(children)} child record(s) saved for user {user_id}")
        return {
            "success": True,
            "message": "Children details saved successfully",
            "children": children,
            "profile_completion_step": step,
        }

    def basic_details(self, user_id: int, body: dict) -> dict:
        """Member, spouse and children in one transaction."""
        member = self._member_document(body.get("member_details") or {}) if "member_details" in body else None
        spouse = self._spouse_document(body["spouse_details"]) if body.get("spouse_details") else None
        children = self._children_document(body["children_details"]) if body.get("children_details") else None

        with self.db.transaction() as conn:
            if member is not None:
                self.sections.put(user_id, MEMBER_SECTION, member, conn)
                self._sync_user_columns(conn, user_id, member)
            if spouse is not None:
                self.sections.put(user_id, SPOUSE_SECTION, spouse, conn)
            if children is not None:
                self.sections.put(user_id, CHILDREN_SECTION, children, conn)
            step = self._advance(conn, user_id, "member_family_tree")
        return {"success": True, "message": "Basic details saved successfully", "profile_completion_step": step}

    def family_tree_step(self, user_id: int, tree_type: str, body: dict) -> dict:
        section = TREE_SECTIONS[tree_type]
        document = self._tree_document(tree_type, body.get(section) or {})
        with self.db.transaction() as conn:
            self.sections.put(user_id, section, document, conn)
            step = self._advance(conn, user_id, next_step_after(section))
        logger.info(f"🌳 {tree_type.title()} family tree saved for user {user_id}")
        return {
            "success": True,
            "message": f"{tree_type.title()} family tree saved successfully",
            "profile_completion_step": step,
        }

    def family_tree(self, user_id: int, body: dict) -> dict:
        """Both trees at once; finishes the profile."""
        with self.db.transaction() as conn:
            if "member_family_tree" in body:
                self.sections.put(
                    user_id, TREE_SECTIONS["member"], self._tree_document("member", body["member_family_tree"]), conn
                )
            if body.get("spouse_family_tree"):
                self.sections.put(
                    user_id, TREE_SECTIONS["spouse"], self._tree_document("spouse", body["spouse_family_tree"]), conn
                )
            self._advance(conn, user_id, "completed")
        return {"success": True, "message": "Profile completed successfully"}

    def save_family_tree_subsection(self, user_id: int, tree_type: str, subsection: str, data) -> dict:
        if not data or not isinstance(data, dict):
            raise ValidationError("No data provided for family tree subsection")
        section = TREE_SECTIONS[tree_type]
        with self.db.transaction() as conn:
            row = conn.execute(
                "SELECT data_json FROM profile_sections WHERE user_id = ? AND section = ?",
                (user_id, section),
            ).fetchone()
            tree = loads(row[0], {}) if row else {name: "" for name in FAMILY_TREE_NAME_FIELDS}
            for name in FAMILY_TREE_SUBSECTIONS[subsection]:
                tree[name] = sanitize_input(data.get(name, ""), max_length=255)
            self.sections.put(user_id, section, tree, conn)
        label = subsection.replace("_", " ").capitalize()
        logger.info(f"🌳 {tree_type} {subsection} saved for user {user_id}")
        return {"success": True, "message": f"{label} saved successfully", "family_tree": tree}

    def complete_profile(self, user_id: int) -> dict:
        with self.db.transaction() as conn:
            self._advance(conn, user_id, "completed")
        logger.info(f"🏁 Profile completed for user {user_id}")
        return {"success": True, "message": "Profile completed successfully"}

    # ──────────────────────────────────────────────────────────────
    # Loading
    # ──────────────────────────────────────────────────────────────

    def get_member_details(self, user_id: int) -> dict:
        member = self.sections.get(user_id, MEMBER_SECTION)
        if member is None:
            return {"success": False, "message": "No member details found"}
        return {"success": True, "member_details": member}

    def get_spouse_details(self, user_id: int) -> dict:
        spouse = self.sections.get(user_id, SPOUSE_SECTION)
        if spouse is None:
            return {"success": False, "message": "No spouse details found"}
        return {"success": True, "spouse": spouse}

    def get_children_details(self, user_id: int) -> dict:
        return {"success": True, "children": self.sections.get(user_id, CHILDREN_SECTION) or []}

    def get_family_tree(self, user_id: int, tree_type: str) -> dict:
        tree = self.sections.get(user_id, TREE_SECTIONS[tree_type])
        if tree is None:
            return {"success": False, "message": f"No {tree_type} family tree found"}
        return {"success": True, "family_tree": tree}
