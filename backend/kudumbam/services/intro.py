"""
Kudumbam — Intro Questionnaire
Gender / marital status / children answers and the fields derived from them.
The derivation is a fixed lookup table keyed by marriage type.
"""

from dataclasses import asdict, dataclass
from typing import Optional

from kudumbam.core.database import Database, get_database, to_db_time, utc_now
from kudumbam.core.errors import NotFoundError, ValidationError
from kudumbam.services.profile_completion import advance_step
from kudumbam.utils.logger import logger


GENDERS = ("male", "female", "others")
YES_NO = ("yes", "no")

# marriageType → (isMarried, marriageStatus, statusAcceptance)
MARRIAGE_TABLE = {
    "unmarried": ("no", "unmarried", "valid"),
    "married": ("yes", "married", "valid"),
    "widowed": ("yes", "married", "valid"),
    "divorced": ("yes", "married", "invalid"),
    "remarried": ("yes", "complicated", "invalid"),
}

MARRIAGE_TYPES = tuple(MARRIAGE_TABLE)


@dataclass
class IntroAnswers:
    gender: str
    marriageType: str
    hasChildren: str
    isMarried: str
    marriageStatus: str
    statusAcceptance: str
    role: str

    def to_dict(self) -> dict:
        return asdict(self)


def calculate_marriage_data(marriage_type: str) -> dict:
    """Derived marriage fields; 'unmarried' also forces hasChildren to 'no'."""
    key = (marriage_type or "").strip().lower()
    if key not in MARRIAGE_TABLE:
        raise ValidationError("Invalid marriage type")
    is_married, status, acceptance = MARRIAGE_TABLE[key]
    data = {
        "isMarried": is_married,
        "marriageStatus": status,
        "statusAcceptance": acceptance,
    }
    if key == "unmarried":
        data["hasChildren"] = "no"
    return data


def calculate_role(gender: str, is_married: str, has_children: str) -> str:
    gender = (gender or "").strip().lower()
    if gender == "others":
        return "member"
    male = gender == "male"
    if is_married != "yes":
        return "son" if male else "daughter"
    if has_children == "yes":
        return "father" if male else "mother"
    return "husband" if male else "wife"


def derive_intro_answers(gender: str, marriage_type: str, has_children: Optional[str] = None) -> IntroAnswers:
    """Validate the raw answers and compute every derived field."""
    gender = (gender or "").strip().lower()
    marriage_type = (marriage_type or "").strip().lower()
    has_children = (has_children or "").strip().lower()

    if gender not in GENDERS:
        raise ValidationError("Please select a valid gender", {"gender": "Invalid gender"})
    if marriage_type not in MARRIAGE_TABLE:
        raise ValidationError("Please select a valid marital status", {"marriageType": "Invalid marriage type"})

    marriage = calculate_marriage_data(marriage_type)
    if marriage["isMarried"] == "yes":
        if has_children not in YES_NO:
            raise ValidationError(
                "Please specify whether you have children",
                {"hasChildren": "Required for married members"},
            )
    else:
        has_children = marriage["hasChildren"]

    return IntroAnswers(
        gender=gender,
        marriageType=marriage_type,
        hasChildren=has_children,
        isMarried=marriage["isMarried"],
        marriageStatus=marriage["marriageStatus"],
        statusAcceptance=marriage["statusAcceptance"],
        role=calculate_role(gender, marriage["isMarried"], has_children),
    )


class IntroService:
    """Stores intro answers on the user row and unlocks profile completion."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()

    def save(self, user_id: int, gender: str, marriage_type: str, has_children: Optional[str]) -> IntroAnswers:
        """Answers may be revised; the stored completion step is kept if it is already further on."""
        answers = derive_intro_answers(gender, marriage_type, has_children)
        with self.db.transaction() as conn:
            row = conn.execute("SELECT profile_completion_step FROM users WHERE id = ?", (user_id,)).fetchone()
            if row is None:
                raise NotFoundError("User not found")
            step = advance_step(row["profile_completion_step"], "member_details")
            conn.execute(
                """
                UPDATE users SET
                    gender = ?, marriage_type = ?, has_children = ?, is_married = ?,
                    marriage_status = ?, status_acceptance = ?, role = ?,
                    intro_completed = 1, questions_completed = 1,
                    profile_completion_step = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    answers.gender, answers.marriageType, answers.hasChildren, answers.isMarried,
                    answers.marriageStatus, answers.statusAcceptance, answers.role,
                    step, to_db_time(utc_now()), user_id,
                ),
            )
        logger.info(f"📝 Intro saved for user {user_id}: {answers.marriageType} → role {answers.role} (step {step})")
        return answers

    def get(self, user_id: int) -> dict:
        row = self.db.fetch_one(
            """
            SELECT gender, marriage_type, has_children, is_married, marriage_status,
                   status_acceptance, role, intro_completed
            FROM users WHERE id = ?
            """,
            (user_id,),
        )
        if not row:
            raise NotFoundError("User not found")
        return {
            "gender": row["gender"],
            "marriageType": row["marriage_type"],
            "hasChildren": row["has_children"],
            "isMarried": row["is_married"],
            "marriageStatus": row["marriage_status"],
            "statusAcceptance": row["status_acceptance"],
            "role": row["role"],
            "intro_completed": bool(row["intro_completed"]),
        }
