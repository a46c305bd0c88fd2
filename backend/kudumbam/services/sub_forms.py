"""
Kudumbam — Repeatable Sub-Forms
Education and profession entries per owner (member, spouse, each child) and
the children list itself. Every entry carries a UUID, so removing one never
renumbers the others.
"""

import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import date
from typing import Generic, Iterator, Optional, TypeVar


EDUCATION_STATUSES = ("completed", "pursuing", "illiterate")
EDUCATION_LEVELS = ("school", "college")
JOB_TYPES = ("Self-employed", "Government", "Private", "Others")
OTHER_JOB_TYPE = "Others"

EARLIEST_COMPLETION_YEAR = 1950
MAX_EXPERIENCE_YEARS = 50


def new_entry_id() -> str:
    return str(uuid.uuid4())


def year_of_completion_options(current_year: Optional[int] = None) -> list[int]:
    """Current year down to 1950, most recent first."""
    current_year = current_year or date.today().year
    return list(range(current_year, EARLIEST_COMPLETION_YEAR - 1, -1))


def experience_year_options() -> list[int]:
    return list(range(0, MAX_EXPERIENCE_YEARS + 1))


def experience_month_options() -> list[int]:
    return list(range(0, 12))


def _to_int(value, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _clean(value) -> str:
    return str(value).strip() if value is not None else ""


@dataclass
class EducationEntry:
    degree: str = ""
    department: str = ""
    year_of_completion: Optional[int] = None
    institution: str = ""
    education_status: str = "completed"
    education_level: str = "college"
    school_name: str = ""
    board: str = ""
    completed_class: str = ""
    current_class: str = ""
    current_year: str = ""
    id: str = field(default_factory=new_entry_id)

    @property
    def is_filled(self) -> bool:
        return bool(_clean(self.degree))

    def visible_fields(self) -> list[str]:
        """Which inputs the entry shows for its status/level combination."""
        if self.education_status == "illiterate":
            return ["education_status"]
        base = ["education_status", "education_level"]
        if self.education_level == "school":
            extra = ["school_name", "board"]
            extra.append("completed_class" if self.education_status == "completed" else "current_class")
            return base + extra
        extra = ["degree", "department", "institution"]
        extra.append("year_of_completion" if self.education_status == "completed" else "current_year")
        return base + extra

    def to_payload(self) -> dict:
        return asdict(self)

    @classmethod
    def from_payload(cls, data: dict) -> "EducationEntry":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in (data or {}).items() if k in known}
        if not values.get("id"):
            values.pop("id", None)
        year = values.get("year_of_completion")
        values["year_of_completion"] = _to_int(year) if year not in (None, "") else None
        return cls(**values)


@dataclass
class ProfessionEntry:
    job_type: str = ""
    job_type_other: str = ""
    company_name: str = ""
    position: str = ""
    experience_years: int = 0
    experience_months: int = 0
    id: str = field(default_factory=new_entry_id)

    @property
    def is_filled(self) -> bool:
        return bool(_clean(self.job_type))

    @property
    def total_experience_months(self) -> int:
        return _to_int(self.experience_years) * 12 + _to_int(self.experience_months)

    def to_payload(self) -> dict:
        payload = asdict(self)
        if self.job_type != OTHER_JOB_TYPE:
            payload["job_type_other"] = ""
        return payload

    @classmethod
    def from_payload(cls, data: dict) -> "ProfessionEntry":
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in (data or {}).items() if k in known}
        if not values.get("id"):
            values.pop("id", None)
        values["experience_years"] = _to_int(values.get("experience_years"))
        values["experience_months"] = _to_int(values.get("experience_months"))
        return cls(**values)


def sort_education(entries: list[EducationEntry]) -> list[EducationEntry]:
    """Drop entries without a degree; most recent completion year first (no year last)."""
    kept = [e for e in entries if e.is_filled]
    return sorted(kept, key=lambda e: e.year_of_completion or 0, reverse=True)


def sort_profession(entries: list[ProfessionEntry]) -> list[ProfessionEntry]:
    """Drop entries without a job type; longest total experience first."""
    kept = [e for e in entries if e.is_filled]
    return sorted(kept, key=lambda e: e.total_experience_months, reverse=True)


T = TypeVar("T")


class EntryList(Generic[T]):
    """Ordered entries addressed by id."""

    def __init__(self, items: Optional[list[T]] = None):
        self._items: list[T] = list(items or [])

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def add(self, item: T) -> T:
        self._items.append(item)
        return item

    def get(self, entry_id: str) -> Optional[T]:
        for item in self._items:
            if item.id == entry_id:
                return item
        return None

    def remove(self, entry_id: str) -> bool:
        before = len(self._items)
        self._items = [item for item in self._items if item.id != entry_id]
        return len(self._items) != before

    def ids(self) -> list[str]:
        return [item.id for item in self._items]


class EducationList(EntryList[EducationEntry]):
    def add_entry(self, **values) -> EducationEntry:
        return self.add(EducationEntry(**values))

    def collect(self) -> list[dict]:
        return [entry.to_payload() for entry in sort_education(list(self))]


class ProfessionList(EntryList[ProfessionEntry]):
    def add_entry(self, **values) -> ProfessionEntry:
        return self.add(ProfessionEntry(**values))

    def collect(self) -> list[dict]:
        return [entry.to_payload() for entry in sort_profession(list(self))]


@dataclass
class Child:
    first_name: str = ""
    second_name: str = ""
    gender: str = ""
    date_of_birth: str = ""
    kulam: str = ""
    kula_deivam: str = ""
    kaani: str = ""
    education: EducationList = field(default_factory=EducationList)
    profession: ProfessionList = field(default_factory=ProfessionList)
    id: str = field(default_factory=new_entry_id)

    @property
    def field_prefix(self) -> str:
        """Prefix used for this child's Kulam fields, e.g. 'child_<uuid>'."""
        return f"child_{self.id}"

    @property
    def relationship(self) -> str:
        return "son" if (self.gender or "").lower() == "male" else "daughter"

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "child_first_name": self.first_name,
            "child_second_name": self.second_name,
            "child_gender": self.gender,
            "child_date_of_birth": self.date_of_birth,
            "kulam": self.kulam,
            "kula_deivam": self.kula_deivam,
            "kaani": self.kaani,
            "education": self.education.collect(),
            "profession": self.profession.collect(),
        }


class ChildrenList(EntryList[Child]):
    def add_child(self, **values) -> Child:
        return self.add(Child(**values))

    def field_prefixes(self) -> list[str]:
        return [child.field_prefix for child in self]

    def collect(self) -> list[dict]:
        """Children without a first name are left out of the submission."""
        return [child.to_payload() for child in self if _clean(child.first_name)]
