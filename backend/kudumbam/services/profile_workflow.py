"""
Kudumbam — Profile Completion Workflow
Section visibility, requirement and save-state rules for the five profile
sections. No I/O here: the client controller feeds save results in and reads
the resulting state back out.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from kudumbam.utils.logger import logger


class Section(str, Enum):
    MEMBER_DETAILS = "member-details"
    SPOUSE_DETAILS = "spouse-details"
    CHILDREN_DETAILS = "children-details"
    MEMBER_FAMILY_TREE = "member-family-tree"
    SPOUSE_FAMILY_TREE = "spouse-family-tree"


SECTION_ORDER = [
    Section.MEMBER_DETAILS,
    Section.SPOUSE_DETAILS,
    Section.CHILDREN_DETAILS,
    Section.MEMBER_FAMILY_TREE,
    Section.SPOUSE_FAMILY_TREE,
]

SECTION_LABELS = {
    Section.MEMBER_DETAILS: "Member Details",
    Section.SPOUSE_DETAILS: "Spouse Details",
    Section.CHILDREN_DETAILS: "Children Details",
    Section.MEMBER_FAMILY_TREE: "Member Family Tree",
    Section.SPOUSE_FAMILY_TREE: "Spouse Family Tree",
}

# Section → profile_completion step used to save it
SECTION_STEPS = {
    Section.MEMBER_DETAILS: "member_details",
    Section.SPOUSE_DETAILS: "spouse_details",
    Section.CHILDREN_DETAILS: "children_details",
    Section.MEMBER_FAMILY_TREE: "member_family_tree",
    Section.SPOUSE_FAMILY_TREE: "spouse_family_tree",
}

FAMILY_TREE_SUBSECTIONS = {
    "parents": ("father_name", "mother_name"),
    "paternal_grandparents": ("paternal_grandfather_name", "paternal_grandmother_name"),
    "maternal_grandparents": ("maternal_grandfather_name", "maternal_grandmother_name"),
}
FAMILY_TREE_NAME_FIELDS = tuple(
    name for names in FAMILY_TREE_SUBSECTIONS.values() for name in names
)


class SaveState(str, Enum):
    UNSAVED = "unsaved"
    SAVING = "saving"
    SAVED = "saved"


class SectionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    ERROR = "error"


# ──────────────────────────────────────────────────────────────
# Visibility & requirement rules
# ──────────────────────────────────────────────────────────────

def _married(user: dict) -> bool:
    return user.get("isMarried") == "yes"


def _has_children(user: dict) -> bool:
    return user.get("hasChildren") == "yes"


def is_section_visible(section: Section, user: dict) -> bool:
    if section in (Section.SPOUSE_DETAILS, Section.SPOUSE_FAMILY_TREE):
        return _married(user)
    if section == Section.CHILDREN_DETAILS:
        return _has_children(user)
    return True


def is_section_required(section: Section, user: dict) -> bool:
    if section == Section.MEMBER_DETAILS:
        return True
    if section == Section.SPOUSE_DETAILS:
        return _married(user)
    if section == Section.CHILDREN_DETAILS:
        return _has_children(user)
    return False


def visible_sections(user: dict) -> list[Section]:
    return [s for s in SECTION_ORDER if is_section_visible(s, user)]


def required_sections(user: dict) -> list[Section]:
    return [s for s in SECTION_ORDER if is_section_required(s, user)]


# ──────────────────────────────────────────────────────────────
# Family tree heuristics
# ──────────────────────────────────────────────────────────────

def _filled(data: dict, name: str) -> bool:
    value = data.get(name)
    return bool(value and str(value).strip())


def count_family_tree_names(data: Optional[dict]) -> int:
    data = data or {}
    return sum(1 for name in FAMILY_TREE_NAME_FIELDS if _filled(data, name))


def has_substantial_family_tree_data(data: Optional[dict]) -> bool:
    """Loaded tree counts as complete with 3+ names, or both parents."""
    data = data or {}
    parents = _filled(data, "father_name") and _filled(data, "mother_name")
    return count_family_tree_names(data) >= 3 or parents


def family_tree_complete_after_save(data: Optional[dict]) -> bool:
    """After saving subsections, 2+ names anywhere in the tree is enough."""
    return count_family_tree_names(data) >= 2


def subsection_has_data(subsection: str, data: Optional[dict]) -> bool:
    data = data or {}
    return any(_filled(data, name) for name in FAMILY_TREE_SUBSECTIONS[subsection])


# ──────────────────────────────────────────────────────────────
# Save-all summary
# ──────────────────────────────────────────────────────────────

def save_summary_message(saved: int, total: int, failed: int) -> str:
    if failed == 0:
        plural = "" if saved == 1 else "s"
        return f"Successfully saved {saved} section{plural}!"
    if saved > 0:
        return f"Saved {saved}/{total} sections. Some sections had errors."
    return "Failed to save any sections. Please check the form data."


def missing_sections_message(missing: list[Section]) -> Optional[str]:
    if not missing:
        return None
    names = ", ".join(SECTION_LABELS[s] for s in missing)
    return f"Please complete the following sections first: {names}"


# ──────────────────────────────────────────────────────────────
# Section state machine
# ──────────────────────────────────────────────────────────────

@dataclass
class SectionState:
    section: Section
    completed: bool = False
    save_state: SaveState = SaveState.UNSAVED
    error: Optional[str] = None
    # Completed because the section does not apply (not married / no children).
    auto_completed: bool = False

    @property
    def status(self) -> SectionStatus:
        if self.error:
            return SectionStatus.ERROR
        if self.completed:
            return SectionStatus.COMPLETED
        return SectionStatus.PENDING

    @property
    def is_stale(self) -> bool:
        return not self.auto_completed and self.save_state != SaveState.SAVED


class ProfileWorkflow:
    """
    Completion and save-button state for each section.

    A section only becomes complete through `save_succeeded` (or by not
    applying to the user). Any edit flips its button back to unsaved; a failed
    save clears completion and records the error.
    """

    def __init__(self, user: dict):
        self.user = dict(user)
        self.states = {section: SectionState(section) for section in SECTION_ORDER}
        self.submitted = False
        self._apply_auto_completion()

    # --- answers ---

    def update_answers(self, is_married: Optional[str] = None, has_children: Optional[str] = None) -> None:
        if is_married is not None:
            self.user["isMarried"] = is_married
        if has_children is not None:
            self.user["hasChildren"] = has_children
        self._apply_auto_completion()

    def _apply_auto_completion(self) -> None:
        auto = {
            Section.SPOUSE_DETAILS: not _married(self.user),
            Section.SPOUSE_FAMILY_TREE: not _married(self.user),
            Section.CHILDREN_DETAILS: not _has_children(self.user),
        }
        for section, applies in auto.items():
            state = self.states[section]
            if applies:
                state.completed = True
                state.auto_completed = True
                state.error = None
            elif state.auto_completed:
                # The section now applies again and has never been saved.
                self.states[section] = SectionState(section)

    # --- queries ---

    def is_visible(self, section: Section) -> bool:
        return is_section_visible(section, self.user)

    def visible_sections(self) -> list[Section]:
        return visible_sections(self.user)

    def required_sections(self) -> list[Section]:
        return required_sections(self.user)

    def missing_required(self) -> list[Section]:
        return [s for s in self.required_sections() if not self.states[s].completed]

    def can_submit(self) -> bool:
        return not self.submitted and not self.missing_required()

    def missing_message(self) -> Optional[str]:
        return missing_sections_message(self.missing_required())

    def stale_sections(self) -> list[Section]:
        return [s for s in self.visible_sections() if self.states[s].is_stale]

    def state(self, section: Section) -> SectionState:
        return self.states[section]

    # --- transitions ---

    def mark_dirty(self, section: Section) -> None:
        state = self.states[section]
        if state.save_state != SaveState.UNSAVED:
            state.save_state = SaveState.UNSAVED

    def begin_save(self, section: Section) -> None:
        if not self.is_visible(section):
            raise ValueError(f"Section '{section.value}' does not apply to this member")
        self.states[section].save_state = SaveState.SAVING

    def save_succeeded(self, section: Section, complete: bool = True) -> None:
        state = self.states[section]
        state.save_state = SaveState.SAVED
        state.error = None
        if complete:
            state.completed = True
        logger.debug(f"✅ Section {section.value} saved (complete={state.completed})")

    def save_failed(self, section: Section, message: str) -> None:
        state = self.states[section]
        state.save_state = SaveState.UNSAVED
        state.completed = False
        state.error = message
        logger.info(f"⚠️ Section {section.value} save failed: {message}")

    def mark_loaded(self, section: Section, complete: bool) -> None:
        """Data fetched from the server counts as saved."""
        state = self.states[section]
        state.save_state = SaveState.SAVED
        if complete:
            state.completed = True

    def mark_submitted(self) -> None:
        self.submitted = True

    def snapshot(self) -> dict:
        """Plain view model for rendering the section list."""
        return {
            "submitted": self.submitted,
            "can_submit": self.can_submit(),
            "missing_message": self.missing_message(),
            "sections": [
                {
                    "id": section.value,
                    "label": SECTION_LABELS[section],
                    "visible": self.is_visible(section),
                    "required": is_section_required(section, self.user),
                    "status": self.states[section].status.value,
                    "save_state": self.states[section].save_state.value,
                    "error": self.states[section].error,
                }
                for section in SECTION_ORDER
            ],
        }
