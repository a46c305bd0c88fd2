"""
Kudumbam — Form Relationships
Reference option lists for the profile dropdowns and the two parent→child
cascades: Kula Deivam → Kaani and Degree → Department.

Matching a parent value is trimmed and case-insensitive. When the parent value
is empty, unknown, or has no recorded children, the dependent dropdown gets the
full unfiltered list so the user is never left without options.
"""

from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from kudumbam.utils.logger import logger


OPTION_TYPES = (
    "kulam", "kula_deivam", "kaani", "degree",
    "department", "institution", "company", "position",
)

# parent option type → dependent option type
CASCADES = {
    "kula_deivam": "kaani",
    "degree": "department",
}


@dataclass(frozen=True)
class OptionItem:
    id: int
    value: str
    parent_id: Optional[int] = None


FALLBACK_OPTIONS: dict[str, list[OptionItem]] = {
    "kulam": [
        OptionItem(1, "Agastyar"), OptionItem(2, "Kasyapar"), OptionItem(3, "Vashishtar"),
        OptionItem(4, "Bharadwajar"), OptionItem(5, "Gautamar"),
    ],
    "kula_deivam": [
        OptionItem(10, "Murugan"), OptionItem(11, "Ganesha"), OptionItem(12, "Shiva"),
        OptionItem(13, "Vishnu"), OptionItem(14, "Devi"),
    ],
    "kaani": [
        OptionItem(20, "Murugan Kaani 1", 10), OptionItem(21, "Murugan Kaani 2", 10),
        OptionItem(22, "Ganesha Kaani 1", 11), OptionItem(23, "Ganesha Kaani 2", 11),
        OptionItem(24, "Shiva Kaani 1", 12), OptionItem(25, "Devi Kaani 1", 14),
    ],
    "degree": [
        OptionItem(30, "Bachelor of Engineering"), OptionItem(31, "Master of Engineering"),
        OptionItem(32, "Bachelor of Technology"), OptionItem(33, "Bachelor of Science"),
        OptionItem(34, "Master of Science"),
    ],
    "department": [
        OptionItem(40, "Computer Science Engineering", 30),
        OptionItem(41, "Electronics and Communication", 30),
        OptionItem(42, "Mechanical Engineering", 30),
        OptionItem(43, "Advanced Computer Science", 31),
        OptionItem(44, "Information Technology", 32),
        OptionItem(45, "Mathematics", 33),
        OptionItem(46, "Physics", 33),
        OptionItem(47, "Advanced Mathematics", 34),
    ],
    "institution": [
        OptionItem(50, "Anna University"), OptionItem(51, "IIT Madras"), OptionItem(52, "VIT University"),
    ],
    "company": [OptionItem(60, "TCS"), OptionItem(61, "Infosys"), OptionItem(62, "Google")],
    "position": [
        OptionItem(70, "Software Engineer"), OptionItem(71, "Senior Software Engineer"),
        OptionItem(72, "Tech Lead"),
    ],
}


def _normalize(value: Optional[str]) -> str:
    return (value or "").strip().casefold()


class ReferenceData:
    """Option lists plus parent_id → children adjacency for every option type."""

    def __init__(self, options: dict[str, list[OptionItem]]):
        self.options = {option_type: list(items) for option_type, items in options.items()}
        self.children: dict[str, dict[int, list[OptionItem]]] = {}
        for option_type, items in self.options.items():
            for item in items:
                if item.parent_id is None:
                    continue
                self.children.setdefault(option_type, {}).setdefault(item.parent_id, []).append(item)

    @classmethod
    def fallback(cls) -> "ReferenceData":
        return cls(FALLBACK_OPTIONS)

    @classmethod
    def from_payload(cls, payload: dict[str, list[dict]]) -> "ReferenceData":
        """Build from the /form_values response ({type: [{id, value, parent_id}]})."""
        options = {
            option_type: [
                OptionItem(int(row["id"]), str(row["value"]), row.get("parent_id"))
                for row in rows
            ]
            for option_type, rows in (payload or {}).items()
        }
        # Types missing from the server response keep their fallback lists.
        for option_type, items in FALLBACK_OPTIONS.items():
            options.setdefault(option_type, list(items))
        return cls(options)

    def values(self, option_type: str) -> list[str]:
        return [item.value for item in self.options.get(option_type, [])]

    def find(self, option_type: str, value: Optional[str]) -> Optional[OptionItem]:
        wanted = _normalize(value)
        if not wanted:
            return None
        for item in self.options.get(option_type, []):
            if _normalize(item.value) == wanted:
                return item
        return None

    def related_values(self, parent_type: str, parent_value: Optional[str], child_type: str) -> list[str]:
        """Children of `parent_value`, or the full `child_type` list when there are none."""
        parent = self.find(parent_type, parent_value)
        if parent is None:
            return self.values(child_type)
        related = self.children.get(child_type, {}).get(parent.id)
        if not related:
            return self.values(child_type)
        return [item.value for item in related]

    def has_children(self, parent_type: str, parent_value: Optional[str], child_type: str) -> bool:
        parent = self.find(parent_type, parent_value)
        return parent is not None and bool(self.children.get(child_type, {}).get(parent.id))


SelectionListener = Callable[[Optional[str]], None]


class Dropdown:
    """One selector: its option type, current options and selected value."""

    def __init__(self, name: str, option_type: str, options: Iterable[str] = ()):
        self.name = name
        self.option_type = option_type
        self.options: list[str] = list(options)
        self.value: Optional[str] = None
        self._listeners: list[SelectionListener] = []

    def subscribe(self, listener: SelectionListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: SelectionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def select(self, value: Optional[str]) -> None:
        self.value = value
        for listener in list(self._listeners):
            listener(value)

    def set_options(self, options: Iterable[str]) -> None:
        """Replace the option list; a selection no longer offered is cleared."""
        self.options = list(options)
        if self.value is not None and self.value not in self.options:
            self.select(None)


class FormRelationships:
    """
    Dropdowns for one form instance, with explicit parent→child bindings.
    Dropdowns created later (a new child's Kulam selectors) are bound when
    they are created through `cascade()`, never by page-wide matching.
    """

    def __init__(self, reference: Optional[ReferenceData] = None):
        self.reference = reference or ReferenceData.fallback()
        self.dropdowns: dict[str, Dropdown] = {}
        self._bindings: list[tuple[Dropdown, Dropdown, SelectionListener]] = []

    def dropdown(self, name: str, option_type: str) -> Dropdown:
        if name not in self.dropdowns:
            self.dropdowns[name] = Dropdown(name, option_type, self.reference.values(option_type))
        return self.dropdowns[name]

    def bind(self, parent: Dropdown, child: Dropdown) -> None:
        def _refresh(value: Optional[str]) -> None:
            child.set_options(
                self.reference.related_values(parent.option_type, value, child.option_type)
            )

        parent.subscribe(_refresh)
        self._bindings.append((parent, child, _refresh))

    def cascade(self, prefix: str, parent_type: str) -> tuple[Dropdown, Dropdown]:
        """Create and bind e.g. '<prefix>_kula_deivam' → '<prefix>_kaani'."""
        child_type = CASCADES.get(parent_type)
        if child_type is None:
            raise ValueError(f"No cascade defined for '{parent_type}'")
        parent = self.dropdown(f"{prefix}_{parent_type}", parent_type)
        child = self.dropdown(f"{prefix}_{child_type}", child_type)
        self.bind(parent, child)
        return parent, child

    def remove_prefix(self, prefix: str) -> None:
        """Forget every dropdown of a removed owner (e.g. a deleted child)."""
        removed = [self.dropdowns.pop(name) for name in list(self.dropdowns) if name.startswith(f"{prefix}_")]
        kept = []
        for parent, child, listener in self._bindings:
            if parent in removed or child in removed:
                parent.unsubscribe(listener)
            else:
                kept.append((parent, child, listener))
        self._bindings = kept

    def reload(self, reference: ReferenceData) -> None:
        self.reference = reference
        for dropdown in self.dropdowns.values():
            dropdown.options = self.reference.values(dropdown.option_type)
        for parent, _, listener in self._bindings:
            listener(parent.value)
        logger.debug(f"🔗 Reloaded reference data for {len(self.dropdowns)} dropdown(s)")

    def related_values(self, parent_type: str, parent_value: Optional[str], child_type: str) -> list[str]:
        return self.reference.related_values(parent_type, parent_value, child_type)
