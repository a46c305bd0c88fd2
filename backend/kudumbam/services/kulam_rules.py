"""
Kudumbam — Kulam Auto-Population Rules
Gender-keyed rule table for clan (Kulam), family deity (Kula Deivam) and
sub-clan (Kaani) fields. Collected roles are entered directly; each may copy
its value onto derived relatives (patrilineal inheritance).
"""

from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from kudumbam.utils.logger import logger


KULAM_FIELD_TYPES = ("kula_deivam", "kaani", "kulam")
OTHER_VALUE = "other"

# Roles that stand for "every child" and fan out per child entry.
CHILDREN_ROLES = ("member_children", "spouse_children")

ROLE_LABELS = {
    "member": "You (Member)",
    "member_mother": "Your Mother",
    "member_paternal_grandmother": "Your Paternal Grandmother",
    "member_maternal_grandmother": "Your Maternal Grandmother",
    "spouse": "Your Spouse",
    "spouse_mother": "Spouse's Mother",
    "spouse_paternal_grandmother": "Spouse's Paternal Grandmother",
    "spouse_maternal_grandmother": "Spouse's Maternal Grandmother",
    "member_children": "Your Children",
    "member_father": "Your Father",
    "member_paternal_grandfather": "Your Paternal Grandfather",
    "member_maternal_grandfather": "Your Maternal Grandfather",
    "spouse_children": "Spouse's Children",
    "spouse_father": "Spouse's Father",
    "spouse_paternal_grandfather": "Spouse's Paternal Grandfather",
}


@dataclass(frozen=True)
class KulamRuleSet:
    """collect: roles entered by hand. copy_map: source role → derived roles."""
    collect: tuple[str, ...]
    copy_map: dict[str, tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self):
        collected = set(self.collect)
        for source, targets in self.copy_map.items():
            if source not in collected:
                raise ValueError(f"Copy source '{source}' is not a collected role")
            # Sources only: a target may never feed another copy, so the graph stays acyclic.
            overlap = collected.intersection(targets)
            if overlap:
                raise ValueError(f"Derived roles {sorted(overlap)} are also collected")

    def targets(self, role: str) -> tuple[str, ...]:
        return self.copy_map.get(role, ())

    def is_source(self, role: str) -> bool:
        return role in self.copy_map

    def derived_roles(self) -> set[str]:
        return {target for targets in self.copy_map.values() for target in targets}


_COLLECTED_ROLES = (
    "member",
    "member_mother",
    "member_paternal_grandmother",
    "member_maternal_grandmother",
    "spouse",
    "spouse_mother",
    "spouse_paternal_grandmother",
    "spouse_maternal_grandmother",
)

DEFAULT_KULAM_RULES: dict[str, KulamRuleSet] = {
    "male": KulamRuleSet(
        collect=_COLLECTED_ROLES,
        copy_map={
            "member": ("member_children", "member_father", "member_paternal_grandfather"),
            "member_mother": ("member_maternal_grandfather",),
            "spouse": ("spouse_father", "spouse_paternal_grandfather"),
        },
    ),
    "female": KulamRuleSet(
        collect=_COLLECTED_ROLES,
        copy_map={
            "member": ("member_father", "member_paternal_grandfather"),
            "member_mother": ("member_maternal_grandfather",),
            "spouse": ("spouse_children", "spouse_father", "spouse_paternal_grandfather"),
        },
    ),
}


def kulam_field_name(role: str, field_type: str) -> str:
    return f"{role}_{field_type}"


def split_kulam_field(name: str) -> Optional[tuple[str, str]]:
    """'member_mother_kula_deivam' → ('member_mother', 'kula_deivam'); None for other fields."""
    if name.endswith("_other"):
        return None
    for field_type in KULAM_FIELD_TYPES:
        suffix = f"_{field_type}"
        if name.endswith(suffix) and len(name) > len(suffix):
            return name[: -len(suffix)], field_type
    return None


def is_other_value(value) -> bool:
    return isinstance(value, str) and value.strip().lower() == OTHER_VALUE


class KulamRuleEngine:
    """Looks up and applies the copy rules for a member gender."""

    def __init__(self, rules: Optional[dict[str, KulamRuleSet]] = None):
        self.rules = rules if rules is not None else DEFAULT_KULAM_RULES

    def rules_for(self, gender: Optional[str]) -> Optional[KulamRuleSet]:
        """None for 'Others' and unknown genders: those are exempt from copying."""
        if not gender:
            return None
        return self.rules.get(gender.strip().lower())

    def requirements(self, gender: Optional[str]) -> list[dict]:
        """Describe what is collected and where it auto-copies (info panel)."""
        rules = self.rules_for(gender)
        if rules is None:
            return []
        return [
            {
                "role": role,
                "label": ROLE_LABELS.get(role, role),
                "copies_to": [ROLE_LABELS.get(t, t) for t in rules.targets(role)],
            }
            for role in rules.collect
        ]

    def copy_targets(
        self,
        gender: Optional[str],
        field_name: str,
        child_prefixes: Iterable[str] = (),
    ) -> list[str]:
        """Concrete field names that receive a copy when `field_name` changes."""
        rules = self.rules_for(gender)
        parsed = split_kulam_field(field_name)
        if rules is None or parsed is None:
            return []
        role, field_type = parsed
        if not rules.is_source(role):
            return []

        child_prefixes = list(child_prefixes)
        targets = []
        for target in rules.targets(role):
            if target in CHILDREN_ROLES:
                targets.extend(kulam_field_name(prefix, field_type) for prefix in child_prefixes)
            else:
                targets.append(kulam_field_name(target, field_type))
        return targets


ChangeListener = Callable[[str, object], None]


class KulamForm:
    """
    Field state for one profile form with Kulam propagation wired in.

    Setting a source field copies its value to every mapped target and notifies
    listeners for each target, as if the user had changed it. Setting a target
    directly never propagates back.
    """

    def __init__(self, gender: Optional[str] = None, engine: Optional[KulamRuleEngine] = None):
        self.gender = gender
        self.engine = engine or KulamRuleEngine()
        self.values: dict[str, object] = {}
        self.visible_other_fields: set[str] = set()
        self.child_prefixes: list[str] = []
        self._listeners: list[ChangeListener] = [self._apply_other_visibility]

    def subscribe(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def set_gender(self, gender: Optional[str]) -> None:
        self.gender = gender

    def set_children(self, prefixes: Iterable[str]) -> None:
        self.child_prefixes = list(prefixes)

    def get(self, name: str, default=None):
        return self.values.get(name, default)

    def set_value(self, name: str, value) -> list[str]:
        """User edit. Returns the names of fields that received a copy."""
        self._assign(name, value)
        targets = self.engine.copy_targets(self.gender, name, self.child_prefixes)
        for target in targets:
            self._assign(target, value)
        if targets:
            logger.debug(f"🧬 Kulam copy {name} → {targets}")
        return targets

    def load(self, values: dict) -> None:
        """Stored values from the server: listeners hear them, nothing is copied."""
        for name, value in values.items():
            self._assign(name, value)

    def _assign(self, name: str, value) -> None:
        self.values[name] = value
        for listener in list(self._listeners):
            listener(name, value)

    def _apply_other_visibility(self, name: str, value) -> None:
        """'Other' reveals the free-text field; any other value hides and clears it."""
        if name.endswith("_other"):
            return
        other_name = f"{name}_other"
        if is_other_value(value):
            self.visible_other_fields.add(other_name)
        else:
            self.visible_other_fields.discard(other_name)
            self.values.pop(other_name, None)


def apply_residence_rule(values: dict, prefix: str = "") -> dict:
    """When 'same as native' is ticked, place of residence mirrors the native place."""
    same_key = f"{prefix}same_as_native"
    if values.get(same_key) in (True, "1", 1, "on", "yes", "true"):
        values[f"{prefix}place_of_residence"] = values.get(f"{prefix}native_place", "")
    return values
