"""
Kudumbam — Profile Completion Controller
Drives the five-section profile wizard against the API: loads saved data,
validates and saves single sections, keeps Kulam copies and dropdown cascades
in sync, and runs the final "Save & Submit".
"""

from dataclasses import dataclass
from typing import Optional

from kudumbam.client.api_client import ApiClient, ApiClientError
from kudumbam.client.debounce import Debouncer
from kudumbam.config import get_settings
from kudumbam.services.form_relationships import FormRelationships, ReferenceData
from kudumbam.services.kulam_rules import (
    CHILDREN_ROLES,
    KULAM_FIELD_TYPES,
    ROLE_LABELS,
    KulamForm,
    kulam_field_name,
    split_kulam_field,
)
from kudumbam.services.profile_workflow import (
    FAMILY_TREE_NAME_FIELDS,
    FAMILY_TREE_SUBSECTIONS,
    SECTION_LABELS,
    SECTION_ORDER,
    SECTION_STEPS,
    ProfileWorkflow,
    Section,
    family_tree_complete_after_save,
    has_substantial_family_tree_data,
    save_summary_message,
    subsection_has_data,
)
from kudumbam.services.sub_forms import (
    Child,
    ChildrenList,
    EducationEntry,
    EducationList,
    ProfessionEntry,
    ProfessionList,
    new_entry_id,
)
from kudumbam.utils.logger import logger
from kudumbam.utils.validators import (
    split_phone_number,
    validate_birth_date,
    validate_email,
    validate_phone,
    validate_pin_code,
)


OPPOSITE_GENDER = {"male": "female", "female": "male"}
TREE_OWNERS = {Section.MEMBER_FAMILY_TREE: "member", Section.SPOUSE_FAMILY_TREE: "spouse"}
SUBMITTED_MESSAGE = "Profile submitted successfully!"


def spouse_gender_for(member_gender: Optional[str]) -> str:
    """Opposite of the member's gender; 'others' (or nothing) leaves it blank."""
    return OPPOSITE_GENDER.get((member_gender or "").strip().lower(), "")


def kulam_owner_section(name: str) -> Optional[Section]:
    """Which section a Kulam field belongs to, from its role prefix."""
    parts = split_kulam_field(name.removesuffix("_other"))
    if parts is None:
        return None
    role = parts[0]
    if role == "member":
        return Section.MEMBER_DETAILS
    if role == "spouse":
        return Section.SPOUSE_DETAILS
    if role.startswith("child_"):
        return Section.CHILDREN_DETAILS
    if role.startswith("member_"):
        return Section.MEMBER_FAMILY_TREE
    if role.startswith("spouse_"):
        return Section.SPOUSE_FAMILY_TREE
    return None


@dataclass
class SubmitResult:
    success: bool
    message: str
    saved: int = 0
    failed: int = 0
    total: int = 0


class ProfileCompletionController:
    """
    One instance per open profile-completion page.

    `fields` holds the plain inputs of each section; Kulam inputs of every
    role live in `kulam` so copies between relatives happen in one place.
    Call the field setters from inside the event loop: changing the member's
    gender schedules the debounced spouse-gender update.
    """

    def __init__(
        self,
        api: ApiClient,
        user: dict,
        reference: Optional[ReferenceData] = None,
        gender_delay_seconds: Optional[float] = None,
    ):
        self.api = api
        self.workflow = ProfileWorkflow(user)
        self.fields: dict[Section, dict] = {section: {} for section in SECTION_ORDER}
        self.kulam = KulamForm(gender=user.get("gender"))
        self.relationships = FormRelationships(reference)
        self.children = ChildrenList()
        self.education = {"member": EducationList(), "spouse": EducationList()}
        self.profession = {"member": ProfessionList(), "spouse": ProfessionList()}
        self.message: Optional[str] = None
        self._loading = False

        delay = gender_delay_seconds
        if delay is None:
            delay = get_settings().spouse_gender_debounce_ms / 1000
        self._spouse_gender = Debouncer(delay, self._apply_spouse_gender)

        self.kulam.subscribe(self._on_kulam_change)
        for role in ROLE_LABELS:
            if role not in CHILDREN_ROLES:
                self._bind_cascade(role)

    # ──────────────────────────────────────────────────────────────
    # Wiring
    # ──────────────────────────────────────────────────────────────

    def _bind_cascade(self, prefix: str) -> None:
        for dropdown in self.relationships.cascade(prefix, "kula_deivam"):
            dropdown.subscribe(lambda value, name=dropdown.name: self._on_dropdown_change(name, value))

    def _on_dropdown_change(self, name: str, value) -> None:
        # A cascade cleared a dependent selection (or the user picked one).
        if self.kulam.get(name) != value:
            self.kulam.set_value(name, value)

    def _on_kulam_change(self, name: str, value) -> None:
        dropdown = self.relationships.dropdowns.get(name)
        if dropdown is not None and dropdown.value != value:
            dropdown.select(value)
        section = kulam_owner_section(name)
        if section is not None and not self._loading:
            self.workflow.mark_dirty(section)

    # ──────────────────────────────────────────────────────────────
    # Editing
    # ──────────────────────────────────────────────────────────────

    def set_field(self, section: Section, name: str, value) -> None:
        """User edit of a plain input; Kulam inputs go through `set_kulam`."""
        self.fields[section][name] = value
        self.workflow.mark_dirty(section)
        if section == Section.MEMBER_DETAILS and name == "gender":
            self.kulam.set_gender(value)
            self._spouse_gender.trigger(value)

    def set_kulam(self, name: str, value) -> list[str]:
        return self.kulam.set_value(name, value)

    def set_answers(self, is_married: Optional[str] = None, has_children: Optional[str] = None) -> None:
        self.workflow.update_answers(is_married=is_married, has_children=has_children)

    def mark_dirty(self, section: Section) -> None:
        self.workflow.mark_dirty(section)

    def _apply_spouse_gender(self, member_gender: Optional[str]) -> None:
        self.fields[Section.SPOUSE_DETAILS]["spouse_gender"] = spouse_gender_for(member_gender)
        self.workflow.mark_dirty(Section.SPOUSE_DETAILS)

    async def settle(self) -> None:
        """Wait for debounced updates (tests and page teardown)."""
        await self._spouse_gender.wait()

    def add_child(self, **values) -> Child:
        child = self.children.add_child(**values)
        self.kulam.set_children(self.children.field_prefixes())
        self._bind_cascade(child.field_prefix)
        # A new child inherits whatever the source roles already hold.
        inherited = {}
        for role in ("member", "spouse"):
            for field_type in KULAM_FIELD_TYPES:
                name = kulam_field_name(role, field_type)
                if not self.kulam.get(name):
                    continue
                for target in self.kulam.engine.copy_targets(self.kulam.gender, name, [child.field_prefix]):
                    if target.startswith(f"{child.field_prefix}_"):
                        inherited[target] = self.kulam.get(name)
        self.kulam.load(inherited)
        self.workflow.mark_dirty(Section.CHILDREN_DETAILS)
        return child

    def remove_child(self, child_id: str) -> bool:
        child = self.children.get(child_id)
        if child is None:
            return False
        self.children.remove(child_id)
        self.relationships.remove_prefix(child.field_prefix)
        for name in [n for n in self.kulam.values if n.startswith(f"{child.field_prefix}_")]:
            del self.kulam.values[name]
        self.kulam.set_children(self.children.field_prefixes())
        self.workflow.mark_dirty(Section.CHILDREN_DETAILS)
        return True

    def department_options(self, degree: Optional[str]) -> list[str]:
        return self.relationships.related_values("degree", degree, "department")

    # ──────────────────────────────────────────────────────────────
    # Payloads
    # ──────────────────────────────────────────────────────────────

    def _kulam_values(self, role: str, rename: str) -> dict:
        values = {}
        for field_type in KULAM_FIELD_TYPES:
            name = kulam_field_name(role, field_type)
            for suffix in ("", "_other"):
                if f"{name}{suffix}" in self.kulam.values:
                    values[f"{rename}{field_type}{suffix}"] = self.kulam.values[f"{name}{suffix}"]
        return values

    def _tree_kulam_values(self, owner: str) -> dict:
        return {
            name: value
            for name, value in self.kulam.values.items()
            if kulam_owner_section(name) == (
                Section.MEMBER_FAMILY_TREE if owner == "member" else Section.SPOUSE_FAMILY_TREE
            )
        }

    def _child_payload(self, child: Child) -> dict:
        payload = child.to_payload()
        payload.update({k: v for k, v in self._kulam_values(child.field_prefix, "").items() if v is not None})
        return payload

    def section_payload(self, section: Section) -> dict:
        step = SECTION_STEPS[section]
        if section == Section.MEMBER_DETAILS:
            details = {
                **self.fields[section],
                **self._kulam_values("member", ""),
                "education": self.education["member"].collect(),
                "profession": self.profession["member"].collect(),
            }
            return {step: details}
        if section == Section.SPOUSE_DETAILS:
            details = {
                **self.fields[section],
                **self._kulam_values("spouse", "spouse_"),
                "education": self.education["spouse"].collect(),
                "profession": self.profession["spouse"].collect(),
            }
            return {step: details}
        if section == Section.CHILDREN_DETAILS:
            return {step: [self._child_payload(child) for child in self.children if child.first_name.strip()]}
        owner = TREE_OWNERS[section]
        return {step: {**self.fields[section], **self._tree_kulam_values(owner)}}

    # ──────────────────────────────────────────────────────────────
    # Validation
    # ──────────────────────────────────────────────────────────────

    def validate(self, section: Section) -> Optional[str]:
        """First client-side error for the section, or None."""
        values = self.fields[section]
        if section == Section.MEMBER_DETAILS:
            if not (values.get("first_name") or "").strip():
                return "First name is required"
            return (
                validate_birth_date(
                    values.get("date_of_birth"),
                    minimum_age=get_settings().minimum_member_age,
                    required=True,
                )
                or validate_email(values.get("email"))
                or self._phone_error(values.get("phone"), values.get("country_code"))
                or self._phone_error(values.get("secondary_phone"), values.get("secondary_country_code"))
                or validate_pin_code(values.get("pin_code"))
            )
        if section == Section.SPOUSE_DETAILS:
            return (
                validate_birth_date(values.get("spouse_date_of_birth"))
                or validate_email(values.get("spouse_email"), "spouse email")
                or self._phone_error(values.get("spouse_phone"), values.get("spouse_country_code"))
            )
        if section == Section.CHILDREN_DETAILS:
            for child in self.children:
                if not child.first_name.strip():
                    continue
                error = validate_birth_date(child.date_of_birth)
                if error:
                    return f"{child.first_name}: {error}"
        return None

    @staticmethod
    def _phone_error(phone: Optional[str], country_code: Optional[str]) -> Optional[str]:
        if phone and phone.strip().startswith("+"):
            country_code, phone = split_phone_number(phone)
        return validate_phone(phone, country_code or "+91")

    # ──────────────────────────────────────────────────────────────
    # Loading saved data
    # ──────────────────────────────────────────────────────────────

    async def load(self) -> None:
        """Reference lists, then every visible section's saved data."""
        try:
            data = await self.api.form_values()
            if data.get("success"):
                self.relationships.reload(ReferenceData.from_payload(data.get("data") or {}))
        except ApiClientError as e:
            logger.warning(f"📋 Form values unavailable, keeping built-in lists: {e}")

        self._loading = True
        try:
            for section in self.workflow.visible_sections():
                data = await self.api.profile_completion(f"get_{SECTION_STEPS[section]}")
                if data.get("success"):
                    self._apply_loaded(section, data)
        finally:
            self._loading = False

    def _apply_loaded(self, section: Section, data: dict) -> None:
        if section == Section.MEMBER_DETAILS:
            self._load_person(section, data.get("member_details") or {}, "member", "")
            self.workflow.mark_loaded(section, complete=True)
        elif section == Section.SPOUSE_DETAILS:
            self._load_person(section, data.get("spouse") or {}, "spouse", "spouse_")
            self.workflow.mark_loaded(section, complete=True)
        elif section == Section.CHILDREN_DETAILS:
            children = data.get("children") or []
            for stored in children:
                self._load_child(stored)
            self.workflow.mark_loaded(section, complete=bool(children))
        else:
            tree = data.get("family_tree") or {}
            self.fields[section] = {name: tree.get(name, "") for name in FAMILY_TREE_NAME_FIELDS}
            self.kulam.load({k: v for k, v in tree.items() if kulam_owner_section(k) == section})
            self.workflow.mark_loaded(section, complete=has_substantial_family_tree_data(tree))

    def _load_person(self, section: Section, stored: dict, role: str, prefix: str) -> None:
        # kula_deivam before kaani, so the cascade sees the parent first
        kulam_keys = [
            f"{prefix}{field_type}{suffix}" for field_type in KULAM_FIELD_TYPES for suffix in ("", "_other")
        ]
        values = {k: v for k, v in stored.items() if k not in kulam_keys and k not in ("education", "profession")}
        for phone_key, code_key in (
            (f"{prefix}phone", f"{prefix}country_code"),
            ("secondary_phone" if role == "member" else None, "secondary_country_code"),
        ):
            if phone_key and values.get(phone_key):
                values[code_key], values[phone_key] = split_phone_number(values[phone_key])
        self.fields[section] = values
        self.kulam.load({
            f"{role}_{key[len(prefix):]}": stored[key] for key in kulam_keys if key in stored
        })
        self.education[role] = EducationList([EducationEntry.from_payload(e) for e in stored.get("education") or []])
        self.profession[role] = ProfessionList(
            [ProfessionEntry.from_payload(p) for p in stored.get("profession") or []]
        )

    def _load_child(self, stored: dict) -> None:
        child = self.children.add(Child(
            id=stored.get("id") or new_entry_id(),
            first_name=stored.get("child_first_name") or "",
            second_name=stored.get("child_second_name") or "",
            gender=stored.get("child_gender") or "",
            date_of_birth=stored.get("child_date_of_birth") or "",
            kulam=stored.get("kulam") or "",
            kula_deivam=stored.get("kula_deivam") or "",
            kaani=stored.get("kaani") or "",
            education=EducationList([EducationEntry.from_payload(e) for e in stored.get("education") or []]),
            profession=ProfessionList([ProfessionEntry.from_payload(p) for p in stored.get("profession") or []]),
        ))
        self.kulam.set_children(self.children.field_prefixes())
        self._bind_cascade(child.field_prefix)
        self.kulam.load({
            kulam_field_name(child.field_prefix, field_type): stored[field_type]
            for field_type in KULAM_FIELD_TYPES
            if stored.get(field_type)
        })

    # ──────────────────────────────────────────────────────────────
    # Saving
    # ──────────────────────────────────────────────────────────────

    async def save_section(self, section: Section) -> bool:
        self.workflow.begin_save(section)
        error = self.validate(section)
        if error:
            self.workflow.save_failed(section, error)
            self.message = error
            return False

        payload = self.section_payload(section)
        try:
            data = await self.api.profile_completion(SECTION_STEPS[section], payload)
        except ApiClientError as e:
            self.workflow.save_failed(section, e.message)
            self.message = e.message
            return False
        if not data.get("success"):
            message = data.get("error") or data.get("message") or f"Failed to save {SECTION_LABELS[section]}"
            self.workflow.save_failed(section, message)
            self.message = message
            return False

        if section in TREE_OWNERS:
            complete = family_tree_complete_after_save(payload[SECTION_STEPS[section]])
        else:
            complete = True
        self.workflow.save_succeeded(section, complete=complete)
        if data.get("profile_completion_step"):
            self.workflow.user["profile_completion_step"] = data["profile_completion_step"]
        self.message = data.get("message")
        return True

    async def save_family_subsection(self, owner: str, subsection: str) -> bool:
        """Save one generation (parents or a grandparent pair) of a tree."""
        section = Section.MEMBER_FAMILY_TREE if owner == "member" else Section.SPOUSE_FAMILY_TREE
        values = self.fields[section]
        if not subsection_has_data(subsection, values):
            self.message = "Please enter at least one name before saving"
            return False
        names = {name: values.get(name, "") for name in FAMILY_TREE_SUBSECTIONS[subsection]}
        try:
            data = await self.api.profile_completion(f"save_{owner}_{subsection}", {"data": names})
        except ApiClientError as e:
            self.message = e.message
            return False
        self.message = data.get("message")
        if data.get("success") and family_tree_complete_after_save(data.get("family_tree") or values):
            self.workflow.save_succeeded(section, complete=True)
        return bool(data.get("success"))

    def _needs_save(self, section: Section) -> bool:
        # Optional family trees with nothing typed in are left alone.
        if section in TREE_OWNERS:
            values = {**self.fields[section], **self._tree_kulam_values(TREE_OWNERS[section])}
            return any(str(v or "").strip() for v in values.values())
        return True

    async def save_all_and_submit(self) -> SubmitResult:
        """
        Re-save every stale section one after another, then complete the
        profile. Any failed section stops the submission.
        """
        if self.workflow.submitted:
            return SubmitResult(False, "Profile has already been submitted")
        if not self.workflow.can_submit():
            message = self.workflow.missing_message()
            self.message = message
            return SubmitResult(False, message)

        pending = [s for s in self.workflow.stale_sections() if self._needs_save(s)]
        saved = failed = 0
        for section in pending:
            if await self.save_section(section):
                saved += 1
            else:
                failed += 1
        total = len(pending)

        if failed or not self.workflow.can_submit():
            message = save_summary_message(saved, total, failed) if total else self.workflow.missing_message()
            self.message = message
            return SubmitResult(False, message, saved, failed, total)

        try:
            data = await self.api.profile_completion("complete_profile")
        except ApiClientError as e:
            self.message = e.message
            return SubmitResult(False, e.message, saved, failed, total)
        if not data.get("success"):
            message = data.get("error") or "Failed to complete profile"
            self.message = message
            return SubmitResult(False, message, saved, failed, total)

        self.workflow.mark_submitted()
        self.workflow.user.update({"profile_completion_step": "completed", "profile_completed": True})
        message = f"{save_summary_message(saved, total, 0)} {SUBMITTED_MESSAGE}" if total else SUBMITTED_MESSAGE
        self.message = message
        logger.info(f"🏁 Profile submitted after saving {saved} section(s)")
        return SubmitResult(True, message, saved, 0, total)

    def snapshot(self) -> dict:
        return {**self.workflow.snapshot(), "message": self.message}
