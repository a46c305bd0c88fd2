import pytest

from kudumbam.client.api_client import ApiClientError
from kudumbam.client.profile_completion import (
    SUBMITTED_MESSAGE,
    ProfileCompletionController,
    kulam_owner_section,
    spouse_gender_for,
)
from kudumbam.services.profile_workflow import SaveState, Section


class FakeApi:
    """Scripted /profile_completion responses keyed by step; records every call."""

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []

    async def form_values(self, value_type=None):
        raise ApiClientError("Network error: Please check your connection and try again.")

    async def profile_completion(self, step, payload=None):
        self.calls.append((step, payload))
        response = self.responses.get(step, {"success": True, "message": f"{step} ok"})
        if isinstance(response, Exception):
            raise response
        return response


MARRIED = {"gender": "male", "isMarried": "yes", "hasChildren": "no"}
FAMILY = {"gender": "male", "isMarried": "yes", "hasChildren": "yes"}

LOADED = {
    "get_member_details": {
        "success": True,
        "member_details": {
            "first_name": "Ravi",
            "date_of_birth": "1990-01-01",
            "phone": "+919876543210",
            "kulam": "Agastyar",
            "education": [{"degree": "B.E", "year_of_completion": 2012}],
        },
    },
    "get_spouse_details": {"success": True, "spouse": {"spouse_first_name": "Priya", "spouse_kulam": "Kasyapar"}},
    "get_member_family_tree": {"success": False, "message": "No member family tree found"},
    "get_spouse_family_tree": {"success": False, "message": "No spouse family tree found"},
}


def test_helpers():
    assert spouse_gender_for("Male") == "female"
    assert spouse_gender_for("others") == ""
    assert kulam_owner_section("member_kulam") == Section.MEMBER_DETAILS
    assert kulam_owner_section("spouse_kaani_other") == Section.SPOUSE_DETAILS
    assert kulam_owner_section("child_abc_kulam") == Section.CHILDREN_DETAILS
    assert kulam_owner_section("member_mother_kula_deivam") == Section.MEMBER_FAMILY_TREE
    assert kulam_owner_section("spouse_father_kulam") == Section.SPOUSE_FAMILY_TREE
    assert kulam_owner_section("first_name") is None


@pytest.mark.asyncio
async def test_member_gender_sets_spouse_gender_after_debounce():
    controller = ProfileCompletionController(FakeApi(), MARRIED, gender_delay_seconds=0.01)

    controller.set_field(Section.MEMBER_DETAILS, "gender", "female")
    controller.set_field(Section.MEMBER_DETAILS, "gender", "male")
    await controller.settle()

    assert controller.fields[Section.SPOUSE_DETAILS]["spouse_gender"] == "female"
    assert controller.kulam.gender == "male"


@pytest.mark.asyncio
async def test_load_splits_phone_and_marks_sections_saved():
    api = FakeApi(LOADED)
    controller = ProfileCompletionController(api, MARRIED)

    await controller.load()

    member = controller.fields[Section.MEMBER_DETAILS]
    assert (member["country_code"], member["phone"]) == ("+91", "9876543210")
    assert controller.kulam.get("member_kulam") == "Agastyar"
    assert controller.kulam.get("member_father_kulam") is None
    assert controller.kulam.get("spouse_kulam") == "Kasyapar"
    assert len(controller.education["member"]) == 1
    state = controller.workflow.state(Section.MEMBER_DETAILS)
    assert state.completed and state.save_state == SaveState.SAVED
    assert [step for step, _ in api.calls] == [
        "get_member_details", "get_spouse_details", "get_member_family_tree", "get_spouse_family_tree",
    ]


@pytest.mark.asyncio
async def test_loaded_tree_with_both_parents_counts_as_complete():
    api = FakeApi({
        **LOADED,
        "get_member_family_tree": {
            "success": True,
            "family_tree": {"father_name": "Muthu", "mother_name": "Lakshmi", "member_father_kulam": "Agastyar"},
        },
    })
    controller = ProfileCompletionController(api, MARRIED)

    await controller.load()

    assert controller.workflow.state(Section.MEMBER_FAMILY_TREE).completed
    assert controller.kulam.get("member_father_kulam") == "Agastyar"
    assert controller.workflow.state(Section.MEMBER_DETAILS).save_state == SaveState.SAVED


def test_member_validation_order():
    controller = ProfileCompletionController(FakeApi(), MARRIED)
    section = Section.MEMBER_DETAILS

    assert controller.validate(section) == "First name is required"
    controller.fields[section].update(first_name="Ravi")
    assert controller.validate(section) == "Please enter your date of birth"
    controller.fields[section].update(date_of_birth="2999-01-01")
    assert controller.validate(section) == "Date of birth cannot be in the future"
    controller.fields[section].update(date_of_birth="1990-01-01", phone="12345", country_code="+91")
    assert controller.validate(section) == "Phone number for +91 must be 10 digits"
    controller.fields[section].update(phone="9876543210", pin_code="6000")
    assert controller.validate(section) == "PIN code must be exactly 6 digits"
    controller.fields[section].update(pin_code="600001")
    assert controller.validate(section) is None


def test_child_without_name_is_not_validated_or_sent():
    controller = ProfileCompletionController(FakeApi(), FAMILY)
    controller.add_child(first_name="", date_of_birth="2999-01-01")
    named = controller.add_child(first_name="Arun", date_of_birth="2999-01-01")

    assert controller.validate(Section.CHILDREN_DETAILS) == "Arun: Date of birth cannot be in the future"
    named.date_of_birth = "2015-06-01"
    assert controller.validate(Section.CHILDREN_DETAILS) is None
    payload = controller.section_payload(Section.CHILDREN_DETAILS)["children_details"]
    assert [c["child_first_name"] for c in payload] == ["Arun"]


def test_children_inherit_member_kulam_for_male_member():
    controller = ProfileCompletionController(FakeApi(), FAMILY)
    controller.set_kulam("member_kulam", "Agastyar")
    controller.set_kulam("member_kula_deivam", "Murugan")

    child = controller.add_child(first_name="Arun", gender="male")
    later = controller.add_child(first_name="Meena", gender="female")
    controller.set_kulam("member_kaani", "Murugan Kaani 1")

    payload = controller.section_payload(Section.CHILDREN_DETAILS)["children_details"]
    assert [c["kulam"] for c in payload] == ["Agastyar", "Agastyar"]
    assert payload[0]["kaani"] == "Murugan Kaani 1"
    assert controller.kulam.get(f"{later.field_prefix}_kula_deivam") == "Murugan"
    assert controller.relationships.dropdowns[f"{child.field_prefix}_kaani"].options == [
        "Murugan Kaani 1", "Murugan Kaani 2",
    ]


def test_cascade_clears_stale_kaani():
    controller = ProfileCompletionController(FakeApi(), MARRIED)
    controller.set_kulam("member_kula_deivam", "Murugan")
    controller.set_kulam("member_kaani", "Murugan Kaani 2")

    controller.set_kulam("member_kula_deivam", "Shiva")

    assert controller.kulam.get("member_kaani") is None
    assert controller.relationships.dropdowns["member_kaani"].options == ["Shiva Kaani 1"]


def test_removing_child_drops_its_fields():
    controller = ProfileCompletionController(FakeApi(), FAMILY)
    controller.set_kulam("member_kulam", "Agastyar")
    child = controller.add_child(first_name="Arun")

    assert controller.remove_child(child.id)
    assert not any(name.startswith(child.field_prefix) for name in controller.kulam.values)
    assert f"{child.field_prefix}_kula_deivam" not in controller.relationships.dropdowns
    assert controller.remove_child(child.id) is False


def test_member_payload_uses_plain_kulam_names():
    controller = ProfileCompletionController(FakeApi(), MARRIED)
    controller.fields[Section.MEMBER_DETAILS]["first_name"] = "Ravi"
    controller.set_kulam("member_kulam", "Other")
    controller.set_kulam("member_kulam_other", "Local")
    controller.set_kulam("spouse_kulam", "Kasyapar")

    member = controller.section_payload(Section.MEMBER_DETAILS)["member_details"]
    spouse = controller.section_payload(Section.SPOUSE_DETAILS)["spouse_details"]
    tree = controller.section_payload(Section.MEMBER_FAMILY_TREE)["member_family_tree"]

    assert member["kulam"] == "Other" and member["kulam_other"] == "Local"
    assert spouse["spouse_kulam"] == "Kasyapar"
    assert tree["member_father_kulam"] == "Other"


@pytest.mark.asyncio
async def test_submit_is_gated_on_required_sections():
    api = FakeApi()
    controller = ProfileCompletionController(api, FAMILY)

    result = await controller.save_all_and_submit()

    assert not result.success
    assert result.message == (
        "Please complete the following sections first: Member Details, Spouse Details, Children Details"
    )
    assert api.calls == []


@pytest.mark.asyncio
async def test_submit_with_nothing_stale_only_completes():
    api = FakeApi(LOADED)
    controller = ProfileCompletionController(api, MARRIED)
    await controller.load()

    result = await controller.save_all_and_submit()

    assert result.success
    assert result.message == SUBMITTED_MESSAGE
    assert api.calls[-1][0] == "complete_profile"
    assert controller.snapshot()["submitted"] is True
    assert (await controller.save_all_and_submit()).message == "Profile has already been submitted"


@pytest.mark.asyncio
async def test_failed_resave_blocks_submission():
    api = FakeApi({**LOADED, "member_details": ApiClientError("Invalid email format", 400)})
    controller = ProfileCompletionController(api, MARRIED)
    await controller.load()
    controller.set_field(Section.MEMBER_DETAILS, "email", "ravi@example.com")

    result = await controller.save_all_and_submit()

    assert not result.success
    assert result.message == "Failed to save any sections. Please check the form data."
    assert (result.saved, result.failed, result.total) == (0, 1, 1)
    assert "complete_profile" not in [step for step, _ in api.calls]
    state = controller.workflow.state(Section.MEMBER_DETAILS)
    assert state.error == "Invalid email format"
    assert not state.completed


@pytest.mark.asyncio
async def test_stale_sections_are_resaved_before_submit():
    api = FakeApi({**LOADED, "member_details": {"success": True, "message": "Member details saved successfully",
                                                "profile_completion_step": "spouse_details"}})
    controller = ProfileCompletionController(api, MARRIED)
    await controller.load()
    controller.set_field(Section.MEMBER_DETAILS, "second_name", "Kumar")

    result = await controller.save_all_and_submit()

    assert result.success
    assert result.message == f"Successfully saved 1 section! {SUBMITTED_MESSAGE}"
    steps = [step for step, _ in api.calls]
    assert steps[-2:] == ["member_details", "complete_profile"]


@pytest.mark.asyncio
async def test_family_subsection_needs_a_name():
    api = FakeApi({"save_member_parents": {
        "success": True, "message": "Parents saved successfully",
        "family_tree": {"father_name": "Muthu", "mother_name": "Lakshmi"},
    }})
    controller = ProfileCompletionController(api, MARRIED)

    assert not await controller.save_family_subsection("member", "parents")
    assert controller.message == "Please enter at least one name before saving"

    controller.fields[Section.MEMBER_FAMILY_TREE].update(father_name="Muthu", mother_name="Lakshmi")
    assert await controller.save_family_subsection("member", "parents")
    assert api.calls[-1] == ("save_member_parents", {"data": {"father_name": "Muthu", "mother_name": "Lakshmi"}})
    assert controller.workflow.state(Section.MEMBER_FAMILY_TREE).completed


# ── Against the real app ──

@pytest.mark.asyncio
async def test_profile_wizard_end_to_end(api, make_invitation):
    make_invitation(code="ABC123", email="x@y.com")
    await api.register("x@y.com", "secret123", "Ravi Kumar", "ABC123")
    await api.save_intro("male", "unmarried")
    user = (await api.account())["user"]

    controller = ProfileCompletionController(api, user)
    await controller.load()
    controller.fields[Section.MEMBER_DETAILS].update(
        first_name="Ravi", date_of_birth="1990-05-01", phone="9876543210", country_code="+91", pin_code="600001",
    )
    controller.set_kulam("member_kulam", "Agastyar")
    assert await controller.save_section(Section.MEMBER_DETAILS), controller.message

    controller.set_field(Section.MEMBER_FAMILY_TREE, "father_name", "Muthu")
    controller.set_field(Section.MEMBER_FAMILY_TREE, "mother_name", "Lakshmi")
    result = await controller.save_all_and_submit()

    assert result.success, result.message
    assert result.message == f"Successfully saved 1 section! {SUBMITTED_MESSAGE}"

    account = (await api.account())["user"]
    assert account["profile_completed"] is True
    assert account["profile_completion_step"] == "completed"

    profile = (await api.profile())["profile"]
    assert profile["member_details"]["phone"] == "+919876543210"
    assert profile["member_details"]["kulam"] == "Agastyar"
    assert profile["member_family_tree"]["father_name"] == "Muthu"
    assert profile["member_family_tree"]["member_father_kulam"] == "Agastyar"
