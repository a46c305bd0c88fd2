import pytest

from kudumbam.services.kulam_rules import (
    KulamForm,
    KulamRuleEngine,
    KulamRuleSet,
    apply_residence_rule,
    split_kulam_field,
)


def test_member_kulam_copies_to_children_father_and_grandfather():
    form = KulamForm(gender="male")
    form.set_children(["child_a", "child_b"])

    targets = form.set_value("member_kulam", "Agastyar")

    for name in ("child_a_kulam", "child_b_kulam", "member_father_kulam", "member_paternal_grandfather_kulam"):
        assert form.get(name) == "Agastyar"
    assert set(targets) == {
        "child_a_kulam", "child_b_kulam", "member_father_kulam", "member_paternal_grandfather_kulam",
    }


def test_mother_kulam_only_reaches_maternal_grandfather():
    form = KulamForm(gender="male")
    form.set_value("member_kulam", "Agastyar")

    form.set_value("member_mother_kulam", "Kasyapar")

    assert form.get("member_maternal_grandfather_kulam") == "Kasyapar"
    assert form.get("member_father_kulam") == "Agastyar"
    assert form.get("member_paternal_grandfather_kulam") == "Agastyar"


def test_female_member_children_follow_spouse():
    form = KulamForm(gender="female")
    form.set_children(["child_x"])

    form.set_value("member_kula_deivam", "Murugan")
    assert form.get("child_x_kula_deivam") is None

    form.set_value("spouse_kula_deivam", "Shiva")
    assert form.get("child_x_kula_deivam") == "Shiva"


def test_target_edits_do_not_propagate_back():
    form = KulamForm(gender="male")
    form.set_value("member_kulam", "Agastyar")

    assert form.set_value("member_father_kulam", "Gautamar") == []
    assert form.get("member_kulam") == "Agastyar"


def test_others_gender_is_exempt():
    form = KulamForm(gender="others")
    assert form.set_value("member_kulam", "Agastyar") == []
    assert KulamRuleEngine().requirements("others") == []


def test_listeners_hear_every_copy():
    heard = []
    form = KulamForm(gender="male")
    form.subscribe(lambda name, value: heard.append(name))

    form.set_value("member_kaani", "Murugan Kaani 1")

    assert heard == ["member_kaani", "member_father_kaani", "member_paternal_grandfather_kaani"]


def test_other_value_toggles_free_text_field():
    form = KulamForm(gender="male")
    form.set_value("member_kulam", "Other")
    assert "member_kulam_other" in form.visible_other_fields
    assert "member_father_kulam_other" in form.visible_other_fields

    form.set_value("member_kulam_other", "Local clan")
    form.set_value("member_kulam", "Agastyar")
    assert "member_kulam_other" not in form.visible_other_fields
    assert form.get("member_kulam_other") is None


def test_load_does_not_copy():
    form = KulamForm(gender="male")
    form.load({"member_kulam": "Vashishtar"})
    assert form.get("member_kulam") == "Vashishtar"
    assert form.get("member_father_kulam") is None


def test_rule_set_rejects_derived_role_that_is_also_collected():
    with pytest.raises(ValueError):
        KulamRuleSet(collect=("member", "member_father"), copy_map={"member": ("member_father",)})
    with pytest.raises(ValueError):
        KulamRuleSet(collect=("member",), copy_map={"spouse": ("spouse_father",)})


def test_requirements_describe_copies():
    requirements = KulamRuleEngine().requirements("male")
    member = next(r for r in requirements if r["role"] == "member")
    assert member["copies_to"] == ["Your Children", "Your Father", "Your Paternal Grandfather"]


def test_split_kulam_field():
    assert split_kulam_field("member_mother_kula_deivam") == ("member_mother", "kula_deivam")
    assert split_kulam_field("child_1_kaani") == ("child_1", "kaani")
    assert split_kulam_field("member_kulam_other") is None
    assert split_kulam_field("first_name") is None


def test_residence_follows_native_place_when_ticked():
    values = apply_residence_rule({"native_place": "Erode", "same_as_native": True, "place_of_residence": "X"})
    assert values["place_of_residence"] == "Erode"
    untouched = apply_residence_rule({"native_place": "Erode", "place_of_residence": "Salem"})
    assert untouched["place_of_residence"] == "Salem"
