import uuid

from kudumbam.services.sub_forms import (
    ChildrenList,
    EducationEntry,
    EducationList,
    ProfessionEntry,
    ProfessionList,
    experience_month_options,
    experience_year_options,
    year_of_completion_options,
)


def test_education_filtered_and_most_recent_first():
    entries = EducationList()
    entries.add_entry(degree="B.Sc", year_of_completion=2010)
    entries.add_entry(degree="", year_of_completion=2022)
    entries.add_entry(degree="M.Sc", year_of_completion=2014)
    entries.add_entry(degree="Diploma")

    collected = entries.collect()

    assert [e["degree"] for e in collected] == ["M.Sc", "B.Sc", "Diploma"]


def test_profession_ordered_by_total_experience():
    entries = ProfessionList()
    entries.add_entry(job_type="Private", experience_years=2, experience_months=11)
    entries.add_entry(job_type="Government", experience_years=3, experience_months=0)
    entries.add_entry(job_type="", experience_years=30)

    collected = entries.collect()

    assert [e["job_type"] for e in collected] == ["Government", "Private"]


def test_other_job_type_text_only_for_others():
    private = ProfessionEntry(job_type="Private", job_type_other="ignored").to_payload()
    others = ProfessionEntry(job_type="Others", job_type_other="Farming").to_payload()
    assert private["job_type_other"] == ""
    assert others["job_type_other"] == "Farming"


def test_entries_have_stable_uuid_ids():
    entries = EducationList()
    first = entries.add_entry(degree="A")
    second = entries.add_entry(degree="B")
    third = entries.add_entry(degree="C")

    entries.remove(second.id)

    assert entries.ids() == [first.id, third.id]
    uuid.UUID(first.id)


def test_children_without_first_name_are_skipped():
    children = ChildrenList()
    son = children.add_child(first_name="Arun", gender="male")
    children.add_child(first_name="  ")
    daughter = children.add_child(first_name="Meena", gender="female")

    payload = children.collect()

    assert [c["child_first_name"] for c in payload] == ["Arun", "Meena"]
    assert son.relationship == "son"
    assert daughter.relationship == "daughter"
    assert children.field_prefixes()[0] == f"child_{son.id}"


def test_from_payload_ignores_unknown_keys_and_blank_ids():
    entry = EducationEntry.from_payload({"degree": "B.E", "year_of_completion": "2019", "id": "", "junk": 1})
    assert entry.year_of_completion == 2019
    assert entry.id
    profession = ProfessionEntry.from_payload({"job_type": "Private", "experience_years": "x"})
    assert profession.experience_years == 0


def test_education_visible_fields():
    assert EducationEntry(education_status="illiterate").visible_fields() == ["education_status"]
    school = EducationEntry(education_status="pursuing", education_level="school").visible_fields()
    assert "current_class" in school and "degree" not in school
    college = EducationEntry(education_status="completed", education_level="college").visible_fields()
    assert "year_of_completion" in college


def test_dropdown_options():
    years = year_of_completion_options(2024)
    assert years[0] == 2024 and years[-1] == 1950
    assert experience_year_options()[-1] == 50
    assert experience_month_options() == list(range(12))
