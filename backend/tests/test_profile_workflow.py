from kudumbam.services.profile_workflow import (
    ProfileWorkflow,
    SaveState,
    Section,
    family_tree_complete_after_save,
    has_substantial_family_tree_data,
    missing_sections_message,
    save_summary_message,
)


def married_with_children():
    return ProfileWorkflow({"isMarried": "yes", "hasChildren": "yes"})


def test_visibility_follows_answers():
    single = ProfileWorkflow({"isMarried": "no", "hasChildren": "no"})
    assert single.visible_sections() == [Section.MEMBER_DETAILS, Section.MEMBER_FAMILY_TREE]
    assert single.required_sections() == [Section.MEMBER_DETAILS]

    family = married_with_children()
    assert len(family.visible_sections()) == 5
    assert family.required_sections() == [
        Section.MEMBER_DETAILS, Section.SPOUSE_DETAILS, Section.CHILDREN_DETAILS,
    ]


def test_hidden_sections_are_auto_completed():
    workflow = ProfileWorkflow({"isMarried": "no", "hasChildren": "no"})
    assert workflow.state(Section.SPOUSE_DETAILS).completed
    assert workflow.state(Section.CHILDREN_DETAILS).completed
    assert not workflow.state(Section.MEMBER_DETAILS).completed


def test_saving_twice_stays_saved():
    workflow = married_with_children()
    for _ in range(2):
        workflow.begin_save(Section.MEMBER_DETAILS)
        workflow.save_succeeded(Section.MEMBER_DETAILS)
        assert workflow.state(Section.MEMBER_DETAILS).save_state == SaveState.SAVED
        assert workflow.state(Section.MEMBER_DETAILS).completed


def test_edit_flips_saved_section_back_to_unsaved():
    workflow = married_with_children()
    workflow.begin_save(Section.SPOUSE_DETAILS)
    workflow.save_succeeded(Section.SPOUSE_DETAILS)

    workflow.mark_dirty(Section.SPOUSE_DETAILS)

    state = workflow.state(Section.SPOUSE_DETAILS)
    assert state.save_state == SaveState.UNSAVED
    assert state.completed
    assert Section.SPOUSE_DETAILS in workflow.stale_sections()


def test_failed_save_clears_completion():
    workflow = married_with_children()
    workflow.save_succeeded(Section.MEMBER_DETAILS)
    workflow.save_failed(Section.MEMBER_DETAILS, "Invalid email format")
    state = workflow.state(Section.MEMBER_DETAILS)
    assert not state.completed
    assert state.status.value == "error"
    assert state.error == "Invalid email format"


def test_submit_gated_on_required_sections():
    workflow = married_with_children()
    workflow.save_succeeded(Section.MEMBER_DETAILS)
    assert not workflow.can_submit()
    assert workflow.missing_message() == (
        "Please complete the following sections first: Spouse Details, Children Details"
    )

    workflow.save_succeeded(Section.SPOUSE_DETAILS)
    workflow.save_succeeded(Section.CHILDREN_DETAILS)
    assert workflow.can_submit()
    assert workflow.missing_message() is None


def test_unmarrying_removes_spouse_requirement():
    workflow = ProfileWorkflow({"isMarried": "yes", "hasChildren": "no"})
    workflow.save_succeeded(Section.MEMBER_DETAILS)
    assert not workflow.can_submit()

    workflow.update_answers(is_married="no")

    assert Section.SPOUSE_DETAILS not in workflow.required_sections()
    assert workflow.can_submit()


def test_section_that_applies_again_starts_fresh():
    workflow = ProfileWorkflow({"isMarried": "no", "hasChildren": "no"})
    workflow.update_answers(is_married="yes")
    assert not workflow.state(Section.SPOUSE_DETAILS).completed
    assert Section.SPOUSE_DETAILS in workflow.missing_required()


def test_submitted_workflow_cannot_submit_again():
    workflow = ProfileWorkflow({"isMarried": "no", "hasChildren": "no"})
    workflow.save_succeeded(Section.MEMBER_DETAILS)
    workflow.mark_submitted()
    assert not workflow.can_submit()
    assert workflow.snapshot()["submitted"]


def test_family_tree_heuristics():
    assert has_substantial_family_tree_data({"father_name": "A", "mother_name": "B"})
    assert has_substantial_family_tree_data({
        "father_name": "A", "paternal_grandfather_name": "C", "maternal_grandmother_name": "D",
    })
    assert not has_substantial_family_tree_data({"father_name": "A", "paternal_grandfather_name": "C"})
    assert family_tree_complete_after_save({"father_name": "A", "paternal_grandfather_name": "C"})
    assert not family_tree_complete_after_save({"father_name": "A", "mother_name": "  "})


def test_summary_messages():
    assert save_summary_message(1, 1, 0) == "Successfully saved 1 section!"
    assert save_summary_message(3, 3, 0) == "Successfully saved 3 sections!"
    assert save_summary_message(2, 3, 1) == "Saved 2/3 sections. Some sections had errors."
    assert save_summary_message(0, 2, 2) == "Failed to save any sections. Please check the form data."
    assert missing_sections_message([]) is None
