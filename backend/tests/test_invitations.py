import pytest

from kudumbam.client.api_client import ApiClientError


@pytest.fixture
def inviter(make_user):
    return make_user(email="inviter@y.com", full_name="Senior Member")


async def login(api, email):
    await api.login("secret123", email=email)


@pytest.mark.asyncio
async def test_approved_member_creates_and_lists_invitations(api, inviter):
    await login(api, "inviter@y.com")

    created = await api.create_invitation({
        "invited_name": "Cousin Ravi",
        "invitation_type": "email",
        "invited_email": "Ravi@Example.com",
    })
    assert created["invitation"]["invited_email"] == "ravi@example.com"
    assert len(created["invitation"]["invitation_code"]) == 64
    assert created["inviter_name"] == "Senior Member"

    listing = await api.invitations()
    assert [i["invited_name"] for i in listing["invitations"]] == ["Cousin Ravi"]
    assert listing["stats"]["pending"] == 1
    assert listing["stats"]["total"] == 1
    assert listing["user_info"]["can_invite"] is True


@pytest.mark.asyncio
async def test_phone_invitation_needs_country_code(api, inviter):
    await login(api, "inviter@y.com")

    with pytest.raises(ApiClientError) as exc:
        await api.create_invitation({"invited_name": "Ravi", "invitation_type": "phone", "invited_phone": "98765"})
    assert exc.value.message.startswith("Invalid phone number format")

    created = await api.create_invitation({
        "invited_name": "Ravi", "invitation_type": "phone", "invited_phone": "+919876543210",
    })
    assert created["invitation"]["invitation_type"] == "phone"


@pytest.mark.asyncio
async def test_duplicate_targets_are_refused(api, inviter, make_user):
    make_user(email="already@y.com")
    await login(api, "inviter@y.com")

    with pytest.raises(ApiClientError) as exc:
        await api.create_invitation({"invited_name": "A", "invitation_type": "email", "invited_email": "already@y.com"})
    assert exc.value.message == "User with this email already exists"

    await api.create_invitation({"invited_name": "B", "invitation_type": "email", "invited_email": "new@y.com"})
    with pytest.raises(ApiClientError) as exc:
        await api.create_invitation({"invited_name": "B", "invitation_type": "email", "invited_email": "new@y.com"})
    assert exc.value.message == "A pending invitation already exists for this email"


@pytest.mark.asyncio
async def test_unapproved_member_cannot_invite(api, make_user):
    make_user(email="fresh@y.com", approval_status="pending", user_type="Registered")
    await login(api, "fresh@y.com")

    listing = await api.invitations()
    assert listing["invitations"] == []
    assert listing["user_info"] == {
        "user_type": "Registered",
        "can_invite": False,
        "message": "Only approved members can invite others",
    }

    with pytest.raises(ApiClientError) as exc:
        await api.create_invitation({"invited_name": "X", "invitation_type": "email", "invited_email": "x@y.com"})
    assert exc.value.status_code == 403


@pytest.mark.asyncio
async def test_expired_pending_invitations_read_as_expired(api, inviter, make_invitation):
    make_invitation(code="OLD", email="old@y.com", inviter_type="user", inviter_id=inviter["id"], days=-1)
    make_invitation(code="NEW", email="new@y.com", inviter_type="user", inviter_id=inviter["id"])
    await login(api, "inviter@y.com")

    expired = await api.invitations(status="expired")
    pending = await api.invitations(status="pending")

    assert [i["invitation_code"] for i in expired["invitations"]] == ["OLD"]
    assert expired["invitations"][0]["status"] == "expired"
    assert [i["invitation_code"] for i in pending["invitations"]] == ["NEW"]
    assert pending["stats"]["expired"] == 1


@pytest.mark.asyncio
async def test_search_and_pagination(api, inviter, make_invitation):
    for n in range(12):
        make_invitation(code=f"C{n}", email=f"p{n}@y.com", name=f"Person {n}",
                        inviter_type="user", inviter_id=inviter["id"])
    await login(api, "inviter@y.com")

    first = await api.invitations(page=1)
    second = await api.invitations(page=2)
    found = await api.invitations(search="Person 11")

    assert len(first["invitations"]) == 10
    assert len(second["invitations"]) == 2
    assert first["pagination"]["total_pages"] == 2
    assert [i["invitation_code"] for i in found["invitations"]] == ["C11"]


@pytest.mark.asyncio
async def test_only_own_pending_invitations_can_be_deleted(api, inviter, make_invitation, make_user):
    mine = make_invitation(code="MINE", email="a@y.com", inviter_type="user", inviter_id=inviter["id"])
    used = make_invitation(code="USED", email="b@y.com", inviter_type="user", inviter_id=inviter["id"], status="used")
    other = make_user(email="other@y.com")
    theirs = make_invitation(code="THEIRS", email="c@y.com", inviter_type="user", inviter_id=other["id"])
    await login(api, "inviter@y.com")

    assert (await api.delete_invitation(mine))["message"] == "Invitation deleted successfully"

    with pytest.raises(ApiClientError) as exc:
        await api.delete_invitation(used)
    assert exc.value.message == "Only pending invitations can be deleted"

    with pytest.raises(ApiClientError) as exc:
        await api.delete_invitation(theirs)
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_registration_expires_other_invites_for_same_person(api, db, make_invitation):
    make_invitation(code="FIRST", email="x@y.com")
    make_invitation(code="SECOND", email="x@y.com", inviter_id=1)

    await api.register("x@y.com", "secret123", "New Member", "FIRST")

    assert db.fetch_value("SELECT status FROM invitations WHERE invitation_code = 'SECOND'") == "expired"
