import pytest
import pytest_asyncio

from kudumbam.client.api_client import ApiClientError


@pytest.fixture
def erode_member(make_user):
    return make_user(email="erode@y.com", full_name="Erode Member", district="Erode", pin_code="638001")


@pytest.fixture
def salem_member(make_user):
    return make_user(email="salem@y.com", full_name="Salem Member", district="Salem", pin_code="636001")


@pytest.fixture
def pending_member(make_user):
    return make_user(email="pending@y.com", full_name="Pending", district="Erode", approval_status="pending")


@pytest_asyncio.fixture
async def erode_api(client_factory, erode_member):
    client = client_factory()
    await client.login("secret123", email="erode@y.com")
    return client


async def create_group(admin_api, **body):
    payload = {"name": "Erode Families", "type": "district", "district": "Erode", **body}
    return (await admin_api.post("/admin/groups", payload))["data"]


@pytest.mark.asyncio
async def test_district_group_starts_with_approved_residents(admin_api, erode_member, salem_member, pending_member):
    group = await create_group(admin_api)
    assert group["member_count"] == 1

    detail = (await admin_api.get(f"/admin/groups/{group['id']}"))["data"]
    assert [m["user_id"] for m in detail["members"]] == [erode_member["id"]]
    assert detail["created_by_name"] == "admin"


@pytest.mark.asyncio
async def test_area_group_matches_pin_code(admin_api, erode_member, salem_member):
    group = await create_group(admin_api, name="Salem 636001", type="area", district=None, pin_code="636001")

    members = await admin_api.get(f"/admin/groups/{group['id']}/members")
    assert [m["email"] for m in members["data"]] == ["salem@y.com"]
    assert members["pagination"]["total"] == 1


@pytest.mark.asyncio
async def test_group_validation(admin_api):
    with pytest.raises(ApiClientError) as exc:
        await admin_api.post("/admin/groups", {"name": " ", "type": "custom"})
    assert exc.value.message == "Group name is required"

    with pytest.raises(ApiClientError) as exc:
        await admin_api.post("/admin/groups", {"name": "Book club", "type": "village"})
    assert exc.value.message == "Valid group type is required"

    await create_group(admin_api, name="Book club", type="custom")
    with pytest.raises(ApiClientError) as exc:
        await create_group(admin_api, name="book club", type="custom")
    assert exc.value.status_code == 409


@pytest.mark.asyncio
async def test_rename_and_soft_delete(admin_api, erode_member):
    group = await create_group(admin_api)
    other = await create_group(admin_api, name="Salem Families", district="Salem")

    with pytest.raises(ApiClientError) as exc:
        await admin_api.put(f"/admin/groups/{other['id']}", {"name": "Erode Families"})
    assert exc.value.message == "A group with this name already exists"

    renamed = await admin_api.put(f"/admin/groups/{group['id']}", {"name": "Erode Kudumbam", "description": "All of Erode"})
    assert renamed["data"]["name"] == "Erode Kudumbam"

    await admin_api.delete(f"/admin/groups/{group['id']}")
    listed = await admin_api.get("/admin/groups")
    assert [g["name"] for g in listed["data"]] == ["Salem Families"]
    with pytest.raises(ApiClientError) as exc:
        await admin_api.get(f"/admin/groups/{group['id']}")
    assert exc.value.status_code == 404

    # The name is free again once the old group is gone.
    again = await create_group(admin_api, name="Erode Kudumbam", type="custom")
    assert again["member_count"] == 0


@pytest.mark.asyncio
async def test_manual_membership_lifecycle(admin_api, erode_member, pending_member):
    group = await create_group(admin_api, name="Volunteers", type="custom")
    path = f"/admin/groups/{group['id']}/members"

    with pytest.raises(ApiClientError) as exc:
        await admin_api.post(path, {"user_id": pending_member["id"]})
    assert exc.value.message == "User not found or not approved"

    with pytest.raises(ApiClientError) as exc:
        await admin_api.post(path, {"user_id": erode_member["id"], "role": "owner"})
    assert exc.value.message == "Invalid role"

    added = await admin_api.post(path, {"user_id": erode_member["id"], "role": "moderator"})
    assert added["data"]["role"] == "moderator"

    with pytest.raises(ApiClientError) as exc:
        await admin_api.post(path, {"user_id": erode_member["id"]})
    assert exc.value.status_code == 409

    await admin_api.put(f"{path}/{erode_member['id']}", {"role": "admin"})
    assert (await admin_api.get(path))["data"][0]["role"] == "admin"

    await admin_api.delete(f"{path}/{erode_member['id']}")
    assert (await admin_api.get(path))["data"] == []
    with pytest.raises(ApiClientError) as exc:
        await admin_api.delete(f"{path}/{erode_member['id']}")
    assert exc.value.message == "Group member not found"

    # Removed members can be added back.
    readded = await admin_api.post(path, {"user_id": erode_member["id"]})
    assert readded["data"]["role"] == "member"


@pytest.mark.asyncio
async def test_candidates_are_approved_members_only(admin_api, erode_member, salem_member, pending_member):
    everyone = await admin_api.get("/admin/group_candidates")
    assert {u["email"] for u in everyone["data"]} == {"erode@y.com", "salem@y.com"}

    found = await admin_api.get("/admin/group_candidates", search="Salem")
    assert [u["id"] for u in found["data"]] == [salem_member["id"]]


@pytest.mark.asyncio
async def test_members_see_only_their_own_groups(admin_api, erode_api, salem_member):
    mine = await create_group(admin_api)
    theirs = await create_group(admin_api, name="Salem Families", district="Salem")

    listed = await erode_api.user_groups()
    assert [g["id"] for g in listed["data"]] == [mine["id"]]
    assert listed["data"][0]["user_role"] == "member"
    assert listed["data"][0]["member_count"] == 1

    with pytest.raises(ApiClientError) as exc:
        await erode_api.user_groups(id=theirs["id"])
    assert exc.value.message == "Group not found or access denied"


@pytest.mark.asyncio
async def test_group_detail_counts_unread_announcements(admin_api, erode_api):
    group = await create_group(admin_api)
    first = await admin_api.post("/admin/announcements", {
        "title": "Temple festival", "content": "Sunday 6am", "target_groups": [group["id"]],
    })
    await admin_api.post("/admin/announcements", {
        "title": "Blood camp", "content": "Saturday", "target_groups": [group["id"]],
    })

    assert (await erode_api.user_groups())["data"][0]["unread_announcements"] == 2
    await erode_api.announcements(id=first["data"]["id"])
    assert (await erode_api.user_groups())["data"][0]["unread_announcements"] == 1

    detail = (await erode_api.user_groups(id=group["id"]))["data"]
    assert [a["title"] for a in detail["recent_announcements"]] == ["Blood camp", "Temple festival"]


@pytest.mark.asyncio
async def test_group_admin_requires_admin_session(api):
    with pytest.raises(ApiClientError) as exc:
        await api.get("/admin/groups")
    assert exc.value.status_code == 401
