import pytest
import pytest_asyncio

from kudumbam.client.api_client import ApiClientError


@pytest.fixture
def insider(make_user):
    return make_user(email="insider@y.com", full_name="Insider", district="Erode")


@pytest.fixture
def outsider(make_user):
    return make_user(email="outsider@y.com", full_name="Outsider", district="Salem")


@pytest_asyncio.fixture
async def insider_api(client_factory, insider):
    client = client_factory()
    await client.login("secret123", email="insider@y.com")
    return client


@pytest_asyncio.fixture
async def outsider_api(client_factory, outsider):
    client = client_factory()
    await client.login("secret123", email="outsider@y.com")
    return client


@pytest_asyncio.fixture
async def erode_group(admin_api, insider):
    data = await admin_api.post("/admin/groups", {"name": "Erode", "type": "district", "district": "Erode"})
    return data["data"]["id"]


async def publish(admin_api, title="Notice", **body):
    data = await admin_api.post("/admin/announcements", {"title": title, "content": f"{title} details", **body})
    return data["data"]["id"]


@pytest.mark.asyncio
async def test_untargeted_announcements_reach_everyone(admin_api, insider_api, outsider_api):
    await publish(admin_api, "Annual meeting")

    for client in (insider_api, outsider_api):
        listed = await client.announcements()
        assert [a["title"] for a in listed["data"]] == ["Annual meeting"]
        assert listed["data"][0]["user_viewed"] is False


@pytest.mark.asyncio
async def test_group_announcements_stay_inside_the_group(admin_api, insider_api, outsider_api, erode_group):
    notice = await publish(admin_api, "Erode only", target_groups=[erode_group])

    assert [a["id"] for a in (await insider_api.announcements())["data"]] == [notice]
    assert (await outsider_api.announcements())["data"] == []

    with pytest.raises(ApiClientError) as exc:
        await outsider_api.announcements(id=notice)
    assert exc.value.status_code == 403

    detail = (await insider_api.announcements(id=notice))["data"]
    assert detail["target_group_names"] == [{"id": erode_group, "name": "Erode"}]
    assert detail["views_count"] == 1
    assert detail["user_viewed"] is True


@pytest.mark.asyncio
async def test_invalid_target_groups_are_rejected(admin_api):
    with pytest.raises(ApiClientError) as exc:
        await publish(admin_api, target_groups=[999])
    assert exc.value.message == "Some target groups are invalid"

    with pytest.raises(ApiClientError) as exc:
        await admin_api.post("/admin/announcements", {"title": "", "content": "x"})
    assert exc.value.message == "Title is required"


@pytest.mark.asyncio
async def test_pin_limit_and_archive(admin_api, insider_api):
    ids = [await publish(admin_api, f"Notice {n}") for n in range(4)]
    for announcement_id in ids[:3]:
        await admin_api.put(f"/admin/announcements/{announcement_id}", {"action": "pin"})

    with pytest.raises(ApiClientError) as exc:
        await admin_api.put(f"/admin/announcements/{ids[3]}", {"action": "pin"})
    assert exc.value.message == "Maximum 3 announcements can be pinned at once"

    await admin_api.put(f"/admin/announcements/{ids[0]}", {"action": "archive"})
    await admin_api.put(f"/admin/announcements/{ids[3]}", {"action": "pin"})

    listed = [a["id"] for a in (await insider_api.announcements())["data"]]
    assert listed == [ids[3], ids[2], ids[1]]

    archived = await admin_api.get("/admin/announcements", status="archived")
    assert [a["id"] for a in archived["data"]] == [ids[0]]
    assert archived["data"][0]["is_pinned"] is False


@pytest.mark.asyncio
async def test_likes_comments_and_replies(admin_api, insider_api):
    notice = await publish(admin_api, "Temple festival")

    liked = await insider_api.announcement_action("like", {"announcement_id": notice})
    assert liked["data"] == {"likes_count": 1, "user_liked": True}
    again = await insider_api.announcement_action("like", {"announcement_id": notice})
    assert again["data"]["likes_count"] == 1
    unliked = await insider_api.announcement_action("like", {"announcement_id": notice, "is_like": False})
    assert unliked["data"]["likes_count"] == 0

    comment = await insider_api.announcement_action("comment", {"announcement_id": notice, "content": "Will attend"})
    reply = await insider_api.announcement_action("reply", {
        "announcement_id": notice, "parent_comment_id": comment["data"]["id"], "content": "Me too",
    })
    assert reply["data"]["parent_comment_id"] == comment["data"]["id"]

    with pytest.raises(ApiClientError) as exc:
        await insider_api.announcement_action("comment", {"announcement_id": notice, "content": "   "})
    assert exc.value.message == "Content cannot be empty"

    detail = (await insider_api.announcements(id=notice))["data"]
    assert detail["comments_count"] == 2
    assert [c["content"] for c in detail["comments"]] == ["Will attend"]
    assert [r["content"] for r in detail["comments"][0]["replies"]] == ["Me too"]


@pytest.mark.asyncio
async def test_admin_edit_and_delete(admin_api, insider_api, erode_group):
    notice = await publish(admin_api, "Draft")
    await admin_api.put(f"/admin/announcements/{notice}", {
        "title": "Final", "content": "Final details", "target_groups": [erode_group],
    })
    detail = (await admin_api.get("/admin/announcements", id=notice))["data"]
    assert detail["title"] == "Final"
    assert detail["target_groups"] == [erode_group]

    await insider_api.announcement_action("like", {"announcement_id": notice})
    await admin_api.delete(f"/admin/announcements/{notice}")
    with pytest.raises(ApiClientError) as exc:
        await admin_api.get("/admin/announcements", id=notice)
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_unknown_announcement_action(insider_api):
    with pytest.raises(ApiClientError) as exc:
        await insider_api.announcement_action("share", {"announcement_id": 1})
    assert exc.value.message == "Invalid action"
