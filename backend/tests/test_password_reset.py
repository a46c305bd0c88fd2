from datetime import timedelta

import pytest

from kudumbam.client.api_client import ApiClientError
from kudumbam.core.database import to_db_time, utc_now
from kudumbam.services.password_reset import ALREADY_PENDING, REQUEST_RECEIVED


@pytest.fixture
def member(make_user):
    return make_user(email="forgetful@y.com", full_name="Forgetful Member", enrollment_number="ENR000042")


def reset_token(link: str) -> str:
    return link.split("token=", 1)[1]


async def approve_latest(admin_api) -> dict:
    pending = await admin_api.get("/admin/password_reset_requests")
    request_id = pending["requests"][0]["id"]
    return await admin_api.put("/admin/password_reset_requests", {"request_id": request_id, "action": "approve"})


@pytest.mark.asyncio
async def test_request_does_not_reveal_registered_addresses(api, db, member):
    unknown = await api.forgot_password("nobody@y.com")
    known = await api.forgot_password("Forgetful@Y.com")

    assert unknown["message"] == known["message"] == REQUEST_RECEIVED
    assert db.fetch_value("SELECT COUNT(*) FROM password_reset_requests") == 1


@pytest.mark.asyncio
async def test_repeat_request_within_the_hour_is_not_duplicated(api, db, member):
    await api.forgot_password("forgetful@y.com")
    again = await api.forgot_password("forgetful@y.com")

    assert again["message"] == ALREADY_PENDING
    assert db.fetch_value("SELECT COUNT(*) FROM password_reset_requests") == 1


@pytest.mark.asyncio
async def test_request_validation(api):
    with pytest.raises(ApiClientError) as exc:
        await api.post("/forgot_password", {})
    assert exc.value.message == "Email is required"

    with pytest.raises(ApiClientError) as exc:
        await api.forgot_password("not-an-email")
    assert exc.value.message == "Invalid email format"


@pytest.mark.asyncio
async def test_admin_reviews_pending_requests(api, admin_api, member):
    await api.forgot_password("forgetful@y.com")

    pending = await admin_api.get("/admin/password_reset_requests")
    assert pending["pagination"]["total_items"] == 1
    request = pending["requests"][0]
    assert request["email"] == "forgetful@y.com"
    assert request["status"] == "pending"

    found = await admin_api.get("/admin/password_reset_requests", search="ENR000042")
    assert [r["id"] for r in found["requests"]] == [request["id"]]

    rejected = await admin_api.put(
        "/admin/password_reset_requests", {"request_id": request["id"], "action": "reject"}
    )
    assert rejected["reset_link"] is None
    assert (await admin_api.get("/admin/password_reset_requests"))["requests"] == []
    history = await admin_api.get("/admin/password_reset_requests", status="all")
    assert history["requests"][0]["approved_by"] == "admin"

    with pytest.raises(ApiClientError) as exc:
        await admin_api.put("/admin/password_reset_requests", {"request_id": request["id"], "action": "approve"})
    assert exc.value.message == "Request not found or already processed"


@pytest.mark.asyncio
async def test_approved_link_resets_password_once(client_factory, api, admin_api, member):
    old_session = client_factory()
    await old_session.login("secret123", email="forgetful@y.com")
    await api.forgot_password("forgetful@y.com")

    approved = await approve_latest(admin_api)
    assert approved["user_email"] == "forgetful@y.com"
    token = reset_token(approved["reset_link"])
    assert len(token) == 64

    with pytest.raises(ApiClientError) as exc:
        await api.reset_password(token, "newpass1", "newpass2")
    assert exc.value.message == "Passwords do not match"

    with pytest.raises(ApiClientError) as exc:
        await api.reset_password(token, "short")
    assert exc.value.message == "Password must be at least 6 characters long"

    done = await api.reset_password(token, "newpass1")
    assert done["message"] == "Password reset successfully! You can now login with your new password."

    with pytest.raises(ApiClientError) as exc:
        await api.reset_password(token, "another1")
    assert exc.value.message == "Invalid or expired reset token"

    with pytest.raises(ApiClientError) as exc:
        await old_session.account()
    assert exc.value.status_code == 401

    with pytest.raises(ApiClientError):
        await api.login("secret123", email="forgetful@y.com")
    assert (await api.login("newpass1", email="forgetful@y.com"))["success"] is True


@pytest.mark.asyncio
async def test_expired_link_is_refused(api, admin_api, db, member):
    await api.forgot_password("forgetful@y.com")
    token = reset_token((await approve_latest(admin_api))["reset_link"])
    db.execute(
        "UPDATE password_reset_requests SET reset_token_expires = ?",
        (to_db_time(utc_now() - timedelta(minutes=1)),),
    )

    with pytest.raises(ApiClientError) as exc:
        await api.reset_password(token, "newpass1")
    assert exc.value.message == "Invalid or expired reset token"
