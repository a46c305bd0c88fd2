import pytest

from kudumbam.client.api_client import ApiClientError
from kudumbam.core.database import Database


@pytest.mark.asyncio
async def test_admin_listing_includes_relationships(admin_api):
    data = await admin_api.get("/admin/form_values")

    assert {v["value"] for v in data["data"]["kulam"]} >= {"Agastyar", "Kasyapar"}
    # Murugan (10) has two kaani, Bachelor of Engineering (30) three departments.
    assert [k["value"] for k in data["relationships"]["kaani"]["10"]] == ["Murugan Kaani 1", "Murugan Kaani 2"]
    assert len(data["relationships"]["department"]["30"]) == 3


@pytest.mark.asyncio
async def test_create_value_and_reject_duplicates(admin_api, api):
    created = await admin_api.post("/admin/form_values", {"type": "company", "value": "Zoho"})
    assert created["data"]["type"] == "company"

    companies = await api.form_values("company")
    assert "Zoho" in [c["value"] for c in companies["data"]["company"]]

    with pytest.raises(ApiClientError) as exc:
        await admin_api.post("/admin/form_values", {"type": "company", "value": "zoho"})
    assert exc.value.status_code == 409
    assert exc.value.message == "Value already exists"


@pytest.mark.asyncio
async def test_create_validation(admin_api):
    with pytest.raises(ApiClientError) as exc:
        await admin_api.post("/admin/form_values", {"type": "company"})
    assert exc.value.message == "Type and value are required"

    with pytest.raises(ApiClientError) as exc:
        await admin_api.post("/admin/form_values", {"type": "planet", "value": "Mars"})
    assert exc.value.message == "Invalid type"

    with pytest.raises(ApiClientError) as exc:
        await admin_api.post("/admin/form_values", {"type": "kaani", "value": "Orphan Kaani", "parent_id": 30})
    assert exc.value.message == "Parent must be an existing kula_deivam value"

    child = await admin_api.post("/admin/form_values", {"type": "kaani", "value": "Shiva Kaani 2", "parent_id": 12})
    assert child["data"]["parent_id"] == 12


@pytest.mark.asyncio
async def test_rename_and_delete(admin_api):
    renamed = await admin_api.put("/admin/form_values/60", {"value": "Tata Consultancy Services"})
    assert renamed["data"]["value"] == "Tata Consultancy Services"

    with pytest.raises(ApiClientError) as exc:
        await admin_api.put("/admin/form_values/61", {"value": "tata consultancy services"})
    assert exc.value.status_code == 409

    with pytest.raises(ApiClientError) as exc:
        await admin_api.put("/admin/form_values/9999", {"value": "Ghost"})
    assert exc.value.message == "Value not found"

    # Deleting a degree leaves its departments in place, detached.
    await admin_api.delete("/admin/form_values/31")
    listing = await admin_api.get("/admin/form_values")
    assert 31 not in [d["id"] for d in listing["data"]["degree"]]
    advanced = next(d for d in listing["data"]["department"] if d["id"] == 43)
    assert advanced["parent_id"] is None


@pytest.mark.asyncio
async def test_admin_edits_survive_a_restart(admin_api, db):
    await admin_api.delete("/admin/form_values/62")

    reopened = Database(str(db.db_path))
    assert reopened.fetch_one("SELECT id FROM form_values WHERE id = 62") is None
