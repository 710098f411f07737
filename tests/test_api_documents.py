# tests/test_api_documents.py
import pytest

from conftest import create_account


@pytest.fixture
def deal(client, principal):
    _, headers = principal
    return client.post("/deals", json={"name": "Acme Plumbing", "industry": "Home Services"}, headers=headers).json()


@pytest.fixture
def investor(client, principal):
    _, headers = principal
    return client.post(
        "/investors",
        json={"name": "Evergreen Family Office", "type": "Family Office", "email": "ops@evergreen.com"},
        headers=headers,
    ).json()


def _upload(client, headers, **fields):
    payload = {"file_name": "cim.pdf", "file_size": 1024, "category": "CIM", **fields}
    return client.post("/documents", json=payload, headers=headers)


def test_register_validates_files(client, principal, deal):
    _, headers = principal

    res = _upload(client, headers, deal_id=deal["id"])
    assert res.status_code == 201, res.text
    doc = res.json()
    assert (doc["version"], doc["is_latest"], doc["visible_to_lps"]) == (1, True, False)
    assert doc["name"] == "cim.pdf"
    assert doc["category_display"] == "CIM"

    cases = [
        ({"file_name": "payload.exe", "deal_id": deal["id"]}, "File type .exe not allowed."),
        ({"file_size": 60 * 1024 * 1024, "deal_id": deal["id"]}, "File too large. Maximum size is 50MB."),
        ({"category": "GOSSIP", "deal_id": deal["id"]}, "Invalid category"),
        ({}, "Missing required fields: file, category, and deal_id or investor_id"),
    ]
    for fields, detail in cases:
        res = _upload(client, headers, **fields)
        assert res.status_code == 400, fields
        assert res.json()["detail"] == detail


def test_new_versions_chain_to_the_first_upload(client, principal, deal):
    _, headers = principal
    v1 = _upload(client, headers, deal_id=deal["id"]).json()
    v2 = _upload(client, headers, deal_id=deal["id"], parent_document_id=v1["id"]).json()
    v3 = _upload(client, headers, deal_id=deal["id"], parent_document_id=v2["id"]).json()
    assert (v2["version"], v3["version"]) == (2, 3)
    assert v3["parent_id"] == v1["id"]

    latest = client.get("/documents", params={"deal_id": deal["id"]}, headers=headers).json()
    assert [d["id"] for d in latest] == [v3["id"]]
    everything = client.get("/documents", params={"deal_id": deal["id"], "include_old_versions": True}, headers=headers)
    assert len(everything.json()) == 3

    versions = client.get(f"/documents/{v2['id']}/versions", headers=headers).json()
    assert [v["version"] for v in versions] == [3, 2, 1]

    client.post(f"/documents/{v1['id']}/latest", headers=headers)
    latest = client.get("/documents", params={"deal_id": deal["id"]}, headers=headers).json()
    assert [d["id"] for d in latest] == [v1["id"]]


def test_document_uploads_show_on_the_deal_timeline(client, principal, deal):
    _, headers = principal
    doc = _upload(client, headers, deal_id=deal["id"]).json()
    client.delete(f"/documents/{doc['id']}", headers=headers)

    titles = {e["title"] for e in client.get(f"/deals/{deal['id']}/timeline", headers=headers).json()}
    assert {"Added new document", "Removed document"} <= titles
    assert client.get("/documents", params={"deal_id": deal["id"]}, headers=headers).json() == []


def test_sharing_with_lps_reaches_the_portal(client, principal, investor):
    _, headers = principal
    lp = create_account(
        client, headers, "lp@evergreen.com", name="Evergreen LP", role="LP_PRIMARY", investor_id=investor["id"]
    )
    doc = _upload(
        client, headers, investor_id=investor["id"], file_name="k1-2024.pdf", category="TAX", name="2024 K-1"
    ).json()

    assert client.get("/portal/documents", headers=lp).json() == []
    assert client.post(f"/documents/{doc['id']}/visibility", headers=headers).json() == {
        "success": True,
        "visible_to_lps": True,
    }
    assert [d["name"] for d in client.get("/portal/documents", headers=lp).json()] == ["2024 K-1"]
    assert [n["type"] for n in client.get("/notifications", headers=lp).json()["notifications"]] == ["DOCUMENT_SHARED"]

    client.delete(f"/documents/{doc['id']}", headers=headers)
    assert client.get("/portal/documents", headers=lp).json() == []
    res = client.get(f"/documents/{doc['id']}/versions", headers=headers)
    assert res.status_code == 404


def test_lp_accounts_cannot_use_fund_endpoints(client, principal, investor):
    _, headers = principal
    lp = create_account(client, headers, "lp@evergreen.com", role="LP_VIEWER", investor_id=investor["id"])

    assert client.get("/documents", params={"investor_id": investor["id"]}, headers=lp).status_code == 403
    assert client.get("/deals", headers=lp).status_code == 403


def test_upload_rate_limit(client, principal, deal):
    _, headers = principal
    for _ in range(20):
        assert _upload(client, headers, deal_id=deal["id"]).status_code == 201

    res = _upload(client, headers, deal_id=deal["id"])
    assert res.status_code == 429
    assert res.json()["detail"] == "Too many uploads. Please try again later."
