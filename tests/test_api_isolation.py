# tests/test_api_isolation.py
"""
Two organizations on one platform: nothing of Martha Capital is readable or
writable by Other Capital, neither through Martha's fund header nor by
passing Martha's record ids under Other Capital's own fund.
"""
import pytest

from conftest import auth_headers


@pytest.fixture
def martha(client, register):
    """Martha Capital with one record of every kind; returns (headers, ids)."""
    headers = auth_headers(register())

    def post(url, payload):
        res = client.post(url, json=payload, headers=headers)
        assert res.status_code == 201, res.text
        return res.json()

    deal = post("/deals", {"name": "Acme Plumbing", "industry": "Home Services"})
    investor = post("/investors", {"name": "Evergreen Family Office", "type": "Family Office"})
    commitment = post(f"/investors/{investor['id']}/commitments", {"committed_amount": 1_000_000, "status": "ACTIVE"})
    call = post("/capital-calls", {"call_date": "2024-03-01", "due_date": "2024-03-31", "total_amount": 100_000})
    for status in ("APPROVED", "SENT"):
        client.patch(f"/capital-calls/{call['id']}/status", json={"status": status}, headers=headers)
    dist = post("/distributions", {"distribution_date": "2025-06-30", "type": "Profit Distribution", "total_amount": 50_000})
    client.patch(f"/distributions/{dist['id']}/status", json={"status": "APPROVED"}, headers=headers)
    company = post(
        "/portfolio/companies",
        {
            "name": "Acme Plumbing",
            "acquisition_date": "2024-01-15",
            "entry_valuation": 10_000_000,
            "equity_invested": 4_000_000,
            "ownership_pct": "40%",
        },
    )

    ids = {
        "fund": headers["X-Fund-Id"],
        "deal": deal["id"],
        "investor": investor["id"],
        "commitment": commitment["id"],
        "call": call["id"],
        "call_item": call["items"][0]["id"],
        "distribution": dist["id"],
        "distribution_item": dist["items"][0]["id"],
        "company": company["id"],
        "document": post("/documents", {"file_name": "cim.pdf", "file_size": 1024, "category": "CIM", "deal_id": deal["id"]})["id"],
    }
    return headers, ids


@pytest.fixture
def other(register):
    return auth_headers(register("other@blackgemfund.com", firm_name="Other Capital"))


def _requests(ids):
    return [
        ("get", f"/deals/{ids['deal']}", None),
        ("patch", f"/deals/{ids['deal']}", {"industry": "Hijacked"}),
        ("delete", f"/deals/{ids['deal']}", None),
        ("get", f"/investors/{ids['investor']}", None),
        ("patch", f"/investors/{ids['investor']}", {"notes": "Hijacked"}),
        ("post", f"/investors/{ids['investor']}/commitments", {"committed_amount": 1}),
        ("patch", f"/commitments/{ids['commitment']}", {"status": "SIGNED"}),
        ("delete", f"/commitments/{ids['commitment']}", None),
        ("get", f"/capital-calls/{ids['call']}", None),
        ("post", f"/capital-calls/items/{ids['call_item']}/payments", {"amount": 1000}),
        ("get", f"/distributions/{ids['distribution']}", None),
        ("post", f"/distributions/items/{ids['distribution_item']}/process", None),
        ("get", f"/portfolio/companies/{ids['company']}", None),
        ("put", f"/portfolio/companies/{ids['company']}/valuation", {"current_valuation": 1}),
        ("delete", f"/portfolio/companies/{ids['company']}", None),
        ("get", f"/reports/capital-statements/{ids['investor']}", None),
        ("get", f"/deals/{ids['deal']}/timeline", None),
        ("post", f"/deals/{ids['deal']}/notes", {"content": "Hijacked"}),
        ("post", f"/deals/{ids['deal']}/due-diligence", {"category": "LEGAL", "item": "Hijacked"}),
        ("get", f"/investors/{ids['investor']}/communications", None),
        ("post", f"/investors/{ids['investor']}/communications", {"type": "EMAIL", "direction": "OUTBOUND"}),
        ("get", f"/documents/{ids['document']}/versions", None),
        ("post", f"/documents/{ids['document']}/visibility", None),
        ("delete", f"/documents/{ids['document']}", None),
    ]


def _send(client, method, url, payload, headers):
    if payload is None:
        return getattr(client, method)(url, headers=headers)
    return getattr(client, method)(url, json=payload, headers=headers)


def test_foreign_fund_header_is_forbidden(client, martha, other):
    _, ids = martha
    intruder = dict(other, **{"X-Fund-Id": ids["fund"]})

    for method, url, payload in _requests(ids):
        res = _send(client, method, url, payload, intruder)
        assert res.status_code == 403, f"{method.upper()} {url} -> {res.status_code}"


def test_foreign_record_ids_are_not_found(client, martha, other):
    _, ids = martha

    for method, url, payload in _requests(ids):
        res = _send(client, method, url, payload, other)
        assert res.status_code == 404, f"{method.upper()} {url} -> {res.status_code}"


def test_foreign_requests_leave_records_untouched(client, martha, other):
    headers, ids = martha
    intruder = dict(other, **{"X-Fund-Id": ids["fund"]})
    for method, url, payload in _requests(ids):
        _send(client, method, url, payload, intruder)
        _send(client, method, url, payload, other)

    deal = client.get(f"/deals/{ids['deal']}", headers=headers).json()
    assert deal["industry"] == "Home Services"

    call = client.get(f"/capital-calls/{ids['call']}", headers=headers).json()
    assert call["paid_amount"] == 0
    assert {item["status"] for item in call["items"]} == {"NOTIFIED"}

    dist = client.get(f"/distributions/{ids['distribution']}", headers=headers).json()
    assert {item["status"] for item in dist["items"]} == {"PENDING"}

    investor = client.get(f"/investors/{ids['investor']}", headers=headers).json()
    assert [c["status"] for c in investor["commitments"]] == ["ACTIVE"]

    docs = client.get("/documents", params={"deal_id": ids["deal"]}, headers=headers).json()
    assert [(d["id"], d["visible_to_lps"]) for d in docs] == [(ids["document"], False)]
    assert client.get(f"/deals/{ids['deal']}/notes", headers=headers).json() == []
    assert client.get(f"/investors/{ids['investor']}/communications", headers=headers).json() == []


def test_listings_only_show_own_organization(client, martha, other):
    assert client.get("/deals", headers=other).json()["total"] == 0
    assert client.get("/investors", headers=other).json()["total"] == 0
    assert client.get("/capital-calls", headers=other).json()["total"] == 0
    assert client.get("/distributions", headers=other).json()["total"] == 0
    assert client.get("/portfolio/companies", headers=other).json()["total"] == 0

    audit = client.get("/audit/query", params={"limit": 100}, headers=other).json()
    assert not any(row["entity_id"] in martha[1].values() for row in audit["results"])
    assert client.get("/audit/query", params={"entity_type": "Deal"}, headers=other).json()["total"] == 0
