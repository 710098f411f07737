# tests/test_api_capital.py
import pytest


def _investor(client, headers, name, amount, status="ACTIVE"):
    investor = client.post("/investors", json={"name": name, "type": "Family Office"}, headers=headers)
    assert investor.status_code == 201, investor.text
    investor_id = investor.json()["id"]
    commitment = client.post(
        f"/investors/{investor_id}/commitments",
        json={"committed_amount": amount, "status": status},
        headers=headers,
    )
    assert commitment.status_code == 201, commitment.text
    return investor_id, commitment.json()


@pytest.fixture
def lps(client, principal):
    _, headers = principal
    first, _ = _investor(client, headers, "Evergreen Family Office", "$600,000")
    second, _ = _investor(client, headers, "Harbor Trust", 400000)
    return {"Evergreen Family Office": first, "Harbor Trust": second}


def _items_by_name(call):
    return {item["investor_name"]: item for item in call["items"]}


# --------------------------------------------------------------------------- #
# Investors & commitments
# --------------------------------------------------------------------------- #

def test_investor_listing_and_detail(client, principal, lps):
    _, headers = principal
    listing = client.get("/investors", params={"type": "FAMILY_OFFICE"}, headers=headers).json()
    assert listing["total"] == 2
    assert {row["type_display"] for row in listing["data"]} == {"Family Office"}

    detail = client.get(f"/investors/{lps['Harbor Trust']}", headers=headers).json()
    assert detail["total_committed"] == 400000
    assert detail["total_committed_display"] == "$400,000"
    assert detail["commitments"][0]["unfunded_amount"] == 400000
    assert detail["commitments"][0]["fund_name"] == "Martha Capital"


def test_investor_validation(client, principal):
    _, headers = principal
    res = client.post("/investors", json={"name": "X"}, headers=headers)
    assert res.status_code == 400
    res = client.post("/investors", json={"name": "Some LP", "type": "Alien"}, headers=headers)
    assert res.json()["detail"] == "Unknown investor type: Alien"


def test_duplicate_commitment_conflicts(client, principal, lps):
    _, headers = principal
    res = client.post(
        f"/investors/{lps['Harbor Trust']}/commitments", json={"committed_amount": 1000}, headers=headers
    )
    assert res.status_code == 409

    res = client.post(f"/investors/{lps['Harbor Trust']}/commitments", json={}, headers=headers)
    assert res.status_code == 400


def test_commitment_update_and_soft_delete(client, principal):
    _, headers = principal
    investor_id, commitment = _investor(client, headers, "Granite Partners", 250000, status="PENDING")

    updated = client.patch(f"/commitments/{commitment['id']}", json={"status": "SIGNED"}, headers=headers)
    assert updated.json()["status"] == "SIGNED"
    assert client.patch(f"/commitments/{commitment['id']}", json={}, headers=headers).status_code == 400

    assert client.delete(f"/commitments/{commitment['id']}", headers=headers).json() == {"success": True}
    detail = client.get(f"/investors/{investor_id}", headers=headers).json()
    assert detail["commitments"] == []
    assert client.delete(f"/commitments/{commitment['id']}", headers=headers).status_code == 404


def test_commitment_date_must_be_a_date(client, principal):
    _, headers = principal
    investor = client.post("/investors", json={"name": "Granite Partners", "type": "Family Office"}, headers=headers).json()
    url = f"/investors/{investor['id']}/commitments"

    res = client.post(url, json={"committed_amount": 250000, "commitment_date": "next week"}, headers=headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "Invalid commitment date: next week"

    res = client.post(url, json={"committed_amount": 250000, "commitment_date": "2024-03-01"}, headers=headers)
    assert res.status_code == 201
    assert res.json()["commitment_date"].startswith("2024-03-01")


def test_investor_export(client, principal, lps):
    _, headers = principal
    res = client.get("/investors/export", headers=headers)
    lines = res.content.decode("utf-8-sig").split("\r\n")
    assert lines[0] == "Name,Type,Status,Email,Contact,Committed,Called,Paid,Distributed"
    assert lines[1].startswith("Evergreen Family Office,Family Office,Prospect,,,600000,0,0,0")


def test_communication_log_and_follow_ups(client, principal, lps):
    _, headers = principal
    base = f"/investors/{lps['Harbor Trust']}/communications"

    res = client.post(base, json={"type": "FAX", "direction": "OUTBOUND"}, headers=headers)
    assert res.status_code == 400
    res = client.post(base, json={"type": "CALL", "direction": "SIDEWAYS"}, headers=headers)
    assert res.json()["detail"] == "Direction must be INBOUND or OUTBOUND"
    res = client.post(base, json={"type": "CALL", "direction": "INBOUND", "follow_up_date": "soon"}, headers=headers)
    assert res.json()["detail"] == "Invalid follow-up date: soon"

    call = client.post(
        base,
        json={"type": "call", "direction": "inbound", "subject": "Q2 questions", "follow_up_date": "2025-07-15"},
        headers=headers,
    )
    assert call.status_code == 201, call.text
    call = call.json()
    assert (call["type"], call["direction"], call["sent_by"]) == ("CALL", "INBOUND", "Martha Stewart")
    email = client.post(base, json={"type": "EMAIL", "direction": "OUTBOUND"}, headers=headers).json()

    history = client.get(base, headers=headers).json()
    assert {row["id"] for row in history} == {call["id"], email["id"]}
    assert client.get(f"/investors/{lps['Evergreen Family Office']}/communications", headers=headers).json() == []

    res = client.post(f"/communications/{email['id']}/follow-up", headers=headers)
    assert res.json()["detail"] == "This communication has no follow-up"
    done = client.post(f"/communications/{call['id']}/follow-up", headers=headers).json()
    assert done["follow_up_done"] is True


# --------------------------------------------------------------------------- #
# Capital calls
# --------------------------------------------------------------------------- #

def _new_call(client, headers, amount=100000):
    res = client.post(
        "/capital-calls",
        json={"call_date": "2024-03-01", "due_date": "2024-03-31", "total_amount": amount, "purpose": "Acquisition"},
        headers=headers,
    )
    assert res.status_code == 201, res.text
    return res.json()


def test_capital_call_pro_rata_items(client, principal, lps):
    _, headers = principal
    _investor(client, headers, "Pending LP", 500000, status="PENDING")

    call = _new_call(client, headers)
    assert call["status"] == "DRAFT"
    assert call["call_number"] == 1
    assert call["allowed_transitions"] == ["APPROVED", "CANCELLED"]

    items = _items_by_name(call)
    assert set(items) == {"Evergreen Family Office", "Harbor Trust"}
    assert items["Evergreen Family Office"]["call_amount"] == 60000
    assert items["Harbor Trust"]["call_amount"] == 40000

    assert _new_call(client, headers, 1000)["call_number"] == 2


def test_capital_call_validation(client, principal):
    _, headers = principal
    res = client.post(
        "/capital-calls",
        json={"call_date": "2024-03-31", "due_date": "2024-03-01", "total_amount": 1000},
        headers=headers,
    )
    assert res.status_code == 400
    assert res.json()["detail"] == "Due date cannot be before the call date"

    res = client.post(
        "/capital-calls",
        json={"call_date": "2024-03-01", "due_date": "2024-03-31", "total_amount": "0"},
        headers=headers,
    )
    assert res.json()["detail"] == "Total amount must be greater than zero"


def test_capital_call_lifecycle(client, principal, lps):
    _, headers = principal
    call = _new_call(client, headers)
    items = _items_by_name(call)
    evergreen = items["Evergreen Family Office"]["id"]
    harbor = items["Harbor Trust"]["id"]
    status_url = f"/capital-calls/{call['id']}/status"

    res = client.post(f"/capital-calls/items/{evergreen}/payments", json={"amount": 1000}, headers=headers)
    assert res.status_code == 400

    assert client.patch(status_url, json={"status": "SENT"}, headers=headers).status_code == 400
    assert client.patch(status_url, json={"status": "Approved"}, headers=headers).json()["status"] == "APPROVED"
    sent = client.patch(status_url, json={"status": "SENT"}, headers=headers).json()
    assert sent["notice_date"] is not None

    detail = client.get(f"/capital-calls/{call['id']}", headers=headers).json()
    assert {item["status"] for item in detail["items"]} == {"NOTIFIED"}

    paid = client.post(f"/capital-calls/items/{evergreen}/payments", json={"amount": "60,000"}, headers=headers).json()
    assert paid["status"] == "PARTIALLY_FUNDED"
    assert _items_by_name(paid)["Evergreen Family Office"]["status"] == "PAID"

    partial = client.post(f"/capital-calls/items/{harbor}/payments", json={"amount": 10000}, headers=headers).json()
    assert _items_by_name(partial)["Harbor Trust"]["status"] == "PARTIAL"
    assert partial["paid_amount"] == 70000

    done = client.post(
        f"/capital-calls/items/{harbor}/payments", json={"amount": 0, "mark_as_paid": True}, headers=headers
    ).json()
    assert done["status"] == "FULLY_FUNDED"
    assert done["completed_date"] is not None

    again = client.post(f"/capital-calls/items/{harbor}/payments", json={"amount": 5}, headers=headers)
    assert again.status_code == 400

    harbor_lp = client.get(f"/investors/{lps['Harbor Trust']}", headers=headers).json()
    assert harbor_lp["total_called"] == 40000
    assert harbor_lp["total_paid"] == 10000

    assert client.delete(f"/capital-calls/{call['id']}", headers=headers).status_code == 400


def test_draft_call_can_be_deleted(client, principal, lps):
    _, headers = principal
    call = _new_call(client, headers)
    assert client.delete(f"/capital-calls/{call['id']}", headers=headers).json() == {"success": True}
    assert client.get("/capital-calls", headers=headers).json()["total"] == 0


# --------------------------------------------------------------------------- #
# Distributions
# --------------------------------------------------------------------------- #

def test_distribution_lifecycle(client, principal, lps):
    _, headers = principal
    res = client.post(
        "/distributions",
        json={"distribution_date": "2025-06-30", "type": "Return of Capital", "total_amount": 50000},
        headers=headers,
    )
    assert res.status_code == 201, res.text
    dist = res.json()
    assert dist["type"] == "RETURN_OF_CAPITAL"
    items = _items_by_name(dist)
    assert items["Evergreen Family Office"]["net_amount"] == 30000
    assert items["Harbor Trust"]["gross_amount"] == 20000

    evergreen = items["Evergreen Family Office"]["id"]
    harbor = items["Harbor Trust"]["id"]

    res = client.post(f"/distributions/items/{evergreen}/process", headers=headers)
    assert res.status_code == 400

    approved = client.patch(f"/distributions/{dist['id']}/status", json={"status": "APPROVED"}, headers=headers).json()
    assert approved["approved_date"] is not None

    first = client.post(f"/distributions/items/{evergreen}/process", headers=headers).json()
    assert first["status"] == "PROCESSING"
    assert first["paid_amount"] == 30000

    second = client.post(f"/distributions/items/{harbor}/process", headers=headers).json()
    assert second["status"] == "COMPLETED"

    lp = client.get(f"/investors/{lps['Evergreen Family Office']}", headers=headers).json()
    assert lp["total_distributed"] == 30000

    assert client.delete(f"/distributions/{dist['id']}", headers=headers).status_code == 400


def test_distribution_type_is_required(client, principal):
    _, headers = principal
    res = client.post(
        "/distributions",
        json={"distribution_date": "2025-06-30", "type": "Bonus", "total_amount": 100},
        headers=headers,
    )
    assert res.status_code == 400
    assert res.json()["detail"] == "Unknown distribution type: Bonus"
