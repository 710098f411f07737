# tests/test_api_users_portal.py
"""
Organization user administration, LP portal accounts and report
distribution tracking.
"""
import pytest

from conftest import PASSWORD, auth_headers, create_account


def _new_user(client, headers, **overrides):
    payload = {"name": "Bob Analyst", "email": "bob@blackgemfund.com", "password": PASSWORD, "role": "ANALYST"}
    payload.update(overrides)
    return client.post("/users", json=payload, headers=headers)


@pytest.fixture
def lp_setup(client, principal):
    """An investor with an ACTIVE commitment, a funded call, a paid distribution and a portal login."""
    _, headers = principal

    def post(url, payload=None):
        res = client.post(url, json=payload, headers=headers) if payload is not None else client.post(url, headers=headers)
        assert res.status_code in (200, 201), res.text
        return res.json()

    investor = post("/investors", {"name": "Evergreen Family Office", "type": "Family Office", "email": "ops@evergreen.com"})
    post(f"/investors/{investor['id']}/commitments", {"committed_amount": 1_000_000, "status": "ACTIVE"})
    call = post("/capital-calls", {"call_date": "2024-03-01", "due_date": "2024-03-31", "total_amount": 100_000})
    for status in ("APPROVED", "SENT"):
        client.patch(f"/capital-calls/{call['id']}/status", json={"status": status}, headers=headers)
    post(f"/capital-calls/items/{call['items'][0]['id']}/payments", {"amount": 100_000})
    dist = post("/distributions", {"distribution_date": "2025-06-30", "type": "Profit Distribution", "total_amount": 50_000})
    client.patch(f"/distributions/{dist['id']}/status", json={"status": "APPROVED"}, headers=headers)
    post(f"/distributions/items/{dist['items'][0]['id']}/process")
    post("/distributions", {"distribution_date": "2025-12-31", "type": "Profit Distribution", "total_amount": 10_000})

    lp = create_account(
        client, headers, "lp@evergreen.com", name="Evergreen LP", role="LP_PRIMARY", investor_id=investor["id"]
    )
    return headers, investor, lp


# --------------------------------------------------------------------------- #
# User administration
# --------------------------------------------------------------------------- #

def test_create_user_validation(client, principal):
    _, headers = principal

    res = _new_user(client, headers)
    assert res.status_code == 201, res.text
    user = res.json()
    assert user["role_display"] == "Analyst"
    assert "password_hash" not in user

    res = _new_user(client, headers, email="BOB@blackgemfund.com")
    assert res.status_code == 409
    assert res.json()["detail"] == "A user with this email already exists"

    assert _new_user(client, headers, email="c@blackgemfund.com", password="short").json()["detail"] == (
        "Password must be at least 8 characters"
    )
    assert _new_user(client, headers, email="d@blackgemfund.com", role="WIZARD").json()["detail"] == "Invalid role"
    assert _new_user(client, headers, email="not-an-email").json()["detail"] == "Please enter a valid email address"

    emails = {u["email"] for u in client.get("/users", headers=headers).json()}
    assert emails == {"martha@blackgemfund.com", "bob@blackgemfund.com"}


def test_only_admins_manage_users(client, principal):
    _, headers = principal
    bob = create_account(client, headers, "bob@blackgemfund.com", fund_role="ANALYST")

    res = client.get("/users", headers=bob)
    assert res.status_code == 403
    assert res.json()["detail"] == "Access denied: admin role required"
    assert _new_user(client, bob, email="eve@blackgemfund.com").status_code == 403


def test_admins_only_see_their_own_organization(client, principal, register):
    _, headers = principal
    bob_id = _new_user(client, headers).json()["id"]
    other = auth_headers(register("other@blackgemfund.com", firm_name="Other Capital"))

    assert [u["email"] for u in client.get("/users", headers=other).json()] == ["other@blackgemfund.com"]
    responses = [
        client.patch(f"/users/{bob_id}", json={"name": "Hijacked"}, headers=other),
        client.post(f"/users/{bob_id}/toggle-status", headers=other),
        client.post(f"/users/{bob_id}/reset-password", json={"new_password": "hijacked123"}, headers=other),
        client.delete(f"/users/{bob_id}", headers=other),
    ]
    for res in responses:
        assert res.status_code == 404
        assert res.json()["detail"] == "User not found"

    bob = next(u for u in client.get("/users", headers=headers).json() if u["id"] == bob_id)
    assert (bob["name"], bob["is_active"]) == ("Bob Analyst", True)


def test_status_password_and_deactivation(client, principal):
    session, headers = principal
    bob_id = _new_user(client, headers).json()["id"]
    me = session["user"]["id"]

    res = client.post(f"/users/{me}/toggle-status", headers=headers)
    assert res.json()["detail"] == "Cannot change your own account status"
    assert client.delete(f"/users/{me}", headers=headers).json()["detail"] == "Cannot delete your own account"

    assert client.post(f"/users/{bob_id}/reset-password", json={"new_password": "brandnewpass"}, headers=headers).json() == {
        "success": True
    }
    assert client.post("/auth/login", json={"email": "bob@blackgemfund.com", "password": "brandnewpass"}).status_code == 200

    assert client.post(f"/users/{bob_id}/toggle-status", headers=headers).json() == {"success": True, "is_active": False}
    res = client.post("/auth/login", json={"email": "bob@blackgemfund.com", "password": "brandnewpass"})
    assert res.status_code == 401
    assert res.json()["detail"] == "This account has been deactivated"
    client.post(f"/users/{bob_id}/toggle-status", headers=headers)

    client.delete(f"/users/{bob_id}", headers=headers)
    bob = next(u for u in client.get("/users", headers=headers).json() if u["id"] == bob_id)
    assert bob["is_active"] is False

    audit = client.get("/audit/query", params={"entity_type": "User", "entity_id": bob_id, "limit": 100}, headers=headers).json()
    assert {"old": "[redacted]", "new": "[reset]"} in [row["changes"].get("password") for row in audit["results"] if row["changes"]]


def test_update_user(client, principal):
    session, headers = principal
    bob_id = _new_user(client, headers).json()["id"]
    _new_user(client, headers, email="carol@blackgemfund.com", name="Carol")

    updated = client.patch(f"/users/{bob_id}", json={"name": "Robert", "role": "INVESTMENT_MANAGER"}, headers=headers)
    assert (updated.json()["name"], updated.json()["role_display"]) == ("Robert", "Investment Manager")

    res = client.patch(f"/users/{bob_id}", json={"email": "carol@blackgemfund.com"}, headers=headers)
    assert res.status_code == 409
    res = client.patch(f"/users/{session['user']['id']}", json={"role": "ANALYST"}, headers=headers)
    assert res.json()["detail"] == "Cannot change your own role"


# --------------------------------------------------------------------------- #
# LP portal
# --------------------------------------------------------------------------- #

def test_investor_links_are_unique(client, lp_setup):
    headers, investor, _ = lp_setup

    assert client.get("/users/linkable-investors", headers=headers).json() == []
    res = _new_user(client, headers, email="lp2@evergreen.com", role="LP_VIEWER", investor_id=investor["id"])
    assert res.status_code == 409
    assert res.json()["detail"] == "This investor already has a portal account"


def test_portal_dashboard(client, lp_setup):
    _, investor, lp = lp_setup
    dashboard = client.get("/portal/dashboard", headers=lp).json()

    assert dashboard["investor"]["name"] == "Evergreen Family Office"
    assert dashboard["summary"] == {
        "total_committed": 1_000_000,
        "total_called": 100_000,
        "total_paid": 100_000,
        "total_distributed": 50_000,
        "unfunded": 900_000,
        "called_pct": 10.0,
        "net_value": 50_000,
    }
    assert [f["fund_name"] for f in dashboard["funds"]] == ["Martha Capital"]
    assert [(t["type"], t["date"], t["description"]) for t in dashboard["recent_transactions"]] == [
        ("DISTRIBUTION", "2025-06-30", "Distribution #1"),
        ("CAPITAL_CALL", "2024-03-01", "Capital Call #1"),
    ]


def test_portal_requires_a_linked_investor(client, principal):
    _, headers = principal
    res = client.get("/portal/dashboard", headers=headers)
    assert res.status_code == 403
    assert res.json()["detail"] == "Access denied: this account is not linked to an investor"


# --------------------------------------------------------------------------- #
# Report distribution
# --------------------------------------------------------------------------- #

def test_report_publication_and_distribution(client, lp_setup):
    headers, investor, lp = lp_setup
    bob = create_account(client, headers, "bob@blackgemfund.com", fund_role="ANALYST")
    report = client.post("/reports/quarterly", json={"year": 2025, "quarter": 2}, headers=headers).json()

    res = client.post(f"/reports/{report['id']}/distribute", json={}, headers=headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "Report must be published before distribution"
    assert client.get("/portal/reports", headers=lp).json() == []

    client.post(f"/reports/{report['id']}/submit", headers=headers)
    client.post(f"/reports/{report['id']}/publish", headers=headers)
    assert [n["type"] for n in client.get("/notifications", headers=bob).json()["notifications"]] == ["REPORT_PUBLISHED"]
    assert [r["id"] for r in client.get("/portal/reports", headers=lp).json()] == [report["id"]]

    preview = client.get(f"/reports/{report['id']}/distribution", headers=headers).json()
    assert preview["recipient_count"] == 1
    assert preview["recipient_names"] == ["Evergreen Family Office"]
    assert preview["default_subject"].endswith("Martha Capital")

    res = client.post(f"/reports/{report['id']}/distribute", json={"recipient_ids": ["nobody"]}, headers=headers)
    assert res.json()["detail"] == "No eligible recipients found"

    sent = client.post(f"/reports/{report['id']}/distribute", json={}, headers=headers).json()
    assert sent["recipient_count"] == 1
    assert sent["recipients"][0]["email"] == "ops@evergreen.com"
    stored = client.get(f"/reports/{report['id']}", headers=headers).json()
    assert stored["sent_to_lps"] is True
    assert stored["sent_at"] is not None
