# tests/test_api_auth.py
from datetime import timedelta

from conftest import PASSWORD, auth_headers, registration_payload
from database.db_setup import SessionLocal, utcnow
from database.models import AuditLog, Fund, FundMember, Organization


def test_root_health_and_status(client):
    assert client.get("/").json()["status"] == "ok"
    health = client.get("/health").json()
    assert health["status"] in ("ok", "degraded")
    summary = client.get("/status/summary").json()
    assert summary["ai_enabled"] is False
    assert "/copilot/chat" in summary["routers"]


def test_search_fund_registration(register):
    session = register()
    assert session["token_type"] == "bearer"
    assert "password_hash" not in session["user"]
    assert session["user"]["role"] == "SUPER_ADMIN"

    fund = session["fund"]
    assert fund["name"] == "Martha Capital"
    assert fund["slug"] == session["organization"]["slug"] == "martha-capital"
    assert fund["status"] == "RAISING"
    assert (fund["management_fee"], fund["carried_interest"], fund["hurdle_rate"]) == (0.02, 0.20, 0.08)

    with SessionLocal() as db:
        org = db.get(Organization, session["organization"]["id"])
        assert org.type == "SEARCH_FUND"
        assert org.subscription_status == "TRIALING"
        member = db.query(FundMember).filter_by(fund_id=fund["id"]).one()
        assert member.role == "PRINCIPAL"
        assert "TEAM" in member.permissions
        entities = {row.entity_type for row in db.query(AuditLog).all()}
        assert {"Organization", "User", "Fund"} <= entities


def test_pe_fund_registration_uses_separate_fund_name(client):
    payload = registration_payload(
        "pe@blackgemfund.com",
        firm_name="Summit Partners",
        vehicle_type="PE_FUND",
        fund_name="Summit Fund II",
        fund_slug="summit-fund-ii",
        vintage=2022,
    )
    res = client.post("/auth/register", json=payload)
    assert res.status_code == 201, res.text
    body = res.json()
    assert body["organization"]["type"] == "MID_PE"
    assert body["fund"]["name"] == "Summit Fund II"
    assert body["fund"]["slug"] == "summit-fund-ii"
    assert body["fund"]["vintage"] == 2022
    assert body["fund"]["hurdle_rate"] is None


def test_registration_validation_errors(client):
    cases = [
        ({"password": "short", "confirm_password": "short"}, "Password must be at least 8 characters"),
        ({"confirm_password": "different1"}, "Passwords do not match"),
        ({"target_size": 500}, "Target size must be at least 1,000"),
        ({"currency": "JPY"}, "Currency must be one of USD, EUR, GBP"),
        ({"firm_name": "A"}, "Fund name must be at least 2 characters"),
        ({"user_email": "not-an-email"}, "Please enter a valid email address"),
        ({"org_slug": "admin"}, '"admin" is a reserved name and cannot be used'),
    ]
    for overrides, message in cases:
        res = client.post("/auth/register", json=registration_payload("x@blackgemfund.com", **overrides))
        assert res.status_code == 400, overrides
        assert res.json()["detail"] == message


def test_duplicate_registration_conflicts(client, register):
    register()
    res = client.post("/auth/register", json=registration_payload("martha@blackgemfund.com", firm_name="Other Fund"))
    assert res.status_code == 409
    assert res.json()["detail"] == "An account with this email already exists."

    res = client.post("/auth/register", json=registration_payload("other@blackgemfund.com"))
    assert res.status_code == 409
    assert res.json()["detail"] == "This firm URL is already taken."


def test_login_and_me(client, register):
    register()
    res = client.post("/auth/login", json={"email": "MARTHA@blackgemfund.com", "password": PASSWORD})
    assert res.status_code == 200
    token = res.json()["access_token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"}).json()
    assert me["user"]["email"] == "martha@blackgemfund.com"
    assert me["organization"]["slug"] == "martha-capital"
    assert len(me["memberships"]) == 1


def test_bad_credentials_and_missing_token(client, register):
    register()
    res = client.post("/auth/login", json={"email": "martha@blackgemfund.com", "password": "wrongpass1"})
    assert res.status_code == 401
    assert res.json()["detail"] == "Invalid email or password"

    assert client.get("/auth/me").status_code == 401
    assert client.get("/auth/me", headers={"Authorization": "Bearer garbage"}).status_code == 401


def test_login_rate_limit_sets_retry_after(client, register):
    register()
    for _ in range(10):
        client.post("/auth/login", json={"email": "martha@blackgemfund.com", "password": "wrongpass1"})
    res = client.post("/auth/login", json={"email": "martha@blackgemfund.com", "password": PASSWORD})
    assert res.status_code == 429
    assert int(res.headers["Retry-After"]) >= 1


def test_change_password(client, principal):
    session, headers = principal
    res = client.post("/auth/password", json={"current_password": "nope-nope", "new_password": "another-pass"}, headers=headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "Current password is incorrect"

    res = client.post("/auth/password", json={"current_password": PASSWORD, "new_password": "another-pass"}, headers=headers)
    assert res.json() == {"success": True}
    login = client.post("/auth/login", json={"email": "martha@blackgemfund.com", "password": "another-pass"})
    assert login.status_code == 200


def test_expired_trial_is_payment_required(client, principal):
    session, headers = principal
    with SessionLocal() as db:
        org = db.get(Organization, session["organization"]["id"])
        org.trial_ends_at = utcnow() - timedelta(days=1)
        db.commit()

    res = client.get("/deals", headers=headers)
    assert res.status_code == 402
    assert "trial has expired" in res.json()["detail"]

    billing = client.get("/billing/subscription", headers=headers).json()
    assert billing["subscription_status"] == "TRIALING"
    assert billing["access"]["allowed"] is False


def test_billing_reports_trial_days(client, principal):
    _, headers = principal
    billing = client.get("/billing/subscription", headers=headers).json()
    assert billing["access"]["allowed"] is True
    assert billing["access"]["days_remaining"] == 14


def test_tenant_resolve(client, principal):
    session, _ = principal
    res = client.get("/tenant/resolve", params={"slug": "martha-capital"})
    assert res.status_code == 200
    assert res.json()["fund"]["id"] == session["fund"]["id"]

    res = client.get("/tenant/resolve", headers={"Host": "martha-capital.blackgem.ai"})
    assert res.json()["organization"]["slug"] == "martha-capital"

    assert client.get("/tenant/resolve", params={"slug": "nobody"}).status_code == 404
    assert client.get("/tenant/resolve").status_code == 404


def test_fund_list_and_config(client, principal):
    session, headers = principal
    funds = client.get("/funds", headers=headers).json()
    assert [f["id"] for f in funds] == [session["fund"]["id"]]

    config = client.get("/funds/config", headers=headers).json()
    assert config["management_fee"] == "2.0%"
    assert config["target_size"] == "$5,000,000"

    res = client.patch("/funds/config", json={"carried_interest": "25%", "name": "Martha Capital I"}, headers=headers)
    assert res.status_code == 200
    with SessionLocal() as db:
        fund = db.get(Fund, session["fund"]["id"])
        assert fund.carried_interest == 0.25
        assert fund.name == "Martha Capital I"


def test_fund_config_rejects_out_of_range_rates(client, principal):
    _, headers = principal
    res = client.patch("/funds/config", json={"carried_interest": "100%"}, headers=headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "Carried interest must be at least 0% and below 100%"

    res = client.patch("/funds/config", json={"management_fee": "-1%"}, headers=headers)
    assert res.json()["detail"] == "Management fee cannot be negative"

    res = client.patch("/funds/config", json={"catch_up_rate": "150%"}, headers=headers)
    assert res.status_code == 400

    assert client.get("/reports/performance", headers=headers).status_code == 200


def test_missing_fund_header_is_rejected(client, principal):
    session, _ = principal
    headers = {"Authorization": f"Bearer {session['access_token']}"}
    res = client.get("/deals", headers=headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "No active fund found"


def test_fund_isolation_between_organizations(client, register):
    first = register()
    second = register("other@blackgemfund.com", firm_name="Other Capital")
    intruder = auth_headers(second)
    intruder["X-Fund-Id"] = first["fund"]["id"]

    res = client.get("/deals", headers=intruder)
    assert res.status_code == 403
    assert res.json()["detail"].startswith("Access denied")
