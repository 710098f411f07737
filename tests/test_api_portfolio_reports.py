# tests/test_api_portfolio_reports.py
import pytest


def _company(client, headers, **overrides):
    payload = {
        "name": "Acme Plumbing",
        "industry": "Home Services",
        "acquisition_date": "2024-01-15",
        "entry_valuation": "$10,000,000",
        "equity_invested": 4_000_000,
        "ownership_pct": "40%",
    }
    payload.update(overrides)
    res = client.post("/portfolio/companies", json=payload, headers=headers)
    assert res.status_code == 201, res.text
    return res.json()


# --------------------------------------------------------------------------- #
# Portfolio
# --------------------------------------------------------------------------- #

def test_create_company_marks_at_cost(client, principal):
    _, headers = principal
    company = _company(client, headers)
    assert company["status"] == "HOLDING"
    assert company["ownership_pct"] == 0.4
    assert company["total_value"] == 4_000_000
    assert company["moic"] == 1.0
    assert company["moic_display"] == "1.00x"
    assert company["ownership_display"] == "40.0%"


def test_create_company_validation(client, principal):
    _, headers = principal
    res = client.post("/portfolio/companies", json={"name": "Acme"}, headers=headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "Acquisition date is required"

    res = client.post(
        "/portfolio/companies",
        json={
            "name": "Acme",
            "acquisition_date": "2024-01-15",
            "entry_valuation": 100,
            "equity_invested": 100,
            "ownership_pct": 150,
        },
        headers=headers,
    )
    assert res.json()["detail"] == "Ownership percentage must be between 0% and 100%"


def test_revaluation_updates_returns(client, principal):
    _, headers = principal
    company = _company(client, headers)
    marked = client.put(
        f"/portfolio/companies/{company['id']}/valuation",
        json={"current_valuation": "15,000,000", "notes": "Q2 mark"},
        headers=headers,
    ).json()
    assert marked["current_valuation"] == 15_000_000
    assert marked["unrealized_value"] == pytest.approx(6_000_000)
    assert marked["moic"] == pytest.approx(1.5)
    assert marked["irr"] > 0

    summary = client.get("/portfolio/summary", headers=headers).json()
    assert summary["total_companies"] == 1
    assert summary["total_invested"] == "$4,000,000"
    assert summary["total_current_value"] == "$6,000,000"
    assert summary["portfolio_moic"] == "1.50x"


def test_metrics_and_kpi_trend(client, principal):
    _, headers = principal
    company = _company(client, headers)
    url = f"/portfolio/companies/{company['id']}"

    first = client.post(
        f"{url}/metrics",
        json={"period_date": "2024-03-31", "revenue": 2_000_000, "ebitda": 400_000},
        headers=headers,
    ).json()
    assert first["ebitda_margin"] == pytest.approx(0.2)
    assert first["revenue_growth"] is None

    second = client.post(
        f"{url}/metrics",
        json={"period_date": "2024-06-30", "revenue": "2,500,000", "total_debt": 1_000_000, "cash_balance": 250_000},
        headers=headers,
    ).json()
    assert second["revenue_growth"] == pytest.approx(0.25)
    assert second["net_debt"] == 750_000

    trend = client.get(f"{url}/kpi-trend", params={"metric": "revenue"}, headers=headers).json()
    assert [point["date"] for point in trend] == ["2024-03-31", "2024-06-30"]
    assert trend[0]["change"] is None
    assert trend[1]["change"] == pytest.approx(25.0)

    margin = client.get(f"{url}/kpi-trend", params={"metric": "ebitdaMargin"}, headers=headers).json()
    assert len(margin) == 1

    res = client.get(f"{url}/kpi-trend", params={"metric": "bogus"}, headers=headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "Invalid metric name: bogus"

    detail = client.get(url, headers=headers).json()
    assert len(detail["metrics"]) == 2
    assert detail["latest_metric"]["period_date"] == "2024-06-30"


def test_metric_counts_must_be_whole_numbers(client, principal):
    _, headers = principal
    company = _company(client, headers)
    url = f"/portfolio/companies/{company['id']}/metrics"

    res = client.post(url, json={"period_date": "2024-03-31", "employee_count": "about 40"}, headers=headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "Invalid employee count"

    res = client.post(url, json={"period_date": "2024-03-31", "ev_ebitda": "n/a"}, headers=headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "Invalid EV/EBITDA"

    res = client.post(url, json={"period_date": "2024-03-31", "employee_count": "42", "ev_ebitda": "6.5"}, headers=headers)
    assert res.status_code == 201
    assert res.json()["employee_count"] == 42
    assert res.json()["ev_ebitda"] == 6.5


def test_valuation_history(client, principal):
    _, headers = principal
    company = _company(client, headers)
    url = f"/portfolio/companies/{company['id']}/valuations"

    official = client.post(
        url,
        json={"valuation_date": "2024-06-30", "value": 20_000_000, "methodology": "MARKET_MULTIPLES", "is_official": True},
        headers=headers,
    )
    assert official.status_code == 201
    client.post(url, json={"valuation_date": "2024-09-30", "value": 22_000_000, "methodology": "DCF"}, headers=headers)

    res = client.post(url, json={"valuation_date": "2024-09-30", "value": 0, "methodology": "DCF"}, headers=headers)
    assert res.status_code == 400

    history = client.get(url, headers=headers).json()
    assert [h["valuation_date"] for h in history] == ["2024-09-30", "2024-06-30"]
    assert history[0]["change_percent"] == pytest.approx(10.0)
    assert history[0]["value_display"] == "$22,000,000"

    detail = client.get(f"/portfolio/companies/{company['id']}", headers=headers).json()
    assert detail["current_valuation"] == 20_000_000


def test_company_status_and_delete(client, principal):
    _, headers = principal
    company = _company(client, headers)
    url = f"/portfolio/companies/{company['id']}"

    exited = client.patch(f"{url}/status", json={"status": "Exited"}, headers=headers).json()
    assert exited["status"] == "EXITED"
    assert exited["exit_date"] is not None
    assert client.patch(f"{url}/status", json={"status": "Gone"}, headers=headers).status_code == 400

    assert client.delete(url, headers=headers).json() == {"success": True}
    assert client.get(url, headers=headers).status_code == 404


# --------------------------------------------------------------------------- #
# Fund reports
# --------------------------------------------------------------------------- #

@pytest.fixture
def funded(client, principal):
    """One LP, one fully funded call and one company marked up 50%."""
    _, headers = principal
    investor_id = client.post("/investors", json={"name": "Evergreen Family Office"}, headers=headers).json()["id"]
    client.post(
        f"/investors/{investor_id}/commitments",
        json={"committed_amount": 1_000_000, "status": "ACTIVE"},
        headers=headers,
    )
    call = client.post(
        "/capital-calls",
        json={"call_date": "2024-01-15", "due_date": "2024-02-15", "total_amount": 400_000},
        headers=headers,
    ).json()
    for status in ("APPROVED", "SENT"):
        client.patch(f"/capital-calls/{call['id']}/status", json={"status": status}, headers=headers)
    paid = client.post(
        f"/capital-calls/items/{call['items'][0]['id']}/payments", json={"amount": 400_000}, headers=headers
    ).json()
    assert paid["status"] == "FULLY_FUNDED"

    company = _company(client, headers, entry_valuation=400_000, equity_invested=400_000, ownership_pct=1)
    client.put(f"/portfolio/companies/{company['id']}/valuation", json={"current_valuation": 600_000}, headers=headers)
    return investor_id


def test_fund_performance_report(client, principal, funded):
    _, headers = principal
    report = client.get("/reports/performance", headers=headers).json()
    assert report["capital"]["total_paid"] == "$400,000"
    assert report["capital"]["call_percentage"] == "40.0%"
    assert report["performance"]["tvpi"] == "1.50x"
    assert report["performance"]["rvpi"] == "1.50x"
    assert report["performance"]["dpi"] == "-"
    assert report["performance"]["gross_irr"] is not None
    assert report["waterfall"] is not None
    assert report["companies"][0]["total_value"] == "$600,000"


def test_empty_fund_performance(client, principal):
    _, headers = principal
    report = client.get("/reports/performance", headers=headers).json()
    assert report["waterfall"] is None
    assert report["companies"] == []
    assert report["performance"]["gross_irr"] is None


def test_lp_capital_statement(client, principal, funded):
    _, headers = principal
    statement = client.get(f"/reports/capital-statements/{funded}", headers=headers).json()
    assert statement["commitment"]["called_amount"] == "$400,000"
    assert statement["commitment"]["unfunded_amount"] == "$600,000"
    assert statement["commitment"]["ownership_pct"] == "100.0%"
    assert statement["performance"]["moic"] == "1.10x"
    assert statement["performance"]["total_value"] == "$440,000"
    assert statement["capital_calls"][0]["status"] == "PAID"
    assert statement["performance"]["irr"] is not None

    res = client.get(f"/reports/capital-statements/{funded}/export", headers=headers)
    lines = res.content.decode("utf-8-sig").split("\r\n")
    assert lines[0] == "Date,Transaction,Amount,Paid / Net,Status"
    assert lines[1] == '2024-01-15,Capital Call #1,"$400,000","$400,000",PAID'


def test_statement_requires_commitment(client, principal):
    _, headers = principal
    investor_id = client.post("/investors", json={"name": "Prospect LP"}, headers=headers).json()["id"]
    res = client.get(f"/reports/capital-statements/{investor_id}", headers=headers)
    assert res.status_code == 404
    assert res.json()["detail"] == "This investor has no commitment to this fund"


def test_dashboard(client, principal, funded):
    _, headers = principal
    dashboard = client.get("/dashboard", headers=headers).json()
    assert dashboard["fund_name"] == "Martha Capital"
    assert dashboard["total_commitments"] == "$1,000,000"
    assert dashboard["capital_call_pct"] == "40.0%"
    assert dashboard["investor_count"] == 1
    assert dashboard["portfolio_companies"] == 1
    assert dashboard["recent_activity"]
    assert dashboard["recent_activity"][0]["user_name"] == "Martha Stewart"


def test_portfolio_export(client, principal, funded):
    _, headers = principal
    res = client.get("/reports/portfolio/export", headers=headers)
    lines = res.content.decode("utf-8-sig").split("\r\n")
    assert lines[0] == "Company,Industry,Status,Acquisition Date,Equity Invested,Total Value,MOIC,IRR"
    assert lines[1].startswith("Acme Plumbing,Home Services,HOLDING,2024-01-15,400000,600000,1.5,")


# --------------------------------------------------------------------------- #
# Quarterly updates
# --------------------------------------------------------------------------- #

def test_quarterly_update_workflow(client, principal, funded):
    _, headers = principal
    res = client.post("/reports/quarterly", json={"year": 2025, "quarter": 1}, headers=headers)
    assert res.status_code == 201, res.text
    report = res.json()
    assert report["title"] == "Q1 2025 Quarterly Update"
    assert (report["period_start"], report["period_end"]) == ("2025-01-01", "2025-03-31")
    assert [s["key"] for s in report["sections"]] == [
        "letter",
        "fund_summary",
        "portfolio_update",
        "capital_summary",
        "looking_ahead",
    ]
    summary = next(s for s in report["sections"] if s["key"] == "fund_summary")
    assert "Capital Called: $400,000 (40.0%)" in summary["content"]

    duplicate = client.post("/reports/quarterly", json={"year": 2025, "quarter": 1}, headers=headers)
    assert duplicate.status_code == 409

    url = f"/reports/{report['id']}"
    edited = client.put(f"{url}/sections/letter", json={"content": "Dear partners,"}, headers=headers).json()
    assert next(s for s in edited["sections"] if s["key"] == "letter")["content"] == "Dear partners,"
    assert client.get(url, headers=headers).json()["sections"][0]["content"] == "Dear partners,"

    locked = client.put(f"{url}/sections/fund_summary", json={"content": "x"}, headers=headers)
    assert locked.status_code == 400
    assert locked.json()["detail"] == "Section 'Fund Summary' is generated and cannot be edited"
    assert client.put(f"{url}/sections/nope", json={"content": "x"}, headers=headers).status_code == 404

    assert client.post(f"{url}/submit", headers=headers).json()["status"] == "REVIEW"
    assert client.post(f"{url}/submit", headers=headers).status_code == 400

    published = client.post(f"{url}/publish", headers=headers).json()
    assert published["status"] == "PUBLISHED"
    assert published["published_at"] is not None
    assert client.post(f"{url}/publish", headers=headers).json()["detail"] == "Report is already published"

    res = client.put(f"{url}/sections/letter", json={"content": "late"}, headers=headers)
    assert res.json()["detail"] == "Cannot edit a published report"

    listing = client.get("/reports", headers=headers).json()
    assert [r["status"] for r in listing] == ["PUBLISHED"]


def test_quarterly_update_validation(client, principal):
    _, headers = principal
    res = client.post("/reports/quarterly", json={"year": 2019, "quarter": 1}, headers=headers)
    assert res.json()["detail"] == "Year must be between 2020 and 2030"
    res = client.post("/reports/quarterly", json={"year": 2025, "quarter": 5}, headers=headers)
    assert res.json()["detail"] == "Quarter must be between 1 and 4"
