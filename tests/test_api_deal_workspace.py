# tests/test_api_deal_workspace.py
import pytest

from conftest import create_account


@pytest.fixture
def deal(client, principal):
    _, headers = principal
    res = client.post("/deals", json={"name": "Acme Plumbing", "industry": "Home Services"}, headers=headers)
    assert res.status_code == 201, res.text
    return res.json()


@pytest.fixture
def bob(client, principal):
    """An analyst on Martha's fund."""
    _, headers = principal
    return create_account(client, headers, "bob@blackgemfund.com", fund_role="ANALYST")


# --------------------------------------------------------------------------- #
# Activities & timeline
# --------------------------------------------------------------------------- #

def test_activities_and_timeline(client, principal, deal):
    _, headers = principal
    base = f"/deals/{deal['id']}"
    client.patch(f"{base}/stage", json={"stage": "INITIAL_REVIEW"}, headers=headers)

    res = client.post(f"{base}/activities", json={"type": "CALL", "title": "Intro call with owner"}, headers=headers)
    assert res.status_code == 201, res.text

    res = client.post(f"{base}/activities", json={"type": "LUNCH", "title": "Lunch"}, headers=headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "Invalid activity type"

    activities = client.get(f"{base}/activities", headers=headers).json()
    assert [(a["type"], a["user_name"]) for a in activities] == [("CALL", "Martha Stewart")]

    timeline = client.get(f"{base}/timeline", headers=headers).json()
    titles = {e["title"] for e in timeline}
    assert {"Added new deal", "Updated deal stage", "Intro call with owner"} <= titles
    assert "Added new activity" not in titles
    assert {e["kind"] for e in timeline} == {"activity", "system"}
    stamps = [e["created_at"] for e in timeline]
    assert stamps == sorted(stamps, reverse=True)


def test_workspace_requires_a_deal_of_the_active_fund(client, principal):
    _, headers = principal
    res = client.get("/deals/missing/timeline", headers=headers)
    assert res.status_code == 404
    assert res.json()["detail"] == "Deal not found"


# --------------------------------------------------------------------------- #
# Notes
# --------------------------------------------------------------------------- #

def test_notes(client, principal, deal):
    _, headers = principal
    base = f"/deals/{deal['id']}/notes"

    res = client.post(base, json={"content": "   "}, headers=headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "Note content is required"

    first = client.post(base, json={"content": "Owner wants to retire within 18 months."}, headers=headers).json()
    client.post(base, json={"content": "Customer concentration looks fine."}, headers=headers)
    notes = client.get(base, headers=headers).json()
    assert len(notes) == 2
    assert {n["user_name"] for n in notes} == {"Martha Stewart"}

    assert client.delete(f"{base}/{first['id']}", headers=headers).json() == {"success": True}
    assert len(client.get(base, headers=headers).json()) == 1
    res = client.delete(f"{base}/{first['id']}", headers=headers)
    assert res.status_code == 404
    assert res.json()["detail"] == "Note not found"


# --------------------------------------------------------------------------- #
# Due diligence
# --------------------------------------------------------------------------- #

def test_due_diligence_tracker(client, principal, deal):
    _, headers = principal
    base = f"/deals/{deal['id']}/due-diligence"

    qoe = client.post(base, json={"category": "FINANCIAL", "item": "Quality of earnings", "priority": 1}, headers=headers)
    assert qoe.status_code == 201, qoe.text
    qoe = qoe.json()
    assert qoe["status"] == "NOT_STARTED"
    assert qoe["priority_display"] == "Critical"
    litigation = client.post(base, json={"category": "LEGAL", "item": "Litigation search"}, headers=headers).json()
    assert litigation["priority"] == 3

    res = client.post(base, json={"category": "ASTROLOGY", "item": "Horoscope"}, headers=headers)
    assert res.json()["detail"] == "Valid category is required"
    res = client.post(base, json={"category": "TAX", "item": "Sales tax nexus", "priority": 7}, headers=headers)
    assert res.json()["detail"] == "Priority must be between 1 and 5"

    done = client.patch(f"{base}/{qoe['id']}", json={"status": "COMPLETED"}, headers=headers).json()
    assert done["completed_at"] is not None
    client.patch(f"{base}/{litigation['id']}", json={"red_flag": True, "findings": "Open wage claim"}, headers=headers)

    stats = client.get(f"{base}/stats", headers=headers).json()
    assert stats["total_items"] == 2
    assert stats["completed_items"] == 1
    assert stats["red_flag_count"] == 1
    assert stats["overall_progress"] == 50
    assert [c["category"] for c in stats["by_category"]] == ["FINANCIAL", "LEGAL"]

    reopened = client.patch(f"{base}/{qoe['id']}", json={"status": "IN_PROGRESS"}, headers=headers).json()
    assert reopened["completed_at"] is None

    client.delete(f"{base}/{litigation['id']}", headers=headers)
    res = client.patch(f"{base}/{litigation['id']}", json={"notes": "x"}, headers=headers)
    assert res.status_code == 404
    assert res.json()["detail"] == "Item not found"


# --------------------------------------------------------------------------- #
# Tasks & notifications
# --------------------------------------------------------------------------- #

def test_deal_tasks_are_assigned_to_fund_members(client, principal, deal, bob):
    session, headers = principal
    base = f"/deals/{deal['id']}/tasks"
    bob_id = client.get("/auth/me", headers=bob).json()["user"]["id"]

    res = client.post(base, json={"title": "Request CIM", "assignee_id": bob_id, "priority": "HIGH"}, headers=headers)
    assert res.status_code == 201, res.text
    assert res.json()["assignee_name"] == "Bob Analyst"
    client.post(
        base,
        json={"title": "Call the broker", "assignee_id": session["user"]["id"], "priority": "URGENT"},
        headers=headers,
    )

    create_account(client, headers, "carol@blackgemfund.com", name="Carol Outsider")
    carol_id = next(u["id"] for u in client.get("/users", headers=headers).json() if u["name"] == "Carol Outsider")
    res = client.post(base, json={"title": "Model the deal", "assignee_id": carol_id}, headers=headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "Assignee must be an active member of this fund"

    assert [t["priority"] for t in client.get(base, headers=headers).json()] == ["URGENT", "HIGH"]

    inbox = client.get("/notifications", headers=bob).json()
    assert [n["type"] for n in inbox["notifications"]] == ["TASK_ASSIGNED"]
    assert inbox["unread_count"] == 1
    assert client.get("/notifications", headers=headers).json()["unread_count"] == 0

    mine = client.get("/tasks/mine", headers=bob).json()
    assert [t["title"] for t in mine] == ["Request CIM"]

    res = client.patch(f"/tasks/{mine[0]['id']}/status", json={"status": "DONE"}, headers=bob)
    assert res.json()["detail"] == "Invalid status"
    done = client.patch(f"/tasks/{mine[0]['id']}/status", json={"status": "COMPLETED"}, headers=bob).json()
    assert done["completed_at"] is not None
    assert client.get("/tasks/mine", headers=bob).json() == []


def test_stage_changes_notify_the_rest_of_the_team(client, principal, deal, bob):
    _, headers = principal
    client.patch(f"/deals/{deal['id']}/stage", json={"stage": "INITIAL_REVIEW"}, headers=headers)

    inbox = client.get("/notifications", headers=bob).json()
    assert [n["type"] for n in inbox["notifications"]] == ["DEAL_STAGE_CHANGE"]
    assert client.get("/notifications", headers=headers).json()["notifications"] == []

    note_id = inbox["notifications"][0]["id"]
    res = client.post(f"/notifications/{note_id}/read", headers=headers)
    assert res.status_code == 404
    assert res.json()["detail"] == "Notification not found"

    client.post(f"/deals/{deal['id']}/notes", json={"content": "Site visit booked."}, headers=headers)
    assert client.post(f"/notifications/{note_id}/read", headers=bob).json() == {"success": True}
    assert client.get("/notifications", headers=bob).json()["unread_count"] == 1
    assert client.post("/notifications/read-all", headers=bob).json() == {"success": True, "updated": 1}
    assert client.get("/notifications", headers=bob).json()["unread_count"] == 0
