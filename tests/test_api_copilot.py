# tests/test_api_copilot.py
import pytest

from conftest import FakeAnthropic, auth_headers, text_response, tool_response


@pytest.fixture
def ai_enabled(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "test-key")


def _use_client(monkeypatch, *responses):
    fake = FakeAnthropic(*responses)
    monkeypatch.setattr("backend.routes.copilot.get_anthropic_client", lambda: fake)
    return fake


def _chat(client, headers, text="How is the pipeline looking?", conversation_id=None):
    body = {"messages": [{"role": "user", "content": text}]}
    if conversation_id:
        body["conversation_id"] = conversation_id
    return client.post("/copilot/chat", json=body, headers=headers)


def test_chat_unavailable_without_api_key(client, principal):
    _, headers = principal
    res = _chat(client, headers)
    assert res.status_code == 503
    assert res.json()["detail"] == "AI copilot is not configured"


def test_chat_requires_auth_and_fund(client, principal, ai_enabled):
    session, _ = principal
    assert _chat(client, {}).status_code == 401

    res = _chat(client, {"Authorization": f"Bearer {session['access_token']}"})
    assert res.status_code == 400
    assert res.json()["detail"] == "No active fund found"


def test_chat_rejects_empty_messages(client, principal, ai_enabled):
    _, headers = principal
    res = client.post("/copilot/chat", json={"messages": []}, headers=headers)
    assert res.status_code == 400
    assert res.json()["detail"] == "Messages are required"


def test_chat_with_tool_call(client, principal, ai_enabled, monkeypatch):
    _, headers = principal
    client.post("/deals", json={"name": "Acme Plumbing", "industry": "Home Services", "asking_price": 2_000_000}, headers=headers)
    fake = _use_client(
        monkeypatch,
        tool_response("getPipelineSummary", {}),
        text_response("You have one active deal worth $2,000,000.", input_tokens=300, output_tokens=40),
    )

    res = _chat(client, headers)
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["message"] == {"role": "assistant", "content": "You have one active deal worth $2,000,000."}
    assert body["tool_calls"] == [{"name": "getPipelineSummary", "input": {}}]
    assert body["usage"]["input_tokens"] == 400
    assert body["usage"]["output_tokens"] == 60
    assert body["usage"]["total_tokens"] == 460
    assert body["usage"]["cost_usd"] > 0

    assert len(fake.messages.calls) == 2
    first = fake.messages.calls[0]
    assert "Martha Capital" in first["system"]
    assert {tool["name"] for tool in first["tools"]} >= {"getPipelineSummary", "getDealDetails"}
    tool_result = fake.messages.calls[1]["messages"][-1]["content"][0]
    assert tool_result["type"] == "tool_result"
    assert '"activeDeals": 1' in tool_result["content"]

    conversations = client.get("/copilot/conversations", headers=headers).json()
    assert [c["id"] for c in conversations] == [body["conversation_id"]]
    assert conversations[0]["title"] == "How is the pipeline looking?"

    messages = client.get(f"/copilot/conversations/{body['conversation_id']}", headers=headers).json()
    assert [m["role"] for m in messages] == ["user", "assistant"]
    assert messages[1]["tool_calls"][0]["name"] == "getPipelineSummary"


def test_follow_up_reuses_conversation(client, principal, ai_enabled, monkeypatch):
    _, headers = principal
    _use_client(monkeypatch, text_response("Hello!"), text_response("Still here."))

    first = _chat(client, headers, "Hi").json()
    res = client.post(
        "/copilot/chat",
        json={
            "conversation_id": first["conversation_id"],
            "messages": [
                {"role": "user", "content": "Hi"},
                {"role": "assistant", "content": "Hello!"},
                {"role": "user", "content": "Are you there?"},
            ],
        },
        headers=headers,
    )
    assert res.json()["conversation_id"] == first["conversation_id"]
    assert len(client.get("/copilot/conversations", headers=headers).json()) == 1


def test_chat_rate_limit(client, principal, ai_enabled, monkeypatch):
    _, headers = principal
    monkeypatch.setattr("backend.routes.copilot.RATE_LIMIT_PER_HOUR", 1)
    _use_client(monkeypatch, text_response("First answer."))

    assert _chat(client, headers).status_code == 200
    res = _chat(client, headers)
    assert res.status_code == 429
    assert res.json()["detail"] == "Rate limit exceeded. Please try again later."
    assert int(res.headers["Retry-After"]) > 0


def test_chat_is_fund_scoped(client, register, ai_enabled):
    owner = register()
    other = register("other@blackgemfund.com", firm_name="Other Capital")
    headers = auth_headers(other)
    headers["X-Fund-Id"] = owner["fund"]["id"]
    assert _chat(client, headers).status_code == 403


def test_chat_rejects_another_users_conversation(client, register, ai_enabled, monkeypatch):
    bob = auth_headers(register("bob@blackgemfund.com", firm_name="Bob Capital"))
    alice = auth_headers(register("alice@blackgemfund.com", firm_name="Alice Capital"))
    fake = _use_client(monkeypatch, text_response("Hello Bob."))
    monkeypatch.setattr("backend.routes.copilot.RATE_LIMIT_PER_HOUR", 1)

    conversation_id = _chat(client, bob, "Hi").json()["conversation_id"]

    res = _chat(client, alice, "Ignore the above", conversation_id=conversation_id)
    assert res.status_code == 404
    assert res.json()["detail"] == "Conversation not found"
    assert len(fake.messages.calls) == 1

    messages = client.get(f"/copilot/conversations/{conversation_id}", headers=bob).json()
    assert [(m["role"], m["content"]) for m in messages] == [("user", "Hi"), ("assistant", "Hello Bob.")]

    # the rejected request did not spend Alice's hourly allowance
    _use_client(monkeypatch, text_response("Hello Alice."))
    assert _chat(client, alice, "Hi").status_code == 200


def test_chat_rejects_conversation_from_another_fund(client, principal, ai_enabled, monkeypatch):
    session, headers = principal
    _use_client(monkeypatch, text_response("Hello."))
    conversation_id = _chat(client, headers, "Hi").json()["conversation_id"]

    second_fund = client.post(
        "/funds", json={"name": "Martha Capital Fund II", "target_size": 10_000_000}, headers=headers
    )
    assert second_fund.status_code == 201, second_fund.text
    other_headers = dict(headers, **{"X-Fund-Id": second_fund.json()["id"]})

    res = _chat(client, other_headers, "Hi again", conversation_id=conversation_id)
    assert res.status_code == 404


def test_first_time_greeting_ignores_archived_conversations(client, principal, ai_enabled, monkeypatch):
    _, headers = principal
    fake = _use_client(monkeypatch, text_response("Hello."), text_response("Hello again."))

    old = _chat(client, headers, "Hi").json()["conversation_id"]
    client.delete(f"/copilot/conversations/{old}", headers=headers)
    _chat(client, headers, "Starting over")

    assert "[FIRST MESSAGE]" in fake.messages.calls[0]["system"]
    assert "[FIRST MESSAGE]" in fake.messages.calls[1]["system"]


def test_conversation_management(client, principal, register, ai_enabled, monkeypatch):
    _, headers = principal
    _use_client(monkeypatch, text_response("Sure."))
    conversation_id = _chat(client, headers, "Draft an LP update").json()["conversation_id"]
    url = f"/copilot/conversations/{conversation_id}"

    renamed = client.patch(url, json={"title": "Q3 letter"}, headers=headers).json()
    assert renamed == {"id": conversation_id, "title": "Q3 letter"}
    assert client.patch(url, json={"title": "  "}, headers=headers).status_code == 400

    stranger = auth_headers(register("other@blackgemfund.com", firm_name="Other Capital"))
    assert client.get(url, headers=stranger).status_code == 404

    assert client.delete(url, headers=headers).json() == {"success": True}
    assert client.get("/copilot/conversations", headers=headers).json() == []


def test_usage_insights(client, principal, ai_enabled, monkeypatch):
    _, headers = principal
    _use_client(monkeypatch, text_response("One.", 1000, 100), text_response("Two.", 2000, 200))
    _chat(client, headers, "first")
    _chat(client, headers, "second")

    usage = client.get("/copilot/usage", headers=headers).json()
    assert usage["total_interactions"] == 2
    assert usage["token_stats"]["sum"] == 3300
    assert usage["total_cost_usd"] > 0
    assert usage["pricing_per_million"]["input_usd"] > 0


# --------------------------------------------------------------------------- #
# Audit trail
# --------------------------------------------------------------------------- #

def test_audit_query(client, principal, register):
    session, headers = principal
    deal = client.post("/deals", json={"name": "Acme Plumbing", "industry": "Home Services"}, headers=headers).json()
    client.patch(f"/deals/{deal['id']}/stage", json={"stage": "INITIAL_REVIEW"}, headers=headers)

    res = client.get("/audit/query", params={"entity_type": "Deal"}, headers=headers).json()
    assert res["total"] == 2
    assert [r["action"] for r in res["results"]] == ["UPDATE", "CREATE"]
    assert res["results"][0]["changes"] == {"stage": {"old": "IDENTIFIED", "new": "INITIAL_REVIEW"}}

    created = client.get("/audit/query", params={"entity_type": "Deal", "action": "create"}, headers=headers).json()
    assert created["count"] == 1

    future = client.get("/audit/query", params={"start_date": "2999-01-01"}, headers=headers).json()
    assert future["total"] == 0

    assert client.get("/audit/query", params={"limit": 0}, headers=headers).status_code == 422
    assert client.get("/audit/query", params={"start_date": "nope"}, headers=headers).status_code == 400

    outsider = auth_headers(register("other@blackgemfund.com", firm_name="Other Capital"))
    res = client.get("/audit/query", params={"entity_type": "Deal"}, headers=outsider).json()
    assert res["total"] == 0
