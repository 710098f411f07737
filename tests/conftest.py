# tests/conftest.py
"""
Shared fixtures: an in-memory SQLite database rebuilt per test, a FastAPI
TestClient, and helpers that register a fund principal through the API.
"""
import os
from types import SimpleNamespace

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["PASSWORD_HASH_ITERATIONS"] = "1000"
os.environ.pop("ANTHROPIC_API_KEY", None)
os.environ.pop("SUPABASE_URL", None)
os.environ.pop("SUPABASE_ANON_KEY", None)

import pytest
from fastapi.testclient import TestClient

from backend.main import app
from core import rate_limit
from database import models  # noqa: F401  (registers mappers)
from database.db_setup import Base, engine

PASSWORD = "supersecret1"


@pytest.fixture(autouse=True)
def fresh_database():
    Base.metadata.create_all(bind=engine)
    rate_limit.reset()
    yield
    Base.metadata.drop_all(bind=engine)
    rate_limit.reset()


@pytest.fixture
def client():
    return TestClient(app)


def registration_payload(email, firm_name="Martha Capital", vehicle_type="SEARCH_FUND", **overrides):
    payload = {
        "vehicle_type": vehicle_type,
        "firm_name": firm_name,
        "user_name": "Martha Stewart",
        "user_email": email,
        "password": PASSWORD,
        "confirm_password": PASSWORD,
        "target_size": 5_000_000,
        "currency": "USD",
    }
    payload.update(overrides)
    return payload


def auth_headers(session_payload):
    """Bearer + active fund headers from a register/login response."""
    headers = {"Authorization": f"Bearer {session_payload['access_token']}"}
    if session_payload.get("fund"):
        headers["X-Fund-Id"] = session_payload["fund"]["id"]
    return headers


def create_account(client, admin_headers, email, name="Bob Analyst", role="ANALYST", fund_role=None, **extra):
    """
    Create an organization user through the admin API and sign them in.

    With ``fund_role`` the user is also added to the admin's active fund.
    Returns headers carrying the admin's ``X-Fund-Id``.
    """
    res = client.post(
        "/users",
        json={"name": name, "email": email, "password": PASSWORD, "role": role, **extra},
        headers=admin_headers,
    )
    assert res.status_code == 201, res.text
    if fund_role:
        res = client.post("/funds/members", json={"email": email, "role": fund_role}, headers=admin_headers)
        assert res.status_code == 201, res.text
    login = client.post("/auth/login", json={"email": email, "password": PASSWORD}).json()
    return {"Authorization": f"Bearer {login['access_token']}", "X-Fund-Id": admin_headers["X-Fund-Id"]}


@pytest.fixture
def register(client):
    def _register(email="martha@blackgemfund.com", **kwargs):
        res = client.post("/auth/register", json=registration_payload(email, **kwargs))
        assert res.status_code == 201, res.text
        return res.json()

    return _register


@pytest.fixture
def principal(register):
    """A registered search-fund principal; returns (session payload, headers)."""
    session = register()
    return session, auth_headers(session)


# --------------------------------------------------------------------------- #
# Anthropic stand-in
# --------------------------------------------------------------------------- #

def text_response(text, input_tokens=100, output_tokens=20):
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=text)],
        usage=SimpleNamespace(input_tokens=input_tokens, output_tokens=output_tokens),
        stop_reason="end_turn",
    )


def tool_response(name, tool_input, tool_id="toolu_1", input_tokens=100, output_tokens=20):
    return SimpleNamespace(
        content=[
            SimpleNamespace(type="text", text="Checking the pipeline."),
            SimpleNamespace(type="tool_use", id=tool_id, name=name, input=tool_input),
        ],
        usage=SimpleNamespace(input_tokens=input_tokens, output_tokens=output_tokens),
        stop_reason="tool_use",
    )


class FakeMessages:
    def __init__(self, responses):
        self._responses = list(responses)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        return self._responses.pop(0)


class FakeAnthropic:
    """Replays canned responses from ``client.messages.create``."""

    def __init__(self, *responses):
        self.messages = FakeMessages(responses)
