"""
backend/dependencies.py
-----------------------

FastAPI dependencies shared by every router.

- ``get_current_user_id``: Bearer token → user id (401 otherwise).
- ``get_active_fund_id``: active fund from the ``X-Fund-Id`` header (400 if absent).
- ``require_subscription``: rejects organizations whose subscription no
  longer grants access (402).
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.errors import AuthenticationError, PaymentRequiredError, ServiceError
from core.fund_access import get_active_user
from core.security import decode_access_token
from core.subscription import check_subscription_access
from database.db_setup import SessionLocal
from database.models import Organization

NO_ACTIVE_FUND = "No active fund found"

_bearer = HTTPBearer(auto_error=False)


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> str:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Unauthorized")
    payload = decode_access_token(credentials.credentials)
    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Unauthorized")
    return user_id


def get_active_fund_id(x_fund_id: Optional[str] = Header(default=None)) -> str:
    if not x_fund_id:
        raise ServiceError(NO_ACTIVE_FUND)
    return x_fund_id


def require_subscription(user_id: str = Depends(get_current_user_id)) -> str:
    """Pass the user id through when their organization may use the app."""
    with SessionLocal() as session:
        user = get_active_user(session, user_id)
        if user.organization_id is None:
            return user_id
        org = session.get(Organization, user.organization_id)
        if org is None:
            return user_id
        access = check_subscription_access(org.subscription_status, org.trial_ends_at)
    if not access.allowed:
        raise PaymentRequiredError(access.reason or "Subscription required")
    return user_id
