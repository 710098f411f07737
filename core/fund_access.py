"""
Fund-level access control.

Every fund-scoped operation calls ``require_fund_access`` before touching data.
Platform admins bypass membership; everyone else needs an active FundMember row.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.errors import AccessDeniedError, AuthenticationError, NotFoundError
from core.permissions import ADMIN_ROLES, has_permission
from database.models import Fund, FundMember, User

ACCESS_DENIED = "Access denied: you do not have access to this fund"


def get_active_user(session: Session, user_id: str) -> User:
    user = session.get(User, user_id)
    if user is None or not user.is_active:
        raise AuthenticationError("Unauthorized")
    return user


def get_membership(session: Session, user_id: str, fund_id: str) -> Optional[FundMember]:
    return session.scalar(
        select(FundMember).where(FundMember.fund_id == fund_id, FundMember.user_id == user_id)
    )


def validate_organization_boundary(user_org_id: Optional[str], fund_org_id: Optional[str]) -> bool:
    """True unless both organizations are known and differ."""
    if user_org_id is None or fund_org_id is None:
        return True
    return user_org_id == fund_org_id


def require_fund_access(session: Session, user_id: str, fund_id: Optional[str]) -> Fund:
    """
    Return the fund if ``user_id`` may access it.

    Raises
    ------
    AccessDeniedError
        No active membership, or the fund belongs to another organization.
    NotFoundError
        The fund does not exist.
    """
    if not fund_id:
        raise AccessDeniedError(ACCESS_DENIED)
    user = get_active_user(session, user_id)
    fund = session.get(Fund, fund_id)
    if fund is None:
        raise NotFoundError("Fund not found")

    if user.role in ADMIN_ROLES:
        if not validate_organization_boundary(user.organization_id, fund.organization_id):
            raise AccessDeniedError(ACCESS_DENIED)
        return fund

    membership = get_membership(session, user_id, fund_id)
    if membership is None or not membership.is_active:
        raise AccessDeniedError(ACCESS_DENIED)
    return fund


def require_module_permission(session: Session, user_id: str, fund_id: str, module: str) -> Fund:
    """Fund access plus a module permission (DEALS, CAPITAL, ...)."""
    fund = require_fund_access(session, user_id, fund_id)
    user = session.get(User, user_id)
    membership = get_membership(session, user_id, fund_id)
    permissions = membership.permissions if membership else []
    if not has_permission(user.role, permissions, module):
        raise AccessDeniedError(f"Access denied: your role does not include {module.lower()} access")
    return fund
