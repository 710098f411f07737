"""
database/funds.py
-----------------

Fund listing, creation, configuration and team membership.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import select

from core.audit import CREATE, UPDATE, compute_changes, log_audit
from core.errors import AccessDeniedError, ConflictError, NotFoundError, ServiceError
from core.formatters import SUPPORTED_CURRENCIES, format_money, format_percentage, parse_money, parse_percent
from core.fund_access import get_active_user, get_membership, require_fund_access, require_module_permission
from core.permissions import (
    ADMIN_ROLES,
    FUND_MEMBER_ROLES,
    SETTINGS,
    TEAM,
    default_permissions_for,
    normalize_permissions,
)
from core.slugs import generate_slug, validate_slug
from database.db_setup import SessionLocal
from database.models import Fund, FundMember, Organization, User

logger = logging.getLogger(__name__)

FUND_STATUS_DISPLAY = {
    "RAISING": "Raising",
    "SEARCHING": "Searching",
    "UNDER_LOI": "Under LOI",
    "ACQUIRED": "Acquired",
    "OPERATING": "Operating",
    "PREPARING_EXIT": "Preparing Exit",
    "EXITED": "Exited",
    "DISSOLVED": "Dissolved",
    "CLOSED": "Closed",
}
_DISPLAY_TO_STATUS = {v: k for k, v in FUND_STATUS_DISPLAY.items()}

FUND_TYPES = (
    "TRADITIONAL_SEARCH_FUND",
    "SELF_FUNDED_SEARCH",
    "ACCELERATOR_FUND",
    "ACQUISITION_FUND",
    "PE_FUND",
    "HOLDING_COMPANY",
)


def _summary(fund: Fund) -> Dict[str, Any]:
    return {"id": fund.id, "name": fund.name, "slug": fund.slug, "currency": fund.currency, "status": fund.status}


# --------------------------------------------------------------------------- #
# Queries
# --------------------------------------------------------------------------- #

def get_user_funds(user_id: str) -> List[Dict[str, Any]]:
    """
    Funds the user can switch to.

    SUPER_ADMIN and FUND_ADMIN see every fund of their organization; other
    users see funds with an active membership.
    """
    with SessionLocal() as session:
        user = get_active_user(session, user_id)
        if user.role in ADMIN_ROLES:
            stmt = select(Fund).order_by(Fund.created_at.asc())
            if user.organization_id:
                stmt = stmt.where(Fund.organization_id == user.organization_id)
            return [_summary(f) for f in session.scalars(stmt).all()]

        funds = session.scalars(
            select(Fund)
            .join(FundMember, FundMember.fund_id == Fund.id)
            .where(FundMember.user_id == user_id, FundMember.is_active.is_(True))
            .order_by(FundMember.created_at.asc())
        ).all()
        return [_summary(f) for f in funds]


def get_fund(user_id: str, fund_id: str) -> Dict[str, Any]:
    with SessionLocal() as session:
        fund = require_fund_access(session, user_id, fund_id)
        return fund.as_dict()


def get_fund_currency(fund_id: str) -> str:
    with SessionLocal() as session:
        fund = session.get(Fund, fund_id)
        return fund.currency if fund else "USD"


def get_fund_config(user_id: str, fund_id: str) -> Dict[str, Any]:
    """Display-formatted fund terms for the settings screen."""
    with SessionLocal() as session:
        fund = require_fund_access(session, user_id, fund_id)
        return {
            "id": fund.id,
            "name": fund.name,
            "type": fund.type,
            "status": fund.status,
            "status_display": FUND_STATUS_DISPLAY.get(fund.status, fund.status),
            "vintage": fund.vintage,
            "currency": fund.currency,
            "target_size": format_money(fund.target_size, fund.currency),
            "management_fee": format_percentage(fund.management_fee),
            "carried_interest": format_percentage(fund.carried_interest),
            "hurdle_rate": format_percentage(fund.hurdle_rate),
            "strategy": fund.strategy,
        }


def resolve_tenant(slug: str) -> Optional[Dict[str, Any]]:
    """Map a tenant subdomain to its fund and organization."""
    with SessionLocal() as session:
        fund = session.scalar(select(Fund).where(Fund.slug == slug))
        if fund is None:
            return None
        org = session.get(Organization, fund.organization_id) if fund.organization_id else None
        return {
            "fund": _summary(fund),
            "organization": {"id": org.id, "name": org.name, "slug": org.slug} if org else None,
        }


# --------------------------------------------------------------------------- #
# Mutations
# --------------------------------------------------------------------------- #

def create_fund(user_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    """Create a fund in the caller's organization with the caller as PRINCIPAL."""
    name = str(data.get("name") or "").strip()
    if not name:
        raise ServiceError("Fund name is required")
    currency = str(data.get("currency") or "USD").upper()
    if currency not in SUPPORTED_CURRENCIES:
        raise ServiceError("Currency must be one of USD, EUR, GBP")
    fund_type = data.get("type") or "PE_FUND"
    if fund_type not in FUND_TYPES:
        raise ServiceError(f"Unknown fund type: {fund_type}")
    target_size = parse_money(data.get("target_size"))
    if target_size <= 0:
        raise ServiceError("Target size must be a positive number")

    slug = str(data.get("slug") or "").strip() or generate_slug(name)
    error = validate_slug(slug)
    if error:
        raise ServiceError(error)

    with SessionLocal() as session:
        user = get_active_user(session, user_id)
        if user.role not in ADMIN_ROLES:
            raise AccessDeniedError("Only fund administrators can create funds")
        if session.scalar(select(Fund.id).where(Fund.slug == slug)):
            raise ConflictError("This fund URL is already taken.")

        fund = Fund(
            organization_id=user.organization_id,
            name=name,
            slug=slug,
            type=fund_type,
            status="RAISING",
            target_size=target_size,
            currency=currency,
            vintage=int(data.get("vintage") or datetime.now().year),
            strategy=data.get("strategy"),
            management_fee=0.02,
            carried_interest=0.20,
        )
        session.add(fund)
        session.flush()
        session.add(
            FundMember(
                fund_id=fund.id,
                user_id=user_id,
                role="PRINCIPAL",
                permissions=default_permissions_for("PRINCIPAL"),
            )
        )
        session.commit()
        logger.info(f"[Funds] ✅ Created fund {fund.slug} ({fund.id})")

        log_audit(
            session,
            user_id=user_id,
            action=CREATE,
            entity_type="Fund",
            entity_id=fund.id,
            changes={
                "name": {"old": None, "new": name},
                "currency": {"old": None, "new": currency},
                "type": {"old": None, "new": fund_type},
                "target_size": {"old": None, "new": target_size},
            },
        )
        return fund.as_dict()


def _validate_rates(updates: Mapping[str, Any]) -> None:
    for key in ("management_fee", "hurdle_rate"):
        if key in updates and updates[key] < 0:
            raise ServiceError(f"{key.replace('_', ' ').capitalize()} cannot be negative")
    carry = updates.get("carried_interest")
    if carry is not None and not 0 <= carry < 1:
        raise ServiceError("Carried interest must be at least 0% and below 100%")
    catch_up = updates.get("catch_up_rate")
    if catch_up is not None and not 0 <= catch_up <= 1:
        raise ServiceError("Catch-up rate must be between 0% and 100%")


def update_fund_config(user_id: str, fund_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Update fund terms. Money fields accept "$1,000,000"; rate fields accept
    "2%", "2" or "0.02".
    """
    updates: Dict[str, Any] = {}
    if "name" in data and data["name"] is not None:
        name = str(data["name"]).strip()
        if not name:
            raise ServiceError("Fund name is required")
        updates["name"] = name
    if data.get("target_size") is not None:
        updates["target_size"] = parse_money(data["target_size"])
    for key in ("management_fee", "carried_interest", "hurdle_rate", "catch_up_rate"):
        if data.get(key) is not None and data[key] != "":
            updates[key] = parse_percent(data[key])
    _validate_rates(updates)
    if "strategy" in data:
        updates["strategy"] = data["strategy"] or None

    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, SETTINGS)
        old = {key: getattr(fund, key) for key in updates}
        for key, value in updates.items():
            setattr(fund, key, value)
        session.commit()

        log_audit(
            session,
            user_id=user_id,
            action=UPDATE,
            entity_type="Fund",
            entity_id=fund.id,
            changes=compute_changes(old, updates),
        )
        return fund.as_dict()


def update_fund_status(user_id: str, fund_id: str, status: str) -> Dict[str, Any]:
    """Accepts a status code (UNDER_LOI) or its display label ("Under LOI")."""
    db_status = _DISPLAY_TO_STATUS.get(status, status)
    if db_status not in FUND_STATUS_DISPLAY:
        raise ServiceError(f"Unknown fund status: {status}")

    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, SETTINGS)
        old_status = fund.status
        fund.status = db_status
        session.commit()

        log_audit(
            session,
            user_id=user_id,
            action=UPDATE,
            entity_type="Fund",
            entity_id=fund.id,
            changes={"status": {"old": old_status, "new": db_status}},
        )
        return fund.as_dict()


# --------------------------------------------------------------------------- #
# Team
# --------------------------------------------------------------------------- #

def list_fund_members(user_id: str, fund_id: str) -> List[Dict[str, Any]]:
    with SessionLocal() as session:
        require_fund_access(session, user_id, fund_id)
        rows = session.execute(
            select(FundMember, User)
            .join(User, User.id == FundMember.user_id)
            .where(FundMember.fund_id == fund_id)
            .order_by(FundMember.created_at.asc())
        ).all()
        return [
            {**member.as_dict(), "user": {"id": user.id, "name": user.name, "email": user.email}}
            for member, user in rows
        ]


def add_fund_member(user_id: str, fund_id: str, *, email: str, role: str = "ANALYST") -> Dict[str, Any]:
    """Grant an existing user of the same organization access to the fund."""
    if role not in FUND_MEMBER_ROLES:
        raise ServiceError(f"Unknown member role: {role}")

    with SessionLocal() as session:
        fund = require_module_permission(session, user_id, fund_id, TEAM)
        target = session.scalar(select(User).where(User.email == (email or "").strip().lower()))
        if target is None:
            raise NotFoundError("User not found")
        if fund.organization_id and target.organization_id != fund.organization_id:
            raise AccessDeniedError("User belongs to another organization")

        member = get_membership(session, target.id, fund_id)
        if member is not None and member.is_active:
            raise ConflictError("User is already a member of this fund")
        if member is None:
            member = FundMember(fund_id=fund_id, user_id=target.id)
            session.add(member)
        member.role = role
        member.permissions = default_permissions_for(role)
        member.is_active = True
        session.commit()

        log_audit(
            session,
            user_id=user_id,
            action=CREATE,
            entity_type="FundMember",
            entity_id=member.id,
            changes={"user_id": {"old": None, "new": target.id}, "role": {"old": None, "new": role}},
        )
        return member.as_dict()


def update_member_permissions(
    user_id: str,
    fund_id: str,
    member_id: str,
    *,
    role: Optional[str] = None,
    permissions: Optional[List[str]] = None,
    is_active: Optional[bool] = None,
) -> Dict[str, Any]:
    with SessionLocal() as session:
        require_module_permission(session, user_id, fund_id, TEAM)
        member = session.get(FundMember, member_id)
        if member is None or member.fund_id != fund_id:
            raise NotFoundError("Fund member not found")

        old = {"role": member.role, "permissions": list(member.permissions or []), "is_active": member.is_active}
        new: Dict[str, Any] = {}
        if role is not None:
            if role not in FUND_MEMBER_ROLES:
                raise ServiceError(f"Unknown member role: {role}")
            new["role"] = role
            if permissions is None:
                new["permissions"] = default_permissions_for(role)
        if permissions is not None:
            new["permissions"] = normalize_permissions(permissions)
        if is_active is not None:
            if member.user_id == user_id and not is_active:
                raise ServiceError("Cannot deactivate your own membership")
            new["is_active"] = is_active

        for key, value in new.items():
            setattr(member, key, value)
        session.commit()

        log_audit(
            session,
            user_id=user_id,
            action=UPDATE,
            entity_type="FundMember",
            entity_id=member.id,
            changes=compute_changes(old, new),
        )
        return member.as_dict()
