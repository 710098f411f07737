"""
database/onboarding.py
----------------------

Self-service registration, login and account management.

Registration creates Organization + User + Fund + FundMember in one
transaction; audit entries follow once the transaction has committed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Mapping, Optional

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from core.audit import CREATE, UPDATE, log_audit
from core.config import TRIAL_DAYS
from core.errors import AuthenticationError, ConflictError, RateLimitError, ServiceError
from core.fund_access import get_active_user
from core.formatters import SUPPORTED_CURRENCIES
from core.permissions import DEFAULT_PERMISSIONS
from core.rate_limit import rate_limit
from core.security import create_access_token, hash_password, verify_password
from core.slugs import generate_slug, validate_slug
from database.db_setup import SessionLocal, utcnow
from database.models import Fund, FundMember, Organization, User

logger = logging.getLogger(__name__)

VEHICLE_TYPES = ("SEARCH_FUND", "PE_FUND")

FUND_TYPES = (
    "TRADITIONAL_SEARCH_FUND",
    "SELF_FUNDED_SEARCH",
    "ACCELERATOR_FUND",
    "ACQUISITION_FUND",
    "PE_FUND",
    "HOLDING_COMPANY",
)

ENTITY_TYPES = ("LLC", "LP", "C_CORP", "S_CORP", "SICAV", "LTD", "SARL", "OTHER")

TOO_MANY_ATTEMPTS = "Too many attempts. Please try again in a few minutes."


# --------------------------------------------------------------------------- #
# Validation
# --------------------------------------------------------------------------- #

def _text(data: Mapping[str, Any], key: str) -> str:
    return str(data.get(key) or "").strip()


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def _check_email(email: str) -> None:
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        raise ServiceError("Please enter a valid email address") from None


def validate_onboarding(data: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Validate a registration payload and resolve derived fields.

    Returns a cleaned dict; raises ServiceError with the first failing rule.
    """
    vehicle_type = _text(data, "vehicle_type").upper()
    if vehicle_type not in VEHICLE_TYPES:
        raise ServiceError("Vehicle type must be SEARCH_FUND or PE_FUND")
    is_search_fund = vehicle_type == "SEARCH_FUND"

    firm_name = _text(data, "firm_name")
    if len(firm_name) < 2:
        label = "Fund name" if is_search_fund else "Firm name"
        raise ServiceError(f"{label} must be at least 2 characters")

    org_slug = _text(data, "org_slug") or generate_slug(firm_name)
    fund_name = firm_name if is_search_fund else (_text(data, "fund_name") or firm_name)
    fund_slug = org_slug if is_search_fund else (_text(data, "fund_slug") or org_slug)

    if not is_search_fund and len(fund_name) < 2:
        raise ServiceError("Fund name must be at least 2 characters")

    fund_type = "TRADITIONAL_SEARCH_FUND" if is_search_fund else (_text(data, "fund_type") or "PE_FUND")
    if fund_type not in FUND_TYPES:
        raise ServiceError(f"Unknown fund type: {fund_type}")

    try:
        target_size = float(data.get("target_size") or 0)
    except (TypeError, ValueError):
        target_size = 0.0
    if target_size < 1000:
        raise ServiceError("Target size must be at least 1,000")

    currency = (_text(data, "currency") or "USD").upper()
    if currency not in SUPPORTED_CURRENCIES:
        raise ServiceError("Currency must be one of USD, EUR, GBP")

    vintage = data.get("vintage")
    if is_search_fund or not vintage:
        vintage = datetime.now().year
    vintage = int(vintage)
    if not 2000 <= vintage <= 2100:
        raise ServiceError("Vintage must be between 2000 and 2100")

    user_name = _text(data, "user_name")
    if len(user_name) < 2:
        raise ServiceError("Name must be at least 2 characters")

    email = normalize_email(_text(data, "user_email"))
    _check_email(email)

    password = str(data.get("password") or "")
    if len(password) < 8:
        raise ServiceError("Password must be at least 8 characters")
    if password != str(data.get("confirm_password") or ""):
        raise ServiceError("Passwords do not match")

    entity_type = _text(data, "entity_type").upper()
    if entity_type not in ENTITY_TYPES:
        entity_type = "LLC" if is_search_fund else None

    return {
        "vehicle_type": vehicle_type,
        "is_search_fund": is_search_fund,
        "firm_name": firm_name,
        "org_slug": org_slug,
        "legal_name": _text(data, "legal_name") or (firm_name if is_search_fund else None),
        "entity_type": entity_type,
        "jurisdiction": _text(data, "jurisdiction") or None,
        "fund_name": fund_name,
        "fund_slug": fund_slug,
        "fund_type": fund_type,
        "target_size": target_size,
        "currency": currency,
        "vintage": vintage,
        "strategy": _text(data, "strategy") or None,
        "user_name": user_name,
        "email": email,
        "password": password,
    }


# --------------------------------------------------------------------------- #
# Registration
# --------------------------------------------------------------------------- #

def _session_payload(user: User, fund: Optional[Fund] = None) -> Dict[str, Any]:
    payload = {
        "access_token": create_access_token(user.id, user.role, user.organization_id),
        "token_type": "bearer",
        "user": user.as_dict(),
    }
    if fund is not None:
        payload["fund"] = fund.as_dict()
    return payload


def register_with_onboarding(data: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Create an organization, its first fund and the principal's account.

    Returns
    -------
    dict
        access_token, token_type, user, fund, organization.
    """
    clean = validate_onboarding(data)

    rl = rate_limit(f"register:{clean['email']}", 5, 300)
    if not rl.success:
        raise RateLimitError(TOO_MANY_ATTEMPTS, retry_after=rl.retry_after())

    error = validate_slug(clean["org_slug"])
    if error:
        raise ServiceError(error)
    if clean["fund_slug"] != clean["org_slug"]:
        error = validate_slug(clean["fund_slug"])
        if error:
            raise ServiceError(error)

    with SessionLocal() as session:
        if session.scalar(select(User.id).where(User.email == clean["email"])):
            raise ConflictError("An account with this email already exists.")
        if session.scalar(select(Organization.id).where(Organization.slug == clean["org_slug"])):
            raise ConflictError("This firm URL is already taken.")
        if session.scalar(select(Fund.id).where(Fund.slug == clean["fund_slug"])):
            raise ConflictError("This fund URL is already taken.")

        org = Organization(
            name=clean["firm_name"],
            slug=clean["org_slug"],
            type="SEARCH_FUND" if clean["is_search_fund"] else "MID_PE",
            legal_name=clean["legal_name"],
            entity_type=clean["entity_type"],
            jurisdiction=clean["jurisdiction"],
            subscription_status="TRIALING",
            trial_ends_at=utcnow() + timedelta(days=TRIAL_DAYS),
        )
        session.add(org)
        session.flush()

        user = User(
            email=clean["email"],
            name=clean["user_name"],
            password_hash=hash_password(clean["password"]),
            role="SUPER_ADMIN",
            organization_id=org.id,
            is_active=True,
        )
        fund = Fund(
            organization_id=org.id,
            name=clean["fund_name"],
            slug=clean["fund_slug"],
            type=clean["fund_type"],
            status="RAISING",
            target_size=clean["target_size"],
            currency=clean["currency"],
            vintage=clean["vintage"],
            strategy=clean["strategy"],
            management_fee=0.02,
            carried_interest=0.20,
            hurdle_rate=0.08 if clean["is_search_fund"] else None,
        )
        session.add_all([user, fund])
        session.flush()

        session.add(
            FundMember(
                fund_id=fund.id,
                user_id=user.id,
                role="PRINCIPAL",
                permissions=list(DEFAULT_PERMISSIONS["PRINCIPAL"]),
                is_active=True,
            )
        )
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise ConflictError("This email or URL was just taken. Please try again.") from None

        logger.info(f"[Onboarding] ✅ Registered {clean['email']} → org={org.slug}, fund={fund.slug}")

        log_audit(
            session,
            user_id=user.id,
            action=CREATE,
            entity_type="Organization",
            entity_id=org.id,
            changes={"name": {"old": None, "new": org.name}, "slug": {"old": None, "new": org.slug}},
        )
        log_audit(
            session,
            user_id=user.id,
            action=CREATE,
            entity_type="User",
            entity_id=user.id,
            changes={
                "source": {"old": None, "new": "onboarding"},
                "vehicle_type": {"old": None, "new": clean["vehicle_type"]},
            },
        )
        log_audit(
            session,
            user_id=user.id,
            action=CREATE,
            entity_type="Fund",
            entity_id=fund.id,
            changes={
                "name": {"old": None, "new": fund.name},
                "slug": {"old": None, "new": fund.slug},
                "type": {"old": None, "new": fund.type},
            },
        )

        payload = _session_payload(user, fund)
        payload["organization"] = org.as_dict()
        return payload


# --------------------------------------------------------------------------- #
# Login & account
# --------------------------------------------------------------------------- #

def login(email: str, password: str) -> Dict[str, Any]:
    """Verify credentials and issue a session token."""
    email = normalize_email(email)
    rl = rate_limit(f"login:{email}", 10, 60)
    if not rl.success:
        raise RateLimitError(TOO_MANY_ATTEMPTS, retry_after=rl.retry_after())

    with SessionLocal() as session:
        user = session.scalar(select(User).where(User.email == email))
        if user is None or not verify_password(password or "", user.password_hash):
            logger.info(f"[Auth] Failed login for {email}")
            raise AuthenticationError("Invalid email or password")
        if not user.is_active:
            raise AuthenticationError("This account has been deactivated")

        user.last_login_at = utcnow()
        session.commit()
        return _session_payload(user)


def get_me(user_id: str) -> Dict[str, Any]:
    """Current user with organization and active fund memberships."""
    with SessionLocal() as session:
        user = get_active_user(session, user_id)
        memberships = session.scalars(
            select(FundMember).where(FundMember.user_id == user.id, FundMember.is_active.is_(True))
        ).all()
        org = session.get(Organization, user.organization_id) if user.organization_id else None
        return {
            "user": user.as_dict(),
            "organization": org.as_dict() if org else None,
            "memberships": [
                {"fund_id": m.fund_id, "role": m.role, "permissions": list(m.permissions or [])}
                for m in memberships
            ],
        }


def change_password(user_id: str, current_password: str, new_password: str) -> Dict[str, Any]:
    if len(new_password or "") < 8:
        raise ServiceError("Password must be at least 8 characters")

    with SessionLocal() as session:
        user = get_active_user(session, user_id)
        if not verify_password(current_password or "", user.password_hash):
            raise ServiceError("Current password is incorrect")
        user.password_hash = hash_password(new_password)
        session.commit()

        log_audit(
            session,
            user_id=user.id,
            action=UPDATE,
            entity_type="User",
            entity_id=user.id,
            changes={"password": {"old": None, "new": "changed"}},
        )
        return {"success": True}
