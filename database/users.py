"""
database/users.py
-----------------

Platform user administration for an organization.

Only SUPER_ADMIN and FUND_ADMIN accounts may manage users, and only users of
their own organization. Users are never removed: deleting deactivates the
account. LP portal accounts are ordinary users linked to an ``Investor``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from core.audit import CREATE, DELETE, UPDATE, compute_changes, log_audit
from core.errors import AccessDeniedError, ConflictError, NotFoundError, ServiceError
from core.fund_access import get_active_user
from core.permissions import ADMIN_ROLES
from core.security import hash_password
from core.soft_delete import not_deleted
from database.db_setup import SessionLocal
from database.models import Investor, User
from database.onboarding import _check_email, normalize_email

logger = logging.getLogger(__name__)

USER_ROLE_DISPLAY = {
    "SUPER_ADMIN": "Super Admin",
    "FUND_ADMIN": "Fund Admin",
    "INVESTMENT_MANAGER": "Investment Manager",
    "ANALYST": "Analyst",
    "LP_PRIMARY": "LP Primary",
    "LP_VIEWER": "LP Viewer",
    "AUDITOR": "Auditor",
}

LP_ROLES = ("LP_PRIMARY", "LP_VIEWER")

MIN_PASSWORD_LENGTH = 8
EMAIL_TAKEN = "A user with this email already exists"


def _require_admin(session, user_id: str) -> User:
    admin = get_active_user(session, user_id)
    if admin.role not in ADMIN_ROLES:
        raise AccessDeniedError("Access denied: admin role required")
    return admin


def _load_user(session, admin: User, target_id: str) -> User:
    target = session.get(User, target_id)
    if target is None or target.organization_id != admin.organization_id:
        raise NotFoundError("User not found")
    return target


def _check_role(admin: User, role: str) -> str:
    role = (role or "").strip().upper()
    if role not in USER_ROLE_DISPLAY:
        raise ServiceError("Invalid role")
    if role == "SUPER_ADMIN" and admin.role != "SUPER_ADMIN":
        raise AccessDeniedError("Only a super admin can grant the super admin role")
    return role


def _check_password(password: str) -> str:
    password = password or ""
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ServiceError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return password


def _link_investor(session, admin: User, investor_id: str, exclude_user_id: Optional[str] = None) -> Investor:
    investor = session.scalar(
        select(Investor).where(
            Investor.id == investor_id,
            Investor.organization_id == admin.organization_id,
            not_deleted(Investor),
        )
    )
    if investor is None:
        raise NotFoundError("Investor not found")
    linked = session.scalar(select(User.id).where(User.investor_id == investor.id))
    if linked and linked != exclude_user_id:
        raise ConflictError("This investor already has a portal account")
    return investor


def _serialize(user: User, investor_names: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    data = user.as_dict()
    data["role_display"] = USER_ROLE_DISPLAY.get(user.role, user.role)
    data["investor_name"] = (investor_names or {}).get(user.investor_id)
    return data


# --------------------------------------------------------------------------- #
# Queries
# --------------------------------------------------------------------------- #

def list_users(user_id: str) -> List[Dict[str, Any]]:
    with SessionLocal() as session:
        admin = _require_admin(session, user_id)
        users = session.scalars(
            select(User).where(User.organization_id == admin.organization_id).order_by(User.created_at.desc())
        ).all()
        linked = [u.investor_id for u in users if u.investor_id]
        names = (
            dict(session.execute(select(Investor.id, Investor.name).where(Investor.id.in_(linked))).all())
            if linked
            else {}
        )
        return [_serialize(u, names) for u in users]


def list_investors_for_linking(user_id: str) -> List[Dict[str, Any]]:
    """Investors of the organization that have no portal account yet."""
    with SessionLocal() as session:
        admin = _require_admin(session, user_id)
        linked = select(User.investor_id).where(User.investor_id.is_not(None))
        rows = session.execute(
            select(Investor.id, Investor.name, Investor.email)
            .where(
                Investor.organization_id == admin.organization_id,
                not_deleted(Investor),
                Investor.id.not_in(linked),
            )
            .order_by(Investor.name)
        ).all()
        return [{"id": iid, "name": name, "email": email} for iid, name, email in rows]


# --------------------------------------------------------------------------- #
# Mutations
# --------------------------------------------------------------------------- #

def create_user(user_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    """Create an account in the admin's organization, optionally linked to an investor."""
    name = str(data.get("name") or "").strip()
    if len(name) < 2:
        raise ServiceError("Name must be at least 2 characters")
    email = normalize_email(str(data.get("email") or ""))
    _check_email(email)
    password = _check_password(str(data.get("password") or ""))

    with SessionLocal() as session:
        admin = _require_admin(session, user_id)
        role = _check_role(admin, str(data.get("role") or "ANALYST"))
        if session.scalar(select(User.id).where(User.email == email)):
            raise ConflictError(EMAIL_TAKEN)
        investor = _link_investor(session, admin, data["investor_id"]) if data.get("investor_id") else None

        user = User(
            name=name,
            email=email,
            password_hash=hash_password(password),
            role=role,
            organization_id=admin.organization_id,
            investor_id=investor.id if investor else None,
            is_active=True,
        )
        session.add(user)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise ConflictError(EMAIL_TAKEN) from None
        logger.info(f"[Users] ✅ Created {email} ({role})")

        log_audit(
            session,
            user_id=user_id,
            action=CREATE,
            entity_type="User",
            entity_id=user.id,
            changes={"email": {"old": None, "new": email}, "role": {"old": None, "new": role}},
        )
        return _serialize(user, {investor.id: investor.name} if investor else None)


def update_user(user_id: str, target_id: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    with SessionLocal() as session:
        admin = _require_admin(session, user_id)
        target = _load_user(session, admin, target_id)

        new: Dict[str, Any] = {}
        if data.get("name") is not None:
            name = str(data["name"]).strip()
            if len(name) < 2:
                raise ServiceError("Name must be at least 2 characters")
            new["name"] = name
        if data.get("email") is not None:
            email = normalize_email(str(data["email"]))
            _check_email(email)
            if email != target.email and session.scalar(select(User.id).where(User.email == email)):
                raise ConflictError(EMAIL_TAKEN)
            new["email"] = email
        if data.get("role") is not None:
            if target.id == user_id:
                raise ServiceError("Cannot change your own role")
            new["role"] = _check_role(admin, str(data["role"]))
        if "investor_id" in data:
            new["investor_id"] = (
                _link_investor(session, admin, data["investor_id"], exclude_user_id=target.id).id
                if data["investor_id"]
                else None
            )

        changes = compute_changes({key: getattr(target, key) for key in new}, new)
        if not changes:
            return _serialize(target)
        for key in changes:
            setattr(target, key, new[key])
        session.commit()

        log_audit(session, user_id=user_id, action=UPDATE, entity_type="User", entity_id=target.id, changes=changes)
        return _serialize(target)


def toggle_user_status(user_id: str, target_id: str) -> Dict[str, Any]:
    with SessionLocal() as session:
        admin = _require_admin(session, user_id)
        target = _load_user(session, admin, target_id)
        if target.id == user_id:
            raise ServiceError("Cannot change your own account status")
        old = target.is_active
        target.is_active = not old
        session.commit()

        log_audit(
            session,
            user_id=user_id,
            action=UPDATE,
            entity_type="User",
            entity_id=target.id,
            changes={"is_active": {"old": old, "new": target.is_active}},
        )
        return {"success": True, "is_active": target.is_active}


def reset_user_password(user_id: str, target_id: str, new_password: str) -> Dict[str, Any]:
    password = _check_password(new_password)
    with SessionLocal() as session:
        admin = _require_admin(session, user_id)
        target = _load_user(session, admin, target_id)
        target.password_hash = hash_password(password)
        session.commit()

        log_audit(
            session,
            user_id=user_id,
            action=UPDATE,
            entity_type="User",
            entity_id=target.id,
            changes={"password": {"old": "[redacted]", "new": "[reset]"}},
        )
        return {"success": True}


def delete_user(user_id: str, target_id: str) -> Dict[str, Any]:
    """Deactivate the account; the row stays for the audit trail."""
    with SessionLocal() as session:
        admin = _require_admin(session, user_id)
        target = _load_user(session, admin, target_id)
        if target.id == user_id:
            raise ServiceError("Cannot delete your own account")
        target.is_active = False
        session.commit()

        log_audit(session, user_id=user_id, action=DELETE, entity_type="User", entity_id=target.id)
        return {"success": True}
