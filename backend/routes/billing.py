"""
backend/routes/billing.py
-------------------------

Subscription status of the caller's organization.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from backend.dependencies import get_current_user_id
from core.fund_access import get_active_user
from core.subscription import check_subscription_access
from database.db_setup import SessionLocal
from database.models import Organization

router = APIRouter(tags=["billing"])


@router.get("/subscription")
async def subscription(user_id: str = Depends(get_current_user_id)):
    """Reachable without an active subscription so the client can show why access stopped."""
    with SessionLocal() as session:
        user = get_active_user(session, user_id)
        org = session.get(Organization, user.organization_id) if user.organization_id else None
        if org is None:
            return {"organization": None, "access": {"allowed": True, "reason": None, "days_remaining": None}}

        access = check_subscription_access(org.subscription_status, org.trial_ends_at)
        return {
            "organization": {"id": org.id, "name": org.name, "slug": org.slug},
            "subscription_status": org.subscription_status,
            "subscription_tier": org.subscription_tier,
            "trial_ends_at": org.trial_ends_at.isoformat() if org.trial_ends_at else None,
            "access": access.as_dict(),
        }
