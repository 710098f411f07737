"""
backend/routes/portal.py
------------------------

LP portal: read-only views for accounts linked to an investor.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from backend.dependencies import require_subscription
from database.portal import get_portal_dashboard, get_portal_documents, get_portal_reports

router = APIRouter(tags=["portal"])


@router.get("/dashboard")
async def dashboard(user_id: str = Depends(require_subscription)):
    return get_portal_dashboard(user_id)


@router.get("/documents")
async def documents(user_id: str = Depends(require_subscription)):
    return get_portal_documents(user_id)


@router.get("/reports")
async def reports(user_id: str = Depends(require_subscription)):
    return get_portal_reports(user_id)
