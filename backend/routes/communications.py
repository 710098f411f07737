"""
backend/routes/communications.py
--------------------------------

LP communication log per investor, and follow-up completion.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from backend.dependencies import get_active_fund_id, require_subscription
from database.communications import complete_follow_up, get_communication_history, log_communication

router = APIRouter(tags=["communications"])


class CommunicationRequest(BaseModel):
    type: str
    direction: str
    subject: Optional[str] = None
    content: Optional[str] = None
    contact_name: Optional[str] = None
    notes: Optional[str] = None
    follow_up_date: Optional[str] = None


@router.get("/investors/{investor_id}/communications")
async def communications(
    investor_id: str,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return get_communication_history(user_id, fund_id, investor_id)


@router.post("/investors/{investor_id}/communications", status_code=201)
async def new_communication(
    investor_id: str,
    request: CommunicationRequest,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return log_communication(user_id, fund_id, investor_id, request.model_dump(exclude_unset=True))


@router.post("/communications/{communication_id}/follow-up")
async def follow_up_done(
    communication_id: str,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return complete_follow_up(user_id, fund_id, communication_id)
