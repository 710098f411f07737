"""
backend/routes/documents.py
---------------------------

Document metadata for deals and investors: registration, versions, LP
visibility and deletion. File bytes are uploaded to storage by the client;
only the resulting metadata is posted here.
"""

from __future__ import annotations

from typing import Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from backend.dependencies import get_active_fund_id, require_subscription
from database.documents import (
    delete_document,
    get_document_versions,
    list_documents,
    register_document,
    set_latest_version,
    toggle_document_visibility,
)

router = APIRouter(tags=["documents"])


class DocumentRequest(BaseModel):
    file_name: str
    file_size: Union[int, str]
    category: str
    name: Optional[str] = None
    file_type: Optional[str] = None
    file_url: Optional[str] = None
    deal_id: Optional[str] = None
    investor_id: Optional[str] = None
    parent_document_id: Optional[str] = None


@router.get("")
async def documents(
    deal_id: Optional[str] = None,
    investor_id: Optional[str] = None,
    include_old_versions: bool = False,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return list_documents(
        user_id, fund_id, deal_id=deal_id, investor_id=investor_id, include_old_versions=include_old_versions
    )


@router.post("", status_code=201)
async def new_document(
    request: DocumentRequest,
    user_id: str = Depends(require_subscription),
    fund_id: str = Depends(get_active_fund_id),
):
    return register_document(user_id, fund_id, request.model_dump(exclude_unset=True))


@router.get("/{document_id}/versions")
async def versions(document_id: str, user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return get_document_versions(user_id, fund_id, document_id)


@router.post("/{document_id}/latest")
async def make_latest(document_id: str, user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return set_latest_version(user_id, fund_id, document_id)


@router.post("/{document_id}/visibility")
async def visibility(document_id: str, user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return toggle_document_visibility(user_id, fund_id, document_id)


@router.delete("/{document_id}")
async def remove_document(document_id: str, user_id: str = Depends(require_subscription), fund_id: str = Depends(get_active_fund_id)):
    return delete_document(user_id, fund_id, document_id)
