import json
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile

from ..deps import Caller, get_brain_service, get_caller
from ..schemas import (
    DeleteResponse,
    DocumentListResponse,
    DocumentStatusName,
    DocumentStatusResponse,
    PurgeResponse,
    UploadResponse,
)
from ..services.brain import BrainService

router = APIRouter(prefix="/brain", tags=["brain"])


def _parse_tags(raw: Optional[str]) -> List[str]:
    # Tags arrive as a JSON array in a form field; anything else is ignored
    if not raw:
        return []
    try:
        tags = json.loads(raw)
    except ValueError:
        return []
    if not isinstance(tags, list):
        return []
    return [str(t) for t in tags if str(t).strip()]


@router.post("/documents", response_model=UploadResponse, status_code=201)
async def upload_document(
    file: UploadFile = File(...),
    contentLevel: Optional[str] = Form(None),
    targetPersona: Optional[str] = Form(None),
    teacherId: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),
    caller: Caller = Depends(get_caller),
    brain: BrainService = Depends(get_brain_service),
):
    if not file.filename:
        raise HTTPException(400, 'No file uploaded. Send a file with field name "file".')
    content_bytes = await file.read()
    return await brain.upload_document(
        content_bytes,
        file_name=file.filename,
        mime_type=file.content_type or "",
        organization=caller.organization,
        uploaded_by=caller.user_id,
        content_level=contentLevel,
        target_persona=targetPersona,
        teacher_id=teacherId,
        tags=_parse_tags(tags),
    )


@router.get("/documents", response_model=DocumentListResponse)
async def list_documents(
    includeDefaults: bool = Query(True),
    status: Optional[DocumentStatusName] = Query(None),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    caller: Caller = Depends(get_caller),
    brain: BrainService = Depends(get_brain_service),
):
    return await brain.list_documents(
        caller.organization,
        include_system_defaults=includeDefaults,
        status=status,
        page=page,
        limit=limit,
    )


@router.get("/documents/{document_id}/status", response_model=DocumentStatusResponse)
async def document_status(
    document_id: UUID,
    caller: Caller = Depends(get_caller),
    brain: BrainService = Depends(get_brain_service),
):
    return await brain.get_document_status(document_id, caller.organization)


@router.delete("/documents/{document_id}", response_model=DeleteResponse)
async def delete_document(
    document_id: UUID,
    caller: Caller = Depends(get_caller),
    brain: BrainService = Depends(get_brain_service),
):
    return await brain.delete_document(document_id, caller.organization, caller.role)


@router.post("/maintenance/purge-failed", response_model=PurgeResponse)
async def purge_failed(
    olderThanHours: Optional[int] = Query(None, ge=0),
    caller: Caller = Depends(get_caller),
    brain: BrainService = Depends(get_brain_service),
):
    if not caller.is_platform_operator:
        raise HTTPException(403, "Only platform operators can purge documents.")
    return await brain.purge_failed_documents(olderThanHours)
