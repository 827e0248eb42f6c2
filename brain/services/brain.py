"""Brain service: upload validation, listing, deletion and retrieval.

Results are plain dicts with camelCase keys, ready to be returned as JSON.
"""
import logging
import math
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from ..config import settings
from ..models import Document
from ..tenancy import SYSTEM_DEFAULT, TenantScope
from ..utils.text import title_from_filename
from .embedding import EmbeddingProvider
from .errors import (
    BrainValidationError,
    DocumentLimitError,
    DocumentNotFoundError,
    DuplicateDocumentError,
    EmptyQueryError,
    FileTooLargeError,
    NotAuthorizedError,
    UnsupportedFileTypeError,
)
from .extract import file_type_for, is_supported_type
from .ingestion import IngestionQueue
from .store import KnowledgeStore

logger = logging.getLogger(__name__)

MAX_TOP_K = 50


def document_summary(doc: Document) -> Dict[str, Any]:
    return {
        "id": doc.id,
        "title": doc.title,
        "fileName": doc.file_name,
        "fileType": doc.file_type,
        "fileSize": doc.file_size,
        "status": doc.status,
        "chunkCount": doc.chunk_count,
        "isSystemDefault": doc.organization_id == SYSTEM_DEFAULT.storage_key,
        "uploadedBy": doc.uploaded_by,
        "errorMessage": doc.error_message,
        "contentLevel": doc.content_level or "general",
        "targetPersona": doc.target_persona,
        "teacherId": doc.teacher_id,
        "tags": list(doc.tags or []),
        "createdAt": doc.created_at,
    }


class BrainService:

    def __init__(self, store: KnowledgeStore, provider: EmbeddingProvider, queue: IngestionQueue):
        self.store = store
        self.provider = provider
        self.queue = queue

    async def upload_document(
        self,
        content: bytes,
        file_name: str,
        mime_type: str,
        organization: TenantScope,
        uploaded_by: str,
        content_level: Optional[str] = None,
        target_persona: Optional[str] = None,
        teacher_id: Optional[str] = None,
        tags: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        if not is_supported_type(mime_type):
            raise UnsupportedFileTypeError(
                f"Unsupported file type: {mime_type}. Only PDF, DOCX, and TXT are accepted."
            )
        if len(content) > settings.MAX_FILE_SIZE:
            raise FileTooLargeError(
                f"File too large: {len(content) / 1024 / 1024:.1f}MB. "
                f"Maximum is {settings.MAX_FILE_SIZE // (1024 * 1024)}MB."
            )
        if await self.store.count_documents(organization) >= settings.MAX_DOCUMENTS_PER_ORG:
            raise DocumentLimitError(
                f"Document limit reached ({settings.MAX_DOCUMENTS_PER_ORG}). "
                "Delete old documents to upload new ones."
            )
        # fast path; the unique constraint in the store is the real guard
        if await self.store.find_by_file_name(organization, file_name) is not None:
            raise DuplicateDocumentError(
                f'A document named "{file_name}" already exists. Delete it first or use a different name.'
            )
        title = title_from_filename(file_name)
        doc = await self.store.create_document(
            organization,
            title=title,
            file_name=file_name,
            file_type=file_type_for(mime_type),
            file_size=len(content),
            uploaded_by=uploaded_by,
            content_level=(content_level or "general").strip(),
            target_persona=target_persona or None,
            teacher_id=teacher_id or None,
            tags=list(tags or []),
        )
        self.queue.submit(doc.id, content, mime_type)
        logger.info("Accepted %s (%d bytes) as document %s for %s", file_name, len(content), doc.id, organization.storage_key)
        return {"documentId": doc.id, "title": title, "status": "processing"}

    async def list_documents(
        self,
        organization: TenantScope,
        include_system_defaults: bool = True,
        status: Optional[str] = None,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        page = max(1, page or 1)
        limit = min(max(1, limit or settings.DEFAULT_PAGE_SIZE), settings.MAX_PAGE_SIZE)
        docs, total = await self.store.list_documents(
            organization,
            include_system_defaults=include_system_defaults,
            status=status,
            page=page,
            limit=limit,
        )
        return {
            "documents": [document_summary(d) for d in docs],
            "total": total,
            "page": page,
            "totalPages": math.ceil(total / limit),
        }

    async def get_document_status(self, document_id: uuid.UUID, organization: TenantScope) -> Dict[str, Any]:
        doc = await self.store.get_document(document_id)
        if doc is None or doc.organization_id not in (organization.storage_key, SYSTEM_DEFAULT.storage_key):
            raise DocumentNotFoundError("Document not found.")
        return {
            "id": doc.id,
            "status": doc.status,
            "chunkCount": doc.chunk_count,
            "errorMessage": doc.error_message,
        }

    async def delete_document(
        self,
        document_id: uuid.UUID,
        organization: TenantScope,
        caller_role: str,
    ) -> Dict[str, Any]:
        doc = await self.store.get_document(document_id)
        if doc is None:
            raise DocumentNotFoundError("Document not found.")

        if doc.organization_id == SYSTEM_DEFAULT.storage_key:
            if caller_role != settings.PLATFORM_OPERATOR_ROLE:
                raise NotAuthorizedError("Only platform operators can delete system default documents.")
        elif doc.organization_id != organization.storage_key:
            raise NotAuthorizedError("You do not have permission to delete this document.")

        self.queue.cancel(document_id)
        removed = await self.store.delete_document(document_id)
        logger.info("Deleted document %s (%d chunks)", document_id, removed)
        return {"deleted": True, "chunksRemoved": removed}

    async def query_brain(
        self,
        query: str,
        organization: TenantScope,
        top_k: int = 5,
        score_threshold: float = 0.3,
    ) -> Dict[str, Any]:
        if not query or not query.strip():
            raise EmptyQueryError("Query cannot be empty.")
        if not 1 <= top_k <= MAX_TOP_K:
            raise BrainValidationError(f"topK must be between 1 and {MAX_TOP_K}.")
        if not -1.0 <= score_threshold <= 1.0:
            raise BrainValidationError("scoreThreshold must be between -1 and 1.")

        vector = await self.provider.embed_query(query)
        hits = await self.store.similarity_search(vector, organization, top_k, score_threshold)
        docs = await self.store.get_documents([h.document_id for h in hits])

        results = []
        for h in hits:
            doc = docs.get(h.document_id)
            results.append({
                "chunkId": h.chunk_id,
                "content": h.content,
                "score": h.score,
                "documentId": h.document_id,
                "documentTitle": doc.title if doc else "Unknown Document",
                "chunkIndex": h.chunk_index,
                "metadata": h.metadata,
            })
        return {"results": results, "totalChunksSearched": len(hits)}

    async def purge_failed_documents(self, older_than_hours: Optional[int] = None) -> Dict[str, Any]:
        """Delete failed documents whose failure is older than the retention window."""
        hours = settings.FAILED_RETENTION_HOURS if older_than_hours is None else older_than_hours
        cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)
        purged = []
        for doc in await self.store.failed_documents_before(cutoff):
            await self.store.delete_document(doc.id)
            purged.append(doc.id)
        if purged:
            logger.info("Purged %d failed documents older than %dh", len(purged), hours)
        return {"purged": len(purged), "documentIds": purged}
