
from datetime import datetime
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

DocumentStatusName = Literal["processing", "ready", "failed"]

class UploadResponse(BaseModel):
    documentId: UUID
    title: str
    status: DocumentStatusName

class DocumentSummary(BaseModel):
    id: UUID
    title: str
    fileName: str
    fileType: str
    fileSize: int
    status: DocumentStatusName
    chunkCount: int
    isSystemDefault: bool
    uploadedBy: str
    errorMessage: Optional[str] = None
    contentLevel: str = "general"
    targetPersona: Optional[str] = None
    teacherId: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    createdAt: datetime

class DocumentListResponse(BaseModel):
    documents: List[DocumentSummary]
    total: int
    page: int
    totalPages: int

class DocumentStatusResponse(BaseModel):
    id: UUID
    status: DocumentStatusName
    chunkCount: int
    errorMessage: Optional[str] = None

class DeleteResponse(BaseModel):
    deleted: bool
    chunksRemoved: int

class QueryRequest(BaseModel):
    query: str
    topK: int = 5
    scoreThreshold: float = 0.3

class RetrievalResult(BaseModel):
    chunkId: UUID
    content: str
    score: float
    documentId: UUID
    documentTitle: str
    chunkIndex: int
    metadata: Dict[str, Any] = Field(default_factory=dict)

class QueryResponse(BaseModel):
    results: List[RetrievalResult]
    totalChunksSearched: int

class PurgeResponse(BaseModel):
    purged: int
    documentIds: List[UUID]
