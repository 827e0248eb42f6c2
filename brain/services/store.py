"""Knowledge store: documents, their chunks, and similarity search.

The embedding column is a pgvector ``vector`` on PostgreSQL, searched with the
``<=>`` cosine-distance operator through an HNSW index. Any other dialect keeps
vectors as JSON and ranks the scoped candidates in process, which is only meant
for tests and small corpora.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pgvector.sqlalchemy import Vector
from sqlalchemy import Float, delete, func, insert, literal, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import settings
from ..models import Chunk, Document, DocumentStatus
from ..tenancy import TenantScope, readable_keys
from ..utils.text import TextChunk
from .errors import DuplicateDocumentError
from .rag import rank_by_similarity

logger = logging.getLogger(__name__)


@dataclass
class SearchHit:
    chunk_id: uuid.UUID
    content: str
    score: float
    document_id: uuid.UUID
    chunk_index: int
    metadata: Dict[str, Any] = field(default_factory=dict)


class KnowledgeStore:

    def __init__(self, session_factory: async_sessionmaker, insert_batch_size: Optional[int] = None):
        self._session_factory = session_factory
        self.insert_batch_size = insert_batch_size or settings.INSERT_BATCH_SIZE

    # documents

    async def create_document(self, scope: TenantScope, **fields: Any) -> Document:
        doc = Document(organization_id=scope.storage_key, status=DocumentStatus.PROCESSING.value, **fields)
        async with self._session_factory() as session:
            session.add(doc)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise DuplicateDocumentError(
                    f'A document named "{fields.get("file_name")}" already exists. '
                    "Delete it first or use a different name."
                ) from e
        return doc

    async def get_document(self, document_id: uuid.UUID) -> Optional[Document]:
        async with self._session_factory() as session:
            return await session.get(Document, document_id)

    async def get_documents(self, document_ids: Sequence[uuid.UUID]) -> Dict[uuid.UUID, Document]:
        if not document_ids:
            return {}
        async with self._session_factory() as session:
            res = await session.execute(select(Document).where(Document.id.in_(set(document_ids))))
            return {d.id: d for d in res.scalars().all()}

    async def count_documents(self, scope: TenantScope) -> int:
        async with self._session_factory() as session:
            res = await session.execute(
                select(func.count()).select_from(Document).where(Document.organization_id == scope.storage_key)
            )
            return int(res.scalar_one())

    async def find_by_file_name(self, scope: TenantScope, file_name: str) -> Optional[Document]:
        async with self._session_factory() as session:
            res = await session.execute(
                select(Document).where(
                    Document.organization_id == scope.storage_key,
                    Document.file_name == file_name,
                )
            )
            return res.scalar_one_or_none()

    async def list_documents(
        self,
        scope: TenantScope,
        include_system_defaults: bool = True,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[List[Document], int]:
        conditions = [Document.organization_id.in_(readable_keys(scope, include_system_defaults))]
        if status:
            conditions.append(Document.status == status)

        async with self._session_factory() as session:
            total = (await session.execute(
                select(func.count()).select_from(Document).where(*conditions)
            )).scalar_one()
            res = await session.execute(
                select(Document)
                .where(*conditions)
                .order_by(Document.created_at.desc(), Document.id)
                .offset((page - 1) * limit)
                .limit(limit)
            )
            return list(res.scalars().all()), int(total)

    async def _set_terminal_status(self, document_id: uuid.UUID, values: Dict[str, Any]) -> bool:
        # Only processing rows move; terminal states are final and deleted rows stay deleted.
        async with self._session_factory() as session:
            res = await session.execute(
                update(Document)
                .where(Document.id == document_id, Document.status == DocumentStatus.PROCESSING.value)
                .values(**values)
            )
            await session.commit()
            return res.rowcount > 0

    async def mark_ready(self, document_id: uuid.UUID, chunk_count: int) -> bool:
        return await self._set_terminal_status(
            document_id, {"status": DocumentStatus.READY.value, "chunk_count": chunk_count, "error_message": None}
        )

    async def mark_failed(self, document_id: uuid.UUID, error_message: str) -> bool:
        return await self._set_terminal_status(
            document_id, {"status": DocumentStatus.FAILED.value, "chunk_count": 0, "error_message": error_message}
        )

    async def fail_processing_documents(self, error_message: str) -> int:
        """Mark every processing document failed and drop any partial chunks; returns documents changed."""
        processing = select(Document.id).where(Document.status == DocumentStatus.PROCESSING.value)
        async with self._session_factory() as session:
            await session.execute(delete(Chunk).where(Chunk.document_id.in_(processing)))
            res = await session.execute(
                update(Document)
                .where(Document.status == DocumentStatus.PROCESSING.value)
                .values(status=DocumentStatus.FAILED.value, chunk_count=0, error_message=error_message)
            )
            await session.commit()
            return res.rowcount or 0

    async def delete_document(self, document_id: uuid.UUID) -> int:
        """Delete a document and its chunks in one transaction; returns the chunk count removed."""
        async with self._session_factory() as session:
            res = await session.execute(delete(Chunk).where(Chunk.document_id == document_id))
            removed = res.rowcount or 0
            await session.execute(delete(Document).where(Document.id == document_id))
            await session.commit()
        return removed

    async def failed_documents_before(self, cutoff: datetime) -> List[Document]:
        async with self._session_factory() as session:
            res = await session.execute(
                select(Document).where(
                    Document.status == DocumentStatus.FAILED.value,
                    Document.updated_at < cutoff,
                )
            )
            return list(res.scalars().all())

    # chunks

    async def insert_chunks(
        self,
        document_id: uuid.UUID,
        chunks: Sequence[TextChunk],
        embeddings: Sequence[Sequence[float]],
    ) -> int:
        """Bulk insert chunks for a document, ``insert_batch_size`` rows per statement.

        The organization id is copied from the document row. Returns 0 without
        writing if the document no longer exists.
        """
        if len(chunks) != len(embeddings):
            raise ValueError(f"Expected {len(chunks)} embeddings, got {len(embeddings)}")
        if not chunks:
            return 0

        async with self._session_factory() as session:
            doc = await session.get(Document, document_id)
            if doc is None:
                logger.info("Document %s is gone, skipping chunk insert", document_id)
                return 0

            rows = [
                {
                    "id": uuid.uuid4(),
                    "document_id": document_id,
                    "organization_id": doc.organization_id,
                    "chunk_index": c.index,
                    "content": c.content,
                    "embedding": list(e),
                    "chunk_metadata": c.metadata,
                }
                for c, e in zip(chunks, embeddings)
            ]
            inserted = 0
            for i in range(0, len(rows), self.insert_batch_size):
                batch = rows[i:i + self.insert_batch_size]
                await session.execute(insert(Chunk), batch)
                inserted += len(batch)
            await session.commit()
        return inserted

    async def count_chunks(self, document_id: uuid.UUID) -> int:
        async with self._session_factory() as session:
            res = await session.execute(
                select(func.count()).select_from(Chunk).where(Chunk.document_id == document_id)
            )
            return int(res.scalar_one())

    async def list_chunks(self, document_id: uuid.UUID) -> List[Chunk]:
        async with self._session_factory() as session:
            res = await session.execute(
                select(Chunk).where(Chunk.document_id == document_id).order_by(Chunk.chunk_index)
            )
            return list(res.scalars().all())

    # search

    async def similarity_search(
        self,
        query_vector: Sequence[float],
        scope: TenantScope,
        top_k: int,
        score_threshold: float,
    ) -> List[SearchHit]:
        """Chunks of the caller's tenant and the system default, best cosine score first."""
        keys = readable_keys(scope, include_system_defaults=True)
        async with self._session_factory() as session:
            if session.get_bind().dialect.name == "postgresql":
                return await self._search_pgvector(session, query_vector, keys, top_k, score_threshold)
            return await self._search_scan(session, query_vector, keys, top_k, score_threshold)

    async def _search_pgvector(
        self,
        session: AsyncSession,
        query_vector: Sequence[float],
        keys: List[str],
        top_k: int,
        score_threshold: float,
    ) -> List[SearchHit]:
        q = literal([float(x) for x in query_vector], Vector(len(query_vector)))
        distance = Chunk.embedding.op("<=>", return_type=Float)(q)
        score = (1 - distance).label("score")
        res = await session.execute(
            select(Chunk.id, Chunk.content, score, Chunk.document_id, Chunk.chunk_index, Chunk.chunk_metadata)
            .where(
                Chunk.organization_id.in_(keys),
                Chunk.embedding.isnot(None),
                (1 - distance) >= score_threshold,
            )
            .order_by(distance)
            .limit(top_k)
        )
        return [
            SearchHit(
                chunk_id=r.id,
                content=r.content,
                score=float(r.score),
                document_id=r.document_id,
                chunk_index=r.chunk_index,
                metadata=r.chunk_metadata or {},
            )
            for r in res.all()
        ]

    async def _search_scan(
        self,
        session: AsyncSession,
        query_vector: Sequence[float],
        keys: List[str],
        top_k: int,
        score_threshold: float,
    ) -> List[SearchHit]:
        res = await session.execute(
            select(Chunk).where(Chunk.organization_id.in_(keys), Chunk.embedding.isnot(None))
        )
        rows = res.scalars().all()
        ranked = rank_by_similarity(query_vector, ((c, c.embedding) for c in rows), top_k, score_threshold)
        return [
            SearchHit(
                chunk_id=c.id,
                content=c.content,
                score=score,
                document_id=c.document_id,
                chunk_index=c.chunk_index,
                metadata=c.chunk_metadata or {},
            )
            for score, c in ranked
        ]
