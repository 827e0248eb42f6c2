"""Background ingestion: parse -> chunk -> embed -> store.

Uploads submit a job and return; a small pool of worker tasks drains an
``asyncio.Queue``. Each job runs in its own task so it can be cancelled by
document id (used when a document is deleted mid-ingestion). A job never
raises into its worker: every failure is logged and recorded on the document
as ``failed`` with a message.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..config import settings
from ..utils.text import chunk_text
from .embedding import EmbeddingProvider
from .extract import parse_document
from .store import KnowledgeStore

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Ingestion was interrupted before the document finished processing. Delete it and upload again."


class IngestionError(Exception):
    """Document content cannot be indexed (empty, unreadable, no chunks)"""
    pass


@dataclass
class IngestionJob:
    document_id: uuid.UUID
    content: bytes = field(repr=False)
    mime_type: str
    cancelled: bool = False
    task: Optional[asyncio.Task] = field(default=None, repr=False)


async def ingest_document(
    store: KnowledgeStore,
    provider: EmbeddingProvider,
    document_id: uuid.UUID,
    content: bytes,
    mime_type: str,
) -> int:
    """Run the pipeline for one document and mark it ready; returns chunks stored."""
    logger.info("Parsing document %s", document_id)
    text = await parse_document(content, mime_type)
    if not text or len(text) < settings.MIN_TEXT_LENGTH:
        raise IngestionError("Document is empty or too short to process.")

    logger.info("Chunking %d chars for document %s", len(text), document_id)
    chunks = chunk_text(text, chunk_size=settings.CHUNK_SIZE, chunk_overlap=settings.CHUNK_OVERLAP)
    if not chunks:
        raise IngestionError("No text chunks could be extracted from the document.")

    logger.info("Embedding %d chunks for document %s", len(chunks), document_id)
    embeddings = await provider.embed_documents([c.content for c in chunks])

    inserted = await store.insert_chunks(document_id, chunks, embeddings)
    if await store.mark_ready(document_id, inserted):
        logger.info("Document %s ready, %d chunks indexed", document_id, inserted)
    else:
        logger.info("Document %s was deleted during ingestion, result discarded", document_id)
    return inserted


class IngestionQueue:

    def __init__(self, store: KnowledgeStore, provider: EmbeddingProvider, workers: Optional[int] = None):
        self.store = store
        self.provider = provider
        self.workers = max(1, workers or settings.INGEST_WORKERS)
        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []
        self._jobs: Dict[uuid.UUID, IngestionJob] = {}
        self._stopping = False

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def start(self) -> None:
        if self.running:
            return
        self._queue = asyncio.Queue()
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"ingest-worker-{i}") for i in range(self.workers)
        ]
        logger.info("Ingestion queue started with %d workers", self.workers)

    async def stop(self) -> None:
        """Cancel every queued and running job and record those documents as failed."""
        self._stopping = True
        unfinished = [job.document_id for job in self._jobs.values() if not job.cancelled]
        for job in list(self._jobs.values()):
            job.cancelled = True
            if job.task is not None:
                job.task.cancel()
        for w in self._workers:
            w.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        self._queue = None
        self._jobs.clear()
        self._stopping = False
        if unfinished:
            logger.warning("Ingestion queue stopped with %d unfinished jobs", len(unfinished))
        for document_id in unfinished:
            try:
                await self.store.mark_failed(document_id, INTERRUPTED_MESSAGE)
            except Exception:
                logger.exception("Could not record interruption for document %s", document_id)

    async def recover_interrupted(self) -> int:
        """Fail documents left processing by a previous process; call before start()."""
        n = await self.store.fail_processing_documents(INTERRUPTED_MESSAGE)
        if n:
            logger.warning("Marked %d interrupted documents as failed", n)
        return n

    def submit(self, document_id: uuid.UUID, content: bytes, mime_type: str) -> IngestionJob:
        if not self.running:
            self.start()
        job = IngestionJob(document_id=document_id, content=content, mime_type=mime_type)
        self._jobs[document_id] = job
        self._queue.put_nowait(job)
        return job

    def pending(self) -> int:
        return len(self._jobs)

    def cancel(self, document_id: uuid.UUID) -> bool:
        """Cancel a queued or running job; False if none is in flight."""
        job = self._jobs.get(document_id)
        if job is None:
            return False
        job.cancelled = True
        if job.task is not None:
            job.task.cancel()
        logger.info("Cancelled ingestion of document %s", document_id)
        return True

    async def join(self) -> None:
        """Wait until every submitted job has finished."""
        if self._queue is not None:
            await self._queue.join()

    async def _worker(self, n: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                if job.cancelled:
                    continue
                job.task = asyncio.create_task(self._run(job))
                try:
                    await job.task
                except asyncio.CancelledError:
                    if self._stopping or not job.cancelled:
                        raise
            finally:
                self._jobs.pop(job.document_id, None)
                self._queue.task_done()

    async def _run(self, job: IngestionJob) -> None:
        try:
            await ingest_document(self.store, self.provider, job.document_id, job.content, job.mime_type)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.exception("Document %s processing failed: %s", job.document_id, message)
            try:
                await self.store.mark_failed(job.document_id, message)
            except Exception:
                logger.exception("Could not record failure for document %s", job.document_id)
