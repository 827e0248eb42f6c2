"""Tests for the background ingestion queue."""
import asyncio

import pytest

from brain.services.brain import BrainService
from brain.services.ingestion import INTERRUPTED_MESSAGE, IngestionError, IngestionQueue, ingest_document
from brain.tenancy import Tenant
from brain.utils.text import chunk_text

ORG = Tenant("org-a")
TEXT = b"Fractions describe parts of a whole. A half is one of two equal parts."


async def _create(store, name="fractions.txt"):
    return await store.create_document(
        ORG, title="fractions", file_name=name, file_type="txt", file_size=len(TEXT), uploaded_by="u1"
    )


@pytest.mark.asyncio
async def test_ingest_document_marks_ready(store, provider):
    """The pipeline stores chunks and marks the document ready."""
    doc = await _create(store)
    n = await ingest_document(store, provider, doc.id, TEXT, "text/plain")
    assert n == 1
    fetched = await store.get_document(doc.id)
    assert fetched.status == "ready"
    assert fetched.chunk_count == 1


@pytest.mark.asyncio
async def test_ingest_document_rejects_short_text(store, provider):
    """Too little text raises before anything is embedded."""
    doc = await _create(store)
    with pytest.raises(IngestionError):
        await ingest_document(store, provider, doc.id, b"   ", "text/plain")
    assert provider.calls == 0


@pytest.mark.asyncio
async def test_parse_error_marks_failed(store, provider):
    """A document the parser cannot read ends failed instead of crashing the worker."""
    queue = IngestionQueue(store, provider, workers=1)
    doc = await _create(store, "broken.docx")
    queue.submit(doc.id, b"not a zip archive", "application/vnd.openxmlformats-officedocument.wordprocessingml.document")
    await queue.join()
    fetched = await store.get_document(doc.id)
    assert fetched.status == "failed"
    assert fetched.error_message
    assert queue.running
    await queue.stop()


@pytest.mark.asyncio
async def test_submit_starts_workers_lazily(store, provider):
    """Submitting to a stopped queue starts it."""
    queue = IngestionQueue(store, provider, workers=3)
    assert not queue.running
    doc = await _create(store)
    queue.submit(doc.id, TEXT, "text/plain")
    assert queue.running
    assert queue.pending() == 1
    await queue.join()
    assert queue.pending() == 0
    await queue.stop()
    assert not queue.running


@pytest.mark.asyncio
async def test_cancel_unknown_job(store, provider):
    """Cancelling a document with no job in flight reports False."""
    queue = IngestionQueue(store, provider)
    doc = await _create(store)
    assert queue.cancel(doc.id) is False


@pytest.mark.asyncio
async def test_delete_during_ingestion_cancels_job(store, blocking_provider):
    """Deleting a document mid-embedding stops its job and leaves no chunks."""
    provider = blocking_provider
    queue = IngestionQueue(store, provider, workers=1)
    brain = BrainService(store, provider, queue)

    res = await brain.upload_document(TEXT, "fractions.txt", "text/plain", ORG, "u1")
    await asyncio.wait_for(provider.started.wait(), timeout=5)

    out = await brain.delete_document(res["documentId"], ORG, "teacher")
    assert out == {"deleted": True, "chunksRemoved": 0}
    await asyncio.wait_for(queue.join(), timeout=5)

    assert queue.pending() == 0
    assert queue.running
    assert await store.get_document(res["documentId"]) is None
    assert await store.count_chunks(res["documentId"]) == 0
    await queue.stop()


@pytest.mark.asyncio
async def test_cancel_before_start_skips_job(store, blocking_provider):
    """A job cancelled while still queued never runs."""
    blocker = blocking_provider
    queue = IngestionQueue(store, blocker, workers=1)
    first = await _create(store, "first.txt")
    second = await _create(store, "second.txt")

    queue.submit(first.id, TEXT, "text/plain")
    queue.submit(second.id, TEXT, "text/plain")
    await asyncio.wait_for(blocker.started.wait(), timeout=5)
    assert queue.cancel(second.id) is True

    blocker.release.set()
    await asyncio.wait_for(queue.join(), timeout=5)
    assert (await store.get_document(first.id)).status == "ready"
    assert (await store.get_document(second.id)).status == "processing"
    await queue.stop()


@pytest.mark.asyncio
async def test_stop_fails_running_and_queued_jobs(store, blocking_provider):
    """Stopping the queue cancels in-flight work and leaves no document processing."""
    queue = IngestionQueue(store, blocking_provider, workers=1)
    running = await _create(store, "running.txt")
    waiting = await _create(store, "waiting.txt")
    queue.submit(running.id, TEXT, "text/plain")
    queue.submit(waiting.id, TEXT, "text/plain")
    await asyncio.wait_for(blocking_provider.started.wait(), timeout=5)

    await asyncio.wait_for(queue.stop(), timeout=5)
    assert not queue.running
    assert queue.pending() == 0
    for doc_id in (running.id, waiting.id):
        fetched = await store.get_document(doc_id)
        assert fetched.status == "failed"
        assert fetched.error_message == INTERRUPTED_MESSAGE
        assert await store.count_chunks(doc_id) == 0

    restarted = IngestionQueue(store, blocking_provider, workers=1)
    assert await restarted.recover_interrupted() == 0


@pytest.mark.asyncio
async def test_recover_interrupted_fails_stale_processing(store, provider):
    """Documents left processing by a previous process are failed and stripped of partial chunks."""
    stale = await _create(store, "stale.txt")
    done = await _create(store, "done.txt")
    await ingest_document(store, provider, done.id, TEXT, "text/plain")
    partial = chunk_text(TEXT.decode(), chunk_size=100, chunk_overlap=0)
    await store.insert_chunks(stale.id, partial, await provider.embed_documents([c.content for c in partial]))

    queue = IngestionQueue(store, provider)
    assert await queue.recover_interrupted() == 1

    fetched = await store.get_document(stale.id)
    assert fetched.status == "failed"
    assert fetched.chunk_count == 0
    assert fetched.error_message == INTERRUPTED_MESSAGE
    assert await store.count_chunks(stale.id) == 0
    assert (await store.get_document(done.id)).status == "ready"
    assert await store.count_chunks(done.id) == 1
    assert not queue.running
