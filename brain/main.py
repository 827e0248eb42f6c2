import logging
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from .config import settings
from .db import SKIP_DB, dispose_engine, get_engine, get_session_local, init_db
from .routers import documents, query
from .services.brain import BrainService
from .services.embedding import EmbeddingConfigurationError, build_provider
from .services.errors import BrainError
from .services.ingestion import IngestionQueue
from .services.store import KnowledgeStore

_brain_log = logging.getLogger("brain")
_brain_log.setLevel(settings.LOG_LEVEL.upper())
if not _brain_log.handlers:
    _h = logging.StreamHandler(sys.stderr)
    _h.setFormatter(logging.Formatter("%(levelname)s: %(name)s: %(message)s"))
    _brain_log.addHandler(_h)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.brain = None
    app.state.brain_unavailable = None
    queue = None

    if SKIP_DB:
        logger.warning("SKIP_DB is set, knowledge endpoints are disabled")
        app.state.brain_unavailable = "Database is disabled."
    else:
        try:
            provider = build_provider()
        except EmbeddingConfigurationError as e:
            # keep serving /health so the misconfiguration is visible, not a crash loop
            logger.error("Embedding provider not configured: %s", e)
            app.state.brain_unavailable = "Embedding provider is not configured."
        else:
            await init_db(get_engine())
            store = KnowledgeStore(get_session_local())
            queue = IngestionQueue(store, provider)
            # jobs live in memory, so anything still processing was lost with the previous process
            await queue.recover_interrupted()
            queue.start()
            app.state.brain = BrainService(store, provider, queue)
            logger.info("Brain ready (provider=%s, dim=%d)", settings.EMBEDDING_PROVIDER, settings.EMBED_DIM)

    yield

    if queue is not None:
        await queue.stop()
    await dispose_engine()


app = FastAPI(title="Knowledge Brain", version="0.2.0", lifespan=lifespan)
app.add_middleware(CORSMiddleware,
    allow_origins=[o.strip() for o in settings.ALLOWED_ORIGINS.split(",")],
    allow_credentials=True, allow_methods=["*"], allow_headers=["*"])


@app.exception_handler(BrainError)
async def brain_error_handler(request: Request, exc: BrainError):
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


@app.get("/health")
async def health(request: Request):
    ready = getattr(request.app.state, "brain", None) is not None
    return {"status": "ok", "brain": "ready" if ready else "unavailable"}

app.include_router(documents.router, prefix="/v1")
app.include_router(query.router, prefix="/v1")
