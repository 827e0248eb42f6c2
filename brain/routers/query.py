
import logging
from fastapi import APIRouter, Depends, HTTPException
from ..deps import Caller, get_brain_service, get_caller
from ..schemas import QueryRequest, QueryResponse
from ..services.brain import BrainService
from ..services.embedding import EmbeddingConfigurationError, EmbeddingServiceError

router = APIRouter(prefix="/brain", tags=["brain"])

logger = logging.getLogger(__name__)

@router.post("/query", response_model=QueryResponse)
async def query_brain(
    req: QueryRequest,
    caller: Caller = Depends(get_caller),
    brain: BrainService = Depends(get_brain_service),
):
    try:
        return await brain.query_brain(
            req.query,
            caller.organization,
            top_k=req.topK,
            score_threshold=req.scoreThreshold,
        )
    except EmbeddingConfigurationError as e:
        logger.error("Embedding provider misconfigured: %s", e)
        raise HTTPException(
            status_code=502,
            detail="The service is temporarily unavailable due to a server configuration problem. Please contact the administrator.",
        )
    except EmbeddingServiceError as e:
        logger.warning("Embedding provider failed for query: %s", e)
        raise HTTPException(status_code=502, detail="Upstream embedding error. Please try again later.")
