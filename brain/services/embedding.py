import logging
from typing import List, Sequence

import httpx
from openai import AsyncOpenAI, OpenAIError
from ..config import settings

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
GEMINI_MAX_BATCH = 100


class EmbeddingConfigurationError(Exception):
    """Embedding provider is not configured (missing API key etc.)"""
    pass


class EmbeddingServiceError(Exception):
    """Embedding provider call failed"""
    pass


class EmbeddingProvider:
    """Turns text into fixed-dimension vectors.

    ``embed_documents`` is used at indexing time and ``embed_query`` at search
    time; providers with task-specific modes may return different vectors for
    the same text.
    """

    def __init__(self, dimension: int, batch_size: int):
        self.dimension = dimension
        self.batch_size = max(1, batch_size)

    async def embed_documents(self, texts: Sequence[str]) -> List[List[float]]:
        out: List[List[float]] = []
        for i in range(0, len(texts), self.batch_size):
            batch = list(texts[i:i + self.batch_size])
            vectors = await self._embed_batch(batch)
            if len(vectors) != len(batch):
                raise EmbeddingServiceError(f"Expected {len(batch)} embeddings, got {len(vectors)}")
            out.extend(vectors)
        return out

    async def embed_query(self, text: str) -> List[float]:
        vectors = await self._embed_batch([text])
        if not vectors:
            raise EmbeddingServiceError("Embedding provider returned no query embedding")
        return vectors[0]

    async def _embed_batch(self, texts: List[str]) -> List[List[float]]:
        raise NotImplementedError


class OpenAIEmbeddingProvider(EmbeddingProvider):
    # OpenAI has no query/document task types, both modes share one model

    def __init__(self, api_key: str, model: str, dimension: int, batch_size: int = 100):
        super().__init__(dimension, batch_size)
        if not api_key:
            raise EmbeddingConfigurationError(
                "OPENAI_API_KEY is not set. Please configure OPENAI_API_KEY in environment variables."
            )
        self.model = model
        self._client = AsyncOpenAI(api_key=api_key)

    async def _embed_batch(self, texts: List[str]) -> List[List[float]]:
        try:
            resp = await self._client.embeddings.create(model=self.model, input=texts, dimensions=self.dimension)
        except OpenAIError as e:
            raise EmbeddingServiceError(f"OpenAI embeddings error: {e}") from e
        return [d.embedding for d in resp.data]


class GeminiEmbeddingProvider(EmbeddingProvider):

    def __init__(self, api_key: str, model: str, dimension: int, batch_size: int = GEMINI_MAX_BATCH,
                 transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(dimension, min(batch_size, GEMINI_MAX_BATCH))
        if not api_key:
            raise EmbeddingConfigurationError(
                "GEMINI_API_KEY is not set. Please configure GEMINI_API_KEY in environment variables."
            )
        self.model = model
        self._api_key = api_key
        self._transport = transport

    @property
    def _model_path(self) -> str:
        return f"models/{self.model}"

    def _request(self, text: str, task_type: str) -> dict:
        return {
            "model": self._model_path,
            "content": {"parts": [{"text": text}]},
            "taskType": task_type,
            "outputDimensionality": self.dimension,
        }

    async def _post(self, path: str, payload: dict) -> dict:
        headers = {"x-goog-api-key": self._api_key, "Content-Type": "application/json"}
        async with httpx.AsyncClient(
            base_url=GEMINI_BASE_URL, timeout=httpx.Timeout(60.0), transport=self._transport
        ) as client:
            try:
                resp = await client.post(path, json=payload, headers=headers)
                resp.raise_for_status()
            except httpx.HTTPStatusError as e:
                logger.error("Gemini embedding API error %d: %s", resp.status_code, resp.text[:200])
                raise EmbeddingServiceError(
                    f"Gemini Embedding API error {resp.status_code}: {resp.text[:200]}"
                ) from e
            except httpx.TransportError as e:
                raise EmbeddingServiceError(f"Gemini Embedding API unreachable: {e}") from e
            return resp.json()

    async def _embed_batch(self, texts: List[str]) -> List[List[float]]:
        logger.debug("Calling batchEmbedContents with %d texts", len(texts))
        data = await self._post(
            f"/{self._model_path}:batchEmbedContents",
            {"requests": [self._request(t, "RETRIEVAL_DOCUMENT") for t in texts]},
        )
        embeddings = data.get("embeddings") or []
        return [e.get("values", []) for e in embeddings]

    async def embed_query(self, text: str) -> List[float]:
        data = await self._post(f"/{self._model_path}:embedContent", self._request(text, "RETRIEVAL_QUERY"))
        values = (data.get("embedding") or {}).get("values")
        if not values:
            raise EmbeddingServiceError("Gemini Embedding API returned no query embedding")
        return values


def build_provider() -> EmbeddingProvider:
    name = (settings.EMBEDDING_PROVIDER or "openai").lower()
    if name == "gemini":
        return GeminiEmbeddingProvider(
            settings.GEMINI_API_KEY, settings.GEMINI_EMBED_MODEL, settings.EMBED_DIM, settings.EMBED_BATCH_SIZE
        )
    if name == "openai":
        return OpenAIEmbeddingProvider(
            settings.OPENAI_API_KEY, settings.OPENAI_EMBED_MODEL, settings.EMBED_DIM, settings.EMBED_BATCH_SIZE
        )
    raise EmbeddingConfigurationError(f"Unknown EMBEDDING_PROVIDER: {settings.EMBEDDING_PROVIDER}")
