"""
Embedding generation for the retrieval corpus using the Cohere API.

The gateway never raises: a missing embedding is a normal outcome that
callers treat as "cannot retrieve", not as an error. Rate limits (429) and
timeouts are retried with exponential backoff plus jitter; server errors
(5xx) get a single retry.
"""

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, List, Optional

import cohere
import httpx
from cohere.core.api_error import ApiError

from travelrag.config import Settings, settings as default_settings
from travelrag.schemas.corpus import CorpusDocument, SourceType

logger = logging.getLogger(__name__)

INPUT_TYPE = "search_document"  # For indexing
QUERY_INPUT_TYPE = "search_query"  # For retrieval

SERVER_ERROR_RETRY_DELAY = 1.0


class EmbeddingGateway:
    """
    Wrapper for the Cohere embed endpoint.

    Features:
    - Input truncation to the provider's character limit
    - Per-call timeout
    - 429 / timeout retry with backoff + jitter, single 5xx retry
    - Dimension check on every returned vector
    """

    def __init__(
        self,
        client: Optional[Any] = None,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings or default_settings
        self._client = client
        self._sleep = sleep

    @property
    def client(self) -> Optional[Any]:
        """Lazily build the Cohere async client; None when no API key is configured"""
        if self._client is None and self.settings.cohere_api_key:
            logger.info(f"Initializing Cohere client with model: {self.settings.embedding_model}")
            self._client = cohere.AsyncClient(api_key=self.settings.cohere_api_key)
        return self._client

    @property
    def dimension(self) -> int:
        return self.settings.embedding_dimension

    def _retry_delay(self, attempt: int) -> float:
        base = self.settings.embedding_backoff_base_seconds
        jitter = self.settings.embedding_backoff_jitter_seconds
        return base * (2 ** attempt) + random.uniform(0, jitter)

    async def generate_embedding(self, text: str, input_type: str = INPUT_TYPE) -> Optional[List[float]]:
        """
        Generate an embedding for a single text.

        Args:
            text: Input text (truncated to EMBEDDING_MAX_CHARS)
            input_type: "search_document" for indexing, "search_query" for retrieval

        Returns:
            Vector of EMBEDDING_DIMENSION floats, or None on any failure
        """
        if not text or not text.strip():
            return None

        client = self.client
        if client is None:
            logger.warning("COHERE_API_KEY is not set; cannot generate embeddings")
            return None

        truncated = text[:self.settings.embedding_max_chars]
        max_retries = self.settings.embedding_max_retries
        attempt = 0
        server_retry_used = False

        while True:
            try:
                response = await asyncio.wait_for(
                    client.embed(
                        texts=[truncated],
                        model=self.settings.embedding_model,
                        input_type=input_type,
                        embedding_types=["float"]
                    ),
                    timeout=self.settings.embedding_timeout_seconds
                )
            except (asyncio.TimeoutError, httpx.TimeoutException):
                if attempt >= max_retries:
                    logger.error(f"Embedding timed out after {attempt} retries")
                    return None
                delay = self._retry_delay(attempt)
                attempt += 1
                logger.warning(f"Embedding call timed out, retry {attempt}/{max_retries} in {delay:.1f}s")
                await self._sleep(delay)
                continue
            except ApiError as e:
                status = e.status_code or 0
                if status == 429:
                    if attempt >= max_retries:
                        logger.error(f"Embedding rate limited, giving up after {attempt} retries")
                        return None
                    delay = self._retry_delay(attempt)
                    attempt += 1
                    logger.warning(f"Embedding rate limited (429), retry {attempt}/{max_retries} in {delay:.1f}s")
                    await self._sleep(delay)
                    continue
                if status >= 500 and not server_retry_used:
                    server_retry_used = True
                    logger.warning(f"Embedding provider error {status}, retrying once")
                    await self._sleep(SERVER_ERROR_RETRY_DELAY)
                    continue
                logger.error(f"Embedding provider error {status}: {e.body}")
                return None
            except Exception as e:
                logger.error(f"Failed to generate embedding: {e}")
                return None

            return self._extract_vector(response)

    async def embed_query(self, text: str) -> Optional[List[float]]:
        """Embed retrieval query text"""
        return await self.generate_embedding(text, input_type=QUERY_INPUT_TYPE)

    def _extract_vector(self, response: Any) -> Optional[List[float]]:
        embeddings = getattr(response, "embeddings", None)
        vectors = getattr(embeddings, "float_", None) or getattr(embeddings, "float", None)
        if not vectors or not isinstance(vectors, list) or not vectors[0]:
            logger.error("Empty embedding response")
            return None

        vector = list(vectors[0])
        if len(vector) != self.dimension:
            logger.error(f"Embedding dimension mismatch: got {len(vector)}, expected {self.dimension}")
            return None
        return vector


def build_correspondence_text(content: str, subject: Optional[str] = None, sender: Optional[str] = None) -> str:
    """
    Create searchable text for one correspondence thread.

    Example:
        >>> build_correspondence_text("We'd love a 5 day trip", "Seoul in May", "kim@example.com")
        "Subject: Seoul in May\\nFrom: kim@example.com\\nWe'd love a 5 day trip"
    """
    parts = []
    if subject:
        parts.append(f"Subject: {subject}")
    if sender:
        parts.append(f"From: {sender}")
    parts.append(content or "")
    return "\n".join(parts)


def build_itinerary_text(
    title: str,
    regions: Optional[List[str]] = None,
    duration_days: Optional[int] = None,
    tour_type: Optional[str] = None,
    adults: Optional[int] = None,
    children: Optional[int] = None,
    interests: Optional[List[str]] = None,
    budget: Optional[str] = None,
    request: Optional[str] = None,
    places: Optional[List[str]] = None,
) -> str:
    """
    Create searchable text for a past itinerary.

    Structured so that a new customer request embeds close to itineraries
    with the same region, length and interests.
    """
    parts = [f"Trip: {title}"]
    if regions:
        parts.append(f"Region: {', '.join(regions)}")
    if duration_days:
        parts.append(f"Duration: {duration_days} days")
    if tour_type:
        parts.append(f"Tour type: {tour_type}")

    pax = []
    if adults:
        pax.append(f"{adults} adults")
    if children:
        pax.append(f"{children} children")
    if pax:
        parts.append(f"Group: {', '.join(pax)}")

    if interests:
        parts.append(f"Interests: {', '.join(interests)}")
    if budget:
        parts.append(f"Budget: {budget}")
    if request:
        parts.append(f"Request: {request[:500]}")
    if places:
        parts.append(f"Places: {', '.join(p for p in places if p)}")

    return "\n".join(parts)


def build_knowledge_text(
    question: str,
    answer: str,
    question_local: Optional[str] = None,
    answer_local: Optional[str] = None,
) -> str:
    """Create searchable text for a knowledge-base (FAQ) entry"""
    text = f"Q: {question}\nA: {answer}"
    if question_local:
        text += f"\nQ(local): {question_local}"
    if answer_local:
        text += f"\nA(local): {answer_local}"
    return text


def build_embedding_text(document: CorpusDocument) -> str:
    """Pick the text builder for a stored document from its source type and metadata"""
    meta = document.metadata
    if document.source_type == SourceType.CORRESPONDENCE:
        return build_correspondence_text(document.text, meta.get("subject"), meta.get("sender"))
    if document.source_type == SourceType.KNOWLEDGE_ENTRY and meta.get("question"):
        return build_knowledge_text(
            meta["question"],
            meta.get("answer", document.text),
            meta.get("question_local"),
            meta.get("answer_local"),
        )
    if document.source_type == SourceType.PAST_ITINERARY and meta.get("title"):
        return build_itinerary_text(
            title=meta["title"],
            regions=meta.get("regions"),
            duration_days=meta.get("duration_days"),
            tour_type=meta.get("tour_type"),
            adults=meta.get("adults"),
            children=meta.get("children"),
            interests=meta.get("interests"),
            budget=meta.get("budget"),
            request=meta.get("request"),
            places=meta.get("places"),
        )
    return document.text


# Global singleton instance
_embedding_gateway: Optional[EmbeddingGateway] = None


def get_embedding_gateway() -> EmbeddingGateway:
    """
    Get global EmbeddingGateway instance.

    Returns:
        Singleton EmbeddingGateway instance
    """
    global _embedding_gateway
    if _embedding_gateway is None:
        _embedding_gateway = EmbeddingGateway()
    return _embedding_gateway
