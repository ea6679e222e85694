"""
High-level retrieval logic for the RAG system.

This module provides:
- Corpus searches that share one precomputed query embedding
- Catalog candidate loading with region widening and a TTL cache
- The embedding backfill job for documents stored without a vector
"""

import asyncio
import logging
from typing import Iterable, List, Optional, Sequence

from travelrag.config import settings
from travelrag.rag.embeddings import EmbeddingGateway, build_embedding_text, get_embedding_gateway
from travelrag.rag.vector_store import VectorStore, get_vector_store
from travelrag.schemas.analytics import BackfillSummary
from travelrag.schemas.corpus import CatalogEntity, CorpusDocument, SearchHit, SourceType
from travelrag.utils.cache import TTLCache
from travelrag.utils.noise import is_noise_correspondence

logger = logging.getLogger(__name__)

SNIPPET_MAX_CHARS = 800
ITINERARY_SUMMARY_MAX_CHARS = 300


def extract_snippet(hit: SearchHit, max_chars: int = SNIPPET_MAX_CHARS) -> str:
    """
    Prompt excerpt for a correspondence hit, prefixed with its subject.

    Example:
        "[Seoul in May] Hi, we are a family of four ..."
    """
    subject = hit.metadata.get("subject")
    prefix = f"[{subject}] " if subject else ""
    return (prefix + hit.text.strip())[:max_chars]


def summarize_itinerary(hit: SearchHit) -> str:
    """One-line summary of a past itinerary hit for use as a structural example"""
    meta = hit.metadata
    title = meta.get("title") or "Past itinerary"
    regions = ", ".join(meta.get("regions") or [])
    interests = ", ".join(meta.get("interests") or [])
    places = ", ".join(p for p in (meta.get("places") or []) if p)[:ITINERARY_SUMMARY_MAX_CHARS]
    return (
        f"{title}\n"
        f"Region: {regions or 'n/a'} | Duration: {meta.get('duration_days') or '?'} days | "
        f"Interests: {interests or 'n/a'}\n"
        f"Places: {places or hit.text[:ITINERARY_SUMMARY_MAX_CHARS]}"
    )


class CorpusRetriever:
    """
    High-level interface for retrieval operations.

    Combines the embedding gateway and the vector store into the searches
    and batch jobs used by the draft pipeline, FAQ answering and analytics.
    """

    def __init__(
        self,
        store: Optional[VectorStore] = None,
        gateway: Optional[EmbeddingGateway] = None,
        catalog_cache: Optional[TTLCache] = None,
        sleep=asyncio.sleep,
    ):
        """Initialize retriever with embedding gateway and vector store."""
        self.store = store or get_vector_store()
        self.gateway = gateway or get_embedding_gateway()
        self.catalog_cache = catalog_cache or TTLCache("catalog", settings.catalog_cache_ttl_seconds)
        self._backfill_lock = asyncio.Lock()
        self._sleep = sleep

    async def search(
        self,
        embedding: Sequence[float],
        source_types: Iterable[SourceType],
        limit: int,
        min_similarity: float
    ) -> List[SearchHit]:
        """Similarity search with a precomputed embedding; [] on failure"""
        return await self.store.search_similar(embedding, source_types, limit, min_similarity)

    async def search_correspondence(self, embedding, limit, min_similarity) -> List[SearchHit]:
        return await self.search(embedding, [SourceType.CORRESPONDENCE], limit, min_similarity)

    async def search_itineraries(self, embedding, limit, min_similarity) -> List[SearchHit]:
        return await self.search(embedding, [SourceType.PAST_ITINERARY], limit, min_similarity)

    async def search_knowledge(self, embedding, limit, min_similarity) -> List[SearchHit]:
        return await self.search(embedding, [SourceType.KNOWLEDGE_ENTRY], limit, min_similarity)

    async def load_catalog(self, categories: List[str], region: str) -> List[CatalogEntity]:
        """
        Catalog candidates for prompt grounding.

        Filters by interest categories + region first; when that yields fewer
        than CATALOG_FLOOR entities, tops up from the whole region (deduped)
        up to CATALOG_LIMIT. Results are cached per (region, categories).

        Raises:
            Exception: Store failures propagate; the caller decides how to degrade
        """
        cache_key = f"{region.lower()}:{','.join(sorted(categories))}"
        cached = self.catalog_cache.get(cache_key)
        if cached is not None:
            logger.info(f"[pipeline:catalog] Cache hit for {cache_key} ({len(cached)} entities)")
            return cached

        limit = settings.catalog_limit
        results: List[CatalogEntity] = []
        if categories:
            results = await self.store.list_catalog(categories, region, limit)
            logger.info(
                f"[pipeline:catalog] Categories [{', '.join(categories)}] + region '{region}' -> {len(results)}"
            )

        if len(results) < settings.catalog_floor:
            existing = {entity.id for entity in results}
            fallback = await self.store.list_catalog(None, region, limit)
            merged = results + [entity for entity in fallback if entity.id not in existing]
            merged = merged[:limit]
            logger.info(
                f"[pipeline:catalog] Region fallback -> {len(merged)} total "
                f"({len(results)} by interest + {len(merged) - len(results)} by region)"
            )
            results = merged

        self.catalog_cache.set(cache_key, results)
        return results

    def invalidate_catalog_cache(self) -> int:
        """Drop cached catalog lookups after the catalog changes"""
        return self.catalog_cache.delete_prefix("")

    async def backfill_embeddings(
        self,
        source_types: Iterable[SourceType],
        batch_size: Optional[int] = None
    ) -> BackfillSummary:
        """
        Compute embeddings for documents stored without one.

        Pages through unembedded documents, hides noise correspondence from
        retrieval, and embeds in bounded concurrent windows. Stops when a page
        makes no progress. Only one backfill runs at a time; a concurrent call
        returns immediately with skipped=True.

        Args:
            source_types: Corpora to backfill
            batch_size: Page size, defaults to BACKFILL_BATCH_SIZE

        Returns:
            BackfillSummary with processed / embedded / failed / noise counts
        """
        if self._backfill_lock.locked():
            logger.warning("[backfill] Already running, skipping")
            return BackfillSummary(skipped=True)

        source_types = list(source_types)
        page_size = batch_size or settings.backfill_batch_size
        window = max(1, settings.concurrency_window)

        async with self._backfill_lock:
            summary = BackfillSummary()
            while True:
                documents = await self.store.list_unembedded(source_types, page_size)
                if not documents:
                    break

                noise = [
                    doc for doc in documents
                    if doc.source_type == SourceType.CORRESPONDENCE
                    and is_noise_correspondence(doc.metadata.get("subject"), doc.metadata.get("sender"))
                ]
                if noise:
                    await self.store.exclude_documents([doc.id for doc in noise])
                    summary.skipped_noise += len(noise)

                noise_ids = {doc.id for doc in noise}
                work = [doc for doc in documents if doc.id not in noise_ids]
                logger.info(
                    f"[backfill] Page of {len(documents)} documents: {len(work)} to embed, "
                    f"{len(noise)} noise (total embedded so far: {summary.embedded})"
                )

                page_embedded = 0
                for start in range(0, len(work), window):
                    chunk = work[start:start + window]
                    outcomes = await asyncio.gather(*(self._embed_document(doc) for doc in chunk))
                    embedded = sum(1 for ok in outcomes if ok)
                    page_embedded += embedded
                    summary.failed += len(chunk) - embedded
                    if start + window < len(work):
                        await self._sleep(settings.inter_batch_delay_seconds)

                summary.processed += len(work)
                summary.embedded += page_embedded

                if page_embedded == 0 and not noise:
                    logger.warning("[backfill] Page embedded nothing, stopping")
                    break
                if len(documents) < page_size:
                    break

            logger.info(
                f"[backfill] Done: processed={summary.processed}, embedded={summary.embedded}, "
                f"failed={summary.failed}, noise={summary.skipped_noise}"
            )
            return summary

    async def _embed_document(self, document: CorpusDocument) -> bool:
        embedding = await self.gateway.generate_embedding(build_embedding_text(document))
        if embedding is None:
            logger.warning(f"[backfill] Document {document.id}: embedding generation failed")
            return False
        try:
            await self.store.save_embedding(document.id, embedding)
        except Exception as e:
            logger.warning(f"[backfill] Document {document.id}: failed to save embedding: {e}")
            return False
        return True


# Global singleton instance
_retriever: Optional[CorpusRetriever] = None


def get_retriever() -> CorpusRetriever:
    """
    Get global CorpusRetriever instance.

    Returns:
        Singleton CorpusRetriever instance
    """
    global _retriever
    if _retriever is None:
        _retriever = CorpusRetriever()
    return _retriever
