"""
Vector store operations for the retrieval corpus and the place catalog.

VectorStore defines the query surface shared by every backend and owns the
store-agnostic post-processing of similarity search (validation, clamping,
the minimum-similarity filter and ordering). SupabaseVectorStore runs the
queries against Postgres with pgvector + pg_trgm through the SQL functions
in supabase/migrations/.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Sequence

from pydantic import ValidationError

from travelrag.schemas.corpus import (
    CatalogEntity,
    CorpusDocument,
    FuzzyCatalogHit,
    NeighborPair,
    SearchHit,
    SourceType,
)
from travelrag.utils.database import SupabaseClient

logger = logging.getLogger(__name__)


def _source_values(source_types: Iterable[SourceType]) -> List[str]:
    return [SourceType(s).value for s in source_types]


class VectorStore(ABC):
    """
    Query surface over corpus documents and catalog entities.

    search_similar() never raises. Every other operation raises on store
    failure and leaves degradation to the caller.
    """

    async def search_similar(
        self,
        embedding: Sequence[float],
        source_types: Iterable[SourceType],
        limit: int,
        min_similarity: float = 0.0
    ) -> List[SearchHit]:
        """
        Nearest documents by cosine similarity (1 - cosine distance).

        Args:
            embedding: Precomputed query vector, shared across corpora
            source_types: Corpora to search
            limit: Maximum number of results
            min_similarity: Results must score strictly above this

        Returns:
            Hits sorted by similarity descending; [] on no rows or store error
        """
        if limit <= 0:
            return []

        sources = _source_values(source_types)
        try:
            rows = await self._query_similar(list(embedding), sources, limit, min_similarity)
        except Exception as e:
            logger.error(f"Similarity search failed for sources={sources}: {e}")
            # Don't raise - return empty list to allow graceful degradation
            return []

        hits = []
        for row in rows:
            try:
                hit = SearchHit.model_validate(row)
            except ValidationError as e:
                logger.warning(f"Dropping malformed search row: {e}")
                continue
            # Post-filter even when the store pre-filters, so behaviour is store-agnostic
            if hit.similarity > min_similarity:
                hits.append(hit)

        hits.sort(key=lambda h: h.similarity, reverse=True)
        hits = hits[:limit]
        logger.info(
            f"Found {len(hits)} similar documents for sources={sources} "
            f"(min_similarity={min_similarity})"
        )
        return hits

    @abstractmethod
    async def _query_similar(
        self,
        embedding: List[float],
        source_types: List[str],
        limit: int,
        min_similarity: float
    ) -> List[Dict[str, Any]]:
        """Raw rows with document_id, source_type, similarity, text, metadata"""

    @abstractmethod
    async def find_catalog_candidates(self, terms: List[str]) -> List[CatalogEntity]:
        """Entities whose primary or local name contains any of terms (case-insensitive)"""

    @abstractmethod
    async def fuzzy_match_catalog(
        self,
        names: List[str],
        threshold: float,
        region: Optional[str] = None
    ) -> List[FuzzyCatalogHit]:
        """Best trigram match per name, only when similarity > threshold"""

    @abstractmethod
    async def list_catalog(
        self,
        categories: Optional[List[str]],
        region: Optional[str],
        limit: int
    ) -> List[CatalogEntity]:
        """Catalog entities filtered by any-of categories and region"""

    @abstractmethod
    async def list_unembedded(self, source_types: Iterable[SourceType], limit: int) -> List[CorpusDocument]:
        """Documents with no embedding that are not excluded from retrieval"""

    @abstractmethod
    async def save_embedding(self, document_id: str, embedding: List[float]) -> None:
        """Persist a computed embedding"""

    @abstractmethod
    async def exclude_documents(self, document_ids: List[str]) -> None:
        """Hide documents from retrieval and backfill (noise correspondence)"""

    @abstractmethod
    async def list_document_ids(self, source_types: Iterable[SourceType]) -> List[str]:
        """Ids of embedded, non-excluded documents"""

    @abstractmethod
    async def nearest_neighbors(self, document_id: str, top_n: int) -> List[NeighborPair]:
        """Top-N most similar other documents of the same corpus"""

    @abstractmethod
    async def labeled_documents(self, source_types: Iterable[SourceType]) -> List[CorpusDocument]:
        """Embedded documents that already carry a category"""

    @abstractmethod
    async def unlabeled_documents(
        self,
        source_types: Iterable[SourceType],
        require_embedding: bool = True
    ) -> List[CorpusDocument]:
        """Documents without a category"""

    @abstractmethod
    async def set_category(self, document_ids: List[str], category: str) -> int:
        """Assign one category to many documents; returns rows updated"""


class SupabaseVectorStore(VectorStore):
    """
    Interface to Supabase pgvector for corpus documents and the place catalog.
    """

    DOCUMENTS_TABLE = "corpus_documents"
    CATALOG_TABLE = "catalog_entities"
    DOCUMENT_COLUMNS = "id, source_type, text, embedding, category, metadata"
    CATALOG_COLUMNS = "id, primary_name, local_name, categories, region, description"

    def __init__(self, client: Optional[Any] = None):
        """Initialize vector store; the Supabase client is created on first use."""
        self._client = client

    async def _get_client(self):
        if self._client is None:
            self._client = await SupabaseClient.get_client()
        return self._client

    async def _query_similar(self, embedding, source_types, limit, min_similarity):
        client = await self._get_client()
        response = await client.rpc(
            "match_corpus_documents",
            {
                "query_embedding": embedding,
                "source_types": source_types,
                "match_count": limit,
                "min_similarity": min_similarity
            }
        ).execute()
        return response.data or []

    async def find_catalog_candidates(self, terms: List[str]) -> List[CatalogEntity]:
        terms = [t.strip().lower() for t in terms if t and t.strip()]
        if not terms:
            return []
        client = await self._get_client()
        response = await client.rpc("match_catalog_contains", {"terms": terms}).execute()
        return [CatalogEntity.model_validate(row) for row in (response.data or [])]

    async def fuzzy_match_catalog(self, names, threshold, region=None):
        names = [n.strip() for n in names if n and n.strip()]
        if not names:
            return []
        client = await self._get_client()
        response = await client.rpc(
            "match_catalog_fuzzy",
            {
                "query_names": names,
                "similarity_threshold": threshold,
                "filter_region": region
            }
        ).execute()

        hits = []
        for row in response.data or []:
            entity = CatalogEntity.model_validate(row)
            hits.append(FuzzyCatalogHit(
                query_name=row["query_name"],
                entity=entity,
                similarity=float(row["similarity"])
            ))
        return hits

    async def list_catalog(self, categories, region, limit):
        client = await self._get_client()
        query = client.table(self.CATALOG_TABLE).select(self.CATALOG_COLUMNS)
        if categories:
            query = query.ov("categories", categories)
        if region:
            query = query.ilike("region", f"%{region}%")
        response = await query.limit(limit).execute()
        return [CatalogEntity.model_validate(row) for row in (response.data or [])]

    async def list_unembedded(self, source_types, limit):
        client = await self._get_client()
        response = await client.table(self.DOCUMENTS_TABLE)\
            .select(self.DOCUMENT_COLUMNS)\
            .in_("source_type", _source_values(source_types))\
            .is_("embedding", "null")\
            .eq("exclude_from_rag", False)\
            .order("id")\
            .limit(limit)\
            .execute()
        return [CorpusDocument.model_validate(row) for row in (response.data or [])]

    async def save_embedding(self, document_id, embedding):
        client = await self._get_client()
        await client.table(self.DOCUMENTS_TABLE)\
            .update({"embedding": embedding})\
            .eq("id", document_id)\
            .execute()

    async def exclude_documents(self, document_ids):
        if not document_ids:
            return
        client = await self._get_client()
        await client.table(self.DOCUMENTS_TABLE)\
            .update({"exclude_from_rag": True})\
            .in_("id", document_ids)\
            .execute()
        logger.info(f"Excluded {len(document_ids)} documents from retrieval")

    async def list_document_ids(self, source_types):
        client = await self._get_client()
        response = await client.table(self.DOCUMENTS_TABLE)\
            .select("id")\
            .in_("source_type", _source_values(source_types))\
            .not_.is_("embedding", "null")\
            .eq("exclude_from_rag", False)\
            .order("id")\
            .execute()
        return [str(row["id"]) for row in (response.data or [])]

    async def nearest_neighbors(self, document_id, top_n):
        client = await self._get_client()
        response = await client.rpc(
            "match_document_neighbors",
            {"target_id": document_id, "match_count": top_n}
        ).execute()
        return [NeighborPair.model_validate(row) for row in (response.data or [])]

    async def labeled_documents(self, source_types):
        client = await self._get_client()
        response = await client.table(self.DOCUMENTS_TABLE)\
            .select(self.DOCUMENT_COLUMNS)\
            .in_("source_type", _source_values(source_types))\
            .not_.is_("category", "null")\
            .not_.is_("embedding", "null")\
            .execute()
        return [CorpusDocument.model_validate(row) for row in (response.data or [])]

    async def unlabeled_documents(self, source_types, require_embedding=True):
        client = await self._get_client()
        query = client.table(self.DOCUMENTS_TABLE)\
            .select(self.DOCUMENT_COLUMNS)\
            .in_("source_type", _source_values(source_types))\
            .is_("category", "null")
        if require_embedding:
            query = query.not_.is_("embedding", "null")
        response = await query.execute()
        return [CorpusDocument.model_validate(row) for row in (response.data or [])]

    async def set_category(self, document_ids, category):
        if not document_ids:
            return 0
        client = await self._get_client()
        response = await client.table(self.DOCUMENTS_TABLE)\
            .update({"category": category})\
            .in_("id", document_ids)\
            .execute()
        return len(response.data) if response.data else 0


# Global singleton instance
_vector_store: Optional[VectorStore] = None


def get_vector_store() -> VectorStore:
    """
    Get global VectorStore instance for the configured backend.

    Returns:
        Singleton SupabaseVectorStore, or InMemoryVectorStore when STORE_BACKEND=memory
    """
    global _vector_store
    if _vector_store is None:
        from travelrag.config import settings
        if settings.store_backend == "memory":
            from travelrag.rag.memory_store import InMemoryVectorStore
            _vector_store = InMemoryVectorStore()
        else:
            _vector_store = SupabaseVectorStore()
    return _vector_store
