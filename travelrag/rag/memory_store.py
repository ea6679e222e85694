"""
In-process vector store.

Same query surface as the Supabase backend, computed with numpy cosine
similarity and pg_trgm-compatible trigram similarity. Used for local runs
(STORE_BACKEND=memory) and tests.
"""

import logging
from typing import Dict, Iterable, List, Optional, Set

from travelrag.rag.vector_store import VectorStore, _source_values
from travelrag.schemas.corpus import (
    CatalogEntity,
    CorpusDocument,
    FuzzyCatalogHit,
    NeighborPair,
)
from travelrag.utils.similarity import cosine_similarity, trigram_similarity

logger = logging.getLogger(__name__)


class InMemoryVectorStore(VectorStore):
    """Simple in-memory implementation of VectorStore"""

    def __init__(
        self,
        documents: Optional[Iterable[CorpusDocument]] = None,
        catalog: Optional[Iterable[CatalogEntity]] = None
    ):
        self._documents: Dict[str, CorpusDocument] = {}
        self._excluded: Set[str] = set()
        self._catalog: Dict[int, CatalogEntity] = {}
        self.add_documents(documents or [])
        self.add_catalog(catalog or [])

    def add_documents(self, documents: Iterable[CorpusDocument]) -> None:
        """Add or replace corpus documents"""
        for doc in documents:
            self._documents[doc.id] = doc

    def add_catalog(self, entities: Iterable[CatalogEntity]) -> None:
        """Add or replace catalog entities"""
        for entity in entities:
            self._catalog[entity.id] = entity

    def get_document(self, document_id: str) -> Optional[CorpusDocument]:
        return self._documents.get(str(document_id))

    def _searchable(self, sources: List[str]) -> List[CorpusDocument]:
        return [
            doc for doc in self._documents.values()
            if doc.embedding is not None
            and doc.source_type.value in sources
            and doc.id not in self._excluded
        ]

    async def _query_similar(self, embedding, source_types, limit, min_similarity):
        scored = []
        for doc in self._searchable(source_types):
            similarity = cosine_similarity(embedding, doc.embedding)
            if similarity > min_similarity:
                scored.append((similarity, doc))

        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [
            {
                "document_id": doc.id,
                "source_type": doc.source_type.value,
                "similarity": similarity,
                "text": doc.text,
                "metadata": doc.metadata,
            }
            for similarity, doc in scored[:limit]
        ]

    async def find_catalog_candidates(self, terms):
        terms = [t.strip().lower() for t in terms if t and t.strip()]
        if not terms:
            return []
        candidates = []
        for entity in self._catalog.values():
            primary = entity.primary_name.lower()
            local = (entity.local_name or "").lower()
            if any(
                term in primary or primary in term or (local and (term in local or local in term))
                for term in terms
            ):
                candidates.append(entity)
        return candidates

    async def fuzzy_match_catalog(self, names, threshold, region=None):
        entities = list(self._catalog.values())
        if region:
            entities = [e for e in entities if e.region and region.lower() in e.region.lower()]

        hits = []
        for name in dict.fromkeys(n.strip() for n in names if n and n.strip()):
            best: Optional[CatalogEntity] = None
            best_score = 0.0
            for entity in entities:
                score = max(
                    trigram_similarity(entity.primary_name, name),
                    trigram_similarity(entity.local_name or "", name)
                )
                if score > best_score:
                    best, best_score = entity, score
            if best is not None and best_score > threshold:
                hits.append(FuzzyCatalogHit(query_name=name, entity=best, similarity=best_score))
        return hits

    async def list_catalog(self, categories, region, limit):
        wanted = set(categories or [])
        rows = []
        for entity in self._catalog.values():
            if wanted and not wanted.intersection(entity.categories):
                continue
            if region and not (entity.region and region.lower() in entity.region.lower()):
                continue
            rows.append(entity)
            if len(rows) >= limit:
                break
        return rows

    async def list_unembedded(self, source_types, limit):
        sources = _source_values(source_types)
        pending = [
            doc for doc in self._documents.values()
            if doc.embedding is None
            and doc.source_type.value in sources
            and doc.id not in self._excluded
        ]
        return pending[:limit]

    async def save_embedding(self, document_id, embedding):
        doc = self._documents[str(document_id)]
        self._documents[doc.id] = doc.model_copy(update={"embedding": list(embedding)})

    async def exclude_documents(self, document_ids):
        self._excluded.update(str(i) for i in document_ids)
        logger.info(f"Excluded {len(document_ids)} documents from retrieval")

    async def list_document_ids(self, source_types):
        return [doc.id for doc in self._searchable(_source_values(source_types))]

    async def nearest_neighbors(self, document_id, top_n):
        target = self._documents.get(str(document_id))
        if target is None or target.embedding is None:
            return []
        scored = []
        for doc in self._searchable([target.source_type.value]):
            if doc.id == target.id:
                continue
            scored.append((cosine_similarity(target.embedding, doc.embedding), doc.id))
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [
            NeighborPair(left_id=target.id, right_id=other_id, similarity=similarity)
            for similarity, other_id in scored[:top_n]
        ]

    async def labeled_documents(self, source_types):
        return [
            doc for doc in self._searchable(_source_values(source_types))
            if doc.category is not None
        ]

    async def unlabeled_documents(self, source_types, require_embedding=True):
        sources = _source_values(source_types)
        return [
            doc for doc in self._documents.values()
            if doc.category is None
            and doc.source_type.value in sources
            and doc.id not in self._excluded
            and (doc.embedding is not None or not require_embedding)
        ]

    async def set_category(self, document_ids, category):
        updated = 0
        for document_id in document_ids:
            doc = self._documents.get(str(document_id))
            if doc is None:
                continue
            self._documents[doc.id] = doc.model_copy(update={"category": category})
            updated += 1
        return updated
