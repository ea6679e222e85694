"""
Retrieval layer for travelrag.

Main components:
- embeddings: Text-to-vector conversion using Cohere, with retry/backoff
- interests: Interest tag expansion into keyword phrases
- vector_store: Supabase pgvector queries (search, catalog, batch jobs)
- memory_store: In-process backend with the same query surface
- reranker: Hybrid vector + keyword reranking
- place_matcher: Multi-tier place name resolution against the catalog
- retriever: Corpus searches, catalog loading and embedding backfill

Usage:
    from travelrag.rag import get_embedding_gateway, get_retriever

    gateway = get_embedding_gateway()
    embedding = await gateway.embed_query("Seoul Korea travel: palaces, temples")
    hits = await get_retriever().search_correspondence(embedding, limit=24, min_similarity=0.3)
"""

from travelrag.rag.embeddings import (
    EmbeddingGateway,
    get_embedding_gateway,
    build_embedding_text,
)

from travelrag.rag.interests import (
    expand_interests,
    interest_keywords,
    interest_to_categories,
)

from travelrag.rag.vector_store import (
    VectorStore,
    SupabaseVectorStore,
    get_vector_store,
)

from travelrag.rag.memory_store import InMemoryVectorStore

from travelrag.rag.reranker import HybridReranker

from travelrag.rag.place_matcher import PlaceMatcher

from travelrag.rag.retriever import (
    CorpusRetriever,
    get_retriever,
)

__all__ = [
    # Embeddings
    "EmbeddingGateway",
    "get_embedding_gateway",
    "build_embedding_text",

    # Interests
    "expand_interests",
    "interest_keywords",
    "interest_to_categories",

    # Vector Store
    "VectorStore",
    "SupabaseVectorStore",
    "InMemoryVectorStore",
    "get_vector_store",

    # Reranking and matching
    "HybridReranker",
    "PlaceMatcher",

    # Retriever (main interface)
    "CorpusRetriever",
    "get_retriever",
]
