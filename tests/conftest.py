"""Shared fixtures: in-memory store, fake providers, vectors with known similarity"""
import math
from unittest.mock import AsyncMock, MagicMock

import pytest

from travelrag.rag.memory_store import InMemoryVectorStore
from travelrag.rag.retriever import CorpusRetriever
from travelrag.schemas.corpus import CatalogEntity, CorpusDocument, SourceType
from travelrag.utils.cache import TTLCache

QUERY_VECTOR = [1.0, 0.0, 0.0, 0.0]


def vec(similarity: float, axis: int = 1):
    """4-d unit vector whose cosine similarity to QUERY_VECTOR is `similarity`"""
    vector = [similarity, 0.0, 0.0, 0.0]
    vector[axis] = math.sqrt(max(0.0, 1.0 - similarity ** 2))
    return vector


def doc(doc_id, source_type=SourceType.CORRESPONDENCE, similarity=None, text="", **kwargs):
    return CorpusDocument(
        id=doc_id,
        source_type=source_type,
        text=text or f"document {doc_id}",
        embedding=vec(similarity) if similarity is not None else None,
        **kwargs
    )


@pytest.fixture
def catalog():
    return [
        CatalogEntity(id=1, primary_name="Gyeongbokgung Palace", local_name="경복궁",
                      categories=["palace", "heritage"], region="Seoul"),
        CatalogEntity(id=2, primary_name="Gwangjang Market", local_name="광장시장",
                      categories=["market", "food"], region="Seoul"),
        CatalogEntity(id=42, primary_name="N Seoul Tower", local_name="남산타워",
                      categories=["landmark"], region="Seoul"),
        CatalogEntity(id=7, primary_name="Haeundae Beach", local_name="해운대",
                      categories=["beach"], region="Busan"),
    ]


@pytest.fixture
def corpus():
    return [
        doc("c1", similarity=0.9, text="Two days of palace visits and a hanok stay",
            metadata={"subject": "Seoul palaces in May"}),
        doc("c2", similarity=0.8, text="Street food market tour in the evening",
            metadata={"subject": "Food tour"}),
        doc("c3", similarity=0.2, text="Unrelated billing question"),
        doc("i1", source_type=SourceType.PAST_ITINERARY, similarity=0.7, text="3 day Seoul heritage trip",
            metadata={"title": "Seoul heritage", "places": ["Gyeongbokgung Palace"]}),
    ]


@pytest.fixture
def store(corpus, catalog):
    return InMemoryVectorStore(documents=corpus, catalog=catalog)


@pytest.fixture
def gateway():
    """Embedding gateway fake: every query embeds to QUERY_VECTOR"""
    fake = MagicMock()
    fake.embed_query = AsyncMock(return_value=list(QUERY_VECTOR))
    fake.generate_embedding = AsyncMock(return_value=list(QUERY_VECTOR))
    return fake


@pytest.fixture
def completion():
    fake = MagicMock()
    fake.complete = AsyncMock()
    return fake


@pytest.fixture
def retriever(store, gateway):
    return CorpusRetriever(
        store=store,
        gateway=gateway,
        catalog_cache=TTLCache("catalog-test", default_ttl=60),
        sleep=AsyncMock(),
    )
