import json
from unittest.mock import AsyncMock

import pytest

from travelrag.analytics.categories import (
    CLASSIFY_PROMPT,
    CategoryClassifier,
    assign_categories,
    compute_centroids,
)
from travelrag.rag.memory_store import InMemoryVectorStore
from travelrag.rag.retriever import CorpusRetriever
from travelrag.schemas.analytics import AssignmentMethod
from travelrag.schemas.corpus import CorpusDocument, SourceType
from travelrag.utils.cache import TTLCache
from travelrag.utils.errors import CompletionUnavailableError

KNOWLEDGE = [SourceType.KNOWLEDGE_ENTRY]


def entry(doc_id, embedding=None, category=None, question="Question?"):
    return CorpusDocument(
        id=doc_id,
        source_type=SourceType.KNOWLEDGE_ENTRY,
        text=f"Q: {question}\nA: Answer",
        embedding=embedding,
        category=category,
        metadata={"question": question, "answer": "Answer"},
    )


def make_classifier(store, gateway, completion):
    retriever = CorpusRetriever(store=store, gateway=gateway, catalog_cache=TTLCache("t", 60), sleep=AsyncMock())
    return CategoryClassifier(retriever=retriever, completion=completion)


@pytest.fixture
def labeled():
    return [
        entry("v1", [1.0, 0.0, 0.0, 0.0], "visa"),
        entry("v2", [0.9, 0.1, 0.0, 0.0], "visa"),
        entry("p1", [0.0, 1.0, 0.0, 0.0], "payment"),
        entry("p2", [0.0, 0.9, 0.1, 0.0], "payment"),
        entry("t1", [0.0, 0.0, 1.0, 0.0], "tour"),
    ]


def test_centroids_need_two_examples(labeled):
    centroids = compute_centroids(labeled)

    assert sorted(centroids) == ["payment", "visa"]
    assert centroids["visa"] == pytest.approx([0.95, 0.05, 0.0, 0.0])


def test_low_similarity_falls_back_to_other(labeled):
    centroids = compute_centroids(labeled)
    docs = [
        entry("u1", [0.98, 0.05, 0.0, 0.0]),
        entry("u2", [0.2, 0.2, 0.0, 0.95]),
        entry("u3"),
    ]

    assignments = assign_categories(docs, centroids, low_confidence=0.3)

    assert [(a.document_id, a.category, a.method) for a in assignments] == [
        ("u1", "visa", AssignmentMethod.CENTROID),
        ("u2", "other", AssignmentMethod.LOW_CONFIDENCE),
    ]
    assert assignments[1].similarity < 0.3


async def test_classify_backfills_then_assigns(labeled, gateway, completion):
    store = InMemoryVectorStore(documents=labeled + [
        entry("u1", [0.0, 0.98, 0.05, 0.0]),
        entry("u2", question="Do I need a visa for Jeju?"),
    ])

    summary = await make_classifier(store, gateway, completion).classify(KNOWLEDGE)

    assert summary.method == "centroid"
    assert summary.embeddings_generated == 1
    assert (summary.total, summary.categorized, summary.failed) == (2, 2, 0)
    assert store.get_document("u1").category == "payment"
    # the backfilled embedding is QUERY_VECTOR, closest to the visa centroid
    assert store.get_document("u2").category == "visa"
    completion.complete.assert_not_awaited()


async def test_failed_writes_are_counted(labeled, gateway, completion):
    store = InMemoryVectorStore(documents=labeled + [entry("u1", [0.0, 0.98, 0.05, 0.0])])
    store.set_category = AsyncMock(side_effect=ConnectionError("db down"))

    summary = await make_classifier(store, gateway, completion).classify(KNOWLEDGE)

    assert summary.categorized == 0
    assert summary.failed == 1


async def test_nothing_to_classify(labeled, gateway, completion):
    summary = await make_classifier(InMemoryVectorStore(documents=labeled), gateway, completion).classify(KNOWLEDGE)
    assert summary.method == "none"
    assert summary.total == 0


async def test_cold_start_uses_completion(gateway, completion):
    store = InMemoryVectorStore(documents=[
        entry("k1", question="Do I need a visa?"),
        entry("k2", question="What is the weather like?"),
        entry("k3", question="Can I pay by card?"),
        entry("t1", category="tour", question="How long is the DMZ tour?"),
    ])
    completion.complete.return_value = json.dumps([
        {"id": "k1", "category": "Visa"},
        {"id": "k2", "category": "weather"},
        {"id": "k99", "category": "booking"},
        {"id": "k1", "category": "payment"},
        {"id": 3, "category": "payment"},
    ])

    summary = await make_classifier(store, gateway, completion).classify(KNOWLEDGE)

    assert summary.method == "llm"
    assert summary.total == 3
    assert summary.categorized == 1
    assert [(a.document_id, a.category) for a in summary.assignments] == [("k1", "visa")]
    assert store.get_document("k1").category == "visa"
    assert store.get_document("k2").category is None

    prompt, variables = completion.complete.await_args.args[:2]
    assert prompt is CLASSIFY_PROMPT
    assert "id=k2 Q: What is the weather like?" in variables["entries"]
    assert "visa - visas, passports" in variables["categories"]


async def test_cold_start_batch_failure(gateway, completion):
    store = InMemoryVectorStore(documents=[entry("k1"), entry("k2")])
    completion.complete.side_effect = CompletionUnavailableError("Completion provider unavailable")

    summary = await make_classifier(store, gateway, completion).classify(KNOWLEDGE)

    assert summary.method == "llm"
    assert (summary.total, summary.categorized, summary.failed) == (2, 0, 2)
