from unittest.mock import AsyncMock

import pytest

from travelrag.analytics.duplicates import DuplicateDetector, UnionFind, cluster_pairs
from travelrag.rag.memory_store import InMemoryVectorStore
from travelrag.schemas.corpus import CorpusDocument, NeighborPair, SourceType


def pair(left, right, similarity):
    return NeighborPair(left_id=left, right_id=right, similarity=similarity)


def entry(doc_id, embedding):
    return CorpusDocument(id=doc_id, source_type=SourceType.KNOWLEDGE_ENTRY, text=f"entry {doc_id}",
                          embedding=embedding)


def test_union_find_merges_transitively():
    uf = UnionFind()
    uf.union("a", "b")
    uf.union("c", "d")
    uf.union("b", "d")
    uf.add("e")

    assert uf.find("a") == uf.find("c")
    groups = sorted(sorted(members) for members in uf.groups().values())
    assert groups == [["a", "b", "c", "d"], ["e"]]


def test_chained_pairs_form_one_group():
    groups = cluster_pairs([pair("A", "B", 0.95), pair("B", "C", 0.93), pair("C", "D", 0.5)], 0.92)

    assert len(groups) == 1
    assert groups[0].member_ids == {"A", "B", "C"}
    assert groups[0].max_similarity == 0.95


def test_groups_sorted_by_max_similarity():
    groups = cluster_pairs([
        pair("x1", "x2", 0.93),
        pair("y1", "y2", 0.99),
        pair("y2", "y1", 0.99),
        pair("z1", "z1", 1.0),
    ], 0.92)

    assert [g.member_ids for g in groups] == [{"y1", "y2"}, {"x1", "x2"}]


def test_threshold_is_inclusive():
    assert cluster_pairs([pair("a", "b", 0.92)], 0.92)[0].member_ids == {"a", "b"}
    assert cluster_pairs([pair("a", "b", 0.9199)], 0.92) == []


@pytest.fixture
def duplicate_store():
    return InMemoryVectorStore(documents=[
        entry("a", [1.0, 0.0, 0.0, 0.0]),
        entry("b", [0.99, 0.14107, 0.0, 0.0]),
        entry("c", [0.0, 1.0, 0.0, 0.0]),
        entry("d", [0.0, 0.995, 0.09987, 0.0]),
        entry("e", [0.0, 0.0, 0.0, 1.0]),
        entry("f", [0.0, 0.0, 1.0, 0.0]),
        CorpusDocument(id="m1", source_type=SourceType.CORRESPONDENCE, text="mail",
                       embedding=[1.0, 0.0, 0.0, 0.0]),
    ])


async def test_detector_finds_groups(duplicate_store):
    sleep = AsyncMock()
    detector = DuplicateDetector(store=duplicate_store, sleep=sleep)

    groups = await detector.find_groups([SourceType.KNOWLEDGE_ENTRY])

    assert [g.member_ids for g in groups] == [{"c", "d"}, {"a", "b"}]
    assert groups[0].max_similarity == pytest.approx(0.995, abs=1e-3)
    # six documents in windows of five
    sleep.assert_awaited_once()


async def test_detector_tolerates_failed_neighbour_queries(duplicate_store):
    original = duplicate_store.nearest_neighbors

    async def flaky(document_id, top_n):
        if document_id in ("c", "d"):
            raise ConnectionError("timeout")
        return await original(document_id, top_n)

    duplicate_store.nearest_neighbors = flaky
    groups = await DuplicateDetector(store=duplicate_store, sleep=AsyncMock()).find_groups(
        [SourceType.KNOWLEDGE_ENTRY]
    )

    assert [g.member_ids for g in groups] == [{"a", "b"}]


async def test_detector_threshold_override(duplicate_store):
    groups = await DuplicateDetector(store=duplicate_store, sleep=AsyncMock()).find_groups(
        [SourceType.KNOWLEDGE_ENTRY], threshold=0.999
    )
    assert groups == []
