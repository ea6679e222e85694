from unittest.mock import AsyncMock, MagicMock

import pytest

from travelrag.rag.place_matcher import PlaceMatcher, build_name_map, find_partial
from travelrag.rag.vector_store import VectorStore
from travelrag.schemas.corpus import CatalogEntity, FuzzyCatalogHit
from travelrag.schemas.matching import MatchTier, PlaceMatchInput


@pytest.fixture
def stub_store():
    """Store fake with no contains-candidates; fuzzy results set per test"""
    store = MagicMock(spec=VectorStore)
    store.find_catalog_candidates = AsyncMock(return_value=[])
    store.fuzzy_match_catalog = AsyncMock(return_value=[])
    return store


async def test_empty_input(store):
    assert await PlaceMatcher(store).match_places([]) == []


async def test_local_name_resolves_exactly(store):
    results = await PlaceMatcher(store).match_places([PlaceMatchInput(name="남산타워")])

    assert results[0].tier == MatchTier.EXACT
    assert results[0].matched_entity_id == 42
    assert results[0].matched_name == "N Seoul Tower"


async def test_order_preserved_across_tiers(store):
    inputs = [
        PlaceMatchInput(name="Somewhere Unknown"),
        PlaceMatchInput(name="Gwangjang Market"),
        PlaceMatchInput(name="Anything", entity_id=99),
        PlaceMatchInput(name="Gyeongbokgung"),
    ]
    results = await PlaceMatcher(store).match_places(inputs)

    assert [r.input.name for r in results] == [p.name for p in inputs]
    assert [r.tier for r in results] == [
        MatchTier.UNMATCHED, MatchTier.EXACT, MatchTier.PROVIDED, MatchTier.PARTIAL
    ]
    assert [r.matched_entity_id for r in results] == [None, 2, 99, 1]


async def test_fuzzy_tier_above_threshold(stub_store):
    tower = CatalogEntity(id=42, primary_name="Namsan Tower", local_name="남산타워")
    stub_store.fuzzy_match_catalog.return_value = [
        FuzzyCatalogHit(query_name="Namsan Twr", entity=tower, similarity=0.31)
    ]

    results = await PlaceMatcher(stub_store).match_places([PlaceMatchInput(name="Namsan Twr")], fuzzy_threshold=0.3)

    assert results[0].tier == MatchTier.FUZZY
    assert results[0].matched_entity_id == 42
    assert results[0].score == 0.31
    stub_store.fuzzy_match_catalog.assert_awaited_once_with(["Namsan Twr"], 0.3, None)


async def test_fuzzy_hit_at_threshold_is_rejected(stub_store):
    tower = CatalogEntity(id=42, primary_name="Namsan Tower")
    stub_store.fuzzy_match_catalog.return_value = [
        FuzzyCatalogHit(query_name="Namsan Twr", entity=tower, similarity=0.3)
    ]

    results = await PlaceMatcher(stub_store).match_places([PlaceMatchInput(name="Namsan Twr")], fuzzy_threshold=0.3)
    assert results[0].tier == MatchTier.UNMATCHED
    assert results[0].matched_entity_id is None


async def test_fuzzy_is_one_batched_call(stub_store):
    inputs = [PlaceMatchInput(name="A place"), PlaceMatchInput(name="B place")]
    await PlaceMatcher(stub_store).match_places(inputs, region="Seoul")

    stub_store.find_catalog_candidates.assert_awaited_once()
    stub_store.fuzzy_match_catalog.assert_awaited_once()
    args = stub_store.fuzzy_match_catalog.await_args.args
    assert args[0] == ["A place", "B place"]
    assert args[2] == "Seoul"


async def test_store_failures_degrade_to_unmatched(stub_store):
    stub_store.find_catalog_candidates.side_effect = ConnectionError("db down")
    stub_store.fuzzy_match_catalog.side_effect = ConnectionError("db down")

    results = await PlaceMatcher(stub_store).match_places([
        PlaceMatchInput(name="Gyeongbokgung Palace"),
        PlaceMatchInput(name="Known", entity_id=5),
    ])
    assert [r.tier for r in results] == [MatchTier.UNMATCHED, MatchTier.PROVIDED]


def test_partial_prefers_closest_length():
    candidates = [
        CatalogEntity(id=1, primary_name="Bukchon Hanok Village Cultural Center"),
        CatalogEntity(id=2, primary_name="Bukchon Hanok Village"),
    ]
    assert find_partial(PlaceMatchInput(name="Bukchon Hanok"), candidates).id == 2


def test_name_map_includes_local_names(catalog):
    name_map = build_name_map(catalog)
    assert name_map["경복궁"].id == 1
    assert name_map["gwangjang market"].id == 2
