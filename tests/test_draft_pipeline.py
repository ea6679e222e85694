import json
from unittest.mock import AsyncMock

import pytest

from travelrag.agents.draft_pipeline import DraftPipeline, build_search_query, parse_draft_items
from travelrag.rag.memory_store import InMemoryVectorStore
from travelrag.rag.retriever import CorpusRetriever
from travelrag.schemas.draft import DraftConfig, TripProfile
from travelrag.schemas.matching import MatchTier
from travelrag.utils.cache import TTLCache
from travelrag.utils.cancellation import CancellationToken
from travelrag.utils.errors import CompletionUnavailableError

DRAFT_JSON = json.dumps({"items": [
    {"placeName": "Gyeongbokgung Palace", "dayNumber": 1, "orderIndex": 0, "timeOfDay": "morning",
     "reason": "Royal palace", "itemId": 1},
    {"placeName": "Gwangjang Market", "placeNameKor": "광장시장", "dayNumber": 1, "orderIndex": 1,
     "reason": "Street food", "itemId": None},
    {"placeName": "Unknown Cafe", "dayNumber": 2, "orderIndex": 0, "reason": "Coffee"},
]})


@pytest.fixture
def profile():
    return TripProfile(
        session_id="test",
        region="Seoul",
        duration_days=2,
        interest_main=["culture"],
        interest_sub=["historical"],
        tour_type="private",
        is_first_visit=True,
        adults_count=2,
    )


@pytest.fixture
def pipeline(retriever, completion):
    return DraftPipeline(retriever=retriever, completion=completion)


async def test_happy_path(pipeline, completion, profile):
    completion.complete.return_value = f"```json\n{DRAFT_JSON}\n```"

    outcome = await pipeline.run(profile)
    draft = outcome.draft

    assert draft is not None
    assert outcome.run.abort_reason is None
    assert [item.place_name for item in draft.items] == ["Gyeongbokgung Palace", "Gwangjang Market", "Unknown Cafe"]

    provided, exact, tbd = draft.items
    assert (provided.entity_id, provided.match_tier) == (1, MatchTier.PROVIDED)
    assert (exact.entity_id, exact.match_tier) == (2, MatchTier.EXACT)
    assert tbd.is_tbd and tbd.match_tier == MatchTier.UNMATCHED

    assert [s.document_id for s in draft.sources] == ["c1", "c2", "i1"]
    assert draft.search_query.startswith("Seoul Korea travel: Joseon dynasty palaces")
    assert [d.tier for d in outcome.run.post_matching] == [MatchTier.PROVIDED, MatchTier.EXACT, MatchTier.UNMATCHED]

    stage_names = [stage.name for stage in outcome.run.stages]
    assert stage_names == [
        "interests", "query", "embedding", "retrieval", "rerank", "prompt", "completion", "parse", "post_match"
    ]
    assert outcome.run.catalog_candidates == 3
    assert outcome.run.prompt_length > 0
    completion.complete.assert_awaited_once()


async def test_prompt_carries_grounding(pipeline, completion, profile):
    completion.complete.return_value = DRAFT_JSON
    await pipeline.run(profile, DraftConfig(places_per_day=3, custom_instructions="Avoid stairs"))

    prompt, variables = completion.complete.await_args.args[:2]
    assert variables["places_range"] == "2-4"
    assert "[ID:1] Gyeongbokgung Palace (경복궁)" in variables["catalog_section"]
    assert "[Seoul palaces in May]" in variables["correspondence_context"]
    assert "Avoid stairs" in variables["custom_instructions"]
    assert "Seoul heritage" in variables["itinerary_context"]
    # JSON braces in the template are escaped, so formatting succeeds
    assert '"placeName"' in prompt.format(**variables)


async def test_the_query_embedding_is_computed_once(pipeline, completion, gateway, profile):
    completion.complete.return_value = DRAFT_JSON
    await pipeline.run(profile)
    gateway.embed_query.assert_awaited_once()


async def test_no_embedding_aborts(pipeline, completion, gateway, profile):
    gateway.embed_query.return_value = None

    outcome = await pipeline.run(profile)

    assert outcome.draft is None
    assert outcome.run.abort_reason == "no_embedding"
    completion.complete.assert_not_awaited()


async def test_zero_correspondence_hits_aborts(gateway, completion, catalog, profile):
    retriever = CorpusRetriever(
        store=InMemoryVectorStore(catalog=catalog), gateway=gateway, catalog_cache=TTLCache("t", 60)
    )
    pipeline = DraftPipeline(retriever=retriever, completion=completion)

    assert await pipeline.generate_draft(profile) is None
    outcome = await pipeline.run(profile)
    assert outcome.run.abort_reason == "no_correspondence"
    completion.complete.assert_not_awaited()


async def test_min_similarity_override_can_remove_all_hits(pipeline, completion, profile):
    outcome = await pipeline.run(profile, DraftConfig(min_similarity=0.95))
    assert outcome.run.abort_reason == "no_correspondence"


async def test_completion_unavailable_aborts(pipeline, completion, profile):
    completion.complete.side_effect = CompletionUnavailableError("Completion rate limit retries exhausted")

    outcome = await pipeline.run(profile)

    assert outcome.draft is None
    assert outcome.run.abort_reason == "completion_unavailable"


async def test_unparseable_response_aborts(pipeline, completion, profile):
    completion.complete.return_value = "Sorry, I can't help with that."
    outcome = await pipeline.run(profile)
    assert outcome.run.abort_reason == "unparseable_response"


async def test_truncated_response_is_recovered(pipeline, completion, profile):
    completion.complete.return_value = DRAFT_JSON[:DRAFT_JSON.index('{"placeName": "Unknown Cafe"') + 20]

    outcome = await pipeline.run(profile)

    assert [item.place_name for item in outcome.draft.items] == ["Gyeongbokgung Palace", "Gwangjang Market"]


async def test_cancelled_before_start(pipeline, completion, gateway, profile):
    token = CancellationToken()
    token.cancel("customer closed the chat")

    outcome = await pipeline.run(profile, cancel_token=token)

    assert outcome.draft is None
    assert outcome.run.abort_reason == "cancelled"
    gateway.embed_query.assert_not_awaited()


async def test_catalog_failure_is_not_fatal(pipeline, completion, store, profile):
    store.list_catalog = AsyncMock(side_effect=ConnectionError("catalog offline"))
    completion.complete.return_value = DRAFT_JSON

    outcome = await pipeline.run(profile)

    assert outcome.draft is not None
    assert outcome.run.catalog_error == "catalog offline"
    assert outcome.run.catalog_candidates == 0
    # Without a catalog the model-cited id is trusted
    assert outcome.draft.items[0].match_tier == MatchTier.PROVIDED


async def test_cited_id_outside_catalog_is_rematched(pipeline, completion, profile):
    completion.complete.return_value = json.dumps({"items": [
        {"placeName": "Gwangjang Market", "dayNumber": 1, "orderIndex": 0, "itemId": 999}
    ]})

    outcome = await pipeline.run(profile)

    item = outcome.draft.items[0]
    assert item.entity_id == 2
    assert item.match_tier == MatchTier.EXACT


def test_search_query_format():
    profile = TripProfile(region="Busan", duration_days=4, tour_type="private", budget_range="mid",
                          is_first_visit=True, attractions=["Haeundae", "Gamcheon"])
    query = build_search_query(profile, "beaches", "Busan")
    assert query == "Busan Korea travel: beaches | 4 days private tour mid budget first visit Haeundae, Gamcheon"


def test_parse_defaults_positions():
    text = json.dumps({"items": [
        {"placeName": "A"}, {"placeName": "B"}, {"placeName": "", "dayNumber": "2"},
        {"placeName": "D", "itemId": "17"}, {"placeName": "E", "itemId": -1},
    ]})
    items = parse_draft_items(text, places_per_day=2)

    assert [(i.day_number, i.order_index) for i in items] == [(1, 0), (1, 1), (2, 0), (2, 1), (3, 0)]
    assert items[2].place_name == "Place 3"
    assert items[3].entity_id == 17
    assert items[4].entity_id is None


def test_parse_accepts_bare_array():
    items = parse_draft_items('[{"placeName": "A", "dayNumber": 1, "orderIndex": 0}]', places_per_day=4)
    assert [i.place_name for i in items] == ["A"]
