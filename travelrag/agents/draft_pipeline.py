"""Draft Pipeline - retrieval-grounded itinerary draft generation"""
import asyncio
import logging
import time
import uuid
from typing import Any, Dict, List, Optional, Sequence, Tuple

from langchain_core.prompts import ChatPromptTemplate
from pydantic import ValidationError

from ..config import settings
from ..rag.interests import expand_interests, interest_keywords, interest_to_categories
from ..rag.place_matcher import PlaceMatcher
from ..rag.reranker import HybridReranker
from ..rag.retriever import CorpusRetriever, extract_snippet, get_retriever, summarize_itinerary
from ..schemas.agent import DraftItemLLM
from ..schemas.corpus import CatalogEntity, SearchHit
from ..schemas.draft import DraftConfig, DraftItem, DraftOutcome, DraftResult, DraftSource, TripProfile
from ..schemas.matching import MatchTier, PlaceMatchInput
from ..schemas.pipeline import PipelineRun, PostMatchDetail, StageRecord
from ..tools.completion import CompletionClient, get_completion_client
from ..utils.cancellation import CancellationToken
from ..utils.errors import OperationCancelledError, ProviderError
from ..utils.json_repair import parse_json_response

logger = logging.getLogger(__name__)

SOURCE_COUNT = 3
CATALOG_DESCRIPTION_CHARS = 80
DEFAULT_DURATION_DAYS = 3

DRAFT_PROMPT = ChatPromptTemplate.from_messages([
    ("system", """You are an expert Korea travel planner at a travel agency.
You draft day-by-day itineraries grounded in how the agency has planned similar trips before.

Rules:
- Follow the pacing and flow observed in the reference correspondence
- Prefer places from the AVAILABLE PLACES list and cite their ID as itemId; use null when a place is not in the list
- Plan {places_range} places per day
- Return ONLY valid JSON, no prose:
{{"items": [{{"placeName": "English name", "placeNameKor": "local name or null", "dayNumber": 1, "orderIndex": 0, "timeOfDay": "morning|afternoon|evening", "expectedDurationMins": 90, "reason": "why this fits", "itemId": 123}}]}}"""),
    ("human", """TRIP PROFILE
- Region: {region}
- Duration: {duration} days
- Group: {group}
- Interests: {interest_main}{interest_sub}{interest_detail}
- Tour type: {tour_type}
- Budget: {budget}
- First visit: {first_visit}
{profile_lines}
1. REFERENCE CORRESPONDENCE (similar past customer conversations):
{correspondence_context}
{itinerary_context}{catalog_section}
{visitor_tip}{custom_instructions}""")
])


def build_search_query(profile: TripProfile, expanded_interests: str, region: str) -> str:
    """
    Retrieval query text for a trip profile.

    Example:
        "Seoul Korea travel: Joseon dynasty palaces, ... | 4 days private tour mid budget first visit"
    """
    meta = []
    if profile.duration_days:
        meta.append(f"{profile.duration_days} days")
    if profile.tour_type:
        meta.append(f"{profile.tour_type} tour")
    if profile.budget_range:
        meta.append(f"{profile.budget_range} budget")
    if profile.is_first_visit:
        meta.append("first visit")
    if profile.attractions:
        meta.append(", ".join(profile.attractions))
    return f"{region} Korea travel: {expanded_interests} | {' '.join(meta)}".strip()


def parse_draft_items(text: str, places_per_day: int) -> List[DraftItem]:
    """
    Parse a draft completion into validated items.

    Missing day/order fields are derived from the item position; item ids
    that are not positive integers are treated as unresolved.
    """
    parsed = parse_json_response(text, None)
    if isinstance(parsed, dict):
        raw_items = parsed.get("items")
    else:
        raw_items = parsed
    if not isinstance(raw_items, list) or not raw_items:
        return []

    items = []
    for idx, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            continue
        try:
            llm_item = DraftItemLLM.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"[pipeline:parse] Skipping invalid item {idx}: {e}")
            continue

        items.append(DraftItem(
            place_name=(llm_item.place_name or "").strip() or f"Place {idx + 1}",
            local_name=llm_item.place_name_local or None,
            day_number=llm_item.day_number if llm_item.day_number and llm_item.day_number >= 1
            else idx // places_per_day + 1,
            order_index=llm_item.order_index if llm_item.order_index is not None and llm_item.order_index >= 0
            else idx % places_per_day,
            time_of_day=llm_item.time_of_day,
            expected_duration_mins=llm_item.expected_duration_mins,
            reason=llm_item.reason or "",
            entity_id=llm_item.item_id,
        ))
    return items


class StageTimer:
    """Times one pipeline stage and appends a StageRecord to the run"""

    def __init__(self, run: PipelineRun, name: str):
        self.run = run
        self.name = name
        self.count: Optional[int] = None
        self.detail: Dict[str, Any] = {}

    def __enter__(self):
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb):
        elapsed_ms = (time.perf_counter() - self._start) * 1000
        self.run.stages.append(StageRecord(
            name=self.name,
            elapsed_ms=round(elapsed_ms, 2),
            count=self.count,
            detail=self.detail
        ))
        return False


class DraftPipeline:
    """
    Generates an itinerary draft from a trip profile.

    expand -> embed -> parallel retrieval -> rerank -> prompt -> completion
    -> defensive parse -> entity resolution. Insufficient grounding, an
    unusable completion or cancellation end the run with no draft and an
    abort_reason on the run log; nothing is raised to the caller.
    """

    def __init__(
        self,
        retriever: Optional[CorpusRetriever] = None,
        completion: Optional[CompletionClient] = None,
        matcher: Optional[PlaceMatcher] = None,
    ):
        self.retriever = retriever or get_retriever()
        self.completion = completion or get_completion_client()
        self.matcher = matcher or PlaceMatcher(self.retriever.store)

    async def run(
        self,
        profile: TripProfile,
        config: Optional[DraftConfig] = None,
        cancel_token: Optional[CancellationToken] = None
    ) -> DraftOutcome:
        """
        Run the pipeline.

        Args:
            profile: Customer trip profile
            config: Per-call overrides of retrieval / generation settings
            cancel_token: Optional cancellation signal

        Returns:
            DraftOutcome with the draft (or None) and the diagnostic run log
        """
        config = config or DraftConfig()
        run = PipelineRun(run_id=uuid.uuid4().hex[:12])
        started = time.perf_counter()

        logger.info(
            f"[pipeline:start] run={run.run_id} session={profile.session_id} region={profile.region} "
            f"duration={profile.duration_days} tour={profile.tour_type} "
            f"main=[{', '.join(profile.interest_main)}] sub=[{', '.join(profile.interest_sub)}]"
        )

        try:
            draft = await self._execute(profile, config, run, cancel_token, started)
        except OperationCancelledError as e:
            draft = self._abort(run, "cancelled", f"Run cancelled: {e.message}")

        run.total_ms = round((time.perf_counter() - started) * 1000, 2)
        return DraftOutcome(draft=draft, run=run)

    async def generate_draft(
        self,
        profile: TripProfile,
        config: Optional[DraftConfig] = None,
        cancel_token: Optional[CancellationToken] = None
    ) -> Optional[DraftResult]:
        """Run the pipeline and return only the draft (None when aborted)"""
        outcome = await self.run(profile, config, cancel_token)
        return outcome.draft

    @staticmethod
    def _abort(run: PipelineRun, reason: str, message: str) -> None:
        run.abort_reason = reason
        logger.warning(f"[pipeline:abort] run={run.run_id} {message}")
        return None

    @staticmethod
    def _checkpoint(cancel_token: Optional[CancellationToken]) -> None:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

    async def _execute(
        self,
        profile: TripProfile,
        config: DraftConfig,
        run: PipelineRun,
        cancel_token: Optional[CancellationToken],
        started: float
    ) -> Optional[DraftResult]:
        top_k = config.top_k or settings.rag_top_k
        itinerary_limit = settings.rag_itinerary_limit if config.itinerary_limit is None else config.itinerary_limit
        min_similarity = settings.rag_min_similarity if config.min_similarity is None else config.min_similarity
        places_per_day = config.places_per_day or settings.places_per_day
        region = profile.region or settings.default_region

        # 1. Interest expansion
        with StageTimer(run, "interests") as stage:
            expanded = expand_interests(profile.interest_sub, profile.interest_main)
            keywords = interest_keywords(profile.interest_sub, profile.interest_main)
            categories = interest_to_categories(list(profile.interest_sub) + list(profile.interest_main))
            run.expanded_interests = expanded
            stage.count = len(keywords)
            stage.detail = {"categories": categories}
        logger.info(f"[pipeline:interests] Expanded interests: \"{expanded}\"")

        # 2. Query text
        with StageTimer(run, "query"):
            query = build_search_query(profile, expanded, region)
            run.search_query = query
        logger.info(f"[pipeline:query] Search query: \"{query}\"")

        # 3. One embedding shared by every corpus search
        self._checkpoint(cancel_token)
        with StageTimer(run, "embedding") as stage:
            embedding = await self.retriever.gateway.embed_query(query)
            stage.count = len(embedding) if embedding else 0
        if embedding is None:
            return self._abort(run, "no_embedding", "Query embedding could not be generated")

        # 4. Parallel retrieval
        self._checkpoint(cancel_token)
        fetch_limit = top_k * settings.rag_fetch_multiplier
        with StageTimer(run, "retrieval") as stage:
            correspondence, itineraries, catalog = await asyncio.gather(
                self.retriever.search_correspondence(embedding, fetch_limit, min_similarity),
                self.retriever.search_itineraries(embedding, itinerary_limit, min_similarity),
                self._load_catalog(categories, region, run),
            )
            run.correspondence_hits = correspondence
            run.itinerary_hits = itineraries
            run.catalog_candidates = len(catalog)
            stage.count = len(correspondence)
            stage.detail = {
                "fetch_limit": fetch_limit,
                "min_similarity": min_similarity,
                "itineraries": len(itineraries),
                "catalog": len(catalog),
            }

        logger.info(
            f"[pipeline:search] {len(correspondence)} correspondence hits (fetch_limit={fetch_limit}, "
            f"min_similarity={min_similarity}), {len(itineraries)} past itineraries, "
            f"{len(catalog)} catalog candidates"
        )
        if not correspondence:
            return self._abort(run, "no_correspondence", "No correspondence above the similarity floor")

        # 5. Hybrid rerank
        with StageTimer(run, "rerank") as stage:
            reranker = HybridReranker(config.vector_weight, config.lexical_weight)
            rerank = reranker.rerank(correspondence, keywords, top_k)
            run.rerank = rerank
            stage.count = len(rerank.ordered)
        references = rerank.ordered

        # 6. Prompt assembly
        with StageTimer(run, "prompt") as stage:
            variables = self._prompt_variables(
                profile, region, expanded, references, itineraries, catalog, config, places_per_day
            )
            run.prompt_length = len(DRAFT_PROMPT.format(**variables))
            stage.count = run.prompt_length
        logger.info(f"[pipeline:prompt] Prompt built ({run.prompt_length} chars), calling completion provider")

        # 7. Completion
        self._checkpoint(cancel_token)
        with StageTimer(run, "completion") as stage:
            try:
                text = await self.completion.complete(
                    DRAFT_PROMPT,
                    variables,
                    temperature=config.temperature,
                    max_output_tokens=config.max_output_tokens,
                    model=config.model,
                    cancel_token=cancel_token,
                )
            except OperationCancelledError:
                raise
            except ProviderError as e:
                stage.detail = {"error": e.message}
                text = None
            run.response_length = len(text) if text else 0
            stage.count = run.response_length
        if text is None:
            return self._abort(run, "completion_unavailable", "Completion provider unavailable")

        # 8. Defensive parse
        with StageTimer(run, "parse") as stage:
            items = parse_draft_items(text, places_per_day)
            stage.count = len(items)
        if not items:
            return self._abort(run, "unparseable_response", "Completion contained no usable items")

        # 9. Entity resolution for items without a valid catalog id
        self._checkpoint(cancel_token)
        with StageTimer(run, "post_match") as stage:
            items, details = await self._resolve_items(items, catalog)
            run.post_matching = details
            stage.count = sum(1 for item in items if not item.is_tbd)
            stage.detail = {"tbd": sum(1 for item in items if item.is_tbd)}

        # 10. Result
        sources = [self._source(hit) for hit in references[:SOURCE_COUNT]]
        sources += [self._source(hit) for hit in itineraries]
        run.total_ms = round((time.perf_counter() - started) * 1000, 2)

        matched = sum(1 for item in items if not item.is_tbd)
        logger.info(
            f"[pipeline:done] run={run.run_id} {len(items)} places: {matched} matched, "
            f"{len(items) - matched} TBD ({run.total_ms}ms)"
        )
        return DraftResult(items=items, sources=sources, search_query=query, run=run)

    async def _load_catalog(self, categories: List[str], region: str, run: PipelineRun) -> List[CatalogEntity]:
        """Catalog lookup failures are non-fatal: the prompt just has no catalog section"""
        try:
            return await self.retriever.load_catalog(categories, region)
        except Exception as e:
            run.catalog_error = str(e)
            logger.warning(f"[pipeline:catalog] Catalog lookup failed: {e}")
            return []

    def _prompt_variables(
        self,
        profile: TripProfile,
        region: str,
        expanded: str,
        references: Sequence[SearchHit],
        itineraries: Sequence[SearchHit],
        catalog: Sequence[CatalogEntity],
        config: DraftConfig,
        places_per_day: int
    ) -> Dict[str, Any]:
        min_places = max(2, places_per_day - 1)
        max_places = places_per_day + 1
        first_visit = True if profile.is_first_visit is None else profile.is_first_visit

        group = f"{profile.adults_count or 1} adult(s)"
        if profile.children_count:
            group += f", {profile.children_count} child(ren)"

        profile_lines = []
        if profile.nationality:
            profile_lines.append(f"- Nationality: {profile.nationality}")
        if profile.additional_notes:
            profile_lines.append(f"- Special requests: {profile.additional_notes}")
        if profile.attractions:
            profile_lines.append(f"- MUST include these attractions: {', '.join(profile.attractions)}")
        if profile.needs_pickup:
            profile_lines.append("- Needs airport pickup (add the pickup point as the first Day 1 item)")

        correspondence_context = "\n\n---\n\n".join(
            f"[Reference {i}] (similarity: {hit.similarity:.2f})\n{extract_snippet(hit)}"
            for i, hit in enumerate(references, start=1)
        )

        itinerary_context = ""
        if itineraries:
            itinerary_context = (
                "\n2. REFERENCE ITINERARIES (similar past trips, use as structural examples):\n"
                + "\n\n".join(
                    f"[Itinerary {i}] (similarity: {hit.similarity:.2f}) {summarize_itinerary(hit)}"
                    for i, hit in enumerate(itineraries, start=1)
                )
                + "\n"
            )

        catalog_section = ""
        if catalog:
            lines = []
            for entity in catalog:
                local = f" ({entity.local_name})" if entity.local_name else ""
                cats = f" [{', '.join(entity.categories)}]" if entity.categories else ""
                desc = f" - {entity.description[:CATALOG_DESCRIPTION_CHARS]}" if entity.description else ""
                lines.append(f"[ID:{entity.id}] {entity.primary_name}{local}{cats}{desc}")
            catalog_section = "\n3. AVAILABLE PLACES IN OUR DATABASE:\n" + "\n".join(lines) + "\n"

        sub = ", ".join(profile.interest_sub)
        return {
            "region": region,
            "duration": profile.duration_days or DEFAULT_DURATION_DAYS,
            "group": group,
            "interest_main": ", ".join(profile.interest_main) or "general",
            "interest_sub": f" ({sub})" if sub else "",
            "interest_detail": f"\n  -> The customer specifically wants: {expanded}",
            "tour_type": profile.tour_type or "private",
            "budget": profile.budget_range or "mid",
            "first_visit": "Yes" if first_visit else "No",
            "profile_lines": "\n".join(profile_lines),
            "correspondence_context": correspondence_context,
            "itinerary_context": itinerary_context,
            "catalog_section": catalog_section,
            "places_range": f"{min_places}-{max_places}",
            "visitor_tip": "Prioritize must-see landmarks for first-time visitors" if first_visit
            else "Include hidden gems and local favorites for returning visitors",
            "custom_instructions": f"\nADDITIONAL INSTRUCTIONS:\n{config.custom_instructions}"
            if config.custom_instructions else "",
        }

    async def _resolve_items(
        self,
        items: List[DraftItem],
        catalog: Sequence[CatalogEntity]
    ) -> Tuple[List[DraftItem], List[PostMatchDetail]]:
        """
        Resolve items the model did not tie to a catalog id.

        A model-cited id counts as valid when it was among the catalog
        candidates shown in the prompt (or when no catalog was available).
        """
        known_ids = {entity.id for entity in catalog}
        resolved: List[DraftItem] = list(items)
        details: List[Optional[PostMatchDetail]] = [None] * len(items)
        pending = []

        for idx, item in enumerate(items):
            if item.entity_id is not None and (not known_ids or item.entity_id in known_ids):
                resolved[idx] = item.model_copy(update={"match_tier": MatchTier.PROVIDED})
                details[idx] = PostMatchDetail(
                    place_name=item.place_name,
                    local_name=item.local_name,
                    tier=MatchTier.PROVIDED,
                    matched_entity_id=item.entity_id,
                )
            else:
                pending.append(idx)

        if pending:
            logger.info(f"[pipeline:postMatch] Resolving {len(pending)}/{len(items)} unmatched places")
            results = await self.matcher.match_places([
                PlaceMatchInput(name=items[idx].place_name, local_name=items[idx].local_name)
                for idx in pending
            ])
            for idx, result in zip(pending, results):
                item = items[idx]
                resolved[idx] = item.model_copy(update={
                    "entity_id": result.matched_entity_id if result.is_matched else None,
                    "match_tier": result.tier,
                })
                details[idx] = PostMatchDetail(
                    place_name=item.place_name,
                    local_name=item.local_name,
                    tier=result.tier,
                    matched_entity_id=result.matched_entity_id,
                    matched_name=result.matched_name,
                    score=result.score,
                )
        else:
            logger.info("[pipeline:postMatch] All places already tied to catalog ids")

        return resolved, [d for d in details if d is not None]

    @staticmethod
    def _source(hit: SearchHit) -> DraftSource:
        return DraftSource(
            document_id=hit.document_id,
            source_type=hit.source_type,
            similarity=hit.similarity,
            title=hit.metadata.get("subject") or hit.metadata.get("title"),
        )


# Global singleton instance
_draft_pipeline: Optional[DraftPipeline] = None


def get_draft_pipeline() -> DraftPipeline:
    """Get global DraftPipeline instance"""
    global _draft_pipeline
    if _draft_pipeline is None:
        _draft_pipeline = DraftPipeline()
    return _draft_pipeline
