"""
Entity resolution of free-text place names against the catalog.

Tiers, in order: provided (caller already has a catalog id), exact (direct
name-map hit), partial (substring relation in either direction), fuzzy
(trigram similarity above a threshold), unmatched. Each tier is one
batched store query for all names still unresolved.
"""

import logging
from typing import Dict, List, Optional, Sequence

from travelrag.config import settings
from travelrag.rag.vector_store import VectorStore, get_vector_store
from travelrag.schemas.corpus import CatalogEntity, FuzzyCatalogHit
from travelrag.schemas.matching import MatchResult, MatchTier, PlaceMatchInput

logger = logging.getLogger(__name__)


def _key(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def build_name_map(candidates: Sequence[CatalogEntity]) -> Dict[str, CatalogEntity]:
    """Lower-cased primary and local names -> entity"""
    name_map: Dict[str, CatalogEntity] = {}
    for entity in candidates:
        for name in (entity.primary_name, entity.local_name):
            key = _key(name)
            if key:
                name_map[key] = entity
    return name_map


def find_partial(
    place: PlaceMatchInput,
    candidates: Sequence[CatalogEntity]
) -> Optional[CatalogEntity]:
    """
    Best bidirectional substring match.

    The candidate whose primary name length is closest to the input name
    wins; ties keep candidate order.
    """
    key_primary = _key(place.name)
    key_local = _key(place.local_name)

    best: Optional[CatalogEntity] = None
    best_diff = None
    for entity in candidates:
        primary = _key(entity.primary_name)
        local = _key(entity.local_name)

        matched = bool(
            key_primary and primary
            and (key_primary in primary or primary in key_primary)
        )
        if not matched and key_local and local:
            matched = key_local in local or local in key_local
        # A local-script input may be sent in the primary name slot
        if not matched and key_primary and local:
            matched = key_primary in local or local in key_primary

        if matched:
            diff = abs(len(primary) - len(key_primary))
            if best_diff is None or diff < best_diff:
                best, best_diff = entity, diff
    return best


class PlaceMatcher:
    """Resolves place names to catalog entities; never raises"""

    def __init__(self, store: Optional[VectorStore] = None):
        self.store = store or get_vector_store()

    async def match_places(
        self,
        inputs: Sequence[PlaceMatchInput],
        fuzzy_threshold: Optional[float] = None,
        region: Optional[str] = None
    ) -> List[MatchResult]:
        """
        Resolve each input against the catalog.

        Args:
            inputs: Place names to resolve
            fuzzy_threshold: Minimum trigram similarity (exclusive), defaults to FUZZY_MATCH_THRESHOLD
            region: Optional region filter for the fuzzy tier

        Returns:
            One MatchResult per input, in input order
        """
        if not inputs:
            return []

        threshold = settings.fuzzy_match_threshold if fuzzy_threshold is None else fuzzy_threshold
        results: List[Optional[MatchResult]] = [None] * len(inputs)

        pending = []
        for idx, place in enumerate(inputs):
            if place.entity_id is not None:
                results[idx] = MatchResult(
                    input=place,
                    tier=MatchTier.PROVIDED,
                    matched_entity_id=place.entity_id
                )
            else:
                pending.append(idx)

        # Exact + partial: one batched contains lookup
        if pending:
            terms = []
            for idx in pending:
                terms.append(inputs[idx].name)
                if inputs[idx].local_name:
                    terms.append(inputs[idx].local_name)

            try:
                candidates = await self.store.find_catalog_candidates(terms)
            except Exception as e:
                logger.warning(f"[matchPlaces] Candidate lookup failed: {e}")
                candidates = []

            name_map = build_name_map(candidates)
            still_pending = []
            for idx in pending:
                place = inputs[idx]
                exact = name_map.get(_key(place.name)) or (
                    name_map.get(_key(place.local_name)) if place.local_name else None
                )
                if exact is not None:
                    results[idx] = self._resolved(place, MatchTier.EXACT, exact)
                    continue

                partial = find_partial(place, candidates)
                if partial is not None:
                    results[idx] = self._resolved(place, MatchTier.PARTIAL, partial)
                else:
                    still_pending.append(idx)
            pending = still_pending

        # Fuzzy: one batched trigram query
        if pending:
            fuzzy_by_name: Dict[str, FuzzyCatalogHit] = {}
            names = [inputs[idx].name.strip() or (inputs[idx].local_name or "").strip() for idx in pending]
            try:
                hits = await self.store.fuzzy_match_catalog(names, threshold, region)
                fuzzy_by_name = {hit.query_name: hit for hit in hits}
            except Exception as e:
                logger.warning(f"[matchPlaces] Fuzzy lookup failed: {e}")

            for idx, name in zip(pending, names):
                hit = fuzzy_by_name.get(name)
                if hit is not None and hit.similarity > threshold:
                    results[idx] = self._resolved(inputs[idx], MatchTier.FUZZY, hit.entity, hit.similarity)

        final = [
            result or MatchResult(input=inputs[idx], tier=MatchTier.UNMATCHED)
            for idx, result in enumerate(results)
        ]

        tiers = {tier: 0 for tier in MatchTier}
        for result in final:
            tiers[result.tier] += 1
        logger.info(
            f"[matchPlaces] {len(inputs)} inputs -> provided:{tiers[MatchTier.PROVIDED]} "
            f"exact:{tiers[MatchTier.EXACT]} partial:{tiers[MatchTier.PARTIAL]} "
            f"fuzzy:{tiers[MatchTier.FUZZY]} unmatched:{tiers[MatchTier.UNMATCHED]}"
        )
        return final

    @staticmethod
    def _resolved(
        place: PlaceMatchInput,
        tier: MatchTier,
        entity: CatalogEntity,
        score: Optional[float] = None
    ) -> MatchResult:
        return MatchResult(
            input=place,
            tier=tier,
            matched_entity_id=entity.id,
            matched_name=entity.primary_name,
            score=score
        )
