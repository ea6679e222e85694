"""
Hybrid reranking of vector-search candidates.

final_score = similarity * vector_weight + keyword_overlap * lexical_weight

The default 0.5 / 0.5 split is a tunable heuristic (RERANK_VECTOR_WEIGHT,
RERANK_LEXICAL_WEIGHT), not a measured optimum.
"""

import logging
from typing import Optional, Sequence

from travelrag.config import settings
from travelrag.schemas.corpus import SearchHit
from travelrag.schemas.pipeline import RerankDetail, RerankResult

logger = logging.getLogger(__name__)


def keyword_overlap(text: str, keywords: Sequence[str]):
    """Return (fraction of keywords present in text, matched keywords)"""
    if not keywords:
        return 0.0, []
    content = (text or "").lower()
    matched = [kw for kw in keywords if kw in content]
    return len(matched) / len(keywords), matched


class HybridReranker:
    """Reorders candidates by weighted vector similarity and keyword overlap"""

    def __init__(self, vector_weight: Optional[float] = None, lexical_weight: Optional[float] = None):
        self.vector_weight = settings.rerank_vector_weight if vector_weight is None else vector_weight
        self.lexical_weight = settings.rerank_lexical_weight if lexical_weight is None else lexical_weight

    def rerank(self, candidates: Sequence[SearchHit], keywords: Sequence[str], limit: int) -> RerankResult:
        """
        Rerank candidates and keep the top `limit`.

        With no keywords the vector order is kept (identity). Ties keep
        their input order. Details cover every candidate, in ranked order.

        Args:
            candidates: Vector-search hits, similarity descending
            keywords: Lower-cased interest keywords
            limit: Number of candidates to keep

        Returns:
            RerankResult with the kept candidates and per-candidate diagnostics
        """
        keywords = [kw.strip().lower() for kw in keywords if kw and kw.strip()]

        if not keywords:
            logger.info("[rerank] No interest keywords, keeping vector similarity order")
            return RerankResult(
                ordered=list(candidates[:limit]),
                keywords=[],
                details=[
                    RerankDetail(
                        document_id=hit.document_id,
                        vector_score=hit.similarity,
                        lexical_score=0.0,
                        final_score=hit.similarity,
                    )
                    for hit in candidates
                ],
                vector_weight=self.vector_weight,
                lexical_weight=self.lexical_weight,
            )

        scored = []
        for hit in candidates:
            overlap, matched = keyword_overlap(hit.text, keywords)
            final = hit.similarity * self.vector_weight + overlap * self.lexical_weight
            scored.append((final, overlap, matched, hit))

        # sorted() is stable, so equal scores keep vector order
        scored = sorted(scored, key=lambda item: item[0], reverse=True)

        for rank, (final, overlap, matched, hit) in enumerate(scored, start=1):
            logger.debug(
                f"[rerank:detail] {rank}. [{hit.document_id}] vector={hit.similarity:.3f}, "
                f"lexical={overlap:.3f}, final={final:.3f}, matched={len(matched)}/{len(keywords)}"
            )

        logger.info(f"[rerank] Reranked {len(scored)} candidates with {len(keywords)} keywords, keeping {limit}")

        return RerankResult(
            ordered=[hit for _, _, _, hit in scored[:limit]],
            keywords=keywords,
            details=[
                RerankDetail(
                    document_id=hit.document_id,
                    vector_score=hit.similarity,
                    lexical_score=overlap,
                    final_score=final,
                    matched_keywords=matched,
                )
                for final, overlap, matched, hit in scored
            ],
            vector_weight=self.vector_weight,
            lexical_weight=self.lexical_weight,
        )
