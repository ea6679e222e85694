"""Diagnostic schemas for retrieval and draft-generation runs"""
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from .corpus import SearchHit
from .matching import MatchTier


class RerankDetail(BaseModel):
    """Per-candidate scoring breakdown from the hybrid reranker"""
    document_id: str
    vector_score: float = Field(..., description="Vector similarity of the candidate")
    lexical_score: float = Field(..., description="Fraction of keywords found in the candidate text")
    final_score: float = Field(..., description="Weighted combination used for ordering")
    matched_keywords: List[str] = Field(default_factory=list)


class RerankResult(BaseModel):
    """Reranked candidates plus the diagnostics for every candidate"""
    ordered: List[SearchHit] = Field(default_factory=list, description="Top candidates after reranking")
    keywords: List[str] = Field(default_factory=list)
    details: List[RerankDetail] = Field(default_factory=list, description="One entry per input candidate")
    vector_weight: float
    lexical_weight: float


class StageRecord(BaseModel):
    """Timing and counts for one pipeline stage"""
    name: str
    elapsed_ms: float
    count: Optional[int] = None
    detail: Dict[str, Any] = Field(default_factory=dict)


class PostMatchDetail(BaseModel):
    """How one draft item was resolved against the catalog"""
    place_name: str
    local_name: Optional[str] = None
    tier: MatchTier
    matched_entity_id: Optional[int] = None
    matched_name: Optional[str] = None
    score: Optional[float] = None


class PipelineRun(BaseModel):
    """
    Diagnostic log for a draft-generation run.

    Always produced, including when the run aborts early; abort_reason is
    set in that case.
    """
    run_id: str
    expanded_interests: str = ""
    search_query: str = ""
    stages: List[StageRecord] = Field(default_factory=list)
    correspondence_hits: List[SearchHit] = Field(default_factory=list)
    itinerary_hits: List[SearchHit] = Field(default_factory=list)
    rerank: Optional[RerankResult] = None
    catalog_candidates: int = 0
    catalog_error: Optional[str] = None
    prompt_length: int = 0
    response_length: int = 0
    post_matching: List[PostMatchDetail] = Field(default_factory=list)
    abort_reason: Optional[str] = None
    total_ms: float = 0.0

    def stage(self, name: str) -> Optional[StageRecord]:
        """Look up a recorded stage by name"""
        for record in self.stages:
            if record.name == name:
                return record
        return None
