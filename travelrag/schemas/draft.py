"""Draft itinerary schemas"""
from typing import List, Optional
from pydantic import BaseModel, Field

from .corpus import SourceType
from .matching import MatchTier
from .pipeline import PipelineRun


class TripProfile(BaseModel):
    """Customer trip request collected upstream (chat flow, inquiry form)"""
    session_id: str = Field("adhoc", description="Upstream session identifier, used in logs")
    region: Optional[str] = Field(None, description="Destination region, defaults to the configured region")
    duration_days: Optional[int] = Field(None, ge=1, le=30, description="Trip length in days")
    interest_main: List[str] = Field(default_factory=list, description="Main interest tags")
    interest_sub: List[str] = Field(default_factory=list, description="Sub interest tags")
    attractions: List[str] = Field(default_factory=list, description="Attractions the customer asked for")
    tour_type: Optional[str] = Field(None, description="private, online, custom, ...")
    is_first_visit: Optional[bool] = None
    adults_count: Optional[int] = Field(None, ge=0)
    children_count: Optional[int] = Field(None, ge=0)
    budget_range: Optional[str] = Field(None, description="Free-form budget bucket (e.g. 'mid')")
    needs_pickup: Optional[bool] = None
    nationality: Optional[str] = None
    additional_notes: Optional[str] = Field(None, max_length=2000)


class DraftConfig(BaseModel):
    """Per-call overrides; unset fields fall back to settings"""
    top_k: Optional[int] = Field(None, ge=1, le=50)
    itinerary_limit: Optional[int] = Field(None, ge=0, le=20)
    min_similarity: Optional[float] = Field(None, ge=0.0, le=1.0)
    temperature: Optional[float] = Field(None, ge=0.0, le=2.0)
    max_output_tokens: Optional[int] = Field(None, ge=256)
    places_per_day: Optional[int] = Field(None, ge=1, le=10)
    model: Optional[str] = None
    custom_instructions: Optional[str] = Field(None, max_length=2000)
    vector_weight: Optional[float] = Field(None, ge=0.0)
    lexical_weight: Optional[float] = Field(None, ge=0.0)


class DraftItem(BaseModel):
    """One day/slot of a generated draft"""
    place_name: str
    local_name: Optional[str] = None
    day_number: int = Field(..., ge=1)
    order_index: int = Field(..., ge=0)
    time_of_day: Optional[str] = None
    expected_duration_mins: Optional[int] = None
    reason: str = ""
    entity_id: Optional[int] = Field(None, description="Resolved catalog id, null for TBD items")
    match_tier: Optional[MatchTier] = None

    @property
    def is_tbd(self) -> bool:
        return self.entity_id is None


class DraftSource(BaseModel):
    """Provenance: a retrieved document that grounded the draft"""
    document_id: str
    source_type: SourceType
    similarity: float
    title: Optional[str] = None


class DraftResult(BaseModel):
    """Structured draft plus provenance and the diagnostic run log"""
    items: List[DraftItem]
    sources: List[DraftSource] = Field(default_factory=list)
    search_query: str
    run: PipelineRun


class DraftOutcome(BaseModel):
    """Result of a pipeline run: a draft or None, with diagnostics either way"""
    draft: Optional[DraftResult] = None
    run: PipelineRun
