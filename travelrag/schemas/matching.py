"""Entity resolution schemas"""
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class MatchTier(str, Enum):
    """
    Which path resolved a place name.

    exact vs partial records provenance (direct name-map hit vs candidate
    scan), not a verified confidence ordering.
    """
    PROVIDED = "provided"
    EXACT = "exact"
    PARTIAL = "partial"
    FUZZY = "fuzzy"
    UNMATCHED = "unmatched"


class PlaceMatchInput(BaseModel):
    """Free-text place name to resolve"""
    name: str = Field(..., description="Place name as written (usually English)")
    local_name: Optional[str] = Field(None, description="Local-language name if known")
    entity_id: Optional[int] = Field(None, description="Catalog id already supplied by the caller")


class MatchResult(BaseModel):
    """Resolution outcome for one input, same position as the input"""
    input: PlaceMatchInput
    tier: MatchTier
    matched_entity_id: Optional[int] = None
    matched_name: Optional[str] = None
    score: Optional[float] = Field(None, description="Trigram similarity for fuzzy matches")

    @property
    def is_matched(self) -> bool:
        return self.tier != MatchTier.UNMATCHED and self.matched_entity_id is not None
