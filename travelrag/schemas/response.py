"""Response schemas for API endpoints"""
from typing import Dict, List, Optional
from pydantic import BaseModel, Field

from .analytics import BackfillSummary, CategorizationSummary, DuplicateGroup
from .draft import DraftItem, DraftSource
from .matching import MatchResult
from .pipeline import PipelineRun


class DraftResponse(BaseModel):
    """
    Response for /drafts endpoint

    A run that could not be grounded returns items=[] with the abort
    reason instead of an error status.
    """
    generated: bool = Field(..., description="False when the run aborted")
    items: List[DraftItem] = Field(default_factory=list)
    sources: List[DraftSource] = Field(default_factory=list)
    search_query: Optional[str] = None
    abort_reason: Optional[str] = None
    run: Optional[PipelineRun] = Field(None, description="Diagnostic run log")
    message: Optional[str] = None


class PlaceMatchResponse(BaseModel):
    """Response for /places/match endpoint"""
    results: List[MatchResult]
    tier_counts: Dict[str, int] = Field(default_factory=dict)


class DuplicateScanResponse(BaseModel):
    """Response for /analytics/duplicates endpoint"""
    groups: List[DuplicateGroup]
    total_documents: int = Field(..., description="Documents across all groups")


class CategorizeResponse(BaseModel):
    """Response for /analytics/categorize endpoint"""
    summary: CategorizationSummary


class BackfillResponse(BaseModel):
    """Response for /corpus/backfill endpoint"""
    summary: BackfillSummary
    message: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error response"""
    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Error message")
    details: Optional[dict] = Field(None, description="Additional error details")
