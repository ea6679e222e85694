"""Batch analytics schemas (duplicate clustering, categorisation, backfill)"""
from enum import Enum
from typing import List, Optional, Set
from pydantic import BaseModel, Field


class DuplicateGroup(BaseModel):
    """Transitively similar documents, prioritised by max pairwise similarity"""
    member_ids: Set[str]
    max_similarity: float


class AssignmentMethod(str, Enum):
    CENTROID = "centroid"
    LOW_CONFIDENCE = "low_confidence"
    LLM = "llm"


class CategoryAssignment(BaseModel):
    """Category chosen for one unlabelled document"""
    document_id: str
    category: str
    similarity: Optional[float] = None
    method: AssignmentMethod


class CategorizationSummary(BaseModel):
    """Outcome of one classification job"""
    total: int = 0
    categorized: int = 0
    failed: int = 0
    embeddings_generated: int = 0
    method: str = Field("centroid", description="'centroid', 'llm' or 'none'")
    assignments: List[CategoryAssignment] = Field(default_factory=list)


class BackfillSummary(BaseModel):
    """Outcome of an embedding backfill job"""
    processed: int = 0
    embedded: int = 0
    failed: int = 0
    skipped_noise: int = 0
    skipped: bool = Field(False, description="True when another backfill was already running")
