"""Request schemas for API endpoints"""
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from .corpus import SourceType
from .draft import DraftConfig, TripProfile
from .faq import ChatTurn
from .matching import PlaceMatchInput
from ..utils.prompt_injection import screen_prompt_text


class DraftRequest(BaseModel):
    """
    Request body for /drafts endpoint

    Free-text fields end up in the completion prompt and are screened
    for prompt injection.
    """
    profile: TripProfile = Field(..., description="Customer trip profile")
    config: Optional[DraftConfig] = Field(None, description="Per-call retrieval / generation overrides")
    include_run: bool = Field(True, description="Return the diagnostic run log")

    @model_validator(mode="after")
    def screen_free_text(self):
        """Validate free-text fields for prompt injection attempts"""
        self.profile.additional_notes = screen_prompt_text(self.profile.additional_notes, "additional notes")
        if self.config is not None:
            self.config.custom_instructions = screen_prompt_text(
                self.config.custom_instructions, "custom instructions"
            )
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "profile": {
                    "session_id": "chat-1042",
                    "region": "Seoul",
                    "duration_days": 3,
                    "interest_main": ["culture"],
                    "interest_sub": ["historical", "food"],
                    "tour_type": "private",
                    "is_first_visit": True,
                    "adults_count": 2
                }
            }
        }


class PlaceMatchRequest(BaseModel):
    """Request body for /places/match endpoint"""
    places: List[PlaceMatchInput] = Field(..., max_length=200, description="Names to resolve, order is preserved")
    region: Optional[str] = Field(None, description="Restrict fuzzy matches to a region")
    fuzzy_threshold: Optional[float] = Field(None, ge=0.0, le=1.0)


class FaqRequest(BaseModel):
    """Request body for /faq/answer endpoint"""
    question: str = Field(..., min_length=1, max_length=1000)
    history: List[ChatTurn] = Field(default_factory=list, max_length=20)

    @field_validator("question")
    @classmethod
    def validate_question(cls, v):
        """Validate question for prompt injection attempts"""
        v = screen_prompt_text(v, "question", max_length=1000)
        if not v:
            raise ValueError("Question cannot be empty")
        return v


class DuplicateScanRequest(BaseModel):
    """Request body for /analytics/duplicates endpoint"""
    source_types: List[SourceType] = Field(default_factory=lambda: [SourceType.KNOWLEDGE_ENTRY], min_length=1)
    threshold: Optional[float] = Field(None, ge=0.0, le=1.0)
    top_n: Optional[int] = Field(None, ge=1, le=50)


class CategorizeRequest(BaseModel):
    """Request body for /analytics/categorize endpoint"""
    source_types: List[SourceType] = Field(default_factory=lambda: [SourceType.KNOWLEDGE_ENTRY], min_length=1)


class BackfillRequest(BaseModel):
    """Request body for /corpus/backfill endpoint"""
    source_types: List[SourceType] = Field(
        default_factory=lambda: list(SourceType),
        min_length=1
    )
    batch_size: Optional[int] = Field(None, ge=1, le=1000)
