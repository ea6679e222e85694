"""Schemas for validating LLM output before it enters the pipeline"""
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator


class DraftItemLLM(BaseModel):
    """One place as returned by the draft-generation prompt"""
    model_config = {"extra": "ignore", "populate_by_name": True}

    place_name: Optional[str] = Field(None, alias="placeName")
    place_name_local: Optional[str] = Field(None, alias="placeNameKor")
    day_number: Optional[int] = Field(None, alias="dayNumber")
    order_index: Optional[int] = Field(None, alias="orderIndex")
    time_of_day: Optional[str] = Field(None, alias="timeOfDay")
    expected_duration_mins: Optional[int] = Field(None, alias="expectedDurationMins")
    reason: Optional[str] = None
    item_id: Optional[int] = Field(None, alias="itemId")

    @field_validator("item_id", mode="before")
    @classmethod
    def parse_item_id(cls, v):
        """The model sometimes cites ids as strings, 0 or -1 for 'none'"""
        if v is None or isinstance(v, bool):
            return None
        try:
            parsed = int(float(v))
        except (TypeError, ValueError):
            return None
        return parsed if parsed > 0 else None

    @field_validator("day_number", "order_index", "expected_duration_mins", mode="before")
    @classmethod
    def parse_optional_int(cls, v):
        if v is None or isinstance(v, bool):
            return None
        try:
            return int(float(v))
        except (TypeError, ValueError):
            return None


class CategoryLabelLLM(BaseModel):
    """One id -> category answer from the cold-start classifier"""
    model_config = {"extra": "ignore"}

    id: str
    category: str

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v)

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, v):
        return str(v).strip().lower()


class FaqAnswerLLM(BaseModel):
    """Grounded FAQ answer with the knowledge entries it cites"""
    model_config = {"extra": "ignore", "populate_by_name": True}

    answer: str = ""
    matched: bool = True
    cited_ids: List[str] = Field(default_factory=list, alias="citedIds")

    @field_validator("cited_ids", mode="before")
    @classmethod
    def coerce_ids(cls, v):
        if not v:
            return []
        return [str(item) for item in v]
